"""
Module: contract_kernel.models.approval_track
Responsibility: ORM persistence for per-discipline approval tracks.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - At most one non-terminal (PENDING / ESCALATED) track per
      (contract_id, track_type): partial unique index, also checked by
      ApprovalTrackService before insert.
    - One row per (contract_id, track_type, cycle); a revision cycle adds a
      new row with cycle + 1 and leaves earlier rows untouched.
    - review_round is the contract round the track belongs to.  Open tracks
      move into a new round with the contract; decided ones stay behind.
    - Terminal rows are frozen (db/immutability.py).

Failure modes:
    - IntegrityError if two transactions open the same track concurrently;
      the losing transaction also fails its contract version check.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from contract_kernel.db.base import Base, UUIDString
from contract_kernel.domain.workflow import (
    ACTIVE_TRACK_STATUSES,
    ActorRole,
    TrackStatus,
    TrackType,
)

if TYPE_CHECKING:
    from contract_kernel.domain.dtos import TrackSnapshot


def _in_list(values) -> str:
    return ", ".join(f"'{v.value}'" for v in sorted(values, key=lambda v: v.value))


_ACTIVE_WHERE = f"status IN ({_in_list(ACTIVE_TRACK_STATUSES)})"


class ApprovalTrack(Base):
    """Persistent approval track (one discipline, one review cycle)."""

    __tablename__ = "approval_tracks"

    __table_args__ = (
        CheckConstraint(
            f"status IN ({_in_list(TrackStatus)})",
            name="ck_approval_tracks_valid_status",
        ),
        CheckConstraint(
            f"track_type IN ({_in_list(TrackType)})",
            name="ck_approval_tracks_valid_type",
        ),
        CheckConstraint(
            f"actor_role IN ({_in_list(ActorRole)})",
            name="ck_approval_tracks_valid_role",
        ),
        UniqueConstraint(
            "contract_id", "track_type", "cycle",
            name="uq_approval_tracks_cycle",
        ),
        Index(
            "ix_approval_tracks_active_unique",
            "contract_id", "track_type",
            unique=True,
            postgresql_where=text(_ACTIVE_WHERE),
            sqlite_where=text(_ACTIVE_WHERE),
        ),
        # Approval queue: open tracks of one type, oldest first
        Index(
            "ix_approval_tracks_queue",
            "track_type", "status", "created_at",
        ),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("contracts.id"), nullable=False,
    )
    track_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=TrackStatus.PENDING.value,
    )
    actor_role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ActorRole.MANAGER.value,
    )
    cycle: Mapped[int] = mapped_column(Integer, nullable=False)
    review_round: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    submitted_by_id: Mapped[UUID] = mapped_column(nullable=False)
    review_started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    review_started_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    escalated_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    escalation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<ApprovalTrack {self.id} {self.track_type}#{self.cycle} "
            f"status={self.status}>"
        )

    @property
    def is_active(self) -> bool:
        return TrackStatus(self.status) in ACTIVE_TRACK_STATUSES

    def to_dto(self) -> TrackSnapshot:
        """Convert ORM model to frozen domain DTO."""
        from contract_kernel.domain.dtos import TrackSnapshot

        return TrackSnapshot(
            id=self.id,
            contract_id=self.contract_id,
            track_type=TrackType(self.track_type),
            status=TrackStatus(self.status),
            actor_role=ActorRole(self.actor_role),
            cycle=self.cycle,
            review_round=self.review_round,
            version=self.version,
            created_at=self.created_at,
            submitted_by_id=self.submitted_by_id,
            comment=self.comment,
            review_started_at=self.review_started_at,
            review_started_by_id=self.review_started_by_id,
            resolved_at=self.resolved_at,
            resolved_by_id=self.resolved_by_id,
            escalated_at=self.escalated_at,
            escalated_by_id=self.escalated_by_id,
            escalation_reason=self.escalation_reason,
        )
