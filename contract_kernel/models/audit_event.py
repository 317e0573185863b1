"""
Module: contract_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident contract audit log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (db/immutability.py).
    - Hash chain: hash = H(contract_id | action | actor_id | payload_hash |
      prev_hash).  Validated by AuditorService.validate_chain().
    - seq is strictly increasing, allocated from a locked counter row.

Audit relevance:
    Exactly one row is written per successful workflow command, in the same
    transaction as the state change it describes.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from contract_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Auditable contract transitions (also the notification trigger names)."""

    CONTRACT_CREATED = "CONTRACT_CREATED"
    CONTRACT_UPDATED = "CONTRACT_UPDATED"
    CONTRACT_SUBMITTED = "CONTRACT_SUBMITTED"
    CONTRACT_REVIEW_STARTED = "CONTRACT_REVIEW_STARTED"
    CONTRACT_APPROVED = "CONTRACT_APPROVED"
    CONTRACT_REJECTED = "CONTRACT_REJECTED"
    CONTRACT_REVISION_REQUESTED = "CONTRACT_REVISION_REQUESTED"
    CONTRACT_ESCALATED = "CONTRACT_ESCALATED"
    CONTRACT_SENT = "CONTRACT_SENT"
    CONTRACT_EXECUTED = "CONTRACT_EXECUTED"
    CONTRACT_CANCELLED = "CONTRACT_CANCELLED"


class AuditEvent(Base):
    """
    Audit row with hash chain for tamper evidence.

    Guarantees:
        - seq is unique and monotonically increasing.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - The model does NOT check hash correctness at INSERT time; that is
          AuditorService's job.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_contract_seq", "contract_id", "seq"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_created", "created_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    contract_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    # Free-text reviewer comment, stored verbatim
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ``metadata`` is reserved on declarative classes
    event_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} on {self.contract_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    @property
    def payload(self) -> dict[str, Any]:
        """The hashed payload: comment plus metadata."""
        return {"comment": self.comment, "metadata": self.event_metadata}

    def to_dto(self):
        """Convert ORM model to frozen domain DTO."""
        from contract_kernel.domain.dtos import AuditEntry

        return AuditEntry(
            id=self.id,
            seq=self.seq,
            contract_id=self.contract_id,
            action=self.action,
            actor_id=self.actor_id,
            created_at=self.created_at,
            comment=self.comment,
            metadata=dict(self.event_metadata or {}),
            payload_hash=self.payload_hash,
            prev_hash=self.prev_hash,
            hash=self.hash,
        )
