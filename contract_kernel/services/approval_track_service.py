"""
ApprovalTrackService -- CRUD-with-invariant on approval tracks.

Responsibility:
    Opens tracks, applies per-track status transitions and answers "is
    there an open track of type T for contract C?" through the partial
    unique index on (contract_id, track_type).  Has no side effects of its
    own beyond the session: the workflow engine drives every mutation
    inside its transaction and records the audit event.

Invariants enforced:
    - At most one PENDING / ESCALATED track per (contract, type).
    - Track transitions follow TRACK_TRANSITIONS; terminal rows are never
      touched again.
    - Each new track of a type gets the next review cycle number.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import func, select

from contract_kernel.domain.workflow import (
    ACTIVE_TRACK_STATUSES,
    ActorRole,
    TrackStatus,
    TrackType,
    can_transition_track,
)
from contract_kernel.exceptions import (
    ActiveTrackExistsError,
    ApprovalTrackNotFoundError,
    TrackAlreadyResolvedError,
)
from contract_kernel.logging_config import get_logger
from contract_kernel.models.approval_track import ApprovalTrack
from contract_kernel.services.base import BaseService

logger = get_logger("services.approval_track")

_ACTIVE_VALUES = tuple(s.value for s in ACTIVE_TRACK_STATUSES)


class ApprovalTrackService(BaseService[ApprovalTrack]):
    """Bookkeeping for approval tracks; flush-only."""

    def get(self, track_id: UUID) -> ApprovalTrack:
        """Load a track by id.

        Raises:
            ApprovalTrackNotFoundError: If no such track exists.
        """
        track = self.session.get(ApprovalTrack, track_id)
        if track is None:
            raise ApprovalTrackNotFoundError(str(track_id))
        return track

    def list_for_contract(self, contract_id: UUID) -> list[ApprovalTrack]:
        """All tracks of a contract, oldest cycle first."""
        return list(
            self.session.execute(
                select(ApprovalTrack)
                .where(ApprovalTrack.contract_id == contract_id)
                .order_by(ApprovalTrack.created_at, ApprovalTrack.track_type, ApprovalTrack.cycle)
            ).scalars().all()
        )

    def find_active(self, contract_id: UUID, track_type: TrackType) -> ApprovalTrack | None:
        """The open track of ``track_type``, served by the partial unique index."""
        return self.session.execute(
            select(ApprovalTrack).where(
                ApprovalTrack.contract_id == contract_id,
                ApprovalTrack.track_type == track_type.value,
                ApprovalTrack.status.in_(_ACTIVE_VALUES),
            )
        ).scalar_one_or_none()

    def has_active(self, contract_id: UUID, track_type: TrackType) -> bool:
        return self.find_active(contract_id, track_type) is not None

    def _next_cycle(self, contract_id: UUID, track_type: TrackType) -> int:
        current = self.session.execute(
            select(func.max(ApprovalTrack.cycle)).where(
                ApprovalTrack.contract_id == contract_id,
                ApprovalTrack.track_type == track_type.value,
            )
        ).scalar_one()
        return (current or 0) + 1

    def open(
        self,
        contract_id: UUID,
        track_type: TrackType,
        submitted_by_id: UUID,
        now: datetime,
        review_round: int = 1,
    ) -> ApprovalTrack:
        """
        Open a new PENDING track for the next review cycle.

        The row is added to the session but not flushed; the engine's
        single flush writes it together with the contract update.

        Raises:
            ActiveTrackExistsError: An open track of this type exists.
        """
        existing = self.find_active(contract_id, track_type)
        if existing is not None:
            raise ActiveTrackExistsError(
                contract_id=str(contract_id),
                track_type=track_type.value,
                track_id=str(existing.id),
            )

        track = ApprovalTrack(
            id=uuid4(),
            contract_id=contract_id,
            track_type=track_type.value,
            status=TrackStatus.PENDING.value,
            actor_role=ActorRole.MANAGER.value,
            cycle=self._next_cycle(contract_id, track_type),
            review_round=review_round,
            created_at=now,
            submitted_by_id=submitted_by_id,
        )
        self.session.add(track)
        logger.debug(
            "approval_track_opened",
            extra={
                "contract_id": str(contract_id),
                "track_type": track_type.value,
                "cycle": track.cycle,
                "review_round": review_round,
            },
        )
        return track

    def carry_into_round(
        self, tracks: list[ApprovalTrack], review_round: int,
    ) -> list[ApprovalTrack]:
        """Move the still-open tracks into ``review_round``; decided ones stay behind."""
        moved = [t for t in tracks if t.is_active]
        for track in moved:
            track.review_round = review_round
        if moved:
            logger.debug(
                "approval_tracks_carried",
                extra={
                    "contract_id": str(moved[0].contract_id),
                    "review_round": review_round,
                    "track_ids": [str(t.id) for t in moved],
                },
            )
        return moved

    def transition(
        self,
        track: ApprovalTrack,
        target: TrackStatus,
        operation: str,
    ) -> TrackStatus:
        """
        Move ``track`` to ``target``.

        Returns:
            The status the track had before.

        Raises:
            TrackAlreadyResolvedError: The transition is not allowed from the
                track's current status.
        """
        current = TrackStatus(track.status)
        if not can_transition_track(current, target):
            raise TrackAlreadyResolvedError(
                operation=operation,
                track_id=str(track.id),
                track_status=current.value,
            )
        track.status = target.value
        return current

    def resolve(
        self,
        track: ApprovalTrack,
        target: TrackStatus,
        actor_id: UUID,
        comment: str | None,
        now: datetime,
        operation: str,
    ) -> TrackStatus:
        """Close ``track`` as APPROVED / REJECTED / REVISION_REQUESTED."""
        previous = self.transition(track, target, operation)
        track.comment = comment
        track.resolved_at = now
        track.resolved_by_id = actor_id
        return previous

    def start_review(self, track: ApprovalTrack, actor_id: UUID, now: datetime) -> None:
        track.review_started_at = now
        track.review_started_by_id = actor_id

    def escalate(
        self,
        track: ApprovalTrack,
        actor_id: UUID,
        reason: str | None,
        now: datetime,
    ) -> None:
        """Hand the track to the legal head (one-shot per cycle)."""
        self.transition(track, TrackStatus.ESCALATED, "escalate")
        track.actor_role = ActorRole.HEAD.value
        track.escalated_at = now
        track.escalated_by_id = actor_id
        track.escalation_reason = reason
