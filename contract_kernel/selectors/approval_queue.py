"""
Module: contract_kernel.selectors.approval_queue
Responsibility: The reviewer inbox -- open tracks of one discipline,
    oldest first, with enough contract context to triage them.

Invariants enforced:
    - Only PENDING / ESCALATED tracks are listed.
    - Ordering is deterministic: track created_at, then track id.
    - Served by ix_approval_tracks_queue (track_type, status, created_at).
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from contract_kernel.domain.dtos import TrackSnapshot
from contract_kernel.domain.workflow import (
    ACTIVE_TRACK_STATUSES,
    ContractStatus,
    TrackStatus,
    TrackType,
)
from contract_kernel.models.approval_track import ApprovalTrack
from contract_kernel.models.contract import Contract
from contract_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class PendingApproval:
    """One open track in a reviewer's queue."""

    track: TrackSnapshot
    contract_id: UUID
    contract_title: str
    contract_status: ContractStatus
    contract_version: int
    amount: Decimal | None
    currency: str | None
    counterparty_name: str | None

    @property
    def is_escalated(self) -> bool:
        return self.track.status == TrackStatus.ESCALATED


class ApprovalQueueSelector(BaseSelector[ApprovalTrack]):
    """Open approval tracks per discipline."""

    def pending_for(
        self,
        track_type: TrackType,
        escalated_only: bool = False,
        limit: int | None = None,
    ) -> list[PendingApproval]:
        """
        Open tracks of ``track_type``, oldest first.

        Args:
            track_type: Review discipline.
            escalated_only: Only tracks waiting for the legal head.
            limit: Maximum number of rows, or None for all.
        """
        statuses = (
            [TrackStatus.ESCALATED.value]
            if escalated_only
            else sorted(s.value for s in ACTIVE_TRACK_STATUSES)
        )
        stmt = (
            select(ApprovalTrack, Contract)
            .join(Contract, Contract.id == ApprovalTrack.contract_id)
            .where(
                ApprovalTrack.track_type == track_type.value,
                ApprovalTrack.status.in_(statuses),
            )
            .order_by(ApprovalTrack.created_at, ApprovalTrack.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        return [
            PendingApproval(
                track=track.to_dto(),
                contract_id=contract.id,
                contract_title=contract.title,
                contract_status=ContractStatus(contract.status),
                contract_version=contract.version,
                amount=contract.amount,
                currency=contract.currency,
                counterparty_name=contract.counterparty_name,
            )
            for track, contract in self.session.execute(stmt).all()
        ]
