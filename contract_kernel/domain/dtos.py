"""
Frozen data transfer objects returned by the contract kernel.

Services convert ORM rows to these snapshots before returning, so callers
never hold a live session object.  Everything here is immutable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from contract_kernel.domain.workflow import (
    ACTIVE_TRACK_STATUSES,
    ActorRole,
    ContractStatus,
    TrackStatus,
    TrackType,
    WorkflowAction,
    latest_tracks,
    required_track_types,
)


@dataclass(frozen=True)
class TrackSnapshot:
    """One approval track row at a point in time."""

    id: UUID
    contract_id: UUID
    track_type: TrackType
    status: TrackStatus
    actor_role: ActorRole
    cycle: int
    version: int
    created_at: datetime
    submitted_by_id: UUID
    review_round: int = 1
    comment: str | None = None
    review_started_at: datetime | None = None
    review_started_by_id: UUID | None = None
    resolved_at: datetime | None = None
    resolved_by_id: UUID | None = None
    escalated_at: datetime | None = None
    escalated_by_id: UUID | None = None
    escalation_reason: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_TRACK_STATUSES

    @property
    def is_escalated(self) -> bool:
        return self.escalated_at is not None


@dataclass(frozen=True)
class ContractSnapshot:
    """Contract row at a point in time."""

    id: UUID
    title: str
    status: ContractStatus
    version: int
    requires_legal: bool
    requires_finance: bool
    created_by_id: UUID
    created_at: datetime
    updated_at: datetime
    review_round: int = 1
    amount: Decimal | None = None
    currency: str | None = None
    counterparty_name: str | None = None
    counterparty_email: str | None = None
    description: str | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    sent_at: datetime | None = None
    signed_at: datetime | None = None
    signed_attachment_ref: str | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    @property
    def required_tracks(self) -> frozenset[TrackType]:
        return required_track_types(self.requires_legal, self.requires_finance)


@dataclass(frozen=True)
class ContractView:
    """A contract with all of its tracks, history included, oldest first."""

    contract: ContractSnapshot
    tracks: tuple[TrackSnapshot, ...] = ()

    @property
    def id(self) -> UUID:
        return self.contract.id

    @property
    def status(self) -> ContractStatus:
        return self.contract.status

    @property
    def version(self) -> int:
        return self.contract.version

    def latest_track(self, track_type: TrackType) -> TrackSnapshot | None:
        return latest_tracks(self.tracks).get(track_type)

    def active_track(self, track_type: TrackType) -> TrackSnapshot | None:
        for track in self.tracks:
            if track.track_type == track_type and track.is_active:
                return track
        return None

    def tracks_of(self, track_type: TrackType) -> tuple[TrackSnapshot, ...]:
        return tuple(t for t in self.tracks if t.track_type == track_type)


@dataclass(frozen=True)
class AuditEntry:
    """One immutable audit log row."""

    id: UUID
    seq: int
    contract_id: UUID
    action: str
    actor_id: UUID
    created_at: datetime
    comment: str | None
    metadata: dict[str, Any]
    payload_hash: str
    prev_hash: str | None
    hash: str


@dataclass(frozen=True)
class WorkflowEvent:
    """Notification trigger published after a command commits."""

    action: str
    contract_id: UUID
    actor_id: UUID
    contract_status: ContractStatus
    occurred_at: datetime
    audit_seq: int
    track_id: UUID | None = None
    track_type: TrackType | None = None
    comment: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AvailableAction:
    """A command the actor could run right now."""

    action: WorkflowAction
    track_id: UUID | None = None
    track_type: TrackType | None = None
