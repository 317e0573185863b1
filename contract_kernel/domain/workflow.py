"""
Contract workflow rules (``contract_kernel.domain.workflow``).

Responsibility
--------------
Pure state-machine vocabulary and rules for the contract approval workflow:
contract and track statuses, the per-track transition table, the status
groups each command accepts, and the derived contract status function.

Architecture position
---------------------
**Kernel domain layer** -- pure functions and value types.  ZERO I/O.
No imports from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Track lifecycle: PENDING -> {APPROVED, REJECTED, REVISION_REQUESTED,
  ESCALATED}; ESCALATED -> {APPROVED, REJECTED, REVISION_REQUESTED};
  APPROVED / REJECTED / REVISION_REQUESTED are terminal.
* Derived status law: in the review phase the contract status is a pure
  function of the latest track per required type within the contract's
  current review round (``derive_contract_status``).  A decision taken in
  an earlier round never counts toward the current one.
  Restrictiveness: cancel > revision requested > pending > approved.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Protocol


class ContractStatus(str, Enum):
    """Lifecycle status of a contract."""

    DRAFT = "DRAFT"
    IN_REVIEW = "IN_REVIEW"
    SENT_TO_LEGAL = "SENT_TO_LEGAL"
    SENT_TO_FINANCE = "SENT_TO_FINANCE"
    LEGAL_REVIEW_IN_PROGRESS = "LEGAL_REVIEW_IN_PROGRESS"
    FINANCE_REVIEW_IN_PROGRESS = "FINANCE_REVIEW_IN_PROGRESS"
    LEGAL_APPROVED = "LEGAL_APPROVED"
    FINANCE_REVIEWED = "FINANCE_REVIEWED"
    PENDING_LEGAL_HEAD = "PENDING_LEGAL_HEAD"
    APPROVED = "APPROVED"
    SENT_TO_COUNTERPARTY = "SENT_TO_COUNTERPARTY"
    ACTIVE = "ACTIVE"
    EXECUTED = "EXECUTED"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    CANCELLED = "CANCELLED"


class TrackType(str, Enum):
    """Review discipline."""

    LEGAL = "LEGAL"
    FINANCE = "FINANCE"


class TrackStatus(str, Enum):
    """Status of one approval track row."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    ESCALATED = "ESCALATED"


class ActorRole(str, Enum):
    """Reviewer tier that currently owns a track."""

    MANAGER = "MANAGER"
    HEAD = "HEAD"


class WorkflowAction(str, Enum):
    """Commands exposed by the workflow engine."""

    CREATE = "create"
    EDIT = "edit"
    SUBMIT = "submit"
    START_REVIEW = "start_review"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"
    ESCALATE = "escalate"
    SEND = "send"
    UPLOAD_SIGNED = "upload_signed"
    CANCEL = "cancel"


# ---------------------------------------------------------------------------
# Track lifecycle
# ---------------------------------------------------------------------------

TRACK_TRANSITIONS: dict[TrackStatus, frozenset[TrackStatus]] = {
    TrackStatus.PENDING: frozenset({
        TrackStatus.APPROVED,
        TrackStatus.REJECTED,
        TrackStatus.REVISION_REQUESTED,
        TrackStatus.ESCALATED,
    }),
    TrackStatus.ESCALATED: frozenset({
        TrackStatus.APPROVED,
        TrackStatus.REJECTED,
        TrackStatus.REVISION_REQUESTED,
    }),
    TrackStatus.APPROVED: frozenset(),
    TrackStatus.REJECTED: frozenset(),
    TrackStatus.REVISION_REQUESTED: frozenset(),
}

ACTIVE_TRACK_STATUSES: frozenset[TrackStatus] = frozenset({
    TrackStatus.PENDING,
    TrackStatus.ESCALATED,
})

TERMINAL_TRACK_STATUSES: frozenset[TrackStatus] = frozenset({
    TrackStatus.APPROVED,
    TrackStatus.REJECTED,
    TrackStatus.REVISION_REQUESTED,
})

NEGATIVE_TRACK_STATUSES: frozenset[TrackStatus] = frozenset({
    TrackStatus.REJECTED,
    TrackStatus.REVISION_REQUESTED,
})


def can_transition_track(current: TrackStatus, target: TrackStatus) -> bool:
    """Whether ``current -> target`` is a legal track transition."""
    return target in TRACK_TRANSITIONS.get(current, frozenset())


# ---------------------------------------------------------------------------
# Contract status groups
# ---------------------------------------------------------------------------

#: Statuses in which the contract is being (or has been partly) reviewed.
REVIEW_PHASE_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.IN_REVIEW,
    ContractStatus.SENT_TO_LEGAL,
    ContractStatus.SENT_TO_FINANCE,
    ContractStatus.LEGAL_REVIEW_IN_PROGRESS,
    ContractStatus.FINANCE_REVIEW_IN_PROGRESS,
    ContractStatus.LEGAL_APPROVED,
    ContractStatus.FINANCE_REVIEWED,
    ContractStatus.PENDING_LEGAL_HEAD,
})

EDITABLE_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.DRAFT,
    ContractStatus.REVISION_REQUESTED,
})

SUBMITTABLE_STATUSES: frozenset[ContractStatus] = EDITABLE_STATUSES | REVIEW_PHASE_STATUSES

CANCELLABLE_STATUSES: frozenset[ContractStatus] = EDITABLE_STATUSES | REVIEW_PHASE_STATUSES

ESCALATABLE_CONTRACT_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.SENT_TO_LEGAL,
    ContractStatus.LEGAL_REVIEW_IN_PROGRESS,
    ContractStatus.IN_REVIEW,
})

#: Statuses past the review phase; never re-derived from tracks.
POST_REVIEW_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.SENT_TO_COUNTERPARTY,
    ContractStatus.ACTIVE,
    ContractStatus.EXECUTED,
    ContractStatus.CANCELLED,
})

TERMINAL_CONTRACT_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.ACTIVE,
    ContractStatus.EXECUTED,
    ContractStatus.CANCELLED,
})

EXECUTION_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.ACTIVE,
    ContractStatus.EXECUTED,
})

_SENT_STATUS = {
    TrackType.LEGAL: ContractStatus.SENT_TO_LEGAL,
    TrackType.FINANCE: ContractStatus.SENT_TO_FINANCE,
}

_IN_PROGRESS_STATUS = {
    TrackType.LEGAL: ContractStatus.LEGAL_REVIEW_IN_PROGRESS,
    TrackType.FINANCE: ContractStatus.FINANCE_REVIEW_IN_PROGRESS,
}


# ---------------------------------------------------------------------------
# Derived status
# ---------------------------------------------------------------------------


class TrackLike(Protocol):
    """Read-only view of a track that the pure rules need."""

    @property
    def track_type(self) -> TrackType: ...

    @property
    def status(self) -> TrackStatus: ...

    @property
    def cycle(self) -> int: ...

    @property
    def review_round(self) -> int: ...

    @property
    def review_started_at(self) -> datetime | None: ...


def tracks_in_round(
    tracks: Iterable[TrackLike], review_round: int | None,
) -> list[TrackLike]:
    """Tracks belonging to ``review_round`` (all of them when it is None)."""
    if review_round is None:
        return list(tracks)
    return [t for t in tracks if t.review_round == review_round]


def latest_tracks(tracks: Iterable[TrackLike]) -> dict[TrackType, TrackLike]:
    """Return the most recent review cycle's track for each type."""
    latest: dict[TrackType, TrackLike] = {}
    for track in tracks:
        current = latest.get(track.track_type)
        if current is None or track.cycle > current.cycle:
            latest[track.track_type] = track
    return latest


def derive_contract_status(
    tracks: Iterable[TrackLike],
    required: Iterable[TrackType],
    current: ContractStatus | None = None,
    review_round: int | None = None,
) -> ContractStatus:
    """
    Compute the contract status from its approval tracks.

    Only the latest track of each required type is considered.  When
    ``review_round`` is given, tracks decided in earlier rounds are ignored,
    so every required discipline has to approve the revised document again.
    Statuses past the review phase (sent, executed, cancelled) are returned
    as-is.

    Args:
        tracks: All tracks of the contract (any order, history included).
        required: Track types this contract must collect approval from.
        current: The stored status, if any.
        review_round: The contract's current review round, if known.

    Returns:
        The derived ContractStatus.
    """
    if current in POST_REVIEW_STATUSES:
        return current

    required_types = frozenset(required)
    current_round = tracks_in_round(tracks, review_round)
    latest = {
        track_type: track
        for track_type, track in latest_tracks(current_round).items()
        if track_type in required_types
    }

    if not latest:
        return ContractStatus.DRAFT

    if any(t.status in NEGATIVE_TRACK_STATUSES for t in latest.values()):
        return ContractStatus.REVISION_REQUESTED

    if required_types and all(
        t in latest and latest[t].status == TrackStatus.APPROVED
        for t in required_types
    ):
        return ContractStatus.APPROVED

    legal = latest.get(TrackType.LEGAL)
    if legal is not None and legal.status == TrackStatus.ESCALATED:
        return ContractStatus.PENDING_LEGAL_HEAD

    active = [t for t in latest.values() if t.status in ACTIVE_TRACK_STATUSES]
    if len(active) == 1:
        track = active[0]
        if track.review_started_at is not None:
            return _IN_PROGRESS_STATUS[track.track_type]
        return _SENT_STATUS[track.track_type]
    if len(active) > 1:
        return ContractStatus.IN_REVIEW

    # No open track and the required set is only partly approved
    if legal is not None and legal.status == TrackStatus.APPROVED:
        return ContractStatus.LEGAL_APPROVED
    return ContractStatus.FINANCE_REVIEWED


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def is_track_active(track: TrackLike) -> bool:
    return track.status in ACTIVE_TRACK_STATUSES


def can_submit(
    contract_status: ContractStatus,
    tracks: Iterable[TrackLike],
    required: Iterable[TrackType],
    target: TrackType,
    review_round: int | None = None,
) -> bool:
    """
    Whether ``target`` may be submitted now.

    From DRAFT / REVISION_REQUESTED any required track without an open row
    may be (re)submitted.  During review a second track may join, but a
    track already approved in the current review round is not re-requested.
    """
    if contract_status not in SUBMITTABLE_STATUSES:
        return False
    if target not in frozenset(required):
        return False
    tracks = list(tracks)
    if any(t.track_type == target and is_track_active(t) for t in tracks):
        return False
    if contract_status in REVIEW_PHASE_STATUSES:
        latest = latest_tracks(tracks_in_round(tracks, review_round)).get(target)
        if latest is not None and latest.status == TrackStatus.APPROVED:
            return False
    return True


def can_start_review(track: TrackLike) -> bool:
    return track.status in ACTIVE_TRACK_STATUSES and track.review_started_at is None


def can_decide(track: TrackLike) -> bool:
    """Whether approve / reject / request_revision may act on ``track``."""
    return track.status in ACTIVE_TRACK_STATUSES


def can_edit(contract_status: ContractStatus) -> bool:
    return contract_status in EDITABLE_STATUSES


def can_send(contract_status: ContractStatus) -> bool:
    return contract_status == ContractStatus.APPROVED


def can_upload_signed(contract_status: ContractStatus) -> bool:
    return contract_status == ContractStatus.SENT_TO_COUNTERPARTY


def can_cancel(contract_status: ContractStatus) -> bool:
    return contract_status in CANCELLABLE_STATUSES


def active_track_for(
    tracks: Iterable[TrackLike], track_type: TrackType,
) -> TrackLike | None:
    """Return the open track of ``track_type``, if any."""
    for track in tracks:
        if track.track_type == track_type and is_track_active(track):
            return track
    return None


def required_track_types(requires_legal: bool, requires_finance: bool) -> frozenset[TrackType]:
    types = set()
    if requires_legal:
        types.add(TrackType.LEGAL)
    if requires_finance:
        types.add(TrackType.FINANCE)
    return frozenset(types)
