"""
Escalation sub-policy.

A legal review can be handed from the legal manager to the legal head once
per review cycle.  These predicates hold no state; the engine applies the
transition (track actor_role MANAGER -> HEAD, status PENDING -> ESCALATED).
"""

from __future__ import annotations

from contract_kernel.domain.workflow import (
    ESCALATABLE_CONTRACT_STATUSES,
    ContractStatus,
    TrackLike,
    TrackStatus,
    TrackType,
)


def is_escalatable(track: TrackLike, contract_status: ContractStatus) -> bool:
    """State half of the policy: legal, still PENDING, contract under legal review."""
    return (
        track.track_type == TrackType.LEGAL
        and track.status == TrackStatus.PENDING
        and contract_status in ESCALATABLE_CONTRACT_STATUSES
    )


def can_escalate(
    track: TrackLike,
    contract_status: ContractStatus,
    has_capability: bool,
) -> bool:
    """
    Whether the actor may escalate ``track`` now.

    One-shot: an ESCALATED track is no longer PENDING, so it never
    qualifies again.  A new review cycle starts with a fresh PENDING track.
    """
    return has_capability and is_escalatable(track, contract_status)
