"""
Action availability -- which commands an actor may run right now.

The same guards the engine enforces, evaluated without side effects, so a
UI can render its toolbar from ``available_actions`` instead of repeating
``status == 'DRAFT' and can_submit`` checks of its own.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from contract_kernel.domain.capabilities import Capability, act_capability
from contract_kernel.domain.dtos import AvailableAction, ContractSnapshot, TrackSnapshot
from contract_kernel.domain.escalation import can_escalate
from contract_kernel.domain.workflow import (
    POST_REVIEW_STATUSES,
    TrackStatus,
    TrackType,
    WorkflowAction,
    can_cancel,
    can_decide,
    can_edit,
    can_send,
    can_start_review,
    can_submit,
    can_upload_signed,
)

HasCapability = Callable[[Capability], bool]

_DECISIONS = (
    WorkflowAction.APPROVE,
    WorkflowAction.REJECT,
    WorkflowAction.REQUEST_REVISION,
)


def track_capabilities(track: TrackSnapshot) -> tuple[Capability, ...]:
    """Capabilities needed to decide on ``track`` (head sign-off once escalated)."""
    if track.status == TrackStatus.ESCALATED:
        return (act_capability(track.track_type), Capability.LEGAL_HEAD)
    return (act_capability(track.track_type),)


def is_action_available(
    action: WorkflowAction,
    contract: ContractSnapshot,
    tracks: Sequence[TrackSnapshot],
    has_capability: HasCapability,
    track: TrackSnapshot | None = None,
    target: TrackType | None = None,
) -> bool:
    """
    Whether ``action`` would pass the engine's permission and state guards.

    Input validation (comment length, non-empty reason) is not evaluated;
    it depends on what the actor types, not on the workflow state.

    Args:
        action: The command.
        contract: Current contract snapshot.
        tracks: All tracks of the contract.
        has_capability: Capability check bound to the acting user.
        track: Track the command targets (track commands only).
        target: Track type to submit (SUBMIT only).
    """
    status = contract.status

    if action == WorkflowAction.SUBMIT:
        if target is None:
            return False
        allowed = has_capability(Capability.CONTRACT_SUBMIT) or has_capability(
            Capability.CONTRACT_CREATE
        )
        return allowed and can_submit(
            status, tracks, contract.required_tracks, target, contract.review_round,
        )

    if action == WorkflowAction.EDIT:
        return has_capability(Capability.CONTRACT_EDIT) and can_edit(status)

    if action == WorkflowAction.SEND:
        return has_capability(Capability.CONTRACT_SEND) and can_send(status)

    if action == WorkflowAction.UPLOAD_SIGNED:
        return has_capability(Capability.CONTRACT_UPLOAD) and can_upload_signed(status)

    if action == WorkflowAction.CANCEL:
        return has_capability(Capability.CONTRACT_CANCEL) and can_cancel(status)

    if track is None or status in POST_REVIEW_STATUSES:
        return False

    if action == WorkflowAction.ESCALATE:
        return can_escalate(track, status, has_capability(Capability.LEGAL_ESCALATE))

    allowed = all(has_capability(c) for c in track_capabilities(track))
    if action == WorkflowAction.START_REVIEW:
        return allowed and can_start_review(track)
    if action in _DECISIONS:
        return allowed and can_decide(track)
    return False


def available_actions(
    contract: ContractSnapshot,
    tracks: Sequence[TrackSnapshot],
    has_capability: HasCapability,
) -> tuple[AvailableAction, ...]:
    """Every command the actor could run on this contract now."""
    actions: list[AvailableAction] = []

    for action in (WorkflowAction.EDIT, WorkflowAction.SEND,
                   WorkflowAction.UPLOAD_SIGNED, WorkflowAction.CANCEL):
        if is_action_available(action, contract, tracks, has_capability):
            actions.append(AvailableAction(action=action))

    for track_type in sorted(contract.required_tracks, key=lambda t: t.value):
        if is_action_available(
            WorkflowAction.SUBMIT, contract, tracks, has_capability, target=track_type,
        ):
            actions.append(AvailableAction(action=WorkflowAction.SUBMIT, track_type=track_type))

    for track in tracks:
        if not track.is_active:
            continue
        for action in (WorkflowAction.START_REVIEW, *_DECISIONS, WorkflowAction.ESCALATE):
            if is_action_available(action, contract, tracks, has_capability, track=track):
                actions.append(AvailableAction(
                    action=action, track_id=track.id, track_type=track.track_type,
                ))

    return tuple(actions)
