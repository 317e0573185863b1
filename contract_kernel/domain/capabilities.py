"""
Capabilities and the permission oracle contract.

The engine never inspects roles.  It asks an injected ``PermissionOracle``
whether an actor holds a named capability, optionally scoped to a contract.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol
from uuid import UUID

from contract_kernel.domain.workflow import TrackType


class Capability(str, Enum):
    """Named capabilities checked by the workflow engine."""

    CONTRACT_CREATE = "contract:create"
    CONTRACT_SUBMIT = "contract:submit"
    CONTRACT_EDIT = "contract:edit"
    CONTRACT_SEND = "contract:send"
    CONTRACT_UPLOAD = "contract:upload"
    CONTRACT_CANCEL = "contract:cancel"
    LEGAL_VIEW = "approval:legal:view"
    LEGAL_ACT = "approval:legal:act"
    LEGAL_ESCALATE = "approval:legal:escalate"
    LEGAL_HEAD = "approval:legal:head"
    FINANCE_VIEW = "approval:finance:view"
    FINANCE_ACT = "approval:finance:act"


_ACT_CAPABILITY = {
    TrackType.LEGAL: Capability.LEGAL_ACT,
    TrackType.FINANCE: Capability.FINANCE_ACT,
}

_VIEW_CAPABILITY = {
    TrackType.LEGAL: Capability.LEGAL_VIEW,
    TrackType.FINANCE: Capability.FINANCE_VIEW,
}


def act_capability(track_type: TrackType) -> Capability:
    """Capability needed to approve / reject a track of this type."""
    return _ACT_CAPABILITY[track_type]


def view_capability(track_type: TrackType) -> Capability:
    """Capability needed to see a track type's approval queue."""
    return _VIEW_CAPABILITY[track_type]


class PermissionOracle(Protocol):
    """
    Answers capability questions for an actor.

    ``scope`` is the contract id (as a string) when the question concerns a
    specific contract, None for global capabilities.
    """

    def has_capability(
        self,
        actor_id: UUID,
        capability: str,
        scope: str | None = None,
    ) -> bool:
        ...
