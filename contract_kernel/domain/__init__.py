"""
Pure domain layer.

Workflow vocabulary, transition guards, the derived status rule and frozen
DTOs.  No ORM, no database, no clock reads, no I/O.
"""

from contract_kernel.domain.capabilities import (
    Capability,
    PermissionOracle,
    act_capability,
    view_capability,
)
from contract_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from contract_kernel.domain.dtos import (
    AuditEntry,
    AvailableAction,
    ContractSnapshot,
    ContractView,
    TrackSnapshot,
    WorkflowEvent,
)
from contract_kernel.domain.escalation import can_escalate, is_escalatable
from contract_kernel.domain.workflow import (
    ActorRole,
    ContractStatus,
    TrackStatus,
    TrackType,
    WorkflowAction,
    derive_contract_status,
    latest_tracks,
)

__all__ = [
    "ActorRole",
    "AuditEntry",
    "AvailableAction",
    "Capability",
    "Clock",
    "ContractSnapshot",
    "ContractStatus",
    "ContractView",
    "DeterministicClock",
    "PermissionOracle",
    "SystemClock",
    "TrackSnapshot",
    "TrackStatus",
    "TrackType",
    "WorkflowAction",
    "WorkflowEvent",
    "act_capability",
    "can_escalate",
    "derive_contract_status",
    "is_escalatable",
    "latest_tracks",
    "view_capability",
]
