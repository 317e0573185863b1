"""ORM models for the contract kernel."""

from contract_kernel.models.approval_track import ApprovalTrack
from contract_kernel.models.audit_event import AuditAction, AuditEvent
from contract_kernel.models.contract import Contract
from contract_kernel.models.sequence_counter import SequenceCounter

__all__ = [
    "ApprovalTrack",
    "AuditAction",
    "AuditEvent",
    "Contract",
    "SequenceCounter",
]
