"""Services for the contract kernel (write side)."""

from contract_kernel.services.approval_track_service import ApprovalTrackService
from contract_kernel.services.auditor_service import AuditorService, AuditTrace
from contract_kernel.services.notifications import NotificationDispatcher, WorkflowListener
from contract_kernel.services.sequence_service import SequenceService
from contract_kernel.services.workflow_engine import ContractWorkflowEngine

__all__ = [
    "ApprovalTrackService",
    "AuditTrace",
    "AuditorService",
    "ContractWorkflowEngine",
    "NotificationDispatcher",
    "SequenceService",
    "WorkflowListener",
]
