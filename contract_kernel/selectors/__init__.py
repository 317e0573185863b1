"""Selectors for the contract kernel (read side)."""

from contract_kernel.selectors.approval_queue import ApprovalQueueSelector, PendingApproval
from contract_kernel.selectors.contract_selector import ContractSelector

__all__ = [
    "ApprovalQueueSelector",
    "ContractSelector",
    "PendingApproval",
]
