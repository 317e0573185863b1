"""
Contract Kernel - Approval Workflow Engine

A state machine governing contract lifecycle with:
- Dual-track (legal / finance) review with one escalation tier
- Optimistic concurrency on every transition
- Atomic state + audit writes
- Full auditability via hash chain
"""

__version__ = "0.1.0"
