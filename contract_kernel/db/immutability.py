"""
ORM-Level Immutability Enforcement.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners below inspect attribute history and raise
ImmutabilityViolationError, which aborts the flush and the transaction.

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable                          | Delete
----------------|-----------------------------------------|---------
AuditEvent      | ALWAYS (from creation)                  | never
ApprovalTrack   | Once APPROVED / REJECTED / REV_REQ      | never
Contract        | Once ACTIVE / EXECUTED / CANCELLED      | never

A status transition INTO a terminal status is allowed: that update is the
one that closes the record.  The check is on the status the row had before
the flush (attribute history), not the status being written.

===============================================================================
USAGE
===============================================================================

Registered by ``init_engine_from_url()``.  To disable (TESTS ONLY):

    from contract_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from contract_kernel.exceptions import ImmutabilityViolationError
from contract_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _status_before_flush(target) -> str:
    """Status the row had in the database before this flush."""
    history = get_history(target, "status")
    if history.deleted:
        return history.deleted[0]
    return target.status


def _block(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_changed_fields(entity_type: str, target, status_label: str) -> None:
    insp = inspect(target)
    for attr in insp.attrs:
        if attr.history.has_changes():
            _block(
                entity_type,
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on {status_label} {entity_type}",
                field=attr.key,
            )


# =============================================================================
# AuditEvent: always immutable
# =============================================================================


def _check_audit_event_immutability(mapper, connection, target):
    """Prevent any updates to AuditEvent records."""
    _block(
        "AuditEvent",
        target.id,
        "UPDATE",
        "Audit events are immutable and cannot be modified",
    )


def _check_audit_event_delete(mapper, connection, target):
    """Prevent deletion of AuditEvent records."""
    _block("AuditEvent", target.id, "DELETE", "Audit events cannot be deleted")


# =============================================================================
# ApprovalTrack: frozen once resolved, never deleted
# =============================================================================


def _check_approval_track_immutability(mapper, connection, target):
    """Prevent updates to tracks that were already terminal before this flush."""
    from contract_kernel.domain.workflow import TERMINAL_TRACK_STATUSES

    previous = _status_before_flush(target)
    if previous in {s.value for s in TERMINAL_TRACK_STATUSES}:
        _check_changed_fields("ApprovalTrack", target, previous.lower())


def _check_approval_track_delete(mapper, connection, target):
    """Approval tracks are retained for history."""
    _block(
        "ApprovalTrack",
        target.id,
        "DELETE",
        "Approval tracks are retained for audit history and cannot be deleted",
    )


# =============================================================================
# Contract: frozen once closed, never deleted
# =============================================================================


def _check_contract_immutability(mapper, connection, target):
    """Prevent updates to contracts that were already closed before this flush."""
    from contract_kernel.domain.workflow import TERMINAL_CONTRACT_STATUSES

    previous = _status_before_flush(target)
    if previous in {s.value for s in TERMINAL_CONTRACT_STATUSES}:
        _check_changed_fields("Contract", target, previous.lower())


def _check_contract_delete(mapper, connection, target):
    """Contracts are never deleted; cancel them instead."""
    _block(
        "Contract",
        target.id,
        "DELETE",
        "Contracts cannot be deleted; cancel instead",
    )


_LISTENERS = (
    ("AuditEvent", "before_update", _check_audit_event_immutability),
    ("AuditEvent", "before_delete", _check_audit_event_delete),
    ("ApprovalTrack", "before_update", _check_approval_track_immutability),
    ("ApprovalTrack", "before_delete", _check_approval_track_delete),
    ("Contract", "before_update", _check_contract_immutability),
    ("Contract", "before_delete", _check_contract_delete),
)


def _models() -> dict:
    from contract_kernel.models import ApprovalTrack, AuditEvent, Contract

    return {
        "AuditEvent": AuditEvent,
        "ApprovalTrack": ApprovalTrack,
        "Contract": Contract,
    }


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners (idempotent).

    Call after models are importable and before any database writes.
    """
    models = _models()
    for model_name, event_name, listener_fn in _LISTENERS:
        target = models[model_name]
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to violate immutability on
    purpose.
    """
    models = _models()
    for model_name, event_name, listener_fn in _LISTENERS:
        target = models[model_name]
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
