"""
Typed Exception Hierarchy for the Contract Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ContractKernelError:

    ContractKernelError (base)
    |
    +-- InvalidStateError
    |   +-- ActiveTrackExistsError
    |   +-- TrackAlreadyResolvedError
    |   +-- EscalationNotAllowedError
    |
    +-- ForbiddenError
    |
    +-- ValidationError
    |   +-- CommentTooShortError
    |   +-- MissingCommentError
    |
    +-- ConflictError
    |
    +-- NotFoundError
    |   +-- ContractNotFoundError
    |   +-- ApprovalTrackNotFoundError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
State           | INVALID_STATE               | Operation not legal in current status
                | ACTIVE_TRACK_EXISTS         | Second submission to an open track
                | TRACK_ALREADY_RESOLVED      | Acting on a terminal track
                | ESCALATION_NOT_ALLOWED      | Track/status cannot be escalated
----------------|-----------------------------|-----------------------------------------
Permission      | FORBIDDEN                   | Oracle denied the capability
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Bad input field
                | COMMENT_TOO_SHORT           | Approval comment under minimum length
                | MISSING_COMMENT             | Reject / revision without comment
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Version mismatch / concurrent write
----------------|-----------------------------|-----------------------------------------
Lookup          | CONTRACT_NOT_FOUND          | Contract ID doesn't exist
                | APPROVAL_TRACK_NOT_FOUND    | Track ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying audit rows / resolved tracks
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Invalid workflow configuration

===============================================================================
HANDLING PATTERNS
===============================================================================

Every error is recoverable by the caller: the command's transaction has
been rolled back and nothing was written.

    try:
        view = engine.approve(track_id, actor_id, comment, expected_version=v)
    except ConflictError:
        view = engine.get_contract(contract_id)   # reload, let the user retry
    except ValidationError as e:
        return {"error": e.code, "field": e.field, "reason": e.reason}

The ``code`` class attribute is static per type, so it can be read without
an instance (``ForbiddenError.code``) and is safe to hand to an API client.
"""


class ContractKernelError(Exception):
    """
    Base exception for all contract kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CONTRACT_KERNEL_ERROR"


# State-related exceptions


class InvalidStateError(ContractKernelError):
    """Operation is not permitted in the contract's or track's current status."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        operation: str,
        current_status: str,
        entity_id: str,
        detail: str | None = None,
    ):
        self.operation = operation
        self.current_status = current_status
        self.entity_id = entity_id
        self.detail = detail
        message = f"Cannot {operation} {entity_id} in status {current_status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ActiveTrackExistsError(InvalidStateError):
    """A non-terminal track of this type already exists for the contract."""

    code: str = "ACTIVE_TRACK_EXISTS"

    def __init__(self, contract_id: str, track_type: str, track_id: str):
        self.contract_id = contract_id
        self.track_type = track_type
        self.track_id = track_id
        super().__init__(
            operation="submit",
            current_status="PENDING",
            entity_id=contract_id,
            detail=f"{track_type} track {track_id} is still open",
        )


class TrackAlreadyResolvedError(InvalidStateError):
    """The track has already reached a terminal status."""

    code: str = "TRACK_ALREADY_RESOLVED"

    def __init__(self, operation: str, track_id: str, track_status: str):
        self.track_id = track_id
        self.track_status = track_status
        super().__init__(
            operation=operation,
            current_status=track_status,
            entity_id=track_id,
            detail="track already resolved",
        )


class EscalationNotAllowedError(InvalidStateError):
    """The track or contract is not in an escalatable state."""

    code: str = "ESCALATION_NOT_ALLOWED"

    def __init__(self, track_id: str, track_type: str, track_status: str, contract_status: str):
        self.track_id = track_id
        self.track_type = track_type
        self.track_status = track_status
        self.contract_status = contract_status
        super().__init__(
            operation="escalate",
            current_status=track_status,
            entity_id=track_id,
            detail=(
                f"{track_type} track in {track_status}, "
                f"contract in {contract_status}"
            ),
        )


# Permission-related exceptions


class ForbiddenError(ContractKernelError):
    """The permission oracle denied the required capability."""

    code: str = "FORBIDDEN"

    def __init__(self, actor_id: str, capability: str, scope: str | None = None):
        self.actor_id = actor_id
        self.capability = capability
        self.scope = scope
        super().__init__(
            f"Actor {actor_id} lacks capability {capability}"
            + (f" on {scope}" if scope else "")
        )


# Validation-related exceptions


class ValidationError(ContractKernelError):
    """An input field failed validation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class CommentTooShortError(ValidationError):
    """Approval comment is shorter than the configured minimum."""

    code: str = "COMMENT_TOO_SHORT"

    def __init__(self, min_length: int, actual_length: int):
        self.min_length = min_length
        self.actual_length = actual_length
        super().__init__(
            field="comment",
            reason=f"must be at least {min_length} characters, got {actual_length}",
        )


class MissingCommentError(ValidationError):
    """A comment is required for this action."""

    code: str = "MISSING_COMMENT"

    def __init__(self, action: str):
        self.action = action
        super().__init__(field="comment", reason=f"required for {action}")


# Concurrency-related exceptions


class ConflictError(ContractKernelError):
    """Optimistic concurrency conflict: the entity changed since it was read."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        message = (
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
        if expected_version is not None:
            message = (
                f"{message} (expected version {expected_version}, "
                f"found {actual_version})"
            )
        super().__init__(message)


# Lookup-related exceptions


class NotFoundError(ContractKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class ContractNotFoundError(NotFoundError):
    """Contract with given ID was not found."""

    code: str = "CONTRACT_NOT_FOUND"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"Contract not found: {contract_id}")


class ApprovalTrackNotFoundError(NotFoundError):
    """Approval track with given ID was not found."""

    code: str = "APPROVAL_TRACK_NOT_FOUND"

    def __init__(self, track_id: str):
        self.track_id = track_id
        super().__init__(f"Approval track not found: {track_id}")


# Audit-related exceptions


class AuditError(ContractKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Immutability-related exceptions


class ImmutabilityViolationError(ContractKernelError):
    """
    Attempted to modify or delete an immutable record.

    Audit events are immutable from creation; approval tracks once they
    reach a terminal status; contracts once closed.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration-related exceptions


class ConfigurationError(ContractKernelError):
    """Workflow configuration is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration in {source}: {reason}")
