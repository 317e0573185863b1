"""
ContractWorkflowEngine -- the contract lifecycle state machine.

Responsibility:
    Owns every contract transition: create, edit, submit to a review
    track, open / approve / reject / request revision / escalate a track,
    send to the counterparty, record the signed copy, cancel.  Each command
    validates permission, version and state, applies the change, re-derives
    the contract status from its tracks and appends exactly one audit event.

Architecture position:
    Kernel > Services.  Composes ApprovalTrackService and AuditorService
    under one ``session_scope`` per command.  Permission decisions come
    from an injected PermissionOracle; time from an injected Clock.

Invariants enforced:
    - One command == one transaction.  State change and audit row commit
      together or roll back together.
    - Guard order: permission -> expected version -> state -> input.  A
      failing guard raises before anything is written.
    - Optimistic concurrency: the contract row is updated (version bumped
      by exactly one) on every command; a concurrent writer makes the
      ``UPDATE ... WHERE version = :old`` miss and the command fails with
      ConflictError.  Nothing is retried here.
    - Derived status law: in the review phase contract.status always equals
      ``derive_contract_status`` over the tracks of its current review
      round.  Leaving REVISION_REQUESTED starts a new round.
    - At most one open track per (contract, type).

Failure modes:
    - ForbiddenError, ConflictError, InvalidStateError (and subclasses),
      ValidationError (and subclasses), ContractNotFoundError,
      ApprovalTrackNotFoundError.

Audit relevance:
    Notification events are published only after commit, one per command,
    named after the audit action.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from contract_kernel.db.engine import session_scope
from contract_kernel.domain.actions import available_actions, track_capabilities
from contract_kernel.domain.capabilities import Capability, PermissionOracle, view_capability
from contract_kernel.domain.clock import Clock, SystemClock
from contract_kernel.domain.dtos import AvailableAction, ContractView, WorkflowEvent
from contract_kernel.domain.escalation import is_escalatable
from contract_kernel.domain.settings import WorkflowSettings
from contract_kernel.domain.workflow import (
    POST_REVIEW_STATUSES,
    REVIEW_PHASE_STATUSES,
    SUBMITTABLE_STATUSES,
    ContractStatus,
    TrackStatus,
    TrackType,
    can_cancel,
    can_decide,
    can_edit,
    can_send,
    can_start_review,
    can_upload_signed,
    derive_contract_status,
    latest_tracks,
    required_track_types,
    tracks_in_round,
)
from contract_kernel.exceptions import (
    CommentTooShortError,
    ConflictError,
    ContractNotFoundError,
    EscalationNotAllowedError,
    ForbiddenError,
    InvalidStateError,
    MissingCommentError,
    TrackAlreadyResolvedError,
    ValidationError,
)
from contract_kernel.logging_config import LogContext, get_logger
from contract_kernel.models.approval_track import ApprovalTrack
from contract_kernel.models.audit_event import AuditAction, AuditEvent
from contract_kernel.models.contract import Contract
from contract_kernel.selectors.approval_queue import ApprovalQueueSelector, PendingApproval
from contract_kernel.selectors.contract_selector import ContractSelector
from contract_kernel.services.approval_track_service import ApprovalTrackService
from contract_kernel.services.auditor_service import AuditorService, AuditTrace
from contract_kernel.services.notifications import NotificationDispatcher

logger = get_logger("services.workflow_engine")

_DECISION_ACTIONS = {
    TrackStatus.APPROVED: AuditAction.CONTRACT_APPROVED,
    TrackStatus.REJECTED: AuditAction.CONTRACT_REJECTED,
    TrackStatus.REVISION_REQUESTED: AuditAction.CONTRACT_REVISION_REQUESTED,
}

_DECISION_OPERATIONS = {
    TrackStatus.APPROVED: "approve",
    TrackStatus.REJECTED: "reject",
    TrackStatus.REVISION_REQUESTED: "request_revision",
}

_EDITABLE_FIELDS = (
    "title",
    "description",
    "amount",
    "currency",
    "counterparty_name",
    "counterparty_email",
)


@dataclass
class _Outcome:
    """What a command body hands back to the transaction wrapper."""

    contract: Contract
    tracks: list[ApprovalTrack]
    audit: AuditEvent
    track: ApprovalTrack | None = None


class ContractWorkflowEngine:
    """
    Command surface of the contract approval workflow.

    Every command takes the acting user's id and an optional
    ``expected_version`` (the contract version the caller last read), and
    returns the committed ContractView.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        permissions: PermissionOracle,
        clock: Clock | None = None,
        settings: WorkflowSettings | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ):
        self._session_factory = session_factory
        self._permissions = permissions
        self._clock = clock or SystemClock()
        self._settings = settings or WorkflowSettings()
        self._dispatcher = dispatcher or NotificationDispatcher()

    @property
    def settings(self) -> WorkflowSettings:
        return self._settings

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    # =========================================================================
    # Commands
    # =========================================================================

    def create_contract(
        self,
        actor_id: UUID,
        title: str,
        *,
        amount: Decimal | None = None,
        currency: str | None = None,
        counterparty_name: str | None = None,
        counterparty_email: str | None = None,
        description: str | None = None,
        required_tracks: Iterable[TrackType] | None = None,
    ) -> ContractView:
        """Create a DRAFT contract at version 1."""
        contract_id = uuid4()

        def body(session: Session) -> _Outcome:
            self._require(actor_id, Capability.CONTRACT_CREATE)
            fields = self._clean_fields({
                "title": title,
                "description": description,
                "amount": amount,
                "currency": currency,
                "counterparty_name": counterparty_name,
                "counterparty_email": counterparty_email,
            })
            if not fields.get("title"):
                raise ValidationError("title", "must not be empty")
            required = self._required_tracks(required_tracks)

            now = self._clock.now()
            contract = Contract(
                id=contract_id,
                status=ContractStatus.DRAFT.value,
                requires_legal=TrackType.LEGAL in required,
                requires_finance=TrackType.FINANCE in required,
                review_round=1,
                created_by_id=actor_id,
                created_at=now,
                updated_at=now,
                **fields,
            )
            session.add(contract)
            audit = AuditorService(session, self._clock).record_transition(
                contract_id=contract_id,
                action=AuditAction.CONTRACT_CREATED,
                actor_id=actor_id,
                metadata={
                    "from": None,
                    "to": ContractStatus.DRAFT.value,
                    "required_tracks": sorted(t.value for t in required),
                },
            )
            return _Outcome(contract=contract, tracks=[], audit=audit)

        return self._execute("create", actor_id, body, contract_id=contract_id)

    def update_draft(
        self,
        contract_id: UUID,
        actor_id: UUID,
        *,
        expected_version: int | None = None,
        required_tracks: Iterable[TrackType] | None = None,
        **changes: Any,
    ) -> ContractView:
        """
        Edit descriptive fields while the contract is DRAFT or REVISION_REQUESTED.

        Only the keyword arguments passed are changed.  The required review
        tracks can be changed only in DRAFT, before any track exists.
        """
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(sorted(unknown)[0], "not an editable field")

        def body(session: Session) -> _Outcome:
            contract = self._load_contract(session, contract_id)
            self._require(actor_id, Capability.CONTRACT_EDIT, contract_id)
            self._check_version(contract, expected_version)
            status = ContractStatus(contract.status)
            if not can_edit(status):
                raise InvalidStateError("edit", status.value, str(contract_id))

            tracks = ApprovalTrackService(session).list_for_contract(contract_id)
            fields = self._clean_fields(changes)
            if "title" in fields and not fields["title"]:
                raise ValidationError("title", "must not be empty")

            changed = {
                name: value for name, value in fields.items()
                if getattr(contract, name) != value
            }
            if required_tracks is not None:
                required = self._required_tracks(required_tracks)
                current = required_track_types(contract.requires_legal, contract.requires_finance)
                if required != current:
                    if status != ContractStatus.DRAFT or tracks:
                        raise InvalidStateError(
                            "change required tracks of", status.value, str(contract_id),
                            detail="review has already started",
                        )
                    contract.requires_legal = TrackType.LEGAL in required
                    contract.requires_finance = TrackType.FINANCE in required
                    changed["required_tracks"] = sorted(t.value for t in required)
            if not changed:
                raise ValidationError("changes", "no field differs from the stored value")

            for name, value in changed.items():
                if name != "required_tracks":
                    setattr(contract, name, value)
            self._touch(contract)
            audit = AuditorService(session, self._clock).record_transition(
                contract_id=contract_id,
                action=AuditAction.CONTRACT_UPDATED,
                actor_id=actor_id,
                metadata={
                    "from": status.value,
                    "to": status.value,
                    "changed_fields": sorted(changed),
                },
            )
            return _Outcome(contract=contract, tracks=tracks, audit=audit)

        return self._execute("update_draft", actor_id, body, contract_id=contract_id)

    def submit(
        self,
        contract_id: UUID,
        target: TrackType,
        actor_id: UUID,
        *,
        expected_version: int | None = None,
    ) -> ContractView:
        """Open a PENDING review track of type ``target``."""
        target = TrackType(target)

        def body(session: Session) -> _Outcome:
            contract = self._load_contract(session, contract_id)
            self._require_any(
                actor_id,
                (Capability.CONTRACT_SUBMIT, Capability.CONTRACT_CREATE),
                contract_id,
            )
            self._check_version(contract, expected_version)

            track_service = ApprovalTrackService(session)
            tracks = track_service.list_for_contract(contract_id)
            status = ContractStatus(contract.status)
            if status not in SUBMITTABLE_STATUSES:
                raise InvalidStateError("submit", status.value, str(contract_id))
            required = required_track_types(contract.requires_legal, contract.requires_finance)
            if target not in required:
                raise InvalidStateError(
                    "submit", status.value, str(contract_id),
                    detail=f"{target.value} review is not required for this contract",
                )
            if status in REVIEW_PHASE_STATUSES:
                current_round = tracks_in_round(
                    [t.to_dto() for t in tracks], contract.review_round,
                )
                latest = latest_tracks(current_round).get(target)
                if latest is not None and latest.status == TrackStatus.APPROVED:
                    raise InvalidStateError(
                        "submit", status.value, str(contract_id),
                        detail=f"{target.value} review already approved in this round",
                    )

            review_round = contract.review_round
            if status == ContractStatus.REVISION_REQUESTED:
                # Revised document: earlier decisions no longer count
                review_round += 1
                track_service.carry_into_round(tracks, review_round)

            now = self._clock.now()
            track = track_service.open(
                contract_id, target, actor_id, now, review_round=review_round,
            )
            session.flush()
            tracks.append(track)

            # Contract columns are written after the track flush: one versioned UPDATE
            contract.review_round = review_round
            new_status = self._rederive(contract, tracks)
            contract.submitted_at = now
            self._touch(contract)
            audit = AuditorService(session, self._clock).record_transition(
                contract_id=contract_id,
                action=AuditAction.CONTRACT_SUBMITTED,
                actor_id=actor_id,
                metadata=self._track_metadata(status, new_status, track),
            )
            return _Outcome(contract=contract, tracks=tracks, audit=audit, track=track)

        return self._execute("submit", actor_id, body, contract_id=contract_id)

    def start_review(
        self,
        track_id: UUID,
        actor_id: UUID,
        *,
        expected_version: int | None = None,
    ) -> ContractView:
        """A reviewer opens a track: SENT_TO_X becomes X_REVIEW_IN_PROGRESS."""

        def body(session: Session) -> _Outcome:
            track_service = ApprovalTrackService(session)
            track = track_service.get(track_id)
            contract = self._load_contract(session, track.contract_id)
            self._require_track_capabilities(actor_id, track, contract.id)
            self._check_version(contract, expected_version)

            status = ContractStatus(contract.status)
            if status in POST_REVIEW_STATUSES:
                raise InvalidStateError("start review on", status.value, str(contract.id))
            if not can_decide(track.to_dto()):
                raise TrackAlreadyResolvedError("start_review", str(track.id), track.status)
            if not can_start_review(track.to_dto()):
                raise InvalidStateError(
                    "start review on", track.status, str(track.id),
                    detail="review already started",
                )

            tracks = track_service.list_for_contract(contract.id)
            now = self._clock.now()
            track_service.start_review(track, actor_id, now)
            session.flush()

            new_status = self._rederive(contract, tracks)
            self._touch(contract)
            audit = AuditorService(session, self._clock).record_transition(
                contract_id=contract.id,
                action=AuditAction.CONTRACT_REVIEW_STARTED,
                actor_id=actor_id,
                metadata=self._track_metadata(status, new_status, track),
            )
            return _Outcome(contract=contract, tracks=tracks, audit=audit, track=track)

        return self._execute("start_review", actor_id, body, track_id=track_id)

    def approve(
        self,
        track_id: UUID,
        actor_id: UUID,
        comment: str,
        *,
        expected_version: int | None = None,
    ) -> ContractView:
        """Approve an open track; the comment must meet the configured minimum length."""
        return self._decide(track_id, actor_id, TrackStatus.APPROVED, comment, expected_version)

    def reject(
        self,
        track_id: UUID,
        actor_id: UUID,
        comment: str,
        *,
        expected_version: int | None = None,
    ) -> ContractView:
        """Reject an open track; the contract goes to REVISION_REQUESTED."""
        return self._decide(track_id, actor_id, TrackStatus.REJECTED, comment, expected_version)

    def request_revision(
        self,
        track_id: UUID,
        actor_id: UUID,
        comment: str,
        *,
        expected_version: int | None = None,
    ) -> ContractView:
        """Send an open track back for revision with the reviewer's comment."""
        return self._decide(
            track_id, actor_id, TrackStatus.REVISION_REQUESTED, comment, expected_version,
        )

    def escalate(
        self,
        track_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
        *,
        expected_version: int | None = None,
    ) -> ContractView:
        """Hand a PENDING legal track to the legal head (once per cycle)."""

        def body(session: Session) -> _Outcome:
            track_service = ApprovalTrackService(session)
            track = track_service.get(track_id)
            contract = self._load_contract(session, track.contract_id)
            self._require(actor_id, Capability.LEGAL_ESCALATE, contract.id)
            self._check_version(contract, expected_version)

            status = ContractStatus(contract.status)
            if not is_escalatable(track.to_dto(), status):
                raise EscalationNotAllowedError(
                    track_id=str(track.id),
                    track_type=track.track_type,
                    track_status=track.status,
                    contract_status=status.value,
                )

            tracks = track_service.list_for_contract(contract.id)
            reason_text = reason.strip() if reason and reason.strip() else None
            track_service.escalate(track, actor_id, reason_text, self._clock.now())
            session.flush()

            new_status = self._rederive(contract, tracks)
            self._touch(contract)
            metadata = self._track_metadata(status, new_status, track)
            metadata["actor_role"] = track.actor_role
            audit = AuditorService(session, self._clock).record_transition(
                contract_id=contract.id,
                action=AuditAction.CONTRACT_ESCALATED,
                actor_id=actor_id,
                comment=reason_text,
                metadata=metadata,
            )
            return _Outcome(contract=contract, tracks=tracks, audit=audit, track=track)

        return self._execute("escalate", actor_id, body, track_id=track_id)

    def send(
        self,
        contract_id: UUID,
        actor_id: UUID,
        *,
        expected_version: int | None = None,
    ) -> ContractView:
        """Send an APPROVED contract to the counterparty for signature."""

        def body(session: Session) -> _Outcome:
            contract = self._load_contract(session, contract_id)
            self._require(actor_id, Capability.CONTRACT_SEND, contract_id)
            self._check_version(contract, expected_version)
            status = ContractStatus(contract.status)
            if not can_send(status):
                raise InvalidStateError("send", status.value, str(contract_id))

            tracks = ApprovalTrackService(session).list_for_contract(contract_id)
            contract.status = ContractStatus.SENT_TO_COUNTERPARTY.value
            contract.sent_at = self._clock.now()
            self._touch(contract)
            audit = AuditorService(session, self._clock).record_transition(
                contract_id=contract_id,
                action=AuditAction.CONTRACT_SENT,
                actor_id=actor_id,
                metadata={"from": status.value, "to": contract.status},
            )
            return _Outcome(contract=contract, tracks=tracks, audit=audit)

        return self._execute("send", actor_id, body, contract_id=contract_id)

    def upload_signed(
        self,
        contract_id: UUID,
        attachment_ref: str,
        actor_id: UUID,
        *,
        expected_version: int | None = None,
    ) -> ContractView:
        """Record the counterparty-signed copy; the contract becomes ACTIVE or EXECUTED."""

        def body(session: Session) -> _Outcome:
            contract = self._load_contract(session, contract_id)
            self._require(actor_id, Capability.CONTRACT_UPLOAD, contract_id)
            self._check_version(contract, expected_version)
            status = ContractStatus(contract.status)
            if not can_upload_signed(status):
                raise InvalidStateError("upload signed copy for", status.value, str(contract_id))
            ref = (attachment_ref or "").strip()
            if not ref:
                raise ValidationError("attachment_ref", "must not be empty")

            tracks = ApprovalTrackService(session).list_for_contract(contract_id)
            contract.status = self._settings.execution_status.value
            contract.signed_at = self._clock.now()
            contract.signed_attachment_ref = ref
            self._touch(contract)
            audit = AuditorService(session, self._clock).record_transition(
                contract_id=contract_id,
                action=AuditAction.CONTRACT_EXECUTED,
                actor_id=actor_id,
                metadata={
                    "from": status.value,
                    "to": contract.status,
                    "attachment_ref": ref,
                },
            )
            return _Outcome(contract=contract, tracks=tracks, audit=audit)

        return self._execute("upload_signed", actor_id, body, contract_id=contract_id)

    def cancel(
        self,
        contract_id: UUID,
        reason: str,
        actor_id: UUID,
        *,
        expected_version: int | None = None,
    ) -> ContractView:
        """
        Cancel a contract that has not been approved yet.

        Open tracks are closed as REJECTED with a system comment; tracks
        that were already resolved keep their decision.
        """

        def body(session: Session) -> _Outcome:
            contract = self._load_contract(session, contract_id)
            self._require(actor_id, Capability.CONTRACT_CANCEL, contract_id)
            self._check_version(contract, expected_version)
            status = ContractStatus(contract.status)
            if not can_cancel(status):
                raise InvalidStateError("cancel", status.value, str(contract_id))
            reason_text = (reason or "").strip()
            if not reason_text:
                raise ValidationError("reason", "must not be empty")

            track_service = ApprovalTrackService(session)
            tracks = track_service.list_for_contract(contract_id)
            now = self._clock.now()
            system_comment = self._settings.cancellation_comment_for(reason_text)
            forced = []
            for track in tracks:
                if not track.is_active:
                    continue
                previous = track_service.resolve(
                    track, TrackStatus.REJECTED, actor_id, system_comment, now, "cancel",
                )
                forced.append({
                    "track_id": str(track.id),
                    "track_type": track.track_type,
                    "from": previous.value,
                })
            session.flush()

            contract.status = ContractStatus.CANCELLED.value
            contract.cancelled_at = now
            contract.cancellation_reason = reason_text
            self._touch(contract)
            audit = AuditorService(session, self._clock).record_transition(
                contract_id=contract_id,
                action=AuditAction.CONTRACT_CANCELLED,
                actor_id=actor_id,
                comment=reason_text,
                metadata={
                    "from": status.value,
                    "to": contract.status,
                    "forced_tracks": forced,
                },
            )
            return _Outcome(contract=contract, tracks=tracks, audit=audit)

        return self._execute("cancel", actor_id, body, contract_id=contract_id)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_contract(self, contract_id: UUID) -> ContractView:
        """Current contract with all of its tracks."""
        with session_scope(self._session_factory) as session:
            view = ContractSelector(session).get_view(contract_id)
        if view is None:
            raise ContractNotFoundError(str(contract_id))
        return view

    def pending_approvals(
        self,
        track_type: TrackType,
        actor_id: UUID,
        escalated_only: bool = False,
    ) -> list[PendingApproval]:
        """Reviewer queue for one discipline, oldest first."""
        track_type = TrackType(track_type)
        capability = Capability.LEGAL_HEAD if escalated_only else view_capability(track_type)
        self._require(actor_id, capability)
        with session_scope(self._session_factory) as session:
            return ApprovalQueueSelector(session).pending_for(track_type, escalated_only)

    def available_actions(
        self, contract_id: UUID, actor_id: UUID,
    ) -> tuple[AvailableAction, ...]:
        """Commands ``actor_id`` could run on the contract right now."""
        view = self.get_contract(contract_id)
        scope = str(contract_id)

        def has_capability(capability: Capability) -> bool:
            return self._permissions.has_capability(actor_id, capability.value, scope)

        return available_actions(view.contract, view.tracks, has_capability)

    def get_audit_trail(self, contract_id: UUID) -> AuditTrace:
        """Every audit entry of the contract, in order."""
        with session_scope(self._session_factory) as session:
            self._load_contract(session, contract_id)
            return AuditorService(session, self._clock).get_trace(contract_id)

    # =========================================================================
    # Internals
    # =========================================================================

    def _decide(
        self,
        track_id: UUID,
        actor_id: UUID,
        target: TrackStatus,
        comment: str | None,
        expected_version: int | None,
    ) -> ContractView:
        operation = _DECISION_OPERATIONS[target]

        def body(session: Session) -> _Outcome:
            track_service = ApprovalTrackService(session)
            track = track_service.get(track_id)
            contract = self._load_contract(session, track.contract_id)
            self._require_track_capabilities(actor_id, track, contract.id)
            self._check_version(contract, expected_version)

            status = ContractStatus(contract.status)
            if status in POST_REVIEW_STATUSES:
                raise InvalidStateError(operation, status.value, str(contract.id))
            if not can_decide(track.to_dto()):
                raise TrackAlreadyResolvedError(operation, str(track.id), track.status)
            self._validate_comment(target, comment)

            tracks = track_service.list_for_contract(contract.id)
            now = self._clock.now()
            track_service.resolve(track, target, actor_id, comment, now, operation)
            session.flush()

            new_status = self._rederive(contract, tracks)
            if new_status == ContractStatus.APPROVED:
                contract.approved_at = now
            self._touch(contract)
            audit = AuditorService(session, self._clock).record_transition(
                contract_id=contract.id,
                action=_DECISION_ACTIONS[target],
                actor_id=actor_id,
                comment=comment,
                metadata=self._track_metadata(status, new_status, track),
            )
            return _Outcome(contract=contract, tracks=tracks, audit=audit, track=track)

        return self._execute(operation, actor_id, body, track_id=track_id)

    def _execute(
        self,
        operation: str,
        actor_id: UUID,
        body: Callable[[Session], _Outcome],
        contract_id: UUID | None = None,
        track_id: UUID | None = None,
    ) -> ContractView:
        """Run ``body`` in one transaction, map write conflicts, publish after commit."""
        with LogContext.bind(
            operation=operation,
            actor_id=actor_id,
            contract_id=contract_id,
            track_id=track_id,
        ):
            try:
                with session_scope(self._session_factory) as session:
                    outcome = body(session)
                    session.flush()
                    view = self._view(outcome.contract, outcome.tracks)
                    event = self._event(outcome, view)
            except (StaleDataError, IntegrityError) as exc:
                entity_id = str(contract_id or track_id)
                logger.warning(
                    "version_conflict",
                    extra={"error_type": type(exc).__name__, "entity_id": entity_id},
                )
                raise ConflictError("Contract", entity_id) from exc

            logger.info(
                f"contract_{operation}",
                extra={
                    "contract_id": str(view.id),
                    "status": view.status.value,
                    "version": view.version,
                    "audit_seq": event.audit_seq,
                },
            )
            self._dispatcher.publish(event)
            return view

    def _load_contract(self, session: Session, contract_id: UUID) -> Contract:
        contract = session.get(Contract, contract_id)
        if contract is None:
            raise ContractNotFoundError(str(contract_id))
        return contract

    def _check_version(self, contract: Contract, expected_version: int | None) -> None:
        if expected_version is not None and contract.version != expected_version:
            logger.warning(
                "version_conflict",
                extra={
                    "entity_id": str(contract.id),
                    "expected_version": expected_version,
                    "actual_version": contract.version,
                },
            )
            raise ConflictError(
                "Contract", str(contract.id), expected_version, contract.version,
            )

    def _require(
        self, actor_id: UUID, capability: Capability, contract_id: UUID | None = None,
    ) -> None:
        self._require_any(actor_id, (capability,), contract_id)

    def _require_any(
        self,
        actor_id: UUID,
        capabilities: tuple[Capability, ...],
        contract_id: UUID | None = None,
    ) -> None:
        scope = str(contract_id) if contract_id is not None else None
        for capability in capabilities:
            if self._permissions.has_capability(actor_id, capability.value, scope):
                return
        logger.warning(
            "permission_denied",
            extra={"capability": capabilities[0].value, "scope": scope},
        )
        raise ForbiddenError(str(actor_id), capabilities[0].value, scope)

    def _require_track_capabilities(
        self, actor_id: UUID, track: ApprovalTrack, contract_id: UUID,
    ) -> None:
        for capability in track_capabilities(track.to_dto()):
            self._require(actor_id, capability, contract_id)

    def _validate_comment(self, target: TrackStatus, comment: str | None) -> None:
        text = (comment or "").strip()
        if target == TrackStatus.APPROVED:
            minimum = self._settings.min_approval_comment_length
            if len(text) < minimum:
                raise CommentTooShortError(minimum, len(text))
        elif not text:
            raise MissingCommentError(_DECISION_OPERATIONS[target])

    def _required_tracks(self, required: Iterable[TrackType] | None) -> frozenset[TrackType]:
        if required is None:
            return self._settings.default_required_tracks
        try:
            types = frozenset(TrackType(t) for t in required)
        except ValueError as exc:
            raise ValidationError("required_tracks", str(exc)) from exc
        if not types:
            raise ValidationError("required_tracks", "at least one review track is required")
        return types

    def _clean_fields(self, fields: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for name, value in fields.items():
            if isinstance(value, str):
                value = value.strip() or None
            cleaned[name] = value

        if cleaned.get("amount") is not None:
            try:
                amount = Decimal(str(cleaned["amount"]))
            except ArithmeticError as exc:
                raise ValidationError("amount", "not a number") from exc
            if not amount.is_finite() or amount < 0:
                raise ValidationError("amount", "must be a non-negative number")
            cleaned["amount"] = amount
        if cleaned.get("currency") is not None:
            currency = cleaned["currency"].upper()
            if len(currency) != 3 or not currency.isalpha():
                raise ValidationError("currency", "must be a 3-letter ISO 4217 code")
            cleaned["currency"] = currency
        if cleaned.get("counterparty_email") is not None and "@" not in cleaned["counterparty_email"]:
            raise ValidationError("counterparty_email", "not an email address")
        return cleaned

    def _rederive(self, contract: Contract, tracks: list[ApprovalTrack]) -> ContractStatus:
        new_status = derive_contract_status(
            [t.to_dto() for t in tracks],
            required_track_types(contract.requires_legal, contract.requires_finance),
            current=ContractStatus(contract.status),
            review_round=contract.review_round,
        )
        contract.status = new_status.value
        return new_status

    def _touch(self, contract: Contract) -> None:
        # Forces the versioned UPDATE even when no other column changed
        contract.updated_at = self._clock.now()
        flag_modified(contract, "updated_at")

    @staticmethod
    def _track_metadata(
        from_status: ContractStatus, to_status: ContractStatus, track: ApprovalTrack,
    ) -> dict[str, Any]:
        return {
            "from": from_status.value,
            "to": to_status.value,
            "track_id": str(track.id),
            "track_type": track.track_type,
            "cycle": track.cycle,
            "review_round": track.review_round,
            "track_status": track.status,
        }

    @staticmethod
    def _view(contract: Contract, tracks: list[ApprovalTrack]) -> ContractView:
        ordered = sorted(tracks, key=lambda t: (t.created_at, t.track_type, t.cycle))
        return ContractView(
            contract=contract.to_dto(),
            tracks=tuple(t.to_dto() for t in ordered),
        )

    @staticmethod
    def _event(outcome: _Outcome, view: ContractView) -> WorkflowEvent:
        track = outcome.track
        return WorkflowEvent(
            action=outcome.audit.action,
            contract_id=view.id,
            actor_id=outcome.audit.actor_id,
            contract_status=view.status,
            occurred_at=outcome.audit.created_at,
            audit_seq=outcome.audit.seq,
            track_id=track.id if track is not None else None,
            track_type=TrackType(track.track_type) if track is not None else None,
            comment=outcome.audit.comment,
            metadata=dict(outcome.audit.event_metadata),
        )
