"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Appends one immutable, hash-chained audit event per workflow transition
    and provides chain validation and per-contract traces.

Architecture position:
    Kernel > Services -- called by ContractWorkflowEngine inside the same
    transaction as the state change being recorded.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never max+1).
    - Chain integrity: ``hash = H(contract_id | action | actor_id |
      payload_hash | prev_hash)``; every event links to its predecessor.
    - Append-only: audit events are never modified or deleted (ORM guard).

Failure modes:
    - AuditChainBrokenError: recomputed hash does not match the stored
      hash, or prev_hash does not match the predecessor's hash.
"""

import json
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from contract_kernel.domain.clock import Clock, SystemClock
from contract_kernel.domain.dtos import AuditEntry
from contract_kernel.exceptions import AuditChainBrokenError
from contract_kernel.logging_config import get_logger
from contract_kernel.models.audit_event import AuditAction, AuditEvent
from contract_kernel.services.sequence_service import SequenceService
from contract_kernel.utils.hashing import canonicalize_json, hash_audit_event, hash_payload

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTrace:
    """All audit entries of one contract, in sequence order."""

    contract_id: UUID
    entries: tuple[AuditEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def first_action(self) -> str | None:
        return self.entries[0].action if self.entries else None

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent)
            .order_by(AuditEvent.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

        return last_event.hash if last_event else None

    def record_transition(
        self,
        contract_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        comment: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Append the audit event for one workflow transition.

        Pending state changes in the session are flushed first, so a
        version conflict surfaces before any audit row is written.

        Args:
            contract_id: Contract the transition applied to.
            action: The transition being recorded.
            actor_id: Who performed it.
            comment: Reviewer or system comment, stored verbatim.
            metadata: Structured context; at least the from/to statuses.

        Returns:
            The flushed AuditEvent.
        """
        self._session.flush()

        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        # Store exactly what gets hashed (UUIDs, enums, Decimals as JSON text)
        metadata_data = json.loads(canonicalize_json(metadata or {}))
        payload_hash = hash_payload({"comment": comment, "metadata": metadata_data})
        event_hash = hash_audit_event(
            contract_id=str(contract_id),
            action=action.value,
            actor_id=str(actor_id),
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            contract_id=contract_id,
            action=action.value,
            actor_id=actor_id,
            created_at=self._clock.now(),
            comment=comment,
            event_metadata=metadata_data,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "contract_id": str(contract_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return audit_event

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Recomputes each payload hash and event hash and checks every
        prev_hash against its predecessor.

        Raises:
            AuditChainBrokenError: If validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        previous: AuditEvent | None = None
        for event in events:
            expected_prev = previous.hash if previous is not None else None
            if event.prev_hash != expected_prev:
                self._report_broken(event, expected_prev or "None", event.prev_hash or "None")

            payload_hash = hash_payload(event.payload)
            if payload_hash != event.payload_hash:
                self._report_broken(event, payload_hash, event.payload_hash)

            expected_hash = hash_audit_event(
                contract_id=str(event.contract_id),
                action=event.action,
                actor_id=str(event.actor_id),
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                self._report_broken(event, expected_hash, event.hash)
            previous = event

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def _report_broken(self, event: AuditEvent, expected: str, actual: str) -> None:
        logger.critical(
            "audit_chain_broken",
            extra={"audit_event_id": str(event.id), "seq": event.seq},
        )
        raise AuditChainBrokenError(str(event.id), expected, actual)

    def get_trace(self, contract_id: UUID) -> AuditTrace:
        """Get every audit entry for a contract in sequence order."""
        events = self._session.execute(
            select(AuditEvent)
            .where(AuditEvent.contract_id == contract_id)
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            contract_id=contract_id,
            entries=tuple(event.to_dto() for event in events),
        )

    def get_recent_events(self, limit: int = 100) -> list[AuditEntry]:
        """Most recent audit entries across all contracts, newest first."""
        result = self._session.execute(
            select(AuditEvent)
            .order_by(AuditEvent.seq.desc())
            .limit(limit)
        )
        return [event.to_dto() for event in result.scalars().all()]
