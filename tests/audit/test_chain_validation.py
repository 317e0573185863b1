"""
Audit chain validation tests.

Verifies:
- One hash-chained audit event per command, in sequence order
- validate_chain passes on an untouched log
- Tampering with a stored comment, metadata or link is detected
"""

from contextlib import contextmanager

import pytest
from sqlalchemy import select, text

from contract_kernel.db.engine import session_scope
from contract_kernel.domain.workflow import TrackType
from contract_kernel.exceptions import AuditChainBrokenError
from contract_kernel.models.audit_event import AuditAction, AuditEvent
from contract_kernel.services.auditor_service import AuditorService
from contract_kernel.utils.hashing import hash_audit_event, hash_payload

APPROVAL_COMMENT = "Reviewed, terms are acceptable"


@contextmanager
def disabled_immutability():
    """Disable the ORM immutability guards to simulate tampering."""
    from contract_kernel.db.immutability import (
        register_immutability_listeners,
        unregister_immutability_listeners,
    )

    unregister_immutability_listeners()
    try:
        yield
    finally:
        register_immutability_listeners()


@pytest.fixture
def reviewed_contract(workflow, create_contract, actors):
    contract = create_contract()
    view = workflow.submit(contract.id, TrackType.LEGAL, actors.author)
    legal = view.active_track(TrackType.LEGAL)
    workflow.reject(legal.id, actors.legal_manager, "missing indemnity clause")
    workflow.submit(contract.id, TrackType.LEGAL, actors.author)
    return contract


class TestChainStructure:

    def test_trace_follows_commands(self, workflow, reviewed_contract):
        trail = workflow.get_audit_trail(reviewed_contract.id)
        assert trail.actions == (
            AuditAction.CONTRACT_CREATED.value,
            AuditAction.CONTRACT_SUBMITTED.value,
            AuditAction.CONTRACT_REJECTED.value,
            AuditAction.CONTRACT_SUBMITTED.value,
        )
        assert trail.first_action == AuditAction.CONTRACT_CREATED.value
        assert trail.last_action == AuditAction.CONTRACT_SUBMITTED.value
        assert not trail.is_empty
        seqs = [e.seq for e in trail.entries]
        assert seqs == sorted(seqs)
        assert len(set(seqs)) == len(seqs)

    def test_events_link_to_predecessor(self, workflow, reviewed_contract):
        entries = workflow.get_audit_trail(reviewed_contract.id).entries
        assert entries[0].prev_hash is None
        for previous, current in zip(entries, entries[1:]):
            assert current.prev_hash == previous.hash

    def test_hash_recomputes(self, workflow, reviewed_contract):
        entry = workflow.get_audit_trail(reviewed_contract.id).entries[2]
        assert entry.payload_hash == hash_payload(
            {"comment": entry.comment, "metadata": entry.metadata}
        )
        assert entry.hash == hash_audit_event(
            contract_id=str(entry.contract_id),
            action=entry.action,
            actor_id=str(entry.actor_id),
            payload_hash=entry.payload_hash,
            prev_hash=entry.prev_hash,
        )

    def test_chain_spans_contracts(self, workflow, create_contract, actors, session):
        first = create_contract("First")
        second = create_contract("Second")
        workflow.submit(first.id, TrackType.LEGAL, actors.author)
        workflow.submit(second.id, TrackType.FINANCE, actors.author)

        events = session.execute(select(AuditEvent).order_by(AuditEvent.seq)).scalars().all()
        assert [e.seq for e in events] == [1, 2, 3, 4]
        assert events[0].is_genesis
        assert not any(e.is_genesis for e in events[1:])
        assert AuditorService(session).validate_chain()

    def test_recent_events_newest_first(self, session, reviewed_contract):
        recent = AuditorService(session).get_recent_events(limit=2)
        assert [e.action for e in recent] == [
            AuditAction.CONTRACT_SUBMITTED.value,
            AuditAction.CONTRACT_REJECTED.value,
        ]


class TestTamperDetection:

    def test_untouched_chain_is_valid(self, session, reviewed_contract):
        assert AuditorService(session).validate_chain() is True

    def test_edited_comment_is_detected(self, session_factory, reviewed_contract, captured_logs):
        with disabled_immutability(), session_scope(session_factory) as sess:
            sess.execute(
                text("UPDATE audit_events SET comment = :c WHERE action = :a"),
                {"c": "looks fine", "a": AuditAction.CONTRACT_REJECTED.value},
            )

        with session_scope(session_factory) as sess:
            with pytest.raises(AuditChainBrokenError):
                AuditorService(sess).validate_chain()
        assert any(r["message"] == "audit_chain_broken" for r in captured_logs())

    def test_rewritten_hash_breaks_next_link(self, session_factory, reviewed_contract):
        with disabled_immutability(), session_scope(session_factory) as sess:
            sess.execute(
                text("UPDATE audit_events SET hash = :h WHERE seq = 2"),
                {"h": "0" * 64},
            )

        with session_scope(session_factory) as sess:
            with pytest.raises(AuditChainBrokenError):
                AuditorService(sess).validate_chain()

    def test_orm_update_is_blocked(self, session, reviewed_contract):
        from contract_kernel.exceptions import ImmutabilityViolationError

        event = session.execute(
            select(AuditEvent).order_by(AuditEvent.seq).limit(1)
        ).scalar_one()
        event.comment = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_orm_delete_is_blocked(self, session, reviewed_contract):
        from contract_kernel.exceptions import ImmutabilityViolationError

        event = session.execute(
            select(AuditEvent).order_by(AuditEvent.seq).limit(1)
        ).scalar_one()
        session.delete(event)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
