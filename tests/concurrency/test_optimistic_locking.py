"""
Optimistic concurrency tests.

Verifies:
- A stale expected_version is rejected before anything is written
- Two writers that read the same version: the first commit wins, the
  second fails with ConflictError and leaves no audit event
- Two approvals of the same track: one lands, the other conflicts, and
  the track is approved and audited exactly once
- Two ORM sessions updating the same contract row raise StaleDataError
  at the database level
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from contract_kernel.domain.workflow import ContractStatus, TrackStatus, TrackType
from contract_kernel.exceptions import ConflictError
from contract_kernel.models.audit_event import AuditAction, AuditEvent
from contract_kernel.models.contract import Contract
from contract_kernel.services.workflow_engine import ContractWorkflowEngine

APPROVAL_COMMENT = "Reviewed, terms are acceptable"


def audit_count(session) -> int:
    return session.execute(select(func.count()).select_from(AuditEvent)).scalar_one()


class TestExpectedVersion:

    def test_stale_version_is_rejected(self, workflow, create_contract, actors, session):
        contract = create_contract()
        workflow.submit(contract.id, TrackType.LEGAL, actors.author,
                        expected_version=contract.version)
        before = audit_count(session)

        with pytest.raises(ConflictError) as exc_info:
            workflow.submit(contract.id, TrackType.FINANCE, actors.author,
                            expected_version=contract.version)
        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2
        assert exc_info.value.code == "OPTIMISTIC_LOCK_CONFLICT"
        assert audit_count(session) == before

    def test_current_version_is_accepted(self, workflow, create_contract, actors):
        contract = create_contract()
        view = workflow.submit(contract.id, TrackType.LEGAL, actors.author,
                               expected_version=1)
        legal = view.active_track(TrackType.LEGAL)
        view = workflow.approve(legal.id, actors.legal_manager, APPROVAL_COMMENT,
                                expected_version=view.version)
        assert view.version == 3

    def test_two_reviewers_with_same_snapshot(self, workflow, create_contract, actors):
        """Both reviewers read v2; only the first decision lands."""
        contract = create_contract()
        workflow.submit(contract.id, TrackType.LEGAL, actors.author)
        snapshot = workflow.submit(contract.id, TrackType.FINANCE, actors.author)
        legal = snapshot.active_track(TrackType.LEGAL)
        finance = snapshot.active_track(TrackType.FINANCE)

        workflow.approve(legal.id, actors.legal_manager, APPROVAL_COMMENT,
                         expected_version=snapshot.version)
        with pytest.raises(ConflictError):
            workflow.approve(finance.id, actors.finance_manager, APPROVAL_COMMENT,
                             expected_version=snapshot.version)

        view = workflow.get_contract(contract.id)
        assert view.latest_track(TrackType.FINANCE).status == TrackStatus.PENDING
        assert view.status == ContractStatus.SENT_TO_FINANCE


class TestInterleavedWriters:
    """
    A competing transaction commits between our read and our write.

    The competing command runs right after the engine loads the contract,
    so both transactions start from the same version.  No expected_version
    is passed: the conflict is caught by the versioned UPDATE itself.
    """

    def test_losing_writer_gets_conflict(
        self, workflow, make_workflow, create_contract, actors, session, monkeypatch,
    ):
        contract = create_contract()
        competitor = make_workflow()
        original_load = ContractWorkflowEngine._load_contract
        raced = []

        def load_then_race(self, sess, contract_id):
            loaded = original_load(self, sess, contract_id)
            if self is workflow and not raced:
                raced.append(True)
                competitor.update_draft(contract_id, actors.author, title="Renamed meanwhile")
            return loaded

        monkeypatch.setattr(ContractWorkflowEngine, "_load_contract", load_then_race)
        before = audit_count(session)

        with pytest.raises(ConflictError) as exc_info:
            workflow.submit(contract.id, TrackType.LEGAL, actors.author)
        assert exc_info.value.entity_id == str(contract.id)

        view = competitor.get_contract(contract.id)
        assert view.version == 2
        assert view.status == ContractStatus.DRAFT
        assert view.tracks == ()
        assert view.contract.title == "Renamed meanwhile"
        # Only the competitor's event was recorded
        assert audit_count(session) == before + 1

    def test_conflict_is_logged(
        self, workflow, make_workflow, create_contract, actors, monkeypatch, captured_logs,
    ):
        contract = create_contract()
        competitor = make_workflow()
        original_load = ContractWorkflowEngine._load_contract

        def load_then_race(self, sess, contract_id):
            loaded = original_load(self, sess, contract_id)
            if self is workflow:
                competitor.update_draft(contract_id, actors.author, description="changed")
            return loaded

        monkeypatch.setattr(ContractWorkflowEngine, "_load_contract", load_then_race)

        with pytest.raises(ConflictError):
            workflow.cancel(contract.id, "No longer needed", actors.author)

        logs = captured_logs()
        conflicts = [r for r in logs if r["message"] == "version_conflict"]
        assert conflicts
        assert conflicts[-1]["error_type"] == "StaleDataError"
        assert any(r["message"] == "transaction_rolled_back" for r in logs)


class TestSameTrackApprovals:
    """Two reviewers approve the same track from the same contract version."""

    @pytest.fixture
    def pending(self, workflow, create_contract, actors):
        contract = create_contract(required_tracks=[TrackType.LEGAL])
        return workflow.submit(contract.id, TrackType.LEGAL, actors.author)

    @staticmethod
    def assert_approved_once(workflow, view_id, winner):
        view = workflow.get_contract(view_id)
        legal = view.tracks_of(TrackType.LEGAL)
        assert len(legal) == 1
        assert legal[0].status == TrackStatus.APPROVED
        assert legal[0].resolved_by_id == winner
        assert legal[0].version == 2
        assert view.status == ContractStatus.APPROVED

        trail = workflow.get_audit_trail(view_id)
        approvals = [e for e in trail.entries if e.action == AuditAction.CONTRACT_APPROVED.value]
        assert len(approvals) == 1
        assert approvals[0].actor_id == winner
        return view

    def test_with_expected_version(self, workflow, pending, actors):
        legal = pending.active_track(TrackType.LEGAL)
        outcomes = []
        for approver in (actors.legal_manager, actors.legal_head):
            try:
                workflow.approve(legal.id, approver, APPROVAL_COMMENT,
                                 expected_version=pending.version)
                outcomes.append("ok")
            except ConflictError:
                outcomes.append("conflict")

        assert outcomes == ["ok", "conflict"]
        view = self.assert_approved_once(workflow, pending.id, actors.legal_manager)
        assert view.version == pending.version + 1

    def test_interleaved_without_expected_version(
        self, workflow, make_workflow, pending, actors, monkeypatch,
    ):
        legal = pending.active_track(TrackType.LEGAL)
        competitor = make_workflow()
        original_load = ContractWorkflowEngine._load_contract
        raced = []

        def load_then_race(self, sess, contract_id):
            loaded = original_load(self, sess, contract_id)
            if self is workflow and not raced:
                raced.append(True)
                competitor.approve(legal.id, actors.legal_manager, APPROVAL_COMMENT)
            return loaded

        monkeypatch.setattr(ContractWorkflowEngine, "_load_contract", load_then_race)

        with pytest.raises(ConflictError):
            workflow.approve(legal.id, actors.legal_head, APPROVAL_COMMENT)
        assert raced

        view = self.assert_approved_once(workflow, pending.id, actors.legal_manager)
        assert view.version == pending.version + 1


class TestVersionColumn:

    def test_concurrent_sessions_raise_stale_data(self, session_factory, create_contract):
        contract = create_contract()

        first = session_factory()
        second = session_factory()
        try:
            row_a = first.get(Contract, contract.id)
            row_b = second.get(Contract, contract.id)
            assert row_a.version == row_b.version == 1

            row_a.title = "First writer"
            first.commit()

            row_b.title = "Second writer"
            with pytest.raises(StaleDataError):
                second.flush()
            second.rollback()
        finally:
            first.close()
            second.close()

        check = session_factory()
        try:
            row = check.get(Contract, contract.id)
            assert row.version == 2
            assert row.title == "First writer"
        finally:
            check.close()
