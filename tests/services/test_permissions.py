"""
Permission enforcement tests.

Verifies:
- Every command asks the oracle for its capability, scoped to the contract
- Denied commands raise ForbiddenError and change nothing
- Permission is checked before version, state and input
- Escalated tracks need the legal head capability
"""

from uuid import UUID

import pytest

from contract_kernel.domain.capabilities import Capability
from contract_kernel.domain.workflow import ContractStatus, TrackType, WorkflowAction
from contract_kernel.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    ValidationError,
)

APPROVAL_COMMENT = "Reviewed, terms are acceptable"


class RecordingOracle:
    """Grants a fixed capability set and records every question."""

    def __init__(self, granted: set[str]):
        self.granted = granted
        self.calls: list[tuple[UUID, str, str | None]] = []

    def has_capability(self, actor_id, capability, scope=None):
        self.calls.append((actor_id, capability, scope))
        return capability in self.granted


class TestForbidden:

    def test_outsider_cannot_create(self, workflow, actors):
        with pytest.raises(ForbiddenError) as exc_info:
            workflow.create_contract(actors.outsider, "Unauthorized")
        assert exc_info.value.capability == Capability.CONTRACT_CREATE.value

    def test_reviewer_cannot_submit(self, workflow, create_contract, actors):
        contract = create_contract()
        with pytest.raises(ForbiddenError):
            workflow.submit(contract.id, TrackType.LEGAL, actors.legal_manager)

    def test_finance_cannot_decide_legal(self, workflow, create_contract, actors):
        contract = create_contract()
        view = workflow.submit(contract.id, TrackType.LEGAL, actors.author)
        legal = view.active_track(TrackType.LEGAL)

        with pytest.raises(ForbiddenError) as exc_info:
            workflow.approve(legal.id, actors.finance_manager, APPROVAL_COMMENT)
        assert exc_info.value.capability == Capability.LEGAL_ACT.value
        assert exc_info.value.scope == str(contract.id)
        assert workflow.get_contract(contract.id).version == view.version

    def test_only_escalator_can_escalate(self, workflow, create_contract, actors):
        contract = create_contract()
        view = workflow.submit(contract.id, TrackType.LEGAL, actors.author)
        with pytest.raises(ForbiddenError):
            workflow.escalate(view.active_track(TrackType.LEGAL).id, actors.legal_head)

    def test_escalated_track_needs_head(self, workflow, create_contract, actors):
        contract = create_contract()
        view = workflow.submit(contract.id, TrackType.LEGAL, actors.author)
        legal = view.active_track(TrackType.LEGAL)
        workflow.escalate(legal.id, actors.legal_manager)

        with pytest.raises(ForbiddenError) as exc_info:
            workflow.approve(legal.id, actors.legal_manager, APPROVAL_COMMENT)
        assert exc_info.value.capability == Capability.LEGAL_HEAD.value

    def test_denial_is_logged(self, workflow, create_contract, actors, captured_logs):
        contract = create_contract()
        with pytest.raises(ForbiddenError):
            workflow.cancel(contract.id, "No", actors.finance_manager)

        denied = [r for r in captured_logs() if r["message"] == "permission_denied"]
        assert denied
        assert denied[-1]["capability"] == Capability.CONTRACT_CANCEL.value
        assert denied[-1]["actor_id"] == str(actors.finance_manager)
        assert denied[-1]["operation"] == "cancel"


class TestGuardOrder:
    """Forbidden before Conflict before InvalidState before Validation."""

    def test_forbidden_wins_over_conflict(self, workflow, create_contract, actors):
        contract = create_contract()
        with pytest.raises(ForbiddenError):
            workflow.send(contract.id, actors.outsider, expected_version=99)

    def test_conflict_wins_over_invalid_state(self, workflow, create_contract, actors):
        contract = create_contract()
        with pytest.raises(ConflictError):
            workflow.send(contract.id, actors.author, expected_version=99)

    def test_invalid_state_wins_over_validation(self, workflow, create_contract, actors):
        contract = create_contract()
        with pytest.raises(InvalidStateError):
            workflow.upload_signed(contract.id, "", actors.author)

    def test_validation_last(self, workflow, create_contract, actors):
        contract = create_contract()
        with pytest.raises(ValidationError):
            workflow.cancel(contract.id, "  ", actors.author, expected_version=1)


class TestOracleQuestions:

    def test_scope_is_contract_id(self, make_workflow, create_contract, actors):
        contract = create_contract()
        oracle = RecordingOracle({Capability.CONTRACT_SUBMIT.value})
        engine = make_workflow(permissions=oracle)

        engine.submit(contract.id, TrackType.FINANCE, actors.author)
        assert oracle.calls == [
            (actors.author, Capability.CONTRACT_SUBMIT.value, str(contract.id)),
        ]

    def test_create_capability_is_enough_to_submit(self, make_workflow, create_contract, actors):
        contract = create_contract()
        oracle = RecordingOracle({Capability.CONTRACT_CREATE.value})
        engine = make_workflow(permissions=oracle)

        view = engine.submit(contract.id, TrackType.LEGAL, actors.author)
        assert view.status == ContractStatus.SENT_TO_LEGAL


class TestAvailableActionsThroughEngine:

    def test_reviewer_sees_track_actions(self, workflow, create_contract, actors):
        contract = create_contract()
        view = workflow.submit(contract.id, TrackType.LEGAL, actors.author)
        legal = view.active_track(TrackType.LEGAL)

        actions = workflow.available_actions(contract.id, actors.legal_manager)
        assert {(a.action, a.track_id) for a in actions} == {
            (WorkflowAction.START_REVIEW, legal.id),
            (WorkflowAction.APPROVE, legal.id),
            (WorkflowAction.REJECT, legal.id),
            (WorkflowAction.REQUEST_REVISION, legal.id),
            (WorkflowAction.ESCALATE, legal.id),
        }

    def test_author_sees_contract_actions(self, workflow, create_contract, actors):
        contract = create_contract()
        workflow.submit(contract.id, TrackType.LEGAL, actors.author)

        actions = workflow.available_actions(contract.id, actors.author)
        assert {(a.action, a.track_type) for a in actions} == {
            (WorkflowAction.CANCEL, None),
            (WorkflowAction.SUBMIT, TrackType.FINANCE),
        }

    def test_outsider_sees_nothing(self, workflow, create_contract, actors):
        contract = create_contract()
        assert workflow.available_actions(contract.id, actors.outsider) == ()
