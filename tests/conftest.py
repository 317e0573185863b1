"""
Pytest fixtures for the contract workflow test suite.

Provides:
- A fresh file-backed SQLite database per test (separate connections per
  session, so concurrency tests see real optimistic-lock conflicts)
- Deterministic clock, test actors with configured roles
- A fully wired ContractWorkflowEngine
- Captured structured logs

Environment Variables:
- DATABASE_URL: run the suite against another database (e.g. PostgreSQL).
  Tables are dropped and recreated for every test.
"""

import json
import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest

from contract_config import get_active_config
from contract_config.bridges import build_workflow_settings
from contract_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from contract_kernel.domain.clock import DeterministicClock
from contract_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from contract_kernel.services.notifications import NotificationDispatcher
from contract_kernel.services.workflow_engine import ContractWorkflowEngine
from contract_services.rbac_authority import RbacPermissionOracle, StaticRoleProvider


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture contract_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            workflow.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "contract_submit" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("contract_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Fresh database per test."""
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'contracts.db'}"
    engine = init_engine_from_url(url)
    drop_tables()
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    """A plain session for inspecting committed state."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Actors, permissions, engine
# =============================================================================


@dataclass(frozen=True)
class Actors:
    author: UUID
    legal_manager: UUID
    legal_head: UUID
    finance_manager: UUID
    admin: UUID
    outsider: UUID


@pytest.fixture
def actors() -> Actors:
    return Actors(
        author=uuid4(),
        legal_manager=uuid4(),
        legal_head=uuid4(),
        finance_manager=uuid4(),
        admin=uuid4(),
        outsider=uuid4(),
    )


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def workflow_config():
    return get_active_config()


@pytest.fixture
def role_provider(actors):
    return StaticRoleProvider({
        actors.author: ("author",),
        actors.legal_manager: ("legal_manager",),
        actors.legal_head: ("legal_head",),
        actors.finance_manager: ("finance_manager",),
        actors.admin: ("admin",),
    })


@pytest.fixture
def oracle(workflow_config, role_provider):
    return RbacPermissionOracle.from_config(workflow_config, role_provider)


@pytest.fixture
def dispatcher():
    return NotificationDispatcher()


@pytest.fixture
def make_workflow(session_factory, oracle, clock, workflow_config, dispatcher):
    """Build an engine; keyword overrides replace individual collaborators."""

    def _make(**overrides) -> ContractWorkflowEngine:
        kwargs = {
            "session_factory": session_factory,
            "permissions": oracle,
            "clock": clock,
            "settings": build_workflow_settings(workflow_config),
            "dispatcher": dispatcher,
        }
        kwargs.update(overrides)
        return ContractWorkflowEngine(**kwargs)

    return _make


@pytest.fixture
def workflow(make_workflow) -> ContractWorkflowEngine:
    return make_workflow()


@pytest.fixture
def create_contract(workflow, actors, clock):
    """Create a DRAFT contract as the author."""

    def _create(title: str = "Master services agreement", **kwargs):
        kwargs.setdefault("amount", Decimal("125000.00"))
        kwargs.setdefault("currency", "USD")
        kwargs.setdefault("counterparty_name", "Acme Corp")
        view = workflow.create_contract(actors.author, title, **kwargs)
        clock.advance()
        return view

    return _create
