"""
contract_services.engine_factory -- wiring for the workflow engine.

Builds a ``ContractWorkflowEngine`` from the active configuration: engine
settings through ``contract_config.bridges``, permissions through
``RbacPermissionOracle``.  All dependency wiring happens here so that
kernel services never construct their own collaborators.
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from contract_config import get_active_config
from contract_config.bridges import build_workflow_settings
from contract_config.schema import ContractWorkflowConfig
from contract_kernel.db.engine import get_session_factory
from contract_kernel.domain.clock import Clock
from contract_kernel.logging_config import get_logger
from contract_kernel.services.notifications import NotificationDispatcher
from contract_kernel.services.workflow_engine import ContractWorkflowEngine
from contract_services.rbac_authority import RbacPermissionOracle, RoleProvider

logger = get_logger("services.engine_factory")


def build_workflow_engine(
    session_factory: sessionmaker[Session] | None = None,
    config: ContractWorkflowConfig | None = None,
    role_provider: RoleProvider | None = None,
    clock: Clock | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> ContractWorkflowEngine:
    """
    Assemble a workflow engine.

    Args:
        session_factory: Defaults to the factory of the initialized engine.
        config: Defaults to ``get_active_config()``.
        role_provider: Actor -> roles lookup for the RBAC oracle.
        clock: Defaults to the system clock.
        dispatcher: Notification dispatcher shared with subscribers.
    """
    config = config or get_active_config()
    engine = ContractWorkflowEngine(
        session_factory=session_factory or get_session_factory(),
        permissions=RbacPermissionOracle.from_config(config, role_provider),
        clock=clock,
        settings=build_workflow_settings(config),
        dispatcher=dispatcher,
    )
    logger.info(
        "workflow_engine_built",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
        },
    )
    return engine
