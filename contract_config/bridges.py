"""
Config -> kernel bridges.

Functions that turn a ``ContractWorkflowConfig`` into kernel inputs.  They
live here because the kernel must never import ``contract_config``.

Usage:
    from contract_config.bridges import build_workflow_settings

    config = get_active_config()
    settings = build_workflow_settings(config)
"""

from __future__ import annotations

from contract_config.schema import ContractWorkflowConfig
from contract_kernel.domain.settings import WorkflowSettings
from contract_kernel.domain.workflow import ContractStatus, TrackType


def build_workflow_settings(config: ContractWorkflowConfig) -> WorkflowSettings:
    """Build the engine's WorkflowSettings from the configuration's settings block."""
    settings = config.settings
    return WorkflowSettings(
        min_approval_comment_length=settings.min_approval_comment_length,
        default_required_tracks=frozenset(
            TrackType(t) for t in settings.default_required_tracks
        ),
        execution_status=ContractStatus(settings.execution_status),
        cancellation_comment=settings.cancellation_comment,
    )


def build_role_capabilities(config: ContractWorkflowConfig) -> dict[str, frozenset[str]]:
    """Role name -> capability strings, for the RBAC permission oracle."""
    return config.role_capabilities
