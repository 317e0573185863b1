"""
ContractWorkflowConfig schema.

Human-authored YAML is parsed by ``loader.py`` into these frozen types;
``bridges.py`` turns them into kernel inputs.  Values here are plain
strings, not kernel enums: validation against the kernel vocabulary
happens in ``validator.py``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalSettingsDef:
    """Workflow tunables as written in the configuration set."""

    min_approval_comment_length: int = 10
    default_required_tracks: tuple[str, ...] = ("LEGAL", "FINANCE")
    execution_status: str = "ACTIVE"
    cancellation_comment: str = "Contract cancelled: {reason}"


# ---------------------------------------------------------------------------
# RBAC
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RoleDefinition:
    """A named role and the capabilities it grants."""

    name: str
    capabilities: tuple[str, ...]
    description: str = ""


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContractWorkflowConfig:
    """The complete, validated workflow configuration."""

    config_id: str
    version: int
    settings: ApprovalSettingsDef = field(default_factory=ApprovalSettingsDef)
    roles: tuple[RoleDefinition, ...] = ()
    checksum: str = ""

    def role(self, name: str) -> RoleDefinition | None:
        for role in self.roles:
            if role.name == name:
                return role
        return None

    @property
    def role_capabilities(self) -> dict[str, frozenset[str]]:
        return {role.name: frozenset(role.capabilities) for role in self.roles}
