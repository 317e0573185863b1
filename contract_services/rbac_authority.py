"""
contract_services.rbac_authority -- role-based permission oracle.

Responsibility:
    Answers the kernel's ``PermissionOracle`` questions from configuration:
    an actor holds roles (``StaticRoleProvider`` or any object with
    ``get_actor_roles``), each role grants capabilities
    (``contract_config`` roles block).

Architecture position:
    Services layer.  Consumes ``ContractWorkflowConfig`` from
    contract_config; the kernel only sees the ``has_capability`` protocol.

Invariants:
    - Fail closed: an actor without roles, or whose roles do not grant the
      capability, is denied.
    - Grants are global; the contract scope is accepted for protocol
      compatibility and logged, not used for row-level decisions.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol
from uuid import UUID

from contract_config.bridges import build_role_capabilities
from contract_config.schema import ContractWorkflowConfig
from contract_kernel.logging_config import get_logger

logger = get_logger("services.rbac")


class RoleProvider(Protocol):
    def get_actor_roles(self, actor_id: UUID) -> tuple[str, ...]:
        ...


class StaticRoleProvider:
    """RoleProvider backed by a simple dict; replaceable by an IdP lookup."""

    def __init__(self, role_map: Mapping[UUID, tuple[str, ...]] | None = None) -> None:
        self._role_map: dict[UUID, tuple[str, ...]] = {
            actor: tuple(roles) for actor, roles in (role_map or {}).items()
        }

    def get_actor_roles(self, actor_id: UUID) -> tuple[str, ...]:
        return self._role_map.get(actor_id, ())

    def has_role(self, actor_id: UUID, role: str) -> bool:
        return role in self._role_map.get(actor_id, ())

    def grant(self, actor_id: UUID, *roles: str) -> None:
        current = self._role_map.get(actor_id, ())
        self._role_map[actor_id] = current + tuple(r for r in roles if r not in current)

    def revoke(self, actor_id: UUID, role: str) -> None:
        self._role_map[actor_id] = tuple(
            r for r in self._role_map.get(actor_id, ()) if r != role
        )


def check_rbac(
    role_capabilities: Mapping[str, frozenset[str]],
    assigned_roles: tuple[str, ...],
    required_capability: str,
) -> tuple[bool, str]:
    """Check whether any assigned role grants ``required_capability``.

    Returns:
        (allowed, reason). reason is empty when allowed, or a short message
        when denied.
    """
    if not assigned_roles:
        return (False, "RBAC: actor has no roles")

    unknown = [r for r in assigned_roles if r not in role_capabilities]
    granted: set[str] = set()
    for role in assigned_roles:
        granted |= role_capabilities.get(role, frozenset())

    if required_capability not in granted:
        if unknown:
            return (False, f"RBAC: unknown role(s) {sorted(unknown)}")
        return (False, f"RBAC: capability '{required_capability}' not granted to actor")
    return (True, "")


class RbacPermissionOracle:
    """PermissionOracle over role -> capability bindings."""

    def __init__(
        self,
        role_capabilities: Mapping[str, frozenset[str] | tuple[str, ...]],
        role_provider: RoleProvider | None = None,
    ) -> None:
        self._role_capabilities = {
            name: frozenset(caps) for name, caps in role_capabilities.items()
        }
        self._role_provider = role_provider or StaticRoleProvider()

    @classmethod
    def from_config(
        cls,
        config: ContractWorkflowConfig,
        role_provider: RoleProvider | None = None,
    ) -> RbacPermissionOracle:
        return cls(build_role_capabilities(config), role_provider)

    @property
    def role_provider(self) -> RoleProvider:
        return self._role_provider

    def capabilities_of(self, actor_id: UUID) -> frozenset[str]:
        granted: set[str] = set()
        for role in self._role_provider.get_actor_roles(actor_id):
            granted |= self._role_capabilities.get(role, frozenset())
        return frozenset(granted)

    def has_capability(
        self,
        actor_id: UUID,
        capability: str,
        scope: str | None = None,
    ) -> bool:
        allowed, reason = check_rbac(
            self._role_capabilities,
            self._role_provider.get_actor_roles(actor_id),
            str(getattr(capability, "value", capability)),
        )
        if not allowed:
            logger.debug(
                "rbac_denied",
                extra={
                    "actor_id": str(actor_id),
                    "capability": str(getattr(capability, "value", capability)),
                    "scope": scope,
                    "reason": reason,
                },
            )
        return allowed
