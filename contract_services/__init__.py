"""
contract_services -- wiring and policy services above the kernel.

Dependency direction:
    contract_services -> contract_config, contract_kernel  (allowed)
    contract_kernel   -> contract_services                (forbidden)
"""

from contract_services.engine_factory import build_workflow_engine
from contract_services.rbac_authority import (
    RbacPermissionOracle,
    RoleProvider,
    StaticRoleProvider,
    check_rbac,
)

__all__ = [
    "RbacPermissionOracle",
    "RoleProvider",
    "StaticRoleProvider",
    "build_workflow_engine",
    "check_rbac",
]
