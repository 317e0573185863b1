"""
Configuration loader (``contract_config.loader``).

Loads a YAML configuration set and parses it into the frozen dataclasses
of ``schema.py``.  Build/test tooling: runtime callers go through
``contract_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrongly typed values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from contract_config.schema import (
    ApprovalSettingsDef,
    ContractWorkflowConfig,
    RoleDefinition,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _str_tuple(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValueError(f"{key} must be a list, got {value!r}")
    return tuple(str(item) for item in value)


def parse_settings(data: dict[str, Any]) -> ApprovalSettingsDef:
    """Parse the ``settings`` block; absent keys keep their defaults."""
    defaults = ApprovalSettingsDef()
    min_length = data.get("min_approval_comment_length", defaults.min_approval_comment_length)
    if isinstance(min_length, bool) or not isinstance(min_length, int):
        raise ValueError(f"min_approval_comment_length must be an integer, got {min_length!r}")

    tracks = data.get("default_required_tracks")
    return ApprovalSettingsDef(
        min_approval_comment_length=min_length,
        default_required_tracks=(
            tuple(t.upper() for t in _str_tuple(tracks, "default_required_tracks"))
            if tracks is not None
            else defaults.default_required_tracks
        ),
        execution_status=str(data.get("execution_status", defaults.execution_status)).upper(),
        cancellation_comment=str(data.get("cancellation_comment", defaults.cancellation_comment)),
    )


def parse_role(name: str, data: dict[str, Any] | list[Any]) -> RoleDefinition:
    """
    Parse one role.  Accepts the long form::

        legal_manager:
          description: Reviews legal tracks
          capabilities: [approval:legal:view, approval:legal:act]

    or the short form ``legal_manager: [approval:legal:view, ...]``.
    """
    if isinstance(data, list):
        return RoleDefinition(name=name, capabilities=_str_tuple(data, f"roles.{name}"))
    return RoleDefinition(
        name=name,
        capabilities=_str_tuple(data["capabilities"], f"roles.{name}.capabilities"),
        description=str(data.get("description", "")),
    )


def parse_config(data: dict[str, Any]) -> ContractWorkflowConfig:
    """Parse a whole configuration set (already loaded from YAML)."""
    roles_data = data.get("roles") or {}
    if not isinstance(roles_data, dict):
        raise ValueError("roles must be a mapping of role name to capabilities")

    return ContractWorkflowConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        settings=parse_settings(data.get("settings") or {}),
        roles=tuple(
            parse_role(name, role_data)
            for name, role_data in sorted(roles_data.items())
        ),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 over the canonical JSON form of the configuration set."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
