"""
Configuration validator (``contract_config.validator``).

Checks a parsed ``ContractWorkflowConfig`` against the kernel vocabulary
before it is bridged into engine settings.

Invariants enforced
-------------------
* Settings values are members of the kernel enums.
* Every role capability is a known ``Capability``.
* Each track type has at least one role able to act on it.

Failure modes
-------------
* Errors  -> ``get_active_config`` raises ``ConfigurationError``.
* Warnings  -> logged, configuration still used.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from contract_config.schema import ContractWorkflowConfig
from contract_kernel.domain.capabilities import Capability, act_capability
from contract_kernel.domain.workflow import EXECUTION_STATUSES, TrackType

_KNOWN_CAPABILITIES = frozenset(c.value for c in Capability)


@dataclass
class ConfigValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: ContractWorkflowConfig) -> ConfigValidationResult:
    result = ConfigValidationResult()
    _validate_settings(config, result)
    _validate_roles(config, result)
    _validate_track_coverage(config, result)
    return result


def _validate_settings(config: ContractWorkflowConfig, result: ConfigValidationResult) -> None:
    settings = config.settings
    if settings.min_approval_comment_length < 0:
        result.add_error(
            f"min_approval_comment_length must be >= 0, got {settings.min_approval_comment_length}"
        )

    track_values = {t.value for t in TrackType}
    if not settings.default_required_tracks:
        result.add_error("default_required_tracks must name at least one track")
    for track in settings.default_required_tracks:
        if track not in track_values:
            result.add_error(f"default_required_tracks: unknown track type '{track}'")

    execution_values = {s.value for s in EXECUTION_STATUSES}
    if settings.execution_status not in execution_values:
        result.add_error(
            f"execution_status must be one of {sorted(execution_values)}, "
            f"got '{settings.execution_status}'"
        )

    if "{reason}" not in settings.cancellation_comment:
        result.add_warning("cancellation_comment does not include {reason}")


def _validate_roles(config: ContractWorkflowConfig, result: ConfigValidationResult) -> None:
    if not config.roles:
        result.add_warning("no roles defined; every capability check will be denied")
    for role in config.roles:
        for capability in role.capabilities:
            if capability not in _KNOWN_CAPABILITIES:
                result.add_error(f"Role '{role.name}': unknown capability '{capability}'")


def _validate_track_coverage(config: ContractWorkflowConfig, result: ConfigValidationResult) -> None:
    granted = set()
    for role in config.roles:
        granted.update(role.capabilities)
    for track in config.settings.default_required_tracks:
        if track not in {t.value for t in TrackType}:
            continue
        capability = act_capability(TrackType(track)).value
        if config.roles and capability not in granted:
            result.add_warning(f"No role grants '{capability}'; {track} tracks cannot be decided")
