"""
contract_config -- single public entrypoint for workflow configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  It loads a YAML configuration set, parses it into frozen
    dataclasses, validates it against the kernel vocabulary and returns a
    ``ContractWorkflowConfig``.

Architecture position:
    Sits above ``contract_kernel`` and below ``contract_services``.  The
    kernel never imports from ``contract_config``; ``bridges.py`` converts
    the configuration into kernel inputs.

Failure modes:
    - ``ConfigurationError`` -- file missing, malformed YAML, missing keys
      or validation errors.

Audit relevance:
    Every successful call emits a ``CONTRACT_CONFIG_TRACE`` log entry with
    the config_id, version and checksum, tying workflow behaviour to the
    exact configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from contract_config.loader import load_yaml_file, parse_config
from contract_config.schema import ContractWorkflowConfig
from contract_config.validator import validate_configuration
from contract_kernel.exceptions import ConfigurationError

_logger = logging.getLogger("contract_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> ContractWorkflowConfig:
    """The only public configuration entrypoint.

    Args:
        config_path: YAML configuration set to load.  Defaults to
            ``contract_config/sets/default.yaml``.

    Raises:
        ConfigurationError: If the set cannot be read, parsed or validated.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH

    try:
        data = load_yaml_file(path)
        config = parse_config(data)
    except FileNotFoundError as exc:
        raise ConfigurationError(str(path), "file not found") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"malformed YAML: {exc}") from exc
    except KeyError as exc:
        raise ConfigurationError(str(path), f"missing required key {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(str(path), str(exc)) from exc

    validation = validate_configuration(config)
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"detail": warning})
    if not validation.is_valid:
        raise ConfigurationError(str(path), "; ".join(validation.errors))

    _logger.info(
        "CONTRACT_CONFIG_TRACE",
        extra={
            "trace_type": "CONTRACT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "role_count": len(config.roles),
            "min_approval_comment_length": config.settings.min_approval_comment_length,
            "execution_status": config.settings.execution_status,
        },
    )
    return config


__all__ = [
    "ContractWorkflowConfig",
    "DEFAULT_CONFIG_PATH",
    "get_active_config",
]
