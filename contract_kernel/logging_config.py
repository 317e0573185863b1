"""
Structured JSON logging for the contract kernel.

Every record is one JSON object per line::

    {"ts": "...", "level": "INFO", "service": "contract-workflow",
     "logger": "contract_kernel.services.workflow_engine",
     "message": "contract_approve", "operation": "approve",
     "actor_id": "...", "contract_id": "...", "status": "APPROVED", ...}

Command-scoped fields (operation, actor, contract, track, correlation id)
come from LogContext, which the workflow engine binds around each command.
They take precedence over ``extra`` keys of the same name.  Exceptions are
rendered as a nested ``error`` object; kernel errors add their ``code`` and
structured attributes.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from contract_kernel.exceptions import ContractKernelError

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "contract_id",
    "track_id",
    "operation",
)

_LOGGER_PREFIX = "contract_kernel"
_SERVICE_NAME = "contract-workflow"

# Marks handlers installed by configure_logging so reset_logging only removes those
_HANDLER_TAG = "_contract_kernel_handler"


# ---------------------------------------------------------------------------
# Command context
# ---------------------------------------------------------------------------

_context: ContextVar[dict[str, str]] = ContextVar("contract_log_context", default={})


def _known(fields: dict[str, Any]) -> dict[str, str]:
    return {
        name: str(value)
        for name, value in fields.items()
        if name in CONTEXT_FIELDS and value is not None
    }


class LogContext:
    """Per-command log fields, isolated per thread and per asyncio task."""

    @staticmethod
    def set(
        *,
        correlation_id: str | None = None,
        actor_id: str | None = None,
        contract_id: str | None = None,
        track_id: str | None = None,
        operation: str | None = None,
    ) -> None:
        """Set context fields. None leaves a field as it was."""
        updates = _known({
            "correlation_id": correlation_id,
            "actor_id": actor_id,
            "contract_id": contract_id,
            "track_id": track_id,
            "operation": operation,
        })
        _context.set({**_context.get(), **updates})

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """
        Overlay fields for the duration of a ``with`` block.

        None values and names outside CONTEXT_FIELDS are ignored; the
        previous context is restored on exit, exception or not.
        """
        token = _context.set({**_context.get(), **_known(fields)})
        try:
            yield LogContext
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


def _error_block(exc: BaseException) -> dict[str, Any]:
    error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, ContractKernelError):
        error["code"] = exc.code
        fields = {k: v for k, v in vars(exc).items() if not k.startswith("_")}
        if fields:
            error["fields"] = fields
    return error


class StructuredFormatter(logging.Formatter):
    """Formats each record as a single JSON line."""

    def __init__(self, service: str = _SERVICE_NAME):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            error = _error_block(record.exc_info[1])
            error["traceback"] = self.formatException(record.exc_info)
            payload["error"] = error

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the contract_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
    service: str = _SERVICE_NAME,
) -> None:
    """
    Attach a JSON handler to the contract_kernel logger.

    Idempotent: once a handler has been installed, later calls return
    without touching level or handlers until reset_logging() runs.
    """
    root = logging.getLogger(_LOGGER_PREFIX)
    if any(getattr(h, _HANDLER_TAG, False) for h in root.handlers):
        return

    root.setLevel(level)
    root.propagate = False

    installed = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    installed.setFormatter(StructuredFormatter(service))
    setattr(installed, _HANDLER_TAG, True)
    root.addHandler(installed)


def reset_logging() -> None:
    """Remove the handler configure_logging installed. Tests only."""
    root = logging.getLogger(_LOGGER_PREFIX)
    for h in [h for h in root.handlers if getattr(h, _HANDLER_TAG, False)]:
        root.removeHandler(h)
    root.setLevel(logging.WARNING)
