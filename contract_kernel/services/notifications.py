"""
NotificationDispatcher -- post-commit workflow event fan-out.

The engine publishes one WorkflowEvent per successful command after its
transaction commits.  Delivery (email, push, in-app) belongs to
subscribers; the kernel only guarantees the trigger.  A failing subscriber
is logged and skipped: the transition has already committed and other
subscribers still receive the event.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from contract_kernel.domain.dtos import WorkflowEvent
from contract_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

WorkflowListener = Callable[[WorkflowEvent], None]


class NotificationDispatcher:
    """
    In-process subscriber registry.

    Subscribers register for specific actions (``"CONTRACT_APPROVED"``) or
    for everything (``actions=None``).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[tuple[WorkflowListener, frozenset[str] | None]] = []

    def subscribe(
        self,
        listener: WorkflowListener,
        actions: set[str] | frozenset[str] | None = None,
    ) -> None:
        filt = frozenset(str(getattr(a, "value", a)) for a in actions) if actions else None
        with self._lock:
            self._subscribers.append((listener, filt))

    def unsubscribe(self, listener: WorkflowListener) -> None:
        with self._lock:
            self._subscribers = [
                (fn, filt) for fn, filt in self._subscribers if fn is not listener
            ]

    def publish(self, event: WorkflowEvent) -> int:
        """
        Deliver ``event`` to every matching subscriber.

        Returns:
            Number of subscribers that handled the event without raising.
        """
        with self._lock:
            targets = [
                fn for fn, filt in self._subscribers
                if filt is None or event.action in filt
            ]

        delivered = 0
        for listener in targets:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "notification_listener_failed",
                    extra={
                        "action": event.action,
                        "contract_id": str(event.contract_id),
                        "listener": getattr(listener, "__qualname__", repr(listener)),
                    },
                )
                continue
            delivered += 1

        logger.debug(
            "workflow_event_published",
            extra={
                "action": event.action,
                "contract_id": str(event.contract_id),
                "subscribers": len(targets),
                "delivered": delivered,
            },
        )
        return delivered
