"""
Outbound notification sink.

The core only needs ``notify(event, payload)``; delivery is best-effort and
never affects the outcome of the request that triggered it.
"""
import logging
from typing import Any, Dict, List, Protocol, Tuple

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def notify(self, event: str, payload: Dict[str, Any]) -> None: ...


class LoggingNotificationSink:
    """Default sink: writes events to the application log."""

    async def notify(self, event: str, payload: Dict[str, Any]) -> None:
        logger.info("notification %s", event, extra={"event": event, "payload": payload})


class InMemoryNotificationSink:
    """Keeps every event in order; handy for local runs and tests."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def notify(self, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((event, payload))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]


_default_sink: NotificationSink = LoggingNotificationSink()


def get_notification_sink() -> NotificationSink:
    return _default_sink


async def dispatch(sink: NotificationSink, event: str, payload: Dict[str, Any]) -> None:
    """Fire-and-forget delivery: sink errors are logged, not raised."""
    try:
        await sink.notify(event, payload)
    except Exception as exc:
        logger.warning(
            "notification_dispatch_failed",
            extra={"event": event, "error": str(exc), "error_type": type(exc).__name__},
        )
