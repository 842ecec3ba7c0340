"""Transient user-facing notifications.

Notification delivery is an external collaborator. The workflow only needs
`notify(message, level, duration_ms)`; adapters pick the sink.

Sinks:
    - `LoggingNotifier`: forwards notices to the module logger.
    - `BufferedNotifier`: additionally keeps recent notices so an adapter can
      return them with its next response.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Protocol


logger = logging.getLogger(__name__)

INFO = "info"
SUCCESS = "success"
WARNING = "warning"
ERROR = "error"

_LOG_LEVELS = {
    INFO: logging.INFO,
    SUCCESS: logging.INFO,
    WARNING: logging.WARNING,
    ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class Notification:
    message: str
    level: str = INFO
    duration_ms: int | None = None


class Notifier(Protocol):
    def notify(self, message: str, level: str = INFO, duration_ms: int | None = None) -> None:
        ...


class LoggingNotifier:
    """Notifier that writes every notice to the log."""

    def notify(self, message: str, level: str = INFO, duration_ms: int | None = None) -> None:
        logger.log(_LOG_LEVELS.get(level, logging.INFO), "[%s] %s", level, message)


class BufferedNotifier(LoggingNotifier):
    """Logging notifier that also retains the most recent notices."""

    def __init__(self, maxlen: int = 20) -> None:
        self._pending: deque[Notification] = deque(maxlen=maxlen)

    def notify(self, message: str, level: str = INFO, duration_ms: int | None = None) -> None:
        super().notify(message, level, duration_ms)
        self._pending.append(Notification(message, level, duration_ms))

    def drain(self) -> list[Notification]:
        """Return and clear retained notices, oldest first."""
        items = list(self._pending)
        self._pending.clear()
        return items
