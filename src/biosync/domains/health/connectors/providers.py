"""Concrete NotificationSink implementations."""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Any

logger = logging.getLogger(__name__)


class LoggingNotificationSink:
    """Writes notifications to the log. Always available."""

    def notify(self, title: str, body: str) -> None:
        logger.info("Notification: %s | %s", title, body)

    @property
    def sink_name(self) -> str:
        return "log"


class InboxNotificationSink:
    """Keeps the most recent notifications until a client collects them.

    Usage::

        sink = InboxNotificationSink(capacity=50)
        sink.notify("BioSync: Lunch", "Spinach salad with chicken.")
        sink.drain()  # [{"title": ..., "body": ..., "sent_at": ...}]
    """

    def __init__(self, capacity: int = 100) -> None:
        self._messages: deque[dict[str, Any]] = deque(maxlen=capacity)
        self.sent_count = 0

    def notify(self, title: str, body: str) -> None:
        self._messages.append(
            {"title": title, "body": body, "sent_at": int(time.time() * 1000)}
        )
        self.sent_count += 1
        logger.info("Notification queued: %s", title)

    @property
    def sink_name(self) -> str:
        return "inbox"

    @property
    def pending(self) -> list[dict[str, Any]]:
        return list(self._messages)

    def drain(self) -> list[dict[str, Any]]:
        messages = list(self._messages)
        self._messages.clear()
        return messages
