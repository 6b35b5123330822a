"""Outbound connectors: where the engine sends user-facing interruptions."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class NotificationSink(Protocol):
    """Receives plan reminders and sleep prompts.

    The gatekeeper calls ``notify`` at most once per plan item per day; the
    engine does not care whether it ends up as a push message, a desktop
    toast or an entry in an MCP client's inbox.
    """

    def notify(self, title: str, body: str) -> None:
        ...

    @property
    def sink_name(self) -> str:
        """Label for the active sink: 'inbox' or 'log'."""
        ...
