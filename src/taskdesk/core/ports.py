# src/taskdesk/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps connectors and replication targets swappable and makes testing easier.
"""

from pathlib import Path
from typing import Awaitable, Protocol


class OutboundMessenger(Protocol):
    """
    Connector-side port: how services (reminder scheduler) can send text outward.

    The connector decides how to interpret:
    - room_id (can be None)
    - to_user_id (can be None)
    E.g. the Matrix connector opens a direct-message room when only to_user_id is given.
    """

    def send_text(
            self,
            *,
            text: str,
            room_id: str | None = None,
            to_user_id: str | None = None,
    ) -> Awaitable[None]: ...


class RemoteSync(Protocol):
    """Replication target notified after every successful local write."""

    def push(self, name: str, path: Path) -> Awaitable[None]: ...
