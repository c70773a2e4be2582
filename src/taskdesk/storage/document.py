# src/taskdesk/storage/document.py

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..core.ports import RemoteSync
from .guard import SaveGuard
from .json_state import JsonStateFile

logger = logging.getLogger(__name__)


class PersistedDocument:
    """
    Base for in-memory stores backed by one JsonStateFile.

    Subclasses mutate their state synchronously and then await save(). The
    snapshot is taken inside the guard, so the last save to acquire it always
    writes the newest state.
    """

    def __init__(
        self,
        state_file: JsonStateFile,
        *,
        guard: SaveGuard,
        remote_sync: RemoteSync | None = None,
    ) -> None:
        self._file = state_file
        self._guard = guard
        self._remote_sync = remote_sync

    @property
    def state_file(self) -> JsonStateFile:
        return self._file

    def to_json(self) -> dict[str, Any]:
        raise NotImplementedError

    async def save(self) -> None:
        """Serialize + atomic write + backup + optional replication, under the save guard."""
        name = self._file.name
        async with self._guard.critical(name):
            data = self.to_json()
            await asyncio.to_thread(self._file.write, data)

            if self._remote_sync is not None:
                try:
                    await self._remote_sync.push(name, self._file.path)
                except Exception:
                    logger.exception("Remote sync failed for %s", name)
