# src/taskdesk/storage/guard.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


class SaveGuard:
    """
    Single-writer guard shared by every persisting component.

    Only the save sequence (serialize + write + backup + remote sync) runs under
    the lock. In-memory mutations are synchronous and never span an await, so
    they do not need it.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @contextlib.asynccontextmanager
    async def critical(self, name: str = "save") -> AsyncIterator[None]:
        if self._lock.locked():
            logger.debug("Save guard busy; %s waiting", name)
        started = time.monotonic()
        async with self._lock:
            waited = time.monotonic() - started
            if waited > 0.5:
                logger.info("%s waited %.2fs for the save guard", name, waited)
            yield
