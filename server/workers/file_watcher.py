"""Change source backed by ``watchfiles``.

The server treats the filesystem as a black box: every batch of changes
reported for the watched path becomes one ``ChangeEvent``, and each event
triggers one ``changed`` broadcast.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol

from shared.utils.common import utc_timestamp_ms

if TYPE_CHECKING:
    from server.core.server import BroadcastServer

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """The watched resource changed at `timestamp` (ms since epoch)."""

    file: str
    timestamp: int


class ChangeSource(Protocol):
    def changes(self) -> AsyncIterator[ChangeEvent]: ...


class FileWatcher:
    """Yields a ChangeEvent each time the watched file changes.

    The sequence is infinite until ``stop()`` and cannot be restarted.
    """

    def __init__(self, path: str, debounce_ms: int = 50) -> None:
        if not Path(path).exists():
            raise FileNotFoundError(f"No such file to watch: {path}")
        self.path = path
        self.debounce_ms = debounce_ms
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        self._stop_event.set()

    async def changes(self) -> AsyncIterator[ChangeEvent]:
        from watchfiles import awatch

        async for batch in awatch(self.path, debounce=self.debounce_ms, stop_event=self._stop_event):
            logger.debug("Filesystem reported %s change(s) for %s", len(batch), self.path)
            yield ChangeEvent(file=self.path, timestamp=utc_timestamp_ms())


class ChangeRelay:
    """Pumps events from a change source into the broadcast server."""

    def __init__(self, source: ChangeSource, server: "BroadcastServer") -> None:
        self.source = source
        self.server = server
        self.events_relayed = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="change-relay")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def wait(self) -> None:
        """Block until the change source is exhausted."""
        if self._task:
            await self._task

    async def _run(self) -> None:
        async for event in self.source.changes():
            try:
                delivered = self.server.notify_changed(event.file, event.timestamp)
                self.events_relayed += 1
                logger.info("File '%s' changed; notified %s subscriber(s)", event.file, delivered)
            except Exception as exc:
                logger.exception("Change broadcast failed for %s: %s", event.file, exc)
