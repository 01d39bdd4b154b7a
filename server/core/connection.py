from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Set

from shared.protocol import BaseMsg, encode_msg
from shared.protocol.constants import DEFAULT_MAX_PENDING, DEFAULT_WRITE_TIMEOUT
from shared.protocol.errors import ConnectionFailure, EncodingError

logger = logging.getLogger(__name__)

CloseCallback = Callable[["SubscriberSession"], Awaitable[None]]

_END = None  # outbox sentinel: close once everything before it is written


class SessionState(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(eq=False)
class SubscriberSession:
    """One accepted subscriber connection (server role: write only).

    Outbound frames go through a bounded queue drained by a dedicated writer
    task, so a slow peer never stalls the broadcaster. Once DISCONNECTED the
    session is never reused.
    """

    reader: Any  # asyncio.StreamReader
    writer: Any  # asyncio.StreamWriter
    peername: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    max_pending: int = DEFAULT_MAX_PENDING
    write_timeout: float = DEFAULT_WRITE_TIMEOUT
    on_close: Optional[CloseCallback] = None
    state: SessionState = SessionState.CONNECTED
    frames_sent: int = 0

    def __post_init__(self) -> None:
        # One extra slot so end() always fits behind a full outbox.
        self._outbox: asyncio.Queue[Optional[bytes]] = asyncio.Queue(maxsize=self.max_pending + 1)
        self._writer_task: Optional[asyncio.Task] = None
        self._timers: Set[asyncio.TimerHandle] = set()
        self._closing: Optional[asyncio.Future] = None
        self._closed = False

    @property
    def is_alive(self) -> bool:
        return self.state is SessionState.CONNECTED

    @property
    def pending_frames(self) -> int:
        return self._outbox.qsize()

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def start(self) -> None:
        if self._writer_task is None and self.is_alive:
            self._writer_task = asyncio.create_task(self._write_loop(), name=f"subscriber-writer-{self.session_id}")

    def enqueue(self, message: BaseMsg) -> bool:
        """Queue one message for delivery without blocking.

        Returns False when the message was not queued. An encoding failure
        skips only this message; a full outbox means the peer stalled and the
        session is torn down.
        """
        if not self.is_alive:
            return False
        try:
            frame = encode_msg(message)
        except EncodingError as exc:
            logger.warning("Skipping message for %s: %s", self.peername, exc)
            return False
        return self.write_raw(frame)

    def write_raw(self, data: bytes) -> bool:
        """Queue bytes as-is; they need not form a complete frame."""
        if not self.is_alive:
            return False
        if self._outbox.qsize() >= self.max_pending:
            self.fail(ConnectionFailure(f"{self.max_pending} frames pending, subscriber stalled"))
            return False
        self._outbox.put_nowait(data)
        return True

    def end(self) -> None:
        """Close the connection after everything already queued is written."""
        if self.is_alive:
            self._outbox.put_nowait(_END)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        """Schedule a timer that is cancelled when the session closes."""
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def _fire() -> None:
            self._timers.discard(handle)
            callback(*args)

        handle = loop.call_later(delay, _fire)
        self._timers.add(handle)
        return handle

    def fail(self, exc: ConnectionFailure) -> None:
        """Mark the session dead now; release its resources on the next loop turn."""
        logger.warning("Subscriber %s failed: %s", self.peername, exc)
        self.state = SessionState.DISCONNECTED
        self.close_soon()

    def close_soon(self) -> None:
        """Start closing from synchronous code."""
        if self._closing is None and not self._closed:
            self._closing = asyncio.ensure_future(self.close())

    async def close(self) -> None:
        """Release everything tied to the session. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self.state = SessionState.DISCONNECTED
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        while not self._outbox.empty():
            self._outbox.get_nowait()

        # Transport first: a drain() blocked on a dead peer returns once it closes.
        self.writer.close()
        if self._writer_task and self._writer_task is not asyncio.current_task():
            self._writer_task.cancel()
            await asyncio.wait([self._writer_task], timeout=self.write_timeout)
        self._writer_task = None

        try:
            async with asyncio.timeout(self.write_timeout):
                await self.writer.wait_closed()
        except TimeoutError:
            self.writer.transport.abort()
        except (ConnectionError, OSError) as e:
            logger.debug("Error during writer cleanup for %s: %s", self.peername, e)

        if self.on_close:
            try:
                await self.on_close(self)
            except Exception as e:
                logger.error("Error in close callback for %s: %s", self.peername, e)

    async def _write_loop(self) -> None:
        while True:
            frame = await self._outbox.get()
            if frame is _END:
                self.close_soon()
                return
            try:
                self.writer.write(frame)
                async with asyncio.timeout(self.write_timeout):
                    await self.writer.drain()
                self.frames_sent += 1
            except (ConnectionError, OSError, TimeoutError) as exc:
                self.fail(ConnectionFailure(f"Write failed: {exc!r}"))
                return
