from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, Deque, Dict, Optional, Union

from client.config import CLIENT_CONFIG
from shared.protocol import BaseMsg, StreamDecoder
from shared.protocol.commands import MsgType, normalize_type
from shared.protocol.errors import (
    ConnectionFailure,
    DecodeError,
    ProtocolError,
    TruncatedStream,
    UnknownMessageType,
)

logger = logging.getLogger(__name__)

MessageHandler = Callable[[BaseMsg], Awaitable[None]]


class NetworkClient:
    """Subscriber side of the watch protocol.

    Connects with retry/backoff, feeds every chunk read from the socket into
    its own StreamDecoder and dispatches decoded messages by `type`.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        self.config = config or CLIENT_CONFIG
        self.host: str = self.config["server_host"]
        self.port: int = int(self.config["server_port"])
        self.backoff: float = float(self.config["reconnect_backoff"])
        self.max_backoff: float = float(self.config["max_reconnect_backoff"])
        self.max_retries: int = int(self.config["max_reconnect_retries"])
        self.read_chunk_size: int = int(self.config["read_chunk_size"])

        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.connected: bool = False
        self.messages_received: int = 0
        self.last_error: Optional[ProtocolError] = None
        self.decoder = StreamDecoder(on_message=self._on_message, on_error=self._on_decode_error)
        self._ready: Deque[BaseMsg] = deque()
        self._receive_task: Optional[asyncio.Task] = None
        self._handlers: Dict[str, MessageHandler] = {}
        self._unknown_handler: Optional[MessageHandler] = None

    async def connect(self) -> None:
        if self.connected:
            return

        retries = 0
        delay = self.backoff
        while retries <= self.max_retries:
            try:
                self.reader, self.writer = await asyncio.open_connection(self.host, self.port)
                self.connected = True
                self.last_error = None
                logger.info("Connected to %s:%s", self.host, self.port)
                self._receive_task = asyncio.create_task(self._receive_loop(), name="client-recv-loop")
                return
            except (OSError, asyncio.TimeoutError) as exc:
                retries += 1
                logger.warning("Connect attempt %s failed: %s", retries, exc)
                if retries > self.max_retries:
                    break
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_backoff)
        raise ConnectionFailure(f"Exceeded max reconnect attempts to {self.host}:{self.port}")

    async def run(self) -> None:
        """Wait until the server hangs up (or the connection is closed)."""
        if self._receive_task:
            await asyncio.wait([self._receive_task])

    async def close(self) -> None:
        if self._receive_task:
            self._receive_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._receive_task
            self._receive_task = None
        await self._release()
        logger.info("Network client closed")

    def register_handler(self, msg_type: Union[str, MsgType], handler: MessageHandler) -> None:
        self._handlers[normalize_type(msg_type)] = handler

    def set_unknown_handler(self, handler: MessageHandler) -> None:
        """Handler for messages whose type has no registered handler."""
        self._unknown_handler = handler

    async def _receive_loop(self) -> None:
        assert self.reader is not None
        try:
            while True:
                chunk = await self.reader.read(self.read_chunk_size)
                if not chunk:
                    break
                self.decoder.ingest(chunk)
                await self._drain_ready()
            try:
                self.decoder.finish()
            except TruncatedStream as exc:
                logger.warning("Subscriber stream truncated: %s", exc)
                self.last_error = exc
            logger.info("Server closed connection")
        except UnknownMessageType as exc:
            logger.error("Closing connection: %s", exc)
            self.last_error = exc
        except (ConnectionError, OSError) as exc:
            logger.error("Receive loop terminated: %s", exc)
            self.last_error = ConnectionFailure(f"Read failed: {exc!r}")
        finally:
            await self._release()

    async def _release(self) -> None:
        self.connected = False
        self.decoder.reset()
        self._ready.clear()
        if self.writer:
            writer, self.writer = self.writer, None
            writer.close()
            with contextlib.suppress(ConnectionError, OSError):
                await writer.wait_closed()

    def _on_message(self, msg: BaseMsg) -> None:
        self._ready.append(msg)

    def _on_decode_error(self, exc: DecodeError) -> None:
        logger.warning("Discarding malformed frame: %s", exc, extra=exc.to_log_fields())

    async def _drain_ready(self) -> None:
        while self._ready:
            msg = self._ready.popleft()
            self.messages_received += 1
            await self._dispatch(msg)

    async def _dispatch(self, msg: BaseMsg) -> None:
        handler = self._handlers.get(msg.type)
        try:
            if handler:
                await handler(msg)
            elif self._unknown_handler:
                await self._unknown_handler(msg)
            else:
                logger.warning("%s", UnknownMessageType(msg))
        except UnknownMessageType:
            raise
        except Exception as exc:
            logger.exception("Handler error for %s: %s", msg.type, exc)
