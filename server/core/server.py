from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

from shared.protocol import ChangedMsg, WatchingMsg
from shared.protocol.constants import DEFAULT_MAX_PENDING, DEFAULT_WRITE_TIMEOUT, READ_CHUNK_SIZE
from shared.utils.common import utc_timestamp_ms

from .connection import SubscriberSession
from .connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

ConnectionCallback = Callable[[SubscriberSession], Awaitable[None]]


class BroadcastServer:
    """Accepts subscribers and pushes change notifications to all of them."""

    def __init__(
        self,
        host: str,
        port: int,
        watch_file: Optional[str] = None,
        connection_manager: Optional[ConnectionManager] = None,
        on_connection: Optional[ConnectionCallback] = None,
        max_pending: int = DEFAULT_MAX_PENDING,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.watch_file = watch_file
        self.connection_manager = connection_manager or ConnectionManager()
        self.on_connection = on_connection
        self.max_pending = max_pending
        self.write_timeout = write_timeout
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_client, self.host, self.port)
        # Port 0 asks the OS for a free port; report the real one.
        self.port = self._server.sockets[0].getsockname()[1]
        logger.info("Listening for subscribers on %s:%s...", self.host, self.port)

    async def stop(self) -> None:
        """Stop accepting; live sessions drain when their peers disconnect."""
        if self._server:
            self._server.close()
            self._server = None
            logger.info("Stopped accepting subscribers (%s still connected)", len(self.connection_manager))

    async def close_all(self) -> None:
        await asyncio.gather(*(session.close() for session in self.connection_manager.snapshot()))

    def notify_changed(self, resource_id: str, timestamp: Optional[int] = None) -> int:
        """Fan one `changed` message out to every live session."""
        message = ChangedMsg(file=resource_id, timestamp=utc_timestamp_ms() if timestamp is None else timestamp)
        return self.connection_manager.broadcast(message)

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        session = SubscriberSession(
            reader=reader,
            writer=writer,
            peername=str(writer.get_extra_info("peername")),
            max_pending=self.max_pending,
            write_timeout=self.write_timeout,
            on_close=self._on_session_closed,
        )
        self.connection_manager.register(session)
        logger.info("Subscriber connected: %s", session.peername)
        session.start()
        if self.watch_file:
            session.enqueue(WatchingMsg(file=self.watch_file))
        try:
            if self.on_connection:
                await self.on_connection(session)
            while session.is_alive:
                data = await reader.read(READ_CHUNK_SIZE)
                if not data:
                    break
                # Subscribers have nothing to say in this protocol; no reply is sent.
                logger.debug("Discarding %s inbound bytes from %s", len(data), session.peername)
        except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError, OSError) as exc:
            logger.info("Subscriber %s connection reset: %s", session.peername, exc)
        except Exception as exc:
            logger.exception("Unhandled error for %s: %s", session.peername, exc)
        finally:
            await session.close()

    async def _on_session_closed(self, session: SubscriberSession) -> None:
        self.connection_manager.unregister(session)
        logger.info("Subscriber disconnected: %s", session.peername)
