"""Test service that splits one `changed` frame across two writes.

Clients must reassemble the halves into a single message. The delay timer
belongs to the subscriber session and is cancelled if the peer leaves first.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from server.config import SERVER_CONFIG, load_server_config
from server.core import BroadcastServer, SubscriberSession

logger = logging.getLogger(__name__)

FIRST_CHUNK = b'{"type":"changed","file":"targ'
SECOND_CHUNK = b'et.txt","timestamp":1358175758495}\n'


class FragmentingService:
    """Sends FIRST_CHUNK immediately, SECOND_CHUNK after `delay`, then hangs up."""

    def __init__(
        self,
        host: str,
        port: int,
        delay: float = 1.0,
        first_chunk: bytes = FIRST_CHUNK,
        second_chunk: bytes = SECOND_CHUNK,
    ) -> None:
        self.delay = delay
        self.first_chunk = first_chunk
        self.second_chunk = second_chunk
        self.server = BroadcastServer(host, port, on_connection=self._on_connection)

    @property
    def port(self) -> int:
        return self.server.port

    async def start(self) -> None:
        await self.server.start()

    async def stop(self) -> None:
        await self.server.stop()
        await self.server.close_all()

    async def _on_connection(self, session: SubscriberSession) -> None:
        session.write_raw(self.first_chunk)
        session.call_later(self.delay, self._finish, session)

    def _finish(self, session: SubscriberSession) -> None:
        session.write_raw(self.second_chunk)
        session.end()


async def run_service(delay: Optional[float] = None) -> None:
    load_server_config()
    logging.basicConfig(level=SERVER_CONFIG["log_level"])
    service = FragmentingService(
        SERVER_CONFIG["host"],
        SERVER_CONFIG["port"],
        delay=SERVER_CONFIG["fragment_delay"] if delay is None else delay,
    )
    await service.start()
    try:
        await asyncio.Event().wait()  # keep running
    finally:
        await service.stop()


if __name__ == "__main__":
    asyncio.run(run_service())
