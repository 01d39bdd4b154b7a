from __future__ import annotations

import logging
from typing import Optional

from client.core.network import NetworkClient
from shared.protocol import BaseMsg, ChangedMsg, WatchingMsg
from shared.protocol.commands import MsgType
from shared.protocol.errors import UnknownMessageType
from shared.utils.common import format_timestamp_ms

logger = logging.getLogger(__name__)


class WatchReporter:
    """Reports `watching` / `changed` notifications from the server.

    Unrecognized types are logged by default. With ``strict=True`` they are
    raised as UnknownMessageType, which makes the client drop the connection.
    """

    def __init__(self, network: NetworkClient, strict: bool = False) -> None:
        self.network = network
        self.strict = strict
        self.last_message: Optional[BaseMsg] = None
        self.unknown_count = 0
        self.last_unknown: Optional[BaseMsg] = None
        network.register_handler(MsgType.WATCHING, self._handle_watching)
        network.register_handler(MsgType.CHANGED, self._handle_changed)
        network.set_unknown_handler(self._handle_unknown)

    async def _handle_watching(self, message: WatchingMsg) -> None:
        self.last_message = message
        logger.info("Now watching: %s", message.file)

    async def _handle_changed(self, message: ChangedMsg) -> None:
        self.last_message = message
        logger.info("File '%s' changed at %s", message.file, format_timestamp_ms(message.timestamp))

    async def _handle_unknown(self, message: BaseMsg) -> None:
        self.unknown_count += 1
        self.last_unknown = message
        if self.strict:
            raise UnknownMessageType(message)
        logger.warning("Ignoring unrecognized message type %r: %s", message.type, message.raw)
