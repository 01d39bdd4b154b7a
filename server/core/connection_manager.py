from __future__ import annotations

import logging
from typing import Dict, Iterator, Optional, Tuple

from shared.protocol import BaseMsg

from .connection import SubscriberSession

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks live subscriber sessions and fans messages out to them."""

    def __init__(self) -> None:
        self._sessions: Dict[str, SubscriberSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[SubscriberSession]:
        return iter(self.snapshot())

    def register(self, session: SubscriberSession) -> None:
        self._sessions[session.session_id] = session

    def unregister(self, session: SubscriberSession) -> Optional[SubscriberSession]:
        return self._sessions.pop(session.session_id, None)

    def snapshot(self) -> Tuple[SubscriberSession, ...]:
        """Live sessions at this instant; safe to iterate while sessions come and go."""
        return tuple(s for s in self._sessions.values() if s.is_alive)

    def broadcast(self, message: BaseMsg) -> int:
        """Queue `message` on every live session. Returns how many accepted it."""
        delivered = 0
        for session in self.snapshot():
            if session.enqueue(message):
                delivered += 1
        logger.debug("Broadcast %s to %s/%s subscribers", message.type, delivered, len(self._sessions))
        return delivered
