from .connection import SessionState, SubscriberSession
from .connection_manager import ConnectionManager
from .server import BroadcastServer

__all__ = ["SessionState", "SubscriberSession", "ConnectionManager", "BroadcastServer"]
