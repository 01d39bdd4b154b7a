from .network import NetworkClient

__all__ = ["NetworkClient"]
