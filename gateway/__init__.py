"""WebSocket gateway: wraps the duel lobby with networking."""

from .server import DuelServer

__all__ = ["DuelServer"]
