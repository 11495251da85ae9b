"""
Room Chat Client Package

Client core for a real-time chat room service: message identity,
the per-room message cache, the live channel session and the room
controller that switches between rooms.
"""

from .controller import RoomController
from .identity import DurableIdentity, SurrogateIdentity, resolve
from .message_cache import MessageCache

__version__ = "0.1.0"
__all__ = [
    "RoomController",
    "MessageCache",
    "DurableIdentity",
    "SurrogateIdentity",
    "resolve",
]
