"""
Renderer Contract

The room controller never touches widgets directly. It drives a
renderer through five operations so a switch or an inbound event only
redraws what changed.
"""

from enum import Enum
from typing import Protocol

from .identity import DisplayIdentity
from .schemas.message import Message


class Placeholder(Enum):
    """Transient states shown in place of the message list."""

    LOADING = "loading"
    EMPTY = "empty"
    HISTORY_ERROR = "history_error"
    CHANNEL_ERROR = "channel_error"
    AUTH_ERROR = "auth_error"


PLACEHOLDER_TEXT = {
    Placeholder.LOADING: "Loading messages...",
    Placeholder.EMPTY: "No messages yet. Say hello!",
    Placeholder.HISTORY_ERROR: "Could not load earlier messages. "
    "New messages will still appear.",
    Placeholder.CHANNEL_ERROR: "Could not connect to the room. "
    "Select it again to retry.",
    Placeholder.AUTH_ERROR: "Your session was rejected. Please log in again.",
}


class Renderer(Protocol):
    """Display target for the active room's messages."""

    def insert(self, message: Message) -> None:
        """Append a message to the view."""

    def update(self, identity: DisplayIdentity, content: str) -> None:
        """Replace the content of the displayed message with this identity."""

    def remove(self, identity: DisplayIdentity) -> None:
        """Remove the displayed message with this identity."""

    def clear(self) -> None:
        """Remove every displayed message and placeholder."""

    def show_placeholder(self, kind: Placeholder) -> None:
        """Show a transient state in place of the message list."""
