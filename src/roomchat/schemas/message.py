"""
Message Schema Definitions

This module defines the chat message model, the classification of
inbound channel events (created, edited, deleted) and the payloads
published on the channel for sending, editing and deleting messages.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from .base import BaseRequest, BaseResponse


class MessageKind(Enum):
    """Kind of change an inbound event carries."""

    CREATED = "created"
    EDITED = "edited"
    DELETED = "deleted"


_KIND_ALIASES = {
    "created": MessageKind.CREATED,
    "create": MessageKind.CREATED,
    "message": MessageKind.CREATED,
    "new": MessageKind.CREATED,
    "new_message": MessageKind.CREATED,
    "edited": MessageKind.EDITED,
    "edit": MessageKind.EDITED,
    "updated": MessageKind.EDITED,
    "update": MessageKind.EDITED,
    "deleted": MessageKind.DELETED,
    "delete": MessageKind.DELETED,
    "removed": MessageKind.DELETED,
}


def normalize_timestamp(value: Any) -> Any:
    """
    Make a wire timestamp hashable.

    Servers serialize timestamps either as ISO 8601 strings or as
    component arrays ([2025, 11, 23, 10, 0, 0]); arrays, nested ones
    included, become tuples.
    """
    if isinstance(value, list):
        return tuple(normalize_timestamp(item) for item in value)
    return value


def format_time(sent_at: Any) -> str:
    """
    Format a wire timestamp as HH:MM for display.

    Returns an empty string when the value cannot be interpreted.
    """
    if sent_at is None:
        return ""
    if isinstance(sent_at, (list, tuple)) and len(sent_at) >= 5:
        try:
            return f"{int(sent_at[3]):02d}:{int(sent_at[4]):02d}"
        except (TypeError, ValueError):
            return ""
    if isinstance(sent_at, (int, float)):
        # Epoch milliseconds
        return datetime.fromtimestamp(sent_at / 1000).strftime("%H:%M")
    if isinstance(sent_at, str):
        try:
            return datetime.fromisoformat(sent_at.replace("Z", "+00:00")).strftime(
                "%H:%M"
            )
        except ValueError:
            if "T" in sent_at:
                return sent_at.split("T")[1][:5]
    return ""


@dataclass
class Message(BaseResponse):
    """
    A chat message as displayed in a room.

    Attributes:
        durable_id: Server-assigned message id, if the payload carried one
        author: Username of the sender
        content: Message text
        sent_at: Timestamp as sent by the server (ISO string or array)
        kind: Change this message represents when it arrives as an event
        edited: Whether the displayed content has been edited
    """

    durable_id: Optional[Any]
    author: str
    content: str
    sent_at: Optional[Any]
    kind: MessageKind = MessageKind.CREATED
    edited: bool = False

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "Message":
        """Create from a message DTO, accepting the server's field aliases."""
        durable_id = _first(data, "messageId", "id", "message_id")

        author = _first(data, "username", "author", "sender")
        if isinstance(author, dict):
            author = author.get("username", "")

        content = _first(data, "content", "newContent", "new_content")
        sent_at = _first(data, "timestamp", "createdAt", "sentAt", "sent_at")

        return cls(
            durable_id=durable_id,
            author=author or "",
            content=content if content is not None else "",
            sent_at=normalize_timestamp(sent_at),
            kind=classify_kind(data),
            edited=data.get("editedAt") is not None,
        )

    @classmethod
    def from_event(cls, payload: Union[Dict[str, Any], str, int]) -> "Message":
        """
        Create from a channel event body.

        A bare scalar body identifies a message to delete by its durable id.

        Args:
            payload: Decoded JSON body of the event.

        Returns:
            Message whose kind tells how to reconcile it.

        Raises:
            ValueError: If the body is neither an object nor a scalar id.
        """
        if isinstance(payload, bool) or payload is None:
            raise ValueError(f"Unsupported event body: {payload!r}")
        if isinstance(payload, (str, int)):
            return cls(
                durable_id=payload,
                author="",
                content="",
                sent_at=None,
                kind=MessageKind.DELETED,
            )
        if not isinstance(payload, dict):
            raise ValueError(f"Unsupported event body: {payload!r}")
        return cls.from_dict(payload)

    @property
    def display_time(self) -> str:
        """Send time formatted as HH:MM."""
        return format_time(self.sent_at)


def classify_kind(data: Dict[str, Any]) -> MessageKind:
    """
    Decide which change a message DTO represents.

    An explicit `type` field wins; otherwise a `deleted` flag means
    deleted, a non-null `editedAt` means edited, anything else created.
    """
    explicit = data.get("type")
    if isinstance(explicit, str):
        kind = _KIND_ALIASES.get(explicit.strip().lower())
        if kind is not None:
            return kind
    if data.get("deleted") is True:
        return MessageKind.DELETED
    if data.get("editedAt") is not None:
        return MessageKind.EDITED
    return MessageKind.CREATED


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def wire_message_id(durable_id: Any) -> Any:
    """Numeric ids travel as JSON numbers, everything else as strings."""
    if isinstance(durable_id, str) and durable_id.isdigit():
        return int(durable_id)
    return durable_id


@dataclass
class SendMessageRequest(BaseRequest):
    """
    Request to send a message to the active room.

    Attributes:
        content: The message content
    """

    content: str

    @property
    def operation(self) -> str:
        """Return the channel operation for sending messages."""
        return "sendMessage"


@dataclass
class EditMessageRequest(BaseRequest):
    """
    Request to replace the content of an existing message.

    Attributes:
        message_id: Durable id of the message to edit
        new_content: Replacement text
    """

    message_id: Any
    new_content: str

    @property
    def operation(self) -> str:
        """Return the channel operation for editing messages."""
        return "editMessage"

    @property
    def _wire_names(self) -> Dict[str, str]:
        return {"message_id": "messageId", "new_content": "newContent"}

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["messageId"] = wire_message_id(self.message_id)
        return payload


@dataclass
class DeleteMessageRequest(BaseRequest):
    """
    Request to delete a message.

    The body is the bare message id rather than an object.

    Attributes:
        message_id: Durable id of the message to delete
    """

    message_id: Any

    @property
    def operation(self) -> str:
        """Return the channel operation for deleting messages."""
        return "deleteMessage"

    def to_payload(self) -> Any:
        return wire_message_id(self.message_id)
