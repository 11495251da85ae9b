"""
Schemas Package

This package contains the data shapes exchanged with the chat server:
room summaries, authentication payloads, chat messages and the payloads
published on the message channel.

The package provides base classes (BaseRequest, BaseResponse) that
eliminate code duplication for serialization and deserialization methods.
"""

from .base import BaseRequest, BaseResponse
from .auth import Credentials, SessionContext
from .room import InviteInfo, RoomInfo
from .message import (
    DeleteMessageRequest,
    EditMessageRequest,
    Message,
    MessageKind,
    SendMessageRequest,
    classify_kind,
    format_time,
)

__all__ = [
    # Base classes
    "BaseRequest",
    "BaseResponse",
    # Auth schemas
    "Credentials",
    "SessionContext",
    # Room schemas
    "RoomInfo",
    "InviteInfo",
    # Message schemas
    "Message",
    "MessageKind",
    "SendMessageRequest",
    "EditMessageRequest",
    "DeleteMessageRequest",
    "classify_kind",
    "format_time",
]
