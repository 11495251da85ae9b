"""
Room Schema Definitions

This module defines the room summaries returned by the REST API. The
client only consumes these; room creation and invite generation are
owned by the server.
"""

from dataclasses import dataclass
from typing import Any, Dict

from .base import BaseResponse


@dataclass(frozen=True)
class RoomInfo(BaseResponse):
    """
    Summary of a chat room.

    Attributes:
        room_id: Unique identifier for the room
        name: Display name of the room
    """

    room_id: str
    name: str

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "RoomInfo":
        """Create from a `{id, name}` room DTO."""
        room_id = data.get("id", data.get("room_id"))
        if room_id is None:
            raise ValueError("Room summary is missing its id")
        return cls(
            room_id=str(room_id),
            name=data.get("name", data.get("room_name", "")),
        )


@dataclass(frozen=True)
class InviteInfo:
    """
    Invite code created for a room.

    Attributes:
        room_id: ID of the room the invite grants access to
        code: Invite code to share with other users
    """

    room_id: str
    code: str
