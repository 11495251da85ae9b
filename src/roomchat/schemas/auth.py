"""
Authentication Schema Definitions

This module defines the login/signup payloads and the session context
that carries the bearer credential through the client.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict

from .base import BaseResponse


@dataclass
class Credentials:
    """
    Username and password submitted to the login and signup endpoints.

    Attributes:
        username: Account name
        password: Account password
    """

    username: str
    password: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


@dataclass(frozen=True)
class SessionContext(BaseResponse):
    """
    Authenticated session for one logged-in user.

    The token is opaque to the client: it is attached to every REST call
    and channel handshake and is never refreshed or validated locally.

    Attributes:
        token: Bearer credential issued by the login endpoint
        username: Name of the logged-in user
    """

    token: str
    username: str

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "SessionContext":
        """Create from the login response `{token, username}`."""
        return cls(token=data["token"], username=data["username"])

    @property
    def authorization(self) -> str:
        """Value of the Authorization header for this session."""
        return f"Bearer {self.token}"

    def __repr__(self) -> str:
        return f"SessionContext(username={self.username!r}, token=<hidden>)"
