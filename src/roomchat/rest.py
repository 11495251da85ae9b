"""
REST Client for the Chat Server

This module provides the client for the server's REST API: login and
signup, room listing and creation, invites, and the room history
endpoint the room controller seeds its message cache from.

Architecture:
    - aiohttp ClientSession created lazily and reused across calls
    - Bearer credential from the SessionContext on every authenticated call
    - HTTP 401/403 map to AuthRejected; other failures to
      HistoryUnavailable (history) or RequestFailed (everything else)
"""

import logging
from typing import Any, Dict, List, Optional

import aiohttp

from .errors import AuthRejected, HistoryUnavailable, RequestFailed
from .schemas.auth import Credentials, SessionContext
from .schemas.message import Message
from .schemas.room import InviteInfo, RoomInfo

logger = logging.getLogger(__name__)

_AUTH_STATUSES = (401, 403)


class RestClient:
    """
    Client for the chat server's REST API.

    Attributes:
        base_url: Base URL of the API (e.g., http://localhost:8080/api)
        session: Authenticated session, set by login() or the constructor
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[SessionContext] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the REST client.

        Args:
            base_url: Base URL of the REST API
            session: Optional already-authenticated session
            http_session: Optional aiohttp session (for dependency
                          injection/testing)
        """
        self.base_url = base_url.rstrip("/")
        self.session = session
        self._http = http_session

    async def setup(self) -> None:
        """Initialize the HTTP session."""
        if not self._http:
            self._http = aiohttp.ClientSession()

    async def close(self) -> None:
        """Clean up resources."""
        if self._http:
            await self._http.close()
            self._http = None

    async def login(self, username: str, password: str) -> SessionContext:
        """
        Authenticate and store the resulting session.

        Args:
            username: Account name
            password: Account password

        Returns:
            SessionContext carrying the bearer token.

        Raises:
            AuthRejected: If the credentials were refused
            RequestFailed: If the server could not be reached
        """
        status, body = await self._request(
            "POST",
            "/auth/login",
            authenticated=False,
            json=Credentials(username, password).to_dict(),
        )
        if status in _AUTH_STATUSES or status == 400:
            raise AuthRejected("Invalid username or password")
        if status >= 300 or not isinstance(body, dict):
            raise RequestFailed(f"Login failed: {_describe(body)}", status)

        try:
            self.session = SessionContext.from_dict(body)
        except KeyError as e:
            raise RequestFailed(f"Login response missing {e}", status) from e
        logger.info("Logged in as %s", self.session.username)
        return self.session

    async def signup(self, username: str, password: str) -> str:
        """
        Register a new account.

        Returns:
            The server's confirmation text.

        Raises:
            RequestFailed: If registration was refused
        """
        status, body = await self._request(
            "POST",
            "/auth/signup",
            authenticated=False,
            json=Credentials(username, password).to_dict(),
        )
        if status >= 300:
            raise RequestFailed(_describe(body) or "Signup failed", status)
        logger.info("Registered account %s", username)
        return _describe(body)

    def logout(self) -> None:
        """Forget the current session."""
        self.session = None

    async def list_rooms(self) -> List[RoomInfo]:
        """
        Fetch the rooms the user is a member of.

        Returns:
            List of RoomInfo summaries.
        """
        status, body = await self._request("GET", "/rooms")
        self._check(status, body, "List rooms")
        if not isinstance(body, list):
            raise RequestFailed("Room list response is not a list", status)
        return [_room_from(room, status) for room in body]

    async def create_room(self, name: str) -> RoomInfo:
        """
        Create a room owned by the current user.

        Args:
            name: Room name

        Returns:
            RoomInfo of the created room.
        """
        name = name.strip()
        if not name:
            raise ValueError("Room name must not be empty")
        status, body = await self._request(
            "POST", "/rooms", data={"name": name}
        )
        self._check(status, body, "Create room")
        logger.info("Created room %s", name)
        return _room_from(body, status)

    async def create_invite(self, room_id: str) -> InviteInfo:
        """
        Create an invite code for a room (owner only).

        Returns:
            InviteInfo with the generated code.
        """
        status, body = await self._request("POST", f"/rooms/{room_id}/invites")
        self._check(status, body, "Create invite")
        code = body.get("code") if isinstance(body, dict) else body
        return InviteInfo(room_id=room_id, code=str(code).strip().strip('"'))

    async def accept_invite(self, code: str) -> RoomInfo:
        """
        Join a room with an invite code.

        Returns:
            RoomInfo of the joined room.
        """
        code = code.strip()
        if not code:
            raise ValueError("Invite code must not be empty")
        status, body = await self._request("POST", f"/invites/{code}/accept")
        self._check(status, body, "Accept invite")
        return _room_from(body, status)

    async def fetch_history(self, room_id: str) -> List[Message]:
        """
        Fetch a room's message history in server order.

        Args:
            room_id: ID of the room

        Returns:
            Messages ascending by send time (possibly empty).

        Raises:
            AuthRejected: If the credential was refused
            HistoryUnavailable: For any other failure
        """
        try:
            status, body = await self._request(
                "GET", f"/rooms/{room_id}/messages"
            )
        except RequestFailed as e:
            raise HistoryUnavailable(str(e)) from e

        if status in _AUTH_STATUSES:
            raise AuthRejected("Session expired or access denied")
        if status >= 300:
            raise HistoryUnavailable(
                f"History request failed with status {status}"
            )
        if not isinstance(body, list):
            raise HistoryUnavailable("History response is not a list")

        try:
            return [Message.from_dict(item) for item in body]
        except (AttributeError, TypeError, ValueError) as e:
            raise HistoryUnavailable(f"Malformed history entry: {e}") from e

    def _check(self, status: int, body: Any, action: str) -> None:
        if status in _AUTH_STATUSES:
            raise AuthRejected(f"{action}: access denied")
        if status >= 300:
            raise RequestFailed(
                f"{action} failed: {_describe(body) or status}", status
            )

    def _headers(self, authenticated: bool) -> Dict[str, str]:
        if not authenticated:
            return {}
        if self.session is None:
            raise AuthRejected("Not logged in")
        return {"Authorization": self.session.authorization}

    async def _request(
        self,
        method: str,
        endpoint: str,
        authenticated: bool = True,
        **kwargs: Any,
    ):
        """
        Make an HTTP request to the API.

        Returns:
            Tuple of (status, body) where body is decoded JSON when the
            response is JSON and text otherwise.
        """
        if not self._http:
            await self.setup()

        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = self._headers(authenticated)
        try:
            async with self._http.request(
                method, url, headers=headers, **kwargs
            ) as response:
                try:
                    if "application/json" in response.headers.get(
                        "content-type", ""
                    ):
                        body = await response.json()
                    else:
                        body = await response.text()
                except ValueError as e:
                    logger.error("Undecodable response from %s: %s", url, e)
                    raise RequestFailed(
                        f"Malformed response from the chat server: {e}",
                        response.status,
                    ) from e
                return response.status, body
        except aiohttp.ClientError as e:
            logger.error("Error making request to %s: %s", url, e)
            raise RequestFailed(f"Could not reach the chat server: {e}") from e


def _describe(body: Any) -> str:
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body or "")


def _room_from(body: Any, status: int) -> RoomInfo:
    if not isinstance(body, dict):
        raise RequestFailed(f"Unexpected room response: {body!r}", status)
    try:
        return RoomInfo.from_dict(body)
    except ValueError as e:
        raise RequestFailed(str(e), status) from e
