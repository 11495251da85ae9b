"""
Room Controller

This module orchestrates room switching and message reconciliation:
it tears down the previous channel session, fetches the new room's
history, seeds the message cache, opens a new channel session and
applies incoming events to the cache, rendering only what changed.

Architecture:
    - Every switch request takes a monotonically increasing token; any
      history response, handshake result or channel event is applied
      only while its token is still the latest (last-requested-room-wins)
    - At most one channel session exists; the previous one is fully
      closed before a new one is opened
    - Send/edit/delete are fire-and-forget publishes; the cache changes
      only when the server echoes the event back on the channel

Usage:
    controller = RoomController(context, rest_client, renderer, config)
    await controller.switch_room(room)
    await controller.send_message("hello")
"""

import logging
from typing import Any, Callable, List, Optional, Protocol

from .channel import ChannelSession
from .config import ClientConfig
from .errors import (
    AuthRejected,
    ChannelError,
    ChatClientError,
    HistoryUnavailable,
)
from .identity import DurableIdentity, SurrogateIdentity
from .message_cache import CacheChange, ChangeType, MessageCache
from .renderer import Placeholder, Renderer
from .schemas.auth import SessionContext
from .schemas.base import BaseRequest
from .schemas.message import (
    DeleteMessageRequest,
    EditMessageRequest,
    Message,
    SendMessageRequest,
)
from .schemas.room import RoomInfo

logger = logging.getLogger(__name__)


class HistorySource(Protocol):
    """Anything that can fetch a room's message history."""

    async def fetch_history(self, room_id: str) -> List[Message]:
        """Return the room's messages ascending by send time."""


class RoomController:
    """
    Owner of the active room, its channel session and its message cache.

    Attributes:
        context: Authenticated session whose token opens channels
        config: Client configuration
        cache: Messages displayed for the active room
        renderer: Display target driven by cache changes
        session: The single channel session (None between rooms)
        active_room: Room of the last switch that completed
    """

    def __init__(
        self,
        context: SessionContext,
        history: HistorySource,
        renderer: Renderer,
        config: Optional[ClientConfig] = None,
        session_factory: Optional[Callable[[], ChannelSession]] = None,
    ):
        """
        Initialize the controller.

        Args:
            context: Authenticated session
            history: Source of room history (usually the RestClient)
            renderer: Display target
            config: Client configuration (defaults when omitted)
            session_factory: Optional factory for channel sessions
                             (for dependency injection/testing)
        """
        self.context = context
        self.config = config or ClientConfig()
        self.cache = MessageCache(self.config.max_cached_messages)
        self.renderer = renderer
        self.session: Optional[ChannelSession] = None
        self.active_room: Optional[RoomInfo] = None
        self._history = history
        self._session_factory = session_factory or (
            lambda: ChannelSession(self.config)
        )
        self._switch_token = 0
        self._active_token = 0
        self._on_error: Optional[Callable[[ChatClientError], None]] = None

        logger.info("RoomController initialized for %s", context.username)

    @property
    def switch_token(self) -> int:
        """Token of the most recent switch request."""
        return self._switch_token

    def set_on_error(self, callback: Callable[[ChatClientError], None]) -> None:
        """
        Register callback for user-visible errors.

        Args:
            callback: Function that receives AuthRejected, handshake
                      failures and server-side rejections
        """
        self._on_error = callback

    def is_current(self, token: int) -> bool:
        """Check whether a switch request still owns the active room."""
        return token == self._switch_token

    async def switch_room(self, room: RoomInfo) -> bool:
        """
        Make a room the active room.

        A later call supersedes this one: its history response and
        handshake result are discarded, but the sessions it created are
        still closed.

        Args:
            room: Room to switch to

        Returns:
            True if this switch ended with a subscribed session, False if
            it was a no-op, was superseded or failed.
        """
        if (
            self.active_room is not None
            and room.room_id == self.active_room.room_id
            and self.session is not None
            and self.session.is_subscribed
            and self._active_token == self._switch_token
        ):
            logger.debug("Already in room %s", room.room_id)
            return False

        self._switch_token += 1
        token = self._switch_token
        logger.info("Switching to room %s (request %s)", room.room_id, token)

        await self._teardown()
        if not self.is_current(token):
            logger.debug("Switch %s superseded during teardown", token)
            return False

        self.cache.clear()
        self.renderer.clear()
        self.renderer.show_placeholder(Placeholder.LOADING)

        history: Optional[List[Message]] = None
        try:
            history = await self._history.fetch_history(room.room_id)
        except AuthRejected as e:
            if not self.is_current(token):
                return False
            logger.error("History request for room %s rejected", room.room_id)
            self.renderer.clear()
            self.renderer.show_placeholder(Placeholder.AUTH_ERROR)
            self._settle(room, token)
            self._report(e)
            return False
        except HistoryUnavailable as e:
            logger.warning("History for room %s unavailable: %s", room.room_id, e)
        except Exception as e:
            logger.exception(
                "History for room %s failed unexpectedly: %s", room.room_id, e
            )

        if not self.is_current(token):
            logger.debug("Discarding stale history for room %s", room.room_id)
            return False

        self.renderer.clear()
        if history is None:
            self.renderer.show_placeholder(Placeholder.HISTORY_ERROR)
        else:
            for message in self.cache.seed(history):
                self.renderer.insert(message)
            if not self.cache:
                self.renderer.show_placeholder(Placeholder.EMPTY)

        session = self._session_factory()
        session.set_event_handler(
            lambda payload: self._handle_event(token, payload)
        )
        session.set_error_handler(
            lambda error: self._handle_channel_error(token, error)
        )
        self.session = session

        try:
            await session.open(room.room_id, self.context.token)
        except (ChannelError, AuthRejected) as e:
            # Handshake failures already reached the error handler
            if self.is_current(token):
                logger.warning("Could not open room %s: %s", room.room_id, e)
                self._settle(room, token)
            return False

        if not self.is_current(token):
            logger.debug("Switch %s superseded during handshake", token)
            await session.close()
            return False

        self._settle(room, token)
        logger.info("Room %s is active", room.room_id)
        return True

    async def shutdown(self) -> None:
        """
        Tear down the session and forget the active room.

        In-flight switches are superseded.
        """
        self._switch_token += 1
        await self._teardown()
        self.cache.clear()
        self.renderer.clear()
        self.active_room = None
        self._active_token = self._switch_token
        logger.info("RoomController shut down")

    async def send_message(self, content: str) -> None:
        """
        Publish a new message to the active room.

        Args:
            content: Message text

        Raises:
            ValueError: If the content is empty
            ChannelError: If no room session is subscribed
        """
        content = content.strip()
        if not content:
            raise ValueError("Message content must not be empty")
        await self._publish(SendMessageRequest(content))

    async def edit_message(self, identity: Any, new_content: str) -> None:
        """
        Ask the server to replace a message's content.

        Args:
            identity: DurableIdentity (or raw durable id) of the message
            new_content: Replacement text

        Raises:
            ValueError: If the content is empty or the message has no
                        durable id
            ChannelError: If no room session is subscribed
        """
        new_content = new_content.strip()
        if not new_content:
            raise ValueError("Message content must not be empty")
        await self._publish(
            EditMessageRequest(_durable_id(identity), new_content)
        )

    async def delete_message(self, identity: Any) -> None:
        """
        Ask the server to delete a message.

        Args:
            identity: DurableIdentity (or raw durable id) of the message

        Raises:
            ValueError: If the message has no durable id
            ChannelError: If no room session is subscribed
        """
        await self._publish(DeleteMessageRequest(_durable_id(identity)))

    async def _publish(self, request: BaseRequest) -> None:
        session = self.session
        if session is None or not session.is_subscribed:
            raise ChannelError("Not connected to a room")
        await session.publish(request)

    async def _teardown(self) -> None:
        """Close the current session and wait until it is closed."""
        session = self.session
        if session is None:
            return
        await session.close()
        if self.session is session:
            self.session = None

    def _handle_event(self, token: int, payload: Any) -> None:
        """Reconcile one channel event and render the change."""
        if not self.is_current(token):
            logger.debug("Dropping event from superseded session %s", token)
            return

        try:
            message = Message.from_event(payload)
            change = self.cache.apply(message)
        except (ValueError, TypeError) as e:
            logger.warning("Dropping event: %s", e)
            return

        self._render_change(change)

    def _render_change(self, change: CacheChange) -> None:
        if change.change is ChangeType.INSERTED:
            for identity in change.evicted:
                self.renderer.remove(identity)
            self.renderer.insert(change.message)
        elif change.change is ChangeType.UPDATED:
            self.renderer.update(change.identity, change.message.content)
        elif change.change is ChangeType.REMOVED:
            self.renderer.remove(change.identity)
            if not self.cache:
                self.renderer.show_placeholder(Placeholder.EMPTY)

    def _handle_channel_error(self, token: int, error: ChatClientError) -> None:
        if not self.is_current(token):
            logger.debug("Ignoring error from superseded session: %s", error)
            return

        if isinstance(error, AuthRejected):
            self.renderer.show_placeholder(Placeholder.AUTH_ERROR)
        elif self.session is not None and not self.session.is_subscribed:
            self.renderer.show_placeholder(Placeholder.CHANNEL_ERROR)
        self._report(error)

    def _settle(self, room: RoomInfo, token: int) -> None:
        self.active_room = room
        self._active_token = token

    def _report(self, error: ChatClientError) -> None:
        if self._on_error:
            self._on_error(error)


def _durable_id(identity: Any) -> Any:
    """Return the server id for a message identity."""
    if isinstance(identity, SurrogateIdentity):
        raise ValueError(
            "This message has no server id yet and cannot be changed"
        )
    if isinstance(identity, DurableIdentity):
        return identity.value
    if identity is None or str(identity).strip() == "":
        raise ValueError("Message id must not be empty")
    return identity
