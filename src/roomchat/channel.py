"""
Channel Session for the Live Message Stream

This module provides the session that owns one live subscription to a
room's event channel: connect, subscribe, receive, and disconnect.

Architecture:
    - STOMP frames over a single WebSocket connection per active room
    - Supports dependency injection for the network layer (for testability)
    - Events are delivered to a registered handler in transport order,
      with no reordering or buffering

State machine:
    IDLE -> CONNECTING -> SUBSCRIBED -> CLOSED
    CONNECTING -> FAILED on handshake error (no automatic retry)
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import urlparse

import websockets
from websockets.exceptions import ConnectionClosed

from .config import ClientConfig
from .errors import (
    AuthRejected,
    ChannelError,
    ChannelHandshakeFailed,
    ChatClientError,
)
from .schemas.base import BaseRequest
from .stomp import (
    Frame,
    FrameError,
    connect_frame,
    disconnect_frame,
    send_frame,
    subscribe_frame,
    unsubscribe_frame,
)

logger = logging.getLogger(__name__)

ROOM_SUBSCRIPTION_ID = "sub-room"
ERROR_SUBSCRIPTION_ID = "sub-errors"

# Substrings of a STOMP ERROR that mean the credential was refused
_AUTH_ERROR_MARKERS = ("unauthorized", "unauthorised", "forbidden", "401", "403")


class SessionState(Enum):
    """Lifecycle state of a channel session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    FAILED = "failed"
    CLOSED = "closed"


class ChannelSession:
    """
    One live subscription to a room's event channel.

    A session is opened once; switching rooms means closing it and
    opening a new session.

    Attributes:
        config: Client configuration (endpoint and destinations)
        room_id: ID of the room this session subscribes to
        state: Current lifecycle state
        websocket: Active WebSocket connection (None if not connected)
    """

    def __init__(
        self,
        config: ClientConfig,
        websocket_factory: Optional[Callable] = None,
    ):
        """
        Initialize an idle session.

        Args:
            config: Client configuration
            websocket_factory: Optional factory for creating WebSocket
                             connections (for dependency injection/testing)
        """
        self.config = config
        self.room_id: Optional[str] = None
        self.state = SessionState.IDLE
        self.websocket: Any = None
        self._websocket_factory = websocket_factory or websockets.connect
        self._event_handler: Optional[Callable[[Any], None]] = None
        self._error_handler: Optional[Callable[[ChatClientError], None]] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._closing: Optional[asyncio.Event] = None

    @property
    def is_subscribed(self) -> bool:
        """Check if the session is delivering events."""
        return self.state is SessionState.SUBSCRIBED

    def set_event_handler(self, handler: Callable[[Any], None]) -> None:
        """
        Register a callback for room events.

        Args:
            handler: Callback that receives each decoded JSON event body
        """
        self._event_handler = handler

    def set_error_handler(
        self, handler: Callable[[ChatClientError], None]
    ) -> None:
        """
        Register a callback for channel errors.

        Args:
            handler: Callback that receives handshake failures, lost
                     connections and server-side rejections
        """
        self._error_handler = handler

    async def open(self, room_id: str, token: str) -> None:
        """
        Connect with the bearer token and subscribe to a room's topic.

        Args:
            room_id: ID of the room to subscribe to
            token: Bearer credential for the channel handshake

        Raises:
            AuthRejected: If the server refused the credential
            ChannelHandshakeFailed: If connecting or subscribing failed
            ChannelError: If the session was closed during the handshake
                          or was not idle
        """
        if self.state is not SessionState.IDLE:
            raise ChannelError(
                f"Cannot open a session in state {self.state.value}"
            )

        self.room_id = room_id
        self.state = SessionState.CONNECTING
        url = self.config.ws_url
        logger.info("Connecting to %s for room %s", url, room_id)

        try:
            websocket = await self._websocket_factory(url)
        except Exception as e:
            error = ChannelHandshakeFailed(f"Could not connect to {url}: {e}")
            await self._handshake_failed(error)
            raise error from e

        if self.state is not SessionState.CONNECTING:
            await _close_quietly(websocket)
            raise ChannelError("Session closed during handshake")
        self.websocket = websocket

        try:
            host = urlparse(url).hostname or "localhost"
            await websocket.send(
                connect_frame(host, f"Bearer {token}").encode()
            )
            reply = await self._recv_frame()

            if self.state is not SessionState.CONNECTING:
                raise ChannelError("Session closed during handshake")
            if reply.command == "ERROR":
                error = _handshake_error(reply)
                await self._handshake_failed(error)
                raise error
            if reply.command != "CONNECTED":
                error = ChannelHandshakeFailed(
                    f"Unexpected {reply.command} frame during handshake"
                )
                await self._handshake_failed(error)
                raise error

            await websocket.send(
                subscribe_frame(
                    ROOM_SUBSCRIPTION_ID, self.config.room_topic(room_id)
                ).encode()
            )
            await websocket.send(
                subscribe_frame(
                    ERROR_SUBSCRIPTION_ID, self.config.error_queue
                ).encode()
            )
        except (ConnectionClosed, OSError, FrameError) as e:
            if self.state is not SessionState.CONNECTING:
                raise ChannelError("Session closed during handshake") from e
            error = ChannelHandshakeFailed(f"Channel handshake failed: {e}")
            await self._handshake_failed(error)
            raise error from e

        if self.state is not SessionState.CONNECTING:
            raise ChannelError("Session closed during handshake")

        self.state = SessionState.SUBSCRIBED
        self._receive_task = asyncio.create_task(self._receive_loop())
        logger.info("Subscribed to room %s", room_id)

    async def close(self) -> None:
        """
        Unsubscribe (if subscribed), disconnect and mark the session closed.

        Valid from any state. Closing an already-closed session is a
        no-op; a close racing with one in progress waits for it.
        """
        if self._closing is not None:
            await self._closing.wait()
            return
        if self.state is SessionState.CLOSED:
            return

        self._closing = asyncio.Event()
        was_subscribed = self.state is SessionState.SUBSCRIBED
        self.state = SessionState.CLOSED

        try:
            task = self._receive_task
            self._receive_task = None
            if task is not None and task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

            websocket = self.websocket
            if websocket is not None:
                try:
                    if was_subscribed:
                        await websocket.send(
                            unsubscribe_frame(ROOM_SUBSCRIPTION_ID).encode()
                        )
                        await websocket.send(
                            unsubscribe_frame(ERROR_SUBSCRIPTION_ID).encode()
                        )
                        await websocket.send(disconnect_frame().encode())
                except (ConnectionClosed, OSError) as e:
                    logger.debug("Connection already gone while closing: %s", e)
                await _close_quietly(websocket)
        finally:
            self.websocket = None
            self._closing.set()

        logger.info("Closed session for room %s", self.room_id)

    async def publish(self, request: BaseRequest) -> None:
        """
        Publish a payload to the room's operation destination.

        This is fire-and-forget: returning means the frame was written
        to the transport, never that the server applied it.

        Args:
            request: Payload naming its channel operation

        Raises:
            ChannelError: If the session is not subscribed or the write failed
        """
        if self.state is not SessionState.SUBSCRIBED:
            raise ChannelError("Not subscribed to a room channel")

        destination = self.config.publish_destination(
            self.room_id, request.operation
        )
        logger.info("Publishing %s to %s", request.operation, destination)
        try:
            await self.websocket.send(
                send_frame(destination, request.to_json()).encode()
            )
        except (ConnectionClosed, OSError) as e:
            raise ChannelError(f"Could not publish {request.operation}: {e}") from e

    async def _recv_frame(self) -> Frame:
        """Receive the next non-heartbeat frame."""
        while True:
            frame = _decode_frame(await self.websocket.recv())
            if frame is not None:
                return frame

    async def _receive_loop(self) -> None:
        """
        Receive frames until the connection closes and dispatch them.

        Malformed frames and handler failures are logged and skipped. A
        connection lost while subscribed, or a loop that ends for any
        other reason, closes the session and is reported to the error
        handler.
        """
        websocket = self.websocket
        reason = "Connection to the chat server was lost"
        try:
            async for raw in websocket:
                try:
                    frame = _decode_frame(raw)
                except FrameError as e:
                    logger.warning("Dropping malformed frame: %s", e)
                    continue
                if frame is None:
                    continue
                try:
                    self._dispatch(frame)
                except Exception:
                    logger.exception("Error handling %s frame", frame.command)
        except ConnectionClosed:
            pass
        except Exception as e:
            logger.error("Error in message receive loop: %s", e)
            reason = f"Channel receive failed: {e}"

        if self.state is SessionState.SUBSCRIBED:
            logger.warning("Channel for room %s ended: %s", self.room_id, reason)
            self.state = SessionState.CLOSED
            self._report(ChannelError(reason))

    def _dispatch(self, frame: Frame) -> None:
        """Route one frame to the event or error handler."""
        if frame.command == "MESSAGE":
            subscription = frame.headers.get("subscription")
            if subscription == ROOM_SUBSCRIPTION_ID:
                try:
                    payload = json.loads(frame.body)
                except json.JSONDecodeError as e:
                    logger.warning("Dropping event with invalid JSON: %s", e)
                    return
                if self._event_handler:
                    self._event_handler(payload)
            elif subscription == ERROR_SUBSCRIPTION_ID:
                logger.warning("Server rejected a request: %s", frame.body)
                self._report(
                    ChannelError(frame.body or "The server rejected the request")
                )
            else:
                logger.debug("Message for unknown subscription %s", subscription)
        elif frame.command == "ERROR":
            message = frame.headers.get("message") or frame.body
            logger.error("Channel error frame: %s", message)
            self._report(ChannelError(message or "Channel error"))
        else:
            logger.debug("Ignoring %s frame", frame.command)

    async def _handshake_failed(self, error: ChatClientError) -> None:
        """Move to FAILED, drop the connection and report the error."""
        logger.error("Handshake for room %s failed: %s", self.room_id, error)
        self.state = SessionState.FAILED
        websocket = self.websocket
        self.websocket = None
        if websocket is not None:
            await _close_quietly(websocket)
        self._report(error)

    def _report(self, error: ChatClientError) -> None:
        if self._error_handler:
            self._error_handler(error)


def _handshake_error(frame: Frame) -> ChatClientError:
    """Map a handshake ERROR frame to AuthRejected or ChannelHandshakeFailed."""
    message = frame.headers.get("message") or frame.body or "Handshake refused"
    text = f"{message} {frame.body}".lower()
    if any(marker in text for marker in _AUTH_ERROR_MARKERS):
        return AuthRejected(message)
    return ChannelHandshakeFailed(message)


async def _close_quietly(websocket: Any) -> None:
    """Close a WebSocket, ignoring transports that are already gone."""
    if not hasattr(websocket, "close"):
        return
    try:
        await websocket.close()
    except (ConnectionClosed, OSError) as e:
        logger.debug("Error while closing WebSocket: %s", e)


def _decode_frame(raw: Any) -> Optional[Frame]:
    """Decode one WebSocket message; undecodable bytes are a FrameError."""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FrameError(f"Frame is not valid UTF-8: {e}") from e
    return Frame.decode(raw)
