"""
Tests for the Channel Session

Tests for the connect/subscribe handshake, event delivery, publishing
and teardown of a room's live channel, using a mock WebSocket.
"""

import asyncio
import json

import pytest
from websockets.exceptions import ConnectionClosedOK

from roomchat.channel import (
    ERROR_SUBSCRIPTION_ID,
    ROOM_SUBSCRIPTION_ID,
    ChannelSession,
    SessionState,
)
from roomchat.config import ClientConfig
from roomchat.errors import AuthRejected, ChannelError, ChannelHandshakeFailed
from roomchat.schemas.message import (
    DeleteMessageRequest,
    EditMessageRequest,
    SendMessageRequest,
)
from roomchat.stomp import Frame

CONNECTED = "CONNECTED\nversion:1.2\n\n\x00"


def message_frame(body, subscription=ROOM_SUBSCRIPTION_ID):
    return (
        f"MESSAGE\nsubscription:{subscription}\nmessage-id:m1\n"
        f"destination:/topic/rooms/7\n\n{body}\x00"
    )


class MockWebSocket:
    """Mock WebSocket fed with frames by the test."""

    def __init__(self, replies=None):
        self.sent_messages = []
        self.incoming = asyncio.Queue()
        self.closed = False
        for reply in replies or []:
            self.incoming.put_nowait(reply)

    async def send(self, message):
        self.sent_messages.append(message)

    async def recv(self):
        item = await self.incoming.get()
        if item is None:
            raise ConnectionClosedOK(None, None)
        return item

    async def close(self):
        self.closed = True
        self.incoming.put_nowait(None)

    def feed(self, text):
        self.incoming.put_nowait(text)

    def drop(self):
        self.incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def sent_frames(self):
        return [Frame.decode(text) for text in self.sent_messages]


def make_session(websocket):
    async def factory(url):
        return websocket

    config = ClientConfig(ws_url="ws://chat.example:8080/ws")
    return ChannelSession(config, websocket_factory=factory)


async def open_session(websocket=None, room_id="7"):
    websocket = websocket or MockWebSocket([CONNECTED])
    session = make_session(websocket)
    errors = []
    session.set_error_handler(errors.append)
    await session.open(room_id, "tok")
    return session, websocket, errors


class TestHandshake:
    """Tests for ChannelSession.open()."""

    def test_session_starts_idle(self):
        """A new session is idle and not subscribed."""
        session = make_session(MockWebSocket())
        assert session.state is SessionState.IDLE
        assert not session.is_subscribed

    @pytest.mark.asyncio
    async def test_open_subscribes(self):
        """A CONNECTED reply leads to both subscriptions."""
        session, ws, errors = await open_session()

        assert session.state is SessionState.SUBSCRIBED
        assert session.is_subscribed
        commands = [frame.command for frame in ws.sent_frames]
        assert commands == ["CONNECT", "SUBSCRIBE", "SUBSCRIBE"]

        connect = ws.sent_frames[0]
        assert connect.headers["Authorization"] == "Bearer tok"
        assert connect.headers["host"] == "chat.example"

        room_sub, error_sub = ws.sent_frames[1:]
        assert room_sub.headers["destination"] == "/topic/rooms/7"
        assert room_sub.headers["id"] == ROOM_SUBSCRIPTION_ID
        assert error_sub.headers["destination"] == "/user/queue/errors"
        assert error_sub.headers["id"] == ERROR_SUBSCRIPTION_ID
        assert errors == []
        await session.close()

    @pytest.mark.asyncio
    async def test_heartbeats_before_connected_are_skipped(self):
        """Heart-beats before CONNECTED do not break the handshake."""
        session, _, _ = await open_session(MockWebSocket(["\n", CONNECTED]))
        assert session.is_subscribed
        await session.close()

    @pytest.mark.asyncio
    async def test_auth_error_frame_raises_auth_rejected(self):
        """An ERROR reply about the credential is AuthRejected."""
        ws = MockWebSocket(["ERROR\nmessage:Unauthorized\n\nbad token\x00"])
        session = make_session(ws)
        errors = []
        session.set_error_handler(errors.append)

        with pytest.raises(AuthRejected):
            await session.open("7", "tok")

        assert session.state is SessionState.FAILED
        assert ws.closed
        assert len(errors) == 1
        assert isinstance(errors[0], AuthRejected)

    @pytest.mark.asyncio
    async def test_other_error_frame_raises_handshake_failed(self):
        """Any other ERROR reply is a failed handshake."""
        ws = MockWebSocket(["ERROR\nmessage:broker unavailable\n\n\x00"])
        session = make_session(ws)

        with pytest.raises(ChannelHandshakeFailed):
            await session.open("7", "tok")
        assert session.state is SessionState.FAILED

    @pytest.mark.asyncio
    async def test_connection_refused_raises_handshake_failed(self):
        """A transport failure while connecting fails the handshake."""

        async def factory(url):
            raise OSError("connection refused")

        session = ChannelSession(ClientConfig(), websocket_factory=factory)
        with pytest.raises(ChannelHandshakeFailed):
            await session.open("7", "tok")
        assert session.state is SessionState.FAILED

    @pytest.mark.asyncio
    async def test_open_twice_is_rejected(self):
        """A session cannot be opened a second time."""
        session, _, _ = await open_session()
        with pytest.raises(ChannelError):
            await session.open("8", "tok")
        await session.close()

    @pytest.mark.asyncio
    async def test_close_while_connecting(self):
        """Closing during the connect step cancels the handshake."""
        ws = MockWebSocket([CONNECTED])
        gate = asyncio.Event()

        async def factory(url):
            await gate.wait()
            return ws

        session = ChannelSession(ClientConfig(), websocket_factory=factory)
        opening = asyncio.create_task(session.open("7", "tok"))
        await asyncio.sleep(0)
        assert session.state is SessionState.CONNECTING

        await session.close()
        gate.set()

        with pytest.raises(ChannelError):
            await opening
        assert session.state is SessionState.CLOSED
        assert ws.closed
        assert ws.sent_messages == []

    @pytest.mark.asyncio
    async def test_close_while_awaiting_connected(self):
        """Closing before the CONNECTED reply arrives cancels the handshake."""
        ws = MockWebSocket()
        session = make_session(ws)
        opening = asyncio.create_task(session.open("7", "tok"))
        for _ in range(3):
            await asyncio.sleep(0)
        assert [f.command for f in ws.sent_frames] == ["CONNECT"]

        await session.close()
        with pytest.raises(ChannelError):
            await opening
        assert session.state is SessionState.CLOSED
        assert not session.is_subscribed


    @pytest.mark.asyncio
    async def test_undecodable_reply_fails_handshake(self):
        """A reply that is not valid UTF-8 fails the handshake cleanly."""
        ws = MockWebSocket([b"\xff\xfe"])
        session = make_session(ws)
        errors = []
        session.set_error_handler(errors.append)

        with pytest.raises(ChannelHandshakeFailed):
            await session.open("7", "tok")

        assert session.state is SessionState.FAILED
        assert ws.closed
        assert len(errors) == 1
        assert isinstance(errors[0], ChannelHandshakeFailed)


class TestEventDelivery:
    """Tests for inbound frames."""

    @pytest.mark.asyncio
    async def test_events_delivered_in_order(self):
        """Room events reach the handler in transport order."""
        session, ws, _ = await open_session()
        received = []
        done = asyncio.Event()

        def handler(payload):
            received.append(payload)
            if len(received) == 3:
                done.set()

        session.set_event_handler(handler)
        ws.feed(message_frame('{"messageId": 1}'))
        ws.feed("\n")
        ws.feed(message_frame('{"messageId": 2}'))
        ws.feed(message_frame("3"))
        await asyncio.wait_for(done.wait(), timeout=1)

        assert received == [{"messageId": 1}, {"messageId": 2}, 3]
        await session.close()

    @pytest.mark.asyncio
    async def test_invalid_json_is_dropped(self):
        """An event with an undecodable body is skipped."""
        session, ws, _ = await open_session()
        received = asyncio.Queue()
        session.set_event_handler(received.put_nowait)

        ws.feed(message_frame("{not json"))
        ws.feed(message_frame('{"messageId": 2}'))
        payload = await asyncio.wait_for(received.get(), timeout=1)

        assert payload == {"messageId": 2}
        await session.close()

    @pytest.mark.asyncio
    async def test_error_queue_reported(self):
        """Messages on the error queue reach the error handler."""
        session, ws, _ = await open_session()
        reported = asyncio.Queue()
        session.set_error_handler(reported.put_nowait)

        ws.feed(message_frame("Only the author can edit", ERROR_SUBSCRIPTION_ID))
        error = await asyncio.wait_for(reported.get(), timeout=1)

        assert isinstance(error, ChannelError)
        assert "author" in str(error)
        assert session.is_subscribed
        await session.close()

    @pytest.mark.asyncio
    async def test_connection_lost(self):
        """A dropped connection closes the session and is reported."""
        session, ws, _ = await open_session()
        reported = asyncio.Queue()
        session.set_error_handler(reported.put_nowait)

        ws.drop()
        error = await asyncio.wait_for(reported.get(), timeout=1)

        assert isinstance(error, ChannelError)
        assert session.state is SessionState.CLOSED
        await session.close()


class TestReceiveLoopFailures:
    """Tests that bad input never silently stops the receive loop."""

    @pytest.mark.asyncio
    async def test_undecodable_frame_is_skipped(self):
        """A binary frame that is not UTF-8 is dropped; later events arrive."""
        session, ws, errors = await open_session()
        received = asyncio.Queue()
        session.set_event_handler(received.put_nowait)

        ws.feed(b"\xff\xfe garbage")
        ws.feed(message_frame('{"messageId": 1}'))
        payload = await asyncio.wait_for(received.get(), timeout=1)

        assert payload == {"messageId": 1}
        assert session.is_subscribed
        assert errors == []
        await session.close()

    @pytest.mark.asyncio
    async def test_handler_failure_does_not_stop_delivery(self):
        """An exception in the event handler does not lose later events."""
        session, ws, errors = await open_session()
        received = []
        done = asyncio.Event()

        def handler(payload):
            received.append(payload)
            if len(received) == 1:
                raise RuntimeError("render failed")
            done.set()

        session.set_event_handler(handler)
        ws.feed(message_frame('{"messageId": 1}'))
        ws.feed(message_frame('{"messageId": 2}'))
        await asyncio.wait_for(done.wait(), timeout=1)

        assert received == [{"messageId": 1}, {"messageId": 2}]
        assert session.is_subscribed
        assert errors == []
        await session.close()

    @pytest.mark.asyncio
    async def test_unexpected_loop_failure_closes_and_reports(self):
        """A transport failure ends the session and is reported."""
        session, ws, _ = await open_session()
        reported = asyncio.Queue()
        session.set_error_handler(reported.put_nowait)

        ws.feed(RuntimeError("transport broke"))
        error = await asyncio.wait_for(reported.get(), timeout=1)

        assert isinstance(error, ChannelError)
        assert "transport broke" in str(error)
        assert session.state is SessionState.CLOSED
        assert not session.is_subscribed
        await session.close()


class TestPublish:
    """Tests for ChannelSession.publish()."""

    @pytest.mark.asyncio
    async def test_publish_send(self):
        """A send request goes to the room's sendMessage destination."""
        session, ws, _ = await open_session()
        await session.publish(SendMessageRequest("hello"))

        frame = ws.sent_frames[-1]
        assert frame.command == "SEND"
        assert frame.headers["destination"] == "/app/chat/7/sendMessage"
        assert json.loads(frame.body) == {"content": "hello"}
        await session.close()

    @pytest.mark.asyncio
    async def test_publish_edit(self):
        """An edit request carries messageId and newContent."""
        session, ws, _ = await open_session()
        await session.publish(EditMessageRequest("42", "fixed"))

        frame = ws.sent_frames[-1]
        assert frame.headers["destination"] == "/app/chat/7/editMessage"
        assert json.loads(frame.body) == {"messageId": 42, "newContent": "fixed"}
        await session.close()

    @pytest.mark.asyncio
    async def test_publish_delete(self):
        """A delete request's body is the bare message id."""
        session, ws, _ = await open_session()
        await session.publish(DeleteMessageRequest("42"))

        frame = ws.sent_frames[-1]
        assert frame.headers["destination"] == "/app/chat/7/deleteMessage"
        assert json.loads(frame.body) == 42
        await session.close()

    @pytest.mark.asyncio
    async def test_publish_requires_subscription(self):
        """Publishing on an idle session fails."""
        session = make_session(MockWebSocket())
        with pytest.raises(ChannelError):
            await session.publish(SendMessageRequest("hello"))


class TestClose:
    """Tests for ChannelSession.close()."""

    @pytest.mark.asyncio
    async def test_close_unsubscribes_and_disconnects(self):
        """Closing a subscribed session unsubscribes before disconnecting."""
        session, ws, _ = await open_session()
        await session.close()

        commands = [frame.command for frame in ws.sent_frames[3:]]
        assert commands == ["UNSUBSCRIBE", "UNSUBSCRIBE", "DISCONNECT"]
        assert ws.closed
        assert session.state is SessionState.CLOSED
        assert session.websocket is None

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        """Closing twice sends the teardown frames once."""
        session, ws, _ = await open_session()
        await session.close()
        sent = len(ws.sent_messages)
        await session.close()
        assert len(ws.sent_messages) == sent

    @pytest.mark.asyncio
    async def test_concurrent_close(self):
        """Concurrent closes both return after a single teardown."""
        session, ws, _ = await open_session()
        await asyncio.gather(session.close(), session.close())
        disconnects = [f for f in ws.sent_frames if f.command == "DISCONNECT"]
        assert len(disconnects) == 1
        assert session.state is SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_close_idle_session(self):
        """Closing a session that never opened is allowed."""
        session = make_session(MockWebSocket())
        await session.close()
        assert session.state is SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_no_events_after_close(self):
        """Frames arriving after close are not delivered."""
        session, ws, _ = await open_session()
        received = []
        session.set_event_handler(received.append)
        await session.close()
        ws.feed(message_frame('{"messageId": 9}'))
        await asyncio.sleep(0)
        assert received == []
