"""
Tests for the Chat Client UI

Tests for the Textual-based user interface components.
"""

import pytest

from roomchat.config import ClientConfig
from roomchat.identity import SurrogateIdentity, durable
from roomchat.renderer import Placeholder
from roomchat.schemas.message import Message
from roomchat.ui.app import (
    ChatApp,
    ChatScreen,
    LoginScreen,
    MessageDisplay,
    SystemMessage,
    TextualRenderer,
)


def make_message(**kwargs):
    data = {
        "durable_id": 1,
        "author": "alice",
        "content": "Hello!",
        "sent_at": "2025-11-23T10:05:00",
    }
    data.update(kwargs)
    return Message(**data)


class TestUIComponentsCanBeImported:
    """Tests to verify UI components can be imported and created."""

    def test_chat_app_can_be_imported(self):
        """Test that ChatApp can be imported."""
        assert ChatApp is not None

    def test_login_screen_can_be_imported(self):
        """Test that LoginScreen can be imported."""
        assert LoginScreen is not None

    def test_chat_screen_can_be_imported(self):
        """Test that ChatScreen can be imported."""
        assert ChatScreen is not None

    def test_message_display_can_be_imported(self):
        """Test that MessageDisplay can be imported."""
        assert MessageDisplay is not None

    def test_system_message_can_be_imported(self):
        """Test that SystemMessage can be imported."""
        assert SystemMessage is not None


class TestChatAppInitialization:
    """Tests for ChatApp initialization."""

    def test_chat_app_initial_state(self):
        """Test ChatApp initial state."""
        app = ChatApp(ClientConfig())
        assert app.rest is None
        assert app.controller is None
        assert app.username is None
        assert app._current_screen == "login"
        assert isinstance(app.room_view, TextualRenderer)

    def test_chat_app_uses_given_config(self):
        """Test that ChatApp keeps the configuration it was given."""
        config = ClientConfig(api_base_url="http://chat.example/api")
        app = ChatApp(config)
        assert app.client_config is config

    def test_chat_app_has_bindings(self):
        """Test that ChatApp has keybindings defined."""
        assert len(ChatApp.BINDINGS) > 0

    def test_chat_app_has_css(self):
        """Test that ChatApp has CSS defined."""
        assert len(ChatApp.CSS) > 0


class TestMessageDisplay:
    """Tests for MessageDisplay widget."""

    def test_message_display_stores_data(self):
        """Test that MessageDisplay stores message data."""
        widget = MessageDisplay(make_message(), durable(1))
        assert widget.msg_identity == durable(1)
        assert widget.msg_username == "alice"
        assert widget.msg_content == "Hello!"
        assert widget.msg_time == "10:05"
        assert widget.is_own_message is False
        assert widget.edited is False

    def test_own_message_is_labelled_you(self):
        """Test that the user's own messages are labelled 'You'."""
        widget = MessageDisplay(make_message(), durable(1), is_own_message=True)
        assert widget.has_class("own-message")
        assert widget._markup().startswith("[bold cyan]You[/]")

    def test_edited_suffix(self):
        """Test that edited messages carry the edited marker."""
        widget = MessageDisplay(make_message(edited=True), durable(1))
        assert "(edited)" in widget._markup()

    def test_markup_is_escaped(self):
        """Test that message text cannot inject markup."""
        widget = MessageDisplay(make_message(content="[red]x[/red]"), durable(1))
        assert "\\[red]" in widget._markup()

    def test_surrogate_identity_shown(self):
        """Test that messages without id show their timestamp identity."""
        identity = SurrogateIdentity("2025-11-23T10:05:00")
        widget = MessageDisplay(make_message(durable_id=None), identity)
        assert "@2025-11-23T10:05:00" in widget._markup()


class TestSystemMessage:
    """Tests for SystemMessage widget."""

    def test_system_message_stores_data(self):
        """Test that SystemMessage stores message data."""
        widget = SystemMessage("Connected", "success")
        assert widget.message == "Connected"
        assert widget.message_type == "success"


class TestTextualRenderer:
    """Tests for TextualRenderer inside a running app."""

    @pytest.mark.asyncio
    async def test_insert_update_remove(self):
        """Test that widgets follow insert, update and remove by identity."""
        app = ChatApp(ClientConfig())
        async with app.run_test() as pilot:
            renderer = app.room_view
            renderer.insert(make_message())
            renderer.insert(make_message(durable_id=2, content="second"))
            await pilot.pause()
            assert list(renderer.widgets) == [durable(1), durable(2)]

            renderer.update(durable(1), "changed")
            assert renderer.widgets[durable(1)].msg_content == "changed"
            assert renderer.widgets[durable(1)].edited is True

            renderer.remove(durable(2))
            await pilot.pause()
            assert list(renderer.widgets) == [durable(1)]

    @pytest.mark.asyncio
    async def test_placeholder_cleared_by_insert(self):
        """Test that the empty state disappears when a message arrives."""
        app = ChatApp(ClientConfig())
        async with app.run_test() as pilot:
            renderer = app.room_view
            renderer.show_placeholder(Placeholder.EMPTY)
            assert renderer.placeholder is Placeholder.EMPTY
            renderer.insert(make_message())
            await pilot.pause()
            assert renderer.placeholder is None

    @pytest.mark.asyncio
    async def test_error_placeholder_kept_on_insert(self):
        """Test that a history error stays visible while live messages arrive."""
        app = ChatApp(ClientConfig())
        async with app.run_test() as pilot:
            renderer = app.room_view
            renderer.show_placeholder(Placeholder.HISTORY_ERROR)
            renderer.insert(make_message())
            await pilot.pause()
            assert renderer.placeholder is Placeholder.HISTORY_ERROR

    @pytest.mark.asyncio
    async def test_clear_forgets_widgets(self):
        """Test that clear drops all tracked widgets."""
        app = ChatApp(ClientConfig())
        async with app.run_test() as pilot:
            renderer = app.room_view
            renderer.insert(make_message())
            renderer.clear()
            await pilot.pause()
            assert renderer.widgets == {}
            assert renderer.placeholder is None


@pytest.mark.asyncio
async def test_app_starts_on_login_screen():
    """Test that the app shows the login screen when mounted."""
    app = ChatApp(ClientConfig())
    async with app.run_test():
        assert app._current_screen == "login"
        assert app.query_one("#login-screen").display is True
        assert app.query_one("#chat-screen").display is False


@pytest.mark.asyncio
async def test_controller_errors_become_system_messages():
    """Test that errors reported by the controller are shown in the chat."""
    from roomchat.errors import ChannelError

    app = ChatApp(ClientConfig())
    async with app.run_test() as pilot:
        app._on_controller_error(ChannelError("Permission denied"))
        await pilot.pause()
        notices = list(app.query(SystemMessage))
        assert len(notices) == 1
        assert notices[0].message == "Permission denied"
        assert notices[0].message_type == "warning"


@pytest.mark.asyncio
async def test_failed_background_task_is_reported():
    """Test that a failing background task is logged and shown to the user."""
    app = ChatApp(ClientConfig())
    shown = []
    app._set_status = lambda text, message_type="info": shown.append(
        (text, message_type)
    )

    async def failing_switch():
        raise RuntimeError("switch exploded")

    async with app.run_test() as pilot:
        app._spawn(failing_switch())
        await pilot.pause()
        await pilot.pause()

    assert app._tasks == set()
    assert shown == [("Unexpected error: switch exploded", "error")]
