"""
Chat Application UI

Main application class for the chat client terminal UI.
Built using the Textual framework.

The UI is glue around the room controller: it logs in, lists rooms,
and hands room selections to the controller, which drives the message
view through TextualRenderer.
"""

import asyncio
import logging
from typing import Dict, Optional, Set

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import (
    Container,
    Horizontal,
    Vertical,
    ScrollableContainer,
)
from textual.css.query import NoMatches
from textual.widgets import (
    Button,
    DataTable,
    Footer,
    Header,
    Input,
    Label,
    Static,
)

from ..config import ClientConfig
from ..controller import RoomController
from ..errors import AuthRejected, ChatClientError
from ..identity import DisplayIdentity, parse_identity, resolve
from ..renderer import PLACEHOLDER_TEXT, Placeholder
from ..rest import RestClient
from ..schemas.message import Message
from ..schemas.room import RoomInfo

logger = logging.getLogger(__name__)

HELP_TEXT = "Commands: /edit <id> <text>, /delete <id>, /invite"


class MessageDisplay(Static):
    """Widget for displaying a single chat message."""

    def __init__(
        self,
        message: Message,
        identity: DisplayIdentity,
        is_own_message: bool = False,
    ) -> None:
        """Initialize message display."""
        self.msg_identity = identity
        self.msg_username = message.author
        self.msg_content = message.content
        self.msg_time = message.display_time
        self.is_own_message = is_own_message
        self.edited = message.edited
        super().__init__(self._markup(), classes="message-content")
        if is_own_message:
            self.add_class("own-message")

    def set_content(self, content: str) -> None:
        """Replace the message text and mark it edited."""
        self.msg_content = content
        self.edited = True
        self.update(self._markup())

    def _markup(self) -> str:
        prefix = "You" if self.is_own_message else escape(self.msg_username)
        suffix = " [dim](edited)[/]" if self.edited else ""
        return (
            f"[bold cyan]{prefix}[/] [dim]{self.msg_time} "
            f"{escape(str(self.msg_identity))}[/]\n"
            f"{escape(self.msg_content)}{suffix}"
        )


class SystemMessage(Static):
    """Widget for displaying system messages and notifications."""

    def __init__(self, message: str, message_type: str = "info") -> None:
        """Initialize system message display."""
        self.message = message
        self.message_type = message_type
        color = {
            "info": "blue",
            "warning": "yellow",
            "error": "red",
            "success": "green",
        }.get(message_type, "white")
        super().__init__(
            f"[{color}]{escape(message)}[/]", classes="system-message"
        )


class LoginScreen(Container):
    """Screen for logging in or signing up."""

    def compose(self) -> ComposeResult:
        """Compose the login screen."""
        yield Static(
            "[bold blue]Room Chat[/]",
            id="title",
            classes="screen-title",
        )
        yield Static("Log in or create an account:", classes="subtitle")
        with Vertical(id="login-form"):
            yield Label("Username:")
            yield Input(placeholder="Enter your username...", id="username-input")
            yield Label("Password:")
            yield Input(
                placeholder="Enter your password...",
                password=True,
                id="password-input",
            )
            with Horizontal(classes="button-row"):
                yield Button("Log in", id="login-btn", variant="primary")
                yield Button("Sign up", id="signup-btn", variant="default")
        yield Static("", id="login-status", classes="status-message")


class ChatScreen(Container):
    """Screen with the room list and the active room's messages."""

    def compose(self) -> ComposeResult:
        """Compose the chat screen."""
        with Horizontal(id="chat-container"):
            with Vertical(id="sidebar"):
                yield Static("", id="user-header", classes="sidebar-header")
                yield DataTable(id="room-table")
                yield Input(placeholder="New room name...", id="room-name-input")
                yield Input(placeholder="Invite code...", id="invite-input")
                with Horizontal(classes="button-row"):
                    yield Button("Refresh", id="refresh-btn", variant="default")
                    yield Button("Log out", id="logout-btn", variant="warning")
            with Vertical(id="chat-main"):
                yield Static(
                    "Select a room to start chatting",
                    id="room-header",
                    classes="room-header",
                )
                yield Static("", id="placeholder", classes="placeholder")
                yield ScrollableContainer(id="messages-container")
                with Horizontal(id="message-input-row"):
                    yield Input(placeholder="Type a message...", id="message-input")
                    yield Button("Send", id="send-btn", variant="primary")
                yield Static(HELP_TEXT, id="chat-status", classes="status-message")


class TextualRenderer:
    """
    Renderer that draws the active room into the chat screen.

    Widgets are keyed by display identity so edits and deletes touch a
    single widget.
    """

    def __init__(self, app: "ChatApp") -> None:
        self.app = app
        self.widgets: Dict[DisplayIdentity, MessageDisplay] = {}
        self.placeholder: Optional[Placeholder] = None

    def insert(self, message: Message) -> None:
        """Append a message widget."""
        if self.placeholder in (Placeholder.LOADING, Placeholder.EMPTY):
            self._hide_placeholder()
        identity = resolve(message)
        widget = MessageDisplay(
            message,
            identity,
            is_own_message=message.author == self.app.username,
        )
        self.widgets[identity] = widget
        try:
            container = self.app.query_one(
                "#messages-container", ScrollableContainer
            )
            container.mount(widget)
            container.scroll_end(animate=False)
        except NoMatches:
            pass

    def update(self, identity: DisplayIdentity, content: str) -> None:
        """Update the widget for an identity."""
        widget = self.widgets.get(identity)
        if widget is not None:
            widget.set_content(content)

    def remove(self, identity: DisplayIdentity) -> None:
        """Remove the widget for an identity."""
        widget = self.widgets.pop(identity, None)
        if widget is not None:
            widget.remove()

    def clear(self) -> None:
        """Remove all message widgets and the placeholder."""
        self.widgets.clear()
        self._hide_placeholder()
        try:
            container = self.app.query_one(
                "#messages-container", ScrollableContainer
            )
            container.remove_children()
        except NoMatches:
            pass

    def show_placeholder(self, kind: Placeholder) -> None:
        """Show a transient state above the message list."""
        self.placeholder = kind
        try:
            placeholder = self.app.query_one("#placeholder", Static)
            placeholder.update(PLACEHOLDER_TEXT[kind])
            placeholder.display = True
        except NoMatches:
            pass

    def _hide_placeholder(self) -> None:
        self.placeholder = None
        try:
            placeholder = self.app.query_one("#placeholder", Static)
            placeholder.update("")
            placeholder.display = False
        except NoMatches:
            pass


class ChatApp(App):
    """Main chat application."""

    CSS = """
    Screen {
        layout: vertical;
    }

    .screen-title {
        text-align: center;
        padding: 1 0;
        text-style: bold;
    }

    .subtitle {
        text-align: center;
        padding: 0 0 1 0;
    }

    LoginScreen {
        align: center middle;
    }

    #login-form {
        align: center middle;
        padding: 2;
        width: 60;
        height: auto;
    }

    #login-form Input {
        margin: 0 0 1 0;
    }

    .button-row {
        height: 3;
        margin: 1 0 0 0;
    }

    .button-row Button {
        margin: 0 1 0 0;
    }

    .status-message {
        text-align: center;
        padding: 1;
    }

    ChatScreen {
        height: 100%;
    }

    #chat-container {
        height: 100%;
    }

    #sidebar {
        width: 1fr;
        border-right: solid $primary;
        padding: 0 1;
    }

    .sidebar-header {
        padding: 1 0;
        text-align: center;
    }

    #room-table {
        height: 1fr;
    }

    #chat-main {
        width: 3fr;
    }

    .room-header {
        padding: 1;
        background: $surface;
        text-align: center;
    }

    .placeholder {
        padding: 1;
        text-align: center;
        text-style: italic;
    }

    #messages-container {
        height: 1fr;
        padding: 1;
    }

    #message-input-row {
        height: 3;
        padding: 0 1;
    }

    #message-input {
        width: 1fr;
    }

    #send-btn {
        margin: 0 0 0 1;
    }

    MessageDisplay {
        padding: 0 1 1 1;
    }

    .own-message {
        text-align: right;
    }

    .system-message {
        text-align: center;
        text-style: italic;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", show=True),
        Binding("ctrl+r", "refresh_rooms", "Refresh", show=True),
    ]

    def __init__(self, config: Optional[ClientConfig] = None) -> None:
        """Initialize the chat application."""
        super().__init__()
        self.client_config = config or ClientConfig.from_env()
        self.rest: Optional[RestClient] = None
        self.controller: Optional[RoomController] = None
        self.room_view = TextualRenderer(self)
        self.username: Optional[str] = None
        self._current_screen = "login"
        self._rooms: Dict[str, RoomInfo] = {}
        self._tasks: Set[asyncio.Task] = set()

    def compose(self) -> ComposeResult:
        """Compose the main application layout."""
        yield Header()
        yield LoginScreen(id="login-screen")
        yield ChatScreen(id="chat-screen")
        yield Footer()

    def on_mount(self) -> None:
        """Handle application mount."""
        self._show_screen("login")

    def _show_screen(self, screen_name: str) -> None:
        """Show a specific screen and hide others."""
        screens = {"login": "login-screen", "chat": "chat-screen"}

        for name, screen_id in screens.items():
            try:
                screen = self.query_one(f"#{screen_id}")
                screen.display = name == screen_name
            except NoMatches:
                pass

        self._current_screen = screen_name

    def _spawn(self, coro) -> None:
        """Run a coroutine without blocking the message loop."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        """Forget a finished background task and surface its failure."""
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Background task failed: %s", error, exc_info=error)
            self._set_status(f"Unexpected error: {error}", "error")

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        """Handle button press events."""
        button_id = event.button.id

        if button_id == "login-btn":
            await self._handle_login()
        elif button_id == "signup-btn":
            await self._handle_signup()
        elif button_id == "logout-btn":
            await self._handle_logout()
        elif button_id == "refresh-btn":
            await self._refresh_rooms()
        elif button_id == "send-btn":
            await self._handle_message_input()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        """Handle input submit events (Enter key)."""
        input_id = event.input.id

        if input_id == "message-input":
            await self._handle_message_input()
        elif input_id in ("username-input", "password-input"):
            await self._handle_login()
        elif input_id == "room-name-input":
            await self._handle_create_room()
        elif input_id == "invite-input":
            await self._handle_accept_invite()

    async def on_data_table_row_selected(
        self, event: DataTable.RowSelected
    ) -> None:
        """Handle room selection from table."""
        if event.row_key and event.row_key.value in self._rooms:
            self._select_room(self._rooms[event.row_key.value])

    def _credentials(self):
        username = self.query_one("#username-input", Input).value.strip()
        password = self.query_one("#password-input", Input).value.strip()
        return username, password

    async def _handle_login(self) -> None:
        """Handle logging in."""
        status = self.query_one("#login-status", Static)
        username, password = self._credentials()
        if not username or not password:
            status.update("[red]Please enter a username and password[/]")
            return

        status.update("[yellow]Logging in...[/]")
        rest = RestClient(self.client_config.api_base_url)
        try:
            context = await rest.login(username, password)
        except ChatClientError as e:
            await rest.close()
            logger.error("Login failed: %s", e)
            status.update(f"[red]{escape(str(e))}[/]")
            return

        self.rest = rest
        self.username = context.username
        self.controller = RoomController(
            context, rest, self.room_view, self.client_config
        )
        self.controller.set_on_error(self._on_controller_error)

        self.query_one("#password-input", Input).value = ""
        status.update("")
        self.query_one("#user-header", Static).update(
            f"[bold]{escape(context.username)}[/]"
        )
        self._show_screen("chat")
        await self._refresh_rooms()

    async def _handle_signup(self) -> None:
        """Handle account registration."""
        status = self.query_one("#login-status", Static)
        username, password = self._credentials()
        if not username or not password:
            status.update("[red]Please enter a username and password[/]")
            return

        rest = RestClient(self.client_config.api_base_url)
        try:
            await rest.signup(username, password)
            status.update("[green]Signup successful! Please log in.[/]")
        except ChatClientError as e:
            logger.error("Signup failed: %s", e)
            status.update(f"[red]{escape(str(e))}[/]")
        finally:
            await rest.close()

    async def _handle_logout(self) -> None:
        """Tear down the room session and return to the login screen."""
        if self.controller:
            await self.controller.shutdown()
            self.controller = None
        if self.rest:
            self.rest.logout()
            await self.rest.close()
            self.rest = None

        self.username = None
        self._rooms = {}
        self.query_one("#room-header", Static).update(
            "Select a room to start chatting"
        )
        self._show_screen("login")

    async def _refresh_rooms(self) -> None:
        """Refresh the room list."""
        if not self.rest:
            return

        table = self.query_one("#room-table", DataTable)
        try:
            rooms = await self.rest.list_rooms()
        except ChatClientError as e:
            logger.error("Failed to refresh rooms: %s", e)
            self._set_status(f"Could not load rooms: {e}", "error")
            return

        self._rooms = {room.room_id: room for room in rooms}
        table.clear(columns=True)
        table.add_columns("Rooms")
        table.cursor_type = "row"
        for room in rooms:
            table.add_row(room.name, key=room.room_id)

        if not rooms:
            self._set_status("No rooms yet. Create one or use an invite.", "info")

    def _add_room(self, room: RoomInfo) -> None:
        if room.room_id in self._rooms:
            return
        self._rooms[room.room_id] = room
        table = self.query_one("#room-table", DataTable)
        if not table.columns:
            table.add_columns("Rooms")
            table.cursor_type = "row"
        table.add_row(room.name, key=room.room_id)

    async def _handle_create_room(self) -> None:
        """Handle room creation."""
        if not self.rest:
            return
        name_input = self.query_one("#room-name-input", Input)
        name = name_input.value.strip()
        if not name:
            return
        try:
            room = await self.rest.create_room(name)
        except (ChatClientError, ValueError) as e:
            logger.error("Failed to create room: %s", e)
            self._set_status(f"Could not create room: {e}", "error")
            return
        name_input.value = ""
        self._add_room(room)
        self._set_status(f"Room '{room.name}' created", "success")

    async def _handle_accept_invite(self) -> None:
        """Join a room with an invite code and open it."""
        if not self.rest:
            return
        invite_input = self.query_one("#invite-input", Input)
        code = invite_input.value.strip()
        if not code:
            return
        try:
            room = await self.rest.accept_invite(code)
        except (ChatClientError, ValueError) as e:
            logger.error("Failed to accept invite: %s", e)
            self._set_status(f"Could not use invite: {e}", "error")
            return
        invite_input.value = ""
        self._add_room(room)
        self._select_room(room)

    def _select_room(self, room: RoomInfo) -> None:
        """Hand a room selection to the controller without waiting."""
        if not self.controller:
            return
        self.query_one("#room-header", Static).update(
            f"[bold]Room: {escape(room.name)}[/]"
        )
        self._spawn(self.controller.switch_room(room))

    async def _handle_message_input(self) -> None:
        """Send a message or run a /command."""
        if not self.controller or not self.controller.active_room:
            return
        message_input = self.query_one("#message-input", Input)
        text = message_input.value.strip()
        if not text:
            return

        try:
            if text.startswith("/"):
                await self._run_command(text)
            else:
                await self.controller.send_message(text)
            message_input.value = ""
        except (ChatClientError, ValueError) as e:
            logger.error("Failed to send: %s", e)
            self._set_status(str(e), "error")

    async def _run_command(self, text: str) -> None:
        command, _, rest = text.partition(" ")
        command = command.lower()

        if command == "/edit":
            target, _, new_content = rest.strip().partition(" ")
            await self.controller.edit_message(parse_identity(target), new_content)
        elif command == "/delete":
            await self.controller.delete_message(parse_identity(rest))
        elif command == "/invite":
            invite = await self.rest.create_invite(
                self.controller.active_room.room_id
            )
            self._set_status(f"Invite code: {invite.code}", "success")
        else:
            raise ValueError(f"Unknown command. {HELP_TEXT}")

    def _on_controller_error(self, error: ChatClientError) -> None:
        """Callback for user-visible controller errors."""
        if isinstance(error, AuthRejected):
            self._add_system_message(f"Session rejected: {error}", "error")
        else:
            self._add_system_message(str(error), "warning")

    def _add_system_message(self, text: str, message_type: str = "info") -> None:
        """Add a system message to the message list."""
        try:
            messages = self.query_one("#messages-container", ScrollableContainer)
            messages.mount(SystemMessage(text, message_type))
            messages.scroll_end(animate=False)
        except NoMatches:
            pass

    def _set_status(self, text: str, message_type: str = "info") -> None:
        color = {
            "info": "blue",
            "error": "red",
            "success": "green",
        }.get(message_type, "white")
        try:
            status = self.query_one("#chat-status", Static)
            status.update(f"[{color}]{escape(text)}[/]")
        except NoMatches:
            pass

    def action_refresh_rooms(self) -> None:
        """Handle refresh rooms action."""
        if self._current_screen == "chat":
            self._spawn(self._refresh_rooms())

    async def action_quit(self) -> None:
        """Close the room session before quitting."""
        await self._handle_logout()
        self.exit()
