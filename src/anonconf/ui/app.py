"""
Conference Application UI

Main application class for the anonymous conference client terminal UI.
Built using the Textual framework.
"""

import asyncio
import logging
from typing import Optional

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
from textual.widgets import Button, Footer, Header, Input, Label, Static

from ..client import ConferenceClient
from ..config import ClientConfig
from ..errors import AnonConfError
from ..session import Message, SessionState

logger = logging.getLogger(__name__)

STATE_LABELS = {
    SessionState.DISCONNECTED: "[red]Disconnected, retrying...[/]",
    SessionState.CONNECTING: "[yellow]Connecting...[/]",
    SessionState.IDLE: "[green]Connected[/]",
    SessionState.AWAITING_CREATE: "[yellow]Creating conference...[/]",
    SessionState.AWAITING_JOIN: "[yellow]Joining conference...[/]",
    SessionState.IN_CONFERENCE: "[green]In conference[/]",
    SessionState.LEAVING: "[yellow]Leaving...[/]",
}


class MessageDisplay(Static):
    """Widget for displaying a single chat message."""

    def __init__(self, message: Message) -> None:
        """Initialize message display."""
        super().__init__()
        self.message = message

    def compose(self) -> ComposeResult:
        """Compose the message display."""
        timestamp = self.message.local_timestamp
        time_part = timestamp.split("T")[1][:8] if "T" in timestamp else ""
        prefix = "You" if self.message.is_own else self.message.sender_pseudonym
        prefix = escape(prefix)
        yield Static(
            f"[bold cyan]{prefix}[/] [dim]{time_part}[/]\n"
            f"{escape(self.message.payload)}",
            classes="message-content",
        )


class SystemMessage(Static):
    """Widget for displaying system messages and notifications."""

    def __init__(self, message: str, message_type: str = "info") -> None:
        """Initialize system message display."""
        self.message = message
        self.message_type = message_type
        super().__init__()

    def compose(self) -> ComposeResult:
        """Compose the system message."""
        color = {
            "info": "blue",
            "warning": "yellow",
            "error": "red",
            "success": "green",
        }.get(self.message_type, "white")
        yield Static(
            f"[{color}]{escape(self.message)}[/]", classes="system-message"
        )


class LobbyScreen(Container):
    """Screen for creating or joining a conference."""

    def compose(self) -> ComposeResult:
        """Compose the lobby screen."""
        yield Static(
            "[bold blue]Anonymous Conference[/]",
            id="title",
            classes="screen-title",
        )
        yield Static("", id="connection-status", classes="subtitle")
        with Horizontal(id="lobby-forms"):
            with Vertical(id="create-form", classes="lobby-form"):
                yield Static("[bold]Create a conference[/]")
                yield Label("Password:")
                yield Input(
                    placeholder="Conference password...",
                    password=True,
                    id="create-password-input",
                )
                yield Button("Create", id="create-btn", variant="primary")
            with Vertical(id="join-form", classes="lobby-form"):
                yield Static("[bold]Join a conference[/]")
                yield Label("Conference ID:")
                yield Input(
                    placeholder="e.g. 8845684583", id="conference-id-input"
                )
                yield Label("Password:")
                yield Input(
                    placeholder="Conference password...",
                    password=True,
                    id="join-password-input",
                )
                yield Button("Join", id="join-btn", variant="primary")
        yield Static("", id="lobby-status", classes="status-message")


class ConferenceScreen(Container):
    """Screen for chatting in a conference."""

    def compose(self) -> ComposeResult:
        """Compose the conference screen."""
        with Vertical(id="conference-main"):
            yield Static("", id="conference-header", classes="conference-header")
            yield ScrollableContainer(id="messages-container")
            with Horizontal(id="message-input-row"):
                yield Input(
                    placeholder="Type a message...",
                    id="message-input",
                )
                yield Button("Send", id="send-btn", variant="primary")
                yield Button(
                    "Leave", id="leave-conference-btn", variant="warning"
                )


class ConferenceApp(App):
    """Main conference application."""

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

    LobbyScreen {
        align: center middle;
    }

    #lobby-forms {
        height: auto;
        align: center middle;
    }

    .lobby-form {
        width: 40;
        height: auto;
        padding: 1;
        margin: 0 1;
        border: solid green;
    }

    .lobby-form Input {
        margin: 0 0 1 0;
    }

    .lobby-form Button {
        width: 100%;
    }

    .status-message {
        text-align: center;
        padding: 1;
    }

    ConferenceScreen {
        height: 100%;
    }

    #conference-main {
        height: 100%;
    }

    .conference-header {
        padding: 1;
        background: $surface;
        text-align: center;
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

    #message-input-row Button {
        margin: 0 0 0 1;
    }

    MessageDisplay {
        padding: 0 0 1 0;
    }

    .message-content {
        padding: 0 1;
    }

    .own-message .message-content {
        text-align: right;
    }

    SystemMessage {
        padding: 0 0 1 0;
    }

    .system-message {
        text-align: center;
        text-style: italic;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", show=True),
        Binding("escape", "leave_conference", "Leave", show=True),
    ]

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        client: Optional[ConferenceClient] = None,
    ) -> None:
        """
        Initialize the conference application.

        Args:
            config: Client settings, used when no client is given
            client: Pre-built client (for testing)
        """
        super().__init__()
        self.client = client or ConferenceClient(config)
        self._current_screen = "lobby"
        self._exiting = False

        self.client.set_on_message(self._on_message_received)
        self.client.set_on_state_change(self._on_state_change)
        self.client.set_on_restructuring(self._on_restructuring)
        self.client.set_on_server_error(self._on_server_error)

    def compose(self) -> ComposeResult:
        """Compose the main application layout."""
        yield Header()
        yield LobbyScreen(id="lobby-screen")
        yield ConferenceScreen(id="conference-screen")
        yield Footer()

    def on_mount(self) -> None:
        """Handle application mount."""
        self.title = "Anonymous Conference"
        self.sub_title = str(self.client.config.server_address)
        self._show_screen("lobby")
        self._update_connection_status()
        self.client.start()

    async def on_unmount(self) -> None:
        """Disconnect cleanly when the app exits."""
        self._exiting = True
        await self.client.stop()

    def _show_screen(self, screen_name: str) -> None:
        """Show a specific screen and hide others."""
        screens = {
            "lobby": "lobby-screen",
            "conference": "conference-screen",
        }

        for name, screen_id in screens.items():
            try:
                screen = self.query_one(f"#{screen_id}")
                screen.display = name == screen_name
            except NoMatches:
                pass

        self._current_screen = screen_name

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        """Handle button press events."""
        button_id = event.button.id

        if button_id == "create-btn":
            await self._handle_create_conference()
        elif button_id == "join-btn":
            await self._handle_join_conference()
        elif button_id == "send-btn":
            await self._handle_send_message()
        elif button_id == "leave-conference-btn":
            await self._handle_leave_conference()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        """Handle input submit events (Enter key)."""
        input_id = event.input.id

        if input_id == "message-input":
            await self._handle_send_message()
        elif input_id == "create-password-input":
            await self._handle_create_conference()
        elif input_id in ("conference-id-input", "join-password-input"):
            await self._handle_join_conference()

    async def _handle_create_conference(self) -> None:
        """Handle conference creation."""
        password_input = self.query_one("#create-password-input", Input)
        status = self.query_one("#lobby-status", Static)

        password = password_input.value
        if not password:
            status.update("[red]Please enter a conference password[/]")
            return

        try:
            status.update("[yellow]Creating conference...[/]")
            conference_id = await self.client.create_conference(password)
        except (AnonConfError, ValueError) as e:
            logger.error("Failed to create conference: %s", e)
            status.update(f"[red]Error: {escape(str(e))}[/]")
            return

        password_input.value = ""
        status.update("")
        await self._enter_conference_screen(
            f"Conference created: {conference_id}"
        )

    async def _handle_join_conference(self) -> None:
        """Handle joining a conference."""
        id_input = self.query_one("#conference-id-input", Input)
        password_input = self.query_one("#join-password-input", Input)
        status = self.query_one("#lobby-status", Static)

        id_text = id_input.value.strip()
        password = password_input.value
        if not id_text.isdigit():
            status.update("[red]Please enter a numeric conference ID[/]")
            return
        if not password:
            status.update("[red]Please enter a conference password[/]")
            return

        try:
            status.update("[yellow]Joining conference...[/]")
            await self.client.join_conference(int(id_text), password)
        except (AnonConfError, ValueError) as e:
            logger.error("Failed to join conference: %s", e)
            status.update(f"[red]Failed to join: {escape(str(e))}[/]")
            return

        id_input.value = ""
        password_input.value = ""
        status.update("")
        await self._enter_conference_screen(f"Joined conference: {id_text}")

    async def _handle_leave_conference(self) -> None:
        """Handle leaving the current conference."""
        if self.client.session.in_conference:
            try:
                await self.client.leave_conference()
            except AnonConfError as e:
                logger.warning("Failed to leave conference: %s", e)
        await self._return_to_lobby()

    async def _handle_send_message(self) -> None:
        """Handle sending a message."""
        message_input = self.query_one("#message-input", Input)
        content = message_input.value

        if not content.strip():
            return

        try:
            await self.client.send_message(content)
            message_input.value = ""
        except AnonConfError as e:
            logger.error("Failed to send message: %s", e)
            self._add_system_message(f"Failed to send message: {e}", "error")

    async def _enter_conference_screen(self, notice: str) -> None:
        messages = self.query_one("#messages-container", ScrollableContainer)
        await messages.remove_children()
        self._show_screen("conference")
        self._update_conference_header()
        self._add_system_message(notice, "success")
        self.query_one("#message-input", Input).focus()

    async def _return_to_lobby(self, notice: str = "") -> None:
        try:
            messages = self.query_one(
                "#messages-container", ScrollableContainer
            )
            await messages.remove_children()
        except NoMatches:
            pass
        self._show_screen("lobby")
        try:
            self.query_one("#lobby-status", Static).update(notice)
        except NoMatches:
            pass

    def _update_conference_header(self) -> None:
        """Update the conference screen with current conference info."""
        session = self.client.session
        pseudonym = escape(session.pseudonym or "")
        try:
            header = self.query_one("#conference-header", Static)
            header.update(
                f"[bold]Conference: {session.conference_id}[/] "
                f"| You are [cyan]{pseudonym}[/] "
                f"| Peers: {session.peer_count or '?'}"
            )
        except NoMatches:
            pass

    def _update_connection_status(self) -> None:
        try:
            status = self.query_one("#connection-status", Static)
            status.update(
                f"{self.client.config.server_address}: "
                f"{STATE_LABELS[self.client.state]}"
            )
        except NoMatches:
            pass

    def _on_message_received(self, message: Message) -> None:
        """Callback when a message is ready to display."""
        self.call_later(lambda m=message: self._add_chat_message(m))

    def _on_state_change(
        self, old_state: SessionState, new_state: SessionState
    ) -> None:
        """Callback when the session state changes."""
        if self._exiting:
            return
        self.call_later(self._update_connection_status)
        if (
            old_state is SessionState.IN_CONFERENCE
            and new_state is SessionState.DISCONNECTED
        ):
            asyncio.create_task(
                self._return_to_lobby(
                    "[red]Connection lost. You have left the conference.[/]"
                )
            )

    def _on_restructuring(self, conference_id: int, peer_count: int) -> None:
        """Callback when the participant count of the conference changes."""
        self.call_later(self._update_conference_header)
        self.call_later(
            lambda n=peer_count: self._add_system_message(
                f"Conference now has {n} participants", "info"
            )
        )

    def _on_server_error(self, reason: str, detail: Optional[str]) -> None:
        """Callback when the server refuses something sent in the conference."""
        text = f"Server rejected the message: {reason}"
        if detail:
            text += f" ({detail})"
        self.call_later(lambda t=text: self._add_system_message(t, "error"))

    def _add_chat_message(self, message: Message) -> None:
        """Add a chat message to the display."""
        try:
            messages = self.query_one(
                "#messages-container", ScrollableContainer
            )
            msg_widget = MessageDisplay(message)
            if message.is_own:
                msg_widget.add_class("own-message")
            messages.mount(msg_widget)
            messages.scroll_end()
        except NoMatches:
            pass

    def _add_system_message(
        self, message: str, message_type: str = "info"
    ) -> None:
        """Add a system message to the display."""
        try:
            messages = self.query_one(
                "#messages-container", ScrollableContainer
            )
            messages.mount(SystemMessage(message, message_type))
            messages.scroll_end()
        except NoMatches:
            pass

    def action_leave_conference(self) -> None:
        """Handle leave action."""
        if self._current_screen == "conference":
            asyncio.create_task(self._handle_leave_conference())
