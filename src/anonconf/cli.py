"""
Line-Based Front End

A minimal terminal front end: commands and chat messages are read one line
at a time, events are printed as they happen.

Commands:
    /create <password>          Create a conference and enter it
    /join <id> <password>       Join an existing conference
    /leave                      Leave the current conference
    /exit                       Disconnect and quit
    anything else               Send as a chat message

Output lines are prefixed [SYSTEM]:, [YOU]: or [<pseudonym>]:.
"""

import logging
from typing import Awaitable, Callable, Optional

import aioconsole

from .client import ConferenceClient
from .errors import AnonConfError
from .session import Message, SessionState

logger = logging.getLogger(__name__)


class ConferenceCli:
    """
    Read-eval-print loop over a ConferenceClient.

    Attributes:
        client: Session engine driven by this front end
    """

    def __init__(
        self,
        client: ConferenceClient,
        output: Callable[[str], None] = print,
        read_line: Optional[Callable[[str], Awaitable[str]]] = None,
    ):
        """
        Initialize the front end.

        Args:
            client: Session engine to drive
            output: Line printer (for testing)
            read_line: Async line reader (defaults to aioconsole.ainput)
        """
        self.client = client
        self._output = output
        self._read_line = read_line or aioconsole.ainput
        self._exiting = False

        client.set_on_message(self._on_message)
        client.set_on_state_change(self._on_state_change)
        client.set_on_restructuring(self._on_restructuring)
        client.set_on_server_error(self._on_server_error)

    async def run(self) -> None:
        """Start the session and process input until /exit or EOF."""
        self.client.start()
        self.print_system(
            f"Connecting to {self.client.config.server_address}..."
        )
        try:
            while True:
                try:
                    line = await self._read_line("")
                except EOFError:
                    break
                if not await self.process_input(line):
                    break
        finally:
            self._exiting = True
            await self.client.stop()

    async def process_input(self, line: str) -> bool:
        """
        Handle one line of input.

        Returns:
            False when the user asked to exit, True otherwise
        """
        text = line.strip()
        if not text:
            return True

        if not text.startswith("/"):
            await self._send(text)
            return True

        words = text[1:].split()
        command = words[0] if words else ""
        args = words[1:]

        if command == "create":
            await self._create(args)
        elif command == "join":
            await self._join(args)
        elif command == "leave":
            await self._leave()
        elif command == "exit":
            return False
        else:
            self.print_system(f"Unknown command: /{command}")
        return True

    async def _create(self, args) -> None:
        if len(args) != 1:
            self.print_system("Usage: /create <conference password>")
            return
        try:
            conference_id = await self.client.create_conference(args[0])
        except (AnonConfError, ValueError) as e:
            self.print_system(f"Failed to create conference: {e}")
            return
        self.print_system(f"Conference created: {conference_id}")

    async def _join(self, args) -> None:
        if self.client.session.in_conference:
            self.print_system("You are already in a conference. Leave it first.")
            return
        if len(args) != 2:
            self.print_system(
                "Usage: /join <conference id> <conference password>"
            )
            return
        if not args[0].isdigit():
            self.print_system("Invalid conference id")
            return

        conference_id = int(args[0])
        try:
            await self.client.join_conference(conference_id, args[1])
        except (AnonConfError, ValueError) as e:
            self.print_system(f"Failed to join conference {conference_id}: {e}")
            return
        self.print_system(
            f"Joined conference: {conference_id} "
            f"({self.client.session.peer_count} peers)"
        )

    async def _leave(self) -> None:
        conference_id = self.client.session.conference_id
        if not self.client.session.in_conference:
            self.print_system("You are not in a conference.")
            return
        try:
            await self.client.leave_conference()
        except AnonConfError as e:
            self.print_system(f"Failed to leave conference: {e}")
            return
        self.print_system(f"Left conference: {conference_id}")

    async def _send(self, text: str) -> None:
        if not self.client.session.in_conference:
            self.print_system("You are not in a conference.")
            return
        try:
            await self.client.send_message(text)
        except AnonConfError as e:
            self.print_system(f"Failed to send message: {e}")

    def print_system(self, message: str) -> None:
        self._output(f"[SYSTEM]: {message}")

    def _on_message(self, message: Message) -> None:
        if message.is_own:
            self._output(f"[YOU]: {message.payload}")
        else:
            self._output(f"[{message.sender_pseudonym}]: {message.payload}")

    def _on_state_change(
        self, old_state: SessionState, new_state: SessionState
    ) -> None:
        if self._exiting:
            return
        if new_state is SessionState.IDLE and old_state is SessionState.CONNECTING:
            self.print_system(f"Connected to {self.client.config.server_address}")
        elif new_state is SessionState.DISCONNECTED and old_state not in (
            SessionState.CONNECTING,
            SessionState.DISCONNECTED,
        ):
            if old_state is SessionState.IN_CONFERENCE:
                self.print_system("Connection lost. You have left the conference.")
            else:
                self.print_system("Connection lost. Reconnecting...")

    def _on_restructuring(self, conference_id: int, peer_count: int) -> None:
        self.print_system(f"Conference restructuring: now has {peer_count} peers")

    def _on_server_error(self, reason: str, detail: Optional[str]) -> None:
        if detail:
            reason = f"{reason} ({detail})"
        self.print_system(f"(!server rejected the message!) {reason}")
