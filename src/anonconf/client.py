"""
Conference Client

Wires the session engine together and gives front ends one object to talk
to: the state machine (connection lifecycle), the message dispatcher (chat
delivery) and the conference controller (user operations).

Usage:
    client = ConferenceClient(ClientConfig.from_env())
    client.set_on_message(display)
    client.start()
    conference_id = await client.create_conference("secret")
    await client.send_message("hello")
    await client.stop()
"""

import logging
from typing import Callable, Optional

from .conference import ConferenceController
from .config import ClientConfig
from .dispatcher import MessageDispatcher
from .retry import RetryScheduler
from .session import Message, Session, SessionState
from .state_machine import SessionStateMachine
from .transport import TransportConnection

logger = logging.getLogger(__name__)


class ConferenceClient:
    """
    Client session engine for one server.

    Attributes:
        config: Settings the client was built from
        machine: Session state machine
        dispatcher: Chat message dispatcher
        controller: Conference operations
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        websocket_factory: Optional[Callable] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Client settings (defaults if omitted)
            websocket_factory: Optional factory for creating WebSocket
                             connections (for dependency injection/testing)
        """
        self.config = config or ClientConfig()

        def transport_factory() -> TransportConnection:
            return TransportConnection(
                websocket_factory=websocket_factory,
                connect_timeout=self.config.connect_timeout,
            )

        retry = RetryScheduler(
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
            multiplier=self.config.retry_multiplier,
            jitter=self.config.retry_jitter,
        )
        self.machine = SessionStateMachine(
            self.config.server_address,
            transport_factory=transport_factory,
            retry=retry,
            request_timeout=self.config.request_timeout,
        )
        self.dispatcher = MessageDispatcher(self.machine)
        self.controller = ConferenceController(
            self.machine, self.dispatcher, kdf=self.config.kdf
        )

        logger.info(
            "ConferenceClient initialized for server: %s",
            self.config.server_address,
        )

    @property
    def session(self) -> Session:
        """Current session (read only for callers)."""
        return self.machine.session

    @property
    def state(self) -> SessionState:
        return self.machine.state

    def start(self) -> None:
        """Start connecting to the server in the background."""
        self.machine.start()

    async def stop(self) -> None:
        """Disconnect from the server and stop reconnecting."""
        await self.machine.stop()

    async def create_conference(self, password: str) -> int:
        return await self.controller.create_conference(password)

    async def join_conference(self, conference_id: int, password: str) -> str:
        return await self.controller.join_conference(conference_id, password)

    async def leave_conference(self) -> None:
        await self.controller.leave_conference()

    async def send_message(self, text: str) -> Message:
        return await self.controller.send_message(text)

    def set_on_message(self, callback: Callable[[Message], None]) -> None:
        """
        Register callback for messages ready to display.

        Args:
            callback: Function that receives each delivered Message
        """
        self.dispatcher.set_on_message(callback)

    def set_on_state_change(
        self, callback: Callable[[SessionState, SessionState], None]
    ) -> None:
        """
        Register callback for session state changes.

        Args:
            callback: Function that receives (old_state, new_state)
        """
        self.machine.add_state_listener(callback)

    def set_on_restructuring(self, callback: Callable[[int, int], None]) -> None:
        """
        Register callback for participant count changes.

        Args:
            callback: Function that receives (conference_id, peer_count)
        """
        self.machine.set_on_restructuring(callback)

    def set_on_server_error(
        self, callback: Callable[[str, Optional[str]], None]
    ) -> None:
        """
        Register callback for server errors outside any request, such as a
        rejected chat message.

        Args:
            callback: Function that receives (reason, detail)
        """
        self.machine.set_on_server_error(callback)
