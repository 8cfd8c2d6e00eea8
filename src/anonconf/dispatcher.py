"""
Message Dispatcher

Turns chat traffic into Messages for the presentation layer.

Inbound:
    Chat frames are delivered at most once per (sender, sequence_number).
    Anything at or below the highest sequence number already delivered
    for a sender is a duplicate, which also drops the server's echo of
    this client's own messages.

Outbound:
    Text is validated, stamped with the next local sequence number and
    handed to the state machine for sending. The local echo is delivered
    immediately, flagged as the client's own message.

All tracking is scoped to one conference and reset whenever the session
enters or leaves IN_CONFERENCE.

Usage:
    dispatcher = MessageDispatcher(machine)
    dispatcher.set_on_message(display)
    await dispatcher.enqueue("hello")
"""

import logging
from typing import Callable, Dict, Optional

from .errors import InvalidMessageError, NotInConferenceError
from .schemas import ChatMessage
from .session import Message, Session, SessionState
from .state_machine import SessionStateMachine
from .validation import validate_message_content

logger = logging.getLogger(__name__)


class MessageDispatcher:
    """
    At-most-once delivery of chat messages for the active conference.

    Attributes:
        duplicates_dropped: Inbound frames dropped as already delivered
    """

    def __init__(self, machine: SessionStateMachine):
        """
        Initialize the dispatcher and attach it to a state machine.

        Args:
            machine: State machine that owns the session
        """
        self._machine = machine
        self._highest_delivered: Dict[str, int] = {}
        self._next_sequence = 1
        self._on_message: Optional[Callable[[Message], None]] = None
        self.duplicates_dropped = 0

        machine.set_on_chat_message(self.receive)
        machine.add_state_listener(self._on_state_change)

    @property
    def next_sequence(self) -> int:
        """Sequence number the next outbound message will carry."""
        return self._next_sequence

    def set_on_message(self, callback: Callable[[Message], None]) -> None:
        """
        Register callback for messages ready to display.

        Args:
            callback: Function that receives each delivered Message
        """
        self._on_message = callback

    def highest_delivered(self, pseudonym: str) -> int:
        """Highest sequence number delivered from a sender (0 if none)."""
        return self._highest_delivered.get(pseudonym, 0)

    def reset(self) -> None:
        """Forget all per-conference tracking."""
        self._highest_delivered.clear()
        self._next_sequence = 1

    def receive(self, frame: ChatMessage) -> None:
        """
        Handle an inbound chat frame for the active conference.

        Args:
            frame: Chat frame read from the server
        """
        session = self._machine.session
        sender = frame.sender_pseudonym
        if frame.sequence_number <= self.highest_delivered(sender):
            self.duplicates_dropped += 1
            logger.debug(
                "Duplicate message ignored: %s #%d",
                sender,
                frame.sequence_number,
            )
            return

        self._highest_delivered[sender] = frame.sequence_number
        self._deliver(
            Message(
                conference_id=session.conference_id,
                sender_pseudonym=sender,
                sequence_number=frame.sequence_number,
                payload=frame.payload,
                is_own=sender == session.pseudonym,
            )
        )

    async def enqueue(self, text: str) -> Message:
        """
        Send a chat message to the active conference.

        Args:
            text: Message content

        Returns:
            The Message as delivered to the local display

        Raises:
            InvalidMessageError: If the content fails validation
            NotInConferenceError: If no conference is active
            SendError: If the connection fails while sending
        """
        is_valid, error = validate_message_content(text)
        if not is_valid:
            raise InvalidMessageError(error)
        if not self._machine.session.in_conference:
            raise NotInConferenceError()

        sent: Dict[str, Message] = {}

        def prepare(session: Session) -> ChatMessage:
            sequence_number = self._next_sequence
            self._next_sequence += 1
            # Recorded before sending so the server's echo is a duplicate
            self._highest_delivered[session.pseudonym] = sequence_number
            sent["message"] = Message(
                conference_id=session.conference_id,
                sender_pseudonym=session.pseudonym,
                sequence_number=sequence_number,
                payload=text,
                is_own=True,
            )
            return ChatMessage(
                sender_pseudonym=session.pseudonym,
                sequence_number=sequence_number,
                payload=text,
            )

        await self._machine.send_chat(prepare)
        message = sent["message"]
        logger.debug("Sent message #%d", message.sequence_number)
        self._deliver(message)
        return message

    def _deliver(self, message: Message) -> None:
        if self._on_message:
            self._on_message(message)

    def _on_state_change(
        self, old_state: SessionState, new_state: SessionState
    ) -> None:
        if SessionState.IN_CONFERENCE in (old_state, new_state):
            self.reset()
