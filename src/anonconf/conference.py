"""
Conference Controller

User-facing conference operations: create, join, leave and send. Each
operation is a short script over the state machine; the controller derives
password proofs and picks the creator's pseudonym, while the state machine
decides whether the operation is allowed and commits the result.

Join Flow:
    JoinSaltRequest -> JoinSaltResponse (salt)
    JoinConferenceRequest(hash(password, salt)) -> JoinConferenceResponse
    Both exchanges share one PendingRequest and one deadline.
"""

import logging
from typing import Callable

from .credentials import KdfParams, derive_password_hash, new_pseudonym, new_salt
from .dispatcher import MessageDispatcher
from .schemas import (
    CreateConferenceRequest,
    CreateConferenceResponse,
    JoinConferenceRequest,
    JoinConferenceResponse,
    JoinSaltRequest,
    JoinSaltResponse,
)
from .session import Message, RequestKind
from .state_machine import SessionStateMachine
from .validation import validate_conference_id

logger = logging.getLogger(__name__)


class ConferenceController:
    """Create, join and leave conferences and send messages to them."""

    def __init__(
        self,
        machine: SessionStateMachine,
        dispatcher: MessageDispatcher,
        kdf: KdfParams = KdfParams(),
        pseudonym_factory: Callable[[], str] = new_pseudonym,
    ):
        self._machine = machine
        self._dispatcher = dispatcher
        self._kdf = kdf
        self._pseudonym_factory = pseudonym_factory

    async def create_conference(self, password: str) -> int:
        """
        Create a conference protected by a password and enter it.

        Args:
            password: Conference password; only its Argon2id proof is sent

        Returns:
            The conference id assigned by the server

        Raises:
            ValueError: If the password is empty
            ConferenceError: NOT_CONNECTED, ALREADY_IN_CONFERENCE,
                             REQUEST_PENDING, TIMEOUT or a server error
        """
        if not password:
            raise ValueError("Conference password must not be empty")
        self._machine.ensure_can_request()

        salt = new_salt()
        password_hash = await derive_password_hash(password, salt, self._kdf)
        pending = await self._machine.submit(
            RequestKind.CREATE,
            CreateConferenceRequest(password_hash=password_hash, join_salt=salt),
            expects=(CreateConferenceResponse,),
        )
        try:
            reply = await self._machine.wait_for_reply(pending)

            # Servers that do not assign creator pseudonyms leave it to us
            pseudonym = reply.pseudonym or self._pseudonym_factory()
            await self._machine.enter_conference(
                pending, reply.conference_id, pseudonym, peer_count=1
            )
        finally:
            await self._machine.abandon(pending)
        logger.info("Created conference %s", reply.conference_id)
        return reply.conference_id

    async def join_conference(self, conference_id: int, password: str) -> str:
        """
        Join an existing conference.

        Args:
            conference_id: Conference to join
            password: Conference password

        Returns:
            The pseudonym assigned to this client

        Raises:
            ValueError: If the id is out of range or the password is empty
            ConferenceError: NOT_CONNECTED, ALREADY_IN_CONFERENCE,
                             REQUEST_PENDING, CONFERENCE_NOT_FOUND,
                             WRONG_PASSWORD, TIMEOUT or a server error
        """
        is_valid, error = validate_conference_id(conference_id)
        if not is_valid:
            raise ValueError(error)
        if not password:
            raise ValueError("Conference password must not be empty")
        self._machine.ensure_can_request()

        pending = await self._machine.submit(
            RequestKind.JOIN,
            JoinSaltRequest(conference_id=conference_id),
            expects=(JoinSaltResponse,),
            conference_id=conference_id,
        )
        try:
            salt_reply = await self._machine.wait_for_reply(pending)

            password_hash = await derive_password_hash(
                password, salt_reply.join_salt, self._kdf
            )
            await self._machine.advance(
                pending,
                JoinConferenceRequest(
                    conference_id=conference_id, password_hash=password_hash
                ),
                expects=(JoinConferenceResponse,),
            )
            reply = await self._machine.wait_for_reply(pending)

            await self._machine.enter_conference(
                pending, conference_id, reply.pseudonym, reply.peer_count
            )
        finally:
            # No-op once entered; releases the request on any other exit
            await self._machine.abandon(pending)
        logger.info("Joined conference %s", conference_id)
        return reply.pseudonym

    async def leave_conference(self) -> None:
        """
        Leave the active conference. Does not wait for the server.

        Raises:
            ConferenceError: NOT_CONNECTED or NOT_IN_CONFERENCE
        """
        await self._machine.leave()

    async def send_message(self, text: str) -> Message:
        """
        Send a chat message to the active conference.

        Raises:
            InvalidMessageError: If the text is empty, too long or contains
                                 control characters
            NotInConferenceError: If no conference is active
        """
        return await self._dispatcher.enqueue(text)
