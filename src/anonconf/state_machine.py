"""
Session State Machine

The single writer of the client's Session. It owns the transport, runs
the read loop, matches server replies to the one outstanding request,
and reconnects with backoff when the connection drops.

States:
    DISCONNECTED -> CONNECTING -> IDLE -> AWAITING_CREATE / AWAITING_JOIN
        -> IN_CONFERENCE -> LEAVING -> IDLE
    Any state falls back to DISCONNECTED on transport failure.

Concurrency:
    One supervisor task connects and drains the transport; user operations
    run on their callers' tasks. Every transition and every send happens
    while holding an asyncio.Lock, so a transition is never observed half
    done by the read loop or by another operation. Request deadlines are
    timers owned by the machine, not by the waiting caller.

Usage:
    machine = SessionStateMachine(ServerAddress("localhost", 7667))
    machine.start()
    ...
    await machine.stop()
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set, Tuple, Type

from .codec import FrameDecoder, encode
from .config import DEFAULT_REQUEST_TIMEOUT, ServerAddress
from .errors import (
    ConferenceError,
    ConferenceErrorCode,
    ConnectError,
    DecodeError,
    NotInConferenceError,
    SendError,
    TransportError,
)
from .retry import RetryScheduler
from .schemas import (
    BaseFrame,
    ChatMessage,
    ConferenceRestructuring,
    CreateConferenceResponse,
    DisconnectNotice,
    ErrorResponse,
    Heartbeat,
    JoinConferenceResponse,
    JoinSaltResponse,
    LeaveConferenceNotice,
)
from .session import (
    PendingRequest,
    RequestKind,
    Session,
    SessionState,
)
from .transport import TransportConnection

logger = logging.getLogger(__name__)

# Frames that answer a PendingRequest
REPLY_TYPES = (
    CreateConferenceResponse,
    JoinSaltResponse,
    JoinConferenceResponse,
    ErrorResponse,
)

StateListener = Callable[[SessionState, SessionState], None]


def _fail_reply(reply: asyncio.Future, error: Exception) -> None:
    if reply.done():
        return
    reply.set_exception(error)
    # Mark retrieved; the waiting task may already be gone
    reply.exception()


class SessionStateMachine:
    """
    Authoritative lifecycle of the client session.

    Attributes:
        session: The Session this machine owns
        request_timeout: Deadline in seconds for each create/join request
        reconnect_attempts: Consecutive failed connection attempts
    """

    def __init__(
        self,
        address: ServerAddress,
        transport_factory: Optional[Callable[[], TransportConnection]] = None,
        retry: Optional[RetryScheduler] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        """
        Initialize the state machine.

        Args:
            address: Server to connect to
            transport_factory: Builds a fresh TransportConnection for each
                             connection attempt (for dependency injection)
            retry: Backoff policy for reconnect attempts
            request_timeout: Deadline for create/join requests
        """
        self.session = Session(server_address=address)
        self.request_timeout = request_timeout
        self.reconnect_attempts = 0

        self._transport_factory = transport_factory or TransportConnection
        self._retry = retry or RetryScheduler()
        self._transport: Optional[TransportConnection] = None
        self._pending: Optional[PendingRequest] = None
        self._lock = asyncio.Lock()
        self._supervisor: Optional[asyncio.Task] = None
        self._stopping = False
        self._deadline_tasks: Set[asyncio.Task] = set()

        # Callbacks for dispatcher and UI integration
        self._state_listeners: List[StateListener] = []
        self._on_chat_message: Optional[Callable[[ChatMessage], None]] = None
        self._on_restructuring: Optional[Callable[[int, int], None]] = None
        self._on_server_error: Optional[
            Callable[[str, Optional[str]], None]
        ] = None

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self.session.state

    @property
    def pending(self) -> Optional[PendingRequest]:
        """The outstanding create/join request, if any."""
        return self._pending

    def add_state_listener(self, listener: StateListener) -> None:
        """
        Register a callback for state changes.

        Args:
            listener: Called with (old_state, new_state) after each change
        """
        self._state_listeners.append(listener)

    def set_on_chat_message(
        self, callback: Callable[[ChatMessage], None]
    ) -> None:
        """Register the receiver of inbound chat frames."""
        self._on_chat_message = callback

    def set_on_restructuring(self, callback: Callable[[int, int], None]) -> None:
        """
        Register callback for conference restructuring notices.

        Args:
            callback: Function that receives (conference_id, peer_count)
        """
        self._on_restructuring = callback

    def set_on_server_error(
        self, callback: Callable[[str, Optional[str]], None]
    ) -> None:
        """
        Register callback for server errors that answer no request, such
        as a rejected chat message.

        Args:
            callback: Function that receives (reason, detail)
        """
        self._on_server_error = callback

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """
        Start the supervisor task that connects and reconnects.

        Returns:
            The running supervisor task
        """
        if self._supervisor is None or self._supervisor.done():
            self._stopping = False
            self._supervisor = asyncio.create_task(self._supervise())
        return self._supervisor

    async def connect(self) -> None:
        """
        Make one connection attempt with a brand-new transport.

        Raises:
            ConnectError: If the attempt fails or a connection exists
        """
        async with self._lock:
            if self.state is not SessionState.DISCONNECTED:
                raise ConnectError(f"Cannot connect while {self.state.value}")
            self._set_state(SessionState.CONNECTING)
            transport = self._transport_factory()

        try:
            await transport.connect(self.session.server_address)
        except ConnectError:
            async with self._lock:
                self._set_state(SessionState.DISCONNECTED)
            raise

        async with self._lock:
            if self._stopping:
                await transport.close()
                self._set_state(SessionState.DISCONNECTED)
                raise ConnectError("Session is shutting down")
            self._transport = transport
            self._set_state(SessionState.IDLE)

    async def stop(self) -> None:
        """
        Say goodbye to the server, close the connection and stop
        reconnecting. The session ends DISCONNECTED.
        """
        self._stopping = True
        async with self._lock:
            transport = self._transport
            self._transport = None
            if transport is not None:
                if transport.is_alive:
                    try:
                        await transport.send(encode(DisconnectNotice()))
                    except SendError as e:
                        logger.debug("Could not send disconnect notice: %s", e)
                await transport.close()
            self._reset_after_disconnect()
            self._set_state(SessionState.DISCONNECTED)

        if self._supervisor is not None:
            self._supervisor.cancel()
            try:
                await self._supervisor
            except asyncio.CancelledError:
                pass
            self._supervisor = None
        logger.info("Session stopped")

    async def _supervise(self) -> None:
        """Connect, read until the connection fails, back off, repeat."""
        address = self.session.server_address
        while not self._stopping:
            try:
                await self.connect()
            except ConnectError as e:
                delay = self._retry.next_delay(self.reconnect_attempts)
                self.reconnect_attempts += 1
                logger.warning(
                    "Connection to %s failed (%s); retrying in %.1fs",
                    address,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
                continue

            self.reconnect_attempts = 0
            await self._read_loop(self._transport)

    async def _read_loop(self, transport: TransportConnection) -> None:
        """Drain the transport, feeding frames to the state machine."""
        decoder = FrameDecoder()
        reason = "connection closed by server"
        try:
            async for chunk in transport.receive():
                decoder.feed(chunk)
                for frame in decoder:
                    await self._handle_frame(frame)
        except DecodeError as e:
            logger.error("Malformed frame from server: %s", e)
            reason = f"malformed frame ({e.detail})"
        except TransportError as e:
            reason = str(e)
        except Exception:
            logger.exception("Error while handling frames from server")
            reason = "internal error"

        async with self._lock:
            await self._drop_connection(transport, reason)

    async def _drop_connection(
        self, transport: TransportConnection, reason: str
    ) -> None:
        """
        Handle the loss of a transport. Caller must hold the lock.

        Only the current transport can be dropped, so a failure reported
        twice (by a send and by the read loop) is handled once.
        """
        if transport is not self._transport:
            return
        self._transport = None
        await transport.close()
        logger.warning(
            "Disconnected from %s: %s", self.session.server_address, reason
        )
        self._reset_after_disconnect()
        self._set_state(SessionState.DISCONNECTED)

    def _reset_after_disconnect(self) -> None:
        """Clear conference fields and fail the outstanding request."""
        self.session.clear_conference()
        pending = self._pending
        if pending is not None:
            self._clear_pending(pending)
            _fail_reply(
                pending.reply, ConferenceError(ConferenceErrorCode.NOT_CONNECTED)
            )

    # ------------------------------------------------------------------
    # Inbound frames
    # ------------------------------------------------------------------

    async def _handle_frame(self, frame: BaseFrame) -> None:
        """Route one inbound frame. Runs on the read loop."""
        async with self._lock:
            if isinstance(frame, ChatMessage):
                self._route_chat_message(frame)
            elif isinstance(frame, REPLY_TYPES):
                self._resolve_pending(frame)
            elif isinstance(frame, ConferenceRestructuring):
                self._apply_restructuring(frame)
            elif isinstance(frame, Heartbeat):
                self.session.last_heartbeat = datetime.now(
                    timezone.utc
                ).isoformat()
                logger.debug("Heartbeat from server")
            else:
                logger.warning(
                    "Ignoring unexpected %s frame from server",
                    type(frame).__name__,
                )

    def _route_chat_message(self, frame: ChatMessage) -> None:
        if not self.session.in_conference:
            logger.debug("Dropping chat message received outside a conference")
            return
        if self._on_chat_message:
            self._notify(self._on_chat_message, frame)

    def _apply_restructuring(self, frame: ConferenceRestructuring) -> None:
        if (
            not self.session.in_conference
            or frame.conference_id != self.session.conference_id
        ):
            logger.warning(
                "Ignoring restructuring notice for conference %s",
                frame.conference_id,
            )
            return
        self.session.peer_count = frame.peer_count
        logger.info(
            "Conference %s now has %d peers",
            frame.conference_id,
            frame.peer_count,
        )
        if self._on_restructuring:
            self._notify(
                self._on_restructuring, frame.conference_id, frame.peer_count
            )

    def _resolve_pending(self, frame: BaseFrame) -> None:
        """Match a reply frame to the outstanding request."""
        pending = self._pending
        frame_name = type(frame).__name__
        if pending is None or pending.reply.done():
            if isinstance(frame, ErrorResponse) and self.session.in_conference:
                # e.g. a chat message the server refused to relay
                logger.warning("Server reported an error: %s", frame.reason)
                if self._on_server_error:
                    self._notify(
                        self._on_server_error, frame.reason, frame.detail
                    )
                return
            logger.warning("Ignoring unsolicited %s from server", frame_name)
            return

        if isinstance(frame, ErrorResponse):
            # Protocol errors end the request; the session stays connected
            self._clear_pending(pending)
            self._set_state(SessionState.IDLE)
            logger.info(
                "Request #%d rejected by server: %s",
                pending.request_id,
                frame.reason,
            )
            _fail_reply(
                pending.reply,
                ConferenceError.from_server_reason(frame.reason, frame.detail),
            )
            return

        if not isinstance(frame, pending.expects):
            logger.warning(
                "Ignoring %s while request #%d waits for %s",
                frame_name,
                pending.request_id,
                ", ".join(t.__name__ for t in pending.expects),
            )
            return
        if (
            isinstance(frame, JoinSaltResponse)
            and frame.conference_id != pending.conference_id
        ):
            logger.warning(
                "Ignoring join salt for conference %s, expected %s",
                frame.conference_id,
                pending.conference_id,
            )
            return

        logger.debug("Request #%d answered by %s", pending.request_id, frame_name)
        pending.reply.set_result(frame)

    # ------------------------------------------------------------------
    # Outbound operations
    # ------------------------------------------------------------------

    def ensure_can_request(self) -> None:
        """
        Check that a create/join may start now, without side effects.

        Raises:
            ConferenceError: NOT_CONNECTED, ALREADY_IN_CONFERENCE or
                             REQUEST_PENDING
        """
        state = self.state
        if not self.session.connected:
            raise ConferenceError(ConferenceErrorCode.NOT_CONNECTED)
        if state in (SessionState.IN_CONFERENCE, SessionState.LEAVING):
            raise ConferenceError(ConferenceErrorCode.ALREADY_IN_CONFERENCE)
        if self._pending is not None:
            raise ConferenceError(ConferenceErrorCode.REQUEST_PENDING)

    async def submit(
        self,
        kind: RequestKind,
        frame: BaseFrame,
        expects: Tuple[Type[BaseFrame], ...],
        conference_id: Optional[int] = None,
    ) -> PendingRequest:
        """
        Send the first frame of a create/join and register the request.

        The request's deadline is armed here and fires whether or not
        anyone is still waiting on it.

        Args:
            kind: CREATE or JOIN
            frame: Request frame to send
            expects: Frame types that answer it
            conference_id: Target conference for joins

        Returns:
            The PendingRequest to wait on with wait_for_reply()

        Raises:
            ConferenceError: If the session cannot start a request now
        """
        loop = asyncio.get_running_loop()
        async with self._lock:
            self.ensure_can_request()
            try:
                await self._send(frame)
            except SendError:
                raise ConferenceError(ConferenceErrorCode.NOT_CONNECTED)

            pending = PendingRequest(
                kind=kind,
                deadline=loop.time() + self.request_timeout,
                conference_id=conference_id,
                expects=expects,
            )
            self._pending = pending
            pending.timer = loop.call_at(
                pending.deadline, self._on_deadline, pending
            )
            if kind is RequestKind.CREATE:
                self._set_state(SessionState.AWAITING_CREATE)
            else:
                self._set_state(SessionState.AWAITING_JOIN)
            logger.info("Request #%d (%s) sent", pending.request_id, kind.value)
            return pending

    async def advance(
        self,
        pending: PendingRequest,
        frame: BaseFrame,
        expects: Tuple[Type[BaseFrame], ...],
    ) -> None:
        """
        Send the next frame of a multi-step request.

        Raises:
            ConferenceError: NOT_CONNECTED if the request was cancelled by
                             a disconnect or the send fails, TIMEOUT if
                             its deadline has passed
        """
        loop = asyncio.get_running_loop()
        async with self._lock:
            if self._pending is not pending:
                raise ConferenceError(ConferenceErrorCode.NOT_CONNECTED)
            if loop.time() >= pending.deadline:
                self._expire(pending)
                raise ConferenceError(ConferenceErrorCode.TIMEOUT)
            try:
                await self._send(frame)
            except SendError:
                raise ConferenceError(ConferenceErrorCode.NOT_CONNECTED)
            pending.expects = expects
            pending.reply = loop.create_future()

    async def wait_for_reply(self, pending: PendingRequest) -> BaseFrame:
        """
        Suspend until the request's current exchange is answered.

        Cancelling the caller leaves the request in place; the controller
        releases it with abandon(), and the deadline releases it anyway.

        Returns:
            The reply frame

        Raises:
            ConferenceError: TIMEOUT when the deadline passes, the server's
                             error, or NOT_CONNECTED on disconnect
        """
        return await asyncio.shield(pending.reply)

    def _on_deadline(self, pending: PendingRequest) -> None:
        task = asyncio.ensure_future(self._expire_when_unanswered(pending))
        self._deadline_tasks.add(task)
        task.add_done_callback(self._deadline_tasks.discard)

    async def _expire_when_unanswered(self, pending: PendingRequest) -> None:
        async with self._lock:
            pending.timer = None
            # An answered exchange is finished by enter_conference() or
            # re-checked by advance()
            if self._pending is not pending or pending.reply.done():
                return
            self._expire(pending)

    def _expire(self, pending: PendingRequest) -> None:
        """Time out the outstanding request. Caller must hold the lock."""
        self._clear_pending(pending)
        logger.warning(
            "Request #%d timed out after %.1fs",
            pending.request_id,
            self.request_timeout,
        )
        self._set_state(SessionState.IDLE)
        _fail_reply(pending.reply, ConferenceError(ConferenceErrorCode.TIMEOUT))

    def _clear_pending(self, pending: PendingRequest) -> None:
        """Forget the outstanding request and disarm its deadline."""
        self._pending = None
        if pending.timer is not None:
            pending.timer.cancel()
            pending.timer = None

    async def abandon(self, pending: PendingRequest) -> None:
        """
        Give up on a request that will not be completed.

        A no-op when the request already ended (entered, rejected, timed
        out or cancelled by a disconnect).
        """
        async with self._lock:
            if self._pending is not pending:
                return
            self._clear_pending(pending)
            pending.reply.cancel()
            logger.info("Request #%d abandoned", pending.request_id)
            self._set_state(SessionState.IDLE)

    async def enter_conference(
        self,
        pending: PendingRequest,
        conference_id: int,
        pseudonym: str,
        peer_count: int = 0,
    ) -> None:
        """
        Complete a create/join by committing the conference fields.

        Raises:
            ConferenceError: NOT_CONNECTED if the request no longer exists
        """
        async with self._lock:
            if self._pending is not pending:
                raise ConferenceError(ConferenceErrorCode.NOT_CONNECTED)
            self._clear_pending(pending)
            self.session.conference_id = conference_id
            self.session.pseudonym = pseudonym
            self.session.peer_count = peer_count
            self._set_state(SessionState.IN_CONFERENCE)
            logger.info("Entered conference %s", conference_id)

    async def leave(self) -> int:
        """
        Leave the active conference without waiting for the server.

        Returns:
            The conference that was left

        Raises:
            ConferenceError: NOT_CONNECTED or NOT_IN_CONFERENCE
        """
        async with self._lock:
            if not self.session.connected:
                raise ConferenceError(ConferenceErrorCode.NOT_CONNECTED)
            if not self.session.in_conference:
                raise ConferenceError(ConferenceErrorCode.NOT_IN_CONFERENCE)

            conference_id = self.session.conference_id
            self._set_state(SessionState.LEAVING)
            try:
                await self._send(LeaveConferenceNotice(conference_id))
            except SendError as e:
                # The disconnect already cleared the conference
                logger.warning("Could not notify server of leave: %s", e)
                return conference_id

            self.session.clear_conference()
            self._set_state(SessionState.IDLE)
            logger.info("Left conference %s", conference_id)
            return conference_id

    async def send_chat(
        self, prepare: Callable[[Session], ChatMessage]
    ) -> ChatMessage:
        """
        Build and send a chat frame for the active conference.

        prepare runs while the lock is held, so sequence numbers are
        assigned in send order and recorded before any echo is read.

        Raises:
            NotInConferenceError: If no conference is active
            SendError: If the connection fails
        """
        async with self._lock:
            if not self.session.in_conference:
                raise NotInConferenceError()
            frame = prepare(self.session)
            await self._send(frame)
            return frame

    async def _send(self, frame: BaseFrame) -> None:
        """Encode and send a frame. Caller must hold the lock."""
        transport = self._transport
        if transport is None:
            raise SendError("Not connected to the server")
        try:
            await transport.send(encode(frame))
        except SendError as e:
            await self._drop_connection(transport, str(e))
            raise
        logger.debug("Sent %s frame", type(frame).__name__)

    def _notify(self, callback: Callable, *args) -> None:
        """Run a presentation callback, logging anything it raises."""
        try:
            callback(*args)
        except Exception:
            logger.exception("Error in callback %r", callback)

    def _set_state(self, new_state: SessionState) -> None:
        old_state = self.session.state
        if old_state is new_state:
            return
        self.session.state = new_state
        logger.info("Session state: %s -> %s", old_state.value, new_state.value)
        for listener in self._state_listeners:
            self._notify(listener, old_state, new_state)
