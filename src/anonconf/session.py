"""
Session Data Model

The client's view of its relationship with the server. Only the
SessionStateMachine writes these objects; every other component reads
them.
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple, Type

from .config import ServerAddress


class SessionState(Enum):
    """Lifecycle states of the client session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    IDLE = "idle"
    AWAITING_CREATE = "awaiting_create"
    AWAITING_JOIN = "awaiting_join"
    IN_CONFERENCE = "in_conference"
    LEAVING = "leaving"


# States in which a live transport exists
CONNECTED_STATES = frozenset(
    {
        SessionState.IDLE,
        SessionState.AWAITING_CREATE,
        SessionState.AWAITING_JOIN,
        SessionState.IN_CONFERENCE,
        SessionState.LEAVING,
    }
)


@dataclass
class Session:
    """
    Connection and conference status of the running client.

    Attributes:
        server_address: Server this session talks to
        state: Current lifecycle state
        conference_id: Active conference, when IN_CONFERENCE
        pseudonym: Own pseudonym in the active conference
        peer_count: Participants in the active conference, if known
        last_heartbeat: ISO 8601 time of the last server heartbeat
    """

    server_address: ServerAddress
    state: SessionState = SessionState.DISCONNECTED
    conference_id: Optional[int] = None
    pseudonym: Optional[str] = None
    peer_count: int = 0
    last_heartbeat: Optional[str] = None

    @property
    def connected(self) -> bool:
        """True while a transport is established."""
        return self.state in CONNECTED_STATES

    @property
    def in_conference(self) -> bool:
        """True while a conference is active."""
        return self.state is SessionState.IN_CONFERENCE

    def clear_conference(self) -> None:
        """Forget all conference-scoped fields."""
        self.conference_id = None
        self.pseudonym = None
        self.peer_count = 0


class RequestKind(Enum):
    """Kinds of request that wait for a server reply."""

    CREATE = "create"
    JOIN = "join"


_request_ids = itertools.count(1)


@dataclass
class PendingRequest:
    """
    An in-flight create or join awaiting the server.

    A join spans two exchanges (salt lookup, then authentication) which
    share one PendingRequest and one deadline; reply is replaced for each
    exchange.

    Attributes:
        kind: CREATE or JOIN
        deadline: Event loop time by which the request must complete
        conference_id: Target conference for joins
        expects: Frame types that answer the current exchange
        reply: Future resolved with the reply frame or failed with an error
        request_id: Local counter used to correlate log lines
        timer: Deadline callback armed by the state machine
    """

    kind: RequestKind
    deadline: float
    conference_id: Optional[int] = None
    expects: Tuple[Type, ...] = ()
    reply: Optional[asyncio.Future] = None
    request_id: int = field(default_factory=lambda: next(_request_ids))
    timer: Optional[asyncio.TimerHandle] = field(
        default=None, repr=False, compare=False
    )

    def __post_init__(self):
        if self.reply is None:
            self.reply = asyncio.get_running_loop().create_future()


@dataclass
class Message:
    """
    A chat message as delivered to the presentation layer.

    Attributes:
        conference_id: Conference the message belongs to
        sender_pseudonym: Pseudonym of the sender
        sequence_number: Sender's sequence number
        payload: Message text
        local_timestamp: ISO 8601 time the message was sent or received
        is_own: True for messages this client sent
    """

    conference_id: int
    sender_pseudonym: str
    sequence_number: int
    payload: str
    local_timestamp: str = ""
    is_own: bool = False

    def __post_init__(self):
        """Initialize timestamp if not set."""
        if not self.local_timestamp:
            self.local_timestamp = datetime.now(timezone.utc).isoformat()
