"""
Shared Test Fixtures

Provides a scripted in-memory server that stands in for the WebSocket
layer. MockWebSocket records every frame the client sends and replays
frames pushed by the test or produced by the server's responder.
"""

import asyncio
from typing import Callable, List, Optional

import pytest
import pytest_asyncio
from websockets.exceptions import ConnectionClosedError

from src.anonconf import (
    ChatMessage,
    ClientConfig,
    ConferenceClient,
    CreateConferenceRequest,
    CreateConferenceResponse,
    ErrorResponse,
    FrameDecoder,
    JoinConferenceRequest,
    JoinConferenceResponse,
    JoinSaltRequest,
    JoinSaltResponse,
    KdfParams,
    SessionState,
    encode,
)
from src.anonconf.credentials import hash_password

# Cheapest parameters Argon2id accepts; keeps tests fast
FAST_KDF = KdfParams(memory_cost=8, iterations=1, lanes=1)

CONFERENCE_ID = 8845684583
CONFERENCE_PASSWORD = "hello"
PEER_PSEUDONYM = "anon-peer0001"

_CLOSED = object()
_FAILED = object()


class MockWebSocket:
    """Mock WebSocket for testing."""

    def __init__(self, responder: Optional[Callable] = None):
        self.sent_messages: List[bytes] = []
        self.sent_frames: list = []
        self.closed = False
        self._responder = responder
        self._decoder = FrameDecoder()
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, message):
        if self.closed:
            raise ConnectionClosedError(None, None)
        self.sent_messages.append(message)
        for frame in self._decoder.decode_all(message):
            self.sent_frames.append(frame)
            if self._responder:
                for reply in self._responder(frame):
                    self.push(reply)

    def push(self, frame) -> None:
        """Queue a frame for the client to read."""
        self._incoming.put_nowait(encode(frame))

    def push_bytes(self, data: bytes) -> None:
        """Queue raw bytes for the client to read."""
        self._incoming.put_nowait(data)

    def fail(self) -> None:
        """Simulate the connection dropping."""
        self._incoming.put_nowait(_FAILED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if item is _FAILED:
            self.closed = True
            raise ConnectionClosedError(None, None)
        return item

    async def close(self):
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(_CLOSED)


class MockServer:
    """
    In-memory stand-in for the rendezvous server.

    Knows one conference (CONFERENCE_ID / CONFERENCE_PASSWORD) and echoes
    chat messages back to the sender, like the real server does.

    Attributes:
        sockets: Every MockWebSocket handed out, oldest first
        refuse: Number of upcoming connection attempts to refuse
        silent: Frame types the server never answers
        overrides: Replies to use instead of the defaults, by frame type
    """

    def __init__(self):
        self.sockets: List[MockWebSocket] = []
        self.refuse = 0
        self.silent: tuple = ()
        self.overrides: dict = {}
        self.join_salt = b"\x07" * 32
        self.connect_urls: List[str] = []

    @property
    def socket(self) -> MockWebSocket:
        """Most recent connection."""
        return self.sockets[-1]

    async def connect(self, url: str) -> MockWebSocket:
        """WebSocket factory handed to the client."""
        self.connect_urls.append(url)
        if self.refuse > 0:
            self.refuse -= 1
            raise OSError("Connection refused")
        websocket = MockWebSocket(self.respond)
        self.sockets.append(websocket)
        return websocket

    def respond(self, frame) -> list:
        if isinstance(frame, self.silent):
            return []
        if type(frame) in self.overrides:
            return list(self.overrides[type(frame)])
        if isinstance(frame, CreateConferenceRequest):
            return [CreateConferenceResponse(conference_id=CONFERENCE_ID)]
        if isinstance(frame, JoinSaltRequest):
            if frame.conference_id != CONFERENCE_ID:
                return [ErrorResponse(reason="CONFERENCE_NOT_FOUND")]
            return [JoinSaltResponse(frame.conference_id, self.join_salt)]
        if isinstance(frame, JoinConferenceRequest):
            expected = hash_password(
                CONFERENCE_PASSWORD, self.join_salt, FAST_KDF
            )
            if frame.password_hash != expected:
                return [ErrorResponse(reason="WRONG_PASSWORD")]
            return [JoinConferenceResponse(PEER_PSEUDONYM, peer_count=2)]
        if isinstance(frame, ChatMessage):
            return [frame]
        return []


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0):
    """Poll until predicate() is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met before timeout")
        await asyncio.sleep(0.01)


def make_config(**overrides) -> ClientConfig:
    """Client settings tuned for fast tests."""
    values = dict(
        request_timeout=0.5,
        connect_timeout=0.5,
        retry_base_delay=0.01,
        retry_max_delay=0.05,
        kdf=FAST_KDF,
        log_file=None,
    )
    values.update(overrides)
    return ClientConfig(**values)


@pytest.fixture
def server():
    return MockServer()


@pytest.fixture
def waiter():
    """Expose wait_until to tests."""
    return wait_until


@pytest_asyncio.fixture
async def client(server):
    """A ConferenceClient connected to the mock server and IDLE."""
    client = ConferenceClient(make_config(), websocket_factory=server.connect)
    client.start()
    await wait_until(lambda: client.state is SessionState.IDLE)
    yield client
    await client.stop()
