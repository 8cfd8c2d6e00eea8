"""
Transport Connection

Owns the WebSocket connection to the rendezvous server and exposes it as
a plain byte stream: connect, send bytes, iterate received byte chunks,
close. Framing is left to the codec, so a frame may span several
WebSocket messages and one message may carry several frames.

Architecture:
    - One instance per connection attempt; instances are never reused
    - The first read or write failure marks the connection dead and is
      reported once; later sends fail immediately
    - Supports dependency injection for the WebSocket layer (for testability)
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from .config import DEFAULT_CONNECT_TIMEOUT, ServerAddress
from .errors import ConnectError, SendError, TransportError

logger = logging.getLogger(__name__)


class TransportConnection:
    """
    Byte-stream connection to the server over WebSocket.

    Attributes:
        address: Server this instance connected to (None before connect)
        websocket: Active WebSocket connection (None if not connected)
    """

    def __init__(
        self,
        websocket_factory: Optional[Callable] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ):
        """
        Initialize the transport.

        Args:
            websocket_factory: Optional factory for creating WebSocket
                             connections (for dependency injection/testing)
            connect_timeout: Seconds allowed for the opening handshake
        """
        self.address: Optional[ServerAddress] = None
        self.websocket = None
        self._websocket_factory = websocket_factory or websockets.connect
        self._connect_timeout = connect_timeout
        self._dead = False

    @property
    def is_alive(self) -> bool:
        """True between a successful connect and the first failure/close."""
        return self.websocket is not None and not self._dead

    async def connect(self, address: ServerAddress) -> None:
        """
        Open the WebSocket connection.

        Raises:
            ConnectError: If the connection cannot be established, or this
                          instance was already used
        """
        if self.address is not None:
            raise ConnectError("Transport instances cannot be reused")
        self.address = address

        logger.info("Connecting to %s...", address)
        try:
            self.websocket = await asyncio.wait_for(
                self._websocket_factory(address.url),
                timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError:
            self._dead = True
            raise ConnectError(
                f"Timed out connecting to {address} "
                f"after {self._connect_timeout}s"
            )
        except (OSError, WebSocketException) as e:
            self._dead = True
            raise ConnectError(f"Could not connect to {address}: {e}")
        logger.info("Connected to %s", address)

    async def send(self, data: bytes) -> None:
        """
        Send bytes to the server.

        Raises:
            SendError: If the connection is dead or the write fails
        """
        if not self.is_alive:
            raise SendError("Connection is closed")
        try:
            await self.websocket.send(data)
        except (OSError, WebSocketException) as e:
            self._dead = True
            raise SendError(f"Send failed: {e}")

    async def receive(self) -> AsyncIterator[bytes]:
        """
        Yield byte chunks from the server until the connection ends.

        The iterator ends normally on a clean close.

        Raises:
            TransportError: If the connection fails while reading
        """
        if self.websocket is None:
            raise TransportError("Not connected")

        try:
            async for message in self.websocket:
                if isinstance(message, str):
                    message = message.encode("utf-8")
                yield message
        except ConnectionClosedOK:
            logger.info("Connection closed by server")
        except (OSError, WebSocketException) as e:
            logger.warning("Connection lost: %s", e)
            raise TransportError(f"Connection lost: {e}")
        finally:
            self._dead = True

    async def close(self) -> None:
        """Close the connection; safe to call more than once."""
        self._dead = True
        if self.websocket is None:
            return
        try:
            await self.websocket.close()
        except (OSError, WebSocketException) as e:
            logger.debug("Error while closing connection: %s", e)
