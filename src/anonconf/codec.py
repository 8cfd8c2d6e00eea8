"""
Frame Codec

Serializes protocol frames to bytes and parses them back.

Frame Format:
    +----------------+--------+---------------------------+
    | length (4, BE) | tag(1) | body (length bytes, JSON) |
    +----------------+--------+---------------------------+

    length counts only the body. The body is a UTF-8 JSON object holding the
    frame's fields (see schemas). Bodies larger than MAX_FRAME_SIZE are
    rejected as a corrupt length field.

encode() and decode() are pure functions. FrameDecoder adds the buffering
needed to pull frames out of a byte stream that arrives in arbitrary chunks.

Usage:
    decoder = FrameDecoder()
    async for chunk in transport.receive():
        decoder.feed(chunk)
        for frame in decoder:
            handle(frame)
"""

import json
import logging
import struct
from typing import Iterator, List, Optional, Tuple, Union

from .errors import DecodeError
from .schemas import FRAME_TYPES, BaseFrame, ProtocolMessage

logger = logging.getLogger(__name__)

HEADER = struct.Struct(">IB")
HEADER_SIZE = HEADER.size
MAX_FRAME_SIZE = 1024 * 1024

Buffer = Union[bytes, bytearray, memoryview]


def encode(message: BaseFrame) -> bytes:
    """
    Encode a frame for the wire.

    Args:
        message: Any frame listed in schemas.FRAME_TYPES

    Returns:
        Header followed by the JSON body

    Raises:
        ValueError: If the frame type is unknown or the body is too large
    """
    frame_type = type(message)
    if FRAME_TYPES.get(getattr(frame_type, "TAG", None)) is not frame_type:
        raise ValueError(f"Not a protocol frame: {frame_type.__name__}")

    body = json.dumps(
        message.to_dict(), ensure_ascii=False, separators=(",", ":")
    ).encode("utf-8")
    if len(body) > MAX_FRAME_SIZE:
        raise ValueError(
            f"Frame body too large: {len(body)} > {MAX_FRAME_SIZE} bytes"
        )
    return HEADER.pack(len(body), message.TAG) + body


def decode(
    buffer: Buffer, offset: int = 0
) -> Tuple[Optional[ProtocolMessage], int]:
    """
    Decode one frame from the start of a buffer.

    Args:
        buffer: Bytes received so far
        offset: Position in the buffer where the frame starts

    Returns:
        (frame, consumed) when a complete frame is available, where
        consumed is the number of bytes the frame occupied; (None, 0) when
        more bytes are needed.

    Raises:
        DecodeError: If the header or body is malformed. The stream cannot
                     be resynchronized after this.
    """
    available = len(buffer) - offset
    if available < HEADER_SIZE:
        return None, 0

    length, tag = HEADER.unpack_from(buffer, offset)
    frame_type = FRAME_TYPES.get(tag)
    if frame_type is None:
        raise DecodeError(f"unknown frame tag 0x{tag:02x}")
    if length > MAX_FRAME_SIZE:
        raise DecodeError(
            f"frame length {length} exceeds maximum of {MAX_FRAME_SIZE}"
        )

    end = HEADER_SIZE + length
    if available < end:
        return None, 0

    raw_body = bytes(buffer[offset + HEADER_SIZE : offset + end])
    try:
        body = json.loads(raw_body.decode("utf-8"))
    except UnicodeDecodeError:
        raise DecodeError(f"{frame_type.__name__} body is not valid UTF-8")
    except json.JSONDecodeError as e:
        raise DecodeError(f"{frame_type.__name__} body is not JSON: {e}")

    return frame_type.from_dict(body), end


class FrameDecoder:
    """
    Incremental decoder for a chunked byte stream.

    Chunks are appended with feed(); iterating the decoder yields every
    complete frame buffered so far and leaves any partial frame in place.

    Attributes:
        buffered: Number of bytes waiting for the rest of their frame
    """

    def __init__(self):
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        """Number of bytes not yet consumed by a complete frame."""
        return len(self._buffer)

    def feed(self, chunk: Buffer) -> None:
        """Append received bytes."""
        self._buffer.extend(chunk)

    def __iter__(self) -> Iterator[ProtocolMessage]:
        while True:
            frame, consumed = decode(self._buffer)
            if frame is None:
                return
            del self._buffer[:consumed]
            logger.debug("Decoded %s frame", type(frame).__name__)
            yield frame

    def decode_all(self, chunk: Buffer) -> List[ProtocolMessage]:
        """Feed a chunk and return every frame completed by it."""
        self.feed(chunk)
        return list(self)

    def clear(self) -> None:
        """Discard buffered bytes."""
        self._buffer.clear()
