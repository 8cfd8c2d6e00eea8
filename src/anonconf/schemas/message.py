"""
Message Frame Definitions

This module defines the chat message frame, used in both directions:
the client sends its own messages and the server relays messages from
every participant, including echoes of the client's own.
"""

from dataclasses import dataclass
from typing import Any, Dict

from ..errors import DecodeError
from .base import BaseFrame, read_int, read_str


@dataclass
class ChatMessage(BaseFrame):
    """
    A text message within the active conference.

    Attributes:
        sender_pseudonym: Conference pseudonym of the sender
        sequence_number: Per-sender sequence number, starting at 1
        payload: Message text
    """

    TAG = 0x05

    sender_pseudonym: str
    sequence_number: int
    payload: str

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "ChatMessage":
        """Create from frame body."""
        payload = data.get("payload")
        if not isinstance(payload, str):
            raise DecodeError("field 'payload' must be a string")
        return cls(
            sender_pseudonym=read_str(data, "sender_pseudonym"),
            sequence_number=read_int(data, "sequence_number", minimum=1),
            payload=payload,
        )
