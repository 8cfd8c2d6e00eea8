"""
Control Frame Definitions

Connection-level frames that are not tied to a conference operation:
heartbeats, the client's goodbye, and the server's error reply.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .base import BaseFrame, read_optional_str, read_str


@dataclass
class Heartbeat(BaseFrame):
    """Liveness frame; may be sent by either side."""

    TAG = 0x07


@dataclass
class DisconnectNotice(BaseFrame):
    """Sent by the client right before it closes the connection."""

    TAG = 0x06


@dataclass
class ErrorResponse(BaseFrame):
    """
    Response indicating a failed request.

    Attributes:
        reason: Error code (e.g., WRONG_PASSWORD, CONFERENCE_NOT_FOUND)
        detail: Optional human-readable description
    """

    TAG = 0x90

    reason: str
    detail: Optional[str] = None

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "ErrorResponse":
        """Create from frame body."""
        return cls(
            reason=read_str(data, "reason"),
            detail=read_optional_str(data, "detail"),
        )
