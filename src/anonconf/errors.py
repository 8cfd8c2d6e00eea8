"""
Error Types for the Conference Client

All exceptions raised by the session engine derive from AnonConfError so
front ends can catch the whole family in one place.

Taxonomy:
    - TransportError: connection-level failures (connect, send, receive)
    - DecodeError: a frame could not be parsed; the stream is unusable
    - ConferenceError: create/join/leave failed (protocol, timeout, usage)
    - ConfigError: invalid startup configuration
"""

from enum import Enum
from typing import Optional


class AnonConfError(Exception):
    """Base class for all client errors."""


class ConfigError(AnonConfError):
    """Raised when a configuration value cannot be parsed."""


class TransportError(AnonConfError):
    """Raised when the connection to the server fails."""


class ConnectError(TransportError):
    """Raised when a connection attempt to the server fails."""


class SendError(TransportError):
    """Raised when an outbound frame cannot be sent."""


class NotInConferenceError(SendError):
    """Raised when sending a message while not in a conference."""

    def __init__(self, message: str = "Not in a conference"):
        super().__init__(message)


class InvalidMessageError(SendError):
    """Raised when outbound message content fails validation."""


class DecodeError(AnonConfError):
    """
    Raised when bytes on the wire do not form a valid frame.

    Attributes:
        reason: Short machine-readable reason (always "malformed" today)
        detail: Human-readable description of the problem
    """

    def __init__(self, detail: str, reason: str = "malformed"):
        super().__init__(f"{reason}: {detail}")
        self.reason = reason
        self.detail = detail


class ConferenceErrorCode(Enum):
    """Reasons a conference operation can fail."""

    NOT_CONNECTED = "NOT_CONNECTED"
    ALREADY_IN_CONFERENCE = "ALREADY_IN_CONFERENCE"
    NOT_IN_CONFERENCE = "NOT_IN_CONFERENCE"
    REQUEST_PENDING = "REQUEST_PENDING"
    WRONG_PASSWORD = "WRONG_PASSWORD"
    CONFERENCE_NOT_FOUND = "CONFERENCE_NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    SERVER_ERROR = "SERVER_ERROR"


_DEFAULT_MESSAGES = {
    ConferenceErrorCode.NOT_CONNECTED: "Not connected to the server",
    ConferenceErrorCode.ALREADY_IN_CONFERENCE: (
        "Already in a conference, leave it first"
    ),
    ConferenceErrorCode.NOT_IN_CONFERENCE: "Not in a conference",
    ConferenceErrorCode.REQUEST_PENDING: (
        "Another conference request is still in progress"
    ),
    ConferenceErrorCode.WRONG_PASSWORD: "Wrong conference password",
    ConferenceErrorCode.CONFERENCE_NOT_FOUND: "Conference not found",
    ConferenceErrorCode.TIMEOUT: "Timed out waiting for the server",
    ConferenceErrorCode.SERVER_ERROR: "Server error",
}


class ConferenceError(AnonConfError):
    """
    Raised when a conference operation fails.

    Attributes:
        code: ConferenceErrorCode identifying the failure
        reason: Server-supplied reason for SERVER_ERROR, otherwise None
    """

    def __init__(
        self, code: ConferenceErrorCode, reason: Optional[str] = None
    ):
        message = _DEFAULT_MESSAGES[code]
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.code = code
        self.reason = reason

    @classmethod
    def from_server_reason(
        cls, reason: str, detail: Optional[str] = None
    ) -> "ConferenceError":
        """
        Map an Error{reason} frame to a ConferenceError.

        Args:
            reason: Reason code sent by the server
            detail: Optional free-form detail sent by the server

        Returns:
            ConferenceError with the matching code, or SERVER_ERROR
        """
        if reason == ConferenceErrorCode.WRONG_PASSWORD.value:
            return cls(ConferenceErrorCode.WRONG_PASSWORD)
        if reason == ConferenceErrorCode.CONFERENCE_NOT_FOUND.value:
            return cls(ConferenceErrorCode.CONFERENCE_NOT_FOUND)
        if detail:
            reason = f"{reason} ({detail})"
        return cls(ConferenceErrorCode.SERVER_ERROR, reason)
