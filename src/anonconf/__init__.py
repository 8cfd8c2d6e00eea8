"""
Anonymous Conference Client Package

This package provides the client-side session engine for the anonymous
conferencing service: the transport, the frame codec, the session state
machine, conference operations and chat delivery, plus two terminal front
ends.

Frame schemas are organized in the `schemas` subpackage by category:
    - conference: create, join, leave and restructuring frames
    - message: chat message frames
    - control: heartbeat, disconnect and error frames
"""

from .client import ConferenceClient
from .codec import FrameDecoder, decode, encode
from .conference import ConferenceController
from .config import ClientConfig, ServerAddress
from .credentials import KdfParams
from .dispatcher import MessageDispatcher
from .errors import (
    AnonConfError,
    ConferenceError,
    ConferenceErrorCode,
    ConfigError,
    ConnectError,
    DecodeError,
    InvalidMessageError,
    NotInConferenceError,
    SendError,
    TransportError,
)
from .retry import RetryScheduler
from .session import Message, PendingRequest, Session, SessionState
from .state_machine import SessionStateMachine
from .transport import TransportConnection
from .schemas import (
    # Conference schemas
    CreateConferenceRequest,
    CreateConferenceResponse,
    JoinSaltRequest,
    JoinSaltResponse,
    JoinConferenceRequest,
    JoinConferenceResponse,
    LeaveConferenceNotice,
    ConferenceRestructuring,
    # Message schemas
    ChatMessage,
    # Control schemas
    Heartbeat,
    DisconnectNotice,
    ErrorResponse,
)

__all__ = [
    # Engine classes
    "ConferenceClient",
    "ConferenceController",
    "MessageDispatcher",
    "SessionStateMachine",
    "TransportConnection",
    "RetryScheduler",
    "FrameDecoder",
    "encode",
    "decode",
    # Data model
    "ClientConfig",
    "ServerAddress",
    "KdfParams",
    "Message",
    "PendingRequest",
    "Session",
    "SessionState",
    # Errors
    "AnonConfError",
    "ConferenceError",
    "ConferenceErrorCode",
    "ConfigError",
    "ConnectError",
    "DecodeError",
    "InvalidMessageError",
    "NotInConferenceError",
    "SendError",
    "TransportError",
    # Frame schemas
    "CreateConferenceRequest",
    "CreateConferenceResponse",
    "JoinSaltRequest",
    "JoinSaltResponse",
    "JoinConferenceRequest",
    "JoinConferenceResponse",
    "LeaveConferenceNotice",
    "ConferenceRestructuring",
    "ChatMessage",
    "Heartbeat",
    "DisconnectNotice",
    "ErrorResponse",
]
