"""
Schemas Package

This package contains the protocol frame schemas exchanged with the
rendezvous server. Schemas are organized by category: conference
lifecycle, chat messages, and connection control.

FRAME_TYPES maps each one-byte wire tag to its frame class and is what the
codec uses to dispatch on incoming tags.
"""

from typing import Dict, Type, Union

from .base import BaseFrame
from .conference import (
    CreateConferenceRequest,
    CreateConferenceResponse,
    JoinSaltRequest,
    JoinSaltResponse,
    JoinConferenceRequest,
    JoinConferenceResponse,
    LeaveConferenceNotice,
    ConferenceRestructuring,
)
from .message import ChatMessage
from .control import Heartbeat, DisconnectNotice, ErrorResponse

ProtocolMessage = Union[
    CreateConferenceRequest,
    CreateConferenceResponse,
    JoinSaltRequest,
    JoinSaltResponse,
    JoinConferenceRequest,
    JoinConferenceResponse,
    LeaveConferenceNotice,
    ConferenceRestructuring,
    ChatMessage,
    Heartbeat,
    DisconnectNotice,
    ErrorResponse,
]

FRAME_TYPES: Dict[int, Type[BaseFrame]] = {
    frame_type.TAG: frame_type
    for frame_type in (
        CreateConferenceRequest,
        JoinSaltRequest,
        JoinConferenceRequest,
        LeaveConferenceNotice,
        ChatMessage,
        DisconnectNotice,
        Heartbeat,
        CreateConferenceResponse,
        JoinSaltResponse,
        JoinConferenceResponse,
        ConferenceRestructuring,
        ErrorResponse,
    )
}

__all__ = [
    "BaseFrame",
    "ProtocolMessage",
    "FRAME_TYPES",
    # Conference schemas
    "CreateConferenceRequest",
    "CreateConferenceResponse",
    "JoinSaltRequest",
    "JoinSaltResponse",
    "JoinConferenceRequest",
    "JoinConferenceResponse",
    "LeaveConferenceNotice",
    "ConferenceRestructuring",
    # Message schemas
    "ChatMessage",
    # Control schemas
    "Heartbeat",
    "DisconnectNotice",
    "ErrorResponse",
]
