"""
Conference Frame Definitions

This module defines the frames for conference lifecycle operations:
creating, joining (salt lookup and authentication) and leaving a
conference, plus the server's restructuring notice.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..credentials import HASH_SIZE, SALT_SIZE
from .base import (
    BaseFrame,
    read_bytes,
    read_int,
    read_optional_str,
    read_str,
)


@dataclass
class CreateConferenceRequest(BaseFrame):
    """
    Request to create a new conference.

    Attributes:
        password_hash: Argon2id proof of the conference password
        join_salt: Salt the proof was derived with; the server hands it
                   out to clients that want to join
    """

    TAG = 0x01

    password_hash: bytes
    join_salt: bytes

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "CreateConferenceRequest":
        """Create from frame body."""
        return cls(
            password_hash=read_bytes(data, "password_hash", HASH_SIZE),
            join_salt=read_bytes(data, "join_salt", SALT_SIZE),
        )


@dataclass
class JoinSaltRequest(BaseFrame):
    """
    Request for the join salt of an existing conference.

    Attributes:
        conference_id: Conference the client wants to join
    """

    TAG = 0x02

    conference_id: int

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "JoinSaltRequest":
        """Create from frame body."""
        return cls(conference_id=read_int(data, "conference_id"))


@dataclass
class JoinConferenceRequest(BaseFrame):
    """
    Request to join an existing conference.

    Attributes:
        conference_id: Conference to join
        password_hash: Argon2id proof under the conference's join salt
    """

    TAG = 0x03

    conference_id: int
    password_hash: bytes

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "JoinConferenceRequest":
        """Create from frame body."""
        return cls(
            conference_id=read_int(data, "conference_id"),
            password_hash=read_bytes(data, "password_hash", HASH_SIZE),
        )


@dataclass
class LeaveConferenceNotice(BaseFrame):
    """
    Notice that the client has left a conference. No reply is expected.

    Attributes:
        conference_id: Conference being left
    """

    TAG = 0x04

    conference_id: int

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "LeaveConferenceNotice":
        """Create from frame body."""
        return cls(conference_id=read_int(data, "conference_id"))


@dataclass
class CreateConferenceResponse(BaseFrame):
    """
    Response indicating a conference was created.

    Attributes:
        conference_id: Identifier assigned by the server
        pseudonym: Creator's pseudonym, if the server assigns one
    """

    TAG = 0x81

    conference_id: int
    pseudonym: Optional[str] = None

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "CreateConferenceResponse":
        """Create from frame body."""
        return cls(
            conference_id=read_int(data, "conference_id"),
            pseudonym=read_optional_str(data, "pseudonym"),
        )


@dataclass
class JoinSaltResponse(BaseFrame):
    """
    Response carrying a conference's join salt.

    Attributes:
        conference_id: Conference the salt belongs to
        join_salt: Salt to derive the password proof with
    """

    TAG = 0x82

    conference_id: int
    join_salt: bytes

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "JoinSaltResponse":
        """Create from frame body."""
        return cls(
            conference_id=read_int(data, "conference_id"),
            join_salt=read_bytes(data, "join_salt", SALT_SIZE),
        )


@dataclass
class JoinConferenceResponse(BaseFrame):
    """
    Response indicating a successful join.

    Attributes:
        pseudonym: Pseudonym assigned to this client in the conference
        peer_count: Number of participants, including this client
    """

    TAG = 0x83

    pseudonym: str
    peer_count: int = 0

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "JoinConferenceResponse":
        """Create from frame body."""
        peer_count = 0
        if data.get("peer_count") is not None:
            peer_count = read_int(data, "peer_count")
        return cls(
            pseudonym=read_str(data, "pseudonym"),
            peer_count=peer_count,
        )


@dataclass
class ConferenceRestructuring(BaseFrame):
    """
    Notice that the participant set of a conference changed.

    Attributes:
        conference_id: Conference that changed
        peer_count: New number of participants
    """

    TAG = 0x86

    conference_id: int
    peer_count: int

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "ConferenceRestructuring":
        """Create from frame body."""
        return cls(
            conference_id=read_int(data, "conference_id"),
            peer_count=read_int(data, "peer_count"),
        )
