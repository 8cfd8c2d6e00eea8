"""
Base Frame Class

This module provides the base class shared by every protocol frame, with
common serialization and deserialization of the JSON frame body, plus the
field readers used to validate bodies coming off the wire.
"""

import base64
import binascii
from dataclasses import asdict, fields
from typing import Any, ClassVar, Dict, Optional, Type, TypeVar

from ..errors import DecodeError

T = TypeVar("T", bound="BaseFrame")

# Conference ids and sequence numbers must fit a signed 64-bit integer
MAX_WIRE_INT = 2**63 - 1


class BaseFrame:
    """
    Base class for protocol frames.

    Subclasses are dataclasses that set TAG to their one-byte wire tag and
    override _from_data when their body has fields. Bytes fields travel as
    base64 strings.
    """

    TAG: ClassVar[int]

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to the dictionary sent as the frame body.

        Returns:
            Dictionary of field values; empty for frames without fields.
        """
        if not fields(self):
            return {}
        body = asdict(self)
        for key, value in body.items():
            if isinstance(value, bytes):
                body[key] = base64.b64encode(value).decode("ascii")
        return body

    @classmethod
    def from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
        """
        Create an instance from a decoded frame body.

        Raises:
            DecodeError: If the body is not an object or a field is
                         missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise DecodeError(f"{cls.__name__} body must be a JSON object")
        return cls._from_data(data)

    @classmethod
    def _from_data(cls: Type[T], data: Dict[str, Any]) -> T:
        """
        Build the instance from a validated body dictionary.

        Frames without fields use this default.
        """
        return cls()


def read_str(data: Dict[str, Any], key: str) -> str:
    """Read a required non-empty string field."""
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise DecodeError(f"field '{key}' must be a non-empty string")
    return value


def read_optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    """Read an optional string field; missing and null both give None."""
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DecodeError(f"field '{key}' must be a string")
    return value


def read_int(data: Dict[str, Any], key: str, minimum: int = 0) -> int:
    """Read a required integer field within [minimum, MAX_WIRE_INT]."""
    value = data.get(key)
    # bool is an int subclass; reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool):
        raise DecodeError(f"field '{key}' must be an integer")
    if value < minimum or value > MAX_WIRE_INT:
        raise DecodeError(f"field '{key}' out of range: {value}")
    return value


def read_bytes(
    data: Dict[str, Any], key: str, size: Optional[int] = None
) -> bytes:
    """Read a required base64 field, optionally of an exact size."""
    value = data.get(key)
    if not isinstance(value, str):
        raise DecodeError(f"field '{key}' must be a base64 string")
    try:
        raw = base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError):
        raise DecodeError(f"field '{key}' is not valid base64")
    if size is not None and len(raw) != size:
        raise DecodeError(
            f"field '{key}' must be {size} bytes, got {len(raw)}"
        )
    return raw
