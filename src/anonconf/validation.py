"""
Validation Utilities

Checks applied to user input before anything is sent to the server:
chat message text and conference ids typed by the user.
"""

import unicodedata
from typing import Any, Tuple, Optional

from .schemas.base import MAX_WIRE_INT

# Message validation constants
MAX_MESSAGE_LENGTH = 5000
MAX_MESSAGE_BYTES = 16 * 1024  # UTF-8 encoded size of one payload

# Layout characters allowed inside a message
ALLOWED_CONTROL_CHARS = {"\n", "\t"}


def validate_message_content(content: str) -> Tuple[bool, Optional[str]]:
    """
    Validate message content.

    Args:
        content: The message content to validate

    Returns:
        tuple: (is_valid, error_message)
            - is_valid: True if content is valid, False otherwise
            - error_message: Error message if invalid, None if valid
    """
    if not content or not content.strip():
        return False, "Message content cannot be empty"

    if len(content) > MAX_MESSAGE_LENGTH:
        return (
            False,
            f"Message too long (max {MAX_MESSAGE_LENGTH} characters)",
        )

    if len(content.encode("utf-8", errors="surrogatepass")) > MAX_MESSAGE_BYTES:
        return False, f"Message too large (max {MAX_MESSAGE_BYTES} bytes)"

    for char in content:
        if char in ALLOWED_CONTROL_CHARS:
            continue
        if unicodedata.category(char) in ("Cc", "Cs"):
            return False, f"Message contains a control character ({ord(char):#x})"

    return True, None


def validate_conference_id(conference_id: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate a conference id before it is put on the wire.

    Returns:
        tuple: (is_valid, error_message)
    """
    # bool is an int subclass but never a valid id
    if isinstance(conference_id, bool) or not isinstance(conference_id, int):
        return False, f"Conference id must be an integer, got {conference_id!r}"
    if not 0 <= conference_id <= MAX_WIRE_INT:
        return False, f"Conference id out of range: {conference_id}"
    return True, None
