"""
Password Proofs and Pseudonyms

Conference passwords never leave the client in plaintext. Instead the
client sends an Argon2id hash of the password under a conference-specific
salt:

    - create: the client picks a fresh join salt and sends (hash, salt)
    - join: the client asks the server for the conference's join salt,
      then sends hash(password, salt)

Pseudonyms generated here are random and carry no information about the
user or any other conference.
"""

import asyncio
import os
import secrets
from dataclasses import dataclass

from cryptography.hazmat.primitives.kdf.argon2 import Argon2id

SALT_SIZE = 32
HASH_SIZE = 32
PSEUDONYM_PREFIX = "anon-"


@dataclass(frozen=True)
class KdfParams:
    """
    Argon2id cost parameters.

    The defaults match the argon2 reference crate defaults
    (19 MiB memory, 2 passes, 1 lane).

    Attributes:
        memory_cost: Memory in KiB; must be at least 8 * lanes
        iterations: Number of passes
        lanes: Degree of parallelism
    """

    memory_cost: int = 19456
    iterations: int = 2
    lanes: int = 1


def new_salt() -> bytes:
    """Return a fresh random salt."""
    return os.urandom(SALT_SIZE)


def new_pseudonym() -> str:
    """Return a fresh random conference pseudonym."""
    return f"{PSEUDONYM_PREFIX}{secrets.token_hex(4)}"


def hash_password(
    password: str, salt: bytes, params: KdfParams = KdfParams()
) -> bytes:
    """
    Derive the password proof for a conference.

    Args:
        password: Conference password
        salt: Conference join salt
        params: Argon2id cost parameters

    Returns:
        HASH_SIZE bytes of Argon2id output
    """
    kdf = Argon2id(
        salt=salt,
        length=HASH_SIZE,
        iterations=params.iterations,
        lanes=params.lanes,
        memory_cost=params.memory_cost,
    )
    return kdf.derive(password.encode("utf-8"))


async def derive_password_hash(
    password: str, salt: bytes, params: KdfParams = KdfParams()
) -> bytes:
    """
    Derive the password proof without blocking the event loop.

    Argon2id is deliberately slow, so the work runs in the default
    executor while the read loop keeps draining the connection.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None, hash_password, password, salt, params
    )
