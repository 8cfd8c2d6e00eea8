"""
Tests for Password Proofs and Pseudonyms
"""

import pytest

from src.anonconf.credentials import (
    HASH_SIZE,
    PSEUDONYM_PREFIX,
    SALT_SIZE,
    KdfParams,
    derive_password_hash,
    hash_password,
    new_pseudonym,
    new_salt,
)

FAST_KDF = KdfParams(memory_cost=8, iterations=1, lanes=1)


def test_salts_are_random():
    """Test that each salt is fresh."""
    first, second = new_salt(), new_salt()
    assert len(first) == SALT_SIZE
    assert first != second


def test_pseudonym_format():
    """Test that pseudonyms are prefixed random hex."""
    pseudonym = new_pseudonym()
    assert pseudonym.startswith(PSEUDONYM_PREFIX)
    suffix = pseudonym[len(PSEUDONYM_PREFIX) :]
    assert len(suffix) == 8
    int(suffix, 16)


def test_pseudonyms_differ():
    """Test that two pseudonyms are unlinkable."""
    assert new_pseudonym() != new_pseudonym()


def test_hash_is_deterministic():
    """Test that the same password and salt give the same proof."""
    salt = b"s" * SALT_SIZE
    proof = hash_password("hello", salt, FAST_KDF)
    assert len(proof) == HASH_SIZE
    assert proof == hash_password("hello", salt, FAST_KDF)


def test_hash_depends_on_password_and_salt():
    """Test that changing password or salt changes the proof."""
    salt = b"s" * SALT_SIZE
    proof = hash_password("hello", salt, FAST_KDF)
    assert proof != hash_password("wrong", salt, FAST_KDF)
    assert proof != hash_password("hello", b"t" * SALT_SIZE, FAST_KDF)


def test_hash_is_not_the_password():
    """Test that the password does not appear in its proof."""
    proof = hash_password("hello", new_salt(), FAST_KDF)
    assert b"hello" not in proof


def test_default_parameters():
    """Test the default Argon2id cost parameters."""
    params = KdfParams()
    assert (params.memory_cost, params.iterations, params.lanes) == (
        19456,
        2,
        1,
    )


@pytest.mark.asyncio
async def test_derive_runs_off_loop():
    """Test that the async variant matches the synchronous one."""
    salt = new_salt()
    proof = await derive_password_hash("hello", salt, FAST_KDF)
    assert proof == hash_password("hello", salt, FAST_KDF)
