"""
Share password hashing using Argon2.
"""

import asyncio
from functools import lru_cache

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError

from config import settings


@lru_cache(maxsize=1)
def _get_hasher() -> PasswordHasher:
    """Get the process-wide Argon2 hasher."""
    return PasswordHasher(
        time_cost=max(int(settings.PASSWORD_HASH_TIME_COST), 1),
        memory_cost=max(int(settings.PASSWORD_HASH_MEMORY_COST), 8),
        parallelism=1,
        hash_len=32,
    )


def hash_password(password: str) -> str:
    """
    Hash a share password for storage.

    Args:
        password: Plain text password

    Returns:
        Encoded Argon2 hash including its salt and parameters
    """
    return _get_hasher().hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    """
    Compare a password against a stored hash.

    Args:
        password_hash: Encoded Argon2 hash
        password: Plain text candidate

    Returns:
        True on match, False on mismatch. Corrupt hashes raise.
    """
    try:
        return _get_hasher().verify(password_hash, password)
    except VerifyMismatchError:
        return False


async def hash_password_async(password: str) -> str:
    return await asyncio.to_thread(hash_password, password)


async def verify_password_async(password_hash: str, password: str) -> bool:
    return await asyncio.to_thread(verify_password, password_hash, password)
