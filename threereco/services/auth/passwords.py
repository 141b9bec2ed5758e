from __future__ import annotations

import asyncio

import bcrypt

from threereco.core.config import get_settings


def hash_password_sync(password: str, *, rounds: int | None = None) -> bytes:
    salt = bcrypt.gensalt(rounds=rounds or get_settings().bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt)


def verify_password_sync(password: str, password_hash: bytes | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash)
    except ValueError:
        # Malformed stored hash; treat as a mismatch.
        return False


async def hash_password(password: str) -> bytes:
    # bcrypt is CPU-bound; keep it off the event loop.
    return await asyncio.to_thread(hash_password_sync, password)


async def verify_password(password: str, password_hash: bytes | None) -> bool:
    return await asyncio.to_thread(verify_password_sync, password, password_hash)
