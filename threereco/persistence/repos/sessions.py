from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from threereco.domain.models import HttpSession


async def insert_session(
    session: AsyncSession,
    *,
    token_hash: str,
    user_id: UUID,
    now: datetime,
    expires_at: datetime,
) -> HttpSession:
    row = HttpSession(
        token_hash=token_hash,
        user_id=user_id,
        created_at=now,
        last_seen_at=now,
        expires_at=expires_at,
    )
    session.add(row)
    return row


async def get_session(session: AsyncSession, token_hash: str) -> HttpSession | None:
    result = await session.execute(select(HttpSession).where(HttpSession.token_hash == token_hash))
    return result.scalar_one_or_none()


async def touch_session(
    session: AsyncSession, token_hash: str, *, now: datetime, expires_at: datetime
) -> int:
    result = await session.execute(
        update(HttpSession)
        .where(HttpSession.token_hash == token_hash)
        .values(last_seen_at=now, expires_at=expires_at)
    )
    return int(result.rowcount or 0)


async def delete_session(session: AsyncSession, token_hash: str) -> int:
    result = await session.execute(delete(HttpSession).where(HttpSession.token_hash == token_hash))
    return int(result.rowcount or 0)


async def delete_expired(session: AsyncSession, *, now: datetime) -> int:
    result = await session.execute(delete(HttpSession).where(HttpSession.expires_at <= now))
    return int(result.rowcount or 0)
