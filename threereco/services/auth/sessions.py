from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import hashlib
import logging
import secrets
from typing import Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from threereco.core.errors import BackendError, SessionExpired, SessionMissing
from threereco.persistence.repos import sessions as sessions_repo


logger = logging.getLogger(__name__)

# 256 bits of entropy, URL-safe so it can travel in a cookie unquoted.
TOKEN_BYTES = 32


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hash_session_token(raw_token: str) -> str:
    # Store only a SHA-256 digest so a database leak does not leak live sessions.
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # sqlite drops tzinfo on the way back; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class SessionState:
    token: str
    user_id: UUID
    expires_at: datetime


class SessionManager:
    """Opaque, server-side sessions with a sliding expiry window.

    Every operation runs in its own short store transaction so session state is
    durable regardless of what the request transaction does.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def now(self) -> datetime:
        return _as_utc(self._clock())

    async def create(self, user_id: UUID) -> SessionState:
        token = secrets.token_urlsafe(TOKEN_BYTES)
        now = self.now()
        expires_at = now + self._ttl
        async with self._session_factory() as session:
            try:
                await sessions_repo.insert_session(
                    session,
                    token_hash=hash_session_token(token),
                    user_id=user_id,
                    now=now,
                    expires_at=expires_at,
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.exception("session_create_failed user_id=%s", user_id)
                raise BackendError() from exc
        logger.info("session_created user_id=%s", user_id)
        return SessionState(token=token, user_id=user_id, expires_at=expires_at)

    async def load(self, token: str | None) -> SessionState:
        if not token:
            raise SessionMissing()
        token_hash = hash_session_token(token)
        async with self._session_factory() as session:
            try:
                row = await sessions_repo.get_session(session, token_hash)
                if row is None:
                    raise SessionMissing()
                expires_at = _as_utc(row.expires_at)
                if expires_at <= self.now():
                    await sessions_repo.delete_session(session, token_hash)
                    await session.commit()
                    raise SessionExpired("Your session has expired. Please log in again.")
                return SessionState(token=token, user_id=row.user_id, expires_at=expires_at)
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.exception("session_load_failed")
                raise BackendError() from exc

    async def refresh(self, token: str) -> datetime | None:
        """Slide the expiry to now + ttl; returns the new expiry or None if the session is gone."""
        now = self.now()
        expires_at = now + self._ttl
        token_hash = hash_session_token(token)
        async with self._session_factory() as session:
            try:
                touched = await sessions_repo.touch_session(
                    session, token_hash, now=now, expires_at=expires_at
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.exception("session_refresh_failed")
                raise BackendError() from exc
        if not touched:
            return None
        return expires_at

    async def destroy(self, token: str | None) -> bool:
        # Destroying an unknown or already-removed session is not an error.
        if not token:
            return False
        async with self._session_factory() as session:
            try:
                removed = await sessions_repo.delete_session(session, hash_session_token(token))
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.exception("session_destroy_failed")
                raise BackendError() from exc
        return removed > 0

    async def purge_expired(self) -> int:
        async with self._session_factory() as session:
            try:
                removed = await sessions_repo.delete_expired(session, now=self.now())
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise BackendError() from exc
        logger.info("sessions_purged count=%s", removed)
        return removed
