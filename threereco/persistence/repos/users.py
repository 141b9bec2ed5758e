from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from threereco.core.errors import BackendError, NotFoundError
from threereco.domain.models import Role, User


async def load_principal(session: AsyncSession, user_id: UUID) -> User:
    # Roles and organization memberships are always needed by the request pipeline.
    stmt = (
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.roles), selectinload(User.organizations))
        .execution_options(populate_existing=True)
    )
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as exc:
        raise BackendError() from exc
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError()
    return user


async def get_by_email(session: AsyncSession, email: str) -> User | None:
    try:
        result = await session.execute(select(User).where(User.email == email.strip().lower()))
    except SQLAlchemyError as exc:
        raise BackendError() from exc
    return result.scalar_one_or_none()


async def get_role_by_name(session: AsyncSession, name: str) -> Role | None:
    try:
        result = await session.execute(select(Role).where(Role.name == name))
    except SQLAlchemyError as exc:
        raise BackendError() from exc
    return result.scalar_one_or_none()
