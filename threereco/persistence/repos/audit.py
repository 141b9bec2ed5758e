from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from threereco.domain.models import AuditLog


def _visible(
    stmt: Select,
    *,
    unrestricted: bool,
    organization_id: UUID | None,
    actor_id: UUID | None,
) -> Select:
    if unrestricted:
        return stmt
    if organization_id is not None:
        return stmt.where(AuditLog.organization_id == organization_id)
    # Callers outside any organization only see their own unscoped history.
    return stmt.where(AuditLog.organization_id.is_(None), AuditLog.user_id == actor_id)


def _scoped(
    stmt: Select,
    *,
    unrestricted: bool,
    organization_id: UUID | None,
    actor_id: UUID | None,
    table_name: str | None,
    operation_type: str | None,
    object_id: UUID | None,
    user_id: UUID | None,
) -> Select:
    stmt = _visible(
        stmt, unrestricted=unrestricted, organization_id=organization_id, actor_id=actor_id
    )
    if table_name:
        stmt = stmt.where(AuditLog.table_name == table_name)
    if operation_type:
        stmt = stmt.where(AuditLog.operation_type == operation_type)
    if object_id:
        stmt = stmt.where(AuditLog.object_id == object_id)
    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    return stmt


async def list_logs(
    session: AsyncSession,
    *,
    unrestricted: bool = False,
    organization_id: UUID | None = None,
    actor_id: UUID | None = None,
    table_name: str | None = None,
    operation_type: str | None = None,
    object_id: UUID | None = None,
    user_id: UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[AuditLog], int]:
    filters = dict(
        unrestricted=unrestricted,
        organization_id=organization_id,
        actor_id=actor_id,
        table_name=table_name,
        operation_type=operation_type,
        object_id=object_id,
        user_id=user_id,
    )
    count_stmt = _scoped(select(func.count()).select_from(AuditLog), **filters)
    rows_stmt = _scoped(select(AuditLog), **filters)
    rows_stmt = rows_stmt.order_by(AuditLog.created_at.desc(), AuditLog.id).offset(offset).limit(limit)
    count = int((await session.execute(count_stmt)).scalar() or 0)
    result = await session.execute(rows_stmt)
    return list(result.scalars().all()), count


async def get_log(
    session: AsyncSession,
    log_id: UUID,
    *,
    unrestricted: bool = False,
    organization_id: UUID | None = None,
    actor_id: UUID | None = None,
) -> AuditLog | None:
    stmt = _visible(
        select(AuditLog).where(AuditLog.id == log_id),
        unrestricted=unrestricted,
        organization_id=organization_id,
        actor_id=actor_id,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
