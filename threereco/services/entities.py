"""Audited data access for every CRUD-able entity.

Each mutation goes through one of the primitives below, which perform the
write and then call the audit writer explicitly in the same transaction.
Reads accept the request's policy filter so list, count and lookups all see
the same rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math
from typing import Any, Iterable, Sequence
from uuid import UUID

from sqlalchemy import func, inspect, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from threereco.core.errors import BackendError, BadRequestError, ForbiddenError, NotFoundError
from threereco.domain import models
from threereco.persistence.filters import RowFilter, TrueFilter, matches_row, to_clause
from threereco.persistence.transaction import AuditedTransaction
from threereco.services.audit import (
    OPERATION_DELETE,
    OPERATION_INSERT,
    OPERATION_UPDATE,
    record_mutation,
)
from threereco.services.authz.policies import PolicyKind


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableDescriptor:
    """Static description of one entity table for the generic CRUD layer."""

    model: type[models.Base]
    table_name: str
    identity_field: str = "id"
    # Many-to-many collections that appear in audit snapshots and responses.
    associations: tuple[str, ...] = ()
    # Policy kinds that gate row visibility for this table.
    policy_kinds: tuple[PolicyKind, ...] = ()
    search_columns: tuple[str, ...] = ()
    # Columns clients may set on create/update.
    writable: tuple[str, ...] = field(default_factory=tuple)
    audited: bool = True

    def identity_column(self) -> Any:
        return getattr(self.model, self.identity_field)

    def related_model(self, association: str) -> type[models.Base]:
        relationships = inspect(self.model).relationships
        if association not in self.associations or association not in relationships:
            raise BadRequestError(f"Unknown association: {association}")
        return relationships[association].mapper.class_

    def load_options(self) -> list[Any]:
        return [selectinload(getattr(self.model, name)) for name in self.associations]


@dataclass
class Page:
    items: list[Any]
    count: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return max(1, math.ceil(self.count / self.page_size)) if self.page_size else 1

    def pagination(self) -> dict[str, int]:
        next_page = min(self.page + 1, self.pages)
        previous_page = max(self.page - 1, 1)
        return {
            "count": self.count,
            "pages": self.pages,
            "pageSize": self.page_size,
            "currentPage": self.page,
            "nextPage": next_page,
            "previousPage": previous_page,
        }


def _record(tx: AuditedTransaction, descriptor: TableDescriptor, operation: str, row: Any, ignore_audit: bool) -> None:
    if not descriptor.audited:
        return
    record_mutation(
        tx,
        table_name=descriptor.table_name,
        operation=operation,
        row=row,
        associations=descriptor.associations,
        ignore_audit=ignore_audit,
    )


def _check_writable(descriptor: TableDescriptor, values: dict[str, Any]) -> None:
    unknown = sorted(set(values) - set(descriptor.writable))
    if unknown:
        raise BadRequestError(f"Fields cannot be written: {', '.join(unknown)}")


async def _load_related(
    session: AsyncSession, model: type[models.Base], ids: Sequence[UUID]
) -> list[Any]:
    unique_ids = list(dict.fromkeys(ids))
    if not unique_ids:
        return []
    result = await session.execute(select(model).where(model.id.in_(unique_ids)))
    rows = list(result.scalars().all())
    if len(rows) != len(unique_ids):
        raise NotFoundError()
    by_id = {row.id: row for row in rows}
    return [by_id[item] for item in unique_ids]


async def get_row(
    session: AsyncSession,
    descriptor: TableDescriptor,
    object_id: Any,
    *,
    policies: RowFilter = TrueFilter(),
) -> Any:
    # Invisible rows are reported exactly like missing ones.
    stmt = (
        select(descriptor.model)
        .where(descriptor.identity_column() == object_id)
        .where(to_clause(policies, descriptor.model))
        .options(*descriptor.load_options())
    )
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as exc:
        logger.exception("entity_get_failed table=%s", descriptor.table_name)
        raise BackendError() from exc
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError()
    return row


async def list_rows(
    session: AsyncSession,
    descriptor: TableDescriptor,
    *,
    policies: RowFilter = TrueFilter(),
    page: int = 1,
    page_size: int = 10,
    search_term: str | None = None,
    search_columns: Iterable[str] = (),
    extra_filters: Iterable[Any] = (),
) -> Page:
    """Return one page of rows plus the total count under the same predicate."""
    page = max(page, 1)
    page_size = max(page_size, 1)
    conditions = [to_clause(policies, descriptor.model), *extra_filters]
    # Without explicit columns the table's default search columns apply.
    columns = list(search_columns) or list(descriptor.search_columns)
    if search_term and columns:
        unknown = [name for name in columns if name not in descriptor.search_columns]
        if unknown:
            raise BadRequestError(f"Cannot search column: {', '.join(unknown)}")
        pattern = f"%{search_term}%"
        conditions.append(or_(*(getattr(descriptor.model, name).ilike(pattern) for name in columns)))

    count_stmt = select(func.count()).select_from(descriptor.model).where(*conditions)
    rows_stmt = (
        select(descriptor.model)
        .where(*conditions)
        .options(*descriptor.load_options())
        .order_by(descriptor.model.created_at.desc(), descriptor.model.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    try:
        count = int((await session.execute(count_stmt)).scalar() or 0)
        items = list((await session.execute(rows_stmt)).scalars().all())
    except SQLAlchemyError as exc:
        logger.exception("entity_list_failed table=%s", descriptor.table_name)
        raise BackendError() from exc
    return Page(items=items, count=count, page=page, page_size=page_size)


async def create_row(
    tx: AuditedTransaction,
    descriptor: TableDescriptor,
    values: dict[str, Any],
    *,
    related: dict[str, Sequence[UUID]] | None = None,
    policies: RowFilter = TrueFilter(),
    ignore_audit: bool = False,
    trusted: bool = False,
) -> Any:
    """Insert a row, attach associations, flush, then write its INSERT audit record."""
    if not trusted:
        _check_writable(descriptor, values)
    row = descriptor.model(**values)
    row.modified_by_id = tx.audit_user_id
    # A caller may only create rows it would be allowed to see.
    if not matches_row(policies, row):
        raise ForbiddenError()
    for association, ids in (related or {}).items():
        model = descriptor.related_model(association)
        setattr(row, association, await _load_related(tx.session, model, ids))
    for association in descriptor.associations:
        if association not in (related or {}):
            setattr(row, association, [])
    tx.session.add(row)
    await tx.session.flush()
    _record(tx, descriptor, OPERATION_INSERT, row, ignore_audit)
    return row


async def update_row(
    tx: AuditedTransaction,
    descriptor: TableDescriptor,
    object_id: Any,
    values: dict[str, Any],
    *,
    related: dict[str, Sequence[UUID]] | None = None,
    policies: RowFilter = TrueFilter(),
    ignore_audit: bool = False,
    trusted: bool = False,
) -> Any:
    """Merge ``values`` into a visible row and audit the merged state."""
    if not trusted:
        _check_writable(descriptor, values)
    row = await get_row(tx.session, descriptor, object_id, policies=policies)
    for key, value in values.items():
        setattr(row, key, value)
    if not matches_row(policies, row):
        raise ForbiddenError()
    for association, ids in (related or {}).items():
        model = descriptor.related_model(association)
        setattr(row, association, await _load_related(tx.session, model, ids))
    row.modified_by_id = tx.audit_user_id
    await tx.session.flush()
    _record(tx, descriptor, OPERATION_UPDATE, row, ignore_audit)
    return row


async def delete_row(
    tx: AuditedTransaction,
    descriptor: TableDescriptor,
    object_id: Any,
    *,
    policies: RowFilter = TrueFilter(),
    ignore_audit: bool = False,
) -> Any:
    """Audit the last visible state of a row, then remove it."""
    row = await get_row(tx.session, descriptor, object_id, policies=policies)
    _record(tx, descriptor, OPERATION_DELETE, row, ignore_audit)
    await tx.session.delete(row)
    await tx.session.flush()
    return row


async def assign(
    tx: AuditedTransaction,
    descriptor: TableDescriptor,
    object_id: Any,
    association: str,
    related_ids: Sequence[UUID],
    *,
    policies: RowFilter = TrueFilter(),
) -> Any:
    # Adding members is an UPDATE of the owning row.
    model = descriptor.related_model(association)
    row = await get_row(tx.session, descriptor, object_id, policies=policies)
    current = getattr(row, association)
    present = {item.id for item in current}
    for item in await _load_related(tx.session, model, related_ids):
        if item.id not in present:
            current.append(item)
            present.add(item.id)
    row.modified_by_id = tx.audit_user_id
    await tx.session.flush()
    _record(tx, descriptor, OPERATION_UPDATE, row, False)
    return row


async def unassign(
    tx: AuditedTransaction,
    descriptor: TableDescriptor,
    object_id: Any,
    association: str,
    related_ids: Sequence[UUID],
    *,
    policies: RowFilter = TrueFilter(),
) -> Any:
    descriptor.related_model(association)
    row = await get_row(tx.session, descriptor, object_id, policies=policies)
    removing = set(related_ids)
    setattr(row, association, [item for item in getattr(row, association) if item.id not in removing])
    row.modified_by_id = tx.audit_user_id
    await tx.session.flush()
    _record(tx, descriptor, OPERATION_UPDATE, row, False)
    return row
