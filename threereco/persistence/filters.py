"""Store-independent row filters.

Policies are compiled into this small AST and only translated into SQLAlchemy
expressions at query time, so the authorization layer never imports the ORM.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from sqlalchemy import and_, inspect, or_, true
from sqlalchemy.sql.elements import ColumnElement


@dataclass(frozen=True)
class Eq:
    column: str
    value: Any


@dataclass(frozen=True)
class Or:
    operands: tuple["RowFilter", ...]


@dataclass(frozen=True)
class And:
    operands: tuple["RowFilter", ...]


@dataclass(frozen=True)
class TrueFilter:
    pass


RowFilter = Union[Eq, Or, And, TrueFilter]


def any_of(*operands: RowFilter) -> RowFilter:
    if len(operands) == 1:
        return operands[0]
    return Or(tuple(operands))


def to_clause(row_filter: RowFilter, model: type) -> ColumnElement[bool]:
    """Translate a row filter into a SQLAlchemy boolean expression for ``model``."""
    if isinstance(row_filter, TrueFilter):
        return true()
    if isinstance(row_filter, Eq):
        columns = inspect(model).columns
        if row_filter.column not in columns:
            raise ValueError(f"{model.__name__} has no column {row_filter.column!r}")
        return columns[row_filter.column] == row_filter.value
    if isinstance(row_filter, Or):
        return or_(*(to_clause(op, model) for op in row_filter.operands))
    if isinstance(row_filter, And):
        return and_(*(to_clause(op, model) for op in row_filter.operands))
    raise TypeError(f"Unsupported row filter: {row_filter!r}")


def matches_row(row_filter: RowFilter, row: Any) -> bool:
    # In-memory evaluation for rows that are already loaded.
    if isinstance(row_filter, TrueFilter):
        return True
    if isinstance(row_filter, Eq):
        return getattr(row, row_filter.column) == row_filter.value
    if isinstance(row_filter, Or):
        return any(matches_row(op, row) for op in row_filter.operands)
    if isinstance(row_filter, And):
        return all(matches_row(op, row) for op in row_filter.operands)
    raise TypeError(f"Unsupported row filter: {row_filter!r}")
