from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from threereco.core.errors import BackendError, ConflictError, ThreeRecoError


logger = logging.getLogger(__name__)


@dataclass
class AuditedTransaction:
    """Transaction handle carrying the acting identity for audit records."""

    session: AsyncSession
    audit_user_id: UUID | None = None
    # Organization recorded alongside the actor on each audit row.
    audit_organization_id: UUID | None = None
    ignore_audit_log: bool = False


def translate_store_error(exc: SQLAlchemyError) -> ThreeRecoError:
    # Unique violations are client-visible conflicts; everything else is a backend failure.
    if isinstance(exc, IntegrityError):
        return ConflictError()
    return BackendError()


@asynccontextmanager
async def audited_transaction(
    session: AsyncSession,
    *,
    audit_user_id: UUID | None,
    audit_organization_id: UUID | None = None,
    ignore_audit_log: bool = False,
) -> AsyncIterator[AuditedTransaction]:
    """Run a unit of work that commits on success and rolls back on any error.

    Audit rows are added to the same session as the mutations they describe, so
    they become visible atomically with the commit or not at all.
    """
    tx = AuditedTransaction(
        session=session,
        audit_user_id=audit_user_id,
        audit_organization_id=audit_organization_id,
        ignore_audit_log=ignore_audit_log,
    )
    try:
        yield tx
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("transaction_rolled_back reason=%s", type(exc).__name__)
        raise translate_store_error(exc) from exc
    except BaseException:
        await session.rollback()
        raise
