from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import inspect

from threereco.core.errors import AuditAttributionMissing
from threereco.domain.models import AuditLog
from threereco.persistence.transaction import AuditedTransaction


logger = logging.getLogger(__name__)

OPERATION_INSERT = "INSERT"
OPERATION_UPDATE = "UPDATE"
OPERATION_DELETE = "DELETE"

# Attribute names that never leave the database in audit snapshots or responses.
SECRET_FIELDS = frozenset({"password", "mfa_secret"})


def camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _json_value(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, bytes):
        # Binary columns are either secrets or opaque blobs; neither belongs in JSON.
        return None
    if isinstance(value, (list, tuple)):
        return [_json_value(item) for item in value]
    if isinstance(value, dict):
        return {str(k): _json_value(v) for k, v in value.items()}
    return value


def serialize_row(row: Any, *, associations: Iterable[str] = ()) -> dict[str, Any]:
    """Serialize a mapped row into lowerCamelCase JSON without secret fields.

    Association collections listed in ``associations`` must already be loaded;
    they are written as ``<singular>Ids`` lists (``roles`` becomes ``roleIds``).
    """
    mapper = inspect(row).mapper
    payload: dict[str, Any] = {}
    for attr in mapper.column_attrs:
        if attr.key in SECRET_FIELDS:
            continue
        payload[camel_case(attr.key)] = _json_value(getattr(row, attr.key))
    for name in associations:
        related = getattr(row, name)
        singular = camel_case(name)[:-1] if name.endswith("s") else camel_case(name)
        payload[f"{singular}Ids"] = [str(item.id) for item in related]
    return payload


def record_mutation(
    tx: AuditedTransaction,
    *,
    table_name: str,
    operation: str,
    row: Any,
    associations: Iterable[str] = (),
    ignore_audit: bool = False,
) -> AuditLog | None:
    """Add one audit row for a mutation to the transaction's session.

    INSERT and UPDATE callers flush first so the snapshot reflects the row as
    stored; DELETE callers invoke this before the row is removed.
    """
    if tx.ignore_audit_log or ignore_audit:
        return None
    if tx.audit_user_id is None:
        logger.error("audit_attribution_missing table=%s op=%s", table_name, operation)
        raise AuditAttributionMissing()
    entry = AuditLog(
        table_name=table_name,
        operation_type=operation,
        object_id=row.id,
        data=serialize_row(row, associations=associations),
        user_id=tx.audit_user_id,
        organization_id=tx.audit_organization_id,
    )
    tx.session.add(entry)
    logger.info(
        "audit_log_written table=%s op=%s object_id=%s user_id=%s",
        table_name,
        operation,
        row.id,
        tx.audit_user_id,
    )
    return entry
