from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError

from threereco.apps.api.crud import list_params
from threereco.apps.api.deps import RequestContext, require
from threereco.core.errors import BackendError, BadRequestError, NotFoundError
from threereco.persistence.repos import audit as audit_repo
from threereco.services.audit import serialize_row
from threereco.services.authz.policies import USER_SYSTEM
from threereco.services.entities import Page


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])


def _visibility(ctx: RequestContext) -> dict[str, Any]:
    # System users read every organization's history; everyone else only their own.
    return {
        "unrestricted": ctx.user.type == USER_SYSTEM,
        "organization_id": ctx.user.primary_organization_id,
        "actor_id": ctx.user.id,
    }


@router.get("")
async def list_audit_logs(
    table_name: str | None = Query(default=None, alias="tableName"),
    operation_type: str | None = Query(default=None, alias="operationType"),
    object_id: UUID | None = Query(default=None, alias="objectId"),
    user_id: UUID | None = Query(default=None, alias="userId"),
    params: dict[str, Any] = Depends(list_params),
    ctx: RequestContext = Depends(require("audit_logs.view", mfa=True)),
) -> dict[str, Any]:
    if params["search_term"]:
        raise BadRequestError("Search is not supported for audit logs; filter by column instead.")
    page_size = params["page_size"]
    try:
        rows, count = await audit_repo.list_logs(
            ctx.db,
            **_visibility(ctx),
            table_name=table_name,
            operation_type=operation_type,
            object_id=object_id,
            user_id=user_id,
            offset=(params["page"] - 1) * page_size,
            limit=page_size,
        )
    except SQLAlchemyError as exc:
        logger.exception("audit_log_list_failed user_id=%s", ctx.user.id)
        raise BackendError() from exc
    page = Page(items=rows, count=count, page=params["page"], page_size=page_size)
    return {"items": [serialize_row(row) for row in page.items], "pagination": page.pagination()}


@router.get("/{log_id}")
async def get_audit_log(
    log_id: UUID,
    ctx: RequestContext = Depends(require("audit_logs.view", mfa=True)),
) -> dict[str, Any]:
    try:
        row = await audit_repo.get_log(ctx.db, log_id, **_visibility(ctx))
    except SQLAlchemyError as exc:
        logger.exception("audit_log_get_failed user_id=%s", ctx.user.id)
        raise BackendError() from exc
    if row is None:
        raise NotFoundError()
    return serialize_row(row)
