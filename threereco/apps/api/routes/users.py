from __future__ import annotations

import logging
from typing import Any, Literal
from uuid import UUID

from fastapi import Depends
from pydantic import Field

from threereco.apps.api.crud import (
    CrudPermissions,
    add_assignment_routes,
    build_crud_router,
    serialize,
    split_payload,
)
from threereco.apps.api.deps import RequestContext, require
from threereco.apps.api.response import ApiModel, success_response
from threereco.core.errors import BadRequestError, ForbiddenError
from threereco.domain.permissions import validate_permissions
from threereco.services import entities
from threereco.services.auth.passwords import hash_password
from threereco.services.tables import USERS


logger = logging.getLogger(__name__)

UserType = Literal["system", "collector", "business"]

# Fields only holders of users.update.any may change, even on their own account.
_PRIVILEGED_FIELDS = frozenset({"type", "permissions", "primary_organization_id"})


class UserCreate(ApiModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=8)
    name: str | None = None
    phone: str | None = None
    image: str | None = None
    job_title: str | None = None
    type: UserType = "collector"
    permissions: list[str] = Field(default_factory=list)
    primary_organization_id: UUID | None = None
    role_ids: list[UUID] = Field(default_factory=list)


class UserUpdate(ApiModel):
    email: str | None = Field(default=None, min_length=3, max_length=320)
    password: str | None = Field(default=None, min_length=8)
    name: str | None = None
    phone: str | None = None
    image: str | None = None
    job_title: str | None = None
    type: UserType | None = None
    permissions: list[str] | None = None
    primary_organization_id: UUID | None = None
    role_ids: list[UUID] | None = None


_related_fields = {"role_ids": "roles"}

router = build_crud_router(
    descriptor=USERS,
    prefix="/users",
    tag="users",
    permissions=CrudPermissions(
        view=("users.view",),
        create=("users.create",),
        update=("users.update.any",),
        delete=("users.delete.any",),
    ),
    operations=("list",),
)


def _checked_permissions(values: dict[str, Any]) -> None:
    if values.get("permissions") is not None:
        try:
            values["permissions"] = validate_permissions(values["permissions"])
        except ValueError as exc:
            raise BadRequestError(str(exc)) from exc


@router.get("/{object_id}")
async def get_user(
    object_id: UUID,
    ctx: RequestContext = Depends(require("users.view", "users.view.self", mfa=True)),
) -> dict[str, Any]:
    ctx.ensure_broad_or_self("users.view", is_self=object_id == ctx.user.id)
    row = await entities.get_row(ctx.db, USERS, object_id)
    return serialize(USERS, row)


@router.post("")
async def create_user(
    payload: UserCreate,
    ctx: RequestContext = Depends(require("users.create", mfa=True)),
) -> dict[str, Any]:
    values, related = split_payload(payload, _related_fields)
    _checked_permissions(values)
    values["password"] = await hash_password(values["password"])
    async with ctx.transaction() as tx:
        row = await entities.create_row(tx, USERS, values, related=related, trusted=True)
        body = serialize(USERS, row)
    logger.info("user_created user_id=%s by=%s", row.id, ctx.user.id)
    return body


@router.put("/{object_id}")
async def update_user(
    object_id: UUID,
    payload: UserUpdate,
    ctx: RequestContext = Depends(require("users.update.any", "users.update.self", mfa=True)),
) -> dict[str, Any]:
    ctx.ensure_broad_or_self("users.update.any", is_self=object_id == ctx.user.id)
    values, related = split_payload(payload, _related_fields)
    if not ctx.allows("users.update.any") and (related or _PRIVILEGED_FIELDS & set(values)):
        logger.warning("self_update_denied user_id=%s fields=%s", ctx.user.id, ",".join(sorted(values)))
        raise ForbiddenError()
    _checked_permissions(values)
    if values.get("password") is not None:
        values["password"] = await hash_password(values["password"])
    else:
        values.pop("password", None)
    async with ctx.transaction() as tx:
        row = await entities.update_row(tx, USERS, object_id, values, related=related, trusted=True)
        body = serialize(USERS, row)
    return body


@router.delete("/{object_id}")
async def delete_user(
    object_id: UUID,
    ctx: RequestContext = Depends(require("users.delete.any", "users.delete.self", mfa=True)),
) -> dict[str, str]:
    ctx.ensure_broad_or_self("users.delete.any", is_self=object_id == ctx.user.id)
    async with ctx.transaction() as tx:
        await entities.delete_row(tx, USERS, object_id)
    return success_response("Deleted successfully.")


add_assignment_routes(
    router,
    descriptor=USERS,
    association="roles",
    child_slug="role",
    children_slug="roles",
    assign_permissions=("users.update.any",),
    unassign_permissions=("users.update.any",),
    view_permissions=("users.view",),
)
