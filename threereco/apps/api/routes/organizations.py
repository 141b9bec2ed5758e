from __future__ import annotations

from typing import Any
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
from threereco.services import entities
from threereco.services.tables import ORGANIZATIONS


class OrganizationCreate(ApiModel):
    name: str = Field(min_length=1)
    domain: str = Field(min_length=1)
    owner_id: UUID
    user_ids: list[UUID] = Field(default_factory=list)
    role_ids: list[UUID] = Field(default_factory=list)


class OrganizationUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1)
    domain: str | None = Field(default=None, min_length=1)
    owner_id: UUID | None = None


_related_fields = {"user_ids": "users", "role_ids": "roles"}

router = build_crud_router(
    descriptor=ORGANIZATIONS,
    prefix="/organizations",
    tag="organizations",
    permissions=CrudPermissions.for_module("businesses"),
    create_model=OrganizationCreate,
    related_fields=_related_fields,
    operations=("list", "get", "create"),
)


def _own_organization(ctx: RequestContext, organization_id: UUID) -> bool:
    return organization_id in ctx.principal.organization_ids


def _guard_membership(ctx: RequestContext, organization_id: UUID) -> None:
    ctx.ensure_broad_or_self("businesses.update", is_self=_own_organization(ctx, organization_id))


@router.put("/{object_id}")
async def update_organization(
    object_id: UUID,
    payload: OrganizationUpdate,
    ctx: RequestContext = Depends(require("businesses.update", "businesses.update.self", mfa=True)),
) -> dict[str, Any]:
    ctx.ensure_broad_or_self("businesses.update", is_self=_own_organization(ctx, object_id))
    values, _related = split_payload(payload, {})
    async with ctx.transaction() as tx:
        row = await entities.update_row(tx, ORGANIZATIONS, object_id, values)
        body = serialize(ORGANIZATIONS, row)
    return body


@router.delete("/{object_id}")
async def delete_organization(
    object_id: UUID,
    ctx: RequestContext = Depends(require("businesses.delete", "businesses.delete.self", mfa=True)),
) -> dict[str, str]:
    ctx.ensure_broad_or_self("businesses.delete", is_self=_own_organization(ctx, object_id))
    async with ctx.transaction() as tx:
        await entities.delete_row(tx, ORGANIZATIONS, object_id)
    return success_response("Deleted successfully.")


add_assignment_routes(
    router,
    descriptor=ORGANIZATIONS,
    association="users",
    child_slug="user",
    children_slug="users",
    assign_permissions=("businesses.users.assign",),
    unassign_permissions=("businesses.users.unassign",),
    view_permissions=("businesses.users.view",),
    parent_guard=_guard_membership,
)

add_assignment_routes(
    router,
    descriptor=ORGANIZATIONS,
    association="roles",
    child_slug="role",
    children_slug="roles",
    assign_permissions=("businesses.roles.assign",),
    unassign_permissions=("businesses.roles.unassign",),
    view_permissions=("businesses.roles.view",),
    parent_guard=_guard_membership,
)
