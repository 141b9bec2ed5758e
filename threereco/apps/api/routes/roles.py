from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import Field

from threereco.apps.api.crud import CrudPermissions, build_crud_router
from threereco.apps.api.deps import RequestContext, require
from threereco.apps.api.response import ApiModel
from threereco.core.errors import BadRequestError
from threereco.domain.permissions import PERMISSION_GROUPS, validate_permissions
from threereco.services.tables import ROLES


class RoleCreate(ApiModel):
    name: str = Field(min_length=1)
    description: str | None = None
    permissions: list[str] = Field(default_factory=list)
    default: bool = False


class RoleUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    permissions: list[str] | None = None
    default: bool | None = None


async def _validate_role(ctx: RequestContext, values: dict[str, Any]) -> dict[str, Any]:
    # Unknown permission strings are rejected instead of silently stored.
    if values.get("permissions") is not None:
        try:
            values["permissions"] = validate_permissions(values["permissions"])
        except ValueError as exc:
            raise BadRequestError(str(exc)) from exc
    return values


# Registered ahead of the CRUD router so "/roles/{id}" does not capture it.
permissions_router = APIRouter(prefix="/roles", tags=["roles"])


@permissions_router.get("/available-permissions")
async def available_permissions(
    ctx: RequestContext = Depends(require("permissions.view", mfa=True)),
) -> list[dict[str, Any]]:
    return [group.to_dict() for group in PERMISSION_GROUPS]


router = build_crud_router(
    descriptor=ROLES,
    prefix="/roles",
    tag="roles",
    permissions=CrudPermissions.for_module("roles"),
    create_model=RoleCreate,
    update_model=RoleUpdate,
    before_create=_validate_role,
    before_update=_validate_role,
)
