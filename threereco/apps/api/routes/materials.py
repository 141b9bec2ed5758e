from __future__ import annotations

from pydantic import Field

from threereco.apps.api.crud import CrudPermissions, build_crud_router
from threereco.apps.api.response import ApiModel
from threereco.services.tables import MATERIALS


class MaterialCreate(ApiModel):
    name: str = Field(min_length=1)
    gw_code: str = Field(min_length=1)
    carbon_factor: str


class MaterialUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1)
    gw_code: str | None = Field(default=None, min_length=1)
    carbon_factor: str | None = None


router = build_crud_router(
    descriptor=MATERIALS,
    prefix="/materials",
    tag="materials",
    permissions=CrudPermissions.for_module("materials"),
    create_model=MaterialCreate,
    update_model=MaterialUpdate,
)
