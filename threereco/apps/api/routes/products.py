from __future__ import annotations

from uuid import UUID

from pydantic import Field

from threereco.apps.api.crud import CrudPermissions, add_assignment_routes, build_crud_router
from threereco.apps.api.response import ApiModel
from threereco.services.tables import PRODUCTS


class ProductCreate(ApiModel):
    name: str = Field(min_length=1)
    value: float = Field(default=0.0, ge=0)
    material_ids: list[UUID] = Field(default_factory=list)


class ProductUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1)
    value: float | None = Field(default=None, ge=0)
    material_ids: list[UUID] | None = None


_permissions = CrudPermissions.for_module("products")

router = build_crud_router(
    descriptor=PRODUCTS,
    prefix="/products",
    tag="products",
    permissions=_permissions,
    create_model=ProductCreate,
    update_model=ProductUpdate,
    related_fields={"material_ids": "materials"},
)

add_assignment_routes(
    router,
    descriptor=PRODUCTS,
    association="materials",
    child_slug="material",
    children_slug="materials",
    assign_permissions=("products.materials.assign",),
    unassign_permissions=("products.materials.unassign",),
    view_permissions=_permissions.view,
)
