from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import Field

from threereco.apps.api.crud import CrudPermissions, add_assignment_routes, build_crud_router
from threereco.apps.api.response import ApiModel
from threereco.services.tables import TRANSACTIONS


TransactionType = Literal["collection", "transfer"]


class TransactionCreate(ApiModel):
    type: TransactionType
    weight: float = Field(default=0.0, ge=0)
    amount: float = Field(default=0.0, ge=0)
    seller_accepted: bool = False
    seller_declined: bool = False
    seller_id: UUID
    buyer_id: UUID
    seller_type: str | None = None
    buyer_type: str | None = None
    product_ids: list[UUID] = Field(default_factory=list)


class TransactionUpdate(ApiModel):
    type: TransactionType | None = None
    weight: float | None = Field(default=None, ge=0)
    amount: float | None = Field(default=None, ge=0)
    seller_accepted: bool | None = None
    seller_declined: bool | None = None
    seller_type: str | None = None
    buyer_type: str | None = None
    product_ids: list[UUID] | None = None


_permissions = CrudPermissions.for_module("transactions")

router = build_crud_router(
    descriptor=TRANSACTIONS,
    prefix="/transactions",
    tag="transactions",
    permissions=_permissions,
    create_model=TransactionCreate,
    update_model=TransactionUpdate,
    related_fields={"product_ids": "products"},
)

add_assignment_routes(
    router,
    descriptor=TRANSACTIONS,
    association="products",
    child_slug="product",
    children_slug="products",
    assign_permissions=("transactions.products.assign",),
    unassign_permissions=("transactions.products.unassign",),
    view_permissions=_permissions.view,
)
