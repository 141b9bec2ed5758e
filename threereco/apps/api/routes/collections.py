from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import Depends
from pydantic import Field

from threereco.apps.api.crud import (
    CrudPermissions,
    build_crud_router,
    list_params,
    page_response,
    serialize,
)
from threereco.apps.api.deps import RequestContext, require
from threereco.apps.api.response import ApiModel
from threereco.domain.models import CollectionMaterial
from threereco.services import collections as collections_service
from threereco.services import entities
from threereco.services.tables import COLLECTION_MATERIALS, COLLECTIONS


class CollectionCreate(ApiModel):
    seller_id: UUID
    buyer_id: UUID


class CollectionUpdate(ApiModel):
    seller_id: UUID | None = None
    buyer_id: UUID | None = None


class CollectionMaterialAssign(ApiModel):
    weight: float = Field(default=0.0, ge=0)
    value: float = Field(default=0.0, ge=0)


_permissions = CrudPermissions.for_module("collections")
_kinds = COLLECTIONS.policy_kinds

router = build_crud_router(
    descriptor=COLLECTIONS,
    prefix="/collections",
    tag="collections",
    permissions=_permissions,
    create_model=CollectionCreate,
    update_model=CollectionUpdate,
)


@router.post("/assign-material/{collection_id}/{material_id}")
async def assign_material(
    collection_id: UUID,
    material_id: UUID,
    payload: CollectionMaterialAssign | None = None,
    ctx: RequestContext = Depends(
        require("collections.materials.assign", policies=_kinds, mfa=True)
    ),
) -> dict[str, Any]:
    payload = payload or CollectionMaterialAssign()
    async with ctx.transaction() as tx:
        collection = await collections_service.add_material(
            tx,
            collection_id,
            material_id,
            weight=payload.weight,
            value=payload.value,
            policies=ctx.policies,
        )
        body = serialize(COLLECTIONS, collection)
    return body


@router.post("/unassign-material/{collection_id}/{line_id}")
async def unassign_material(
    collection_id: UUID,
    line_id: UUID,
    ctx: RequestContext = Depends(
        require("collections.materials.unassign", policies=_kinds, mfa=True)
    ),
) -> dict[str, Any]:
    async with ctx.transaction() as tx:
        collection = await collections_service.remove_material(
            tx, collection_id, line_id, policies=ctx.policies
        )
        body = serialize(COLLECTIONS, collection)
    return body


@router.get("/list-materials/{collection_id}")
async def list_materials(
    collection_id: UUID,
    params: dict[str, Any] = Depends(list_params),
    ctx: RequestContext = Depends(
        require(*_permissions.view, "collections.materials.view", policies=_kinds, mfa=True)
    ),
) -> dict[str, Any]:
    # The parent lookup applies the collection policy; line items inherit it.
    await entities.get_row(ctx.db, COLLECTIONS, collection_id, policies=ctx.policies)
    page = await entities.list_rows(
        ctx.db,
        COLLECTION_MATERIALS,
        extra_filters=[CollectionMaterial.collection_id == collection_id],
        **params,
    )
    return page_response(COLLECTION_MATERIALS, page)
