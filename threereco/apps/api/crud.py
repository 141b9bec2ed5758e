"""Generic CRUD and assignment routes driven by a ``TableDescriptor``."""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from threereco.apps.api.deps import RequestContext, require
from threereco.apps.api.response import success_response
from threereco.core.config import get_settings
from threereco.core.errors import BadRequestError
from threereco.services import entities
from threereco.services.audit import serialize_row
from threereco.services.entities import Page, TableDescriptor


Hook = Callable[[RequestContext, dict[str, Any]], Awaitable[dict[str, Any]]]
Guard = Callable[[RequestContext, UUID], None]


@dataclass(frozen=True)
class CrudPermissions:
    view: tuple[str, ...]
    create: tuple[str, ...]
    update: tuple[str, ...]
    delete: tuple[str, ...]

    @classmethod
    def for_module(cls, prefix: str) -> "CrudPermissions":
        return cls(
            view=(f"{prefix}.view",),
            create=(f"{prefix}.create",),
            update=(f"{prefix}.update",),
            delete=(f"{prefix}.delete",),
        )


def serialize(descriptor: TableDescriptor, row: Any) -> dict[str, Any]:
    return serialize_row(row, associations=descriptor.associations)


def page_response(descriptor: TableDescriptor, page: Page, serializer=None) -> dict[str, Any]:
    render = serializer or (lambda row: serialize(descriptor, row))
    return {"items": [render(row) for row in page.items], "pagination": page.pagination()}


def split_payload(
    payload: BaseModel, related_fields: dict[str, str]
) -> tuple[dict[str, Any], dict[str, list[UUID]]]:
    # Separate column values from association id lists.
    values = payload.model_dump(exclude_unset=True)
    related: dict[str, list[UUID]] = {}
    for field_name, association in related_fields.items():
        if field_name in values:
            ids = values.pop(field_name)
            if ids is not None:
                related[association] = list(ids)
    return values, related


def list_params(
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1),
    search_term: str | None = Query(default=None, alias="searchTerm"),
    search_column: list[str] = Query(default=[], alias="searchColumn"),
) -> dict[str, Any]:
    settings = get_settings()
    size = min(page_size or settings.default_page_size, settings.max_page_size)
    return {
        "page": page,
        "page_size": size,
        "search_term": search_term,
        "search_columns": search_column,
    }


def build_crud_router(
    *,
    descriptor: TableDescriptor,
    prefix: str,
    tag: str,
    permissions: CrudPermissions,
    create_model: type[BaseModel] | None = None,
    update_model: type[BaseModel] | None = None,
    related_fields: dict[str, str] | None = None,
    before_create: Hook | None = None,
    before_update: Hook | None = None,
    operations: Iterable[str] = ("list", "get", "create", "update", "delete"),
) -> APIRouter:
    """Build list/get/create/update/delete routes for one table.

    Every route requires MFA-complete authentication and the matching permission;
    the table's policy kinds filter every read and write.
    """
    router = APIRouter(prefix=prefix, tags=[tag])
    related_fields = related_fields or {}
    operations = set(operations)
    kinds = descriptor.policy_kinds

    if "list" in operations:

        @router.get("")
        async def list_entities(
            params: dict[str, Any] = Depends(list_params),
            ctx: RequestContext = Depends(require(*permissions.view, policies=kinds, mfa=True)),
        ) -> dict[str, Any]:
            page = await entities.list_rows(ctx.db, descriptor, policies=ctx.policies, **params)
            return page_response(descriptor, page)

    if "get" in operations:

        @router.get("/{object_id}")
        async def get_entity(
            object_id: UUID,
            ctx: RequestContext = Depends(require(*permissions.view, policies=kinds, mfa=True)),
        ) -> dict[str, Any]:
            row = await entities.get_row(ctx.db, descriptor, object_id, policies=ctx.policies)
            return serialize(descriptor, row)

    if "create" in operations and create_model is not None:

        @router.post("")
        async def create_entity(
            payload: create_model,  # type: ignore[valid-type]
            ctx: RequestContext = Depends(require(*permissions.create, policies=kinds, mfa=True)),
        ) -> dict[str, Any]:
            values, related = split_payload(payload, related_fields)
            if before_create is not None:
                values = await before_create(ctx, values)
            async with ctx.transaction() as tx:
                row = await entities.create_row(
                    tx, descriptor, values, related=related, policies=ctx.policies
                )
                body = serialize(descriptor, row)
            return body

    if "update" in operations and update_model is not None:

        @router.put("/{object_id}")
        async def update_entity(
            object_id: UUID,
            payload: update_model,  # type: ignore[valid-type]
            ctx: RequestContext = Depends(require(*permissions.update, policies=kinds, mfa=True)),
        ) -> dict[str, Any]:
            values, related = split_payload(payload, related_fields)
            if before_update is not None:
                values = await before_update(ctx, values)
            async with ctx.transaction() as tx:
                row = await entities.update_row(
                    tx, descriptor, object_id, values, related=related, policies=ctx.policies
                )
                body = serialize(descriptor, row)
            return body

    if "delete" in operations:

        @router.delete("/{object_id}")
        async def delete_entity(
            object_id: UUID,
            ctx: RequestContext = Depends(require(*permissions.delete, policies=kinds, mfa=True)),
        ) -> dict[str, str]:
            async with ctx.transaction() as tx:
                await entities.delete_row(tx, descriptor, object_id, policies=ctx.policies)
            return success_response("Deleted successfully.")

    return router


def add_assignment_routes(
    router: APIRouter,
    *,
    descriptor: TableDescriptor,
    association: str,
    child_slug: str,
    children_slug: str,
    assign_permissions: tuple[str, ...],
    unassign_permissions: tuple[str, ...],
    view_permissions: tuple[str, ...],
    parent_guard: Guard | None = None,
) -> None:
    """Attach ``assign-<child>``, ``unassign-<child>`` and ``list-<children>`` routes.

    ``parent_guard`` runs before a membership change and may reject the parent id.
    """
    kinds = descriptor.policy_kinds

    @router.post(f"/assign-{child_slug}/{{parent_id}}/{{child_id}}", name=f"assign_{association}")
    async def assign_child(
        parent_id: UUID,
        child_id: UUID,
        ctx: RequestContext = Depends(require(*assign_permissions, policies=kinds, mfa=True)),
    ) -> dict[str, Any]:
        if parent_guard is not None:
            parent_guard(ctx, parent_id)
        async with ctx.transaction() as tx:
            row = await entities.assign(
                tx, descriptor, parent_id, association, [child_id], policies=ctx.policies
            )
            body = serialize(descriptor, row)
        return body

    @router.post(f"/unassign-{child_slug}/{{parent_id}}/{{child_id}}", name=f"unassign_{association}")
    async def unassign_child(
        parent_id: UUID,
        child_id: UUID,
        ctx: RequestContext = Depends(require(*unassign_permissions, policies=kinds, mfa=True)),
    ) -> dict[str, Any]:
        if parent_guard is not None:
            parent_guard(ctx, parent_id)
        async with ctx.transaction() as tx:
            row = await entities.unassign(
                tx, descriptor, parent_id, association, [child_id], policies=ctx.policies
            )
            body = serialize(descriptor, row)
        return body

    @router.get(f"/list-{children_slug}/{{parent_id}}", name=f"list_{association}")
    async def list_children(
        parent_id: UUID,
        params: dict[str, Any] = Depends(list_params),
        ctx: RequestContext = Depends(require(*view_permissions, policies=kinds, mfa=True)),
    ) -> dict[str, Any]:
        if params["search_term"]:
            raise BadRequestError("Search is not supported when listing assignments.")
        row = await entities.get_row(ctx.db, descriptor, parent_id, policies=ctx.policies)
        children = list(getattr(row, association))
        start = (params["page"] - 1) * params["page_size"]
        page = Page(
            items=children[start : start + params["page_size"]],
            count=len(children),
            page=params["page"],
            page_size=params["page_size"],
        )
        return page_response(descriptor, page, serializer=serialize_row)
