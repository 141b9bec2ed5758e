from __future__ import annotations

from uuid import UUID

from pydantic import Field

from threereco.apps.api.crud import CrudPermissions, build_crud_router
from threereco.apps.api.response import ApiModel
from threereco.services.tables import NOTIFICATIONS


class NotificationCreate(ApiModel):
    user_id: UUID
    title: str = Field(min_length=1)
    message: str
    link: str | None = None
    link_text: str | None = None


class NotificationUpdate(ApiModel):
    title: str | None = Field(default=None, min_length=1)
    message: str | None = None
    link: str | None = None
    link_text: str | None = None
    closed: bool | None = None


router = build_crud_router(
    descriptor=NOTIFICATIONS,
    prefix="/notifications",
    tag="notifications",
    permissions=CrudPermissions.for_module("notifications"),
    create_model=NotificationCreate,
    update_model=NotificationUpdate,
)
