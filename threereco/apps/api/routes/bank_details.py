from __future__ import annotations

from uuid import UUID

from pydantic import Field

from threereco.apps.api.crud import CrudPermissions, build_crud_router
from threereco.apps.api.response import ApiModel
from threereco.services.tables import BANK_DETAILS


class BankDetailsCreate(ApiModel):
    user_id: UUID | None = None
    organization_id: UUID | None = None
    account_holder: str = Field(min_length=1)
    account_number: str = Field(min_length=1)
    bank_name: str = Field(min_length=1)
    branch_code: str = Field(min_length=1)


class BankDetailsUpdate(ApiModel):
    account_holder: str | None = Field(default=None, min_length=1)
    account_number: str | None = Field(default=None, min_length=1)
    bank_name: str | None = Field(default=None, min_length=1)
    branch_code: str | None = Field(default=None, min_length=1)


router = build_crud_router(
    descriptor=BANK_DETAILS,
    prefix="/bank-details",
    tag="bank-details",
    permissions=CrudPermissions.for_module("bank_details"),
    create_model=BankDetailsCreate,
    update_model=BankDetailsUpdate,
)
