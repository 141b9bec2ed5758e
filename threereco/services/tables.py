from __future__ import annotations

from threereco.domain import models
from threereco.services.authz.policies import PolicyKind
from threereco.services.entities import TableDescriptor


USERS = TableDescriptor(
    model=models.User,
    table_name="users",
    associations=("roles",),
    search_columns=("name", "email", "phone", "job_title"),
    writable=("name", "email", "phone", "image", "job_title", "type", "permissions", "primary_organization_id"),
)

ROLES = TableDescriptor(
    model=models.Role,
    table_name="roles",
    search_columns=("name", "description"),
    writable=("name", "description", "permissions", "default"),
)

ORGANIZATIONS = TableDescriptor(
    model=models.Organization,
    table_name="organizations",
    associations=("users", "roles"),
    search_columns=("name", "domain"),
    writable=("name", "domain", "owner_id"),
)

MATERIALS = TableDescriptor(
    model=models.Material,
    table_name="materials",
    search_columns=("name", "gw_code"),
    writable=("name", "gw_code", "carbon_factor"),
)

PRODUCTS = TableDescriptor(
    model=models.Product,
    table_name="products",
    associations=("materials",),
    search_columns=("name",),
    writable=("name", "value"),
)

COLLECTIONS = TableDescriptor(
    model=models.Collection,
    table_name="collections",
    associations=("materials",),
    policy_kinds=(PolicyKind.COLLECTIONS, PolicyKind.SYSTEM),
    writable=("seller_id", "buyer_id"),
)

TRANSACTIONS = TableDescriptor(
    model=models.Transaction,
    table_name="transactions",
    associations=("products",),
    policy_kinds=(PolicyKind.TRANSACTIONS, PolicyKind.SYSTEM),
    search_columns=("type",),
    writable=(
        "type",
        "weight",
        "amount",
        "seller_accepted",
        "seller_declined",
        "seller_id",
        "buyer_id",
        "seller_type",
        "buyer_type",
    ),
)

BANK_DETAILS = TableDescriptor(
    model=models.BankDetails,
    table_name="bank_details",
    search_columns=("account_holder", "bank_name"),
    writable=("user_id", "organization_id", "account_holder", "account_number", "bank_name", "branch_code"),
)

NOTIFICATIONS = TableDescriptor(
    model=models.Notification,
    table_name="notifications",
    search_columns=("title", "message"),
    writable=("user_id", "title", "message", "link", "link_text", "closed"),
)

# Collection line items are audited as part of their parent collection.
COLLECTION_MATERIALS = TableDescriptor(
    model=models.CollectionMaterial,
    table_name="collection_materials",
    search_columns=("name", "gw_code"),
    writable=("collection_id", "material_id", "name", "gw_code", "carbon_factor", "weight", "value"),
    audited=False,
)
