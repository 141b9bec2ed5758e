from __future__ import annotations

from dataclasses import dataclass
import logging
from uuid import UUID, uuid4

from threereco.core.config import BOOTSTRAP_USER_ID, get_settings
from threereco.domain.models import Organization, Role, User
from threereco.persistence.repos import users as users_repo
from threereco.persistence.transaction import AuditedTransaction
from threereco.services import entities
from threereco.services.auth.passwords import hash_password
from threereco.services.tables import ORGANIZATIONS, ROLES, USERS


logger = logging.getLogger(__name__)

ADMINISTRATOR_ROLE = "Administrator"


@dataclass(frozen=True)
class RoleSeed:
    name: str
    description: str
    permissions: tuple[str, ...]


BUSINESS_OWNER = RoleSeed(
    name="Business Owner",
    description="Owner of the business with full access to business resources.",
    permissions=(
        "materials.view",
        "collections.*",
        "transactions.*",
        "users.view.self",
        "users.update.self",
        "users.delete.self",
        "businesses.view",
        "businesses.update.self",
        "businesses.delete.self",
        "businesses.roles.assign",
        "businesses.roles.unassign",
        "businesses.roles.view",
        "businesses.users.assign",
        "businesses.users.unassign",
        "businesses.users.view",
    ),
)

BUSINESS_STAFF = RoleSeed(
    name="Business Staff",
    description="Staff member of the business with limited access to business resources.",
    permissions=(
        "materials.view",
        "collections.view",
        "collections.create",
        "collections.update",
        "transactions.view",
        "transactions.create",
        "transactions.update",
        "users.view.self",
        "users.update.self",
        "users.delete.self",
        "businesses.view",
        "businesses.users.view",
    ),
)

BUSINESS_USER = RoleSeed(
    name="Business User",
    description="User of the business with minimal access to business resources.",
    permissions=(
        "materials.view",
        "collections.view",
        "transactions.view",
        "users.view.self",
        "users.update.self",
        "users.delete.self",
        "businesses.view",
    ),
)

BUSINESS_ROLES = (BUSINESS_OWNER, BUSINESS_STAFF, BUSINESS_USER)


async def get_or_create_role(tx: AuditedTransaction, seed: RoleSeed) -> Role:
    existing = await users_repo.get_role_by_name(tx.session, seed.name)
    if existing is not None:
        return existing
    return await entities.create_row(
        tx,
        ROLES,
        {"name": seed.name, "description": seed.description, "permissions": list(seed.permissions)},
    )


async def seed_admin(
    tx: AuditedTransaction,
    *,
    email: str | None = None,
    password: str | None = None,
    name: str | None = None,
) -> User:
    """Create the administrator role and user unless the user already exists.

    Rows created here are attributed to the administrator itself, or to the
    bootstrap identity when the transaction carries no actor.
    """
    settings = get_settings()
    email = (email or settings.admin_email).strip().lower()
    existing = await users_repo.get_by_email(tx.session, email)
    if existing is not None:
        logger.info("admin_seed_skipped email=%s", email)
        return existing

    admin_id: UUID = uuid4()
    if tx.audit_user_id is None or tx.audit_user_id == BOOTSTRAP_USER_ID:
        tx.audit_user_id = admin_id

    role = await users_repo.get_role_by_name(tx.session, ADMINISTRATOR_ROLE)
    if role is None:
        role = await entities.create_row(
            tx,
            ROLES,
            {
                "name": ADMINISTRATOR_ROLE,
                "description": "Full access to every resource.",
                "permissions": ["*"],
            },
        )
    for seed in BUSINESS_ROLES:
        await get_or_create_role(tx, seed)

    admin = await entities.create_row(
        tx,
        USERS,
        {
            "id": admin_id,
            "email": email,
            "name": name or settings.admin_name,
            "password": await hash_password(password or settings.admin_password),
            "type": "system",
            "permissions": [],
        },
        related={"roles": [role.id]},
        trusted=True,
    )
    logger.info("admin_seeded user_id=%s", admin.id)
    return admin


def _business_domain(email: str) -> str:
    # alice@example.com -> alice.example.com keeps domains unique per owner.
    local, _, host = email.partition("@")
    return f"{local}.{host}" if host else local


async def provision_business(tx: AuditedTransaction, owner: User) -> Organization:
    """Create the owner's organization, its default roles, and make the owner its first member."""
    roles = [await get_or_create_role(tx, seed) for seed in BUSINESS_ROLES]
    display_name = owner.name or owner.email.partition("@")[0]
    organization = await entities.create_row(
        tx,
        ORGANIZATIONS,
        {
            "name": f"{display_name}'s Business",
            "domain": _business_domain(owner.email),
            "owner_id": owner.id,
        },
        related={"users": [owner.id], "roles": [role.id for role in roles]},
    )
    await entities.update_row(
        tx,
        USERS,
        owner.id,
        {"primary_organization_id": organization.id},
        related={"roles": [roles[0].id]},
        trusted=True,
    )
    logger.info("business_provisioned organization_id=%s owner_id=%s", organization.id, owner.id)
    return organization
