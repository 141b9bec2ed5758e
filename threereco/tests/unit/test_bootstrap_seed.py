from __future__ import annotations

from sqlalchemy import func, select

from threereco.core.config import BOOTSTRAP_USER_ID
from threereco.domain.models import AuditLog, Role
from threereco.persistence.db import SessionLocal
from threereco.persistence.repos import users as users_repo
from threereco.persistence.transaction import audited_transaction
from threereco.services.auth.passwords import verify_password_sync
from threereco.services.bootstrap import ADMINISTRATOR_ROLE, BUSINESS_ROLES, seed_admin


async def test_seed_admin_creates_roles_and_user_once() -> None:
    # Seeded rows are attributed to the administrator rather than the bootstrap identity.
    async with SessionLocal() as session:
        async with audited_transaction(session, audit_user_id=BOOTSTRAP_USER_ID) as tx:
            admin = await seed_admin(tx, email="Root@Example.com", password="s3cret-pass", name="Root")

    async with SessionLocal() as session:
        loaded = await users_repo.load_principal(session, admin.id)
        role_names = set((await session.execute(select(Role.name))).scalars().all())
        actors = set((await session.execute(select(AuditLog.user_id))).scalars().all())

    assert loaded.email == "root@example.com"
    assert loaded.type == "system"
    assert [role.name for role in loaded.roles] == [ADMINISTRATOR_ROLE]
    assert loaded.roles[0].permissions == ["*"]
    assert verify_password_sync("s3cret-pass", loaded.password)
    assert role_names == {ADMINISTRATOR_ROLE, *(seed.name for seed in BUSINESS_ROLES)}
    assert actors == {admin.id}

    async with SessionLocal() as session:
        async with audited_transaction(session, audit_user_id=BOOTSTRAP_USER_ID) as tx:
            again = await seed_admin(tx, email="root@example.com")
        count = (await session.execute(select(func.count()).select_from(AuditLog))).scalar()
    assert again.id == admin.id
    # Administrator role, three business roles and the user.
    assert count == 5
