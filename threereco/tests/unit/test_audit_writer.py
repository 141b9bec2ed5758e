from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from threereco.core.errors import AuditAttributionMissing, ConflictError
from threereco.domain.models import AuditLog, Material, Role, User
from threereco.persistence.db import SessionLocal
from threereco.persistence.transaction import audited_transaction
from threereco.services import entities
from threereco.services.audit import camel_case, serialize_row
from threereco.services.tables import MATERIALS, ROLES, USERS


async def _count(model) -> int:
    async with SessionLocal() as session:
        return int((await session.execute(select(func.count()).select_from(model))).scalar() or 0)


def test_camel_case() -> None:
    assert camel_case("gw_code") == "gwCode"
    assert camel_case("primary_organization_id") == "primaryOrganizationId"
    assert camel_case("name") == "name"


def test_serialize_row_omits_secrets_and_lists_association_ids() -> None:
    # Password and MFA secret never appear in snapshots.
    role = Role(id=uuid4(), name="Auditor", permissions=["audit_logs.view"])
    user = User(
        id=uuid4(),
        email="Carol@Example.com",
        password=b"hash",
        mfa_secret=b"SECRET",
        type="system",
        permissions=[],
    )
    user.roles = [role]
    payload = serialize_row(user, associations=("roles",))
    assert payload["email"] == "carol@example.com"
    assert payload["id"] == str(user.id)
    assert payload["roleIds"] == [str(role.id)]
    assert "password" not in payload
    assert "mfaSecret" not in payload
    assert "primaryOrganizationId" in payload


async def test_insert_writes_one_attributed_audit_row() -> None:
    actor_id = uuid4()
    async with SessionLocal() as session:
        async with audited_transaction(session, audit_user_id=actor_id) as tx:
            material = await entities.create_row(
                tx, MATERIALS, {"name": "Glass", "gw_code": "GL01", "carbon_factor": "0.5"}
            )
    async with SessionLocal() as session:
        rows = (await session.execute(select(AuditLog))).scalars().all()
    assert len(rows) == 1
    assert rows[0].table_name == "materials"
    assert rows[0].operation_type == "INSERT"
    assert rows[0].user_id == actor_id
    assert rows[0].object_id == material.id
    assert rows[0].data["gwCode"] == "GL01"


async def test_delete_snapshots_pre_state() -> None:
    actor_id = uuid4()
    async with SessionLocal() as session:
        async with audited_transaction(session, audit_user_id=actor_id) as tx:
            material = await entities.create_row(
                tx, MATERIALS, {"name": "Tin", "gw_code": "TN01", "carbon_factor": "1.1"}
            )
        async with audited_transaction(session, audit_user_id=actor_id) as tx:
            await entities.delete_row(tx, MATERIALS, material.id)
    async with SessionLocal() as session:
        result = await session.execute(select(AuditLog).where(AuditLog.operation_type == "DELETE"))
        deleted = result.scalar_one()
    assert deleted.data["name"] == "Tin"
    assert await _count(Material) == 0


async def test_write_without_actor_rolls_back() -> None:
    # No anonymous writes: the mutation and any audit row are discarded.
    async with SessionLocal() as session:
        with pytest.raises(AuditAttributionMissing):
            async with audited_transaction(session, audit_user_id=None) as tx:
                await entities.create_row(
                    tx, MATERIALS, {"name": "Paper", "gw_code": "PA01", "carbon_factor": "0.2"}
                )
    assert await _count(Material) == 0
    assert await _count(AuditLog) == 0


async def test_ignore_audit_suppresses_rows() -> None:
    async with SessionLocal() as session:
        async with audited_transaction(session, audit_user_id=None, ignore_audit_log=True) as tx:
            await entities.create_row(tx, ROLES, {"name": "Quiet", "permissions": []})
    assert await _count(Role) == 1
    assert await _count(AuditLog) == 0


async def test_unique_violation_becomes_conflict() -> None:
    actor_id = uuid4()
    values = {"name": "Steel", "gw_code": "ST01", "carbon_factor": "2.0"}
    async with SessionLocal() as session:
        async with audited_transaction(session, audit_user_id=actor_id) as tx:
            await entities.create_row(tx, MATERIALS, dict(values))
    async with SessionLocal() as session:
        with pytest.raises(ConflictError):
            async with audited_transaction(session, audit_user_id=actor_id) as tx:
                await entities.create_row(tx, MATERIALS, dict(values))
    assert await _count(Material) == 1
    assert await _count(AuditLog) == 1


async def test_update_audits_merged_state_with_associations() -> None:
    actor_id = uuid4()
    async with SessionLocal() as session:
        async with audited_transaction(session, audit_user_id=actor_id) as tx:
            role = await entities.create_row(tx, ROLES, {"name": "Viewer", "permissions": ["materials.view"]})
            user = await entities.create_row(
                tx,
                USERS,
                {"email": "dave@example.com", "password": b"x", "type": "collector", "permissions": []},
                trusted=True,
            )
        async with audited_transaction(session, audit_user_id=actor_id) as tx:
            await entities.update_row(tx, USERS, user.id, {"name": "Dave"}, related={"roles": [role.id]})
    async with SessionLocal() as session:
        result = await session.execute(
            select(AuditLog).where(AuditLog.table_name == "users", AuditLog.operation_type == "UPDATE")
        )
        entry = result.scalar_one()
    assert entry.data["name"] == "Dave"
    assert entry.data["roleIds"] == [str(role.id)]
