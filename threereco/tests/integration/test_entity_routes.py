from __future__ import annotations

from uuid import UUID, uuid4

from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from threereco.apps.api.main import create_app
from threereco.domain.models import AuditLog, Collection, Material, Transaction
from threereco.persistence.db import SessionLocal
from threereco.tests.utils.auth import (
    auth_headers,
    create_test_organization,
    create_test_user,
    login,
    set_primary_organization,
)


async def _create_material(name: str, gw_code: str) -> UUID:
    async with SessionLocal() as session:
        material = Material(name=name, gw_code=gw_code, carbon_factor="0.5")
        session.add(material)
        await session.commit()
        return material.id


async def _create_collection(seller_id: UUID, buyer_id: UUID) -> UUID:
    async with SessionLocal() as session:
        collection = Collection(seller_id=seller_id, buyer_id=buyer_id)
        collection.materials = []
        session.add(collection)
        await session.commit()
        return collection.id


async def _create_transaction(seller_id: UUID, buyer_id: UUID) -> UUID:
    async with SessionLocal() as session:
        transaction = Transaction(type="transfer", seller_id=seller_id, buyer_id=buyer_id)
        transaction.products = []
        session.add(transaction)
        await session.commit()
        return transaction.id


async def _audit_rows(**filters) -> list[AuditLog]:
    stmt = select(AuditLog)
    for column, value in filters.items():
        stmt = stmt.where(getattr(AuditLog, column) == value)
    async with SessionLocal() as session:
        return list((await session.execute(stmt)).scalars().all())


async def _count(model) -> int:
    async with SessionLocal() as session:
        return int((await session.execute(select(func.count()).select_from(model))).scalar() or 0)


async def _business_owner(email: str, organization_name: str, permissions: list[str]) -> tuple[UUID, UUID]:
    # Owner with a primary organization and a private role.
    owner_id = await create_test_user(email=email, user_type="business", role_permissions=permissions)
    organization_id = await create_test_organization(
        name=organization_name, owner_id=owner_id, member_ids=[owner_id]
    )
    await set_primary_organization(owner_id, organization_id)
    return owner_id, organization_id


async def test_health_is_public() -> None:
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_missing_permission_blocks_create_without_side_effects() -> None:
    # A view-only role cannot create; nothing is written or audited.
    await create_test_user(email="viewer@example.com", role_permissions=["materials.view"])
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await login(client, "viewer@example.com")
        response = await client.post(
            "/materials",
            json={"name": "Glass", "gwCode": "GL01", "carbonFactor": "0.5"},
            headers=auth_headers(token),
        )
        listed = await client.get("/materials", headers=auth_headers(token))
    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden"
    assert listed.status_code == 200
    assert await _count(Material) == 0
    assert await _count(AuditLog) == 0


async def test_anonymous_requests_are_unauthorized() -> None:
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/materials", json={"name": "Glass", "gwCode": "GL01", "carbonFactor": "0.5"}
        )
    assert response.status_code == 401
    assert await _count(Material) == 0


async def test_collector_only_sees_own_collections() -> None:
    # Items and the pagination total use the same predicate.
    collector_id = await create_test_user(
        email="u1@example.com", user_type="collector", role_permissions=["collections.view"]
    )
    other_id = await create_test_user(email="u2@example.com", user_type="collector")
    _owner_id, organization_id = await _business_owner("buyer@example.com", "Buyer Co", ["collections.*"])
    mine = await _create_collection(collector_id, organization_id)
    await _create_collection(other_id, organization_id)

    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await login(client, "u1@example.com")
        response = await client.get("/collections", headers=auth_headers(token))
        other = await client.get(f"/collections/{uuid4()}", headers=auth_headers(token))
        own = await client.get(f"/collections/{mine}", headers=auth_headers(token))

        owner_token = await login(client, "buyer@example.com")
        buyer_view = await client.get("/collections", headers=auth_headers(owner_token))

    assert response.status_code == 200
    body = response.json()
    assert [item["id"] for item in body["items"]] == [str(mine)]
    assert body["pagination"]["count"] == 1
    assert body["pagination"]["pages"] == 1
    assert other.status_code == 404
    assert own.status_code == 200
    assert own.json()["sellerId"] == str(collector_id)
    assert buyer_view.json()["pagination"]["count"] == 2


async def test_invisible_collection_is_not_found() -> None:
    collector_id = await create_test_user(
        email="u1@example.com", user_type="collector", role_permissions=["collections.*"]
    )
    other_id = await create_test_user(email="u2@example.com", user_type="collector")
    _owner_id, organization_id = await _business_owner("buyer@example.com", "Buyer Co", [])
    theirs = await _create_collection(other_id, organization_id)

    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await login(client, "u1@example.com")
        read = await client.get(f"/collections/{theirs}", headers=auth_headers(token))
        delete = await client.delete(f"/collections/{theirs}", headers=auth_headers(token))
        # Creating a row the caller could not see is rejected.
        foreign = await client.post(
            "/collections",
            json={"sellerId": str(other_id), "buyerId": str(organization_id)},
            headers=auth_headers(token),
        )
        created = await client.post(
            "/collections",
            json={"sellerId": str(collector_id), "buyerId": str(organization_id)},
            headers=auth_headers(token),
        )
    assert read.status_code == 404
    assert delete.status_code == 404
    assert foreign.status_code == 403
    assert created.status_code == 200
    assert created.json()["sellerId"] == str(collector_id)
    assert await _count(Collection) == 2


async def test_business_sees_only_transactions_touching_its_organization() -> None:
    _owner_id, organization_id = await _business_owner(
        "owner@example.com", "Owner Co", ["transactions.view"]
    )
    visible_sale = await _create_transaction(organization_id, uuid4())
    visible_purchase = await _create_transaction(uuid4(), organization_id)
    await _create_transaction(uuid4(), uuid4())

    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await login(client, "owner@example.com")
        response = await client.get("/transactions", headers=auth_headers(token))
    assert response.status_code == 200
    ids = {item["id"] for item in response.json()["items"]}
    assert ids == {str(visible_sale), str(visible_purchase)}
    assert response.json()["pagination"]["count"] == 2


async def test_collector_cannot_list_transactions() -> None:
    # No transactions policy applies to collectors.
    await create_test_user(
        email="u1@example.com", user_type="collector", role_permissions=["transactions.view"]
    )
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await login(client, "u1@example.com")
        response = await client.get("/transactions", headers=auth_headers(token))
    assert response.status_code == 403


async def test_update_is_audited_with_acting_user() -> None:
    owner_id, organization_id = await _business_owner(
        "b@example.com", "B Co", ["materials.view", "materials.update"]
    )
    material_id = await _create_material("Glass", "GL01")
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await login(client, "b@example.com")
        response = await client.put(
            f"/materials/{material_id}", json={"name": "Clear Glass"}, headers=auth_headers(token)
        )
    assert response.status_code == 200
    assert response.json()["name"] == "Clear Glass"
    rows = await _audit_rows(table_name="materials")
    assert len(rows) == 1
    assert rows[0].operation_type == "UPDATE"
    assert rows[0].user_id == owner_id
    assert rows[0].organization_id == organization_id
    assert rows[0].object_id == material_id
    assert rows[0].data["name"] == "Clear Glass"


async def test_material_crud_pagination_and_search() -> None:
    await create_test_user(email="admin@example.com", permissions=["*"])
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await login(client, "admin@example.com")
        headers = auth_headers(token)
        for index, name in enumerate(["Glass", "Green Glass", "Paper"]):
            created = await client.post(
                "/materials",
                json={"name": name, "gwCode": f"GW{index}", "carbonFactor": "1.0"},
                headers=headers,
            )
            assert created.status_code == 200
        duplicate = await client.post(
            "/materials", json={"name": "Glass", "gwCode": "GW9", "carbonFactor": "1.0"}, headers=headers
        )
        page = await client.get("/materials", params={"page": 2, "pageSize": 2}, headers=headers)
        search = await client.get(
            "/materials",
            params={"searchTerm": "glass", "searchColumn": ["name", "gw_code"]},
            headers=headers,
        )
        bad_column = await client.get(
            "/materials", params={"searchTerm": "x", "searchColumn": "carbon_factor"}, headers=headers
        )
        created_id = created.json()["id"]
        deleted = await client.delete(f"/materials/{created_id}", headers=headers)
        missing = await client.get(f"/materials/{created_id}", headers=headers)
        bad_id = await client.get("/materials/not-a-uuid", headers=headers)

    assert duplicate.status_code == 409
    assert page.json()["pagination"] == {
        "count": 3,
        "pages": 2,
        "pageSize": 2,
        "currentPage": 2,
        "nextPage": 2,
        "previousPage": 1,
    }
    assert len(page.json()["items"]) == 1
    assert {item["name"] for item in search.json()["items"]} == {"Glass", "Green Glass"}
    assert bad_column.status_code == 400
    assert deleted.status_code == 200
    assert missing.status_code == 404
    assert bad_id.status_code == 400
    operations = sorted(row.operation_type for row in await _audit_rows(table_name="materials"))
    assert operations == ["DELETE", "INSERT", "INSERT", "INSERT"]


async def test_role_permissions_are_validated() -> None:
    await create_test_user(email="admin@example.com", permissions=["*"])
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        headers = auth_headers(await login(client, "admin@example.com"))
        catalogue = await client.get("/roles/available-permissions", headers=headers)
        rejected = await client.post(
            "/roles", json={"name": "Bad", "permissions": ["widgets.fly"]}, headers=headers
        )
        accepted = await client.post(
            "/roles",
            json={"name": "Sorter", "permissions": ["materials.view", " materials.view", "collections.*"]},
            headers=headers,
        )
    assert catalogue.status_code == 200
    assert any(group["name"] == "Materials" for group in catalogue.json())
    assert rejected.status_code == 400
    assert accepted.status_code == 200
    assert accepted.json()["permissions"] == ["materials.view", "collections.*"]


async def test_users_can_update_themselves_but_not_others() -> None:
    self_id = await create_test_user(
        email="self@example.com", role_permissions=["users.update.self", "users.view.self"]
    )
    other_id = await create_test_user(email="other@example.com")
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        headers = auth_headers(await login(client, "self@example.com"))
        own = await client.put(f"/users/{self_id}", json={"jobTitle": "Sorter"}, headers=headers)
        escalate = await client.put(
            f"/users/{self_id}", json={"permissions": ["*"]}, headers=headers
        )
        other = await client.put(f"/users/{other_id}", json={"jobTitle": "Nope"}, headers=headers)
        read_own = await client.get(f"/users/{self_id}", headers=headers)
        read_other = await client.get(f"/users/{other_id}", headers=headers)
        listed = await client.get("/users", headers=headers)
    assert own.status_code == 200
    assert own.json()["jobTitle"] == "Sorter"
    assert "password" not in own.json()
    assert escalate.status_code == 403
    assert other.status_code == 403
    assert read_own.status_code == 200
    assert read_other.status_code == 403
    assert listed.status_code == 403


async def test_admin_creates_user_and_assigns_role() -> None:
    await create_test_user(email="admin@example.com", permissions=["*"])
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        headers = auth_headers(await login(client, "admin@example.com"))
        role = await client.post(
            "/roles", json={"name": "Collector", "permissions": ["collections.view"]}, headers=headers
        )
        user = await client.post(
            "/users",
            json={"email": "New@Example.com", "password": "hunter2aa", "type": "collector"},
            headers=headers,
        )
        role_id = role.json()["id"]
        user_id = user.json()["id"]
        assigned = await client.post(f"/users/assign-role/{user_id}/{role_id}", headers=headers)
        roles = await client.get(f"/users/list-roles/{user_id}", headers=headers)
        unassigned = await client.post(f"/users/unassign-role/{user_id}/{role_id}", headers=headers)
        new_login = await client.post(
            "/authentication/login", json={"email": "new@example.com", "password": "hunter2aa"}
        )
    assert user.status_code == 200
    assert user.json()["email"] == "new@example.com"
    assert assigned.json()["roleIds"] == [role_id]
    assert roles.json()["items"][0]["name"] == "Collector"
    assert unassigned.json()["roleIds"] == []
    assert new_login.status_code == 200


async def test_organization_membership_is_limited_to_own_organization() -> None:
    owner_id, organization_id = await _business_owner(
        "owner@example.com", "Owner Co", ["businesses.users.*", "businesses.view"]
    )
    _rival_id, rival_org_id = await _business_owner("rival@example.com", "Rival Co", [])
    staff_id = await create_test_user(email="staff@example.com", user_type="business")
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        headers = auth_headers(await login(client, "owner@example.com"))
        own = await client.post(
            f"/organizations/assign-user/{organization_id}/{staff_id}", headers=headers
        )
        rival = await client.post(
            f"/organizations/assign-user/{rival_org_id}/{staff_id}", headers=headers
        )
        members = await client.get(f"/organizations/list-users/{organization_id}", headers=headers)
    assert own.status_code == 200
    assert set(own.json()["userIds"]) == {str(owner_id), str(staff_id)}
    assert rival.status_code == 403
    assert members.json()["pagination"]["count"] == 2


async def test_collection_materials_are_snapshots() -> None:
    collector_id = await create_test_user(
        email="u1@example.com", user_type="collector", role_permissions=["collections.*"]
    )
    _owner_id, organization_id = await _business_owner("buyer@example.com", "Buyer Co", [])
    collection_id = await _create_collection(collector_id, organization_id)
    material_id = await _create_material("Aluminium", "AL01")
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        headers = auth_headers(await login(client, "u1@example.com"))
        assigned = await client.post(
            f"/collections/assign-material/{collection_id}/{material_id}",
            json={"weight": 12.5, "value": 30.0},
            headers=headers,
        )
        lines = await client.get(f"/collections/list-materials/{collection_id}", headers=headers)
        line_id = lines.json()["items"][0]["id"]
        removed = await client.post(
            f"/collections/unassign-material/{collection_id}/{line_id}", headers=headers
        )
    assert assigned.status_code == 200
    assert len(assigned.json()["materialIds"]) == 1
    line = lines.json()["items"][0]
    assert line["name"] == "Aluminium"
    assert line["gwCode"] == "AL01"
    assert line["weight"] == 12.5
    assert removed.json()["materialIds"] == []
    updates = await _audit_rows(table_name="collections", operation_type="UPDATE")
    assert len(updates) == 2
    assert all(row.user_id == collector_id for row in updates)


async def test_audit_logs_are_scoped_to_primary_organization() -> None:
    owner_id, organization_id = await _business_owner(
        "b@example.com", "B Co", ["materials.*", "audit_logs.view"]
    )
    await create_test_user(email="admin@example.com", permissions=["*"])
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        admin_headers = auth_headers(await login(client, "admin@example.com"))
        await client.post(
            "/materials", json={"name": "Admin Glass", "gwCode": "AG1", "carbonFactor": "1"}, headers=admin_headers
        )
        owner_headers = auth_headers(await login(client, "b@example.com"))
        await client.post(
            "/materials", json={"name": "Owner Glass", "gwCode": "OG1", "carbonFactor": "1"}, headers=owner_headers
        )
        owner_logs = await client.get("/audit-logs", headers=owner_headers)
        admin_logs = await client.get(
            "/audit-logs", params={"tableName": "materials"}, headers=admin_headers
        )
        log_id = owner_logs.json()["items"][0]["id"]
        single = await client.get(f"/audit-logs/{log_id}", headers=owner_headers)
    assert owner_logs.status_code == 200
    assert owner_logs.json()["pagination"]["count"] == 1
    assert owner_logs.json()["items"][0]["userId"] == str(owner_id)
    assert owner_logs.json()["items"][0]["organizationId"] == str(organization_id)
    assert admin_logs.json()["pagination"]["count"] == 2
    assert single.status_code == 200
    assert single.json()["data"]["name"] == "Owner Glass"


async def test_audit_logs_without_organization_show_only_own_history() -> None:
    await create_test_user(email="admin@example.com", permissions=["*"])
    collector_id = await create_test_user(
        email="c@example.com",
        user_type="collector",
        role_permissions=["audit_logs.view", "users.update.self"],
    )
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        admin_headers = auth_headers(await login(client, "admin@example.com"))
        created = await client.post(
            "/materials", json={"name": "Glass", "gwCode": "GL1", "carbonFactor": "1"}, headers=admin_headers
        )
        collector_headers = auth_headers(await login(client, "c@example.com"))
        before = await client.get("/audit-logs", headers=collector_headers)
        admin_log_id = (
            await client.get("/audit-logs", params={"tableName": "materials"}, headers=admin_headers)
        ).json()["items"][0]["id"]
        hidden = await client.get(f"/audit-logs/{admin_log_id}", headers=collector_headers)
        renamed = await client.put(
            f"/users/{collector_id}", json={"name": "Carol"}, headers=collector_headers
        )
        after = await client.get("/audit-logs", headers=collector_headers)

    assert created.status_code == 200
    assert before.status_code == 200
    assert before.json()["pagination"]["count"] == 0
    assert before.json()["items"] == []
    assert hidden.status_code == 404
    assert renamed.status_code == 200
    assert after.json()["pagination"]["count"] == 1
    assert after.json()["items"][0]["tableName"] == "users"
    assert after.json()["items"][0]["userId"] == str(collector_id)


async def test_search_term_defaults_to_table_search_columns() -> None:
    await create_test_user(email="admin@example.com", permissions=["*"])
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        headers = auth_headers(await login(client, "admin@example.com"))
        for name, gw_code in (("Glass", "GL1"), ("Paper", "PA1")):
            await client.post(
                "/materials", json={"name": name, "gwCode": gw_code, "carbonFactor": "1"}, headers=headers
            )
        by_name = await client.get("/materials", params={"searchTerm": "glass"}, headers=headers)
        by_code = await client.get("/materials", params={"searchTerm": "pa1"}, headers=headers)
        product = await client.post("/products", json={"name": "Bottle", "value": 1}, headers=headers)
        assigned = await client.get(
            f"/products/list-materials/{product.json()['id']}",
            params={"searchTerm": "glass"},
            headers=headers,
        )
        audit = await client.get("/audit-logs", params={"searchTerm": "glass"}, headers=headers)

    assert [item["name"] for item in by_name.json()["items"]] == ["Glass"]
    assert by_name.json()["pagination"]["count"] == 1
    assert [item["name"] for item in by_code.json()["items"]] == ["Paper"]
    assert product.status_code == 200
    assert assigned.status_code == 400
    assert audit.status_code == 400
