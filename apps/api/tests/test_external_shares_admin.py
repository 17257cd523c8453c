import re
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select, update

from models.external_share import ExternalShare
from models.share_access_log import ShareAccessLog
from models.share_content import ShareContent
from share_test_utils import ADMIN_AUTH_HEADER, USER_AUTH_HEADER, bearer, create_share, open_share, verify


HOLDING_A = {"project_id": "project-a", "category": "holding", "year": 2024, "quarter": "1Q"}
BANK_B = {"project_id": "project-b", "category": "bank", "year": 2023, "quarter": "4Q"}


def _future(hours=24):
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


@pytest.mark.asyncio
async def test_admin_routes_require_admin_session(share_client):
    client, _ = share_client
    code = (await create_share(client, [HOLDING_A]))["share_code"]
    share_token = await open_share(client, code)

    anonymous = await client.get("/admin/external-shares")
    plain_user = await client.get("/admin/external-shares", headers=USER_AUTH_HEADER)
    viewer = await client.get("/admin/external-shares", headers=bearer(share_token))

    assert anonymous.status_code == 401
    assert plain_user.status_code == 403
    assert viewer.status_code == 401


@pytest.mark.asyncio
async def test_create_share_returns_generated_code_and_url(share_client):
    client, _ = share_client

    share = await create_share(client, [HOLDING_A, BANK_B], expires_at=_future())

    assert re.fullmatch(r"[A-Za-z0-9]{12}", share["share_code"])
    assert share["share_url"].endswith(f"/share/{share['share_code']}")
    assert share["status"] == "active"
    assert share["is_active"] is True
    assert share["view_count"] == 0
    assert share["project_count"] == 2
    assert share["created_by"] == "admin-user"
    assert "password_hash" not in share


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "selections,password,field_hint",
    [
        ([{**HOLDING_A, "category": "retail"}], "4821", "category"),
        ([{**HOLDING_A, "quarter": "5Q"}], "4821", "quarter"),
        ([{**HOLDING_A, "year": 2019}], "4821", "year"),
        ([{**HOLDING_A, "year": 2100}], "4821", "year"),
        ([HOLDING_A], "48a1", None),
        ([HOLDING_A], "48211", None),
        ([], "4821", None),
    ],
)
async def test_create_share_rejects_invalid_input(share_client, selections, password, field_hint):
    client, _ = share_client

    response = await client.post(
        "/admin/external-shares",
        json={"project_selections": selections, "password": password},
        headers=ADMIN_AUTH_HEADER,
    )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "invalid_input"
    if field_hint:
        assert detail["field"] == field_hint


@pytest.mark.asyncio
async def test_create_share_rejects_unknown_project_and_past_expiry(share_client):
    client, _ = share_client

    unknown = await client.post(
        "/admin/external-shares",
        json={"project_selections": [{**HOLDING_A, "project_id": "ghost"}], "password": "4821"},
        headers=ADMIN_AUTH_HEADER,
    )
    past = await client.post(
        "/admin/external-shares",
        json={"project_selections": [HOLDING_A], "password": "4821", "expires_at": _future(-1)},
        headers=ADMIN_AUTH_HEADER,
    )
    duplicate = await client.post(
        "/admin/external-shares",
        json={"project_selections": [HOLDING_A, HOLDING_A], "password": "4821"},
        headers=ADMIN_AUTH_HEADER,
    )

    assert unknown.status_code == 404
    assert unknown.json()["detail"]["project_ids"] == ["ghost"]
    assert past.status_code == 400
    assert past.json()["detail"]["field"] == "expires_at"
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["code"] == "share_content_conflict"


@pytest.mark.asyncio
async def test_list_shares_filters_and_paginates(share_client):
    client, session_maker = share_client
    created = [await create_share(client, [HOLDING_A]) for _ in range(3)]
    async with session_maker() as session:
        await session.execute(
            update(ExternalShare)
            .where(ExternalShare.id == created[0]["id"])
            .values(expires_at=datetime.now(timezone.utc) - timedelta(hours=1))
        )
        await session.execute(update(ExternalShare).where(ExternalShare.id == created[1]["id"]).values(is_active=False))
        await session.commit()

    page_two = (await client.get("/admin/external-shares?page=2&limit=2", headers=ADMIN_AUTH_HEADER)).json()
    expired = (await client.get("/admin/external-shares?is_expired=true", headers=ADMIN_AUTH_HEADER)).json()
    inactive = (await client.get("/admin/external-shares?is_active=false", headers=ADMIN_AUTH_HEADER)).json()
    current = (await client.get("/admin/external-shares?is_expired=false", headers=ADMIN_AUTH_HEADER)).json()

    assert page_two["meta"] == {"total": 3, "page": 2, "limit": 2, "total_pages": 2}
    assert len(page_two["items"]) == 1
    assert [item["id"] for item in expired["items"]] == [created[0]["id"]]
    assert expired["items"][0]["status"] == "expired"
    assert [item["id"] for item in inactive["items"]] == [created[1]["id"]]
    assert inactive["items"][0]["status"] == "inactive"
    assert {item["id"] for item in current["items"]} == {created[1]["id"], created[2]["id"]}
    assert all(item["project_count"] == 1 for item in current["items"])


@pytest.mark.asyncio
async def test_share_detail_lists_associations(share_client):
    client, _ = share_client
    share = await create_share(client, [BANK_B, HOLDING_A])

    response = await client.get(f"/admin/external-shares/{share['id']}", headers=ADMIN_AUTH_HEADER)
    missing = await client.get("/admin/external-shares/not-a-share", headers=ADMIN_AUTH_HEADER)

    assert response.status_code == 200
    detail = response.json()
    assert [item["project_id"] for item in detail["projects"]] == ["project-a", "project-b"]
    assert detail["projects"][0]["project_title"] == "Project A"
    assert detail["project_count"] == 2
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_rename_rejects_taken_and_malformed_codes(share_client):
    client, _ = share_client
    first = await create_share(client, [HOLDING_A])
    second = await create_share(client, [HOLDING_A])

    taken = await client.patch(
        f"/admin/external-shares/{second['id']}",
        json={"share_code": first["share_code"]},
        headers=ADMIN_AUTH_HEADER,
    )
    malformed = await client.patch(
        f"/admin/external-shares/{second['id']}",
        json={"share_code": "no spaces!"},
        headers=ADMIN_AUTH_HEADER,
    )

    assert taken.status_code == 409
    assert taken.json()["detail"]["code"] == "share_code_conflict"
    assert malformed.status_code == 400
    unchanged = await client.get(f"/admin/external-shares/{second['id']}", headers=ADMIN_AUTH_HEADER)
    assert unchanged.json()["share_code"] == second["share_code"]


@pytest.mark.asyncio
async def test_patch_rotates_password_and_clears_expiry(share_client):
    client, _ = share_client
    share = await create_share(client, [HOLDING_A], expires_at=_future())
    assert share["expires_at"] is not None

    rotated = await client.patch(
        f"/admin/external-shares/{share['id']}",
        json={"password": "1357", "expires_at": None},
        headers=ADMIN_AUTH_HEADER,
    )

    assert rotated.status_code == 200
    assert rotated.json()["expires_at"] is None
    assert (await verify(client, share["share_code"], "4821")).status_code == 401
    assert (await verify(client, share["share_code"], "1357")).status_code == 200


@pytest.mark.asyncio
async def test_patch_without_fields_leaves_share_untouched(share_client):
    client, _ = share_client
    share = await create_share(client, [HOLDING_A], expires_at=_future())

    response = await client.patch(f"/admin/external-shares/{share['id']}", json={}, headers=ADMIN_AUTH_HEADER)

    assert response.status_code == 200
    assert response.json()["expires_at"] == share["expires_at"]
    assert response.json()["project_count"] == 1


@pytest.mark.asyncio
async def test_delete_share_keeps_access_history(share_client):
    client, session_maker = share_client
    share = await create_share(client, [HOLDING_A])
    code = share["share_code"]
    await verify(client, code, "0000")
    await open_share(client, code)

    response = await client.delete(f"/admin/external-shares/{share['id']}", headers=ADMIN_AUTH_HEADER)

    assert response.status_code == 200
    assert response.json() == {"deleted": True, "id": share["id"]}
    assert (await verify(client, code, "4821")).status_code == 404
    async with session_maker() as session:
        result = await session.execute(select(ShareAccessLog).where(ShareAccessLog.share_id == share["id"]))
        assert len(result.scalars().all()) == 2
        associations = await session.execute(select(ShareContent).where(ShareContent.share_id == share["id"]))
        assert associations.scalars().all() == []
    again = await client.delete(f"/admin/external-shares/{share['id']}", headers=ADMIN_AUTH_HEADER)
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_share_content_add_and_remove(share_client):
    client, _ = share_client
    share = await create_share(client, [HOLDING_A])

    added = await client.post(f"/admin/external-shares/{share['id']}/contents", json=BANK_B, headers=ADMIN_AUTH_HEADER)
    duplicate = await client.post(
        f"/admin/external-shares/{share['id']}/contents", json=HOLDING_A, headers=ADMIN_AUTH_HEADER
    )

    assert added.status_code == 201
    assert added.json()["display_order"] == 1
    assert duplicate.status_code == 409

    content_id = added.json()["id"]
    removed = await client.delete(
        f"/admin/external-shares/{share['id']}/contents/{content_id}", headers=ADMIN_AUTH_HEADER
    )
    missing = await client.delete(
        f"/admin/external-shares/{share['id']}/contents/{content_id}", headers=ADMIN_AUTH_HEADER
    )

    assert removed.status_code == 200
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "share_content_not_found"
    detail = await client.get(f"/admin/external-shares/{share['id']}", headers=ADMIN_AUTH_HEADER)
    assert [item["project_id"] for item in detail.json()["projects"]] == ["project-a"]


@pytest.mark.asyncio
async def test_access_logs_are_listed_newest_first(share_client):
    client, _ = share_client
    share = await create_share(client, [HOLDING_A])
    await verify(client, share["share_code"], "0000")
    await open_share(client, share["share_code"])

    response = await client.get(f"/admin/external-shares/{share['id']}/access-logs", headers=ADMIN_AUTH_HEADER)

    assert response.status_code == 200
    payload = response.json()
    assert payload["meta"]["total"] == 2
    assert [item["outcome"] for item in payload["items"]] == ["success", "password_mismatch"]
    assert payload["items"][0]["ip_address"] == "127.0.0.1"


@pytest.mark.asyncio
async def test_create_share_regenerates_code_claimed_concurrently(share_client):
    client, _ = share_client
    existing = await create_share(client, [HOLDING_A])

    # The first candidate passed the availability check but is already stored.
    allocate = AsyncMock(side_effect=[existing["share_code"], "FreshCode123"])
    with patch("services.share_admin._allocate_share_code", allocate):
        created = await create_share(client, [HOLDING_A])

    assert created["share_code"] == "FreshCode123"
    assert allocate.await_count == 2
    assert (await verify(client, "FreshCode123", "4821")).status_code == 200


@pytest.mark.asyncio
async def test_create_share_gives_up_after_repeated_code_collisions(share_client):
    client, _ = share_client
    existing = await create_share(client, [HOLDING_A])

    allocate = AsyncMock(return_value=existing["share_code"])
    with patch("services.share_admin._allocate_share_code", allocate):
        response = await client.post(
            "/admin/external-shares",
            json={"project_selections": [HOLDING_A], "password": "4821"},
            headers=ADMIN_AUTH_HEADER,
        )

    assert response.status_code == 500
    assert response.json()["detail"]["code"] == "share_code_generation_failed"
    assert allocate.await_count == 10
    listing = (await client.get("/admin/external-shares", headers=ADMIN_AUTH_HEADER)).json()
    assert listing["meta"]["total"] == 1
