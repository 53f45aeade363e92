import pytest

from astralis.core.deps import COOKIE_NAME
from astralis.db.models import Membership, Organization, User
from astralis.schemas.auth import RegisterRequest
from astralis.services import auth_service

REGISTRATION = {
    "org_name": "Northwind Studio",
    "email": "Owner@Northwind.io",
    "display_name": "Sam Owner",
    "password": "correct-horse",
    "timezone": "Europe/Berlin",
}


@pytest.mark.asyncio
async def test_register_creates_admin_and_signs_in(client, db):
    res = await client.post("/auth/register", json=REGISTRATION)

    assert res.status_code == 201, res.text
    body = res.json()
    assert body["email"] == "owner@northwind.io"
    assert body["role"] == "admin"
    assert body["org_slug"] == "northwind-studio"
    assert body["timezone"] == "Europe/Berlin"
    assert body["ai_enabled"] is False

    res = await client.get("/auth/me")
    assert res.status_code == 200
    assert res.json()["org_name"] == "Northwind Studio"


@pytest.mark.asyncio
async def test_register_rejects_taken_email(client, db):
    await client.post("/auth/register", json=REGISTRATION)

    res = await client.post(
        "/auth/register", json={**REGISTRATION, "email": "owner@northwind.io"}
    )
    assert res.status_code == 409


def test_duplicate_org_names_get_unique_slugs(db):
    auth_service.register(db, RegisterRequest(**REGISTRATION))
    _, membership = auth_service.register(
        db, RegisterRequest(**{**REGISTRATION, "email": "second@northwind.io"})
    )

    org = db.get(Organization, membership.organization_id)
    assert org.slug == "northwind-studio-2"
    assert db.query(User).count() == 2


@pytest.mark.asyncio
async def test_login(client, db):
    await client.post("/auth/register", json=REGISTRATION)
    client.cookies.clear()

    res = await client.post(
        "/auth/login", json={"email": "owner@northwind.io", "password": "wrong-password"}
    )
    assert res.status_code == 401
    assert res.json()["detail"] == "Invalid email or password"

    res = await client.post(
        "/auth/login", json={"email": "OWNER@northwind.io", "password": "correct-horse"}
    )
    assert res.status_code == 200
    assert COOKIE_NAME in res.cookies
    assert db.query(User).one().last_login_at is not None


@pytest.mark.asyncio
async def test_logout_revokes_existing_tokens(client, db):
    res = await client.post("/auth/register", json=REGISTRATION)
    token = res.cookies[COOKIE_NAME]

    res = await client.post("/auth/logout")
    assert res.json() == {"status": "logged_out"}

    client.cookies.clear()
    res = await client.get("/auth/me", headers={"Cookie": f"{COOKIE_NAME}={token}"})
    assert res.status_code == 401
    assert res.json()["detail"] == "Session revoked"


@pytest.mark.asyncio
async def test_login_requires_csrf_header(client):
    res = await client.post(
        "/auth/login",
        json={"email": "a@example.com", "password": "x"},
        headers={"X-Requested-With": ""},
    )
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_role_comes_from_membership(db, test_org, test_user, authed_client):
    membership = db.query(Membership).filter(Membership.user_id == test_user.id).one()
    membership.role = "member"
    db.commit()

    res = await authed_client.get("/auth/me")

    assert res.json()["role"] == "member"


# =============================================================================
# Dev endpoints
# =============================================================================

@pytest.mark.asyncio
async def test_dev_seed_requires_secret(client):
    res = await client.post("/dev/seed", headers={"X-Dev-Secret": "nope"})
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_dev_seed_is_idempotent_and_login_as_works(client, db):
    headers = {"X-Dev-Secret": "test-dev-secret"}

    res = await client.post("/dev/seed", headers=headers)
    body = res.json()
    assert body["status"] == "seeded"
    assert [u["role"] for u in body["users"]] == ["admin", "manager", "member", "developer"]

    res = await client.post("/dev/seed", headers=headers)
    assert res.json()["status"] == "already_seeded"

    manager_id = body["users"][1]["user_id"]
    res = await client.post(f"/dev/login-as/{manager_id}", headers=headers)
    assert res.json()["role"] == "manager"

    res = await client.get("/auth/me")
    assert res.json()["email"] == "manager@dev.astralis.one"
