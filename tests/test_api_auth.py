from app.utils.security import create_share_session_token
from tests.conftest import auth_headers


async def test_register_login_and_profile(client):
    registered = await client.post(
        "/auth/register",
        json={"email": "new@example.com", "username": "newowner", "password": "password123"},
    )
    assert registered.status_code == 201
    assert registered.json()["stats"] is None

    login = await client.post("/auth/login", json={"email": "new@example.com", "password": "password123"})
    assert login.status_code == 200
    token = login.json()
    assert token["token_type"] == "bearer"
    assert token["expires_in"] > 0

    me = await client.get("/auth/me", headers={"Authorization": f"Bearer {token['access_token']}"})
    assert me.status_code == 200
    assert me.json()["username"] == "newowner"
    assert me.json()["stats"]["total_shares"] == 0


async def test_wrong_password_is_401(client, owner):
    response = await client.post("/auth/login", json={"email": owner.email, "password": "not-it"})
    assert response.status_code == 401


async def test_profile_counts_shares_and_exports(client, owner, generation):
    headers = auth_headers(owner)
    share = (await client.post(
        "/shares", json={"shareable_id": generation.id, "share_type": "public"}, headers=headers
    )).json()
    await client.post("/shares", json={"shareable_id": generation.id, "share_type": "public"}, headers=headers)
    await client.delete(f"/shares/{share['id']}", headers=headers)
    export = (await client.post(
        "/exports", json={"exportable_id": generation.id, "export_type": "json"}, headers=headers
    )).json()
    await client.get(f"/downloads/{export['uuid']}")

    stats = (await client.get("/auth/me", headers=headers)).json()["stats"]
    assert stats == {
        "total_shares": 2,
        "accessible_shares": 1,
        "total_share_views": 0,
        "total_exports": 1,
        "live_exports": 1,
        "total_downloads": 1,
    }


async def test_share_session_cookie_is_not_a_bearer_token(client, owner):
    token = create_share_session_token(["some-share"])
    response = await client.get("/shares", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


async def test_deactivated_owner_is_forbidden(client, db, owner):
    owner.is_active = False
    await db.commit()

    response = await client.get("/shares", headers=auth_headers(owner))
    assert response.status_code == 403
    assert response.json()["error_code"] == "FORBIDDEN"
