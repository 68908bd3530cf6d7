from datetime import timedelta

from tests.conftest import auth_headers
from app.utils.clock import utcnow


async def create_share(client, owner, generation, **overrides):
    body = {"shareable_id": generation.id, "share_type": "public", "title": "Launch Logos"}
    body.update(overrides)
    return await client.post("/shares", json=body, headers=auth_headers(owner))


async def test_owner_routes_require_authentication(client):
    response = await client.get("/shares")
    assert response.status_code == 401


async def test_create_and_view_public_share(client, owner, generation):
    response = await create_share(client, owner, generation, settings={"show_domain_status": False})
    assert response.status_code == 201
    share = response.json()
    assert share["share_url"] == f"http://test/share/{share['uuid']}"
    assert share["is_accessible"] is True
    assert share["view_count"] == 0

    public = await client.get(f"/share/{share['uuid']}")
    assert public.status_code == 200
    body = public.json()
    assert "id" not in body
    assert body["view_count"] == 1
    assert body["title"] == "Launch Logos"
    assert body["shareable"]["business_name"] == "TechFlow Solutions"
    assert body["shareable"]["domain_available"] is None
    assert len(body["logos"]) == 2

    detail = await client.get(f"/shares/{share['id']}", headers=auth_headers(owner))
    assert detail.json()["view_count"] == 1


async def test_public_share_html(client, owner, generation):
    share = (await create_share(client, owner, generation)).json()

    page = await client.get(f"/share/{share['uuid']}", headers={"Accept": "text/html"})
    assert page.status_code == 200
    assert "text/html" in page.headers["content-type"]
    assert "Launch Logos" in page.text
    assert 'property="og:title"' in page.text

    missing = await client.get("/share/does-not-exist", headers={"Accept": "text/html"})
    assert missing.status_code == 404


async def test_unknown_share_is_404(client):
    response = await client.get("/share/does-not-exist")
    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


async def test_password_share_flow(client, owner, generation):
    share = (await create_share(
        client, owner, generation, share_type="password_protected", password="secret123"
    )).json()
    url = f"/share/{share['uuid']}"

    locked = await client.get(url)
    assert locked.status_code == 423
    assert locked.json() == {"message": "Password required", "requires_password": True}

    wrong = await client.post(f"{url}/authenticate", json={"password": "wrong"})
    assert wrong.status_code == 422
    assert "password" in wrong.json()["errors"]

    form = await client.get(url, headers={"Accept": "text/html"})
    assert form.status_code == 200
    assert 'type="password"' in form.text

    unlocked = await client.post(f"{url}/authenticate", data={"password": "secret123"})
    assert unlocked.status_code == 303
    assert unlocked.headers["location"] == url

    viewed = await client.get(url)
    assert viewed.status_code == 200
    assert viewed.json()["view_count"] == 1


async def test_missing_password_is_a_field_error(client, owner, generation):
    share = (await create_share(
        client, owner, generation, share_type="password_protected", password="secret123"
    )).json()
    response = await client.post(f"/share/{share['uuid']}/authenticate", json={})
    assert response.status_code == 422
    assert "password" in response.json()["errors"]


async def test_create_share_validation_error(client, owner, generation):
    response = await create_share(client, owner, generation, share_type="password_protected")
    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "VALIDATION_ERROR"
    assert "password" in body["errors"]


async def test_share_creation_rate_limit(client, owner, generation):
    for _ in range(10):
        assert (await create_share(client, owner, generation)).status_code == 201

    response = await create_share(client, owner, generation)
    assert response.status_code == 429
    assert int(response.headers["Retry-After"]) > 0
    assert response.json()["retry_after"] > 0


async def test_update_and_deactivate_share(client, owner, generation):
    share = (await create_share(client, owner, generation)).json()
    headers = auth_headers(owner)

    updated = await client.put(
        f"/shares/{share['id']}",
        json={"description": "Final round", "expires_at": (utcnow() + timedelta(days=3)).isoformat()},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["description"] == "Final round"
    assert updated.json()["title"] == "Launch Logos"

    deleted = await client.delete(f"/shares/{share['id']}", headers=headers)
    assert deleted.status_code == 204
    assert (await client.get(f"/share/{share['uuid']}")).status_code == 404

    listed = await client.get("/shares", params={"is_active": False}, headers=headers)
    assert listed.json()["total"] == 1


async def test_other_users_cannot_manage_share(client, owner, other_user, generation):
    share = (await create_share(client, owner, generation)).json()
    response = await client.get(f"/shares/{share['id']}", headers=auth_headers(other_user))
    assert response.status_code == 403


async def test_analytics_and_metadata(client, owner, generation):
    share = (await create_share(client, owner, generation, description="Pick a favourite")).json()
    await client.get(f"/share/{share['uuid']}", headers={"Referer": "https://news.example/"})
    headers = auth_headers(owner)

    analytics = (await client.get(f"/shares/{share['id']}/analytics", headers=headers)).json()
    assert analytics["analytics"]["total_views"] == 1
    assert analytics["analytics"]["referrer_stats"] == [{"referrer": "https://news.example/", "views": 1}]

    meta = (await client.get(f"/shares/{share['id']}/metadata", headers=headers)).json()
    assert meta["og:title"] == "Launch Logos"
    assert meta["og:description"] == "Pick a favourite"


async def test_public_share_view_is_rate_limited(client, owner, generation, public_rate_limit):
    share = (await create_share(client, owner, generation)).json()

    codes = [(await client.get(f"/share/{share['uuid']}")).status_code for _ in range(5)]
    assert codes == [200, 200, 200, 429, 429]


async def test_social_tags_are_escaped_once(client, owner, generation):
    share = (await create_share(
        client, owner, generation, title="Tom and Jerry", description="Tom & Jerry's \"best\" logos"
    )).json()

    page = await client.get(f"/share/{share['uuid']}", headers={"Accept": "text/html"})
    assert page.status_code == 200
    assert 'property="og:description" content="Tom &amp; Jerry&#x27;s &quot;best&quot; logos"' in page.text
    assert "&amp;amp;" not in page.text
    assert "&amp;#x27;" not in page.text
    assert "<title>Tom and Jerry</title>" in page.text
