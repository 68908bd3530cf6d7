from tests.conftest import auth_headers


async def create_export(client, owner, generation, **overrides):
    body = {"exportable_id": generation.id, "export_type": "csv"}
    body.update(overrides)
    return await client.post("/exports", json=body, headers=auth_headers(owner))


async def test_create_list_and_download_export(client, owner, generation):
    response = await create_export(client, owner, generation, include_domains=True)
    assert response.status_code == 201
    export = response.json()
    assert export["download_url"] == f"http://test/exports/{export['uuid']}/download"
    assert export["exportable"]["business_name"] == "TechFlow Solutions"
    assert export["has_been_downloaded"] is False

    download = await client.get(f"/exports/{export['uuid']}/download", headers=auth_headers(owner))
    assert download.status_code == 200
    assert download.headers["content-type"].startswith("text/csv")
    assert download.headers["content-disposition"] == 'attachment; filename="techflow-solutions.csv"'
    assert download.text.startswith('"Business Name"')

    public = await client.get(f"/downloads/{export['uuid']}")
    assert public.status_code == 200

    listed = (await client.get("/exports", headers=auth_headers(owner))).json()
    assert listed["total"] == 1
    assert listed["items"][0]["download_count"] == 2
    assert listed["stats"] == {
        "total": 1,
        "by_type": {"csv": 1},
        "total_downloads": 2,
        "total_size": export["file_size"],
    }


async def test_export_validation_error(client, owner, pending_generation):
    response = await create_export(client, owner, pending_generation, export_type="xml")
    assert response.status_code == 422
    errors = response.json()["errors"]
    assert "export_type" in errors
    assert "exportable_id" in errors


async def test_export_ownership(client, owner, other_user, generation):
    export = (await create_export(client, owner, generation)).json()
    response = await client.get(f"/exports/{export['uuid']}", headers=auth_headers(other_user))
    assert response.status_code == 403

    response = await client.get(f"/exports/{export['uuid']}/download", headers=auth_headers(other_user))
    assert response.status_code == 403


async def test_unknown_export_download_is_404(client):
    assert (await client.get("/downloads/does-not-exist")).status_code == 404


async def test_missing_artifact_download_is_404(client, owner, generation, storage):
    export = (await create_export(client, owner, generation)).json()
    await storage.delete(f"exports/{export['uuid']}.csv")

    response = await client.get(f"/downloads/{export['uuid']}")
    assert response.status_code == 404
    detail = (await client.get(f"/exports/{export['uuid']}", headers=auth_headers(owner))).json()
    assert detail["download_count"] == 0


async def test_delete_export(client, owner, generation, storage):
    export = (await create_export(client, owner, generation, export_type="json")).json()
    headers = auth_headers(owner)

    assert (await client.delete(f"/exports/{export['uuid']}", headers=headers)).status_code == 204
    assert (await client.get(f"/exports/{export['uuid']}", headers=headers)).status_code == 404
    assert not await storage.exists(f"exports/{export['uuid']}.json")


async def test_analytics_and_cleanup_routes(client, owner, generation):
    headers = auth_headers(owner)
    await create_export(client, owner, generation, export_type="pdf")
    await create_export(client, owner, generation, export_type="json")

    analytics = (await client.get("/exports/analytics", headers=headers)).json()
    assert analytics["total_exports"] == 2
    assert analytics["recent_activity"] == 2

    cleanup = await client.delete("/exports/cleanup", headers=headers)
    assert cleanup.status_code == 200
    assert cleanup.json()["deleted_count"] == 0


async def test_public_download_is_rate_limited(client, owner, generation, public_rate_limit):
    export = (await create_export(client, owner, generation)).json()

    codes = [(await client.get(f"/downloads/{export['uuid']}")).status_code for _ in range(5)]
    assert codes == [200, 200, 200, 429, 429]

    detail = (await client.get(f"/exports/{export['uuid']}", headers=auth_headers(owner))).json()
    assert detail["download_count"] == public_rate_limit
