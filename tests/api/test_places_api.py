import pytest

HEADERS = {"X-User-Id": "user-1"}


@pytest.mark.asyncio
async def test_places_require_authentication(api_client):
    resp = await api_client.get("/places")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "invalid_token"
    assert resp.json()["request_id"]


@pytest.mark.asyncio
async def test_list_places_sorted_and_cached(api_client):
    resp = await api_client.get("/places", headers=HEADERS)
    assert resp.status_code == 200
    body = resp.json()
    assert body["source"] == "remote"
    assert [p["name"] for p in body["places"]] == ["archive", "Bridge", "Cathedral", "Lighthouse"]
    assert body["places"][0]["latitude"] is None

    cached = await api_client.get("/places", headers=HEADERS)
    assert cached.json()["source"] == "cache"
    refreshed = await api_client.get("/places", params={"refresh": "true"}, headers=HEADERS)
    assert refreshed.json()["source"] == "remote"


@pytest.mark.asyncio
async def test_get_place_and_details(api_client, store):
    store.seed(
        "place_details",
        {"place_id": "p-bridge", "description": "Roman arches", "approved": True, "created_at": "2024-04-01T10:00:00Z"},
    )
    resp = await api_client.get("/places/p-bridge", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["region"] == "north"

    details = await api_client.get("/places/p-bridge/details", headers=HEADERS)
    assert [d["description"] for d in details.json()["details"]] == ["Roman arches"]

    missing = await api_client.get("/places/nope", headers=HEADERS)
    assert missing.status_code == 404
    assert missing.json()["detail"] == "place_not_found"


@pytest.mark.asyncio
async def test_remote_outage_without_cache_is_503(api_client, store):
    store.failing.add(("places", "select"))
    resp = await api_client.get("/places", headers=HEADERS)
    assert resp.status_code == 503
    assert resp.json()["detail"] == "remote_unavailable"


@pytest.mark.asyncio
async def test_health_live(api_client):
    resp = await api_client.get("/health/live")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers.get("X-Request-Id")
