import pytest

HEADERS = {"X-User-Id": "user-1"}
NEAR_CATHEDRAL = {"lat": 40.001, "lon": -3.0, "accuracy_m": 15}


@pytest.mark.asyncio
async def test_mark_list_and_unmark(api_client):
    resp = await api_client.post("/visits/p-cathedral", json=NEAR_CATHEDRAL, headers=HEADERS)
    assert resp.status_code == 201
    assert resp.json()["visit_id"]

    listed = await api_client.get("/visits", headers=HEADERS)
    assert listed.json() == {"place_ids": ["p-cathedral"]}
    status = await api_client.get("/visits/p-cathedral", headers=HEADERS)
    assert status.json() == {"place_id": "p-cathedral", "visited": True, "visited_today": True}

    removed = await api_client.delete("/visits/p-cathedral", headers=HEADERS)
    assert removed.json()["removed"] == 1
    status = await api_client.get("/visits/p-cathedral", headers=HEADERS)
    assert status.json()["visited"] is False


@pytest.mark.asyncio
async def test_mark_too_far_is_rejected(api_client, store):
    resp = await api_client.post("/visits/p-lighthouse", json=NEAR_CATHEDRAL, headers=HEADERS)
    assert resp.status_code == 409
    body = resp.json()
    assert body["detail"] == "not_nearby"
    assert body["distance_m"] > 8000
    assert body["radius_m"] == 500
    assert store.tables["visits"] == []


@pytest.mark.asyncio
async def test_mark_with_poor_accuracy_is_rejected(api_client):
    resp = await api_client.post(
        "/visits/p-cathedral",
        json={"lat": 40.0, "lon": -3.0, "accuracy_m": 400},
        headers=HEADERS,
    )
    assert resp.status_code == 422
    assert resp.json()["detail"] == "poor_accuracy"


@pytest.mark.asyncio
async def test_mark_validation_and_unknown_place(api_client):
    invalid = await api_client.post("/visits/p-cathedral", json={"lat": 120, "lon": 0}, headers=HEADERS)
    assert invalid.status_code == 422
    assert invalid.json()["detail"] == "validation_error"

    missing = await api_client.post("/visits/nope", json=NEAR_CATHEDRAL, headers=HEADERS)
    assert missing.status_code == 404

    no_coordinate = await api_client.post("/visits/p-archive", json=NEAR_CATHEDRAL, headers=HEADERS)
    assert no_coordinate.status_code == 422
    assert no_coordinate.json()["detail"] == "invalid_coordinate"
