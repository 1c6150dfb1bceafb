from __future__ import annotations

import sqlite3

import pytest
from fastapi.testclient import TestClient

from gps_tracker.core.database import Database
from gps_tracker.main import create_app


@pytest.fixture
def client(sqlite_settings):
    app = create_app(sqlite_settings)
    with TestClient(app) as test_client:
        yield test_client


def _create(client, **payload):
    response = client.post("/api/assets", json=payload)
    assert response.status_code == 201
    return response.json()


def test_truck_scenario(client):
    created = _create(client, name="Truck1")
    asset_id = created["id"]
    assert asset_id
    assert created["isActive"] is False
    assert created["engineOn"] is False
    assert created["lastUpdated"]

    powered = client.post(f"/api/assets/{asset_id}/power", json={"state": True})
    assert powered.status_code == 200
    assert powered.json()["isActive"] is True

    fetched = client.get(f"/api/assets/{asset_id}")
    assert fetched.json()["isActive"] is True

    restored = client.post(f"/api/assets/{asset_id}/restore")
    assert restored.status_code == 200
    body = restored.json()
    assert body["isActive"] is False
    assert body["engineOn"] is False
    assert body["speed"] == 0


def test_create_assigns_unique_ids(client):
    first = _create(client, name="A")
    second = _create(client, name="B")
    assert first["id"] != second["id"]


def test_get_after_create_returns_payload_fields(client):
    payload = {
        "serialNumber": "SN-001",
        "name": "Van",
        "model": "Transit",
        "deviceName": "tracker-7",
        "imageUrl": "https://example.com/van.png",
        "isActive": True,
        "speed": 42.5,
        "temperature": 21.0,
        "lastKnownLocation": {"type": "Point", "coordinates": [151.2, -33.8]},
    }
    created = _create(client, **payload)

    fetched = client.get(f"/api/assets/{created['id']}").json()
    for key, value in payload.items():
        assert fetched[key] == value
    assert fetched["engineOn"] is False


def test_list_assets_returns_all(client):
    _create(client, name="One")
    _create(client, name="Two")

    response = client.get("/api/assets")

    assert response.status_code == 200
    assert sorted(asset["name"] for asset in response.json()) == ["One", "Two"]


def test_update_changes_only_supplied_keys(client):
    created = _create(client, name="Before", model="M1", speed=10)

    response = client.put(f"/api/assets/{created['id']}", json={"name": "After"})

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "After"
    assert body["model"] == "M1"
    assert body["speed"] == 10
    assert body["lastUpdated"] == created["lastUpdated"]


def test_update_ignores_id_in_payload(client):
    created = _create(client, name="Fixed")

    response = client.put(f"/api/assets/{created['id']}", json={"id": 999, "name": "Renamed"})

    assert response.json()["id"] == created["id"]


def test_engine_state_leaves_other_fields(client):
    created = _create(client, name="Bike", isActive=True, speed=5)

    response = client.post(f"/api/assets/{created['id']}/engine", json={"state": True})
    assert response.json()["engineOn"] is True

    fetched = client.get(f"/api/assets/{created['id']}").json()
    assert fetched["engineOn"] is True
    assert fetched["isActive"] is True
    assert fetched["speed"] == 5
    assert fetched["name"] == "Bike"


@pytest.mark.parametrize("suffix", ["/engine", "/power"])
def test_state_toggle_without_body_returns_asset_unchanged(client, suffix):
    created = _create(client, name="Trailer", isActive=True)

    response = client.post(f"/api/assets/{created['id']}{suffix}")

    assert response.status_code == 200
    body = response.json()
    assert body["isActive"] is True
    assert body["engineOn"] is False
    assert body["lastUpdated"] == created["lastUpdated"]


def test_alarm_acknowledges_without_changes(client):
    created = _create(client, name="Boat")

    response = client.post(f"/api/assets/{created['id']}/alarm")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Alarm triggered"}
    assert client.get(f"/api/assets/{created['id']}").json() == created


def test_lost_mode_activates_and_refreshes_timestamp(client):
    created = _create(client, name="Phone", lastUpdated="2020-01-01T00:00:00Z")

    response = client.post(f"/api/assets/{created['id']}/lost-mode")

    body = response.json()
    assert body["isActive"] is True
    assert body["lastUpdated"] > created["lastUpdated"]


def test_status_samples_ranges_and_persists(client):
    location = {"type": "Point", "coordinates": [10.0, 20.0]}
    created = _create(client, name="Drone", engineOn=True, lastKnownLocation=location)

    response = client.get(f"/api/assets/{created['id']}/status")

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-store"
    status = response.json()
    assert 0 <= status["speed"] < 100
    assert 0 <= status["altitude"] < 1000
    assert 20 <= status["temperature"] < 35
    assert 30 <= status["humidity"] < 70
    assert status["engineOn"] is True
    assert status["isActive"] is False
    assert status["lastKnownLocation"] == location

    stored = client.get(f"/api/assets/{created['id']}").json()
    for key in ("speed", "altitude", "temperature", "humidity"):
        assert stored[key] == pytest.approx(status[key])


@pytest.mark.parametrize(
    ("method", "suffix", "body"),
    [
        ("get", "", None),
        ("put", "", {"name": "x"}),
        ("post", "/engine", {"state": True}),
        ("post", "/power", {"state": False}),
        ("post", "/alarm", None),
        ("post", "/lost-mode", None),
        ("post", "/restore", None),
        ("get", "/status", None),
    ],
)
@pytest.mark.parametrize("asset_id", ["12345", "not-an-id", "99999999999999999999"])
def test_missing_asset_returns_not_found(client, method, suffix, body, asset_id):
    kwargs = {"json": body} if body is not None else {}
    response = getattr(client, method)(f"/api/assets/{asset_id}{suffix}", **kwargs)

    assert response.status_code == 404
    assert response.json() == {"error": "Asset not found"}


def test_rejected_payload_is_reported_as_error(client):
    response = client.post("/api/assets", json={"speed": "fast"})

    assert response.status_code == 500
    assert "speed" in response.json()["error"]


def test_storage_fault_surfaces_underlying_message(client, monkeypatch):
    async def broken_fetch_all(self, sql, params=None):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(Database, "fetch_all", broken_fetch_all)

    response = client.get("/api/assets")

    assert response.status_code == 500
    assert response.json() == {"error": "disk I/O error"}


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/unknown")

    assert response.status_code == 404
    assert "error" in response.json()


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
