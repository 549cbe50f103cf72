"""
Tests for API endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from tanklevel.main import app
from tanklevel.services.repository import get_repository, init_repository


FRAME_HEX = (
    "FEDC0A16098522754E00000001030020"
    "000000FA000001F40000000A00000014000001C200000BB80000001F00000000"
)


@pytest.fixture
def client():
    """Create test client with a fresh registry."""
    init_repository()
    return TestClient(app)


@pytest.fixture
def cylinder_tank():
    """2 m x 5 m vertical cylinder fed by the ultrasonic sensor."""
    return {
        "name": "Diesel",
        "geometry": {"shape": "cylindrical", "orientation": "vertical",
                     "dimensions": {"diameter": 2, "height": 5}},
        "capacity_liters": 15708,
        "sensor_id": "16098522754E",
    }


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Tank Level Telemetry"
        assert data["status"] == "running"

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["device_count"] == 0
        assert data["tank_count"] == 0


class TestFrameEndpoints:
    """Tests for /frames endpoints."""

    def test_decode_frame(self, client):
        response = client.post("/frames/decode", json={
            "raw_line": "2025-06-22T14:20:00Z " + FRAME_HEX,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["sensor_id"] == "16098522754E"
        assert data["sensor_type"] == "ultrasonic_level_sensor"
        assert data["primary_reading"] == 3.0
        assert data["signal_rssi_dbm"] == -69
        assert data["timestamp_source"] == "line"
        assert len(data["fields"]) == 8

    def test_decode_does_not_register_device(self, client):
        client.post("/frames/decode", json={"raw_line": FRAME_HEX})
        assert get_repository().list_devices() == []

    @pytest.mark.parametrize("raw_line, error", [
        ("", "EmptyOrNonString"),
        ("FEDC0A16XYZ", "InvalidHexCharacters"),
        ("FEDC0A16", "TooShortForHeader"),
        ("ABCD" + FRAME_HEX[4:], "BadMagicHeader"),
    ])
    def test_decode_rejects_malformed(self, client, raw_line, error):
        response = client.post("/frames/decode", json={"raw_line": raw_line})
        assert response.status_code == 422
        assert response.json()["detail"].startswith(error)


class TestVolumeEndpoints:
    """Tests for /volume endpoints."""

    def test_infer(self, client):
        response = client.post("/volume/infer", json={
            "geometry": {"shape": "cylindrical", "dimensions": {"diameter": 2, "height": 5}},
            "raw_reading": 2.5,
            "declared_capacity_liters": 15708,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["volume_liters"] == 7854
        assert data["calculation_method"] == "cylindrical_vertical"
        assert data["data_quality"] == "good"

    def test_infer_bad_geometry(self, client):
        response = client.post("/volume/infer", json={
            "geometry": {"shape": "spherical", "dimensions": {}},
            "raw_reading": 1.0,
            "declared_capacity_liters": 1000,
        })
        assert response.status_code == 422

    def test_infer_rejects_negative_dead_space(self, client):
        response = client.post("/volume/infer", json={
            "geometry": {"shape": "spherical", "dimensions": {"radius": 1}, "dead_space_m3": -1},
            "raw_reading": 1.0,
            "declared_capacity_liters": 1000,
        })
        assert response.status_code == 422


class TestTankEndpoints:
    """Tests for /tanks and /ingest endpoints."""

    def test_create_tank(self, client, cylinder_tank):
        response = client.post("/tanks/t1", json=cylinder_tank)
        assert response.status_code == 200
        data = response.json()
        assert data["tank_id"] == "t1"
        assert data["device_id"] == "device-16098522754e"
        assert data["last_result"]["volume_liters"] == 0
        assert data["last_result"]["data_quality"] == "no_data"

        device = get_repository().find_device("16098522754E")
        assert not device.auto_registered

    def test_create_tank_bad_geometry(self, client, cylinder_tank):
        cylinder_tank["geometry"]["dimensions"] = {"diameter": 2}
        response = client.post("/tanks/t1", json=cylinder_tank)
        assert response.status_code == 422
        assert get_repository().get_tank("t1") is None

    def test_create_tank_requires_capacity(self, client, cylinder_tank):
        cylinder_tank["capacity_liters"] = 0
        response = client.post("/tanks/t1", json=cylinder_tank)
        assert response.status_code == 422

    def test_get_tank_not_found(self, client):
        response = client.get("/tanks/missing")
        assert response.status_code == 404

    def test_list_tanks(self, client, cylinder_tank):
        client.post("/tanks/t1", json=cylinder_tank)
        response = client.get("/tanks")
        assert response.status_code == 200
        assert [t["tank_id"] for t in response.json()] == ["t1"]

    def test_ingest_updates_tank(self, client, cylinder_tank):
        client.post("/tanks/t1", json=cylinder_tank)

        response = client.post("/ingest", json={"raw_line": FRAME_HEX})
        assert response.status_code == 200
        data = response.json()
        assert data["tank_id"] == "t1"
        assert not data["duplicate"]
        assert data["result"]["volume_liters"] == 6283

        tank = client.get("/tanks/t1").json()
        assert tank["last_result"]["volume_liters"] == 6283

    def test_ingest_duplicate(self, client, cylinder_tank):
        client.post("/tanks/t1", json=cylinder_tank)
        payload = {"raw_line": FRAME_HEX, "timestamp": "2025-06-22T14:20:00Z"}

        client.post("/ingest", json=payload)
        response = client.post("/ingest", json=payload)

        data = response.json()
        assert data["duplicate"]
        assert data["result"] is None

    def test_ingest_unknown_device(self, client):
        response = client.post("/ingest", json={"raw_line": FRAME_HEX})
        assert response.status_code == 200
        data = response.json()
        assert data["tank_id"] is None
        assert data["device_id"] == "device-16098522754e"

    def test_ingest_malformed(self, client):
        response = client.post("/ingest", json={"raw_line": "not hex"})
        assert response.status_code == 422

    def test_reconfigure_recalculates(self, client, cylinder_tank):
        client.post("/tanks/t1", json=cylinder_tank)
        client.post("/ingest", json={"raw_line": FRAME_HEX})

        cylinder_tank["offset_depth"] = 0.5
        response = client.post("/tanks/t1", json=cylinder_tank)

        assert response.json()["last_result"]["volume_liters"] == 4712

    def test_recalculate(self, client, cylinder_tank):
        client.post("/tanks/t1", json=cylinder_tank)
        client.post("/ingest", json={"raw_line": FRAME_HEX, "timestamp": "2025-06-22T14:20:00Z"})

        response = client.post("/tanks/t1/recalculate")
        assert response.status_code == 200
        data = response.json()
        assert data["result"]["volume_liters"] == 6283
        assert data["reading_timestamp"].startswith("2025-06-22T14:20:00")

    def test_recalculate_with_naive_and_aware_timestamps(self, client, cylinder_tank):
        client.post("/tanks/t1", json=cylinder_tank)
        client.post("/ingest", json={"raw_line": FRAME_HEX, "timestamp": "2025-06-22T14:00:00"})
        client.post("/ingest", json={"raw_line": FRAME_HEX, "timestamp": "2025-06-22T15:00:00Z"})

        response = client.post("/tanks/t1/recalculate")
        assert response.status_code == 200
        assert response.json()["reading_timestamp"].startswith("2025-06-22T15:00:00")

    def test_recalculate_without_readings(self, client, cylinder_tank):
        client.post("/tanks/t1", json=cylinder_tank)

        response = client.post("/tanks/t1/recalculate")
        assert response.status_code == 200
        data = response.json()
        assert data["result"]["volume_liters"] == 0
        assert data["reading_timestamp"] is None

    def test_recalculate_not_found(self, client):
        response = client.post("/tanks/missing/recalculate")
        assert response.status_code == 404

    def test_volume_curve(self, client, cylinder_tank):
        client.post("/tanks/t1", json=cylinder_tank)

        response = client.get("/tanks/t1/curve", params={"samples": 11})
        assert response.status_code == 200
        data = response.json()
        assert len(data["levels_m"]) == 11
        assert data["effective_total_height"] == 5.0
        assert data["volumes_liters"][0] == 0
        assert data["volumes_liters"][-1] == 15708

    def test_volume_curve_bad_samples(self, client, cylinder_tank):
        client.post("/tanks/t1", json=cylinder_tank)
        response = client.get("/tanks/t1/curve", params={"samples": 1})
        assert response.status_code == 422
