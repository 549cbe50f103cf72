"""
Tests for the ingestion pipeline and the in-memory registry.
"""

import math
from datetime import datetime, timedelta, timezone

import pytest
from numpy.testing import assert_allclose

from tanklevel.models.device import StoredReading, TankRecord
from tanklevel.models.frame import SensorType
from tanklevel.models.tank import InferenceFailure, TankGeometry, VolumeResult
from tanklevel.services.frame_decoder import DecodeError, decode
from tanklevel.services.ingestion import IngestionPipeline, UnknownTankError
from tanklevel.services.repository import InMemoryRegistry


FRAME_HEX = (
    "FEDC0A16098522754E00000001030020"
    "000000FA000001F40000000A00000014000001C200000BB80000001F00000000"
)
SENSOR_ID = "16098522754E"
T0 = datetime(2025, 6, 22, 14, 0, tzinfo=timezone.utc)


@pytest.fixture
def registry():
    return InMemoryRegistry()


@pytest.fixture
def pipeline(registry):
    return IngestionPipeline(registry, registry, registry)


@pytest.fixture
def device(registry):
    return registry.register_device(SENSOR_ID, SensorType.ULTRASONIC, auto_registered=False)


@pytest.fixture
def tank(registry, device):
    """2 m x 5 m vertical cylinder fed by the ultrasonic device."""
    return registry.save_tank(TankRecord(
        tank_id="tank-1",
        name="Diesel",
        geometry=TankGeometry("cylindrical", "vertical", {"diameter": 2, "height": 5}),
        capacity_liters=15708,
        device_id=device.device_id,
    ))


class TestIngest:
    """Tests for the live ingestion path."""

    def test_unknown_sensor_auto_registered(self, pipeline, registry):
        result = pipeline.ingest(FRAME_HEX, T0)

        assert result.device.sensor_id == SENSOR_ID
        assert result.device.auto_registered
        assert result.device.sensor_type is SensorType.ULTRASONIC
        assert registry.find_device(SENSOR_ID) is result.device
        assert result.outcome is None
        assert result.tank_id is None
        assert "not assigned" in result.message

    def test_reading_updates_tank(self, pipeline, registry, tank):
        result = pipeline.ingest(FRAME_HEX, T0)

        # 3.0 m air gap in a 5 m tank -> 2.0 m of liquid
        assert result.tank_id == "tank-1"
        assert isinstance(result.outcome, VolumeResult)
        assert_allclose(result.outcome.liquid_level_m, 2.0)
        assert result.outcome.volume_liters == round(2 * math.pi * 1000)
        assert registry.get_tank("tank-1").last_outcome == result.outcome
        assert result.device.last_seen == T0

    def test_duplicate_reading_ignored(self, pipeline, registry, tank):
        first = pipeline.ingest(FRAME_HEX, T0)
        second = pipeline.ingest(FRAME_HEX, T0)

        assert not first.duplicate
        assert second.duplicate
        assert second.outcome is None
        assert len(registry.readings_for(first.device.device_id)) == 1

    def test_same_payload_new_timestamp_processed(self, pipeline, registry, tank):
        pipeline.ingest(FRAME_HEX, T0)
        second = pipeline.ingest(FRAME_HEX, T0 + timedelta(minutes=1))

        assert not second.duplicate
        assert len(registry.readings_for(second.device.device_id)) == 2

    def test_decode_error_propagates(self, pipeline):
        with pytest.raises(DecodeError):
            pipeline.ingest("FEDC")

    def test_bad_geometry_reported(self, pipeline, registry, device):
        registry.save_tank(TankRecord(
            tank_id="broken",
            name="Broken",
            geometry=TankGeometry("cylindrical", "vertical", {"diameter": 2}),
            capacity_liters=1000,
            device_id=device.device_id,
        ))

        result = pipeline.ingest(FRAME_HEX, T0)

        assert isinstance(result.outcome, InferenceFailure)
        assert result.message == result.outcome.message
        assert isinstance(registry.get_tank("broken").last_outcome, InferenceFailure)

    def test_tank_sensor_type_overrides_device(self, pipeline, registry, device):
        registry.save_tank(TankRecord(
            tank_id="pressure",
            name="Pressure",
            geometry=TankGeometry("cylindrical", "vertical", {"diameter": 2, "height": 5}),
            capacity_liters=15708,
            sensor_type="pressure_transmitter",
            device_id=device.device_id,
        ))

        result = pipeline.ingest(FRAME_HEX, T0)

        assert_allclose(result.outcome.liquid_level_m, 3.0)


class TestRecalculate:
    """Tests for the on-demand recalculation path."""

    def test_recalculate_after_config_change(self, pipeline, registry, tank):
        pipeline.ingest(FRAME_HEX, T0)
        tank.offset_depth = 0.5

        result = pipeline.recalculate("tank-1")

        assert_allclose(result.outcome.liquid_level_m, 1.5)
        assert result.outcome.volume_liters == round(1.5 * math.pi * 1000)
        assert result.reading_timestamp == T0

    def test_uses_latest_reading(self, pipeline, registry, tank, device):
        pipeline.ingest(FRAME_HEX, T0 + timedelta(minutes=5))
        later = decode(FRAME_HEX[:72] + "000007D0" + FRAME_HEX[80:], T0 + timedelta(minutes=10))
        registry.add_reading(StoredReading(device.device_id, later.timestamp, later.distance_reading, later))
        pipeline.ingest(FRAME_HEX, T0)

        result = pipeline.recalculate("tank-1")

        # 2.0 m air gap from the newest reading
        assert result.reading_timestamp == T0 + timedelta(minutes=10)
        assert_allclose(result.outcome.liquid_level_m, 3.0)

    def test_naive_and_aware_timestamps_mix(self, pipeline, tank):
        pipeline.ingest(FRAME_HEX, datetime(2025, 6, 22, 14, 0))
        pipeline.ingest("2025-06-22T15:00:00Z " + FRAME_HEX)

        result = pipeline.recalculate("tank-1")

        assert result.reading_timestamp == datetime(2025, 6, 22, 15, 0, tzinfo=timezone.utc)
        assert result.outcome.success

    def test_no_device_resets_to_zero(self, pipeline, registry):
        registry.save_tank(TankRecord(
            tank_id="empty",
            name="Empty",
            geometry=TankGeometry("spherical", "vertical", {"radius": 1}),
            capacity_liters=4000,
        ))

        result = pipeline.recalculate("empty")

        assert result.outcome.volume_liters == 0
        assert result.outcome.data_quality == "no_data"
        assert result.outcome.effective_total_height == 2.0
        assert "No device" in result.message

    def test_no_readings_resets_to_zero(self, pipeline, tank):
        result = pipeline.recalculate("tank-1")

        assert result.outcome.volume_liters == 0
        assert result.reading_timestamp is None
        assert "No readings" in result.message

    def test_unknown_tank(self, pipeline):
        with pytest.raises(UnknownTankError):
            pipeline.recalculate("missing")


class TestInMemoryRegistry:
    """Tests for registry bookkeeping."""

    def test_device_lookup_is_case_insensitive(self, registry, device):
        assert registry.find_device(SENSOR_ID.lower()) is device
        assert registry.get_device(device.device_id) is device

    def test_device_moves_between_tanks(self, registry, tank, device):
        registry.save_tank(TankRecord(
            tank_id="tank-2",
            name="Second",
            geometry=TankGeometry("spherical", "vertical", {"radius": 1}),
            capacity_liters=4000,
            device_id=device.device_id,
        ))

        assert registry.get_tank("tank-1").device_id is None
        assert registry.find_tank_for_device(device.device_id).tank_id == "tank-2"

    def test_reading_history_is_bounded(self, device):
        registry = InMemoryRegistry(max_readings_per_device=3)
        frame = decode(FRAME_HEX, T0)
        for minute in range(5):
            ts = T0 + timedelta(minutes=minute)
            registry.add_reading(StoredReading(device.device_id, ts, 3.0, frame))

        history = registry.readings_for(device.device_id)
        assert len(history) == 3
        assert history[0].timestamp == T0 + timedelta(minutes=2)

    def test_duplicate_index_follows_history(self, device):
        registry = InMemoryRegistry(max_readings_per_device=3)
        frame = decode(FRAME_HEX, T0)
        timestamps = [T0 + timedelta(minutes=minute) for minute in range(50)]
        for ts in timestamps:
            registry.add_reading(StoredReading(device.device_id, ts, 3.0, frame))

        indexed = [ts for ts in timestamps if registry.has_reading(device.device_id, ts)]
        assert indexed == timestamps[-3:]
        assert len(registry._seen) == 3

    def test_record_outcome_unknown_tank(self, registry):
        with pytest.raises(UnknownTankError):
            registry.record_outcome("missing", InferenceFailure(message="x"))

    def test_clear(self, registry, tank):
        registry.clear()

        assert registry.list_tanks() == []
        assert registry.list_devices() == []
