"""
In-memory registry - devices, tanks and readings for one process.

Implements the DeviceRegistry, TankRegistry and ReadingStore protocols so the
API can run without a database. A persistent store can replace it without
touching the pipeline or the API.
"""

import logging
from datetime import datetime
from typing import Optional

from tanklevel.models.device import DeviceRecord, StoredReading, TankRecord
from tanklevel.models.frame import SensorType
from tanklevel.models.tank import InferenceOutcome
from tanklevel.services.ingestion import IngestionPipeline, UnknownTankError


logger = logging.getLogger(__name__)


class InMemoryRegistry:
    """
    Registry for devices, tanks and their readings.

    Readings are kept per device in arrival order; (device, timestamp) pairs
    are indexed for duplicate detection.
    """

    def __init__(self, max_readings_per_device: int = 1000):
        self._devices: dict[str, DeviceRecord] = {}     # device_id -> device
        self._by_sensor: dict[str, str] = {}            # sensor_id -> device_id
        self._tanks: dict[str, TankRecord] = {}
        self._readings: dict[str, list[StoredReading]] = {}
        self._seen: set[tuple[str, datetime]] = set()
        self._max_readings = max_readings_per_device

    # ---- DeviceRegistry ----

    def find_device(self, sensor_id: str) -> Optional[DeviceRecord]:
        device_id = self._by_sensor.get(sensor_id.upper())
        if device_id is None:
            return None
        return self._devices.get(device_id)

    def get_device(self, device_id: str) -> Optional[DeviceRecord]:
        return self._devices.get(device_id)

    def register_device(
        self,
        sensor_id: str,
        sensor_type: SensorType,
        calibration_offset: float = 0.0,
        auto_registered: bool = True,
    ) -> DeviceRecord:
        sensor_id = sensor_id.upper()
        device = DeviceRecord(
            device_id=f"device-{sensor_id.lower()}",
            sensor_id=sensor_id,
            sensor_type=sensor_type,
            calibration_offset=calibration_offset,
            auto_registered=auto_registered,
        )
        self._devices[device.device_id] = device
        self._by_sensor[sensor_id] = device.device_id
        logger.debug(f"Registered device {device.device_id} ({sensor_type.wire_name})")
        return device

    def list_devices(self) -> list[DeviceRecord]:
        return list(self._devices.values())

    # ---- TankRegistry ----

    def get_tank(self, tank_id: str) -> Optional[TankRecord]:
        return self._tanks.get(tank_id)

    def find_tank_for_device(self, device_id: str) -> Optional[TankRecord]:
        for tank in self._tanks.values():
            if tank.device_id == device_id:
                return tank
        return None

    def record_outcome(self, tank_id: str, outcome: InferenceOutcome) -> None:
        tank = self._tanks.get(tank_id)
        if tank is None:
            raise UnknownTankError(tank_id)
        tank.last_outcome = outcome

    def save_tank(self, tank: TankRecord) -> TankRecord:
        """
        Create or replace a tank.

        A device can feed only one tank; assigning it here unassigns it from
        any other tank.
        """
        if tank.device_id is not None:
            for other in self._tanks.values():
                if other.tank_id != tank.tank_id and other.device_id == tank.device_id:
                    logger.info(f"Device {tank.device_id} moved from tank {other.tank_id} to {tank.tank_id}")
                    other.device_id = None

        previous = self._tanks.get(tank.tank_id)
        if previous is not None and tank.last_outcome is None:
            tank.last_outcome = previous.last_outcome
        self._tanks[tank.tank_id] = tank
        return tank

    def list_tanks(self) -> list[TankRecord]:
        return list(self._tanks.values())

    # ---- ReadingStore ----

    def has_reading(self, device_id: str, timestamp: datetime) -> bool:
        return (device_id, timestamp) in self._seen

    def add_reading(self, reading: StoredReading) -> None:
        history = self._readings.setdefault(reading.device_id, [])
        history.append(reading)
        self._seen.add((reading.device_id, reading.timestamp))

        # Oldest readings drop out first, together with their index entries
        if len(history) > self._max_readings:
            trimmed = history[: len(history) - self._max_readings]
            del history[: len(trimmed)]
            for old in trimmed:
                self._seen.discard((old.device_id, old.timestamp))

    def latest_reading(self, device_id: str) -> Optional[StoredReading]:
        history = self._readings.get(device_id)
        if not history:
            return None
        return max(history, key=lambda r: r.timestamp)

    def readings_for(self, device_id: str) -> list[StoredReading]:
        return list(self._readings.get(device_id, []))

    def clear(self) -> None:
        self._devices.clear()
        self._by_sensor.clear()
        self._tanks.clear()
        self._readings.clear()
        self._seen.clear()
        logger.info("Registry cleared")


# Global registry and pipeline (set up by app initialization)
_repository: Optional[InMemoryRegistry] = None
_pipeline: Optional[IngestionPipeline] = None


def get_repository() -> InMemoryRegistry:
    """Get the global registry instance."""
    global _repository
    if _repository is None:
        _repository = InMemoryRegistry()
    return _repository


def init_repository(max_readings_per_device: int = 1000) -> InMemoryRegistry:
    """Replace the global registry (and the pipeline bound to it)."""
    global _repository, _pipeline
    _repository = InMemoryRegistry(max_readings_per_device)
    _pipeline = None
    return _repository


def get_pipeline() -> IngestionPipeline:
    """Ingestion pipeline backed by the global registry."""
    global _pipeline
    if _pipeline is None:
        registry = get_repository()
        _pipeline = IngestionPipeline(registry, registry, registry)
    return _pipeline
