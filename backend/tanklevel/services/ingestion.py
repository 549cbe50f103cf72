"""
Ingestion pipeline around the decoder and the inference engine.

Collaborators are expressed as Protocols so any store can back them:
- DeviceRegistry: devices keyed by hardware sensor id
- TankRegistry: tanks keyed by tank id, with their assigned device
- ReadingStore: readings per device, for deduplication and recalculation
"""

import logging
from datetime import datetime
from typing import Optional, Protocol

from tanklevel.models.device import (
    DeviceRecord,
    IngestionResult,
    RecalculationResult,
    StoredReading,
    TankRecord,
)
from tanklevel.models.frame import SensorType
from tanklevel.models.tank import InferenceFailure, InferenceOutcome, VolumeResult
from tanklevel.services.frame_decoder import decode
from tanklevel.services.shape_volume import GeometryError, calculation_method_for, effective_height_of
from tanklevel.services.volume_inference import infer

logger = logging.getLogger(__name__)


class UnknownTankError(KeyError):
    """No tank is registered under the requested id."""


class DeviceRegistry(Protocol):
    def find_device(self, sensor_id: str) -> Optional[DeviceRecord]:
        ...

    def get_device(self, device_id: str) -> Optional[DeviceRecord]:
        ...

    def register_device(self, sensor_id: str, sensor_type: SensorType) -> DeviceRecord:
        ...


class TankRegistry(Protocol):
    def get_tank(self, tank_id: str) -> Optional[TankRecord]:
        ...

    def find_tank_for_device(self, device_id: str) -> Optional[TankRecord]:
        ...

    def record_outcome(self, tank_id: str, outcome: InferenceOutcome) -> None:
        ...


class ReadingStore(Protocol):
    def has_reading(self, device_id: str, timestamp: datetime) -> bool:
        ...

    def add_reading(self, reading: StoredReading) -> None:
        ...

    def latest_reading(self, device_id: str) -> Optional[StoredReading]:
        ...


def _empty_result(tank: TankRecord) -> InferenceOutcome:
    """Zero-level result for a tank that has nothing to measure yet."""
    try:
        effective_height = effective_height_of(tank.geometry, tank.capacity_liters)
    except GeometryError as e:
        return InferenceFailure(message=str(e))
    return VolumeResult(
        liquid_level_m=0.0,
        volume_m3=0.0,
        volume_liters=0,
        fill_percentage=0.0,
        data_quality="no_data",
        calculation_method=calculation_method_for(tank.geometry),
        effective_total_height=effective_height,
    )


class IngestionPipeline:
    """
    Decode -> resolve device -> deduplicate -> store -> infer.

    Decode errors propagate to the caller; geometry problems come back as
    InferenceFailure outcomes on the result.
    """

    def __init__(self, devices: DeviceRegistry, tanks: TankRegistry, readings: ReadingStore):
        self.devices = devices
        self.tanks = tanks
        self.readings = readings

    def ingest(self, raw_line: str, timestamp: Optional[datetime] = None) -> IngestionResult:
        frame = decode(raw_line, timestamp)

        device = self.devices.find_device(frame.sensor_id)
        if device is None:
            device = self.devices.register_device(frame.sensor_id, frame.sensor_type)
            logger.info(f"Auto-registered device {device.device_id} for sensor {frame.sensor_id}")
        device.last_seen = frame.timestamp

        if self.readings.has_reading(device.device_id, frame.timestamp):
            logger.info(f"Duplicate reading from {device.device_id} at {frame.timestamp}, ignored")
            return IngestionResult(
                frame=frame, device=device, duplicate=True, message="Duplicate reading ignored"
            )

        reading = StoredReading(
            device_id=device.device_id,
            timestamp=frame.timestamp,
            value=frame.distance_reading,
            frame=frame,
        )
        self.readings.add_reading(reading)

        tank = self.tanks.find_tank_for_device(device.device_id)
        if tank is None:
            return IngestionResult(
                frame=frame, device=device, message="Device is not assigned to a tank"
            )

        outcome = self._infer(tank, device, reading)
        return IngestionResult(
            frame=frame,
            device=device,
            tank_id=tank.tank_id,
            outcome=outcome,
            message="Volume updated" if outcome.success else outcome.message,
        )

    def recalculate(self, tank_id: str) -> RecalculationResult:
        """Re-run inference for a tank from its device's latest stored reading."""
        tank = self.tanks.get_tank(tank_id)
        if tank is None:
            raise UnknownTankError(tank_id)

        device = self.devices.get_device(tank.device_id) if tank.device_id else None
        if device is None:
            outcome = _empty_result(tank)
            self.tanks.record_outcome(tank_id, outcome)
            return RecalculationResult(
                tank_id=tank_id,
                outcome=outcome,
                message="No device assigned to tank, volume reset to 0",
            )

        reading = self.readings.latest_reading(device.device_id)
        if reading is None:
            outcome = _empty_result(tank)
            self.tanks.record_outcome(tank_id, outcome)
            return RecalculationResult(
                tank_id=tank_id,
                outcome=outcome,
                message="No readings from assigned device, volume reset to 0",
            )

        outcome = self._infer(tank, device, reading)
        return RecalculationResult(
            tank_id=tank_id,
            outcome=outcome,
            reading_timestamp=reading.timestamp,
            message="Volume recalculated" if outcome.success else outcome.message,
        )

    def _infer(self, tank: TankRecord, device: DeviceRecord, reading: StoredReading) -> InferenceOutcome:
        outcome = infer(
            tank.geometry,
            tank.calibration_for(device),
            reading.value,
            tank.capacity_liters,
        )
        self.tanks.record_outcome(tank.tank_id, outcome)
        return outcome
