"""
Records exchanged with the device, tank and reading collaborators.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from tanklevel.models.frame import SensorType, TelemetryFrame
from tanklevel.models.tank import CalibrationContext, InferenceOutcome, TankGeometry


@dataclass
class DeviceRecord:
    device_id: str
    sensor_id: str                      # hardware id from the frame header
    sensor_type: SensorType
    calibration_offset: float = 0.0
    min_sensor_range: Optional[float] = None
    max_sensor_range: Optional[float] = None
    auto_registered: bool = False
    last_seen: Optional[datetime] = None


@dataclass
class TankRecord:
    tank_id: str
    name: str
    geometry: TankGeometry
    capacity_liters: float
    offset_depth: float = 0.0
    # Sensor type configured on the tank wins over the device's decoded type
    sensor_type: Optional[Union[SensorType, str]] = None
    pressure_to_height_factor: float = 1.0
    device_id: Optional[str] = None
    last_outcome: Optional[InferenceOutcome] = None

    def calibration_for(self, device: DeviceRecord) -> CalibrationContext:
        return CalibrationContext(
            sensor_type=self.sensor_type or device.sensor_type,
            tank_offset_depth=self.offset_depth,
            device_calibration_offset=device.calibration_offset,
            min_sensor_range=device.min_sensor_range,
            max_sensor_range=device.max_sensor_range,
            pressure_to_height_factor=self.pressure_to_height_factor,
        )


@dataclass(frozen=True)
class StoredReading:
    device_id: str
    timestamp: datetime
    value: Optional[float]
    frame: TelemetryFrame


@dataclass(frozen=True)
class IngestionResult:
    frame: TelemetryFrame
    device: DeviceRecord
    duplicate: bool = False
    tank_id: Optional[str] = None
    outcome: Optional[InferenceOutcome] = None
    message: str = ""


@dataclass(frozen=True)
class RecalculationResult:
    tank_id: str
    outcome: InferenceOutcome
    reading_timestamp: Optional[datetime] = None
    message: str = ""
