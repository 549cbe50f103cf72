"""
Decoded telemetry frame model.

A frame is the typed result of one hex-encoded wire payload:
- fixed header (magic, version, sensor id, session, order, declared length)
- positional body fields (signed 32-bit integers)
- named, unit-scaled values derived from those fields
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SensorCategory(Enum):
    """How a sensor's reading relates to the liquid level."""

    DISTANCE = "distance"      # Air gap from sensor to surface (ultrasonic, radar, laser)
    PRESSURE = "pressure"      # Hydrostatic pressure, linear in column height
    DIRECT = "direct"          # Already a level (float, capacitive, vibrating fork)
    WEIGHT = "weight"          # Load cell
    UNKNOWN = "unknown"


class SensorType(Enum):
    """
    Sensor hardware types.

    UNREGISTERED is the explicit default for hardware ids missing from the
    lookup table. It is treated as an ultrasonic sensor, which is a known
    approximation rather than a measured fact.
    """

    ULTRASONIC = "ultrasonic_level_sensor"
    RADAR = "radar_level_sensor"
    LASER = "laser_level_sensor"
    PRESSURE = "pressure_transmitter"
    SUBMERSIBLE = "submersible_level_sensor"
    FLOAT = "float_switch"
    CAPACITIVE = "capacitive_level_sensor"
    VIBRATING_FORK = "vibrating_fork"
    LOAD_CELL = "load_cell"
    UNREGISTERED = "unregistered"

    @property
    def category(self) -> SensorCategory:
        return _TYPE_CATEGORIES[self]

    @property
    def wire_name(self) -> str:
        """Name reported to downstream consumers."""
        if self is SensorType.UNREGISTERED:
            return SensorType.ULTRASONIC.value
        return self.value


_TYPE_CATEGORIES = {
    SensorType.ULTRASONIC: SensorCategory.DISTANCE,
    SensorType.RADAR: SensorCategory.DISTANCE,
    SensorType.LASER: SensorCategory.DISTANCE,
    SensorType.UNREGISTERED: SensorCategory.DISTANCE,
    SensorType.PRESSURE: SensorCategory.PRESSURE,
    SensorType.SUBMERSIBLE: SensorCategory.PRESSURE,
    SensorType.FLOAT: SensorCategory.DIRECT,
    SensorType.CAPACITIVE: SensorCategory.DIRECT,
    SensorType.VIBRATING_FORK: SensorCategory.DIRECT,
    SensorType.LOAD_CELL: SensorCategory.WEIGHT,
}


# Name variants seen in device records and tank configuration
SENSOR_NAME_ALIASES = {
    "ultrasonic": SensorType.ULTRASONIC,
    "ultrasonic_level_sensor": SensorType.ULTRASONIC,
    "radar": SensorType.RADAR,
    "radar_level_sensor": SensorType.RADAR,
    "laser": SensorType.LASER,
    "laser_level_sensor": SensorType.LASER,
    "pressure": SensorType.PRESSURE,
    "pressure_transmitter": SensorType.PRESSURE,
    "submersible": SensorType.SUBMERSIBLE,
    "submersible_level_sensor": SensorType.SUBMERSIBLE,
    "float": SensorType.FLOAT,
    "float_switch": SensorType.FLOAT,
    "capacitive": SensorType.CAPACITIVE,
    "capacitive_level_sensor": SensorType.CAPACITIVE,
    "vibrating_fork": SensorType.VIBRATING_FORK,
    "weight": SensorType.LOAD_CELL,
    "load_cell": SensorType.LOAD_CELL,
    "unregistered": SensorType.UNREGISTERED,
}


def sensor_category_for(sensor_type) -> SensorCategory:
    """Resolve a SensorType, category or free-form name to a category."""
    if isinstance(sensor_type, SensorCategory):
        return sensor_type
    if isinstance(sensor_type, SensorType):
        return sensor_type.category
    if not isinstance(sensor_type, str):
        return SensorCategory.UNKNOWN
    resolved = SENSOR_NAME_ALIASES.get(sensor_type.strip().lower())
    if resolved is None:
        return SensorCategory.UNKNOWN
    return resolved.category


@dataclass(frozen=True)
class SensorReading:
    """The part of a frame that drives volume inference."""

    value: Optional[float]  # meters for distance sensors, sensor units otherwise
    sensor_type: SensorType
    category: SensorCategory


@dataclass(frozen=True)
class TelemetryFrame:
    """One decoded wire payload."""

    header: str
    protocol_version: float
    sensor_id: str
    sensor_type: SensorType
    session_id: int
    sequence_order: int
    declared_length: int
    timestamp: datetime
    raw_hex: str

    # Positional body fields, signed 32-bit, in wire order
    fields: tuple[int, ...] = ()

    # Named body values (None when the payload was truncated before them)
    temperature: Optional[float] = None        # degC
    humidity: Optional[float] = None           # %RH
    pm2_5: Optional[int] = None                # ug/m3
    pm10: Optional[int] = None                 # ug/m3
    noise: Optional[float] = None              # dB
    primary_reading: Optional[float] = None    # meters (or pressure-equivalent meters)
    signal_rssi_raw: Optional[int] = None
    signal_rssi_dbm: Optional[int] = None
    error_code: Optional[int] = None
    secondary_reading: Optional[float] = None

    timestamp_source: str = "decode_time"  # "line", "fallback" or "decode_time"

    @property
    def sensor_id_known(self) -> bool:
        return self.sensor_type is not SensorType.UNREGISTERED

    @property
    def body_length(self) -> int:
        """Bytes present after the fixed header."""
        return (len(self.raw_hex) - 32) // 2

    @property
    def declared_length_matches(self) -> bool:
        return self.declared_length == self.body_length

    @property
    def distance_reading(self) -> Optional[float]:
        """
        Reading used for volume inference.

        The secondary reading only stands in when the primary one is missing
        or zero (no echo).
        """
        if self.primary_reading:
            return self.primary_reading
        if self.secondary_reading is not None:
            return self.secondary_reading
        return self.primary_reading

    def to_reading(self) -> SensorReading:
        return SensorReading(
            value=self.distance_reading,
            sensor_type=self.sensor_type,
            category=self.sensor_type.category,
        )

    def to_record(self) -> dict:
        """Flat dict representation (used for tabular output and JSON)."""
        return {
            "sensor_id": self.sensor_id,
            "sensor_type": self.sensor_type.wire_name,
            "sensor_id_known": self.sensor_id_known,
            "session_id": self.session_id,
            "sequence_order": self.sequence_order,
            "protocol_version": self.protocol_version,
            "declared_length": self.declared_length,
            "timestamp": self.timestamp,
            "timestamp_source": self.timestamp_source,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "pm2_5": self.pm2_5,
            "pm10": self.pm10,
            "noise": self.noise,
            "primary_reading": self.primary_reading,
            "secondary_reading": self.secondary_reading,
            "distance_reading": self.distance_reading,
            "signal_rssi_raw": self.signal_rssi_raw,
            "signal_rssi_dbm": self.signal_rssi_dbm,
            "error_code": self.error_code,
            "raw_hex": self.raw_hex,
        }
