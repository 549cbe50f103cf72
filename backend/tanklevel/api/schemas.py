"""
API schemas (Pydantic models) for request/response validation.
"""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field


# ============================================================================
# Frame Schemas
# ============================================================================

class DecodeFrameRequest(BaseModel):
    """Raw wire payload, optionally prefixed with an ISO-8601 timestamp."""
    raw_line: str
    timestamp: Optional[datetime] = None  # used when the line has none


class FrameResponse(BaseModel):
    """Decoded telemetry frame."""
    sensor_id: str
    sensor_type: str
    sensor_id_known: bool
    session_id: int
    sequence_order: int
    protocol_version: float
    declared_length: int
    declared_length_matches: bool
    timestamp: datetime
    timestamp_source: str
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    pm2_5: Optional[int] = None
    pm10: Optional[int] = None
    noise: Optional[float] = None
    primary_reading: Optional[float] = None
    secondary_reading: Optional[float] = None
    distance_reading: Optional[float] = None
    signal_rssi_raw: Optional[int] = None
    signal_rssi_dbm: Optional[int] = None
    error_code: Optional[int] = None
    fields: list[int]
    raw_hex: str


# ============================================================================
# Volume Schemas
# ============================================================================

class GeometrySchema(BaseModel):
    """Tank shape and dimensions (meters)."""
    shape: str
    orientation: str = "vertical"
    dimensions: dict[str, Any] = Field(default_factory=dict)
    dead_space_m3: float = Field(default=0.0, ge=0.0)
    density_kg_m3: Optional[float] = Field(default=None, gt=0.0)


class CalibrationSchema(BaseModel):
    """Sensor type and offsets for one reading."""
    sensor_type: str = "ultrasonic_level_sensor"
    tank_offset_depth: float = 0.0
    device_calibration_offset: float = 0.0
    min_sensor_range: Optional[float] = None
    max_sensor_range: Optional[float] = None
    pressure_to_height_factor: float = 1.0


class InferRequest(BaseModel):
    """One-off volume inference for a reading."""
    geometry: GeometrySchema
    calibration: CalibrationSchema = Field(default_factory=CalibrationSchema)
    raw_reading: float
    declared_capacity_liters: float


class VolumeResultResponse(BaseModel):
    """Computed level, volume and fill percentage."""
    liquid_level_m: float
    volume_m3: float
    volume_liters: int
    fill_percentage: float
    data_quality: str
    calculation_method: str
    effective_total_height: float
    raw_reading: Optional[float] = None
    reading_clamped: bool = False
    level_clamped: bool = False
    fill_clamped: bool = False
    estimated_mass_kg: Optional[float] = None


# ============================================================================
# Tank Schemas
# ============================================================================

class TankRequest(BaseModel):
    """Create or replace a tank configuration."""
    name: str
    geometry: GeometrySchema
    capacity_liters: float = Field(gt=0.0)
    offset_depth: float = 0.0
    sensor_type: Optional[str] = None
    pressure_to_height_factor: float = 1.0
    sensor_id: Optional[str] = None  # hardware id of the device feeding this tank


class TankResponse(BaseModel):
    """Stored tank configuration and latest result."""
    tank_id: str
    name: str
    shape: str
    orientation: str
    capacity_liters: float
    device_id: Optional[str] = None
    last_result: Optional[VolumeResultResponse] = None
    last_error: Optional[str] = None


class IngestRequest(BaseModel):
    """Raw wire payload for the live ingestion path."""
    raw_line: str
    timestamp: Optional[datetime] = None


class IngestResponse(BaseModel):
    """Outcome of ingesting one payload."""
    frame: FrameResponse
    device_id: str
    duplicate: bool
    tank_id: Optional[str] = None
    result: Optional[VolumeResultResponse] = None
    error: Optional[str] = None
    message: str


class RecalculateResponse(BaseModel):
    """Outcome of re-running inference from the latest stored reading."""
    tank_id: str
    result: VolumeResultResponse
    reading_timestamp: Optional[datetime] = None
    message: str


class VolumeCurveResponse(BaseModel):
    """Level-to-volume lookup curve for a tank."""
    tank_id: str
    effective_total_height: float
    levels_m: list[float]
    volumes_m3: list[float]
    volumes_liters: list[int]


# ============================================================================
# Error Schemas
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    code: Optional[str] = None
