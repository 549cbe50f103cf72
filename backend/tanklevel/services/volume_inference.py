"""
Volume inference: raw sensor reading -> liquid level -> volume -> fill %.

This is the public entry point used by both the live ingestion path and the
recalculation path. Geometry errors come back as InferenceFailure results;
noisy readings are absorbed by the level and fill clamps.
"""

import logging
from typing import Optional

from tanklevel.models.tank import (
    CalibrationContext,
    InferenceFailure,
    InferenceOutcome,
    TankGeometry,
    VolumeResult,
)
from tanklevel.services.level_converter import convert_level
from tanklevel.services.shape_volume import GeometryError, effective_height_of, volume_of
from tanklevel.utils.geometry import fill_percentage, round_liters

logger = logging.getLogger(__name__)


DATA_QUALITY_GOOD = "good"
DATA_QUALITY_DEGRADED = "degraded"                # shape approximated linearly
DATA_QUALITY_INVALID_READING = "invalid_reading"  # reading unusable, level forced to 0


def infer(
    tank_geometry: TankGeometry,
    calibration: CalibrationContext,
    raw_reading: Optional[float],
    declared_capacity_liters: Optional[float],
) -> InferenceOutcome:
    """
    Infer liquid level, volume and fill percentage for one reading.

    Args:
        tank_geometry: Shape, orientation and dimensions of the tank
        calibration: Sensor type, offsets and sensor range
        raw_reading: Raw distance/pressure/level value from the frame
        declared_capacity_liters: Owner-declared capacity for fill percentage

    Returns:
        VolumeResult, or InferenceFailure when the geometry is unusable
    """
    try:
        effective_height = effective_height_of(tank_geometry, declared_capacity_liters)
        conversion = convert_level(raw_reading, calibration, effective_height)
        shape_volume = volume_of(tank_geometry, conversion.level, declared_capacity_liters)
    except GeometryError as e:
        logger.warning(f"Volume inference failed for {tank_geometry.shape_name} tank: {e}")
        return InferenceFailure(message=str(e))

    volume_liters = round_liters(shape_volume.volume_m3)

    capacity = declared_capacity_liters or 0
    fill = fill_percentage(volume_liters, capacity)
    fill_clamped = capacity > 0 and fill != volume_liters / capacity * 100

    if conversion.rejected:
        data_quality = DATA_QUALITY_INVALID_READING
    elif shape_volume.degraded:
        data_quality = DATA_QUALITY_DEGRADED
    else:
        data_quality = DATA_QUALITY_GOOD

    estimated_mass = None
    if tank_geometry.density_kg_m3 is not None and tank_geometry.density_kg_m3 > 0:
        estimated_mass = shape_volume.volume_m3 * tank_geometry.density_kg_m3

    logger.debug(
        f"{shape_volume.calculation_method}: level {conversion.level:.3f}m, "
        f"{volume_liters}L, {fill:.1f}% of {capacity}L"
    )

    return VolumeResult(
        liquid_level_m=conversion.level,
        volume_m3=shape_volume.volume_m3,
        volume_liters=volume_liters,
        fill_percentage=fill,
        data_quality=data_quality,
        calculation_method=shape_volume.calculation_method,
        effective_total_height=effective_height,
        raw_reading=raw_reading,
        reading_clamped=conversion.reading_clamped,
        level_clamped=conversion.level_clamped,
        fill_clamped=fill_clamped,
        estimated_mass_kg=estimated_mass,
    )
