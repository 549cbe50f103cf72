"""
Level converter.

Turns one raw sensor value plus calibration data into a liquid height in
meters above the tank's reference plane. Out-of-range physical readings are
clamped rather than rejected; only non-finite input degrades to a zero level.
"""

import logging
import math
import os
from dataclasses import dataclass
from typing import Optional

from tanklevel.models.frame import SensorCategory
from tanklevel.models.tank import CalibrationContext
from tanklevel.utils.geometry import clamp

logger = logging.getLogger(__name__)


DEFAULT_MIN_SENSOR_RANGE = float(os.getenv("TANKLEVEL_MIN_SENSOR_RANGE", "0.05"))  # m, sensor blind zone
MAX_RANGE_FACTOR = float(os.getenv("TANKLEVEL_MAX_RANGE_FACTOR", "1.5"))  # x effective height


@dataclass(frozen=True)
class LevelConversion:
    level: float
    compensated_reading: Optional[float] = None
    reading_clamped: bool = False   # distance reading pulled into the sensor range
    level_clamped: bool = False     # level pulled into [0, effective height]
    rejected: bool = False          # input unusable, level forced to 0


def _is_finite(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def convert_level(
    raw_reading: Optional[float],
    calibration: CalibrationContext,
    effective_total_height: float,
    sensor_category: Optional[SensorCategory] = None,
) -> LevelConversion:
    """
    Convert a raw reading into a liquid level, recording which clamps fired.

    Args:
        raw_reading: Sensor value (meters of air gap for distance sensors,
            pressure units for pressure sensors, meters of level otherwise)
        calibration: Offsets and sensor range for this device/tank pair
        effective_total_height: Vertical span of the tank for 0-100% fill
        sensor_category: Overrides the category implied by calibration.sensor_type

    Returns:
        LevelConversion with level in [0, effective_total_height]
    """
    if not _is_finite(raw_reading):
        logger.warning(f"Rejecting non-finite sensor reading {raw_reading!r}, level set to 0")
        return LevelConversion(level=0.0, rejected=True)
    if not _is_finite(effective_total_height) or effective_total_height <= 0:
        logger.warning(
            f"Rejecting reading for non-positive tank height {effective_total_height!r}, level set to 0"
        )
        return LevelConversion(level=0.0, rejected=True)

    category = sensor_category or calibration.sensor_category
    tank_offset = calibration.tank_offset_depth or 0.0
    compensated = raw_reading + (calibration.device_calibration_offset or 0.0)
    reading_clamped = False

    if category is SensorCategory.DISTANCE:
        # Sensor reports the air gap above the surface
        min_range = calibration.min_sensor_range
        if min_range is None:
            min_range = DEFAULT_MIN_SENSOR_RANGE
        max_range = calibration.max_sensor_range
        if max_range is None:
            max_range = effective_total_height * MAX_RANGE_FACTOR

        effective_reading = clamp(compensated, min_range, max_range)
        reading_clamped = effective_reading != compensated
        if reading_clamped:
            logger.debug(
                f"Distance reading {compensated}m outside sensor range "
                f"[{min_range}, {max_range}], using {effective_reading}m"
            )
        level = effective_total_height - effective_reading - tank_offset

    elif category is SensorCategory.PRESSURE:
        factor = calibration.pressure_to_height_factor
        if factor is None:
            factor = 1.0
        level = compensated * factor + tank_offset

    elif category is SensorCategory.DIRECT:
        level = compensated + tank_offset

    elif category is SensorCategory.WEIGHT:
        # No weight-to-volume model; the load cell is assumed to report a level
        level = compensated + tank_offset

    else:
        logger.warning(f"Unknown sensor type {calibration.sensor_type!r}, using reading as level")
        level = compensated + tank_offset

    if not math.isfinite(level):
        logger.warning(f"Calibrated level {level!r} is not finite, level set to 0")
        return LevelConversion(level=0.0, compensated_reading=compensated, rejected=True)

    clamped_level = clamp(level, 0.0, effective_total_height)
    level_clamped = clamped_level != level
    if level_clamped:
        logger.debug(
            f"Level {level:.4f}m outside tank [0, {effective_total_height}], clamped to {clamped_level}m"
        )

    return LevelConversion(
        level=clamped_level,
        compensated_reading=compensated,
        reading_clamped=reading_clamped,
        level_clamped=level_clamped,
    )


def to_liquid_level(
    raw_reading: Optional[float],
    sensor_category: Optional[SensorCategory],
    calibration: CalibrationContext,
    effective_total_height: float,
) -> float:
    """Liquid level in meters, clamped to [0, effective_total_height]."""
    return convert_level(
        raw_reading, calibration, effective_total_height, sensor_category
    ).level
