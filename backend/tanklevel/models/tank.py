"""
Tank geometry, calibration and volume result models.

All of these are transient per-reading values:
- TankGeometry / CalibrationContext are inputs to inference
- the *Dims variants are the validated, shape-specific form of a dimension bag
- VolumeResult / InferenceFailure are the two possible inference outcomes
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from tanklevel.models.frame import SensorCategory, SensorType, sensor_category_for


class Orientation(Enum):
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"

    @classmethod
    def from_name(cls, name) -> "Orientation":
        if isinstance(name, Orientation):
            return name
        if isinstance(name, str) and name.strip().lower() == "horizontal":
            return cls.HORIZONTAL
        return cls.VERTICAL


class TankShape(Enum):
    CYLINDRICAL = "cylindrical"
    RECTANGULAR = "rectangular"
    SPHERICAL = "spherical"
    CONICAL = "conical"
    SILO = "silo"
    HORIZONTAL_OVAL = "horizontal_oval"
    VERTICAL_OVAL = "vertical_oval"
    HORIZONTAL_CAPSULE = "horizontal_capsule"
    VERTICAL_CAPSULE = "vertical_capsule"
    HORIZONTAL_ELLIPTICAL = "horizontal_elliptical"
    VERTICAL_ELLIPTICAL = "vertical_elliptical"
    DISH_ENDS = "dish_ends"
    CUSTOM = "custom"  # Anything unrecognised; volume is linearly approximated

    @classmethod
    def from_name(cls, name) -> "TankShape":
        if isinstance(name, TankShape):
            return name
        if isinstance(name, str):
            try:
                return cls(name.strip().lower())
            except ValueError:
                pass
        return cls.CUSTOM


# ============================================================================
# Shape-specific dimensions (all lengths in meters)
# ============================================================================

@dataclass(frozen=True)
class VerticalCylinderDims:
    radius: float
    height: float


@dataclass(frozen=True)
class HorizontalCylinderDims:
    radius: float
    length: float


@dataclass(frozen=True)
class RectangularDims:
    length: float
    width: float
    height: float


@dataclass(frozen=True)
class SphericalDims:
    radius: float


@dataclass(frozen=True)
class ConicalDims:
    """Cone standing on its apex; liquid forms a similar cone."""
    radius: float
    height: float


@dataclass(frozen=True)
class SiloDims:
    """Cylinder on top of a cone (frustum) discharging through an outlet."""
    radius: float
    total_height: float
    cone_height: float
    outlet_radius: float


@dataclass(frozen=True)
class VerticalEllipticalDims:
    semi_major: float
    semi_minor: float


@dataclass(frozen=True)
class HorizontalEllipticalDims:
    semi_major: float
    semi_minor: float   # vertical semi-axis
    length: float


@dataclass(frozen=True)
class VerticalCapsuleDims:
    radius: float
    body_length: float  # straight section between the hemispheres


@dataclass(frozen=True)
class HorizontalCapsuleDims:
    radius: float
    body_length: float


@dataclass(frozen=True)
class DishEndsDims:
    """Horizontal shell closed by two dished heads of depth `dish_depth`."""
    radius: float
    length: float
    dish_radius: float
    dish_depth: float


@dataclass(frozen=True)
class LinearFallbackDims:
    height: float
    capacity_m3: float


ShapeDims = Union[
    VerticalCylinderDims,
    HorizontalCylinderDims,
    RectangularDims,
    SphericalDims,
    ConicalDims,
    SiloDims,
    VerticalEllipticalDims,
    HorizontalEllipticalDims,
    VerticalCapsuleDims,
    HorizontalCapsuleDims,
    DishEndsDims,
    LinearFallbackDims,
]


# ============================================================================
# Inference inputs
# ============================================================================

@dataclass(frozen=True)
class TankGeometry:
    """Static description of a tank as configured by its owner."""

    shape: Union[TankShape, str]
    orientation: Union[Orientation, str] = Orientation.VERTICAL
    dimensions: dict = field(default_factory=dict)
    dead_space_m3: float = 0.0               # unusable volume below the outlet
    density_kg_m3: Optional[float] = None    # for mass estimation (solids, dense liquids)

    @property
    def tank_shape(self) -> TankShape:
        return TankShape.from_name(self.shape)

    @property
    def tank_orientation(self) -> Orientation:
        return Orientation.from_name(self.orientation)

    @property
    def shape_name(self) -> str:
        if isinstance(self.shape, TankShape):
            return self.shape.value
        return str(self.shape)


@dataclass(frozen=True)
class CalibrationContext:
    """Per-reading adjustment data for one device installed in one tank."""

    sensor_type: Union[SensorType, SensorCategory, str] = SensorType.ULTRASONIC
    tank_offset_depth: float = 0.0
    device_calibration_offset: float = 0.0
    min_sensor_range: Optional[float] = None
    max_sensor_range: Optional[float] = None
    pressure_to_height_factor: float = 1.0

    @property
    def sensor_category(self) -> SensorCategory:
        return sensor_category_for(self.sensor_type)


# ============================================================================
# Inference outputs
# ============================================================================

@dataclass(frozen=True)
class VolumeResult:
    liquid_level_m: float
    volume_m3: float
    volume_liters: int
    fill_percentage: float
    data_quality: str
    calculation_method: str
    effective_total_height: float
    raw_reading: Optional[float] = None
    reading_clamped: bool = False   # sensor range clamp applied
    level_clamped: bool = False     # level clamped into [0, effective height]
    fill_clamped: bool = False      # fill percentage clamped into [0, 100]
    estimated_mass_kg: Optional[float] = None
    success: bool = True


@dataclass(frozen=True)
class InferenceFailure:
    message: str
    calculation_method: str = "error"
    success: bool = False


InferenceOutcome = Union[VolumeResult, InferenceFailure]
