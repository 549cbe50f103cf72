"""
Shape volume calculator.

Turns a tank's declared shape and dimension bag into a validated,
shape-specific dimension variant, then computes liquid volume at a given
liquid level for that variant.

Every shape has an effective total height (the vertical span a 0-100% liquid
column covers), which is what levels are clamped against:
- vertical cylinder, rectangular, conical: height
- silo: total height
- spherical, horizontal cylinder, horizontal capsule, dish ends: diameter
- vertical capsule: diameter + straight body length
- horizontal oval/elliptical: minor axis
- vertical oval/elliptical: height (minor axis when no height is given)
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, get_args

import numpy as np
from numpy.typing import NDArray

from tanklevel.models.tank import (
    ConicalDims,
    DishEndsDims,
    HorizontalCapsuleDims,
    HorizontalCylinderDims,
    HorizontalEllipticalDims,
    LinearFallbackDims,
    Orientation,
    RectangularDims,
    ShapeDims,
    SiloDims,
    SphericalDims,
    TankGeometry,
    TankShape,
    VerticalCapsuleDims,
    VerticalCylinderDims,
    VerticalEllipticalDims,
)
from tanklevel.utils.geometry import (
    circular_segment_area,
    clamp,
    elliptical_segment_area,
    frustum_volume,
    spherical_cap_volume,
)

logger = logging.getLogger(__name__)

LINEAR_APPROXIMATION = "linear_approximation"


class GeometryError(ValueError):
    """Missing, invalid or physically impossible tank dimensions."""


@dataclass(frozen=True)
class ShapeVolume:
    volume_m3: float
    calculation_method: str
    degraded: bool = False   # True when the shape was not modelled exactly


# ============================================================================
# Dimension parsing
# ============================================================================

def _dimension(
    dims: dict,
    *keys: str,
    shape: str,
    required: bool = True,
    allow_zero: bool = False,
) -> Optional[float]:
    """First present value among `keys`, validated as a positive finite number."""
    for key in keys:
        value = dims.get(key)
        if value is None or value == "":
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise GeometryError(f"{shape}: dimension '{key}' is not a number ({value!r})")
        if not math.isfinite(number) or number < 0 or (number == 0 and not allow_zero):
            raise GeometryError(f"{shape}: dimension '{key}' must be positive, got {value!r}")
        return number

    if required:
        raise GeometryError(f"{shape} tank requires {' or '.join(keys)}")
    return None


def _radius(dims: dict, shape: str) -> float:
    diameter = _dimension(dims, "diameter", shape=shape, required=False)
    if diameter is not None:
        return diameter / 2
    radius = _dimension(dims, "radius", shape=shape, required=False)
    if radius is None:
        raise GeometryError(f"{shape} tank requires diameter or radius")
    return radius


def _parse_cylindrical(dims, orientation, capacity_liters):
    radius = _radius(dims, "cylindrical")
    if orientation is Orientation.HORIZONTAL:
        length = _dimension(dims, "length", "height", "totalHeight", shape="cylindrical")
        return HorizontalCylinderDims(radius=radius, length=length)
    height = _dimension(dims, "height", "totalHeight", shape="cylindrical")
    return VerticalCylinderDims(radius=radius, height=height)


def _parse_rectangular(dims, orientation, capacity_liters):
    return RectangularDims(
        length=_dimension(dims, "length", shape="rectangular"),
        width=_dimension(dims, "width", shape="rectangular"),
        height=_dimension(dims, "height", "totalHeight", shape="rectangular"),
    )


def _parse_spherical(dims, orientation, capacity_liters):
    return SphericalDims(radius=_radius(dims, "spherical"))


def _parse_conical(dims, orientation, capacity_liters):
    return ConicalDims(
        radius=_radius(dims, "conical"),
        height=_dimension(dims, "height", "totalHeight", shape="conical"),
    )


def _parse_silo(dims, orientation, capacity_liters):
    radius = _radius(dims, "silo")
    total_height = _dimension(dims, "totalHeight", "height", shape="silo")
    outlet_diameter = _dimension(dims, "outletDiameter", shape="silo", required=False, allow_zero=True)
    outlet_radius = (outlet_diameter or 0.0) / 2

    if outlet_radius > radius:
        raise GeometryError(
            f"silo: outlet radius {outlet_radius}m exceeds cylinder radius {radius}m"
        )

    cone_height = _dimension(dims, "coneHeight", shape="silo", required=False, allow_zero=True)
    if cone_height is None:
        # Cone angle is measured between the cone wall and the vertical axis
        cone_angle = _dimension(dims, "coneAngle", shape="silo", required=False, allow_zero=True) or 0.0
        if cone_angle >= 90:
            raise GeometryError(f"silo: cone angle must be below 90 degrees, got {cone_angle}")
        cone_height = 0.0
        if cone_angle > 0 and radius > outlet_radius:
            cone_height = (radius - outlet_radius) / math.tan(math.radians(cone_angle))

    if cone_height >= total_height:
        raise GeometryError(
            f"silo: cone height {cone_height:.3f}m must be below total height {total_height}m"
        )

    return SiloDims(
        radius=radius,
        total_height=total_height,
        cone_height=cone_height,
        outlet_radius=outlet_radius,
    )


def _parse_elliptical(dims, orientation, capacity_liters):
    shape = f"{orientation.value}_elliptical"
    semi_major = _dimension(dims, "majorAxis", "width", shape=shape) / 2
    semi_minor = _dimension(dims, "minorAxis", "height", shape=shape) / 2

    if orientation is Orientation.HORIZONTAL:
        length = _dimension(dims, "length", "depth", shape=shape)
        return HorizontalEllipticalDims(
            semi_major=semi_major, semi_minor=semi_minor, length=length
        )

    # Upright elliptical column: the minor axis is the vertical extent
    return VerticalEllipticalDims(semi_major=semi_major, semi_minor=semi_minor)


def _parse_capsule(dims, orientation, capacity_liters):
    shape = f"{orientation.value}_capsule"
    radius = _radius(dims, shape)
    body_length = _dimension(
        dims, "capsuleLength", "cylinderLength", shape=shape, allow_zero=True
    )
    if orientation is Orientation.HORIZONTAL:
        return HorizontalCapsuleDims(radius=radius, body_length=body_length)
    return VerticalCapsuleDims(radius=radius, body_length=body_length)


def _parse_dish_ends(dims, orientation, capacity_liters):
    radius = _radius(dims, "dish_ends")
    length = _dimension(dims, "length", shape="dish_ends")
    dish_radius = _dimension(dims, "dishRadius", shape="dish_ends", required=False) or radius

    if dish_radius < radius:
        raise GeometryError(
            f"dish_ends: dish radius {dish_radius}m is smaller than shell radius {radius}m"
        )

    # Depth of a spherical dish of radius R spanning a shell of radius r
    dish_depth = dish_radius - math.sqrt(max(0.0, dish_radius**2 - radius**2))
    return DishEndsDims(
        radius=radius, length=length, dish_radius=dish_radius, dish_depth=dish_depth
    )


def _parse_linear(dims, orientation, capacity_liters):
    height = _dimension(dims, "height", "totalHeight", shape="custom")
    capacity = _dimension(dims, "capacity", shape="custom", required=False)
    if capacity is None:
        capacity = capacity_liters
    if capacity is None or not math.isfinite(capacity) or capacity <= 0:
        raise GeometryError("custom tank requires a positive declared capacity")
    return LinearFallbackDims(height=height, capacity_m3=capacity / 1000)


_PARSERS: dict[TankShape, Callable[..., ShapeDims]] = {
    TankShape.CYLINDRICAL: _parse_cylindrical,
    TankShape.RECTANGULAR: _parse_rectangular,
    TankShape.SPHERICAL: _parse_spherical,
    TankShape.CONICAL: _parse_conical,
    TankShape.SILO: _parse_silo,
    TankShape.HORIZONTAL_OVAL: _parse_elliptical,
    TankShape.VERTICAL_OVAL: _parse_elliptical,
    TankShape.HORIZONTAL_ELLIPTICAL: _parse_elliptical,
    TankShape.VERTICAL_ELLIPTICAL: _parse_elliptical,
    TankShape.HORIZONTAL_CAPSULE: _parse_capsule,
    TankShape.VERTICAL_CAPSULE: _parse_capsule,
    TankShape.DISH_ENDS: _parse_dish_ends,
    TankShape.CUSTOM: _parse_linear,
}


def resolve_orientation(shape: TankShape, orientation: Orientation) -> Orientation:
    """Shapes named horizontal_*/vertical_* fix their own orientation."""
    if shape.value.startswith("horizontal_"):
        return Orientation.HORIZONTAL
    if shape.value.startswith("vertical_"):
        return Orientation.VERTICAL
    return orientation


def parse_dimensions(
    shape,
    orientation=Orientation.VERTICAL,
    dimensions: Optional[dict] = None,
    declared_capacity_liters: Optional[float] = None,
) -> ShapeDims:
    """
    Validate a dimension bag for `shape` and build its dimension variant.

    Args:
        shape: TankShape or shape name (unknown names fall back to CUSTOM)
        orientation: Orientation or name, only meaningful for cylindrical tanks
        dimensions: Raw dimension bag (meters); diameter/radius and the
            documented aliases are accepted
        declared_capacity_liters: Used by the linear fallback when the bag
            carries no capacity of its own

    Returns:
        The shape-specific dimension dataclass

    Raises:
        GeometryError: missing, non-numeric or non-positive required
            dimensions, or impossible geometry
    """
    if dimensions is None or not isinstance(dimensions, dict):
        raise GeometryError(f"dimensions must be a mapping, got {type(dimensions).__name__}")

    tank_shape = TankShape.from_name(shape)
    tank_orientation = resolve_orientation(tank_shape, Orientation.from_name(orientation))
    return _PARSERS[tank_shape](dimensions, tank_orientation, declared_capacity_liters)


# ============================================================================
# Per-shape volume (level already clamped into [0, effective height])
# ============================================================================

def _vertical_cylinder_volume(d: VerticalCylinderDims, level: float) -> float:
    return math.pi * d.radius**2 * level


def _horizontal_cylinder_volume(d: HorizontalCylinderDims, level: float) -> float:
    return circular_segment_area(d.radius, level) * d.length


def _rectangular_volume(d: RectangularDims, level: float) -> float:
    return d.length * d.width * level


def _spherical_volume(d: SphericalDims, level: float) -> float:
    return spherical_cap_volume(d.radius, level)


def _conical_volume(d: ConicalDims, level: float) -> float:
    liquid_radius = (level / d.height) * d.radius
    return (math.pi / 3) * liquid_radius**2 * level


def _silo_volume(d: SiloDims, level: float) -> float:
    if d.cone_height <= 0:
        return math.pi * d.radius**2 * level

    if level <= d.cone_height:
        surface_radius = d.outlet_radius + (level / d.cone_height) * (d.radius - d.outlet_radius)
        return frustum_volume(d.outlet_radius, surface_radius, level)

    cone = frustum_volume(d.outlet_radius, d.radius, d.cone_height)
    return cone + math.pi * d.radius**2 * (level - d.cone_height)


def _vertical_elliptical_volume(d: VerticalEllipticalDims, level: float) -> float:
    return math.pi * d.semi_major * d.semi_minor * level


def _horizontal_elliptical_volume(d: HorizontalEllipticalDims, level: float) -> float:
    return elliptical_segment_area(d.semi_major, d.semi_minor, level) * d.length


def _vertical_capsule_volume(d: VerticalCapsuleDims, level: float) -> float:
    # The two hemispheres together form one sphere filled to the part of the
    # level that lies outside the straight body
    body_fill = clamp(level - d.radius, 0.0, d.body_length)
    sphere_fill = level - body_fill
    return spherical_cap_volume(d.radius, sphere_fill) + math.pi * d.radius**2 * body_fill


def _horizontal_capsule_volume(d: HorizontalCapsuleDims, level: float) -> float:
    body = circular_segment_area(d.radius, level) * d.body_length
    return body + spherical_cap_volume(d.radius, level)


def _dish_ends_volume(d: DishEndsDims, level: float) -> float:
    # Both heads together are approximated as an ellipsoid with semi-axes
    # (dish_depth, r, r): a sphere of radius r squashed along the tank axis
    shell = circular_segment_area(d.radius, level) * d.length
    heads = (d.dish_depth / d.radius) * spherical_cap_volume(d.radius, level)
    return shell + heads


def _linear_volume(d: LinearFallbackDims, level: float) -> float:
    return (level / d.height) * d.capacity_m3


_VOLUME_FUNCTIONS: dict[type, Callable[..., float]] = {
    VerticalCylinderDims: _vertical_cylinder_volume,
    HorizontalCylinderDims: _horizontal_cylinder_volume,
    RectangularDims: _rectangular_volume,
    SphericalDims: _spherical_volume,
    ConicalDims: _conical_volume,
    SiloDims: _silo_volume,
    VerticalEllipticalDims: _vertical_elliptical_volume,
    HorizontalEllipticalDims: _horizontal_elliptical_volume,
    VerticalCapsuleDims: _vertical_capsule_volume,
    HorizontalCapsuleDims: _horizontal_capsule_volume,
    DishEndsDims: _dish_ends_volume,
    LinearFallbackDims: _linear_volume,
}

_EFFECTIVE_HEIGHTS: dict[type, Callable[..., float]] = {
    VerticalCylinderDims: lambda d: d.height,
    HorizontalCylinderDims: lambda d: 2 * d.radius,
    RectangularDims: lambda d: d.height,
    SphericalDims: lambda d: 2 * d.radius,
    ConicalDims: lambda d: d.height,
    SiloDims: lambda d: d.total_height,
    VerticalEllipticalDims: lambda d: 2 * d.semi_minor,
    HorizontalEllipticalDims: lambda d: 2 * d.semi_minor,
    VerticalCapsuleDims: lambda d: 2 * d.radius + d.body_length,
    HorizontalCapsuleDims: lambda d: 2 * d.radius,
    DishEndsDims: lambda d: 2 * d.radius,
    LinearFallbackDims: lambda d: d.height,
}

# Every dimension variant and every shape must be dispatchable
_VARIANTS = set(get_args(ShapeDims))
if _VARIANTS != set(_VOLUME_FUNCTIONS) or _VARIANTS != set(_EFFECTIVE_HEIGHTS):
    raise RuntimeError("shape dispatch tables do not cover every dimension variant")
if set(_PARSERS) != set(TankShape):
    raise RuntimeError("shape parser table does not cover every TankShape")


def effective_height_for(dims: ShapeDims) -> float:
    return _EFFECTIVE_HEIGHTS[type(dims)](dims)


def volume_for(dims: ShapeDims, level: float) -> float:
    """Volume (m^3) of a parsed shape at `level`, clamped into the tank."""
    if level is None or not math.isfinite(level):
        level = 0.0
    level = clamp(level, 0.0, effective_height_for(dims))
    return _VOLUME_FUNCTIONS[type(dims)](dims, level)


# ============================================================================
# Geometry-level entry points
# ============================================================================

def _dead_space(geometry: TankGeometry) -> float:
    dead_space = geometry.dead_space_m3 or 0.0
    if not math.isfinite(dead_space) or dead_space < 0:
        raise GeometryError(f"dead space must be a non-negative volume, got {dead_space}")
    return dead_space


def calculation_method_for(geometry: TankGeometry) -> str:
    shape = geometry.tank_shape
    if shape is TankShape.CUSTOM:
        return LINEAR_APPROXIMATION
    orientation = resolve_orientation(shape, geometry.tank_orientation)
    return f"{shape.value}_{orientation.value}"


def effective_height_of(
    geometry: TankGeometry, declared_capacity_liters: Optional[float] = None
) -> float:
    dims = parse_dimensions(
        geometry.shape, geometry.orientation, geometry.dimensions, declared_capacity_liters
    )
    return effective_height_for(dims)


def volume_of(
    geometry: TankGeometry,
    liquid_level: float,
    declared_capacity_liters: Optional[float] = None,
) -> ShapeVolume:
    """
    Liquid volume for a tank at `liquid_level` meters.

    Dead space is subtracted from the geometric volume (floored at zero).
    Unknown shapes are linearly approximated from declared capacity and
    flagged as degraded.

    Raises:
        GeometryError: if the tank's dimensions are unusable for its shape
    """
    dims = parse_dimensions(
        geometry.shape, geometry.orientation, geometry.dimensions, declared_capacity_liters
    )
    method = calculation_method_for(geometry)
    degraded = isinstance(dims, LinearFallbackDims)
    if degraded:
        logger.warning(
            f"Unknown tank shape '{geometry.shape_name}', using linear approximation"
        )

    volume = max(0.0, volume_for(dims, liquid_level) - _dead_space(geometry))
    logger.debug(f"{method}: level {liquid_level}m -> {volume:.6f}m3")
    return ShapeVolume(volume_m3=volume, calculation_method=method, degraded=degraded)


def full_volume_of(
    geometry: TankGeometry, declared_capacity_liters: Optional[float] = None
) -> float:
    """Theoretical geometric volume of the full tank (dead space not removed)."""
    dims = parse_dimensions(
        geometry.shape, geometry.orientation, geometry.dimensions, declared_capacity_liters
    )
    return volume_for(dims, effective_height_for(dims))


def volume_curve(
    geometry: TankGeometry,
    samples: int = 50,
    declared_capacity_liters: Optional[float] = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Level/volume lookup curve over [0, effective height].

    Returns:
        Tuple of (levels, volumes) arrays in meters and m^3, dead space removed
    """
    if samples < 2:
        raise ValueError(f"volume curve needs at least 2 samples, got {samples}")

    dims = parse_dimensions(
        geometry.shape, geometry.orientation, geometry.dimensions, declared_capacity_liters
    )
    dead_space = _dead_space(geometry)
    levels = np.linspace(0.0, effective_height_for(dims), samples)
    volumes = np.fromiter(
        (volume_for(dims, float(level)) for level in levels), dtype=np.float64, count=samples
    )
    return levels, np.maximum(volumes - dead_space, 0.0)
