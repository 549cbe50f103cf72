"""
Geometry helpers shared by the shape volume functions.

Partial-fill areas and volumes for circles, ellipses, spherical caps and
frustums, plus the fill-percentage and liter rounding rules used on results.
All lengths are meters, areas m^2, volumes m^3.
"""

import math


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def circular_segment_area(radius: float, height: float) -> float:
    """
    Area of a circle of `radius` below a chord `height` above its lowest point.

    Args:
        radius: Circle radius
        height: Chord height measured from the bottom of the circle

    Returns:
        Segment area, 0 for height <= 0 and the full disc for height >= 2r
    """
    if height <= 0:
        return 0.0
    if height >= 2 * radius:
        return math.pi * radius**2

    # acos argument can overshoot [-1, 1] by an ulp near the extremes
    cos_half = clamp((radius - height) / radius, -1.0, 1.0)
    theta = 2 * math.acos(cos_half)
    return (radius**2 / 2) * (theta - math.sin(theta))


def elliptical_segment_area(semi_major: float, semi_minor: float, height: float) -> float:
    """
    Area of an ellipse below `height`, with `semi_minor` as the vertical semi-axis.

    The ellipse is a circle of radius `semi_minor` stretched horizontally by
    semi_major / semi_minor, so segment areas scale by the same factor.
    """
    return (semi_major / semi_minor) * circular_segment_area(semi_minor, height)


def spherical_cap_volume(radius: float, height: float) -> float:
    """Volume of a sphere of `radius` filled to `height` from its bottom."""
    h = clamp(height, 0.0, 2 * radius)
    return (math.pi / 3) * h**2 * (3 * radius - h)


def cone_volume(radius: float, height: float) -> float:
    return (math.pi / 3) * radius**2 * height


def frustum_volume(bottom_radius: float, top_radius: float, height: float) -> float:
    if height <= 0:
        return 0.0
    return (math.pi * height / 3) * (
        bottom_radius**2 + bottom_radius * top_radius + top_radius**2
    )


def fill_percentage(volume_liters: float, capacity_liters: float) -> float:
    """Volume as a percentage of declared capacity, clamped to [0, 100]."""
    if not capacity_liters or not math.isfinite(capacity_liters) or capacity_liters <= 0:
        return 0.0
    return clamp(volume_liters / capacity_liters * 100, 0.0, 100.0)


def round_liters(volume_m3: float) -> int:
    """Cubic meters to whole liters, halves rounded up."""
    return int(math.floor(volume_m3 * 1000 + 0.5))
