from __future__ import annotations

import math
from typing import Any, Final, Iterable, Optional

from spatial_id import VoxelBounds

RGB = tuple[int, int, int]

NO_BASE_COLOR: Final[RGB] = (150, 150, 150)
NO_DIFF_COLOR: Final[RGB] = (240, 240, 240)
COMPARE_OPACITY: Final[float] = 0.9

# A difference of this many cells saturates the diff color.
MAX_DIFF_STEPS: Final[int] = 20
ELEVATION_GRADIENT_MAX_M: Final[float] = 4000.0


def build_base_column_map(voxels: Iterable[VoxelBounds]) -> dict[str, int]:
    """Map ``z/x/y`` columns to the highest ``f`` seen in that column."""

    columns: dict[str, int] = {}
    for voxel in voxels:
        sid = voxel.spatial_id
        key = sid.column_key()
        existing = columns.get(key)
        if existing is None or sid.f > existing:
            columns[key] = sid.f
    return columns


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def diff_intensity(diff: int) -> float:
    """Log-scaled saturation in [0, 1]: one cell is already clearly visible."""

    magnitude = abs(int(diff))
    if magnitude == 0:
        return 0.0
    return min(1.0, math.log10(magnitude + 1) / math.log10(MAX_DIFF_STEPS + 1))


def diff_color(diff: Optional[int]) -> RGB:
    if diff is None:
        return NO_BASE_COLOR
    if diff == 0:
        return NO_DIFF_COLOR

    intensity = _round_half_up(diff_intensity(diff) * 255)
    if diff > 0:
        return (255, 255 - intensity, 255 - intensity)
    return (255 - intensity, 255 - intensity, 255)


def elevation_color(altitude_m: float) -> RGB:
    t = max(0.0, min(1.0, float(altitude_m) / ELEVATION_GRADIENT_MAX_M))
    return (_round_half_up(t * 255), 100, _round_half_up(255 - t * 255))


def _hex(color: RGB) -> str:
    return "#{:02X}{:02X}{:02X}".format(*color)


def elevation_legend(steps: int = 5) -> dict[str, Any]:
    if steps < 2:
        raise ValueError("steps must be >= 2")
    stops = []
    for i in range(steps):
        value = ELEVATION_GRADIENT_MAX_M * i / (steps - 1)
        stops.append({"value": value, "color": _hex(elevation_color(value))})
    return {"type": "gradient", "unit": "m", "stops": stops}


def diff_legend() -> dict[str, Any]:
    values = (-MAX_DIFF_STEPS, -5, -1, 0, 1, 5, MAX_DIFF_STEPS)
    stops = [{"value": value, "color": _hex(diff_color(value))} for value in values]
    return {
        "type": "gradient",
        "unit": "voxels",
        "stops": stops,
        "noBaseColor": _hex(NO_BASE_COLOR),
    }
