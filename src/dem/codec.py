"""Elevation <-> RGB pixel conventions.

``gsi``: X = R*2^16 + G*2^8 + B; X == 2^23 is NoData, X < 2^23 encodes
X * 0.01 m and X > 2^23 encodes (X - 2^24) * 0.01 m.

``terrain-rgb``: elevation = -10000 + X * 0.1 m.
"""

from __future__ import annotations

from typing import Callable, Final, Literal, Optional

import numpy as np

from .errors import UnsupportedDemFormatError

DemFormat = Literal["gsi", "terrain-rgb"]

SUPPORTED_DEM_FORMATS: Final[tuple[str, ...]] = ("gsi", "terrain-rgb")

GSI_NODATA: Final[int] = 1 << 23
GSI_WRAP: Final[int] = 1 << 24
GSI_RESOLUTION_M: Final[float] = 0.01

TERRAIN_RGB_OFFSET_M: Final[float] = 10000.0
TERRAIN_RGB_RESOLUTION_M: Final[float] = 0.1
_TERRAIN_RGB_MAX: Final[int] = (1 << 24) - 1

ArrayDecoder = Callable[[np.ndarray], tuple[np.ndarray, np.ndarray]]


def _pack_rgb(r: int, g: int, b: int) -> int:
    return (int(r) << 16) | (int(g) << 8) | int(b)


def decode_gsi(r: int, g: int, b: int) -> Optional[float]:
    """Return the elevation in meters, or ``None`` for NoData."""

    x = _pack_rgb(r, g, b)
    if x == GSI_NODATA:
        return None
    if x < GSI_NODATA:
        return x * GSI_RESOLUTION_M
    return (x - GSI_WRAP) * GSI_RESOLUTION_M


def encode_terrain_rgb(elevation_m: float) -> tuple[int, int, int]:
    value = int(round((float(elevation_m) + TERRAIN_RGB_OFFSET_M) * 10.0))
    value = max(0, min(_TERRAIN_RGB_MAX, value))
    return (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF


def decode_terrain_rgb(r: int, g: int, b: int) -> float:
    return -TERRAIN_RGB_OFFSET_M + _pack_rgb(r, g, b) * TERRAIN_RGB_RESOLUTION_M


def _packed(rgb: np.ndarray) -> np.ndarray:
    arr = np.asarray(rgb)
    if arr.ndim < 1 or arr.shape[-1] < 3:
        raise ValueError("Expected an array with at least 3 channels in the last axis")
    channels = arr[..., :3].astype(np.int64)
    return (channels[..., 0] << 16) | (channels[..., 1] << 8) | channels[..., 2]


def decode_gsi_array(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Decode an ``(..., 3|4)`` pixel array into ``(heights_m, valid_mask)``.

    Heights under an invalid mask entry are 0.0 and must not be read as data.
    """

    x = _packed(rgb)
    valid = x != GSI_NODATA
    signed = np.where(x > GSI_NODATA, x - GSI_WRAP, x)
    heights = np.where(valid, signed * GSI_RESOLUTION_M, 0.0).astype(np.float64)
    return heights, valid


def decode_terrain_rgb_array(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    x = _packed(rgb)
    heights = (-TERRAIN_RGB_OFFSET_M + x * TERRAIN_RGB_RESOLUTION_M).astype(np.float64)
    return heights, np.ones(heights.shape, dtype=bool)


def encode_terrain_rgb_array(heights_m: np.ndarray) -> np.ndarray:
    """Pack heights into an ``(..., 3)`` uint8 Terrain-RGB array."""

    heights = np.asarray(heights_m, dtype=np.float64)
    value = np.rint((heights + TERRAIN_RGB_OFFSET_M) * 10.0).astype(np.int64)
    value = np.clip(value, 0, _TERRAIN_RGB_MAX)
    out = np.empty(heights.shape + (3,), dtype=np.uint8)
    out[..., 0] = (value >> 16) & 0xFF
    out[..., 1] = (value >> 8) & 0xFF
    out[..., 2] = value & 0xFF
    return out


def normalize_dem_format(value: Optional[str]) -> str:
    normalized = (value or "gsi").strip().lower()
    if normalized not in SUPPORTED_DEM_FORMATS:
        raise UnsupportedDemFormatError(
            f"Unsupported DEM format={value!r}; supported: {list(SUPPORTED_DEM_FORMATS)}"
        )
    return normalized


def decoder_for_format(dem_format: Optional[str]) -> ArrayDecoder:
    normalized = normalize_dem_format(dem_format)
    if normalized == "terrain-rgb":
        return decode_terrain_rgb_array
    return decode_gsi_array
