from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Final

Z_MAX: Final[int] = 25
H_CONST: Final[float] = float(2**Z_MAX)
# Ground resolution at the equator for a 256px tile at z=0 (m/px).
R0: Final[float] = 156543.03
TILE_PIXELS: Final[int] = 256
WEB_MERCATOR_MAX_LAT: Final[float] = 85.05112878


def _validate_zoom(z: int) -> None:
    if not (0 <= int(z) <= Z_MAX):
        raise ValueError(f"Invalid zoom: {z}")


@dataclass(frozen=True)
class SpatialId:
    """A ZFXY spatial ID.

    ``x``/``y`` are Web-Mercator tile coordinates at level ``z``; ``f`` is the
    vertical slice index over a fixed 2^25 m height span and may be negative.
    """

    z: int
    f: int
    x: int
    y: int

    def __post_init__(self) -> None:
        _validate_zoom(self.z)
        n = 1 << int(self.z)
        if not (0 <= self.x < n):
            raise ValueError(f"x out of range at z={self.z}: {self.x}")
        if not (0 <= self.y < n):
            raise ValueError(f"y out of range at z={self.z}: {self.y}")

    def key(self) -> str:
        return f"{self.z}/{self.f}/{self.x}/{self.y}"

    def column_key(self) -> str:
        return f"{self.z}/{self.x}/{self.y}"


def parse_spatial_id_key(value: str) -> SpatialId:
    parts = (value or "").strip().split("/")
    if len(parts) != 4:
        raise ValueError(f"Invalid spatial ID key: {value!r}")
    try:
        z, f, x, y = (int(part) for part in parts)
    except ValueError as exc:
        raise ValueError(f"Invalid spatial ID key: {value!r}") from exc
    return SpatialId(z=z, f=f, x=x, y=y)


def resolution_at_latitude(lat: float, z: int) -> float:
    """Meters per pixel at ``lat`` for a 256px tile pyramid at zoom ``z``."""

    return R0 * math.cos(math.radians(lat)) / (2**z)


def unit_height(z: int) -> float:
    return H_CONST / (2**z)


def lng_to_tile_x(lng: float, z: int) -> int:
    n = 2**z
    x = int(math.floor(n * ((lng + 180.0) / 360.0)))
    return max(0, min(n - 1, x))


def lat_to_tile_y(lat: float, z: int) -> int:
    n = 2**z
    lat = max(-WEB_MERCATOR_MAX_LAT, min(WEB_MERCATOR_MAX_LAT, lat))
    lat_rad = math.radians(lat)
    merc = math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad))
    y = int(math.floor(n * (1.0 - merc / math.pi) / 2.0))
    return max(0, min(n - 1, y))


def lng_lat_to_tile(lng: float, lat: float, z: int) -> tuple[int, int]:
    return lng_to_tile_x(lng, z), lat_to_tile_y(lat, z)


def tile_x_to_lng(x: float, z: int) -> float:
    """West edge longitude of tile column ``x`` (fractional ``x`` allowed)."""

    n = 2**z
    return x / n * 360.0 - 180.0


def tile_y_to_lat(y: float, z: int) -> float:
    """North edge latitude of tile row ``y`` (fractional ``y`` allowed)."""

    n = 2**z
    lat_rad = math.atan(math.sinh(math.pi * (1.0 - 2.0 * y / n)))
    return math.degrees(lat_rad)


def altitude_to_f(alt: float, z: int) -> int:
    return int(math.floor((2**z) * alt / H_CONST))


def f_to_altitude(f: int, z: int) -> float:
    """Floor altitude of vertical cell ``f`` (not the cell center)."""

    return f * unit_height(z)


def to_spatial_id(lng: float, lat: float, alt: float, z: int) -> SpatialId:
    _validate_zoom(z)
    x, y = lng_lat_to_tile(lng, lat, z)
    return SpatialId(z=z, f=altitude_to_f(alt, z), x=x, y=y)


@dataclass(frozen=True)
class VoxelCenter:
    lng: float
    lat: float
    alt: float


@dataclass(frozen=True)
class VoxelSize:
    """Half-extents in meters; the unit cube geometry spans -1..+1."""

    width: float
    depth: float
    height: float


@dataclass(frozen=True)
class VoxelOrigin:
    lng: float
    lat: float


@dataclass(frozen=True)
class VoxelBounds:
    spatial_id: SpatialId
    center: VoxelCenter
    size: VoxelSize
    origin: VoxelOrigin

    @property
    def key(self) -> str:
        return self.spatial_id.key()

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "center": {
                "lng": self.center.lng,
                "lat": self.center.lat,
                "alt": self.center.alt,
            },
            "size": {
                "width": self.size.width,
                "depth": self.size.depth,
                "height": self.size.height,
            },
            "origin": {"lng": self.origin.lng, "lat": self.origin.lat},
        }


def to_voxel_bounds(spatial_id: SpatialId) -> VoxelBounds:
    z, f, x, y = spatial_id.z, spatial_id.f, spatial_id.x, spatial_id.y
    height = unit_height(z)

    lng = tile_x_to_lng(x + 0.5, z)
    lat = tile_y_to_lat(y + 0.5, z)
    alt = f_to_altitude(f, z) + height / 2.0

    res = resolution_at_latitude(lat, z)
    return VoxelBounds(
        spatial_id=spatial_id,
        center=VoxelCenter(lng=lng, lat=lat, alt=alt),
        size=VoxelSize(
            width=res * TILE_PIXELS * 0.5,
            depth=res * TILE_PIXELS * 0.5,
            height=height * 0.5,
        ),
        origin=VoxelOrigin(lng=tile_x_to_lng(x, z), lat=tile_y_to_lat(y, z)),
    )
