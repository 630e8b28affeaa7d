from __future__ import annotations

import math

import pytest

from spatial_id import (
    H_CONST,
    R0,
    SpatialId,
    altitude_to_f,
    f_to_altitude,
    lat_to_tile_y,
    lng_lat_to_tile,
    lng_to_tile_x,
    parse_spatial_id_key,
    resolution_at_latitude,
    tile_x_to_lng,
    tile_y_to_lat,
    to_spatial_id,
    to_voxel_bounds,
    unit_height,
)
from spatial_id.zfxy import WEB_MERCATOR_MAX_LAT


def test_unit_height_halves_per_level() -> None:
    previous = math.inf
    for z in range(0, 26):
        height = unit_height(z)
        assert height == 2**25 / 2**z
        assert height < previous
        previous = height
    assert unit_height(25) == 1.0


def test_altitude_to_f_uses_floor_semantics() -> None:
    altitudes = [-100.5, -0.25, 0.0, 0.3, 1234.5, 3776.0, 8848.86, 1.0e6]
    for z in (0, 10, 16, 20, 25):
        for alt in altitudes:
            f = altitude_to_f(alt, z)
            assert f_to_altitude(f, z) <= alt < f_to_altitude(f + 1, z)


def test_altitude_to_f_examples() -> None:
    assert altitude_to_f(0.0, 25) == 0
    assert altitude_to_f(0.99, 25) == 0
    assert altitude_to_f(-0.01, 25) == -1
    assert altitude_to_f(100.0, 21) == 6
    assert f_to_altitude(6, 21) == 96.0


def test_tile_conversions() -> None:
    assert lng_to_tile_x(-180.0, 1) == 0
    assert lng_to_tile_x(0.0, 1) == 1
    assert lng_to_tile_x(180.0, 1) == 1
    assert lat_to_tile_y(0.0, 1) == 1
    assert lat_to_tile_y(85.0, 1) == 0
    assert lat_to_tile_y(90.0, 1) == 0
    assert lat_to_tile_y(-90.0, 1) == 1
    assert lng_lat_to_tile(-0.5, 0.5, 1) == (0, 0)

    assert tile_x_to_lng(0, 3) == pytest.approx(-180.0)
    assert tile_x_to_lng(4, 3) == pytest.approx(0.0)
    assert tile_y_to_lat(0, 0) == pytest.approx(WEB_MERCATOR_MAX_LAT, abs=1e-6)
    assert tile_y_to_lat(1, 1) == pytest.approx(0.0, abs=1e-12)


def test_tile_center_maps_back_to_tile() -> None:
    z = 14
    for x, y in ((0, 0), (14552, 6451), (16383, 16383)):
        lng = tile_x_to_lng(x + 0.5, z)
        lat = tile_y_to_lat(y + 0.5, z)
        assert lng_lat_to_tile(lng, lat, z) == (x, y)


def test_resolution_at_latitude() -> None:
    assert resolution_at_latitude(0.0, 0) == pytest.approx(R0)
    assert resolution_at_latitude(60.0, 0) == pytest.approx(R0 * 0.5)
    assert resolution_at_latitude(0.0, 10) == pytest.approx(R0 / 1024)


def test_to_spatial_id() -> None:
    sid = to_spatial_id(0.0, 0.0, 100.0, 25)
    assert sid == SpatialId(z=25, f=100, x=2**24, y=2**24)

    with pytest.raises(ValueError, match="Invalid zoom"):
        to_spatial_id(0.0, 0.0, 0.0, 26)


def test_spatial_id_validation() -> None:
    with pytest.raises(ValueError, match="Invalid zoom"):
        SpatialId(z=26, f=0, x=0, y=0)
    with pytest.raises(ValueError, match="Invalid zoom"):
        SpatialId(z=-1, f=0, x=0, y=0)
    with pytest.raises(ValueError, match="x out of range"):
        SpatialId(z=1, f=0, x=2, y=0)
    with pytest.raises(ValueError, match="y out of range"):
        SpatialId(z=1, f=0, x=0, y=-1)

    below_sea = SpatialId(z=20, f=-3, x=1, y=1)
    assert below_sea.f == -3


def test_spatial_id_keys() -> None:
    sid = SpatialId(z=20, f=-3, x=931218, y=412918)
    assert sid.key() == "20/-3/931218/412918"
    assert sid.column_key() == "20/931218/412918"
    assert parse_spatial_id_key(sid.key()) == sid

    for bad in ("", "1/2/3", "a/b/c/d", "1/0/0/0/0"):
        with pytest.raises(ValueError, match="Invalid spatial ID key"):
            parse_spatial_id_key(bad)


def test_to_voxel_bounds_world_cell() -> None:
    voxel = to_voxel_bounds(SpatialId(z=0, f=0, x=0, y=0))

    assert voxel.center.lng == pytest.approx(0.0)
    assert voxel.center.lat == pytest.approx(0.0, abs=1e-12)
    assert voxel.center.alt == pytest.approx(H_CONST / 2)
    assert voxel.size.width == pytest.approx(R0 * 256 * 0.5)
    assert voxel.size.depth == voxel.size.width
    assert voxel.size.height == pytest.approx(H_CONST * 0.5)
    assert voxel.origin.lng == pytest.approx(-180.0)
    assert voxel.origin.lat == pytest.approx(WEB_MERCATOR_MAX_LAT, abs=1e-6)
    assert voxel.key == "0/0/0/0"


def test_to_voxel_bounds_places_center_inside_cell() -> None:
    sid = SpatialId(z=20, f=5, x=931218, y=412918)
    voxel = to_voxel_bounds(sid)

    assert voxel.spatial_id == sid
    assert voxel.center.alt == pytest.approx(5 * 32 + 16)
    assert voxel.size.height == pytest.approx(16.0)
    assert voxel.origin.lng < voxel.center.lng < tile_x_to_lng(sid.x + 1, sid.z)
    assert tile_y_to_lat(sid.y + 1, sid.z) < voxel.center.lat < voxel.origin.lat
    assert voxel.size.width == pytest.approx(
        resolution_at_latitude(voxel.center.lat, 20) * 128
    )

    payload = voxel.to_dict()
    assert payload["key"] == "20/5/931218/412918"
    assert set(payload) == {"key", "center", "size", "origin"}
