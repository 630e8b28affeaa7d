"""ZFXY spatial ID math (Web-Mercator tiles + fixed-height vertical slices)."""

from .zfxy import (
    H_CONST,
    R0,
    Z_MAX,
    SpatialId,
    VoxelBounds,
    VoxelCenter,
    VoxelOrigin,
    VoxelSize,
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

__all__ = [
    "H_CONST",
    "R0",
    "Z_MAX",
    "SpatialId",
    "VoxelBounds",
    "VoxelCenter",
    "VoxelOrigin",
    "VoxelSize",
    "altitude_to_f",
    "f_to_altitude",
    "lat_to_tile_y",
    "lng_lat_to_tile",
    "lng_to_tile_x",
    "parse_spatial_id_key",
    "resolution_at_latitude",
    "tile_x_to_lng",
    "tile_y_to_lat",
    "to_spatial_id",
    "to_voxel_bounds",
    "unit_height",
]
