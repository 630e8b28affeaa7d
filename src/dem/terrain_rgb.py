from __future__ import annotations

import io

import numpy as np
from PIL import Image

from .codec import decode_gsi_array, encode_terrain_rgb_array
from .raster import GSI_DEM_URL_TEMPLATE, TileRasterClient


def gsi_rgba_to_terrain_rgb(rgba: np.ndarray) -> np.ndarray:
    """Re-encode a GSI RGBA grid as Terrain-RGB, keeping shape and alpha.

    NoData pixels become elevation 0 since terrain meshes cannot have holes.
    """

    arr = np.asarray(rgba)
    if arr.ndim != 3 or arr.shape[2] != 4:
        raise ValueError(f"Expected an (H, W, 4) RGBA array, got shape {arr.shape}")

    heights, valid = decode_gsi_array(arr)
    heights = np.where(valid, heights, 0.0)

    out = np.array(arr, dtype=np.uint8, copy=True)
    out[..., :3] = encode_terrain_rgb_array(heights)
    return out


class TerrainRgbAdapter:
    """Serves GSI DEM tiles to consumers that expect Terrain-RGB."""

    def __init__(
        self,
        raster_client: TileRasterClient,
        *,
        url_template: str = GSI_DEM_URL_TEMPLATE,
    ) -> None:
        self._raster_client = raster_client
        self._url_template = url_template

    @property
    def url_template(self) -> str:
        return self._url_template

    def tile_rgba(self, z: int, x: int, y: int) -> np.ndarray:
        rgba = self._raster_client.fetch_tile(self._url_template, z, x, y)
        return gsi_rgba_to_terrain_rgb(rgba)

    def tile_png(self, z: int, x: int, y: int) -> bytes:
        img = Image.fromarray(self.tile_rgba(z, x, y))
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()
