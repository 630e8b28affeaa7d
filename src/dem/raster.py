from __future__ import annotations

import io
import logging
from typing import Final, Optional

import httpx
import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import TileDecodeError, TileFetchError

logger = logging.getLogger(__name__)

GSI_DEM_URL_TEMPLATE: Final[str] = (
    "https://cyberjapandata.gsi.go.jp/xyz/dem_png/{z}/{x}/{y}.png"
)
# The AIST seamless tiles swap x/y in the path.
AIST_DEM_URL_TEMPLATE: Final[str] = "https://tiles.gsj.jp/tiles/elev/mixed/{z}/{y}/{x}.png"


def format_tile_url(template: str, z: int, x: int, y: int) -> str:
    return (
        template.replace("{z}", str(int(z)))
        .replace("{x}", str(int(x)))
        .replace("{y}", str(int(y)))
    )


def decode_tile_image(content: bytes, *, source: str = "<bytes>") -> np.ndarray:
    """Decode PNG/WebP bytes into an ``(H, W, 4)`` uint8 RGBA array."""

    try:
        with Image.open(io.BytesIO(content)) as img:
            rgba = np.asarray(img.convert("RGBA"), dtype=np.uint8)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise TileDecodeError(f"Failed to decode tile image: {source}") from exc

    if rgba.ndim != 3 or rgba.shape[2] != 4:
        raise TileDecodeError(f"Unexpected tile image shape {rgba.shape}: {source}")
    return rgba


class TileRasterClient:
    """Fetches raster tiles and exposes them as RGBA pixel grids."""

    def __init__(
        self,
        *,
        timeout_s: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        self._timeout_s = float(timeout_s)
        self._client = client

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return self._client.get(url, timeout=self._timeout_s)
        with httpx.Client(timeout=self._timeout_s, follow_redirects=True) as client:
            return client.get(url)

    def fetch(self, url: str) -> np.ndarray:
        try:
            resp = self._get(url)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TileFetchError(
                f"Tile request failed with HTTP {exc.response.status_code}: {url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TileFetchError(f"Tile request failed: {url}: {exc}") from exc

        rgba = decode_tile_image(resp.content, source=url)
        logger.debug(
            "tile_raster_fetched",
            extra={"url": url, "width": int(rgba.shape[1]), "height": int(rgba.shape[0])},
        )
        return rgba

    def fetch_tile(self, template: str, z: int, x: int, y: int) -> np.ndarray:
        return self.fetch(format_tile_url(template, z, x, y))
