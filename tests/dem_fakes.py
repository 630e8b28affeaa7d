from __future__ import annotations

import io
from typing import Callable, Mapping, Optional

import httpx
import numpy as np
from PIL import Image

from dem.errors import TileFetchError


def gsi_rgba(heights_m, *, nodata: Optional[np.ndarray] = None, alpha: int = 255) -> np.ndarray:
    heights = np.asarray(heights_m, dtype=np.float64)
    x = np.rint(heights / 0.01).astype(np.int64)
    x = np.where(x < 0, x + (1 << 24), x)
    if nodata is not None:
        x = np.where(np.asarray(nodata, dtype=bool), 1 << 23, x)

    rgba = np.zeros(heights.shape + (4,), dtype=np.uint8)
    rgba[..., 0] = (x >> 16) & 0xFF
    rgba[..., 1] = (x >> 8) & 0xFF
    rgba[..., 2] = x & 0xFF
    rgba[..., 3] = alpha
    return rgba


def flat_tile(height_m: float, size: int = 256) -> np.ndarray:
    return gsi_rgba(np.full((size, size), float(height_m)))


def png_bytes(rgba: np.ndarray) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(np.asarray(rgba, dtype=np.uint8)).save(buf, format="PNG")
    return buf.getvalue()


def mock_http_client(routes: Mapping[str, bytes]) -> httpx.Client:
    """An httpx client serving ``routes`` (URL -> PNG bytes) and 404 otherwise."""

    def handler(request: httpx.Request) -> httpx.Response:
        content = routes.get(str(request.url))
        if content is None:
            return httpx.Response(404, content=b"not found")
        return httpx.Response(200, content=content, headers={"Content-Type": "image/png"})

    return httpx.Client(transport=httpx.MockTransport(handler))


class FakeRasterClient:
    """Stands in for TileRasterClient; unknown URLs fail like a missing tile."""

    def __init__(
        self,
        tiles: Optional[Mapping[str, np.ndarray]] = None,
        *,
        default: Optional[Callable[[str], np.ndarray]] = None,
    ) -> None:
        self._tiles = dict(tiles or {})
        self._default = default
        self.calls: list[str] = []

    def fetch(self, url: str) -> np.ndarray:
        self.calls.append(url)
        if url in self._tiles:
            return self._tiles[url]
        if self._default is not None:
            return self._default(url)
        raise TileFetchError(f"Tile request failed with HTTP 404: {url}")
