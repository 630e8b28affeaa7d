from __future__ import annotations

import io

import httpx
import numpy as np
import pytest
from PIL import Image

from dem.codec import decode_terrain_rgb_array
from dem.errors import TileDecodeError, TileFetchError
from dem.raster import (
    AIST_DEM_URL_TEMPLATE,
    GSI_DEM_URL_TEMPLATE,
    TileRasterClient,
    decode_tile_image,
    format_tile_url,
)
from dem.terrain_rgb import TerrainRgbAdapter, gsi_rgba_to_terrain_rgb
from dem_fakes import gsi_rgba, mock_http_client, png_bytes

TEMPLATE = "https://dem.example/{z}/{x}/{y}.png"


def test_format_tile_url() -> None:
    assert format_tile_url(TEMPLATE, 14, 14552, 6451) == "https://dem.example/14/14552/6451.png"
    assert format_tile_url(GSI_DEM_URL_TEMPLATE, 1, 2, 3).endswith("/dem_png/1/2/3.png")
    assert format_tile_url(AIST_DEM_URL_TEMPLATE, 1, 2, 3).endswith("/mixed/1/3/2.png")


def test_fetch_decodes_png_into_rgba() -> None:
    tile = gsi_rgba(np.arange(16, dtype=np.float64).reshape(4, 4))
    url = format_tile_url(TEMPLATE, 3, 1, 2)
    client = TileRasterClient(client=mock_http_client({url: png_bytes(tile)}))

    rgba = client.fetch_tile(TEMPLATE, 3, 1, 2)
    assert rgba.shape == (4, 4, 4)
    assert rgba.dtype == np.uint8
    np.testing.assert_array_equal(rgba, tile)


def test_fetch_converts_rgb_png_to_rgba() -> None:
    rgb = np.zeros((2, 2, 3), dtype=np.uint8)
    rgb[0, 0] = (1, 2, 3)
    buf = io.BytesIO()
    Image.fromarray(rgb).save(buf, format="PNG")

    rgba = decode_tile_image(buf.getvalue())
    assert rgba.shape == (2, 2, 4)
    assert tuple(rgba[0, 0]) == (1, 2, 3, 255)


def test_fetch_raises_tile_fetch_error_on_http_status() -> None:
    client = TileRasterClient(client=mock_http_client({}))
    with pytest.raises(TileFetchError, match="HTTP 404"):
        client.fetch("https://dem.example/0/0/0.png")


def test_fetch_raises_tile_fetch_error_on_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = TileRasterClient(client=httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(TileFetchError, match="connection refused"):
        client.fetch("https://dem.example/0/0/0.png")


def test_fetch_raises_tile_decode_error_on_garbage() -> None:
    url = "https://dem.example/0/0/0.png"
    client = TileRasterClient(client=mock_http_client({url: b"<html>oops</html>"}))
    with pytest.raises(TileDecodeError, match="Failed to decode tile image"):
        client.fetch(url)


def test_client_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError, match="timeout_s must be > 0"):
        TileRasterClient(timeout_s=0)


def test_gsi_to_terrain_rgb_preserves_shape_and_alpha() -> None:
    heights = np.array([[0.0, 100.0], [55.5, -1.0]])
    nodata = np.array([[False, False], [True, False]])
    tile = gsi_rgba(heights, nodata=nodata)
    tile[0, 1, 3] = 128

    converted = gsi_rgba_to_terrain_rgb(tile)
    assert converted.shape == tile.shape
    np.testing.assert_array_equal(converted[..., 3], tile[..., 3])

    recovered, _ = decode_terrain_rgb_array(converted)
    np.testing.assert_allclose(recovered, [[0.0, 100.0], [0.0, -1.0]], atol=0.05 + 1e-9)

    with pytest.raises(ValueError, match="RGBA"):
        gsi_rgba_to_terrain_rgb(np.zeros((2, 2, 3), dtype=np.uint8))


def test_terrain_rgb_adapter_serves_png() -> None:
    tile = gsi_rgba(np.full((8, 8), 3776.24))
    url = format_tile_url(GSI_DEM_URL_TEMPLATE, 12, 3638, 1613)
    adapter = TerrainRgbAdapter(
        TileRasterClient(client=mock_http_client({url: png_bytes(tile)}))
    )
    assert adapter.url_template == GSI_DEM_URL_TEMPLATE

    data = adapter.tile_png(12, 3638, 1613)
    assert data.startswith(b"\x89PNG")

    rgba = decode_tile_image(data)
    assert rgba.shape == (8, 8, 4)
    recovered, _ = decode_terrain_rgb_array(rgba)
    np.testing.assert_allclose(recovered, 3776.24, atol=0.05 + 1e-9)

    with pytest.raises(TileFetchError):
        adapter.tile_rgba(12, 0, 0)
