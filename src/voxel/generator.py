from __future__ import annotations

import logging
import math
import time
import uuid
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Callable, Final, Literal, Optional, Sequence

import numpy as np

from dem.codec import decoder_for_format, normalize_dem_format
from dem.raster import GSI_DEM_URL_TEMPLATE, TileRasterClient, format_tile_url
from spatial_id import (
    SpatialId,
    VoxelBounds,
    altitude_to_f,
    lng_lat_to_tile,
    to_voxel_bounds,
)
from voxel.config import VoxelizerConfig
from voxel.scheduler import TileScheduler
from voxel.worker import ExponentialBackoff, TileFetchJob, TileWorker

logger = logging.getLogger(__name__)

AggregationMode = Literal["max", "avg", "min"]

SUPPORTED_AGGREGATIONS: Final[tuple[str, ...]] = ("max", "avg", "min")
SKIPPED_TOO_MANY_TILES: Final[str] = "too_many_tiles"


def normalize_aggregation(value: Optional[str]) -> str:
    normalized = (value or "max").strip().lower()
    if normalized not in SUPPORTED_AGGREGATIONS:
        raise ValueError(
            f"Unsupported aggregation={value!r}; supported: {list(SUPPORTED_AGGREGATIONS)}"
        )
    return normalized


@dataclass(frozen=True)
class GeoBounds:
    """Viewport rectangle in degrees (EPSG:4326)."""

    west: float
    south: float
    east: float
    north: float

    def __post_init__(self) -> None:
        for name in ("west", "south", "east", "north"):
            value = float(getattr(self, name))
            if not math.isfinite(value):
                raise ValueError(f"{name} must be finite: {value}")
        if not (-90.0 <= float(self.south) <= 90.0):
            raise ValueError(f"south out of range: {self.south}")
        if not (-90.0 <= float(self.north) <= 90.0):
            raise ValueError(f"north out of range: {self.north}")


@dataclass(frozen=True)
class GenerationResult:
    voxels: Sequence[VoxelBounds]
    target_z: int
    dem_zoom: int
    tile_count: int
    failed_tiles: int = 0
    skipped_reason: Optional[str] = None
    run_id: str = field(default="", compare=False)


def dem_zoom_for(viewport_zoom: float, *, max_zoom: int = 14) -> int:
    return max(0, min(int(max_zoom), int(math.floor(viewport_zoom))))


def target_z_for(
    viewport_zoom: float,
    resolution_offset: int,
    *,
    min_z: int = 10,
    max_z: int = 22,
) -> int:
    z = int(math.floor(viewport_zoom)) + int(resolution_offset)
    return max(int(min_z), min(int(max_z), z))


def tile_range_for_bounds(bounds: GeoBounds, z: int) -> tuple[int, int, int, int]:
    """Return (x_min, x_max, y_min, y_max) covering the NW and SE corners."""

    nw_x, nw_y = lng_lat_to_tile(bounds.west, bounds.north, z)
    se_x, se_y = lng_lat_to_tile(bounds.east, bounds.south, z)
    return min(nw_x, se_x), max(nw_x, se_x), min(nw_y, se_y), max(nw_y, se_y)


def stride_for(target_z: int, dem_z: int, *, tile_size: int = 256) -> int:
    """Source pixels per spatial ID cell along one axis (at least 1)."""

    zoom_diff = int(target_z) - int(dem_z)
    if zoom_diff >= 0:
        return max(1, int(tile_size) >> zoom_diff)
    return int(tile_size) << -zoom_diff


def aggregate_blocks(
    heights: np.ndarray,
    valid: np.ndarray,
    stride: int,
    mode: str = "max",
) -> tuple[np.ndarray, np.ndarray]:
    """Reduce ``stride x stride`` blocks of valid samples.

    Blocks are clipped at the grid edges. Returns ``(values, has_data)`` with
    one entry per block; ``values`` is meaningless where ``has_data`` is False.
    """

    if stride <= 0:
        raise ValueError("stride must be > 0")
    mode = normalize_aggregation(mode)

    heights = np.asarray(heights, dtype=np.float64)
    valid = np.asarray(valid, dtype=bool)
    if heights.ndim != 2 or heights.shape != valid.shape:
        raise ValueError("heights and valid must be 2D arrays of the same shape")

    h, w = heights.shape
    block_h = min(int(stride), h)
    block_w = min(int(stride), w)
    rows = -(-h // block_h)
    cols = -(-w // block_w)

    pad = ((0, rows * block_h - h), (0, cols * block_w - w))
    vals = np.pad(heights, pad, constant_values=0.0).reshape(rows, block_h, cols, block_w)
    mask = np.pad(valid, pad, constant_values=False).reshape(rows, block_h, cols, block_w)

    counts = mask.sum(axis=(1, 3))
    has_data = counts > 0

    if mode == "max":
        values = np.where(mask, vals, -np.inf).max(axis=(1, 3))
    elif mode == "min":
        values = np.where(mask, vals, np.inf).min(axis=(1, 3))
    else:
        sums = np.where(mask, vals, 0.0).sum(axis=(1, 3))
        values = np.divide(sums, counts, out=np.zeros_like(sums), where=has_data)

    values = np.where(has_data, values, 0.0)
    return values, has_data


def voxels_for_tile(
    rgba: np.ndarray,
    *,
    tile_x: int,
    tile_y: int,
    dem_z: int,
    target_z: int,
    aggregation: str = "max",
    dem_format: str = "gsi",
    tile_size: int = 256,
) -> list[VoxelBounds]:
    """Decode one DEM tile and map its aggregated blocks onto spatial IDs."""

    decode = decoder_for_format(dem_format)
    heights, valid = decode(np.asarray(rgba))
    if heights.ndim != 2:
        raise ValueError(f"Expected a 2D pixel grid, got shape {heights.shape}")

    stride = stride_for(target_z, dem_z, tile_size=tile_size)
    values, has_data = aggregate_blocks(heights, valid, stride, aggregation)

    zoom_diff = int(target_z) - int(dem_z)
    if zoom_diff >= 0:
        base_x = int(tile_x) << zoom_diff
        base_y = int(tile_y) << zoom_diff
    else:
        base_x = int(tile_x) >> -zoom_diff
        base_y = int(tile_y) >> -zoom_diff

    voxels: list[VoxelBounds] = []
    for row, col in zip(*np.nonzero(has_data)):
        f = altitude_to_f(float(values[row, col]), target_z)
        sid = SpatialId(z=int(target_z), f=f, x=base_x + int(col), y=base_y + int(row))
        voxels.append(to_voxel_bounds(sid))
    return voxels


class VoxelGenerator:
    """Builds voxel sets for a viewport from DEM raster tiles."""

    def __init__(
        self,
        *,
        config: Optional[VoxelizerConfig] = None,
        raster_client: Optional[TileRasterClient] = None,
        executor: Optional[Executor] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or VoxelizerConfig()
        self._raster_client = raster_client or TileRasterClient(
            timeout_s=self._config.timeout_s
        )
        self._executor = executor
        self._sleep = sleep

    @property
    def config(self) -> VoxelizerConfig:
        return self._config

    def generate(
        self,
        bounds: GeoBounds,
        *,
        target_z: int,
        viewport_zoom: float,
        url_template: str = GSI_DEM_URL_TEMPLATE,
        aggregation: str = "max",
        dem_format: str = "gsi",
        run_id: Optional[str] = None,
    ) -> GenerationResult:
        aggregation = normalize_aggregation(aggregation)
        dem_format = normalize_dem_format(dem_format)
        if not (0 <= int(target_z) <= 25):
            raise ValueError(f"Invalid target_z: {target_z}")

        cfg = self._config
        run_id = run_id or uuid.uuid4().hex[:12]
        dem_z = dem_zoom_for(viewport_zoom, max_zoom=cfg.dem_max_zoom)
        x_min, x_max, y_min, y_max = tile_range_for_bounds(bounds, dem_z)
        tile_count = (x_max - x_min + 1) * (y_max - y_min + 1)

        if tile_count > cfg.max_tiles:
            logger.warning(
                "voxel_generation_too_many_tiles",
                extra={
                    "run_id": run_id,
                    "tile_count": tile_count,
                    "max_tiles": cfg.max_tiles,
                    "dem_zoom": dem_z,
                },
            )
            return GenerationResult(
                voxels=(),
                target_z=int(target_z),
                dem_zoom=dem_z,
                tile_count=tile_count,
                skipped_reason=SKIPPED_TOO_MANY_TILES,
                run_id=run_id,
            )

        logger.info(
            "voxel_generation_started",
            extra={
                "run_id": run_id,
                "tile_count": tile_count,
                "dem_zoom": dem_z,
                "target_z": int(target_z),
                "aggregation": aggregation,
                "dem_format": dem_format,
            },
        )

        def handle(job: TileFetchJob) -> list[VoxelBounds]:
            rgba = self._raster_client.fetch(job.url)
            return voxels_for_tile(
                rgba,
                tile_x=job.x,
                tile_y=job.y,
                dem_z=job.z,
                target_z=int(target_z),
                aggregation=aggregation,
                dem_format=dem_format,
                tile_size=cfg.tile_size,
            )

        jobs = [
            TileFetchJob(
                run_id=run_id,
                z=dem_z,
                x=x,
                y=y,
                url=format_tile_url(url_template, dem_z, x, y),
            )
            for x in range(x_min, x_max + 1)
            for y in range(y_min, y_max + 1)
        ]

        worker = TileWorker(
            handle,
            max_retries=cfg.max_retries,
            backoff=ExponentialBackoff(
                base_seconds=cfg.backoff.base_seconds,
                factor=cfg.backoff.factor,
                max_seconds=cfg.backoff.max_seconds,
            ),
            sleep=self._sleep,
        )
        scheduler = TileScheduler(
            worker=worker, max_workers=cfg.max_workers, executor=self._executor
        )
        batch = scheduler.run(run_id=run_id, jobs=jobs)

        logger.info(
            "voxel_generation_finished",
            extra={
                "run_id": run_id,
                "tile_count": tile_count,
                "failed_tiles": batch.failed,
                "retries": batch.retries,
                "voxel_count": len(batch.voxels),
                "duration_s": batch.duration_s,
            },
        )
        return GenerationResult(
            voxels=batch.voxels,
            target_z=int(target_z),
            dem_zoom=dem_z,
            tile_count=tile_count,
            failed_tiles=batch.failed,
            run_id=run_id,
        )
