from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from spatial_id import VoxelBounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExponentialBackoff:
    base_seconds: float = 0.5
    factor: float = 2.0
    max_seconds: float = 10.0

    def delay_seconds(self, retry_number: int) -> float:
        if retry_number <= 0:
            return 0.0
        delay = self.base_seconds * (self.factor ** (retry_number - 1))
        return float(min(delay, self.max_seconds))


@dataclass(frozen=True)
class TileFetchJob:
    """One DEM tile to fetch and voxelize."""

    run_id: str
    z: int
    x: int
    y: int
    url: str

    def key(self) -> str:
        return f"{self.z}/{self.x}/{self.y}"


@dataclass(frozen=True)
class TileVoxels:
    """Voxels produced from one tile; an empty set with ``error`` on failure."""

    job: TileFetchJob
    voxels: Sequence[VoxelBounds] = ()
    attempts: int = 1
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


TileHandler = Callable[[TileFetchJob], Sequence[VoxelBounds]]


class TileWorker:
    """Voxelizes one tile with retries; a tile that keeps failing yields no voxels."""

    def __init__(
        self,
        handler: TileHandler,
        *,
        max_retries: int = 0,
        backoff: Optional[ExponentialBackoff] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self._handler = handler
        self._max_retries = max_retries
        self._backoff = backoff or ExponentialBackoff()
        self._sleep = sleep

    def process(self, job: TileFetchJob) -> TileVoxels:
        attempt = 0
        while True:
            attempt += 1
            try:
                voxels = tuple(self._handler(job))
            except Exception as exc:  # noqa: BLE001
                error = str(exc) or type(exc).__name__
            else:
                return TileVoxels(job=job, voxels=voxels, attempts=attempt)

            if attempt > self._max_retries:
                logger.warning(
                    "tile_fetch_failed",
                    extra={
                        "run_id": job.run_id,
                        "tile": job.key(),
                        "url": job.url,
                        "attempts": attempt,
                        "error": error,
                    },
                )
                return TileVoxels(job=job, attempts=attempt, error=error)

            delay = self._backoff.delay_seconds(attempt)
            logger.info(
                "tile_fetch_failed_retrying",
                extra={
                    "run_id": job.run_id,
                    "tile": job.key(),
                    "attempt": attempt,
                    "delay_seconds": delay,
                    "error": error,
                },
            )
            if delay > 0:
                self._sleep(delay)

