from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from spatial_id import VoxelBounds
from voxel.worker import TileFetchJob, TileWorker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TileBatch:
    """Voxels joined across every tile of one generation run."""

    voxels: Sequence[VoxelBounds]
    failed: int
    retries: int
    duration_s: float


class TileScheduler:
    """Fans tile jobs out over a thread pool and joins on all of them."""

    def __init__(
        self,
        *,
        worker: TileWorker,
        max_workers: int = 8,
        executor: Optional[Executor] = None,
    ) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")

        self._worker = worker
        self._max_workers = int(max_workers)
        self._executor = executor

    def run(self, *, run_id: str, jobs: Iterable[TileFetchJob]) -> TileBatch:
        jobs_list = list(jobs)
        if not jobs_list:
            return TileBatch(voxels=(), failed=0, retries=0, duration_s=0.0)

        t0 = time.perf_counter()
        voxels: list[VoxelBounds] = []
        failed = 0
        retries = 0

        owns_executor = self._executor is None
        executor = self._executor or ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(jobs_list))
        )
        try:
            futures = [executor.submit(self._worker.process, job) for job in jobs_list]
            for future in as_completed(futures):
                tile = future.result()
                retries += tile.attempts - 1
                if tile.failed:
                    failed += 1
                else:
                    voxels.extend(tile.voxels)
        finally:
            if owns_executor:
                executor.shutdown(wait=True)

        duration_s = time.perf_counter() - t0
        logger.debug(
            "tile_scheduler_finished",
            extra={
                "run_id": run_id,
                "tiles": len(jobs_list),
                "failed": failed,
                "retries": retries,
                "duration_s": duration_s,
            },
        )
        return TileBatch(
            voxels=tuple(voxels), failed=failed, retries=retries, duration_s=duration_s
        )
