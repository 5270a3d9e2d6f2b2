"""
Memory budgeting for rasters handed to the detectors.
"""

from contextlib import contextmanager
from typing import Optional, Tuple
import gc
import logging
import multiprocessing
import os

import psutil

from .exceptions import ResourceExhaustedError

logger = logging.getLogger(__name__)

MB = 1024 * 1024

# Working copies held per pixel while a detector runs: source, output,
# scan copy, float run-lengths and integral images, int32 labels
BYTES_PER_PIXEL = 64

# Process growth worth a collection after a guarded operation
GROWTH_COLLECT_MB = 50


class MemoryManager:
    """Tracks this process against a memory limit in MB.

    Without a limit, 80% of the physical memory is allowed.
    """

    def __init__(self, limit_mb: Optional[float] = None):
        self.limit_mb = limit_mb or psutil.virtual_memory().total / MB * 0.8
        self._process = psutil.Process(os.getpid())

    def rss_mb(self) -> float:
        return self._process.memory_info().rss / MB

    def headroom_mb(self) -> float:
        """Memory still usable: the smaller of the limit headroom and free RAM."""
        return min(self.limit_mb - self.rss_mb(), psutil.virtual_memory().available / MB)

    def check_raster_budget(self, shape: Tuple[int, ...], max_dimension: Optional[int] = None) -> float:
        """Estimate the memory a detector needs for a raster of ``shape``.

        Raises:
            ResourceExhaustedError: if the raster is too large for the limit

        Returns:
            Estimated requirement in MB
        """
        rows, cols = shape[0], shape[1]
        if max_dimension is not None and max(rows, cols) > max_dimension:
            raise ResourceExhaustedError(f"이미지가 너무 큽니다: {cols}x{rows} (최대 {max_dimension})")

        required_mb = rows * cols * BYTES_PER_PIXEL / MB
        if required_mb > self.headroom_mb():
            raise ResourceExhaustedError(f"{cols}x{rows} 래스터를 처리할 메모리가 없습니다", required_mb)
        return required_mb

    @contextmanager
    def memory_guard(self, operation: str = "operation"):
        """Turn a MemoryError inside the block into ResourceExhaustedError.

        Large growth over the block triggers a garbage collection.
        """
        before = self.rss_mb()
        try:
            yield
        except MemoryError as e:
            gc.collect()
            raise ResourceExhaustedError(f"{operation} 중 메모리 부족") from e
        finally:
            grown = self.rss_mb() - before
            if grown > GROWTH_COLLECT_MB:
                logger.debug(f"{operation}: +{grown:.1f}MB, collecting")
                gc.collect()


def calculate_optimal_workers(memory_limit_mb: float, mb_per_worker: float = 512) -> int:
    """Worker processes that fit in ``memory_limit_mb``, capped by the CPU count.

    A fifth of the limit stays reserved for the parent process.
    """
    workers = max(1, int(memory_limit_mb * 0.8 / mb_per_worker))
    return min(workers, multiprocessing.cpu_count())
