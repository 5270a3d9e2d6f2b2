"""
Two-level raster helpers.

A raster is a 2-D numpy array indexed ``[row, col]``. Foreground (ink) pixels
hold ``FOREGROUND`` and everything else ``BACKGROUND``; foreground is the
numerically smaller code.
"""

from typing import Optional, Tuple
import logging

import numpy as np

from .exceptions import InvalidRasterError, NotBinaryImageError

logger = logging.getLogger(__name__)

FOREGROUND = 0
BACKGROUND = 1

# Label raster sentinel for background cells
UNLABELED = -1

RASTER_DTYPE = np.uint8


def new_raster(shape: Tuple[int, int], fill: int = BACKGROUND) -> np.ndarray:
    """Create a raster of the given ``(rows, cols)`` shape."""
    return np.full(shape, fill, dtype=RASTER_DTYPE)


def validate_raster(raster: Optional[np.ndarray], operation: str = "filter") -> np.ndarray:
    """Check that ``raster`` is a usable two-level raster.

    Args:
        raster: Raster to check
        operation: Name used in error messages

    Returns:
        The raster itself

    Raises:
        InvalidRasterError: if the raster is missing or not two-dimensional
        NotBinaryImageError: if it holds codes other than FOREGROUND/BACKGROUND
    """
    if raster is None:
        raise InvalidRasterError("src image is null", operation)
    if not isinstance(raster, np.ndarray):
        raise InvalidRasterError(f"expected numpy array, got {type(raster).__name__}", operation)
    if raster.ndim != 2:
        raise InvalidRasterError(f"expected a single band raster, got {raster.ndim} dimensions", operation)
    if raster.size and not np.isin(raster, (FOREGROUND, BACKGROUND)).all():
        raise NotBinaryImageError("raster holds values other than foreground/background")
    return raster


def validate_pair(src: Optional[np.ndarray], dst: Optional[np.ndarray], operation: str = "filter") -> None:
    """Validate a source/destination pair before a filtering pass."""
    validate_raster(src, operation)
    if dst is None:
        return
    if src is dst or np.shares_memory(src, dst):
        raise InvalidRasterError("src image cannot be the same as the dst image", operation)
    if src.ndim != dst.ndim:
        raise InvalidRasterError(
            f"Number of src bands ({src.ndim}) does not match number of dst bands ({dst.ndim})",
            operation,
        )
    if src.shape != dst.shape:
        raise InvalidRasterError("src and dst have different dimensions", operation)


def rotate90(raster: np.ndarray, clockwise: bool) -> np.ndarray:
    """Return a new raster rotated by 90 degrees with swapped dimensions."""
    return np.ascontiguousarray(np.rot90(raster, -1 if clockwise else 1))


def sub_view(raster: np.ndarray, x: int, y: int, width: int, height: int) -> np.ndarray:
    """Rectangular view into ``raster`` (no copy)."""
    return raster[y:y + height, x:x + width]


def from_mask(mask: np.ndarray) -> np.ndarray:
    """Build a raster whose foreground is the True cells of ``mask``."""
    return np.where(mask, FOREGROUND, BACKGROUND).astype(RASTER_DTYPE)


def count_foreground(raster: np.ndarray) -> int:
    return int(np.count_nonzero(raster == FOREGROUND))
