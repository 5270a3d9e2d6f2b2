"""
Connected-component analysis over a two-level raster.

Single raster scan with an equivalence table (E.R. Davies, "Machine Vision",
3rd ed., pp. 164-167). Each foreground pixel looks at its already visited
neighbours NE, N, NW and W, so diagonally touching pixels join one component.
"""

from typing import Optional, Tuple
import logging

import numpy as np

from .equivalence import EquivalenceTable
from .raster import BACKGROUND, UNLABELED
from .task import Task, is_cancelled

logger = logging.getLogger(__name__)

# (row offset, col offset) of the visited neighbours
_NEIGHBOURS = ((-1, 1), (-1, 0), (-1, -1), (0, -1))


def label_components(data: np.ndarray, task: Optional[Task] = None) -> Tuple[Optional[np.ndarray], int]:
    """Label the connected foreground regions of ``data``.

    Args:
        data: Raster; every cell that is not BACKGROUND is labelled
        task: Optional cancellation flag, polled once per row

    Returns:
        ``(labels, count)`` where ``labels`` has the shape of ``data`` and holds
        UNLABELED or a dense label in ``0..count-1``. ``labels`` is None when
        the task was cancelled.
    """
    rows, cols = data.shape
    labels = np.full((rows, cols), UNLABELED, dtype=np.int32)
    table = EquivalenceTable()
    label = UNLABELED

    foreground = data != BACKGROUND
    for row in range(rows):
        if is_cancelled(task):
            return None, 0
        for col in np.flatnonzero(foreground[row]):
            neighbour_labels = []
            for dr, dc in _NEIGHBOURS:
                r, c = row + dr, col + dc
                if r < 0 or c < 0 or c >= cols:
                    continue
                value = labels[r, c]
                if value != UNLABELED:
                    neighbour_labels.append(int(value))

            if not neighbour_labels:
                label += 1
                labels[row, col] = label
                table.set(label, label, label)
            else:
                low = min(neighbour_labels)
                labels[row, col] = low
                for other in neighbour_labels:
                    table.set(low, other, low)
                    table.set(other, low, low)

    if label == UNLABELED:
        return labels, 0

    rounds = table.minimize()
    dense = table.dense_labels()
    logger.debug(f"CCA: {label + 1} raw labels, {len(set(dense.values()))} components, {rounds} rounds")

    lookup = np.array([dense[raw] for raw in range(label + 1)], dtype=np.int32)
    mask = labels != UNLABELED
    labels[mask] = lookup[labels[mask]]
    return labels, int(lookup.max()) + 1
