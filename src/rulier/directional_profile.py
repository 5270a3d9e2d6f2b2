"""
Rule-line removal with directional local profiles.

Z. Shi, S. Setlur and V. Govindaraju, "Removing Rule-lines From Binary
Handwritten Arabic Document Images Using Directional Local Profile",
Intl. Conf. Pattern Recognition, pp. 1916-1919, 2010.

Each orientation runs: fuzzy run-length -> adaptive local binarization ->
connected components -> line-pattern fitting -> removal. Horizontal lines are
handled first, then the raster is rotated for vertical lines.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import logging
import math

import numpy as np

from .cca import label_components
from .point_set import PointSet, XY_ORDER, YX_ORDER
from .raster import BACKGROUND, FOREGROUND, UNLABELED, rotate90
from .task import Task, is_cancelled

logger = logging.getLogger(__name__)

KEY_MAX_SKIPPED = "Skipped Background Pixels"
KEY_HALF_WINDOW = "Window size"
KEY_K1 = "K1"
KEY_K2 = "K2"
KEY_K3 = "K3"

MIN_SAMPLE_SIZE = 15
MAX_ABS_SLOPE = 5.0
MIN_THICKNESS = 1.0


@dataclass
class LineFit:
    """Least-squares line ``y = beta1 * x + beta0`` of a line pattern."""

    beta1: float
    beta0: float
    thickness: float
    range_min: float
    range_max: float
    samples: int

    def is_valid(self) -> bool:
        if math.isnan(self.beta1) or math.isnan(self.beta0):
            return False
        if self.samples < MIN_SAMPLE_SIZE or self.thickness < MIN_THICKNESS:
            return False
        return -MAX_ABS_SLOPE <= self.beta1 <= MAX_ABS_SLOPE

    def at(self, x: float) -> float:
        return self.beta1 * x + self.beta0


def least_squares(xs: np.ndarray, ys: np.ndarray) -> Tuple[float, float]:
    """Two-pass least-squares fit of ``y = beta1 * x + beta0``.

    Returns ``(nan, nan)`` when the x values have no variance.
    """
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    if xs.size == 0:
        return math.nan, math.nan
    xbar = xs.mean()
    ybar = ys.mean()
    dx = xs - xbar
    xx = float(np.dot(dx, dx))
    xy = float(np.dot(dx, ys - ybar))
    if xx == 0.0:
        return math.nan, math.nan
    beta1 = xy / xx
    return beta1, float(ybar - beta1 * xbar)


class LinePattern:
    """Points of one (possibly merged) connected component."""

    def __init__(self):
        self.points = PointSet(YX_ORDER)

    def add(self, point: Tuple[int, int]) -> bool:
        return self.points.add(point)

    def merge(self, other: "LinePattern") -> bool:
        return self.points.update(other.points)

    def extent(self) -> Tuple[int, int]:
        """Smallest and largest y of the pattern."""
        return self.points.first()[1], self.points.last()[1]

    def widths(self) -> Dict[int, int]:
        """Number of points in each column."""
        counts: Dict[int, int] = {}
        for x, _ in self.points:
            counts[x] = counts.get(x, 0) + 1
        return counts

    def average_width(self) -> Optional[float]:
        if not self.points:
            return None
        counts = self.widths()
        return sum(counts.values()) / len(counts)

    def thin_points(self) -> Optional[PointSet]:
        """Points in columns no wider than the average width."""
        thickness = self.average_width()
        if thickness is None:
            return None
        counts = self.widths()
        return PointSet(XY_ORDER, (p for p in self.points if counts[p[0]] <= thickness))

    def best_fitting_line(self) -> Optional[LineFit]:
        """Fit a line through the thin areas of the pattern."""
        thin = self.thin_points()
        if not thin:
            return None
        xs = np.fromiter(thin.xs(), dtype=np.float64, count=len(thin))
        ys = np.fromiter(thin.ys(), dtype=np.float64, count=len(thin))
        beta1, beta0 = least_squares(xs, ys)
        return LineFit(
            beta1=beta1,
            beta0=beta0,
            thickness=self.average_width(),
            range_min=float(ys.min()),
            range_max=float(ys.max()),
            samples=len(thin),
        )


def fuzzy_run_length(raster: np.ndarray, max_skipped: int, task: Optional[Task] = None) -> Optional[np.ndarray]:
    """Horizontal fuzzy run-length of every pixel.

    Tracing starts next to the pixel and runs right, then left. Each direction
    counts foreground pixels and stops once more than ``max_skipped``
    background pixels were met. Values above 255 are rescaled by
    ``v * 256 / (max + 1)``.
    """
    rows, cols = raster.shape
    runs = np.zeros((rows, cols), dtype=np.float64)
    positions = np.arange(cols)

    for row in range(rows):
        if is_cancelled(task):
            return None
        line = raster[row] == FOREGROUND
        right = _runs_to_the_right(line, max_skipped, positions)
        left = _runs_to_the_right(line[::-1], max_skipped, positions)[::-1]
        runs[row] = right + left

    peak = runs.max() if runs.size else 0.0
    if peak > 255:
        runs = runs * 256 / (peak + 1)
    return runs


def _runs_to_the_right(line: np.ndarray, max_skipped: int, positions: np.ndarray) -> np.ndarray:
    background = np.cumsum(~line)
    # first index holding the (max_skipped + 1)-th background pixel after each position
    stop = np.searchsorted(background, background + max_skipped + 1, side="left")
    traced = stop - positions - 1
    skipped = background[np.minimum(stop, len(line)) - 1] - background
    skipped = np.where(stop < len(line), max_skipped, skipped)
    return (traced - skipped).astype(np.float64)


def _integral(values: np.ndarray) -> np.ndarray:
    ii = np.zeros((values.shape[0] + 1, values.shape[1] + 1), dtype=np.float64)
    ii[1:, 1:] = values.cumsum(axis=0).cumsum(axis=1)
    return ii


def _window_sums(ii: np.ndarray, extent: int, ny: int, nx: int, dy0: int, dy1: int, dx0: int, dx1: int) -> np.ndarray:
    """Sum over rows ``y+dy0..y+dy1`` and cols ``x+dx0..x+dx1`` for every interior pixel."""
    def corner(dy, dx):
        return ii[extent + dy:extent + dy + ny, extent + dx:extent + dx + nx]

    return corner(dy1 + 1, dx1 + 1) - corner(dy0, dx1 + 1) - corner(dy1 + 1, dx0) + corner(dy0, dx0)


def binarize(runs: np.ndarray, half_window: int, k1: float, k2: float, k3: float) -> np.ndarray:
    """Local adaptive thresholding of the run-length matrix.

    E. Giuliano, O. Paitra and L. Stringa, "Electronic Character Reading
    System", US Patent 4047152, 1977.

    A central zone A1 of ``n x n`` cells (``n = 2 * half_window + 1``) is
    compared with four diagonal zones A2 of the same size that touch its
    corners. Only A2 cells with ``value >= K2/K1`` are counted.
    ``R = K1 * (mean(A1) - K3 * mean(A2))``; the pixel is foreground iff
    ``R > 0`` and its own value is ``>= K2/K1``. Pixels whose zones do not fit
    inside the matrix are background.
    """
    rows, cols = runs.shape
    side = 2 * half_window + 1
    extent = (3 * side) // 2
    kii = k2 / k1

    binary = np.full((rows, cols), BACKGROUND, dtype=np.uint8)
    ny = rows - 2 * extent
    nx = cols - 2 * extent
    if ny <= 0 or nx <= 0:
        return binary

    accepted = runs >= kii
    ii_all = _integral(runs)
    ii_sum = _integral(np.where(accepted, runs, 0.0))
    ii_count = _integral(accepted.astype(np.float64))

    h = half_window
    central = _window_sums(ii_all, extent, ny, nx, -h, h, -h, h)

    near, far = h + 1, h + side
    zones = (
        (-far, -near, -far, -near),   # upper left
        (-far, -near, near, far),     # upper right
        (near, far, -far, -near),     # lower left
        (near, far, near, far),       # lower right
    )
    diagonal_sum = np.zeros((ny, nx), dtype=np.float64)
    diagonal_count = np.zeros((ny, nx), dtype=np.float64)
    for dy0, dy1, dx0, dx1 in zones:
        diagonal_sum += _window_sums(ii_sum, extent, ny, nx, dy0, dy1, dx0, dx1)
        diagonal_count += _window_sums(ii_count, extent, ny, nx, dy0, dy1, dx0, dx1)

    diagonal_count = np.rint(diagonal_count)
    with np.errstate(divide="ignore", invalid="ignore"):
        diagonal = np.where(diagonal_count > 0, k3 / diagonal_count * diagonal_sum, 0.0)
    response = k1 * (central / (side * side) - diagonal)

    inner = runs[extent:rows - extent, extent:cols - extent]
    binary[extent:rows - extent, extent:cols - extent] = np.where(
        (response > 0) & (inner >= kii), FOREGROUND, BACKGROUND
    )
    return binary


def extract_line_patterns(labels: np.ndarray, count: int) -> List[LinePattern]:
    """One pattern per label, then merge patterns whose y ranges overlap."""
    patterns = [LinePattern() for _ in range(count)]
    ys, xs = np.nonzero(labels != UNLABELED)
    for y, x in zip(ys.tolist(), xs.tolist()):
        patterns[labels[y, x]].add((x, y))
    return merge_overlapping(patterns)


def merge_overlapping(patterns: List[LinePattern]) -> List[LinePattern]:
    """Merge patterns whose extents overlap the extent of the current pattern.

    The extent of the current pattern is taken once, before it absorbs
    anything in that pass.
    """
    patterns = [p for p in patterns if p.points]
    bounds = np.array([p.extent() for p in patterns], dtype=np.int64).reshape(-1, 2)
    start = 0
    while start < len(patterns):
        low, high = bounds[start]
        overlap = (bounds[:, 0] <= high) & (bounds[:, 1] >= low)
        overlap[start] = False
        if overlap.any():
            current = patterns[start]
            for i in np.flatnonzero(overlap):
                current.merge(patterns[i])
            keep = ~overlap
            start -= int(np.count_nonzero(overlap[:start]))
            patterns = [p for p, kept in zip(patterns, keep) if kept]
            bounds = bounds[keep]
            bounds[start] = current.extent()
        start += 1
    return patterns


def best_fitting_lines(labels: np.ndarray, count: int) -> List[LineFit]:
    lines = []
    for pattern in extract_line_patterns(labels, count):
        line = pattern.best_fitting_line()
        if line is not None and line.is_valid():
            lines.append(line)
    return lines


def remove_rule_lines(raster: np.ndarray, lines: List[LineFit]) -> None:
    """Erase, in place, vertical runs that lie inside each reconstructed line band."""
    rows, cols = raster.shape
    for line in lines:
        half = line.thickness / 2.0 + 1
        for col in range(cols):
            centre = line.at(col)
            min_y = max(math.ceil(centre - half), 0)
            max_y = min(int(centre + half), rows - 1)
            if min_y >= max_y:
                continue
            if min_y != 0 and raster[min_y - 1, col] == FOREGROUND:
                # the run above continues into the band: start after its end
                column = raster[min_y:max_y + 1, col]
                gaps = np.flatnonzero(column == BACKGROUND)
                if gaps.size:
                    remove_vertical_run(raster, col, min_y + int(gaps[0]) + 1, max_y)
            else:
                remove_vertical_run(raster, col, min_y, max_y)


def remove_vertical_run(raster: np.ndarray, col: int, start_row: int, max_row: int) -> None:
    """Clear foreground runs starting in ``start_row..max_row`` that end by ``max_row``.

    A run that continues past ``max_row`` is left untouched.
    """
    rows = raster.shape[0]
    row = start_row
    while row <= max_row:
        if raster[row, col] == FOREGROUND:
            end = row + 1
            while end < rows and raster[end, col] == FOREGROUND:
                end += 1
            if end - 1 <= max_row:
                raster[row:end, col] = BACKGROUND
            row = end
        row += 1


def filter_directional_profile(
    src: np.ndarray,
    max_skipped: int,
    half_window: int,
    k1: float,
    k2: float,
    k3: float,
    task: Optional[Task] = None,
) -> Optional[np.ndarray]:
    """Remove horizontal, then vertical rule lines from a copy of ``src``.

    Returns:
        The cleaned raster, or None if the task was cancelled
    """
    dst = src.copy()
    for j in range(2):
        if is_cancelled(task):
            return None
        runs = fuzzy_run_length(dst, max_skipped, task)
        if runs is None or is_cancelled(task):
            return None

        binary = binarize(runs, half_window, k1, k2, k3)
        if is_cancelled(task):
            return None

        labels, count = label_components(binary, task)
        if labels is None or is_cancelled(task):
            return None

        lines = best_fitting_lines(labels, count)
        if is_cancelled(task):
            return None

        remove_rule_lines(dst, lines)
        logger.debug(f"Directional profile pass {j}: {count} components, {len(lines)} lines removed")
        if is_cancelled(task):
            return None

        dst = rotate90(dst, clockwise=(j == 1))
    return dst
