"""
Rule-line removal with the lower profile of zero triads.

The lower profile is the bottom-most ink pixel of every column. Three
neighbouring columns whose profile rows are equal form a zero triad; the row
collecting most zero triads is the next rule-line candidate. The line is
rebuilt from two anchor points (one per image half) and its pixels are
deleted column by column. Horizontal lines are handled first, then the
raster is rotated for vertical lines.
"""

from typing import List, Optional, Tuple
import logging

import numpy as np

from .raster import BACKGROUND, FOREGROUND, rotate90, sub_view
from .task import Task, is_cancelled

logger = logging.getLogger(__name__)

KEY_TOLERANCE = "tolerance"
KEY_OFF = "off"
KEY_PART = "part"

LEFT_TO_RIGHT = 0
RIGHT_TO_LEFT = 1

Point = Tuple[int, int]  # (x, y)


def lower_profile_peak(raster: np.ndarray) -> Tuple[int, int]:
    """Find the row holding the most zero triads of the lower profile.

    Returns:
        ``(row, zero_triads)``; ``row`` is the top-most row with the highest
        count, or -1 when there is no zero triad
    """
    rows, cols = raster.shape
    if cols < 3 or rows == 0:
        return -1, 0

    ink = raster == FOREGROUND
    has_ink = ink.any(axis=0)
    bottom = rows - 1 - np.argmax(ink[::-1], axis=0)
    profile = np.where(has_ink, bottom, 0)

    # first column keeps the "no data" distance
    dist = np.full(cols, rows, dtype=np.int64)
    dist[1:] = np.where(has_ink[1:], np.abs(np.diff(profile)), rows)

    triads = dist[:-2] + dist[1:-1] + dist[2:]
    zero = triads == 0
    zero_triads = int(np.count_nonzero(zero))
    if zero_triads == 0:
        return -1, 0

    hist = np.bincount(profile[1:-1][zero], minlength=rows)
    return int(np.argmax(hist)), zero_triads


def is_line_found(zero_triads: int, cols: int, part: int) -> bool:
    """A candidate is a line when its zero triads exceed ``cols / part``."""
    return part != 0 and zero_triads > cols // part


def find_thickness(raster: np.ndarray, row: int) -> int:
    """Most frequent upward run length of the profile pixels on ``row``.

    Only pixels whose lower neighbour is background (or that sit on the last
    row) are measured. Ties go to the smaller length.
    """
    rows = raster.shape[0]
    ink = raster == FOREGROUND
    lowest = ink[row].copy()
    if row < rows - 1:
        lowest &= ~ink[row + 1]

    lengths = []
    for col in np.flatnonzero(lowest):
        upward = ink[row::-1, col]
        lengths.append(len(upward) if upward.all() else int(np.argmin(upward)))
    if not lengths:
        return 0
    return int(np.argmax(np.bincount(lengths)))


def line_point(raster: np.ndarray, x: int, y: int, thickness: int) -> Optional[Point]:
    """Midpoint of the run ending at ``(x, y)`` if it is at most ``thickness`` long."""
    rows = raster.shape[0]
    if raster[y, x] != FOREGROUND:
        return None
    if y != rows - 1 and raster[y + 1, x] != BACKGROUND:
        return None

    run = 1
    row = y - run
    while row > 0 and raster[row, x] == FOREGROUND:
        run += 1
        row -= 1

    if run <= thickness:
        return x, y - (run + 1) // 2
    return None


def find_anchor(raster: np.ndarray, row: int, thickness: int, direction: int) -> Optional[Point]:
    """First acceptable line point on ``row`` scanning in ``direction``."""
    if row < 0:
        return None
    cols = raster.shape[1]
    if direction == LEFT_TO_RIGHT:
        columns = range(cols)
    elif direction == RIGHT_TO_LEFT:
        columns = range(cols - 1, -1, -1)
    else:
        raise ValueError(f"invalid scan direction: {direction}")

    for col in columns:
        point = line_point(raster, col, row, thickness)
        if point is not None:
            return point
    return None


def interpolate_row(p1: Point, p2: Point, x3: int, min_y: int, max_y: int) -> int:
    """Row of column ``x3`` on the line through ``p1`` and ``p2``, rounded and clamped."""
    y3 = (-p1[1] * (x3 - p2[0]) + p2[1] * (x3 - p1[0])) / (p2[0] - p1[0])
    y3 = int(int(2 * y3 + 1) / 2)
    return max(min_y, min(max_y, y3))


def correct_row(raster: np.ndarray, x3: int, y3: int, tolerance: int) -> int:
    """Nearest ink row to ``y3`` in column ``x3``, searching ``tolerance + 1`` rows each way."""
    rows = raster.shape[0]
    reach = tolerance + 1

    upper_limit = max(y3 - reach, 0)
    upper = upper_limit
    for row in range(y3, upper_limit - 1, -1):
        if raster[row, x3] == FOREGROUND:
            upper = row
            break

    lower_limit = min(y3 + reach, rows - 1)
    lower = lower_limit
    for row in range(y3, lower_limit + 1):
        if raster[row, x3] == FOREGROUND:
            lower = row
            break

    return upper if y3 - upper < lower - y3 else lower


def vertical_run(raster: np.ndarray, x: int, y: int) -> Tuple[int, int]:
    """First and last row of the ink run through ``(x, y)``."""
    rows = raster.shape[0]
    top = y
    while top - 1 >= 0 and raster[top - 1, x] == FOREGROUND:
        top -= 1
    bottom = y
    while bottom + 1 < rows and raster[bottom + 1, x] == FOREGROUND:
        bottom += 1
    return top, bottom


def _find_anchors(scan: np.ndarray, top_row: int, bottom_row: int, thickness: int) -> Tuple[Optional[Point], Optional[Point], int]:
    cols = scan.shape[1]
    zone_width = cols // 2
    height = bottom_row - top_row + 1
    if zone_width == 0:
        return None, None, -1

    left_zone = sub_view(scan, 0, top_row, zone_width, height)
    left_row, _ = lower_profile_peak(left_zone)
    p1 = None
    if left_row != -1:
        p1 = find_anchor(left_zone, left_row, thickness, LEFT_TO_RIGHT)
        if p1 is not None:
            p1 = (p1[0], p1[1] + top_row)
            left_row += top_row

    right_zone = sub_view(scan, cols - zone_width, top_row, zone_width, height)
    right_row, _ = lower_profile_peak(right_zone)
    p2 = None
    if right_row != -1:
        p2 = find_anchor(right_zone, right_row, thickness, RIGHT_TO_LEFT)
        if p2 is not None:
            p2 = (p2[0] + cols - zone_width, p2[1] + top_row)

    return p1, p2, left_row


def delete_line(
    raster: np.ndarray,
    scan: np.ndarray,
    p1: Point,
    p2: Point,
    thickness: int,
    tolerance: int,
    near_edge: bool,
) -> bool:
    """Delete the runs crossed by the line through ``p1`` and ``p2``.

    Returns:
        True when every column was deleted
    """
    rows, cols = raster.shape
    max_row = rows - 1
    deleted = True

    for x3 in range(cols):
        y3 = interpolate_row(p1, p2, x3, 0, max_row)
        dist = 0
        if raster[y3, x3] != FOREGROUND:
            corrected = correct_row(raster, x3, y3, tolerance)
            dist = abs(corrected - y3)
            y3 = corrected

        if dist > tolerance or raster[y3, x3] != FOREGROUND:
            deleted = False
            continue

        top, bottom = vertical_run(raster, x3, y3)
        if bottom - top + 1 <= thickness or near_edge:
            raster[top:bottom + 1, x3] = BACKGROUND
        else:
            # longer runs belong to strokes crossing the line
            deleted = False

        scan[max(top - thickness, 0):, x3] = BACKGROUND

    return deleted


def filter_zero_triads(
    src: np.ndarray,
    tolerance: int,
    off: int,
    part: int,
    task: Optional[Task] = None,
) -> Optional[np.ndarray]:
    """Remove horizontal, then vertical rule lines from a copy of ``src``.

    Returns:
        The cleaned raster, or None if the task was cancelled
    """
    output = src.copy()
    scan = output.copy()
    removed: List[int] = [0, 0]

    for j in range(2):
        rows, cols = output.shape
        max_row = rows - 1
        lower_row = max_row
        offset = 0
        thickness = 0

        while lower_row - offset >= 0:
            if is_cancelled(task):
                return None

            zone_deleted = True
            lower_row, zero_triads = lower_profile_peak(scan)
            if lower_row <= 0:
                break

            thickness = abs(find_thickness(scan, lower_row) + off)
            offset = 5 * thickness

            if is_line_found(zero_triads, cols, part):
                top_row = max(lower_row - offset, 0)
                bottom_row = min(lower_row + offset, max_row)
                p1, p2, left_row = _find_anchors(scan, top_row, bottom_row, thickness)

                if p1 is not None and p2 is not None:
                    near_edge = left_row < 9 or left_row > max_row - 10
                    zone_deleted = delete_line(output, scan, p1, p2, thickness, tolerance, near_edge)
                    removed[j] += 1
                else:
                    zone_deleted = False
            else:
                zone_deleted = False

            scan = output.copy()
            if not zone_deleted:
                # hide the candidate band to reach the next line above it
                scan[max(0, lower_row - thickness):, :] = BACKGROUND

        output = rotate90(output, clockwise=(j == 0))
        scan = output.copy()

    logger.debug(f"Zero triads: {removed[0]} horizontal and {removed[1]} vertical lines processed")
    return output
