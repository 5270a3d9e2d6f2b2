"""Tests for rule-line removal with the lower profile of zero triads."""

from __future__ import annotations

import numpy as np
import pytest

from rulier.raster import BACKGROUND, FOREGROUND, new_raster
from rulier.task import Task
from rulier.zero_triads import (
    LEFT_TO_RIGHT,
    RIGHT_TO_LEFT,
    correct_row,
    filter_zero_triads,
    find_anchor,
    find_thickness,
    interpolate_row,
    is_line_found,
    line_point,
    lower_profile_peak,
)

from conftest import ruled_page, text_blob


def test_lower_profile_peak_of_rule_line():
    raster = ruled_page()
    row, zero_triads = lower_profile_peak(raster)
    assert row == 31
    # the first column carries the "no data" distance
    assert zero_triads == raster.shape[1] - 3


def test_lower_profile_peak_without_triads():
    assert lower_profile_peak(new_raster((10, 10))) == (-1, 0)
    assert lower_profile_peak(new_raster((10, 2), FOREGROUND)) == (-1, 0)

    staircase = new_raster((10, 10))
    for col in range(10):
        staircase[col, col] = FOREGROUND
    assert lower_profile_peak(staircase) == (-1, 0)


def test_is_line_found():
    assert is_line_found(31, 120, 4)
    assert not is_line_found(30, 120, 4)
    assert not is_line_found(500, 120, 0)


def test_find_thickness_picks_most_common_run():
    raster = new_raster((10, 6))
    raster[6:8, :4] = FOREGROUND
    raster[5:8, 4:] = FOREGROUND
    assert find_thickness(raster, 7) == 2
    assert find_thickness(raster, 2) == 0


def test_line_point_and_anchors():
    raster = ruled_page()
    assert line_point(raster, 0, 31, 3) == (0, 30)
    assert line_point(raster, 0, 31, 1) is None
    assert line_point(raster, 0, 30, 3) is None

    assert find_anchor(raster, 31, 3, LEFT_TO_RIGHT) == (0, 30)
    assert find_anchor(raster, 31, 3, RIGHT_TO_LEFT) == (119, 30)
    assert find_anchor(raster, -1, 3, LEFT_TO_RIGHT) is None
    with pytest.raises(ValueError):
        find_anchor(raster, 31, 3, 7)


def test_interpolate_and_correct_row():
    assert interpolate_row((0, 10), (100, 20), 50, 0, 59) == 15
    assert interpolate_row((0, 10), (100, 20), 500, 0, 59) == 59

    raster = new_raster((20, 1))
    raster[12, 0] = FOREGROUND
    assert correct_row(raster, 0, 10, 4) == 12
    # nothing in reach: the lower search limit is returned
    assert correct_row(new_raster((20, 1)), 0, 10, 2) == 13


def test_rule_line_removed_and_text_kept():
    raster = np.minimum(ruled_page(), text_blob())
    result = filter_zero_triads(raster, 4, 1, 4)

    assert result.shape == raster.shape
    assert (result[30:32, :] == BACKGROUND).all()
    assert (result[10:15, 50:55] == FOREGROUND).all()
    assert (raster[30:32, :] == FOREGROUND).all()


def test_vertical_rule_line_removed():
    raster = new_raster((120, 60))
    raster[:, 40:42] = FOREGROUND
    raster[20:24, 10:13] = FOREGROUND
    result = filter_zero_triads(raster, 4, 1, 4)
    assert (result[:, 40:42] == BACKGROUND).all()
    assert (result[20:24, 10:13] == FOREGROUND).all()


def test_blank_page_terminates():
    result = filter_zero_triads(new_raster((30, 30)), 4, 1, 4)
    assert (result == BACKGROUND).all()


def test_cancelled_run_returns_none():
    task = Task()
    task.cancel()
    assert filter_zero_triads(ruled_page(), 4, 1, 4, task) is None
