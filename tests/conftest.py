"""Shared synthetic rasters for the detector tests."""

from __future__ import annotations

import numpy as np
import pytest

from rulier.raster import BACKGROUND, FOREGROUND, new_raster


def ruled_page(rows: int = 60, cols: int = 120, line_rows=(30, 31)) -> np.ndarray:
    """Blank page with one full-width horizontal rule line."""
    raster = new_raster((rows, cols))
    raster[line_rows[0]:line_rows[-1] + 1, :] = FOREGROUND
    return raster


def text_blob(rows: int = 60, cols: int = 120) -> np.ndarray:
    """Page holding only a small square of ink above the rule line."""
    raster = new_raster((rows, cols))
    raster[10:15, 50:55] = FOREGROUND
    return raster


@pytest.fixture
def line_ground_truth() -> np.ndarray:
    return ruled_page()


@pytest.fixture
def text_only() -> np.ndarray:
    return text_blob()


@pytest.fixture
def synthetic_page(line_ground_truth, text_only) -> np.ndarray:
    return np.where(
        (line_ground_truth == FOREGROUND) | (text_only == FOREGROUND), FOREGROUND, BACKGROUND
    ).astype(np.uint8)
