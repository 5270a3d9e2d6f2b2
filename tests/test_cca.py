"""Connected-component labelling checked against OpenCV."""

from __future__ import annotations

import cv2
import numpy as np

from rulier.cca import label_components
from rulier.raster import BACKGROUND, FOREGROUND, UNLABELED, new_raster
from rulier.task import Task


def test_matches_opencv_eight_connectivity():
    rng = np.random.RandomState(7)
    raster = np.where(rng.rand(40, 50) < 0.35, FOREGROUND, BACKGROUND).astype(np.uint8)

    labels, count = label_components(raster)
    _, expected = cv2.connectedComponents((raster == FOREGROUND).astype(np.uint8), connectivity=8)

    ink = raster == FOREGROUND
    assert count == expected.max()
    assert set(np.unique(labels[ink]).tolist()) == set(range(count))
    assert (labels[~ink] == UNLABELED).all()
    # same partition: every label pair maps one to one
    pairs = set(zip(labels[ink].tolist(), expected[ink].tolist()))
    assert len(pairs) == count


def test_diagonal_pixels_join():
    raster = new_raster((4, 4))
    raster[0, 0] = raster[1, 1] = raster[2, 2] = raster[1, 3] = FOREGROUND
    _, count = label_components(raster)
    assert count == 1


def test_u_shape_merges_late():
    raster = new_raster((5, 7))
    raster[0:4, 1] = FOREGROUND
    raster[0:4, 5] = FOREGROUND
    raster[4, 1:6] = FOREGROUND
    labels, count = label_components(raster)
    assert count == 1
    assert labels[0, 1] == labels[0, 5] == 0


def test_empty_and_single_pixel():
    raster = new_raster((6, 6))
    labels, count = label_components(raster)
    assert count == 0
    assert (labels == UNLABELED).all()

    raster[3, 3] = FOREGROUND
    labels, count = label_components(raster)
    assert count == 1
    assert labels[3, 3] == 0


def test_cancelled_task_returns_no_labels():
    task = Task()
    task.cancel()
    labels, count = label_components(new_raster((3, 3), FOREGROUND), task)
    assert labels is None
    assert count == 0
