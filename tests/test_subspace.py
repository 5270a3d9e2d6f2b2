"""Tests for the central-moment subspace and its persistence."""

from __future__ import annotations

import gzip
import struct

import numpy as np
import pytest

from rulier.exceptions import SubspaceFormatError
from rulier.raster import BACKGROUND, FOREGROUND, new_raster
from rulier.subspace import CentralMomentSubspace, LinearSubspace, filter_central_moments
from rulier.task import Task


def _lined_page() -> np.ndarray:
    raster = new_raster((20, 40))
    raster[10:12, :] = FOREGROUND
    return raster


def _trained_model() -> CentralMomentSubspace:
    model = CentralMomentSubspace(1, 2, 1e-6)
    model.add_training_data(_lined_page())
    return model


def test_basis_is_orthonormal():
    space = LinearSubspace(3, 1e-6)
    assert space.add([2.0, 0.0, 0.0])
    assert space.add([1.0, 1.0, 0.0])
    assert not space.add([3.0, -4.0, 0.0])

    vectors = space.vectors
    assert np.allclose(vectors @ vectors.T, np.eye(2))
    assert space.is_in_subspace([5.0, 7.0, 0.0])
    assert not space.is_in_subspace([0.0, 0.0, 1.0])


def test_add_leaves_caller_vector_alone():
    space = LinearSubspace(3, 1e-6)
    space.add([1.0, 0.0, 0.0])
    vector = np.array([1.0, 2.0, 0.0])
    space.add(vector)
    assert vector.tolist() == [1.0, 2.0, 0.0]


def test_zero_and_missing_vectors():
    space = LinearSubspace(3, 1e-6)
    assert not space.add(np.zeros(3))
    assert space.is_empty()
    assert not space.is_in_subspace([1e-9, 0.0, 0.0])
    assert not space.is_in_subspace(None)
    assert not space.add([1.0, 2.0])


def test_resizing_clears_but_error_does_not():
    space = LinearSubspace(3, 1e-6)
    space.add([1.0, 0.0, 0.0])
    space.error = 0.5
    assert len(space) == 1
    space.error = -3
    assert space.error == 0.0

    space.vector_size = 4
    assert space.is_empty()
    assert space.vectors.shape == (0, 4)


def test_feature_vector_layout():
    model = CentralMomentSubspace(1, 2, 1e-6)
    assert model.vector_size == 8
    ink = (_lined_page() == FOREGROUND).astype(np.uint8)

    v = model.feature_vector(ink, 5, 10)
    assert v[0] == 6
    assert v[1] == v[2] == v[3] == 0
    assert v[4] == pytest.approx(np.sqrt(2))
    assert v[5] == 0
    assert v[6] == pytest.approx(6)
    assert v[7] == 0

    assert model.feature_vector(ink, 5, 2) is None


def test_edge_points():
    model = CentralMomentSubspace(2, 2, 0.1)
    assert model.is_edge_point(1, 5, (20, 40))
    assert model.is_edge_point(5, 18, (20, 40))
    assert not model.is_edge_point(2, 2, (20, 40))


def test_training_too_small_raster_adds_nothing():
    model = CentralMomentSubspace(3, 2, 1e-6)
    assert model.add_training_data(new_raster((4, 4), FOREGROUND)) == 0
    assert model.is_empty()


def test_filter_drops_rule_line_and_keeps_strokes():
    model = _trained_model()
    assert not model.is_empty()

    page = _lined_page()
    page[2:7, 20] = FOREGROUND
    result = filter_central_moments(page, model)

    assert (result[10:12, 1:39] == BACKGROUND).all()
    assert (result[2:7, 20] == FOREGROUND).all()
    assert (result[0, :] == BACKGROUND).all()


def test_filter_cancelled():
    task = Task()
    task.cancel()
    assert filter_central_moments(_lined_page(), _trained_model(), task) is None


def test_save_and_load(tmp_path):
    model = _trained_model()
    path = tmp_path / "lines.subspace"
    model.save(path)

    restored = CentralMomentSubspace(1, 2, 1e-6)
    restored.add(np.ones(8))
    assert restored.load(path) == len(model)
    assert np.allclose(restored.vectors, model.vectors)


def test_load_rejects_mismatched_header(tmp_path):
    path = tmp_path / "lines.subspace"
    _trained_model().save(path)

    other = CentralMomentSubspace(1, 3, 1e-6)
    other.add(np.ones(other.vector_size))
    with pytest.raises(SubspaceFormatError):
        other.load(path)
    assert len(other) == 1

    wider = CentralMomentSubspace(2, 2, 1e-6)
    with pytest.raises(SubspaceFormatError):
        wider.load(path)


def test_load_rejects_truncated_vectors(tmp_path):
    path = tmp_path / "broken.subspace"
    with gzip.open(path, "wb") as handle:
        handle.write(struct.pack(">idi", 8, 1e-6, 1))
        handle.write(b"\x00" * 12)

    model = CentralMomentSubspace(1, 2, 1e-6)
    with pytest.raises(SubspaceFormatError):
        model.load(path)
    assert model.is_empty()
