"""Tests for image I/O and binarization."""

from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

from rulier.exceptions import NotBinaryImageError, RuleLineError
from rulier.image_utils import (
    get_image_info,
    load_image,
    looks_binary,
    save_image,
    to_binary,
    to_image,
)
from rulier.raster import BACKGROUND, FOREGROUND


def _scan(rows: int = 40, cols: int = 60) -> np.ndarray:
    image = np.full((rows, cols), 255, dtype=np.uint8)
    image[20:22, :] = 0
    return image


def test_looks_binary():
    assert looks_binary(_scan())
    assert looks_binary(np.full((5, 5), 7, dtype=np.uint8))

    noisy = _scan()
    noisy[:5, :] = 128
    assert not looks_binary(noisy)

    gradient = np.tile(np.arange(256, dtype=np.uint8), (10, 1))
    assert not looks_binary(gradient)


def test_to_binary_and_back():
    raster = to_binary(_scan())
    assert (raster[20:22, :] == FOREGROUND).all()
    assert (raster[:20, :] == BACKGROUND).all()
    assert np.array_equal(to_image(raster), _scan())


def test_to_binary_rejects_photos():
    gradient = np.tile(np.arange(256, dtype=np.uint8), (10, 1))
    with pytest.raises(NotBinaryImageError):
        to_binary(gradient, source="photo.png")
    with pytest.raises(NotBinaryImageError):
        to_binary(np.zeros((0, 0), dtype=np.uint8))


def test_color_input_is_converted():
    color = np.stack([_scan()] * 3, axis=2)
    assert np.array_equal(to_binary(color), to_binary(_scan()))


def test_save_and_load(tmp_path):
    png = save_image(tmp_path / "out" / "page.png", _scan())
    assert np.array_equal(load_image(png), _scan())

    gif = tmp_path / "page.gif"
    Image.fromarray(_scan()).save(gif)
    assert load_image(gif).shape == (40, 60)


def test_missing_image(tmp_path):
    with pytest.raises(RuleLineError):
        load_image(tmp_path / "absent.png")


def test_image_info():
    info = get_image_info(_scan())
    assert info["channels"] == 1
    assert info["looks_binary"]
    with pytest.raises(RuleLineError):
        get_image_info(np.zeros(0))
