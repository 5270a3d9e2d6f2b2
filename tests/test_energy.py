"""Tests for precision/recall/F1 scoring of filter runs."""

from __future__ import annotations

import math

import numpy as np
import pytest

from rulier.energy import E_MIN, Energy, evaluate, synthesize
from rulier.raster import BACKGROUND, FOREGROUND


def test_f1_and_ordering():
    assert Energy(1, 1).f1 == 1
    assert Energy(0, 0.7).f1 == 0
    assert Energy(0.5, 0).f1 == 0
    assert Energy(0.5, 1).f1 == pytest.approx(2 / 3)

    assert Energy(1, 1).compare_to(Energy(0, 0)) > 0
    assert Energy(0, 0).compare_to(Energy(1, 1)) < 0
    assert Energy(0.5, 0.5).compare_to(Energy(0.5, 0.5)) == 0
    assert E_MIN.compare_to(Energy(1, 1)) == 0


def test_undefined_energy_is_always_worse():
    nan = Energy.undefined()
    assert nan.is_nan()
    assert nan.minus(Energy(0, 0)) > 0
    assert Energy(0, 0).minus(nan) < 0
    assert nan.compare_to(Energy(0, 0)) < 0
    assert "NaN" in str(nan)


def test_from_counts_without_detections():
    energy = Energy.from_counts(0, 0, 10)
    assert energy.precision == 0
    assert energy.recall == 0
    assert energy.value == 1


def test_evaluate_counts(line_ground_truth, text_only, synthetic_page):
    output = synthetic_page.copy()
    output[30:32, :60] = BACKGROUND
    output[10, 50] = BACKGROUND

    energy = evaluate(line_ground_truth, synthetic_page, output)
    # tp = 120, fp = 1, fn = 120
    assert energy.precision == pytest.approx(120 / 121)
    assert energy.recall == pytest.approx(0.5)


def test_evaluate_perfect_and_missing_output(line_ground_truth, text_only, synthetic_page):
    assert evaluate(line_ground_truth, synthetic_page, text_only).compare_to(E_MIN) == 0
    assert math.isnan(evaluate(line_ground_truth, synthetic_page, None).f1)


def test_text_ground_truth_is_never_a_line(line_ground_truth, synthetic_page):
    text = np.full_like(line_ground_truth, BACKGROUND)
    text[30:32, 0:10] = FOREGROUND
    output = synthetic_page.copy()
    output[30:32, :] = BACKGROUND

    energy = evaluate(line_ground_truth, synthetic_page, output, text)
    assert energy.precision == pytest.approx(220 / 240)
    assert energy.recall == 1


def test_synthesize(line_ground_truth, text_only, synthetic_page):
    assert np.array_equal(synthesize(line_ground_truth, text_only), synthetic_page)
    with pytest.raises(ValueError):
        synthesize(line_ground_truth, text_only[:10])
