"""
Detection quality of a filtering run against ground truth.

A pixel is *detected* when it is ink in the synthetic (document + rule lines)
image and no longer ink in the filter output. Detected pixels that belong to
the rule-line ground truth are true positives, other detected pixels are
false positives, and missed ground-truth pixels are false negatives.
"""

from dataclasses import dataclass
from typing import Optional
import math

import numpy as np

from .raster import FOREGROUND, from_mask

_COMPARE_TOLERANCE = 1e-10


def _f1(precision: float, recall: float) -> float:
    if precision == 0 or recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


@dataclass(frozen=True)
class Energy:
    """Precision, recall and F1 of one run; higher F1 is better."""

    precision: float
    recall: float
    f1: Optional[float] = None

    def __post_init__(self):
        if self.f1 is None:
            object.__setattr__(self, "f1", _f1(self.precision, self.recall))

    @classmethod
    def from_counts(cls, tp: int, fp: int, fn: int) -> "Energy":
        precision = tp / (tp + fp) if tp + fp else 0.0
        recall = tp / (tp + fn) if tp + fn else 0.0
        return cls(precision, recall)

    @classmethod
    def undefined(cls) -> "Energy":
        return cls(math.nan, math.nan, math.nan)

    def is_nan(self) -> bool:
        return math.isnan(self.precision) or math.isnan(self.recall) or math.isnan(self.f1)

    @property
    def value(self) -> float:
        """The quantity minimized by the optimizer, ``1 - F1``."""
        return 1.0 - self.f1

    def minus(self, other: "Energy") -> float:
        """Energy difference ``self - other``; an undefined energy is always worse."""
        if self.is_nan():
            return 1.0
        if other.is_nan():
            return -1.0
        return -(self.f1 - other.f1)

    def compare_to(self, other: "Energy") -> int:
        """1 if ``self`` is better than ``other``, -1 if worse, 0 if equal."""
        diff = self.minus(other)
        if diff > _COMPARE_TOLERANCE:
            return -1
        if diff < -_COMPARE_TOLERANCE:
            return 1
        return 0

    def __str__(self) -> str:
        def fmt(value):
            return "NaN" if math.isnan(value) else f"{value:.4f}"

        return f"Energy[precision={fmt(self.precision)}; recall={fmt(self.recall)}; F1={fmt(self.f1)}]"


# Best possible result: every rule-line pixel removed, nothing else touched
E_MIN = Energy(1.0, 1.0)


def evaluate(
    ground_truth: np.ndarray,
    synthetic: np.ndarray,
    output: Optional[np.ndarray],
    text_only: Optional[np.ndarray] = None,
) -> Energy:
    """Score a filter ``output`` computed from ``synthetic``.

    Args:
        ground_truth: Rule-line pixels
        synthetic: Input image given to the filter
        output: Filter result; None yields an undefined energy
        text_only: Optional text ground truth; its ink never counts as rule line
    """
    if output is None:
        return Energy.undefined()

    lines = ground_truth == FOREGROUND
    if text_only is not None:
        lines &= text_only != FOREGROUND

    detected = (synthetic == FOREGROUND) & (output != FOREGROUND)
    tp = int(np.count_nonzero(detected & lines))
    fp = int(np.count_nonzero(detected & ~lines))
    fn = int(np.count_nonzero(~detected & lines))
    return Energy.from_counts(tp, fp, fn)


def synthesize(ground_truth: np.ndarray, text_only: np.ndarray) -> np.ndarray:
    """Synthetic document: union of the rule-line and text ink."""
    if ground_truth.shape != text_only.shape:
        raise ValueError("ground truth and text images have different dimensions")
    return from_mask((ground_truth == FOREGROUND) | (text_only == FOREGROUND))
