"""
The rule-line detectors behind one ``apply(raster, parameters)`` call.

Each detector is a tagged variant: the tag selects the default parameter
table and the algorithm. The subspace detector additionally owns a
central-moment model that has to be trained before it can run.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence
import logging

import numpy as np

from . import directional_profile as dlp
from . import zero_triads as zt
from .exceptions import ConfigurationError
from .parameters import INTEGER, REAL, Parameter, ParameterSet
from .raster import validate_pair, validate_raster
from .subspace import CentralMomentSubspace, filter_central_moments
from .task import Task, is_cancelled

logger = logging.getLogger(__name__)

DIRECTIONAL_PROFILE = "directional-profile"
ZERO_TRIADS = "zero-triads"
CENTRAL_MOMENTS_SUBSPACE = "central-moments-subspace"

KEY_SUBSPACE_HALF_WINDOW = "Window size"
KEY_MOMENT_MAX_ORDER = "Maximum moment order"
KEY_RECONSTRUCTION_ERROR = "Reconstruction error"


def _directional_parameters() -> ParameterSet:
    return ParameterSet([
        Parameter(dlp.KEY_MAX_SKIPPED, INTEGER, 0, 50, 0,
                  "Background pixels tolerated inside a fuzzy run"),
        Parameter(dlp.KEY_HALF_WINDOW, INTEGER, 0, 5, 0,
                  "Half side of the binarization window"),
        Parameter(dlp.KEY_K1, REAL, 1e-6, 100.0, 1e-6),
        Parameter(dlp.KEY_K2, REAL, 1e-6, 100.0, 1e-6),
        Parameter(dlp.KEY_K3, REAL, 1e-6, 100.0, 1e-6),
    ])


def _zero_triads_parameters() -> ParameterSet:
    return ParameterSet([
        Parameter(zt.KEY_TOLERANCE, INTEGER, 0, 10, 4,
                  "Rows a line pixel may be away from the reconstructed line"),
        Parameter(zt.KEY_OFF, INTEGER, -3, 3, 1,
                  "Correction added to the measured line thickness"),
        Parameter(zt.KEY_PART, REAL, 1.0, 300.0, 4.0,
                  "A line needs more than columns/part zero triads"),
    ])


def _subspace_parameters() -> ParameterSet:
    return ParameterSet([
        Parameter(KEY_SUBSPACE_HALF_WINDOW, INTEGER, 0, 5, 3,
                  "Half side of the feature neighbourhood"),
        Parameter(KEY_MOMENT_MAX_ORDER, INTEGER, 0, 6, 4,
                  "Central moments of orders 0..k-1 per axis"),
        Parameter(KEY_RECONSTRUCTION_ERROR, REAL, 1e-6, 200.0, 50.0),
    ])


def _apply_directional(detector: "Detector", src: np.ndarray, values: Dict, task: Optional[Task]):
    return dlp.filter_directional_profile(
        src,
        int(values[dlp.KEY_MAX_SKIPPED]),
        int(values[dlp.KEY_HALF_WINDOW]),
        float(values[dlp.KEY_K1]),
        float(values[dlp.KEY_K2]),
        float(values[dlp.KEY_K3]),
        task,
    )


def _apply_zero_triads(detector: "Detector", src: np.ndarray, values: Dict, task: Optional[Task]):
    return zt.filter_zero_triads(
        src,
        int(values[zt.KEY_TOLERANCE]),
        int(values[zt.KEY_OFF]),
        int(values[zt.KEY_PART]),
        task,
    )


def _apply_subspace(detector: "Detector", src: np.ndarray, values: Dict, task: Optional[Task]):
    return filter_central_moments(src, detector.model, task)


@dataclass(frozen=True)
class DetectorKind:
    name: str
    description: str
    parameters: Callable[[], ParameterSet]
    run: Callable
    uses_model: bool = False


REGISTRY: Dict[str, DetectorKind] = {
    DIRECTIONAL_PROFILE: DetectorKind(
        "Directional Local Profile",
        "Z. Shi, S. Setlur, V. Govindaraju, Removing Rule-lines From Binary Handwritten "
        "Arabic Document Images Using Directional Local Profile, ICPR 2010",
        _directional_parameters,
        _apply_directional,
    ),
    ZERO_TRIADS: DetectorKind(
        "Lower Profile of Zero Triads",
        "Rule lines located through the zero triads of the lower profile",
        _zero_triads_parameters,
        _apply_zero_triads,
    ),
    CENTRAL_MOMENTS_SUBSPACE: DetectorKind(
        "Linear Subspace of central moments",
        "Novelty detection on central-moment features against a trained linear subspace",
        _subspace_parameters,
        _apply_subspace,
        uses_model=True,
    ),
}

DETECTORS: List[str] = list(REGISTRY)


class Detector:
    """One rule-line detector with its own parameter set."""

    def __init__(self, tag: str):
        if tag not in REGISTRY:
            raise ConfigurationError(f"알 수 없는 검출기: {tag}", "default_detector")
        self.tag = tag
        self.kind = REGISTRY[tag]
        self.name = self.kind.name
        self.description = self.kind.description
        self.parameters = self.kind.parameters()
        self.model: Optional[CentralMomentSubspace] = None
        if self.uses_model:
            self.model = self._new_model(self.parameters)

    @property
    def uses_model(self) -> bool:
        return self.kind.uses_model

    def is_ready(self) -> bool:
        return not self.uses_model or (self.model is not None and not self.model.is_empty())

    @staticmethod
    def _new_model(parameters: ParameterSet) -> CentralMomentSubspace:
        return CentralMomentSubspace(
            int(parameters.get(KEY_SUBSPACE_HALF_WINDOW) or 0),
            int(parameters.get(KEY_MOMENT_MAX_ORDER) or 0),
            float(parameters.get(KEY_RECONSTRUCTION_ERROR) or 0.0),
        )

    def sync_model(self) -> None:
        """Copy the subspace parameters into the live model.

        A new moment order changes the vector size, which clears the model.
        """
        if self.model is None:
            return
        half_side = int(self.parameters.get(KEY_SUBSPACE_HALF_WINDOW) or 0)
        k = int(self.parameters.get(KEY_MOMENT_MAX_ORDER) or 0)
        if self.model.window_half_side != half_side:
            self.model.window_half_side = half_side
        if self.model.moment_max_order != k:
            self.model.moment_max_order = k
            logger.info(f"{self.name}: moment order changed to {k}, model cleared")
        self.model.error = float(self.parameters.get(KEY_RECONSTRUCTION_ERROR) or 0.0)

    def load_model(self, path: Path) -> int:
        """Load a stored subspace checked against the current parameters.

        Raises:
            SubspaceFormatError: if the stored header does not match them
        """
        self.parameters.validate()
        self.sync_model()
        return self.model.load(path)

    def rebuild_model(self, ground_truths: Sequence[np.ndarray], task: Optional[Task] = None) -> int:
        """Recreate the model from the current parameters and train it.

        Returns:
            Number of vectors in the new model
        """
        if not self.uses_model:
            return 0
        self.parameters.validate()
        model = self._new_model(self.parameters)
        for raster in ground_truths:
            if is_cancelled(task):
                break
            validate_raster(raster, "train")
            model.add_training_data(raster, task)
        self.model = model
        logger.debug(f"{self.name}: model rebuilt with {len(model)} vectors")
        return len(model)

    def apply(
        self,
        raster: np.ndarray,
        parameters: Optional[ParameterSet] = None,
        task: Optional[Task] = None,
    ) -> Optional[np.ndarray]:
        """Run the detector on a copy of ``raster``.

        Raises:
            InvalidParameterError: if any parameter is undefined or out of range
            InvalidRasterError: if the raster is missing or malformed

        Returns:
            The filtered raster; a copy of ``raster`` if the task was
            cancelled; None if the subspace model is not trained yet
        """
        parameters = (parameters if parameters is not None else self.parameters).copy()
        parameters.validate()
        validate_raster(raster, self.name)

        self.sync_model()
        if not self.is_ready():
            logger.warning(f"{self.name}: model holds no vectors, train it first")
            return None

        result = self.kind.run(self, raster, parameters.values(), task)
        if result is None or is_cancelled(task):
            logger.info(f"{self.name}: cancelled")
            return raster.copy()
        return result

    def filter(self, src: np.ndarray, dst: Optional[np.ndarray] = None, task: Optional[Task] = None) -> Optional[np.ndarray]:
        """Filter ``src`` into ``dst`` (allocated when missing)."""
        validate_pair(src, dst, self.name)
        result = self.apply(src, task=task)
        if result is None:
            return None
        if dst is None:
            return result
        dst[...] = result
        return dst

    def __repr__(self) -> str:
        return f"Detector({self.tag!r}, {self.parameters})"


def create_detector(tag: str) -> Detector:
    """A fresh detector with default parameters."""
    return Detector(tag)


def detector_by_name(name: str) -> Detector:
    for tag, kind in REGISTRY.items():
        if kind.name == name or tag == name:
            return Detector(tag)
    raise ConfigurationError(f"알 수 없는 검출기: {name}", "default_detector")
