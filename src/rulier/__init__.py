"""Rule-line removal for scanned binary document images."""

from .annealing import SimulatedAnnealing
from .energy import Energy, evaluate, synthesize
from .filters import (
    CENTRAL_MOMENTS_SUBSPACE,
    DETECTORS,
    DIRECTIONAL_PROFILE,
    ZERO_TRIADS,
    Detector,
    create_detector,
    detector_by_name,
)
from .parameters import Parameter, ParameterSet, load_preferences, save_preferences
from .raster import BACKGROUND, FOREGROUND
from .task import Task

__all__ = [
    "BACKGROUND",
    "CENTRAL_MOMENTS_SUBSPACE",
    "DETECTORS",
    "DIRECTIONAL_PROFILE",
    "Detector",
    "Energy",
    "FOREGROUND",
    "Parameter",
    "ParameterSet",
    "SimulatedAnnealing",
    "Task",
    "ZERO_TRIADS",
    "create_detector",
    "detector_by_name",
    "evaluate",
    "load_preferences",
    "save_preferences",
    "synthesize",
]
