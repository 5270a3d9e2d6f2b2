"""
Simulated annealing over a detector's parameters.

The search walks one parameter dimension at a time and samples candidates in
a neighbourhood that grows with ``k**3`` until an improving (or, with the
Metropolis probability, a worse) state is accepted. The energy of a state is
the mean precision/recall/F1 of the detector over a training set of
ground-truth/synthetic image pairs.
"""

from typing import List, Optional, Sequence
import logging
import math
import random

import numpy as np

from .energy import E_MIN, Energy, evaluate
from .exceptions import InvalidRasterError
from .filters import Detector
from .parameters import INTEGER, Number, ParameterSet
from .raster import validate_raster
from .task import Task, is_cancelled

logger = logging.getLogger(__name__)

NB_MAX = 3
MIN_INTEGER_RANGE = 5
T_START = 100.0
TIME = 45
A = 2.0


class State:
    """Parameter values, temperature and the energy they produce."""

    def __init__(self, values: Sequence[Number], temperature: float, energy: Optional[Energy] = None):
        self.values = list(values)
        self.temperature = temperature
        self.energy = energy

    def __repr__(self) -> str:
        return f"State({self.values}, temp={self.temperature:.4f}, {self.energy})"


class SimulatedAnnealing:
    """Optimize the parameters of ``detector`` on a training set.

    Args:
        detector: Detector whose current parameter values form the initial state
        ground_truths: Rule-line ground-truth rasters
        synthetics: Synthetic inputs, one per ground truth, of the same size
        time: Number of cooling steps
        initial_temperature: Starting temperature
        cooling_exponent: Exponent of the cooling schedule
        seed: Seed of the random generator
    """

    def __init__(
        self,
        detector: Detector,
        ground_truths: Sequence[np.ndarray],
        synthetics: Sequence[np.ndarray],
        time: int = TIME,
        initial_temperature: float = T_START,
        cooling_exponent: float = A,
        seed: Optional[int] = None,
    ):
        self._validate_dataset(ground_truths, synthetics)
        self.detector = detector
        self.ground_truths = list(ground_truths)
        self.synthetics = list(synthetics)
        self.time = int(time)
        self.t_start = float(initial_temperature)
        self.a = float(cooling_exponent)
        self.random = random.Random(seed)

        self.parameters: ParameterSet = detector.parameters.copy()
        self._dimensions = list(self.parameters)
        self.size = len(self._dimensions)
        self.initial_range = [self._initial_range(p) for p in self.parameters]

        values = [p.value if p.value is not None else p.minimum for p in self.parameters]
        self.initial_state = self.create_state(values, self.t_start)
        self.best_state: Optional[State] = self.initial_state

    @staticmethod
    def _validate_dataset(ground_truths, synthetics) -> None:
        if ground_truths is None or synthetics is None or len(ground_truths) == 0:
            raise InvalidRasterError("training set is empty", "optimize")
        if len(ground_truths) != len(synthetics):
            raise InvalidRasterError(
                f"{len(ground_truths)} ground truths but {len(synthetics)} synthetic images", "optimize"
            )
        for gt, synth in zip(ground_truths, synthetics):
            validate_raster(gt, "optimize")
            validate_raster(synth, "optimize")
            if gt.shape != synth.shape:
                raise InvalidRasterError("ground truth and synthetic image have different dimensions", "optimize")

    @staticmethod
    def _initial_range(parameter) -> float:
        span = int(parameter.maximum) - int(parameter.minimum)
        initial = span / NB_MAX ** 3
        if parameter.kind == INTEGER:
            initial = MIN_INTEGER_RANGE if initial < MIN_INTEGER_RANGE else int(initial)
        return initial

    def temperature(self, t: int) -> float:
        if self.time <= 1:
            return 0.0
        return self.t_start * (1 - min(1.0, t / (self.time - 1))) ** self.a

    def create_state(self, values: Sequence[Number], temperature: float, task: Optional[Task] = None) -> State:
        """Build a state, clamping invalid values to the minimum, and evaluate it."""
        if len(values) != self.size:
            raise ValueError("State values size is illegal.")
        if temperature < 0:
            temperature = self.t_start
        clean = []
        for parameter, value in zip(self.parameters, values):
            if value is not None and parameter.minimum <= value <= parameter.maximum:
                clean.append(value)
            else:
                clean.append(parameter.minimum)
        state = State(clean, temperature)
        state.energy = self.energy(state, task)
        return state

    def energy(self, state: State, task: Optional[Task] = None) -> Energy:
        """Mean precision, recall and F1 of the detector with the state's values."""
        for parameter, value in zip(self.parameters, state.values):
            self.detector.parameters.set(parameter.name, value)

        if self.detector.uses_model:
            self.detector.rebuild_model(self.ground_truths, task)

        precision = recall = f1 = 0.0
        for gt, synth in zip(self.ground_truths, self.synthetics):
            if is_cancelled(task):
                return Energy.undefined()
            e = evaluate(gt, synth, self.detector.apply(synth, task=task))
            precision += e.precision
            recall += e.recall
            f1 += e.f1
        n = len(self.ground_truths)
        return Energy(precision / n, recall / n, f1 / n)

    def _candidate(self, state: State, dim: int, k: int, reached_low: List[bool], reached_high: List[bool]) -> Number:
        parameter = self._dimensions[dim]
        half_range = self.initial_range[dim] * k * k * k / 2
        current = state.values[dim]

        low = float(parameter.minimum)
        if not reached_low[dim]:
            low = current - half_range
            if low <= parameter.minimum or half_range == 0:
                low = float(parameter.minimum)
                reached_low[dim] = True

        high = float(parameter.maximum)
        if not reached_high[dim]:
            high = current + half_range
            if high >= parameter.maximum or half_range == 0:
                high = float(parameter.maximum)
                reached_high[dim] = True

        value = low + self.random.random() * (high - low)
        return int(value) if parameter.kind == INTEGER else value

    def _accept(self, delta: float, temperature: float) -> bool:
        if delta <= 0:
            return True
        probability = 0.0 if temperature == 0 else (temperature / self.t_start) * math.exp(-delta / temperature)
        return probability > self.random.random()

    def start(self, task: Optional[Task] = None) -> bool:
        """Run the annealing schedule.

        Returns:
            False if the task was cancelled, True otherwise
        """
        state = self.initial_state
        best = self.best_state
        evaluations = 0

        for t in range(self.time):
            if is_cancelled(task):
                return False
            if E_MIN.compare_to(best.energy) <= 0:
                break
            temperature = self.temperature(t)
            reached_low = [False] * self.size
            reached_high = [False] * self.size

            dim = 0
            found = False
            k = 1
            while dim < self.size:
                while dim < self.size and not (reached_low[dim] and reached_high[dim]):
                    if is_cancelled(task):
                        return False

                    values = list(state.values)
                    values[dim] = self._candidate(state, dim, k, reached_low, reached_high)
                    candidate = self.create_state(values, temperature, task)
                    evaluations += 1
                    if is_cancelled(task):
                        return False

                    delta = candidate.energy.minus(state.energy)
                    if self._accept(delta, temperature):
                        state = candidate
                        found = True
                        if candidate.energy.compare_to(best.energy) > 0:
                            best = candidate
                            self.best_state = best
                            if task is not None:
                                task.log(f"t={t}: new best {best.energy} with {self._describe(best)}")
                    dim += 1

                if found:
                    break
                dim = next((i for i in range(self.size) if not (reached_low[i] and reached_high[i])), self.size)
                k += 1

            if task is not None:
                task.set_progress(100 * (t + 1) // self.time)
            logger.debug(f"t={t} T={temperature:.3f} current {state.energy} best {best.energy}")

        logger.info(f"Annealing finished after {evaluations} evaluations: {best.energy}")
        return True

    def _describe(self, state: State) -> str:
        return ", ".join(f"{name}={value}" for name, value in zip(self.parameters.names(), state.values))

    def optimum_parameters(self) -> Optional[ParameterSet]:
        """Parameter set holding the best values found, or None before a run."""
        if self.best_state is None:
            return None
        parameters = self.parameters.copy()
        for name, value in zip(parameters.names(), self.best_state.values):
            parameters.set(name, value)
        return parameters

    def optimum_energy(self) -> Optional[Energy]:
        return None if self.best_state is None else self.best_state.energy
