"""
Incrementally grown linear subspace of feature vectors.

The subspace is trained on the feature vectors of rule-line pixels. An ink
pixel whose vector it cannot reconstruct within the error threshold does not
look like a rule line and is kept by the subspace detector.
"""

from pathlib import Path
from typing import Optional
import gzip
import logging
import math
import struct

import numpy as np

from .exceptions import SubspaceFormatError
from .raster import FOREGROUND, new_raster
from .task import Task, is_cancelled

logger = logging.getLogger(__name__)

_HEADER = struct.Struct(">idi")  # vectorSize, error, windowHalfSide
_SNAP_TOLERANCE = 1e-14


def _normalized(v: np.ndarray) -> Optional[np.ndarray]:
    norm = float(np.linalg.norm(v))
    if norm == 0.0:
        return None
    return v / norm


def _snap(moment: float) -> float:
    # integral results come back exact
    truncated = int(moment)
    if abs(moment - truncated) < _SNAP_TOLERANCE:
        return float(truncated)
    return moment


class LinearSubspace:
    """Approximate basis grown from residuals of the vectors added to it.

    Changing ``vector_size`` clears the stored vectors, changing ``error``
    keeps them.
    """

    def __init__(self, vector_size: int = 0, error: float = 0.0):
        self._vectors = np.empty((0, 0), dtype=np.float64)
        self._vector_size = 0
        self._error = 0.0
        self.vector_size = vector_size
        self.error = error

    @property
    def vector_size(self) -> int:
        return self._vector_size

    @vector_size.setter
    def vector_size(self, size: int) -> None:
        self._vector_size = max(int(size), 0)
        self.clear()

    @property
    def error(self) -> float:
        return self._error

    @error.setter
    def error(self, error: float) -> None:
        self._error = max(float(error), 0.0)

    @property
    def vectors(self) -> np.ndarray:
        """Copy of the stored vectors, one per row."""
        return self._vectors.copy()

    def __len__(self) -> int:
        return self._vectors.shape[0]

    def is_empty(self) -> bool:
        return len(self) == 0

    def clear(self) -> None:
        self._vectors = np.empty((0, self._vector_size), dtype=np.float64)

    def _reconstruction(self, v: np.ndarray) -> np.ndarray:
        return self._vectors.T @ (self._vectors @ v)

    def add(self, vector) -> bool:
        """Add a vector; returns True if the subspace grew.

        The first vector is stored normalized. Later vectors whose
        reconstruction error exceeds the threshold contribute their
        normalized residual. Zero vectors and vectors of the wrong length
        are rejected. The caller's vector is never modified.
        """
        if vector is None:
            return False
        v = np.asarray(vector, dtype=np.float64).ravel()
        if v.size != self._vector_size:
            return False

        if self.is_empty():
            unit = _normalized(v)
        else:
            r = self._reconstruction(v)
            if float(np.linalg.norm(r - v)) <= self._error:
                return False
            unit = _normalized(r - v)

        if unit is None:
            return False
        self._vectors = np.vstack([self._vectors, unit])
        return True

    def is_in_subspace(self, vector) -> bool:
        """True iff the subspace reconstructs ``vector`` within the error threshold."""
        if vector is None or self.is_empty():
            return False
        v = np.asarray(vector, dtype=np.float64).ravel()
        if v.size == 0 or v.size != self._vector_size:
            return False
        return float(np.linalg.norm(self._reconstruction(v) - v)) <= self._error


class CentralMomentSubspace(LinearSubspace):
    """Subspace over central-moment features of a pixel neighbourhood.

    For each pixel the ``(2n + 1) x (2n + 1)`` neighbourhood (clipped at the
    raster edges) yields ``k * k`` central moments plus the standard deviation
    and fourth central moment of its vertical and horizontal projection
    profiles, so ``vector_size == k * k + 4``.
    """

    def __init__(self, window_half_side: int = 0, k: int = 0, error: float = 0.0):
        super().__init__(k * k + 4, error)
        self._window_half_side = 0
        self._k = 0
        self.window_half_side = window_half_side
        self.moment_max_order = k

    @property
    def window_half_side(self) -> int:
        return self._window_half_side

    @window_half_side.setter
    def window_half_side(self, value: int) -> None:
        self._window_half_side = max(int(value), 0)

    @property
    def window_side(self) -> int:
        return 2 * self._window_half_side + 1

    @property
    def moment_max_order(self) -> int:
        return self._k

    @moment_max_order.setter
    def moment_max_order(self, k: int) -> None:
        self._k = max(int(k), 0)
        self.vector_size = self._k * self._k + 4

    def is_edge_point(self, x: int, y: int, shape) -> bool:
        rows, cols = shape
        n = self._window_half_side
        return not (x - n >= 0 and y - n >= 0 and x + n < cols and y + n < rows)

    def feature_vector(self, ink: np.ndarray, x: int, y: int) -> Optional[np.ndarray]:
        """Feature vector of pixel ``(x, y)`` on a 0/1 ink matrix.

        Returns None when the neighbourhood holds no ink.
        """
        rows, cols = ink.shape
        n = self._window_half_side
        x0, x1 = max(x - n, 0), min(x + n, cols - 1)
        y0, y1 = max(y - n, 0), min(y + n, rows - 1)
        if x1 < x0 or y1 < y0:
            return None

        window = ink[y0:y1 + 1, x0:x1 + 1].astype(np.float64)
        v_profile = window.sum(axis=1)
        h_profile = window.sum(axis=0)

        v_mean = v_profile.mean()
        if v_mean == 0:
            return None
        h_mean = h_profile.mean()

        size = self.vector_size
        v = np.zeros(size, dtype=np.float64)
        v[size - 4] = math.sqrt(self._profile_moment(v_profile, v_mean, 2))
        v[size - 3] = math.sqrt(self._profile_moment(h_profile, h_mean, 2))
        v[size - 2] = self._profile_moment(v_profile, v_mean, 4)
        v[size - 1] = self._profile_moment(h_profile, h_mean, 4)

        ys, xs = np.mgrid[y0:y1 + 1, x0:x1 + 1]
        mass = window.sum()
        dx = xs - (xs * window).sum() / mass
        dy = ys - (ys * window).sum() / mass

        k = self._k
        for kx in range(k):
            for ky in range(k):
                if kx == 0 and ky == 0:
                    moment = mass
                else:
                    moment = float((dx ** kx * dy ** ky * window).sum())
                v[kx * k + ky] = _snap(moment)
        return v

    @staticmethod
    def _profile_moment(profile: np.ndarray, mean: float, order: int) -> float:
        return _snap(float(((profile - mean) ** order).mean()))

    def is_valid_raster(self, raster: np.ndarray) -> bool:
        rows, cols = raster.shape
        return rows >= self.window_side and cols >= self.window_side

    def add_training_data(self, raster: np.ndarray, task: Optional[Task] = None) -> int:
        """Add the feature vector of every non-edge ink pixel of a training raster.

        Returns:
            Number of vectors that grew the subspace
        """
        if not self.is_valid_raster(raster):
            logger.warning(
                f"Training raster {raster.shape} is smaller than the {self.window_side}px window, no data added"
            )
            return 0

        ink = (raster == FOREGROUND).astype(np.uint8)
        rows, cols = ink.shape
        n = self._window_half_side
        added = 0
        for y in range(rows):
            if is_cancelled(task):
                return added
            if y - n < 0 or y + n >= rows:
                continue
            for x in np.flatnonzero(ink[y]):
                if self.is_edge_point(int(x), y, ink.shape):
                    continue
                v = self.feature_vector(ink, int(x), y)
                if v is not None and self.add(v):
                    added += 1

        logger.debug(f"Subspace grew by {added} vectors to {len(self)}")
        return added

    def save(self, path: Path) -> None:
        """Write the header and every vector to a gzip file (big-endian)."""
        with gzip.open(Path(path), "wb") as handle:
            handle.write(_HEADER.pack(self.vector_size, self.error, self._window_half_side))
            handle.write(self._vectors.astype(">f8").tobytes())
        logger.info(f"Stored {len(self)} subspace vectors to {path}")

    def load(self, path: Path) -> int:
        """Replace the stored vectors with those of a saved subspace.

        Raises:
            SubspaceFormatError: if the header does not match this subspace or
                the file ends inside a vector; the subspace is left unchanged

        Returns:
            Number of vectors loaded
        """
        path = Path(path)
        with gzip.open(path, "rb") as handle:
            data = handle.read()

        if len(data) < _HEADER.size:
            raise SubspaceFormatError("header is truncated", str(path))
        size, error, half_side = _HEADER.unpack_from(data)
        if size != self.vector_size:
            raise SubspaceFormatError(f"vector size {size} does not match {self.vector_size}", str(path))
        if error != self.error:
            raise SubspaceFormatError(f"reconstruction error {error} does not match {self.error}", str(path))
        if half_side != self._window_half_side:
            raise SubspaceFormatError(
                f"window half side {half_side} does not match {self._window_half_side}", str(path)
            )

        body = data[_HEADER.size:]
        record = 8 * size
        if record == 0:
            if body:
                raise SubspaceFormatError("vectors stored for an empty vector size", str(path))
            vectors = np.empty((0, 0), dtype=np.float64)
        else:
            if len(body) % record:
                raise SubspaceFormatError("trailing vector is truncated", str(path))
            vectors = np.frombuffer(body, dtype=">f8").astype(np.float64).reshape(-1, size)

        self._vectors = vectors
        logger.info(f"Loaded {len(vectors)} subspace vectors from {path}")
        return len(vectors)


def filter_central_moments(src: np.ndarray, model: CentralMomentSubspace, task: Optional[Task] = None) -> Optional[np.ndarray]:
    """Keep the ink pixels whose features the model cannot reconstruct.

    Returns:
        A raster holding the ink that does not look like rule lines, or None
        if the task was cancelled
    """
    ink = (src == FOREGROUND).astype(np.uint8)
    dst = new_raster(src.shape)
    for y in range(ink.shape[0]):
        if is_cancelled(task):
            return None
        for x in np.flatnonzero(ink[y]):
            if not model.is_in_subspace(model.feature_vector(ink, int(x), y)):
                dst[y, x] = FOREGROUND
    return dst
