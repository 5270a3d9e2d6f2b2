"""
Duplicate-free, coordinate-ordered collection of integer points.
"""

from bisect import bisect_left
from typing import Iterable, Iterator, List, Tuple

Point = Tuple[int, int]  # (x, y)

XY_ORDER = -1
YX_ORDER = -2


class PointSet:
    """Points kept sorted by (x, y) or by (y, x), without duplicates."""

    def __init__(self, order: int = XY_ORDER, points: Iterable[Point] = ()):
        if order not in (XY_ORDER, YX_ORDER):
            raise ValueError(f"invalid sort order: {order}")
        self.order = order
        self._keys: List[Tuple[int, int]] = []
        self.update(points)

    def _key(self, point: Point) -> Tuple[int, int]:
        x, y = int(point[0]), int(point[1])
        return (x, y) if self.order == XY_ORDER else (y, x)

    def _point(self, key: Tuple[int, int]) -> Point:
        return key if self.order == XY_ORDER else (key[1], key[0])

    def add(self, point: Point) -> bool:
        """Insert ``point`` in order; returns False if it was already present."""
        key = self._key(point)
        index = bisect_left(self._keys, key)
        if index < len(self._keys) and self._keys[index] == key:
            return False
        self._keys.insert(index, key)
        return True

    def update(self, points: Iterable[Point]) -> bool:
        """Insert every point; returns True if the set changed."""
        incoming = [self._key(p) for p in points]
        if not incoming:
            return False
        if len(incoming) < 8:
            changed = False
            for key in incoming:
                changed = self.add(self._point(key)) or changed
            return changed
        before = len(self._keys)
        self._keys = sorted(set(self._keys).union(incoming))
        return len(self._keys) != before

    def __len__(self) -> int:
        return len(self._keys)

    def __bool__(self) -> bool:
        return bool(self._keys)

    def __iter__(self) -> Iterator[Point]:
        for key in self._keys:
            yield self._point(key)

    def __getitem__(self, index: int) -> Point:
        return self._point(self._keys[index])

    def __contains__(self, point: Point) -> bool:
        key = self._key(point)
        index = bisect_left(self._keys, key)
        return index < len(self._keys) and self._keys[index] == key

    def first(self) -> Point:
        return self[0]

    def last(self) -> Point:
        return self[-1]

    def xs(self) -> List[int]:
        return [p[0] for p in self]

    def ys(self) -> List[int]:
        return [p[1] for p in self]
