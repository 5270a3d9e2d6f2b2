"""
Equivalence table used to resolve label aliases during connected-component analysis.
"""

from typing import Dict, Iterator, Optional, Tuple


class EquivalenceTable:
    """Sparse, auto-growing square table of integer labels.

    ``table[a][b] = m`` records that raw labels ``a`` and ``b`` belong to the
    same component whose smallest known alias is ``m``. Cells that were never
    set are null.
    """

    def __init__(self):
        self._rows: Dict[int, Dict[int, int]] = {}
        self._length = 0

    def __len__(self) -> int:
        return self._length

    def set_length(self, length: int) -> None:
        """Grow the table so that indices ``0..length`` are addressable."""
        if length + 1 > self._length:
            self._length = length + 1

    def set(self, row: int, col: int, value: int) -> None:
        if row < 0 or col < 0:
            raise IndexError(f"negative index ({row}, {col})")
        self.set_length(max(row, col))
        self._rows.setdefault(row, {})[col] = value

    def get(self, row: int, col: int) -> Optional[int]:
        cells = self._rows.get(row)
        if cells is None:
            return None
        return cells.get(col)

    def cells(self) -> Iterator[Tuple[int, int, int]]:
        for row in sorted(self._rows):
            for col in sorted(self._rows[row]):
                yield row, col, self._rows[row][col]

    def _sweep_rows(self) -> bool:
        changed = False
        for cells in self._rows.values():
            low = min(cells.values())
            for col, value in cells.items():
                if value != low:
                    cells[col] = low
                    changed = True
        return changed

    def _sweep_columns(self) -> bool:
        columns: Dict[int, list] = {}
        for row, cells in self._rows.items():
            for col in cells:
                columns.setdefault(col, []).append(row)

        changed = False
        for col, rows in columns.items():
            low = min(self._rows[row][col] for row in rows)
            for row in rows:
                if self._rows[row][col] != low:
                    self._rows[row][col] = low
                    changed = True
        return changed

    def minimize(self) -> int:
        """Minimize entries by row, column, row sweeps until nothing changes.

        A single row/column/row round is enough for shallow alias chains;
        repeating the round until a fixpoint resolves arbitrarily long chains
        and makes the call idempotent.

        Returns:
            Number of rounds performed
        """
        rounds = 0
        while True:
            rounds += 1
            changed = self._sweep_rows()
            changed = self._sweep_columns() or changed
            changed = self._sweep_rows() or changed
            if not changed:
                return rounds

    def representatives(self) -> Dict[int, int]:
        """Map each raw label to the first non-null value of its row."""
        mapping: Dict[int, int] = {}
        for row in range(self._length):
            cells = self._rows.get(row)
            if cells:
                mapping[row] = cells[min(cells)]
        return mapping

    def dense_labels(self) -> Dict[int, int]:
        """Map each raw label to a dense 0-based component index."""
        representatives = self.representatives()
        ordered = sorted(set(representatives.values()))
        sequence = {value: index for index, value in enumerate(ordered)}
        return {raw: sequence[rep] for raw, rep in representatives.items()}
