"""Tests for label alias resolution."""

from __future__ import annotations

from rulier.equivalence import EquivalenceTable


def _chained_table() -> EquivalenceTable:
    table = EquivalenceTable()
    for label in range(4):
        table.set(label, label, label)
    # 0 <-> 1 <-> 2 form one component, 3 stands alone
    for low, other in ((0, 1), (1, 2)):
        table.set(low, other, low)
        table.set(other, low, low)
    return table


def test_table_grows_with_indices():
    table = EquivalenceTable()
    table.set(5, 2, 2)
    assert len(table) == 6
    assert table.get(5, 2) == 2
    assert table.get(2, 5) is None


def test_minimize_resolves_chains():
    table = _chained_table()
    table.minimize()

    representatives = table.representatives()
    assert representatives[0] == representatives[1] == representatives[2] == 0
    assert representatives[3] == 3
    assert table.dense_labels() == {0: 0, 1: 0, 2: 0, 3: 1}


def test_minimize_is_idempotent():
    table = _chained_table()
    table.minimize()
    before = list(table.cells())

    assert table.minimize() == 1
    assert list(table.cells()) == before
