"""Tests for raster memory budgeting."""

from __future__ import annotations

import pytest

from rulier.exceptions import ResourceExhaustedError
from rulier.memory_manager import MemoryManager, calculate_optimal_workers


def test_small_raster_fits():
    manager = MemoryManager(1024 * 1024)
    assert manager.check_raster_budget((100, 100)) < 1


def test_oversized_dimension_is_rejected():
    manager = MemoryManager()
    with pytest.raises(ResourceExhaustedError):
        manager.check_raster_budget((20000, 10), max_dimension=12000)


def test_budget_beyond_limit_is_rejected():
    manager = MemoryManager(1)
    with pytest.raises(ResourceExhaustedError) as excinfo:
        manager.check_raster_budget((4000, 4000))
    assert excinfo.value.required_mb > 900


def test_memory_guard_converts_memory_error():
    manager = MemoryManager()
    with pytest.raises(ResourceExhaustedError):
        with manager.memory_guard("test"):
            raise MemoryError


def test_optimal_workers_is_at_least_one():
    assert calculate_optimal_workers(10) == 1
    assert calculate_optimal_workers(10 ** 6) >= 1
