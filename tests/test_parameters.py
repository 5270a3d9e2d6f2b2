"""Tests for detector parameters and the preference file."""

from __future__ import annotations

import pytest

from rulier.exceptions import InvalidParameterError
from rulier.filters import DIRECTIONAL_PROFILE, ZERO_TRIADS, create_detector
from rulier.parameters import INTEGER, REAL, Parameter, ParameterSet, load_preferences, save_preferences
from rulier.zero_triads import KEY_OFF, KEY_PART, KEY_TOLERANCE


def test_values_follow_parameter_kind():
    parameters = ParameterSet([Parameter("n", INTEGER, 0, 10, "3"), Parameter("x", REAL, 0, 1)])
    assert parameters.get("n") == 3
    assert parameters.get("x") is None
    parameters.set("x", "0.25")
    assert parameters.get("x") == 0.25
    assert str(parameters) == "n: 3, x: 0.2500"


def test_validate_names_every_undefined_value():
    parameters = ParameterSet([
        Parameter("a", INTEGER, 0, 10, 11),
        Parameter("b", REAL, 0, 1, 0.5),
        Parameter("c", REAL, 0, 1),
    ])
    with pytest.raises(InvalidParameterError) as excinfo:
        parameters.validate()
    assert excinfo.value.names == ["a", "c"]


def test_duplicate_and_unknown_names():
    parameters = ParameterSet([Parameter("a", INTEGER, 0, 1, 0)])
    with pytest.raises(ValueError):
        parameters.add(Parameter("a", INTEGER, 0, 1, 0))
    with pytest.raises(KeyError):
        parameters.get("b")
    with pytest.raises(ValueError):
        Parameter("z", "complex", 0, 1)


def test_copy_is_independent():
    parameters = ParameterSet([Parameter("a", INTEGER, 0, 10, 2)])
    clone = parameters.copy()
    clone.set("a", 7)
    assert parameters.get("a") == 2


def test_preferences_round_trip(tmp_path):
    path = tmp_path / "filters.pref"
    tuned = create_detector(ZERO_TRIADS)
    tuned.parameters.update({KEY_TOLERANCE: 6, KEY_OFF: -1, KEY_PART: 12.5})
    tuned.parameters[KEY_PART].maximum = 50.0
    save_preferences(path, [tuned, create_detector(DIRECTIONAL_PROFILE)])

    fresh = create_detector(ZERO_TRIADS)
    assert load_preferences(path, [fresh]) == 1
    assert fresh.parameters.values() == {KEY_TOLERANCE: 6, KEY_OFF: -1, KEY_PART: 12.5}
    assert fresh.parameters[KEY_PART].maximum == 50.0


def test_missing_preferences_file(tmp_path):
    assert load_preferences(tmp_path / "absent.pref", [create_detector(ZERO_TRIADS)]) == 0
