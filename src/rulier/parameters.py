"""
Tunable numeric parameters of the detectors and their preference file.
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union
import gzip
import json
import logging
import math

from .exceptions import InvalidParameterError

logger = logging.getLogger(__name__)

INTEGER = "integer"
REAL = "real"

Number = Union[int, float]


@dataclass
class Parameter:
    """One numeric control of a detector."""

    name: str
    kind: str
    minimum: Number
    maximum: Number
    value: Optional[Number] = None
    description: str = ""

    def __post_init__(self):
        if self.kind not in (INTEGER, REAL):
            raise ValueError(f"unknown parameter kind: {self.kind}")
        if not self.description:
            self.description = self.name

    def coerce(self, value: Any) -> Optional[Number]:
        """Convert ``value`` to this parameter's kind; None stays None."""
        if value is None:
            return None
        if self.kind == INTEGER:
            return int(value)
        return float(value)

    def is_valid(self) -> bool:
        if self.value is None or isinstance(self.value, bool):
            return False
        if not isinstance(self.value, (int, float)) or math.isnan(self.value):
            return False
        return self.minimum <= self.value <= self.maximum

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "min": self.minimum,
            "max": self.maximum,
            "value": self.value,
            "description": self.description,
        }

    def __str__(self) -> str:
        if self.value is None:
            return f"{self.name}: undefined"
        if self.kind == INTEGER:
            return f"{self.name}: {int(self.value)}"
        return f"{self.name}: {self.value:.4f}"


class ParameterSet:
    """Ordered parameters of one detector with get/set-by-name access."""

    def __init__(self, parameters: Iterable[Parameter] = ()):
        self._parameters: List[Parameter] = []
        for parameter in parameters:
            self.add(parameter)

    def add(self, parameter: Parameter) -> None:
        if parameter.name in self:
            raise ValueError(f"duplicate parameter: {parameter.name}")
        parameter.value = parameter.coerce(parameter.value)
        self._parameters.append(parameter)

    def __contains__(self, name: str) -> bool:
        return any(p.name == name for p in self._parameters)

    def __iter__(self) -> Iterator[Parameter]:
        return iter(self._parameters)

    def __len__(self) -> int:
        return len(self._parameters)

    def __getitem__(self, name: str) -> Parameter:
        for parameter in self._parameters:
            if parameter.name == name:
                return parameter
        raise KeyError(name)

    def names(self) -> List[str]:
        return [p.name for p in self._parameters]

    def get(self, name: str) -> Optional[Number]:
        return self[name].value

    def set(self, name: str, value: Any) -> None:
        parameter = self[name]
        try:
            parameter.value = parameter.coerce(value)
        except (TypeError, ValueError):
            # unparsable input leaves the parameter undefined
            parameter.value = None

    def update(self, values: Mapping[str, Any]) -> None:
        for name, value in values.items():
            self.set(name, value)

    def values(self) -> Dict[str, Optional[Number]]:
        return {p.name: p.value for p in self._parameters}

    def copy(self) -> "ParameterSet":
        return ParameterSet(replace(p) for p in self._parameters)

    def validate(self) -> None:
        """Raise a single InvalidParameterError naming every undefined parameter."""
        invalid = [p.name for p in self._parameters if not p.is_valid()]
        if invalid:
            raise InvalidParameterError("정의되지 않았거나 범위를 벗어난 값이 있습니다", invalid)

    def to_list(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self._parameters]

    def __str__(self) -> str:
        return ", ".join(str(p) for p in self._parameters)


def save_preferences(path: Path, detectors: Iterable[Any]) -> None:
    """Store one ``(name, parameters)`` record per detector in a gzip JSON file."""
    records = [{"name": d.name, "parameters": d.parameters.to_list()} for d in detectors]
    with gzip.open(Path(path), "wt", encoding="utf-8") as handle:
        json.dump(records, handle, indent=1)
    logger.info(f"Saved parameters of {len(records)} detectors to {path}")


def load_preferences(path: Path, detectors: Iterable[Any]) -> int:
    """Apply stored bounds and values to matching detectors.

    Unknown detector or parameter names are skipped.

    Returns:
        Number of detectors updated
    """
    path = Path(path)
    if not path.is_file():
        return 0
    with gzip.open(path, "rt", encoding="utf-8") as handle:
        records = json.load(handle)

    by_name = {d.name: d for d in detectors}
    updated = 0
    for record in records:
        detector = by_name.get(record.get("name"))
        if detector is None:
            logger.debug(f"Skipping preferences of unknown detector {record.get('name')!r}")
            continue
        for stored in record.get("parameters", []):
            if stored.get("name") not in detector.parameters:
                continue
            parameter = detector.parameters[stored["name"]]
            parameter.minimum = parameter.coerce(stored.get("min", parameter.minimum))
            parameter.maximum = parameter.coerce(stored.get("max", parameter.maximum))
            detector.parameters.set(parameter.name, stored.get("value"))
        updated += 1
    logger.info(f"Loaded parameters of {updated} detectors from {path}")
    return updated
