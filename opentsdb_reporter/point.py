"""OpenTSDB data point model."""
from collections.abc import Collection
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional
import time

import numpy as np


class InvalidArgumentError(ValueError):
    """Raised when a point is constructed from malformed arguments."""


def to_plain(value: Any) -> Any:
    """Replace numpy scalars and arrays with the equivalent Python values."""
    if isinstance(value, (np.generic, np.ndarray)):
        return value.tolist()
    return value


def _freeze(value: Any) -> Any:
    """Turn container values into hashable equivalents."""
    value = to_plain(value)
    if isinstance(value, Mapping):
        return frozenset((k, _freeze(v)) for k, v in value.items())
    if isinstance(value, (set, frozenset)):
        return frozenset(_freeze(v) for v in value)
    if isinstance(value, Collection) and not isinstance(value, (str, bytes)):
        return tuple(_freeze(v) for v in value)
    try:
        hash(value)
    except TypeError:
        return repr(value)
    return value


def _to_json_value(value: Any) -> Any:
    value = to_plain(value)
    if isinstance(value, Mapping):
        return {k: _to_json_value(v) for k, v in value.items()}
    if isinstance(value, Collection) and not isinstance(value, (str, bytes)):
        return [_to_json_value(v) for v in value]
    return value


@dataclass(frozen=True)
class MetricPoint:
    """
    A single OpenTSDB observation: metric name, timestamp, value and tags.

    Tags are copied into a read-only mapping and numpy values are stored as
    plain Python values, so a point never changes once built.
    """
    name: Optional[str]
    timestamp: Optional[int]
    value: Any
    tags: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "value", to_plain(self.value))
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags or {})))

    def _key(self):
        return self.name, self.timestamp, _freeze(self.value), frozenset(self.tags.items())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetricPoint):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    @staticmethod
    def named(name: Optional[str]) -> "PointBuilder":
        """Start building a point with the given metric name."""
        return PointBuilder(name)

    @classmethod
    def create(cls, name: Optional[str], value: Any, *tags: str) -> "MetricPoint":
        """
        Build a point stamped with the current time.

        Args:
            name: Metric name
            value: Observed value
            tags: Flat tag list: key1, value1, key2, value2...

        Raises:
            InvalidArgumentError: if a tag key has no value
        """
        if len(tags) % 2 != 0:
            raise InvalidArgumentError("tags format: k1, v1, k2, v2...")

        tag_map = {tags[i]: tags[i + 1] for i in range(0, len(tags), 2)}
        return cls(name, int(time.time()), value, tag_map)

    def serialize(self) -> str:
        """Render the telnet-style put command."""
        value = "null" if self.value is None else self.value
        result = f"put {self.name} {self.timestamp} {value}"
        for key, tag_value in self.tags.items():
            result += f" {key}={tag_value}"
        return result

    def to_json(self) -> Dict[str, Any]:
        """Render the object posted to /api/put."""
        return {
            "metric": self.name,
            "timestamp": self.timestamp,
            "value": _to_json_value(self.value),
            "tags": dict(self.tags),
        }


class PointBuilder:
    """Fluent builder for MetricPoint."""

    def __init__(self, name: Optional[str]):
        self._name = name
        self._timestamp: Optional[int] = None
        self._value: Any = None
        self._tags: Dict[str, str] = {}

    def with_value(self, value: Any) -> "PointBuilder":
        self._value = value
        return self

    def with_timestamp(self, timestamp: Optional[int]) -> "PointBuilder":
        self._timestamp = timestamp
        return self

    def with_tags(self, tags: Optional[Mapping[str, str]]) -> "PointBuilder":
        # Tags accumulate across calls; None leaves them untouched
        if tags is not None:
            self._tags.update(tags)
        return self

    def build(self) -> MetricPoint:
        return MetricPoint(self._name, self._timestamp, self._value, dict(self._tags))
