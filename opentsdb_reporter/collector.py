"""Accumulates the points produced by one metric family."""
from typing import Any, Mapping, Optional, Set

from opentsdb_reporter.point import MetricPoint


def metric_name(*parts: Optional[str]) -> str:
    """Join name segments with dots, skipping None and empty segments."""
    return ".".join(part for part in parts if part)


class PointCollector:
    """Builds the sub-metric points of a family under a shared prefix, tags and timestamp."""

    def __init__(self, prefix: Optional[str], tags: Optional[Mapping[str, str]], timestamp: int):
        self.prefix = prefix
        self.tags = tags
        self.timestamp = timestamp
        self.points: Set[MetricPoint] = set()

    @classmethod
    def create_new(
        cls,
        prefix: Optional[str],
        tags: Optional[Mapping[str, str]],
        timestamp: int
    ) -> "PointCollector":
        return cls(prefix, tags, timestamp)

    def add_metric(self, suffix: str, value: Any) -> "PointCollector":
        """Add the point `prefix.suffix`."""
        point = (
            MetricPoint.named(metric_name(self.prefix, suffix))
            .with_timestamp(self.timestamp)
            .with_value(value)
            .with_tags(self.tags)
            .build()
        )
        self.points.add(point)
        return self

    def build(self) -> Set[MetricPoint]:
        return self.points
