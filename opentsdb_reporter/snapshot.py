"""Point-in-time readings of registry metrics, as consumed by the reporter."""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Tuple, Union


@dataclass(frozen=True)
class GaugeReading:
    value: Any


@dataclass(frozen=True)
class CounterReading:
    count: int


@dataclass(frozen=True)
class HistogramSnapshot:
    """Statistical summary of a sample distribution."""
    count: int
    max: float
    min: float
    mean: float
    stddev: float
    median: float
    p75: float
    p95: float
    p98: float
    p99: float
    p999: float


@dataclass(frozen=True)
class MeterSnapshot:
    """Event count and throughput; rates are events per second."""
    count: int
    mean_rate: float
    m1_rate: float
    m5_rate: float
    m15_rate: float


@dataclass(frozen=True)
class TimerSnapshot:
    """Meter rates plus a duration distribution measured in nanoseconds."""
    count: int
    mean_rate: float
    m1_rate: float
    m5_rate: float
    m15_rate: float
    durations: HistogramSnapshot


MetricReading = Union[GaugeReading, CounterReading, HistogramSnapshot, MeterSnapshot, TimerSnapshot]


def _sorted(mapping: Dict[str, Any]) -> Dict[str, Any]:
    return dict(sorted(mapping.items()))


@dataclass
class RegistrySnapshot:
    """All metric readings of one reporting cycle, keyed and ordered by name."""
    gauges: Dict[str, GaugeReading] = field(default_factory=dict)
    counters: Dict[str, CounterReading] = field(default_factory=dict)
    histograms: Dict[str, HistogramSnapshot] = field(default_factory=dict)
    meters: Dict[str, MeterSnapshot] = field(default_factory=dict)
    timers: Dict[str, TimerSnapshot] = field(default_factory=dict)

    def __post_init__(self):
        self.gauges = _sorted(self.gauges)
        self.counters = _sorted(self.counters)
        self.histograms = _sorted(self.histograms)
        self.meters = _sorted(self.meters)
        self.timers = _sorted(self.timers)

    def families(self) -> Iterator[Tuple[str, MetricReading]]:
        """Yield every (name, reading) pair: gauges, counters, histograms, meters, then timers."""
        for mapping in (self.gauges, self.counters, self.histograms, self.meters, self.timers):
            yield from mapping.items()

    def __len__(self) -> int:
        return (
            len(self.gauges) + len(self.counters) + len(self.histograms)
            + len(self.meters) + len(self.timers)
        )
