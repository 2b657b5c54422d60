"""In-process metric registry producing snapshots for the reporter."""
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging
import math
import threading
from contextlib import contextmanager

import numpy as np

from opentsdb_reporter.units import Clock, DEFAULT_CLOCK
from opentsdb_reporter.snapshot import (
    CounterReading, GaugeReading, HistogramSnapshot, MeterSnapshot,
    RegistrySnapshot, TimerSnapshot,
)

logger = logging.getLogger(__name__)

DEFAULT_RESERVOIR_SIZE = 1028

# Moving averages are updated on a fixed 5 second tick
TICK_INTERVAL_S = 5
TICK_INTERVAL_NS = TICK_INTERVAL_S * 1_000_000_000

QUANTILES = [0.5, 0.75, 0.95, 0.98, 0.99, 0.999]


def summarize(values: Sequence[float], count: int) -> HistogramSnapshot:
    """Compute count, extremes, moments and quantiles of sampled values."""
    if not values:
        return HistogramSnapshot(count, 0, 0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    arr = np.asarray(values, dtype=float)
    # Position q * (n + 1), interpolated between neighbours
    median, p75, p95, p98, p99, p999 = (
        float(q) for q in np.quantile(arr, QUANTILES, method="weibull")
    )
    stddev = float(np.std(arr, ddof=1)) if len(arr) > 1 else 0.0

    return HistogramSnapshot(
        count=count,
        max=max(values),
        min=min(values),
        mean=float(np.mean(arr)),
        stddev=stddev,
        median=median,
        p75=p75,
        p95=p95,
        p98=p98,
        p99=p99,
        p999=p999,
    )


class Counter:
    """Incrementing and decrementing count."""

    def __init__(self):
        self._count = 0
        self._lock = threading.Lock()

    def inc(self, n: int = 1):
        with self._lock:
            self._count += n

    def dec(self, n: int = 1):
        with self._lock:
            self._count -= n

    @property
    def count(self) -> int:
        return self._count

    def reading(self) -> CounterReading:
        return CounterReading(self._count)


class Gauge:
    """Instantaneous value read from a callable at snapshot time."""

    def __init__(self, fn: Callable[[], Any]):
        self.fn = fn

    @property
    def value(self) -> Any:
        return self.fn()

    def reading(self) -> GaugeReading:
        return GaugeReading(self.fn())


class Histogram:
    """Distribution of values kept in a uniform random sample (Vitter's algorithm R)."""

    def __init__(self, size: int = DEFAULT_RESERVOIR_SIZE, seed: Optional[int] = None):
        self.size = size
        self._count = 0
        self._values: List[float] = []
        self._rng = np.random.default_rng(seed)
        self._lock = threading.Lock()

    def update(self, value: float):
        with self._lock:
            self._count += 1
            if self._count <= self.size:
                self._values.append(value)
            else:
                r = int(self._rng.integers(0, self._count))
                if r < self.size:
                    self._values[r] = value

    @property
    def count(self) -> int:
        return self._count

    def snapshot(self) -> HistogramSnapshot:
        with self._lock:
            values = list(self._values)
            count = self._count
        return summarize(values, count)

    def reading(self) -> HistogramSnapshot:
        return self.snapshot()


class EWMA:
    """Exponentially weighted moving average of a per-second rate."""

    def __init__(self, minutes: int):
        self.alpha = 1 - math.exp(-TICK_INTERVAL_S / 60.0 / minutes)
        self.rate = 0.0
        self.initialized = False
        self._uncounted = 0

    def update(self, n: int):
        self._uncounted += n

    def tick(self):
        instant_rate = self._uncounted / TICK_INTERVAL_S
        self._uncounted = 0
        if self.initialized:
            self.rate += self.alpha * (instant_rate - self.rate)
        else:
            self.rate = instant_rate
            self.initialized = True


class Meter:
    """Event throughput: mean rate and 1, 5 and 15 minute moving averages."""

    def __init__(self, clock: Clock = DEFAULT_CLOCK):
        self.clock = clock
        self._count = 0
        self._m1 = EWMA(1)
        self._m5 = EWMA(5)
        self._m15 = EWMA(15)
        self._start_tick = clock.get_tick()
        self._last_tick = self._start_tick
        self._lock = threading.Lock()

    def mark(self, n: int = 1):
        with self._lock:
            self._tick_if_necessary()
            self._count += n
            for ewma in (self._m1, self._m5, self._m15):
                ewma.update(n)

    def _tick_if_necessary(self):
        new_tick = self.clock.get_tick()
        age = new_tick - self._last_tick
        if age > TICK_INTERVAL_NS:
            self._last_tick = new_tick - age % TICK_INTERVAL_NS
            for _ in range(age // TICK_INTERVAL_NS):
                for ewma in (self._m1, self._m5, self._m15):
                    ewma.tick()

    @property
    def count(self) -> int:
        return self._count

    def snapshot(self) -> MeterSnapshot:
        with self._lock:
            self._tick_if_necessary()
            elapsed_ns = self.clock.get_tick() - self._start_tick
            mean_rate = self._count / (elapsed_ns / 1e9) if self._count and elapsed_ns > 0 else 0.0
            return MeterSnapshot(
                count=self._count,
                mean_rate=mean_rate,
                m1_rate=self._m1.rate,
                m5_rate=self._m5.rate,
                m15_rate=self._m15.rate,
            )

    def reading(self) -> MeterSnapshot:
        return self.snapshot()


class Timer:
    """Meter of events plus a histogram of their durations in nanoseconds."""

    def __init__(self, clock: Clock = DEFAULT_CLOCK, size: int = DEFAULT_RESERVOIR_SIZE):
        self.clock = clock
        self.meter = Meter(clock)
        self.histogram = Histogram(size)

    def update(self, duration_ns: int):
        if duration_ns >= 0:
            self.histogram.update(duration_ns)
            self.meter.mark()

    @contextmanager
    def time(self):
        """Time the enclosed block."""
        start = self.clock.get_tick()
        try:
            yield
        finally:
            self.update(self.clock.get_tick() - start)

    @property
    def count(self) -> int:
        return self.histogram.count

    def snapshot(self) -> TimerSnapshot:
        rates = self.meter.snapshot()
        return TimerSnapshot(
            count=self.histogram.count,
            mean_rate=rates.mean_rate,
            m1_rate=rates.m1_rate,
            m5_rate=rates.m5_rate,
            m15_rate=rates.m15_rate,
            durations=self.histogram.snapshot(),
        )

    def reading(self) -> TimerSnapshot:
        return self.snapshot()


MetricFilter = Callable[[str, Any], bool]


def match_all(name: str, metric: Any) -> bool:
    return True


class MetricRegistry:
    """Named collection of metrics."""

    def __init__(self, clock: Clock = DEFAULT_CLOCK):
        self.clock = clock
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def register(self, name: str, metric: Any) -> Any:
        """Register a metric under a unique name."""
        with self._lock:
            if name in self._metrics:
                raise ValueError(f"A metric named '{name}' already exists")
            self._metrics[name] = metric
        return metric

    def remove(self, name: str) -> bool:
        with self._lock:
            return self._metrics.pop(name, None) is not None

    def _get_or_add(self, name: str, kind: type, factory: Callable[[], Any]) -> Any:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = factory()
                self._metrics[name] = metric
            elif not isinstance(metric, kind):
                raise ValueError(f"'{name}' is already registered as a {type(metric).__name__}")
            return metric

    def counter(self, name: str) -> Counter:
        return self._get_or_add(name, Counter, Counter)

    def histogram(self, name: str) -> Histogram:
        return self._get_or_add(name, Histogram, Histogram)

    def meter(self, name: str) -> Meter:
        return self._get_or_add(name, Meter, lambda: Meter(self.clock))

    def timer(self, name: str) -> Timer:
        return self._get_or_add(name, Timer, lambda: Timer(self.clock))

    def gauge(self, name: str, fn: Callable[[], Any]) -> Gauge:
        return self._get_or_add(name, Gauge, lambda: Gauge(fn))

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._metrics)

    def snapshot(self, metric_filter: Optional[MetricFilter] = None) -> RegistrySnapshot:
        """Read every metric accepted by the filter."""
        metric_filter = metric_filter or match_all
        with self._lock:
            metrics = dict(self._metrics)

        snapshot = RegistrySnapshot()
        for name, metric in sorted(metrics.items()):
            if not metric_filter(name, metric):
                continue

            if isinstance(metric, Gauge):
                try:
                    snapshot.gauges[name] = metric.reading()
                except Exception as e:
                    logger.error(f"Error reading gauge '{name}': {e}")
            elif isinstance(metric, Counter):
                snapshot.counters[name] = metric.reading()
            elif isinstance(metric, Histogram):
                snapshot.histograms[name] = metric.reading()
            elif isinstance(metric, Meter):
                snapshot.meters[name] = metric.reading()
            elif isinstance(metric, Timer):
                snapshot.timers[name] = metric.reading()
            else:
                logger.warning(f"Skipping metric '{name}' of unknown type {type(metric).__name__}")

        return snapshot
