"""Reporter that converts registry snapshots into OpenTSDB points."""
from abc import ABC, abstractmethod
from collections.abc import Collection
from typing import Any, Dict, Iterable, List, Optional, Set
import logging
import time

from opentsdb_reporter.client import OpenTsdbClient
from opentsdb_reporter.collector import PointCollector, metric_name
from opentsdb_reporter.config import Config, ReporterConfig
from opentsdb_reporter.point import MetricPoint, to_plain
from opentsdb_reporter.registry import MetricFilter, MetricRegistry
from opentsdb_reporter.self_metrics import SelfMetrics
from opentsdb_reporter.snapshot import (
    CounterReading, GaugeReading, HistogramSnapshot, MeterSnapshot,
    MetricReading, RegistrySnapshot, TimerSnapshot,
)
from opentsdb_reporter.units import Clock, DEFAULT_CLOCK

logger = logging.getLogger(__name__)


class Reportable(ABC):
    """Extra source of ready-made points, merged into every report."""

    @abstractmethod
    def report(self) -> Iterable[MetricPoint]:
        pass


def is_empty_collection(value: Any) -> bool:
    """True for empty sets, lists, dicts and the like; strings are not collections here."""
    return (
        isinstance(value, Collection)
        and not isinstance(value, (str, bytes))
        and len(value) == 0
    )


class OpenTsdbReporter:
    """
    Converts every metric of a registry snapshot into OpenTSDB points and
    sends them in one batch per cycle.

    Rates are reported in events per `rate_unit`; durations, recorded in
    nanoseconds, are reported in `duration_unit`.
    """

    def __init__(
        self,
        client: OpenTsdbClient,
        config: Optional[ReporterConfig] = None,
        registry: Optional[MetricRegistry] = None,
        clock: Clock = DEFAULT_CLOCK,
        metric_filter: Optional[MetricFilter] = None,
        self_metrics: Optional[SelfMetrics] = None
    ):
        self.client = client
        self.config = config or ReporterConfig()
        self.registry = registry
        self.clock = clock
        self.metric_filter = metric_filter or self.config.matches
        self.self_metrics = self_metrics
        self.sources: List[Reportable] = []

        self.prefix = self.config.prefix
        self.tags: Optional[Dict[str, str]] = self.config.tags
        self.rate_factor = self.config.rate_unit.seconds
        self.duration_factor = 1.0 / self.config.duration_unit.nanos

    def add_source(self, source: Reportable):
        """Attach an extra point source reported alongside the registry."""
        self.sources.append(source)

    def report(self, snapshot: Optional[RegistrySnapshot] = None) -> Set[MetricPoint]:
        """
        Run one reporting cycle.

        Args:
            snapshot: Metric readings to report; taken from the registry when omitted

        Returns:
            The set of points handed to the client
        """
        report_start = time.time()
        timestamp = self.clock.get_time() // 1000

        if snapshot is None:
            if self.registry is None:
                raise ValueError("No snapshot given and no registry configured")
            snapshot = self.registry.snapshot(self.metric_filter)

        points: Set[MetricPoint] = set()
        for name, reading in snapshot.families():
            points |= self.convert(name, reading, timestamp)

        for source in self.sources:
            try:
                points.update(source.report())
            except Exception as e:
                logger.error(f"Error reading source {type(source).__name__}: {e}", exc_info=True)

        self.client.send(points)

        if self.self_metrics:
            self.self_metrics.record_report(time.time() - report_start, len(points))
        logger.debug(f"Reported {len(points)} points from {len(snapshot)} metrics")

        return points

    def convert(self, name: str, reading: MetricReading, timestamp: int) -> Set[MetricPoint]:
        """Convert one metric reading into its points."""
        if isinstance(reading, GaugeReading):
            # OpenTSDB rejects values that serialize to an empty collection
            if is_empty_collection(to_plain(reading.value)):
                return set()
            return {self._build_gauge(name, reading, timestamp)}
        elif isinstance(reading, CounterReading):
            return {self._build_counter(name, reading, timestamp)}
        elif isinstance(reading, HistogramSnapshot):
            return self._build_histogram(name, reading, timestamp)
        elif isinstance(reading, MeterSnapshot):
            return self._build_meter(name, reading, timestamp)
        elif isinstance(reading, TimerSnapshot):
            return self._build_timer(name, reading, timestamp)
        else:
            raise TypeError(f"Unknown metric reading for '{name}': {type(reading).__name__}")

    def convert_rate(self, rate: float) -> float:
        return rate * self.rate_factor

    def convert_duration(self, duration: float) -> float:
        return duration * self.duration_factor

    def _build_gauge(self, name: str, gauge: GaugeReading, timestamp: int) -> MetricPoint:
        return (
            MetricPoint.named(metric_name(self.prefix, name, "value"))
            .with_value(gauge.value)
            .with_timestamp(timestamp)
            .with_tags(self.tags)
            .build()
        )

    def _build_counter(self, name: str, counter: CounterReading, timestamp: int) -> MetricPoint:
        return (
            MetricPoint.named(metric_name(self.prefix, name, "count"))
            .with_timestamp(timestamp)
            .with_value(counter.count)
            .with_tags(self.tags)
            .build()
        )

    def _build_histogram(self, name: str, snapshot: HistogramSnapshot, timestamp: int) -> Set[MetricPoint]:
        collector = PointCollector.create_new(metric_name(self.prefix, name), self.tags, timestamp)

        return (
            collector
            .add_metric("count", snapshot.count)
            .add_metric("max", snapshot.max)
            .add_metric("min", snapshot.min)
            .add_metric("mean", snapshot.mean)
            .add_metric("stddev", snapshot.stddev)
            .add_metric("median", snapshot.median)
            .add_metric("p75", snapshot.p75)
            .add_metric("p95", snapshot.p95)
            .add_metric("p98", snapshot.p98)
            .add_metric("p99", snapshot.p99)
            .add_metric("p999", snapshot.p999)
            .build()
        )

    def _build_meter(self, name: str, meter: MeterSnapshot, timestamp: int) -> Set[MetricPoint]:
        collector = PointCollector.create_new(metric_name(self.prefix, name), self.tags, timestamp)

        return (
            collector
            .add_metric("count", meter.count)
            .add_metric("mean_rate", self.convert_rate(meter.mean_rate))
            .add_metric("m1", self.convert_rate(meter.m1_rate))
            .add_metric("m5", self.convert_rate(meter.m5_rate))
            .add_metric("m15", self.convert_rate(meter.m15_rate))
            .build()
        )

    def _build_timer(self, name: str, timer: TimerSnapshot, timestamp: int) -> Set[MetricPoint]:
        collector = PointCollector.create_new(metric_name(self.prefix, name), self.tags, timestamp)
        durations = timer.durations

        return (
            collector
            .add_metric("count", timer.count)
            .add_metric("mean_rate", self.convert_rate(timer.mean_rate))
            .add_metric("m1", self.convert_rate(timer.m1_rate))
            .add_metric("m5", self.convert_rate(timer.m5_rate))
            .add_metric("m15", self.convert_rate(timer.m15_rate))
            .add_metric("max", self.convert_duration(durations.max))
            .add_metric("min", self.convert_duration(durations.min))
            .add_metric("mean", self.convert_duration(durations.mean))
            .add_metric("stddev", self.convert_duration(durations.stddev))
            .add_metric("median", self.convert_duration(durations.median))
            .add_metric("p75", self.convert_duration(durations.p75))
            .add_metric("p95", self.convert_duration(durations.p95))
            .add_metric("p98", self.convert_duration(durations.p98))
            .add_metric("p99", self.convert_duration(durations.p99))
            .add_metric("p999", self.convert_duration(durations.p999))
            .build()
        )


def create_client(config: Config, self_metrics: Optional[SelfMetrics] = None) -> OpenTsdbClient:
    """Build the HTTP client described by the opentsdb section of the config."""
    return (
        OpenTsdbClient.for_service(config.opentsdb.base_url)
        .with_connect_timeout(config.opentsdb.connect_timeout_ms)
        .with_read_timeout(config.opentsdb.read_timeout_ms)
        .with_batch_size_limit(config.opentsdb.batch_size)
        .with_self_metrics(self_metrics)
        .create()
    )


def create_reporter(
    config: Config,
    registry: MetricRegistry,
    clock: Clock = DEFAULT_CLOCK,
    self_metrics: Optional[SelfMetrics] = None
) -> OpenTsdbReporter:
    """Factory function wiring a client and reporter from configuration."""
    client = create_client(config, self_metrics)
    return OpenTsdbReporter(
        client,
        config.reporter,
        registry=registry,
        clock=clock,
        self_metrics=self_metrics
    )
