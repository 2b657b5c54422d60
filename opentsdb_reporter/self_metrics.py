"""Self-monitoring metrics for the reporter, exposed in Prometheus format."""
from typing import Optional
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest


class SelfMetrics:
    """Counters and timings describing what the reporter has sent."""

    def __init__(self, registry: Optional[CollectorRegistry] = None, prefix: str = ""):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.points_sent_total = Counter(
            f"{prefix}reporter_points_sent_total",
            "Total number of points handed to OpenTSDB",
            registry=registry
        )

        self.requests_total = Counter(
            f"{prefix}reporter_requests_total",
            "Total number of /api/put requests by outcome",
            ["outcome"],
            registry=registry
        )

        self.report_duration_seconds = Histogram(
            f"{prefix}reporter_report_duration_seconds",
            "Duration of each reporting cycle in seconds",
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0, 10.0],
            registry=registry
        )

        self.last_report_points = Gauge(
            f"{prefix}reporter_last_report_points",
            "Number of points produced by the most recent reporting cycle",
            registry=registry
        )

    def record_request(self, points: int):
        """Record a successful chunk POST."""
        self.requests_total.labels(outcome="success").inc()
        self.points_sent_total.inc(points)

    def record_request_error(self):
        """Record a failed chunk POST."""
        self.requests_total.labels(outcome="error").inc()

    def record_report(self, duration: float, points: int):
        """Record one completed reporting cycle."""
        self.report_duration_seconds.observe(duration)
        self.last_report_points.set(points)

    def render(self) -> bytes:
        """Render all self-metrics in the Prometheus text format."""
        return generate_latest(self.registry)
