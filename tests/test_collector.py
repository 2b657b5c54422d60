"""Tests for family point collection and name composition."""
from opentsdb_reporter.collector import PointCollector, metric_name
from opentsdb_reporter.point import MetricPoint


def test_metric_name_skips_empty_segments():
    assert metric_name("prefix", "histogram", "count") == "prefix.histogram.count"
    assert metric_name(None, "histogram", "count") == "histogram.count"
    assert metric_name("", "gauge", "value") == "gauge.value"
    assert metric_name("prefix", None, "") == "prefix"
    assert metric_name() == ""


def test_add_metric_chains_and_shares_context():
    points = (
        PointCollector.create_new("prefix.meter", {"foo": "bar"}, 1000)
        .add_metric("count", 1)
        .add_metric("m1", 2.0)
        .build()
    )

    assert points == {
        MetricPoint("prefix.meter.count", 1000, 1, {"foo": "bar"}),
        MetricPoint("prefix.meter.m1", 1000, 2.0, {"foo": "bar"}),
    }


def test_identical_points_collapse():
    collector = PointCollector.create_new("x", None, 5)
    collector.add_metric("count", 1).add_metric("count", 1)
    assert len(collector.build()) == 1

    collector.add_metric("count", 2)
    assert len(collector.build()) == 2


def test_no_prefix():
    points = PointCollector.create_new(None, None, 5).add_metric("count", 3).build()
    (point,) = points
    assert point.name == "count"
    assert point.tags == {}
