"""Tests for the OpenTSDB HTTP client and its batching."""
import math

import numpy as np
import pytest

from opentsdb_reporter.client import OpenTsdbClient, PUT_PATH
from opentsdb_reporter.point import MetricPoint
from opentsdb_reporter.self_metrics import SelfMetrics


def make_points(n, start=0):
    return {MetricPoint(f"foo{i}", 1000, i, {"host": "web01"}) for i in range(start, start + n)}


def test_send(server):
    """A single point results in one POST to /api/put."""
    client = OpenTsdbClient.create(server.http_client(), batch_size_limit=10)
    client.send(MetricPoint.named("foo").build())

    assert len(server.requests) == 1
    request = server.requests[0]
    assert request.method == "POST"
    assert request.url.path == PUT_PATH
    assert request.headers["content-type"] == "application/json"
    assert server.bodies()[0] == [{"metric": "foo", "timestamp": None, "value": None, "tags": {}}]


def test_send_multiple(server):
    client = OpenTsdbClient.create(server.http_client(), batch_size_limit=10)

    points = {MetricPoint.named("foo").build()}
    client.send(points)
    assert len(server.requests) == 1

    # 20 points with a limit of 10: two more requests
    for i in range(1, 20):
        points.add(MetricPoint.named(f"foo{i}").build())
    client.send(points)
    assert len(server.requests) == 3


@pytest.mark.parametrize("n,limit", [(1, 1), (9, 10), (10, 10), (11, 10), (20, 10), (25, 10), (7, 3), (100, 7)])
def test_chunks_cover_set_exactly(server, n, limit):
    """ceil(n / limit) requests, no empty request, and every point sent once."""
    client = OpenTsdbClient.create(server.http_client(), batch_size_limit=limit)
    points = make_points(n)
    client.send(points)

    bodies = server.bodies()
    assert len(bodies) == math.ceil(n / limit)
    assert all(0 < len(body) <= limit for body in bodies)

    sent = [item["metric"] for body in bodies for item in body]
    assert len(sent) == n
    assert set(sent) == {p.name for p in points}


def test_exact_multiple_does_not_post_trailing_empty_chunk(server):
    client = OpenTsdbClient.create(server.http_client(), batch_size_limit=5)
    client.send(make_points(15))

    assert len(server.requests) == 3
    assert [len(b) for b in server.bodies()] == [5, 5, 5]


def test_unlimited_sends_one_request(server):
    client = OpenTsdbClient.create(server.http_client())
    client.send(make_points(500))

    assert len(server.requests) == 1
    assert len(server.bodies()[0]) == 500


def test_send_empty_set(server):
    client = OpenTsdbClient.create(server.http_client(), batch_size_limit=10)
    client.send(set())

    unlimited = OpenTsdbClient.create(server.http_client())
    unlimited.send(set())

    assert server.requests == []


def test_failed_chunk_does_not_abort_others(server):
    server.fail_on = [0]
    client = OpenTsdbClient.create(server.http_client(), batch_size_limit=2)

    client.send(make_points(6))  # must not raise

    assert len(server.requests) == 3


def test_server_errors_are_not_raised(server):
    server.status_code = 500
    client = OpenTsdbClient.create(server.http_client())
    client.send(make_points(3))
    assert len(server.requests) == 1


def test_serialization_error_is_logged_not_raised(server, caplog):
    client = OpenTsdbClient.create(server.http_client())
    client.send(MetricPoint("bad", 1, object()))

    assert server.requests == []
    assert "Send to OpenTSDB endpoint failed" in caplog.text


def test_duplicate_points_sent_once(server):
    client = OpenTsdbClient.create(server.http_client())
    client.send([MetricPoint("foo", 1, 1), MetricPoint("foo", 1, 1)])
    assert len(server.bodies()[0]) == 1


def test_self_metrics(server):
    self_metrics = SelfMetrics()
    server.fail_on = [1]
    client = OpenTsdbClient.create(server.http_client(), batch_size_limit=2, self_metrics=self_metrics)
    client.send(make_points(5))

    registry = self_metrics.registry
    assert registry.get_sample_value("reporter_requests_total", {"outcome": "success"}) == 2
    assert registry.get_sample_value("reporter_requests_total", {"outcome": "error"}) == 1
    assert registry.get_sample_value("reporter_points_sent_total") == 3


def test_with_batch_size_limit_returns_new_client(server):
    client = OpenTsdbClient.create(server.http_client())
    limited = client.with_batch_size_limit(4)

    assert client.batch_size_limit == 0
    assert limited.batch_size_limit == 4

    limited.send(make_points(8))
    assert len(server.requests) == 2


def test_negative_batch_size_rejected(server):
    with pytest.raises(ValueError):
        OpenTsdbClient.create(server.http_client(), batch_size_limit=-1)


def test_builder():
    client = OpenTsdbClient.for_service("http://foo").with_read_timeout(1).with_connect_timeout(1).create()
    assert client is not None

    timeout = client._http.timeout
    assert timeout.connect == 0.001
    assert timeout.read == 0.001
    client.close()


def test_builder_defaults():
    with OpenTsdbClient.for_service("http://foo:4242").create() as client:
        assert client.batch_size_limit == 0
        assert client._http.timeout.connect == 5.0
        assert client._http.timeout.read == 5.0
        assert str(client._http.base_url).startswith("http://foo:4242")


def test_wrapped_client_is_not_closed(server):
    http_client = server.http_client()
    client = OpenTsdbClient.create(http_client)
    client.close()
    assert not http_client.is_closed


def test_unreachable_server_is_logged(caplog):
    """A real connection failure is swallowed."""
    client = (
        OpenTsdbClient.for_service("http://127.0.0.1:1")
        .with_connect_timeout(200)
        .with_read_timeout(200)
        .create()
    )
    client.send(make_points(2))
    client.close()
    assert "Send to OpenTSDB endpoint failed" in caplog.text



def test_numpy_values_are_sent(server):
    client = OpenTsdbClient.create(server.http_client())
    client.send({
        MetricPoint("queue.depth", 1000, np.int64(3)),
        MetricPoint("load", 1000, np.float64(0.5)),
        MetricPoint("requests.count", 1000, 7),
    })

    (body,) = server.bodies()
    assert {item["metric"]: item["value"] for item in body} == {
        "queue.depth": 3,
        "load": 0.5,
        "requests.count": 7,
    }
