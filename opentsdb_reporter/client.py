"""HTTP client for the OpenTSDB /api/put endpoint."""
from typing import Iterable, List, Optional, Union
import logging

import httpx

from opentsdb_reporter.point import MetricPoint
from opentsdb_reporter.self_metrics import SelfMetrics

logger = logging.getLogger(__name__)

# 0 sends every point set in a single request
DEFAULT_BATCH_SIZE_LIMIT = 0

CONN_TIMEOUT_DEFAULT_MS = 5000
READ_TIMEOUT_DEFAULT_MS = 5000

PUT_PATH = "/api/put"


class OpenTsdbClient:
    """
    Sends point sets to OpenTSDB, one POST per chunk.

    The batch size limit is fixed at construction. Use
    `with_batch_size_limit` to derive a client with a different limit.
    """

    def __init__(
        self,
        http_client: httpx.Client,
        batch_size_limit: int = DEFAULT_BATCH_SIZE_LIMIT,
        owns_http_client: bool = False,
        self_metrics: Optional[SelfMetrics] = None
    ):
        if batch_size_limit < 0:
            raise ValueError(f"batch_size_limit must be >= 0, got {batch_size_limit}")

        self._http = http_client
        self._owns_http_client = owns_http_client
        self.batch_size_limit = batch_size_limit
        self.self_metrics = self_metrics

    @staticmethod
    def for_service(base_url: str) -> "ClientBuilder":
        """Start configuring a client for the OpenTSDB server at base_url."""
        return ClientBuilder(base_url)

    @classmethod
    def create(
        cls,
        http_client: httpx.Client,
        batch_size_limit: int = DEFAULT_BATCH_SIZE_LIMIT,
        self_metrics: Optional[SelfMetrics] = None
    ) -> "OpenTsdbClient":
        """Wrap an already configured httpx client. The caller keeps ownership of it."""
        return cls(http_client, batch_size_limit, owns_http_client=False, self_metrics=self_metrics)

    def with_batch_size_limit(self, batch_size_limit: int) -> "OpenTsdbClient":
        """Return a client sharing this transport with a different batch size limit."""
        return OpenTsdbClient(
            self._http,
            batch_size_limit,
            owns_http_client=False,
            self_metrics=self.self_metrics
        )

    def send(self, points: Union[MetricPoint, Iterable[MetricPoint]]):
        """
        Send one point or a set of points.

        With a positive batch size limit, sets larger than the limit are split
        into chunks of at most that many points. Failures are logged per
        chunk and never raised.
        """
        if isinstance(points, MetricPoint):
            points = {points}
        elif not isinstance(points, (set, frozenset)):
            points = set(points)

        if self.batch_size_limit > 0 and len(points) > self.batch_size_limit:
            chunk: List[MetricPoint] = []
            for point in points:
                chunk.append(point)
                if len(chunk) >= self.batch_size_limit:
                    self._send_chunk(chunk)
                    chunk = []
            # Empty when the set size is an exact multiple of the limit
            self._send_chunk(chunk)
        else:
            self._send_chunk(list(points))

    def _send_chunk(self, chunk: List[MetricPoint]):
        """POST one chunk. OpenTSDB rejects empty bodies, so empty chunks are skipped."""
        if not chunk:
            return

        try:
            body = [point.to_json() for point in chunk]
            response = self._http.post(PUT_PATH, json=body)
            logger.debug(f"Sent {len(chunk)} points to OpenTSDB, status {response.status_code}")
            if self.self_metrics:
                self.self_metrics.record_request(len(chunk))
        except Exception as e:
            logger.error(f"Send to OpenTSDB endpoint failed: {e}", exc_info=True)
            if self.self_metrics:
                self.self_metrics.record_request_error()

    def close(self):
        """Close the underlying transport if this client created it."""
        if self._owns_http_client:
            self._http.close()

    def __enter__(self) -> "OpenTsdbClient":
        return self

    def __exit__(self, *args):
        self.close()


class ClientBuilder:
    """Collects connection settings for an OpenTsdbClient."""

    def __init__(self, base_url: str):
        self.base_url = base_url
        self.connect_timeout_ms = CONN_TIMEOUT_DEFAULT_MS
        self.read_timeout_ms = READ_TIMEOUT_DEFAULT_MS
        self.batch_size_limit = DEFAULT_BATCH_SIZE_LIMIT
        self.self_metrics: Optional[SelfMetrics] = None

    def with_connect_timeout(self, connect_timeout_ms: int) -> "ClientBuilder":
        self.connect_timeout_ms = connect_timeout_ms
        return self

    def with_read_timeout(self, read_timeout_ms: int) -> "ClientBuilder":
        self.read_timeout_ms = read_timeout_ms
        return self

    def with_batch_size_limit(self, batch_size_limit: int) -> "ClientBuilder":
        self.batch_size_limit = batch_size_limit
        return self

    def with_self_metrics(self, self_metrics: Optional[SelfMetrics]) -> "ClientBuilder":
        self.self_metrics = self_metrics
        return self

    def create(self) -> OpenTsdbClient:
        connect_s = self.connect_timeout_ms / 1000
        read_s = self.read_timeout_ms / 1000
        timeout = httpx.Timeout(connect=connect_s, read=read_s, write=read_s, pool=connect_s)

        http_client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"}
        )
        logger.info(
            f"OpenTSDB client for {self.base_url} "
            f"(connect timeout {self.connect_timeout_ms}ms, read timeout {self.read_timeout_ms}ms, "
            f"batch size limit {self.batch_size_limit or 'unlimited'})"
        )
        return OpenTsdbClient(
            http_client,
            self.batch_size_limit,
            owns_http_client=True,
            self_metrics=self.self_metrics
        )
