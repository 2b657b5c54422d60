"""Shared test doubles."""
import json
from typing import List

import httpx
import pytest


class FakeClock:
    """Clock with manually controlled wall time (ms) and tick (ns)."""

    def __init__(self, time_ms: int = 0, tick_ns: int = 0):
        self.time_ms = time_ms
        self.tick_ns = tick_ns

    def get_time(self) -> int:
        return self.time_ms

    def get_tick(self) -> int:
        return self.tick_ns


class RecordingServer:
    """httpx transport handler that records every request it receives."""

    def __init__(self, status_code: int = 204):
        self.status_code = status_code
        self.requests: List[httpx.Request] = []
        self.fail_on: List[int] = []  # request indexes that raise a transport error

    def __call__(self, request: httpx.Request) -> httpx.Response:
        index = len(self.requests)
        self.requests.append(request)
        if index in self.fail_on:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.status_code)

    def bodies(self) -> List[list]:
        return [json.loads(r.content) for r in self.requests]

    def http_client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self), base_url="http://tsdb.local:4242")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def server():
    return RecordingServer()
