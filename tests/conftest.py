"""Shared pytest fixtures and helpers.

The InfluxDB server is replaced by ``FakeInfluxDB``, an ``httpx.MockTransport``
handler that records every request and answers with queued responses
(HTTP 204 when nothing is queued), so tests run without a live server.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

import httpx
import pytest

from influx_write import InfluxDBClient

# ── Constants ─────────────────────────────────────────────────────────────────

URL = "http://localhost:9999"
TOKEN = "my-token"
ORG = "my-org"
BUCKET = "my-bucket"
WRITE_URL = f"{URL}/api/v2/write?org={ORG}&bucket={BUCKET}&precision=ns"

# ── Fake server ───────────────────────────────────────────────────────────────


class FakeInfluxDB:
    """Records requests; replies with queued responses or raises queued errors."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._replies: list[httpx.Response | Callable[[httpx.Request], httpx.Response]] = []

    def reply(self, status: int, content: bytes = b"", headers: dict[str, str] | None = None) -> None:
        self._replies.append(httpx.Response(status, headers=headers, content=content))

    def fail(self, message: str = "connection refused") -> None:
        def _raise(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError(message, request=request)

        self._replies.append(_raise)

    def crash(self, exc: Exception) -> None:
        """Raise a non-httpx exception from inside the transport."""
        def _raise(request: httpx.Request) -> httpx.Response:
            raise exc

        self._replies.append(_raise)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._replies:
            return httpx.Response(204)
        reply = self._replies.pop(0)
        if callable(reply):
            return reply(request)
        return reply

    @property
    def last_request(self) -> httpx.Request | None:
        return self.requests[-1] if self.requests else None

    @property
    def bodies(self) -> list[str]:
        return [r.content.decode("utf-8") for r in self.requests]


async def wait_for_requests(server: FakeInfluxDB, count: int, timeout: float = 2.0) -> None:
    """Yield to the event loop until *server* has seen *count* requests."""
    async def _poll() -> None:
        while len(server.requests) < count:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture()
def influxdb() -> FakeInfluxDB:
    return FakeInfluxDB()


@pytest.fixture()
def make_client(influxdb: FakeInfluxDB) -> Callable[..., InfluxDBClient]:
    def _make(**overrides: object) -> InfluxDBClient:
        kwargs: dict[str, object] = {
            "url": URL,
            "token": TOKEN,
            "org": ORG,
            "bucket": BUCKET,
            "transport": httpx.MockTransport(influxdb),
        }
        kwargs.update(overrides)
        return InfluxDBClient(**kwargs)  # type: ignore[arg-type]

    return _make


@pytest.fixture()
async def client(make_client: Callable[..., InfluxDBClient]) -> AsyncIterator[InfluxDBClient]:
    influx = make_client()
    yield influx
    await influx.close()
