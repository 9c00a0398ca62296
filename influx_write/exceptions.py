"""Exceptions raised by the write pipeline."""

from __future__ import annotations

import httpx


class InfluxDBError(Exception):
    """Base exception for influx_write."""


class InvalidPointError(InfluxDBError):
    """Raised when a record cannot be encoded into line protocol."""


class ConfigurationError(InfluxDBError):
    """Raised when a write has no resolvable org or bucket."""


class WriteApiClosedError(InfluxDBError):
    """Raised when writing through a write API that was already closed."""


class TransportError(InfluxDBError):
    """Connection to InfluxDB failed or timed out."""


class ApiError(InfluxDBError):
    """Raised when InfluxDB answers a write with a non-2xx status.

    The response is kept verbatim: ``status``, ``headers`` (case-insensitive)
    and the raw ``body`` bytes.  The body usually holds a JSON document with
    ``code`` and ``message`` but it is not parsed here.
    """

    def __init__(self, status: int, headers: httpx.Headers, body: bytes) -> None:
        self.status = status
        self.headers = headers
        self.body = body
        super().__init__(f"InfluxDB write failed (HTTP {status}): {self.text}")

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")
