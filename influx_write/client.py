"""Entry point: holds connection settings and hands out write APIs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

import httpx

from influx_write.clients.influxdb import WriteService
from influx_write.config import Settings, get_settings
from influx_write.exceptions import ConfigurationError, WriteApiClosedError
from influx_write.models import WriteOptions, WritePrecision
from influx_write.write_api import ErrorCallback, SuccessCallback, WriteApi

logger = logging.getLogger(__name__)


class InfluxDBClient:
    """Client for writing to one InfluxDB 2.x server.

    ``org``, ``bucket`` and ``precision`` are defaults; each write may
    override them.  Closing the client closes every write API it created,
    sending their buffered lines first, and then releases the HTTP pool.
    """

    def __init__(
        self,
        url: str,
        token: str,
        org: str | None = None,
        bucket: str | None = None,
        precision: WritePrecision | str = WritePrecision.NS,
        token_type: str = "Token",
        timeout: float = 10.0,
        verify_ssl: bool = True,
        debug: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.org = org
        self.bucket = bucket
        try:
            self.precision = WritePrecision(precision)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown precision {precision!r}") from exc
        self._service = WriteService(
            url=url,
            token=token,
            token_type=token_type,
            timeout=timeout,
            verify_ssl=verify_ssl,
            debug=debug,
            transport=transport,
        )
        self._write_apis: list[WriteApi] = []
        self._closing: asyncio.Future[None] | None = None
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> InfluxDBClient:
        """Build a client from :class:`Settings` (environment by default)."""
        settings = settings or get_settings()
        return cls(
            url=settings.influx_url,
            token=settings.influx_token,
            org=settings.influx_org or None,
            bucket=settings.influx_bucket or None,
            precision=settings.influx_precision,
            token_type=settings.influx_token_type,
            timeout=settings.influx_timeout,
            verify_ssl=settings.influx_verify_ssl,
            debug=settings.influx_debug,
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._service.url

    def create_write_api(
        self,
        write_options: WriteOptions | None = None,
        default_tags: Mapping[str, str] | None = None,
        success_callback: SuccessCallback | None = None,
        error_callback: ErrorCallback | None = None,
        retry_callback: ErrorCallback | None = None,
    ) -> WriteApi:
        """Return a new write API.

        Args:
            write_options:    Mode, batch size, flush interval and retry policy.
                              Synchronous without retries when omitted.
            default_tags:     Tags added to every structured point; a point's
                              own tag of the same key wins.
            success_callback: ``(destination, body)`` after a batch is written.
            error_callback:   ``(destination, body, exception)`` when a batch
                              finally fails.  Failures are logged when unset.
            retry_callback:   ``(destination, body, exception)`` before each retry.

        Raises:
            WriteApiClosedError: the client was closed.
        """
        if self._closed:
            raise WriteApiClosedError("InfluxDB client is closed")
        write_api = WriteApi(
            self._service,
            org=self.org,
            bucket=self.bucket,
            precision=self.precision,
            write_options=write_options,
            default_tags=default_tags,
            success_callback=success_callback,
            error_callback=error_callback,
            retry_callback=retry_callback,
        )
        self._write_apis.append(write_api)
        return write_api

    async def close(self) -> None:
        """Close every write API, then release the HTTP pool.  Safe to call twice."""
        if self._closing is None:
            self._closed = True
            self._closing = asyncio.ensure_future(self._shutdown())
        await asyncio.shield(self._closing)

    async def _shutdown(self) -> None:
        for write_api in self._write_apis:
            await write_api.close()
        self._write_apis.clear()
        await self._service.aclose()
        logger.debug("InfluxDB client for %s closed", self.url)

    async def __aenter__(self) -> InfluxDBClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
