"""InfluxDB v2 HTTP write service.

Posts line protocol to the InfluxDB v2 ``/api/v2/write`` endpoint via httpx and
maps failures onto :mod:`influx_write.exceptions`.
"""

from __future__ import annotations

import logging

import httpx

from influx_write import __version__
from influx_write.exceptions import ApiError, TransportError
from influx_write.models import WritePrecision

logger = logging.getLogger(__name__)

WRITE_PATH = "/api/v2/write"


class WriteService:
    """Async client for the InfluxDB v2 line-protocol write endpoint."""

    def __init__(
        self,
        url: str,
        token: str,
        token_type: str = "Token",
        timeout: float = 10.0,
        verify_ssl: bool = True,
        debug: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._token = token
        self._token_type = token_type
        self._debug = debug
        self._http = httpx.AsyncClient(
            base_url=self._url,
            timeout=timeout,
            verify=verify_ssl,
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._url

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "text/plain; charset=utf-8",
            "Accept": "application/json",
            "User-Agent": f"influx-write/{__version__}",
        }
        if self._token:
            headers["Authorization"] = f"{self._token_type} {self._token}"
        return headers

    async def post_write(
        self,
        body: str,
        org: str,
        bucket: str,
        precision: WritePrecision,
    ) -> None:
        """Write a line-protocol body to *bucket*.

        An empty *body* is not sent.

        Raises:
            TransportError: connection failure or timeout.
            ApiError: on a non-2xx response.
        """
        if not body:
            return None

        if self._debug:
            logger.debug(
                "POST %s%s org=%s bucket=%s precision=%s (%d line(s)):\n%s",
                self._url,
                WRITE_PATH,
                org,
                bucket,
                precision.value,
                body.count("\n") + 1,
                body,
            )

        try:
            resp = await self._http.post(
                WRITE_PATH,
                params={
                    "org": org,
                    "bucket": bucket,
                    "precision": precision.value,
                },
                headers=self._headers(),
                content=body.encode("utf-8"),
            )
        except httpx.RequestError as exc:
            raise TransportError(
                f"InfluxDB unreachable at {self._url}: {exc!r}"
            ) from exc

        if not resp.is_success:
            raise ApiError(resp.status_code, resp.headers, resp.content)
        return None

    async def aclose(self) -> None:
        await self._http.aclose()
