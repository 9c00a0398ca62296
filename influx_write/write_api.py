"""Write API: synchronous writes or background batching.

In synchronous mode every ``write`` call is one HTTP request and errors are
raised to the caller.

In batching mode ``write`` only encodes and enqueues.  A single consumer task
owns one buffer per :class:`Destination`; it sends a buffer as soon as it
holds ``batch_size`` lines and sends all buffers every ``flush_interval``
milliseconds.  Batches are sent one at a time, so lines for a destination
reach the server in the order they were written.  Failures go to the error
callback, or to the log when none is set.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping
from typing import Any

from influx_write.clients.influxdb import WriteService
from influx_write.exceptions import (
    ApiError,
    ConfigurationError,
    InfluxDBError,
    TransportError,
    WriteApiClosedError,
)
from influx_write.line_protocol import ensure_encodable, serialize, to_body
from influx_write.models import Destination, WriteOptions, WritePrecision, WriteType
from influx_write.retry import RetryPolicy

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[Destination, str], Any]
ErrorCallback = Callable[[Destination, str, Exception], Any]


class _Flush:
    """Queue marker: send everything buffered, then resolve ``done``."""

    __slots__ = ("done",)

    def __init__(self, done: asyncio.Future[None]) -> None:
        self.done = done


_CLOSE = object()


class WriteApi:
    """Writes records to one InfluxDB server.  Create via ``InfluxDBClient.create_write_api``."""

    def __init__(
        self,
        service: WriteService,
        org: str | None = None,
        bucket: str | None = None,
        precision: WritePrecision = WritePrecision.NS,
        write_options: WriteOptions | None = None,
        default_tags: Mapping[str, str] | None = None,
        success_callback: SuccessCallback | None = None,
        error_callback: ErrorCallback | None = None,
        retry_callback: ErrorCallback | None = None,
    ) -> None:
        self._service = service
        self._org = org
        self._bucket = bucket
        self._precision = WritePrecision(precision)
        self._options = write_options or WriteOptions()
        self._default_tags = dict(default_tags or {})
        self._retry = RetryPolicy.from_options(self._options)
        self._success_callback = success_callback
        self._error_callback = error_callback
        self._retry_callback = retry_callback

        self._queue: asyncio.Queue[Any] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._closing: asyncio.Future[None] | None = None
        self._closed = False

    @property
    def write_options(self) -> WriteOptions:
        return self._options

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> WriteApi:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ── Public API ────────────────────────────────────────────────────────────

    async def write(
        self,
        data: Any,
        precision: WritePrecision | str | None = None,
        bucket: str | None = None,
        org: str | None = None,
    ) -> None:
        """Write one record or a collection of records.

        Args:
            data:      Line-protocol ``str``/``bytes``, :class:`Point`, a mapping
                       with ``name``/``tags``/``fields``/``time``, or an iterable
                       mixing them.  ``None`` entries are skipped.
            precision: Timestamp precision; defaults to the client precision.
            bucket:    Target bucket; defaults to the client bucket.
            org:       Target organization; defaults to the client org.

        Raises:
            InvalidPointError: a record cannot be encoded.  Nothing is sent.
            WriteApiClosedError: the API was closed.
            ApiError, TransportError: synchronous mode only.
        """
        if self._closed:
            raise WriteApiClosedError("Write API is closed")
        destination = self._destination(precision, bucket, org)
        lines = serialize(data, destination.precision, self._default_tags)
        if not lines:
            return None

        if self._options.write_type is WriteType.BATCHING:
            queue = self._ensure_consumer()
            for line in lines:
                queue.put_nowait((destination, line))
            return None

        await self._send(destination, to_body(lines))
        return None

    async def write_raw(
        self,
        payload: str,
        precision: WritePrecision | str | None = None,
        bucket: str | None = None,
        org: str | None = None,
    ) -> None:
        """Send an already encoded line-protocol body as-is, bypassing any batching."""
        if self._closed:
            raise WriteApiClosedError("Write API is closed")
        destination = self._destination(precision, bucket, org)
        if payload:
            await self._send(destination, ensure_encodable(payload))
        return None

    async def flush(self) -> None:
        """Send everything buffered so far.  No-op in synchronous mode."""
        if self._queue is None or self._consumer is None or self._consumer.done():
            return
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Flush(done))
        await done

    async def close(self) -> None:
        """Stop the timer and send all remaining lines.

        Safe to call more than once: every call waits for the same drain, and
        buffered lines are sent only once.
        """
        if self._closing is None:
            self._closed = True
            self._closing = asyncio.ensure_future(self._drain())
        await asyncio.shield(self._closing)

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _drain(self) -> None:
        if self._queue is None or self._consumer is None:
            return
        if self._consumer.done():
            # Stopped earlier; _abandon has already reported what it left behind.
            if not self._consumer.cancelled() and self._consumer.exception() is not None:
                logger.error("Batching consumer had failed: %r", self._consumer.exception())
            return
        self._queue.put_nowait(_CLOSE)
        try:
            await self._consumer
        except Exception:
            logger.exception("Batching consumer failed before close")
            return
        logger.debug("Batching write API closed")

    def _destination(
        self,
        precision: WritePrecision | str | None,
        bucket: str | None,
        org: str | None,
    ) -> Destination:
        bucket = bucket or self._bucket
        org = org or self._org
        if not bucket:
            raise ConfigurationError("No bucket given for write and no default bucket configured")
        if not org:
            raise ConfigurationError("No org given for write and no default org configured")
        try:
            resolved = WritePrecision(precision) if precision is not None else self._precision
        except ValueError as exc:
            raise ConfigurationError(f"Unknown precision {precision!r}") from exc
        return Destination(org=org, bucket=bucket, precision=resolved)

    async def _send(self, destination: Destination, body: str) -> None:
        attempt = 0
        while True:
            try:
                await self._service.post_write(
                    body, destination.org, destination.bucket, destination.precision
                )
                return
            except (ApiError, TransportError) as exc:
                if not self._retry.should_retry(exc, attempt):
                    raise
                delay = self._retry.delay(attempt, exc)
                attempt += 1
                logger.warning(
                    "Write to bucket %s failed (%s) – retry %d/%d in %.3fs",
                    destination.bucket,
                    exc,
                    attempt,
                    self._retry.max_retries,
                    delay,
                )
                await self._notify(self._retry_callback, destination, body, exc)
                await asyncio.sleep(delay)

    def _ensure_consumer(self) -> asyncio.Queue[Any]:
        if self._consumer is not None and self._consumer.done():
            if not self._consumer.cancelled() and self._consumer.exception() is not None:
                logger.error(
                    "Batching consumer stopped (%r); starting a new one",
                    self._consumer.exception(),
                )
            else:
                logger.warning("Batching consumer stopped; starting a new one")
            self._consumer = None
        if self._queue is None or self._consumer is None:
            self._queue = asyncio.Queue()
            self._consumer = asyncio.create_task(self._run(self._queue))
        return self._queue

    async def _run(self, queue: asyncio.Queue[Any]) -> None:
        buffers: dict[Destination, list[str]] = {}
        try:
            await self._consume(queue, buffers)
        finally:
            self._abandon(queue, buffers)

    def _abandon(self, queue: asyncio.Queue[Any], buffers: dict[Destination, list[str]]) -> None:
        """Fail pending flushes and report lines left behind by a stopped consumer."""
        lost = sum(len(lines) for lines in buffers.values())
        while not queue.empty():
            item = queue.get_nowait()
            if isinstance(item, _Flush):
                if not item.done.done():
                    item.done.set_exception(InfluxDBError("Batching consumer stopped before flush"))
            elif item is not _CLOSE:
                lost += 1
        if lost:
            logger.error("Batching consumer stopped with %d unsent line(s)", lost)

    async def _consume(
        self, queue: asyncio.Queue[Any], buffers: dict[Destination, list[str]]
    ) -> None:
        loop = asyncio.get_running_loop()
        interval = self._options.flush_interval / 1000
        deadline = loop.time() + interval

        while True:
            try:
                item = await asyncio.wait_for(queue.get(), max(deadline - loop.time(), 0))
            except asyncio.TimeoutError:
                await self._flush_buffers(buffers)
                deadline = loop.time() + interval
                continue

            if item is _CLOSE:
                await self._flush_buffers(buffers)
                return
            if isinstance(item, _Flush):
                try:
                    await self._flush_buffers(buffers)
                except BaseException:
                    if not item.done.done():
                        item.done.set_exception(
                            InfluxDBError("Batching consumer stopped before flush")
                        )
                    raise
                if not item.done.done():
                    item.done.set_result(None)
                continue

            destination, line = item
            batch = buffers.setdefault(destination, [])
            batch.append(line)
            if len(batch) >= self._options.batch_size:
                del buffers[destination]
                await self._send_batch(destination, batch)

    async def _flush_buffers(self, buffers: dict[Destination, list[str]]) -> None:
        while buffers:
            destination = next(iter(buffers))
            await self._send_batch(destination, buffers.pop(destination))

    async def _send_batch(self, destination: Destination, lines: list[str]) -> None:
        body = to_body(lines)
        try:
            await self._send(destination, body)
        except Exception as exc:
            # The consumer must survive any failure of a single batch.
            if self._error_callback is None:
                logger.error(
                    "Failed to write batch of %d line(s) to bucket %s (org %s): %r",
                    len(lines),
                    destination.bucket,
                    destination.org,
                    exc,
                    exc_info=not isinstance(exc, InfluxDBError),
                )
            await self._notify(self._error_callback, destination, body, exc)
            return
        logger.debug("Wrote batch of %d line(s) to bucket %s", len(lines), destination.bucket)
        await self._notify(self._success_callback, destination, body)

    @staticmethod
    async def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
        """Call *callback*, awaiting it when it is a coroutine function."""
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Write callback %r raised", callback)
