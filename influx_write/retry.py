"""Opt-in retry policy for failed writes."""

from __future__ import annotations

import random
from dataclasses import dataclass

from influx_write.exceptions import ApiError, TransportError
from influx_write.models import WriteOptions

# Statuses InfluxDB uses for "try again later"
RETRYABLE_STATUSES = frozenset({429, 503})


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 0
    retry_interval: int = 5000
    max_retry_delay: int = 125_000
    exponential_base: int = 2
    jitter_interval: int = 0

    @classmethod
    def from_options(cls, options: WriteOptions) -> RetryPolicy:
        return cls(
            max_retries=options.max_retries,
            retry_interval=options.retry_interval,
            max_retry_delay=options.max_retry_delay,
            exponential_base=options.exponential_base,
            jitter_interval=options.jitter_interval,
        )

    def is_retryable(self, exc: Exception) -> bool:
        if isinstance(exc, TransportError):
            return True
        return isinstance(exc, ApiError) and exc.status in RETRYABLE_STATUSES

    def should_retry(self, exc: Exception, attempt: int) -> bool:
        """Whether the failure of 0-based *attempt* may be retried."""
        return attempt < self.max_retries and self.is_retryable(exc)

    def delay(self, attempt: int, exc: Exception | None = None) -> float:
        """Seconds to wait before retrying after the failure of *attempt*.

        A ``Retry-After`` header (seconds) on an :class:`ApiError` replaces the
        exponential backoff; jitter is added either way.
        """
        retry_after = _retry_after(exc)
        if retry_after is not None:
            delay_ms = retry_after * 1000
        else:
            delay_ms = min(
                self.retry_interval * self.exponential_base**attempt,
                self.max_retry_delay,
            )
        if self.jitter_interval:
            delay_ms += random.uniform(0, self.jitter_interval)
        return delay_ms / 1000


def _retry_after(exc: Exception | None) -> float | None:
    if not isinstance(exc, ApiError):
        return None
    value = exc.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None
