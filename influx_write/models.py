"""Pydantic models and enums shared by the write pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
)

# ── Precision / write mode ────────────────────────────────────────────────────


class WritePrecision(str, Enum):
    """Unit of integer timestamps, also sent as the ``precision`` query parameter."""

    NS = "ns"
    US = "us"
    MS = "ms"
    S = "s"

    @property
    def nanoseconds(self) -> int:
        """Length of one unit of this precision in nanoseconds."""
        return _NANOSECONDS[self]


_NANOSECONDS: dict[WritePrecision, int] = {
    WritePrecision.NS: 1,
    WritePrecision.US: 1_000,
    WritePrecision.MS: 1_000_000,
    WritePrecision.S: 1_000_000_000,
}


class WriteType(str, Enum):
    SYNCHRONOUS = "synchronous"
    BATCHING = "batching"


class WriteOptions(BaseModel):
    """Write-API configuration.  Fixed for the lifetime of one write API."""

    model_config = ConfigDict(frozen=True)

    write_type: WriteType = WriteType.SYNCHRONOUS
    batch_size: int = Field(10, ge=1, description="Lines per destination that trigger a flush")
    flush_interval: int = Field(1000, ge=1, description="Timer flush period in milliseconds")

    # Retry policy.  max_retries=0 disables retrying altogether.
    max_retries: int = Field(0, ge=0)
    retry_interval: int = Field(5000, ge=0, description="First retry delay in milliseconds")
    max_retry_delay: int = Field(125_000, ge=0, description="Upper bound of a retry delay in milliseconds")
    exponential_base: int = Field(2, ge=1)
    jitter_interval: int = Field(0, ge=0, description="Random delay added to each retry in milliseconds")


SYNCHRONOUS = WriteOptions(write_type=WriteType.SYNCHRONOUS)
BATCHING = WriteOptions(write_type=WriteType.BATCHING)


class Destination(NamedTuple):
    """Target of one batch: lines are only ever combined with the same key."""

    org: str
    bucket: str
    precision: WritePrecision


# ── Associative point form ────────────────────────────────────────────────────


class PointRecord(BaseModel):
    """A point written as a mapping: ``{"name", "tags", "fields", "time"}``."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("name", "measurement"),
        description="Measurement name",
    )
    tags: dict[str, str] = Field(default_factory=dict)
    fields: dict[str, StrictBool | StrictInt | StrictFloat | StrictStr | None]
    time: StrictInt | datetime | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _stringify_tags(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items() if v is not None}
        return value
