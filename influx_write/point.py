"""Builder-style representation of one data point.

    Point.measurement("h2o").tag("location", "europe").field("level", 2)

A ``Point`` only collects values; rendering happens in
:mod:`influx_write.line_protocol` so that every record form shares one encoder.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from influx_write.exceptions import InvalidPointError
from influx_write.models import PointRecord, WritePrecision

FieldValue = bool | int | float | str


class Point:
    """One measurement with its tags, fields and optional timestamp."""

    def __init__(self, measurement_name: str) -> None:
        self._name = measurement_name
        self._tags: dict[str, str] = {}
        self._fields: dict[str, FieldValue | None] = {}
        self._time: int | datetime | None = None
        self._precision: WritePrecision | None = None

    @staticmethod
    def measurement(name: str) -> Point:
        return Point(name)

    @classmethod
    def from_dict(cls, record: Mapping[str, Any]) -> Point:
        """Build a point from ``{"name", "tags", "fields", "time"}``.

        ``measurement`` is accepted in place of ``name``.  Tag values are
        converted to strings.

        Raises:
            InvalidPointError: when the mapping does not describe a point.
        """
        try:
            parsed = PointRecord.model_validate(dict(record))
        except ValidationError as exc:
            raise InvalidPointError(f"Invalid point mapping: {exc}") from exc

        point = cls(parsed.name)
        point._tags.update(parsed.tags)
        point._fields.update(parsed.fields)
        point._time = parsed.time
        return point

    # ── Builder ───────────────────────────────────────────────────────────────

    def tag(self, key: str, value: Any) -> Point:
        self._tags[key] = str(value)
        return self

    def field(self, key: str, value: FieldValue | None) -> Point:
        self._fields[key] = value
        return self

    def time(
        self, value: int | datetime | None, precision: WritePrecision | str | None = None
    ) -> Point:
        """Set the timestamp.

        Args:
            value:     Integer timestamp in *precision* units, or a ``datetime``
                       (naive values are taken as UTC).
            precision: Unit of an integer *value*.  When it differs from the
                       precision of the write, the value is converted.
        """
        try:
            unit = WritePrecision(precision) if precision is not None else None
        except ValueError as exc:
            raise InvalidPointError(f"Unknown precision {precision!r}") from exc
        self._time = value
        self._precision = unit
        return self

    # ── Accessors ─────────────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._name

    @property
    def tags(self) -> dict[str, str]:
        return dict(self._tags)

    @property
    def fields(self) -> dict[str, FieldValue | None]:
        return dict(self._fields)

    @property
    def timestamp(self) -> int | datetime | None:
        return self._time

    @property
    def precision(self) -> WritePrecision | None:
        return self._precision

    def to_line_protocol(
        self,
        precision: WritePrecision = WritePrecision.NS,
        default_tags: Mapping[str, str] | None = None,
    ) -> str:
        from influx_write.line_protocol import encode_point

        return encode_point(self, precision, default_tags)

    def __repr__(self) -> str:
        return (
            f"Point(measurement={self._name!r}, tags={self._tags!r}, "
            f"fields={self._fields!r}, time={self._time!r})"
        )
