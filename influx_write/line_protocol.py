"""Line-protocol encoder.

Renders every supported record form into InfluxDB line protocol::

    measurement[,tag=value...] field=value[,field=value...] [timestamp]

Supported records are raw line-protocol ``str`` / ``bytes``, :class:`Point`,
mappings with ``name``/``tags``/``fields``/``time`` keys, and any iterable of
those (nested iterables are flattened).  ``None`` entries and empty strings
produce no line.

Encoding is pure: the same record and precision always render the same text.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from influx_write.exceptions import InvalidPointError
from influx_write.models import WritePrecision
from influx_write.point import Point

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# ── Escaping ──────────────────────────────────────────────────────────────────

_MEASUREMENT_ESCAPES = str.maketrans(
    {",": r"\,", " ": r"\ ", "\n": r"\n", "\r": r"\r", "\t": r"\t"}
)
_KEY_ESCAPES = str.maketrans(
    {",": r"\,", "=": r"\=", " ": r"\ ", "\n": r"\n", "\r": r"\r", "\t": r"\t"}
)
_STRING_ESCAPES = str.maketrans({"\\": "\\\\", '"': '\\"'})


def escape_measurement(name: str) -> str:
    return name.translate(_MEASUREMENT_ESCAPES)


def escape_key(key: str) -> str:
    """Escape a tag key, tag value or field key."""
    return key.translate(_KEY_ESCAPES)


def escape_string_value(value: str) -> str:
    return value.translate(_STRING_ESCAPES)


def _no_trailing_backslash(kind: str, text: str) -> str:
    # A trailing backslash would escape the following separator.
    if text.endswith("\\"):
        raise InvalidPointError(f"{kind} {text!r} ends with a backslash")
    return text


def ensure_encodable(line: str) -> str:
    """Return *line* unchanged, or raise if it cannot be sent as UTF-8."""
    try:
        line.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise InvalidPointError(f"Line is not encodable as UTF-8: {line!r}") from exc
    return line


# ── Values ────────────────────────────────────────────────────────────────────


def format_field_value(key: str, value: Any) -> str | None:
    """Render one field value, or ``None`` if the field must be left out.

    ``bool`` is checked before ``int`` because it is a subclass of it.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        if not _INT64_MIN <= value <= _INT64_MAX:
            raise InvalidPointError(f"Integer field {key!r} is out of int64 range: {value}")
        return f"{value}i"
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return repr(value)
    if isinstance(value, str):
        return f'"{escape_string_value(value)}"'
    raise InvalidPointError(
        f"Unsupported type {type(value).__name__} for field {key!r}"
    )


def _convert_timestamp(
    value: int | datetime,
    source: WritePrecision | None,
    target: WritePrecision,
) -> int:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - _EPOCH
        nanos = (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000
        return nanos // target.nanoseconds
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPointError(f"Unsupported timestamp type {type(value).__name__}")
    if source is None or source == target:
        return value
    if source.nanoseconds > target.nanoseconds:
        return value * (source.nanoseconds // target.nanoseconds)
    return value // (target.nanoseconds // source.nanoseconds)


# ── Points ────────────────────────────────────────────────────────────────────


def encode_point(
    point: Point,
    precision: WritePrecision = WritePrecision.NS,
    default_tags: Mapping[str, str] | None = None,
) -> str:
    """Build a single line-protocol string for *point*.

    Tags are sorted by key; fields keep their insertion order.  Empty tag keys
    or values, ``None`` fields and non-finite floats are left out.

    Raises:
        InvalidPointError: no measurement, no renderable field, or a value
            that line protocol cannot carry.
    """
    if not point.name:
        raise InvalidPointError("Point has no measurement name")

    tags = dict(default_tags or {})
    tags.update(point.tags)

    field_parts: list[str] = []
    for key, val in point.fields.items():
        if not key:
            raise InvalidPointError(f"Point {point.name!r} has a field with an empty key")
        rendered = format_field_value(key, val)
        if rendered is not None:
            field_parts.append(f"{escape_key(_no_trailing_backslash('Field key', key))}={rendered}")

    if not field_parts:
        raise InvalidPointError(f"Point {point.name!r} has no fields")

    line = escape_measurement(_no_trailing_backslash("Measurement", point.name))
    tag_str = ",".join(
        f"{escape_key(_no_trailing_backslash('Tag key', k))}="
        f"{escape_key(_no_trailing_backslash('Tag value', v))}"
        for k, v in sorted(tags.items())
        if k and v
    )
    if tag_str:
        line += f",{tag_str}"
    line += f" {','.join(field_parts)}"
    if point.timestamp is not None:
        line += f" {_convert_timestamp(point.timestamp, point.precision, precision)}"
    return line


# ── Records ───────────────────────────────────────────────────────────────────


def serialize(
    data: Any,
    precision: WritePrecision = WritePrecision.NS,
    default_tags: Mapping[str, str] | None = None,
) -> list[str]:
    """Encode *data* into a list of lines, one per non-empty record, in order.

    Every record is encoded before anything is returned, so an invalid record
    anywhere in a collection fails the whole call.
    """
    lines: list[str] = []
    _collect(data, precision, default_tags, lines)
    return lines


def _collect(
    data: Any,
    precision: WritePrecision,
    default_tags: Mapping[str, str] | None,
    lines: list[str],
) -> None:
    if data is None:
        return
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidPointError(f"Raw line is not valid UTF-8: {data!r}") from exc
    if isinstance(data, str):
        if data:
            lines.append(ensure_encodable(data))
        return
    if isinstance(data, Point):
        lines.append(ensure_encodable(encode_point(data, precision, default_tags)))
        return
    if isinstance(data, Mapping):
        point = Point.from_dict(data)
        lines.append(ensure_encodable(encode_point(point, precision, default_tags)))
        return
    if isinstance(data, Iterable):
        for item in data:
            _collect(item, precision, default_tags, lines)
        return
    raise InvalidPointError(f"Unsupported record type {type(data).__name__}")


def to_body(lines: Iterable[str]) -> str:
    """Join encoded lines into a request body (no trailing newline)."""
    return "\n".join(lines)
