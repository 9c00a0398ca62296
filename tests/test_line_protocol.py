"""Unit tests for the line-protocol encoder – pure logic, no mocks needed."""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone

import pytest

from influx_write import InvalidPointError, Point, WritePrecision
from influx_write.line_protocol import (
    encode_point,
    escape_key,
    escape_measurement,
    format_field_value,
    serialize,
    to_body,
)

# ── Points ────────────────────────────────────────────────────────────────────


def test_point_with_tag_and_integer_field() -> None:
    point = Point.measurement("h2o").tag("location", "europe").field("level", 2)
    assert encode_point(point) == "h2o,location=europe level=2i"


def test_point_without_tags_has_no_comma() -> None:
    assert encode_point(Point("h2o").field("level", 2)) == "h2o level=2i"


def test_tags_are_sorted_by_key_and_fields_keep_order() -> None:
    point = (
        Point.measurement("m")
        .tag("zone", "1")
        .tag("app", "2")
        .field("b", 1)
        .field("a", 2)
    )
    assert encode_point(point) == "m,app=2,zone=1 b=1i,a=2i"


@pytest.mark.parametrize(
    "value,expected",
    [
        (True, "true"),
        (False, "false"),
        (2, "2i"),
        (-3, "-3i"),
        (1.0, "1.0"),
        (0.1, "0.1"),
        (1e20, "1e+20"),
        ("idle", '"idle"'),
    ],
)
def test_field_value_formatting(value: object, expected: str) -> None:
    assert format_field_value("f", value) == expected


def test_string_field_escapes_quotes_and_backslashes() -> None:
    point = Point("m").field("msg", 'say "hello" \\world')
    assert encode_point(point) == r'm msg="say \"hello\" \\world"'


def test_keys_and_tag_values_are_escaped() -> None:
    point = Point("cpu load").tag("host name", "a,b=c").field("used space", 1)
    assert encode_point(point) == r"cpu\ load,host\ name=a\,b\=c used\ space=1i"


def test_measurement_escapes_comma_but_not_equals() -> None:
    assert escape_measurement("a,b=c") == r"a\,b=c"
    assert escape_key("a,b=c") == r"a\,b\=c"


def test_newlines_in_keys_are_escaped() -> None:
    assert escape_key("a\nb") == r"a\nb"


def test_empty_tags_are_dropped() -> None:
    point = Point("m").tag("empty", "").field("v", 1)
    assert encode_point(point) == "m v=1i"


def test_none_and_non_finite_fields_are_dropped() -> None:
    point = Point("m").field("a", None).field("b", math.nan).field("c", math.inf).field("d", 1)
    assert encode_point(point) == "m d=1i"


# ── Validation ────────────────────────────────────────────────────────────────


def test_point_without_fields_is_invalid() -> None:
    with pytest.raises(InvalidPointError, match="no fields"):
        encode_point(Point("m").tag("host", "a"))


def test_point_with_only_nan_fields_is_invalid() -> None:
    with pytest.raises(InvalidPointError):
        encode_point(Point("m").field("v", math.nan))


def test_point_without_measurement_is_invalid() -> None:
    with pytest.raises(InvalidPointError, match="measurement"):
        encode_point(Point("").field("v", 1))


def test_integer_outside_int64_is_invalid() -> None:
    with pytest.raises(InvalidPointError, match="int64"):
        encode_point(Point("m").field("v", 2**63))


def test_unsupported_field_type_is_invalid() -> None:
    with pytest.raises(InvalidPointError, match="list"):
        encode_point(Point("m").field("v", [1, 2]))  # type: ignore[arg-type]


# ── Timestamps ────────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "precision,expected",
    [
        (WritePrecision.S, "1"),
        (WritePrecision.MS, "1000"),
        (WritePrecision.US, "1000000"),
        (WritePrecision.NS, "1000000000"),
    ],
)
def test_datetime_is_rendered_in_write_precision(precision: WritePrecision, expected: str) -> None:
    point = Point("m").field("v", 1).time(datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc))
    assert encode_point(point, precision) == f"m v=1i {expected}"


def test_naive_datetime_is_treated_as_utc() -> None:
    aware = Point("m").field("v", 1).time(datetime(2020, 5, 17, 12, 30, tzinfo=timezone.utc))
    naive = Point("m").field("v", 1).time(datetime(2020, 5, 17, 12, 30))
    assert encode_point(aware, WritePrecision.S) == encode_point(naive, WritePrecision.S)
    assert encode_point(naive, WritePrecision.S) == "m v=1i 1589718600"


def test_integer_time_is_written_verbatim() -> None:
    assert encode_point(Point("m").field("v", 1).time(15), WritePrecision.S) == "m v=1i 15"


def test_integer_time_is_converted_from_point_precision() -> None:
    coarse = Point("m").field("v", 1).time(15, WritePrecision.S)
    fine = Point("m").field("v", 1).time(1_500_000_000, "ns")
    assert encode_point(coarse, WritePrecision.MS) == "m v=1i 15000"
    assert encode_point(fine, WritePrecision.S) == "m v=1i 1"


# ── Purity / structure ────────────────────────────────────────────────────────


def test_encoding_is_deterministic() -> None:
    point = Point("m").tag("b", "2").tag("a", "1").field("x", 0.5).field("s", "t").time(7)
    assert encode_point(point) == encode_point(point)


@pytest.mark.parametrize(
    "point",
    [
        Point("cpu").tag("host", "web 1").field("usage", 0.5).time(100),
        Point("disk io").tag("dev", "sda,1").tag("dc", "x=y").field("reads", 3).field("ok", True).time(5),
    ],
)
def test_unescaped_spaces_separate_three_segments(point: Point) -> None:
    segments = re.split(r"(?<!\\) ", encode_point(point))
    assert len(segments) == 3
    series, fields, timestamp = segments
    assert series.startswith(escape_measurement(point.name) + ",")
    assert fields.count("=") >= len(point.fields)
    assert timestamp == str(point.timestamp)


# ── Records ───────────────────────────────────────────────────────────────────


def test_mapping_record() -> None:
    record = {
        "name": "h2o",
        "tags": {"host": "aws", "region": "us"},
        "fields": {"level": 5, "saturation": "99%"},
        "time": 123,
    }
    assert serialize(record) == ['h2o,host=aws,region=us level=5i,saturation="99%" 123']


def test_mapping_accepts_measurement_key_and_coerces_tags() -> None:
    record = {"measurement": "gpu", "tags": {"id": 7}, "fields": {"load": 0.25, "ok": True}}
    assert serialize(record) == ["gpu,id=7 load=0.25,ok=true"]


def test_mapping_without_fields_is_invalid() -> None:
    with pytest.raises(InvalidPointError):
        serialize({"name": "h2o", "tags": {"host": "aws"}})


def test_mapping_with_unsupported_field_value_is_invalid() -> None:
    with pytest.raises(InvalidPointError):
        serialize({"name": "h2o", "fields": {"level": [1]}})


def test_mixed_collection_skips_none() -> None:
    point = Point.measurement("h2o").tag("location", "europe").field("level", 2)
    record = {
        "name": "h2o",
        "tags": {"host": "aws", "region": "us"},
        "fields": {"level": 5, "saturation": "99%"},
        "time": 123,
    }
    lines = serialize(["h2o,location=west value=33i 15", None, point, record])
    assert to_body(lines) == (
        "h2o,location=west value=33i 15\n"
        "h2o,location=europe level=2i\n"
        'h2o,host=aws,region=us level=5i,saturation="99%" 123'
    )


def test_nulls_interleaved_keep_relative_order() -> None:
    records = [None, "a v=1i", None, None, Point("b").field("v", 2), None, "", "c v=3i"]
    assert serialize(records) == ["a v=1i", "b v=2i", "c v=3i"]


def test_nested_collections_and_generators_are_flattened() -> None:
    records = ("a v=1i", [Point("b").field("v", 2), ["c v=3i"]], (f"d v={i}i" for i in range(2)))
    assert serialize(records) == ["a v=1i", "b v=2i", "c v=3i", "d v=0i", "d v=1i"]


def test_bytes_are_raw_lines() -> None:
    assert serialize(b"h2o value=1i") == ["h2o value=1i"]


def test_invalid_entry_fails_whole_collection() -> None:
    with pytest.raises(InvalidPointError):
        serialize(["a v=1i", Point("b")])


def test_unsupported_record_type_is_invalid() -> None:
    with pytest.raises(InvalidPointError, match="int"):
        serialize(42)


def test_default_tags_apply_to_structured_points_only() -> None:
    records = ["raw v=1i", Point("m").tag("host", "own").field("v", 1)]
    lines = serialize(records, default_tags={"host": "default", "dc": "eu"})
    assert lines == ["raw v=1i", "m,dc=eu,host=own v=1i"]


def test_body_has_no_trailing_newline() -> None:
    assert to_body(["a v=1i", "b v=2i"]) == "a v=1i\nb v=2i"
    assert to_body([]) == ""


# ── Unencodable text / trailing backslashes ───────────────────────────────────


@pytest.mark.parametrize(
    "record",
    [
        Point("m").field("s", "bad \ud800"),
        Point("m").tag("host", "\udc00").field("v", 1),
        Point("m\ud800").field("v", 1),
        'm s="\ud800"',
    ],
)
def test_text_that_is_not_utf8_encodable_is_invalid(record: object) -> None:
    with pytest.raises(InvalidPointError, match="UTF-8"):
        serialize(["ok v=1i", record])


def test_invalid_utf8_bytes_are_invalid() -> None:
    with pytest.raises(InvalidPointError, match="UTF-8"):
        serialize(b"m v=1i \xff")


@pytest.mark.parametrize(
    "point",
    [
        Point("m").tag("path", "C:\\").field("v", 1),
        Point("m").tag("dir\\", "x").field("v", 1),
        Point("m").field("key\\", 1),
        Point("m\\").field("v", 1),
    ],
)
def test_trailing_backslash_is_invalid(point: Point) -> None:
    with pytest.raises(InvalidPointError, match="backslash"):
        encode_point(point)


def test_inner_backslash_is_kept() -> None:
    point = Point("m").tag("path", "a\\b").field("v", 1)
    assert encode_point(point) == "m,path=a\\b v=1i"
