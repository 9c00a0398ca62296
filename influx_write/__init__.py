"""Asynchronous InfluxDB 2.x line-protocol write client."""

import logging

__version__ = "0.1.0"

from influx_write.client import InfluxDBClient  # noqa: E402
from influx_write.exceptions import (  # noqa: E402
    ApiError,
    ConfigurationError,
    InfluxDBError,
    InvalidPointError,
    TransportError,
    WriteApiClosedError,
)
from influx_write.models import (  # noqa: E402
    BATCHING,
    SYNCHRONOUS,
    Destination,
    WriteOptions,
    WritePrecision,
    WriteType,
)
from influx_write.point import Point  # noqa: E402
from influx_write.write_api import WriteApi  # noqa: E402

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ApiError",
    "BATCHING",
    "ConfigurationError",
    "Destination",
    "InfluxDBClient",
    "InfluxDBError",
    "InvalidPointError",
    "Point",
    "SYNCHRONOUS",
    "TransportError",
    "WriteApi",
    "WriteApiClosedError",
    "WriteOptions",
    "WritePrecision",
    "WriteType",
    "__version__",
]
