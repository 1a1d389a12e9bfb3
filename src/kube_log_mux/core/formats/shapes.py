"""JSON shape rules.

Precedence is fixed: exception, then proxy request, then timestamped, then
plain JSON. An object that looks like both an exception and a proxy log is an
exception.
"""

from __future__ import annotations

from typing import Any

from ..models import (
    ClassifiedRecord,
    ExceptionLog,
    JsonObject,
    ProxyLog,
    RecordOrigin,
    TimestampedJson,
)
from .base import PATH_KEYS, STATUS_KEYS, as_text, first_timestamp


def is_exception_shaped(obj: dict[str, Any]) -> bool:
    return "exc_info" in obj and "message" in obj


def _first_key(obj: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    return next((k for k in keys if k in obj), None)


def is_proxy_shaped(obj: dict[str, Any]) -> bool:
    return (
        "method" in obj
        and _first_key(obj, PATH_KEYS) is not None
        and _first_key(obj, STATUS_KEYS) is not None
    )


def _request_id(obj: dict[str, Any]) -> str | None:
    value = obj.get("request_id")
    return None if value is None else as_text(value)


def classify_value(origin: RecordOrigin, value: Any, timestamp: str = "") -> ClassifiedRecord:
    """Classify a parsed JSON value; `timestamp` is one already split off the line."""
    if not isinstance(value, dict):
        return JsonObject(origin=origin, value=value, timestamp=timestamp)

    ts = timestamp or first_timestamp(value)

    if is_exception_shaped(value):
        return ExceptionLog(
            origin=origin,
            timestamp=ts,
            message=as_text(value["message"]),
            trace=as_text(value["exc_info"]),
            request_id=_request_id(value),
        )

    if is_proxy_shaped(value):
        path_key = _first_key(value, PATH_KEYS)
        status_key = _first_key(value, STATUS_KEYS)
        used = {"method", path_key, status_key, "request_id"}
        return ProxyLog(
            origin=origin,
            timestamp=ts,
            method=as_text(value["method"]),
            path=as_text(value[path_key]),
            status=as_text(value[status_key]),
            extra={k: v for k, v in value.items() if k not in used},
            request_id=_request_id(value),
        )

    if first_timestamp(value):
        return TimestampedJson(origin=origin, timestamp=ts, value=value)

    return JsonObject(origin=origin, value=value, timestamp=timestamp)
