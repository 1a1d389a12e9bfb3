"""Field names and leading-timestamp patterns shared by the classifier and formatter."""

from __future__ import annotations

import json
import re
from typing import Any

TIME_KEYS: tuple[str, ...] = ("timestamp", "time", "ts", "@timestamp")
MESSAGE_KEYS: tuple[str, ...] = ("message", "msg")
STATUS_KEYS: tuple[str, ...] = ("status", "status_code", "response_code")
PATH_KEYS: tuple[str, ...] = ("path", "url")

# stern --timestamps: 2021-08-26T21:52:09+02:00 message (also Z / no zone)
_ISO_PREFIX_RE = re.compile(
    r"^(?P<ts>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:[.,]\d{1,9})?(?:Z|[+-]\d{2}:?\d{2})?)(?:\s+|$)(?P<rest>.*)$",
    re.DOTALL,
)
# stern --timestamps=short: 08-26 22:08:51 message
_SHORT_PREFIX_RE = re.compile(
    r"^(?P<ts>\d{2}-\d{2} \d{2}:\d{2}:\d{2})(?:\s+|$)(?P<rest>.*)$",
    re.DOTALL,
)

# Log framework prefixes repeated inside the message body, e.g.
#   20250902140313.122[ERR][service.views, function (file.py:618)][NULL]: message
#   2025-09-02 12:58:52.123 INFO [140358121944832] HandlerBase:61 | message
FRAMEWORK_PREFIXES: tuple[re.Pattern[str], ...] = (
    re.compile(r"^\d{14}\.?\d{0,3}\[[A-Z]+\]\[.*?\]\[[A-Z]+\]:\s+"),
    re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.?\d{0,3} [A-Z]+\s+"),
)


def split_leading_timestamp(text: str) -> tuple[str, str] | None:
    """Split `<timestamp> <rest>`; None when the text has no recognised prefix."""
    for pattern in (_ISO_PREFIX_RE, _SHORT_PREFIX_RE):
        m = pattern.match(text)
        if m:
            return m.group("ts"), m.group("rest").strip()
    return None


def loads_structured(text: str) -> tuple[bool, Any]:
    """Parse text as one JSON object or array; scalars do not count."""
    s = text.strip()
    if not s or s[0] not in "{[":
        return False, None
    try:
        return True, json.loads(s)
    except ValueError:
        return False, None


def as_text(value: Any) -> str:
    """Render a JSON field as display text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def first_timestamp(obj: dict[str, Any]) -> str:
    """Value of the first timestamp-like key, or ''."""
    for key in TIME_KEYS:
        value = obj.get(key)
        if isinstance(value, (str, int, float)) and not isinstance(value, bool) and value != "":
            return str(value)
    return ""
