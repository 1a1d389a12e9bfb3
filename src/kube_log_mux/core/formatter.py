"""Render classified records as output lines.

Every line has the same fixed columns regardless of options:

    <context> <pod> <container> <timestamp>\\t<message>

Options only change the message part.
"""

from __future__ import annotations

import ast
import json
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from .config import RunConfiguration
from .formats.base import FRAMEWORK_PREFIXES, MESSAGE_KEYS, TIME_KEYS, as_text
from .models import (
    ClassifiedRecord,
    ExceptionLog,
    InvalidLine,
    JsonObject,
    PlainText,
    ProxyLog,
    TimestampedJson,
)

MIN_PRETTY_OBJECT_LEN = 64


def strip_framework_prefix(text: str) -> str:
    """Drop one leading log-framework timestamp/level prefix."""
    for pattern in FRAMEWORK_PREFIXES:
        stripped, n = pattern.subn("", text, count=1)
        if n:
            return stripped.strip()
    return text


def iter_braced_spans(text: str) -> Iterator[tuple[int, int]]:
    """Yield (start, end) of top-level balanced {...} spans, ignoring braces in quotes."""
    depth = 0
    start = -1
    quote: str | None = None
    escaped = False
    for i, ch in enumerate(text):
        if quote is not None:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if depth and ch in "\"'":
            quote = ch
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth:
            depth -= 1
            if depth == 0:
                yield start, i + 1


def _load_object(candidate: str) -> dict[str, Any] | None:
    try:
        value = json.loads(candidate)
    except ValueError:
        try:
            value = ast.literal_eval(candidate)
        except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
            return None
    return value if isinstance(value, dict) else None


def pretty_print_objects(text: str) -> str:
    """Pretty print JSON-like and Python-like dicts embedded in free text."""
    out: list[str] = []
    last = 0
    for start, end in iter_braced_spans(text):
        candidate = text[start:end]
        if len(candidate) < MIN_PRETTY_OBJECT_LEN:
            continue
        if '":' not in candidate and "':" not in candidate:
            continue
        obj = _load_object(candidate)
        if obj is None:
            continue
        try:
            # non-string keys such as tuples cannot be dumped
            rendered = json.dumps(obj, indent=2, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            continue
        out.append(text[last:start])
        out.append(rendered)
        last = end
    if not out:
        return text
    out.append(text[last:])
    return "".join(out)


def remove_timestamp(text: str, timestamp: str) -> str:
    if not timestamp or timestamp not in text:
        return text
    while timestamp in text:
        text = text.replace(timestamp, "")
    return text.strip()


@dataclass(frozen=True, slots=True)
class MessageFormatter:
    """Pure renderer: the same record always gives the same line."""

    config: RunConfiguration

    def format(self, record: ClassifiedRecord | InvalidLine) -> str:
        timestamp = "" if isinstance(record, InvalidLine) else record.timestamp
        body = self._body(record, timestamp)
        if self.config.fix_up_messages:
            body = remove_timestamp(body, timestamp)
        if self.config.space_after_message:
            body = body.rstrip() + " "

        origin = record.origin
        line = f"{origin.context} {origin.pod} {origin.container} {timestamp}\t{body}"
        if self.config.blank_line_after_entry:
            line += "\n"
        return line

    def _body(self, record: ClassifiedRecord | InvalidLine, timestamp: str) -> str:
        if isinstance(record, (InvalidLine, PlainText)):
            return self._text(record.text)
        if isinstance(record, ExceptionLog):
            return self._exception(record)
        if isinstance(record, ProxyLog):
            return self._proxy(record)
        if isinstance(record, (TimestampedJson, JsonObject)):
            return self._json(record.value, timestamp)
        raise TypeError(f"unsupported record type: {type(record).__name__}")

    def _text(self, text: str, *, pretty: bool = True) -> str:
        if self.config.fix_up_messages:
            text = strip_framework_prefix(text)
        if pretty and self.config.pretty_print:
            text = pretty_print_objects(text)
        return text

    def _json(self, value: Any, timestamp: str) -> str:
        if isinstance(value, dict):
            message_key = next((k for k in MESSAGE_KEYS if isinstance(value.get(k), str)), None)
            if message_key is not None:
                return self._text(value[message_key])
            if self.config.fix_up_messages and timestamp:
                value = {
                    k: v for k, v in value.items() if not (k in TIME_KEYS and as_text(v) == timestamp)
                }

        if self.config.pretty_print:
            return json.dumps(value, indent=2, ensure_ascii=False)
        return json.dumps(value, ensure_ascii=False)

    def _exception(self, record: ExceptionLog) -> str:
        body = self._text(record.message)
        if record.request_id is not None:
            body += f" (request_id: {record.request_id})"

        # exc_info is never object-pretty-printed, only indented
        trace = self._text(record.trace, pretty=False).rstrip()
        if not trace:
            return body
        if self.config.pretty_print:
            return body + "".join(f"\n    {line}" for line in trace.splitlines())
        escaped = trace.replace("\r", "").replace("\n", "\\n")
        return f"{body} (exc_info: {escaped})"

    def _proxy(self, record: ProxyLog) -> str:
        extra = record.extra

        def field(key: str) -> str:
            return as_text(extra.get(key)).strip()

        request = " ".join(p for p in (record.method, record.path, field("protocol")) if p)
        body = f'"{request}" {record.status}'
        downstream = field("downstream_local_address")
        if downstream:
            body = f"{downstream} {body}"
        for pair in (("bytes_sent", "bytes_received"), ("duration", "upstream_service_time")):
            values = [field(k) for k in pair if field(k)]
            if values:
                body += ", " + " ".join(values)
        if record.request_id is not None:
            body += f" (request_id: {record.request_id})"
        return body
