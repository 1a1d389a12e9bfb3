"""Core data models for the log multiplexer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ContextState(str, Enum):
    """Lifecycle of one context's log-tailing process."""

    PENDING = "PENDING"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    EXITED = "EXITED"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class RawLine:
    """One untouched line of stdout from a context's tailing process."""

    context: str
    text: str


@dataclass(frozen=True, slots=True)
class StreamClosed:
    """Posted by a context's reader after its last line."""

    context: str


@dataclass(frozen=True, slots=True)
class RecordOrigin:
    """Where a record came from (context + envelope metadata)."""

    context: str
    pod: str = ""
    container: str = ""


@dataclass(frozen=True, slots=True)
class PlainText:
    """Non-JSON message, optionally with a leading timestamp split off."""

    origin: RecordOrigin
    text: str
    timestamp: str = ""


@dataclass(frozen=True, slots=True)
class JsonObject:
    """Any JSON value without a recognised shape."""

    origin: RecordOrigin
    value: Any
    timestamp: str = ""  # envelope/prefix timestamp, if any


@dataclass(frozen=True, slots=True)
class TimestampedJson:
    """JSON object carrying a timestamp-like field."""

    origin: RecordOrigin
    timestamp: str
    value: dict[str, Any]


@dataclass(frozen=True, slots=True)
class ExceptionLog:
    """JSON object with both `exc_info` and `message`."""

    origin: RecordOrigin
    timestamp: str
    message: str
    trace: str
    request_id: str | None = None


@dataclass(frozen=True, slots=True)
class ProxyLog:
    """Request/response shaped JSON (envoy style access log)."""

    origin: RecordOrigin
    timestamp: str
    method: str
    path: str
    status: str
    extra: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None


ClassifiedRecord = Union[PlainText, JsonObject, TimestampedJson, ExceptionLog, ProxyLog]


@dataclass(frozen=True, slots=True)
class InvalidLine:
    """A line that could not be classified; kept verbatim."""

    origin: RecordOrigin
    text: str


class DropReason(str, Enum):
    INVALID = "INVALID"
    CONTAINER = "CONTAINER"


@dataclass(frozen=True, slots=True)
class Drop:
    """Classifier signal: discard this line before formatting."""

    reason: DropReason


@dataclass(slots=True)
class LogStats:
    """Counters maintained by the consumer loop."""

    total_logs: int = 0
    printed_logs: int = 0
    filtered_out_logs: int = 0
    skipped_invalid_logs: int = 0


@dataclass(frozen=True, slots=True)
class ContextFailure:
    """A context that failed to spawn or did not exit cleanly."""

    context: str
    state: ContextState
    returncode: int | None = None
    error: str | None = None
    stderr_tail: tuple[str, ...] = ()

    def describe(self) -> str:
        if self.state is ContextState.FAILED:
            return f"{self.context}: failed ({self.error})"
        return f"{self.context}: exited with code {self.returncode}"


@dataclass(slots=True)
class RunSummary:
    """Outcome of one multiplexed run."""

    contexts: tuple[str, ...]
    stats: LogStats
    failures: list[ContextFailure] = field(default_factory=list)
    output_errors: list[str] = field(default_factory=list)
    cancelled: bool = False
    elapsed: float = 0.0

    @property
    def total_failure(self) -> bool:
        return bool(self.contexts) and len(self.failures) == len(self.contexts)

    @property
    def partial_failure(self) -> bool:
        return bool(self.failures) and not self.total_failure
