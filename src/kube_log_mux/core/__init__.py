"""Core multiplexing, classification and formatting logic."""

from __future__ import annotations

from .config import RunConfiguration, RuntimeSettings, resolve_runtime_settings
from .errors import (
    AllContextsFailedError,
    ContextDiscoveryError,
    ContextSpawnError,
    KubeLogMuxError,
    MissingBinaryError,
)
from .formats import MessageClassifier
from .formatter import MessageFormatter
from .log_service import resolve_contexts, stream_logs, summary_lines
from .multiplexer import END_OF_STREAMS, StreamMultiplexer
from .sink import OutputSink, open_sink
from .supervisor import ProcessHandle, ProcessSupervisor, build_stern_args

__all__ = [
    "AllContextsFailedError",
    "ContextDiscoveryError",
    "ContextSpawnError",
    "END_OF_STREAMS",
    "KubeLogMuxError",
    "MessageClassifier",
    "MessageFormatter",
    "MissingBinaryError",
    "OutputSink",
    "ProcessHandle",
    "ProcessSupervisor",
    "RunConfiguration",
    "RuntimeSettings",
    "StreamMultiplexer",
    "build_stern_args",
    "open_sink",
    "resolve_contexts",
    "resolve_runtime_settings",
    "stream_logs",
    "summary_lines",
]
