"""Exception types.

Fatal errors end the whole run; context-level errors are recorded against a
single context and never propagate past the supervisor.
"""

from __future__ import annotations


class KubeLogMuxError(Exception):
    """Base class for all errors raised by this package."""


class MissingBinaryError(KubeLogMuxError):
    """A required external tool is not on PATH."""

    def __init__(self, binary: str, url: str | None = None) -> None:
        self.binary = binary
        self.url = url
        hint = f", get it from {url}" if url else ""
        super().__init__(f'Make sure "{binary}" exists in your PATH{hint}')


class ContextDiscoveryError(KubeLogMuxError):
    """`kubectl config get-contexts` failed or returned something unexpected."""


class AllContextsFailedError(KubeLogMuxError):
    """Every selected context failed to spawn its tailing process."""

    def __init__(self, failures) -> None:
        self.failures = list(failures)
        details = "; ".join(f.describe() for f in self.failures)
        super().__init__(f"All contexts failed to start: {details}")


class ContextSpawnError(KubeLogMuxError):
    """One context's tailing process could not be started."""

    def __init__(self, context: str, reason: str) -> None:
        self.context = context
        self.reason = reason
        super().__init__(f"Cannot start log tailing for context {context!r}: {reason}")
