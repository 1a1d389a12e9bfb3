from __future__ import annotations

import json
import sys
import textwrap
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from kube_log_mux.core.config import RunConfiguration, RuntimeSettings

MISSING_BINARY = "/nonexistent/kube-log-mux-test-binary"


@pytest.fixture
def make_config() -> Callable[..., RunConfiguration]:
    def _make(**overrides: Any) -> RunConfiguration:
        overrides.setdefault("pod_query", ("app",))
        return RunConfiguration(**overrides)

    return _make


@pytest.fixture
def fast_settings() -> RuntimeSettings:
    return RuntimeSettings(
        stern_binary="stern",
        kubectl_binary="kubectl",
        queue_size=64,
        poll_interval=0.02,
        terminate_timeout=2.0,
        drain_grace_seconds=0.5,
    )


@pytest.fixture
def envelope() -> Callable[..., str]:
    """A line shaped like `stern --output json`."""

    def _line(message: str, pod: str = "api-1", container: str = "app", namespace: str = "default") -> str:
        return json.dumps(
            {
                "message": message,
                "nodeName": "node-1",
                "namespace": namespace,
                "podName": pod,
                "containerName": container,
            }
        )

    return _line


@pytest.fixture
def child_command() -> Callable[[dict[str, str]], Callable[[str], Sequence[str]]]:
    """Map context -> Python source run as the tailing process.

    Contexts without a script get a binary that does not exist, so spawning fails.
    """

    def _factory(scripts: dict[str, str]) -> Callable[[str], Sequence[str]]:
        def _command(context: str) -> Sequence[str]:
            source = scripts.get(context)
            if source is None:
                return [MISSING_BINARY, "--context", context]
            return [sys.executable, "-u", "-c", textwrap.dedent(source)]

        return _command

    return _factory


def print_lines_script(lines: Sequence[str], *, delay: float = 0.0, exit_code: int = 0, stderr: str = "") -> str:
    """Python source that optionally sleeps, prints lines, and exits."""
    return "\n".join(
        [
            "import sys, time",
            f"time.sleep({delay!r})",
            f"for line in {list(lines)!r}:",
            "    print(line, flush=True)",
            f"if {stderr!r}:",
            f"    print({stderr!r}, file=sys.stderr, flush=True)",
            f"sys.exit({exit_code})",
        ]
    )


@pytest.fixture
def lines_script() -> Callable[..., str]:
    return print_lines_script
