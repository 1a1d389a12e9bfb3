"""Run configuration and runtime settings."""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .time_window import normalize_since

ALL = "all"


def split_csv(value: str | Iterable[str]) -> list[str]:
    """Split comma separated values, trimming and dropping empties."""
    parts = value.split(",") if isinstance(value, str) else value
    out: list[str] = []
    for part in parts:
        for item in str(part).split(","):
            item = item.strip()
            if item and item not in out:
                out.append(item)
    return out


class RunConfiguration(BaseModel):
    """Immutable options for one run, validated once at startup."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    contexts: tuple[str, ...] = Field(default=("default",), description="Contexts to tail, or ('all',).")
    all_at_once: bool = False
    skip_invalid: bool = False
    include_containers: frozenset[str] | Literal["all"] = ALL
    fix_up_messages: bool = True
    pretty_print: bool = False
    since: str = "1h"
    follow: bool = False
    quiet: bool = False
    blank_line_after_entry: bool = False
    space_after_message: bool = True

    save_path: Path | None = None
    stern_defaults: bool = True
    pod_query: tuple[str, ...] = ()

    @field_validator("contexts", mode="before")
    @classmethod
    def _split_contexts(cls, v: object) -> tuple[str, ...]:
        names = split_csv(v)  # type: ignore[arg-type]
        if not names:
            raise ValueError("at least one context is required")
        return tuple(names)

    @field_validator("include_containers", mode="before")
    @classmethod
    def _normalize_containers(cls, v: object) -> frozenset[str] | str:
        if v is None:
            return ALL
        names = split_csv(v)  # type: ignore[arg-type]
        if not names or ALL in names:
            return ALL
        return frozenset(names)

    @field_validator("since")
    @classmethod
    def _validate_since(cls, v: str) -> str:
        return normalize_since(v)

    @property
    def all_contexts(self) -> bool:
        return self.contexts == (ALL,)

    def container_allowed(self, container: str) -> bool:
        if self.include_containers == ALL:
            return True
        return container in self.include_containers


@dataclass(frozen=True, slots=True)
class RuntimeSettings:
    """Operational knobs that are not part of the user-facing options."""

    stern_binary: str = "stern"
    kubectl_binary: str = "kubectl"
    queue_size: int = 1024
    poll_interval: float = 0.25
    terminate_timeout: float = 5.0
    drain_grace_seconds: float = 1.0
    stderr_tail_lines: int = 20


def _env_int(name: str, *, minimum: int) -> int | None:
    env = os.getenv(name)
    if env is None or env == "":
        return None
    try:
        value = int(env)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _env_float(name: str, *, minimum: float, strict: bool = False) -> float | None:
    env = os.getenv(name)
    if env is None or env == "":
        return None
    try:
        value = float(env)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value < minimum or (strict and value == minimum):
        op = ">" if strict else ">="
        raise ValueError(f"{name} must be {op} {minimum}")
    return value


def resolve_runtime_settings(settings: RuntimeSettings | None = None) -> RuntimeSettings:
    """Return settings with optional env overrides applied."""
    if settings is None:
        settings = RuntimeSettings()

    overrides: dict[str, object] = {}
    stern = os.getenv("KUBE_LOG_MUX_STERN_BIN")
    if stern:
        overrides["stern_binary"] = stern
    kubectl = os.getenv("KUBE_LOG_MUX_KUBECTL_BIN")
    if kubectl:
        overrides["kubectl_binary"] = kubectl

    queue_size = _env_int("KUBE_LOG_MUX_QUEUE_SIZE", minimum=1)
    if queue_size is not None:
        overrides["queue_size"] = queue_size
    terminate_timeout = _env_float("KUBE_LOG_MUX_TERMINATE_TIMEOUT", minimum=0.0, strict=True)
    if terminate_timeout is not None:
        overrides["terminate_timeout"] = terminate_timeout
    drain_grace = _env_float("KUBE_LOG_MUX_DRAIN_GRACE", minimum=0.0)
    if drain_grace is not None:
        overrides["drain_grace_seconds"] = drain_grace

    if not overrides:
        return settings
    return replace(settings, **overrides)
