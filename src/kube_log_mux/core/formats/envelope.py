"""stern JSON envelope parser."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

_REQUIRED_KEYS = ("message", "podName", "containerName")


@dataclass(frozen=True, slots=True)
class SternEnvelope:
    """Line wrapper emitted by `stern --output json`."""

    message: str
    pod_name: str
    container_name: str
    namespace: str = ""
    node_name: str = ""


def _field(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    return value.strip() if isinstance(value, str) else ""


def parse_envelope(obj: Any) -> SternEnvelope | None:
    """Return the envelope if `obj` has stern's shape, else None."""
    if not isinstance(obj, dict):
        return None
    if any(key not in obj for key in _REQUIRED_KEYS):
        return None
    if not isinstance(obj["message"], str):
        return None
    return SternEnvelope(
        message=obj["message"].strip(),
        pod_name=_field(obj, "podName"),
        container_name=_field(obj, "containerName"),
        namespace=_field(obj, "namespace"),
        node_name=_field(obj, "nodeName"),
    )
