"""External tool checks and Kubernetes context discovery."""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Iterable
from dataclasses import dataclass

from .errors import ContextDiscoveryError, MissingBinaryError

logger = logging.getLogger(__name__)

BINARY_URLS = {
    "kubectl": "https://kubernetes.io/docs/tasks/tools/",
    "stern": "https://github.com/stern/stern",
}

_HEADER = ("CURRENT", "NAME", "CLUSTER", "AUTHINFO", "NAMESPACE")
DISCOVERY_TIMEOUT = 30.0


@dataclass(frozen=True, slots=True)
class KubeContext:
    """One row of `kubectl config get-contexts`."""

    name: str
    cluster: str = ""
    auth_info: str = ""
    namespace: str = ""
    current: bool = False


def check_required_binaries(binaries: Iterable[str]) -> None:
    """Raise MissingBinaryError for the first binary not found on PATH."""
    for binary in binaries:
        if shutil.which(binary) is None:
            raise MissingBinaryError(binary, BINARY_URLS.get(binary.rsplit("/", 1)[-1]))


def _column_spans(header: str) -> list[tuple[str, int, int | None]]:
    """Return (label, start, end) for each header label, end=None for the last."""
    starts: list[tuple[str, int]] = []
    for label in _HEADER:
        pos = header.find(label)
        if pos < 0:
            raise ContextDiscoveryError(f"kubectl header is missing column {label!r}")
        starts.append((label, pos))
    starts.sort(key=lambda item: item[1])
    spans: list[tuple[str, int, int | None]] = []
    for i, (label, start) in enumerate(starts):
        end = starts[i + 1][1] if i + 1 < len(starts) else None
        spans.append((label, start, end))
    return spans


def parse_contexts_table(text: str) -> list[KubeContext]:
    """Parse the fixed-width table printed by `kubectl config get-contexts`.

    Cells are sliced by the header's column offsets, so blank cells (typically
    CURRENT and NAMESPACE) come back as empty strings instead of shifting the
    remaining columns left.
    """
    lines = [line.rstrip() for line in text.splitlines()]
    header_idx = next(
        (i for i, line in enumerate(lines) if tuple(line.split()) == _HEADER),
        None,
    )
    if header_idx is None:
        raise ContextDiscoveryError(
            '"kubectl config get-contexts" returns no header, cannot get Kubernetes contexts'
        )

    spans = _column_spans(lines[header_idx])
    contexts: list[KubeContext] = []
    for line in lines[header_idx + 1 :]:
        if not line.strip():
            continue
        row = {label: line[start:end].strip() for label, start, end in spans}
        if not row["NAME"]:
            continue
        contexts.append(
            KubeContext(
                name=row["NAME"],
                cluster=row["CLUSTER"],
                auth_info=row["AUTHINFO"],
                namespace=row["NAMESPACE"],
                current=row["CURRENT"] == "*",
            )
        )
    return contexts


async def get_contexts(kubectl: str = "kubectl", *, timeout: float = DISCOVERY_TIMEOUT) -> list[KubeContext]:
    """Run `kubectl config get-contexts` and return the parsed contexts."""
    logger.info("Getting Kubernetes contexts")
    try:
        proc = await asyncio.create_subprocess_exec(
            kubectl,
            "config",
            "get-contexts",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ContextDiscoveryError(f"cannot run {kubectl}: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        proc.kill()
        await proc.wait()
        raise ContextDiscoveryError(f"{kubectl} config get-contexts timed out after {timeout}s") from exc

    if proc.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        raise ContextDiscoveryError(
            f"{kubectl} config get-contexts exited with code {proc.returncode}: {detail}"
        )

    contexts = parse_contexts_table(stdout.decode("utf-8", errors="replace"))
    if contexts:
        for ctx in contexts:
            logger.info(
                "Found context name=%s cluster=%s auth_info=%s namespace=%s current=%s",
                ctx.name,
                ctx.cluster,
                ctx.auth_info,
                ctx.namespace,
                ctx.current,
            )
    else:
        logger.warning("No Kubernetes contexts found")
    return contexts
