"""Run loop: supervisor -> multiplexer -> classifier -> formatter -> sink.

This module is the main integration point. One consumer coroutine pulls lines
from the multiplexer and is the only writer to the output destinations.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import TextIO

from .config import RunConfiguration, RuntimeSettings, resolve_runtime_settings
from .errors import AllContextsFailedError
from .formats import MessageClassifier
from .formatter import MessageFormatter
from .kubectl import get_contexts
from .models import Drop, DropReason, LogStats, RawLine, RunSummary
from .multiplexer import StreamMultiplexer
from .sink import OutputSink, open_sink
from .supervisor import ProcessHandle, ProcessSupervisor

logger = logging.getLogger(__name__)


async def resolve_contexts(config: RunConfiguration, settings: RuntimeSettings) -> tuple[str, ...]:
    """Expand `all` through kubectl; otherwise return the configured contexts."""
    if not config.all_contexts:
        return config.contexts
    return tuple(ctx.name for ctx in await get_contexts(settings.kubectl_binary))


def summary_lines(summary: RunSummary) -> list[str]:
    """Human readable end-of-run report."""
    stats = summary.stats
    lines = [
        f"Total logs: {stats.total_logs}",
        f"Filtered out logs: {stats.filtered_out_logs}",
        f"Skipped invalid logs: {stats.skipped_invalid_logs}",
        f"Printed logs: {stats.printed_logs}",
        f"Execution time: {summary.elapsed:.3f}s",
    ]
    if summary.cancelled:
        lines.append("Cancelled: yes")
    if summary.failures:
        lines.append("Failed contexts:")
        for failure in summary.failures:
            lines.append(f"\t{failure.describe()}")
            lines.extend(f"\t\t{line}" for line in failure.stderr_tail)
    if summary.output_errors:
        lines.append("Output errors:")
        lines.extend(f"\t{err}" for err in summary.output_errors)
    return lines


class _Consumer:
    """Classify, format and write one line at a time, keeping the counters."""

    def __init__(self, config: RunConfiguration, sink: OutputSink, stats: LogStats) -> None:
        self.classifier = MessageClassifier(config)
        self.formatter = MessageFormatter(config)
        self.sink = sink
        self.stats = stats

    async def emit(self, raw: RawLine) -> None:
        self.stats.total_logs += 1
        record = self.classifier.classify(raw)
        if isinstance(record, Drop):
            if record.reason is DropReason.INVALID:
                self.stats.skipped_invalid_logs += 1
            else:
                self.stats.filtered_out_logs += 1
            return
        await self.sink.write_line(self.formatter.format(record))
        self.stats.printed_logs += 1


async def stop_processes(supervisor: ProcessSupervisor) -> None:
    """Terminate every process; further cancellations wait for it to finish."""
    stopping = asyncio.ensure_future(supervisor.terminate_all())
    while not stopping.done():
        try:
            await asyncio.shield(stopping)
        except asyncio.CancelledError:
            logger.warning("Already shutting down, waiting for processes to stop")
    stopping.result()


def _log_completion(handle: ProcessHandle) -> None:
    failure = handle.failure()
    if failure is None:
        logger.info("Context %s finished", handle.context)
    else:
        logger.warning("Context %s finished with a failure: %s", handle.context, failure.describe())


async def stream_logs(
    config: RunConfiguration,
    *,
    settings: RuntimeSettings | None = None,
    stdout: TextIO | None = None,
    contexts: Sequence[str] | None = None,
    command: Callable[[str], Sequence[str]] | None = None,
    banner: Sequence[str] = (),
) -> RunSummary:
    """Tail every context and write the merged, formatted stream.

    Cancelling the calling task (Ctrl-C under asyncio.run, SIGTERM via the CLI)
    is the normal way to end a follow run: buffered output is flushed, the
    processes are terminated, already-read lines are drained, and the summary
    comes back with `cancelled=True`.

    Raises AllContextsFailedError when no context could be started at all.
    """
    settings = settings or resolve_runtime_settings()
    started = time.monotonic()
    if contexts is None:
        contexts = await resolve_contexts(config, settings)

    stats = LogStats()
    summary = RunSummary(contexts=tuple(contexts), stats=stats)
    if not contexts:
        logger.warning("No contexts to stream from")
        return summary

    supervisor = ProcessSupervisor(config, settings, contexts=contexts, command=command)
    supervisor.for_each_completion(_log_completion)
    mux = StreamMultiplexer(
        supervisor.contexts,
        follow=config.follow,
        queue_size=settings.queue_size,
        poll_interval=settings.poll_interval,
    )

    async with open_sink(stdout=None if config.quiet else (stdout or sys.stdout), file_path=config.save_path) as sink:
        for line in banner:
            await sink.note(line)
        await sink.note("Streaming logs from contexts:")
        for ctx in supervisor.contexts:
            await sink.note(f"\t{ctx}")
        for handle in supervisor.handles:
            await sink.note(f"Running: {handle.command}")
        logger.info("Streaming logs from contexts: %s", ", ".join(supervisor.contexts))

        consumer = _Consumer(config, sink, stats)
        await supervisor.start(mux.queue)
        try:
            async for raw in mux:
                await consumer.emit(raw)
        except asyncio.CancelledError:
            summary.cancelled = True
            logger.info("Cancelled, shutting down")
        finally:
            mux.close()
            await sink.flush()
            await stop_processes(supervisor)
            for raw in mux.drain(settings.drain_grace_seconds):
                await consumer.emit(raw)

        summary.failures = supervisor.failures()
        summary.output_errors = list(sink.errors)
        summary.elapsed = time.monotonic() - started
        await sink.note(f"Done at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        for line in summary_lines(summary):
            await sink.note(line)

    if supervisor.all_failed_to_spawn():
        raise AllContextsFailedError(summary.failures)
    return summary
