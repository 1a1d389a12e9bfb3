"""Readiness-ordered merge of all context streams.

Reader tasks (see supervisor.py) put lines into one bounded FIFO queue as soon
as their process produces them, so the consumer sees lines in the order they
became ready. A context is retired when its StreamClosed marker comes out of
the queue; since the marker is queued after that context's last line, every
line has been handed out by then.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable

from .models import RawLine, StreamClosed

logger = logging.getLogger(__name__)


class _EndOfStreams:
    def __repr__(self) -> str:
        return "END_OF_STREAMS"


END_OF_STREAMS = _EndOfStreams()


class StreamMultiplexer:
    """Merge lines from every running context without blocking on any one."""

    def __init__(
        self,
        contexts: Iterable[str],
        *,
        follow: bool = False,
        queue_size: int = 1024,
        poll_interval: float = 0.25,
    ) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        self.queue: asyncio.Queue[RawLine | StreamClosed] = asyncio.Queue(maxsize=queue_size)
        self.follow = follow
        self.poll_interval = poll_interval
        self._active = set(contexts)
        self._closed = False

    @property
    def active_contexts(self) -> frozenset[str]:
        return frozenset(self._active)

    @property
    def closed(self) -> bool:
        return self._closed

    async def next(self) -> RawLine | _EndOfStreams:
        """Return the next ready line, or END_OF_STREAMS once everything is drained."""
        while True:
            if self._closed:
                return END_OF_STREAMS
            if not self._active and not self.follow:
                return END_OF_STREAMS
            try:
                item = await asyncio.wait_for(self.queue.get(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
            if isinstance(item, StreamClosed):
                self._retire(item.context)
                continue
            return item

    def _retire(self, context: str) -> None:
        self._active.discard(context)
        logger.debug("Context %s drained, %d still active", context, len(self._active))

    def __aiter__(self) -> StreamMultiplexer:
        return self

    async def __anext__(self) -> RawLine:
        item = await self.next()
        if item is END_OF_STREAMS:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    def close(self) -> None:
        """Stop handing out lines; buffered lines stay available to drain()."""
        self._closed = True

    def drain(self, grace: float) -> list[RawLine]:
        """Take lines already buffered, spending at most `grace` seconds."""
        deadline = time.monotonic() + grace
        lines: list[RawLine] = []
        while True:
            try:
                item = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if isinstance(item, StreamClosed):
                self._retire(item.context)
            else:
                lines.append(item)
            if time.monotonic() >= deadline:
                logger.warning("Drain grace period exhausted, %d line(s) left behind", self.queue.qsize())
                break
        return lines
