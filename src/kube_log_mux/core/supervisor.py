"""Lifecycle of the per-context log-tailing processes.

Each selected context gets one ProcessHandle wrapping a `stern` process. The
supervisor starts them by the configured policy (all at once, or strictly one
after another) and feeds every stdout line into a shared queue. A context
failing to spawn or exiting non-zero is recorded against that context only.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shlex
from collections import deque
from collections.abc import AsyncIterator, Callable, Sequence

from .config import ALL, RunConfiguration, RuntimeSettings
from .errors import ContextSpawnError
from .models import ContextFailure, ContextState, RawLine, StreamClosed

logger = logging.getLogger(__name__)

# asyncio's default 64 KiB line limit is too small for pretty big JSON logs.
STREAM_LIMIT = 8 * 1024 * 1024


def build_stern_args(context: str, config: RunConfiguration) -> list[str]:
    """Arguments passed to stern for one context (binary excluded)."""
    args = ["--context", context]
    if config.stern_defaults:
        args += [
            "--all-namespaces",
            "--output",
            "json",
            "--timestamps=short",
            "--since",
            config.since,
            "--timezone",
            "UTC",
        ]
        if not config.follow:
            args.append("--no-follow")
    if config.include_containers != ALL:
        names = "|".join(re.escape(name) for name in sorted(config.include_containers))
        args += ["--container", f"^({names})$"]
    args += list(config.pod_query)
    return args


class ProcessHandle:
    """One spawned log-tailing process for one context."""

    def __init__(
        self,
        context: str,
        argv: Sequence[str],
        *,
        stderr_tail_lines: int = 20,
        stream_limit: int = STREAM_LIMIT,
    ) -> None:
        self.context = context
        self.argv = list(argv)
        self.state = ContextState.PENDING
        self.returncode: int | None = None
        self.error: str | None = None
        self.terminated = False
        self.process: asyncio.subprocess.Process | None = None
        self._stderr_tail: deque[str] = deque(maxlen=stderr_tail_lines)
        self._stderr_task: asyncio.Task[None] | None = None
        self.stream_limit = stream_limit

    @property
    def command(self) -> str:
        return shlex.join(self.argv)

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def start(self) -> None:
        """Spawn the process; raises ContextSpawnError on failure."""
        self.state = ContextState.STARTING
        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=self.stream_limit,
            )
        except (OSError, ValueError) as exc:
            self.state = ContextState.FAILED
            self.error = str(exc)
            raise ContextSpawnError(self.context, str(exc)) from exc

        self.state = ContextState.RUNNING
        self._stderr_task = asyncio.create_task(self._read_stderr())
        logger.info("Running: %s (pid=%s)", self.command, self.process.pid)

    async def _read_stderr(self) -> None:
        assert self.process is not None and self.process.stderr is not None
        stderr = self.process.stderr
        while True:
            raw = await self._readline(stderr)
            if raw is None:
                continue
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line.strip():
                continue
            self._stderr_tail.append(line)
            logger.warning("[%s] %s", self.context, line)

    async def _readline(self, stream: asyncio.StreamReader) -> bytes | None:
        """Next line, b"" at EOF, or None when an oversized line was dropped."""
        try:
            return await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as exc:
            return exc.partial
        except asyncio.LimitOverrunError as exc:
            consumed = exc.consumed
        # drop the whole line, not just the part that overflowed the buffer
        while True:
            await stream.readexactly(consumed)
            try:
                await stream.readuntil(b"\n")
                break
            except asyncio.IncompleteReadError:
                break
            except asyncio.LimitOverrunError as exc:
                consumed = exc.consumed
        logger.warning("[%s] line longer than %d bytes skipped", self.context, self.stream_limit)
        return None

    async def iter_lines(self) -> AsyncIterator[str]:
        """Yield non-blank stdout lines in source order until EOF."""
        assert self.process is not None and self.process.stdout is not None
        stdout = self.process.stdout
        while True:
            raw = await self._readline(stdout)
            if raw is None:
                continue
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").strip()
            if line:
                yield line

    async def wait(self) -> int:
        """Wait for exit and for stderr to be fully read."""
        assert self.process is not None
        code = await self.process.wait()
        if self._stderr_task is not None:
            await self._stderr_task
        self.returncode = code
        self.state = ContextState.EXITED
        logger.info("Context %s exited with code %s", self.context, code)
        return code

    async def terminate(self, timeout: float) -> None:
        """SIGTERM, then SIGKILL if the process has not exited within `timeout`."""
        if not self.running:
            return
        assert self.process is not None
        self.terminated = True
        try:
            self.process.terminate()
            try:
                await asyncio.wait_for(self.process.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Context %s did not stop in %.1fs, killing", self.context, timeout)
                self.process.kill()
                await self.process.wait()
        except ProcessLookupError:
            pass
        self.returncode = self.process.returncode
        self.state = ContextState.EXITED

    def failure(self) -> ContextFailure | None:
        """Return a failure record, or None if this context ended cleanly."""
        if self.state is ContextState.FAILED:
            return ContextFailure(
                context=self.context,
                state=self.state,
                error=self.error,
                stderr_tail=tuple(self._stderr_tail),
            )
        if self.state is ContextState.EXITED and self.returncode != 0 and not self.terminated:
            return ContextFailure(
                context=self.context,
                state=self.state,
                returncode=self.returncode,
                stderr_tail=tuple(self._stderr_tail),
            )
        return None


CompletionCallback = Callable[[ProcessHandle], None]


class ProcessSupervisor:
    """Owns the ProcessHandles and runs them by the concurrency policy."""

    def __init__(
        self,
        config: RunConfiguration,
        settings: RuntimeSettings | None = None,
        *,
        contexts: Sequence[str] | None = None,
        command: Callable[[str], Sequence[str]] | None = None,
    ) -> None:
        self.config = config
        self.settings = settings or RuntimeSettings()
        if command is None:
            command = self._stern_command
        self.handles = [
            ProcessHandle(ctx, command(ctx), stderr_tail_lines=self.settings.stderr_tail_lines)
            for ctx in (contexts if contexts is not None else config.contexts)
        ]
        self._callbacks: list[CompletionCallback] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._stopping = False

    def _stern_command(self, context: str) -> list[str]:
        return [self.settings.stern_binary, *build_stern_args(context, self.config)]

    @property
    def contexts(self) -> tuple[str, ...]:
        return tuple(h.context for h in self.handles)

    def for_each_completion(self, callback: CompletionCallback) -> None:
        """Register a callback invoked once per context when it finishes."""
        self._callbacks.append(callback)

    async def start(self, queue: asyncio.Queue[RawLine | StreamClosed]) -> None:
        """Launch the reader tasks; returns without waiting for them."""
        if self._tasks:
            raise RuntimeError("supervisor already started")
        if self.config.all_at_once:
            self._tasks = [
                asyncio.create_task(self._run_one(h, queue), name=f"stern:{h.context}")
                for h in self.handles
            ]
        else:
            self._tasks = [asyncio.create_task(self._run_sequential(queue), name="stern:sequential")]
        logger.debug(
            "Started %d context(s), all_at_once=%s", len(self.handles), self.config.all_at_once
        )

    async def _run_sequential(self, queue: asyncio.Queue[RawLine | StreamClosed]) -> None:
        for handle in self.handles:
            if self._stopping:
                logger.info("Skipping context %s, shutting down", handle.context)
                await queue.put(StreamClosed(handle.context))
                continue
            await self._run_one(handle, queue)

    async def _run_one(self, handle: ProcessHandle, queue: asyncio.Queue[RawLine | StreamClosed]) -> None:
        try:
            await handle.start()
            async for text in handle.iter_lines():
                await queue.put(RawLine(context=handle.context, text=text))
            await handle.wait()
        except ContextSpawnError as exc:
            logger.error("%s", exc)
        except Exception as exc:
            logger.exception("Context %s failed while streaming", handle.context)
            await handle.terminate(self.settings.terminate_timeout)
            handle.state = ContextState.FAILED
            handle.error = str(exc)

        self._notify(handle)
        await queue.put(StreamClosed(handle.context))

    def _notify(self, handle: ProcessHandle) -> None:
        for callback in self._callbacks:
            try:
                callback(handle)
            except Exception:
                logger.exception("Completion callback failed for context %s", handle.context)

    async def terminate_all(self) -> None:
        """Stop every still-running process (bounded wait) and the reader tasks."""
        self._stopping = True
        running = [h for h in self.handles if h.running]
        if running:
            logger.info("Terminating %d running context(s)", len(running))
        await asyncio.gather(*(h.terminate(self.settings.terminate_timeout) for h in running))

        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def failures(self) -> list[ContextFailure]:
        return [f for f in (h.failure() for h in self.handles) if f is not None]

    def all_failed_to_spawn(self) -> bool:
        return bool(self.handles) and all(h.state is ContextState.FAILED and h.process is None for h in self.handles)
