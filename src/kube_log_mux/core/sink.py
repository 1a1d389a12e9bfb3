"""Output destinations (stdout and an optional save file).

A failing destination is disabled and reported once; the other one keeps
receiving lines.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TextIO

import aiofiles

logger = logging.getLogger(__name__)


class OutputSink:
    """Writes formatted lines to every active destination."""

    def __init__(
        self,
        *,
        stdout: TextIO | None,
        file_path: Path | None = None,
        encoding: str = "utf-8",
    ) -> None:
        self._stdout = stdout
        self.file_path = file_path
        self._encoding = encoding
        self._file = None
        self.errors: list[str] = []

    @property
    def stdout_active(self) -> bool:
        return self._stdout is not None

    @property
    def file_active(self) -> bool:
        return self._file is not None

    async def open(self) -> None:
        if self.file_path is None:
            return
        try:
            self._file = await aiofiles.open(self.file_path, mode="w", encoding=self._encoding)
        except OSError as exc:
            self._fail_file(f"cannot open {self.file_path}: {exc}")

    def _fail_stdout(self, message: str) -> None:
        logger.error("stdout disabled: %s", message)
        self.errors.append(f"stdout: {message}")
        self._stdout = None

    def _fail_file(self, message: str) -> None:
        logger.error("save file disabled: %s", message)
        self.errors.append(f"file: {message}")
        self._file = None

    async def write_line(self, line: str) -> None:
        """Write one formatted line (newline appended) to all destinations."""
        text = line + "\n"
        if self._stdout is not None:
            try:
                self._stdout.write(text)
            except (OSError, ValueError) as exc:
                self._fail_stdout(str(exc))
        await self.note(line)

    async def note(self, line: str) -> None:
        """Write a line to the save file only (banner, summary)."""
        if self._file is None:
            return
        try:
            await self._file.write(line + "\n")
        except (OSError, ValueError) as exc:
            self._fail_file(str(exc))

    async def flush(self) -> None:
        if self._stdout is not None:
            try:
                self._stdout.flush()
            except (OSError, ValueError) as exc:
                self._fail_stdout(str(exc))
        if self._file is not None:
            try:
                await self._file.flush()
            except (OSError, ValueError) as exc:
                self._fail_file(str(exc))

    async def close(self) -> None:
        await self.flush()
        if self._file is not None:
            f, self._file = self._file, None
            try:
                await f.close()
            except OSError as exc:
                logger.error("closing %s failed: %s", self.file_path, exc)
                self.errors.append(f"file: {exc}")


@asynccontextmanager
async def open_sink(
    *,
    stdout: TextIO | None,
    file_path: Path | None = None,
    encoding: str = "utf-8",
) -> AsyncIterator[OutputSink]:
    """Acquire the destinations; flush and close them on every exit path."""
    sink = OutputSink(stdout=stdout, file_path=file_path, encoding=encoding)
    await sink.open()
    try:
        yield sink
    finally:
        await sink.close()
