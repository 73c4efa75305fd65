"""Stream linter output through blame and the complaint filter."""

import asyncio
import codecs
import os
import stat
import threading
from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass
from typing import IO

import structlog

from lintblame.complaints import Complaint, ComplaintParseError, ComplaintParser
from lintblame.filtering import FilterOptions, passes_filter
from lintblame.git import BlameCancelledError, Blamer, CommitInfo, wait_or_cancel

logger = structlog.get_logger(__name__)

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class Finding:
    """A complaint that survived filtering."""

    raw_line: str
    complaint: Complaint
    commit: CommitInfo | None


@dataclass
class Tally:
    """Complaint counts for one run."""

    total: int = 0
    retained: int = 0

    @property
    def filtered(self) -> int:
        return self.total - self.retained


class LintBlamePipeline:
    """Filters complaint lines by the blame of the line they point at."""

    def __init__(
        self,
        blamer: Blamer,
        parse_complaint: ComplaintParser,
        options: FilterOptions,
    ) -> None:
        self.blamer = blamer
        self.parse_complaint = parse_complaint
        self.options = options
        self.tally = Tally()

    async def run(
        self,
        lines: AsyncIterable[str],
        on_finding: Callable[[Finding], None],
        cancel: asyncio.Event | None = None,
    ) -> Tally:
        """Process every line of *lines* and return the final counts.

        Lookups run concurrently; *on_finding* is called as each retained
        complaint resolves, so findings are not necessarily in input order.

        Raises:
            BlameCancelledError: If *cancel* fires before the run completes.
            BlameError: The first fatal blame failure. Outstanding lookups
                are cancelled first.
        """
        try:
            async with asyncio.TaskGroup() as group:
                iterator = aiter(lines)
                while True:
                    raw_line = await _next_line(iterator, cancel)
                    if raw_line is None:
                        break
                    try:
                        complaint = self.parse_complaint(raw_line)
                    except ComplaintParseError:
                        logger.debug("pipeline.line_skipped", line=raw_line)
                        continue
                    self.tally.total += 1
                    group.create_task(
                        self._check(raw_line, complaint, on_finding, cancel)
                    )
        except BaseExceptionGroup as group_error:
            raise _first_error(group_error) from group_error

        logger.info(
            "pipeline.completed",
            total=self.tally.total,
            retained=self.tally.retained,
            filtered=self.tally.filtered,
        )
        return self.tally

    async def _check(
        self,
        raw_line: str,
        complaint: Complaint,
        on_finding: Callable[[Finding], None],
        cancel: asyncio.Event | None,
    ) -> None:
        commit = await self.blamer.blame_line(
            complaint.file_path, complaint.line, cancel
        )
        if not passes_filter(commit, self.options):
            logger.debug(
                "pipeline.complaint_dropped",
                file=complaint.file_path,
                line=complaint.line,
                sha1=commit.sha1 if commit else None,
            )
            return
        self.tally.retained += 1
        on_finding(Finding(raw_line=raw_line, complaint=complaint, commit=commit))


async def _next_line(
    iterator: AsyncIterator[str], cancel: asyncio.Event | None
) -> str | None:
    """Return the next line, None at end of input."""
    next_line = asyncio.ensure_future(_anext_or_none(iterator))
    try:
        return await wait_or_cancel(next_line, cancel)
    finally:
        next_line.cancel()


async def _anext_or_none(iterator: AsyncIterator[str]) -> str | None:
    try:
        return await anext(iterator)
    except StopAsyncIteration:
        return None


def _first_error(group_error: BaseExceptionGroup) -> BaseException:
    """Pick the error to surface: a real failure beats a cancellation."""
    errors = _flatten(group_error)
    for error in errors:
        if not isinstance(error, BlameCancelledError | asyncio.CancelledError):
            return error
    return BlameCancelledError("Run cancelled")


def _flatten(group_error: BaseExceptionGroup) -> list[BaseException]:
    errors: list[BaseException] = []
    for error in group_error.exceptions:
        if isinstance(error, BaseExceptionGroup):
            errors.extend(_flatten(error))
        else:
            errors.append(error)
    return errors


async def read_lines(stream: IO[str]) -> AsyncIterator[str]:
    """Yield the lines of *stream*, without newlines, off the event loop.

    Pipes and sockets are read through an asyncio pipe transport on a
    duplicate of the descriptor, so no thread is ever left blocked inside
    *stream* and a cancelled run can exit while the producer keeps the pipe
    open. Regular files and streams without a descriptor are read by a
    daemon thread; those reads always return.
    """
    fd = _fileno(stream)
    encoding = getattr(stream, "encoding", None) or "utf-8"
    if fd is not None and _is_pipe(fd):
        lines = _read_pipe(fd, encoding)
    elif fd is not None:
        private = open(os.dup(fd), encoding=encoding, errors="replace")
        lines = _read_in_thread(private, close=True)
    else:
        lines = _read_in_thread(stream)

    async for line in lines:
        yield line.rstrip("\r\n")


def _fileno(stream: IO[str]) -> int | None:
    try:
        return stream.fileno()
    except (AttributeError, OSError, ValueError):
        return None


def _is_pipe(fd: int) -> bool:
    mode = os.fstat(fd).st_mode
    return stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode)


async def _read_pipe(fd: int, encoding: str) -> AsyncIterator[str]:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    pipe = open(os.dup(fd), "rb", buffering=0)
    try:
        transport, _ = await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), pipe
        )
    except BaseException:
        pipe.close()
        raise

    decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    pending = ""
    try:
        while True:
            chunk = await reader.read(_CHUNK_SIZE)
            pending += decoder.decode(chunk, final=not chunk)
            *complete, pending = pending.split("\n")
            for line in complete:
                yield line
            if not chunk:
                break
        if pending:
            yield pending
    finally:
        transport.close()


async def _read_in_thread(stream: IO[str], close: bool = False) -> AsyncIterator[str]:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[str | None] = asyncio.Queue()

    def put(item: str | None) -> bool:
        try:
            loop.call_soon_threadsafe(queue.put_nowait, item)
        except RuntimeError:
            # Event loop already closed
            return False
        return True

    def pump() -> None:
        try:
            for line in stream:
                if not put(line):
                    return
        finally:
            if close:
                stream.close()
            put(None)

    threading.Thread(target=pump, name="lint-blame-reader", daemon=True).start()

    while True:
        line = await queue.get()
        if line is None:
            return
        yield line
