"""Memoized, concurrency-limited blame lookups."""

import asyncio
import functools
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import TracebackType

import structlog

from .base import BlameFetcher, BlameTable, CommitInfo
from .cancellation import wait_or_cancel

logger = structlog.get_logger(__name__)


class SlotState(Enum):
    """Lifecycle of one file's cache slot.

    A failed or cancelled fetch removes the slot instead of entering a
    state, so the next lookup starts over.
    """

    FETCHING = "fetching"
    RESOLVED = "resolved"
    UNCOMMITTED = "uncommitted"


@dataclass
class _Slot:
    task: "asyncio.Task[BlameTable | None]"
    state: SlotState = SlotState.FETCHING
    waiters: int = 0


class Blamer:
    """Resolves ``(file, line)`` to the commit that last touched it.

    Each file is blamed at most once at a time and successful results are
    cached, so any number of concurrent lookups for one file share a single
    git process. At most ``concurrency_limit`` processes run at once.
    """

    def __init__(
        self,
        fetcher: BlameFetcher,
        concurrency_limit: int,
        root: str | Path | None = None,
    ) -> None:
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")
        self.fetcher = fetcher
        self.concurrency_limit = concurrency_limit
        self.root = Path(root) if root is not None else Path.cwd()
        self.fetch_count = 0
        self._semaphore = asyncio.Semaphore(concurrency_limit)
        self._slots: dict[str, _Slot] = {}
        self._in_flight: set[asyncio.Task[BlameTable | None]] = set()

    async def __aenter__(self) -> "Blamer":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def blame_line(
        self,
        file_path: str,
        line: int,
        cancel: asyncio.Event | None = None,
    ) -> CommitInfo | None:
        """Return the commit for *line* of *file_path*.

        None means no attribution: the line is uncommitted, the file is
        untracked, or git did not blame the line (linters may report on the
        end-of-file line, which git never attributes).
        """
        table = await self.blame_file(file_path, cancel)
        if table is None:
            return None
        info = table.get(line)
        if info is None:
            logger.debug("blame.line_not_attributed", file=file_path, line=line)
            return None
        return info.commit

    async def blame_file(
        self,
        file_path: str,
        cancel: asyncio.Event | None = None,
    ) -> BlameTable | None:
        """Return the blame table for *file_path*, or None if untracked.

        Raises:
            BlameCancelledError: If *cancel* fires before the result is ready.
            BlameParseError, BlameProcessError: If the fetch failed. Failures
                are not cached.
        """
        key = self._key(file_path)

        # No await between lookup and insert, so concurrent first requests
        # for one file cannot both start a fetch.
        slot = self._slots.get(key)
        if slot is None:
            slot = self._start_fetch(key)
        elif slot.state is not SlotState.FETCHING:
            return slot.task.result()

        slot.waiters += 1
        try:
            return await wait_or_cancel(slot.task, cancel)
        finally:
            slot.waiters -= 1
            if slot.waiters == 0 and not slot.task.done():
                logger.debug("blame.fetch_abandoned", file=key)
                slot.task.cancel()
                # The next lookup must not join the dying task
                self._discard(key, slot)

    def invalidate(self, file_path: str | None = None) -> None:
        """Forget completed results for *file_path*, or for every file.

        In-flight fetches are left alone.
        """
        if file_path is None:
            keys = list(self._slots)
        else:
            keys = [self._key(file_path)]
        for key in keys:
            slot = self._slots.get(key)
            if slot is not None and slot.state is not SlotState.FETCHING:
                del self._slots[key]

    async def aclose(self) -> None:
        """Cancel every in-flight fetch and wait for its process to exit."""
        tasks = [task for task in self._in_flight if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            logger.debug("blame.cancelling_fetches", count=len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    def _key(self, file_path: str) -> str:
        return os.path.normpath(os.path.join(self.root, file_path))

    def _start_fetch(self, key: str) -> _Slot:
        self.fetch_count += 1
        task = asyncio.create_task(self._fetch(key), name=f"blame:{key}")
        slot = _Slot(task=task)
        self._slots[key] = slot
        self._in_flight.add(task)
        task.add_done_callback(functools.partial(self._on_fetch_done, key, slot))
        return slot

    async def _fetch(self, key: str) -> BlameTable | None:
        async with self._semaphore:
            logger.debug("blame.fetch_started", file=key)
            return await self.fetcher.fetch(key)

    def _on_fetch_done(
        self, key: str, slot: _Slot, task: "asyncio.Task[BlameTable | None]"
    ) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            self._discard(key, slot)
            logger.debug("blame.fetch_cancelled", file=key)
            return

        error = task.exception()
        if error is not None:
            self._discard(key, slot)
            logger.warning("blame.fetch_failed", file=key, error=str(error))
            return

        table = task.result()
        if table is None:
            slot.state = SlotState.UNCOMMITTED
            logger.debug("blame.fetch_completed", file=key, tracked=False)
        else:
            slot.state = SlotState.RESOLVED
            logger.debug("blame.fetch_completed", file=key, lines=len(table))

    def _discard(self, key: str, slot: _Slot) -> None:
        if self._slots.get(key) is slot:
            del self._slots[key]
