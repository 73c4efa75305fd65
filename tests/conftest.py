"""Pytest configuration and fixtures."""

import asyncio
import os
import threading
from collections.abc import Callable, Generator
from datetime import datetime
from pathlib import Path

import git
import pytest

from lintblame.git import BlameFetcher, BlameTable, parse_porcelain

# Enable pytest-asyncio for all tests
pytest_plugins = ("pytest_asyncio",)

ALICE = git.Actor("Alice", "alice@example.com")
BOB = git.Actor("Bob", "bob@example.com")


def make_porcelain(
    sha1: str,
    author: str,
    email: str,
    author_time: int,
    num_lines: int,
) -> str:
    """Porcelain output for a file whose lines all come from one commit."""
    blocks = [
        f"{sha1} 1 1 {num_lines}",
        f"author {author}",
        f"author-mail <{email}>",
        f"author-time {author_time}",
        "author-tz +0000",
        f"committer {author}",
        f"committer-mail <{email}>",
        f"committer-time {author_time}",
        "committer-tz +0000",
        "summary Initial commit",
        "filename file.py",
        "\tline 1",
    ]
    for n in range(2, num_lines + 1):
        blocks.extend([f"{sha1} {n} {n}", f"\tline {n}"])
    return "\n".join(blocks) + "\n"


@pytest.fixture
def make_table() -> Callable[..., BlameTable]:
    """Factory for single-commit blame tables."""

    def factory(
        author: str = "Alice",
        email: str = "alice@example.com",
        author_time: int = 1_600_000_000,
        num_lines: int = 3,
        sha1: str = "a" * 40,
    ) -> BlameTable:
        return parse_porcelain(
            make_porcelain(sha1, author, email, author_time, num_lines)
        )

    return factory


class FakeFetcher(BlameFetcher):
    """In-memory BlameFetcher that records how it is used.

    ``results`` maps a file's basename to a BlameTable, None (untracked), an
    exception to raise, or a list of those consumed one fetch at a time.
    While ``gate`` is set to an unset Event, fetches block on it.
    """

    def __init__(self, results: dict[str, object], delay: float = 0.0) -> None:
        self.results = results
        self.delay = delay
        self.gate: asyncio.Event | None = None
        self.calls: list[str] = []
        self.cancelled: list[str] = []
        self.active = 0
        self.max_active = 0

    async def fetch(self, file_path: str) -> BlameTable | None:
        self.calls.append(file_path)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(self.delay)
            result = self.results[os.path.basename(file_path)]
            if isinstance(result, list):
                result = result.pop(0)
            if isinstance(result, Exception):
                raise result
            return result  # type: ignore[return-value]
        except asyncio.CancelledError:
            self.cancelled.append(file_path)
            raise
        finally:
            self.active -= 1


@pytest.fixture
def make_fetcher() -> type[FakeFetcher]:
    """Factory for FakeFetcher instances."""
    return FakeFetcher


@pytest.fixture
def temp_repo(tmp_path: Path) -> Generator[tuple[Path, git.Repo], None, None]:
    """Create a temporary git repository for testing."""
    repo_path = tmp_path / "repo"
    repo_path.mkdir()
    repo = git.Repo.init(repo_path)

    # Configure git for commits
    with repo.config_writer() as config:
        config.set_value("user", "name", "Test User")
        config.set_value("user", "email", "test@example.com")

    yield repo_path, repo
    repo.close()


def _commit_file(
    repo: git.Repo,
    repo_path: Path,
    name: str,
    content: str,
    author: git.Actor,
    when: datetime,
) -> str:
    """Write *content* to *name* and commit it as *author* at *when*."""
    (repo_path / name).write_text(content)
    repo.index.add([name])
    # git internal date format: "<unix timestamp> <offset>"
    date = f"{int(when.timestamp())} +0000"
    commit = repo.index.commit(
        f"Update {name}",
        author=author,
        committer=author,
        author_date=date,
        commit_date=date,
    )
    return commit.hexsha


@pytest.fixture
def commit_file() -> Callable[..., str]:
    """Commit helper: commit_file(repo, repo_path, name, content, author, when)."""
    return _commit_file


@pytest.fixture
def two_author_repo(
    temp_repo: tuple[Path, git.Repo],
) -> tuple[Path, git.Repo]:
    """hello.py: lines 1-2 by Alice (mid 2020), line 3 by Bob (mid 2022)."""
    repo_path, repo = temp_repo
    _commit_file(
        repo,
        repo_path,
        "hello.py",
        "def hello():\n    return 1\n",
        ALICE,
        datetime.fromisoformat("2020-06-01T12:00:00+00:00"),
    )
    _commit_file(
        repo,
        repo_path,
        "hello.py",
        "def hello():\n    return 1\nprint(hello())\n",
        BOB,
        datetime.fromisoformat("2022-06-01T12:00:00+00:00"),
    )
    return repo_path, repo


# Thread names that are expected to be long-running and should be ignored
# by the resource tracker.
_IGNORED_THREAD_PREFIXES = (
    "MainThread",
    "ThreadPoolExecutor",  # Python's ThreadPoolExecutor workers
    "asyncio_",  # asyncio internal threads
    "concurrent.futures",  # concurrent.futures workers
    "pydevd",  # Debugger threads
)


def _is_tracked_thread(t: threading.Thread) -> bool:
    """Check if a thread should be tracked for leak detection.

    Daemon threads (such as the input reader) are expected to outlive a
    test and are killed at exit.
    """
    if t.daemon:
        return False
    if t.name is None:
        return True
    return not any(t.name.startswith(prefix) for prefix in _IGNORED_THREAD_PREFIXES)


@pytest.fixture(autouse=True)
def thread_leak_tracker(
    request: pytest.FixtureRequest,
) -> Generator[None, None, None]:
    """Fail tests that leak non-daemon threads.

    To skip this check for a specific test, use:
        @pytest.mark.no_resource_tracking
    """
    if request.node.get_closest_marker("no_resource_tracking"):
        yield
        return

    baseline_threads = {t for t in threading.enumerate() if _is_tracked_thread(t)}

    yield

    current_threads = {t for t in threading.enumerate() if _is_tracked_thread(t)}
    leaked_threads = current_threads - baseline_threads
    if leaked_threads:
        thread_names = [t.name for t in leaked_threads]
        pytest.fail(
            f"Thread leak detected - {len(leaked_threads)} thread(s): {thread_names}. "
            "Tests must join all threads before completion."
        )


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "no_resource_tracking: skip resource leak checking for this test",
    )
