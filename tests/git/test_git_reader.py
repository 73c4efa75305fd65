"""Tests for GitBlameFetcher against real repositories."""

import asyncio
import os
import sys
import time
from datetime import UTC, datetime
from pathlib import Path

import git
import pytest

from lintblame.git import (
    BlameProcessError,
    GitBlameFetcher,
    RepositoryNotFoundError,
    find_repo_root,
)


class TestGitBlameFetcher:
    """Tests for GitBlameFetcher."""

    async def test_blame_committed_file(self, two_author_repo) -> None:
        """Test blaming a file with two authors."""
        repo_path, _ = two_author_repo
        fetcher = GitBlameFetcher(cwd=repo_path)

        table = await fetcher.fetch("hello.py")

        assert table is not None
        assert len(table) == 3
        assert table.get(1).code == "def hello():"
        assert table.commit_for(1).author == "Alice"
        assert table.commit_for(1).author_mail == "alice@example.com"
        assert table.commit_for(2) is table.commit_for(1)
        assert table.commit_for(3).author == "Bob"
        assert table.commit_for(3).author_time == datetime(
            2022, 6, 1, 12, 0, tzinfo=UTC
        )
        assert len(table.commits) == 2

    async def test_absolute_path(self, two_author_repo) -> None:
        """Test that absolute paths inside the work tree are accepted."""
        repo_path, _ = two_author_repo
        fetcher = GitBlameFetcher(cwd=repo_path)

        table = await fetcher.fetch(str(repo_path / "hello.py"))

        assert table is not None
        assert table.commit_for(3).author == "Bob"

    async def test_uncommitted_changes(self, two_author_repo) -> None:
        """Test that locally modified lines have no commit."""
        repo_path, _ = two_author_repo
        (repo_path / "hello.py").write_text(
            "def hello():\n    return 2\nprint(hello())\n"
        )
        fetcher = GitBlameFetcher(cwd=repo_path)

        table = await fetcher.fetch("hello.py")

        assert table is not None
        assert table.commit_for(1).author == "Alice"
        assert table.get(2).commit is None
        assert table.commit_for(3).author == "Bob"

    async def test_untracked_file(self, two_author_repo) -> None:
        """Test that an untracked file resolves to None."""
        repo_path, _ = two_author_repo
        (repo_path / "new.py").write_text("x = 1\n")
        fetcher = GitBlameFetcher(cwd=repo_path)

        assert await fetcher.fetch("new.py") is None

    async def test_missing_file(self, two_author_repo) -> None:
        """Test that a file that does not exist is an error."""
        repo_path, _ = two_author_repo
        fetcher = GitBlameFetcher(cwd=repo_path)

        with pytest.raises(BlameProcessError) as exc_info:
            await fetcher.fetch("does_not_exist.py")

        assert exc_info.value.returncode != 0
        assert exc_info.value.file_path == "does_not_exist.py"

    async def test_not_a_repository(self, tmp_path: Path) -> None:
        """Test that blaming outside a repository is an error."""
        plain = tmp_path / "plain"
        plain.mkdir()
        (plain / "file.py").write_text("x = 1\n")
        fetcher = GitBlameFetcher(cwd=plain)

        with pytest.raises(BlameProcessError) as exc_info:
            await fetcher.fetch("file.py")

        assert "not a git repository" in exc_info.value.stderr.lower()

    async def test_missing_git_binary(self, two_author_repo) -> None:
        """Test that a git binary that cannot be run is an error."""
        repo_path, _ = two_author_repo
        fetcher = GitBlameFetcher(cwd=repo_path, git_binary="lint-blame-no-such-git")

        with pytest.raises(BlameProcessError) as exc_info:
            await fetcher.fetch("hello.py")

        assert exc_info.value.returncode is None

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    async def test_cancel_kills_process(self, tmp_path: Path) -> None:
        """Test that cancelling a fetch terminates and reaps git."""
        pid_file = tmp_path / "git.pid"
        fake_git = tmp_path / "slow-git"
        fake_git.write_text(f"#!/bin/sh\necho $$ > {pid_file}\nexec sleep 30\n")
        fake_git.chmod(0o755)
        fetcher = GitBlameFetcher(cwd=tmp_path, git_binary=str(fake_git))

        task = asyncio.create_task(fetcher.fetch("file.py"))
        for _ in range(100):
            if pid_file.exists() and pid_file.read_text().strip():
                break
            await asyncio.sleep(0.05)
        pid = int(pid_file.read_text())

        start = time.monotonic()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert time.monotonic() - start < 5
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)


class TestFindRepoRoot:
    """Tests for find_repo_root."""

    def test_from_subdirectory(self, temp_repo) -> None:
        """Test that the work tree root is found from a subdirectory."""
        repo_path, _ = temp_repo
        sub = repo_path / "src" / "pkg"
        sub.mkdir(parents=True)

        assert find_repo_root(sub) == repo_path.resolve()

    def test_not_a_repository(self, tmp_path: Path) -> None:
        """Test that a plain directory is rejected."""
        plain = tmp_path / "plain"
        plain.mkdir()

        with pytest.raises(RepositoryNotFoundError):
            find_repo_root(plain)

    def test_nonexistent_path(self) -> None:
        """Test that a nonexistent path is rejected."""
        with pytest.raises(RepositoryNotFoundError):
            find_repo_root("/nonexistent/path")

    def test_bare_repository(self, tmp_path: Path) -> None:
        """Test that a bare repository is rejected."""
        bare = tmp_path / "bare.git"
        git.Repo.init(bare, bare=True).close()

        with pytest.raises(RepositoryNotFoundError):
            find_repo_root(bare)
