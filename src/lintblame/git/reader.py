"""Subprocess-based implementation of BlameFetcher."""

import asyncio
from pathlib import Path

import git
import structlog

from .base import BlameFetcher, BlameProcessError, BlameTable, RepositoryNotFoundError
from .porcelain import parse_porcelain

logger = structlog.get_logger(__name__)

# git's own message for paths it does not track
UNTRACKED_PATH_MARKER = "no such path"


def find_repo_root(path: str | Path) -> Path:
    """Return the work tree root containing *path*."""
    try:
        repo = git.Repo(path, search_parent_directories=True)
    except (git.InvalidGitRepositoryError, git.NoSuchPathError) as e:
        raise RepositoryNotFoundError(f"Not a valid git repository: {path}") from e
    if repo.working_tree_dir is None:
        raise RepositoryNotFoundError(f"Repository has no work tree: {path}")
    return Path(repo.working_tree_dir).resolve()


class GitBlameFetcher(BlameFetcher):
    """Runs ``git blame --porcelain`` for one file at a time."""

    def __init__(self, cwd: str | Path | None = None, git_binary: str = "git") -> None:
        self.cwd = Path(cwd) if cwd is not None else None
        self.git_binary = git_binary

    async def fetch(self, file_path: str) -> BlameTable | None:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.git_binary,
                "blame",
                "--porcelain",
                "--",
                file_path,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as e:
            raise BlameProcessError(file_path, None, str(e)) from e

        logger.debug("blame.process_started", file=file_path, pid=proc.pid)

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            logger.debug("blame.process_killed", file=file_path, pid=proc.pid)
            raise

        error_text = stderr.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            if UNTRACKED_PATH_MARKER in error_text:
                logger.debug("blame.untracked", file=file_path)
                return None
            raise BlameProcessError(file_path, proc.returncode, error_text)

        return parse_porcelain(stdout.decode("utf-8", errors="replace"))
