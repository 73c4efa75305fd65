"""Base classes, dataclasses, and errors for git blame integration."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

NOT_COMMITTED_YET_SHA1 = "0" * 40
NOT_COMMITTED_YET_AUTHOR = "Not Committed Yet"


class BlameError(Exception):
    """Base exception for blame errors."""

    pass


class BlameParseError(BlameError):
    """Blame output did not have the expected porcelain shape."""

    def __init__(self, message: str, fragment: str, lineno: int | None = None) -> None:
        where = f" at line {lineno}" if lineno is not None else ""
        super().__init__(f"{message}{where}: {fragment!r}")
        self.fragment = fragment
        self.lineno = lineno


class BlameProcessError(BlameError):
    """git blame exited with an error other than an untracked path."""

    def __init__(self, file_path: str, returncode: int | None, stderr: str) -> None:
        detail = stderr.strip() or "no error output"
        super().__init__(
            f"git blame failed for {file_path} (exit {returncode}): {detail}"
        )
        self.file_path = file_path
        self.returncode = returncode
        self.stderr = stderr


class BlameCancelledError(BlameError):
    """Lookup was aborted by a cancellation signal."""

    pass


class RepositoryNotFoundError(BlameError):
    """Path is not inside a git work tree."""

    pass


@dataclass(frozen=True)
class CommitInfo:
    """Metadata for one commit seen while blaming a file."""

    sha1: str
    author: str | None = None
    author_mail: str | None = None
    author_time: datetime | None = None  # Always UTC, timezone-aware
    author_tz: str | None = None
    committer: str | None = None
    committer_mail: str | None = None
    committer_time: datetime | None = None  # Always UTC, timezone-aware
    committer_tz: str | None = None
    summary: str | None = None
    filename: str | None = None
    previous_hash: str | None = None
    boundary: bool = False


@dataclass(frozen=True)
class LineInfo:
    """Attribution of one line of the blamed file."""

    code: str
    original_line: int
    final_line: int
    num_lines: int  # -1 when the header did not carry a group length
    commit: CommitInfo | None  # None for lines not committed yet


@dataclass(frozen=True)
class BlameTable:
    """Per-line attribution for one file, as parsed from one blame run."""

    lines: Mapping[int, LineInfo]
    commits: Mapping[str, CommitInfo]

    def __len__(self) -> int:
        return len(self.lines)

    def get(self, line: int) -> LineInfo | None:
        return self.lines.get(line)

    def commit_for(self, line: int) -> CommitInfo | None:
        """Return the commit for *line*, or None if uncommitted or unknown."""
        info = self.lines.get(line)
        return info.commit if info is not None else None


class BlameFetcher(ABC):
    """Abstract source of blame tables, one file at a time."""

    @abstractmethod
    async def fetch(self, file_path: str) -> BlameTable | None:
        """Blame *file_path*.

        Returns None when the file is not tracked by version control yet.
        """
        pass
