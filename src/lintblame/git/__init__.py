"""Git blame integration for lint-blame.

Provides the porcelain parser, the subprocess fetcher, and the memoized,
concurrency-limited blame coordinator.
"""

from .base import (
    NOT_COMMITTED_YET_AUTHOR,
    NOT_COMMITTED_YET_SHA1,
    BlameCancelledError,
    BlameError,
    BlameFetcher,
    BlameParseError,
    BlameProcessError,
    BlameTable,
    CommitInfo,
    LineInfo,
    RepositoryNotFoundError,
)
from .blamer import Blamer, SlotState
from .cancellation import wait_or_cancel
from .porcelain import parse_porcelain
from .reader import GitBlameFetcher, find_repo_root

__all__ = [
    "Blamer",
    "SlotState",
    "GitBlameFetcher",
    "BlameFetcher",
    "BlameTable",
    "CommitInfo",
    "LineInfo",
    "parse_porcelain",
    "find_repo_root",
    "wait_or_cancel",
    "NOT_COMMITTED_YET_AUTHOR",
    "NOT_COMMITTED_YET_SHA1",
    "BlameError",
    "BlameParseError",
    "BlameProcessError",
    "BlameCancelledError",
    "RepositoryNotFoundError",
]
