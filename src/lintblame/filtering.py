"""Decide whether a blamed complaint should be reported."""

import re
from dataclasses import dataclass
from datetime import datetime

from lintblame.git import NOT_COMMITTED_YET_AUTHOR, CommitInfo

_MEMBER_RE = re.compile(r"^\s*(?P<name>[^<]*?)\s*(?:<(?P<email>[^>]*)>)?\s*$")


@dataclass(frozen=True)
class Member:
    """A person whose complaints are reported, matched by name or email."""

    name: str | None = None
    email: str | None = None

    def __post_init__(self) -> None:
        if not self.name and not self.email:
            raise ValueError("Member needs a name or an email")

    @classmethod
    def parse(cls, text: str) -> "Member":
        """Parse ``"Name <email>"``, ``"Name"`` or ``"<email>"``."""
        match = _MEMBER_RE.match(text)
        if not match:
            raise ValueError(f"Invalid member: {text!r} (expected 'Name <email>')")
        return cls(name=match.group("name") or None, email=match.group("email") or None)

    def matches(self, commit: CommitInfo) -> bool:
        return (self.email is not None and self.email == commit.author_mail) or (
            self.name is not None and self.name == commit.author
        )


@dataclass(frozen=True)
class FilterOptions:
    """Which complaints to keep.

    members: keep complaints blamed on one of these people; None keeps all.
    since: keep complaints from commits authored after this instant; None
        keeps all.
    """

    members: tuple[Member, ...] | None = None
    since: datetime | None = None


def passes_filter(commit: CommitInfo | None, options: FilterOptions) -> bool:
    """Return True if a complaint blamed on *commit* should be reported.

    Lines that are not committed yet always pass the member test, and
    commits without an author time always pass the since test: what cannot
    be attributed or dated is surfaced rather than hidden.
    """
    if commit is None:
        return True

    if options.members is not None and commit.author != NOT_COMMITTED_YET_AUTHOR:
        if not any(member.matches(commit) for member in options.members):
            return False

    if options.since is not None and commit.author_time is not None:
        if commit.author_time <= options.since:
            return False

    return True
