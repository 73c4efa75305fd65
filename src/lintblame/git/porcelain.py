"""Parser for ``git blame --porcelain`` output.

The porcelain format is a sequence of blocks, one per line of the blamed
file::

    <sha1> <original-line> <final-line> [<group-size>]
    author A U Thor            \\
    author-mail <a@example.com> |  only the first time a commit
    ...                         |  appears in the output
    filename src/foo.py        /
    \\t<source line>

Commit metadata is emitted once per commit, so parsing runs in two passes:
the first pass validates the block structure and collects the raw metadata
of every commit, the second builds one immutable ``CommitInfo`` per commit
and the ``LineInfo`` records that share it.
"""

import re
from dataclasses import dataclass
from datetime import UTC, datetime
from types import MappingProxyType

from .base import (
    NOT_COMMITTED_YET_SHA1,
    BlameParseError,
    BlameTable,
    CommitInfo,
    LineInfo,
)

_SHA1_RE = re.compile(r"^[0-9a-f]{40}$")

_TEXT_FIELDS = {
    "author": "author",
    "author-tz": "author_tz",
    "committer": "committer",
    "committer-tz": "committer_tz",
    "summary": "summary",
    "filename": "filename",
}
_MAIL_FIELDS = {
    "author-mail": "author_mail",
    "committer-mail": "committer_mail",
}
_TIME_FIELDS = {
    "author-time": "author_time",
    "committer-time": "committer_time",
}


@dataclass
class _Block:
    sha1: str
    original_line: int
    final_line: int
    num_lines: int
    header: str
    lineno: int
    code: str = ""


def parse_porcelain(text: str) -> BlameTable:
    """Parse the stdout of one ``git blame --porcelain`` run.

    Raises:
        BlameParseError: If the output is malformed or does not attribute
            every line of the file exactly once.
    """
    blocks, metadata = _scan(text)

    commits = {
        sha1: _build_commit(sha1, fields) for sha1, fields in metadata.items()
    }

    lines: dict[int, LineInfo] = {}
    for block in blocks:
        if block.final_line in lines:
            raise BlameParseError(
                "Duplicate attribution for line", block.header, block.lineno
            )
        lines[block.final_line] = LineInfo(
            code=block.code,
            original_line=block.original_line,
            final_line=block.final_line,
            num_lines=block.num_lines,
            commit=commits.get(block.sha1),
        )

    # No duplicates, so the keys are exactly 1..N iff the largest one is N
    if lines and max(lines) != len(lines):
        missing = min(n for n in range(1, max(lines) + 1) if n not in lines)
        raise BlameParseError("Missing attribution", f"line {missing}")

    return BlameTable(
        lines=MappingProxyType(lines),
        commits=MappingProxyType(commits),
    )


def _scan(
    text: str,
) -> tuple[list[_Block], dict[str, dict[str, tuple[str, int]]]]:
    """First pass: split the output into blocks and collect commit metadata."""
    blocks: list[_Block] = []
    metadata: dict[str, dict[str, tuple[str, int]]] = {}
    seen: set[str] = set()

    block: _Block | None = None
    collecting = False

    for lineno, line in enumerate(text.split("\n"), start=1):
        if block is None:
            if not line:
                continue
            block = _parse_header(line, lineno)
            collecting = block.sha1 not in seen
            seen.add(block.sha1)
            if collecting and block.sha1 != NOT_COMMITTED_YET_SHA1:
                metadata[block.sha1] = {}
            continue

        if line.startswith("\t"):
            block.code = line[1:]
            blocks.append(block)
            block = None
            continue

        key, _, value = line.partition(" ")
        if collecting:
            if block.sha1 != NOT_COMMITTED_YET_SHA1:
                metadata[block.sha1][key] = (value, lineno)
        elif key == "filename":
            # Repeated for commits that touched more than one path
            if block.sha1 != NOT_COMMITTED_YET_SHA1:
                metadata[block.sha1].setdefault(key, (value, lineno))
        else:
            raise BlameParseError("Unexpected metadata line", line, lineno)

    if block is not None:
        raise BlameParseError("Unterminated blame block", block.header, block.lineno)

    return blocks, metadata


def _parse_header(line: str, lineno: int) -> _Block:
    parts = line.split(" ")
    if len(parts) not in (3, 4) or not _SHA1_RE.match(parts[0]):
        raise BlameParseError("Unparseable blame header", line, lineno)

    try:
        numbers = [int(part) for part in parts[1:]]
    except ValueError:
        raise BlameParseError("Unparseable blame header", line, lineno) from None
    if any(n < 1 for n in numbers):
        raise BlameParseError("Unparseable blame header", line, lineno)

    return _Block(
        sha1=parts[0],
        original_line=numbers[0],
        final_line=numbers[1],
        num_lines=numbers[2] if len(numbers) == 3 else -1,
        header=line,
        lineno=lineno,
    )


def _build_commit(sha1: str, fields: dict[str, tuple[str, int]]) -> CommitInfo:
    """Second pass: turn raw metadata into an immutable CommitInfo."""
    values: dict[str, object] = {}

    for key, (value, lineno) in fields.items():
        if key in _TEXT_FIELDS:
            values[_TEXT_FIELDS[key]] = value
        elif key in _MAIL_FIELDS:
            values[_MAIL_FIELDS[key]] = _strip_brackets(value)
        elif key in _TIME_FIELDS:
            try:
                values[_TIME_FIELDS[key]] = datetime.fromtimestamp(int(value), tz=UTC)
            except (ValueError, OverflowError, OSError):
                raise BlameParseError(
                    "Invalid timestamp", f"{key} {value}", lineno
                ) from None
        elif key == "previous":
            values["previous_hash"] = value.split(" ", 1)[0]
        elif key == "boundary":
            values["boundary"] = True

    return CommitInfo(sha1=sha1, **values)  # type: ignore[arg-type]


def _strip_brackets(mail: str) -> str:
    if mail.startswith("<") and mail.endswith(">"):
        return mail[1:-1]
    return mail
