"""Parsers that reduce one line of linter output to a Complaint."""

import re
from collections.abc import Callable
from dataclasses import dataclass


class ComplaintParseError(ValueError):
    """Line is not a complaint in the expected format."""

    pass


@dataclass(frozen=True)
class Complaint:
    """One linter-reported issue."""

    file_path: str
    line: int
    column: int


ComplaintParser = Callable[[str], Complaint]


def _regex_parser(pattern: str, linter: str) -> ComplaintParser:
    regex = re.compile(pattern)

    def parse(line: str) -> Complaint:
        match = regex.match(line)
        if not match:
            raise ComplaintParseError(f"Not a {linter} complaint: {line}")
        return Complaint(
            file_path=match.group(1),
            line=int(match.group(2)),
            column=int(match.group(3)),
        )

    return parse


# path[line, column]: message
tslint4 = _regex_parser(r"^(.+)\[(\d+), (\d+)\]:", "TSLint")
# ERROR: path[line, column]: message
tslint5 = _regex_parser(r"^ERROR: (.+)\[(\d+), (\d+)\]:", "TSLint")
# path(line,column): message
tsconfig = _regex_parser(r"^(.+)\((\d+),(\d+)\):", "tsconfig")

PARSERS: dict[str, ComplaintParser] = {
    "tslint4": tslint4,
    "tslint5": tslint5,
    "tsconfig": tsconfig,
}


def get_parser(name: str) -> ComplaintParser:
    try:
        return PARSERS[name]
    except KeyError:
        raise ValueError(f"Unknown complaint format: {name}") from None
