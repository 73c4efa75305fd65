"""lint-blame CLI main entry point.

Usage: ``<linter> | lint-blame --format tslint5 --member "Jane <jane@example.com>"``
"""

import asyncio
import signal
from pathlib import Path
from types import FrameType
from typing import IO

import click
import structlog
from pydantic import ValidationError

from lintblame import __version__
from lintblame.complaints import PARSERS, ComplaintParser, get_parser
from lintblame.config import DEFAULT_CONFIG_FILE, LintBlameSettings, load_settings
from lintblame.filtering import Member
from lintblame.git import (
    BlameCancelledError,
    BlameError,
    Blamer,
    GitBlameFetcher,
    find_repo_root,
)
from lintblame.logging import configure_logging
from lintblame.pipeline import Finding, LintBlamePipeline, Tally, read_lines

logger = structlog.get_logger(__name__)

EXIT_CLEAN = 0
EXIT_COMPLAINTS = 1
EXIT_ERROR = 2
EXIT_CANCELLED = 130


class LintBlameError(click.ClickException):
    """Fatal error, reported on stderr with exit status 2."""

    exit_code = EXIT_ERROR


def _parse_members(
    ctx: click.Context, param: click.Parameter, value: tuple[str, ...]
) -> list[Member] | None:
    if not value:
        return None
    try:
        return [Member.parse(text) for text in value]
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


@click.command()
@click.version_option(version=__version__, prog_name="lint-blame")
@click.argument("input_file", metavar="[INPUT]", type=click.File("r"), default="-")
@click.option(
    "-f",
    "--format",
    "complaint_format",
    type=click.Choice(sorted(PARSERS)),
    help="The complaint format to parse.",
)
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="JSON config file.",
)
@click.option(
    "-m",
    "--member",
    "members",
    multiple=True,
    callback=_parse_members,
    help='Report complaints blamed on this member, as "Name <email>". Repeatable.',
)
@click.option(
    "--since",
    help="Ignore complaints from commits authored before this time.",
)
@click.option(
    "-j",
    "--concurrency",
    type=click.IntRange(min=1),
    help="Maximum number of concurrent git blame processes.",
)
@click.option(
    "-C",
    "--repo",
    type=click.Path(file_okay=False, path_type=Path),
    help="Run git in this directory.",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
)
@click.option("--log-format", type=click.Choice(["console", "json"]))
@click.option("--summary/--no-summary", default=None, help="Print counts to stderr.")
def cli(
    input_file: IO[str],
    complaint_format: str | None,
    config_file: Path,
    members: list[Member] | None,
    since: str | None,
    concurrency: int | None,
    repo: Path | None,
    log_level: str | None,
    log_format: str | None,
    summary: bool | None,
) -> None:
    """Filter linter complaints by who, or when, the code was written.

    Reads linter output from INPUT (default: stdin) and prints only the
    complaints whose lines git blames on one of the configured members, or
    on commits authored after --since.

    Exits 1 if any complaint was reported, 0 if none, 2 on errors and 130
    when interrupted.
    """
    if input_file.isatty():
        raise click.UsageError("No input on STDIN")

    try:
        settings = load_settings(
            config_file,
            format=complaint_format,
            members=members,
            since=since,
            concurrency=concurrency,
            repo=repo,
            log_level=log_level,
            log_format=log_format,
            summary=summary,
        )
    except ValidationError as e:
        raise LintBlameError(f"Invalid configuration:\n{e}") from e

    if settings.format is None:
        raise click.UsageError("Missing option '-f' / '--format'.")

    configure_logging(settings.log_level, settings.log_format)
    parse_complaint = get_parser(settings.format)

    try:
        find_repo_root(settings.repo)
        tally = asyncio.run(_run(settings, input_file, parse_complaint))
    except BlameCancelledError:
        click.echo("lint-blame: cancelled", err=True)
        raise SystemExit(EXIT_CANCELLED)
    except BlameError as e:
        raise LintBlameError(str(e)) from e

    if settings.summary:
        click.echo(
            f"lint-blame: {tally.total} complaints, {tally.retained} reported, "
            f"{tally.filtered} filtered",
            err=True,
        )
    raise SystemExit(EXIT_COMPLAINTS if tally.retained else EXIT_CLEAN)


async def _run(
    settings: LintBlameSettings,
    input_file: IO[str],
    parse_complaint: ComplaintParser,
) -> Tally:
    """Run the pipeline until input ends or a termination signal arrives."""
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def handle_shutdown(signum: int, frame: FrameType | None) -> None:
        logger.info("lint_blame.shutdown_requested", signal=signum)
        loop.call_soon_threadsafe(shutdown_event.set)

    previous = {
        signum: signal.signal(signum, handle_shutdown)
        for signum in (signal.SIGTERM, signal.SIGINT)
    }

    def emit(finding: Finding) -> None:
        click.echo(finding.raw_line)

    try:
        fetcher = GitBlameFetcher(cwd=settings.repo)
        async with Blamer(
            fetcher, settings.concurrency, root=settings.repo.resolve()
        ) as blamer:
            pipeline = LintBlamePipeline(
                blamer, parse_complaint, settings.filter_options()
            )
            return await pipeline.run(read_lines(input_file), emit, shutdown_event)
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
