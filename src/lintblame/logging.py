"""structlog setup for the lint-blame CLI.

stdout carries the filtered linter output, so every log line goes to
stderr.
"""

import logging
import sys
from typing import Any

import structlog


def configure_logging(log_level: str = "warning", log_format: str = "console") -> None:
    """Route structlog through stdlib logging on stderr.

    Args:
        log_level: debug, info, warning or error (any case)
        log_format: "console" for people, "json" for one JSON object per line
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.WARNING),
        force=True,
    )

    processors: list[Any] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    if log_format == "json":
        processors += [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
