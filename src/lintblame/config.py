"""lint-blame configuration.

Settings are resolved from, highest precedence first: explicit CLI values,
environment variables with the LINT_BLAME_ prefix, a JSON config file
(``./lint-blame.json`` by default), and the defaults below.
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from lintblame.complaints import PARSERS
from lintblame.filtering import FilterOptions, Member

DEFAULT_CONFIG_FILE = Path("lint-blame.json")


def default_concurrency() -> int:
    """Blame processes are I/O bound, so allow a couple per core."""
    return max(4, 2 * (os.cpu_count() or 1))


class LintBlameSettings(BaseSettings):
    """lint-blame configuration.

    All settings can be overridden via environment variables with the
    LINT_BLAME_ prefix. For example, LINT_BLAME_CONCURRENCY=8 caps blame at
    eight concurrent git processes, and
    LINT_BLAME_MEMBERS='[{"name": "A", "email": "a@example.com"}]' sets
    the member list.
    """

    model_config = SettingsConfigDict(
        env_prefix="LINT_BLAME_",
        extra="ignore",
    )

    format: str | None = Field(
        default=None,
        description="Complaint format of the linter output",
    )
    members: list[Member] | None = Field(
        default=None,
        description="Only report complaints blamed on these members",
    )
    since: datetime | None = Field(
        default=None,
        description="Only report complaints from commits authored after this",
    )
    concurrency: int = Field(
        default_factory=default_concurrency,
        ge=1,
        description="Maximum number of concurrent git blame processes",
    )
    repo: Path = Field(
        default=Path("."),
        description="Directory git blame runs in",
    )
    log_level: str = Field(
        default="warning",
        description="Logging level (debug, info, warning, error)",
    )
    log_format: str = Field(
        default="console",
        description="Log output format (console or json)",
    )
    summary: bool = Field(
        default=True,
        description="Print complaint counts to stderr when done",
    )

    @field_validator("format")
    @classmethod
    def _known_format(cls, value: str | None) -> str | None:
        if value is not None and value not in PARSERS:
            choices = ", ".join(sorted(PARSERS))
            raise ValueError(
                f"Unknown complaint format {value!r} (choose from {choices})"
            )
        return value

    @field_validator("since")
    @classmethod
    def _aware_since(cls, value: datetime | None) -> datetime | None:
        # Naive times are local time
        if value is not None and value.tzinfo is None:
            return value.astimezone()
        return value

    @field_validator("log_format")
    @classmethod
    def _known_log_format(cls, value: str) -> str:
        if value not in ("console", "json"):
            raise ValueError(
                f"Unknown log format {value!r} (choose from console, json)"
            )
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            JsonConfigSettingsSource(settings_cls),
        )

    def filter_options(self) -> FilterOptions:
        return FilterOptions(
            members=tuple(self.members) if self.members is not None else None,
            since=self.since,
        )


def load_settings(
    config_file: str | Path | None = DEFAULT_CONFIG_FILE,
    **overrides: Any,
) -> LintBlameSettings:
    """Build settings from *config_file*, the environment and *overrides*.

    A missing config file is not an error. Overrides that are None are
    treated as not given.
    """
    explicit = {key: value for key, value in overrides.items() if value is not None}

    class _FileSettings(LintBlameSettings):
        model_config = SettingsConfigDict(json_file=config_file)

    return _FileSettings(**explicit)
