"""lint-blame: filter linter complaints by git blame."""

__version__ = "0.1.0"
