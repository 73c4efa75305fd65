"""lint-blame command line interface."""
