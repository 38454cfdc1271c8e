"""Main CLI entry point for notetree."""  # pragma: no cover

from notetree.cli.app import app  # pragma: no cover

# Register commands
from notetree.cli.commands import (  # noqa: F401  # pragma: no cover
    git,
    notes,
)

if __name__ == "__main__":  # pragma: no cover
    app()
