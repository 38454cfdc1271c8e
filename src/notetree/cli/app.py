import locale
from typing import Optional

import typer
from loguru import logger

from notetree.config import init_cli_logging


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:  # pragma: no cover
        import notetree

        typer.echo(f"notetree version: {notetree.__version__}")
        raise typer.Exit()


app = typer.Typer(name="notetree", help="Browse, organize and sync a folder of Markdown notes")

# Options shared by every command, set by the callback below
state: dict[str, Optional[str]] = {"home": None}


@app.callback()
def app_callback(
    ctx: typer.Context,
    home: Optional[str] = typer.Option(
        None,
        "--home",
        help="Note root to use instead of the configured one",
        envvar="NOTETREE_CLI_HOME",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """notetree - personal Markdown notes as a tree."""
    init_cli_logging()
    try:
        # note names sort by the user's collation rules
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        logger.warning(f"Could not apply locale collation, using codepoint order: {e}")
    state["home"] = home


git_app = typer.Typer(help="Sync the note root with a git remote")
app.add_typer(git_app, name="git")
