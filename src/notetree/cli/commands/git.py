"""Git sync commands for the note root."""

from typing import Optional

import typer

from notetree.cli.app import git_app
from notetree.cli.commands.command_utils import (
    console,
    get_workspace,
    report,
    run_with_cleanup,
)
from notetree.config import ConfigManager


@git_app.command("remote")
def set_remote(
    url: str = typer.Argument(..., help="Remote repository URL"),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Branch to sync"),
) -> None:
    """Configure the sync remote (initializes the repository if needed).

    Example:
      notetree git remote git@github.com:me/notes.git --branch main
    """
    workspace = get_workspace()
    report(run_with_cleanup(workspace.configure_remote(url)))
    ConfigManager().set_remote(url, branch)


@git_app.command("commit")
def commit(
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Commit message"),
) -> None:
    """Stage every change and commit it."""
    workspace = get_workspace()
    report(run_with_cleanup(workspace.git_commit(message)))


@git_app.command("push")
def push() -> None:
    """Push committed notes to the remote."""
    workspace = get_workspace()
    report(run_with_cleanup(workspace.git_push()))


@git_app.command("pull")
def pull() -> None:
    """Pull notes from the remote and rescan the tree."""
    workspace = get_workspace()
    report(run_with_cleanup(workspace.git_pull()))


@git_app.command("sync")
def sync(
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Commit message"),
) -> None:
    """Stage, commit, pull and push in one step.

    Example:
      notetree git sync -m "Weekly review"
    """
    workspace = get_workspace()
    with console.status("[bold blue]Syncing notes...", spinner="dots"):
        result = run_with_cleanup(workspace.git_sync(message))
    report(result)
