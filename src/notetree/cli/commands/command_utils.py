"""Utility functions for CLI commands."""

import asyncio
from typing import Coroutine, TypeVar

import typer
from rich.console import Console

from notetree.cli.app import state
from notetree.config import ConfigManager, NoteTreeConfig
from notetree.schemas.response import OperationResult
from notetree.services.workspace_service import WorkspaceService

T = TypeVar("T")

console = Console()


def run_with_cleanup(coro: Coroutine[object, object, T]) -> T:
    """Run an async command body on a fresh event loop."""
    return asyncio.run(coro)


def get_app_config() -> NoteTreeConfig:
    """Saved configuration, with the --home override applied."""
    config = ConfigManager().config
    if home := state.get("home"):
        return NoteTreeConfig(**{**config.model_dump(), "home": home})
    return config


def get_workspace() -> WorkspaceService:
    return WorkspaceService(get_app_config())


def report(result: OperationResult) -> None:
    """Print an operation result; exit with status 1 when it failed."""
    if result.success:
        console.print(f"[green]{result.message}[/green]")
        return

    kind = result.error_kind.value if result.error_kind else "error"
    console.print(f"[red]Error ({kind}): {result.message}[/red]")
    raise typer.Exit(1)
