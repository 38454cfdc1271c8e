"""Note tree commands: list, create, rename, move, delete, show and save."""

from typing import Optional

import typer
from rich.tree import Tree

from notetree.cli.app import app
from notetree.cli.commands.command_utils import (
    console,
    get_workspace,
    report,
    run_with_cleanup,
)
from notetree.schemas.tree import NodeKind, SortPolicy, TreeNode


def add_nodes_to_tree(branch: Tree, node: TreeNode) -> None:
    """Add a projected node's children to a rich tree, folders styled bold."""
    for child in node.children or []:
        if child.kind == NodeKind.CONTAINER:
            sub_branch = branch.add(f"[bold blue]{child.name}/[/bold blue]")
            add_nodes_to_tree(sub_branch, child)
        else:
            branch.add(child.name)


@app.command("tree")
def show_tree(
    sort: Optional[SortPolicy] = typer.Option(None, "--sort", "-s", help="Sort policy"),
    filter_query: Optional[str] = typer.Option(
        None, "--filter", "-f", help="Only show names containing this text"
    ),
) -> None:
    """Show the note tree.

    Example:
      notetree tree --sort modified_desc --filter todo
    """
    workspace = get_workspace()

    async def _tree() -> TreeNode:
        return await workspace.get_tree(sort, filter_query)

    projected = run_with_cleanup(_tree())
    tree = Tree(f"[bold]{workspace.root}[/bold]")
    if not projected.children:
        tree.add("[dim]No notes[/dim]" if not filter_query else "[dim]No matches[/dim]")
    add_nodes_to_tree(tree, projected)
    console.print(tree)


@app.command("new")
def new_node(
    path: str = typer.Argument(..., help="Path of the new note or folder, e.g. work/todo"),
    folder: bool = typer.Option(False, "--folder", "-d", help="Create a folder instead of a note"),
) -> None:
    """Create a note (adds .md when missing) or a folder."""
    workspace = get_workspace()
    kind = NodeKind.CONTAINER if folder else NodeKind.LEAF
    report(run_with_cleanup(workspace.create("", path, kind)))


@app.command("rename")
def rename_node(
    path: str = typer.Argument(..., help="Current path"),
    new_name: str = typer.Argument(..., help="New name (stays in the same folder)"),
) -> None:
    """Rename a note or folder."""
    workspace = get_workspace()
    report(run_with_cleanup(workspace.rename(path, new_name)))


@app.command("move")
def move_node(
    source: str = typer.Argument(..., help="Path to move"),
    target: str = typer.Argument(..., help="Destination folder ('' or '.' for the root)"),
) -> None:
    """Move a note or folder into another folder."""
    workspace = get_workspace()
    if target == ".":
        target = ""
    report(run_with_cleanup(workspace.move(source, target)))


@app.command("rm")
def delete_node(
    path: str = typer.Argument(..., help="Path to delete"),
    force: bool = typer.Option(False, "--force", help="Skip confirmation for folders"),
) -> None:
    """Delete a note, or a folder and everything in it."""
    workspace = get_workspace()

    async def _kind() -> Optional[NodeKind]:
        node = await workspace.find(path)
        return node.kind if node else None

    if run_with_cleanup(_kind()) == NodeKind.CONTAINER and not force:
        typer.confirm(f"Delete folder '{path}' and everything in it?", abort=True)

    report(run_with_cleanup(workspace.delete(path)))


@app.command("show")
def show_note(
    path: str = typer.Argument(..., help="Note path; the .md extension is optional"),
) -> None:
    """Print a note's content."""
    workspace = get_workspace()
    result = run_with_cleanup(workspace.read_note(path))
    if not result.success:
        report(result)
    console.print(result.content or "", markup=False, highlight=False)


@app.command("save")
def save_note(
    path: str = typer.Argument(..., help="Note path; created when missing"),
    content: Optional[str] = typer.Option(
        None, "--content", "-c", help="Note text. Read from stdin when omitted."
    ),
) -> None:
    """Write a note's content."""
    if content is None:
        content = typer.get_text_stream("stdin").read()

    workspace = get_workspace()
    report(run_with_cleanup(workspace.save_note(path, content)))
