"""To-do list commands for the todoshare CLI."""

from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from todoshare.cli.utils import auth
from todoshare.exceptions import TodosError
from todoshare.services.todos import (
    Error,
    Loaded,
    Loading,
    ToDo,
    TodosService,
    describe_state,
)
from todoshare.services.todos.models.cloudkit import CKZoneID

app = typer.Typer(help="List, add, check off and share to-dos")
console = Console()


def _load(service: TodosService) -> Loaded:
    try:
        service.initialize()
    except TodosError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    state = service.refresh()
    if isinstance(state, Loaded):
        return state
    if isinstance(state, Error):
        console.print(f"[bold red]Error:[/bold red] {state.cause}")
        raise typer.Exit(1)
    if isinstance(state, Loading):
        console.print("[yellow]Still loading, try again[/yellow]")
        raise typer.Exit(1)
    raise TypeError(describe_state(state))


def _find(items: List[ToDo], todo_id: str) -> ToDo:
    for todo in items:
        if todo.id == todo_id:
            return todo
    console.print(f"[bold red]Error:[/bold red] No to-do with ID {todo_id}")
    raise typer.Exit(1)


def _table(title: str, items: List[ToDo]) -> Table:
    table = Table("Name", "ID", "Shared", title=title)
    for todo in items:
        table.add_row(todo.name, todo.id, "yes" if todo.is_shared else "")
    return table


@app.command("list")
def list_todos():
    """List private and shared to-dos."""
    state = _load(auth.get_service())
    console.print(_table("Private", state.private))
    console.print(_table("Shared with me", state.shared))


@app.command()
def add(name: str = typer.Argument(..., help="Name of the new to-do")):
    """Add a to-do to the private list."""
    service = auth.get_service()
    try:
        service.initialize()
        todo = service.add_item(name)
    except TodosError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    console.print(f"Added [bold]{todo.name}[/bold] ({todo.id})")


@app.command()
def check(todo_id: str = typer.Argument(..., help="ID of the to-do to check off")):
    """Check off a private to-do, revoking its share first."""
    service = auth.get_service()
    todo = _find(_load(service).private, todo_id)
    service.mark_as_checked(todo)
    console.print(f"Checked off [bold]{todo.name}[/bold]")


@app.command()
def share(todo_id: str = typer.Argument(..., help="ID of the to-do to share")):
    """Create (or show the existing) share for a private to-do."""
    service = auth.get_service()
    todo = _find(_load(service).private, todo_id)
    try:
        result, container = service.fetch_or_create_share(todo)
    except TodosError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    console.print(
        f"Share [bold]{result.share_id}[/bold] ({result.title}) "
        f"in {container.container_id}"
    )


@app.command()
def unshare(
    share_id: str = typer.Argument(..., help="ID of the share to remove"),
    zone: Optional[str] = typer.Option(None, help="Zone holding the share"),
):
    """Remove a share."""
    service = auth.get_service()
    zone_id = CKZoneID(zoneName=zone) if zone else service.zone_id
    service.remove_share(share_id, zone_id=zone_id)
    console.print(f"Removed share [bold]{share_id}[/bold]")
