"""Authentication commands for the todoshare CLI."""

from typing import Optional

import typer
from rich.console import Console

from todoshare.cli.utils import auth
from todoshare.config import load_settings, save_settings

app = typer.Typer(help="Authentication commands")
console = Console()


@app.command()
def login(
    api_token: Optional[str] = typer.Option(None, help="CloudKit API token"),
    web_auth_token: Optional[str] = typer.Option(
        None, help="CloudKit web auth token for the signed-in user"
    ),
    container: Optional[str] = typer.Option(None, help="CloudKit container ID"),
    environment: Optional[str] = typer.Option(
        None, help="CloudKit environment (development or production)"
    ),
):
    """Store CloudKit credentials."""
    if api_token or container or environment:
        path = save_settings(
            {
                "api_token": api_token,
                "container": container,
                "environment": environment,
            }
        )
        console.print(f"Saved settings to [bold]{path}[/bold]")

    settings = load_settings()
    token = web_auth_token or typer.prompt("Web auth token", hide_input=True)
    auth.store_web_auth_token(settings, token)
    console.print(
        f"[green]Logged in to[/green] [bold]{settings.container}[/bold] "
        f"({settings.environment})"
    )


@app.command()
def logout():
    """Remove the stored web auth token."""
    settings = load_settings()
    if auth.delete_web_auth_token(settings):
        console.print("[green]Logged out successfully[/green]")
    else:
        console.print("No stored token found or already logged out")


@app.command()
def status():
    """Show which container the CLI talks to and whether a token is stored."""
    settings = load_settings()
    console.print(f"Container: [bold]{settings.container}[/bold]")
    console.print(f"Environment: {settings.environment}")
    if not settings.api_token:
        console.print("[yellow]No API token configured[/yellow]")
    if auth.get_web_auth_token(settings):
        console.print("[green]Web auth token available[/green]")
    else:
        console.print("[yellow]Not logged in[/yellow]")
