#!/usr/bin/env python
"""Command line entry point for todoshare."""

import logging
import os

import typer
from rich.console import Console
from rich.logging import RichHandler

from todoshare.cli.commands import auth, todos

app = typer.Typer(help="Shared CloudKit to-do lists")
console = Console()

app.add_typer(auth.app, name="auth")
app.add_typer(todos.app, name="todos")


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logs"),
):
    """Manage to-do lists stored in CloudKit and shared between users."""
    debug = verbose or bool(os.getenv("TODOSHARE_DEBUG"))
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
