"""Command modules for the todoshare CLI."""

from todoshare.cli.commands import auth, todos

__all__ = ["auth", "todos"]
