"""Credential and service helpers for the todoshare CLI."""

from dataclasses import replace
from typing import Optional

import keyring
import requests
import typer
from keyring.errors import KeyringError, PasswordDeleteError
from rich.console import Console
from rich.panel import Panel

from todoshare.config import Settings, load_settings
from todoshare.services.todos import TodosService

console = Console()

KEYRING_SERVICE = "todoshare"


def _keyring_user(settings: Settings) -> str:
    return f"{settings.container}:{settings.environment}"


def get_web_auth_token(settings: Settings) -> Optional[str]:
    """Web auth token from the environment, falling back to the keyring."""
    if settings.web_auth_token:
        return settings.web_auth_token
    try:
        return keyring.get_password(KEYRING_SERVICE, _keyring_user(settings))
    except KeyringError as exc:
        console.print(f"[yellow]Warning:[/yellow] Could not read keyring: {exc}")
        return None


def store_web_auth_token(settings: Settings, token: str) -> None:
    keyring.set_password(KEYRING_SERVICE, _keyring_user(settings), token)


def delete_web_auth_token(settings: Settings) -> bool:
    """Remove the stored token; returns False when none was stored."""
    try:
        keyring.delete_password(KEYRING_SERVICE, _keyring_user(settings))
    except PasswordDeleteError:
        return False
    return True


def get_service() -> TodosService:
    """Build an authenticated TodosService or exit with guidance."""
    settings = load_settings()
    token = get_web_auth_token(settings)
    if not settings.api_token or not token:
        console.print("[bold red]Error:[/bold red] Not logged in")
        console.print(
            Panel(
                "An API token and a web auth token are required.\n"
                "Run `todoshare auth login` or set TODOSHARE_API_TOKEN and\n"
                "TODOSHARE_WEB_AUTH_TOKEN.",
                title="Authentication Help",
                border_style="red",
            )
        )
        raise typer.Exit(1)

    settings = replace(settings, web_auth_token=token)
    session = requests.Session()
    session.headers.update({"Content-Type": "application/json"})
    return TodosService.from_settings(settings, session)
