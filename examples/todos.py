"""Example of how to use the ToDos service."""

import argparse
import logging
from dataclasses import replace

import requests
from rich import inspect, pretty
from rich.console import Console
from rich.traceback import install

from todoshare.config import load_settings
from todoshare.exceptions import TodosError
from todoshare.services.todos import Error, Loaded, TodosService, describe_state

install(show_locals=True)
pretty.install()

console = Console()


def insp(arg):
    return inspect(arg, all=True, help=True)


def main():
    """Main function."""
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description="ToDos service example.")
    parser.add_argument("--api-token", help="CloudKit API token.")
    parser.add_argument("--web-auth-token", help="CloudKit web auth token.")
    parser.add_argument("--add", help="Add a todo with this name before listing.")
    args = parser.parse_args()

    settings = load_settings()
    settings = replace(
        settings,
        api_token=args.api_token or settings.api_token,
        web_auth_token=args.web_auth_token or settings.web_auth_token,
    )
    if not settings.api_token or not settings.web_auth_token:
        parser.error("an API token and a web auth token are required")

    session = requests.Session()
    service = TodosService.from_settings(settings, session)
    service.subscribe(lambda state: console.log(describe_state(state)))

    try:
        service.initialize()
        if args.add:
            insp(service.add_item(args.add))
    except TodosError as e:
        logging.error("ToDos service is not available: %s", e)
        return

    state = service.refresh()
    if isinstance(state, Error):
        logging.error("Refresh failed: %s", state.cause)
        return
    if isinstance(state, Loaded):
        console.rule("Mine")
        for todo in state.private:
            console.print(f"{todo.id}  {todo.name}")
        console.rule("Shared with me")
        for todo in state.shared:
            console.print(f"{todo.id}  {todo.name}")


if __name__ == "__main__":
    main()
