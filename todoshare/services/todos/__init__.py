"""Public API for the ToDos service."""

from .client import CloudKitContainer, CloudKitTodosClient
from .flags import FlagStore
from .models import Share, ToDo, Zone, ZoneChanges
from .service import TodosService
from .sharing import SharingManager
from .state import ApplicationState, Error, Loaded, Loading, describe_state
from .sync import ChangeTokenPaginator, ZoneFanOutFetcher

__all__ = [
    "TodosService",
    "CloudKitContainer",
    "CloudKitTodosClient",
    "ChangeTokenPaginator",
    "ZoneFanOutFetcher",
    "SharingManager",
    "FlagStore",
    "ToDo",
    "Share",
    "Zone",
    "ZoneChanges",
    "ApplicationState",
    "Loading",
    "Loaded",
    "Error",
    "describe_state",
]
