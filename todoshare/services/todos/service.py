"""
High-level ToDos service.

Public API:
  - TodosService.initialize(force=False)
  - TodosService.refresh() -> ApplicationState
  - TodosService.add_item(name) -> ToDo
  - TodosService.mark_as_checked(todo)
  - TodosService.remove_todo(record_name)
  - TodosService.fetch_or_create_share(todo) -> (Share, CloudKitContainer)
  - TodosService.remove_share(share_id)
  - TodosService.state / TodosService.subscribe(callback)

The service owns the observable ApplicationState (Loading, Loaded, Error)
and publishes every transition to its subscribers.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Tuple

from todoshare.exceptions import TodosError, ZoneCreationFailure

from .client import CloudKitContainer
from .flags import ZONE_CREATED_FLAG, FlagStore
from .models import Share, ToDo, Zone
from .models.cloudkit import (
    DEFAULT_ZONE_TYPE,
    TODO_RECORD_TYPE,
    CKFields,
    CKRecord,
    CKZoneID,
)
from .sharing import SharingManager
from .state import ApplicationState, Error, Loaded, Loading, describe_state
from .sync import ZoneFanOutFetcher

LOGGER = logging.getLogger(__name__)

DEFAULT_ZONE_NAME = "ToDos"

StateCallback = Callable[[ApplicationState], None]


class TodosService:
    """
    Synchronizes the user's private ToDos zone and every zone shared with
    them, and manages record sharing.
    """

    def __init__(
        self,
        container: CloudKitContainer,
        flags: FlagStore,
        *,
        zone_name: str = DEFAULT_ZONE_NAME,
        fetcher: Optional[ZoneFanOutFetcher] = None,
        sharing: Optional[SharingManager] = None,
    ):
        self._container = container
        self._flags = flags
        self.zone_id = CKZoneID(zoneName=zone_name, zoneType=DEFAULT_ZONE_TYPE)
        self._fetcher = fetcher or ZoneFanOutFetcher(container)
        self._sharing = sharing or SharingManager(container)

        self._state: ApplicationState = Loading()
        self._state_lock = threading.Lock()
        self._refresh_lock = threading.RLock()
        self._subscribers: List[StateCallback] = []

    @classmethod
    def from_settings(cls, settings, session) -> "TodosService":
        """Build a service for the container described by `settings`."""
        container = CloudKitContainer(
            settings.container,
            session,
            settings.params(),
            environment=settings.environment,
            service_root=settings.service_root,
        )
        return cls(container, FlagStore(settings.state_path))

    # ------------------------------ State ------------------------------------

    @property
    def state(self) -> ApplicationState:
        with self._state_lock:
            return self._state

    @property
    def container(self) -> CloudKitContainer:
        return self._container

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Register `callback` for state transitions; returns an unsubscribe."""
        with self._state_lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._state_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _set_state(self, state: ApplicationState) -> None:
        with self._state_lock:
            self._state = state
            subscribers = list(self._subscribers)
        LOGGER.debug("todos.state %s", describe_state(state))
        for callback in subscribers:
            try:
                callback(state)
            except Exception:
                LOGGER.exception("State subscriber %r failed", callback)

    # ------------------------------- API -------------------------------------

    def initialize(self, *, force: bool = False) -> None:
        """
        Create the private ToDos zone unless the local flag says it already
        exists. `force=True` ignores the flag; creating an existing zone is
        harmless on the server.
        """
        if not force and self._flags.get(ZONE_CREATED_FLAG):
            LOGGER.debug("Zone %s already created, skipping.", self.zone_id.zoneName)
            return

        try:
            self._container.private.create_zone(self.zone_id)
        except TodosError as e:
            LOGGER.error("Failed to create custom zone: %s", e)
            failure = ZoneCreationFailure(
                f"Failed to create zone {self.zone_id.zoneName}: {e}"
            )
            self._set_state(Error(failure))
            raise failure from e

        self._flags.set(ZONE_CREATED_FLAG, True)

    def refresh(self) -> ApplicationState:
        """
        Re-fetch private and shared todos. Ends in Loaded or Error and
        returns that state. Concurrent callers are serialized; a subscriber
        calling refresh() from its callback runs a nested refresh on the
        same thread instead of blocking.
        """
        with self._refresh_lock:
            self._set_state(Loading())
            try:
                private, shared = self.fetch_private_and_shared()
            except Exception as e:
                LOGGER.error("Refresh failed: %s", e)
                state: ApplicationState = Error(e)
            else:
                state = Loaded(private=private, shared=shared)
            self._set_state(state)
            return state

    def fetch_private_and_shared(self) -> Tuple[List[ToDo], List[ToDo]]:
        """Fetch both scopes in parallel; either failing fails the call."""
        private_zones = [Zone(zone_id=self.zone_id, scope="private")]
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="todos-scope")
        try:
            private_f = executor.submit(
                self._fetcher.fetch_all_zones, private_zones, "private"
            )
            shared_f = executor.submit(self._fetcher.fetch_shared)
            for fut in as_completed([private_f, shared_f]):
                fut.result()
            return private_f.result(), shared_f.result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def add_item(self, name: str) -> ToDo:
        """Save a new ToDo record in the private zone. Does not refresh."""
        fields = CKFields()
        fields.set_string("name", name)
        record = CKRecord(
            recordName=str(uuid.uuid4()).upper(),
            recordType=TODO_RECORD_TYPE,
            fields=fields,
            zoneID=self.zone_id,
        )
        LOGGER.info("Adding todo %s", record.recordName)
        try:
            saved = self._container.private.save_records(
                [record], zone_id=self.zone_id
            )
        except TodosError as e:
            LOGGER.error("Failed to add todo: %s", e)
            self._set_state(Error(e))
            raise
        todo = ToDo.from_record(saved[0]) if saved else None
        return todo or ToDo.parse(record)

    def mark_as_checked(self, todo: ToDo) -> None:
        """
        Check a todo off: revoke its share (if any), then delete its record.
        Both steps are best effort and always run in that order.
        """
        share_ref = todo.share_ref
        if share_ref is not None:
            self.remove_share(share_ref.recordName, zone_id=share_ref.zoneID)
        self.remove_todo(todo.id, zone_id=todo.record.zoneID)

    def remove_todo(self, record_name: str, *, zone_id: Optional[CKZoneID] = None):
        """Best-effort delete of a todo record from the private database."""
        try:
            self._container.private.delete_records(
                [record_name], zone_id=zone_id or self.zone_id
            )
        except TodosError as e:
            LOGGER.warning("Failed to remove todo %s: %s", record_name, e)

    def fetch_or_create_share(self, todo: ToDo) -> Tuple[Share, CloudKitContainer]:
        try:
            return self._sharing.create_or_fetch_share(todo)
        except TodosError as e:
            LOGGER.error("Failed to fetch or create share for %s: %s", todo.id, e)
            self._set_state(Error(e))
            raise

    def remove_share(self, share_id: str, *, zone_id: Optional[CKZoneID] = None):
        self._sharing.remove_share(share_id, zone_id=zone_id)
