"""
Incremental change fetching for ToDos zones.

ChangeTokenPaginator pages through one zone's change feed; ZoneFanOutFetcher
runs it across many zones at once and merges the results.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Sequence

from .models import Scope, ToDo, Zone, ZoneChanges
from .models.cloudkit import (
    CKErrorItem,
    CKRecord,
    CKTombstoneRecord,
    CKZoneID,
    parse_record_entry,
)

LOGGER = logging.getLogger(__name__)

MAX_ZONE_WORKERS = 8


class ChangeTokenPaginator:
    """Fetches and decodes every modification of one zone since a token."""

    def __init__(self, container):
        self._container = container

    def fetch_zone_changes(
        self, zone: Zone, since_token: Optional[str] = None
    ) -> ZoneChanges:
        """
        Follow the zone's change feed until the server stops reporting
        `moreComing`. Undecodable entries are dropped; transport errors
        abort the whole zone.
        """
        database = self._container.database(zone.scope)
        items: List[ToDo] = []
        token = since_token
        more_coming = True
        page_num = 0
        while more_coming:
            page_num += 1
            LOGGER.debug(
                "Fetching changes page %d for zone %s", page_num, zone.zone_id.key
            )
            page = database.fetch_zone_changes_page(zone.zone_id, token)
            decoded = self._decode_page(page.records, page.zoneID)
            LOGGER.debug(
                "Changes page %d: %d entries, %d todos",
                page_num,
                len(page.records),
                len(decoded),
            )
            items.extend(decoded)
            token = page.syncToken
            more_coming = bool(page.moreComing)

        LOGGER.info(
            "Fetched %d todos from zone %s in %d pages.",
            len(items),
            zone.zone_id.key,
            page_num,
        )
        return ZoneChanges(items=items, next_token=token, has_more=False)

    @staticmethod
    def _decode_page(entries: Sequence[object], zone_id: CKZoneID) -> List[ToDo]:
        out: List[ToDo] = []
        for raw in entries:
            entry = parse_record_entry(raw)
            if isinstance(entry, CKRecord):
                if entry.zoneID is None:
                    entry = entry.model_copy(update={"zoneID": zone_id})
                todo = ToDo.from_record(entry)
                if todo is not None:
                    out.append(todo)
            elif isinstance(entry, CKErrorItem):
                LOGGER.warning(
                    "Skipping record %s: %s (%s)",
                    entry.recordName,
                    entry.serverErrorCode,
                    entry.reason,
                )
            elif isinstance(entry, CKTombstoneRecord):
                continue
            else:
                LOGGER.debug("Skipping unparseable change entry: %r", raw)
        return out


class ZoneFanOutFetcher:
    """Runs the paginator concurrently over a set of zones."""

    def __init__(
        self,
        container,
        paginator: Optional[ChangeTokenPaginator] = None,
        *,
        max_workers: int = MAX_ZONE_WORKERS,
    ):
        self._container = container
        self._paginator = paginator or ChangeTokenPaginator(container)
        self._max_workers = max_workers

    def fetch_all_zones(self, zones: Sequence[Zone], scope: Scope) -> List[ToDo]:
        """
        Fetch every zone from an empty token and concatenate the results in
        completion order. The first failure cancels whatever has not started
        and is re-raised; no partial result is returned.
        """
        if not zones:
            return []

        LOGGER.info("Fetching %d %s zones.", len(zones), scope)
        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(zones)),
            thread_name_prefix=f"todos-{scope}",
        )
        all_items: List[ToDo] = []
        try:
            futures = {
                executor.submit(self._paginator.fetch_zone_changes, zone, None): zone
                for zone in zones
            }
            for fut in as_completed(futures):
                zone = futures[fut]
                try:
                    result = fut.result()
                except Exception:
                    LOGGER.error(
                        "Zone fetch failed for %s, abandoning %s fetch.",
                        zone.zone_id.key,
                        scope,
                    )
                    raise
                all_items.extend(result.items)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return all_items

    def fetch_shared(self) -> List[ToDo]:
        """Discover the zones visible in the shared database and fetch them."""
        zone_ids = self._container.list_shared_zones()
        if not zone_ids:
            LOGGER.info("No shared zones.")
            return []
        zones = [Zone(zone_id=z, scope="shared") for z in zone_ids]
        return self.fetch_all_zones(zones, "shared")
