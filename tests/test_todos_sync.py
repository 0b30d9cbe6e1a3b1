"""Tests for zone change pagination and fan-out."""

import threading
import unittest
from unittest.mock import MagicMock

from ck_fixtures import make_container, page, shared_zone_id, todo_raw, todo_record

from todoshare.exceptions import TodosApiError
from todoshare.services.todos import (
    ChangeTokenPaginator,
    ToDo,
    Zone,
    ZoneChanges,
    ZoneFanOutFetcher,
)
from todoshare.services.todos.models.cloudkit import CKZoneID

PRIVATE = Zone(zone_id=CKZoneID(zoneName="ToDos"), scope="private")


class ChangeTokenPaginatorTest(unittest.TestCase):
    """Paging one zone's change feed."""

    def setUp(self):
        self.container = make_container()
        self.paginator = ChangeTokenPaginator(self.container)

    def test_threads_tokens_across_pages(self):
        self.container.private.fetch_zone_changes_page.side_effect = [
            page([todo_raw("A", "one")], token="t1", more_coming=True),
            page([todo_raw("B", "two")], token="t2", more_coming=True),
            page([todo_raw("C", "three")], token="t3", more_coming=False),
        ]

        result = self.paginator.fetch_zone_changes(PRIVATE)

        calls = self.container.private.fetch_zone_changes_page.call_args_list
        self.assertEqual(len(calls), 3)
        self.assertEqual([c.args[1] for c in calls], [None, "t1", "t2"])
        self.assertEqual([t.id for t in result.items], ["A", "B", "C"])
        self.assertEqual(result.next_token, "t3")
        self.assertFalse(result.has_more)

    def test_starts_from_given_token(self):
        self.container.private.fetch_zone_changes_page.return_value = page(
            [], token="t9"
        )
        result = self.paginator.fetch_zone_changes(PRIVATE, since_token="t8")
        self.container.private.fetch_zone_changes_page.assert_called_once_with(
            PRIVATE.zone_id, "t8"
        )
        self.assertEqual(result.items, [])

    def test_bad_records_are_dropped(self):
        malformed = {
            "recordName": "X",
            "recordType": "ToDo",
            "fields": {"title": {"type": "STRING", "value": "no name"}},
        }
        self.container.private.fetch_zone_changes_page.return_value = page(
            [todo_raw("A", "good"), malformed, todo_raw("B", "also good")],
            token="t1",
        )

        result = self.paginator.fetch_zone_changes(PRIVATE)

        self.assertEqual([t.id for t in result.items], ["A", "B"])

    def test_error_items_and_tombstones_are_skipped(self):
        self.container.private.fetch_zone_changes_page.return_value = page(
            [
                todo_raw("A", "good"),
                {"recordName": "E", "serverErrorCode": "ACCESS_DENIED"},
                {"recordName": "T", "deleted": True},
            ],
            token="t1",
        )
        with self.assertLogs("todoshare.services.todos.sync", level="WARNING"):
            result = self.paginator.fetch_zone_changes(PRIVATE)
        self.assertEqual([t.id for t in result.items], ["A"])

    def test_records_inherit_page_zone(self):
        self.container.private.fetch_zone_changes_page.return_value = page(
            [todo_raw("A", "good")], token="t1"
        )
        todo = self.paginator.fetch_zone_changes(PRIVATE).items[0]
        self.assertEqual(todo.record.zoneID.zoneName, "ToDos")

    def test_transport_failure_aborts_zone(self):
        self.container.private.fetch_zone_changes_page.side_effect = [
            page([todo_raw("A", "one")], token="t1", more_coming=True),
            TodosApiError("HTTP 500"),
        ]
        with self.assertRaises(TodosApiError):
            self.paginator.fetch_zone_changes(PRIVATE)

    def test_shared_scope_uses_shared_database(self):
        zone = Zone(zone_id=shared_zone_id(), scope="shared")
        self.container.shared.fetch_zone_changes_page.return_value = page(
            [todo_raw("S", "shared")], token="t1"
        )
        result = self.paginator.fetch_zone_changes(zone)
        self.assertEqual([t.id for t in result.items], ["S"])
        self.container.private.fetch_zone_changes_page.assert_not_called()


class ZoneFanOutFetcherTest(unittest.TestCase):
    """Concurrent fetch across zones."""

    def setUp(self):
        self.container = make_container()
        self.paginator = MagicMock()
        self.fetcher = ZoneFanOutFetcher(self.container, self.paginator)
        self.zone_a = Zone(zone_id=shared_zone_id("_a"), scope="shared")
        self.zone_b = Zone(zone_id=shared_zone_id("_b"), scope="shared")

    def test_merges_all_zones(self):
        items = {
            "_a": [ToDo.parse(todo_record("A", "one"))],
            "_b": [
                ToDo.parse(todo_record("B", "two")),
                ToDo.parse(todo_record("C", "x")),
            ],
        }

        def fetch(zone, token):
            self.assertIsNone(token)
            owner = zone.zone_id.ownerRecordName
            return ZoneChanges(items=items[owner], next_token="t")

        self.paginator.fetch_zone_changes.side_effect = fetch

        result = self.fetcher.fetch_all_zones([self.zone_a, self.zone_b], "shared")

        self.assertEqual(sorted(t.id for t in result), ["A", "B", "C"])

    def test_any_zone_failure_fails_everything(self):
        def fetch(zone, token):
            if zone.zone_id.ownerRecordName == "_b":
                raise TodosApiError("HTTP 500")
            item = ToDo.parse(todo_record("A", "one"))
            return ZoneChanges(items=[item], next_token="t")

        self.paginator.fetch_zone_changes.side_effect = fetch

        with self.assertRaises(TodosApiError):
            self.fetcher.fetch_all_zones([self.zone_a, self.zone_b], "shared")

    def test_zones_run_concurrently(self):
        barrier = threading.Barrier(2, timeout=5)

        def fetch(zone, token):
            barrier.wait()
            return ZoneChanges(items=[], next_token=None)

        self.paginator.fetch_zone_changes.side_effect = fetch

        result = self.fetcher.fetch_all_zones([self.zone_a, self.zone_b], "shared")
        self.assertEqual(result, [])

    def test_empty_zone_list(self):
        self.assertEqual(self.fetcher.fetch_all_zones([], "shared"), [])
        self.paginator.fetch_zone_changes.assert_not_called()

    def test_no_shared_zones_short_circuits(self):
        self.container.list_shared_zones.return_value = []
        self.assertEqual(self.fetcher.fetch_shared(), [])
        self.paginator.fetch_zone_changes.assert_not_called()

    def test_shared_zones_are_discovered(self):
        self.container.list_shared_zones.return_value = [shared_zone_id("_a")]
        self.paginator.fetch_zone_changes.return_value = ZoneChanges(
            items=[ToDo.parse(todo_record("S", "shared"))], next_token="t"
        )

        result = self.fetcher.fetch_shared()

        self.assertEqual([t.id for t in result], ["S"])
        zone = self.paginator.fetch_zone_changes.call_args.args[0]
        self.assertEqual(zone.scope, "shared")
        self.assertEqual(zone.zone_id.ownerRecordName, "_a")


if __name__ == "__main__":
    unittest.main()
