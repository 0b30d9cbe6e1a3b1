"""Tests for the CloudKit transport and raw client."""

import unittest
from unittest.mock import MagicMock

import requests
from ck_fixtures import todo_raw, todo_record

from todoshare.exceptions import (
    RecordNotFound,
    TodosApiError,
    TodosAuthError,
    TodosRateLimited,
    TodosTransportError,
)
from todoshare.services.todos import CloudKitContainer
from todoshare.services.todos.models.cloudkit import CKZoneID

ZONE = CKZoneID(zoneName="ToDos")


def _response(status=200, body=None, headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.json.return_value = body if body is not None else {}
    resp.text = ""
    return resp


class CloudKitClientTest(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.container = CloudKitContainer(
            "iCloud.com.example.todoshare",
            self.session,
            {"ckAPIToken": "api", "ckWebAuthToken": None},
            environment="development",
        )

    def test_urls_and_params(self):
        self.session.post.return_value = _response(
            body={
                "zones": [
                    {"records": [], "syncToken": "t1", "zoneID": {"zoneName": "ToDos"}}
                ]
            }
        )

        self.container.shared.fetch_zone_changes_page(ZONE, None)

        url = self.session.post.call_args.args[0]
        self.assertTrue(
            url.startswith(
                "https://api.apple-cloudkit.com/database/1/"
                "iCloud.com.example.todoshare/development/shared/changes/zone?"
            )
        )
        self.assertIn("ckAPIToken=api", url)
        self.assertNotIn("ckWebAuthToken", url)
        payload = self.session.post.call_args.kwargs["json"]
        self.assertEqual(payload, {"zones": [{"zoneID": {"zoneName": "ToDos"}}]})

    def test_changes_page_sends_token(self):
        self.session.post.return_value = _response(
            body={
                "zones": [
                    {
                        "records": [todo_raw("A", "one")],
                        "syncToken": "t2",
                        "moreComing": True,
                        "zoneID": {"zoneName": "ToDos"},
                    }
                ]
            }
        )

        zone = self.container.private.fetch_zone_changes_page(ZONE, "t1")

        payload = self.session.post.call_args.kwargs["json"]
        self.assertEqual(payload["zones"][0]["syncToken"], "t1")
        self.assertTrue(zone.moreComing)
        self.assertEqual(zone.syncToken, "t2")
        self.assertEqual(len(zone.records), 1)

    def test_zone_level_error_raises(self):
        self.session.post.return_value = _response(
            body={"zones": [{"serverErrorCode": "ZONE_NOT_FOUND", "reason": "x"}]}
        )
        with self.assertRaises(TodosApiError):
            self.container.private.fetch_zone_changes_page(ZONE, None)

    def test_auth_error(self):
        self.session.post.return_value = _response(status=421)
        with self.assertRaises(TodosAuthError):
            self.container.private.fetch_zone_changes_page(ZONE, None)

    def test_rate_limited(self):
        self.session.post.return_value = _response(
            status=429, headers={"Retry-After": "3"}
        )
        with self.assertRaises(TodosRateLimited) as ctx:
            self.container.private.fetch_zone_changes_page(ZONE, None)
        self.assertEqual(ctx.exception.retry_after, 3.0)

    def test_server_error_carries_payload(self):
        self.session.post.return_value = _response(
            status=500, body={"serverErrorCode": "INTERNAL_ERROR"}
        )
        with self.assertRaises(TodosApiError) as ctx:
            self.container.private.fetch_zone_changes_page(ZONE, None)
        self.assertEqual(ctx.exception.payload, {"serverErrorCode": "INTERNAL_ERROR"})

    def test_connection_error_is_transport_failure(self):
        self.session.post.side_effect = requests.ConnectionError("network down")
        with self.assertRaises(TodosTransportError) as ctx:
            self.container.private.fetch_zone_changes_page(ZONE, None)
        self.assertIsInstance(ctx.exception, TodosApiError)
        self.assertIsInstance(ctx.exception.__cause__, requests.ConnectionError)

    def test_timeout_on_get_is_transport_failure(self):
        self.session.get.side_effect = requests.Timeout("slow")
        with self.assertRaises(TodosTransportError):
            self.container.list_shared_zones()

    def test_invalid_json(self):
        resp = _response()
        resp.json.side_effect = ValueError("no json")
        self.session.post.return_value = resp
        with self.assertRaises(TodosApiError):
            self.container.private.fetch_zone_changes_page(ZONE, None)

    def test_list_zones(self):
        self.session.get.return_value = _response(
            body={"zones": [{"zoneID": {"zoneName": "ToDos", "ownerRecordName": "_o"}}]}
        )
        zones = self.container.list_shared_zones()
        self.assertEqual([z.ownerRecordName for z in zones], ["_o"])
        self.assertIn("/shared/zones/list", self.session.get.call_args.args[0])

    def test_create_zone(self):
        self.session.post.return_value = _response(
            body={"zones": [{"zoneID": {"zoneName": "ToDos"}}]}
        )
        zone = self.container.private.create_zone(ZONE)
        self.assertEqual(zone.zoneID.zoneName, "ToDos")
        payload = self.session.post.call_args.kwargs["json"]
        self.assertEqual(payload["operations"][0]["operationType"], "create")

    def test_save_records_is_atomic_replace(self):
        self.session.post.return_value = _response(
            body={"records": [todo_raw("A", "x")]}
        )

        saved = self.container.private.save_records(
            [todo_record("A", "x")], zone_id=ZONE
        )

        payload = self.session.post.call_args.kwargs["json"]
        self.assertTrue(payload["atomic"])
        self.assertEqual(payload["operations"][0]["operationType"], "forceReplace")
        self.assertEqual(payload["operations"][0]["record"]["recordName"], "A")
        self.assertEqual([r.recordName for r in saved], ["A"])

    def test_modify_error_items_raise(self):
        self.session.post.return_value = _response(
            body={"records": [{"recordName": "A", "serverErrorCode": "CONFLICT"}]}
        )
        with self.assertRaises(TodosApiError):
            self.container.private.delete_records(["A"], zone_id=ZONE)
        payload = self.session.post.call_args.kwargs["json"]
        self.assertEqual(payload["operations"][0]["operationType"], "forceDelete")

    def test_fetch_record_not_found(self):
        self.session.post.return_value = _response(
            body={"records": [{"recordName": "A", "serverErrorCode": "NOT_FOUND"}]}
        )
        with self.assertRaises(RecordNotFound):
            self.container.private.fetch_record("A", zone_id=ZONE)

    def test_database_by_scope(self):
        self.assertIs(self.container.database("private"), self.container.private)
        self.assertIs(self.container.database("shared"), self.container.shared)
        with self.assertRaises(ValueError):
            self.container.database("public")


if __name__ == "__main__":
    unittest.main()
