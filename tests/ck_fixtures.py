"""Builders for raw CloudKit payloads and mocked containers used by the tests."""

from unittest.mock import MagicMock

from todoshare.services.todos.models.cloudkit import (
    CKRecord,
    CKZoneChangesZone,
    CKZoneID,
)

PRIVATE_ZONE = {"zoneName": "ToDos", "zoneType": "REGULAR_CUSTOM_ZONE"}


def todo_raw(record_name, name, *, share=None, zone=None):
    raw = {
        "recordName": record_name,
        "recordType": "ToDo",
        "fields": {"name": {"type": "STRING", "value": name}},
        "recordChangeTag": "tag-" + record_name.lower(),
    }
    if zone is not None:
        raw["zoneID"] = zone
    if share is not None:
        raw["share"] = {"recordName": share, "zoneID": zone or PRIVATE_ZONE}
    return raw


def todo_record(record_name, name, **kwargs):
    return CKRecord.model_validate(todo_raw(record_name, name, **kwargs))


def share_raw(record_name, title):
    return {
        "recordName": record_name,
        "recordType": "cloudkit.share",
        "fields": {"cloudkit.title": {"type": "STRING", "value": title}},
        "zoneID": PRIVATE_ZONE,
    }


def page(records, *, token, more_coming=False, zone=None):
    return CKZoneChangesZone.model_validate(
        {
            "records": records,
            "syncToken": token,
            "moreComing": more_coming,
            "zoneID": zone or PRIVATE_ZONE,
        }
    )


def shared_zone_id(owner="_owner-1", name="ToDos"):
    return CKZoneID(zoneName=name, ownerRecordName=owner)


def make_container():
    """A container double whose private/shared databases are MagicMocks."""
    container = MagicMock()
    container.container_id = "iCloud.com.example.todoshare"
    databases = {"private": container.private, "shared": container.shared}
    container.database.side_effect = lambda scope: databases[scope]
    container.list_shared_zones.return_value = []
    return container
