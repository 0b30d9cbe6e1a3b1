"""Share lifecycle for ToDo records."""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Tuple

from todoshare.exceptions import TodosError

from .models import Share, ToDo
from .models.cloudkit import (
    SHARE_RECORD_TYPE,
    SHARE_TITLE_FIELD,
    CKFields,
    CKRecord,
    CKShareRef,
    CKZoneID,
)

LOGGER = logging.getLogger(__name__)


def share_title(todo: ToDo) -> str:
    return f"ToDo: {todo.name}"


class SharingManager:
    """
    Creates, fetches and revokes the share attached to a ToDo record.

    Shares are written to and read from the private (owning) database and
    revoked through the shared database.
    """

    def __init__(self, container):
        self._container = container

    def create_or_fetch_share(self, todo: ToDo) -> Tuple[Share, object]:
        """
        Return the todo's share, creating it first when the record has no
        share back-reference. Raises InvalidRemoteShare if the referenced
        record turns out not to be a share.
        """
        existing = todo.share_ref
        if existing is None:
            return self._create_share(todo), self._container

        LOGGER.info("Fetching existing share %s for %s", existing.recordName, todo.id)
        zone_id = existing.zoneID or todo.record.zoneID
        record = self._container.private.fetch_record(
            existing.recordName, zone_id=zone_id
        )
        share = Share.from_record(record, root_record_id=todo.id)
        return share, self._container

    def _create_share(self, todo: ToDo) -> Share:
        zone_id = todo.record.zoneID
        share_name = f"Share-{uuid.uuid4()}".upper()
        fields = CKFields()
        fields.set_string(SHARE_TITLE_FIELD, share_title(todo))
        share_record = CKRecord(
            recordName=share_name,
            recordType=SHARE_RECORD_TYPE,
            fields=fields,
            zoneID=zone_id,
            publicPermission="NONE",
        )
        root = todo.record.model_copy(
            update={"share": CKShareRef(recordName=share_name, zoneID=zone_id)}
        )

        LOGGER.info("Creating share %s for %s", share_name, todo.id)
        saved = self._container.private.save_records(
            [root, share_record], zone_id=zone_id, atomic=True
        )
        for rec in saved:
            if rec.is_share:
                share_record = rec
                break
        return Share.from_record(share_record, root_record_id=todo.id)

    def remove_share(
        self, share_id: str, *, zone_id: Optional[CKZoneID] = None
    ) -> None:
        """Delete a share through the shared database. Failures are logged only."""
        LOGGER.info("Removing share %s", share_id)
        try:
            self._container.shared.delete_records([share_id], zone_id=zone_id)
        except TodosError as e:
            LOGGER.warning("Failed to remove share %s: %s", share_id, e)
