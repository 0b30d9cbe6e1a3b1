"""High-level ToDos data transfer objects."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Optional

from todoshare.exceptions import DecodeFailure, InvalidRemoteShare

from .cloudkit import (
    SHARE_TITLE_FIELD,
    CKRecord,
    CKRecordID,
    CKShareRef,
    CKZoneID,
)

LOGGER = logging.getLogger(__name__)

Scope = Literal["private", "shared"]


@dataclass(frozen=True)
class ToDo:
    """A to-do item projected from a `ToDo` record."""

    id: str
    record_id: CKRecordID
    name: str
    record: CKRecord = field(compare=False, repr=False)

    @property
    def share_ref(self) -> Optional[CKShareRef]:
        """Back-reference to the item's share, if it has one."""
        return self.record.share

    @property
    def is_shared(self) -> bool:
        return self.record.share is not None

    @classmethod
    def parse(cls, record: CKRecord) -> "ToDo":
        """Strict decode; raises DecodeFailure when `name` is unusable."""
        name = record.fields.get_value("name")
        if not isinstance(name, str):
            raise DecodeFailure(
                f"Record {record.recordName} has no string 'name' field"
            )
        return cls(
            id=record.recordName,
            record_id=record.record_id,
            name=name,
            record=record,
        )

    @classmethod
    def from_record(cls, record: CKRecord) -> Optional["ToDo"]:
        try:
            return cls.parse(record)
        except DecodeFailure as e:
            LOGGER.debug("todos.decode.skip %s", e)
            return None


@dataclass(frozen=True)
class Share:
    """A share record granting access to one root record."""

    share_id: str
    root_record_id: Optional[str]
    title: Optional[str]
    record: CKRecord = field(compare=False, repr=False)

    @classmethod
    def from_record(
        cls, record: CKRecord, *, root_record_id: Optional[str] = None
    ) -> "Share":
        if not record.is_share:
            raise InvalidRemoteShare(
                f"Record {record.recordName} is a {record.recordType!r}, not a share"
            )
        return cls(
            share_id=record.recordName,
            root_record_id=root_record_id,
            title=record.fields.get_value(SHARE_TITLE_FIELD),
            record=record,
        )


@dataclass(frozen=True)
class Zone:
    zone_id: CKZoneID
    scope: Scope


@dataclass(frozen=True)
class ZoneChanges:
    """Decoded result of paging through one zone's change feed."""

    items: List[ToDo]
    next_token: Optional[str]
    has_more: bool = False
