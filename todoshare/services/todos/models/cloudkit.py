"""
CloudKit "wire" models for the ToDos container.

- Response models (records, zones, change pages) + request models
  (changes/zone, records/modify, records/lookup, zones/modify payloads).
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    JsonValue,
    PlainSerializer,
    RootModel,
    TypeAdapter,
    ValidationError,
    WithJsonSchema,
    field_validator,
    model_validator,
)

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

EXTRA_MODES = ("allow", "forbid", "ignore")


def extra_mode() -> str:
    """Pydantic `extra` policy for wire models, from TODOSHARE_EXTRA."""
    raw = (os.getenv("TODOSHARE_EXTRA") or "ignore").strip().lower()
    return raw if raw in EXTRA_MODES else "ignore"


class CKModel(BaseModel):
    """Base for every wire model. Unknown server keys are ignored by default."""

    model_config = ConfigDict(extra=extra_mode(), arbitrary_types_allowed=True)


# Well-known record type / field names used by this app.
TODO_RECORD_TYPE = "ToDo"
SHARE_RECORD_TYPE = "cloudkit.share"
SHARE_TITLE_FIELD = "cloudkit.title"

DEFAULT_ZONE_TYPE = "REGULAR_CUSTOM_ZONE"

# Python datetime supports years 1..9999; CloudKit uses ancient ms values
# as "not set" sentinels, which we treat as None.
CANONICAL_MIN_MS = -62135596800000  # 0001-01-01T00:00:00Z


def _from_millis_or_none(v):
    if v is None:
        return None
    if isinstance(v, datetime):
        return v
    if isinstance(v, (int, float)):
        iv = int(v)
    elif isinstance(v, str) and v.isdigit():
        iv = int(v)
    else:
        raise TypeError("Expected milliseconds since epoch as int or digit string")
    if iv <= CANONICAL_MIN_MS:
        return None
    return datetime.fromtimestamp(iv / 1000.0, tz=timezone.utc)


def _to_millis(dt: Optional[datetime]) -> Optional[int]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


MillisDateTimeOrNone = Annotated[
    Optional[datetime],
    BeforeValidator(_from_millis_or_none),
    PlainSerializer(_to_millis, return_type=Optional[int], when_used="json"),
    WithJsonSchema(
        {
            "type": ["integer", "null"],
            "description": "milliseconds since Unix epoch or null sentinel",
        }
    ),
]


# ---------------------------------------------------------------------------
# CloudKit primitives shared by request & response
# ---------------------------------------------------------------------------


class CKZoneID(CKModel):
    zoneName: str
    ownerRecordName: Optional[str] = None
    zoneType: Optional[str] = None

    @property
    def key(self) -> str:
        """Stable identity used for logging and de-duplication."""
        return f"{self.ownerRecordName or '_'}:{self.zoneName}"


class CKRecordID(CKModel):
    recordName: str
    zoneID: Optional[CKZoneID] = None


class CKAuditInfo(CKModel):
    """Appears as `created` / `modified` at the record level."""

    timestamp: MillisDateTimeOrNone = None
    userRecordName: Optional[str] = None
    deviceID: Optional[str] = None


class CKShareRef(CKModel):
    """
    Share back-reference embedded under a record's top-level `share` key.

    Only identifies the share; the full share record must be looked up.
    """

    recordName: str
    zoneID: Optional[CKZoneID] = None


class CKReference(CKModel):
    """Value inside REFERENCE / REFERENCE_LIST typed fields."""

    recordName: str
    action: Optional[str] = None  # e.g., "NONE", "DELETE_SELF"
    zoneID: Optional[CKZoneID] = None


# ---------------------------------------------------------------------------
# Typed field wrappers under record.fields
# ---------------------------------------------------------------------------


class _CKFieldBase(CKModel):
    type: str


class CKStringField(_CKFieldBase):
    type: Literal["STRING"]
    value: str


class CKStringListField(_CKFieldBase):
    type: Literal["STRING_LIST"]
    value: List[str]


class CKInt64Field(_CKFieldBase):
    type: Literal["INT64"]
    value: int


class CKDoubleField(_CKFieldBase):
    type: Literal["DOUBLE"]
    value: float


class CKTimestampField(_CKFieldBase):
    type: Literal["TIMESTAMP"]
    value: MillisDateTimeOrNone


class CKReferenceField(_CKFieldBase):
    type: Literal["REFERENCE"]
    value: CKReference


class CKReferenceListField(_CKFieldBase):
    type: Literal["REFERENCE_LIST"]
    value: List[CKReference]


class CKPassthroughField(_CKFieldBase):
    type: str
    value: JsonValue


KNOWN_TAGS: frozenset[str] = frozenset(
    {
        "STRING",
        "STRING_LIST",
        "INT64",
        "DOUBLE",
        "TIMESTAMP",
        "REFERENCE",
        "REFERENCE_LIST",
    }
)


KnownCKField = Annotated[
    Union[
        CKStringField,
        CKStringListField,
        CKInt64Field,
        CKDoubleField,
        CKTimestampField,
        CKReferenceField,
        CKReferenceListField,
    ],
    Field(discriminator="type"),
]


class CKFieldOpen(RootModel[Union[KnownCKField, CKPassthroughField]]):
    """A field wrapper of any tag; `.unwrap()` returns the typed instance."""

    root: Union[KnownCKField, CKPassthroughField]

    def unwrap(self):
        return self.root

    @model_validator(mode="before")
    @classmethod
    def _dispatch_before(cls, obj):
        """
        Route known tags through the discriminated union and everything else
        to a passthrough wrapper. Must return the underlying value, not
        {'root': ...}.
        """
        t = obj.get("type") if isinstance(obj, dict) else None

        if t in KNOWN_TAGS:
            return TypeAdapter(KnownCKField).validate_python(obj)

        if isinstance(obj, _CKFieldBase):
            return obj

        if isinstance(obj, dict) and "type" in obj and "value" in obj:
            return CKPassthroughField(**obj)

        # Untyped value (CloudKit omits `type` on some write echoes)
        if isinstance(obj, dict) and "value" in obj:
            value = obj["value"]
            if isinstance(value, str):
                return CKStringField(type="STRING", value=value)
            return CKPassthroughField(type="UNKNOWN", value=value)

        return CKPassthroughField(type=str(t) if t else "UNKNOWN", value=obj)


class CKFields(dict[str, CKFieldOpen]):
    """Record fields keyed by name, each value a typed CloudKit wrapper."""

    def get_field(self, key: str):
        f = self.get(key)
        if f is None:
            return None
        return f.unwrap() if hasattr(f, "unwrap") else f

    def get_value(self, key: str):
        f = self.get_field(key)
        return None if f is None else getattr(f, "value", None)

    def set_string(self, key: str, value: str) -> None:
        self[key] = CKFieldOpen.model_validate({"type": "STRING", "value": value})

    def to_wire(self) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for key, wrapper in self.items():
            inner = wrapper.unwrap() if hasattr(wrapper, "unwrap") else wrapper
            out[key] = inner.model_dump(mode="json", exclude_none=True)
        return out


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class CKRecord(CKModel):
    """
    A CloudKit record as returned by /changes/zone, /records/lookup and
    /records/modify.

    App-level values live in `fields` (e.g. `name` for ToDo records,
    `cloudkit.title` for share records), each wrapped in a typed CK field.
    """

    recordName: str
    recordType: str

    fields: CKFields = Field(default_factory=CKFields)

    @field_validator("fields", mode="before")
    @classmethod
    def _coerce_fields(cls, v):
        if isinstance(v, CKFields):
            return v
        if isinstance(v, dict):
            adapter = TypeAdapter(CKFieldOpen)
            return CKFields({k: adapter.validate_python(val) for k, val in v.items()})
        return v

    pluginFields: Dict[str, JsonValue] = Field(default_factory=dict)

    recordChangeTag: Optional[str] = None
    created: Optional[CKAuditInfo] = None
    modified: Optional[CKAuditInfo] = None
    deleted: Optional[bool] = None

    zoneID: Optional[CKZoneID] = None

    # Sharing surface
    share: Optional[CKShareRef] = None
    shortGUID: Optional[str] = None
    publicPermission: Optional[str] = None
    participants: Optional[List[Dict[str, JsonValue]]] = None
    owner: Optional[Dict[str, JsonValue]] = None
    currentUserParticipant: Optional[Dict[str, JsonValue]] = None

    @property
    def record_id(self) -> CKRecordID:
        return CKRecordID(recordName=self.recordName, zoneID=self.zoneID)

    @property
    def is_share(self) -> bool:
        return self.recordType == SHARE_RECORD_TYPE

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to the `record` object of a records/modify operation."""
        out: Dict[str, Any] = {
            "recordName": self.recordName,
            "recordType": self.recordType,
            "fields": self.fields.to_wire(),
        }
        if self.recordChangeTag:
            out["recordChangeTag"] = self.recordChangeTag
        if self.zoneID is not None:
            out["zoneID"] = self.zoneID.model_dump(exclude_none=True)
        if self.share is not None:
            out["share"] = self.share.model_dump(exclude_none=True)
        if self.publicPermission:
            out["publicPermission"] = self.publicPermission
        return out


class CKErrorItem(CKModel):
    """
    Error item present inside `records[]` / `zones[]` when a per-item
    operation fails.
    """

    serverErrorCode: str
    reason: Optional[str] = None
    recordName: Optional[str] = None
    zoneID: Optional[CKZoneID] = None
    retryAfter: Optional[float] = None


class CKTombstoneRecord(CKModel):
    """
    A 'tombstone' entry indicating a deleted record. It omits `recordType`
    and `fields`.
    """

    recordName: str
    deleted: Literal[True]
    zoneID: Optional[CKZoneID] = None


RecordEntry = Union[CKRecord, CKTombstoneRecord, CKErrorItem]

_RECORD_ENTRY_ADAPTER: TypeAdapter = TypeAdapter(RecordEntry)


def parse_record_entry(raw: object) -> Optional[RecordEntry]:
    """Validate a single `records[]` entry; None when it fits no known shape."""
    try:
        return _RECORD_ENTRY_ADAPTER.validate_python(raw)
    except ValidationError:
        return None


# ---------------------------------------------------------------------------
# /changes/zone
# ---------------------------------------------------------------------------


class CKZoneChangesZoneReq(CKModel):
    """One zone request entry for /changes/zone."""

    zoneID: CKZoneID
    syncToken: Optional[str] = None


class CKZoneChangesRequest(CKModel):
    zones: List[CKZoneChangesZoneReq]


class CKZoneChangesZone(CKModel):
    """
    One zone entry inside the /changes/zone response.

    `records` stay as raw dicts so one malformed record can be dropped
    without invalidating the page.
    """

    records: List[Dict[str, JsonValue]] = Field(default_factory=list)
    moreComing: Optional[bool] = None
    syncToken: Optional[str] = None
    zoneID: CKZoneID


class CKZoneChangesResponse(CKModel):
    zones: List[Union[CKZoneChangesZone, CKErrorItem]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# /zones/list, /zones/modify
# ---------------------------------------------------------------------------


class CKZone(CKModel):
    zoneID: CKZoneID
    syncToken: Optional[str] = None
    atomic: Optional[bool] = None


class CKZoneListResponse(CKModel):
    zones: List[CKZone] = Field(default_factory=list)


class CKZoneOperation(CKModel):
    operationType: Literal["create", "delete"]
    zone: CKZone


class CKZoneModifyRequest(CKModel):
    operations: List[CKZoneOperation]


class CKZoneModifyResponse(CKModel):
    zones: List[Union[CKZone, CKErrorItem]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# /records/modify, /records/lookup
# ---------------------------------------------------------------------------


class CKRecordOperation(CKModel):
    operationType: Literal[
        "create",
        "update",
        "forceUpdate",
        "replace",
        "forceReplace",
        "delete",
        "forceDelete",
    ]
    record: Dict[str, JsonValue]


class CKRecordModifyRequest(CKModel):
    operations: List[CKRecordOperation]
    zoneID: Optional[CKZoneID] = None
    atomic: Optional[bool] = None


class CKRecordModifyResponse(CKModel):
    records: List[Union[CKRecord, CKTombstoneRecord, CKErrorItem]] = Field(
        default_factory=list
    )


class CKLookupDescriptor(CKModel):
    recordName: str


class CKLookupRequest(CKModel):
    records: List[CKLookupDescriptor]
    zoneID: Optional[CKZoneID] = None


class CKLookupResponse(CKModel):
    records: List[Union[CKRecord, CKTombstoneRecord, CKErrorItem]] = Field(
        default_factory=list
    )
