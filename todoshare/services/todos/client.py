"""
Low-level CloudKit client for the ToDos container.

The raw client is used internally by the paginator, the sharing manager and
TodosService. It returns typed Pydantic models from
todoshare.services.todos.models.cloudkit and hides HTTP details.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Dict, Iterable, List, Optional, Type, TypeVar
from urllib.parse import urlencode

import requests
from pydantic import BaseModel, ValidationError

from todoshare.config import DEFAULT_SERVICE_ROOT
from todoshare.exceptions import (
    RecordNotFound,
    TodosApiError,
    TodosAuthError,
    TodosRateLimited,
    TodosTransportError,
)

from .models.cloudkit import (
    CKErrorItem,
    CKLookupDescriptor,
    CKLookupRequest,
    CKLookupResponse,
    CKRecord,
    CKRecordModifyRequest,
    CKRecordModifyResponse,
    CKRecordOperation,
    CKZone,
    CKZoneChangesRequest,
    CKZoneChangesResponse,
    CKZoneChangesZone,
    CKZoneChangesZoneReq,
    CKZoneID,
    CKZoneListResponse,
    CKZoneModifyRequest,
    CKZoneModifyResponse,
    CKZoneOperation,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

_M = TypeVar("_M", bound=BaseModel)


# ------------------------------- Transport -----------------------------------


class _CloudKitClient:
    """
    Minimal HTTP transport:
      - JSON requests via `json=payload`
      - Lowercase boolean query params
      - Bounded debug dumps (TODOSHARE_DEBUG_MAX_BYTES)
    """

    def __init__(
        self,
        base_url: str,
        session,
        base_params: Dict[str, object],
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._params = self._normalize_params(base_params or {})
        self._timeout = timeout
        LOGGER.debug("Initialized _CloudKitClient with base_url: %s", self._base_url)

    @staticmethod
    def _normalize_params(params: Dict[str, object]) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for k, v in params.items():
            if v is None:
                continue
            if isinstance(v, bool):
                out[k] = "true" if v else "false"
            else:
                out[k] = str(v)
        return out

    def _build_url(self, path: str) -> str:
        q = urlencode(self._params)
        return f"{self._base_url}{path}" + (f"?{q}" if q else "")

    def post(self, path: str, payload: Dict) -> Dict:
        url = self._build_url(path)
        LOGGER.info("POST to %s", self._base_url + path)
        try:
            resp = self._session.post(url, json=payload, timeout=self._timeout)
        except requests.RequestException as e:
            LOGGER.error("POST to %s failed: %s", path, e)
            raise TodosTransportError(f"Transport failure: {e}") from e
        return self._handle(path, url, payload, resp)

    def get(self, path: str) -> Dict:
        url = self._build_url(path)
        LOGGER.info("GET %s", self._base_url + path)
        try:
            resp = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as e:
            LOGGER.error("GET %s failed: %s", path, e)
            raise TodosTransportError(f"Transport failure: {e}") from e
        return self._handle(path, url, {}, resp)

    def _handle(self, path: str, url: str, payload: Dict, resp) -> Dict:
        code = getattr(resp, "status_code", 0)
        LOGGER.debug("%s returned status %d", path, code)
        if code >= 400:
            self._dump_http_debug(path.strip("/").replace("/", "_"), url, payload, resp)
            if code in (401, 403, 421):
                LOGGER.error("%s failed with auth error: %d", path, code)
                raise TodosAuthError(f"HTTP {code}: unauthorized")
            if code in (429, 503):
                retry_after = self._retry_after(resp)
                LOGGER.warning(
                    "%s was rate-limited. Retry after: %s", path, retry_after
                )
                raise TodosRateLimited(
                    f"HTTP {code}: rate limited", retry_after=retry_after
                )
            try:
                body = resp.json()
            except ValueError:
                body = getattr(resp, "text", None)
            LOGGER.error("%s failed with code %d", path, code)
            raise TodosApiError(f"HTTP {code}", payload=body)
        try:
            return resp.json()
        except ValueError:
            self._dump_http_debug(path.strip("/").replace("/", "_"), url, payload, resp)
            LOGGER.error("Failed to parse JSON response from %s", path)
            raise TodosApiError(
                "Invalid JSON response", payload=getattr(resp, "text", None)
            )

    @staticmethod
    def _retry_after(resp) -> Optional[float]:
        try:
            hdr = resp.headers.get("Retry-After")
            if hdr:
                return float(hdr)
        except (AttributeError, TypeError, ValueError):
            return None
        return None

    @staticmethod
    def _dump_http_debug(op: str, url: str, payload: Dict, resp) -> None:
        if not os.getenv("TODOSHARE_DEBUG"):
            return
        ts = time.strftime("%Y%m%d-%H%M%S")
        out_dir = os.path.join("workspace", "todos_debug")
        try:
            os.makedirs(out_dir, exist_ok=True)
            with open(
                os.path.join(out_dir, f"{ts}_{op}_http_request.json"),
                "w",
                encoding="utf-8",
            ) as f:
                json.dump(
                    {"url": url, "payload": payload}, f, ensure_ascii=False, indent=2
                )
            body_text = getattr(resp, "text", None)
            with open(
                os.path.join(out_dir, f"{ts}_{op}_http_response.txt"),
                "w",
                encoding="utf-8",
            ) as f:
                status = getattr(resp, "status_code", None)
                headers = getattr(resp, "headers", {}) or {}
                f.write(f"status={status}\nurl={url}\nheaders={dict(headers)}\n\n")
                if isinstance(body_text, str):
                    max_bytes = int(os.getenv("TODOSHARE_DEBUG_MAX_BYTES", "524288"))
                    if len(body_text) > max_bytes:
                        f.write(body_text[:max_bytes] + "\n[truncated]\n")
                    else:
                        f.write(body_text)
        except OSError as e:
            LOGGER.debug("Could not write HTTP debug dump: %s", e)


# ------------------------------ Raw client -----------------------------------


class CloudKitTodosClient:
    """
    Raw CloudKit service for one database (private or shared) of the
    ToDos container.

    Methods map 1:1 to CloudKit endpoints:
      - /zones/list
      - /zones/modify
      - /changes/zone
      - /records/modify
      - /records/lookup
    """

    def __init__(
        self,
        base_url: str,
        session,
        base_params: Dict[str, object],
        *,
        scope: str = "private",
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.scope = scope
        self._http = _CloudKitClient(base_url, session, base_params, timeout=timeout)
        LOGGER.info("CloudKitTodosClient initialized for %s database.", scope)

    # ----- Zones -----

    def list_zones(self) -> List[CKZoneID]:
        data = self._http.get("/zones/list")
        resp = self._validate(CKZoneListResponse, "zones.list", data)
        LOGGER.info("Listed %d zones in %s database.", len(resp.zones), self.scope)
        return [z.zoneID for z in resp.zones]

    def create_zone(self, zone_id: CKZoneID) -> CKZone:
        LOGGER.info("Creating zone %s in %s database.", zone_id.zoneName, self.scope)
        req = CKZoneModifyRequest(
            operations=[
                CKZoneOperation(operationType="create", zone=CKZone(zoneID=zone_id))
            ]
        )
        data = self._http.post("/zones/modify", req.model_dump(exclude_none=True))
        resp = self._validate(CKZoneModifyResponse, "zones.modify", data)
        for z in resp.zones:
            if isinstance(z, CKErrorItem):
                LOGGER.error(
                    "Zone creation failed: %s (%s)", z.serverErrorCode, z.reason
                )
                raise TodosApiError(
                    f"Zone creation failed: {z.serverErrorCode}",
                    payload=z.model_dump(exclude_none=True),
                )
            return z
        raise TodosApiError("Zone creation returned no zone", payload=data)

    # ----- Changes -----

    def fetch_zone_changes_page(
        self, zone_id: CKZoneID, sync_token: Optional[str] = None
    ) -> CKZoneChangesZone:
        """Fetch one page of a zone's change feed."""
        zone_req = CKZoneChangesZoneReq(zoneID=zone_id, syncToken=sync_token)
        payload = CKZoneChangesRequest(zones=[zone_req]).model_dump(exclude_none=True)
        data = self._http.post("/changes/zone", payload)
        envelope = self._validate(CKZoneChangesResponse, "changes.zone", data)
        zone = envelope.zones[0] if envelope.zones else None
        if zone is None:
            raise TodosApiError("Changes response contained no zone", payload=data)
        if isinstance(zone, CKErrorItem):
            LOGGER.error(
                "Changes for zone %s failed: %s (%s)",
                zone_id.zoneName,
                zone.serverErrorCode,
                zone.reason,
            )
            raise TodosApiError(
                f"Changes for zone {zone_id.zoneName} failed: {zone.serverErrorCode}",
                payload=zone.model_dump(exclude_none=True),
            )
        return zone

    # ----- Records -----

    def save_records(
        self,
        records: Iterable[CKRecord],
        *,
        zone_id: Optional[CKZoneID] = None,
        atomic: bool = True,
    ) -> List[CKRecord]:
        ops = [
            CKRecordOperation(operationType="forceReplace", record=r.to_wire())
            for r in records
        ]
        LOGGER.info("Saving %d records (atomic=%s).", len(ops), atomic)
        return self._modify(ops, zone_id=zone_id, atomic=atomic)

    def delete_records(
        self,
        record_names: Iterable[str],
        *,
        zone_id: Optional[CKZoneID] = None,
    ) -> None:
        ops = [
            CKRecordOperation(operationType="forceDelete", record={"recordName": rn})
            for rn in record_names
        ]
        LOGGER.info("Deleting %d records from %s database.", len(ops), self.scope)
        self._modify(ops, zone_id=zone_id, atomic=False)

    def _modify(
        self,
        ops: List[CKRecordOperation],
        *,
        zone_id: Optional[CKZoneID],
        atomic: bool,
    ) -> List[CKRecord]:
        req = CKRecordModifyRequest(operations=ops, zoneID=zone_id, atomic=atomic)
        data = self._http.post("/records/modify", req.model_dump(exclude_none=True))
        resp = self._validate(CKRecordModifyResponse, "records.modify", data)
        errors = [r for r in resp.records if isinstance(r, CKErrorItem)]
        if errors:
            first = errors[0]
            LOGGER.error(
                "records/modify failed for %s: %s (%s)",
                first.recordName,
                first.serverErrorCode,
                first.reason,
            )
            raise TodosApiError(
                f"Modify failed: {first.serverErrorCode}",
                payload=[e.model_dump(exclude_none=True) for e in errors],
            )
        return [r for r in resp.records if isinstance(r, CKRecord)]

    def lookup(
        self,
        record_names: Iterable[str],
        *,
        zone_id: Optional[CKZoneID] = None,
    ) -> CKLookupResponse:
        names = list(record_names)
        LOGGER.info("Executing lookup for %d records.", len(names))
        req = CKLookupRequest(
            records=[CKLookupDescriptor(recordName=rn) for rn in names],
            zoneID=zone_id,
        )
        data = self._http.post("/records/lookup", req.model_dump(exclude_none=True))
        resp = self._validate(CKLookupResponse, "records.lookup", data)
        LOGGER.info("Lookup returned %d records.", len(resp.records))
        return resp

    def fetch_record(
        self, record_name: str, *, zone_id: Optional[CKZoneID] = None
    ) -> CKRecord:
        resp = self.lookup([record_name], zone_id=zone_id)
        for rec in resp.records:
            if isinstance(rec, CKRecord) and rec.recordName == record_name:
                return rec
        LOGGER.warning("Record not found: %s", record_name)
        raise RecordNotFound(f"Record not found: {record_name}")

    # ----- Validation -----

    @staticmethod
    def _validate(model: Type[_M], op: str, data: Dict) -> _M:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            CloudKitTodosClient._log_validation(op, data, e)
            LOGGER.error("%s response validation failed.", op)
            raise TodosApiError(f"{op} response validation failed", payload=data)

    @staticmethod
    def _log_validation(op: str, data: Dict, err: ValidationError) -> None:
        if not os.getenv("TODOSHARE_DEBUG"):
            return
        ts = time.strftime("%Y%m%d-%H%M%S")
        out_dir = os.path.join("workspace", "todos_debug")
        path = os.path.join(out_dir, f"{ts}_{op}_validation.json")
        try:
            os.makedirs(out_dir, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(
                    {"op": op, "errors": err.errors(), "data": data},
                    f,
                    ensure_ascii=False,
                    indent=2,
                    default=str,
                )
        except OSError as e:
            LOGGER.debug("Could not write validation dump: %s", e)


# ------------------------------- Container -----------------------------------


class CloudKitContainer:
    """
    One CloudKit container with its private and shared databases.

    Endpoint layout: {service_root}/database/1/{container}/{environment}/{scope}
    """

    def __init__(
        self,
        container_id: str,
        session,
        params: Optional[Dict[str, object]] = None,
        *,
        environment: str = "development",
        service_root: str = DEFAULT_SERVICE_ROOT,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.container_id = container_id
        self.environment = environment
        root = service_root.rstrip("/")
        self.private = CloudKitTodosClient(
            f"{root}/database/1/{container_id}/{environment}/private",
            session,
            dict(params or {}),
            scope="private",
            timeout=timeout,
        )
        self.shared = CloudKitTodosClient(
            f"{root}/database/1/{container_id}/{environment}/shared",
            session,
            dict(params or {}),
            scope="shared",
            timeout=timeout,
        )

    def database(self, scope: str) -> CloudKitTodosClient:
        if scope == "private":
            return self.private
        if scope == "shared":
            return self.shared
        raise ValueError(f"Unknown database scope: {scope!r}")

    def list_shared_zones(self) -> List[CKZoneID]:
        return self.shared.list_zones()

    def __repr__(self) -> str:
        return (
            f"CloudKitContainer({self.container_id!r}, "
            f"environment={self.environment!r})"
        )
