"""
Remote document store adapter speaking the Firestore REST API.

Document layout:
    enterprises/{tenant}                    tenant documents
    enterprises/{tenant}/products/{id}      service catalog
    enterprises/{tenant}/bookings/{id}      bookings
    employees/{id}                          staff, with an ``enterpriseEmail`` field

The HTTP calls are blocking ``requests`` calls run in a worker thread so the
event loop is never blocked while a request is in flight.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Sequence, Tuple
from urllib.parse import quote

import pendulum
import requests
from pendulum import Date

from ..config import StoreConfig
from ..domain.exceptions import StoreError
from ..domain.models import Booking, BookingStatus, Service, StaffMember, WorkSchedule

logger = logging.getLogger(__name__)

Document = Tuple[str, Dict[str, Any]]


def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value as a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": pendulum.instance(value).in_timezone("UTC").to_iso8601_string()}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(item) for item in value]}}
    raise ValueError(f"Cannot encode value of type {type(value).__name__}")


def decode_value(value: Dict[str, Any]) -> Any:
    """Decode a Firestore typed value into a plain Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(item) for item in value["arrayValue"].get("values", [])]
    for key in ("stringValue", "timestampValue", "referenceValue"):
        if key in value:
            return value[key]
    raise ValueError(f"Unsupported Firestore value: {sorted(value)}")


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: encode_value(item) for key, item in data.items()}


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(item) for key, item in fields.items()}


def _document_id(name: str) -> str:
    return name.rsplit("/", 1)[-1]


def _path(*segments: str) -> str:
    return "/".join(quote(segment, safe="") for segment in segments)


class FirestoreClient:
    """
    Thin blocking client for Firestore document operations.

    Missing documents come back as ``None``; transport and HTTP failures
    raise ``StoreError``.
    """

    BASE_URL = "https://firestore.googleapis.com/v1"

    def __init__(
        self,
        project_id: str,
        database: str = "(default)",
        api_key: str = "",
        id_token: str = "",
        timeout: float = 30,
        session: requests.Session | None = None,
    ):
        """
        Initialize the client.

        Args:
            project_id: Firebase/GCP project id
            database: Firestore database id
            api_key: Optional Web API key sent as ``key`` query parameter
            id_token: Optional Firebase ID token sent as bearer token
            timeout: Per-request timeout in seconds
            session: Optional requests session (tests inject a mock)
        """
        self.documents_root = f"projects/{project_id}/databases/{database}/documents"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json"}
        if id_token:
            self.headers["Authorization"] = f"Bearer {id_token}"
        self.params = {"key": api_key} if api_key else {}

    def _url(self, path: str = "") -> str:
        base = f"{self.BASE_URL}/{self.documents_root}"
        return f"{base}/{path}" if path else base

    def _request(self, method: str, url: str, **kwargs) -> requests.Response | None:
        params = {**self.params, **kwargs.pop("params", {})}
        try:
            response = self.session.request(
                method,
                url,
                headers=self.headers,
                params=params,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            raise StoreError(f"Firestore request failed: {e}") from e

        if response.status_code == 404:
            return None

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise StoreError(f"Firestore returned {response.status_code}: {e}") from e

        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(f"Firestore returned an unreadable body: {e}") from e

    @staticmethod
    def _unpack(document: Any) -> Document:
        try:
            return _document_id(document["name"]), decode_fields(document.get("fields", {}))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise StoreError(f"Malformed Firestore document: {e!r}") from e

    def get_document(self, path: str) -> Document | None:
        response = self._request("GET", self._url(path))
        if response is None:
            return None
        return self._unpack(self._json(response))

    def run_query(
        self,
        collection_id: str,
        filters: Sequence[Tuple[str, Any]],
        parent: str = "",
        all_descendants: bool = False,
    ) -> List[Document]:
        """
        Run an equality-filtered structured query.

        Args:
            collection_id: Collection to search
            filters: ``(field, value)`` pairs combined with AND
            parent: Parent document path, empty for the database root
            all_descendants: Query every collection with this id (collection group)
        """
        field_filters = [
            {
                "fieldFilter": {
                    "field": {"fieldPath": field},
                    "op": "EQUAL",
                    "value": encode_value(value),
                }
            }
            for field, value in filters
        ]
        structured: Dict[str, Any] = {
            "from": [{"collectionId": collection_id, "allDescendants": all_descendants}],
        }
        if len(field_filters) == 1:
            structured["where"] = field_filters[0]
        elif field_filters:
            structured["where"] = {"compositeFilter": {"op": "AND", "filters": field_filters}}

        response = self._request(
            "POST",
            f"{self._url(parent)}:runQuery",
            json={"structuredQuery": structured},
        )
        if response is None:
            return []

        rows = self._json(response)
        if not isinstance(rows, list):
            raise StoreError(f"Unexpected runQuery response: {type(rows).__name__}")

        documents: List[Document] = []
        for row in rows:
            document = row.get("document") if isinstance(row, dict) else None
            if document:
                documents.append(self._unpack(document))
        return documents

    def create_document(self, collection_path: str, data: Dict[str, Any]) -> Document:
        response = self._request(
            "POST",
            self._url(collection_path),
            json={"fields": encode_fields(data)},
        )
        if response is None:
            raise StoreError(f"Collection {collection_path} is not reachable")
        return self._unpack(self._json(response))

    def patch_document(self, path: str, data: Dict[str, Any]) -> None:
        """Update only the given fields; the document must already exist."""
        params = {
            "updateMask.fieldPaths": list(data),
            "currentDocument.exists": "true",
        }
        response = self._request(
            "PATCH",
            self._url(path),
            params=params,
            json={"fields": encode_fields(data)},
        )
        if response is None:
            raise StoreError(f"Document {path} does not exist")


class _FirestoreCollaborator:
    def __init__(self, client: FirestoreClient):
        self._client = client

    async def _call(self, func, *args, **kwargs):
        return await asyncio.to_thread(func, *args, **kwargs)

    @staticmethod
    def _decode(factory, document: Document, **kwargs):
        doc_id, data = document
        try:
            return factory(data, doc_id, **kwargs)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise StoreError(f"Malformed document {doc_id}: {exc}") from exc


class FirestoreTenantDirectory(_FirestoreCollaborator):
    async def exists(self, tenant_id: str) -> bool:
        return await self._call(self._client.get_document, _path("enterprises", tenant_id)) is not None

    async def default_schedule(self, tenant_id: str) -> WorkSchedule | None:
        documents = await self._call(
            self._client.run_query,
            "schedules",
            [("enterpriseEmail", tenant_id), ("isDefault", True)],
        )
        if not documents:
            return None
        return self._decode(
            lambda data, doc_id: WorkSchedule.from_availability(data.get("availability")),
            documents[0],
        )


class FirestoreServiceCatalog(_FirestoreCollaborator):
    async def get_by_id(self, tenant_id: str, service_id: str) -> Service | None:
        document = await self._call(
            self._client.get_document, _path("enterprises", tenant_id, "products", service_id)
        )
        if document is None:
            return None
        return self._decode(
            lambda data, doc_id: Service.from_dict(data, tenant_id=tenant_id, service_id=doc_id),
            document,
        )


class FirestoreStaffStore(_FirestoreCollaborator):
    async def get_by_id(self, staff_id: str) -> StaffMember | None:
        document = await self._call(self._client.get_document, _path("employees", staff_id))
        if document is None:
            return None
        return self._decode(StaffMember.from_dict, document)

    async def list_by_tenant(self, tenant_id: str) -> List[StaffMember]:
        documents = await self._call(
            self._client.run_query, "employees", [("enterpriseEmail", tenant_id)]
        )
        roster = [self._decode(StaffMember.from_dict, document) for document in documents]
        return sorted(roster, key=lambda s: s.name)


class FirestoreBookingStore(_FirestoreCollaborator):
    async def list_by_date(self, tenant_id: str, day: Date) -> List[Booking]:
        documents = await self._call(
            self._client.run_query,
            "bookings",
            [("date", day.to_date_string())],
            parent=_path("enterprises", tenant_id),
        )
        return [self._decode(Booking.from_dict, document) for document in documents]

    async def list_by_staff_and_date(self, staff_id: str, day: Date) -> List[Booking]:
        documents = await self._call(
            self._client.run_query,
            "bookings",
            [("employeeId", staff_id), ("date", day.to_date_string())],
            all_descendants=True,
        )
        return [self._decode(Booking.from_dict, document) for document in documents]

    async def list_by_tenant(self, tenant_id: str, status: BookingStatus | None = None) -> List[Booking]:
        filters = [("status", status.value)] if status is not None else []
        documents = await self._call(
            self._client.run_query,
            "bookings",
            filters,
            parent=_path("enterprises", tenant_id),
        )
        return [self._decode(Booking.from_dict, document) for document in documents]

    async def get_by_id(self, tenant_id: str, booking_id: str) -> Booking | None:
        document = await self._call(
            self._client.get_document, _path("enterprises", tenant_id, "bookings", booking_id)
        )
        if document is None:
            return None
        return self._decode(Booking.from_dict, document)

    async def create(self, booking: Booking) -> Booking:
        data = booking.to_dict()
        data.pop("id", None)
        document = await self._call(
            self._client.create_document,
            _path("enterprises", booking.tenant_id, "bookings"),
            data,
        )
        logger.debug("Created Firestore booking %s", document[0])
        return self._decode(Booking.from_dict, document)

    async def update_status(self, tenant_id: str, booking_id: str, status: BookingStatus) -> None:
        await self._call(
            self._client.patch_document,
            _path("enterprises", tenant_id, "bookings", booking_id),
            {"status": status.value, "updatedAt": pendulum.now("UTC").to_iso8601_string()},
        )


class FirestoreStore:
    """Bundles the Firestore-backed collaborators over one client."""

    def __init__(self, client: FirestoreClient):
        self.client = client
        self.tenants = FirestoreTenantDirectory(client)
        self.services = FirestoreServiceCatalog(client)
        self.staff = FirestoreStaffStore(client)
        self.bookings = FirestoreBookingStore(client)

    @classmethod
    def from_config(cls, config: StoreConfig) -> "FirestoreStore":
        return cls(
            FirestoreClient(
                project_id=config.project_id,
                database=config.database,
                api_key=config.api_key,
                id_token=config.id_token,
                timeout=config.timeout_seconds,
            )
        )
