"""
Tests for the Firestore REST adapter, with a mocked requests session.
"""

import asyncio
from unittest.mock import Mock

import pendulum
import pytest
import requests

from bookingengine.adapters.firestore_store import (
    FirestoreClient,
    FirestoreStore,
    decode_fields,
    decode_value,
    encode_value,
)
from bookingengine.config import StoreConfig
from bookingengine.domain.exceptions import RejectionReason, StoreError
from bookingengine.domain.models import BookingStatus
from bookingengine.domain.results import Rejected
from bookingengine.services.booking_orchestrator import BookingOrchestrator

from conftest import make_booking

ROOT = "projects/salon/databases/(default)/documents"
BASE = f"https://firestore.googleapis.com/v1/{ROOT}"


def _response(status_code=200, payload=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status_code} error")
    else:
        response.raise_for_status.return_value = None
    return response


def _document(path, fields):
    return {"name": f"{ROOT}/{path}", "fields": fields}


def _store(*responses, **client_kwargs):
    session = Mock()
    session.request.side_effect = list(responses)
    client = FirestoreClient(project_id="salon", session=session, **client_kwargs)
    return FirestoreStore(client), session


STAFF_FIELDS = {
    "enterpriseEmail": {"stringValue": "studio@example.com"},
    "name": {"stringValue": "Anna"},
    "isActive": {"booleanValue": True},
    "skills": {
        "arrayValue": {
            "values": [
                {
                    "mapValue": {
                        "fields": {
                            "productId": {"stringValue": "haircut"},
                            "canPerform": {"booleanValue": True},
                            "estimatedDuration": {"integerValue": "45"},
                        }
                    }
                }
            ]
        }
    },
    "workSchedule": {
        "mapValue": {
            "fields": {
                "monday": {
                    "mapValue": {
                        "fields": {
                            "isWorking": {"booleanValue": True},
                            "startTime": {"stringValue": "09:00"},
                            "endTime": {"stringValue": "17:00"},
                        }
                    }
                }
            }
        }
    },
}


class TestValueCodec:
    """Tests for Firestore typed values."""

    @pytest.mark.parametrize(
        "value,encoded",
        [
            (None, {"nullValue": None}),
            (True, {"booleanValue": True}),
            (30, {"integerValue": "30"}),
            (35.5, {"doubleValue": 35.5}),
            ("09:00", {"stringValue": "09:00"}),
            ([1, "a"], {"arrayValue": {"values": [{"integerValue": "1"}, {"stringValue": "a"}]}}),
            ({"isWorking": False}, {"mapValue": {"fields": {"isWorking": {"booleanValue": False}}}}),
        ],
    )
    def test_encode(self, value, encoded):
        assert encode_value(value) == encoded

    def test_encode_datetime_as_utc_timestamp(self):
        encoded = encode_value(pendulum.datetime(2024, 11, 25, 10, 0, tz="Europe/Berlin"))

        assert encoded == {"timestampValue": "2024-11-25T09:00:00Z"}

    def test_decode_nested(self):
        data = decode_fields(STAFF_FIELDS)

        assert data["skills"][0]["estimatedDuration"] == 45
        assert data["workSchedule"]["monday"]["isWorking"] is True

    def test_decode_empty_containers(self):
        assert decode_value({"arrayValue": {}}) == []
        assert decode_value({"mapValue": {}}) == {}
        assert decode_value({"timestampValue": "2024-11-25T09:00:00Z"}) == "2024-11-25T09:00:00Z"

    def test_unsupported_values(self):
        with pytest.raises(ValueError):
            encode_value(object())
        with pytest.raises(ValueError):
            decode_value({"geoPointValue": {}})


class TestFirestoreStore:
    """Tests for the Firestore-backed collaborators."""

    def test_get_staff(self):
        store, session = _store(_response(payload=_document("employees/emp-1", STAFF_FIELDS)))

        staff = asyncio.run(store.staff.get_by_id("emp-1"))

        assert staff.id == "emp-1"
        assert staff.tenant_id == "studio@example.com"
        assert staff.skill_for("haircut").duration_override == 45
        method, url = session.request.call_args.args
        assert method == "GET"
        assert url == f"{BASE}/employees/emp-1"

    def test_missing_document_is_none(self):
        store, _ = _store(_response(status_code=404))

        assert asyncio.run(store.staff.get_by_id("ghost")) is None

    def test_tenant_exists_quotes_email(self):
        store, session = _store(_response(payload=_document("enterprises/studio%40example.com", {})))

        assert asyncio.run(store.tenants.exists("studio@example.com"))
        assert session.request.call_args.args[1] == f"{BASE}/enterprises/studio%40example.com"

    def test_service_lookup(self):
        fields = {
            "name": {"stringValue": "Haircut"},
            "price": {"doubleValue": 35.0},
            "duration": {"integerValue": "30"},
        }
        store, _ = _store(_response(payload=_document("enterprises/t/products/haircut", fields)))

        service = asyncio.run(store.services.get_by_id("studio@example.com", "haircut"))

        assert service.id == "haircut"
        assert service.tenant_id == "studio@example.com"
        assert service.base_duration == 30

    def test_list_by_staff_and_date_runs_collection_group_query(self):
        booking_fields = {
            "enterpriseEmail": {"stringValue": "studio@example.com"},
            "productId": {"stringValue": "haircut"},
            "date": {"stringValue": "2024-11-25"},
            "startTime": {"stringValue": "14:00"},
            "endTime": {"stringValue": "14:30"},
            "actualDuration": {"integerValue": "30"},
            "status": {"stringValue": "confirmed"},
            "employeeId": {"stringValue": "emp-1"},
        }
        rows = [
            {"readTime": "2024-11-20T08:00:00Z"},
            {"document": _document("enterprises/t/bookings/bk-1", booking_fields)},
        ]
        store, session = _store(_response(payload=rows))

        bookings = asyncio.run(store.bookings.list_by_staff_and_date("emp-1", pendulum.date(2024, 11, 25)))

        assert [b.id for b in bookings] == ["bk-1"]
        assert bookings[0].status is BookingStatus.CONFIRMED
        method, url = session.request.call_args.args
        query = session.request.call_args.kwargs["json"]["structuredQuery"]
        assert method == "POST"
        assert url == f"{BASE}:runQuery"
        assert query["from"] == [{"collectionId": "bookings", "allDescendants": True}]
        filters = query["where"]["compositeFilter"]["filters"]
        assert [f["fieldFilter"]["field"]["fieldPath"] for f in filters] == ["employeeId", "date"]

    def test_roster_query_is_tenant_filtered(self):
        rows = [{"document": _document("employees/emp-1", STAFF_FIELDS)}]
        store, session = _store(_response(payload=rows))

        roster = asyncio.run(store.staff.list_by_tenant("studio@example.com"))

        where = session.request.call_args.kwargs["json"]["structuredQuery"]["where"]
        assert [s.id for s in roster] == ["emp-1"]
        assert where["fieldFilter"]["value"] == {"stringValue": "studio@example.com"}

    def test_default_schedule_query(self):
        fields = {
            "enterpriseEmail": {"stringValue": "studio@example.com"},
            "isDefault": {"booleanValue": True},
            "availability": {
                "arrayValue": {
                    "values": [
                        {
                            "mapValue": {
                                "fields": {
                                    "days": {"arrayValue": {"values": [{"stringValue": "Monday"}]}},
                                    "startTime": {"stringValue": "09:00"},
                                    "endTime": {"stringValue": "18:00"},
                                }
                            }
                        }
                    ]
                }
            },
        }
        store, session = _store(_response(payload=[{"document": _document("schedules/sch-1", fields)}]))

        schedule = asyncio.run(store.tenants.default_schedule("studio@example.com"))

        query = session.request.call_args.kwargs["json"]["structuredQuery"]
        filters = query["where"]["compositeFilter"]["filters"]
        assert query["from"] == [{"collectionId": "schedules", "allDescendants": False}]
        assert [f["fieldFilter"]["value"] for f in filters] == [
            {"stringValue": "studio@example.com"},
            {"booleanValue": True},
        ]
        assert schedule.for_weekday(0).end.hour == 18

    def test_missing_default_schedule(self):
        store, _ = _store(_response(payload=[{"readTime": "2024-11-20T08:00:00Z"}]))

        assert asyncio.run(store.tenants.default_schedule("studio@example.com")) is None

    def test_list_by_tenant_filters_status(self):
        store, session = _store(_response(payload=[]), _response(payload=[]))

        asyncio.run(store.bookings.list_by_tenant("studio@example.com", BookingStatus.PENDING))
        with_status = session.request.call_args
        asyncio.run(store.bookings.list_by_tenant("studio@example.com"))
        without_status = session.request.call_args

        assert with_status.args[1] == f"{BASE}/enterprises/studio%40example.com:runQuery"
        where = with_status.kwargs["json"]["structuredQuery"]["where"]
        assert where["fieldFilter"]["value"] == {"stringValue": "pending"}
        assert "where" not in without_status.kwargs["json"]["structuredQuery"]

    def test_create_booking_posts_to_tenant_collection(self):
        booking = make_booking(staff_id="emp-1")
        created = _document("enterprises/t/bookings/new-id", {
            key: encode_value(value) for key, value in booking.to_dict().items()
        })
        store, session = _store(_response(payload=created))

        result = asyncio.run(store.bookings.create(booking))

        assert result.id == "new-id"
        assert result.end_time == booking.end_time
        method, url = session.request.call_args.args
        assert method == "POST"
        assert url == f"{BASE}/enterprises/studio%40example.com/bookings"
        assert "id" not in session.request.call_args.kwargs["json"]["fields"]

    def test_update_status_patches_mask(self):
        store, session = _store(_response(payload=_document("enterprises/t/bookings/bk-1", {})))

        asyncio.run(store.bookings.update_status("studio@example.com", "bk-1", BookingStatus.CANCELLED))

        kwargs = session.request.call_args.kwargs
        assert session.request.call_args.args[0] == "PATCH"
        assert kwargs["params"]["updateMask.fieldPaths"] == ["status", "updatedAt"]
        assert kwargs["json"]["fields"]["status"] == {"stringValue": "cancelled"}

    def test_update_missing_booking(self):
        store, _ = _store(_response(status_code=404))

        with pytest.raises(StoreError):
            asyncio.run(store.bookings.update_status("studio@example.com", "bk-1", BookingStatus.CANCELLED))

    def test_http_errors_become_store_errors(self):
        store, _ = _store(_response(status_code=503))

        with pytest.raises(StoreError, match="503"):
            asyncio.run(store.staff.get_by_id("emp-1"))

    def test_transport_errors_become_store_errors(self):
        store, _ = _store(requests.exceptions.ConnectionError("refused"))

        with pytest.raises(StoreError, match="refused"):
            asyncio.run(store.tenants.exists("studio@example.com"))

    def test_malformed_document(self):
        fields = {"productId": {"stringValue": "haircut"}, "date": {"stringValue": "2024-11-25"}}
        store, _ = _store(_response(payload=_document("enterprises/t/bookings/bk-1", fields)))

        with pytest.raises(StoreError, match="Malformed"):
            asyncio.run(store.bookings.get_by_id("studio@example.com", "bk-1"))

    def test_unreadable_body_is_store_error(self):
        response = _response()
        response.json.side_effect = ValueError("Expecting value: line 1 column 1")
        store, _ = _store(response)

        with pytest.raises(StoreError, match="unreadable"):
            asyncio.run(store.staff.get_by_id("emp-1"))

    def test_document_without_name_is_store_error(self):
        store, _ = _store(_response(payload=[{"document": {"fields": STAFF_FIELDS}}]))

        with pytest.raises(StoreError, match="Malformed"):
            asyncio.run(store.staff.list_by_tenant("studio@example.com"))

    def test_garbled_response_is_retryable_rejection(self):
        """The orchestrator reports a broken upstream body as a retryable upstream failure."""
        response = _response()
        response.json.side_effect = ValueError("Expecting value")
        store, _ = _store(response)

        result = asyncio.run(BookingOrchestrator.from_store(store).generate_time_slots("emp-1", "2024-11-25", 30))

        assert isinstance(result, Rejected)
        assert result.reason is RejectionReason.UPSTREAM_FAILURE
        assert result.retryable

    def test_credentials_are_sent(self):
        store, session = _store(_response(status_code=404), api_key="k-123", id_token="tok")

        asyncio.run(store.staff.get_by_id("emp-1"))

        kwargs = session.request.call_args.kwargs
        assert kwargs["params"]["key"] == "k-123"
        assert kwargs["headers"]["Authorization"] == "Bearer tok"

    def test_from_config(self):
        store = FirestoreStore.from_config(
            StoreConfig(backend="firestore", project_id="salon", database="bookings", timeout_seconds=5)
        )

        assert store.client.documents_root == "projects/salon/databases/bookings/documents"
        assert store.client.timeout == 5
