"""
Endpoint test suite for /companies/{company_id}/bookings and court slots.

Testing strategy:
  - Auth/scope deps are overridden via conftest.build_app()
  - CRUD methods are patched per-test with AsyncMock (no DB)
  - ActivityClient is injected as a mock via client_factory(..., activity_client=mock)
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from fastapi.testclient import TestClient

from facility_bookings.deps import get_current_user
from facility_bookings.errors import (
    AlreadyCancelled,
    InvalidInterval,
    NotFound,
    ResourceUnavailable,
    SlotConflict,
)
from facility_bookings.models import BookingStatus
from facility_bookings.schemas import BookingDetail, BookingResponse, BookingSlot
from facility_bookings.scopes import BookingScope

from .factories import (
    BOOKING_ID,
    COMPANY_ID,
    COURT_ID,
    CUSTOMER_ID,
    ITEM_ID,
    LATER,
    NOW,
    STAFF_ID,
    at,
    booking_create_payload,
    booking_detail,
    booking_response,
    item_payload,
    make_admin,
    make_customer,
    make_staff,
)

CRUD_PATH = "facility_bookings.routers.booking.booking_crud"
BASE = f"/companies/{COMPANY_ID}/bookings"


def detail_model(**overrides) -> BookingDetail:
    """BookingDetail object, needed when the router reads .items / .id."""
    return BookingDetail(**booking_detail(**overrides))


def _mock_activity() -> MagicMock:
    mock = MagicMock()
    mock.track = AsyncMock(return_value=True)
    return mock


# ---------------------------------------------------------------------------
# GET /bookings
# ---------------------------------------------------------------------------


class TestListBookings:
    def test_customer_sees_own_bookings(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.list_bookings = AsyncMock(
                return_value=[BookingResponse(**booking_response())]
            )
            resp = customer_client.get(BASE)
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 1
        assert data[0]["id"] == str(BOOKING_ID)
        _, kwargs = mock_crud.list_bookings.call_args
        assert kwargs.get("user_id") == CUSTOMER_ID

    def test_console_user_sees_all_company_bookings(self, staff_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.list_bookings = AsyncMock(return_value=[])
            resp = staff_client.get(BASE)
        assert resp.status_code == 200
        args, kwargs = mock_crud.list_bookings.call_args
        assert args[0] == COMPANY_ID
        assert kwargs.get("user_id") is None

    def test_filters_forwarded(self, staff_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.list_bookings = AsyncMock(return_value=[])
            resp = staff_client.get(
                BASE, params={"status": "confirmed", "page": 2, "page_size": 5}
            )
        assert resp.status_code == 200
        filters = mock_crud.list_bookings.call_args.kwargs["filters"]
        assert filters.status == BookingStatus.CONFIRMED
        assert filters.page == 2
        assert filters.page_size == 5

    def test_invalid_status_filter_returns_422(self, staff_client):
        resp = staff_client.get(BASE, params={"status": "paid"})
        assert resp.status_code == 422

    def test_missing_auth_headers_returns_422(self, anon_app):
        with TestClient(anon_app) as c:
            resp = c.get(BASE)
        assert resp.status_code == 422

    def test_no_relevant_scope_returns_403(self, anon_app):
        async def _no_scope_user():
            return make_customer(scopes=["courts:read"])

        anon_app.dependency_overrides[get_current_user] = _no_scope_user
        with TestClient(anon_app) as c:
            resp = c.get(BASE)
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# POST /bookings
# ---------------------------------------------------------------------------


class TestCreateBooking:
    def test_customer_booking_defaults_to_pending(self, client_factory):
        activity = _mock_activity()
        client = client_factory(make_customer(), activity_client=activity)
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_booking = AsyncMock(return_value=detail_model())
            resp = client.post(BASE, json=booking_create_payload())

        assert resp.status_code == 201
        body = resp.json()
        assert body["id"] == str(BOOKING_ID)
        assert body["items"][0]["id"] == str(ITEM_ID)

        args, kwargs = mock_crud.create_booking.call_args
        assert args[:2] == (COMPANY_ID, CUSTOMER_ID)
        assert kwargs["default_status"] == BookingStatus.PENDING
        assert kwargs["booking_source"] == "customer_web"

    def test_console_booking_defaults_to_confirmed(self, client_factory):
        client = client_factory(make_staff())
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_booking = AsyncMock(
                return_value=detail_model(status="confirmed", user_id=str(STAFF_ID))
            )
            resp = client.post(BASE, json=booking_create_payload())

        assert resp.status_code == 201
        kwargs = mock_crud.create_booking.call_args.kwargs
        assert kwargs["default_status"] == BookingStatus.CONFIRMED
        assert kwargs["booking_source"] == "admin_manual"

    def test_customer_cannot_choose_booking_source(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_booking = AsyncMock(return_value=detail_model())
            customer_client.post(
                BASE, json=booking_create_payload(booking_source="admin_manual")
            )
        kwargs = mock_crud.create_booking.call_args.kwargs
        assert kwargs["booking_source"] == "customer_web"
        assert kwargs["default_status"] == BookingStatus.PENDING

    def test_console_user_may_name_booking_source(self, staff_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_booking = AsyncMock(return_value=detail_model())
            staff_client.post(
                BASE, json=booking_create_payload(booking_source="phone")
            )
        assert mock_crud.create_booking.call_args.kwargs["booking_source"] == "phone"

    def test_status_hint_reaches_engine(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_booking = AsyncMock(return_value=detail_model())
            customer_client.post(
                BASE, json=booking_create_payload(bookingStatus="succeeded")
            )
        payload = mock_crud.create_booking.call_args.args[2]
        assert payload.booking_status_camel == "succeeded"

    def test_activity_tracked_and_slots_invalidated(self, client_factory):
        activity = _mock_activity()
        client = client_factory(make_customer(), activity_client=activity)
        with (
            patch(CRUD_PATH) as mock_crud,
            patch(
                "facility_bookings.routers.booking.invalidate_slots_cache", AsyncMock()
            ) as invalidate,
        ):
            mock_crud.create_booking = AsyncMock(return_value=detail_model())
            client.post(BASE, json=booking_create_payload())

        activity.track.assert_awaited_once()
        assert activity.track.call_args.args[0] == "booking_created"
        invalidate.assert_awaited_once_with(COURT_ID)

    def test_slot_conflict_returns_409_with_code(self, customer_client):
        clash = uuid4()
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_booking = AsyncMock(
                side_effect=SlotConflict("Court is already booked", conflicting_id=clash)
            )
            resp = customer_client.post(BASE, json=booking_create_payload())
        assert resp.status_code == 409
        detail = resp.json()["detail"]
        assert detail["code"] == "SlotConflict"
        assert detail["details"]["conflicting_id"] == str(clash)

    def test_unavailable_court_returns_409(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_booking = AsyncMock(
                side_effect=ResourceUnavailable("Court is not available")
            )
            resp = customer_client.post(BASE, json=booking_create_payload())
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "ResourceUnavailable"

    def test_unknown_court_returns_404(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_booking = AsyncMock(side_effect=NotFound("Court not found"))
            resp = customer_client.post(BASE, json=booking_create_payload())
        assert resp.status_code == 404

    def test_invalid_interval_returns_422(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.create_booking = AsyncMock(side_effect=InvalidInterval())
            resp = customer_client.post(
                BASE,
                json=booking_create_payload(items=[item_payload(start=LATER, end=NOW)]),
            )
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "InvalidInterval"

    def test_empty_items_returns_422(self, customer_client):
        resp = customer_client.post(BASE, json=booking_create_payload(items=[]))
        assert resp.status_code == 422

    def test_naive_datetime_returns_422(self, customer_client):
        naive = item_payload(
            start_datetime="2026-06-01T10:00:00", end_datetime="2026-06-01T11:00:00"
        )
        resp = customer_client.post(BASE, json=booking_create_payload(items=[naive]))
        assert resp.status_code == 422

    def test_missing_write_scope_returns_403(self, anon_app):
        async def _read_only():
            return make_customer(scopes=[BookingScope.READ])

        anon_app.dependency_overrides[get_current_user] = _read_only
        with TestClient(anon_app) as c:
            resp = c.post(BASE, json=booking_create_payload())
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# GET /bookings/{id}
# ---------------------------------------------------------------------------


class TestGetBooking:
    def test_customer_gets_own_booking(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_booking = AsyncMock(return_value=detail_model())
            resp = customer_client.get(f"{BASE}/{BOOKING_ID}")
        assert resp.status_code == 200
        assert resp.json()["items"][0]["duration_minutes"] == 120
        assert mock_crud.get_booking.call_args.kwargs["user_id"] == CUSTOMER_ID

    def test_not_found_returns_404(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_booking = AsyncMock(return_value=None)
            resp = customer_client.get(f"{BASE}/{BOOKING_ID}")
        assert resp.status_code == 404

    def test_admin_reads_without_owner_filter(self, client_factory):
        client = client_factory(make_admin())
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_booking = AsyncMock(return_value=detail_model())
            resp = client.get(f"{BASE}/{BOOKING_ID}")
        assert resp.status_code == 200
        assert "user_id" not in mock_crud.get_booking.call_args.kwargs


# ---------------------------------------------------------------------------
# POST /bookings/{id}/cancel
# ---------------------------------------------------------------------------


class TestCancelBooking:
    def test_customer_cancels_own_booking(self, client_factory):
        activity = _mock_activity()
        client = client_factory(make_customer(), activity_client=activity)
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_booking = AsyncMock(return_value=detail_model())
            mock_crud.cancel_booking = AsyncMock(
                return_value=detail_model(status="cancelled", cancellation_reason="ill")
            )
            resp = client.post(f"{BASE}/{BOOKING_ID}/cancel", json={"reason": "ill"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        mock_crud.cancel_booking.assert_awaited_once_with(
            COMPANY_ID, BOOKING_ID, CUSTOMER_ID, "ill"
        )
        assert activity.track.call_args.args[0] == "booking_cancelled"

    def test_customer_cannot_cancel_someone_elses_booking(self, customer_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_booking = AsyncMock(return_value=None)
            mock_crud.cancel_booking = AsyncMock()
            resp = customer_client.post(f"{BASE}/{BOOKING_ID}/cancel", json={})
        assert resp.status_code == 404
        mock_crud.cancel_booking.assert_not_awaited()

    def test_console_user_skips_ownership_check(self, staff_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.get_booking = AsyncMock()
            mock_crud.cancel_booking = AsyncMock(
                return_value=detail_model(status="cancelled")
            )
            resp = staff_client.post(f"{BASE}/{BOOKING_ID}/cancel", json={})
        assert resp.status_code == 200
        mock_crud.get_booking.assert_not_awaited()

    def test_already_cancelled_returns_409(self, staff_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.cancel_booking = AsyncMock(
                side_effect=AlreadyCancelled("Booking is already cancelled")
            )
            resp = staff_client.post(f"{BASE}/{BOOKING_ID}/cancel", json={})
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "AlreadyCancelled"


# ---------------------------------------------------------------------------
# PATCH /bookings/{id}/status  and  /items/{item_id}
# ---------------------------------------------------------------------------


class TestConsoleMutations:
    def test_status_update(self, staff_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.update_booking_status = AsyncMock(
                return_value=detail_model(status="completed")
            )
            resp = staff_client.patch(
                f"{BASE}/{BOOKING_ID}/status",
                json={"status": "completed", "reason": "played"},
            )
        assert resp.status_code == 200
        mock_crud.update_booking_status.assert_awaited_once_with(
            COMPANY_ID, BOOKING_ID, STAFF_ID, BookingStatus.COMPLETED, "played"
        )

    def test_unknown_status_returns_422(self, staff_client):
        resp = staff_client.patch(
            f"{BASE}/{BOOKING_ID}/status", json={"status": "teleported"}
        )
        assert resp.status_code == 422

    def test_reschedule_item(self, staff_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.reschedule_item = AsyncMock(return_value=detail_model())
            resp = staff_client.patch(
                f"{BASE}/{BOOKING_ID}/items/{ITEM_ID}",
                json={
                    "start_datetime": at(14).isoformat(),
                    "end_datetime": at(15).isoformat(),
                },
            )
        assert resp.status_code == 200
        args = mock_crud.reschedule_item.call_args.args
        assert args[:4] == (COMPANY_ID, BOOKING_ID, ITEM_ID, STAFF_ID)
        assert args[4].start_datetime == at(14)

    def test_reschedule_conflict_returns_409(self, staff_client):
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.reschedule_item = AsyncMock(side_effect=SlotConflict("taken"))
            resp = staff_client.patch(
                f"{BASE}/{BOOKING_ID}/items/{ITEM_ID}",
                json={
                    "start_datetime": at(14).isoformat(),
                    "end_datetime": at(15).isoformat(),
                },
            )
        assert resp.status_code == 409

    def test_customer_cannot_change_status(self, anon_app):
        async def _customer():
            return make_customer()

        anon_app.dependency_overrides[get_current_user] = _customer
        with TestClient(anon_app) as c:
            resp = c.patch(f"{BASE}/{BOOKING_ID}/status", json={"status": "completed"})
        assert resp.status_code == 403

    def test_change_history(self, staff_client):
        record = {
            "id": str(uuid4()),
            "change_type": "created",
            "changed_by": str(CUSTOMER_ID),
            "old_value": None,
            "new_value": {"status": "pending", "payment_status": "pending"},
            "reason": None,
            "created_at": NOW.isoformat(),
        }
        with patch(CRUD_PATH) as mock_crud:
            mock_crud.list_changes = AsyncMock(return_value=[record])
            resp = staff_client.get(f"{BASE}/{BOOKING_ID}/changes")
        assert resp.status_code == 200
        assert resp.json()[0]["change_type"] == "created"


# ---------------------------------------------------------------------------
# GET /courts/{court_id}/slots
# ---------------------------------------------------------------------------


class TestCourtSlots:
    URL = f"/companies/{COMPANY_ID}/courts/{COURT_ID}/slots"

    def test_cache_miss_reads_engine_and_fills_cache(self, customer_client):
        slots = [BookingSlot(start_datetime=NOW, end_datetime=LATER)]
        with (
            patch(CRUD_PATH) as mock_crud,
            patch("facility_bookings.routers.booking.resource_directory") as directory,
            patch(
                "facility_bookings.routers.booking.set_slots_cache", AsyncMock()
            ) as set_cache,
        ):
            directory.find_court = AsyncMock()
            mock_crud.list_occupied_slots = AsyncMock(return_value=slots)
            resp = customer_client.get(self.URL)

        assert resp.status_code == 200
        assert len(resp.json()) == 1
        assert "user_id" not in resp.json()[0]
        set_cache.assert_awaited_once()

    def test_cache_hit_skips_engine(self, customer_client):
        cached = [{"start_datetime": NOW.isoformat(), "end_datetime": LATER.isoformat()}]
        with (
            patch(CRUD_PATH) as mock_crud,
            patch("facility_bookings.routers.booking.resource_directory") as directory,
            patch(
                "facility_bookings.routers.booking.get_slots_cache",
                AsyncMock(return_value=cached),
            ),
        ):
            directory.find_court = AsyncMock()
            mock_crud.list_occupied_slots = AsyncMock()
            resp = customer_client.get(self.URL)

        assert resp.status_code == 200
        mock_crud.list_occupied_slots.assert_not_awaited()

    def test_unknown_court_returns_404(self, customer_client):
        with patch("facility_bookings.routers.booking.resource_directory") as directory:
            directory.find_court = AsyncMock(side_effect=NotFound("Court not found"))
            resp = customer_client.get(self.URL)
        assert resp.status_code == 404
