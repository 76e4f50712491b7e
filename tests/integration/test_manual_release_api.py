# tests/integration/test_manual_release_api.py

from decimal import Decimal

from sqlalchemy import func, select

from molle.domain.state_machine import BookingStatus, UserRole
from molle.infrastructure.db.models import Ticket, User


def _release(client, headers, payload):
    return client.post("/admin/manual-release", json={"payload": payload}, headers=headers)


# ---------------------
# ACCESS
# ---------------------

def test_anonymous_caller_is_rejected(client, gateway_payload):
    response = _release(client, {}, gateway_payload("BK000001"))

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_non_admin_caller_is_rejected(client, buyer, gateway_payload):
    headers = {"X-User-Id": buyer.id, "X-User-Role": "USER"}

    response = _release(client, headers, gateway_payload("BK000001"))

    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden: Admin access required"}


def test_unknown_role_header_counts_as_anonymous(client, buyer, gateway_payload):
    headers = {"X-User-Id": buyer.id, "X-User-Role": "SUPERUSER"}

    response = _release(client, headers, gateway_payload("BK000001"))

    assert response.status_code == 401


# ---------------------
# PAYLOAD VALIDATION
# ---------------------

def test_missing_payload_is_rejected(client, admin_headers):
    response = client.post("/admin/manual-release", json={}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Webhook payload is required"}


def test_payload_without_order_id_is_rejected(client, admin_headers):
    response = _release(client, admin_headers, {"data": {"payment": {"payment_status": "SUCCESS"}}})

    assert response.status_code == 400
    assert response.json() == {"error": "Order ID not found in payload"}


def test_non_json_body_is_rejected(client, admin_headers):
    response = client.post(
        "/admin/manual-release",
        content=b"not json",
        headers={**admin_headers, "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request payload"}


def test_unknown_order_returns_not_found(client, admin_headers, gateway_payload):
    response = _release(client, admin_headers, gateway_payload("BK404404"))

    assert response.status_code == 404
    assert response.json() == {"error": "Booking not found for order ID: BK404404"}


def test_unsuccessful_payment_returns_bad_request(
    client, admin_headers, regular_package, make_booking, selection_for, gateway_payload
):
    booking = make_booking(package=regular_package, selection=selection_for(regular_package))

    response = _release(client, admin_headers, gateway_payload(booking.booking_number, payment_status="FAILED"))

    assert response.status_code == 400
    assert response.json() == {"error": "Payment status is not SUCCESS"}


# ---------------------
# SETTLEMENT
# ---------------------

def test_release_settles_booking(
    client, db, admin_headers, host, regular_package, make_booking, selection_for, gateway_payload
):
    booking = make_booking(package=regular_package, ticket_count=2, selection=selection_for(regular_package))

    response = _release(client, admin_headers, gateway_payload(booking.booking_number))

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Tickets released successfully (2 tickets created)",
        "bookingId": booking.id,
        "ticketCount": 2,
    }

    db.expire_all()
    assert booking.status == BookingStatus.CONFIRMED
    assert host.wallet_balance == Decimal("188.00")


def test_repeated_release_is_idempotent(
    client, db, admin_headers, host, regular_package, make_booking, selection_for, gateway_payload
):
    booking = make_booking(package=regular_package, ticket_count=2, selection=selection_for(regular_package))
    _release(client, admin_headers, gateway_payload(booking.booking_number))

    response = _release(client, admin_headers, gateway_payload(booking.booking_number))

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Booking is already confirmed and tickets exist"
    assert body["ticketCount"] == 2

    db.expire_all()
    assert host.wallet_balance == Decimal("188.00")
    assert db.execute(select(func.count(Ticket.id))).scalar_one() == 2


def test_cancelled_booking_returns_conflict(
    client, admin_headers, regular_package, make_booking, selection_for, gateway_payload
):
    booking = make_booking(
        package=regular_package,
        selection=selection_for(regular_package),
        status=BookingStatus.CANCELLED,
    )

    response = _release(client, admin_headers, gateway_payload(booking.booking_number))

    assert response.status_code == 409
    assert "error" in response.json()


def test_failure_mid_settlement_rolls_everything_back(
    client, db, admin_headers, host, event, regular_package, make_booking, selection_for, gateway_payload
):
    # a second admin makes the treasury account ambiguous
    db.add(User(email="ops@molle.app", name="Ops", role=UserRole.ADMIN, wallet_balance=Decimal("0")))
    db.commit()
    booking = make_booking(package=regular_package, ticket_count=2, selection=selection_for(regular_package))

    response = _release(client, admin_headers, gateway_payload(booking.booking_number))

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}

    db.expire_all()
    assert booking.status == BookingStatus.PENDING
    assert booking.ticket_data is not None
    assert host.wallet_balance == Decimal("0.00")
    assert event.sold_tickets == 0
    assert db.execute(select(func.count(Ticket.id))).scalar_one() == 0


def test_booking_status_reflects_settlement(
    client, admin_headers, regular_package, make_booking, selection_for, gateway_payload
):
    booking = make_booking(package=regular_package, ticket_count=2, selection=selection_for(regular_package))

    before = client.get(f"/bookings/{booking.id}/status").json()
    _release(client, admin_headers, gateway_payload(booking.booking_number))
    after = client.get(f"/bookings/{booking.id}/status").json()

    assert before["status"] == "PENDING"
    assert before["paymentStatus"] == "PENDING"
    assert before["ticketsCount"] == 0
    assert after["status"] == "CONFIRMED"
    assert after["paymentStatus"] == "COMPLETED"
    assert after["ticketsCount"] == 2
    assert after["bookingNumber"] == booking.booking_number


def test_booking_status_unknown_booking(client):
    response = client.get("/bookings/missing/status")

    assert response.status_code == 404
    assert response.json() == {"error": "Booking not found"}
