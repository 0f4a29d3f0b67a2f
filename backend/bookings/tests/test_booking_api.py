from datetime import timedelta

import pytest
from django.utils import timezone

from bookings.models import Booking
from bookings.services.materialization import verify_and_materialize
from core.errors import GatewayError, VerificationPending


def checkout_payload(**overrides):
    check_in = timezone.localdate() + timedelta(days=21)
    payload = {
        "hotel_id": "H1",
        "hotel_name": "Marina Suites",
        "hotel_location": "Lagos",
        "room_type": "Deluxe King",
        "check_in": check_in.isoformat(),
        "check_out": (check_in + timedelta(days=2)).isoformat(),
        "guests": 2,
        "price_per_night": "45000.00",
        "subtotal": "90000.00",
        "service_fee": "4500.00",
        "total": "94500.00",
        "guest_details": {"name": "Ada Obi"},
    }
    payload.update(overrides)
    return payload


@pytest.mark.django_db
def test_initialize_returns_authorization_url(api_client, user, gateway):
    api_client.force_authenticate(user)

    response = api_client.post("/api/payments/initialize/", checkout_payload(), format="json")

    assert response.status_code == 201
    assert response.json() == {
        "success": True,
        "authorization_url": "https://checkout.gateway.test/REF123",
        "reference": "REF123",
    }
    call = gateway.initialize_calls[0]
    assert call["email"] == user.email
    assert call["metadata"]["user_id"] == str(user.pk)
    assert call["callback_url"] == "http://testserver/api/payments/verify/"
    assert not Booking.objects.exists()


@pytest.mark.django_db
def test_initialize_ignores_owner_fields_in_body(api_client, user, other_user, gateway):
    api_client.force_authenticate(user)

    api_client.post(
        "/api/payments/initialize/",
        checkout_payload(user_id=other_user.pk, owner=other_user.pk),
        format="json",
    )

    assert gateway.initialize_calls[0]["metadata"]["user_id"] == str(user.pk)


@pytest.mark.django_db
def test_initialize_uses_configured_callback(settings, api_client, user, gateway):
    settings.PAYSTACK_CALLBACK_URL = "https://api.innkeep.test/api/payments/verify/"
    api_client.force_authenticate(user)

    api_client.post("/api/payments/initialize/", checkout_payload(email="payer@example.com"), format="json")

    call = gateway.initialize_calls[0]
    assert call["callback_url"] == "https://api.innkeep.test/api/payments/verify/"
    assert call["email"] == "payer@example.com"


@pytest.mark.django_db
def test_initialize_requires_login(api_client, gateway):
    response = api_client.post("/api/payments/initialize/", checkout_payload(), format="json")

    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"
    assert gateway.initialize_calls == []


@pytest.mark.django_db
def test_initialize_rejects_past_check_in(api_client, user, gateway):
    api_client.force_authenticate(user)
    yesterday = timezone.localdate() - timedelta(days=1)

    response = api_client.post(
        "/api/payments/initialize/",
        checkout_payload(
            check_in=yesterday.isoformat(),
            check_out=(yesterday + timedelta(days=2)).isoformat(),
        ),
        format="json",
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "validation_failed"
    assert body["details"] == {"rule": "check_in_not_past"}
    assert gateway.initialize_calls == []


@pytest.mark.django_db
def test_initialize_rejects_malformed_body(api_client, user, gateway):
    api_client.force_authenticate(user)

    response = api_client.post("/api/payments/initialize/", {"hotel_id": "H1"}, format="json")

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "validation_failed"
    assert "check_in" in body["details"]


@pytest.mark.django_db
def test_initialize_gateway_failure_is_retryable(api_client, user, gateway):
    gateway.initialize_error = GatewayError("Gateway down")
    api_client.force_authenticate(user)

    response = api_client.post("/api/payments/initialize/", checkout_payload(), format="json")

    assert response.status_code == 502
    body = response.json()
    assert body["error"] == "payment_initialization_failed"
    assert body["retryable"] is True


@pytest.mark.django_db
def test_verify_redirect_on_success(api_client, paid_reference):
    response = api_client.get("/api/payments/verify/", {"reference": paid_reference})

    assert response.status_code == 302
    assert response["Location"] == "https://app.test/booking?success=true&ref=REF123"
    assert Booking.objects.filter(transaction_reference=paid_reference).count() == 1


@pytest.mark.django_db
def test_verify_redirect_accepts_trxref(api_client, paid_reference):
    response = api_client.get("/api/payments/verify/", {"trxref": paid_reference})

    assert response["Location"].endswith("success=true&ref=REF123")


@pytest.mark.django_db
def test_verify_redirect_without_reference(api_client, gateway):
    response = api_client.get("/api/payments/verify/")

    assert response.status_code == 302
    assert response["Location"] == "https://app.test/booking?error=missing_reference"


@pytest.mark.django_db
def test_verify_redirect_flags_retryable_failures(api_client, gateway, paid_reference):
    gateway.verify_error = VerificationPending()

    response = api_client.get("/api/payments/verify/", {"reference": paid_reference})

    assert response["Location"] == (
        "https://app.test/booking?error=verification_pending&ref=REF123&retry=true"
    )


@pytest.mark.django_db
def test_verify_redirect_for_declined_payment(api_client, gateway, paid_reference):
    gateway.settle(paid_reference, status="failed")

    response = api_client.get("/api/payments/verify/", {"reference": paid_reference})

    assert response["Location"] == "https://app.test/booking?error=payment_declined&ref=REF123"
    assert not Booking.objects.exists()


@pytest.mark.django_db
def test_verify_post_is_idempotent(api_client, paid_reference):
    first = api_client.post("/api/payments/verify/", {"reference": paid_reference}, format="json")
    second = api_client.post("/api/payments/verify/", {"reference": paid_reference}, format="json")

    assert first.status_code == 201
    assert second.status_code == 200
    assert first.json()["created"] is True
    assert second.json()["created"] is False
    assert first.json()["booking"]["id"] == second.json()["booking"]["id"]
    assert first.json()["booking"]["total_amount"] == "94500.00"
    assert first.json()["booking"]["booking_status"] == "confirmed"


@pytest.mark.django_db
@pytest.mark.parametrize("body", [["REF123"], {"reference": ["REF123"]}, {}])
def test_verify_post_without_usable_reference(api_client, gateway, body):
    response = api_client.post("/api/payments/verify/", body, format="json")

    assert response.status_code == 400
    assert response.json()["error"] == "missing_reference"
    assert gateway.verify_calls == []


@pytest.mark.django_db
def test_verify_post_unknown_reference(api_client, gateway):
    response = api_client.post("/api/payments/verify/", {"reference": "UNKNOWN-REF"}, format="json")

    assert response.status_code == 404
    assert response.json()["error"] == "transaction_not_found"
    assert not Booking.objects.exists()


@pytest.mark.django_db
def test_list_returns_only_callers_bookings(api_client, user, other_user, make_booking):
    mine = make_booking(user)
    make_booking(other_user)
    api_client.force_authenticate(user)

    response = api_client.get("/api/bookings/")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [b["id"] for b in body["bookings"]] == [mine.pk]


@pytest.mark.django_db
def test_list_requires_login(api_client):
    response = api_client.get("/api/bookings/")

    assert response.status_code == 401


@pytest.mark.django_db
def test_detail_hides_foreign_bookings(api_client, user, other_user, make_booking):
    foreign = make_booking(other_user)
    api_client.force_authenticate(user)

    response = api_client.get(f"/api/bookings/{foreign.pk}/")

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": "not_found",
        "message": "Booking not found or access denied.",
        "retryable": False,
    }


@pytest.mark.django_db
def test_detail_with_malformed_id(api_client, user):
    api_client.force_authenticate(user)

    response = api_client.get("/api/bookings/not-a-number/")

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.django_db
def test_detail_returns_booking(api_client, user, make_booking):
    booking = make_booking(user)
    api_client.force_authenticate(user)

    response = api_client.get(f"/api/bookings/{booking.pk}/")

    assert response.status_code == 200
    assert response.json()["booking"]["transaction_reference"] == booking.transaction_reference


@pytest.mark.django_db
def test_cancel_then_cancel_again(api_client, user, make_booking):
    booking = make_booking(user)
    api_client.force_authenticate(user)

    first = api_client.post(f"/api/bookings/{booking.pk}/cancel/")
    second = api_client.post(f"/api/bookings/{booking.pk}/cancel/")

    assert first.status_code == 200
    assert first.json()["message"] == "Booking cancelled successfully"
    assert first.json()["booking"]["booking_status"] == "cancelled"
    assert second.status_code == 409
    assert second.json()["error"] == "already_cancelled"


@pytest.mark.django_db
def test_cancel_on_check_in_day(api_client, user, make_booking):
    booking = make_booking(user, check_in=timezone.localdate())
    api_client.force_authenticate(user)

    response = api_client.post(f"/api/bookings/{booking.pk}/cancel/")

    assert response.status_code == 409
    assert response.json()["error"] == "too_late_to_cancel"


@pytest.mark.django_db
def test_paid_booking_shows_up_in_list(api_client, user, paid_reference):
    booking = verify_and_materialize(paid_reference).booking
    api_client.force_authenticate(user)

    response = api_client.get("/api/bookings/")

    assert [b["id"] for b in response.json()["bookings"]] == [booking.pk]
