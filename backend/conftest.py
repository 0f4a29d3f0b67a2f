from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.identity import Identity
from bookings.models import Booking
from bookings.services import checkout, materialization
from bookings.services.checkout import BookingIntent
from core.errors import TransactionNotFound
from payments.gateway import InitializedTransaction, VerifiedTransaction

User = get_user_model()


class FakeGateway:
    """In-memory gateway that records calls and answers ``verify`` from ``transactions``."""

    def __init__(self):
        self.transactions = {}
        self.initialize_calls = []
        self.verify_calls = []
        self.next_reference = "REF123"
        self.initialize_error = None
        self.verify_error = None

    def initialize(self, **kwargs):
        self.initialize_calls.append(kwargs)
        if self.initialize_error is not None:
            raise self.initialize_error
        reference = self.next_reference
        self.transactions[reference] = VerifiedTransaction(
            reference=reference,
            status="success",
            amount_minor=kwargs["amount_minor"],
            currency=kwargs["currency"],
            channel="card",
            paid_at=timezone.now(),
            authorization_code=f"AUTH_{reference}",
            metadata=kwargs["metadata"],
            raw={"reference": reference, "amount": kwargs["amount_minor"]},
        )
        return InitializedTransaction(
            authorization_url=f"https://checkout.gateway.test/{reference}",
            reference=reference,
        )

    def verify(self, reference):
        self.verify_calls.append(reference)
        if self.verify_error is not None:
            raise self.verify_error
        try:
            return self.transactions[reference]
        except KeyError:
            raise TransactionNotFound() from None

    def settle(self, ref, /, **changes):
        self.transactions[ref] = replace(self.transactions[ref], **changes)


@pytest.fixture
def gateway(monkeypatch):
    fake = FakeGateway()
    monkeypatch.setattr(checkout, "get_gateway", lambda: fake)
    monkeypatch.setattr(materialization, "get_gateway", lambda: fake)
    return fake


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user(db):
    return User.objects.create_user(
        username="ada@example.com",
        email="ada@example.com",
        password="examplepass",
        first_name="Ada",
        last_name="Obi",
    )


@pytest.fixture
def other_user(db):
    return User.objects.create_user(
        username="bola@example.com",
        email="bola@example.com",
        password="examplepass",
        first_name="Bola",
    )


@pytest.fixture
def identity(user):
    return Identity(user_id=user.pk, email=user.email)


@pytest.fixture
def intent():
    check_in = timezone.localdate() + timedelta(days=30)
    return BookingIntent(
        hotel_id="H1",
        hotel_name="Marina Suites",
        hotel_location="Lagos",
        room_type="Deluxe King",
        check_in=check_in,
        check_out=check_in + timedelta(days=2),
        guests=2,
        nights=2,
        price_per_night=Decimal("45000.00"),
        subtotal=Decimal("90000.00"),
        service_fee=Decimal("4500.00"),
        total=Decimal("94500.00"),
        guest_details={"name": "Ada Obi"},
    )


@pytest.fixture
def paid_reference(gateway, identity, intent):
    """A reference the gateway reports as successfully paid for ``intent``."""

    session = checkout.initiate_checkout(
        identity=identity,
        intent=intent,
        payer_email=identity.email,
        callback_url="https://api.test/api/payments/verify/",
    )
    return session.reference


@pytest.fixture
def make_booking(db):
    counter = {"n": 0}

    def _make(owner, **overrides):
        counter["n"] += 1
        check_in = overrides.pop("check_in", timezone.localdate() + timedelta(days=10))
        fields = {
            "owner": owner,
            "hotel_id": "H1",
            "hotel_name": "Marina Suites",
            "check_in": check_in,
            "check_out": check_in + timedelta(days=2),
            "guests": 1,
            "nights": 2,
            "price_per_night": Decimal("45000.00"),
            "subtotal": Decimal("90000.00"),
            "service_fee": Decimal("4500.00"),
            "total_amount": Decimal("94500.00"),
            "quoted_total": Decimal("94500.00"),
            "currency": "NGN",
            "payment_status": Booking.PAID,
            "booking_status": Booking.CONFIRMED,
            "transaction_reference": f"seed-ref-{counter['n']}",
        }
        fields.update(overrides)
        return Booking.objects.create(**fields)

    return _make
