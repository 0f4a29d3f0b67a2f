"""
Checkout initiation: turn a booking intent into a gateway transaction.

Nothing is persisted here. The intent and the owner's identity travel to the
verification step inside the gateway's metadata, so a checkout that is never
completed leaves no trace in the booking store.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.utils import timezone

from accounts.identity import Identity
from core.errors import GatewayError, PaymentInitializationFailed, ValidationFailed
from payments.gateway import get_gateway

logger = logging.getLogger(__name__)

METADATA_INTENT_KEY = "booking_intent"
METADATA_USER_KEY = "user_id"
METADATA_HOTEL_KEY = "hotel_id"

CENT = Decimal("0.01")


@dataclass(frozen=True)
class BookingIntent:
    """What the user wants to book and the price they were quoted."""

    hotel_id: str
    room_type: str
    check_in: date
    check_out: date
    guests: int
    nights: int
    price_per_night: Decimal
    subtotal: Decimal
    service_fee: Decimal
    total: Decimal
    hotel_name: str = ""
    hotel_location: str = ""
    guest_details: dict = field(default_factory=dict)

    def to_metadata(self) -> str:
        return json.dumps(
            {
                "hotel_id": self.hotel_id,
                "hotel_name": self.hotel_name,
                "hotel_location": self.hotel_location,
                "room_type": self.room_type,
                "check_in": self.check_in.isoformat(),
                "check_out": self.check_out.isoformat(),
                "guests": self.guests,
                "nights": self.nights,
                "price_per_night": str(self.price_per_night),
                "subtotal": str(self.subtotal),
                "service_fee": str(self.service_fee),
                "total": str(self.total),
                "guest_details": self.guest_details,
            },
            sort_keys=True,
        )

    @classmethod
    def from_metadata(cls, raw: str | dict) -> "BookingIntent":
        """Rebuild an intent from the gateway's metadata echo; raises ValueError if unusable."""

        try:
            data = json.loads(raw) if isinstance(raw, str) else raw
            return cls(
                hotel_id=str(data["hotel_id"]),
                hotel_name=data.get("hotel_name") or "",
                hotel_location=data.get("hotel_location") or "",
                room_type=data.get("room_type") or "Standard Room",
                check_in=date.fromisoformat(data["check_in"]),
                check_out=date.fromisoformat(data["check_out"]),
                guests=int(data["guests"]),
                nights=int(data["nights"]),
                price_per_night=Decimal(data["price_per_night"]),
                subtotal=Decimal(data["subtotal"]),
                service_fee=Decimal(data["service_fee"]),
                total=Decimal(data["total"]),
                guest_details=data.get("guest_details") or {},
            )
        except (KeyError, TypeError, InvalidOperation) as exc:
            raise ValueError(f"Booking intent metadata is unusable: {exc!r}") from exc


@dataclass(frozen=True)
class CheckoutSession:
    authorization_url: str
    reference: str


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount to gateway minor units without rounding."""

    scaled = amount * settings.PAYMENT_MINOR_UNIT_SCALE
    if scaled != scaled.to_integral_value():
        raise ValidationFailed(
            "amount_precision",
            f"Amount {amount} cannot be expressed in whole minor units.",
        )
    return int(scaled)


def from_minor_units(amount_minor: int) -> Decimal:
    return (Decimal(amount_minor) / settings.PAYMENT_MINOR_UNIT_SCALE).quantize(CENT)


def validate_intent(intent: BookingIntent, *, today: date | None = None) -> None:
    today = today or timezone.localdate()

    if intent.total <= 0:
        raise ValidationFailed("total_positive", "Total amount must be greater than zero.")
    if intent.check_in < today:
        raise ValidationFailed("check_in_not_past", "Check-in date cannot be in the past.")
    if intent.check_out <= intent.check_in:
        raise ValidationFailed("check_out_after_check_in", "Check-out date must be after check-in date.")
    if intent.guests < 1:
        raise ValidationFailed("guests_positive", "At least one guest is required.")
    if min(intent.price_per_night, intent.subtotal, intent.service_fee) < 0:
        raise ValidationFailed("amounts_non_negative", "Prices and fees cannot be negative.")
    if intent.nights != (intent.check_out - intent.check_in).days:
        raise ValidationFailed("nights_match_dates", "Number of nights does not match the selected dates.")
    if intent.subtotal != intent.price_per_night * intent.nights:
        raise ValidationFailed("subtotal_matches_nights", "Subtotal must equal the nightly price times nights.")
    if intent.total != intent.subtotal + intent.service_fee:
        raise ValidationFailed("total_matches_subtotal", "Total must equal subtotal plus service fee.")


def initiate_checkout(
    *,
    identity: Identity,
    intent: BookingIntent,
    payer_email: str,
    callback_url: str,
    gateway=None,
) -> CheckoutSession:
    """
    Validate the intent and open a gateway transaction for it.

    Validation runs before any network call. Gateway failures surface as
    :class:`PaymentInitializationFailed` and are not retried: a retry must
    start a fresh transaction.
    """

    validate_intent(intent)
    amount_minor = to_minor_units(intent.total)
    metadata = {
        METADATA_USER_KEY: str(identity.user_id),
        METADATA_HOTEL_KEY: intent.hotel_id,
        METADATA_INTENT_KEY: intent.to_metadata(),
    }

    gateway = gateway or get_gateway()
    try:
        transaction = gateway.initialize(
            email=payer_email,
            amount_minor=amount_minor,
            currency=settings.PAYMENT_CURRENCY,
            callback_url=callback_url,
            metadata=metadata,
        )
    except GatewayError as exc:
        logger.warning("Checkout initialization failed for user %s: %s", identity.user_id, exc.message)
        raise PaymentInitializationFailed(exc.message) from exc

    logger.info(
        "Checkout initiated for user %s at hotel %s (reference=%s, amount_minor=%s)",
        identity.user_id,
        intent.hotel_id,
        transaction.reference,
        amount_minor,
    )
    return CheckoutSession(
        authorization_url=transaction.authorization_url,
        reference=transaction.reference,
    )
