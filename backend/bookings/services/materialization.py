"""
Verify a gateway reference and turn a confirmed payment into a booking.

The reference arriving here is untrusted: it comes from a browser redirect
or a webhook. The gateway's verify call is the only source of truth for the
payment status and amount. A Booking and its PaymentRecord are written
together, exactly once per reference; the unique constraint on
``Booking.transaction_reference`` settles concurrent duplicate deliveries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, transaction

from bookings.models import Booking
from bookings.services.checkout import (
    METADATA_INTENT_KEY,
    METADATA_USER_KEY,
    BookingIntent,
    from_minor_units,
)
from bookings.services.emails import send_booking_confirmation_email
from core.errors import (
    GatewayError,
    GatewayTimeout,
    MaterializationConflict,
    MissingReference,
    PaymentDeclined,
    VerificationPending,
)
from payments.gateway import VerifiedTransaction, get_gateway
from payments.models import PaymentRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaterializationResult:
    booking: Booking
    created: bool


def _existing_booking(reference: str) -> Booking | None:
    return Booking.objects.filter(transaction_reference=reference).first()


def _confirmed_transaction(reference: str, gateway) -> VerifiedTransaction:
    try:
        verified = gateway.verify(reference)
    except GatewayTimeout as exc:
        logger.warning("Verification of %s timed out; outcome unknown", reference)
        raise VerificationPending() from exc

    if verified.reference != reference:
        raise GatewayError("Payment gateway answered for a different transaction reference.")
    if verified.is_pending:
        logger.info("Payment %s is still %s at the gateway", reference, verified.status)
        raise VerificationPending()
    if not verified.succeeded:
        logger.warning("Payment %s was not successful (status=%s)", reference, verified.status)
        raise PaymentDeclined(verified.status or "unknown")
    return verified


def _decode_owner_and_intent(reference: str, verified: VerifiedTransaction):
    try:
        intent = BookingIntent.from_metadata(verified.metadata[METADATA_INTENT_KEY])
        user_id = int(verified.metadata[METADATA_USER_KEY])
    except (KeyError, TypeError, ValueError) as exc:
        logger.critical(
            "Payment %s captured but its booking metadata is unusable: %s",
            reference,
            exc,
        )
        raise MaterializationConflict() from exc

    User = get_user_model()
    try:
        owner = User.objects.get(pk=user_id)
    except User.DoesNotExist as exc:
        logger.critical("Payment %s captured for unknown user %s", reference, user_id)
        raise MaterializationConflict() from exc
    return owner, intent


def _write_booking(reference: str, verified: VerifiedTransaction, owner, intent: BookingIntent) -> Booking:
    paid_amount = from_minor_units(verified.amount_minor)
    currency = verified.currency or settings.PAYMENT_CURRENCY

    if paid_amount != intent.total:
        logger.warning(
            "Payment %s settled %s %s but the quoted total was %s; recording the settled amount",
            reference,
            paid_amount,
            currency,
            intent.total,
        )
    if currency != settings.PAYMENT_CURRENCY:
        logger.warning("Payment %s settled in %s, expected %s", reference, currency, settings.PAYMENT_CURRENCY)

    with transaction.atomic():
        booking = Booking.objects.create(
            owner=owner,
            hotel_id=intent.hotel_id,
            hotel_name=intent.hotel_name,
            hotel_location=intent.hotel_location,
            room_type=intent.room_type,
            check_in=intent.check_in,
            check_out=intent.check_out,
            guests=intent.guests,
            nights=intent.nights,
            price_per_night=intent.price_per_night,
            subtotal=intent.subtotal,
            service_fee=intent.service_fee,
            total_amount=paid_amount,
            quoted_total=intent.total,
            currency=currency,
            payment_status=Booking.PAID,
            booking_status=Booking.CONFIRMED,
            transaction_reference=reference,
            guest_details=intent.guest_details,
        )
        PaymentRecord.objects.create(
            booking=booking,
            owner=owner,
            amount=paid_amount,
            amount_minor=verified.amount_minor,
            currency=currency,
            status=PaymentRecord.PAID,
            transaction_reference=reference,
            channel=verified.channel,
            paid_at=verified.paid_at,
            authorization_code=verified.authorization_code,
            gateway_payload=verified.raw,
        )
    return booking


def verify_and_materialize(reference: str | None, *, gateway=None) -> MaterializationResult:
    """
    Confirm ``reference`` with the gateway and make sure exactly one booking exists for it.

    Repeated or concurrent calls for the same successful reference return the
    same booking with ``created=False``. Nothing is written unless the gateway
    reports ``success``.
    """

    reference = reference.strip() if isinstance(reference, str) else ""
    if not reference:
        raise MissingReference()

    gateway = gateway or get_gateway()
    verified = _confirmed_transaction(reference, gateway)

    existing = _existing_booking(reference)
    if existing is not None:
        logger.info("Duplicate verification for %s; booking %s already exists", reference, existing.pk)
        return MaterializationResult(booking=existing, created=False)

    owner, intent = _decode_owner_and_intent(reference, verified)

    try:
        booking = _write_booking(reference, verified, owner, intent)
    except IntegrityError as exc:
        booking = Booking.objects.filter(transaction_reference=reference).first()
        if booking is not None:
            logger.info("Concurrent verification for %s lost the insert race; using booking %s", reference, booking.pk)
            return MaterializationResult(booking=booking, created=False)
        logger.critical("Payment %s captured but the booking insert was rejected: %s", reference, exc)
        raise MaterializationConflict() from exc
    except DatabaseError as exc:
        logger.critical("Payment %s captured but the booking could not be stored: %s", reference, exc)
        raise MaterializationConflict() from exc

    logger.info(
        "Booking %s materialized for user %s (reference=%s, total=%s %s)",
        booking.pk,
        owner.pk,
        reference,
        booking.total_amount,
        booking.currency,
    )
    transaction.on_commit(lambda: send_booking_confirmation_email(booking=booking))
    return MaterializationResult(booking=booking, created=True)
