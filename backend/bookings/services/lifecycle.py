from __future__ import annotations

import logging
from datetime import date

from django.utils import timezone

from accounts.identity import Identity
from bookings.models import Booking
from bookings.services.ownership import get_owned_booking
from core.errors import AlreadyCancelled, TooLateToCancel

logger = logging.getLogger(__name__)


def get_booking(identity: Identity, booking_id) -> Booking:
    return get_owned_booking(identity, booking_id)


def cancel_booking(identity: Identity, booking_id, *, today: date | None = None) -> Booking:
    """
    Cancel a confirmed booking before its check-in date.

    Eligibility compares dates only. The status change is a conditional
    update on ``booking_status``, so of two concurrent cancellations exactly
    one succeeds. Payment records are left untouched and no refund is issued.
    """

    booking = get_owned_booking(identity, booking_id)
    if booking.is_cancelled:
        raise AlreadyCancelled()

    today = today or timezone.localdate()
    if booking.check_in <= today:
        raise TooLateToCancel()

    now = timezone.now()
    updated = Booking.objects.filter(
        pk=booking.pk,
        owner_id=identity.user_id,
        booking_status=Booking.CONFIRMED,
    ).update(booking_status=Booking.CANCELLED, cancelled_at=now, updated_at=now)
    if updated == 0:
        raise AlreadyCancelled()

    booking.refresh_from_db()
    logger.info("Booking %s cancelled by user %s", booking.pk, identity.user_id)
    return booking
