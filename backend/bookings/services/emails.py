from __future__ import annotations

import logging

from django.conf import settings
from django.core.mail import send_mail

from bookings.models import Booking

logger = logging.getLogger(__name__)


def send_booking_confirmation_email(*, booking: Booking) -> bool:
    """Email the booking owner a confirmation. Delivery failures are logged, not raised."""

    recipient = booking.owner.email
    if not recipient:
        return False

    hotel = booking.hotel_name or booking.hotel_id
    subject = f"Booking confirmed: {hotel}"
    body_lines = [
        f"Hi {booking.owner.first_name or recipient},",
        "",
        f"Your stay at {hotel} is confirmed.",
        f"Room: {booking.room_type} for {booking.guests} guest(s).",
        f"Dates: {booking.check_in:%B %d, %Y} to {booking.check_out:%B %d, %Y} ({booking.nights} night(s)).",
        f"Amount paid: {booking.total_amount} {booking.currency}.",
        f"Reference: {booking.transaction_reference}",
        "",
        "You can review or cancel this booking from your dashboard before the check-in date.",
    ]
    try:
        send_mail(
            subject,
            "\n".join(body_lines),
            settings.DEFAULT_FROM_EMAIL,
            [recipient],
            fail_silently=False,
        )
    except Exception:
        logger.exception("Failed to send confirmation email for booking %s", booking.pk)
        return False
    return True
