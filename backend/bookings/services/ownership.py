"""Read access to bookings, always scoped to the caller's identity."""

from __future__ import annotations

from django.db.models import QuerySet

from accounts.identity import Identity
from bookings.models import Booking
from core.errors import NotFound


def bookings_for(identity: Identity) -> QuerySet:
    return Booking.objects.owned_by(identity.user_id)


def list_for_user(identity: Identity) -> QuerySet:
    """All bookings owned by ``identity``, newest first."""

    return bookings_for(identity).order_by("-created_at", "-id")


def _coerce_booking_id(booking_id) -> int:
    if isinstance(booking_id, bool):
        raise NotFound()
    try:
        pk = int(str(booking_id).strip())
    except (TypeError, ValueError):
        raise NotFound() from None
    if pk <= 0:
        raise NotFound()
    return pk


def get_owned_booking(identity: Identity, booking_id) -> Booking:
    """Fetch one booking owned by ``identity``; malformed or foreign ids raise NotFound."""

    pk = _coerce_booking_id(booking_id)
    try:
        return bookings_for(identity).get(pk=pk)
    except Booking.DoesNotExist:
        raise NotFound() from None
