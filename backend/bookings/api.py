import logging
from urllib.parse import urlencode

from django.conf import settings
from django.http import HttpResponseRedirect
from django.urls import reverse
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.identity import IdentityRequiredView
from bookings.serializers import BookingIntentSerializer, BookingSerializer
from bookings.services.checkout import initiate_checkout
from bookings.services.lifecycle import cancel_booking, get_booking
from bookings.services.materialization import verify_and_materialize
from bookings.services.ownership import list_for_user
from core.errors import ReservationError, ValidationFailed

logger = logging.getLogger(__name__)


def _callback_url(request) -> str:
    return settings.PAYSTACK_CALLBACK_URL or request.build_absolute_uri(reverse("payment-verify"))


def _booking_result_url(**params) -> str:
    base = f"{settings.FRONTEND_URL.rstrip('/')}{settings.BOOKING_RESULT_PATH}"
    return f"{base}?{urlencode(params)}"


class CheckoutInitializeView(IdentityRequiredView):
    """Open a gateway transaction for the caller's booking intent."""

    def post(self, request, *args, **kwargs):
        serializer = BookingIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payer_email = serializer.validated_data.get("email") or self.identity.email
        if not payer_email:
            raise ValidationFailed("payer_email_required", "An email address is required for payment.")

        session = initiate_checkout(
            identity=self.identity,
            intent=serializer.to_intent(),
            payer_email=payer_email,
            callback_url=_callback_url(request),
        )
        return Response(
            {
                "success": True,
                "authorization_url": session.authorization_url,
                "reference": session.reference,
            },
            status=status.HTTP_201_CREATED,
        )


class PaymentVerifyView(APIView):
    """
    Gateway callback. GET redirects the browser back to the booking page with
    ``success``/``error`` flags; POST answers with JSON for API clients.
    Trust comes from re-verifying with the gateway, not from the caller.
    """

    permission_classes: list = []
    authentication_classes: list = []

    def get(self, request, *args, **kwargs):
        reference = request.query_params.get("reference") or request.query_params.get("trxref")
        try:
            result = verify_and_materialize(reference)
        except ReservationError as exc:
            params = {"error": exc.code}
            if reference:
                params["ref"] = reference
            if exc.retryable:
                params["retry"] = "true"
            return HttpResponseRedirect(_booking_result_url(**params))
        return HttpResponseRedirect(
            _booking_result_url(success="true", ref=result.booking.transaction_reference)
        )

    def post(self, request, *args, **kwargs):
        data = request.data if isinstance(request.data, dict) else {}
        result = verify_and_materialize(data.get("reference"))
        return Response(
            {
                "success": True,
                "created": result.created,
                "booking": BookingSerializer(result.booking).data,
            },
            status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        )


class BookingListView(IdentityRequiredView):
    def get(self, request, *args, **kwargs):
        bookings = list_for_user(self.identity)
        return Response({"success": True, "bookings": BookingSerializer(bookings, many=True).data})


class BookingDetailView(IdentityRequiredView):
    def get(self, request, booking_id, *args, **kwargs):
        booking = get_booking(self.identity, booking_id)
        return Response({"success": True, "booking": BookingSerializer(booking).data})


class BookingCancelView(IdentityRequiredView):
    def post(self, request, booking_id, *args, **kwargs):
        booking = cancel_booking(self.identity, booking_id)
        return Response(
            {
                "success": True,
                "message": "Booking cancelled successfully",
                "booking": BookingSerializer(booking).data,
            }
        )
