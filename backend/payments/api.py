import json
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.services.materialization import verify_and_materialize
from core.errors import ReservationError
from payments.gateway import get_secret_key, signature_is_valid

logger = logging.getLogger(__name__)

CHARGE_SUCCESS = "charge.success"


class PaystackWebhookView(APIView):
    """Receive gateway events and route successful charges through verification."""

    permission_classes: list = []
    authentication_classes: list = []

    def post(self, request, *args, **kwargs):
        payload = request.body
        if not get_secret_key():
            logger.error("Payment webhook received but PAYSTACK_SECRET_KEY is not configured.")
            return Response(status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        if not signature_is_valid(payload, request.META.get("HTTP_X_PAYSTACK_SIGNATURE")):
            logger.warning("Invalid signature on payment webhook.")
            return Response(status=status.HTTP_400_BAD_REQUEST)

        try:
            event = json.loads(payload)
        except ValueError:
            logger.warning("Invalid payload received on payment webhook.")
            return Response(status=status.HTTP_400_BAD_REQUEST)

        if not isinstance(event, dict):
            logger.warning("Payment webhook body is not a JSON object.")
            return Response(status=status.HTTP_400_BAD_REQUEST)

        if event.get("event") != CHARGE_SUCCESS:
            return Response({"received": True})

        data = event.get("data")
        reference = data.get("reference") if isinstance(data, dict) else None
        try:
            result = verify_and_materialize(reference)
        except ReservationError as exc:
            if exc.retryable:
                return Response(exc.as_payload(), status=exc.status_code)
            logger.warning("Webhook for %s not materialized: %s", reference, exc.code)
            return Response({"received": True, "error": exc.code})

        return Response(
            {"received": True, "booking_id": result.booking.pk, "created": result.created}
        )
