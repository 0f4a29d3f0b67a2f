"""
Error taxonomy shared by the checkout, verification and booking flows.

Every error carries a machine-readable ``code``, the HTTP status the API layer
answers with, and whether the caller may retry the same operation.
"""

from __future__ import annotations

from typing import Any


class ReservationError(Exception):
    """Base class for every error surfaced to API callers."""

    code = "reservation_error"
    status_code = 400
    retryable = False
    default_message = "The request could not be completed."

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class Unauthenticated(ReservationError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Authentication required. Please login first."


class ValidationFailed(ReservationError):
    code = "validation_failed"
    status_code = 400
    default_message = "The booking request is invalid."

    def __init__(self, rule: str, message: str | None = None):
        self.rule = rule
        super().__init__(message, details={"rule": rule})


class GatewayError(ReservationError):
    """The payment gateway could not be reached or answered with an error."""

    code = "gateway_error"
    status_code = 502
    retryable = True
    default_message = "The payment gateway is unavailable. Please try again."


class GatewayTimeout(GatewayError):
    code = "gateway_timeout"
    status_code = 504
    default_message = "The payment gateway did not respond in time."


class TransactionNotFound(GatewayError):
    code = "transaction_not_found"
    status_code = 404
    retryable = False
    default_message = "The payment gateway has no record of this transaction."


class PaymentInitializationFailed(ReservationError):
    code = "payment_initialization_failed"
    status_code = 502
    retryable = True
    default_message = "Payment initialization failed."


class MissingReference(ReservationError):
    code = "missing_reference"
    status_code = 400
    default_message = "A transaction reference is required."


class PaymentDeclined(ReservationError):
    """The gateway was reachable but the transaction did not succeed."""

    code = "payment_declined"
    status_code = 402
    default_message = "Payment did not complete. No booking was created."

    def __init__(self, gateway_status: str, message: str | None = None):
        self.gateway_status = gateway_status
        super().__init__(message, details={"gateway_status": gateway_status})


class VerificationPending(ReservationError):
    """The outcome at the gateway is not known yet; verify the same reference again."""

    code = "verification_pending"
    status_code = 503
    retryable = True
    default_message = "Payment confirmation is still pending. Please retry verification shortly."


class NotFound(ReservationError):
    code = "not_found"
    status_code = 404
    default_message = "Booking not found or access denied."


class AlreadyCancelled(ReservationError):
    code = "already_cancelled"
    status_code = 409
    default_message = "Booking is already cancelled."


class TooLateToCancel(ReservationError):
    code = "too_late_to_cancel"
    status_code = 409
    default_message = "Cannot cancel bookings that have already started or are in the past."


class MaterializationConflict(ReservationError):
    """Payment was captured at the gateway but the booking could not be recorded."""

    code = "materialization_conflict"
    status_code = 500
    retryable = True
    default_message = (
        "Your payment was received but the booking could not be recorded yet. "
        "Retry verification with the same reference."
    )
