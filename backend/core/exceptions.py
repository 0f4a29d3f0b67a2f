import logging

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.errors import ReservationError

logger = logging.getLogger(__name__)


def _message_from(data) -> str:
    if isinstance(data, dict) and isinstance(data.get("detail"), str):
        return data["detail"]
    if isinstance(data, str):
        return data
    return "The request could not be completed."


def structured_exception_handler(exc, context):
    """Render every API error as ``{"success": false, "error": <code>, ...}``."""

    if isinstance(exc, ReservationError):
        return Response(exc.as_payload(), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.exception("Unhandled error in %s", view.__class__.__name__ if view else "view")
        return Response(
            {
                "success": False,
                "error": "internal_error",
                "message": "An unexpected error occurred.",
                "retryable": True,
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        code = "unauthenticated"
    elif isinstance(exc, exceptions.ValidationError):
        code = "validation_failed"
    elif isinstance(exc, exceptions.NotFound):
        code = "not_found"
    elif isinstance(exc, exceptions.PermissionDenied):
        code = "permission_denied"
    else:
        code = "request_error"

    payload = {
        "success": False,
        "error": code,
        "message": "The request is invalid."
        if code == "validation_failed"
        else _message_from(response.data),
        "retryable": False,
    }
    if code == "validation_failed":
        payload["details"] = response.data
    response.data = payload
    return response
