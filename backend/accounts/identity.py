"""
Access guard for booking operations.

Views resolve the caller's identity exactly once, from the authenticated
session or bearer token, and pass the resulting :class:`Identity` into the
checkout and booking services. Identity values found in request bodies are
never consulted.
"""

from __future__ import annotations

from dataclasses import dataclass

from rest_framework.views import APIView

from core.errors import Unauthenticated


@dataclass(frozen=True)
class Identity:
    user_id: int
    email: str


def require_identity(request) -> Identity:
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        raise Unauthenticated()
    return Identity(user_id=user.pk, email=user.email)


class IdentityRequiredView(APIView):
    """Base view that rejects anonymous callers before any handler runs."""

    identity: Identity | None = None

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self.identity = require_identity(request)
