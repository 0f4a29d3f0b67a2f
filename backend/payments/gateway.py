"""
Client adapter for the payment gateway's transaction API.

The rest of the code only depends on :func:`get_gateway` and the two
operations every gateway object exposes:

* ``initialize(...)`` -> :class:`InitializedTransaction`
* ``verify(reference)`` -> :class:`VerifiedTransaction`

Both raise :class:`core.errors.GatewayError` (or a subclass) when the gateway
cannot be reached or rejects the call. ``verify`` is a GET and is retried at
the connection level; ``initialize`` is never retried here, since a second
POST would open a second transaction.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from urllib.parse import quote, urlencode
from uuid import uuid4

import requests
from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from requests.adapters import HTTPAdapter
from urllib3.exceptions import ReadTimeoutError
from urllib3.util.retry import Retry

from core.errors import GatewayError, GatewayTimeout, TransactionNotFound

logger = logging.getLogger(__name__)

SUCCESS = "success"
PENDING_STATUSES = frozenset({"ongoing", "pending", "processing", "queued"})

STUB_CACHE_PREFIX = "paystack-stub:"
STUB_TTL_SECONDS = 60 * 60 * 24


@dataclass(frozen=True)
class InitializedTransaction:
    authorization_url: str
    reference: str
    access_code: str = ""


@dataclass(frozen=True)
class VerifiedTransaction:
    reference: str
    status: str
    amount_minor: int
    currency: str
    channel: str = ""
    paid_at: Optional[datetime] = None
    authorization_code: str = ""
    metadata: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCESS

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES


def _decode_metadata(value: Any) -> dict:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value:
        try:
            decoded = json.loads(value)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def _parse_paid_at(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    return parse_datetime(value)


def _is_read_timeout(exc: requests.ConnectionError) -> bool:
    reason = getattr(exc.args[0], "reason", None) if exc.args else None
    return isinstance(reason, ReadTimeoutError)


class PaystackGateway:
    """Talks to a Paystack-compatible ``/transaction`` API over HTTPS."""

    def __init__(
        self,
        *,
        secret_key: str,
        base_url: str,
        timeout: float,
        verify_retries: int = 0,
        session: requests.Session | None = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or self._build_session(verify_retries)

    @classmethod
    def from_settings(cls) -> "PaystackGateway":
        secret_key = get_secret_key()
        if not secret_key:
            raise ImproperlyConfigured("PAYSTACK_SECRET_KEY is not configured.")
        return cls(
            secret_key=secret_key,
            base_url=settings.PAYSTACK_BASE_URL,
            timeout=settings.PAYSTACK_TIMEOUT_SECONDS,
            verify_retries=settings.PAYSTACK_VERIFY_RETRIES,
        )

    @staticmethod
    def _build_session(verify_retries: int) -> requests.Session:
        retry = Retry(
            total=verify_retries,
            allowed_methods=frozenset({"GET"}),
            status_forcelist=(502, 503, 504),
            backoff_factor=0.2,
            raise_on_status=False,
        )
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def _request(self, method: str, path: str, payload: dict | None = None) -> tuple[int, dict]:
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise GatewayTimeout() from exc
        except requests.ConnectionError as exc:
            if _is_read_timeout(exc):
                raise GatewayTimeout() from exc
            logger.error("Payment gateway request %s %s failed: %s", method, path, exc)
            raise GatewayError(f"Payment gateway request failed: {exc}") from exc
        except requests.RequestException as exc:
            logger.error("Payment gateway request %s %s failed: %s", method, path, exc)
            raise GatewayError(f"Payment gateway request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise GatewayError("Invalid JSON response from the payment gateway.") from exc
        if not isinstance(body, dict):
            raise GatewayError("Unexpected response from the payment gateway.")
        return response.status_code, body

    def initialize(
        self,
        *,
        email: str,
        amount_minor: int,
        currency: str,
        callback_url: str,
        metadata: dict,
    ) -> InitializedTransaction:
        status_code, body = self._request(
            "POST",
            "/transaction/initialize",
            {
                "email": email,
                "amount": amount_minor,
                "currency": currency,
                "callback_url": callback_url,
                "metadata": metadata,
            },
        )
        if status_code >= 400 or not body.get("status"):
            message = body.get("message") or "Payment initialization failed."
            logger.error("Payment gateway rejected initialization (%s): %s", status_code, message)
            raise GatewayError(message, details={"http_status": status_code})

        data = body.get("data") or {}
        try:
            return InitializedTransaction(
                authorization_url=data["authorization_url"],
                reference=data["reference"],
                access_code=data.get("access_code") or "",
            )
        except KeyError as exc:
            raise GatewayError(f"Payment gateway response is missing {exc.args[0]}.") from exc

    def verify(self, reference: str) -> VerifiedTransaction:
        status_code, body = self._request("GET", f"/transaction/verify/{quote(reference, safe='')}")
        if status_code in (400, 404) and not body.get("status"):
            raise TransactionNotFound(body.get("message") or None)
        if status_code >= 400 or not body.get("status"):
            message = body.get("message") or "Payment verification failed."
            logger.error("Payment gateway rejected verification of %s (%s): %s", reference, status_code, message)
            raise GatewayError(message, details={"http_status": status_code})

        data = body.get("data") or {}
        try:
            amount_minor = int(data["amount"])
        except (KeyError, TypeError, ValueError) as exc:
            raise GatewayError("Payment gateway response has no usable amount.") from exc

        authorization = data.get("authorization") or {}
        return VerifiedTransaction(
            reference=data.get("reference") or reference,
            status=(data.get("status") or "").lower(),
            amount_minor=amount_minor,
            currency=(data.get("currency") or "").upper(),
            channel=data.get("channel") or "",
            paid_at=_parse_paid_at(data.get("paid_at") or data.get("paidAt")),
            authorization_code=authorization.get("authorization_code") or "",
            metadata=_decode_metadata(data.get("metadata")),
            raw=data,
        )


def build_preview_url(*, reference: str, amount_minor: int) -> str:
    query = urlencode({"reference": reference, "amount": amount_minor})
    return f"{settings.FRONTEND_URL.rstrip('/')}/payments/preview?{query}"


class StubGateway:
    """
    Lightweight stand-in for the real gateway in tests and local development.

    Initialized transactions are parked in the Django cache and report
    ``success`` when verified, so the verify -> booking flow behaves as if the
    payer completed checkout.
    """

    def initialize(
        self,
        *,
        email: str,
        amount_minor: int,
        currency: str,
        callback_url: str,
        metadata: dict,
    ) -> InitializedTransaction:
        reference = f"stub_{uuid4().hex}"
        cache.set(
            f"{STUB_CACHE_PREFIX}{reference}",
            {
                "email": email,
                "amount_minor": amount_minor,
                "currency": currency,
                "callback_url": callback_url,
                "metadata": metadata,
            },
            STUB_TTL_SECONDS,
        )
        return InitializedTransaction(
            authorization_url=build_preview_url(reference=reference, amount_minor=amount_minor),
            reference=reference,
            access_code=f"stub_access_{uuid4().hex[:12]}",
        )

    def verify(self, reference: str) -> VerifiedTransaction:
        pending = cache.get(f"{STUB_CACHE_PREFIX}{reference}")
        if pending is None:
            raise TransactionNotFound()
        return VerifiedTransaction(
            reference=reference,
            status=SUCCESS,
            amount_minor=pending["amount_minor"],
            currency=pending["currency"],
            channel="card",
            paid_at=timezone.now(),
            authorization_code=f"AUTH_{reference}",
            metadata=pending["metadata"],
            raw={"reference": reference, "status": SUCCESS, "amount": pending["amount_minor"]},
        )


def get_secret_key() -> Optional[str]:
    key = getattr(settings, "PAYSTACK_SECRET_KEY", "")
    return key or None


def get_gateway():
    """
    Return the live gateway whenever a secret key is configured.

    The stub reports every transaction it issued as paid, so it is only
    handed out when explicitly enabled on a DEBUG deployment without a key.
    """

    if get_secret_key() is not None:
        return PaystackGateway.from_settings()
    if getattr(settings, "PAYSTACK_USE_STUB", False) and settings.DEBUG:
        return StubGateway()
    raise ImproperlyConfigured(
        "No payment gateway available: set PAYSTACK_SECRET_KEY, or PAYSTACK_USE_STUB with DEBUG for local use."
    )


def signature_is_valid(payload: bytes, signature: str | None) -> bool:
    """Check the HMAC-SHA512 signature the gateway attaches to webhook bodies."""

    secret_key = get_secret_key()
    if not secret_key or not signature:
        return False
    expected = hmac.new(secret_key.encode("utf-8"), payload, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature)
