import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from django.db import connection

from bookings.models import Booking
from bookings.services import materialization
from bookings.services.materialization import verify_and_materialize
from core.errors import (
    GatewayError,
    GatewayTimeout,
    MaterializationConflict,
    MissingReference,
    PaymentDeclined,
    TransactionNotFound,
    VerificationPending,
)
from payments.gateway import VerifiedTransaction
from payments.models import PaymentRecord


@pytest.mark.django_db
def test_successful_payment_creates_exactly_one_booking(paid_reference, user, intent):
    result = verify_and_materialize(paid_reference)

    assert result.created is True
    booking = result.booking
    assert booking.owner == user
    assert booking.transaction_reference == "REF123"
    assert booking.total_amount == Decimal("94500.00")
    assert booking.quoted_total == Decimal("94500.00")
    assert booking.booking_status == Booking.CONFIRMED
    assert booking.payment_status == Booking.PAID
    assert booking.check_in == intent.check_in
    assert booking.check_out == intent.check_out
    assert booking.nights == 2
    assert booking.guest_details == {"name": "Ada Obi"}
    assert PaymentRecord.objects.filter(booking=booking, amount=Decimal("94500.00")).count() == 1


@pytest.mark.django_db
def test_second_verification_returns_same_booking(paid_reference):
    first = verify_and_materialize(paid_reference)
    second = verify_and_materialize(paid_reference)

    assert second.created is False
    assert second.booking.pk == first.booking.pk
    assert Booking.objects.count() == 1
    assert PaymentRecord.objects.count() == 1


@pytest.mark.django_db
def test_lost_insert_race_returns_the_winning_booking(monkeypatch, paid_reference):
    winner = verify_and_materialize(paid_reference).booking
    # A concurrent caller that checked before the winner committed.
    monkeypatch.setattr(materialization, "_existing_booking", lambda reference: None)

    result = verify_and_materialize(paid_reference)

    assert result.created is False
    assert result.booking.pk == winner.pk
    assert Booking.objects.count() == 1
    assert PaymentRecord.objects.count() == 1


@pytest.mark.django_db(transaction=True)
def test_concurrent_deliveries_converge_on_one_booking(monkeypatch, paid_reference):
    # Both workers pass the lookup before either inserts, so the unique
    # constraint on transaction_reference decides the winner.
    lookup = materialization._existing_booking
    both_checked = threading.Barrier(2)

    def racing_lookup(reference):
        found = lookup(reference)
        both_checked.wait(timeout=10)
        return found

    monkeypatch.setattr(materialization, "_existing_booking", racing_lookup)

    def deliver():
        try:
            return verify_and_materialize(paid_reference)
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = [future.result(timeout=30) for future in [pool.submit(deliver) for _ in range(2)]]

    assert sorted(result.created for result in results) == [False, True]
    assert results[0].booking.pk == results[1].booking.pk
    assert Booking.objects.filter(transaction_reference=paid_reference).count() == 1
    assert PaymentRecord.objects.filter(transaction_reference=paid_reference).count() == 1


@pytest.mark.django_db
def test_unknown_reference_creates_nothing(gateway):
    with pytest.raises(TransactionNotFound):
        verify_and_materialize("UNKNOWN-REF")

    assert not Booking.objects.exists()


@pytest.mark.django_db
@pytest.mark.parametrize("reference", [None, "", "   ", 12345, ["REF123"]])
def test_missing_reference_is_rejected_before_gateway(gateway, reference):
    with pytest.raises(MissingReference):
        verify_and_materialize(reference)

    assert gateway.verify_calls == []


@pytest.mark.django_db
@pytest.mark.parametrize("status", ["failed", "abandoned", "reversed"])
def test_declined_payment_creates_nothing(gateway, paid_reference, status):
    gateway.settle(paid_reference, status=status)

    with pytest.raises(PaymentDeclined) as excinfo:
        verify_and_materialize(paid_reference)

    assert excinfo.value.gateway_status == status
    assert excinfo.value.retryable is False
    assert not Booking.objects.exists()
    assert not PaymentRecord.objects.exists()


@pytest.mark.django_db
def test_pending_payment_can_be_verified_again_later(gateway, paid_reference):
    gateway.settle(paid_reference, status="ongoing")

    with pytest.raises(VerificationPending):
        verify_and_materialize(paid_reference)
    assert not Booking.objects.exists()

    gateway.settle(paid_reference, status="success")
    assert verify_and_materialize(paid_reference).created is True


@pytest.mark.django_db
def test_gateway_timeout_leaves_outcome_pending(gateway, paid_reference):
    gateway.verify_error = GatewayTimeout()

    with pytest.raises(VerificationPending) as excinfo:
        verify_and_materialize(paid_reference)

    assert excinfo.value.retryable is True
    assert not Booking.objects.exists()


@pytest.mark.django_db
def test_gateway_outage_propagates_as_retryable(gateway, paid_reference):
    gateway.verify_error = GatewayError()

    with pytest.raises(GatewayError) as excinfo:
        verify_and_materialize(paid_reference)

    assert excinfo.value.retryable is True


@pytest.mark.django_db
def test_answer_for_another_reference_is_rejected(gateway, paid_reference):
    gateway.settle(paid_reference, reference="SOMETHING-ELSE")

    with pytest.raises(GatewayError) as excinfo:
        verify_and_materialize(paid_reference)

    assert "different transaction reference" in excinfo.value.message
    assert excinfo.value.retryable is True
    assert not Booking.objects.exists()


@pytest.mark.django_db
def test_settled_amount_wins_over_quote(caplog, gateway, paid_reference):
    gateway.settle(paid_reference, amount_minor=9000000)

    with caplog.at_level(logging.WARNING, logger="bookings.services.materialization"):
        booking = verify_and_materialize(paid_reference).booking

    assert booking.total_amount == Decimal("90000.00")
    assert booking.quoted_total == Decimal("94500.00")
    assert PaymentRecord.objects.get(booking=booking).amount == Decimal("90000.00")
    assert "quoted total" in caplog.text


@pytest.mark.django_db
def test_unusable_metadata_is_a_logged_conflict(caplog, gateway, user):
    gateway.transactions["BROKEN"] = VerifiedTransaction(
        reference="BROKEN",
        status="success",
        amount_minor=9450000,
        currency="NGN",
        metadata={"user_id": str(user.pk)},
    )

    with caplog.at_level(logging.CRITICAL, logger="bookings.services.materialization"):
        with pytest.raises(MaterializationConflict) as excinfo:
            verify_and_materialize("BROKEN")

    assert excinfo.value.retryable is True
    assert any(record.levelno == logging.CRITICAL for record in caplog.records)
    assert not Booking.objects.exists()


@pytest.mark.django_db
def test_payment_for_unknown_user_is_a_conflict(gateway, paid_reference):
    metadata = dict(gateway.transactions[paid_reference].metadata, user_id="999999")
    gateway.settle(paid_reference, metadata=metadata)

    with pytest.raises(MaterializationConflict):
        verify_and_materialize(paid_reference)


@pytest.mark.django_db
def test_confirmation_email_sent_once_after_commit(
    django_capture_on_commit_callbacks, mailoutbox, paid_reference
):
    with django_capture_on_commit_callbacks(execute=True):
        verify_and_materialize(paid_reference)
    with django_capture_on_commit_callbacks(execute=True):
        verify_and_materialize(paid_reference)

    assert len(mailoutbox) == 1
    message = mailoutbox[0]
    assert message.to == ["ada@example.com"]
    assert message.subject == "Booking confirmed: Marina Suites"
    assert "REF123" in message.body
    assert "94500.00 NGN" in message.body


@pytest.mark.django_db
def test_email_failure_does_not_undo_booking(
    monkeypatch, caplog, django_capture_on_commit_callbacks, paid_reference
):
    def broken_send_mail(*args, **kwargs):
        raise ConnectionRefusedError("smtp down")

    monkeypatch.setattr("bookings.services.emails.send_mail", broken_send_mail)

    with django_capture_on_commit_callbacks(execute=True):
        result = verify_and_materialize(paid_reference)

    assert Booking.objects.filter(pk=result.booking.pk).exists()
    assert "Failed to send confirmation email" in caplog.text
