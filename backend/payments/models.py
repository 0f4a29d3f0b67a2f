from django.conf import settings
from django.db import models


class PaymentRecordQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise TypeError("Payment records are append-only; record a correction instead.")


class PaymentRecord(models.Model):
    """Append-only ledger entry for money settled at the payment gateway."""

    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    STATUSES = [
        (PAID, "Paid"),
        (FAILED, "Failed"),
        (REFUNDED, "Refunded"),
    ]

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payment_records",
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payment_records",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    amount_minor = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=10)
    status = models.CharField(max_length=12, choices=STATUSES)
    transaction_reference = models.CharField(max_length=100, db_index=True)
    channel = models.CharField(max_length=40, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    authorization_code = models.CharField(max_length=100, blank=True)
    gateway_payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = PaymentRecordQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.transaction_reference} {self.amount} {self.currency} ({self.status})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise TypeError("Payment records are append-only; record a correction instead.")
        super().save(*args, **kwargs)
