from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class BookingQuerySet(models.QuerySet):
    def owned_by(self, user_id: int):
        return self.filter(owner_id=user_id)


class Booking(models.Model):
    """A paid hotel reservation, created once per gateway transaction reference."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    PAYMENT_STATUSES = [
        (PENDING, "Pending"),
        (PAID, "Paid"),
        (FAILED, "Failed"),
    ]

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    BOOKING_STATUSES = [
        (CONFIRMED, "Confirmed"),
        (CANCELLED, "Cancelled"),
    ]

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    hotel_id = models.CharField(max_length=64)
    hotel_name = models.CharField(max_length=200, blank=True)
    hotel_location = models.CharField(max_length=200, blank=True)
    room_type = models.CharField(max_length=120, default="Standard Room")
    check_in = models.DateField()
    check_out = models.DateField()
    guests = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    nights = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price_per_night = models.DecimalField(max_digits=12, decimal_places=2)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    service_fee = models.DecimalField(max_digits=12, decimal_places=2)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    quoted_total = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=10)
    payment_status = models.CharField(max_length=12, choices=PAYMENT_STATUSES, default=PENDING)
    booking_status = models.CharField(max_length=12, choices=BOOKING_STATUSES, default=CONFIRMED)
    transaction_reference = models.CharField(max_length=100, unique=True)
    guest_details = models.JSONField(default=dict, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BookingQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["owner", "-created_at"], name="booking_owner_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(check_out__gt=models.F("check_in")),
                name="booking_check_out_after_check_in",
            ),
        ]

    def __str__(self):
        return f"{self.hotel_name or self.hotel_id} {self.check_in:%Y-%m-%d} ({self.transaction_reference})"

    @property
    def is_cancelled(self) -> bool:
        return self.booking_status == self.CANCELLED
