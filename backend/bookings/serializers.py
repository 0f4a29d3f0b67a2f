from decimal import Decimal

from rest_framework import serializers

from bookings.models import Booking
from bookings.services.checkout import BookingIntent


class BookingIntentSerializer(serializers.Serializer):
    """Shape of the checkout request. Owner identity never comes from here."""

    hotel_id = serializers.CharField(max_length=64)
    hotel_name = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    hotel_location = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    room_type = serializers.CharField(max_length=120, required=False, default="Standard Room")
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    guests = serializers.IntegerField(required=False, default=1)
    nights = serializers.IntegerField(required=False)
    price_per_night = serializers.DecimalField(max_digits=12, decimal_places=2)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2)
    service_fee = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal("0"))
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
    guest_details = serializers.DictField(required=False, default=dict)
    email = serializers.EmailField(required=False)

    def to_intent(self) -> BookingIntent:
        data = self.validated_data
        nights = data.get("nights")
        if nights is None:
            nights = (data["check_out"] - data["check_in"]).days
        return BookingIntent(
            hotel_id=data["hotel_id"],
            hotel_name=data["hotel_name"],
            hotel_location=data["hotel_location"],
            room_type=data["room_type"],
            check_in=data["check_in"],
            check_out=data["check_out"],
            guests=data["guests"],
            nights=nights,
            price_per_night=data["price_per_night"],
            subtotal=data["subtotal"],
            service_fee=data["service_fee"],
            total=data["total"],
            guest_details=data["guest_details"],
        )


class BookingSerializer(serializers.ModelSerializer):
    class Meta:
        model = Booking
        fields = [
            "id",
            "hotel_id",
            "hotel_name",
            "hotel_location",
            "room_type",
            "check_in",
            "check_out",
            "guests",
            "nights",
            "price_per_night",
            "subtotal",
            "service_fee",
            "total_amount",
            "quoted_total",
            "currency",
            "payment_status",
            "booking_status",
            "transaction_reference",
            "guest_details",
            "cancelled_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
