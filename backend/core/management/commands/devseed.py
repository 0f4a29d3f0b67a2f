from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from accounts.identity import Identity
from accounts.models import User
from bookings.models import Booking
from bookings.services.checkout import BookingIntent, initiate_checkout
from bookings.services.materialization import verify_and_materialize
from payments.gateway import StubGateway

SEED_PASSWORD = "Innkeep123!"
DEMO_EMAIL = "guest@innkeep.test"
SUPERUSER_EMAIL = "admin@innkeep.test"
SUPERUSER_PASSWORD = "AdminInnkeep123!"

SEED_STAYS = [
    {
        "hotel_id": "lagos-marina-suites",
        "hotel_name": "Marina Suites",
        "hotel_location": "Lagos, Nigeria",
        "room_type": "Deluxe King",
        "starts_in_days": 14,
        "nights": 3,
        "guests": 2,
        "price_per_night": Decimal("30000.00"),
        "service_fee": Decimal("4500.00"),
    },
    {
        "hotel_id": "abuja-garden-hotel",
        "hotel_name": "Garden Hotel",
        "hotel_location": "Abuja, Nigeria",
        "room_type": "Standard Room",
        "starts_in_days": 30,
        "nights": 2,
        "guests": 1,
        "price_per_night": Decimal("18500.00"),
        "service_fee": Decimal("0.00"),
    },
]


class Command(BaseCommand):
    help = "Populate the local development database with a demo user and paid bookings."

    def handle(self, *args, **options):
        if not settings.DEBUG:
            raise CommandError("Refusing to seed data while DEBUG is False.")
        if settings.PAYSTACK_SECRET_KEY:
            raise CommandError("Refusing to seed while PAYSTACK_SECRET_KEY is configured.")

        self.stdout.write(self.style.MIGRATE_HEADING("Ensuring users"))
        guest = self._ensure_user(email=DEMO_EMAIL, first_name="Ada", last_name="Guest")
        self._ensure_superuser()

        self.stdout.write(self.style.MIGRATE_HEADING("Booking demo stays through the stub gateway"))
        gateway = StubGateway()
        identity = Identity(user_id=guest.pk, email=guest.email)
        today = timezone.localdate()
        for stay in SEED_STAYS:
            if Booking.objects.filter(owner=guest, hotel_id=stay["hotel_id"]).exists():
                self.stdout.write(self.style.NOTICE(f"Skipping {stay['hotel_name']}; already booked"))
                continue

            check_in = today + timedelta(days=stay["starts_in_days"])
            subtotal = stay["price_per_night"] * stay["nights"]
            intent = BookingIntent(
                hotel_id=stay["hotel_id"],
                hotel_name=stay["hotel_name"],
                hotel_location=stay["hotel_location"],
                room_type=stay["room_type"],
                check_in=check_in,
                check_out=check_in + timedelta(days=stay["nights"]),
                guests=stay["guests"],
                nights=stay["nights"],
                price_per_night=stay["price_per_night"],
                subtotal=subtotal,
                service_fee=stay["service_fee"],
                total=subtotal + stay["service_fee"],
                guest_details={"name": guest.full_name, "email": guest.email},
            )
            session = initiate_checkout(
                identity=identity,
                intent=intent,
                payer_email=guest.email,
                callback_url=f"{settings.FRONTEND_URL.rstrip('/')}{settings.BOOKING_RESULT_PATH}",
                gateway=gateway,
            )
            result = verify_and_materialize(session.reference, gateway=gateway)
            self.stdout.write(
                self.style.SUCCESS(
                    f"Booked {intent.hotel_name} ({result.booking.total_amount} {result.booking.currency}) "
                    f"ref={result.booking.transaction_reference}"
                )
            )

        self.stdout.write(self.style.SUCCESS("Development data ready."))
        self.stdout.write(f"  Demo login: {DEMO_EMAIL} / {SEED_PASSWORD}")
        self.stdout.write(f"  Admin login: {SUPERUSER_EMAIL} / {SUPERUSER_PASSWORD}")

    def _ensure_user(self, *, email: str, first_name: str, last_name: str) -> User:
        user, created = User.objects.get_or_create(
            email=email,
            defaults={"username": email, "first_name": first_name, "last_name": last_name},
        )
        if created:
            user.set_password(SEED_PASSWORD)
            user.save()
            self.stdout.write(self.style.NOTICE(f"Created {email}"))
        return user

    def _ensure_superuser(self) -> User:
        user, created = User.objects.get_or_create(
            email=SUPERUSER_EMAIL,
            defaults={
                "username": SUPERUSER_EMAIL,
                "first_name": "Admin",
                "last_name": "User",
                "is_staff": True,
                "is_superuser": True,
            },
        )
        if created:
            user.set_password(SUPERUSER_PASSWORD)
            user.save()
        elif not (user.is_staff and user.is_superuser):
            user.is_staff = True
            user.is_superuser = True
            user.save(update_fields=["is_staff", "is_superuser"])
        return user
