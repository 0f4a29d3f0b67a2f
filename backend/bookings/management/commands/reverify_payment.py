from django.core.management.base import BaseCommand, CommandError

from bookings.services.materialization import verify_and_materialize
from core.errors import ReservationError


class Command(BaseCommand):
    help = "Re-run payment verification for references that did not turn into bookings."

    def add_arguments(self, parser):
        parser.add_argument("references", nargs="+", help="Gateway transaction references to verify.")

    def handle(self, *args, **options):
        failures = []
        for reference in options["references"]:
            try:
                result = verify_and_materialize(reference)
            except ReservationError as exc:
                failures.append(reference)
                retry_hint = " (retryable)" if exc.retryable else ""
                self.stderr.write(self.style.ERROR(f"{reference}: {exc.code}{retry_hint} {exc.message}"))
                continue

            state = "created" if result.created else "already recorded"
            self.stdout.write(
                self.style.SUCCESS(f"{reference}: booking {result.booking.pk} {state}")
            )

        if failures:
            raise CommandError(f"{len(failures)} reference(s) could not be materialized: {', '.join(failures)}")
