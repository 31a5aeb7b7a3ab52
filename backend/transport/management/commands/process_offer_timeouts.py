from django.conf import settings
from django.core.management.base import BaseCommand

from services.dispatch import get_dispatch_scheduler


class Command(BaseCommand):
    help = "Expire transport offers that have waited too long and offer the order to the next tier."

    def add_arguments(self, parser):
        parser.add_argument(
            "--timeout",
            type=int,
            default=getattr(settings, "TRANSPORT_OFFER_TIMEOUT_SECONDS", 3600),
            help="Seconds a tier may hold an offer before it expires (default: TRANSPORT_OFFER_TIMEOUT_SECONDS).",
        )

    def handle(self, *args, **options):
        timeout = options["timeout"]
        expired_count, escalated_count = get_dispatch_scheduler().expire_stale_offers(timeout)

        self.stdout.write(
            self.style.SUCCESS(
                f"Expired {expired_count} offer(s); escalated {escalated_count} order(s) to the next tier."
            )
        )
