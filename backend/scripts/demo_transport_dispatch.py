"""
Seed a farmer, three transporters and an order, then walk the order through
a tiered dispatch: the primary declines and the secondary accepts.

Expects the usual stack (database migrated, Redis for Celery timers).

    python scripts/demo_transport_dispatch.py
"""

import os
import sys
from decimal import Decimal
from pathlib import Path

import django

BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "dispatch_backend.settings")
django.setup()

from accounts.models import User  # noqa: E402
from orders.models import Order  # noqa: E402
from transporters.models import TransporterProfile  # noqa: E402
from services.dispatch import get_dispatch_scheduler  # noqa: E402


def ensure_user(username: str, role: str, phone: str, full_name: str = "") -> User:
    user, created = User.objects.get_or_create(
        username=username,
        defaults={
            "role": role,
            "phone_number": phone,
            "full_name": full_name,
            "email": f"{username}@example.com",
        },
    )
    if created:
        user.set_password("demo1234")
        user.save()
    return user


def ensure_transporter(username: str, phone: str, rating: str) -> User:
    user = ensure_user(username, "transporter", phone)
    TransporterProfile.objects.update_or_create(
        user=user,
        defaults={
            "vehicle_type": "Pickup truck",
            "status": "available",
            "rating": Decimal(rating),
        },
    )
    return user


def print_group(scheduler, order):
    status = scheduler.dispatch_status(order.id)
    print(f"  state={status.state} active_tier={status.active_tier} cycle={status.cycle}")
    for offer in status.offers:
        print(
            f"    [{offer.tier:<9}] {offer.transporter.username:<20} "
            f"status={offer.status:<8} active={offer.is_active} resolved_by={offer.resolved_by}"
        )


def main():
    farmer = ensure_user("demo_farmer", "farmer", "0240000000", "Demo Farmer")
    transporters = [
        ensure_transporter("demo_transporter_one", "0240000001", "4.90"),
        ensure_transporter("demo_transporter_two", "0240000002", "4.50"),
        ensure_transporter("demo_transporter_three", "0240000003", "4.10"),
    ]

    order = Order.objects.create(
        farmer=farmer,
        listing_reference="DEMO-1",
        listing_name="Maize (50 bags)",
        pickup_location="Techiman",
        delivery_location="Kumasi",
        proposed_transport_cost=Decimal("250.00"),
    )
    print(f"Created order #{order.id}")

    scheduler = get_dispatch_scheduler()
    offers = scheduler.create_dispatch(order.id, [t.id for t in transporters], cost=Decimal("250.00"))
    print(f"Dispatched to {len(offers)} tier(s):")
    print_group(scheduler, order)

    scheduler.decline(offers[0].offer_id, transporters[0].id, reason="Truck unavailable")
    print("Primary declined:")
    print_group(scheduler, order)

    scheduler.accept(offers[1].offer_id, transporters[1].id)
    print("Secondary accepted:")
    print_group(scheduler, order)

    order.refresh_from_db()
    print(f"Order #{order.id} status={order.status} transporter={order.transporter}")


if __name__ == "__main__":
    main()
