"""
Order state updates requested by the dispatch engine.

The order lifecycle belongs to the order flow; the engine only reports
outcomes through this service:
    - awaiting transport (a dispatch cycle started)
    - transporter assigned (an offer was accepted)
    - unfulfilled (every tier declined or timed out)
"""

import logging
from decimal import Decimal
from typing import Optional

from django.utils import timezone

from orders.models import Order

logger = logging.getLogger(__name__)


class OrderService:
    """Default Order Service backed by the local orders table."""

    def mark_awaiting_transport(self, order_id) -> None:
        updated = (
            Order.objects
            .filter(id=order_id)
            .exclude(status='transporter_assigned')
            .update(status='awaiting_transport')
        )
        if not updated:
            logger.warning("Order %s not moved to awaiting_transport", order_id)

    def mark_assigned(self, order_id, transporter_id, transport_cost: Optional[Decimal] = None) -> None:
        """Record the winning transporter. Assignment is write-once."""
        fields = {
            'status': 'transporter_assigned',
            'transporter_id': transporter_id,
            'assigned_at': timezone.now(),
        }
        if transport_cost is not None:
            fields['transport_cost'] = transport_cost

        updated = (
            Order.objects
            .filter(id=order_id, transporter__isnull=True)
            .exclude(status='transporter_assigned')
            .update(**fields)
        )
        if updated:
            logger.info("Order %s assigned to transporter %s", order_id, transporter_id)
        else:
            logger.warning("Order %s already assigned; ignoring transporter %s", order_id, transporter_id)

    def mark_unfulfilled(self, order_id) -> None:
        updated = (
            Order.objects
            .filter(id=order_id)
            .exclude(status='transporter_assigned')
            .update(status='unfulfilled')
        )
        if updated:
            logger.info("Order %s marked unfulfilled - no transporter accepted", order_id)
