"""Farmer WebSocket consumer for dispatch outcome notifications."""

import logging
from typing import Dict, Any, Optional

from channels.db import database_sync_to_async

from .base import BaseConsumer

logger = logging.getLogger(__name__)


class FarmerConsumer(BaseConsumer):
    """
    WebSocket consumer for farmers.

    Receives transporter_assigned, offer_countered and all_declined events
    for the farmer's orders, and answers dispatch_status queries.
    """
    required_role = "farmer"

    async def on_connect(self):
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Farmer connected successfully",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "dispatch_status":
            await self._handle_dispatch_status(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    async def _handle_dispatch_status(self, data: Dict[str, Any]):
        order_id = data.get("orderId")
        if order_id is None:
            await self.send_error("dispatch_status requires orderId")
            return

        status = await self._get_dispatch_status(order_id)
        if status is None:
            await self.send_error("Order not found")
            return
        await self.send_success("dispatch_status", data=status)

    @database_sync_to_async
    def _get_dispatch_status(self, order_id) -> Optional[Dict[str, Any]]:
        from orders.models import Order
        from services.dispatch import get_dispatch_scheduler

        try:
            order = Order.objects.get(id=order_id, farmer_id=self.user_id)
        except (Order.DoesNotExist, ValueError, TypeError):
            return None

        dispatch = get_dispatch_scheduler().dispatch_status(order.id)
        return {
            "orderId": order.id,
            "orderStatus": order.status,
            "state": dispatch.state,
            "activeTier": dispatch.active_tier,
            "cycle": dispatch.cycle,
        }
