"""Transporter WebSocket consumer for offer notifications and availability."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer
from transporters.models import TransporterProfile

logger = logging.getLogger(__name__)


class TransporterConsumer(BaseConsumer):
    """
    WebSocket consumer for transporters.

    Handles:
        - Offer notifications (new_offer, offer_expiring, offer_expired, offer_withdrawn)
        - Availability changes (available/busy/offline), which feed candidate ranking
    """
    required_role = "transporter"

    async def on_connect(self):
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Transporter connected successfully",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle transporter-specific messages."""
        if msg_type == "status_update":
            await self._handle_status_update(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_status_update(self, data: Dict[str, Any]):
        status = data.get("status")
        valid = [choice for choice, _ in TransporterProfile.STATUS_CHOICES]
        if status not in valid:
            await self.send_error(f"Invalid status. Must be one of: {', '.join(valid)}")
            return

        if not await self._update_status_db(status):
            await self.send_error("Transporter profile not found")
            return

        logger.info("Transporter %s is now %s", self.user_id, status)
        await self.send_success("status_updated", status=status)

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _update_status_db(self, status: str) -> bool:
        return bool(TransporterProfile.objects.filter(user_id=self.user_id).update(status=status))
