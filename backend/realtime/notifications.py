"""
Channels implementation of the dispatch NotificationGateway.

Every event goes to the recipient's personal group ``user_<id>``, which both
the transporter and the farmer consumers join on connect. The consumer
forwards it to the client as ``{"type": <event_type>, "data": <payload>}``.
"""

import logging
from typing import Any, Dict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from services.dispatch.gateways import NotificationGateway

logger = logging.getLogger(__name__)

TRANSPORT_EVENT = "transport.event"


def user_group(user_id) -> str:
    return f"user_{user_id}"


class ChannelsNotificationGateway(NotificationGateway):
    """Push dispatch events over the Channels layer."""

    def notify(self, recipient_id, event_type: str, payload: Dict[str, Any]) -> bool:
        """
        Send an event to one user.

        Args:
            recipient_id: Target user's ID
            event_type: new_offer, offer_expired, transporter_assigned, ...
            payload: JSON-serializable event data

        Returns:
            True if handed to the channel layer, False otherwise
        """
        if not recipient_id:
            return False

        channel_layer = get_channel_layer()
        if channel_layer is None:
            logger.warning("No channel layer configured; dropping %s for user_%s", event_type, recipient_id)
            return False

        message = {
            "type": TRANSPORT_EVENT,
            "event": event_type,
            "data": payload,
        }
        logger.debug("WS -> user_%s: %s", recipient_id, message)
        async_to_sync(channel_layer.group_send)(user_group(recipient_id), message)
        return True
