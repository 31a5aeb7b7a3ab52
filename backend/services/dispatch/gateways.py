"""
Notification Gateway interface.

The engine calls notify() for "new offer", "offer expiring" and similar
events. Delivery is best-effort: a failing gateway never rolls back or fails
a dispatch transition.
"""

import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class NotificationGateway:
    """Fire-and-forget delivery of dispatch events to one user."""

    def notify(self, recipient_id, event_type: str, payload: Dict[str, Any]) -> bool:
        raise NotImplementedError


class LoggingNotificationGateway(NotificationGateway):
    """Gateway that only logs; the test settings use it in place of Channels push."""

    def notify(self, recipient_id, event_type: str, payload: Dict[str, Any]) -> bool:
        logger.info("Notify user_%s: %s %s", recipient_id, event_type, payload)
        return True


_notification_gateway: Optional[NotificationGateway] = None


def get_notification_gateway() -> NotificationGateway:
    """Get the configured notification gateway (singleton)."""
    global _notification_gateway
    if _notification_gateway is None:
        gateway_path = getattr(
            settings,
            "TRANSPORT_NOTIFICATION_GATEWAY",
            "realtime.notifications.ChannelsNotificationGateway",
        )
        _notification_gateway = import_string(gateway_path)()
    return _notification_gateway
