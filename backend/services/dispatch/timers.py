"""
Per-offer timeout timers backed by Celery countdown tasks.

Each tier activation schedules an expiry task for that offer id (and an
optional "expiring soon" warning before it). Timers are revoked when the
offer resolves; a timer that fires anyway finds the record resolved and
does nothing.
"""

import logging
from typing import Optional

from celery import current_app
from django.conf import settings

logger = logging.getLogger(__name__)


class CeleryOfferTimers:
    def __init__(self, timeout_seconds: Optional[int] = None, warning_seconds: Optional[int] = None):
        if timeout_seconds is None:
            timeout_seconds = getattr(settings, "TRANSPORT_OFFER_TIMEOUT_SECONDS", 3600)
        if warning_seconds is None:
            warning_seconds = getattr(settings, "TRANSPORT_OFFER_EXPIRY_WARNING_SECONDS", 0)
        self.timeout_seconds = timeout_seconds
        self.warning_seconds = warning_seconds

    def schedule(self, offer) -> Optional[str]:
        """Start the timeout for a freshly activated offer. Returns the task id."""
        from transport.tasks import expire_transport_offer_task, warn_expiring_transport_offer_task
        from .store import OfferStore

        offer_id = str(offer.offer_id)
        result = expire_transport_offer_task.apply_async((offer_id,), countdown=self.timeout_seconds)
        OfferStore().set_expiry_task(offer.offer_id, result.id)

        if 0 < self.warning_seconds < self.timeout_seconds:
            warn_expiring_transport_offer_task.apply_async(
                (offer_id,),
                countdown=self.timeout_seconds - self.warning_seconds,
            )

        logger.debug("Scheduled expiry for offer %s in %ss (task %s)", offer_id, self.timeout_seconds, result.id)
        return result.id

    def cancel(self, offer) -> None:
        """Revoke the pending expiry task, if any."""
        task_id = offer.expiry_task_id
        if not task_id:
            return
        try:
            current_app.control.revoke(task_id)
            logger.debug("Revoked expiry task %s for offer %s", task_id, offer.offer_id)
        except Exception:
            logger.exception("Failed to revoke expiry task %s for offer %s", task_id, offer.offer_id)
