"""Celery tasks for transport offer timers."""

from celery import shared_task
from django.conf import settings
import logging

logger = logging.getLogger(__name__)


@shared_task
def expire_transport_offer_task(offer_id: str):
    """
    Celery task to expire a transport offer after its tier timeout.
    
    This task is scheduled when a tier is activated. If the transporter
    hasn't responded, the offer is declined as "timeout" and the next
    tier is offered. Already-resolved offers are left alone.
    """
    from services.dispatch import get_dispatch_scheduler

    try:
        offer = get_dispatch_scheduler().expire(offer_id)
        if offer is None:
            logger.info("Offer %s already resolved or not active; nothing to expire", offer_id)
        else:
            logger.info("Expired transport offer %s for order %s", offer_id, offer.order_id)
        return offer is not None
    except Exception:
        logger.exception("Error expiring transport offer %s", offer_id)
        raise


@shared_task
def warn_expiring_transport_offer_task(offer_id: str):
    """Remind the active transporter shortly before their offer times out."""
    from services.dispatch import get_dispatch_scheduler

    return get_dispatch_scheduler().warn_expiring(offer_id)


@shared_task
def sweep_stale_transport_offers():
    """
    Periodic fallback for timers that never fired (worker restarts, lost
    messages): expire every active offer older than the tier timeout.
    """
    from services.dispatch import get_dispatch_scheduler

    timeout = getattr(settings, "TRANSPORT_OFFER_TIMEOUT_SECONDS", 3600)
    expired, escalated = get_dispatch_scheduler().expire_stale_offers(timeout)
    if expired or escalated:
        logger.info("Offer sweep expired %s, escalated %s", expired, escalated)
    return {"expired": expired, "escalated": escalated}
