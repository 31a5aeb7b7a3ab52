"""Ordered tier sequence used for escalation."""

from typing import Tuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

DEFAULT_TIERS = ("primary", "secondary", "tertiary")


def get_tier_sequence() -> Tuple[str, ...]:
    """Return the configured tier names, highest priority first."""
    tiers = tuple(getattr(settings, "TRANSPORT_OFFER_TIERS", DEFAULT_TIERS))
    if not tiers:
        raise ImproperlyConfigured("TRANSPORT_OFFER_TIERS must name at least one tier")
    if len(set(tiers)) != len(tiers):
        raise ImproperlyConfigured("TRANSPORT_OFFER_TIERS contains duplicate tier names")
    return tiers
