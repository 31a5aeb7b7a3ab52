"""
Tier Ranking Provider.

Supplies the ordered candidate list for an order. How candidates are chosen
(proximity, rating, contract) is the provider's business; the dispatch engine
only consumes the ordered result.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from django.conf import settings
from django.utils.module_loading import import_string

from orders.models import Order
from transporters.models import TransporterProfile
from .exceptions import OrderNotFoundError
from .tiers import get_tier_sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedCandidate:
    """A transporter proposed for one tier, with the price to offer them."""
    transporter_id: int
    proposed_cost: Optional[Decimal] = None


class TierRankingProvider:
    """Interface for candidate ranking backends."""

    def rank_candidates(self, order_id) -> List[RankedCandidate]:
        raise NotImplementedError


class AvailableTransporterRanking(TierRankingProvider):
    """
    Rank available transporters by rating, then completed deliveries.

    Every candidate is offered the order's proposed transport cost.
    """

    def __init__(self, limit: Optional[int] = None):
        self.limit = limit or len(get_tier_sequence())

    def rank_candidates(self, order_id) -> List[RankedCandidate]:
        try:
            order = Order.objects.get(id=order_id)
        except Order.DoesNotExist:
            raise OrderNotFoundError()

        profiles = (
            TransporterProfile.objects
            .filter(status="available", user__role="transporter", user__is_active=True)
            .order_by("-rating", "-completed_deliveries", "id")
        )[: self.limit]

        candidates = [
            RankedCandidate(transporter_id=profile.user_id, proposed_cost=order.proposed_transport_cost)
            for profile in profiles
        ]
        logger.info("Ranked %d transporter candidates for order %s", len(candidates), order_id)
        return candidates


_ranking_provider: Optional[TierRankingProvider] = None


def get_ranking_provider() -> TierRankingProvider:
    """Get the configured ranking provider (singleton)."""
    global _ranking_provider
    if _ranking_provider is None:
        provider_path = getattr(
            settings,
            "TRANSPORT_RANKING_PROVIDER",
            "services.dispatch.ranking.AvailableTransporterRanking",
        )
        _ranking_provider = import_string(provider_path)()
    return _ranking_provider
