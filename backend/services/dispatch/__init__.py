"""
Tiered transport offer dispatch.

This module handles:
    - Creating an order's offer chain from ranked transporters
    - Transporter accept / decline / counter actions
    - Timeout-driven expiry and escalation to the next tier
    - Atomic record transitions (OfferStore)
"""

from .exceptions import (
    DispatchError,
    NoCandidatesError,
    InvalidCandidatesError,
    DispatchExistsError,
    OrderNotFoundError,
    OfferNotFoundError,
    NotActiveError,
    AlreadyRespondedError,
    ForbiddenError,
    ConflictError,
)
from .ranking import RankedCandidate, TierRankingProvider, get_ranking_provider
from .gateways import NotificationGateway, get_notification_gateway
from .store import OfferStore
from .scheduler import (
    DispatchScheduler,
    DispatchStatus,
    derive_dispatch_state,
    get_dispatch_scheduler,
)

__all__ = [
    # Scheduler
    "DispatchScheduler",
    "DispatchStatus",
    "derive_dispatch_state",
    "get_dispatch_scheduler",
    # Collaborators
    "OfferStore",
    "RankedCandidate",
    "TierRankingProvider",
    "get_ranking_provider",
    "NotificationGateway",
    "get_notification_gateway",
    # Exceptions
    "DispatchError",
    "NoCandidatesError",
    "InvalidCandidatesError",
    "DispatchExistsError",
    "OrderNotFoundError",
    "OfferNotFoundError",
    "NotActiveError",
    "AlreadyRespondedError",
    "ForbiddenError",
    "ConflictError",
]
