"""
Tiered transport offer dispatch.

Offers an order's transport job to ranked transporters one tier at a time:
1. Every ranked transporter gets a pending record; only the primary is active
2. The active transporter accepts, declines, or lets the timer run out
3. On decline/timeout the next tier is activated and notified
4. The first accept supersedes every other tier; running out of tiers
   leaves the order exhausted

Each mutation is one database transaction. The record-level state change is a
compare-and-swap in the OfferStore, so an accept racing the expiry timer has
exactly one winner. Notifications and timer bookkeeping run after commit.
"""

import logging
from datetime import timedelta
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from orders.models import Order
from orders.services import OrderService
from transport.models import TransportOffer
from .exceptions import (
    AlreadyRespondedError,
    ConflictError,
    DispatchExistsError,
    ForbiddenError,
    InvalidCandidatesError,
    NoCandidatesError,
    NotActiveError,
    OfferNotFoundError,
    OrderNotFoundError,
)
from .gateways import get_notification_gateway
from .ranking import RankedCandidate, get_ranking_provider
from .store import OfferStore
from .tiers import get_tier_sequence
from .timers import CeleryOfferTimers

User = get_user_model()
logger = logging.getLogger(__name__)

TIMEOUT_REASON = "timeout"


@dataclass
class DispatchStatus:
    """Derived state of an order's current dispatch group."""
    state: str  # idle | dispatching | assigned | exhausted
    active_tier: Optional[str] = None
    cycle: int = 0
    offers: List[TransportOffer] = field(default_factory=list)


def derive_dispatch_state(offers: Sequence[TransportOffer]) -> Tuple[str, Optional[str]]:
    """Compute (state, active tier) from the member records of one group."""
    if not offers:
        return "idle", None
    if any(offer.status == "accepted" for offer in offers):
        return "assigned", None
    active = [offer for offer in offers if offer.is_active]
    if active:
        return "dispatching", active[0].tier
    if all(offer.status == "declined" for offer in offers):
        return "exhausted", None
    return "dispatching", None


class DispatchScheduler:
    """Owns every state transition of an order's offer chain."""

    def __init__(
        self,
        store: Optional[OfferStore] = None,
        notifier=None,
        orders=None,
        ranking=None,
        timers=None,
        tiers: Optional[Sequence[str]] = None,
    ):
        self.store = store or OfferStore()
        self.notifier = notifier or get_notification_gateway()
        self.orders = orders or OrderService()
        self.ranking = ranking
        self.timers = timers or CeleryOfferTimers()
        self.tiers = tuple(tiers) if tiers else get_tier_sequence()

    # ===================== Dispatch Creation =====================

    def create_dispatch(self, order_id, candidates: Iterable, cost: Optional[Decimal] = None) -> List[TransportOffer]:
        """
        Create the offer chain for an order and activate the primary tier.

        Args:
            order_id: Order to dispatch
            candidates: ordered transporter ids or RankedCandidate entries
            cost: transport cost for candidates that carry no proposed cost

        Returns:
            The created records, ordered by tier

        Raises:
            NoCandidatesError: candidate list is empty
            InvalidCandidatesError: too many, duplicated or unknown candidates
            OrderNotFoundError: order does not exist
            DispatchExistsError: order already assigned or being dispatched
        """
        ranked = [self._coerce_candidate(candidate, cost) for candidate in candidates]
        if not ranked:
            raise NoCandidatesError()
        self._validate_candidates(ranked)

        with transaction.atomic():
            order = Order.objects.select_for_update().filter(id=order_id).first()
            if order is None:
                raise OrderNotFoundError()
            if order.status == "transporter_assigned":
                raise DispatchExistsError("This order already has a transporter.")

            current = self.store.get_by_order(order.id)
            state, _ = derive_dispatch_state(current)
            if state in ("dispatching", "assigned"):
                raise DispatchExistsError()

            cycle = self.store.next_cycle(order.id)
            rows = [
                {
                    "transporter_id": candidate.transporter_id,
                    "tier_index": index,
                    "tier": self.tiers[index],
                    "transport_cost": candidate.proposed_cost,
                }
                for index, candidate in enumerate(ranked)
            ]
            records = self.store.create_group(order, cycle, rows, activated_at=timezone.now())
            self.orders.mark_awaiting_transport(order.id)

            primary = records[0]
            transaction.on_commit(lambda: self._start_offer(primary))

        logger.info(
            "Created dispatch cycle %s for order %s with %d tier(s); primary -> transporter %s",
            cycle, order.id, len(records), primary.transporter_id,
        )
        return records

    def dispatch_order(self, order_id) -> List[TransportOffer]:
        """Rank candidates for the order and create its offer chain."""
        ranking = self.ranking or get_ranking_provider()
        candidates = list(ranking.rank_candidates(order_id))[: len(self.tiers)]
        return self.create_dispatch(order_id, candidates)

    # ===================== Transporter Actions =====================

    def accept(self, offer_id, transporter_id) -> TransportOffer:
        """
        Accept the active offer. Supersedes every other tier of the order.

        Raises:
            OfferNotFoundError, ForbiddenError, AlreadyRespondedError,
            NotActiveError, ConflictError
        """
        with transaction.atomic():
            self._get_actionable(offer_id, transporter_id)
            now = timezone.now()
            offer = self.store.transition(offer_id, "pending", {
                "status": "accepted",
                "is_active": False,
                "responded_at": now,
                "resolved_by": "transporter",
            })
            superseded_ids = self.store.supersede_siblings(offer, now)
            self.orders.mark_assigned(offer.order_id, offer.transporter_id, offer.transport_cost)

            transaction.on_commit(lambda: self._after_accept(offer, superseded_ids))

        logger.info(
            "Order %s assigned: transporter %s accepted %s offer %s",
            offer.order_id, offer.transporter_id, offer.tier, offer.offer_id,
        )
        return offer

    def decline(self, offer_id, transporter_id, reason: Optional[str] = None) -> TransportOffer:
        """
        Decline the active offer and escalate to the next tier.

        Raises:
            OfferNotFoundError, ForbiddenError, AlreadyRespondedError,
            NotActiveError, ConflictError
        """
        with transaction.atomic():
            self._get_actionable(offer_id, transporter_id)
            offer = self.store.transition(offer_id, "pending", {
                "status": "declined",
                "is_active": False,
                "responded_at": timezone.now(),
                "decline_reason": reason or None,
                "resolved_by": "transporter",
            })
            transaction.on_commit(lambda: self.timers.cancel(offer))
            self._escalate(offer)

        logger.info("Transporter %s declined %s offer %s", offer.transporter_id, offer.tier, offer.offer_id)
        return offer

    def counter(self, offer_id, transporter_id, counter_fee: Decimal) -> TransportOffer:
        """
        Record a counter-offer price on the active offer.

        The offer stays pending and active and its timer keeps running; the
        proposed price does not change what an accept assigns.
        """
        with transaction.atomic():
            self._get_actionable(offer_id, transporter_id)
            offer = self.store.transition(offer_id, "pending", {
                "counter_fee": counter_fee,
                "countered_at": timezone.now(),
            })
            transaction.on_commit(lambda: self._notify(
                offer.order.farmer_id,
                "offer_countered",
                self._offer_payload(offer, counterFee=str(offer.counter_fee)),
            ))

        logger.info("Transporter %s countered offer %s at %s", offer.transporter_id, offer.offer_id, counter_fee)
        return offer

    # ===================== Timer Callbacks =====================

    def expire(self, offer_id) -> Optional[TransportOffer]:
        """
        Time out the active offer and escalate.

        Idempotent: returns None without side effects when the offer is
        missing, already resolved, not active, or lost a race.
        """
        offer, _ = self._expire(offer_id)
        return offer

    def warn_expiring(self, offer_id) -> bool:
        """Remind the active transporter that their window is closing."""
        try:
            offer = self.store.get(offer_id)
        except OfferNotFoundError:
            return False
        if offer.status != "pending" or not offer.is_active:
            return False
        return self._notify(offer.transporter_id, "offer_expiring", self._offer_payload(offer))

    def expire_stale_offers(self, timeout_seconds: int) -> Tuple[int, int]:
        """
        Expire active offers older than the timeout (sweep for lost timers).

        Returns a tuple of (expired_count, escalated_count).
        """
        cutoff = timezone.now() - timedelta(seconds=timeout_seconds)
        expired_count = 0
        escalated_count = 0

        for offer_id in list(self.store.stale_active_offers(cutoff).values_list("offer_id", flat=True)):
            offer, next_offer = self._expire(offer_id, revoke_timer=True)
            if offer is not None:
                expired_count += 1
            if next_offer is not None:
                escalated_count += 1

        return expired_count, escalated_count

    # ===================== Queries =====================

    def list_offers_for_transporter(self, transporter_id, status: Optional[str] = None):
        """Offers made to one transporter across orders, newest first."""
        return self.store.get_by_transporter(transporter_id, status)

    def dispatch_status(self, order_id) -> DispatchStatus:
        cycle = self.store.current_cycle(order_id)
        offers = self.store.get_by_order(order_id, cycle) if cycle else []
        state, active_tier = derive_dispatch_state(offers)
        return DispatchStatus(state=state, active_tier=active_tier, cycle=cycle, offers=offers)

    # ===================== Helpers =====================

    def _expire(self, offer_id, revoke_timer: bool = False) -> Tuple[Optional[TransportOffer], Optional[TransportOffer]]:
        """Expire one offer; ``revoke_timer`` when the caller is not the timer itself."""
        with transaction.atomic():
            try:
                offer = self.store.get(offer_id)
            except OfferNotFoundError:
                logger.warning("Offer %s not found for expiry", offer_id)
                return None, None

            if offer.status != "pending" or not offer.is_active:
                logger.debug("Offer %s already resolved or not active (status: %s)", offer_id, offer.status)
                return None, None

            try:
                offer = self.store.transition(offer_id, "pending", {
                    "status": "declined",
                    "is_active": False,
                    "responded_at": timezone.now(),
                    "decline_reason": TIMEOUT_REASON,
                    "resolved_by": "timeout",
                })
            except ConflictError:
                logger.debug("Offer %s resolved concurrently; expiry skipped", offer_id)
                return None, None

            if revoke_timer:
                transaction.on_commit(lambda: self.timers.cancel(offer))
            transaction.on_commit(lambda: self._notify(
                offer.transporter_id,
                "offer_expired",
                self._offer_payload(offer, message="Your transport offer has timed out."),
            ))
            next_offer = self._escalate(offer)

        logger.info("Expired %s offer %s for order %s", offer.tier, offer.offer_id, offer.order_id)
        return offer, next_offer

    def _escalate(self, offer: TransportOffer) -> Optional[TransportOffer]:
        """Activate the next tier, or close the group as exhausted."""
        candidate = self.store.next_pending_tier(offer)
        if candidate is not None:
            next_offer = self.store.activate(candidate.offer_id, timezone.now())
            transaction.on_commit(lambda: self._start_offer(next_offer))
            logger.info(
                "Order %s escalated to %s tier (transporter %s)",
                offer.order_id, next_offer.tier, next_offer.transporter_id,
            )
            return next_offer

        self.orders.mark_unfulfilled(offer.order_id)
        farmer_id = offer.order.farmer_id
        transaction.on_commit(lambda: self._notify(
            farmer_id,
            "all_declined",
            {
                "orderId": offer.order_id,
                "message": "No transporter accepted this order. Please try again later.",
            },
        ))
        logger.info("Order %s exhausted all tiers without an accept", offer.order_id)
        return None

    def _start_offer(self, offer: TransportOffer) -> None:
        """Post-commit: start the tier's timer and tell its transporter."""
        try:
            self.timers.schedule(offer)
        except Exception:
            logger.exception("Failed to schedule expiry timer for offer %s", offer.offer_id)
        self._notify(offer.transporter_id, "new_offer", self._offer_payload(offer))

    def _after_accept(self, offer: TransportOffer, superseded_ids: List[int]) -> None:
        self.timers.cancel(offer)
        self._notify(
            offer.order.farmer_id,
            "transporter_assigned",
            self._offer_payload(offer, transporterId=offer.transporter_id),
        )
        for transporter_id in superseded_ids:
            self._notify(
                transporter_id,
                "offer_withdrawn",
                {
                    "orderId": offer.order_id,
                    "message": "This order was accepted by another transporter.",
                },
            )

    def _notify(self, recipient_id, event_type: str, payload) -> bool:
        """Best-effort delivery: failures are logged, never raised."""
        try:
            return bool(self.notifier.notify(recipient_id, event_type, payload))
        except Exception:
            logger.exception("Failed to notify user_%s of %s", recipient_id, event_type)
            return False

    def _get_actionable(self, offer_id, transporter_id) -> TransportOffer:
        """Load an offer and check the caller may act on it right now."""
        offer = self.store.get(offer_id)
        if str(offer.transporter_id) != str(getattr(transporter_id, "pk", transporter_id)):
            raise ForbiddenError()
        if offer.status != "pending":
            raise AlreadyRespondedError()
        if not offer.is_active:
            raise NotActiveError()
        return offer

    def _coerce_candidate(self, candidate, cost: Optional[Decimal]) -> RankedCandidate:
        if isinstance(candidate, RankedCandidate):
            if candidate.proposed_cost is None and cost is not None:
                return RankedCandidate(candidate.transporter_id, Decimal(str(cost)))
            return candidate
        return RankedCandidate(
            transporter_id=getattr(candidate, "pk", candidate),
            proposed_cost=Decimal(str(cost)) if cost is not None else None,
        )

    def _validate_candidates(self, ranked: List[RankedCandidate]) -> None:
        if len(ranked) > len(self.tiers):
            raise InvalidCandidatesError(
                f"At most {len(self.tiers)} transporters can be ranked for one order."
            )

        transporter_ids = [candidate.transporter_id for candidate in ranked]
        if len(set(transporter_ids)) != len(transporter_ids):
            raise InvalidCandidatesError("A transporter can only hold one tier per order.")

        if any(candidate.proposed_cost is None for candidate in ranked):
            raise InvalidCandidatesError("A transport cost is required for every tier.")
        if any(candidate.proposed_cost <= 0 for candidate in ranked):
            raise InvalidCandidatesError("Transport cost must be greater than zero.")

        known = User.objects.filter(id__in=transporter_ids, role="transporter", is_active=True).count()
        if known != len(transporter_ids):
            raise InvalidCandidatesError("Every candidate must be an active transporter.")

    def _offer_payload(self, offer: TransportOffer, **extra):
        payload = {
            "offerId": str(offer.offer_id),
            "orderId": offer.order_id,
            "tier": offer.tier,
            "transportCost": str(offer.transport_cost),
            "pickupLocation": offer.order.pickup_location,
            "deliveryLocation": offer.order.delivery_location,
        }
        payload.update(extra)
        return payload


_dispatch_scheduler: Optional[DispatchScheduler] = None


def get_dispatch_scheduler() -> DispatchScheduler:
    """Get singleton DispatchScheduler instance."""
    global _dispatch_scheduler
    if _dispatch_scheduler is None:
        _dispatch_scheduler = DispatchScheduler()
    return _dispatch_scheduler
