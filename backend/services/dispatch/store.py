"""
Persistence for transport offer records.

All state changes go through conditional UPDATEs so that two writers racing
on the same record (a transporter's accept and the expiry timer, say) cannot
both win: the UPDATE only matches while the record is still in the expected
pre-state, and exactly one caller sees a matched row.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import OperationalError, transaction
from django.db.models import QuerySet

from transport.models import TransportOffer
from .exceptions import ConflictError, OfferNotFoundError

logger = logging.getLogger(__name__)


class OfferStore:
    """Read/write access to TransportOffer rows keyed by offer id."""

    def __init__(self, max_retries: Optional[int] = None, retry_delay: float = 0.05):
        if max_retries is None:
            max_retries = getattr(settings, "TRANSPORT_STORE_MAX_RETRIES", 3)
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    # ---------------------- Reads ----------------------

    def _base_queryset(self) -> QuerySet:
        return TransportOffer.objects.select_related("order", "transporter")

    def get(self, offer_id) -> TransportOffer:
        try:
            return self._base_queryset().get(offer_id=offer_id)
        except (TransportOffer.DoesNotExist, ValidationError, ValueError):
            raise OfferNotFoundError()

    def current_cycle(self, order_id) -> int:
        """Latest dispatch cycle number for the order, 0 if never dispatched."""
        latest = (
            TransportOffer.objects
            .filter(order_id=order_id)
            .order_by("-dispatch_cycle")
            .values_list("dispatch_cycle", flat=True)
            .first()
        )
        return latest or 0

    def next_cycle(self, order_id) -> int:
        return self.current_cycle(order_id) + 1

    def get_by_order(self, order_id, cycle: Optional[int] = None) -> List[TransportOffer]:
        """All tier records of one dispatch group, ordered by tier."""
        if cycle is None:
            cycle = self.current_cycle(order_id)
        return list(
            self._base_queryset()
            .filter(order_id=order_id, dispatch_cycle=cycle)
            .order_by("tier_index")
        )

    def get_by_transporter(self, transporter_id, status: Optional[str] = None) -> QuerySet:
        qs = self._base_queryset().filter(transporter_id=transporter_id)
        if status:
            qs = qs.filter(status=status)
        return qs.order_by("-offered_at", "tier_index")

    def next_pending_tier(self, offer: TransportOffer) -> Optional[TransportOffer]:
        """First later tier of the same group that was never activated."""
        return (
            self._base_queryset()
            .filter(
                order_id=offer.order_id,
                dispatch_cycle=offer.dispatch_cycle,
                tier_index__gt=offer.tier_index,
                status="pending",
                activated_at__isnull=True,
            )
            .order_by("tier_index")
            .first()
        )

    def stale_active_offers(self, cutoff) -> QuerySet:
        """Active offers whose tier was activated before the cutoff."""
        return (
            TransportOffer.objects
            .filter(is_active=True, status="pending", activated_at__lt=cutoff)
            .order_by("activated_at")
        )

    # ---------------------- Writes ----------------------

    def save(self, record: TransportOffer) -> TransportOffer:
        """Insert or update a record as-is."""
        record.save()
        return record

    def create_group(self, order, cycle: int, rows: Sequence[Dict[str, Any]], activated_at) -> List[TransportOffer]:
        """
        Insert one pending record per tier; only tier 0 is activated.

        Args:
            order: Order instance owning the group
            cycle: dispatch cycle number
            rows: dicts with transporter_id, tier_index, tier, transport_cost
            activated_at: activation time for the primary tier
        """
        records = []
        for row in rows:
            is_primary = row["tier_index"] == 0
            records.append(
                TransportOffer.objects.create(
                    order=order,
                    dispatch_cycle=cycle,
                    transporter_id=row["transporter_id"],
                    tier_index=row["tier_index"],
                    tier=row["tier"],
                    transport_cost=row["transport_cost"],
                    status="pending",
                    is_active=is_primary,
                    activated_at=activated_at if is_primary else None,
                )
            )
        return records

    def transition(
        self,
        offer_id,
        expected_status: str,
        mutation: Dict[str, Any],
        require_active: bool = True,
    ) -> TransportOffer:
        """
        Compare-and-swap a record.

        Applies ``mutation`` only if the record still has ``expected_status``
        (and is_active=True unless ``require_active`` is False).

        Raises:
            ConflictError: another writer changed the record first
        """
        filters = {"offer_id": offer_id, "status": expected_status}
        if require_active:
            filters["is_active"] = True

        updated = self._with_retries(
            lambda: TransportOffer.objects.filter(**filters).update(**mutation)
        )
        if not updated:
            raise ConflictError()
        return self.get(offer_id)

    def activate(self, offer_id, activated_at) -> TransportOffer:
        """Give a waiting tier the right-of-first-refusal."""
        updated = self._with_retries(
            lambda: TransportOffer.objects.filter(
                offer_id=offer_id,
                status="pending",
                is_active=False,
                activated_at__isnull=True,
            ).update(is_active=True, activated_at=activated_at)
        )
        if not updated:
            raise ConflictError()
        return self.get(offer_id)

    def supersede_siblings(self, offer: TransportOffer, responded_at) -> List[int]:
        """
        Close every other pending record of the group after an accept.

        Returns the transporter ids whose records were superseded.
        """
        siblings = list(
            TransportOffer.objects
            .select_for_update()
            .filter(
                order_id=offer.order_id,
                dispatch_cycle=offer.dispatch_cycle,
                status="pending",
            )
            .exclude(offer_id=offer.offer_id)
            .values_list("offer_id", "transporter_id")
        )
        transporter_ids = [transporter_id for _, transporter_id in siblings]
        if siblings:
            self._with_retries(
                lambda: TransportOffer.objects.filter(
                    offer_id__in=[offer_id for offer_id, _ in siblings],
                    status="pending",
                ).update(
                    status="declined",
                    is_active=False,
                    resolved_by="superseded",
                    responded_at=responded_at,
                )
            )
        return transporter_ids

    def set_expiry_task(self, offer_id, task_id: Optional[str]) -> None:
        TransportOffer.objects.filter(offer_id=offer_id, status="pending").update(expiry_task_id=task_id)

    # ---------------------- Helpers ----------------------

    def _with_retries(self, operation):
        """
        Retry an UPDATE on transient lock contention.

        Each attempt runs in a savepoint. Callers normally hold an outer
        transaction, so locks taken earlier in it stay held while this
        sleeps; the backoff is linear and capped at ``max_retries`` attempts.
        """
        attempt = 0
        while True:
            try:
                with transaction.atomic():
                    return operation()
            except OperationalError:
                if attempt >= self.max_retries:
                    raise
                attempt += 1
                logger.warning(
                    "Offer store contention, retrying (attempt %s/%s)",
                    attempt, self.max_retries,
                )
                time.sleep(self.retry_delay * attempt)
