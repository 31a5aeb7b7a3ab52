from collections import defaultdict
from decimal import Decimal

from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from services.dispatch.tiers import get_tier_sequence
from .models import TransportOffer


def tier_field_name(tier: str) -> str:
    """primary -> sentToPrimaryAt"""
    return f"sentTo{tier[:1].upper()}{tier[1:]}At"


def build_activation_map(offers):
    """
    Map (order_id, dispatch_cycle) -> {tier: activated_at} for the groups the
    given offers belong to, using a single query.
    """
    offers = list(offers)
    if not offers:
        return {}

    groups = {(offer.order_id, offer.dispatch_cycle) for offer in offers}
    rows = TransportOffer.objects.filter(
        order_id__in={order_id for order_id, _ in groups},
    ).values_list("order_id", "dispatch_cycle", "tier", "activated_at")

    activations = defaultdict(dict)
    for order_id, cycle, tier, activated_at in rows:
        if (order_id, cycle) in groups:
            activations[(order_id, cycle)][tier] = activated_at
    return activations


class TransportOfferSerializer(serializers.ModelSerializer):
    """
    Transporter-facing view of one tier record.

    Pass ``activations`` (see build_activation_map) in the context when
    serializing many offers to avoid one query per offer.
    """
    offerId = serializers.UUIDField(source="offer_id", read_only=True)
    orderId = serializers.IntegerField(source="order_id", read_only=True)
    transporterId = serializers.IntegerField(source="transporter_id", read_only=True)
    transportCost = serializers.DecimalField(source="transport_cost", max_digits=12, decimal_places=2, read_only=True)
    counterFee = serializers.DecimalField(source="counter_fee", max_digits=12, decimal_places=2, read_only=True)
    counteredAt = serializers.DateTimeField(source="countered_at", read_only=True)
    isActive = serializers.BooleanField(source="is_active", read_only=True)
    offeredAt = serializers.DateTimeField(source="offered_at", read_only=True)
    respondedAt = serializers.DateTimeField(source="responded_at", read_only=True)
    declineReason = serializers.CharField(source="decline_reason", read_only=True)
    resolvedBy = serializers.CharField(source="resolved_by", read_only=True)
    pickupLocation = serializers.CharField(source="order.pickup_location", read_only=True)
    deliveryLocation = serializers.CharField(source="order.delivery_location", read_only=True)
    farmer = UserBasicSerializer(source="order.farmer", read_only=True)
    listing = serializers.SerializerMethodField()

    class Meta:
        model = TransportOffer
        fields = [
            "offerId", "orderId", "transporterId", "tier", "transportCost",
            "counterFee", "counteredAt", "status", "isActive", "offeredAt",
            "respondedAt", "declineReason", "resolvedBy", "pickupLocation",
            "deliveryLocation", "farmer", "listing",
        ]
        read_only_fields = fields

    def get_listing(self, obj):
        order = obj.order
        if not order.listing_reference and not order.listing_name:
            return None
        return {
            "reference": order.listing_reference,
            "name": order.listing_name,
            "location": order.pickup_location,
        }

    def to_representation(self, instance):
        representation = super().to_representation(instance)

        activations = self.context.get("activations")
        if activations is None:
            activations = build_activation_map([instance])
        group = activations.get((instance.order_id, instance.dispatch_cycle), {})

        stamp = serializers.DateTimeField()
        for tier in get_tier_sequence():
            activated_at = group.get(tier)
            representation[tier_field_name(tier)] = stamp.to_representation(activated_at) if activated_at else None
        return representation


class FarmerTransportOfferSerializer(TransportOfferSerializer):
    """Farmer-facing view: adds who holds each tier."""
    transporter = UserBasicSerializer(read_only=True)

    class Meta(TransportOfferSerializer.Meta):
        fields = TransportOfferSerializer.Meta.fields + ["transporter"]
        read_only_fields = fields


class OfferListQuerySerializer(serializers.Serializer):
    """Query params for listing a transporter's offers"""
    status = serializers.ChoiceField(
        choices=[choice for choice, _ in TransportOffer.STATUS_CHOICES],
        required=False,
    )


class DeclineOfferSerializer(serializers.Serializer):
    """Serializer for declining an offer"""
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=500)


class CounterOfferSerializer(serializers.Serializer):
    """Serializer for proposing a counter fee"""
    counterFee = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
