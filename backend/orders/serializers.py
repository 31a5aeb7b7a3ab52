from decimal import Decimal

from django.conf import settings
from rest_framework import serializers

from services.dispatch.tiers import get_tier_sequence
from .models import Order


def tier_input_field(tier: str) -> str:
    """primary -> primaryTransporterId"""
    return f"{tier}TransporterId"


def get_minimum_fee() -> Decimal:
    return Decimal(str(getattr(settings, "TRANSPORT_MINIMUM_FEE", "187.50")))


class OrderSummarySerializer(serializers.ModelSerializer):
    orderId = serializers.IntegerField(source='id', read_only=True)
    transporterId = serializers.IntegerField(source='transporter_id', read_only=True)
    transportCost = serializers.DecimalField(source='transport_cost', max_digits=12, decimal_places=2, read_only=True)
    assignedAt = serializers.DateTimeField(source='assigned_at', read_only=True)

    class Meta:
        model = Order
        fields = ['orderId', 'status', 'transporterId', 'transportCost', 'assignedAt']
        read_only_fields = fields


class AssignTransportersSerializer(serializers.Serializer):
    """
    Farmer's ranked transporter choice for an order.

    One ``<tier>TransporterId`` field per configured tier; the first tier is
    required, later tiers are optional but cannot be skipped. Validated data
    carries ``transporter_ids`` in tier order.
    """
    transportCost = serializers.DecimalField(max_digits=12, decimal_places=2)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tiers = get_tier_sequence()
        for index, tier in enumerate(self.tiers):
            self.fields[tier_input_field(tier)] = serializers.IntegerField(
                required=index == 0,
                allow_null=index != 0,
                min_value=1,
            )

    def validate_transportCost(self, value):
        minimum = get_minimum_fee()
        if value < minimum:
            raise serializers.ValidationError(f"Transport cost must be at least {minimum}.")
        return value

    def validate(self, attrs):
        transporter_ids = []
        gap_after = None
        for tier in self.tiers:
            transporter_id = attrs.pop(tier_input_field(tier), None)
            if transporter_id is None:
                gap_after = gap_after or tier
                continue
            if gap_after is not None:
                raise serializers.ValidationError({
                    tier_input_field(tier): f"Select a {gap_after} transporter before a {tier} one."
                })
            transporter_ids.append(transporter_id)

        if len(set(transporter_ids)) != len(transporter_ids):
            raise serializers.ValidationError("Select a different transporter for each tier.")

        attrs['transporter_ids'] = transporter_ids
        return attrs
