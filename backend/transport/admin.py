"""Tells what to show in the Django admin interface for transport offers"""

from django.contrib import admin
from .models import TransportOffer


@admin.register(TransportOffer)
class TransportOfferAdmin(admin.ModelAdmin):
    list_display = ("offer_id", "order", "dispatch_cycle", "tier", "transporter", "status", "is_active", "activated_at", "responded_at")
    list_filter = ("status", "tier", "is_active", "resolved_by")
    search_fields = ("order__id", "transporter__username")
    readonly_fields = ("offer_id", "offered_at", "activated_at", "responded_at", "expiry_task_id")
