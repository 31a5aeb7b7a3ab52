from django.contrib import admin

from transporters.models import TransporterProfile


@admin.register(TransporterProfile)
class TransporterProfileAdmin(admin.ModelAdmin):
    """Transporter profile admin"""
    list_display = ("user", "vehicle_type", "base_location", "status", "rating", "completed_deliveries")
    list_filter = ("status", "vehicle_type")
    search_fields = ("user__username", "user__full_name", "base_location")
