from django.contrib import admin
from .models import Order

@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Order admin"""
    list_display = ['id', 'farmer', 'transporter', 'status', 'transport_cost', 'created_at', 'assigned_at']
    list_filter = ['status', 'created_at']
    search_fields = ['farmer__username', 'transporter__username', 'pickup_location', 'delivery_location']
    readonly_fields = ['created_at', 'assigned_at']
    date_hierarchy = 'created_at'
