from django.db import models
from django.conf import settings

class Order(models.Model):
    """Farmer shipment that needs transport. Owned by the order flow; the
    dispatch engine only references it and reports assignment outcomes."""

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('awaiting_transport', 'Awaiting Transport'),
        ('transporter_assigned', 'Transporter Assigned'),
        ('unfulfilled', 'No Transport Available'),
    ]

    # Foreign keys
    farmer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='orders'
    )

    transporter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_orders'
    )

    # Listing reference (marketplace listing lives in another service)
    listing_reference = models.CharField(max_length=64, blank=True)
    listing_name = models.CharField(max_length=255, blank=True)

    # Route
    pickup_location = models.CharField(max_length=255)
    delivery_location = models.CharField(max_length=255)

    # Pricing
    proposed_transport_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    transport_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    status = models.CharField(max_length=30, choices=STATUS_CHOICES, default='pending')

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    assigned_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']

    def __str__(self):
        return f"Order #{self.id} - {self.farmer} - {self.status}"
