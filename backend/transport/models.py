import uuid

from django.db import models
from django.conf import settings


class TransportOffer(models.Model):
    """
    One tier of an order's dispatch group.

    Each dispatch cycle creates one row per ranked transporter. Only the row
    whose tier currently holds right-of-first-refusal has is_active=True.
    Rows are never deleted; resolved rows are the transporter's offer history.
    """

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('accepted', 'Accepted'),
        ('declined', 'Declined'),
    ]

    RESOLVED_BY_CHOICES = [
        ('transporter', 'Transporter'),
        ('timeout', 'Timeout'),
        ('superseded', 'Superseded'),
    ]

    offer_id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(
        'orders.Order',
        on_delete=models.CASCADE,
        related_name='transport_offers'
    )
    dispatch_cycle = models.PositiveIntegerField(default=1)

    transporter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='transport_offers',
        limit_choices_to={'role': 'transporter'}
    )

    tier_index = models.PositiveSmallIntegerField()  # 0 = primary
    tier = models.CharField(max_length=20)

    transport_cost = models.DecimalField(max_digits=12, decimal_places=2)
    counter_fee = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    countered_at = models.DateTimeField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    is_active = models.BooleanField(default=False)

    decline_reason = models.TextField(null=True, blank=True)
    resolved_by = models.CharField(max_length=20, choices=RESOLVED_BY_CHOICES, null=True, blank=True)

    # Timestamps
    offered_at = models.DateTimeField(auto_now_add=True)
    activated_at = models.DateTimeField(null=True, blank=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    # Celery task id of the pending expiry timer
    expiry_task_id = models.CharField(max_length=255, null=True, blank=True)

    class Meta:
        db_table = 'transport_offers'
        ordering = ['-offered_at', 'tier_index']
        constraints = [
            models.UniqueConstraint(
                fields=['order', 'dispatch_cycle', 'tier_index'],
                name='unique_order_cycle_tier'
            ),
            models.UniqueConstraint(
                fields=['order', 'dispatch_cycle', 'transporter'],
                name='unique_order_cycle_transporter'
            ),
        ]
        indexes = [
            models.Index(fields=['transporter', 'status'], name='offer_transporter_status_idx'),
            models.Index(fields=['is_active', 'status', 'activated_at'], name='offer_active_sweep_idx'),
        ]

    @property
    def is_resolved(self):
        return self.status != 'pending'

    def __str__(self):
        return f"Offer {self.offer_id} - Order {self.order_id} [{self.tier}] -> {self.transporter_id} ({self.status})"
