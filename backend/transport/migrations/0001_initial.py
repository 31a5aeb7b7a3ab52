import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="TransportOffer",
            fields=[
                ("offer_id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("dispatch_cycle", models.PositiveIntegerField(default=1)),
                ("tier_index", models.PositiveSmallIntegerField()),
                ("tier", models.CharField(max_length=20)),
                ("transport_cost", models.DecimalField(decimal_places=2, max_digits=12)),
                ("counter_fee", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("countered_at", models.DateTimeField(blank=True, null=True)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("accepted", "Accepted"), ("declined", "Declined")], default="pending", max_length=20)),
                ("is_active", models.BooleanField(default=False)),
                ("decline_reason", models.TextField(blank=True, null=True)),
                ("resolved_by", models.CharField(blank=True, choices=[("transporter", "Transporter"), ("timeout", "Timeout"), ("superseded", "Superseded")], max_length=20, null=True)),
                ("offered_at", models.DateTimeField(auto_now_add=True)),
                ("activated_at", models.DateTimeField(blank=True, null=True)),
                ("responded_at", models.DateTimeField(blank=True, null=True)),
                ("expiry_task_id", models.CharField(blank=True, max_length=255, null=True)),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="transport_offers", to="orders.order")),
                ("transporter", models.ForeignKey(limit_choices_to={"role": "transporter"}, on_delete=django.db.models.deletion.CASCADE, related_name="transport_offers", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "transport_offers",
                "ordering": ["-offered_at", "tier_index"],
            },
        ),
        migrations.AddConstraint(
            model_name="transportoffer",
            constraint=models.UniqueConstraint(fields=("order", "dispatch_cycle", "tier_index"), name="unique_order_cycle_tier"),
        ),
        migrations.AddConstraint(
            model_name="transportoffer",
            constraint=models.UniqueConstraint(fields=("order", "dispatch_cycle", "transporter"), name="unique_order_cycle_transporter"),
        ),
        migrations.AddIndex(
            model_name="transportoffer",
            index=models.Index(fields=["transporter", "status"], name="offer_transporter_status_idx"),
        ),
        migrations.AddIndex(
            model_name="transportoffer",
            index=models.Index(fields=["is_active", "status", "activated_at"], name="offer_active_sweep_idx"),
        ),
    ]
