import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="TransporterProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("vehicle_type", models.CharField(blank=True, max_length=50)),
                ("vehicle_capacity", models.CharField(blank=True, max_length=50)),
                ("base_location", models.CharField(blank=True, max_length=255)),
                ("status", models.CharField(choices=[("available", "Available"), ("busy", "Busy"), ("offline", "Offline")], default="offline", max_length=20)),
                ("rating", models.DecimalField(decimal_places=2, default=0, max_digits=3)),
                ("completed_deliveries", models.PositiveIntegerField(default=0)),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="transporter_profile", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "transporter_profiles",
            },
        ),
    ]
