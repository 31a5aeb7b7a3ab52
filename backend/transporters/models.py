from django.db import models
from django.conf import settings

User = settings.AUTH_USER_MODEL

class TransporterProfile(models.Model):
    """Transporter vehicle details, availability and track record"""
    STATUS_CHOICES = [
        ('available', 'Available'),
        ('busy', 'Busy'),
        ('offline', 'Offline'),
    ]
    
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='transporter_profile')
    
    # Vehicle details
    vehicle_type = models.CharField(max_length=50, blank=True)
    vehicle_capacity = models.CharField(max_length=50, blank=True)
    base_location = models.CharField(max_length=255, blank=True)
    
    # Availability & track record (inputs for candidate ranking)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='offline')
    rating = models.DecimalField(max_digits=3, decimal_places=2, default=0)
    completed_deliveries = models.PositiveIntegerField(default=0)
    
    class Meta:
        db_table = 'transporter_profiles'
        
    def __str__(self):
        return f"{self.user.username} - {self.vehicle_type or 'vehicle'}"
