from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with marketplace role"""
    ROLE_CHOICES = [
        ('farmer', 'Farmer'),
        ('transporter', 'Transporter'),
        ('buyer', 'Buyer'),
    ]
    
    # Role & basic info
    role = models.CharField(max_length=20, choices=ROLE_CHOICES)
    full_name = models.CharField(max_length=150, blank=True)
    phone_number = models.CharField(max_length=20)
    
    class Meta:
        db_table = 'users'

    @property
    def display_name(self):
        return self.full_name or self.get_full_name() or self.username
        
    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
