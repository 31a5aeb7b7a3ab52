from django.apps import AppConfig


class TransportersConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'transporters'
