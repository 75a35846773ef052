"""Apps configuration for the Signing app."""
from django.apps import AppConfig


class SigningConfig(AppConfig):
    """Configuration for the Signing app."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'signing'
