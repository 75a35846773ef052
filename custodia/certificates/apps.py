"""Apps configuration for the Certificates app."""
from django.apps import AppConfig


class CertificatesConfig(AppConfig):
    """Configuration for the Certificates app."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'certificates'
