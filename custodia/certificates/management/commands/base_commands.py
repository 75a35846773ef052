"""Contains common functionality for certificate maintenance commands."""

from __future__ import annotations

from django.core.management.base import BaseCommand

from certificates.services.maintenance import CertificateMaintenance
from custodia.logger import LoggerMixin


class MaintenanceCommand(LoggerMixin, BaseCommand):
    """Base class of the management commands that maintain the certificates in custody."""

    def get_maintenance(self) -> CertificateMaintenance:
        """Returns the maintenance service built from the settings."""
        return CertificateMaintenance.from_settings()

    def log_and_stdout(self, message: str, level: str = 'info') -> None:
        """Log a message and write it to stdout."""
        log_method = getattr(self.logger, level, self.logger.info)
        log_method(message)

        if level == 'error':
            self.stdout.write(self.style.ERROR(message))
        elif level == 'warning':
            self.stdout.write(self.style.WARNING(message))
        elif level == 'info':
            self.stdout.write(self.style.SUCCESS(message))
        else:
            self.stdout.write(message)
