"""Management command to check that every stored certificate container is readable."""

from __future__ import annotations

from typing import Any

from django.core.management.base import CommandError

from certificates.management.commands.base_commands import MaintenanceCommand


class Command(MaintenanceCommand):
    """Loads and decrypts the container of every certificate that has not been removed."""

    help = 'Check the integrity of all stored certificate containers.'

    def handle(self, *args: Any, **options: Any) -> None:
        """Entrypoint for the command."""
        del args, options
        report = self.get_maintenance().verify_integrity()

        for detail in report.details:
            self.log_and_stdout(f'Certificate {detail["id"]} ({detail["name"]}): {detail["error"]}', level='error')

        summary = f'Checked {report.total} certificates: {report.valid} valid, {report.invalid} invalid.'
        if report.invalid:
            raise CommandError(summary)
        self.log_and_stdout(summary)
