"""Management command to list the active certificates that expire soon."""

from __future__ import annotations

import argparse
from typing import Any

from django.conf import settings

from certificates.management.commands.base_commands import MaintenanceCommand
from certificates.models import DEFAULT_EXPIRY_WARNING_DAYS


class Command(MaintenanceCommand):
    """Lists active certificates that expire within the given number of days."""

    help = 'List active certificates that expire soon.'

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        """Adds the --days argument."""
        parser.add_argument(
            '--days',
            type=int,
            default=getattr(settings, 'CUSTODIA_EXPIRY_WARNING_DAYS', DEFAULT_EXPIRY_WARNING_DAYS),
            help='Look ahead window in days',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Entrypoint for the command."""
        del args
        days = options['days']
        expiring = self.get_maintenance().expiring_within(days)

        for certificate in expiring:
            self.stdout.write(
                f'{certificate.certificate_id}\towner={certificate.owner_id}\t{certificate.name}\t'
                f'{certificate.expires_at.isoformat()}\t{certificate.days_to_expiry} days'
            )
        self.log_and_stdout(
            f'{len(expiring)} active certificates expire within {days} days.',
            level='warning' if expiring else 'info',
        )
