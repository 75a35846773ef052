"""Management command to move certificate containers between storage backends."""

from __future__ import annotations

import argparse
from typing import Any

from django.core.management.base import CommandError

from certificates.management.commands.base_commands import MaintenanceCommand
from certificates.models import StorageBackend


class Command(MaintenanceCommand):
    """Migrates all certificate containers from one storage backend to another.

    Every copy is verified before the source is deleted. Failures of single certificates do not stop the run.
    """

    help = 'Migrate certificate containers between storage backends.'

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        """Adds the source and destination backend arguments."""
        parser.add_argument(
            '--from', dest='from_backend', choices=StorageBackend.values, default=StorageBackend.FILESYSTEM.value
        )
        parser.add_argument(
            '--to', dest='to_backend', choices=StorageBackend.values, default=StorageBackend.OBJECT.value
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Entrypoint for the command."""
        del args
        from_backend = StorageBackend(options['from_backend'])
        to_backend = StorageBackend(options['to_backend'])
        if from_backend == to_backend:
            err_msg = 'Source and destination backend must differ.'
            raise CommandError(err_msg)

        report = self.get_maintenance().migrate_all(from_backend, to_backend)

        for detail in report.details:
            if detail['status'] == 'failed':
                self.log_and_stdout(f'Certificate {detail["id"]}: {detail["error"]}', level='error')
        self.log_and_stdout(
            f'Migrated {report.succeeded} of {report.total} certificates from {from_backend} to {to_backend}, '
            f'{report.failed} failed.',
            level='warning' if report.failed else 'info',
        )
