"""Management command to deactivate certificates whose container is missing."""

from __future__ import annotations

from typing import Any

from certificates.management.commands.base_commands import MaintenanceCommand


class Command(MaintenanceCommand):
    """Deactivates active certificates whose container no longer exists in storage. Records are kept."""

    help = 'Deactivate certificates whose container no longer exists.'

    def handle(self, *args: Any, **options: Any) -> None:
        """Entrypoint for the command."""
        del args, options
        report = self.get_maintenance().cleanup_orphans()

        for error in report.errors:
            self.log_and_stdout(f'Certificate {error["id"]}: {error["error"]}', level='error')
        self.log_and_stdout(
            f'Checked {report.checked} active certificates, deactivated {report.orphaned} orphaned.',
            level='warning' if report.orphaned else 'info',
        )
