"""Administrative maintenance of the certificates in custody."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from certificates.exceptions import CertificateNotFoundError, CertificateStorageError
from certificates.models import DeactivationReason, DigitalCertificateModel, StorageBackend
from certificates.storage import build_certificate_store
from custodia.logger import LoggerMixin

if TYPE_CHECKING:
    from certificates.storage import CertificateStore


@dataclass
class MigrationReport:
    """Outcome of a bulk migration between backends."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    details: list[dict[str, object]] = field(default_factory=list)


@dataclass
class IntegrityReport:
    """Outcome of an integrity check of all stored containers."""

    total: int = 0
    valid: int = 0
    invalid: int = 0
    details: list[dict[str, object]] = field(default_factory=list)


@dataclass
class OrphanReport:
    """Outcome of the orphan cleanup."""

    checked: int = 0
    orphaned: int = 0
    errors: list[dict[str, object]] = field(default_factory=list)


@dataclass(frozen=True)
class ExpiringCertificate:
    """An active certificate that expires soon, as handed to the expiry notifier."""

    certificate_id: int
    owner_id: int
    name: str
    expires_at: datetime.datetime
    days_to_expiry: int


class CertificateMaintenance(LoggerMixin):
    """Migrates containers between backends, checks their integrity and cleans up orphaned records."""

    def __init__(self, store: CertificateStore) -> None:
        """Initializes the maintenance service with the blob store."""
        self._store = store

    @classmethod
    def from_settings(cls) -> CertificateMaintenance:
        """Builds the maintenance service from the Django settings."""
        return cls(build_certificate_store())

    def migrate_certificate(self, certificate_id: int, to_backend: StorageBackend) -> str:
        """Moves the container of a certificate to another backend.

        The record points to the verified copy before the source is deleted.

        Returns:
            The new locator.

        Raises:
            CertificateNotFoundError: If the certificate does not exist.
            CertificateStorageError: If the copy fails or cannot be verified.
        """
        to_backend = StorageBackend(to_backend)
        try:
            certificate = DigitalCertificateModel.objects.get(pk=certificate_id)
        except DigitalCertificateModel.DoesNotExist as exception:
            err_msg = f'Certificate {certificate_id} not found.'
            raise CertificateNotFoundError(err_msg) from exception

        from_backend = StorageBackend(certificate.storage_backend)
        old_locator = certificate.blob_locator
        if from_backend == to_backend:
            return old_locator

        new_locator = self._store.copy_verified(
            old_locator, from_backend, to_backend, owner_id=certificate.owner_id, original_name=old_locator
        )

        try:
            with transaction.atomic():
                certificate = DigitalCertificateModel.objects.select_for_update().get(pk=certificate_id)
                certificate.blob_locator = new_locator
                certificate.storage_backend = to_backend
                certificate.save(update_fields=['blob_locator', 'storage_backend', 'updated_at'])
        except Exception:
            self._delete_quietly(new_locator, to_backend)
            raise

        self._delete_quietly(old_locator, from_backend)
        self.logger.info('Migrated certificate %s from %s to %s.', certificate_id, from_backend, to_backend)
        return new_locator

    def migrate_all(self, from_backend: StorageBackend, to_backend: StorageBackend) -> MigrationReport:
        """Migrates the containers of all certificates stored in a backend. Individual failures do not stop the run."""
        report = MigrationReport()
        certificate_ids = DigitalCertificateModel.objects.filter(
            storage_backend=from_backend, removed_at__isnull=True
        ).values_list('pk', flat=True)

        for certificate_id in certificate_ids:
            report.total += 1
            try:
                new_locator = self.migrate_certificate(certificate_id, to_backend)
            except (CertificateStorageError, CertificateNotFoundError) as exception:
                self.logger.exception('Failed to migrate certificate %s.', certificate_id)
                report.failed += 1
                report.details.append({'id': certificate_id, 'status': 'failed', 'error': str(exception)})
            else:
                report.succeeded += 1
                report.details.append({'id': certificate_id, 'status': 'migrated', 'locator': new_locator})

        self.logger.info(
            'Migration from %s to %s finished: %d succeeded, %d failed.',
            from_backend,
            to_backend,
            report.succeeded,
            report.failed,
        )
        return report

    def verify_integrity(self) -> IntegrityReport:
        """Checks that the container of every certificate that was not removed loads, decrypts and is not empty."""
        report = IntegrityReport()
        for certificate in DigitalCertificateModel.objects.filter(removed_at__isnull=True).order_by('pk'):
            report.total += 1
            try:
                blob = self._store.get(certificate.blob_locator, certificate.storage_backend)
            except CertificateStorageError as exception:
                report.invalid += 1
                report.details.append({'id': certificate.pk, 'name': certificate.name, 'error': str(exception)})
                continue

            if not blob:
                report.invalid += 1
                report.details.append({'id': certificate.pk, 'name': certificate.name, 'error': 'empty container'})
                continue

            report.valid += 1

        self.logger.info('Integrity check finished: %d valid, %d invalid.', report.valid, report.invalid)
        return report

    def cleanup_orphans(self) -> OrphanReport:
        """Deactivates active certificates whose container no longer exists. Records are never deleted."""
        report = OrphanReport()
        for certificate in DigitalCertificateModel.objects.filter(is_active=True).order_by('pk'):
            report.checked += 1
            try:
                exists = self._store.exists(certificate.blob_locator, certificate.storage_backend)
            except CertificateStorageError as exception:
                report.errors.append({'id': certificate.pk, 'error': str(exception)})
                continue

            if exists:
                continue

            with transaction.atomic():
                certificate = DigitalCertificateModel.objects.select_for_update().get(pk=certificate.pk)
                certificate.deactivate(DeactivationReason.ORPHANED)
                certificate.save(update_fields=['is_active', 'deactivated_at', 'deactivation_reason', 'updated_at'])
            report.orphaned += 1
            self.logger.warning('Deactivated certificate %s, its container is missing.', certificate.pk)

        return report

    def expiring_within(self, days: int) -> list[ExpiringCertificate]:
        """Lists the active certificates that expire within the given number of days, soonest first."""
        now = timezone.now()
        queryset = DigitalCertificateModel.objects.filter(
            is_active=True, expires_at__gte=now, expires_at__lte=now + datetime.timedelta(days=days)
        ).order_by('expires_at')
        return [
            ExpiringCertificate(
                certificate_id=certificate.pk,
                owner_id=certificate.owner_id,
                name=certificate.name,
                expires_at=certificate.expires_at,
                days_to_expiry=certificate.days_to_expiry,
            )
            for certificate in queryset
        ]

    def _delete_quietly(self, locator: str, backend: StorageBackend) -> None:
        try:
            self._store.delete(locator, backend)
        except CertificateStorageError:
            self.logger.exception('Failed to delete certificate container %s from %s.', locator, backend)
