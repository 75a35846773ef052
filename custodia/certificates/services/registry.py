"""Lifecycle of the certificates in custody: registration, activation, removal and lookup."""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.db import IntegrityError, transaction
from django.db.models import Max, Sum
from django.utils import timezone

from certificates.analyzer import CertificateAnalyzer
from certificates.audit import AuditAction, AuditEvent, SafeAuditSink, get_audit_sink
from certificates.exceptions import (
    CertificateConflictError,
    CertificateExpiredError,
    CertificateNotFoundError,
    CertificateStorageError,
    CertificateValidationError,
)
from certificates.models import DEFAULT_EXPIRY_WARNING_DAYS, DeactivationReason, DigitalCertificateModel
from certificates.services.auditor import UsageAuditor
from certificates.services.types import CertificateStatistics, CertificateSummary, RequestMeta, SigningMaterial
from certificates.storage import build_blob_cipher, build_certificate_store
from custodia.logger import LoggerMixin
from util.crypto import CipherError

if TYPE_CHECKING:
    from certificates.analyzer import CertificateAnalysis
    from certificates.audit import AuditSink
    from certificates.storage import CertificateStore, StoredBlob
    from util.crypto import BlobCipher

MAX_REGISTRATION_ATTEMPTS = 3
PASSWORD_CONFIRMATION_FAILED = 'password confirmation failed'
RECENT_USE_WARNING_DAYS = 7
RECENTLY_USED_WARNING = 'This certificate was used recently. Take care when removing it.'


class CertificateRegistry(LoggerMixin):
    """Owns the certificate records and keeps at most one certificate per owner active.

    The blob store and the cipher are handed in explicitly, the registry never reads key material itself.
    """

    def __init__(
        self,
        store: CertificateStore,
        cipher: BlobCipher,
        analyzer: CertificateAnalyzer | None = None,
        auditor: UsageAuditor | None = None,
        audit_sink: AuditSink | None = None,
    ) -> None:
        """Initializes the CertificateRegistry."""
        self._store = store
        self._cipher = cipher
        self._analyzer = analyzer or CertificateAnalyzer()
        self._audit_sink = SafeAuditSink(audit_sink) if audit_sink is not None else get_audit_sink()
        self._auditor = auditor or UsageAuditor(self._audit_sink)

    @classmethod
    def from_settings(cls) -> CertificateRegistry:
        """Builds a registry wired up from the Django settings."""
        cipher = build_blob_cipher()
        return cls(store=build_certificate_store(cipher), cipher=cipher)

    @property
    def store(self) -> CertificateStore:
        """The blob store the containers live in."""
        return self._store

    @property
    def auditor(self) -> UsageAuditor:
        """The auditor recording usage attempts."""
        return self._auditor

    # ---------------------------------------------------- Registration ------------------------------------------------

    def register(
        self,
        owner_id: int,
        blob: bytes,
        original_name: str | None,
        password: str,
        request_meta: RequestMeta | None = None,
    ) -> CertificateSummary:
        """Registers a new certificate and makes it the active one of the owner.

        All certificates of the owner that were active before are superseded.

        Args:
            owner_id: The owner of the certificate.
            blob: The raw PKCS#12 container.
            original_name: The file name of the upload.
            password: The password of the container. It is stored encrypted and hashed, never in plain text.
            request_meta: Who registers the certificate.

        Returns:
            The public metadata of the new certificate.

        Raises:
            InvalidContainerError: If the container cannot be unlocked with the password.
            CertificateValidationError: If the certificate has already expired.
            CertificateConflictError: If the certificate is already registered.
            CertificateStorageError: If the container cannot be stored.
        """
        request_meta = request_meta or RequestMeta()
        analysis = self._analyzer.analyze(blob, password)

        if analysis.is_expired(timezone.now()):
            err_msg = f'The certificate expired on {analysis.expires_at.isoformat()} and cannot be registered.'
            raise CertificateValidationError(err_msg, code=CertificateValidationError.EXPIRED_AT_REGISTRATION)

        self._raise_if_duplicate(analysis.fingerprint)

        encrypted_password = self._cipher.encrypt_text(password)
        password_hash = make_password(password)

        stored = self._store.put(owner_id, blob, original_name, {'fingerprint': analysis.fingerprint})
        try:
            certificate, superseded_ids = self._insert_with_retry(
                owner_id, analysis, stored, encrypted_password, password_hash, request_meta
            )
        except Exception:
            self._discard_blob(stored.locator, stored.backend)
            raise

        self.logger.info(
            'Registered certificate %s (%s) for owner %s, superseding %s.',
            certificate.pk,
            analysis.fingerprint,
            owner_id,
            superseded_ids,
        )
        self._emit(
            AuditAction.REGISTER,
            certificate.pk,
            request_meta,
            before={'superseded': superseded_ids},
            after=certificate.to_log_dict(),
        )
        return CertificateSummary.from_model(certificate)

    def _raise_if_duplicate(self, fingerprint: str) -> None:
        if DigitalCertificateModel.objects.filter(fingerprint=fingerprint).exists():
            err_msg = 'This certificate is already registered.'
            raise CertificateConflictError(err_msg, code=CertificateConflictError.DUPLICATE_CERTIFICATE)

    def _insert_with_retry(
        self,
        owner_id: int,
        analysis: CertificateAnalysis,
        stored: StoredBlob,
        encrypted_password: str,
        password_hash: str,
        request_meta: RequestMeta,
    ) -> tuple[DigitalCertificateModel, list[int]]:
        for attempt in range(1, MAX_REGISTRATION_ATTEMPTS + 1):
            try:
                with transaction.atomic():
                    return self._insert(owner_id, analysis, stored, encrypted_password, password_hash, request_meta)
            except IntegrityError as exception:
                self._raise_if_duplicate(analysis.fingerprint)
                if attempt == MAX_REGISTRATION_ATTEMPTS:
                    err_msg = 'Another certificate was activated concurrently. Please try again.'
                    raise CertificateConflictError(
                        err_msg, code=CertificateConflictError.ACTIVATION_CONFLICT
                    ) from exception
                self.logger.warning(
                    'Concurrent activation for owner %s, retrying registration (attempt %d).', owner_id, attempt
                )
        err_msg = 'Registration retries exhausted.'
        raise CertificateConflictError(err_msg, code=CertificateConflictError.ACTIVATION_CONFLICT)

    def _insert(
        self,
        owner_id: int,
        analysis: CertificateAnalysis,
        stored: StoredBlob,
        encrypted_password: str,
        password_hash: str,
        request_meta: RequestMeta,
    ) -> tuple[DigitalCertificateModel, list[int]]:
        now = timezone.now()
        superseded_ids = []
        active = DigitalCertificateModel.objects.select_for_update().filter(owner_id=owner_id, is_active=True)
        for previous in active:
            previous.deactivate(DeactivationReason.SUPERSEDED, now)
            previous.save(update_fields=['is_active', 'deactivated_at', 'deactivation_reason', 'updated_at'])
            superseded_ids.append(previous.pk)

        certificate = DigitalCertificateModel.objects.create(
            owner_id=owner_id,
            name=analysis.name,
            serial_number=analysis.serial_number,
            issuer=analysis.issuer,
            fingerprint=analysis.fingerprint,
            signature_algorithm=analysis.signature_algorithm,
            key_size=analysis.key_size,
            issued_at=analysis.issued_at,
            expires_at=analysis.expires_at,
            blob_locator=stored.locator,
            storage_backend=stored.backend,
            encrypted_password=encrypted_password,
            password_hash=password_hash,
            is_active=False,
            is_validated=False,
            created_by_id=request_meta.actor_id,
            creation_ip=request_meta.ip,
            creation_user_agent=request_meta.user_agent,
        )
        # The container was unlocked by the analyzer, so the pending record is valid.
        certificate.is_active = True
        certificate.is_validated = True
        certificate.save(update_fields=['is_active', 'is_validated', 'updated_at'])
        return certificate, superseded_ids

    # ------------------------------------------------------ Signing ---------------------------------------------------

    def get_active_for_signing(self, owner_id: int) -> SigningMaterial:
        """Loads the decrypted container and password of the active certificate of the owner.

        Raises:
            CertificateNotFoundError: If the owner has no active certificate.
            CertificateExpiredError: If the active certificate has expired since it was activated.
            CertificateStorageError: If the container or the password cannot be loaded.
        """
        now = timezone.now()
        active = list(DigitalCertificateModel.objects.filter(owner_id=owner_id, is_active=True))
        if not active:
            err_msg = 'No active certificate found. Please upload a signing certificate.'
            raise CertificateNotFoundError(err_msg)

        usable = [certificate for certificate in active if not certificate.is_expired(now)]
        if not usable:
            expired = active[0]
            err_msg = f'The active certificate expired on {expired.expires_at.isoformat()}.'
            raise CertificateExpiredError(err_msg, certificate_id=expired.pk)

        certificate = usable[0]
        try:
            blob = self._store.get(certificate.blob_locator, certificate.storage_backend)
        except CertificateStorageError as exception:
            raise CertificateStorageError(exception.message, certificate_id=certificate.pk) from exception
        try:
            password = self._cipher.decrypt_text(certificate.encrypted_password)
        except CipherError as exception:
            err_msg = f'Failed to decrypt the password of certificate {certificate.pk}.'
            raise CertificateStorageError(err_msg, certificate_id=certificate.pk) from exception

        return SigningMaterial(
            certificate_id=certificate.pk,
            blob=blob,
            password=password,
            metadata=CertificateSummary.from_model(certificate),
        )

    # ----------------------------------------------------- State changes ----------------------------------------------

    def _get_owned(self, certificate_id: int, owner_id: int, *, for_update: bool = False) -> DigitalCertificateModel:
        queryset = DigitalCertificateModel.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(pk=certificate_id, owner_id=owner_id)
        except DigitalCertificateModel.DoesNotExist as exception:
            err_msg = f'Certificate {certificate_id} not found.'
            raise CertificateNotFoundError(err_msg) from exception

    def set_active(
        self, certificate_id: int, owner_id: int, desired: bool, request_meta: RequestMeta | None = None  # noqa: FBT001
    ) -> CertificateSummary:
        """Activates or deactivates a certificate of the owner.

        Raises:
            CertificateNotFoundError: If the certificate does not exist, belongs to another owner or was removed.
            CertificateExpiredError: If an expired certificate is to be activated.
            CertificateConflictError: If another unexpired certificate of the owner is active.
        """
        request_meta = request_meta or RequestMeta()
        with transaction.atomic():
            certificate = self._get_owned(certificate_id, owner_id, for_update=True)
            before = certificate.to_log_dict()

            if desired:
                if not self._activate(certificate):
                    return CertificateSummary.from_model(certificate)
                action = AuditAction.ACTIVATE
            elif not certificate.is_active:
                return CertificateSummary.from_model(certificate)
            else:
                certificate.deactivate(DeactivationReason.DEACTIVATED)
                certificate.save(update_fields=['is_active', 'deactivated_at', 'deactivation_reason', 'updated_at'])
                action = AuditAction.DEACTIVATE

        self.logger.info('Certificate %s of owner %s: %s.', certificate_id, owner_id, action)
        self._emit(action, certificate.pk, request_meta, before=before, after=certificate.to_log_dict())
        return CertificateSummary.from_model(certificate)

    def _activate(self, certificate: DigitalCertificateModel) -> bool:
        now = timezone.now()
        if certificate.removed_at is not None:
            err_msg = f'Certificate {certificate.pk} has been removed.'
            raise CertificateNotFoundError(err_msg)
        if certificate.is_expired(now):
            err_msg = f'Certificate {certificate.pk} expired on {certificate.expires_at.isoformat()}.'
            raise CertificateExpiredError(err_msg, certificate_id=certificate.pk)
        if certificate.is_active:
            return False

        others = (
            DigitalCertificateModel.objects.select_for_update()
            .filter(owner_id=certificate.owner_id, is_active=True)
            .exclude(pk=certificate.pk)
        )
        for other in others:
            if not other.is_expired(now):
                err_msg = 'Another certificate is already active. Deactivate it first.'
                raise CertificateConflictError(err_msg, code=CertificateConflictError.ACTIVATION_CONFLICT)
            other.deactivate(DeactivationReason.EXPIRED, now)
            other.save(update_fields=['is_active', 'deactivated_at', 'deactivation_reason', 'updated_at'])

        certificate.is_active = True
        certificate.deactivated_at = None
        certificate.deactivation_reason = ''
        try:
            with transaction.atomic():
                certificate.save(update_fields=['is_active', 'deactivated_at', 'deactivation_reason', 'updated_at'])
        except IntegrityError as exception:
            err_msg = 'Another certificate was activated concurrently.'
            raise CertificateConflictError(err_msg, code=CertificateConflictError.ACTIVATION_CONFLICT) from exception
        return True

    def remove(self, certificate_id: int, owner_id: int, request_meta: RequestMeta | None = None) -> str | None:
        """Removes a certificate of the owner.

        The record is kept inactive for auditing and the container is deleted. Removing an already removed
        certificate does nothing. Failures to delete the container are logged, not raised.

        Returns:
            A warning if the certificate signed documents within the last RECENT_USE_WARNING_DAYS days,
            otherwise None. The warning never blocks the removal.

        Raises:
            CertificateNotFoundError: If the certificate does not exist or belongs to another owner.
        """
        request_meta = request_meta or RequestMeta()
        with transaction.atomic():
            certificate = self._get_owned(certificate_id, owner_id, for_update=True)
            if certificate.removed_at is not None:
                self.logger.info('Certificate %s has already been removed.', certificate_id)
                return None

            before = certificate.to_log_dict()
            now = timezone.now()
            recently_used = (
                certificate.total_signatures > 0
                and certificate.last_used_at is not None
                and certificate.last_used_at > now - datetime.timedelta(days=RECENT_USE_WARNING_DAYS)
            )
            if certificate.is_active:
                certificate.deactivate(DeactivationReason.REMOVED, now)
            certificate.removed_at = now
            certificate.save(
                update_fields=['is_active', 'deactivated_at', 'deactivation_reason', 'removed_at', 'updated_at']
            )

        self._discard_blob(certificate.blob_locator, certificate.storage_backend)
        self.logger.info('Removed certificate %s of owner %s.', certificate_id, owner_id)
        self._emit(AuditAction.REMOVE, certificate.pk, request_meta, before=before, after=certificate.to_log_dict())

        if recently_used:
            self.logger.warning('Removed certificate %s, which was used recently.', certificate_id)
            return RECENTLY_USED_WARNING
        return None

    def _discard_blob(self, locator: str, backend: str) -> None:
        try:
            if not self._store.delete(locator, backend):
                self.logger.warning('Certificate container %s was already absent from %s.', locator, backend)
        except CertificateStorageError:
            self.logger.exception('Failed to delete certificate container %s from %s.', locator, backend)

    # ------------------------------------------------------- Queries --------------------------------------------------

    def list_for_owner(self, owner_id: int, *, include_inactive: bool = False) -> list[CertificateSummary]:
        """Lists the certificates of the owner, newest first."""
        queryset = DigitalCertificateModel.objects.filter(owner_id=owner_id)
        if not include_inactive:
            queryset = queryset.filter(is_active=True)
        return [CertificateSummary.from_model(certificate) for certificate in queryset.order_by('-created_at', '-id')]

    def get_for_owner(self, certificate_id: int, owner_id: int) -> CertificateSummary:
        """Returns a single certificate of the owner.

        Raises:
            CertificateNotFoundError: If the certificate does not exist or belongs to another owner.
        """
        return CertificateSummary.from_model(self._get_owned(certificate_id, owner_id))

    def verify_password(
        self, certificate_id: int, owner_id: int, password: str, request_meta: RequestMeta | None = None
    ) -> bool:
        """Checks a password against the stored hash. Mismatches are recorded as failed attempts."""
        request_meta = request_meta or RequestMeta()
        certificate = self._get_owned(certificate_id, owner_id)
        if check_password(password, certificate.password_hash):
            return True

        self.logger.warning('Password confirmation failed for certificate %s.', certificate_id)
        self._auditor.record_attempt(
            certificate.pk,
            success=False,
            originator_ip=request_meta.ip,
            error_summary=PASSWORD_CONFIRMATION_FAILED,
            actor=request_meta.actor_id,
            user_agent=request_meta.user_agent,
        )
        return False

    def statistics(self, owner_id: int) -> CertificateStatistics:
        """Computes the usage totals of the owner's certificates."""
        now = timezone.now()
        warning_days = getattr(settings, 'CUSTODIA_EXPIRY_WARNING_DAYS', DEFAULT_EXPIRY_WARNING_DAYS)
        queryset = DigitalCertificateModel.objects.filter(owner_id=owner_id)
        totals = queryset.aggregate(total_signatures=Sum('total_signatures'), last_used_at=Max('last_used_at'))
        expiring_soon = queryset.filter(
            is_active=True, expires_at__gt=now, expires_at__lte=now + datetime.timedelta(days=warning_days)
        ).order_by('expires_at')

        return CertificateStatistics(
            total=queryset.count(),
            active=queryset.filter(is_active=True, expires_at__gt=now).count(),
            expired=queryset.filter(expires_at__lte=now).count(),
            total_signatures=totals['total_signatures'] or 0,
            last_used_at=totals['last_used_at'],
            expiring_soon=[CertificateSummary.from_model(certificate) for certificate in expiring_soon],
        )

    def _emit(
        self,
        action: str,
        certificate_id: int,
        request_meta: RequestMeta,
        before: dict | None = None,
        after: dict | None = None,
    ) -> None:
        self._audit_sink.emit(
            AuditEvent(
                actor=request_meta.actor_id,
                action=action,
                certificate_id=certificate_id,
                before=before,
                after=after,
                ip=request_meta.ip,
                user_agent=request_meta.user_agent,
            )
        )
