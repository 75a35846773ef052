"""Module that contains the DigitalCertificateModel."""

from __future__ import annotations

import datetime
import math
from typing import Any

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from custodia.logger import LoggerMixin
from util.db import RetainedRecordManager, RetainedRecordModel

__all__ = ['DeactivationReason', 'DigitalCertificateModel', 'StorageBackend']

MAX_RECORDED_ATTEMPTS = 50
DEFAULT_EXPIRY_WARNING_DAYS = 30


class StorageBackend(models.TextChoices):
    """Backends a certificate container can be stored in."""

    FILESYSTEM = 'filesystem', _('Filesystem')
    OBJECT = 'object', _('Object Storage')


class DeactivationReason(models.TextChoices):
    """Why a certificate stopped being the active one."""

    SUPERSEDED = 'superseded', _('Superseded by a new certificate')
    DEACTIVATED = 'deactivated', _('Deactivated by the owner')
    REMOVED = 'removed', _('Removed by the owner')
    EXPIRED = 'expired', _('Expired')
    ORPHANED = 'orphaned', _('Certificate container no longer found in storage')


class DigitalCertificateModel(LoggerMixin, RetainedRecordModel):
    """A PKCS#12 signing credential in custody for a single owner.

    The container itself lives encrypted in a blob store, this record only references it.
    Records are never deleted, removing a certificate deactivates it.
    """

    objects: RetainedRecordManager[DigitalCertificateModel] = RetainedRecordManager()

    class Status(models.TextChoices):
        """Derived status of a certificate."""

        INACTIVE = 'inactive', _('Inactive')
        EXPIRED = 'expired', _('Expired')
        EXPIRING_SOON = 'expiring_soon', _('Expiring soon')
        PENDING_VALIDATION = 'pending_validation', _('Pending validation')
        ACTIVE = 'active', _('Active')

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_('Owner'),
        on_delete=models.PROTECT,
        related_name='digital_certificates',
    )

    # ------------------------------------------------ Certificate data ------------------------------------------------

    name = models.CharField(verbose_name=_('Name'), max_length=256)
    serial_number = models.CharField(verbose_name=_('Serial Number'), max_length=256)
    issuer = models.CharField(verbose_name=_('Issuer'), max_length=256)
    fingerprint = models.CharField(
        verbose_name=_('Fingerprint (SHA256)'), max_length=64, unique=True, editable=False
    )
    signature_algorithm = models.CharField(verbose_name=_('Signature Algorithm'), max_length=256, blank=True)
    key_size = models.PositiveIntegerField(verbose_name=_('Key Size'), null=True, blank=True)
    issued_at = models.DateTimeField(verbose_name=_('Not Valid Before'))
    expires_at = models.DateTimeField(verbose_name=_('Not Valid After'), db_index=True)

    # ------------------------------------------------- Secret material ------------------------------------------------

    blob_locator = models.CharField(verbose_name=_('Blob Locator'), max_length=1024, editable=False)
    encrypted_password = models.TextField(verbose_name=_('Encrypted Password'), editable=False)
    password_hash = models.CharField(verbose_name=_('Password Hash'), max_length=256, editable=False)

    # ------------------------------------------------------ State -----------------------------------------------------

    is_active = models.BooleanField(verbose_name=_('Active'), default=False)
    is_validated = models.BooleanField(verbose_name=_('Validated'), default=False)
    storage_backend = models.CharField(
        verbose_name=_('Storage Backend'),
        max_length=16,
        choices=StorageBackend,
        default=StorageBackend.FILESYSTEM,
    )
    deactivated_at = models.DateTimeField(verbose_name=_('Deactivated At'), null=True, blank=True)
    deactivation_reason = models.CharField(
        verbose_name=_('Deactivation Reason'),
        max_length=16,
        choices=DeactivationReason,
        blank=True,
        default='',
    )
    removed_at = models.DateTimeField(verbose_name=_('Removed At'), null=True, blank=True)

    # ------------------------------------------------------ Usage -----------------------------------------------------

    total_signatures = models.PositiveIntegerField(verbose_name=_('Total Signatures'), default=0)
    last_used_at = models.DateTimeField(verbose_name=_('Last Used At'), null=True, blank=True)
    attempts = models.JSONField(verbose_name=_('Usage Attempts'), default=list, blank=True)

    # ------------------------------------------------------ Audit -----------------------------------------------------

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_('Created By'),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    creation_ip = models.GenericIPAddressField(verbose_name=_('Creation IP'), null=True, blank=True)
    creation_user_agent = models.CharField(verbose_name=_('Creation User Agent'), max_length=512, blank=True)
    created_at = models.DateTimeField(verbose_name=_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(verbose_name=_('Updated At'), auto_now=True)

    class Meta:
        """Meta options for the DigitalCertificateModel."""

        verbose_name = _('Digital Certificate')
        verbose_name_plural = _('Digital Certificates')
        ordering = ('-created_at', '-id')
        constraints = (
            models.UniqueConstraint(
                fields=['owner'],
                condition=models.Q(is_active=True),
                name='unique_active_certificate_per_owner',
            ),
        )
        indexes = (models.Index(fields=['owner', 'is_active'], name='certificate_owner_active_idx'),)

    def __str__(self) -> str:
        """Returns a human-readable string representation."""
        return f'DigitalCertificate(CN={self.name}, owner={self.owner_id})'

    def __repr__(self) -> str:
        """Returns a string representation without any secret material."""
        return f'DigitalCertificateModel(id={self.pk}, name={self.name!r}, is_active={self.is_active})'

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        """Checks whether the validity period has ended."""
        now = now or timezone.now()
        return self.expires_at <= now

    def is_expiring_soon(self, days: int = DEFAULT_EXPIRY_WARNING_DAYS, now: datetime.datetime | None = None) -> bool:
        """Checks whether the certificate expires within the given number of days, but has not expired yet."""
        now = now or timezone.now()
        return now < self.expires_at <= now + datetime.timedelta(days=days)

    @property
    def days_to_expiry(self) -> int:
        """Number of days until expiry, rounded up. Zero or negative once expired."""
        remaining = (self.expires_at - timezone.now()).total_seconds()
        return math.ceil(remaining / 86400)

    @property
    def status(self) -> str:
        """Derived status, evaluated in precedence order."""
        now = timezone.now()
        if not self.is_active:
            return self.Status.INACTIVE
        if self.is_expired(now):
            return self.Status.EXPIRED
        if self.is_expiring_soon(now=now):
            return self.Status.EXPIRING_SOON
        if not self.is_validated:
            return self.Status.PENDING_VALIDATION
        return self.Status.ACTIVE

    def deactivate(self, reason: DeactivationReason, now: datetime.datetime | None = None) -> None:
        """Clears the active flag and stamps the reason. The caller saves the record."""
        self.is_active = False
        self.deactivated_at = now or timezone.now()
        self.deactivation_reason = reason

    def to_log_dict(self) -> dict[str, Any]:
        """Returns the non-secret state used in audit events."""
        return {
            'is_active': self.is_active,
            'is_validated': self.is_validated,
            'storage_backend': self.storage_backend,
            'deactivation_reason': self.deactivation_reason,
        }
