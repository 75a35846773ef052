"""Tests for certificates.models module."""

import datetime
import uuid

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from certificates.models import DeactivationReason, DigitalCertificateModel
from util.db import RecordDeletionForbiddenError


def create_certificate(owner, *, is_active=True, is_validated=True, expires_in_days=365, **kwargs):
    """Creates a certificate record without any stored container."""
    now = timezone.now()
    values = {
        'owner': owner,
        'name': 'Test Signer',
        'serial_number': 'ABC123',
        'issuer': 'Test CA',
        'fingerprint': uuid.uuid4().hex.upper() + uuid.uuid4().hex.upper(),
        'issued_at': now - datetime.timedelta(days=1),
        'expires_at': now + datetime.timedelta(days=expires_in_days),
        'blob_locator': 'cert_1_0_0000000000000000.pfx',
        'encrypted_password': 'token',
        'password_hash': 'hash',
        'is_active': is_active,
        'is_validated': is_validated,
    }
    values.update(kwargs)
    return DigitalCertificateModel.objects.create(**values)


class TestDerivedStatus:
    """Tests for the derived status of a certificate."""

    def test_active(self, owner) -> None:
        """Test that a valid, validated and active certificate is active."""
        assert create_certificate(owner).status == DigitalCertificateModel.Status.ACTIVE

    def test_inactive_takes_precedence(self, owner) -> None:
        """Test that an inactive certificate is inactive even if it has expired."""
        certificate = create_certificate(owner, is_active=False, expires_in_days=-1)
        assert certificate.status == DigitalCertificateModel.Status.INACTIVE

    def test_expired(self, owner) -> None:
        """Test that an active certificate past its validity is expired."""
        assert create_certificate(owner, expires_in_days=-1).status == DigitalCertificateModel.Status.EXPIRED

    def test_expiring_soon(self, owner) -> None:
        """Test that an active certificate expiring within 30 days is expiring soon."""
        certificate = create_certificate(owner, expires_in_days=10)
        assert certificate.status == DigitalCertificateModel.Status.EXPIRING_SOON
        assert certificate.is_expiring_soon()
        assert not certificate.is_expiring_soon(days=5)

    def test_pending_validation(self, owner) -> None:
        """Test that an active, not validated certificate is pending validation."""
        certificate = create_certificate(owner, is_validated=False)
        assert certificate.status == DigitalCertificateModel.Status.PENDING_VALIDATION

    def test_days_to_expiry_rounds_up(self, owner) -> None:
        """Test that partial days count as a full day."""
        certificate = create_certificate(owner)
        certificate.expires_at = timezone.now() + datetime.timedelta(days=2, hours=1)
        assert certificate.days_to_expiry == 3

    def test_days_to_expiry_of_expired_certificate(self, owner) -> None:
        """Test that expired certificates have no days left."""
        assert create_certificate(owner, expires_in_days=-3).days_to_expiry <= 0


class TestConstraints:
    """Tests for the database constraints."""

    def test_one_active_certificate_per_owner(self, owner) -> None:
        """Test that a second active certificate of the same owner is rejected."""
        create_certificate(owner)
        with pytest.raises(IntegrityError), transaction.atomic():
            create_certificate(owner)

    def test_many_inactive_certificates_per_owner(self, owner) -> None:
        """Test that any number of inactive certificates may exist next to the active one."""
        create_certificate(owner)
        create_certificate(owner, is_active=False)
        create_certificate(owner, is_active=False)
        assert DigitalCertificateModel.objects.filter(owner=owner).count() == 3

    def test_active_certificates_of_different_owners(self, owner, other_owner) -> None:
        """Test that different owners each have their own active certificate."""
        create_certificate(owner)
        create_certificate(other_owner)
        assert DigitalCertificateModel.objects.filter(is_active=True).count() == 2

    def test_fingerprint_is_unique(self, owner, other_owner) -> None:
        """Test that the same certificate cannot be stored twice, not even for different owners."""
        certificate = create_certificate(owner)
        with pytest.raises(IntegrityError), transaction.atomic():
            create_certificate(other_owner, fingerprint=certificate.fingerprint)


class TestRetention:
    """Tests that certificate records are never deleted."""

    def test_instance_delete_is_refused(self, owner) -> None:
        """Test that deleting a single record raises."""
        certificate = create_certificate(owner)
        with pytest.raises(RecordDeletionForbiddenError):
            certificate.delete()
        assert DigitalCertificateModel.objects.filter(pk=certificate.pk).exists()

    def test_queryset_delete_is_refused(self, owner) -> None:
        """Test that bulk deletes raise."""
        create_certificate(owner)
        with pytest.raises(RecordDeletionForbiddenError):
            DigitalCertificateModel.objects.all().delete()
        assert DigitalCertificateModel.objects.count() == 1

    def test_deactivate_stamps_reason(self, owner) -> None:
        """Test that deactivate clears the flag and records the reason."""
        certificate = create_certificate(owner)
        certificate.deactivate(DeactivationReason.SUPERSEDED)
        assert not certificate.is_active
        assert certificate.deactivation_reason == DeactivationReason.SUPERSEDED
        assert certificate.deactivated_at is not None

    def test_repr_has_no_secrets(self, owner) -> None:
        """Test that the representation does not contain secret fields."""
        certificate = create_certificate(owner, encrypted_password='very-secret-token')
        assert 'very-secret-token' not in repr(certificate)
        assert 'very-secret-token' not in str(certificate)
