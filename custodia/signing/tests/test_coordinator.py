"""Tests for the SigningCoordinator."""

import datetime

import pytest

from certificates.audit import AuditAction
from certificates.exceptions import (
    CertificateExpiredError,
    CertificateNotFoundError,
    CertificateStorageError,
    SigningError,
)
from certificates.models import DigitalCertificateModel
from certificates.services.types import RequestMeta
from conftest import PFX_PASSWORD, SIGNER_COMMON_NAME
from signing.coordinator import NO_VARIANT_SUCCEEDED, SigningCoordinator
from signing.password_variants import STRICT_PASSWORD_VARIANTS
from signing.pdf_signer import DocumentSigningError, SignerIdentity

SIGNED_MARKER = b'\n%signed\n'


class FakeDocumentSigner:
    """Document signer that appends a marker instead of a signature."""

    def __init__(self, failures=0):
        """Initializes the signer that fails for the given number of calls."""
        self.failures = failures
        self.calls = []

    def sign(self, document, analysis, signer_identity=None):
        """Records the call and returns the marked document."""
        self.calls.append((analysis.name, signer_identity))
        if len(self.calls) <= self.failures:
            err_msg = 'The embedded signature does not verify.'
            raise DocumentSigningError(err_msg)
        return document + SIGNED_MARKER


@pytest.fixture
def document_signer():
    """A signer that always succeeds."""
    return FakeDocumentSigner()


@pytest.fixture
def coordinator(registry, document_signer):
    """A coordinator trying the legacy password variants."""
    return SigningCoordinator(registry, document_signer)


def store_password(cipher, certificate_id, password):
    """Replace the stored password, as done by older clients."""
    DigitalCertificateModel.objects.filter(pk=certificate_id).update(encrypted_password=cipher.encrypt_text(password))


class TestSign:
    """Tests for SigningCoordinator.sign."""

    def test_sign_success(self, coordinator, registry, owner, pkcs12_bytes, pdf_document, document_signer):
        """Test that a successful signature is counted."""
        summary = registry.register(owner.pk, pkcs12_bytes, None, PFX_PASSWORD)

        signed = coordinator.sign(owner.pk, pdf_document, RequestMeta(actor_id=owner.pk, ip='10.0.0.1'))

        assert signed.signed_bytes == pdf_document + SIGNED_MARKER
        assert signed.certificate_id == summary.id
        assert signed.password_variant == 'original'
        assert document_signer.calls == [(SIGNER_COMMON_NAME, None)]

        certificate = DigitalCertificateModel.objects.get(pk=summary.id)
        assert certificate.total_signatures == 1
        assert certificate.last_used_at is not None
        assert certificate.attempts[-1]['success'] is True
        assert certificate.attempts[-1]['originator_ip'] == '10.0.0.1'

    def test_signer_identity_is_passed(self, coordinator, registry, owner, pkcs12_bytes, pdf_document, document_signer):
        """Test that the display data reaches the document signer."""
        registry.register(owner.pk, pkcs12_bytes, None, PFX_PASSWORD)
        identity = SignerIdentity(display_name='Dr. Jane Roe', license_id='MED-1234')

        coordinator.sign(owner.pk, pdf_document, signer_identity=identity)

        assert document_signer.calls == [(SIGNER_COMMON_NAME, identity)]

    def test_no_active_certificate(self, coordinator, owner, pdf_document):
        """Test that signing without an active certificate fails."""
        with pytest.raises(CertificateNotFoundError):
            coordinator.sign(owner.pk, pdf_document)

    def test_expired_certificate(self, coordinator, registry, owner, pkcs12_bytes, pdf_document):
        """Test that an expired active certificate is rejected and the attempt recorded."""
        summary = registry.register(owner.pk, pkcs12_bytes, None, PFX_PASSWORD)
        DigitalCertificateModel.objects.filter(pk=summary.id).update(
            expires_at=datetime.datetime.now(datetime.UTC) - datetime.timedelta(minutes=1)
        )

        with pytest.raises(CertificateExpiredError) as exc_info:
            coordinator.sign(owner.pk, pdf_document)

        assert exc_info.value.certificate_id == summary.id
        certificate = DigitalCertificateModel.objects.get(pk=summary.id)
        assert certificate.total_signatures == 0
        assert len(certificate.attempts) == 1
        assert certificate.attempts[0]['success'] is False

    def test_storage_failure_is_recorded(self, coordinator, registry, owner, pkcs12_bytes, pdf_document):
        """Test that a container that cannot be loaded fails the signature and records the attempt."""
        summary = registry.register(owner.pk, pkcs12_bytes, None, PFX_PASSWORD)
        certificate = DigitalCertificateModel.objects.get(pk=summary.id)
        registry.store.delete(certificate.blob_locator, certificate.storage_backend)

        with pytest.raises(CertificateStorageError) as exc_info:
            coordinator.sign(owner.pk, pdf_document, RequestMeta(actor_id=owner.pk, ip='10.0.0.1'))

        assert exc_info.value.certificate_id == summary.id
        certificate.refresh_from_db()
        assert certificate.total_signatures == 0
        assert len(certificate.attempts) == 1
        assert certificate.attempts[0]['success'] is False
        assert certificate.attempts[0]['originator_ip'] == '10.0.0.1'
        assert certificate.attempts[0]['error_summary']

    def test_sign_attempt_event(self, coordinator, registry, owner, pkcs12_bytes, pdf_document, audit_sink):
        """Test that the sign_attempt event carries the request details and the usage counters."""
        summary = registry.register(owner.pk, pkcs12_bytes, None, PFX_PASSWORD)

        coordinator.sign(
            owner.pk, pdf_document, RequestMeta(actor_id=owner.pk, ip='10.0.0.1', user_agent='pytest-agent')
        )

        event = audit_sink.events[-1]
        assert event.action == AuditAction.SIGN_ATTEMPT
        assert event.certificate_id == summary.id
        assert event.actor == owner.pk
        assert event.ip == '10.0.0.1'
        assert event.user_agent == 'pytest-agent'
        assert event.before == {'total_signatures': 0, 'last_used_at': None}
        assert event.after['success'] is True
        assert event.after['total_signatures'] == 1


    def test_fallback_to_trimmed_password(self, coordinator, registry, owner, pkcs12_bytes, pdf_document, cipher):
        """Test that a password stored with surrounding whitespace still unlocks the container."""
        summary = registry.register(owner.pk, pkcs12_bytes, None, PFX_PASSWORD)
        store_password(cipher, summary.id, f'{PFX_PASSWORD}  ')

        signed = coordinator.sign(owner.pk, pdf_document)

        assert signed.password_variant == 'trimmed'
        assert DigitalCertificateModel.objects.get(pk=summary.id).total_signatures == 1

    def test_fallback_to_lowercased_password(self, coordinator, registry, owner, make_pkcs12, pdf_document, cipher):
        """Test that a password stored in the wrong case still unlocks the container."""
        summary = registry.register(owner.pk, make_pkcs12(password='legacy-pass'), None, 'legacy-pass')
        store_password(cipher, summary.id, 'LEGACY-PASS')

        assert coordinator.sign(owner.pk, pdf_document).password_variant == 'lowercased'

    def test_fallback_to_empty_password(self, coordinator, registry, owner, make_pkcs12, pdf_document, cipher):
        """Test that containers without password are unlocked by the empty variant."""
        summary = registry.register(owner.pk, make_pkcs12(password=''), None, '')
        store_password(cipher, summary.id, 'not-the-password')

        assert coordinator.sign(owner.pk, pdf_document).password_variant == 'empty'

    def test_strict_variants(self, registry, document_signer, owner, pkcs12_bytes, pdf_document, cipher):
        """Test that the strict strategy does not try any fallback."""
        summary = registry.register(owner.pk, pkcs12_bytes, None, PFX_PASSWORD)
        store_password(cipher, summary.id, f'{PFX_PASSWORD}  ')
        coordinator = SigningCoordinator(registry, document_signer, password_variants=STRICT_PASSWORD_VARIANTS)

        with pytest.raises(SigningError) as exc_info:
            coordinator.sign(owner.pk, pdf_document)

        assert exc_info.value.certificate_id == summary.id
        assert document_signer.calls == []

    def test_all_variants_fail(self, coordinator, registry, owner, pkcs12_bytes, pdf_document, cipher):
        """Test that exhausting all variants fails and records a single failed attempt."""
        summary = registry.register(owner.pk, pkcs12_bytes, None, PFX_PASSWORD)
        store_password(cipher, summary.id, 'completely-wrong')

        with pytest.raises(SigningError, match='no password variant succeeded'):
            coordinator.sign(owner.pk, pdf_document)

        certificate = DigitalCertificateModel.objects.get(pk=summary.id)
        assert certificate.total_signatures == 0
        assert len(certificate.attempts) == 1
        assert certificate.attempts[0]['error_summary'].startswith(NO_VARIANT_SUCCEEDED)

    def test_signing_failure_tries_next_variant(self, registry, owner, pkcs12_bytes, pdf_document, cipher):
        """Test that a signature that does not verify moves on to the next variant."""
        summary = registry.register(owner.pk, pkcs12_bytes, None, PFX_PASSWORD)
        store_password(cipher, summary.id, f' {PFX_PASSWORD}')
        document_signer = FakeDocumentSigner(failures=1)
        coordinator = SigningCoordinator(registry, document_signer)

        with pytest.raises(SigningError):
            coordinator.sign(owner.pk, pdf_document)

        # only the trimmed variant unlocks the container, and its signature failed
        assert len(document_signer.calls) == 1

    def test_signing_failure_never_returns_unsigned(self, registry, owner, pkcs12_bytes, pdf_document):
        """Test that a failing signer never yields a document."""
        registry.register(owner.pk, pkcs12_bytes, None, PFX_PASSWORD)
        coordinator = SigningCoordinator(registry, FakeDocumentSigner(failures=10))

        with pytest.raises(SigningError):
            coordinator.sign(owner.pk, pdf_document)
