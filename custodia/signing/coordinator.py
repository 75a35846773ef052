"""Signs documents with the active certificate of an owner."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from certificates.analyzer import CertificateAnalyzer
from certificates.exceptions import (
    CertificateExpiredError,
    CertificateStorageError,
    InvalidContainerError,
    SigningError,
)
from certificates.services.registry import CertificateRegistry
from certificates.services.types import RequestMeta
from custodia.logger import LoggerMixin
from signing.password_variants import get_password_variants, iter_password_candidates
from signing.pdf_signer import DocumentSigningError, PdfDocumentSigner

if TYPE_CHECKING:
    from certificates.services.auditor import UsageAuditor
    from signing.password_variants import PasswordVariant
    from signing.pdf_signer import DocumentSigner, SignerIdentity

NO_VARIANT_SUCCEEDED = 'Unable to sign the document with the active certificate: no password variant succeeded.'


@dataclass(frozen=True)
class SignedDocument:
    """A document that carries a verified signature."""

    signed_bytes: bytes = field(repr=False)
    certificate_id: int
    password_variant: str


class SigningCoordinator(LoggerMixin):
    """Drives signing through the ordered password variants and records every attempt.

    A document is only ever returned if its signature verified, signing never degrades to an unsigned result.
    """

    def __init__(
        self,
        registry: CertificateRegistry,
        document_signer: DocumentSigner,
        auditor: UsageAuditor | None = None,
        analyzer: CertificateAnalyzer | None = None,
        password_variants: tuple[PasswordVariant, ...] | None = None,
    ) -> None:
        """Initializes the SigningCoordinator.

        Args:
            registry: Provides the active certificate.
            document_signer: Signs and verifies the document.
            auditor: Records the attempts. Defaults to the auditor of the registry.
            analyzer: Unlocks the container.
            password_variants: The variants to try. Defaults to the strategy configured in CUSTODIA_PASSWORD_VARIANTS.
        """
        self._registry = registry
        self._document_signer = document_signer
        self._auditor = auditor or registry.auditor
        self._analyzer = analyzer or CertificateAnalyzer()
        self._password_variants = password_variants or get_password_variants()

    @classmethod
    def from_settings(cls) -> SigningCoordinator:
        """Builds a coordinator signing PDFs, wired up from the Django settings."""
        return cls(CertificateRegistry.from_settings(), PdfDocumentSigner())

    def sign(
        self,
        owner_id: int,
        document_bytes: bytes,
        request_meta: RequestMeta | None = None,
        signer_identity: SignerIdentity | None = None,
    ) -> SignedDocument:
        """Signs the document with the owner's active certificate.

        Returns:
            The signed document, the certificate used and the name of the password variant that unlocked it.

        Raises:
            CertificateNotFoundError: If the owner has no active certificate.
            CertificateExpiredError: If the active certificate has expired.
            CertificateStorageError: If the container cannot be loaded.
            SigningError: If no password variant produced a verified signature.
        """
        request_meta = request_meta or RequestMeta()
        try:
            material = self._registry.get_active_for_signing(owner_id)
        except (CertificateExpiredError, CertificateStorageError) as exception:
            if exception.certificate_id is not None:
                self._auditor.record_attempt(
                    exception.certificate_id,
                    success=False,
                    originator_ip=request_meta.ip,
                    error_summary=exception.message,
                    actor=request_meta.actor_id,
                    user_agent=request_meta.user_agent,
                )
            raise

        last_error = ''
        for variant_name, candidate in iter_password_candidates(material.password, self._password_variants):
            try:
                analysis = self._analyzer.analyze(material.blob, candidate)
            except InvalidContainerError:
                self.logger.debug(
                    'Password variant %s did not unlock certificate %s.', variant_name, material.certificate_id
                )
                last_error = f'password variant {variant_name} did not unlock the container'
                continue

            try:
                signed_bytes = self._document_signer.sign(document_bytes, analysis, signer_identity)
            except DocumentSigningError as exception:
                self.logger.warning(
                    'Signing with certificate %s failed for password variant %s: %s',
                    material.certificate_id,
                    variant_name,
                    exception,
                )
                last_error = str(exception)
                continue

            self._auditor.record_attempt(
                material.certificate_id,
                success=True,
                originator_ip=request_meta.ip,
                actor=request_meta.actor_id,
                user_agent=request_meta.user_agent,
            )
            if variant_name != 'original':
                self.logger.warning(
                    'Certificate %s was unlocked by the fallback password variant %s.',
                    material.certificate_id,
                    variant_name,
                )
            self.logger.info('Signed document with certificate %s for owner %s.', material.certificate_id, owner_id)
            return SignedDocument(
                signed_bytes=signed_bytes, certificate_id=material.certificate_id, password_variant=variant_name
            )

        self._auditor.record_attempt(
            material.certificate_id,
            success=False,
            originator_ip=request_meta.ip,
            error_summary=f'{NO_VARIANT_SUCCEEDED} Last error: {last_error}',
            actor=request_meta.actor_id,
            user_agent=request_meta.user_agent,
        )
        self.logger.error('Signing with certificate %s failed for all password variants.', material.certificate_id)
        raise SigningError(NO_VARIANT_SUCCEEDED, certificate_id=material.certificate_id)
