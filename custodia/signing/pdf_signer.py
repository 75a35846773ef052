"""Applies and verifies PAdES signatures on PDF documents with pyHanko."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from io import BytesIO
from typing import TYPE_CHECKING, Protocol

from asn1crypto import keys as asn1_keys
from asn1crypto import x509 as asn1_x509
from cryptography.hazmat.primitives import serialization
from django.conf import settings
from pyhanko.pdf_utils.incremental_writer import IncrementalPdfFileWriter
from pyhanko.pdf_utils.reader import PdfFileReader
from pyhanko.sign import signers
from pyhanko.sign.fields import SigFieldSpec, SigSeedSubFilter
from pyhanko.sign.validation import validate_pdf_signature
from pyhanko_certvalidator.registry import SimpleCertificateStore

from custodia.logger import LoggerMixin

if TYPE_CHECKING:
    from certificates.analyzer import CertificateAnalysis

DEFAULT_REASON = 'Digitally signed document'
DEFAULT_LOCATION = ''


class DocumentSigningError(Exception):
    """Raised if a document cannot be signed, or the signature does not verify."""


@dataclass(frozen=True)
class SignerIdentity:
    """Display data of the signing professional. Only used as signature metadata, never persisted."""

    display_name: str
    license_id: str | None = None

    @property
    def signature_name(self) -> str:
        """The name embedded in the signature."""
        if self.license_id:
            return f'{self.display_name} ({self.license_id})'
        return self.display_name


class DocumentSigner(Protocol):
    """Signs a document with an unlocked certificate and verifies the result."""

    def sign(
        self, document: bytes, analysis: CertificateAnalysis, signer_identity: SignerIdentity | None = None
    ) -> bytes:
        """Returns the signed document.

        Raises:
            DocumentSigningError: If signing fails or the signature does not verify.
        """


class PdfDocumentSigner(LoggerMixin):
    """Signs PDF documents incrementally with a PAdES signature."""

    def __init__(self, reason: str | None = None, location: str | None = None) -> None:
        """Initializes the PdfDocumentSigner.

        Args:
            reason: The reason embedded in every signature. Defaults to CUSTODIA_SIGNATURE_REASON.
            location: The location embedded in every signature. Defaults to CUSTODIA_SIGNATURE_LOCATION.
        """
        self._reason = reason or getattr(settings, 'CUSTODIA_SIGNATURE_REASON', DEFAULT_REASON)
        self._location = location or getattr(settings, 'CUSTODIA_SIGNATURE_LOCATION', DEFAULT_LOCATION)

    @staticmethod
    def _build_signer(analysis: CertificateAnalysis) -> signers.SimpleSigner:
        certificate = asn1_x509.Certificate.load(analysis.certificate.public_bytes(serialization.Encoding.DER))
        private_key = asn1_keys.PrivateKeyInfo.load(
            analysis.private_key.private_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )
        chain = [
            asn1_x509.Certificate.load(extra.public_bytes(serialization.Encoding.DER))
            for extra in analysis.additional_certificates
        ]
        return signers.SimpleSigner(
            signing_cert=certificate,
            signing_key=private_key,
            cert_registry=SimpleCertificateStore.from_certs([certificate, *chain]),
        )

    def sign(
        self, document: bytes, analysis: CertificateAnalysis, signer_identity: SignerIdentity | None = None
    ) -> bytes:
        """Signs the PDF and verifies the embedded signature.

        Args:
            document: The PDF to sign.
            analysis: The unlocked certificate.
            signer_identity: Optional display data of the signer.

        Returns:
            The signed PDF.

        Raises:
            DocumentSigningError: If the PDF cannot be signed, or the signature does not verify.
        """
        field_name = f'Signature_{uuid.uuid4().hex[:12]}'
        signature_meta = signers.PdfSignatureMetadata(
            field_name=field_name,
            reason=self._reason,
            location=self._location or None,
            name=signer_identity.signature_name if signer_identity else analysis.name,
            subfilter=SigSeedSubFilter.PADES,
        )

        try:
            writer = IncrementalPdfFileWriter(BytesIO(document))
            output = signers.sign_pdf(
                writer,
                signature_meta,
                signer=self._build_signer(analysis),
                new_field_spec=SigFieldSpec(sig_field_name=field_name),
            )
            signed = output.getvalue()
        except Exception as exception:
            err_msg = f'Failed to sign the document: {exception}'
            raise DocumentSigningError(err_msg) from exception

        self.verify(signed, field_name)
        return signed

    def verify(self, signed: bytes, field_name: str | None = None) -> None:
        """Checks that the (named or last) embedded signature is intact and cryptographically valid.

        Trust in the issuer is not evaluated here.

        Raises:
            DocumentSigningError: If no such signature exists or it does not verify.
        """
        try:
            embedded_signatures = PdfFileReader(BytesIO(signed)).embedded_signatures
            if field_name is not None:
                embedded_signatures = [sig for sig in embedded_signatures if sig.field_name == field_name]
            if not embedded_signatures:
                err_msg = 'The signed document does not contain the expected signature.'
                raise DocumentSigningError(err_msg)
            status = validate_pdf_signature(embedded_signatures[-1])
        except DocumentSigningError:
            raise
        except Exception as exception:
            err_msg = f'Failed to verify the signed document: {exception}'
            raise DocumentSigningError(err_msg) from exception

        if not (status.intact and status.valid):
            err_msg = 'The embedded signature does not verify.'
            raise DocumentSigningError(err_msg)
        self.logger.debug('Verified signature %s.', field_name)
