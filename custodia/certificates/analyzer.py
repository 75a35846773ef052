"""Parses PKCS#12 containers and extracts the metadata of the signing certificate."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.x509.oid import NameOID
from trustpoint_core.oid import AlgorithmIdentifier
from trustpoint_core.serializer import CredentialSerializer

from certificates.exceptions import InvalidContainerError
from custodia.logger import LoggerMixin

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

_ED25519_KEY_SIZE = 256
_ED448_KEY_SIZE = 456


@dataclass(frozen=True)
class CertificateAnalysis:
    """Metadata of an unlocked PKCS#12 container.

    The certificate and key objects are kept for the document signer, they are never persisted.
    """

    name: str
    issuer: str
    serial_number: str
    fingerprint: str
    issued_at: datetime.datetime
    expires_at: datetime.datetime
    signature_algorithm: str
    key_size: int | None
    certificate: x509.Certificate
    private_key: PrivateKeyTypes
    additional_certificates: tuple[x509.Certificate, ...] = ()

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        """Checks whether the validity period has ended."""
        now = now or datetime.datetime.now(datetime.UTC)
        return self.expires_at <= now


def _get_common_name(name: x509.Name) -> str:
    attributes = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        return name.rfc4514_string()
    value = attributes[0].value
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return value


def _get_signature_algorithm_name(certificate: x509.Certificate) -> str:
    dotted_string = certificate.signature_algorithm_oid.dotted_string
    for algorithm in AlgorithmIdentifier:
        if algorithm.dotted_string == dotted_string:
            return algorithm.verbose_name
    return dotted_string


def _get_key_size(private_key: PrivateKeyTypes) -> int | None:
    if isinstance(private_key, (rsa.RSAPrivateKey, dsa.DSAPrivateKey, ec.EllipticCurvePrivateKey)):
        return private_key.key_size
    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        return _ED25519_KEY_SIZE
    if isinstance(private_key, ed448.Ed448PrivateKey):
        return _ED448_KEY_SIZE
    return None


class CertificateAnalyzer(LoggerMixin):
    """Unlocks PKCS#12 containers and analyzes the contained signing certificate.

    The analyzer is free of side effects. It neither logs secrets nor touches any storage.
    """

    @staticmethod
    def fingerprint(certificate: x509.Certificate) -> str:
        """Returns the SHA-256 fingerprint of the DER encoded certificate as uppercase hex."""
        return certificate.fingerprint(hashes.SHA256()).hex().upper()

    def analyze(self, blob: bytes, password: str | bytes | None) -> CertificateAnalysis:
        """Unlocks the container and extracts the certificate metadata.

        Args:
            blob: The raw PKCS#12 container.
            password: The container password. An empty password is passed as no password.

        Returns:
            The analysis of the leaf certificate.

        Raises:
            InvalidContainerError:
                If the password is wrong, the structure is corrupt or the container lacks a key or certificate.
        """
        if isinstance(password, str):
            password = password.encode('utf-8')

        try:
            credential_serializer = CredentialSerializer.from_pkcs12_bytes(blob, password or None)
        except Exception as exception:
            err_msg = 'Failed to load the certificate container. Either wrong password or corrupted file.'
            raise InvalidContainerError(err_msg) from exception

        private_key = credential_serializer.private_key
        certificate = credential_serializer.certificate
        if private_key is None:
            err_msg = 'The certificate container does not contain a private key.'
            raise InvalidContainerError(err_msg)
        if certificate is None:
            err_msg = 'The certificate container does not contain a certificate.'
            raise InvalidContainerError(err_msg)

        additional_certificates = tuple(credential_serializer.additional_certificates or ())

        return CertificateAnalysis(
            name=_get_common_name(certificate.subject),
            issuer=_get_common_name(certificate.issuer),
            serial_number=hex(certificate.serial_number)[2:].upper(),
            fingerprint=self.fingerprint(certificate),
            issued_at=certificate.not_valid_before_utc,
            expires_at=certificate.not_valid_after_utc,
            signature_algorithm=_get_signature_algorithm_name(certificate),
            key_size=_get_key_size(private_key),
            certificate=certificate,
            private_key=private_key,
            additional_certificates=additional_certificates,
        )
