"""Error taxonomy of the certificate custody core."""

from __future__ import annotations

from typing import ClassVar

__all__ = [
    'CertificateConflictError',
    'CertificateCustodyError',
    'CertificateExpiredError',
    'CertificateNotFoundError',
    'CertificateStorageError',
    'CertificateValidationError',
    'InvalidContainerError',
    'SigningError',
]


class CertificateCustodyError(Exception):
    """Base class of all errors raised by the certificate custody core.

    Every error carries a machine readable code next to its human readable message.
    """

    default_code: ClassVar[str] = 'custody_error'

    def __init__(self, message: str, code: str | None = None) -> None:
        """Initializes the error with a message and an optional code."""
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class CertificateValidationError(CertificateCustodyError):
    """The uploaded container or the request is not acceptable."""

    default_code = 'invalid'
    INVALID_CONTAINER = 'invalid_container'
    EXPIRED_AT_REGISTRATION = 'expired_at_registration'
    INVALID_UPLOAD = 'invalid_upload'


class InvalidContainerError(CertificateValidationError):
    """The PKCS#12 container is corrupt or the password does not unlock it.

    Both cases are deliberately reported the same way.
    """

    default_code = CertificateValidationError.INVALID_CONTAINER


class CertificateConflictError(CertificateCustodyError):
    """The operation would violate a uniqueness rule."""

    default_code = 'conflict'
    DUPLICATE_CERTIFICATE = 'duplicate_certificate'
    ACTIVATION_CONFLICT = 'activation_conflict'


class CertificateNotFoundError(CertificateCustodyError):
    """No matching certificate exists, or it belongs to another owner."""

    default_code = 'not_found'


class CertificateExpiredError(CertificateCustodyError):
    """The certificate is flagged active, but its validity period has ended."""

    default_code = 'expired'

    def __init__(self, message: str, certificate_id: int | None = None) -> None:
        """Initializes the error and remembers which certificate has expired."""
        super().__init__(message)
        self.certificate_id = certificate_id


class CertificateStorageError(CertificateCustodyError):
    """The blob store is unreachable or returned unusable data."""

    default_code = 'storage_error'

    def __init__(self, message: str, certificate_id: int | None = None) -> None:
        """Initializes the error and remembers which certificate could not be loaded, if known."""
        super().__init__(message)
        self.certificate_id = certificate_id


class SigningError(CertificateCustodyError):
    """No password variant unlocked the container and produced a valid signature."""

    default_code = 'signing_failed'

    def __init__(self, message: str, certificate_id: int | None = None) -> None:
        """Initializes the error and remembers which certificate was used."""
        super().__init__(message)
        self.certificate_id = certificate_id
