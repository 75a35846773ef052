"""Value objects returned by the certificate services."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from django.conf import settings

if TYPE_CHECKING:
    from certificates.models import DigitalCertificateModel


@dataclass(frozen=True)
class RequestMeta:
    """Who triggered an operation and from where."""

    actor_id: int | None = None
    ip: str | None = None
    user_agent: str = ''

    @classmethod
    def from_request(cls, request: Any) -> RequestMeta:
        """Extracts the metadata from a Django or DRF request.

        X-Forwarded-For is only honoured when the direct peer is listed in CUSTODIA_TRUSTED_PROXIES. The client
        address is then the right-most hop that is not a trusted proxy.
        """
        ip = cls._client_ip(request.META)
        user = getattr(request, 'user', None)
        return cls(
            actor_id=user.pk if user is not None and user.is_authenticated else None,
            ip=ip or None,
            user_agent=request.META.get('HTTP_USER_AGENT', '')[:512],
        )

    @staticmethod
    def _client_ip(meta: dict[str, Any]) -> str | None:
        remote_addr = meta.get('REMOTE_ADDR') or None
        trusted_proxies = set(getattr(settings, 'CUSTODIA_TRUSTED_PROXIES', ()))
        if remote_addr not in trusted_proxies:
            return remote_addr

        hops = [hop.strip() for hop in meta.get('HTTP_X_FORWARDED_FOR', '').split(',') if hop.strip()]
        for hop in reversed(hops):
            if hop not in trusted_proxies:
                return hop
        return hops[0] if hops else remote_addr


@dataclass(frozen=True)
class CertificateSummary:
    """Public metadata of a certificate, free of any secret material."""

    id: int
    name: str
    serial_number: str
    issuer: str
    issued_at: datetime.datetime
    expires_at: datetime.datetime
    status: str
    days_to_expiry: int
    total_signatures: int
    last_used_at: datetime.datetime | None
    is_active: bool
    storage_backend: str

    @classmethod
    def from_model(cls, certificate: DigitalCertificateModel) -> CertificateSummary:
        """Projects the safe fields of a certificate record."""
        return cls(
            id=certificate.pk,
            name=certificate.name,
            serial_number=certificate.serial_number,
            issuer=certificate.issuer,
            issued_at=certificate.issued_at,
            expires_at=certificate.expires_at,
            status=str(certificate.status),
            days_to_expiry=certificate.days_to_expiry,
            total_signatures=certificate.total_signatures,
            last_used_at=certificate.last_used_at,
            is_active=certificate.is_active,
            storage_backend=certificate.storage_backend,
        )


@dataclass(frozen=True)
class SigningMaterial:
    """The decrypted container and password of the active certificate. Never logged, never persisted."""

    certificate_id: int
    blob: bytes = field(repr=False)
    password: str = field(repr=False)
    metadata: CertificateSummary


@dataclass(frozen=True)
class CertificateStatistics:
    """Usage totals of the certificates of one owner."""

    total: int
    active: int
    expired: int
    total_signatures: int
    last_used_at: datetime.datetime | None
    expiring_soon: list[CertificateSummary]
