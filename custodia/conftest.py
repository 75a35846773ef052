"""pytest configuration for the custodia tests."""

from __future__ import annotations

import datetime
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import BestAvailableEncryption, NoEncryption, pkcs12
from cryptography.x509.oid import NameOID
from django.contrib.auth import get_user_model

from certificates.audit import AuditEvent
from certificates.models import StorageBackend
from certificates.services.registry import CertificateRegistry
from certificates.storage import CertificateStore, FilesystemBlobStore
from util.crypto import BlobCipher

PFX_PASSWORD = 'S3cret-Pass'
SIGNER_COMMON_NAME = 'Dr. Jane Roe'
ISSUER_COMMON_NAME = 'Custodia Test CA'


@pytest.fixture(autouse=True)
def enable_db_access_for_all_tests(db: None) -> None:
    """Fixture to enable database access for all tests."""


@pytest.fixture(autouse=True)
def filesystem_root(settings: Any, tmp_path: Path) -> Path:
    """Points the filesystem backend configured in the settings to a temporary directory."""
    root = tmp_path / 'certificate-storage'
    settings.CUSTODIA_FILESYSTEM_ROOT = root
    settings.CUSTODIA_STORAGE_BACKEND = 'filesystem'
    settings.CUSTODIA_OBJECT_STORAGE = {'bucket': ''}
    settings.CUSTODIA_PASSWORD_VARIANTS = 'legacy'
    return root


@pytest.fixture(autouse=True)
def fast_password_hashing(settings: Any) -> None:
    """Uses a fast hasher for the password hashes of users and certificates."""
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']


# ----------------------------
# Key and PKCS#12 Fixtures
# ----------------------------


@pytest.fixture(scope='session')
def rsa_private_key() -> rsa.RSAPrivateKey:
    """Generate a reusable RSA private key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def build_signing_certificate(
    private_key: rsa.RSAPrivateKey,
    common_name: str = SIGNER_COMMON_NAME,
    not_valid_before: datetime.datetime | None = None,
    not_valid_after: datetime.datetime | None = None,
) -> x509.Certificate:
    """Builds a self-issued certificate usable for document signatures."""
    now = datetime.datetime.now(datetime.UTC)
    not_valid_before = not_valid_before or now - datetime.timedelta(days=1)
    not_valid_after = not_valid_after or now + datetime.timedelta(days=365)
    return (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .issuer_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, ISSUER_COMMON_NAME)]))
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_valid_before)
        .not_valid_after(not_valid_after)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=True,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .sign(private_key, hashes.SHA256())
    )


@pytest.fixture
def make_pkcs12(rsa_private_key: rsa.RSAPrivateKey) -> Callable[..., bytes]:
    """Factory fixture that builds PKCS#12 containers holding a fresh certificate."""

    def _make_pkcs12(
        password: str = PFX_PASSWORD,
        common_name: str = SIGNER_COMMON_NAME,
        not_valid_before: datetime.datetime | None = None,
        not_valid_after: datetime.datetime | None = None,
    ) -> bytes:
        certificate = build_signing_certificate(rsa_private_key, common_name, not_valid_before, not_valid_after)
        encryption = BestAvailableEncryption(password.encode()) if password else NoEncryption()
        return pkcs12.serialize_key_and_certificates(
            name=common_name.encode(),
            key=rsa_private_key,
            cert=certificate,
            cas=None,
            encryption_algorithm=encryption,
        )

    return _make_pkcs12


@pytest.fixture
def pkcs12_bytes(make_pkcs12: Callable[..., bytes]) -> bytes:
    """A PKCS#12 container protected by PFX_PASSWORD."""
    return make_pkcs12()


@pytest.fixture
def expired_pkcs12_bytes(make_pkcs12: Callable[..., bytes]) -> bytes:
    """A PKCS#12 container whose certificate expired yesterday."""
    now = datetime.datetime.now(datetime.UTC)
    return make_pkcs12(
        not_valid_before=now - datetime.timedelta(days=400), not_valid_after=now - datetime.timedelta(days=1)
    )


# ----------------------------
# Owner Fixtures
# ----------------------------


@pytest.fixture
def owner() -> Any:
    """The owner of the certificates under test."""
    return get_user_model().objects.create_user(username='jane.roe', password='owner-pass-123')


@pytest.fixture
def other_owner() -> Any:
    """Another owner, who must never see the certificates of the first one."""
    return get_user_model().objects.create_user(username='john.doe', password='owner-pass-456')


# ----------------------------
# Service Fixtures
# ----------------------------


class RecordingAuditSink:
    """Audit sink that keeps all events in memory."""

    def __init__(self) -> None:
        """Initializes the sink with no events."""
        self.events: list[AuditEvent] = []

    def emit(self, event: AuditEvent) -> None:
        """Stores the event."""
        self.events.append(event)

    def actions(self) -> list[str]:
        """The actions of all recorded events in order."""
        return [event.action for event in self.events]


@pytest.fixture
def cipher() -> BlobCipher:
    """A cipher with a fresh random key."""
    return BlobCipher.generate()


@pytest.fixture
def filesystem_blob_store(cipher: BlobCipher, tmp_path: Path) -> FilesystemBlobStore:
    """A filesystem backend in a temporary directory."""
    return FilesystemBlobStore(cipher, tmp_path / 'blobs')


@pytest.fixture
def certificate_store(filesystem_blob_store: FilesystemBlobStore) -> CertificateStore:
    """A store with only the filesystem backend."""
    return CertificateStore({StorageBackend.FILESYSTEM: filesystem_blob_store}, StorageBackend.FILESYSTEM)


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    """An in-memory audit sink."""
    return RecordingAuditSink()


@pytest.fixture
def registry(
    certificate_store: CertificateStore, cipher: BlobCipher, audit_sink: RecordingAuditSink
) -> CertificateRegistry:
    """A registry backed by the temporary filesystem store."""
    return CertificateRegistry(store=certificate_store, cipher=cipher, audit_sink=audit_sink)


# ----------------------------
# PDF Fixtures
# ----------------------------


def build_minimal_pdf() -> bytes:
    """Builds a single page PDF with a correct cross-reference table."""
    content = b'0 0 m 200 200 l S'
    objects = [
        b'<< /Type /Catalog /Pages 2 0 R >>',
        b'<< /Type /Pages /Kids [3 0 R] /Count 1 >>',
        b'<< /Type /Page /Parent 2 0 R /MediaBox [0 0 595 842] /Resources << >> /Contents 4 0 R >>',
        b'<< /Length ' + str(len(content)).encode() + b' >>\nstream\n' + content + b'\nendstream',
    ]

    pdf = bytearray(b'%PDF-1.7\n%\xe2\xe3\xcf\xd3\n')
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(pdf))
        pdf += f'{number} 0 obj\n'.encode() + body + b'\nendobj\n'

    xref_offset = len(pdf)
    pdf += f'xref\n0 {len(objects) + 1}\n'.encode()
    pdf += b'0000000000 65535 f \n'
    for offset in offsets:
        pdf += f'{offset:010d} 00000 n \n'.encode()
    document_id = '0123456789abcdef0123456789abcdef'
    pdf += (
        f'trailer\n<< /Size {len(objects) + 1} /Root 1 0 R /ID [<{document_id}> <{document_id}>] >>\n'
        f'startxref\n{xref_offset}\n%%EOF\n'
    ).encode()
    return bytes(pdf)


@pytest.fixture
def pdf_document() -> bytes:
    """A minimal unsigned PDF document."""
    return build_minimal_pdf()
