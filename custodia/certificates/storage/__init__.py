"""Encrypted storage of certificate containers."""

from __future__ import annotations

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from certificates.models import StorageBackend
from certificates.storage.base import BlobStore
from certificates.storage.filesystem import FilesystemBlobStore
from certificates.storage.object_storage import ObjectStorageBlobStore
from certificates.storage.store import CertificateStore, StoredBlob
from util.crypto import BlobCipher

__all__ = [
    'BlobStore',
    'CertificateStore',
    'FilesystemBlobStore',
    'ObjectStorageBlobStore',
    'StoredBlob',
    'build_blob_cipher',
    'build_certificate_store',
]


def build_blob_cipher() -> BlobCipher:
    """Builds the cipher from the CUSTODIA_ENCRYPTION_KEY setting."""
    try:
        return BlobCipher.from_key_material(settings.CUSTODIA_ENCRYPTION_KEY)
    except ValueError as exception:
        err_msg = 'CUSTODIA_ENCRYPTION_KEY is not usable.'
        raise ImproperlyConfigured(err_msg) from exception


def build_certificate_store(cipher: BlobCipher | None = None) -> CertificateStore:
    """Builds the CertificateStore from the Django settings.

    The filesystem backend is always available so that legacy containers stay readable. The object
    storage backend is added once a bucket is configured.

    Raises:
        ImproperlyConfigured: If the configured default backend is unknown or not configured.
    """
    cipher = cipher or build_blob_cipher()

    try:
        default_backend = StorageBackend(settings.CUSTODIA_STORAGE_BACKEND)
    except ValueError as exception:
        err_msg = f'Unknown CUSTODIA_STORAGE_BACKEND: {settings.CUSTODIA_STORAGE_BACKEND}.'
        raise ImproperlyConfigured(err_msg) from exception

    backends: dict[StorageBackend, BlobStore] = {
        StorageBackend.FILESYSTEM: FilesystemBlobStore(cipher, settings.CUSTODIA_FILESYSTEM_ROOT),
    }
    object_storage = getattr(settings, 'CUSTODIA_OBJECT_STORAGE', None) or {}
    if object_storage.get('bucket'):
        backends[StorageBackend.OBJECT] = ObjectStorageBlobStore.from_config(cipher, object_storage)

    if default_backend not in backends:
        err_msg = f'CUSTODIA_STORAGE_BACKEND is {default_backend}, but that backend is not configured.'
        raise ImproperlyConfigured(err_msg)

    return CertificateStore(backends, default_backend)
