"""Facade that routes blob operations to the configured backends."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING

from certificates.exceptions import CertificateStorageError
from certificates.models import StorageBackend
from custodia.logger import LoggerMixin

if TYPE_CHECKING:
    from collections.abc import Mapping

    from certificates.storage.base import BlobStore


@dataclass(frozen=True)
class StoredBlob:
    """Where a blob has been stored."""

    backend: StorageBackend
    locator: str


class CertificateStore(LoggerMixin):
    """Routes every call to a backend selected explicitly by the caller.

    Locators are opaque, the backend is never derived from the locator string.
    """

    def __init__(self, backends: Mapping[StorageBackend, BlobStore], default_backend: StorageBackend) -> None:
        """Initializes the CertificateStore.

        Args:
            backends: The available backends.
            default_backend: The backend new blobs are stored in.

        Raises:
            ValueError: If the default backend is not among the available backends.
        """
        if default_backend not in backends:
            err_msg = f'The default storage backend {default_backend} is not configured.'
            raise ValueError(err_msg)
        self._backends = dict(backends)
        self._default_backend = StorageBackend(default_backend)

    @property
    def default_backend(self) -> StorageBackend:
        """The backend new blobs are stored in."""
        return self._default_backend

    @property
    def available_backends(self) -> list[StorageBackend]:
        """All configured backends."""
        return list(self._backends)

    def backend(self, backend: StorageBackend | str) -> BlobStore:
        """Returns the backend implementation.

        Raises:
            CertificateStorageError: If the backend is not configured.
        """
        try:
            return self._backends[StorageBackend(backend)]
        except (KeyError, ValueError) as exception:
            err_msg = f'Storage backend {backend} is not configured.'
            raise CertificateStorageError(err_msg) from exception

    def put(
        self,
        owner_id: int,
        blob: bytes,
        original_name: str | None,
        metadata: Mapping[str, str] | None = None,
        backend: StorageBackend | None = None,
    ) -> StoredBlob:
        """Stores the blob in the given backend, or in the default backend."""
        backend = StorageBackend(backend or self._default_backend)
        locator = self.backend(backend).put(owner_id, blob, original_name, metadata)
        return StoredBlob(backend=backend, locator=locator)

    def get(self, locator: str, backend: StorageBackend | str) -> bytes:
        """Loads the blob from the given backend."""
        return self.backend(backend).get(locator)

    def delete(self, locator: str, backend: StorageBackend | str) -> bool:
        """Deletes the blob from the given backend."""
        return self.backend(backend).delete(locator)

    def exists(self, locator: str, backend: StorageBackend | str) -> bool:
        """Checks whether the blob exists in the given backend."""
        return self.backend(backend).exists(locator)

    def copy_verified(
        self,
        locator: str,
        from_backend: StorageBackend | str,
        to_backend: StorageBackend | str,
        *,
        owner_id: int,
        original_name: str | None = None,
    ) -> str:
        """Copies a blob to another backend and verifies the copy by reading it back.

        The source is left untouched.

        Returns:
            The locator of the copy.

        Raises:
            CertificateStorageError: If the copy fails, or does not match the source.
        """
        source = self.backend(from_backend)
        destination = self.backend(to_backend)

        blob = source.get(locator)
        expected_digest = hashlib.sha256(blob).hexdigest()
        new_locator = destination.put(owner_id, blob, original_name, {'migrated-from': str(from_backend)})

        try:
            copied_digest = hashlib.sha256(destination.get(new_locator)).hexdigest()
        except CertificateStorageError:
            self._discard_copy(destination, new_locator)
            raise

        if copied_digest != expected_digest:
            self._discard_copy(destination, new_locator)
            err_msg = f'Verification of the copy of {locator} in {to_backend} failed, the contents differ.'
            raise CertificateStorageError(err_msg)

        return new_locator

    def migrate(
        self,
        locator: str,
        from_backend: StorageBackend | str,
        to_backend: StorageBackend | str,
        *,
        owner_id: int,
        original_name: str | None = None,
    ) -> str:
        """Moves a blob to another backend.

        The source is deleted only after the copy has been verified.

        Returns:
            The locator in the destination backend.
        """
        new_locator = self.copy_verified(
            locator, from_backend, to_backend, owner_id=owner_id, original_name=original_name
        )
        self.delete(locator, from_backend)
        self.logger.info('Migrated certificate container %s from %s to %s.', locator, from_backend, to_backend)
        return new_locator

    def _discard_copy(self, destination: BlobStore, locator: str) -> None:
        try:
            destination.delete(locator)
        except CertificateStorageError:
            self.logger.exception('Failed to discard the unverified copy %s.', locator)
