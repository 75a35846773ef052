"""Filesystem blob store, kept for compatibility with certificates uploaded before object storage was available."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import TYPE_CHECKING

from certificates.exceptions import CertificateStorageError
from certificates.storage.base import BlobStore, get_extension, get_timestamp_ms

if TYPE_CHECKING:
    from collections.abc import Mapping

    from util.crypto import BlobCipher

DIRECTORY_MODE = 0o700
FILE_MODE = 0o600


class FilesystemBlobStore(BlobStore):
    """Stores encrypted containers as files below a base directory.

    The locator is the bare file name. Metadata is not persisted by this backend.
    """

    def __init__(self, cipher: BlobCipher, base_dir: Path | str) -> None:
        """Initializes the FilesystemBlobStore.

        Args:
            cipher: The cipher used to encrypt the containers.
            base_dir: The directory the files are stored in. It is created on first write.
        """
        super().__init__(cipher)
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        """The directory the files are stored in."""
        return self._base_dir

    def _resolve(self, locator: str) -> Path:
        base_dir = self._base_dir.resolve()
        path = (base_dir / locator).resolve()
        if not locator or path.parent != base_dir:
            err_msg = f'Invalid filesystem locator: {locator!r}.'
            raise CertificateStorageError(err_msg)
        return path

    def _ensure_base_dir(self) -> None:
        try:
            self._base_dir.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
            self._base_dir.chmod(DIRECTORY_MODE)
        except OSError as exception:
            err_msg = f'Failed to create the certificate directory {self._base_dir}.'
            raise CertificateStorageError(err_msg) from exception

    def put(
        self, owner_id: int, blob: bytes, original_name: str | None, metadata: Mapping[str, str] | None = None
    ) -> str:
        """Encrypts the blob and writes it to a new file readable by the owner only."""
        del metadata
        self._ensure_base_dir()
        digest = hashlib.sha256(blob).hexdigest()[:16]
        locator = f'cert_{owner_id}_{get_timestamp_ms()}_{digest}{get_extension(original_name)}'
        path = self._resolve(locator)

        encrypted = self._encrypt(blob)
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
            with os.fdopen(fd, 'wb') as file:
                file.write(encrypted)
        except OSError as exception:
            err_msg = f'Failed to write the certificate container {locator}.'
            raise CertificateStorageError(err_msg) from exception

        self.logger.info('Stored certificate container %s for owner %s.', locator, owner_id)
        return locator

    def get(self, locator: str) -> bytes:
        """Reads and decrypts the file."""
        path = self._resolve(locator)
        try:
            encrypted = path.read_bytes()
        except FileNotFoundError as exception:
            err_msg = f'Certificate container {locator} not found.'
            raise CertificateStorageError(err_msg) from exception
        except OSError as exception:
            err_msg = f'Failed to read the certificate container {locator}.'
            raise CertificateStorageError(err_msg) from exception
        return self._decrypt(encrypted, locator)

    def delete(self, locator: str) -> bool:
        """Deletes the file, returns False if it was already gone."""
        path = self._resolve(locator)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exception:
            err_msg = f'Failed to delete the certificate container {locator}.'
            raise CertificateStorageError(err_msg) from exception
        self.logger.info('Deleted certificate container %s.', locator)
        return True

    def exists(self, locator: str) -> bool:
        """Checks whether the file exists."""
        return self._resolve(locator).is_file()
