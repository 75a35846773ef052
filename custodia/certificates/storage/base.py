"""Contract shared by all blob store backends."""

from __future__ import annotations

import abc
import re
import time
from pathlib import PurePath
from typing import TYPE_CHECKING

from certificates.exceptions import CertificateStorageError
from custodia.logger import LoggerMixin
from util.crypto import CipherError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from util.crypto import BlobCipher

DEFAULT_EXTENSION = '.pfx'
_EXTENSION_PATTERN = re.compile(r'\.[A-Za-z0-9]{1,8}')


def get_extension(original_name: str | None) -> str:
    """Returns the lowercase file extension of the original name, or .pfx if it has none usable."""
    if not original_name:
        return DEFAULT_EXTENSION
    suffix = PurePath(original_name).suffix
    if not _EXTENSION_PATTERN.fullmatch(suffix):
        return DEFAULT_EXTENSION
    return suffix.lower()


def get_timestamp_ms() -> int:
    """Current unix time in milliseconds."""
    return int(time.time() * 1000)


class BlobStore(LoggerMixin, abc.ABC):
    """Stores certificate containers encrypted under an opaque locator.

    Every backend encrypts with the BlobCipher handed to it, so the backend itself never sees plain containers
    at rest. All failures surface as CertificateStorageError.
    """

    def __init__(self, cipher: BlobCipher) -> None:
        """Initializes the backend with the cipher used for all blobs."""
        self._cipher = cipher

    @abc.abstractmethod
    def put(
        self, owner_id: int, blob: bytes, original_name: str | None, metadata: Mapping[str, str] | None = None
    ) -> str:
        """Encrypts and persists the blob.

        Returns:
            The locator of the stored blob.
        """

    @abc.abstractmethod
    def get(self, locator: str) -> bytes:
        """Loads and decrypts the blob stored under the locator."""

    @abc.abstractmethod
    def delete(self, locator: str) -> bool:
        """Deletes the blob.

        Returns:
            True if the blob was deleted, False if it did not exist.
        """

    @abc.abstractmethod
    def exists(self, locator: str) -> bool:
        """Checks whether a blob is stored under the locator."""

    def _encrypt(self, blob: bytes) -> bytes:
        return self._cipher.encrypt(blob)

    def _decrypt(self, token: bytes, locator: str) -> bytes:
        try:
            return self._cipher.decrypt(token)
        except CipherError as exception:
            err_msg = f'Failed to decrypt the stored certificate container {locator}.'
            raise CertificateStorageError(err_msg) from exception
