"""Application level symmetric encryption for certificate containers and their passwords."""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

NONCE_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32

_HKDF_INFO = b'custodia blob encryption key'


class CipherError(Exception):
    """Raised if a value cannot be encrypted or decrypted."""


class BlobCipher:
    """AES-256-GCM cipher bound to a single data encryption key.

    Encrypted values are the base64 encoding of nonce (12 bytes), tag (16 bytes) and ciphertext.
    The cipher is handed explicitly to every component that needs it, it never looks up its key itself.
    """

    def __init__(self, key: bytes) -> None:
        """Initializes the BlobCipher.

        Args:
            key: The 32 byte AES-256 key.

        Raises:
            ValueError: If the key does not have the expected length.
        """
        if len(key) != KEY_LENGTH:
            err_msg = f'Expected a {KEY_LENGTH} byte key, got {len(key)} bytes.'
            raise ValueError(err_msg)
        self._key = key

    def __repr__(self) -> str:
        """Never reveals the key."""
        return 'BlobCipher(key=***)'

    @classmethod
    def from_key_material(cls, key_material: str | bytes) -> BlobCipher:
        """Creates a BlobCipher from configured key material.

        A base64 encoded 32 byte value is used as is. Anything else is treated as a passphrase
        and stretched to a 32 byte key with HKDF-SHA256.
        """
        if isinstance(key_material, str):
            key_material = key_material.encode('utf-8')
        if not key_material:
            err_msg = 'Encryption key material must not be empty.'
            raise ValueError(err_msg)

        try:
            decoded = base64.b64decode(key_material, validate=True)
        except (binascii.Error, ValueError):
            decoded = b''
        if len(decoded) == KEY_LENGTH:
            return cls(decoded)

        hkdf = HKDF(algorithm=hashes.SHA256(), length=KEY_LENGTH, salt=None, info=_HKDF_INFO)
        return cls(hkdf.derive(key_material))

    @classmethod
    def generate(cls) -> BlobCipher:
        """Creates a BlobCipher with a fresh random key."""
        return cls(os.urandom(KEY_LENGTH))

    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypts bytes and returns the base64 encoded nonce, tag and ciphertext."""
        nonce = os.urandom(NONCE_LENGTH)
        encryptor = Cipher(algorithms.AES(self._key), modes.GCM(nonce)).encryptor()
        ciphertext = encryptor.update(plaintext) + encryptor.finalize()
        return base64.b64encode(nonce + encryptor.tag + ciphertext)

    def decrypt(self, token: bytes) -> bytes:
        """Decrypts a value produced by encrypt().

        Raises:
            CipherError: If the token is malformed, was encrypted with another key or was tampered with.
        """
        try:
            combined = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError) as exception:
            err_msg = 'Encrypted value is not valid base64.'
            raise CipherError(err_msg) from exception

        if len(combined) < NONCE_LENGTH + TAG_LENGTH:
            err_msg = 'Encrypted value is too short.'
            raise CipherError(err_msg)

        nonce = combined[:NONCE_LENGTH]
        tag = combined[NONCE_LENGTH:NONCE_LENGTH + TAG_LENGTH]
        ciphertext = combined[NONCE_LENGTH + TAG_LENGTH:]

        decryptor = Cipher(algorithms.AES(self._key), modes.GCM(nonce, tag)).decryptor()
        try:
            return decryptor.update(ciphertext) + decryptor.finalize()
        except InvalidTag as exception:
            err_msg = 'Failed to authenticate the encrypted value.'
            raise CipherError(err_msg) from exception

    def encrypt_text(self, value: str) -> str:
        """Encrypts a string and returns an ASCII token."""
        return self.encrypt(value.encode('utf-8')).decode('ascii')

    def decrypt_text(self, token: str) -> str:
        """Decrypts a token produced by encrypt_text()."""
        try:
            return self.decrypt(token.encode('ascii')).decode('utf-8')
        except UnicodeError as exception:
            err_msg = 'Encrypted value does not contain valid text.'
            raise CipherError(err_msg) from exception
