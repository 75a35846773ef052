"""S3 compatible object storage blob store."""

from __future__ import annotations

import datetime
import hashlib
import uuid
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from certificates.exceptions import CertificateStorageError
from certificates.storage.base import BlobStore, get_extension, get_timestamp_ms

if TYPE_CHECKING:
    from collections.abc import Mapping

    from util.crypto import BlobCipher

DEFAULT_PREFIX = 'certificates/'
DEFAULT_MAX_ATTEMPTS = 5
SERVER_SIDE_ENCRYPTION = 'AES256'

_NOT_FOUND_CODES = frozenset({'404', 'NoSuchKey', 'NotFound'})


def _is_not_found(exception: ClientError) -> bool:
    error = exception.response.get('Error', {})
    if str(error.get('Code', '')) in _NOT_FOUND_CODES:
        return True
    return exception.response.get('ResponseMetadata', {}).get('HTTPStatusCode') == 404  # noqa: PLR2004


class ObjectStorageBlobStore(BlobStore):
    """Stores encrypted containers as objects in an S3 bucket.

    Objects are additionally protected by S3 server side encryption. Transient failures are retried
    by botocore's standard retry mode.
    """

    def __init__(self, cipher: BlobCipher, client: Any, bucket: str, prefix: str = DEFAULT_PREFIX) -> None:
        """Initializes the ObjectStorageBlobStore.

        Args:
            cipher: The cipher used to encrypt the containers.
            client: A boto3 S3 client.
            bucket: The bucket the objects are stored in.
            prefix: The key prefix of all objects.
        """
        super().__init__(cipher)
        if not bucket:
            err_msg = 'An object storage bucket must be configured.'
            raise ValueError(err_msg)
        self._client = client
        self._bucket = bucket
        self._prefix = prefix

    @classmethod
    def from_config(cls, cipher: BlobCipher, config: Mapping[str, Any]) -> ObjectStorageBlobStore:
        """Builds the store and its boto3 client from the object storage configuration."""
        boto_config = Config(
            region_name=config.get('region_name'),
            retries={
                'max_attempts': int(config.get('max_attempts') or DEFAULT_MAX_ATTEMPTS),
                'mode': 'standard',
            },
        )
        client = boto3.client(
            's3',
            endpoint_url=config.get('endpoint_url'),
            aws_access_key_id=config.get('access_key_id'),
            aws_secret_access_key=config.get('secret_access_key'),
            config=boto_config,
        )
        return cls(cipher, client, config.get('bucket', ''), config.get('prefix') or DEFAULT_PREFIX)

    @property
    def bucket(self) -> str:
        """The bucket the objects are stored in."""
        return self._bucket

    def _build_key(self, owner_id: int, original_name: str | None) -> str:
        timestamp = get_timestamp_ms()
        derived_hash = hashlib.sha256(f'{owner_id}_{timestamp}_{uuid.uuid4()}'.encode()).hexdigest()[:16]
        return f'{self._prefix}{owner_id}/{timestamp}_{derived_hash}{get_extension(original_name)}'

    def put(
        self, owner_id: int, blob: bytes, original_name: str | None, metadata: Mapping[str, str] | None = None
    ) -> str:
        """Encrypts the blob and uploads it with server side encryption."""
        key = self._build_key(owner_id, original_name)
        object_metadata = {
            'owner-id': str(owner_id),
            'original-name': quote(original_name or ''),
            'upload-date': datetime.datetime.now(datetime.UTC).isoformat(),
            'encrypted': 'true',
        }
        for name, value in (metadata or {}).items():
            object_metadata[name] = quote(str(value))

        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=self._encrypt(blob),
                ContentType='application/octet-stream',
                ServerSideEncryption=SERVER_SIDE_ENCRYPTION,
                Metadata=object_metadata,
            )
        except (BotoCoreError, ClientError) as exception:
            err_msg = f'Failed to upload the certificate container {key}.'
            raise CertificateStorageError(err_msg) from exception

        self.logger.info('Uploaded certificate container %s for owner %s.', key, owner_id)
        return key

    def get(self, locator: str) -> bytes:
        """Downloads and decrypts the object."""
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=locator)
            encrypted = response['Body'].read()
        except ClientError as exception:
            if _is_not_found(exception):
                err_msg = f'Certificate container {locator} not found.'
            else:
                err_msg = f'Failed to download the certificate container {locator}.'
            raise CertificateStorageError(err_msg) from exception
        except BotoCoreError as exception:
            err_msg = f'Failed to download the certificate container {locator}.'
            raise CertificateStorageError(err_msg) from exception
        return self._decrypt(encrypted, locator)

    def delete(self, locator: str) -> bool:
        """Deletes the object, returns False if it did not exist.

        S3 reports success for deletes of missing keys, hence the existence check.
        """
        if not self.exists(locator):
            return False
        try:
            self._client.delete_object(Bucket=self._bucket, Key=locator)
        except (BotoCoreError, ClientError) as exception:
            err_msg = f'Failed to delete the certificate container {locator}.'
            raise CertificateStorageError(err_msg) from exception
        self.logger.info('Deleted certificate container %s.', locator)
        return True

    def exists(self, locator: str) -> bool:
        """Checks whether the object exists."""
        try:
            self._client.head_object(Bucket=self._bucket, Key=locator)
        except ClientError as exception:
            if _is_not_found(exception):
                return False
            err_msg = f'Failed to check the certificate container {locator}.'
            raise CertificateStorageError(err_msg) from exception
        except BotoCoreError as exception:
            err_msg = f'Failed to check the certificate container {locator}.'
            raise CertificateStorageError(err_msg) from exception
        return True
