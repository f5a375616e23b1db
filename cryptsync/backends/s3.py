"""
AWS S3 object store.

This module provides an object store for S3 and S3-compatible services
(MinIO, Scaleway, Wasabi, ...) reachable through a custom endpoint.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cryptsync.backends.base import ObjectStore, StorageLocation, StorageType
from cryptsync.exceptions import ConfigurationError, ObjectNotFoundError, StorageError

if TYPE_CHECKING:
    from typing import Any

    from mypy_boto3_s3 import S3Client

    from cryptsync.encryption import EncryptionBackend

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code", "") in NOT_FOUND_CODES


class S3ObjectStore(ObjectStore):
    """
    Object store for AWS S3.

    Encrypted objects are written under ``<prefix>/<key>`` with the configured
    storage class. Credentials are either given explicitly or resolved
    through boto3's default chain.

    Attributes:
        bucket_name: Name of the S3 bucket.
        region: Bucket region (optional for custom endpoints).
        endpoint_url: Custom endpoint for S3-compatible services.
        storage_class: Storage class applied to every write.

    Example:
        >>> store = S3ObjectStore(
        ...     bucket_name='my-backups',
        ...     encryption=backend,
        ...     prefix='laptop',
        ...     region='eu-west-1',
        ... )
        >>> store.store('docs/a.txt', b'hello')
    """

    def __init__(
        self,
        bucket_name: str,
        encryption: EncryptionBackend,
        prefix: str = "",
        region: str | None = None,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        storage_class: str | None = "STANDARD",
        client: S3Client | None = None,
    ) -> None:
        """
        Initialize S3 object store.

        Args:
            bucket_name: Name of the S3 bucket.
            encryption: Backend used to encrypt and decrypt objects.
            prefix: Namespace (folder path) for this backup set.
            region: AWS region for the bucket.
            endpoint_url: Custom S3 endpoint URL.
            access_key_id: Static access key id (with ``secret_access_key``).
            secret_access_key: Static secret access key.
            storage_class: Storage class for writes; empty to omit it.
            client: Pre-built S3 client (mainly for tests).

        Raises:
            ConfigurationError: If the bucket is missing or only one half of
                the static credentials is given.
        """
        super().__init__(encryption, prefix)

        if not bucket_name:
            raise ConfigurationError("S3 bucket name cannot be empty")
        if bool(access_key_id) != bool(secret_access_key):
            raise ConfigurationError("S3 access id and access key must be set together")

        self.bucket_name = bucket_name
        self.region = region
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.storage_class = storage_class

        self._client = client
        self._location = StorageLocation(
            storage_type=StorageType.AWS_S3,
            identifier=f"{bucket_name}/{self.prefix}",
            config={
                "bucket": bucket_name,
                "region": region,
                "endpoint": endpoint_url,
                "prefix": self.prefix,
                "storage_class": storage_class,
            },
        )

        logger.info(f"Initialized S3 object store: s3://{bucket_name}/{self.prefix}")

    @property
    def client(self) -> S3Client:
        """Get or create the S3 client."""
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self) -> S3Client:
        """Create and configure the S3 client."""
        config = Config(
            region_name=self.region,
            retries={"max_attempts": 3, "mode": "standard"},
        )

        client_kwargs: dict[str, Any] = {"config": config}
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        if self.access_key_id:
            client_kwargs["aws_access_key_id"] = self.access_key_id
            client_kwargs["aws_secret_access_key"] = self.secret_access_key

        return boto3.Session().client("s3", **client_kwargs)

    @property
    def storage_type(self) -> StorageType:
        """Return AWS_S3 storage type."""
        return StorageType.AWS_S3

    @property
    def location(self) -> StorageLocation:
        """Return the storage location configuration."""
        return self._location

    def _url(self, object_key: str) -> str:
        return f"s3://{self.bucket_name}/{object_key}"

    def _put_object(self, object_key: str, data: bytes) -> None:
        put_kwargs: dict[str, Any] = {
            "Bucket": self.bucket_name,
            "Key": object_key,
            "Body": data,
            "ContentType": "application/octet-stream",
        }
        if self.storage_class:
            put_kwargs["StorageClass"] = self.storage_class

        try:
            self.client.put_object(**put_kwargs)
            logger.info(f"Wrote {len(data)} bytes to {self._url(object_key)}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to write {self._url(object_key)}: {e}")
            raise StorageError(
                f"Failed to write object to S3: {e}",
                backend=self.storage_type.value,
                location=self._url(object_key),
            ) from e

    def _get_object(self, object_key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=object_key)
            data = response["Body"].read()
            logger.info(f"Read {len(data)} bytes from {self._url(object_key)}")
            return data
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(object_key, backend=self.storage_type.value) from e
            logger.error(f"Failed to read {self._url(object_key)}: {e}")
            raise StorageError(
                f"Failed to read object from S3: {e}",
                backend=self.storage_type.value,
                location=self._url(object_key),
            ) from e
        except BotoCoreError as e:
            logger.error(f"Failed to read {self._url(object_key)}: {e}")
            raise StorageError(
                f"Failed to read object from S3: {e}",
                backend=self.storage_type.value,
                location=self._url(object_key),
            ) from e

    def _delete_object(self, object_key: str) -> None:
        # S3 reports success for missing keys, so check first
        if not self._object_exists(object_key):
            raise ObjectNotFoundError(object_key, backend=self.storage_type.value)

        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=object_key)
            logger.info(f"Deleted {self._url(object_key)}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete {self._url(object_key)}: {e}")
            raise StorageError(
                f"Failed to delete object from S3: {e}",
                backend=self.storage_type.value,
                location=self._url(object_key),
            ) from e

    def _object_exists(self, object_key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=object_key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise StorageError(
                f"Failed to check object in S3: {e}",
                backend=self.storage_type.value,
                location=self._url(object_key),
            ) from e
        except BotoCoreError as e:
            raise StorageError(
                f"Failed to check object in S3: {e}",
                backend=self.storage_type.value,
                location=self._url(object_key),
            ) from e

    def test_connection(self) -> bool:
        """Check that the bucket is reachable with the configured credentials."""
        try:
            self.client.head_bucket(Bucket=self.bucket_name)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to reach S3 bucket {self.bucket_name}: {e}")
            return False
