"""
Abstract base class for object stores.

This module defines the interface that all object stores implement. The base
class owns the encryption step: ``store`` encrypts before handing bytes to the
concrete backend and ``retrieve`` decrypts what the backend returns, so
plaintext never reaches the remote side.
"""

from __future__ import annotations

import logging
import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from cryptsync.exceptions import DecryptionError

if TYPE_CHECKING:
    from typing import Any

    from cryptsync.encryption import EncryptionBackend

logger = logging.getLogger(__name__)


class StorageType(Enum):
    """Type of object store."""

    LOCAL = "local"
    AWS_S3 = "aws_s3"


@dataclass
class StorageLocation:
    """
    Represents a storage location with its backend configuration.

    Attributes:
        storage_type: The type of object store.
        identifier: Unique identifier for this location (path, bucket name, etc.).
        config: Backend-specific configuration.
    """

    storage_type: StorageType
    identifier: str
    config: dict[str, Any]

    def __str__(self) -> str:
        """Return human-readable representation."""
        return f"{self.storage_type.value}:{self.identifier}"


def normalize_prefix(prefix: str | None) -> str:
    """Strip surrounding slashes from a key prefix ("" for none)."""
    return (prefix or "").strip("/")


class ObjectStore(ABC):
    """
    Abstract base class for encrypted, keyed blob storage.

    Subclasses move opaque bytes; encryption and key prefixing happen here.

    Attributes:
        encryption: Backend used to encrypt on write and decrypt on read.
        prefix: Directory-like namespace under which all objects live.
    """

    def __init__(self, encryption: EncryptionBackend, prefix: str = "") -> None:
        self.encryption = encryption
        self.prefix = normalize_prefix(prefix)

    @property
    @abstractmethod
    def storage_type(self) -> StorageType:
        """Return the type of this object store."""
        ...

    @property
    @abstractmethod
    def location(self) -> StorageLocation:
        """Return the storage location configuration."""
        ...

    @abstractmethod
    def _put_object(self, object_key: str, data: bytes) -> None:
        """
        Write raw bytes under a fully qualified key.

        Raises:
            StorageError: If the write fails.
        """
        ...

    @abstractmethod
    def _get_object(self, object_key: str) -> bytes:
        """
        Read raw bytes for a fully qualified key.

        Raises:
            ObjectNotFoundError: If no object exists under the key.
            StorageError: If the read fails for another reason.
        """
        ...

    @abstractmethod
    def _delete_object(self, object_key: str) -> None:
        """
        Remove the object under a fully qualified key.

        Raises:
            ObjectNotFoundError: If no object exists under the key.
            StorageError: If the deletion fails.
        """
        ...

    @abstractmethod
    def _object_exists(self, object_key: str) -> bool:
        """Check whether an object exists under a fully qualified key."""
        ...

    def object_key(self, key: str) -> str:
        """
        Map a relative key onto the store's namespace.

        Args:
            key: Relative, "/"-separated key (e.g. ``docs/a.txt``).

        Returns:
            ``<prefix>/<key>``, or ``key`` itself when there is no prefix.
        """
        key = key.lstrip("/")
        return posixpath.join(self.prefix, key) if self.prefix else key

    def store(self, key: str, data: bytes) -> None:
        """
        Encrypt ``data`` and write it under ``key``.

        Raises:
            EncryptionError: If encryption fails.
            StorageError: If the write fails.
        """
        encrypted = self.encryption.encrypt(data)
        self._put_object(self.object_key(key), encrypted)
        logger.debug(f"Stored {key} ({len(data)} bytes, {len(encrypted)} encrypted)")

    def retrieve(self, key: str) -> bytes:
        """
        Read the object under ``key`` and decrypt it.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            DecryptionError: If the object cannot be decrypted.
            StorageError: If the read fails.
        """
        encrypted = self._get_object(self.object_key(key))
        try:
            return self.encryption.decrypt(encrypted)
        except DecryptionError as e:
            raise DecryptionError(str(e), key=key) from e

    def delete(self, key: str) -> None:
        """
        Remove the object under ``key``.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageError: If the deletion fails.
        """
        self._delete_object(self.object_key(key))
        logger.debug(f"Deleted {key}")

    def exists(self, key: str) -> bool:
        """Check whether an object exists under ``key``."""
        return self._object_exists(self.object_key(key))
