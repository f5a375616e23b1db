"""
Local filesystem object store.

This module provides an object store that keeps encrypted objects as files
under a directory, e.g. a mounted backup disk, with secure file permissions.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from cryptsync.backends.base import ObjectStore, StorageLocation, StorageType
from cryptsync.exceptions import ConfigurationError, ObjectNotFoundError, StorageError

if TYPE_CHECKING:
    from cryptsync.encryption import EncryptionBackend

logger = logging.getLogger(__name__)


class LocalObjectStore(ObjectStore):
    """
    Object store backed by the local filesystem.

    Objects are written as files with restrictive permissions
    (0o600 for files, 0o700 for directories).

    Attributes:
        directory: Root directory of the store.

    Example:
        >>> store = LocalObjectStore('/mnt/backup', encryption, prefix='laptop')
        >>> store.store('docs/a.txt', b'hello')
    """

    def __init__(
        self,
        directory: str | Path,
        encryption: EncryptionBackend,
        prefix: str = "",
    ) -> None:
        """
        Initialize local object store.

        Args:
            directory: Root directory for objects; created if missing.
            encryption: Backend used to encrypt and decrypt objects.
            prefix: Optional namespace under the root directory.

        Raises:
            ConfigurationError: If the directory cannot be created.
        """
        super().__init__(encryption, prefix)
        self.directory = Path(directory)
        self._location = StorageLocation(
            storage_type=StorageType.LOCAL,
            identifier=str(self.directory.absolute()),
            config={"path": str(self.directory.absolute()), "prefix": self.prefix},
        )

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            os.chmod(self.directory, 0o700)
            logger.info(f"Initialized local object store: {self.directory}")
        except PermissionError as e:
            raise ConfigurationError(
                f"Permission denied creating object store directory: {self.directory}"
            ) from e
        except OSError as e:
            raise ConfigurationError(
                f"Failed to create object store directory {self.directory}: {e}"
            ) from e

    @property
    def storage_type(self) -> StorageType:
        """Return LOCAL storage type."""
        return StorageType.LOCAL

    @property
    def location(self) -> StorageLocation:
        """Return the storage location configuration."""
        return self._location

    def _get_object_path(self, object_key: str) -> Path:
        """Get the full path for an object, refusing keys that escape the root."""
        path = (self.directory / object_key).resolve()
        root = self.directory.resolve()
        if path != root and root not in path.parents:
            raise StorageError(
                f"Object key escapes store directory: {object_key}",
                backend=self.storage_type.value,
                location=str(self.directory),
            )
        return path

    def _ensure_parent_directory(self, object_path: Path) -> None:
        """Ensure parent directories exist with secure permissions."""
        parent = object_path.parent
        if not parent.exists():
            parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    def _put_object(self, object_key: str, data: bytes) -> None:
        object_path = self._get_object_path(object_key)

        try:
            self._ensure_parent_directory(object_path)
            object_path.write_bytes(data)

            try:
                os.chmod(object_path, 0o600)
            except OSError as e:
                logger.warning(f"Could not set permissions on {object_path}: {e}")

            logger.info(f"Wrote object {object_key} to {object_path}")

        except OSError as e:
            logger.error(f"Failed to write object {object_key}: {e}")
            raise StorageError(
                f"Failed to write object to local storage: {e}",
                backend=self.storage_type.value,
                location=str(object_path),
            ) from e

    def _get_object(self, object_key: str) -> bytes:
        object_path = self._get_object_path(object_key)

        try:
            return object_path.read_bytes()
        except FileNotFoundError as e:
            raise ObjectNotFoundError(object_key, backend=self.storage_type.value) from e
        except OSError as e:
            logger.error(f"Failed to read object {object_key}: {e}")
            raise StorageError(
                f"Failed to read object from local storage: {e}",
                backend=self.storage_type.value,
                location=str(object_path),
            ) from e

    def _delete_object(self, object_key: str) -> None:
        object_path = self._get_object_path(object_key)

        try:
            object_path.unlink()
            logger.info(f"Deleted object {object_key} from {object_path}")
        except FileNotFoundError as e:
            raise ObjectNotFoundError(object_key, backend=self.storage_type.value) from e
        except OSError as e:
            logger.error(f"Failed to delete object {object_key}: {e}")
            raise StorageError(
                f"Failed to delete object from local storage: {e}",
                backend=self.storage_type.value,
                location=str(object_path),
            ) from e

    def _object_exists(self, object_key: str) -> bool:
        return self._get_object_path(object_key).is_file()

    def list_keys(self) -> list[str]:
        """
        List stored keys relative to the prefix.

        Returns:
            Sorted list of "/"-separated keys.
        """
        root = self.directory / self.prefix if self.prefix else self.directory
        if not root.exists():
            return []
        return sorted(
            path.relative_to(root).as_posix() for path in root.rglob("*") if path.is_file()
        )
