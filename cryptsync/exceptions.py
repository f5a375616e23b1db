"""
Custom exceptions for cryptsync.

This module defines specific exception types for better error handling
and clearer error messages when syncing encrypted files to an object store.
"""

from __future__ import annotations


class CryptSyncError(Exception):
    """Base exception for all cryptsync errors."""

    pass


class ConfigurationError(CryptSyncError):
    """Raised when key material or connection settings are missing or invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class CryptoError(CryptSyncError):
    """Base exception for encryption backend failures."""

    pass


class InvalidKeyError(CryptoError):
    """Raised when key material cannot be parsed or has the wrong size."""

    def __init__(self, message: str, backend: str | None = None) -> None:
        full_message = f"{message} (backend={backend})" if backend else message
        super().__init__(full_message)
        self.backend = backend


class EncryptionError(CryptoError):
    """Raised when data cannot be encrypted."""

    def __init__(self, message: str = "Failed to encrypt data") -> None:
        super().__init__(message)


class DecryptionError(CryptoError):
    """Raised when ciphertext is tampered, truncated or sealed for another key."""

    def __init__(
        self, message: str = "Failed to decrypt data", key: str | None = None
    ) -> None:
        super().__init__(f"{message} (key {key})" if key else message)
        self.key = key


class StorageError(CryptSyncError):
    """Raised when an object store operation fails."""

    def __init__(
        self,
        message: str,
        backend: str | None = None,
        location: str | None = None,
    ) -> None:
        parts = [message]
        if backend:
            parts.append(f"backend={backend}")
        if location:
            parts.append(f"location={location}")
        super().__init__(" ".join(parts))
        self.backend = backend
        self.location = location


class ObjectNotFoundError(StorageError):
    """Raised when the requested object does not exist in the store."""

    def __init__(self, key: str, backend: str | None = None) -> None:
        super().__init__(f"Object not found: {key}", backend=backend)
        self.key = key


class ManifestError(CryptSyncError):
    """Raised when a manifest snapshot cannot be parsed."""

    def __init__(self, message: str, source: str | None = None) -> None:
        full_message = f"{message}: {source}" if source else message
        super().__init__(full_message)
        self.source = source


class IntegrityWarning(CryptSyncError):
    """
    Digest mismatch between a restored file and its manifest entry.

    Restore records these instead of raising them; the file is still written.
    """

    def __init__(self, path: str, expected_hash: str, actual_hash: str) -> None:
        super().__init__(
            f"Integrity check failed for {path}. "
            f"Expected: {expected_hash}, got: {actual_hash}"
        )
        self.path = path
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
