"""
Abstract base class for encryption backends.

This module defines the interface that every encryption backend implements,
so object stores can encrypt on write and decrypt on read without knowing
which scheme is active.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class EncryptionType(Enum):
    """Type of encryption backend."""

    AES = "aes"
    ECIES = "ecies"
    HPKE = "hpke"


class EncryptionBackend(ABC):
    """
    Abstract base class for encryption backends.

    Backends are configured once through ``initialize`` (called by their
    constructors) and hold no state besides their keys, so a single instance
    can serve every encrypt/decrypt call of a process.
    """

    @property
    @abstractmethod
    def encryption_type(self) -> EncryptionType:
        """Return the type of this encryption backend."""
        ...

    @abstractmethod
    def initialize(self, config: Any) -> None:
        """
        Configure the backend from its variant-specific config.

        Args:
            config: The backend's config dataclass.

        Raises:
            InvalidKeyError: If the key material is unusable.
        """
        ...

    @abstractmethod
    def encrypt(self, plaintext: bytes) -> bytes:
        """
        Encrypt a byte string.

        Args:
            plaintext: Data to encrypt (may be empty).

        Returns:
            Self-contained ciphertext that ``decrypt`` can open.

        Raises:
            EncryptionError: If the backend cannot encrypt.
        """
        ...

    @abstractmethod
    def decrypt(self, ciphertext: bytes) -> bytes:
        """
        Decrypt a byte string produced by ``encrypt``.

        Args:
            ciphertext: Data previously returned by ``encrypt``.

        Returns:
            The original plaintext.

        Raises:
            DecryptionError: If the input is tampered, truncated or was
                sealed for different keys.
        """
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.encryption_type.value})"
