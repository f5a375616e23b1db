"""
Symmetric AES-GCM encryption backend.

Every call to ``encrypt`` draws a fresh 96-bit nonce and prepends it to the
sealed data, so the output layout is ``nonce || ciphertext || tag``.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from cryptsync.encryption.base import EncryptionBackend, EncryptionType
from cryptsync.exceptions import DecryptionError, InvalidKeyError

__all__ = ["AESConfig", "AESEncryptionBackend"]

logger = logging.getLogger(__name__)


@dataclass
class AESConfig:
    """
    Configuration for the AES-GCM backend.

    Attributes:
        key: Raw key bytes (16, 24 or 32 bytes).
    """

    key: bytes

    def __repr__(self) -> str:
        return f"AESConfig(key=<{len(self.key)} bytes>)"


class AESEncryptionBackend(EncryptionBackend):
    """
    Encryption backend using AES in Galois/Counter Mode.

    Attributes:
        NONCE_SIZE: Size of the GCM nonce in bytes (12 bytes = 96 bits).
        TAG_SIZE: Size of the GCM authentication tag in bytes.
        KEY_SIZES: Accepted key lengths in bytes.

    Example:
        >>> backend = AESEncryptionBackend(AESConfig(key=secrets.token_bytes(32)))
        >>> backend.decrypt(backend.encrypt(b"secret")) == b"secret"
        True
    """

    NONCE_SIZE: int = 12
    TAG_SIZE: int = 16
    KEY_SIZES: tuple[int, ...] = (16, 24, 32)

    def __init__(self, config: AESConfig) -> None:
        self._cipher: AESGCM | None = None
        self.initialize(config)

    @property
    def encryption_type(self) -> EncryptionType:
        """Return AES encryption type."""
        return EncryptionType.AES

    def initialize(self, config: AESConfig) -> None:
        """
        Validate the key length and build the cipher.

        Raises:
            InvalidKeyError: If the config is of the wrong type or the key is
                not 16, 24 or 32 bytes long.
        """
        if not isinstance(config, AESConfig):
            raise InvalidKeyError("Invalid AES encryption configuration", backend="aes")

        if len(config.key) not in self.KEY_SIZES:
            raise InvalidKeyError(
                f"Invalid AES key length: {len(config.key)} bytes "
                f"(expected one of {', '.join(str(s) for s in self.KEY_SIZES)})",
                backend="aes",
            )

        self._cipher = AESGCM(config.key)
        logger.debug(f"Initialized AES-{len(config.key) * 8}-GCM backend")

    def encrypt(self, plaintext: bytes) -> bytes:
        """Seal ``plaintext`` under a fresh random nonce."""
        nonce = secrets.token_bytes(self.NONCE_SIZE)
        return nonce + self._cipher.encrypt(nonce, plaintext, None)

    def decrypt(self, ciphertext: bytes) -> bytes:
        """Split off the nonce and open the remaining sealed data."""
        if len(ciphertext) < self.NONCE_SIZE + self.TAG_SIZE:
            raise DecryptionError("Ciphertext too short for AES-GCM")

        nonce = ciphertext[: self.NONCE_SIZE]
        try:
            return self._cipher.decrypt(nonce, ciphertext[self.NONCE_SIZE :], None)
        except InvalidTag as e:
            raise DecryptionError("Wrong key or corrupted data") from e
