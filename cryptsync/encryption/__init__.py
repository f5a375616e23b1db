"""
Encryption backends for cryptsync.

This package provides interchangeable encryption backends used by the object
stores: symmetric AES-GCM, asymmetric ECIES, and authenticated HPKE.

Example:
    >>> from cryptsync.encryption import AESConfig, create_encryption_backend
    >>> backend = create_encryption_backend(AESConfig(key=b"k" * 32))
"""

from __future__ import annotations

from cryptsync.encryption.aes import AESConfig, AESEncryptionBackend
from cryptsync.encryption.base import EncryptionBackend, EncryptionType
from cryptsync.encryption.ecies import ECIESConfig, ECIESEncryptionBackend
from cryptsync.encryption.hpke import HPKEConfig, HPKEEncryptionBackend
from cryptsync.exceptions import InvalidKeyError

__all__ = [
    "EncryptionBackend",
    "EncryptionType",
    "AESConfig",
    "AESEncryptionBackend",
    "ECIESConfig",
    "ECIESEncryptionBackend",
    "HPKEConfig",
    "HPKEEncryptionBackend",
    "EncryptionConfig",
    "create_encryption_backend",
]

EncryptionConfig = AESConfig | ECIESConfig | HPKEConfig

_BACKENDS: dict[type, type[EncryptionBackend]] = {
    AESConfig: AESEncryptionBackend,
    ECIESConfig: ECIESEncryptionBackend,
    HPKEConfig: HPKEEncryptionBackend,
}


def create_encryption_backend(config: EncryptionConfig) -> EncryptionBackend:
    """
    Build the encryption backend matching a config's variant.

    Args:
        config: One of AESConfig, ECIESConfig or HPKEConfig.

    Returns:
        The initialized backend.

    Raises:
        InvalidKeyError: If the config type is unknown or its keys are invalid.
    """
    backend_class = _BACKENDS.get(type(config))
    if backend_class is None:
        raise InvalidKeyError(f"Unsupported encryption configuration: {type(config).__name__}")
    return backend_class(config)
