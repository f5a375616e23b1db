"""
Asymmetric ECIES encryption backend.

Hybrid public-key encryption over secp256k1:

    1. A fresh ephemeral key pair is generated for every message.
    2. ECDH between the ephemeral secret and the recipient public key yields
       a shared point, stretched with HKDF-SHA256 into an AES-256 key.
    3. The payload is sealed with AES-256-GCM, so any payload size works.

Wire layout: ``ephemeral_public_key(65) || nonce(12) || ciphertext || tag``.

Keys are exchanged as hex text: the private key as the 32-byte scalar, the
public key as a SEC1 point (compressed or uncompressed).
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from cryptsync.encryption.base import EncryptionBackend, EncryptionType
from cryptsync.exceptions import DecryptionError, EncryptionError, InvalidKeyError

__all__ = ["ECIESConfig", "ECIESEncryptionBackend", "public_key_hex", "private_key_hex"]

logger = logging.getLogger(__name__)

CURVE = ec.SECP256K1()


@dataclass
class ECIESConfig:
    """
    Configuration for the ECIES backend.

    Either half may be empty: a backend with only a public key can encrypt,
    one with only a private key can decrypt.

    Attributes:
        public_key: Hex-encoded SEC1 public key, or empty.
        private_key: Hex-encoded private scalar, or empty.
    """

    public_key: str = ""
    private_key: str = ""

    def __repr__(self) -> str:
        return (
            f"ECIESConfig(public_key={self.public_key.strip()[:16]!r}..., "
            f"private_key={'<set>' if self.private_key else '<unset>'})"
        )


def public_key_hex(public_key: ec.EllipticCurvePublicKey) -> str:
    """Encode a public key as an uncompressed SEC1 hex string."""
    return public_key.public_bytes(Encoding.X962, PublicFormat.UncompressedPoint).hex()


def private_key_hex(private_key: ec.EllipticCurvePrivateKey) -> str:
    """Encode a private key as its zero-padded 32-byte scalar in hex."""
    return format(private_key.private_numbers().private_value, "064x")


class ECIESEncryptionBackend(EncryptionBackend):
    """
    Encryption backend using ECIES (secp256k1, HKDF-SHA256, AES-256-GCM).

    Attributes:
        POINT_SIZE: Size of an uncompressed secp256k1 point in bytes.
        NONCE_SIZE: Size of the AES-GCM nonce in bytes.
        TAG_SIZE: Size of the AES-GCM authentication tag in bytes.
        HKDF_INFO: Context string bound into key derivation.
    """

    POINT_SIZE: int = 65
    NONCE_SIZE: int = 12
    TAG_SIZE: int = 16
    KEY_SIZE: int = 32
    HKDF_INFO: bytes = b"cryptsync-ecies"

    def __init__(self, config: ECIESConfig) -> None:
        self.public_key: ec.EllipticCurvePublicKey | None = None
        self.private_key: ec.EllipticCurvePrivateKey | None = None
        self.initialize(config)

    @property
    def encryption_type(self) -> EncryptionType:
        """Return ECIES encryption type."""
        return EncryptionType.ECIES

    @property
    def can_encrypt(self) -> bool:
        return self.public_key is not None

    @property
    def can_decrypt(self) -> bool:
        return self.private_key is not None

    def initialize(self, config: ECIESConfig) -> None:
        """
        Parse whichever key halves are present.

        Raises:
            InvalidKeyError: If a non-empty key cannot be parsed.
        """
        if not isinstance(config, ECIESConfig):
            raise InvalidKeyError("Invalid ECIES encryption configuration", backend="ecies")

        private_text = (config.private_key or "").strip()
        public_text = (config.public_key or "").strip()

        if private_text:
            try:
                self.private_key = ec.derive_private_key(int(private_text, 16), CURVE)
            except ValueError as e:
                raise InvalidKeyError(f"Failed to load private key: {e}", backend="ecies") from e

        if public_text:
            try:
                self.public_key = ec.EllipticCurvePublicKey.from_encoded_point(
                    CURVE, bytes.fromhex(public_text)
                )
            except ValueError as e:
                raise InvalidKeyError(f"Failed to load public key: {e}", backend="ecies") from e

        logger.debug(
            f"Initialized ECIES backend (encrypt={self.can_encrypt}, decrypt={self.can_decrypt})"
        )

    def _derive_key(self, ephemeral_point: bytes, shared_secret: bytes) -> bytes:
        """Stretch the ECDH output, bound to the ephemeral point, into an AES key."""
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=self.KEY_SIZE,
            salt=None,
            info=self.HKDF_INFO,
        )
        return hkdf.derive(ephemeral_point + shared_secret)

    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt ``plaintext`` to the configured public key."""
        if self.public_key is None:
            raise EncryptionError("ECIES public key not set")

        ephemeral = ec.generate_private_key(CURVE)
        ephemeral_point = ephemeral.public_key().public_bytes(
            Encoding.X962, PublicFormat.UncompressedPoint
        )
        shared_secret = ephemeral.exchange(ec.ECDH(), self.public_key)
        key = self._derive_key(ephemeral_point, shared_secret)

        nonce = secrets.token_bytes(self.NONCE_SIZE)
        return ephemeral_point + nonce + AESGCM(key).encrypt(nonce, plaintext, None)

    def decrypt(self, ciphertext: bytes) -> bytes:
        """Decrypt data sealed to the public half of the configured private key."""
        if self.private_key is None:
            raise DecryptionError("ECIES private key not set")

        header_size = self.POINT_SIZE + self.NONCE_SIZE
        if len(ciphertext) < header_size + self.TAG_SIZE:
            raise DecryptionError("Ciphertext too short for ECIES")

        ephemeral_point = ciphertext[: self.POINT_SIZE]
        nonce = ciphertext[self.POINT_SIZE : header_size]

        try:
            ephemeral_public = ec.EllipticCurvePublicKey.from_encoded_point(
                CURVE, ephemeral_point
            )
        except ValueError as e:
            raise DecryptionError("Malformed ephemeral public key") from e

        shared_secret = self.private_key.exchange(ec.ECDH(), ephemeral_public)
        key = self._derive_key(ephemeral_point, shared_secret)

        try:
            return AESGCM(key).decrypt(nonce, ciphertext[header_size:], None)
        except InvalidTag as e:
            raise DecryptionError("Wrong key or corrupted data") from e
