"""
Authenticated HPKE encryption backend with a preshared key.

Uses RFC 9180 in AuthPSK mode (DHKEM(X25519, HKDF-SHA256), HKDF-SHA256,
ChaCha20-Poly1305). The syncing side holds the client secret key and the
server public key; the restoring side holds the server secret key and the
client public key. Both sides share the optional preshared key and its id.

Each message sets up a fresh sender context. Its encapsulation output is
shipped next to the sealed payload in a JSON envelope::

    {"ed": "<base64 ciphertext>", "ss": "<base64 sender context value>"}

so the receiver can rebuild the matching context without a handshake.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pyhpke import AEADId, CipherSuite, KDFId, KEMId

from cryptsync.encryption.base import EncryptionBackend, EncryptionType
from cryptsync.exceptions import DecryptionError, EncryptionError, InvalidKeyError

if TYPE_CHECKING:
    from pyhpke import KEMKeyInterface

__all__ = ["HPKEConfig", "HPKEEncryptionBackend", "SUITE"]

logger = logging.getLogger(__name__)

SUITE = CipherSuite.new(
    KEMId.DHKEM_X25519_HKDF_SHA256,
    KDFId.HKDF_SHA256,
    AEADId.CHACHA20_POLY1305,
)


@dataclass
class HPKEConfig:
    """
    Configuration for the HPKE backend.

    All keys are raw 32-byte X25519 keys; any of them may be empty depending
    on whether the process encrypts, decrypts, or both.

    Attributes:
        client_public_key: Sender public key (needed to decrypt).
        client_secret_key: Sender secret key (needed to encrypt).
        server_public_key: Recipient public key (needed to encrypt).
        server_secret_key: Recipient secret key (needed to decrypt).
        preshared_key: Optional PSK (at least 32 bytes), set with its id.
        preshared_key_id: Identifier of the PSK.
    """

    client_public_key: bytes = b""
    client_secret_key: bytes = b""
    server_public_key: bytes = b""
    server_secret_key: bytes = b""
    preshared_key: bytes = b""
    preshared_key_id: bytes = b""

    def __repr__(self) -> str:
        fields = (
            "client_public_key",
            "client_secret_key",
            "server_public_key",
            "server_secret_key",
            "preshared_key",
            "preshared_key_id",
        )
        status = ", ".join(
            f"{name}={'<set>' if getattr(self, name) else '<unset>'}" for name in fields
        )
        return f"HPKEConfig({status})"


class HPKEEncryptionBackend(EncryptionBackend):
    """
    Encryption backend using HPKE AuthPSK mode.

    Attributes:
        INFO: Application info string bound into every context.
        KEY_SIZE: Raw X25519 key size in bytes.
        MIN_PSK_SIZE: Minimum preshared key length in bytes.
    """

    INFO: bytes = b"cryptsync"
    KEY_SIZE: int = 32
    MIN_PSK_SIZE: int = 32

    def __init__(self, config: HPKEConfig) -> None:
        self.client_public: KEMKeyInterface | None = None
        self.client_secret: KEMKeyInterface | None = None
        self.server_public: KEMKeyInterface | None = None
        self.server_secret: KEMKeyInterface | None = None
        self.psk: bytes = b""
        self.psk_id: bytes = b""
        self.initialize(config)

    @property
    def encryption_type(self) -> EncryptionType:
        """Return HPKE encryption type."""
        return EncryptionType.HPKE

    @property
    def can_encrypt(self) -> bool:
        return self.client_secret is not None and self.server_public is not None

    @property
    def can_decrypt(self) -> bool:
        return self.server_secret is not None and self.client_public is not None

    def _load_key(self, raw: bytes, name: str, private: bool) -> KEMKeyInterface | None:
        if not raw:
            return None
        if len(raw) != self.KEY_SIZE:
            raise InvalidKeyError(
                f"{name} must be {self.KEY_SIZE} raw bytes, got {len(raw)}", backend="hpke"
            )
        try:
            if private:
                return SUITE.kem.deserialize_private_key(raw)
            return SUITE.kem.deserialize_public_key(raw)
        except Exception as e:
            raise InvalidKeyError(f"Failed to load {name}: {e}", backend="hpke") from e

    def initialize(self, config: HPKEConfig) -> None:
        """
        Load the key halves that are present and validate the PSK pair.

        Raises:
            InvalidKeyError: If a key has the wrong size or cannot be parsed,
                or the PSK and its id are not given together.
        """
        if not isinstance(config, HPKEConfig):
            raise InvalidKeyError("Invalid HPKE encryption configuration", backend="hpke")

        self.client_public = self._load_key(config.client_public_key, "client public key", False)
        self.client_secret = self._load_key(config.client_secret_key, "client secret key", True)
        self.server_public = self._load_key(config.server_public_key, "server public key", False)
        self.server_secret = self._load_key(config.server_secret_key, "server secret key", True)

        if bool(config.preshared_key) != bool(config.preshared_key_id):
            raise InvalidKeyError(
                "Preshared key and preshared key id must be set together", backend="hpke"
            )
        if config.preshared_key and len(config.preshared_key) < self.MIN_PSK_SIZE:
            raise InvalidKeyError(
                f"Preshared key must be at least {self.MIN_PSK_SIZE} bytes", backend="hpke"
            )

        self.psk = config.preshared_key
        self.psk_id = config.preshared_key_id

        logger.debug(
            f"Initialized HPKE backend (encrypt={self.can_encrypt}, "
            f"decrypt={self.can_decrypt}, psk={bool(self.psk)})"
        )

    def encrypt(self, plaintext: bytes) -> bytes:
        """Seal ``plaintext`` in a fresh authenticated sender context."""
        if not self.can_encrypt:
            raise EncryptionError("HPKE encryption needs the client secret and server public keys")

        try:
            enc, context = SUITE.create_sender_context(
                self.server_public,
                info=self.INFO,
                psk=self.psk,
                psk_id=self.psk_id,
                sks=self.client_secret,
            )
            ciphertext = context.seal(plaintext)
        except Exception as e:
            raise EncryptionError(f"HPKE encryption failed: {e}") from e

        envelope = {
            "ed": base64.b64encode(ciphertext).decode("ascii"),
            "ss": base64.b64encode(enc).decode("ascii"),
        }
        return json.dumps(envelope).encode("utf-8")

    def decrypt(self, ciphertext: bytes) -> bytes:
        """Parse the envelope, rebuild the recipient context and open the payload."""
        if not self.can_decrypt:
            raise DecryptionError("HPKE decryption needs the server secret and client public keys")

        try:
            envelope = json.loads(ciphertext)
            sealed = base64.b64decode(envelope["ed"], validate=True)
            enc = base64.b64decode(envelope["ss"], validate=True)
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            raise DecryptionError("Malformed HPKE envelope") from e

        try:
            context = SUITE.create_recipient_context(
                enc,
                self.server_secret,
                info=self.INFO,
                psk=self.psk,
                psk_id=self.psk_id,
                pks=self.client_public,
            )
            return context.open(sealed)
        except Exception as e:
            raise DecryptionError("Wrong key or corrupted data") from e
