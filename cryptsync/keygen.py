"""
Key generation for the encryption backends.

Writes fresh key material to files readable by the owner only (0o600).
Existing files are never overwritten.
"""

from __future__ import annotations

import logging
import os
import secrets
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from cryptsync.encryption.ecies import private_key_hex, public_key_hex
from cryptsync.exceptions import ConfigurationError

__all__ = [
    "AES_KEY_FILE",
    "ECIES_PRIVATE_KEY_FILE",
    "ECIES_PUBLIC_KEY_FILE",
    "HPKE_KEY_FILES",
    "generate_aes_key",
    "generate_ecies_keys",
    "generate_hpke_keys",
    "write_key_file",
]

logger = logging.getLogger(__name__)

AES_KEY_FILE = "aes-key.bin"
AES_KEY_SIZE = 32

ECIES_PRIVATE_KEY_FILE = "priv-key.pem"
ECIES_PUBLIC_KEY_FILE = "pub-key.pem"

HPKE_KEY_FILES = {
    "client_secret_key": "client-priv-key.pem",
    "client_public_key": "client-pub-key.pem",
    "server_secret_key": "server-priv-key.pem",
    "server_public_key": "server-pub-key.pem",
    "preshared_key": "psk.bin",
}
HPKE_PSK_SIZE = 32


def write_key_file(path: str | Path, data: bytes) -> Path:
    """
    Create ``path`` with mode 0o600 and write ``data`` to it.

    Raises:
        ConfigurationError: If the file already exists or cannot be written.
    """
    path = Path(path)
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError as e:
        raise ConfigurationError(f"Refusing to overwrite existing key file: {path}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot create key file {path}: {e}") from e

    with os.fdopen(fd, "wb") as f:
        f.write(data)
    os.chmod(path, 0o600)

    logger.info(f"Wrote key file {path}")
    return path


def _check_free(paths: list[Path]) -> None:
    existing = [str(p) for p in paths if p.exists()]
    if existing:
        raise ConfigurationError(f"Refusing to overwrite existing key files: {', '.join(existing)}")


def generate_aes_key(output_dir: str | Path) -> Path:
    """Write a random 256-bit AES key. Returns the key file path."""
    path = Path(output_dir) / AES_KEY_FILE
    return write_key_file(path, secrets.token_bytes(AES_KEY_SIZE))


def generate_ecies_keys(output_dir: str | Path) -> tuple[Path, Path]:
    """
    Write a secp256k1 key pair as hex text.

    Returns:
        ``(private_key_path, public_key_path)``.
    """
    output_dir = Path(output_dir)
    priv_path = output_dir / ECIES_PRIVATE_KEY_FILE
    pub_path = output_dir / ECIES_PUBLIC_KEY_FILE
    _check_free([priv_path, pub_path])

    private_key = ec.generate_private_key(ec.SECP256K1())
    write_key_file(priv_path, private_key_hex(private_key).encode("ascii"))
    write_key_file(pub_path, public_key_hex(private_key.public_key()).encode("ascii"))
    return priv_path, pub_path


def generate_hpke_keys(output_dir: str | Path, with_psk: bool = True) -> dict[str, Path]:
    """
    Write client and server X25519 key pairs as raw 32-byte keys.

    Args:
        output_dir: Directory for the key files.
        with_psk: Also write a random 32-byte preshared key.

    Returns:
        Mapping of key name (``client_secret_key``, ...) to file path.
    """
    output_dir = Path(output_dir)
    names = [n for n in HPKE_KEY_FILES if with_psk or n != "preshared_key"]
    paths = {name: output_dir / HPKE_KEY_FILES[name] for name in names}
    _check_free(list(paths.values()))

    material: dict[str, bytes] = {}
    for side in ("client", "server"):
        private_key = X25519PrivateKey.generate()
        material[f"{side}_secret_key"] = private_key.private_bytes_raw()
        material[f"{side}_public_key"] = private_key.public_key().public_bytes_raw()
    if with_psk:
        material["preshared_key"] = secrets.token_bytes(HPKE_PSK_SIZE)

    for name, path in paths.items():
        write_key_file(path, material[name])
    return paths
