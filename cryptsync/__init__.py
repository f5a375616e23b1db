"""
cryptsync - Encrypted incremental sync of a directory to an object store.

Files are encrypted client-side before upload with one of three backends:
- AES-GCM with a shared symmetric key
- ECIES over secp256k1 (encrypt with the public key only)
- HPKE in AuthPSK mode (sender and recipient key pairs plus a preshared key)

A manifest of content digests (``db.gosafe``) makes each pass incremental:
only new and changed files are uploaded, and files removed locally are
removed remotely. The manifest itself is stored encrypted next to the data
so a backup set can be restored from the object store alone.

Example (sync):
    >>> from cryptsync import SyncContext, load_settings
    >>> context = SyncContext.from_settings(load_settings('cryptsync.json'))
    >>> context.engine().run_forever()

Example (restore):
    >>> result = context.retriever('/restore').restore()
    >>> print(f"Restored {len(result.restored)} files")
"""

from cryptsync.backends import (
    LocalObjectStore,
    ObjectStore,
    S3ObjectStore,
    StorageLocation,
    StorageType,
)
from cryptsync.config import (
    KeySettings,
    S3Settings,
    SyncContext,
    SyncSettings,
    load_settings,
)
from cryptsync.encryption import (
    AESConfig,
    AESEncryptionBackend,
    ECIESConfig,
    ECIESEncryptionBackend,
    EncryptionBackend,
    EncryptionType,
    HPKEConfig,
    HPKEEncryptionBackend,
    create_encryption_backend,
)
from cryptsync.engine import PassResult, SyncEngine
from cryptsync.exceptions import (
    ConfigurationError,
    CryptoError,
    CryptSyncError,
    DecryptionError,
    EncryptionError,
    IntegrityWarning,
    InvalidKeyError,
    ManifestError,
    ObjectNotFoundError,
    StorageError,
)
from cryptsync.manifest import Manifest, ManifestEntry
from cryptsync.retriever import RestoreResult, Retriever

__version__ = "0.1.0"
__all__ = [
    # Sync and restore
    "SyncEngine",
    "PassResult",
    "Retriever",
    "RestoreResult",
    "Manifest",
    "ManifestEntry",
    # Configuration
    "SyncContext",
    "SyncSettings",
    "S3Settings",
    "KeySettings",
    "load_settings",
    # Encryption backends
    "EncryptionBackend",
    "EncryptionType",
    "AESConfig",
    "AESEncryptionBackend",
    "ECIESConfig",
    "ECIESEncryptionBackend",
    "HPKEConfig",
    "HPKEEncryptionBackend",
    "create_encryption_backend",
    # Object stores
    "ObjectStore",
    "StorageLocation",
    "StorageType",
    "LocalObjectStore",
    "S3ObjectStore",
    # Exceptions
    "CryptSyncError",
    "ConfigurationError",
    "CryptoError",
    "InvalidKeyError",
    "EncryptionError",
    "DecryptionError",
    "StorageError",
    "ObjectNotFoundError",
    "ManifestError",
    "IntegrityWarning",
]
