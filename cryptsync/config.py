"""
Settings and runtime context.

Settings are merged from four sources, highest precedence first:
command-line flags, environment variables (``GS_`` prefix, ``.env``
supported), a JSON config file, and built-in defaults. The merged settings
are then turned into a SyncContext holding the live encryption backend and
object store.

Environment variable names follow the settings layout, e.g.
``GS_BACKUP_DIR``, ``GS_INTERVAL``, ``GS_S3_BUCKET_NAME``,
``GS_AES_KEY_LOCATION`` or ``GS_HPKE_SERVER_PUBLIC_KEY_LOCATION``.
"""

from __future__ import annotations

import json
import logging
import os
import stat
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from cryptsync.backends import LocalObjectStore, S3ObjectStore
from cryptsync.encryption import (
    AESConfig,
    ECIESConfig,
    HPKEConfig,
    create_encryption_backend,
)
from cryptsync.engine import SyncEngine
from cryptsync.exceptions import ConfigurationError, CryptoError
from cryptsync.manifest import Manifest
from cryptsync.retriever import Retriever

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any

    from cryptsync.backends import ObjectStore
    from cryptsync.encryption import EncryptionBackend, EncryptionConfig

__all__ = [
    "ENV_PREFIX",
    "KeySettings",
    "S3Settings",
    "SyncContext",
    "SyncSettings",
    "build_encryption_config",
    "build_object_store",
    "check_key_file",
    "load_settings",
    "read_key_file",
]

logger = logging.getLogger(__name__)

ENV_PREFIX = "GS_"

ALLOWED_KEY_MODES = (0o600, 0o400)


@dataclass
class S3Settings:
    """
    S3 connection settings.

    Attributes:
        bucket_name: Bucket to sync into; S3 is used whenever this is set.
        endpoint: Custom endpoint for S3-compatible services.
        region: Bucket region.
        access_id: Static access key id (set together with ``access_key``).
        access_key: Static secret access key.
        dir: Prefix under which the backup set lives in the bucket.
        storage_class: Storage class applied to uploads.
    """

    bucket_name: str | None = None
    endpoint: str | None = None
    region: str | None = None
    access_id: str | None = None
    access_key: str | None = None
    dir: str = ""
    storage_class: str = "STANDARD"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, leaving out the secret access key."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if data["access_key"]:
            data["access_key"] = "<set>"
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> S3Settings:
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    def to_boto3_config(self) -> dict[str, str]:
        """Convert to S3ObjectStore keyword arguments."""
        config: dict[str, str] = {}
        if self.region:
            config["region"] = self.region
        if self.endpoint:
            config["endpoint_url"] = self.endpoint
        if self.access_id:
            config["access_key_id"] = self.access_id
        if self.access_key:
            config["secret_access_key"] = self.access_key
        if self.storage_class:
            config["storage_class"] = self.storage_class
        return config


@dataclass
class KeySettings:
    """
    Locations of key files.

    Exactly one group (aes, ecies or hpke) must be populated. The preshared
    key id is given inline rather than as a file.
    """

    aes_key_location: str | None = None
    ecies_public_key_location: str | None = None
    ecies_private_key_location: str | None = None
    hpke_client_public_key_location: str | None = None
    hpke_client_secret_key_location: str | None = None
    hpke_server_public_key_location: str | None = None
    hpke_server_secret_key_location: str | None = None
    hpke_preshared_key_location: str | None = None
    hpke_preshared_key_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KeySettings:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    def groups(self) -> list[str]:
        """Return the key groups that have at least one location set."""
        populated = []
        for group in ("aes", "ecies", "hpke"):
            if any(
                getattr(self, f.name) for f in fields(self) if f.name.startswith(f"{group}_")
            ):
                populated.append(group)
        return populated


@dataclass
class SyncSettings:
    """
    Complete settings for a cryptsync process.

    Attributes:
        backup_dir: Directory synced from (or restored into).
        interval: Seconds between sync passes.
        store_dir: Local object store directory, used when no bucket is set.
        s3: S3 connection settings.
        keys: Key file locations.
    """

    backup_dir: str = "/backup"
    interval: int = 60
    store_dir: str | None = None
    s3: S3Settings = field(default_factory=S3Settings)
    keys: KeySettings = field(default_factory=KeySettings)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display or serialization."""
        return {
            "backup_dir": self.backup_dir,
            "interval": self.interval,
            "store_dir": self.store_dir,
            "s3": self.s3.to_dict(),
            "keys": self.keys.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SyncSettings:
        """
        Create from a (possibly partial) nested dictionary.

        Raises:
            ConfigurationError: If the interval is not a non-negative integer.
        """
        defaults = cls()
        interval = data.get("interval", defaults.interval)
        try:
            interval = int(interval)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid interval: {interval!r}") from e
        if interval < 0:
            raise ConfigurationError(f"Interval must not be negative: {interval}")

        return cls(
            backup_dir=data.get("backup_dir") or defaults.backup_dir,
            interval=interval,
            store_dir=data.get("store_dir"),
            s3=S3Settings.from_dict(data.get("s3") or {}),
            keys=KeySettings.from_dict(data.get("keys") or {}),
        )


def _env_names() -> dict[str, tuple[str, ...]]:
    """Map each environment variable name to its settings path."""
    names: dict[str, tuple[str, ...]] = {
        f"{ENV_PREFIX}BACKUP_DIR": ("backup_dir",),
        f"{ENV_PREFIX}INTERVAL": ("interval",),
        f"{ENV_PREFIX}STORE_DIR": ("store_dir",),
    }
    for f in fields(S3Settings):
        names[f"{ENV_PREFIX}S3_{f.name.upper()}"] = ("s3", f.name)
    for f in fields(KeySettings):
        names[f"{ENV_PREFIX}{f.name.upper()}"] = ("keys", f.name)
    return names


def _set_path(target: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    for part in path[:-1]:
        target = target.setdefault(part, {})
    target[path[-1]] = value


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge ``override`` into ``base``; None values do not override."""
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def settings_from_env(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """
    Collect ``GS_`` settings from the environment.

    Empty values are ignored.
    """
    environ = os.environ if environ is None else environ
    data: dict[str, Any] = {}
    for name, path in _env_names().items():
        value = environ.get(name)
        if value:
            _set_path(data, path, value)
    return data


def settings_from_file(path: str | Path) -> dict[str, Any]:
    """
    Read settings from a JSON config file.

    Raises:
        ConfigurationError: If the file is missing or not a JSON object.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object")
    logger.info(f"Loaded configuration from {path}")
    return data


def load_settings(
    config_file: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    dotenv: bool = True,
) -> SyncSettings:
    """
    Merge all settings sources.

    Args:
        config_file: Optional JSON config file.
        overrides: Nested settings from command-line flags (None values are
            treated as unset).
        environ: Environment to read instead of ``os.environ``.
        dotenv: Load a ``.env`` file into the process environment first.

    Returns:
        The merged settings.

    Raises:
        ConfigurationError: If any source is invalid.
    """
    if dotenv and environ is None:
        load_dotenv()

    data: dict[str, Any] = {}
    if config_file:
        data = _merge(data, settings_from_file(config_file))
    data = _merge(data, settings_from_env(environ))
    if overrides:
        data = _merge(data, overrides)

    return SyncSettings.from_dict(data)


def check_key_file(path: str | Path) -> Path:
    """
    Ensure a key file exists and is readable by its owner only.

    Raises:
        ConfigurationError: If the file is missing or its mode is not
            0600 or 0400.
    """
    path = Path(path)
    try:
        st = path.stat()
    except FileNotFoundError as e:
        raise ConfigurationError(f"Key file not found: {path}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot stat key file {path}: {e}") from e

    if not stat.S_ISREG(st.st_mode):
        raise ConfigurationError(f"Key file is not a regular file: {path}")

    mode = stat.S_IMODE(st.st_mode)
    if mode not in ALLOWED_KEY_MODES:
        raise ConfigurationError(
            f"Key file permissions are too open: {path} has mode {mode:04o}, "
            f"expected 0600 or 0400"
        )
    return path


def read_key_file(path: str | Path) -> bytes:
    """Check permissions on a key file and return its contents."""
    path = check_key_file(path)
    try:
        return path.read_bytes()
    except OSError as e:
        raise ConfigurationError(f"Cannot read key file {path}: {e}") from e


def _read_optional(path: str | None) -> bytes:
    return read_key_file(path) if path else b""


def build_encryption_config(keys: KeySettings) -> EncryptionConfig:
    """
    Build the encryption config from the single populated key group.

    Raises:
        ConfigurationError: If no group or more than one group is populated,
            or a key file fails its checks.
    """
    groups = keys.groups()
    if not groups:
        raise ConfigurationError(
            "No encryption key configured: set AES, ECIES or HPKE key locations"
        )
    if len(groups) > 1:
        raise ConfigurationError(
            f"Only one encryption backend may be configured, got: {', '.join(groups)}"
        )

    group = groups[0]
    if group == "aes":
        return AESConfig(key=read_key_file(keys.aes_key_location))

    if group == "ecies":
        return ECIESConfig(
            public_key=_read_optional(keys.ecies_public_key_location).decode("ascii", "replace"),
            private_key=_read_optional(keys.ecies_private_key_location).decode(
                "ascii", "replace"
            ),
        )

    if bool(keys.hpke_preshared_key_location) != bool(keys.hpke_preshared_key_id):
        raise ConfigurationError("HPKE preshared key and its id must be set together")
    return HPKEConfig(
        client_public_key=_read_optional(keys.hpke_client_public_key_location),
        client_secret_key=_read_optional(keys.hpke_client_secret_key_location),
        server_public_key=_read_optional(keys.hpke_server_public_key_location),
        server_secret_key=_read_optional(keys.hpke_server_secret_key_location),
        preshared_key=_read_optional(keys.hpke_preshared_key_location),
        preshared_key_id=(keys.hpke_preshared_key_id or "").encode("utf-8"),
    )


def build_object_store(settings: SyncSettings, encryption: EncryptionBackend) -> ObjectStore:
    """
    Build the object store: S3 when a bucket is set, else the local store.

    Raises:
        ConfigurationError: If neither is configured or S3 credentials are
            incomplete.
    """
    if settings.s3.bucket_name:
        return S3ObjectStore(
            settings.s3.bucket_name,
            encryption,
            prefix=settings.s3.dir,
            **settings.s3.to_boto3_config(),
        )
    if settings.store_dir:
        return LocalObjectStore(settings.store_dir, encryption)
    raise ConfigurationError("No object store configured: set an S3 bucket or a store directory")


@dataclass
class SyncContext:
    """
    Everything a sync or restore run needs, built once at startup.

    Attributes:
        encryption: Active encryption backend.
        store: Object store wrapping the encryption backend.
        backup_dir: Directory synced from or restored into.
        manifest_path: Local manifest location.
        interval: Seconds between sync passes.
    """

    encryption: EncryptionBackend
    store: ObjectStore
    backup_dir: Path
    manifest_path: Path
    interval: int = 60

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> SyncContext:
        """
        Build the context from merged settings.

        Raises:
            ConfigurationError: If keys or the object store are misconfigured.
        """
        config = build_encryption_config(settings.keys)
        try:
            encryption = create_encryption_backend(config)
        except CryptoError as e:
            raise ConfigurationError(f"Failed to configure encryption backend: {e}") from e

        store = build_object_store(settings, encryption)
        backup_dir = Path(settings.backup_dir)

        logger.info(
            f"Using {encryption.encryption_type.value} encryption with store {store.location}"
        )
        return cls(
            encryption=encryption,
            store=store,
            backup_dir=backup_dir,
            manifest_path=backup_dir / Manifest.FILENAME,
            interval=settings.interval,
        )

    def engine(self) -> SyncEngine:
        """Create a sync engine for the backup directory."""
        return SyncEngine(
            self.store,
            self.backup_dir,
            interval=self.interval,
            manifest_path=self.manifest_path,
        )

    def retriever(self, restore_dir: str | Path | None = None) -> Retriever:
        """Create a retriever writing into ``restore_dir`` (the backup dir by default)."""
        return Retriever(self.store, restore_dir or self.backup_dir)
