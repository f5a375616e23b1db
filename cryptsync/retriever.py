"""
Restore a backup set from the object store.

The retriever downloads the encrypted manifest, then fetches and decrypts
every file it lists into a local directory, verifying each digest.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from cryptsync.exceptions import CryptSyncError, IntegrityWarning
from cryptsync.manifest import Manifest, digest_of

if TYPE_CHECKING:
    from cryptsync.backends import ObjectStore

__all__ = ["RestoreResult", "Retriever"]

logger = logging.getLogger(__name__)


@dataclass
class RestoreResult:
    """Result of a restore run."""

    restored: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    integrity_warnings: list[IntegrityWarning] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed and not self.integrity_warnings


class Retriever:
    """
    Downloads every file recorded in the remote manifest.

    Attributes:
        store: Object store holding the backup set.
        restore_dir: Directory the files are written into.

    Example:
        >>> result = Retriever(store, '/restore').restore()
        >>> print(f"{len(result.restored)} files restored")
    """

    def __init__(self, store: ObjectStore, restore_dir: str | Path) -> None:
        self.store = store
        self.restore_dir = Path(restore_dir)

    def fetch_manifest(self) -> Manifest:
        """
        Download and parse the remote manifest.

        Raises:
            ObjectNotFoundError: If the backup set has no manifest.
            DecryptionError: If the manifest cannot be decrypted.
            StorageError: If the download fails.
            ManifestError: If the manifest is corrupt.
        """
        data = self.store.retrieve(Manifest.FILENAME)
        manifest = Manifest.from_bytes(data, source=Manifest.FILENAME)
        logger.info(f"Downloaded manifest with {len(manifest)} entries")
        return manifest

    def _target_path(self, key: str) -> Path | None:
        """Resolve ``key`` under the restore directory, or None if it escapes."""
        root = self.restore_dir.resolve()
        target = (root / key).resolve()
        if root not in target.parents:
            return None
        return target

    def _write_file(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(target, 0o600)

    def restore(self) -> RestoreResult:
        """
        Restore every file listed in the remote manifest.

        A failure to obtain the manifest is fatal and propagates. Failures
        for individual files are logged and recorded, and the run continues.
        A digest mismatch is recorded as an IntegrityWarning but the file is
        still written.

        Returns:
            What was restored, what failed and which files did not verify.
        """
        manifest = self.fetch_manifest()

        self.restore_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        result = RestoreResult()

        for entry in manifest.entries():
            target = self._target_path(entry.path)
            if target is None:
                logger.error(f"Refusing to restore {entry.path}: outside {self.restore_dir}")
                result.failed[entry.path] = "path escapes restore directory"
                continue

            try:
                data = self.store.retrieve(entry.path)
            except CryptSyncError as e:
                logger.error(f"Failed to retrieve {entry.path}: {e}")
                result.failed[entry.path] = str(e)
                continue

            actual = digest_of(data)
            if actual != entry.digest:
                warning = IntegrityWarning(entry.path, entry.digest, actual)
                logger.warning(str(warning))
                result.integrity_warnings.append(warning)

            try:
                self._write_file(target, data)
            except OSError as e:
                logger.error(f"Failed to write {target}: {e}")
                result.failed[entry.path] = str(e)
                continue

            result.restored.append(entry.path)
            logger.info(f"Restored {entry.path}")

        logger.info(
            f"Restore complete: {len(result.restored)} restored, "
            f"{len(result.failed)} failed, "
            f"{len(result.integrity_warnings)} integrity warnings"
        )
        return result
