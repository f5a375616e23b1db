"""
Incremental sync engine.

Each pass walks the backup directory, uploads new and changed files,
deletes remote objects whose local file is gone, then persists the manifest
locally and pushes it to the object store when it changed.
"""

from __future__ import annotations

import logging
import os
import stat
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from cryptsync.exceptions import ConfigurationError, CryptSyncError, ObjectNotFoundError
from cryptsync.manifest import Manifest, digest_of

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from cryptsync.backends import ObjectStore

__all__ = ["PassResult", "SyncEngine"]

logger = logging.getLogger(__name__)


@dataclass
class PassResult:
    """Outcome of a single sync pass."""

    uploaded: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    delete_failures: list[str] = field(default_factory=list)
    manifest_uploaded: bool = False
    aborted: bool = False

    @property
    def changed(self) -> bool:
        """Whether the pass altered remote state."""
        return bool(self.uploaded or self.modified or self.deleted or self.manifest_uploaded)

    def summary(self) -> str:
        return (
            f"{len(self.uploaded)} new, {len(self.modified)} modified, "
            f"{len(self.unchanged)} unchanged, {len(self.deleted)} deleted, "
            f"{len(self.failed)} failed"
        )


class SyncEngine:
    """
    Keeps an object store in step with a local directory.

    The engine owns the manifest for its lifetime. A file is only recorded
    in the manifest after its upload succeeded, so anything that failed is
    retried on the next pass.

    Attributes:
        store: Object store receiving encrypted files.
        backup_dir: Root of the directory tree being synced.
        manifest: Manifest of what the object store holds.
        manifest_path: Local location of the manifest.
        interval: Seconds to sleep between passes in ``run_forever``.

    Example:
        >>> engine = SyncEngine(store, '/backup', interval=60)
        >>> result = engine.run_pass()
        >>> print(result.summary())
    """

    MANIFEST_KEY: str = Manifest.FILENAME

    def __init__(
        self,
        store: ObjectStore,
        backup_dir: str | Path,
        manifest: Manifest | None = None,
        interval: float = 60,
        manifest_path: str | Path | None = None,
    ) -> None:
        """
        Initialize the sync engine.

        Args:
            store: Object store to sync into.
            backup_dir: Directory to back up; must exist.
            manifest: Pre-loaded manifest; loaded from ``manifest_path``
                when omitted.
            interval: Seconds between passes.
            manifest_path: Local manifest file, ``<backup_dir>/db.gosafe``
                by default.

        Raises:
            ConfigurationError: If ``backup_dir`` is not a directory or the
                interval is negative.
        """
        self.backup_dir = Path(backup_dir)
        if not self.backup_dir.is_dir():
            raise ConfigurationError(f"Backup directory does not exist: {self.backup_dir}")
        if interval < 0:
            raise ConfigurationError(f"Sync interval must not be negative: {interval}")

        self.store = store
        self.interval = interval
        self.manifest_path = (
            Path(manifest_path) if manifest_path else self.backup_dir / Manifest.FILENAME
        )
        self.manifest = manifest if manifest is not None else Manifest.load(self.manifest_path)

        logger.info(
            f"Initialized sync engine for {self.backup_dir} -> {store.location} "
            f"({len(self.manifest)} known files)"
        )

    def _walk_files(self) -> Iterator[tuple[str, Path]]:
        """Yield ``(key, path)`` for every regular, owner-readable file."""

        def on_error(error: OSError) -> None:
            logger.warning(f"Cannot scan {error.filename}: {error.strerror}")

        for dirpath, dirnames, filenames in os.walk(self.backup_dir, onerror=on_error):
            dirnames.sort()
            for name in sorted(filenames):
                path = Path(dirpath) / name
                key = path.relative_to(self.backup_dir).as_posix()

                if key == Manifest.FILENAME:
                    continue

                try:
                    mode = os.lstat(path).st_mode
                except OSError as e:
                    logger.warning(f"Cannot stat {path}: {e}")
                    continue

                # Skips symlinks, sockets, fifos and devices
                if not stat.S_ISREG(mode):
                    logger.debug(f"Skipping non-regular file {key}")
                    continue
                if not mode & stat.S_IRUSR:
                    logger.debug(f"Skipping unreadable file {key}")
                    continue

                yield key, path

    def _sync_file(self, key: str, path: Path, result: PassResult) -> None:
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.error(f"Failed to read {key}: {e}")
            result.failed.append(key)
            return

        digest = digest_of(data)
        entry = self.manifest.get(key)
        if entry is not None and entry.digest == digest:
            result.unchanged.append(key)
            return

        try:
            self.store.store(key, data)
        except CryptSyncError as e:
            logger.error(f"Failed to upload {key}: {e}")
            result.failed.append(key)
            return

        self.manifest.update(key, digest)
        if entry is None:
            logger.info(f"Uploaded new file {key}")
            result.uploaded.append(key)
        else:
            logger.info(f"Uploaded modified file {key}")
            result.modified.append(key)

    def _propagate_deletions(self, result: PassResult) -> None:
        for key in self.manifest.paths():
            try:
                os.lstat(self.backup_dir / key)
                continue
            except (FileNotFoundError, NotADirectoryError):
                pass
            except OSError as e:
                # Present but not checkable, e.g. a parent lost its search bit
                logger.warning(f"Cannot check {key}, keeping remote copy: {e}")
                continue

            try:
                self.store.delete(key)
                logger.info(f"Deleted remote copy of {key}")
            except ObjectNotFoundError:
                logger.warning(f"Remote copy of {key} was already gone")
            except CryptSyncError as e:
                logger.error(f"Failed to delete remote copy of {key}: {e}")
                result.delete_failures.append(key)

            # Dropped whatever the outcome; a failed delete is not retried
            self.manifest.remove(key)
            result.deleted.append(key)

    def _push_manifest(self, result: PassResult) -> None:
        try:
            data = self.manifest.save(self.manifest_path)
        except OSError as e:
            logger.error(f"Failed to save manifest {self.manifest_path}: {e}")
            data = self.manifest.serialize()

        digest = digest_of(data)
        if digest == self.manifest.synced_digest:
            return

        try:
            self.store.store(self.MANIFEST_KEY, data)
        except CryptSyncError as e:
            logger.error(f"Failed to upload manifest, will retry next pass: {e}")
            return

        self.manifest.synced_digest = digest
        result.manifest_uploaded = True
        logger.info(f"Uploaded manifest ({len(self.manifest)} entries)")

    def run_pass(self) -> PassResult:
        """
        Run one sync pass.

        Per-file failures are logged and collected in the result; they never
        abort the pass.

        Returns:
            What the pass did.
        """
        result = PassResult()

        if not self.backup_dir.is_dir():
            logger.error(f"Backup directory {self.backup_dir} disappeared, skipping pass")
            result.aborted = True
            return result

        for key, path in self._walk_files():
            self._sync_file(key, path, result)

        self._propagate_deletions(result)
        self._push_manifest(result)

        logger.info(f"Sync pass complete: {result.summary()}")
        return result

    def run_forever(
        self,
        max_passes: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """
        Run passes back to back, sleeping ``interval`` seconds in between.

        Args:
            max_passes: Stop after this many passes; run indefinitely if None.
            sleep: Sleep function, replaceable in tests.

        Returns:
            Number of passes run.
        """
        passes = 0
        while max_passes is None or passes < max_passes:
            self.run_pass()
            passes += 1
            if max_passes is not None and passes >= max_passes:
                break
            sleep(self.interval)
        return passes
