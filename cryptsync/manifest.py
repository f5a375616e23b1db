"""
Content-addressed manifest of synced files.

The manifest maps each relative file path to the SHA-256 digest of the
content last uploaded for it. It is kept as plaintext JSON next to the
backed-up files and, encrypted, in the object store under ``db.gosafe``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from cryptsync.exceptions import ManifestError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import Any

__all__ = ["Manifest", "ManifestEntry", "digest_of"]

logger = logging.getLogger(__name__)


def digest_of(data: bytes) -> str:
    """Return the hex SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


@dataclass
class ManifestEntry:
    """
    A file known to the object store.

    Attributes:
        path: Relative, "/"-separated path of the file.
        digest: Hex SHA-256 of the content last uploaded.
    """

    path: str
    digest: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to the serialized entry form."""
        return {"s": self.digest}

    @classmethod
    def from_dict(cls, path: str, data: dict[str, Any]) -> ManifestEntry:
        """Create from a serialized entry."""
        return cls(path=path, digest=data["s"])


class Manifest:
    """
    Mapping of relative path to ManifestEntry.

    Attributes:
        synced_digest: Digest of the serialized manifest last known to be in
            the object store, or None if nothing is known.

    Example:
        >>> manifest = Manifest.load('/backup/db.gosafe')
        >>> manifest.update('docs/a.txt', digest_of(b'hello'))
        >>> data = manifest.save('/backup/db.gosafe')
    """

    FILENAME: str = "db.gosafe"

    def __init__(
        self,
        entries: dict[str, ManifestEntry] | None = None,
        synced_digest: str | None = None,
    ) -> None:
        self._entries: dict[str, ManifestEntry] = dict(entries or {})
        self.synced_digest = synced_digest

    @classmethod
    def load(cls, path: str | Path) -> Manifest:
        """
        Load the local manifest, falling back to an empty one.

        A missing, unreadable or corrupt file yields an empty manifest; the
        problem is logged, never raised. ``synced_digest`` is set to the
        digest of the bytes read so an unchanged manifest is not re-uploaded.

        Args:
            path: Path of the local manifest file.

        Returns:
            The loaded manifest.
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            logger.info(f"No manifest at {path}, starting empty")
            return cls()
        except OSError as e:
            logger.warning(f"Could not read manifest {path}: {e}")
            return cls()

        try:
            manifest = cls.from_bytes(data)
        except ManifestError as e:
            logger.warning(f"Ignoring corrupt manifest {path}: {e}")
            return cls()

        manifest.synced_digest = digest_of(data)
        logger.info(f"Loaded manifest {path} with {len(manifest)} entries")
        return manifest

    @classmethod
    def from_bytes(cls, data: bytes, source: str | None = None) -> Manifest:
        """
        Parse a serialized manifest.

        Raises:
            ManifestError: If the data is not a valid manifest.
        """
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ManifestError(f"Invalid manifest format: {e}", source=source) from e

        if not isinstance(raw, dict):
            raise ManifestError("Manifest must be a JSON object", source=source)

        entries: dict[str, ManifestEntry] = {}
        for path, value in raw.items():
            if path == cls.FILENAME:
                logger.warning(f"Dropping self-referencing manifest entry {path!r}")
                continue
            if not isinstance(value, dict) or not isinstance(value.get("s"), str):
                raise ManifestError(f"Invalid manifest entry for {path!r}", source=source)
            entries[path] = ManifestEntry.from_dict(path, value)

        return cls(entries)

    def serialize(self) -> bytes:
        """Serialize to compact, key-sorted JSON."""
        data = {path: entry.to_dict() for path, entry in self._entries.items()}
        return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def save(self, path: str | Path) -> bytes:
        """
        Write the manifest to ``path`` with mode 0o600.

        Returns:
            The serialized bytes that were written.

        Raises:
            OSError: If the file cannot be written.
        """
        path = Path(path)
        data = self.serialize()

        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(path, 0o600)

        logger.debug(f"Saved manifest {path} ({len(self)} entries)")
        return data

    def get(self, path: str) -> ManifestEntry | None:
        return self._entries.get(path)

    def update(self, path: str, digest: str) -> None:
        """Insert or replace the entry for ``path``."""
        if path == self.FILENAME:
            raise ManifestError(f"Manifest cannot track itself: {path!r}")
        self._entries[path] = ManifestEntry(path=path, digest=digest)

    def remove(self, path: str) -> None:
        self._entries.pop(path, None)

    def paths(self) -> list[str]:
        """Return the tracked paths in sorted order."""
        return sorted(self._entries)

    def entries(self) -> Iterator[ManifestEntry]:
        for path in self.paths():
            yield self._entries[path]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __repr__(self) -> str:
        return f"Manifest(entries={len(self)}, synced_digest={self.synced_digest!r})"
