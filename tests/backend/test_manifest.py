"""
Tests for the manifest.
"""

import hashlib
import json
import os
import pytest
import stat
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from cryptsync.exceptions import ManifestError
from cryptsync.manifest import Manifest, ManifestEntry, digest_of


class TestManifestLoad:
    """Tests for Manifest.load."""

    def test_missing_file(self, tmp_path):
        """Test that a missing manifest loads as empty."""
        manifest = Manifest.load(tmp_path / "db.gosafe")
        assert len(manifest) == 0
        assert manifest.synced_digest is None

    def test_corrupt_file(self, tmp_path):
        """Test that a corrupt manifest loads as empty without raising."""
        path = tmp_path / "db.gosafe"
        path.write_bytes(b"{not json")
        manifest = Manifest.load(path)
        assert len(manifest) == 0
        assert manifest.synced_digest is None

    def test_wrong_shape(self, tmp_path):
        """Test that valid JSON of the wrong shape loads as empty."""
        path = tmp_path / "db.gosafe"
        path.write_text(json.dumps({"a.txt": "abc"}))
        assert len(Manifest.load(path)) == 0

    def test_valid_file(self, tmp_path):
        """Test loading entries and the synced digest."""
        data = b'{"a.txt":{"s":"aa"},"docs/b.txt":{"s":"bb"}}'
        path = tmp_path / "db.gosafe"
        path.write_bytes(data)

        manifest = Manifest.load(path)
        assert manifest.paths() == ["a.txt", "docs/b.txt"]
        assert manifest.get("docs/b.txt").digest == "bb"
        assert manifest.synced_digest == hashlib.sha256(data).hexdigest()

    def test_directory_instead_of_file(self, tmp_path):
        """Test that an unreadable path loads as empty."""
        path = tmp_path / "db.gosafe"
        path.mkdir()
        assert len(Manifest.load(path)) == 0


class TestManifestSave:
    """Tests for Manifest.save and serialize."""

    def test_serialize_format(self):
        """Test compact, key-sorted JSON with the digest under "s"."""
        manifest = Manifest()
        manifest.update("z.txt", "zz")
        manifest.update("a.txt", "aa")
        assert manifest.serialize() == b'{"a.txt":{"s":"aa"},"z.txt":{"s":"zz"}}'

    def test_serialize_deterministic(self):
        """Test insertion order does not change the serialized form."""
        first = Manifest()
        first.update("a", "1")
        first.update("b", "2")
        second = Manifest()
        second.update("b", "2")
        second.update("a", "1")
        assert first.serialize() == second.serialize()

    def test_save_returns_written_bytes(self, tmp_path):
        """Test that save writes and returns the serialized bytes."""
        manifest = Manifest()
        manifest.update("a.txt", "aa")
        path = tmp_path / "db.gosafe"

        data = manifest.save(path)
        assert path.read_bytes() == data == manifest.serialize()

    def test_save_permissions(self, tmp_path):
        """Test the manifest is written with mode 0600."""
        path = tmp_path / "db.gosafe"
        path.write_bytes(b"{}")
        os.chmod(path, 0o644)

        Manifest().save(path)
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_save_overwrites(self, tmp_path):
        """Test that save truncates a longer previous manifest."""
        path = tmp_path / "db.gosafe"
        path.write_bytes(b"x" * 1000)
        Manifest().save(path)
        assert path.read_bytes() == b"{}"

    def test_save_then_load(self, tmp_path):
        """Test a saved manifest loads back as synced."""
        manifest = Manifest()
        manifest.update("docs/a.txt", digest_of(b"hello"))
        path = tmp_path / "db.gosafe"
        data = manifest.save(path)

        loaded = Manifest.load(path)
        assert loaded.get("docs/a.txt") == ManifestEntry("docs/a.txt", digest_of(b"hello"))
        assert loaded.synced_digest == digest_of(data)


class TestManifestFromBytes:
    """Tests for strict parsing."""

    @pytest.mark.parametrize(
        "data",
        [b"", b"\xff\xfe", b"[]", b'{"a": 1}', b'{"a": {"x": "y"}}', b'{"a": {"s": 5}}'],
    )
    def test_invalid(self, data):
        """Test that malformed manifests raise ManifestError."""
        with pytest.raises(ManifestError):
            Manifest.from_bytes(data)

    def test_error_names_source(self):
        """Test the error message includes the source."""
        with pytest.raises(ManifestError, match="db.gosafe"):
            Manifest.from_bytes(b"nope", source="db.gosafe")

    def test_valid(self):
        """Test parsing a valid manifest."""
        manifest = Manifest.from_bytes(b'{"a":{"s":"aa"}}')
        assert "a" in manifest
        assert manifest.synced_digest is None

    def test_self_entry_dropped(self):
        """Test an entry for the manifest file itself is discarded."""
        manifest = Manifest.from_bytes(b'{"a":{"s":"aa"},"db.gosafe":{"s":"bb"}}')
        assert manifest.paths() == ["a"]
        assert "db.gosafe" not in manifest


class TestManifestMapping:
    """Tests for the mapping operations."""

    def test_update_remove(self):
        """Test inserting, replacing and removing entries."""
        manifest = Manifest()
        manifest.update("a", "1")
        manifest.update("a", "2")
        assert len(manifest) == 1
        assert manifest.get("a").digest == "2"

        manifest.remove("a")
        assert "a" not in manifest
        assert manifest.get("a") is None

    def test_remove_missing(self):
        """Test removing an unknown path is a no-op."""
        manifest = Manifest()
        manifest.remove("missing")
        assert len(manifest) == 0

    def test_update_rejects_self(self):
        """Test the manifest refuses to track its own file."""
        manifest = Manifest()
        with pytest.raises(ManifestError, match="itself"):
            manifest.update("db.gosafe", "aa")
        assert len(manifest) == 0

    def test_entries_sorted(self):
        """Test entries iterate in path order."""
        manifest = Manifest()
        for path in ("c", "a", "b"):
            manifest.update(path, path * 2)
        assert [e.path for e in manifest.entries()] == ["a", "b", "c"]

    def test_digest_of(self):
        """Test digest_of is hex SHA-256."""
        assert digest_of(b"") == hashlib.sha256(b"").hexdigest()
