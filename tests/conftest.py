"""
Pytest configuration and shared fixtures for all tests.
"""

import os
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from cryptsync.backends.local import LocalObjectStore
from cryptsync.encryption import AESConfig, AESEncryptionBackend
from cryptsync.exceptions import StorageError


class RecordingStore(LocalObjectStore):
    """Local object store that records calls and can be told to fail."""

    def __init__(self, directory, encryption, prefix=""):
        super().__init__(directory, encryption, prefix)
        self.stored = []
        self.deleted = []
        self.fail_store = set()
        self.fail_delete = set()

    def store(self, key, data):
        if key in self.fail_store:
            raise StorageError(f"Injected store failure for {key}")
        super().store(key, data)
        self.stored.append(key)

    def delete(self, key):
        if key in self.fail_delete:
            raise StorageError(f"Injected delete failure for {key}")
        super().delete(key)
        self.deleted.append(key)


@pytest.fixture
def aes_key():
    """A fixed 256-bit AES key."""
    return bytes(range(32))


@pytest.fixture
def aes_backend(aes_key):
    """AES-GCM backend with the fixed key."""
    return AESEncryptionBackend(AESConfig(key=aes_key))


@pytest.fixture
def backup_dir(tmp_path):
    """Empty directory to back up."""
    d = tmp_path / "backup"
    d.mkdir()
    return d


@pytest.fixture
def store(tmp_path, aes_backend):
    """Recording local object store."""
    return RecordingStore(tmp_path / "store", aes_backend, prefix="set")


@pytest.fixture
def write_key(tmp_path):
    """Write a key file with the given mode and return its path."""

    def _write(name, data, mode=0o600):
        path = tmp_path / "keys" / name
        path.parent.mkdir(exist_ok=True)
        path.write_bytes(data)
        os.chmod(path, mode)
        return path

    return _write


@pytest.fixture
def sample_data():
    """Sample binary data for testing."""
    return b"This is sample test data for encryption testing."


@pytest.fixture
def large_sample_data():
    """Large sample data (10MB) for round-trip testing."""
    return os.urandom(10 * 1024 * 1024)
