"""
Tests for settings loading and context building.
"""

import json
import os
import pytest
import sys
from pathlib import Path
from unittest.mock import patch

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from cryptsync.backends import LocalObjectStore, S3ObjectStore
from cryptsync.config import (
    KeySettings,
    S3Settings,
    SyncContext,
    SyncSettings,
    build_encryption_config,
    build_object_store,
    check_key_file,
    load_settings,
    read_key_file,
    settings_from_env,
)
from cryptsync.encryption import (
    AESConfig,
    AESEncryptionBackend,
    ECIESConfig,
    ECIESEncryptionBackend,
    HPKEConfig,
    HPKEEncryptionBackend,
)
from cryptsync.encryption.ecies import private_key_hex, public_key_hex
from cryptsync.engine import SyncEngine
from cryptsync.exceptions import ConfigurationError
from cryptsync.retriever import Retriever


class TestCheckKeyFile:
    """Tests for key file permission checks."""

    @pytest.mark.parametrize("mode", [0o600, 0o400])
    def test_allowed_modes(self, write_key, mode):
        """Test owner-only modes are accepted."""
        path = write_key("key.bin", b"k" * 32, mode)
        assert check_key_file(path) == path

    @pytest.mark.parametrize("mode", [0o644, 0o640, 0o604, 0o700, 0o666])
    def test_open_modes_rejected(self, write_key, mode):
        """Test group or world access is rejected."""
        path = write_key("key.bin", b"k" * 32, mode)
        with pytest.raises(ConfigurationError, match="too open"):
            check_key_file(path)

    def test_missing_file(self, tmp_path):
        """Test a missing key file is a configuration error."""
        with pytest.raises(ConfigurationError, match="not found"):
            check_key_file(tmp_path / "missing.bin")

    def test_directory_rejected(self, tmp_path):
        """Test a directory is not accepted as a key file."""
        directory = tmp_path / "keys"
        directory.mkdir(mode=0o700)
        os.chmod(directory, 0o600)
        try:
            with pytest.raises(ConfigurationError, match="regular file"):
                check_key_file(directory)
        finally:
            os.chmod(directory, 0o700)

    def test_read_key_file(self, write_key):
        """Test the key contents are returned."""
        path = write_key("key.bin", b"secret", 0o400)
        assert read_key_file(path) == b"secret"


class TestBuildEncryptionConfig:
    """Tests for backend selection from key settings."""

    def test_no_keys(self):
        """Test that missing keys are rejected."""
        with pytest.raises(ConfigurationError, match="No encryption key"):
            build_encryption_config(KeySettings())

    def test_multiple_groups(self, write_key):
        """Test that two populated groups are rejected."""
        keys = KeySettings(
            aes_key_location=str(write_key("aes.bin", b"k" * 32)),
            ecies_public_key_location=str(write_key("pub.pem", b"04")),
        )
        with pytest.raises(ConfigurationError, match="Only one"):
            build_encryption_config(keys)

    def test_aes(self, write_key):
        """Test AES key selection."""
        keys = KeySettings(aes_key_location=str(write_key("aes.bin", b"k" * 32)))
        config = build_encryption_config(keys)
        assert isinstance(config, AESConfig)
        assert config.key == b"k" * 32

    def test_aes_permissions_checked(self, write_key):
        """Test the key file permissions are enforced."""
        keys = KeySettings(aes_key_location=str(write_key("aes.bin", b"k" * 32, 0o644)))
        with pytest.raises(ConfigurationError, match="too open"):
            build_encryption_config(keys)

    def test_ecies_public_only(self, write_key):
        """Test ECIES with only the public key."""
        private_key = ec.generate_private_key(ec.SECP256K1())
        public_hex = public_key_hex(private_key.public_key())
        keys = KeySettings(
            ecies_public_key_location=str(write_key("pub.pem", f"{public_hex}\n".encode()))
        )
        config = build_encryption_config(keys)
        assert isinstance(config, ECIESConfig)
        assert config.public_key.strip() == public_hex
        assert config.private_key == ""

    def test_hpke(self, write_key):
        """Test HPKE key selection with a preshared key."""
        client = X25519PrivateKey.generate()
        server = X25519PrivateKey.generate()
        keys = KeySettings(
            hpke_client_secret_key_location=str(
                write_key("client-priv", client.private_bytes_raw())
            ),
            hpke_server_public_key_location=str(
                write_key("server-pub", server.public_key().public_bytes_raw())
            ),
            hpke_preshared_key_location=str(write_key("psk", b"p" * 32)),
            hpke_preshared_key_id="backup",
        )
        config = build_encryption_config(keys)
        assert isinstance(config, HPKEConfig)
        assert config.client_secret_key == client.private_bytes_raw()
        assert config.preshared_key_id == b"backup"
        assert config.server_secret_key == b""

    def test_hpke_psk_without_id(self, write_key):
        """Test a preshared key needs its id."""
        keys = KeySettings(hpke_preshared_key_location=str(write_key("psk", b"p" * 32)))
        with pytest.raises(ConfigurationError, match="together"):
            build_encryption_config(keys)


class TestSettingsSources:
    """Tests for settings merging and precedence."""

    def test_defaults(self):
        """Test built-in defaults."""
        settings = load_settings(environ={})
        assert settings.backup_dir == "/backup"
        assert settings.interval == 60
        assert settings.s3.storage_class == "STANDARD"
        assert settings.store_dir is None

    def test_from_env(self):
        """Test GS_ variables map onto settings."""
        environ = {
            "GS_BACKUP_DIR": "/data",
            "GS_INTERVAL": "30",
            "GS_S3_BUCKET_NAME": "backups",
            "GS_S3_ACCESS_ID": "AKIA",
            "GS_S3_DIR": "laptop",
            "GS_AES_KEY_LOCATION": "/keys/aes.bin",
            "GS_HPKE_PRESHARED_KEY_ID": "psk-1",
            "UNRELATED": "x",
        }
        settings = load_settings(environ=environ)
        assert settings.backup_dir == "/data"
        assert settings.interval == 30
        assert settings.s3.bucket_name == "backups"
        assert settings.s3.access_id == "AKIA"
        assert settings.s3.dir == "laptop"
        assert settings.keys.aes_key_location == "/keys/aes.bin"
        assert settings.keys.hpke_preshared_key_id == "psk-1"

    def test_empty_env_values_ignored(self):
        """Test that empty variables do not override."""
        assert settings_from_env({"GS_BACKUP_DIR": ""}) == {}

    def test_from_file(self, tmp_path):
        """Test settings from a JSON config file."""
        config_file = tmp_path / "cryptsync.json"
        config_file.write_text(json.dumps({
            "backup_dir": "/from-file",
            "s3": {"bucket_name": "file-bucket", "region": "eu-west-1"},
            "keys": {"aes_key_location": "/file/aes.bin"},
        }))
        settings = load_settings(config_file, environ={})
        assert settings.backup_dir == "/from-file"
        assert settings.s3.bucket_name == "file-bucket"
        assert settings.s3.region == "eu-west-1"
        assert settings.s3.storage_class == "STANDARD"

    def test_precedence(self, tmp_path):
        """Test flags beat environment, which beats the config file."""
        config_file = tmp_path / "cryptsync.json"
        config_file.write_text(json.dumps({
            "backup_dir": "/from-file",
            "interval": 10,
            "s3": {"bucket_name": "file-bucket", "region": "file-region"},
        }))
        environ = {"GS_BACKUP_DIR": "/from-env", "GS_S3_BUCKET_NAME": "env-bucket"}
        overrides = {"backup_dir": "/from-flag", "s3": {"region": None}}

        settings = load_settings(config_file, overrides=overrides, environ=environ)
        assert settings.backup_dir == "/from-flag"
        assert settings.s3.bucket_name == "env-bucket"
        assert settings.s3.region == "file-region"
        assert settings.interval == 10

    def test_missing_config_file(self, tmp_path):
        """Test a missing config file is a configuration error."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_settings(tmp_path / "missing.json", environ={})

    @pytest.mark.parametrize("content", ["{broken", "[1, 2]"])
    def test_invalid_config_file(self, tmp_path, content):
        """Test invalid config files are configuration errors."""
        config_file = tmp_path / "cryptsync.json"
        config_file.write_text(content)
        with pytest.raises(ConfigurationError):
            load_settings(config_file, environ={})

    @pytest.mark.parametrize("interval", ["soon", "-5"])
    def test_invalid_interval(self, interval):
        """Test non-integer or negative intervals are rejected."""
        with pytest.raises(ConfigurationError):
            load_settings(environ={"GS_INTERVAL": interval})

    def test_dotenv_loaded(self):
        """Test a .env file is loaded when reading the real environment."""
        with patch("cryptsync.config.load_dotenv") as load_dotenv:
            load_settings()
        load_dotenv.assert_called_once()

    def test_dotenv_skipped_for_explicit_environ(self):
        """Test an explicit environment mapping bypasses .env loading."""
        with patch("cryptsync.config.load_dotenv") as load_dotenv:
            load_settings(environ={})
        load_dotenv.assert_not_called()

    def test_settings_to_dict_hides_secret(self):
        """Test the secret access key is masked in to_dict."""
        settings = SyncSettings(s3=S3Settings(bucket_name="b", access_key="secret"))
        assert settings.to_dict()["s3"]["access_key"] == "<set>"


class TestBuildObjectStore:
    """Tests for object store selection."""

    def test_s3_when_bucket_set(self, aes_backend):
        """Test a bucket selects the S3 store."""
        settings = SyncSettings(
            store_dir="/ignored",
            s3=S3Settings(
                bucket_name="backups",
                region="eu-west-1",
                endpoint="https://s3.example.com",
                access_id="AKIA",
                access_key="secret",
                dir="laptop",
                storage_class="STANDARD_IA",
            ),
        )
        store = build_object_store(settings, aes_backend)
        assert isinstance(store, S3ObjectStore)
        assert store.bucket_name == "backups"
        assert store.prefix == "laptop"
        assert store.endpoint_url == "https://s3.example.com"
        assert store.storage_class == "STANDARD_IA"
        assert store.access_key_id == "AKIA"

    def test_s3_partial_credentials(self, aes_backend):
        """Test S3 access id without key is rejected."""
        settings = SyncSettings(s3=S3Settings(bucket_name="backups", access_id="AKIA"))
        with pytest.raises(ConfigurationError, match="together"):
            build_object_store(settings, aes_backend)

    def test_local_store(self, tmp_path, aes_backend):
        """Test a store directory selects the local store."""
        settings = SyncSettings(store_dir=str(tmp_path / "objects"))
        store = build_object_store(settings, aes_backend)
        assert isinstance(store, LocalObjectStore)

    def test_no_store(self, aes_backend):
        """Test that no store configured is an error."""
        with pytest.raises(ConfigurationError, match="No object store"):
            build_object_store(SyncSettings(), aes_backend)


class TestSyncContext:
    """Tests for SyncContext."""

    @pytest.fixture
    def settings(self, tmp_path, write_key, backup_dir):
        return SyncSettings(
            backup_dir=str(backup_dir),
            interval=15,
            store_dir=str(tmp_path / "objects"),
            keys=KeySettings(aes_key_location=str(write_key("aes.bin", b"k" * 32))),
        )

    def test_from_settings(self, settings, backup_dir):
        """Test the context wires encryption, store and paths."""
        context = SyncContext.from_settings(settings)
        assert isinstance(context.encryption, AESEncryptionBackend)
        assert context.store.encryption is context.encryption
        assert context.backup_dir == backup_dir
        assert context.manifest_path == backup_dir / "db.gosafe"
        assert context.interval == 15

    def test_invalid_key_is_configuration_error(self, settings, write_key):
        """Test a bad key surfaces as a configuration error."""
        settings.keys.aes_key_location = str(write_key("short.bin", b"k" * 5))
        with pytest.raises(ConfigurationError, match="encryption backend"):
            SyncContext.from_settings(settings)

    def test_engine_and_retriever(self, settings, tmp_path):
        """Test the context builds engine and retriever."""
        context = SyncContext.from_settings(settings)
        engine = context.engine()
        assert isinstance(engine, SyncEngine)
        assert engine.interval == 15

        retriever = context.retriever(tmp_path / "restore")
        assert isinstance(retriever, Retriever)
        assert retriever.restore_dir == tmp_path / "restore"
        assert context.retriever().restore_dir == context.backup_dir

    def test_ecies_and_hpke_backends(self, settings, write_key):
        """Test the context picks the asymmetric backends too."""
        private_key = ec.generate_private_key(ec.SECP256K1())
        settings.keys = KeySettings(
            ecies_private_key_location=str(
                write_key("priv.pem", private_key_hex(private_key).encode())
            )
        )
        assert isinstance(SyncContext.from_settings(settings).encryption, ECIESEncryptionBackend)

        server = X25519PrivateKey.generate()
        settings.keys = KeySettings(
            hpke_server_secret_key_location=str(write_key("srv", server.private_bytes_raw()))
        )
        assert isinstance(SyncContext.from_settings(settings).encryption, HPKEEncryptionBackend)
