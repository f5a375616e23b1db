"""
Command-line frontend for cryptsync.

Subcommands:
    sync      Continuously sync the backup directory (``--once`` for one pass)
    restore   Interactive restore of a backup set
    retrieve  Non-interactive restore, for scripts and containers
    genkey    Generate key files for one of the encryption backends

Usage:
    python -m frontends.cli.app sync --config /etc/cryptsync.json
    python -m frontends.cli.app restore --restore-dir /srv/restore
    python -m frontends.cli.app genkey hpke --output-dir ./keys
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from cryptsync import ConfigurationError, CryptSyncError, SyncContext, load_settings
from cryptsync.keygen import generate_aes_key, generate_ecies_keys, generate_hpke_keys

if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import Any

__all__ = ["build_parser", "main"]

logger = logging.getLogger("cryptsync.cli")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# (flag, settings path, help)
SETTING_FLAGS: list[tuple[str, tuple[str, ...], str]] = [
    ("--backup-dir", ("backup_dir",), "Directory to back up (default: /backup)"),
    ("--store-dir", ("store_dir",), "Local object store directory, used when no bucket is set"),
    ("--s3-bucket-name", ("s3", "bucket_name"), "S3 bucket name"),
    ("--s3-endpoint", ("s3", "endpoint"), "S3 endpoint URL"),
    ("--s3-region", ("s3", "region"), "S3 region"),
    ("--s3-access-id", ("s3", "access_id"), "S3 access key id"),
    ("--s3-access-key", ("s3", "access_key"), "S3 secret access key"),
    ("--s3-dir", ("s3", "dir"), "Prefix for the backup set in the bucket"),
    ("--s3-storage-class", ("s3", "storage_class"), "S3 storage class (default: STANDARD)"),
    ("--aes-key-location", ("keys", "aes_key_location"), "AES key file"),
    ("--ecies-public-key-location", ("keys", "ecies_public_key_location"), "ECIES public key file"),
    ("--ecies-private-key-location", ("keys", "ecies_private_key_location"), "ECIES private key file"),
    (
        "--hpke-client-public-key-location",
        ("keys", "hpke_client_public_key_location"),
        "HPKE client public key file",
    ),
    (
        "--hpke-client-secret-key-location",
        ("keys", "hpke_client_secret_key_location"),
        "HPKE client secret key file",
    ),
    (
        "--hpke-server-public-key-location",
        ("keys", "hpke_server_public_key_location"),
        "HPKE server public key file",
    ),
    (
        "--hpke-server-secret-key-location",
        ("keys", "hpke_server_secret_key_location"),
        "HPKE server secret key file",
    ),
    (
        "--hpke-preshared-key-location",
        ("keys", "hpke_preshared_key_location"),
        "HPKE preshared key file",
    ),
    ("--hpke-preshared-key-id", ("keys", "hpke_preshared_key_id"), "HPKE preshared key id"),
]


def _dest(flag: str) -> str:
    return flag.lstrip("-").replace("-", "_")


def _settings_parser() -> argparse.ArgumentParser:
    """Parent parser with the options shared by sync, restore and retrieve."""
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to JSON configuration file",
    )
    for flag, _path, help_text in SETTING_FLAGS:
        parser.add_argument(flag, dest=_dest(flag), type=str, default=None, help=help_text)
    return parser


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="cryptsync",
        description="cryptsync - encrypted incremental backup to an object store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Settings precedence: command-line flags > GS_* environment variables
(.env supported) > JSON config file > defaults.

Configuration file format (JSON):
  {
    "backup_dir": "/backup",
    "interval": 60,
    "s3": {"bucket_name": "backups", "region": "eu-west-1", "dir": "laptop"},
    "keys": {"aes_key_location": "/etc/cryptsync/aes-key.bin"}
  }
        """,
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    common = _settings_parser()
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", parents=[common], help="Sync the backup directory")
    sync.add_argument("--interval", type=int, default=None, help="Seconds between passes")
    sync.add_argument("--once", action="store_true", help="Run a single pass and exit")

    restore = subparsers.add_parser(
        "restore", parents=[common], help="Restore a backup set (interactive)"
    )
    restore.add_argument("--restore-dir", type=str, help="Target directory (default: backup dir)")
    restore.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    retrieve = subparsers.add_parser(
        "retrieve", parents=[common], help="Restore a backup set (non-interactive)"
    )
    retrieve.add_argument("--restore-dir", type=str, help="Target directory (default: backup dir)")

    genkey = subparsers.add_parser("genkey", help="Generate key files")
    genkey.add_argument("backend", choices=["aes", "ecies", "hpke"], help="Encryption backend")
    genkey.add_argument("--output-dir", "-o", default=".", help="Directory for the key files")
    genkey.add_argument(
        "--no-psk", action="store_true", help="Do not generate an HPKE preshared key"
    )

    return parser


def settings_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Turn parsed flags into a nested settings dictionary."""
    overrides: dict[str, Any] = {}
    for flag, path, _help in SETTING_FLAGS:
        value = getattr(args, _dest(flag), None)
        if value is None:
            continue
        target = overrides
        for part in path[:-1]:
            target = target.setdefault(part, {})
        target[path[-1]] = value
    if getattr(args, "interval", None) is not None:
        overrides["interval"] = args.interval
    return overrides


def _build_context(args: argparse.Namespace) -> SyncContext:
    settings = load_settings(args.config, overrides=settings_overrides(args))
    return SyncContext.from_settings(settings)


def _confirm(prompt: str) -> bool:
    answer = input(f"{prompt} [y/N]: ").strip().lower()
    return answer in ("y", "yes")


def cmd_sync(args: argparse.Namespace) -> int:
    context = _build_context(args)
    engine = context.engine()

    if args.once:
        result = engine.run_pass()
        print(f"Sync complete: {result.summary()}")
        return 0

    logger.info(f"Syncing {context.backup_dir} every {context.interval}s")
    try:
        engine.run_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping")
    return 0


def _restore(args: argparse.Namespace, interactive: bool) -> int:
    context = _build_context(args)
    target = Path(args.restore_dir) if args.restore_dir else context.backup_dir

    if interactive and not args.yes and target.is_dir() and any(target.iterdir()):
        if not _confirm(f"{target} is not empty, existing files may be overwritten. Continue?"):
            print("Restore cancelled.")
            return 1

    print(f"Restoring into {target} ...")
    try:
        result = context.retriever(target).restore()
    except CryptSyncError as e:
        logger.error(f"Failed to download the manifest: {e}")
        print(f"Error: could not read the backup manifest: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        logger.error(f"Cannot restore into {target}: {e}")
        print(f"Error: cannot restore into {target}: {e}", file=sys.stderr)
        return 1

    print(f"Restored {len(result.restored)} files")
    if result.failed:
        print(f"Failed to restore {len(result.failed)} files:")
        for path, reason in sorted(result.failed.items()):
            print(f"  {path}: {reason}")
    if result.integrity_warnings:
        print(f"{len(result.integrity_warnings)} files did not match their recorded digest:")
        for warning in result.integrity_warnings:
            print(f"  {warning.path}")
    return 0


def cmd_restore(args: argparse.Namespace) -> int:
    return _restore(args, interactive=True)


def cmd_retrieve(args: argparse.Namespace) -> int:
    return _restore(args, interactive=False)


def cmd_genkey(args: argparse.Namespace) -> int:
    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if args.backend == "aes":
        paths = [generate_aes_key(output_dir)]
    elif args.backend == "ecies":
        paths = list(generate_ecies_keys(output_dir))
    else:
        paths = list(generate_hpke_keys(output_dir, with_psk=not args.no_psk).values())

    for path in paths:
        print(f"Wrote {path}")
    return 0


COMMANDS = {
    "sync": cmd_sync,
    "restore": cmd_restore,
    "retrieve": cmd_retrieve,
    "genkey": cmd_genkey,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the command-line application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    try:
        return COMMANDS[args.command](args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
