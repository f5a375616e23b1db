"""
Object stores for cryptsync.

This package provides pluggable object stores that encrypt on write and
decrypt on read: AWS S3 (and compatible services) and a local directory.

Example:
    >>> from cryptsync.backends import LocalObjectStore, S3ObjectStore
    >>> local = LocalObjectStore('/mnt/backup', encryption)
    >>> s3 = S3ObjectStore('my-bucket', encryption, region='us-east-1')
"""

from cryptsync.backends.base import ObjectStore, StorageLocation, StorageType
from cryptsync.backends.local import LocalObjectStore
from cryptsync.backends.s3 import S3ObjectStore

__all__ = [
    "ObjectStore",
    "StorageLocation",
    "StorageType",
    "LocalObjectStore",
    "S3ObjectStore",
]
