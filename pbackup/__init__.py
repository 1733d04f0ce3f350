# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Periodic Backup - Pluggable storage backends for periodic file backups.

A backup is one manifest plus N archive blobs. This package stores such sets
in local directories or S3 buckets, lists them back from flat storage,
retrieves their archives for a restore and deletes them as a unit.
Package name: pbackup.
"""

__version__ = "0.1.0"

# Data model
from pbackup.manifest import (
    ArchiveBlob,
    BackupSet,
    Manifest,
    archive_blobs_for,
    deserialize_manifest,
    new_manifest,
    serialize_manifest,
    set_key_for,
)

# Backends
from pbackup.backends import (
    LocalDirectoryBackend,
    ObjectStoreBackend,
    StorageBackend,
    validate_container,
    validate_directory,
)

# Configuration and registry
from pbackup.builder import build_from_steps, with_local_directory, with_object_store
from pbackup.env import create_config_from_env, create_registry_from_env
from pbackup.registry import BackendRegistry, create_registry

__all__ = [
    # Version
    "__version__",
    # Data model
    "Manifest",
    "ArchiveBlob",
    "BackupSet",
    "new_manifest",
    "serialize_manifest",
    "deserialize_manifest",
    "archive_blobs_for",
    "set_key_for",
    # Backends
    "StorageBackend",
    "LocalDirectoryBackend",
    "ObjectStoreBackend",
    "validate_directory",
    "validate_container",
    # Configuration and registry
    "build_from_steps",
    "with_local_directory",
    "with_object_store",
    "create_config_from_env",
    "create_registry_from_env",
    "BackendRegistry",
    "create_registry",
]
