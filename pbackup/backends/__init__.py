# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Storage Backends - Where backup sets are stored and restored from.
"""

from pbackup.backends.base import (
    DeleteResult,
    ProbeResult,
    StorageBackend,
    StoreResult,
)

from pbackup.backends.local import (
    LocalDirectoryBackend,
    validate_directory,
)

from pbackup.backends.object_store import (
    ObjectStoreBackend,
    validate_container,
)

__all__ = [
    # Contract
    "StorageBackend",
    "StoreResult",
    "DeleteResult",
    "ProbeResult",
    # Local directory
    "LocalDirectoryBackend",
    "validate_directory",
    # Object store
    "ObjectStoreBackend",
    "validate_container",
]
