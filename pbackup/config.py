# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pbackup Configuration - Immutable backend configuration data structures.

All configuration is frozen (immutable) after creation to prevent
accidental modification while a backup or restore is running.
"""

from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import List, Tuple
import re

from pbackup.exceptions import ConfigurationError


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate S3 bucket name according to AWS rules.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens
    - Must start and end with letter or number
    - No consecutive periods
    - Not formatted as IP address
    """
    if not bucket or len(bucket) < 3 or len(bucket) > 63:
        return False

    if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", bucket):
        return False

    if ".." in bucket:
        return False

    if re.match(r"^\d+\.\d+\.\d+\.\d+$", bucket):
        return False

    return True


def _raise_if_errors(errors: List[str]) -> None:
    if errors:
        raise ConfigurationError(
            "Configuration validation failed",
            details={"errors": errors},
        )


@dataclass(frozen=True)
class LocalDirectoryConfig:
    """Configuration for a backend writing into one flat local directory."""

    path: Path
    enabled: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))
        errors: List[str] = []
        if not str(self.path):
            errors.append("path must not be empty")
        _raise_if_errors(errors)

    def with_updates(self, **kwargs) -> "LocalDirectoryConfig":
        return replace(self, **kwargs)


@dataclass(frozen=True)
class ObjectStoreConfig:
    """
    Configuration for a backend writing into one S3-compatible bucket.

    The bucket must already exist; it is never created on demand.
    """

    # Required: bucket holding the backups
    container_name: str

    access_key_id: str = field(default="", repr=False)
    access_secret: str = field(default="", repr=False)

    enabled: bool = True

    # AWS region (default: us-east-1)
    region: str = "us-east-1"

    # Custom endpoint for S3-compatible stores (MinIO, Ceph, moto)
    endpoint_url: str | None = None

    # Upper bound on parallel head/get/put calls within one operation
    max_concurrent_transfers: int = 4

    # Page size for bucket listing
    list_batch_size: int = 1000

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not _validate_bucket_name(self.container_name):
            errors.append(f"Invalid bucket name: {self.container_name}")

        if bool(self.access_key_id) != bool(self.access_secret):
            errors.append("access_key_id and access_secret must be given together")

        if self.max_concurrent_transfers < 1:
            errors.append(
                f"max_concurrent_transfers must be >= 1, got {self.max_concurrent_transfers}"
            )

        if not 1 <= self.list_batch_size <= 1000:
            errors.append(
                f"list_batch_size must be between 1 and 1000, got {self.list_batch_size}"
            )

        _raise_if_errors(errors)

    def with_updates(self, **kwargs) -> "ObjectStoreConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        current = asdict(self)
        current.update(kwargs)
        return ObjectStoreConfig(**current)


@dataclass(frozen=True)
class RegistryConfig:
    """All configured backup locations, in the order they were added."""

    local_directories: Tuple[LocalDirectoryConfig, ...] = ()
    object_stores: Tuple[ObjectStoreConfig, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.local_directories and not self.object_stores
