# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pbackup Builder - Functional builder pattern for backend configuration.

This module provides pure functions for building a RegistryConfig. Each
function takes a config dict and returns a new dict with the modification
applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from pbackup.config import LocalDirectoryConfig, ObjectStoreConfig, RegistryConfig
from pbackup.exceptions import ConfigurationError


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary with no backends.

    Returns:
        Dict with empty backend lists
    """
    return {
        "local_directories": [],
        "object_stores": [],
    }


def with_local_directory(
    config: ConfigDict,
    path: Path | str,
    enabled: bool = True,
) -> ConfigDict:
    """
    Add a local directory backup location.

    Args:
        config: Current configuration dictionary
        path: Existing, writable directory to store backups in
        enabled: Whether the location takes part in backups

    Returns:
        New configuration dictionary with the directory added
    """
    entry = {"path": Path(path), "enabled": enabled}
    return {**config, "local_directories": [*config["local_directories"], entry]}


def with_object_store(
    config: ConfigDict,
    container_name: str,
    access_key_id: str,
    access_secret: str,
    enabled: bool = True,
    **options: Any,
) -> ConfigDict:
    """
    Add an S3 bucket backup location.

    Args:
        config: Current configuration dictionary
        container_name: Existing bucket name
        access_key_id: AWS access key ID
        access_secret: AWS secret access key
        enabled: Whether the location takes part in backups
        **options: region, endpoint_url, max_concurrent_transfers,
            list_batch_size

    Returns:
        New configuration dictionary with the bucket added
    """
    entry = {
        "container_name": container_name,
        "access_key_id": access_key_id,
        "access_secret": access_secret,
        "enabled": enabled,
        **options,
    }
    return {**config, "object_stores": [*config["object_stores"], entry]}


def disable_all(config: ConfigDict) -> ConfigDict:
    """
    Mark every configured location as disabled.

    Useful for maintenance windows: locations stay listed but take part in
    no operation.
    """
    return {
        "local_directories": [
            {**entry, "enabled": False} for entry in config["local_directories"]
        ],
        "object_stores": [
            {**entry, "enabled": False} for entry in config["object_stores"]
        ],
    }


def build_config(config_dict: ConfigDict) -> RegistryConfig:
    """
    Build a validated, immutable RegistryConfig.

    Args:
        config_dict: Configuration dictionary

    Returns:
        Validated RegistryConfig instance

    Raises:
        ConfigurationError: If no location is configured or validation fails
    """
    if not config_dict.get("local_directories") and not config_dict.get("object_stores"):
        raise ConfigurationError("at least one backup location is required")

    try:
        return RegistryConfig(
            local_directories=tuple(
                LocalDirectoryConfig(**entry) for entry in config_dict["local_directories"]
            ),
            object_stores=tuple(
                ObjectStoreConfig(**entry) for entry in config_dict["object_stores"]
            ),
        )
    except TypeError as e:
        raise ConfigurationError(f"Unknown configuration option: {e}")


def build_from_steps(*steps: BuilderFunc) -> RegistryConfig:
    """
    Build config by applying a sequence of builder functions.

    Example:
        config = build_from_steps(
            lambda c: with_local_directory(c, "/var/backups/app"),
            lambda c: with_object_store(c, "my-backups", key_id, secret),
        )

    Args:
        *steps: Builder functions to apply in sequence

    Returns:
        Validated, immutable RegistryConfig instance
    """
    config = create_empty_config()
    for step in steps:
        config = step(config)
    return build_config(config)
