# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

These helpers are small, convenient wrappers around the builder functions.
They read a fixed set of environment variables and return a validated
RegistryConfig (or a ready BackendRegistry).
"""

from __future__ import annotations

import os

from pbackup.builder import (
    build_config,
    create_empty_config,
    with_local_directory,
    with_object_store,
)
from pbackup.config import RegistryConfig
from pbackup.errors import (
    explain_invalid_bool_env,
    explain_invalid_concurrency_env,
    explain_missing_credentials_env,
    explain_no_backends_configured,
)
from pbackup.exceptions import ConfigurationError
from pbackup.registry import BackendRegistry, create_registry

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: str | None, default: bool = True) -> bool:
    if value is None or value == "":
        return default
    lower = value.strip().lower()
    if lower in _TRUE_VALUES:
        return True
    if lower in _FALSE_VALUES:
        return False
    raise ConfigurationError(explain_invalid_bool_env(name, value))


def _parse_concurrency(value: str | None) -> int:
    if not value:
        return 4
    try:
        limit = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_concurrency_env(value)) from exc
    if limit < 1:
        raise ConfigurationError(explain_invalid_concurrency_env(value))
    return limit


def create_config_from_env() -> RegistryConfig:
    """
    Create a RegistryConfig from environment variables.

    At least one of the location variables must be set.

    Local directory:
        - PBACKUP_LOCAL_PATH: Directory to store backups in
        - PBACKUP_LOCAL_ENABLED: 'true' | 'false' (default: true)

    S3 bucket:
        - PBACKUP_S3_BUCKET: Existing bucket name
        - AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY: Credentials (required)
        - AWS_REGION: AWS region (default: us-east-1)
        - PBACKUP_S3_ENDPOINT_URL: Endpoint for S3-compatible stores
        - PBACKUP_S3_ENABLED: 'true' | 'false' (default: true)
        - PBACKUP_MAX_CONCURRENT_TRANSFERS: Positive integer (default: 4)
    """
    config = create_empty_config()

    local_path = os.getenv("PBACKUP_LOCAL_PATH")
    if local_path:
        config = with_local_directory(
            config,
            local_path,
            enabled=_parse_bool("PBACKUP_LOCAL_ENABLED", os.getenv("PBACKUP_LOCAL_ENABLED")),
        )

    bucket = os.getenv("PBACKUP_S3_BUCKET")
    if bucket:
        access_key_id = os.getenv("AWS_ACCESS_KEY_ID")
        access_secret = os.getenv("AWS_SECRET_ACCESS_KEY")
        if not access_key_id or not access_secret:
            raise ConfigurationError(explain_missing_credentials_env(bucket))

        config = with_object_store(
            config,
            bucket,
            access_key_id,
            access_secret,
            enabled=_parse_bool("PBACKUP_S3_ENABLED", os.getenv("PBACKUP_S3_ENABLED")),
            region=os.getenv("AWS_REGION", "us-east-1"),
            endpoint_url=os.getenv("PBACKUP_S3_ENDPOINT_URL") or None,
            max_concurrent_transfers=_parse_concurrency(
                os.getenv("PBACKUP_MAX_CONCURRENT_TRANSFERS")
            ),
        )

    if not local_path and not bucket:
        raise ConfigurationError(explain_no_backends_configured())

    return build_config(config)


def create_registry_from_env() -> BackendRegistry:
    """Build a BackendRegistry from environment variables."""
    return create_registry(create_config_from_env())
