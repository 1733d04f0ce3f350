# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for pbackup.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_no_backends_configured() -> str:
    """
    Explain that neither backend environment variable is set.
    """

    return (
        "No backup location is configured. "
        "Set PBACKUP_LOCAL_PATH and/or PBACKUP_S3_BUCKET, "
        "or use with_local_directory()/with_object_store() from pbackup.builder."
    )


def explain_missing_credentials_env(bucket: str) -> str:
    """
    Explain that the S3 credentials are missing for a configured bucket.
    """

    return (
        f"S3 bucket {bucket!r} is configured but credentials are missing. "
        "Set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY."
    )


def explain_invalid_bool_env(name: str, value: str | None) -> str:
    """
    Explain that a boolean environment variable is invalid.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "Expected one of: 'true', 'false', '1', '0', 'yes', 'no'."
    )


def explain_invalid_concurrency_env(value: str | None) -> str:
    """
    Explain that PBACKUP_MAX_CONCURRENT_TRANSFERS is invalid.
    """

    return (
        f"Invalid PBACKUP_MAX_CONCURRENT_TRANSFERS value: {value!r}. "
        "It must be a positive integer."
    )


def explain_disabled_backend(name: str) -> str:
    """
    Explain that a targeted operation was requested on a disabled backend.
    """

    return (
        f"Backend {name!r} is disabled. "
        "Enable it in its configuration before retrieving backups from it."
    )
