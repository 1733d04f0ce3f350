# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Periodic Backup Exceptions - Custom exceptions for the pbackup package.
"""


class PBackupError(Exception):
    """Base exception for all pbackup errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(PBackupError):
    """Raised when configuration is invalid or a backend is disabled."""

    pass


class ConnectivityError(PBackupError):
    """Raised when a backend is unreachable or rejects our credentials."""

    pass


class NotFoundError(PBackupError):
    """Raised when no archive blobs match a requested set key."""

    pass


class PartialWriteError(PBackupError):
    """A manifest was stored but one or more archive blobs were not."""

    pass


class MalformedEntryError(PBackupError):
    """A stored object carries tags or content that cannot be classified."""

    pass


class DeletionError(PBackupError):
    """Raised when one or more objects of a set could not be deleted."""

    pass
