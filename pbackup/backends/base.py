# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Storage Backend Contract - The uniform API every backup location satisfies.

The public operations live here and own the error policy:

- list_available_sets() and store() never raise for backend failures; they
  log and degrade to an empty listing or a StoreResult describing what went
  wrong.
- retrieve() and delete() raise typed errors.

Concrete backends implement the underscore hooks.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

import structlog
from ulid import ULID

from pbackup.errors import explain_disabled_backend
from pbackup.exceptions import (
    ConfigurationError,
    ConnectivityError,
    DeletionError,
    MalformedEntryError,
    NotFoundError,
    PartialWriteError,
    PBackupError,
)
from pbackup.manifest import (
    ArchiveBlob,
    BackupSet,
    Manifest,
    blob_sort_key,
    deserialize_manifest,
)

logger = structlog.get_logger()


@dataclass
class StoreResult:
    """Result of storing one backup set into one backend."""

    operation_id: str  # ULID
    backend: str
    set_key: str | None = None
    manifest_stored: bool = False
    stored_blobs: List[str] = field(default_factory=list)
    failed_blobs: List[str] = field(default_factory=list)
    skipped: bool = False
    error: str | None = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.manifest_stored and not self.failed_blobs and self.error is None


@dataclass
class DeleteResult:
    """Result of deleting one backup set from one backend."""

    backend: str
    set_key: str
    deleted: List[str] = field(default_factory=list)
    skipped: bool = False


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a configuration-time connectivity check."""

    ok: bool
    message: str


@dataclass
class ListingTally:
    """Counters for entries a listing pass could not use."""

    malformed: int = 0
    unclassified: int = 0
    orphan_archives: int = 0


def assemble_backup_sets(
    manifests: Iterable[Manifest],
    archives: Iterable[Tuple[str, str]],
    tally: ListingTally,
) -> List[BackupSet]:
    """
    Join manifests with their archive locations by set key.

    Args:
        manifests: Manifests found in the listing
        archives: (set_key, location) pairs for every archive found
        tally: Updated with ambiguous manifests and archives without one

    Returns:
        Backup sets ordered by manifest timestamp, oldest first
    """
    by_key: Dict[str, List[Manifest]] = defaultdict(list)
    for manifest in manifests:
        by_key[manifest.set_key].append(manifest)

    locations: Dict[str, List[str]] = defaultdict(list)
    for set_key, location in archives:
        locations[set_key].append(location)

    sets: List[BackupSet] = []
    for set_key, found in by_key.items():
        if len(found) > 1:
            # Two manifests claiming one key cannot be told apart
            tally.malformed += len(found)
            logger.warning("ambiguous_manifest_skipped", set_key=set_key, count=len(found))
            continue
        sets.append(
            BackupSet(
                manifest=found[0],
                blob_locations=tuple(sorted(locations.get(set_key, []), key=blob_sort_key)),
            )
        )

    tally.orphan_archives += sum(
        len(locs) for key, locs in locations.items() if key not in by_key
    )
    sets.sort(key=lambda s: s.timestamp)
    return sets


class StorageBackend(ABC):
    """
    Abstract base class for a backup location.

    A disabled backend takes part in no operation beyond logging that it
    was skipped.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable, stable identifier for log lines and the registry."""
        raise NotImplementedError

    @abstractmethod
    async def probe(self) -> ProbeResult:
        """Lightweight reachability check, for configuration time only."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _collect_sets(self) -> List[BackupSet]:
        """Enumerate sets. May raise PBackupError or OSError."""
        raise NotImplementedError

    async def _store_preflight(self) -> str | None:
        """Return a reason to skip storing, or None to proceed."""
        return None

    @abstractmethod
    async def _put_manifest(self, manifest: Manifest, data: bytes) -> None:
        raise NotImplementedError

    @abstractmethod
    async def _put_archives(
        self, manifest: Manifest, blobs: Sequence[ArchiveBlob]
    ) -> Dict[str, str]:
        """Write archives, attempting all of them. Returns {name: error}."""
        raise NotImplementedError

    @abstractmethod
    async def _fetch_archives(self, set_key: str, destination_dir: Path) -> List[Path]:
        """Copy every archive of a set into destination_dir, index order."""
        raise NotImplementedError

    @abstractmethod
    async def _remove_set(self, set_key: str) -> Tuple[List[str], Dict[str, str]]:
        """Delete every object of a set. Returns (deleted, {name: error})."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    async def list_available_sets(self) -> List[BackupSet]:
        """
        List the backup sets stored in this backend, oldest first.

        Never raises for an unreachable backend or malformed entries; an
        unreachable backend yields an empty list.
        """
        if not self.enabled:
            logger.info("backend_skipped", backend=self.name, operation="list")
            return []

        try:
            sets = await self._collect_sets()
        except (PBackupError, OSError) as e:
            logger.error("backup_listing_failed", backend=self.name, error=str(e))
            return []

        logger.debug("backup_sets_listed", backend=self.name, count=len(sets))
        return sets

    async def store(
        self,
        manifest_bytes: bytes,
        archives: Sequence[ArchiveBlob],
    ) -> StoreResult:
        """
        Store a manifest and its archive blobs.

        Archives are stored as <set_key>-<n>.<extension>, numbered from 1
        in the order given; the caller's blob names are not kept.

        The manifest is written first, then the archives. There is no
        cross-object atomicity: if an archive fails after the manifest
        landed, the set stays visible to listings and the failure is
        logged as a PartialWriteError naming the missing blobs.
        """
        start_time = datetime.now(UTC)
        result = StoreResult(operation_id=str(ULID()), backend=self.name)

        def finish() -> StoreResult:
            result.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()
            return result

        if not self.enabled:
            logger.warning("backend_skipped", backend=self.name, operation="store")
            result.skipped = True
            return finish()

        try:
            manifest = deserialize_manifest(manifest_bytes)
        except MalformedEntryError as e:
            logger.error("store_rejected_manifest", backend=self.name, error=str(e))
            result.error = str(e)
            return finish()
        result.set_key = manifest.set_key

        skip_reason = await self._store_preflight()
        if skip_reason:
            logger.warning(
                "backend_skipped",
                backend=self.name,
                operation="store",
                set_key=manifest.set_key,
                reason=skip_reason,
            )
            result.skipped = True
            return finish()

        # Stored names are derived from the set key, in input order
        named_blobs = [
            ArchiveBlob(name=manifest.archive_name(i), source=blob.source)
            for i, blob in enumerate(archives, start=1)
        ]

        logger.info(
            "backup_store_started",
            backend=self.name,
            operation_id=result.operation_id,
            set_key=manifest.set_key,
            archives=len(named_blobs),
        )

        try:
            await self._put_manifest(manifest, manifest_bytes)
        except (PBackupError, OSError) as e:
            # Never write archives without their manifest
            logger.error(
                "manifest_store_failed",
                backend=self.name,
                set_key=manifest.set_key,
                error=str(e),
            )
            result.error = str(e)
            result.failed_blobs.extend(b.name for b in named_blobs)
            return finish()
        result.manifest_stored = True

        failures = await self._put_archives(manifest, named_blobs)
        for blob in named_blobs:
            if blob.name in failures:
                result.failed_blobs.append(blob.name)
            else:
                result.stored_blobs.append(blob.name)

        if result.failed_blobs:
            partial = PartialWriteError(
                "Backup set stored with missing archives",
                details={
                    "set_key": manifest.set_key,
                    "missing": list(result.failed_blobs),
                    "errors": failures,
                },
            )
            result.error = str(partial)
            logger.error(
                "partial_write",
                backend=self.name,
                operation_id=result.operation_id,
                set_key=manifest.set_key,
                missing=result.failed_blobs,
                error=str(partial),
            )
        else:
            logger.info(
                "backup_store_completed",
                backend=self.name,
                operation_id=result.operation_id,
                set_key=manifest.set_key,
                archives=len(result.stored_blobs),
            )

        return finish()

    async def retrieve(self, set_key: str, destination_dir: Path) -> List[Path]:
        """
        Copy the archives of one set into destination_dir.

        Files keep their stored names, so retrieving twice yields identical
        files. The caller owns destination_dir and its cleanup.

        Raises:
            NotFoundError: No archive carries this set key
            ConnectivityError: The backend could not be read
            ConfigurationError: The backend is disabled
        """
        if not self.enabled:
            logger.warning("backend_skipped", backend=self.name, operation="retrieve")
            raise ConfigurationError(explain_disabled_backend(self.name))

        destination_dir = Path(destination_dir)
        try:
            destination_dir.mkdir(parents=True, exist_ok=True)
            paths = await self._fetch_archives(set_key, destination_dir)
        except PBackupError:
            raise
        except OSError as e:
            raise ConnectivityError(
                f"Failed to retrieve backup: {e}",
                details={"backend": self.name, "set_key": set_key},
            )

        if not paths:
            raise NotFoundError(
                f"No archives found for backup set {set_key}",
                details={"backend": self.name},
            )

        logger.info(
            "backup_retrieved",
            backend=self.name,
            set_key=set_key,
            files=len(paths),
            destination=str(destination_dir),
        )
        return paths

    async def delete(self, set_key: str) -> DeleteResult:
        """
        Delete the manifest and every archive of one set.

        Best effort: every matching object is attempted even when some
        fail. Deleting an already deleted set is a no-op.

        Raises:
            ConnectivityError: The objects could not be enumerated; nothing
                was deleted
            DeletionError: Some objects could not be removed
        """
        if not self.enabled:
            logger.warning("backend_skipped", backend=self.name, operation="delete")
            return DeleteResult(backend=self.name, set_key=set_key, skipped=True)

        try:
            deleted, failures = await self._remove_set(set_key)
        except PBackupError:
            raise
        except OSError as e:
            raise ConnectivityError(
                f"Failed to enumerate backup set: {e}",
                details={"backend": self.name, "set_key": set_key},
            )

        if failures:
            raise DeletionError(
                f"Failed to delete {len(failures)} object(s) of backup set {set_key}",
                details={"backend": self.name, "failed": failures, "deleted": deleted},
            )

        logger.info("backup_deleted", backend=self.name, set_key=set_key, objects=len(deleted))
        return DeleteResult(backend=self.name, set_key=set_key, deleted=deleted)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} enabled={self.enabled}>"
