# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Local Directory Backend - Backups as files in one flat directory.

A filesystem has no per-object metadata, so the tag of each file is its
name: `<set_key>.manifest` or `<set_key>-<n>.<ext>`. Names are parsed with
an anchored pattern, so one set key being a substring of another can never
pull a foreign file into a set.
"""

import os
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import structlog

from pbackup.backends.base import (
    ListingTally,
    ProbeResult,
    StorageBackend,
    assemble_backup_sets,
)
from pbackup.backends.files import copy_file, read_bytes, write_bytes
from pbackup.config import LocalDirectoryConfig
from pbackup.exceptions import ConnectivityError, MalformedEntryError
from pbackup.manifest import (
    ArchiveBlob,
    BackupSet,
    Manifest,
    TagKind,
    blob_sort_key,
    deserialize_manifest,
    parse_object_name,
)

logger = structlog.get_logger()


def _is_writable_directory(path: Path) -> bool:
    return path.is_dir() and os.access(path, os.W_OK)


def validate_directory(path: str | Path) -> ProbeResult:
    """
    Check that a path can be used as a backup directory.

    Args:
        path: Directory to check

    Returns:
        ProbeResult, ok iff the path is an existing writable directory
    """
    directory = Path(path)
    if not _is_writable_directory(directory):
        return ProbeResult(
            ok=False,
            message=f"{directory} doesn't exist or is not a writable directory",
        )
    return ProbeResult(ok=True, message=f'directory "{directory}" OK')


class LocalDirectoryBackend(StorageBackend):
    """StorageBackend over a filesystem directory."""

    def __init__(self, path: str | Path, enabled: bool = True):
        super().__init__(enabled=enabled)
        self.path = Path(path)

    @classmethod
    def from_config(cls, config: LocalDirectoryConfig) -> "LocalDirectoryBackend":
        return cls(path=config.path, enabled=config.enabled)

    @property
    def name(self) -> str:
        return f"LocalDirectory: {self.path}"

    async def probe(self) -> ProbeResult:
        return validate_directory(self.path)

    def _require_directory(self) -> None:
        if not self.path.is_dir():
            raise ConnectivityError(
                f"{self.path} is not an existing directory",
                details={"backend": self.name},
            )

    def _entries_for(self, set_key: str) -> List[Tuple[Path, TagKind]]:
        entries = []
        for entry in self.path.iterdir():
            tag = parse_object_name(entry.name)
            if tag is not None and tag.set_key == set_key and entry.is_file():
                entries.append((entry, tag.kind))
        return entries

    async def _collect_sets(self) -> List[BackupSet]:
        self._require_directory()

        tally = ListingTally()
        manifests: List[Manifest] = []
        archives: List[Tuple[str, str]] = []

        for entry in self.path.iterdir():
            if entry.name.startswith("."):
                continue
            tag = parse_object_name(entry.name)
            if tag is None or not entry.is_file():
                tally.unclassified += 1
                continue

            if tag.kind == TagKind.ARCHIVE:
                archives.append((tag.set_key, str(entry)))
                continue

            try:
                manifest = deserialize_manifest(await read_bytes(entry))
                if manifest.set_key != tag.set_key:
                    raise MalformedEntryError(
                        "Manifest content does not match its file name",
                        details={"file": entry.name, "set_key": manifest.set_key},
                    )
            except FileNotFoundError:
                # Deleted between iterdir() and open()
                continue
            except (MalformedEntryError, OSError) as e:
                tally.malformed += 1
                logger.debug("malformed_manifest_skipped", backend=self.name, file=entry.name, error=str(e))
                continue
            manifests.append(manifest)

        sets = assemble_backup_sets(manifests, archives, tally)
        if tally.malformed or tally.orphan_archives:
            logger.warning(
                "listing_entries_skipped",
                backend=self.name,
                malformed=tally.malformed,
                orphan_archives=tally.orphan_archives,
                unclassified=tally.unclassified,
            )
        return sets

    async def _store_preflight(self) -> str | None:
        if not self.path.is_dir():
            return "directory does not exist"
        if not os.access(self.path, os.W_OK):
            return "directory is not writable"
        return None

    async def _put_manifest(self, manifest: Manifest, data: bytes) -> None:
        destination = self.path / manifest.manifest_name
        await write_bytes(destination, data)
        logger.info("manifest_copied", backend=self.name, destination=str(destination))

    async def _put_archives(
        self, manifest: Manifest, blobs: Sequence[ArchiveBlob]
    ) -> Dict[str, str]:
        failures: Dict[str, str] = {}
        for blob in blobs:
            destination = self.path / blob.name
            try:
                size = await copy_file(blob.source, destination)
            except OSError as e:
                failures[blob.name] = str(e)
                logger.error(
                    "archive_copy_failed",
                    backend=self.name,
                    source=str(blob.source),
                    error=str(e),
                )
                continue
            logger.info(
                "archive_copied",
                backend=self.name,
                source=str(blob.source),
                destination=str(destination),
                size=size,
            )
        return failures

    async def _fetch_archives(self, set_key: str, destination_dir: Path) -> List[Path]:
        self._require_directory()

        sources = sorted(
            (entry for entry, kind in self._entries_for(set_key) if kind == TagKind.ARCHIVE),
            key=lambda entry: blob_sort_key(entry.name),
        )

        paths: List[Path] = []
        for source in sources:
            target = destination_dir / source.name
            try:
                await copy_file(source, target)
            except FileNotFoundError:
                # Deleted since the directory was scanned
                logger.debug("archive_vanished", backend=self.name, file=source.name)
                continue
            paths.append(target)
        return paths

    async def _remove_set(self, set_key: str) -> Tuple[List[str], Dict[str, str]]:
        self._require_directory()

        deleted: List[str] = []
        failures: Dict[str, str] = {}
        for entry, _kind in self._entries_for(set_key):
            try:
                entry.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                failures[entry.name] = str(e)
                logger.error("backup_file_delete_failed", backend=self.name, file=entry.name, error=str(e))
                continue
            deleted.append(entry.name)
        return deleted, failures
