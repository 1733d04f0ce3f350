# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Manifest - Data model for one backup occurrence and its archives.

A backup set is one manifest plus N archive blobs. Because the places we
store backups into are flat (a directory, a bucket), every stored object is
named after the set key so the set can be put back together from an
unordered listing:

    <set_key>.manifest        the serialized manifest
    <set_key>-<n>.<ext>       archive blob n (1-based)

The set key is derived from the manifest timestamp alone.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Tuple

from pbackup.exceptions import MalformedEntryError

SET_KEY_PREFIX = "backup_"
SET_KEY_TIMESTAMP_FORMAT = "%Y_%m_%d_%H_%M_%S_%f"
MANIFEST_SUFFIX = ".manifest"

_SET_KEY_RE = r"backup_\d{4}_\d{2}_\d{2}_\d{2}_\d{2}_\d{2}_\d{6}"
_OBJECT_NAME_RE = re.compile(
    rf"^(?P<set_key>{_SET_KEY_RE})"
    rf"(?:(?P<manifest>{re.escape(MANIFEST_SUFFIX)})"
    r"|-(?P<index>[1-9]\d*)\.(?P<extension>[A-Za-z0-9]+(?:\.[A-Za-z0-9]+)*))$"
)
_EXTENSION_RE = re.compile(r"^[A-Za-z0-9]+(?:\.[A-Za-z0-9]+)*$")


class TagKind(str, Enum):
    """What a stored object is within its backup set."""

    MANIFEST = "manifest"
    ARCHIVE = "archive"


@dataclass(frozen=True)
class Tag:
    """Classification carried by every stored object."""

    set_key: str
    kind: TagKind
    index: int | None = None  # archive position, None for manifests


def _normalize_timestamp(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=UTC)
    return timestamp.astimezone(UTC)


def set_key_for(timestamp: datetime) -> str:
    """
    Derive the canonical set key for a backup timestamp.

    Naive timestamps are taken to be UTC. The key has microsecond
    resolution, so two distinct instants never share a key.
    """
    return SET_KEY_PREFIX + _normalize_timestamp(timestamp).strftime(
        SET_KEY_TIMESTAMP_FORMAT
    )


@dataclass(frozen=True)
class Manifest:
    """
    Describes one backup occurrence.

    Immutable once created. Two manifests belong to the same backup set
    iff their set keys are equal.
    """

    timestamp: datetime
    archive_extension: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", _normalize_timestamp(self.timestamp))
        if not isinstance(self.archive_extension, str):
            raise TypeError(f"Archive extension must be a string: {self.archive_extension!r}")
        extension = self.archive_extension.lstrip(".")
        if not _EXTENSION_RE.match(extension):
            raise ValueError(f"Invalid archive extension: {self.archive_extension!r}")
        object.__setattr__(self, "archive_extension", extension)

    @property
    def set_key(self) -> str:
        return set_key_for(self.timestamp)

    @property
    def manifest_name(self) -> str:
        return manifest_name(self.set_key)

    def archive_name(self, index: int) -> str:
        return archive_name(self.set_key, index, self.archive_extension)


def new_manifest(archive_extension: str, timestamp: datetime | None = None) -> Manifest:
    """Create a manifest stamped with the current UTC time."""
    return Manifest(
        timestamp=timestamp or datetime.now(UTC),
        archive_extension=archive_extension,
    )


def serialize_manifest(manifest: Manifest) -> bytes:
    """Serialize a manifest to UTF-8 JSON bytes."""
    payload = {
        "timestamp": manifest.timestamp.isoformat(),
        "archive_extension": manifest.archive_extension,
        "set_key": manifest.set_key,
    }
    return json.dumps(payload, sort_keys=True).encode("utf-8")


def deserialize_manifest(data: bytes) -> Manifest:
    """
    Rebuild a manifest from its serialized bytes.

    Raises:
        MalformedEntryError: If the bytes are not a manifest, a field is
            missing, or the stored set key contradicts the timestamp.
    """
    try:
        payload = json.loads(data.decode("utf-8"))
        if not isinstance(payload, dict):
            raise TypeError(f"expected a JSON object, got {type(payload).__name__}")
        timestamp = payload["timestamp"]
        extension = payload["archive_extension"]
        if not isinstance(timestamp, str) or not isinstance(extension, str):
            raise TypeError("timestamp and archive_extension must be strings")
        manifest = Manifest(
            timestamp=datetime.fromisoformat(timestamp),
            archive_extension=extension,
        )
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise MalformedEntryError(f"Cannot deserialize manifest: {e}")

    stored_key = payload.get("set_key")
    if stored_key is not None and stored_key != manifest.set_key:
        raise MalformedEntryError(
            "Manifest set key contradicts its timestamp",
            details={"stored": stored_key, "derived": manifest.set_key},
        )
    return manifest


# ============================================================================
# Object naming
# ============================================================================

def manifest_name(set_key: str) -> str:
    return f"{set_key}{MANIFEST_SUFFIX}"


def archive_name(set_key: str, index: int, extension: str) -> str:
    if index < 1:
        raise ValueError(f"Archive index must be >= 1, got {index}")
    return f"{set_key}-{index}.{extension.lstrip('.')}"


def parse_object_name(name: str) -> Tag | None:
    """
    Classify a file or object name produced by manifest_name/archive_name.

    Only the final path component is considered. Returns None for names
    that do not follow the convention; they are never guessed at.
    """
    match = _OBJECT_NAME_RE.match(name.rsplit("/", 1)[-1])
    if match is None:
        return None
    if match.group("manifest"):
        return Tag(set_key=match.group("set_key"), kind=TagKind.MANIFEST)
    return Tag(
        set_key=match.group("set_key"),
        kind=TagKind.ARCHIVE,
        index=int(match.group("index")),
    )


def blob_sort_key(name: str) -> Tuple[int, str]:
    """Order archive locations by blob index, unparsable names last."""
    tag = parse_object_name(name)
    if tag is None or tag.index is None:
        return (2**31, name)
    return (tag.index, name)


# ============================================================================
# Archives and sets
# ============================================================================

@dataclass(frozen=True)
class ArchiveBlob:
    """A local archive file handed to store(), and its canonical name."""

    name: str
    source: Path


def archive_blobs_for(manifest: Manifest, sources: Iterable[Path]) -> List[ArchiveBlob]:
    """Assign canonical names to the archive files of a backup."""
    return [
        ArchiveBlob(name=manifest.archive_name(i), source=Path(source))
        for i, source in enumerate(sources, start=1)
    ]


@dataclass(frozen=True)
class BackupSet:
    """
    A manifest plus the locations of its archive blobs.

    Computed fresh on every listing; never persisted.
    """

    manifest: Manifest
    blob_locations: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def set_key(self) -> str:
        return self.manifest.set_key

    @property
    def timestamp(self) -> datetime:
        return self.manifest.timestamp

    @property
    def blob_count(self) -> int:
        return len(self.blob_locations)
