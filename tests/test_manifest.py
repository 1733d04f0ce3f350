# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Manifest and naming tests.

These tests pin down the join key that holds a backup set together in
flat storage:
1. Distinct timestamps give distinct set keys
2. Object names round-trip through parse_object_name
3. Malformed manifests are rejected, never guessed at
"""

import json
from datetime import datetime, timedelta, timezone, UTC
from pathlib import Path

import pytest

from pbackup.exceptions import MalformedEntryError
from pbackup.manifest import (
    Manifest,
    TagKind,
    archive_blobs_for,
    archive_name,
    blob_sort_key,
    deserialize_manifest,
    manifest_name,
    parse_object_name,
    serialize_manifest,
    set_key_for,
)


# ============================================================================
# Set keys
# ============================================================================

def test_set_key_format_is_stable():
    """The set key of a known timestamp never changes."""
    assert set_key_for(datetime(2024, 1, 1, 0, 0, 0)) == "backup_2024_01_01_00_00_00_000000"


def test_distinct_timestamps_have_distinct_set_keys():
    """Timestamps one microsecond apart still get different keys."""
    base = datetime(2024, 1, 1, 12, 30, 15, 123456, tzinfo=UTC)
    keys = {set_key_for(base + timedelta(microseconds=i)) for i in range(50)}
    keys |= {set_key_for(base + timedelta(seconds=i)) for i in range(1, 50)}

    assert len(keys) == 99


def test_naive_and_utc_timestamps_share_a_set_key():
    """A naive timestamp is read as UTC; other zones are converted."""
    naive = datetime(2024, 6, 1, 10, 0, 0)
    aware_utc = datetime(2024, 6, 1, 10, 0, 0, tzinfo=UTC)
    plus_two = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone(timedelta(hours=2)))

    assert set_key_for(naive) == set_key_for(aware_utc) == set_key_for(plus_two)


def test_manifests_with_equal_set_keys_are_the_same_set():
    m1 = Manifest(timestamp=datetime(2024, 1, 1), archive_extension="zip")
    m2 = Manifest(timestamp=datetime(2024, 1, 1, tzinfo=UTC), archive_extension=".zip")

    assert m1.set_key == m2.set_key
    assert m1 == m2


def test_invalid_extension_rejected():
    with pytest.raises(ValueError):
        Manifest(timestamp=datetime(2024, 1, 1), archive_extension="zip/../x")
    with pytest.raises(TypeError):
        Manifest(timestamp=datetime(2024, 1, 1), archive_extension=None)


# ============================================================================
# Serialization
# ============================================================================

def test_manifest_serialization_round_trip():
    manifest = Manifest(timestamp=datetime(2024, 1, 1, 8, 15, 0, 42), archive_extension="tar.gz")

    restored = deserialize_manifest(serialize_manifest(manifest))

    assert restored == manifest
    assert restored.set_key == manifest.set_key
    assert restored.archive_extension == "tar.gz"


@pytest.mark.parametrize(
    "data",
    [
        b"not json at all",
        b"\xff\xfe\x00",
        b'{"archive_extension": "zip"}',
        b'{"timestamp": "yesterday", "archive_extension": "zip"}',
        b"[1, 2, 3]",
        b'{"timestamp": "2024-01-01T00:00:00+00:00", "archive_extension": null}',
        b'{"timestamp": "2024-01-01T00:00:00+00:00", "archive_extension": 7}',
        b'{"timestamp": 1704067200, "archive_extension": "zip"}',
    ],
)
def test_undeserializable_manifest_is_malformed(data: bytes):
    with pytest.raises(MalformedEntryError):
        deserialize_manifest(data)


def test_manifest_with_contradicting_set_key_is_malformed():
    """The stored set key must agree with the stored timestamp."""
    payload = {
        "timestamp": "2024-01-01T00:00:00+00:00",
        "archive_extension": "zip",
        "set_key": "backup_2023_01_01_00_00_00_000000",
    }

    with pytest.raises(MalformedEntryError) as exc_info:
        deserialize_manifest(json.dumps(payload).encode())

    assert exc_info.value.details["derived"] == "backup_2024_01_01_00_00_00_000000"


# ============================================================================
# Object names
# ============================================================================

def test_parse_manifest_and_archive_names():
    key = "backup_2024_01_01_00_00_00_000000"

    manifest_tag = parse_object_name(manifest_name(key))
    archive_tag = parse_object_name(archive_name(key, 3, "tar.gz"))

    assert manifest_tag.kind == TagKind.MANIFEST
    assert manifest_tag.set_key == key
    assert manifest_tag.index is None
    assert archive_tag.kind == TagKind.ARCHIVE
    assert archive_tag.set_key == key
    assert archive_tag.index == 3


@pytest.mark.parametrize(
    "name",
    [
        "a.zip",
        "backup_2024_01_01_00_00_00_000000",
        "xbackup_2024_01_01_00_00_00_000000-1.zip",
        "backup_2024_01_01_00_00_00_0000001-1.zip",
        "backup_2024_01_01_00_00_00_000000-0.zip",
        "backup_2024_01_01_00_00_00_000000-1",
        ".backup_2024_01_01_00_00_00_000000-1.zip.partial",
        "backup_2024_01_01_00_00_00_000000.manifest.bak",
    ],
)
def test_unconventional_names_are_not_classified(name: str):
    """Only exact, delimiter-bounded names belong to a set."""
    assert parse_object_name(name) is None


def test_parse_uses_last_path_component():
    tag = parse_object_name("some/prefix/backup_2024_01_01_00_00_00_000000-2.zip")

    assert tag is not None
    assert tag.index == 2


def test_blob_sort_key_orders_numerically():
    key = "backup_2024_01_01_00_00_00_000000"
    names = [archive_name(key, i, "zip") for i in (10, 2, 1)]

    assert sorted(names, key=blob_sort_key) == [
        archive_name(key, 1, "zip"),
        archive_name(key, 2, "zip"),
        archive_name(key, 10, "zip"),
    ]


def test_archive_blobs_for_assigns_canonical_names(temp_dir: Path):
    manifest = Manifest(timestamp=datetime(2024, 1, 1), archive_extension="zip")

    blobs = archive_blobs_for(manifest, [temp_dir / "a.zip", temp_dir / "b.zip"])

    assert [b.name for b in blobs] == [
        "backup_2024_01_01_00_00_00_000000-1.zip",
        "backup_2024_01_01_00_00_00_000000-2.zip",
    ]
    assert blobs[0].source == temp_dir / "a.zip"
