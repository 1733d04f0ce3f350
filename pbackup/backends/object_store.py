# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Object Store Backend - Backups as objects in one S3-compatible bucket.

Every object carries two user metadata entries, the set key and the kind
(manifest or archive). Bucket listings return bare keys without user
metadata, so listing and retrieving are two-phase:

1. list every key in the bucket
2. head each key to read its tags

Phase 2 is an N+1 fan-out; it runs concurrently, bounded by
max_concurrent_transfers, and results are sorted after collection. No
listing is cached between calls since other agents may change the bucket.
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Sequence, Tuple

import structlog
from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from pbackup.backends.base import (
    ListingTally,
    ProbeResult,
    StorageBackend,
    assemble_backup_sets,
)
from pbackup.backends.files import read_bytes, sanitize_filename, write_bytes
from pbackup.config import ObjectStoreConfig
from pbackup.exceptions import ConnectivityError, MalformedEntryError
from pbackup.manifest import (
    ArchiveBlob,
    BackupSet,
    Manifest,
    Tag,
    TagKind,
    blob_sort_key,
    deserialize_manifest,
    parse_object_name,
)

logger = structlog.get_logger()

# S3 user metadata (x-amz-meta-*) names; S3 lowercases them
META_SET_KEY = "backup-set-key"
META_KIND = "backup-kind"

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}

S3Errors = (BotoCoreError, ClientError)


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _is_not_found(error: Exception) -> bool:
    return isinstance(error, ClientError) and _error_code(error) in _NOT_FOUND_CODES


def _belongs_to(key: str, set_key: str) -> bool:
    tag = parse_object_name(key)
    return tag is not None and tag.set_key == set_key


def tag_metadata(set_key: str, kind: TagKind) -> Dict[str, str]:
    return {META_SET_KEY: set_key, META_KIND: kind.value}


def tag_from_metadata(key: str, metadata: Dict[str, str]) -> Tag | None:
    """
    Read the tag of an object from its user metadata.

    Returns:
        The tag, or None for an object carrying neither entry (not ours)

    Raises:
        MalformedEntryError: One entry is missing or invalid, or the tags
            contradict the object key
    """
    metadata = {k.lower(): v for k, v in (metadata or {}).items()}
    set_key = metadata.get(META_SET_KEY)
    kind_value = metadata.get(META_KIND)

    if set_key is None and kind_value is None:
        return None

    try:
        kind = TagKind((kind_value or "").lower())
    except ValueError:
        raise MalformedEntryError(
            f"Object {key} has an invalid kind tag",
            details={"kind": kind_value},
        )
    if not set_key:
        raise MalformedEntryError(f"Object {key} has no set key tag")

    name_tag = parse_object_name(key)
    if name_tag is not None and (name_tag.set_key != set_key or name_tag.kind != kind):
        raise MalformedEntryError(
            f"Tags of object {key} contradict its key",
            details={"set_key": set_key, "kind": kind.value},
        )
    return Tag(set_key=set_key, kind=kind, index=name_tag.index if name_tag else None)


async def validate_container(
    container_name: str,
    access_key_id: str,
    access_secret: str,
    region: str = "us-east-1",
    endpoint_url: str | None = None,
) -> ProbeResult:
    """
    Check that a bucket exists and the credentials can reach it.

    Args:
        container_name: Bucket to check
        access_key_id: AWS access key ID
        access_secret: AWS secret access key
        region: AWS region
        endpoint_url: Custom endpoint for S3-compatible stores

    Returns:
        ProbeResult with an operator-facing message
    """
    session = get_session()
    try:
        async with session.create_client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=access_secret or None,
        ) as s3_client:
            await s3_client.head_bucket(Bucket=container_name)
    except ClientError as e:
        if _error_code(e) in _MISSING_BUCKET_CODES:
            return ProbeResult(ok=False, message="Invalid bucket name.")
        return ProbeResult(ok=False, message=f"Unable to connect: {e}")
    except BotoCoreError as e:
        return ProbeResult(ok=False, message=f"Unable to connect: {e}")

    return ProbeResult(ok=True, message="The connection is valid.")


class ObjectStoreBackend(StorageBackend):
    """
    StorageBackend over an S3-compatible bucket.

    The bucket must exist; it is never created. A client is opened per
    operation, like every other S3 call in this package.
    """

    def __init__(
        self,
        container_name: str,
        access_key_id: str = "",
        access_secret: str = "",
        enabled: bool = True,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        max_concurrent_transfers: int = 4,
        list_batch_size: int = 1000,
    ):
        super().__init__(enabled=enabled)
        self.container_name = container_name
        self.region = region
        self.endpoint_url = endpoint_url
        self.max_concurrent_transfers = max_concurrent_transfers
        self.list_batch_size = list_batch_size
        self._access_key_id = access_key_id
        self._access_secret = access_secret
        self._session = get_session()

    @classmethod
    def from_config(cls, config: ObjectStoreConfig) -> "ObjectStoreBackend":
        return cls(
            container_name=config.container_name,
            access_key_id=config.access_key_id,
            access_secret=config.access_secret,
            enabled=config.enabled,
            region=config.region,
            endpoint_url=config.endpoint_url,
            max_concurrent_transfers=config.max_concurrent_transfers,
            list_batch_size=config.list_batch_size,
        )

    @property
    def name(self) -> str:
        return f"S3 Bucket: {self.container_name}"

    async def probe(self) -> ProbeResult:
        return await validate_container(
            self.container_name,
            self._access_key_id,
            self._access_secret,
            region=self.region,
            endpoint_url=self.endpoint_url,
        )

    def _client(self) -> Any:
        return self._session.create_client(
            "s3",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self._access_key_id or None,
            aws_secret_access_key=self._access_secret or None,
        )

    def _connectivity_error(self, action: str, error: Exception) -> ConnectivityError:
        return ConnectivityError(
            f"Failed to {action} in S3: {error}",
            details={"backend": self.name, "bucket": self.container_name},
        )

    # ------------------------------------------------------------------
    # Fan-out helpers
    # ------------------------------------------------------------------

    async def _gather_bounded(self, calls: Sequence[Callable[[], Awaitable[Any]]]) -> List[Any]:
        """
        Run calls concurrently, at most max_concurrent_transfers at a time.

        Results keep the order of `calls`. If one call raises, the others
        are cancelled before the error propagates.
        """
        semaphore = asyncio.Semaphore(self.max_concurrent_transfers)

        async def run(call: Callable[[], Awaitable[Any]]) -> Any:
            async with semaphore:
                return await call()

        tasks = [asyncio.ensure_future(run(call)) for call in calls]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _list_keys(self, s3_client: Any) -> List[str]:
        """List all keys in the bucket."""
        keys: List[str] = []
        paginator = s3_client.get_paginator("list_objects_v2")

        async for page in paginator.paginate(
            Bucket=self.container_name,
            MaxKeys=self.list_batch_size,
        ):
            for obj in page.get("Contents", []):
                keys.append(obj["Key"])

        return keys

    async def _head_metadata(self, s3_client: Any, key: str) -> Dict[str, str] | None:
        """User metadata of one object, None if it vanished since listing."""
        try:
            response = await s3_client.head_object(Bucket=self.container_name, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                logger.debug("object_vanished", backend=self.name, key=key)
                return None
            raise
        return response.get("Metadata", {})

    async def _get_body(self, s3_client: Any, key: str) -> bytes:
        response = await s3_client.get_object(Bucket=self.container_name, Key=key)
        async with response["Body"] as stream:
            return await stream.read()

    async def _tagged_keys(
        self,
        s3_client: Any,
        tally: ListingTally,
        keys: List[str] | None = None,
    ) -> List[Tuple[str, Tag]]:
        """
        Fetch the tag of every key, listing the bucket unless keys are given.

        Any failure other than a key vanishing aborts the pass; a set must
        not be reported with blobs silently missing.
        """
        if keys is None:
            keys = await self._list_keys(s3_client)
        metadata = await self._gather_bounded(
            [lambda key=key: self._head_metadata(s3_client, key) for key in keys]
        )

        tagged: List[Tuple[str, Tag]] = []
        for key, meta in zip(keys, metadata):
            if meta is None:
                continue
            try:
                tag = tag_from_metadata(key, meta)
            except MalformedEntryError as e:
                tally.malformed += 1
                logger.debug("malformed_object_skipped", backend=self.name, key=key, error=str(e))
                continue
            if tag is None:
                tally.unclassified += 1
                continue
            tagged.append((key, tag))
        return tagged

    async def _load_manifest(self, s3_client: Any, key: str, tag: Tag) -> Manifest | None:
        try:
            data = await self._get_body(s3_client, key)
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise
        manifest = deserialize_manifest(data)
        if manifest.set_key != tag.set_key:
            raise MalformedEntryError(
                f"Manifest {key} does not match its set key tag",
                details={"tag": tag.set_key, "manifest": manifest.set_key},
            )
        return manifest

    # ------------------------------------------------------------------
    # StorageBackend hooks
    # ------------------------------------------------------------------

    async def _collect_sets(self) -> List[BackupSet]:
        tally = ListingTally()
        try:
            async with self._client() as s3_client:
                tagged = await self._tagged_keys(s3_client, tally)
                manifest_entries = [(k, t) for k, t in tagged if t.kind == TagKind.MANIFEST]

                async def load(key: str, tag: Tag) -> Manifest | None:
                    try:
                        return await self._load_manifest(s3_client, key, tag)
                    except MalformedEntryError as e:
                        tally.malformed += 1
                        logger.debug("malformed_manifest_skipped", backend=self.name, key=key, error=str(e))
                        return None

                loaded = await self._gather_bounded(
                    [lambda k=k, t=t: load(k, t) for k, t in manifest_entries]
                )
        except S3Errors as e:
            raise self._connectivity_error("list backups", e)

        manifests = [m for m in loaded if m is not None]
        archives = [(t.set_key, k) for k, t in tagged if t.kind == TagKind.ARCHIVE]
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

    async def _put_manifest(self, manifest: Manifest, data: bytes) -> None:
        key = manifest.manifest_name
        logger.info("creating_manifest_object", backend=self.name, key=key)
        try:
            async with self._client() as s3_client:
                await s3_client.put_object(
                    Bucket=self.container_name,
                    Key=key,
                    Body=data,
                    Metadata=tag_metadata(manifest.set_key, TagKind.MANIFEST),
                )
        except S3Errors as e:
            raise self._connectivity_error("store manifest", e)

    async def _put_archives(
        self, manifest: Manifest, blobs: Sequence[ArchiveBlob]
    ) -> Dict[str, str]:
        failures: Dict[str, str] = {}
        metadata = tag_metadata(manifest.set_key, TagKind.ARCHIVE)

        async def upload(s3_client: Any, blob: ArchiveBlob) -> None:
            try:
                content = await read_bytes(blob.source)
                await s3_client.put_object(
                    Bucket=self.container_name,
                    Key=blob.name,
                    Body=content,
                    Metadata=metadata,
                )
            except (BotoCoreError, ClientError, OSError) as e:
                failures[blob.name] = str(e)
                logger.error(
                    "archive_upload_failed",
                    backend=self.name,
                    key=blob.name,
                    error=str(e),
                )
                return
            logger.info("archive_uploaded", backend=self.name, key=blob.name, size=len(content))

        logger.info("creating_archive_objects", backend=self.name, count=len(blobs))
        try:
            async with self._client() as s3_client:
                await self._gather_bounded(
                    [lambda blob=blob: upload(s3_client, blob) for blob in blobs]
                )
        except S3Errors as e:
            # Client could not be created; nothing was uploaded
            for blob in blobs:
                failures.setdefault(blob.name, str(e))
        return failures

    async def _fetch_archives(self, set_key: str, destination_dir: Path) -> List[Path]:
        tally = ListingTally()
        try:
            async with self._client() as s3_client:
                tagged = await self._tagged_keys(s3_client, tally)
                keys = sorted(
                    (k for k, t in tagged if t.kind == TagKind.ARCHIVE and t.set_key == set_key),
                    key=blob_sort_key,
                )
                logger.info("archives_found", backend=self.name, set_key=set_key, count=len(keys))

                async def download(key: str) -> Path:
                    target = destination_dir / sanitize_filename(key)
                    await write_bytes(target, await self._get_body(s3_client, key))
                    logger.debug("archive_downloaded", backend=self.name, key=key, path=str(target))
                    return target

                return await self._gather_bounded(
                    [lambda key=key: download(key) for key in keys]
                )
        except S3Errors as e:
            raise self._connectivity_error("retrieve backup", e)

    async def _remove_set(self, set_key: str) -> Tuple[List[str], Dict[str, str]]:
        deleted: List[str] = []
        failures: Dict[str, str] = {}

        try:
            async with self._client() as s3_client:
                keys = await self._list_keys(s3_client)
                tagged = await self._tagged_keys(s3_client, ListingTally(), keys)
                tagged_for_set = {k for k, t in tagged if t.set_key == set_key}
                matching = [
                    key for key in keys
                    if _belongs_to(key, set_key) or key in tagged_for_set
                ]

                async def remove(key: str) -> None:
                    try:
                        await s3_client.delete_object(Bucket=self.container_name, Key=key)
                    except S3Errors as e:
                        failures[key] = str(e)
                        logger.error("object_delete_failed", backend=self.name, key=key, error=str(e))
                        return
                    deleted.append(key)

                await self._gather_bounded([lambda key=key: remove(key) for key in matching])
        except S3Errors as e:
            # Listing or tag lookup failed before any delete was issued
            raise self._connectivity_error("list objects for deletion", e)

        deleted.sort(key=blob_sort_key)
        return deleted, failures
