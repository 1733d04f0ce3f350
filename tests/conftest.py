# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for pbackup tests.

Provides a moto S3 server, temporary directories, and helpers for building
backup sets.
"""

import os
import socket
import tempfile
import uuid
from datetime import datetime
from pathlib import Path
from typing import Generator, List

import pytest
import pytest_asyncio

# Never let tests reach real AWS credentials
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

TEST_ACCESS_KEY = "testing"
TEST_SECRET = "testing"


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(scope="session")
def s3_endpoint() -> Generator[str, None, None]:
    """
    Run moto's S3 implementation as a local HTTP server.

    aiobotocore speaks real HTTP, so the server mode is used instead of the
    in-process mock.
    """
    from moto.server import ThreadedMotoServer

    port = _free_port()
    server = ThreadedMotoServer(ip_address="127.0.0.1", port=port, verbose=False)
    server.start()
    yield f"http://127.0.0.1:{port}"
    server.stop()


@pytest_asyncio.fixture
async def s3_client(s3_endpoint: str):
    """An aiobotocore S3 client pointed at the moto server."""
    from aiobotocore.session import get_session

    session = get_session()
    async with session.create_client(
        "s3",
        region_name="us-east-1",
        endpoint_url=s3_endpoint,
        aws_access_key_id=TEST_ACCESS_KEY,
        aws_secret_access_key=TEST_SECRET,
    ) as client:
        yield client


@pytest_asyncio.fixture
async def bucket(s3_client) -> str:
    """A fresh, empty bucket per test."""
    name = f"test-bucket-{uuid.uuid4().hex[:12]}"
    await s3_client.create_bucket(Bucket=name)
    return name


@pytest.fixture
def object_store(s3_endpoint: str, bucket: str):
    """ObjectStoreBackend over the per-test bucket."""
    from pbackup.backends.object_store import ObjectStoreBackend

    return ObjectStoreBackend(
        container_name=bucket,
        access_key_id=TEST_ACCESS_KEY,
        access_secret=TEST_SECRET,
        endpoint_url=s3_endpoint,
        max_concurrent_transfers=2,
    )


@pytest.fixture
def backup_dir(temp_dir: Path) -> Path:
    path = temp_dir / "backups"
    path.mkdir()
    return path


@pytest.fixture
def staging_dir(temp_dir: Path) -> Path:
    """Where archive files are produced before being handed to a backend."""
    path = temp_dir / "staging"
    path.mkdir()
    return path


def make_backup(
    staging_dir: Path,
    timestamp: datetime,
    contents: List[bytes],
    extension: str = "zip",
):
    """
    Build (manifest, manifest_bytes, archive_blobs) for a backup.

    Archive files are written into staging_dir under throwaway names.
    """
    from pbackup.manifest import Manifest, archive_blobs_for, serialize_manifest

    manifest = Manifest(timestamp=timestamp, archive_extension=extension)
    sources = []
    for i, content in enumerate(contents):
        source = staging_dir / f"{manifest.set_key}-src{i}.{extension}"
        source.write_bytes(content)
        sources.append(source)
    return manifest, serialize_manifest(manifest), archive_blobs_for(manifest, sources)


async def list_bucket_keys(s3_client, bucket: str) -> List[str]:
    response = await s3_client.list_objects_v2(Bucket=bucket)
    return sorted(obj["Key"] for obj in response.get("Contents", []))
