# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example: store a backup in every configured location, then restore it.

Run with:
    python examples/basic_backup.py archive1.zip archive2.zip

Environment variables:
    PBACKUP_LOCAL_PATH: Directory to keep backups in
    PBACKUP_S3_BUCKET: Existing S3 bucket to keep backups in (optional)
    AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY: Credentials for the bucket
"""

import asyncio
import sys
import tempfile
from pathlib import Path

from pbackup import (
    archive_blobs_for,
    create_registry_from_env,
    new_manifest,
    serialize_manifest,
)


async def main(archives: list[Path]) -> None:
    registry = create_registry_from_env()

    for backend in registry.enabled_backends:
        probe = await backend.probe()
        print(f"{backend.name}: {probe.message}")

    # The archive step is outside pbackup: here the archives already exist
    manifest = new_manifest(archive_extension=archives[0].suffix.lstrip("."))
    results = await registry.store_all(
        serialize_manifest(manifest),
        archive_blobs_for(manifest, archives),
    )
    for result in results:
        status = "ok" if result.success else result.error or "skipped"
        print(f"stored {result.set_key} in {result.backend}: {status}")

    backend = registry.enabled_backends[0]
    sets = await backend.list_available_sets()
    print(f"{backend.name} holds {len(sets)} backup set(s)")

    with tempfile.TemporaryDirectory() as staging:
        restored = await backend.retrieve(sets[-1].set_key, Path(staging))
        for path in restored:
            print(f"restored {path.name} ({path.stat().st_size} bytes)")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        sys.exit(__doc__)
    asyncio.run(main([Path(arg) for arg in sys.argv[1:]]))
