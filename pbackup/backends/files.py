# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Atomic local file writes shared by the backends.

Files are written to a dot-prefixed temp file and renamed into place, so a
reader never sees a half-written archive and an interrupted write (error or
cancellation) leaves nothing behind.
"""

from pathlib import Path

import aiofiles

_CHUNK_SIZE = 1024 * 1024


def temp_path_for(destination: Path) -> Path:
    # Leading dot keeps in-flight files out of the naming convention
    return destination.with_name(f".{destination.name}.partial")


def sanitize_filename(key: str) -> str:
    """Flatten an object key into a single path component."""
    safe = key.replace("/", "_").replace("\\", "_")
    for char in [":", "*", "?", '"', "<", ">", "|"]:
        safe = safe.replace(char, "_")
    return safe


async def write_bytes(destination: Path, data: bytes) -> None:
    """Write a file atomically (temp file, then rename)."""
    temp_path = temp_path_for(destination)
    try:
        async with aiofiles.open(temp_path, "wb") as f:
            await f.write(data)
        temp_path.replace(destination)
    finally:
        temp_path.unlink(missing_ok=True)


async def read_bytes(source: Path) -> bytes:
    async with aiofiles.open(source, "rb") as f:
        return await f.read()


async def copy_file(source: Path, destination: Path) -> int:
    """Copy a file byte for byte, atomically. Returns bytes copied."""
    temp_path = temp_path_for(destination)
    copied = 0
    try:
        async with aiofiles.open(source, "rb") as src:
            async with aiofiles.open(temp_path, "wb") as dst:
                while True:
                    chunk = await src.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    await dst.write(chunk)
                    copied += len(chunk)
        temp_path.replace(destination)
    finally:
        temp_path.unlink(missing_ok=True)
    return copied
