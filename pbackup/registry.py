# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pbackup Backend Registry - The configured list of backup locations.

Backends are registered explicitly, in configuration order; nothing is
discovered at runtime. The registry is what the (external) backup trigger
hands a finished backup to, and what the (external) restore flow picks a
backend from.
"""

from typing import Dict, Iterator, List, Sequence

import structlog

from pbackup.backends.base import StorageBackend, StoreResult
from pbackup.backends.local import LocalDirectoryBackend
from pbackup.backends.object_store import ObjectStoreBackend
from pbackup.config import RegistryConfig
from pbackup.exceptions import ConfigurationError
from pbackup.manifest import ArchiveBlob, BackupSet

logger = structlog.get_logger()


class BackendRegistry:
    """Ordered collection of storage backends, keyed by backend name."""

    def __init__(self, backends: Sequence[StorageBackend] = ()):
        self._backends: Dict[str, StorageBackend] = {}
        for backend in backends:
            self.register(backend)

    def register(self, backend: StorageBackend) -> None:
        """
        Add a backend.

        Raises:
            ConfigurationError: A backend with the same name is registered
        """
        if backend.name in self._backends:
            raise ConfigurationError(
                f"Backend already registered: {backend.name}",
                details={"backend": backend.name},
            )
        self._backends[backend.name] = backend
        logger.debug("backend_registered", backend=backend.name, enabled=backend.enabled)

    def get(self, name: str) -> StorageBackend:
        try:
            return self._backends[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown backend: {name}",
                details={"known": list(self._backends)},
            )

    @property
    def backends(self) -> List[StorageBackend]:
        return list(self._backends.values())

    @property
    def enabled_backends(self) -> List[StorageBackend]:
        return [b for b in self._backends.values() if b.enabled]

    def __iter__(self) -> Iterator[StorageBackend]:
        return iter(self.backends)

    def __len__(self) -> int:
        return len(self._backends)

    async def store_all(
        self,
        manifest_bytes: bytes,
        archives: Sequence[ArchiveBlob],
    ) -> List[StoreResult]:
        """
        Store one backup set in every enabled backend, one after another.

        A failing backend never stops the others; each outcome is in its
        StoreResult. Disabled backends are skipped with a log line.
        """
        results: List[StoreResult] = []
        for backend in self._backends.values():
            if not backend.enabled:
                logger.info("backend_skipped", backend=backend.name, operation="store")
                continue
            results.append(await backend.store(manifest_bytes, archives))

        failed = [r.backend for r in results if not r.success]
        logger.info(
            "backup_distributed",
            backends=len(results),
            failed=failed,
        )
        return results

    async def list_all(self) -> Dict[str, List[BackupSet]]:
        """Backup sets per enabled backend name."""
        return {
            backend.name: await backend.list_available_sets()
            for backend in self.enabled_backends
        }


def create_registry(config: RegistryConfig) -> BackendRegistry:
    """
    Build the registry for a configuration.

    Local directories come first, then object stores, each in the order
    they were configured.
    """
    registry = BackendRegistry()
    for local_config in config.local_directories:
        registry.register(LocalDirectoryBackend.from_config(local_config))
    for store_config in config.object_stores:
        registry.register(ObjectStoreBackend.from_config(store_config))

    logger.info(
        "registry_created",
        backends=len(registry),
        enabled=len(registry.enabled_backends),
    )
    return registry
