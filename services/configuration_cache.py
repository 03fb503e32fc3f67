"""
Active configuration cache.

Holds the process's view of "the currently active configuration". Lifecycle:
populate on first read, invalidate on every mutating configuration write, no
expiry. Readers of the active configuration (email, metrics, lifecycle) must go
through `get_active_configuration()` rather than the store, since invalidation
is the only consistency mechanism.

One instance is owned by the composition root and passed to every operation that
reads or invalidates it; tests construct isolated instances.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from domain.configuration import Configuration, ConfigurationStatus
from domain.errors import StoreError
from repositories.configuration_repository import list_configurations
from repositories.document_store import DocumentStore

logger = logging.getLogger(__name__)


class ActiveConfigurationCache:
    """
    Read-through cache for the active configuration.

    Store reads happen outside the lock. A generation counter, bumped by every
    invalidation, stops a read that started before an invalidation from
    repopulating the cache with stale data.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._generation = 0
        self._loaded = False
        self._configuration: Optional[Configuration] = None

    def get_active_configuration(self) -> Optional[Configuration]:
        """Return the active configuration, loading it from the store on a miss."""

        with self._lock:
            if self._loaded:
                return self._configuration
            generation = self._generation

        active = list_configurations(self._store, ConfigurationStatus.ACTIVE)
        if len(active) > 1:
            ids = sorted(c.configuration_id for c in active)
            logger.error(
                "Multiple active configurations found",
                extra={"configuration_ids": ids},
            )
            raise StoreError(
                f"Multiple active configurations found: {', '.join(ids)}",
                inconsistent=True,
            )
        configuration = active[0] if active else None

        with self._lock:
            if self._generation == generation:
                self._configuration = configuration
                self._loaded = True
        return configuration

    def invalidate(self) -> int:
        """Drop the cached value and return the new generation token."""

        with self._lock:
            self._generation += 1
            self._loaded = False
            self._configuration = None
            generation = self._generation
        logger.debug("Active configuration cache invalidated")
        return generation

    def prime(self, configuration: Configuration, generation: int) -> bool:
        """
        Seed the cache with a configuration just written as active.

        `generation` is the token returned by the `invalidate()` that followed the
        write. If any invalidation or prime happened since, the cache is left
        unloaded and False is returned, so the next read goes to the store.
        """

        if not configuration.is_active:
            raise ValueError("Only an active configuration can prime the cache")
        with self._lock:
            if self._generation != generation:
                return False
            self._generation += 1
            self._configuration = configuration
            self._loaded = True
        return True

    @property
    def is_populated(self) -> bool:
        with self._lock:
            return self._loaded


__all__ = ["ActiveConfigurationCache"]
