"""
Tests for `services/configuration_cache.py`.

Covers contract rules:
- First read populates the cache; later reads do not hit the store.
- invalidate() forces the next read back to the store.
- A read racing an invalidation does not repopulate with stale data.
- More than one active configuration is reported as an inconsistent store.
"""

from __future__ import annotations

import pytest

from conftest import NOW
from domain.configuration import Configuration, ConfigurationStatus
from domain.errors import INCONSISTENT_STATE_MARKER, StoreError
from repositories.configuration_repository import CONFIGURATIONS_COLLECTION, insert_configuration
from services.configuration_cache import ActiveConfigurationCache


def test_read_through_then_cached(seeded_configurations, cache) -> None:
    first = cache.get_active_configuration()
    queries = seeded_configurations.call_counts["query"]

    second = cache.get_active_configuration()

    assert first.configuration_id == "cfg-active"
    assert second == first
    assert seeded_configurations.call_counts["query"] == queries


def test_invalidate_forces_reload(seeded_configurations, cache) -> None:
    cache.get_active_configuration()
    queries = seeded_configurations.call_counts["query"]

    cache.invalidate()
    cache.get_active_configuration()

    assert seeded_configurations.call_counts["query"] == queries + 1


def test_no_active_configuration_is_cached_as_none(store, cache) -> None:
    assert cache.get_active_configuration() is None
    assert cache.is_populated


def test_read_racing_invalidation_is_not_cached(seeded_configurations) -> None:
    cache = ActiveConfigurationCache(seeded_configurations)
    original_query = seeded_configurations.query

    def query_then_invalidate(collection, filters=None):
        docs = original_query(collection, filters)
        cache.invalidate()
        return docs

    seeded_configurations.query = query_then_invalidate

    assert cache.get_active_configuration().configuration_id == "cfg-active"
    assert cache.is_populated is False


def test_multiple_active_is_inconsistent(seeded_configurations, cache) -> None:
    insert_configuration(
        seeded_configurations,
        Configuration(configuration_id="cfg-rogue", status=ConfigurationStatus.ACTIVE, activated_at=NOW),
    )

    with pytest.raises(StoreError) as exc_info:
        cache.get_active_configuration()

    assert exc_info.value.inconsistent is True
    assert INCONSISTENT_STATE_MARKER in exc_info.value.message
    assert cache.is_populated is False


def test_prime_requires_active_configuration(cache) -> None:
    with pytest.raises(ValueError):
        cache.prime(Configuration(configuration_id="cfg-1", status=ConfigurationStatus.DRAFT), cache.invalidate())


def test_prime_serves_without_store(store, cache) -> None:
    configuration = Configuration(configuration_id="cfg-1", status=ConfigurationStatus.ACTIVE, activated_at=NOW)

    assert cache.prime(configuration, cache.invalidate()) is True

    assert cache.get_active_configuration() == configuration
    assert store.call_counts["query"] == 0
    assert store.query(CONFIGURATIONS_COLLECTION) == []


def test_prime_with_stale_generation_leaves_cache_unloaded(store, cache) -> None:
    configuration = Configuration(configuration_id="cfg-1", status=ConfigurationStatus.ACTIVE, activated_at=NOW)
    stale = cache.invalidate()
    cache.invalidate()

    assert cache.prime(configuration, stale) is False
    assert cache.is_populated is False
    assert cache.get_active_configuration() is None
