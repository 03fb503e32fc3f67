"""
Tests for `services/configuration_service.py`.

Covers contract rules:
- At most one configuration is active after any activation.
- Activation archives the previous active configuration in the same commit.
- Rejected transitions write nothing.
- The only active configuration cannot be archived directly.
- The email template is initialized only when absent or blank.
- Every mutating operation leaves the cache consistent with the store.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import NOW
from domain.configuration import DEFAULT_EMAIL_TEMPLATE, Configuration, ConfigurationStatus, EmailTemplate
from domain.errors import INCONSISTENT_STATE_MARKER, ConflictError, InvalidStateError, NotFoundError, StoreError
from repositories.configuration_repository import (
    ACTIVE_GUARD_ID,
    CONFIGURATION_STATE_COLLECTION,
    CONFIGURATIONS_COLLECTION,
    get_configuration_by_id,
    insert_configuration,
    list_configurations,
    save_configuration_fields,
)
from services.configuration_cache import ActiveConfigurationCache
from services.configuration_service import (
    activate_configuration,
    archive_configuration,
    init_email_template,
    list_all_configurations,
)


def _active_ids(store):
    return sorted(c.configuration_id for c in list_configurations(store, ConfigurationStatus.ACTIVE))


def test_activate_archives_previous_active(seeded_configurations, cache) -> None:
    activated = activate_configuration(seeded_configurations, cache, "cfg-draft-1", now=NOW)

    assert activated.status is ConfigurationStatus.ACTIVE
    assert activated.activated_at == NOW
    assert _active_ids(seeded_configurations) == ["cfg-draft-1"]

    previous = get_configuration_by_id(seeded_configurations, "cfg-active")
    assert previous.status is ConfigurationStatus.ARCHIVED
    assert previous.archived_at == NOW

    guard = seeded_configurations.get(CONFIGURATION_STATE_COLLECTION, ACTIVE_GUARD_ID)
    assert guard["configuration_id"] == "cfg-draft-1"


def test_activate_from_empty_state(store, cache) -> None:
    store.create(CONFIGURATIONS_COLLECTION, {"status": "draft"}, document_id="cfg-first")

    activate_configuration(store, cache, "cfg-first", now=NOW)

    assert _active_ids(store) == ["cfg-first"]


def test_sequential_activations_keep_single_active(seeded_configurations, cache) -> None:
    activate_configuration(seeded_configurations, cache, "cfg-draft-1", now=NOW)
    activate_configuration(seeded_configurations, cache, "cfg-draft-2", now=NOW)

    assert _active_ids(seeded_configurations) == ["cfg-draft-2"]
    assert get_configuration_by_id(seeded_configurations, "cfg-draft-1").status is ConfigurationStatus.ARCHIVED


@pytest.mark.parametrize("configuration_id", ["cfg-active", "cfg-old"])
def test_activate_non_draft_writes_nothing(seeded_configurations, cache, configuration_id, caplog) -> None:
    before = seeded_configurations.query(CONFIGURATIONS_COLLECTION)

    with caplog.at_level(logging.WARNING, logger="services.configuration_service"):
        with pytest.raises(InvalidStateError):
            activate_configuration(seeded_configurations, cache, configuration_id, now=NOW)

    assert seeded_configurations.query(CONFIGURATIONS_COLLECTION) == before
    assert f"Activation rejected for configuration {configuration_id}" in caplog.text


def test_activate_missing_configuration(seeded_configurations, cache) -> None:
    with pytest.raises(NotFoundError):
        activate_configuration(seeded_configurations, cache, "missing", now=NOW)


def test_concurrent_activations_leave_at_most_one_active(seeded_configurations) -> None:
    targets = ["cfg-draft-1", "cfg-draft-2"]

    def activate(configuration_id):
        cache = ActiveConfigurationCache(seeded_configurations)
        try:
            return activate_configuration(seeded_configurations, cache, configuration_id, now=NOW)
        except ConflictError as e:
            return e

    for round_number in range(5):
        with ThreadPoolExecutor(max_workers=2) as executor:
            results = list(executor.map(activate, targets))

        assert any(not isinstance(r, Exception) for r in results)
        assert len(_active_ids(seeded_configurations)) == 1

        # Fresh drafts so the next round races again.
        targets = [f"cfg-round-{round_number}-a", f"cfg-round-{round_number}-b"]
        for configuration_id in targets:
            seeded_configurations.create(CONFIGURATIONS_COLLECTION, {"status": "draft"}, document_id=configuration_id)


def test_activation_primes_cache(seeded_configurations, cache) -> None:
    activate_configuration(seeded_configurations, cache, "cfg-draft-1", now=NOW)
    counts_before = dict(seeded_configurations.call_counts)

    cached = cache.get_active_configuration()

    assert cached.configuration_id == "cfg-draft-1"
    assert dict(seeded_configurations.call_counts) == counts_before


def test_activation_superseded_before_prime_does_not_cache_stale_configuration(
    seeded_configurations, cache, monkeypatch
) -> None:
    original_prime = cache.prime

    def prime_after_competing_activation(configuration, generation):
        if configuration.configuration_id == "cfg-draft-1":
            activate_configuration(seeded_configurations, cache, "cfg-draft-2", now=NOW)
        return original_prime(configuration, generation)

    monkeypatch.setattr(cache, "prime", prime_after_competing_activation)

    activate_configuration(seeded_configurations, cache, "cfg-draft-1", now=NOW)

    assert _active_ids(seeded_configurations) == ["cfg-draft-2"]
    assert get_configuration_by_id(seeded_configurations, "cfg-draft-1").status is ConfigurationStatus.ARCHIVED
    assert cache.get_active_configuration().configuration_id == "cfg-draft-2"


def test_multiple_active_after_commit_is_inconsistent(seeded_configurations, cache, monkeypatch, caplog) -> None:
    original_commit = seeded_configurations._commit_batch

    def commit_then_write_rogue_active(operations):
        original_commit(operations)
        insert_configuration(
            seeded_configurations,
            Configuration(configuration_id="cfg-rogue", status=ConfigurationStatus.ACTIVE, activated_at=NOW),
        )

    monkeypatch.setattr(seeded_configurations, "_commit_batch", commit_then_write_rogue_active)

    with caplog.at_level(logging.ERROR, logger="services.configuration_service"):
        with pytest.raises(StoreError) as exc_info:
            activate_configuration(seeded_configurations, cache, "cfg-draft-1", now=NOW)

    assert exc_info.value.inconsistent is True
    assert INCONSISTENT_STATE_MARKER in exc_info.value.message
    assert "Activation left multiple active configurations" in caplog.text
    assert cache.is_populated is False


def test_failed_activation_invalidates_cache(seeded_configurations, cache, monkeypatch) -> None:
    assert cache.get_active_configuration().configuration_id == "cfg-active"

    def failing_commit(operations):
        raise StoreError("connection reset")

    monkeypatch.setattr(seeded_configurations, "_commit_batch", failing_commit)

    with pytest.raises(StoreError):
        activate_configuration(seeded_configurations, cache, "cfg-draft-1", now=NOW)

    assert cache.is_populated is False


def test_archive_draft(seeded_configurations, cache) -> None:
    archived = archive_configuration(seeded_configurations, cache, "cfg-draft-1", now=NOW)

    assert archived.status is ConfigurationStatus.ARCHIVED
    assert archived.archived_at == NOW


def test_archive_only_active_is_rejected(seeded_configurations, cache) -> None:
    with pytest.raises(InvalidStateError):
        archive_configuration(seeded_configurations, cache, "cfg-active", now=NOW)

    assert _active_ids(seeded_configurations) == ["cfg-active"]


def test_archive_already_archived_is_rejected(seeded_configurations, cache) -> None:
    with pytest.raises(InvalidStateError):
        archive_configuration(seeded_configurations, cache, "cfg-old", now=NOW)


def test_init_email_template_sets_default(seeded_configurations, cache) -> None:
    configuration = init_email_template(seeded_configurations, cache, "cfg-draft-1")

    assert configuration.email_template == DEFAULT_EMAIL_TEMPLATE
    stored = seeded_configurations.get(CONFIGURATIONS_COLLECTION, "cfg-draft-1")
    assert stored["emailTemplate"]["signOff"] == "Best,"


def test_init_email_template_keeps_custom_template(seeded_configurations, cache) -> None:
    draft = get_configuration_by_id(seeded_configurations, "cfg-draft-1")
    custom = EmailTemplate(subject="Custom subject")
    save_configuration_fields(seeded_configurations, draft.with_email_template(custom), ("emailTemplate",))

    configuration = init_email_template(seeded_configurations, cache, "cfg-draft-1")

    assert configuration.email_template == custom


def test_init_email_template_invalidates_cache(seeded_configurations, cache) -> None:
    cache.get_active_configuration()
    assert cache.is_populated

    init_email_template(seeded_configurations, cache, "cfg-active")

    assert cache.is_populated is False
    assert cache.get_active_configuration().email_template == DEFAULT_EMAIL_TEMPLATE


def test_list_all_configurations_newest_activation_first(seeded_configurations) -> None:
    ids = [c.configuration_id for c in list_all_configurations(seeded_configurations)]

    assert ids[:2] == ["cfg-active", "cfg-old"]
    assert sorted(ids[2:]) == ["cfg-draft-1", "cfg-draft-2"]

    drafts = list_all_configurations(seeded_configurations, ConfigurationStatus.DRAFT)
    assert {c.configuration_id for c in drafts} == {"cfg-draft-1", "cfg-draft-2"}
