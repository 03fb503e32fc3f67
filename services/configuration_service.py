"""
Configuration version controller.

Enforces that at most one configuration is active and manages the
draft -> active -> archived lifecycle.

Activation writes, in one atomic batch:
- every currently active configuration -> archived (archived_at = now)
- the target draft -> active (activated_at = now)
- the activation guard document -> target id

Each write asserts the version that was read. Two activations racing from the
same state contend on the guard document, so only one batch can commit; the
loser gets a ConflictError and nothing it queued is applied. After commit the
controller re-reads the active set and reports more than one active
configuration as an inconsistent-state StoreError.

Every operation that changes status, activated_at or emailTemplate invalidates
the active-configuration cache before returning.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from domain.configuration import DEFAULT_EMAIL_TEMPLATE, Configuration, ConfigurationStatus
from domain.errors import InvalidStateError, LeadRoutingError, NotFoundError, StoreError
from domain.time import utc_now
from repositories.configuration_repository import (
    ACTIVE_GUARD_ID,
    CONFIGURATION_STATE_COLLECTION,
    CONFIGURATIONS_COLLECTION,
    configuration_to_fields,
    get_active_guard,
    get_configuration_by_id,
    list_configurations,
    save_configuration_fields,
)
from repositories.document_store import DocumentStore
from services.configuration_cache import ActiveConfigurationCache

logger = logging.getLogger(__name__)

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def get_configuration(store: DocumentStore, configuration_id: str) -> Configuration:
    configuration = get_configuration_by_id(store, configuration_id)
    if configuration is None:
        raise NotFoundError("Configuration", configuration_id)
    return configuration


def _rejected(action: str, configuration_id: str, error: LeadRoutingError) -> None:
    logger.warning(
        f"{action} rejected for configuration {configuration_id}: {error.message}",
        extra={"configuration_id": configuration_id, "action": action, "error_kind": error.kind},
    )


def _status_fields(configuration: Configuration) -> Dict[str, Any]:
    fields = configuration_to_fields(configuration)
    return {name: fields[name] for name in ("status", "activated_at", "archived_at")}


def _verify_single_active(store: DocumentStore, expected_id: str) -> None:
    active = list_configurations(store, ConfigurationStatus.ACTIVE)
    active_ids = sorted(c.configuration_id for c in active)
    if len(active_ids) > 1:
        logger.error(
            "Activation left multiple active configurations",
            extra={"configuration_id": expected_id, "active_ids": active_ids},
        )
        raise StoreError(
            f"Activation of {expected_id} left multiple active configurations: "
            f"{', '.join(active_ids)}",
            inconsistent=True,
        )


def activate_configuration(
    store: DocumentStore,
    cache: ActiveConfigurationCache,
    configuration_id: str,
    *,
    now: Optional[datetime] = None,
) -> Configuration:
    """
    Make a draft configuration the single active one, archiving whatever was active.

    Raises:
        NotFoundError: configuration does not exist
        InvalidStateError: configuration is not a draft (nothing is written)
        ConflictError: a concurrent write touched any document in the batch
        StoreError: commit failed, or the post-commit check found the
            exclusivity invariant broken (inconsistent=True)
    """

    now = now or utc_now()
    target = get_configuration(store, configuration_id)
    try:
        activated = target.activated(now)
    except LeadRoutingError as e:
        _rejected("Activation", configuration_id, e)
        raise

    guard_version, previous_guard_id = get_active_guard(store)
    currently_active = list_configurations(store, ConfigurationStatus.ACTIVE)

    batch = store.batch()
    for configuration in currently_active:
        batch.update(
            CONFIGURATIONS_COLLECTION,
            configuration.configuration_id,
            _status_fields(configuration.archived(now)),
            expected_version=configuration.version,
        )
    batch.update(
        CONFIGURATIONS_COLLECTION,
        configuration_id,
        _status_fields(activated),
        expected_version=target.version,
    )
    batch.set(
        CONFIGURATION_STATE_COLLECTION,
        ACTIVE_GUARD_ID,
        {"configuration_id": configuration_id},
        expected_version=guard_version,
    )

    try:
        batch.commit()
    except LeadRoutingError as e:
        _rejected("Activation", configuration_id, e)
        raise
    finally:
        # A failed commit may still have raced with another writer; drop what we hold.
        generation = cache.invalidate()

    _verify_single_active(store, configuration_id)

    refreshed = get_configuration(store, configuration_id)
    if refreshed.is_active:
        # No-op if the cache was invalidated again after this commit.
        cache.prime(refreshed, generation)

    archived_ids = [c.configuration_id for c in currently_active]
    logger.info(
        f"Configuration {configuration_id} activated",
        extra={
            "configuration_id": configuration_id,
            "archived_ids": archived_ids,
            "previous_guard_id": previous_guard_id,
        },
    )
    return refreshed


def archive_configuration(
    store: DocumentStore,
    cache: ActiveConfigurationCache,
    configuration_id: str,
    *,
    now: Optional[datetime] = None,
) -> Configuration:
    """
    Archive a configuration directly.

    Archiving the only active configuration is rejected: activate a new version
    first, which archives the old one atomically.
    """

    configuration = get_configuration(store, configuration_id)
    try:
        if configuration.is_active:
            active = list_configurations(store, ConfigurationStatus.ACTIVE)
            if len(active) <= 1:
                raise InvalidStateError(
                    "Cannot archive the only active configuration. Activate a new version first."
                )
        archived = configuration.archived(now or utc_now())
    except LeadRoutingError as e:
        _rejected("Archive", configuration_id, e)
        raise

    try:
        saved = save_configuration_fields(store, archived, ("status", "archived_at"))
    except LeadRoutingError as e:
        _rejected("Archive", configuration_id, e)
        raise
    finally:
        cache.invalidate()

    logger.info(f"Configuration {configuration_id} archived", extra={"configuration_id": configuration_id})
    return saved


def init_email_template(
    store: DocumentStore,
    cache: ActiveConfigurationCache,
    configuration_id: str,
) -> Configuration:
    """
    Give a configuration the default email template unless it already has a
    customized one ("set if absent"). Re-applying is a successful no-op write-wise.
    """

    configuration = get_configuration(store, configuration_id)

    if configuration.has_custom_email_template():
        logger.info(
            f"Email template already set for configuration {configuration_id}; keeping it",
            extra={"configuration_id": configuration_id},
        )
        saved = configuration
    else:
        saved = save_configuration_fields(
            store,
            configuration.with_email_template(DEFAULT_EMAIL_TEMPLATE),
            ("emailTemplate",),
        )
        logger.info(
            f"Initialized email template for configuration {configuration_id}",
            extra={"configuration_id": configuration_id},
        )

    cache.invalidate()
    return saved


def list_all_configurations(
    store: DocumentStore,
    status: Optional[ConfigurationStatus] = None,
) -> List[Configuration]:
    """List configurations, newest activation first, drafts last."""

    configurations = list_configurations(store, status)
    return sorted(configurations, key=lambda c: c.activated_at or _NEVER, reverse=True)


__all__ = [
    "get_configuration",
    "activate_configuration",
    "archive_configuration",
    "init_email_template",
    "list_all_configurations",
]
