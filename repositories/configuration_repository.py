"""
Configuration repository (persistence).

Document <-> entity mapping for Configuration records plus access to the
activation guard document. It contains no lifecycle rules; exclusivity is
enforced by the version controller through a single atomic batch.

Document layout (collection "configurations"):
    status: "draft" | "active" | "archived"
    activated_at / archived_at: ISO-8601 UTC, present once the transition happened
    emailTemplate: {subject, greeting, signOff, callToAction} | absent
    defaultCaseStudyId, name, settings

The guard document ("configuration_state/active") holds the id of the active
configuration. Every activation rewrites it with a version check, so two
activations racing from the same starting point cannot both commit.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from domain.configuration import Configuration, ConfigurationStatus, EmailTemplate
from domain.errors import StoreError
from repositories.document_store import DocumentStore
from repositories.timestamps import optional_iso_utc, parse_optional_utc_datetime

CONFIGURATIONS_COLLECTION: str = "configurations"
CONFIGURATION_STATE_COLLECTION: str = "configuration_state"
ACTIVE_GUARD_ID: str = "active"


def email_template_to_dict(template: EmailTemplate) -> Dict[str, str]:
    return {
        "subject": template.subject,
        "greeting": template.greeting,
        "signOff": template.sign_off,
        "callToAction": template.call_to_action,
    }


def _dict_to_email_template(data: Mapping[str, Any]) -> EmailTemplate:
    return EmailTemplate(
        subject=str(data.get("subject") or ""),
        greeting=str(data.get("greeting") or ""),
        sign_off=str(data.get("signOff") or ""),
        call_to_action=str(data.get("callToAction") or ""),
    )


def configuration_to_fields(configuration: Configuration) -> Dict[str, Any]:
    """Convert a Configuration to document fields."""

    return {
        "status": configuration.status.value,
        "activated_at": optional_iso_utc(configuration.activated_at, name="activated_at"),
        "archived_at": optional_iso_utc(configuration.archived_at, name="archived_at"),
        "emailTemplate": (
            email_template_to_dict(configuration.email_template)
            if configuration.email_template is not None
            else None
        ),
        "defaultCaseStudyId": configuration.default_case_study_id,
        "name": configuration.name,
        "settings": dict(configuration.settings),
    }


def _document_to_configuration(doc: Mapping[str, Any]) -> Configuration:
    template = doc.get("emailTemplate")
    return Configuration(
        configuration_id=str(doc["id"]),
        status=ConfigurationStatus(str(doc["status"])),
        activated_at=parse_optional_utc_datetime(doc.get("activated_at")),
        archived_at=parse_optional_utc_datetime(doc.get("archived_at")),
        email_template=_dict_to_email_template(template) if template else None,
        default_case_study_id=doc.get("defaultCaseStudyId"),
        name=doc.get("name"),
        settings=dict(doc.get("settings") or {}),
        version=int(doc.get("version", 0)),
    )


def to_configuration(doc: Mapping[str, Any]) -> Configuration:
    try:
        return _document_to_configuration(doc)
    except (KeyError, TypeError, ValueError) as e:
        raise StoreError(f"Malformed configuration document {doc.get('id')!r}: {e}") from e


def insert_configuration(store: DocumentStore, configuration: Configuration) -> Configuration:
    """Create a configuration document (creation is external; used by seeding and tests)."""

    doc = store.create(
        CONFIGURATIONS_COLLECTION,
        configuration_to_fields(configuration),
        document_id=configuration.configuration_id,
    )
    return to_configuration(doc)


def get_configuration_by_id(store: DocumentStore, configuration_id: str) -> Optional[Configuration]:
    doc = store.get(CONFIGURATIONS_COLLECTION, configuration_id)
    if doc is None:
        return None
    return to_configuration(doc)


def list_configurations(
    store: DocumentStore,
    status: Optional[ConfigurationStatus] = None,
) -> List[Configuration]:
    """List configurations, optionally filtered by status."""

    filters = {"status": status.value} if status is not None else None
    docs = store.query(CONFIGURATIONS_COLLECTION, filters)
    return [to_configuration(doc) for doc in docs]


def save_configuration_fields(
    store: DocumentStore,
    configuration: Configuration,
    field_names: Iterable[str],
) -> Configuration:
    """Persist the named fields, asserting the version `configuration` was read at."""

    all_fields = configuration_to_fields(configuration)
    fields = {name: all_fields[name] for name in field_names}
    doc = store.update(
        CONFIGURATIONS_COLLECTION,
        configuration.configuration_id,
        fields,
        expected_version=configuration.version,
    )
    return to_configuration(doc)


def get_active_guard(store: DocumentStore) -> Tuple[int, Optional[str]]:
    """
    Return (version, configuration_id) of the activation guard.

    Version 0 means the guard document does not exist yet.
    """

    doc = store.get(CONFIGURATION_STATE_COLLECTION, ACTIVE_GUARD_ID)
    if doc is None:
        return 0, None
    return int(doc["version"]), doc.get("configuration_id")


__all__ = [
    "CONFIGURATIONS_COLLECTION",
    "CONFIGURATION_STATE_COLLECTION",
    "ACTIVE_GUARD_ID",
    "email_template_to_dict",
    "configuration_to_fields",
    "to_configuration",
    "insert_configuration",
    "get_configuration_by_id",
    "list_configurations",
    "save_configuration_fields",
    "get_active_guard",
]
