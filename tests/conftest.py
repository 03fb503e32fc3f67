"""
Pytest configuration and shared fixtures.

Adds the project root to the Python path so that tests can import the domain,
repositories, services and api packages, and provides in-memory stores seeded
with leads and configurations.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.configuration import Configuration, ConfigurationStatus  # noqa: E402
from domain.lead import (  # noqa: E402
    Classification,
    ClassificationAuthor,
    ClassificationEntry,
    ClassificationHistory,
    Lead,
    LeadStatus,
    StatusInfo,
)
from repositories.configuration_repository import insert_configuration  # noqa: E402
from repositories.document_store import InMemoryDocumentStore  # noqa: E402
from repositories.lead_repository import insert_lead  # noqa: E402
from services.configuration_cache import ActiveConfigurationCache  # noqa: E402

RECEIVED_AT = datetime(2025, 1, 1, 9, 0, 0, tzinfo=timezone.utc)
CLASSIFIED_AT = datetime(2025, 1, 1, 9, 5, 0, tzinfo=timezone.utc)
NOW = datetime(2025, 1, 2, 12, 0, 0, tzinfo=timezone.utc)


def model_entry(classification: Classification, at: datetime = CLASSIFIED_AT) -> ClassificationEntry:
    return ClassificationEntry(
        author=ClassificationAuthor.MODEL,
        classification=classification,
        timestamp=at,
        needs_review=True,
        applied_threshold=0.8,
    )


def make_lead(
    lead_id: str,
    classification: Classification = None,
    status: LeadStatus = LeadStatus.REVIEW,
    **kwargs,
) -> Lead:
    history = ClassificationHistory()
    if classification is not None:
        history = history.prepend(model_entry(classification))
    return Lead(
        lead_id=lead_id,
        status=StatusInfo(status=status, received_at=RECEIVED_AT),
        classifications=history,
        **kwargs,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def cache(store: InMemoryDocumentStore) -> ActiveConfigurationCache:
    return ActiveConfigurationCache(store)


@pytest.fixture
def seeded_leads(store: InMemoryDocumentStore) -> InMemoryDocumentStore:
    """
    One lead per interesting state:

    - lead-support / lead-duplicate: eligible for send-back and reroute
    - lead-high: high-quality, not reroutable
    - lead-new: still processing, never classified
    """

    insert_lead(store, make_lead("lead-support", Classification.SUPPORT))
    insert_lead(store, make_lead("lead-duplicate", Classification.DUPLICATE))
    insert_lead(store, make_lead("lead-high", Classification.HIGH_QUALITY, edit_note="keep me"))
    insert_lead(store, make_lead("lead-new", None, status=LeadStatus.PROCESSING))
    return store


@pytest.fixture
def seeded_configurations(store: InMemoryDocumentStore) -> InMemoryDocumentStore:
    """cfg-active is active; cfg-draft-1 and cfg-draft-2 are drafts; cfg-old is archived."""

    insert_configuration(
        store,
        Configuration(
            configuration_id="cfg-active",
            status=ConfigurationStatus.ACTIVE,
            activated_at=RECEIVED_AT,
            name="Baseline",
        ),
    )
    insert_configuration(store, Configuration(configuration_id="cfg-draft-1", status=ConfigurationStatus.DRAFT))
    insert_configuration(store, Configuration(configuration_id="cfg-draft-2", status=ConfigurationStatus.DRAFT))
    insert_configuration(
        store,
        Configuration(
            configuration_id="cfg-old",
            status=ConfigurationStatus.ARCHIVED,
            activated_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
            archived_at=RECEIVED_AT,
        ),
    )
    return store
