"""
Lead repository (persistence).

This module provides *only* persistence operations for the Lead domain entity:
document <-> entity mapping plus version-checked writes. No lifecycle rules
(send-back eligibility, self-service guards) belong here.

Document layout (collection "leads"):
    status: {status, received_at, sent_at, sent_by}
    classifications: [{author, classification, timestamp, needs_review?, applied_threshold?}]
    reroute: bool
    supportFeedback: {markedSelfService, timestamp} | absent
    edit_note: str | null
    matched_case_studies: [{caseStudyId, company, industry, url, matchType, matchReason, ...}]

Fields owned by other subsystems (submission, bot_research, email, ...) are left
untouched because every write is a partial update of the fields named.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

from domain.errors import StoreError
from domain.lead import (
    Classification,
    ClassificationAuthor,
    ClassificationEntry,
    ClassificationHistory,
    Lead,
    LeadStatus,
    MatchedCaseStudy,
    StatusInfo,
    SupportFeedback,
)
from repositories.document_store import DocumentStore
from repositories.timestamps import (
    optional_iso_utc,
    parse_optional_utc_datetime,
    parse_utc_datetime,
    to_iso_utc,
)

LEADS_COLLECTION: str = "leads"

# Older documents record model-authored entries as "bot".
_AUTHOR_ALIASES = {"bot": ClassificationAuthor.MODEL}


def _parse_author(value: Any) -> ClassificationAuthor:
    text = str(value)
    return _AUTHOR_ALIASES.get(text) or ClassificationAuthor(text)


def _entry_to_dict(entry: ClassificationEntry) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "author": entry.author.value,
        "classification": entry.classification.value,
        "timestamp": to_iso_utc(entry.timestamp, name="timestamp"),
    }
    if entry.needs_review is not None:
        data["needs_review"] = entry.needs_review
    if entry.applied_threshold is not None:
        data["applied_threshold"] = entry.applied_threshold
    return data


def _dict_to_entry(data: Mapping[str, Any]) -> ClassificationEntry:
    return ClassificationEntry(
        author=_parse_author(data["author"]),
        classification=Classification(str(data["classification"])),
        timestamp=parse_utc_datetime(data["timestamp"]),
        needs_review=data.get("needs_review"),
        applied_threshold=data.get("applied_threshold"),
    )


def case_study_to_dict(case_study: MatchedCaseStudy) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "caseStudyId": case_study.case_study_id,
        "company": case_study.company,
        "industry": case_study.industry,
        "url": case_study.url,
        "matchType": case_study.match_type,
        "matchReason": case_study.match_reason,
    }
    if case_study.logo_svg is not None:
        data["logoSvg"] = case_study.logo_svg
    if case_study.featured_text is not None:
        data["featuredText"] = case_study.featured_text
    return data


def dict_to_case_study(data: Mapping[str, Any]) -> MatchedCaseStudy:
    return MatchedCaseStudy(
        case_study_id=str(data["caseStudyId"]),
        company=str(data["company"]),
        industry=str(data["industry"]),
        url=str(data["url"]),
        match_type=str(data["matchType"]),
        match_reason=str(data["matchReason"]),
        logo_svg=data.get("logoSvg"),
        featured_text=data.get("featuredText"),
    )


def lead_to_fields(lead: Lead) -> Dict[str, Any]:
    """Convert a domain Lead to the document fields this core owns."""

    fields: Dict[str, Any] = {
        "status": {
            "status": lead.status.status.value,
            "received_at": to_iso_utc(lead.status.received_at, name="received_at"),
            "sent_at": optional_iso_utc(lead.status.sent_at, name="sent_at"),
            "sent_by": lead.status.sent_by,
        },
        "classifications": [_entry_to_dict(entry) for entry in lead.classifications],
        "reroute": lead.reroute,
        "edit_note": lead.edit_note,
        "matched_case_studies": [case_study_to_dict(cs) for cs in lead.matched_case_studies],
    }
    if lead.support_feedback is not None:
        fields["supportFeedback"] = {
            "markedSelfService": lead.support_feedback.marked_self_service,
            "timestamp": to_iso_utc(lead.support_feedback.timestamp, name="timestamp"),
        }
    return fields


def _document_to_lead(doc: Mapping[str, Any]) -> Lead:
    """Convert a stored document into a domain Lead."""

    status = doc["status"]
    feedback = doc.get("supportFeedback")
    return Lead(
        lead_id=str(doc["id"]),
        status=StatusInfo(
            status=LeadStatus(str(status["status"])),
            received_at=parse_utc_datetime(status["received_at"]),
            sent_at=parse_optional_utc_datetime(status.get("sent_at")),
            sent_by=status.get("sent_by"),
        ),
        classifications=ClassificationHistory(
            entries=tuple(_dict_to_entry(entry) for entry in doc.get("classifications") or [])
        ),
        reroute=bool(doc.get("reroute", False)),
        support_feedback=(
            SupportFeedback(
                marked_self_service=bool(feedback.get("markedSelfService", False)),
                timestamp=parse_utc_datetime(feedback["timestamp"]),
            )
            if feedback
            else None
        ),
        edit_note=doc.get("edit_note"),
        matched_case_studies=tuple(
            dict_to_case_study(cs) for cs in doc.get("matched_case_studies") or []
        ),
        version=int(doc.get("version", 0)),
    )


def _to_lead(doc: Mapping[str, Any]) -> Lead:
    try:
        return _document_to_lead(doc)
    except (KeyError, TypeError, ValueError) as e:
        raise StoreError(f"Malformed lead document {doc.get('id')!r}: {e}") from e


def insert_lead(store: DocumentStore, lead: Lead) -> Lead:
    """Create a lead document (intake is external; used by seeding and tests)."""

    return _to_lead(store.create(LEADS_COLLECTION, lead_to_fields(lead), document_id=lead.lead_id))


def get_lead_by_id(store: DocumentStore, lead_id: str) -> Optional[Lead]:
    """
    Fetch a Lead by ID.

    Returns:
    - Lead if found
    - None if no document exists for the given ID
    """

    doc = store.get(LEADS_COLLECTION, lead_id)
    if doc is None:
        return None
    return _to_lead(doc)


def save_lead_fields(store: DocumentStore, lead: Lead, field_names: Iterable[str]) -> Lead:
    """
    Persist the named top-level fields of `lead`, asserting the version it was read at.

    Raises ConflictError if the document changed since `lead` was read.
    Returns the refreshed Lead as stored.
    """

    all_fields = lead_to_fields(lead)
    fields = {name: all_fields.get(name) for name in field_names}
    doc = store.update(LEADS_COLLECTION, lead.lead_id, fields, expected_version=lead.version)
    return _to_lead(doc)


__all__ = [
    "LEADS_COLLECTION",
    "lead_to_fields",
    "case_study_to_dict",
    "dict_to_case_study",
    "insert_lead",
    "get_lead_by_id",
    "save_lead_fields",
]
