"""
Lead lifecycle service.

Owns a lead's status and classification history as a consistent pair and
provides the human-feedback operations:

- record_classification: classifier hand-off (model-authored entry + status)
- send_back_lead: internal team disputes a support/duplicate routing
- reroute_lead: customer disputes a support/duplicate routing
- mark_self_service: support records that no action was needed (annotation only)
- update_lead_fields: whitelisted human edit (edit_note, matched_case_studies)

Every operation is a read-modify-write of a single lead document. The write
asserts the version that was read, so a concurrent writer surfaces as a
ConflictError instead of a silently lost update. Rejected operations write
nothing.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from domain.errors import ConflictError, LeadRoutingError, NotFoundError, ValidationError
from domain.lead import ClassificationEntry, Lead, LeadStatus, SendBackTeam
from domain.time import utc_now
from repositories.document_store import DocumentStore
from repositories.lead_repository import dict_to_case_study, get_lead_by_id, save_lead_fields

logger = logging.getLogger(__name__)

# The only fields a human edit may touch.
EDITABLE_LEAD_FIELDS = frozenset({"edit_note", "matched_case_studies"})


def get_lead(store: DocumentStore, lead_id: str) -> Lead:
    lead = get_lead_by_id(store, lead_id)
    if lead is None:
        raise NotFoundError("Lead", lead_id)
    return lead


def _rejected(action: str, lead_id: str, error: LeadRoutingError) -> None:
    logger.warning(
        f"{action} rejected for lead {lead_id}: {error.message}",
        extra={"lead_id": lead_id, "action": action, "error_kind": error.kind},
    )


def _save(store: DocumentStore, action: str, lead: Lead, field_names: Tuple[str, ...]) -> Lead:
    try:
        return save_lead_fields(store, lead, field_names)
    except ConflictError as e:
        _rejected(action, lead.lead_id, e)
        raise


def record_classification(
    store: DocumentStore,
    lead_id: str,
    entry: ClassificationEntry,
    status: LeadStatus,
    *,
    now: Optional[datetime] = None,
) -> Lead:
    """
    Record an automated classification outcome.

    The entry becomes the head of the history, the status is set to the
    classifier's decision and the reroute flag is cleared.
    """

    lead = get_lead(store, lead_id)
    try:
        updated = lead.classified(entry, status, now or utc_now())
    except LeadRoutingError as e:
        _rejected("Classification", lead_id, e)
        raise

    saved = _save(store, "Classification", updated, ("classifications", "status", "reroute"))
    logger.info(
        f"Lead {lead_id} classified as {entry.classification.value} ({status.value})",
        extra={
            "lead_id": lead_id,
            "classification": entry.classification.value,
            "status": status.value,
        },
    )
    return saved


def send_back_lead(
    store: DocumentStore,
    lead_id: str,
    team: SendBackTeam,
    note: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> Lead:
    """
    Bounce a support/duplicate lead back for fresh classification.

    Raises:
        NotFoundError: lead does not exist
        InvalidStateError: current classification is not support or duplicate
        ConflictError: the lead changed while the send-back was being applied
    """

    lead = get_lead(store, lead_id)
    previous = lead.current_classification()
    try:
        updated = lead.sent_back(team, note, now or utc_now())
    except LeadRoutingError as e:
        _rejected("Send-back", lead_id, e)
        raise

    saved = _save(store, "Send-back", updated, ("classifications", "status", "reroute", "edit_note"))
    logger.info(
        f"Lead {lead_id} sent back by {team.label}. Previous classification: {previous.value}",
        extra={"lead_id": lead_id, "team": team.value, "previous_classification": previous.value},
    )
    return saved


def reroute_lead(
    store: DocumentStore,
    lead_id: str,
    additional_context: str,
    *,
    now: Optional[datetime] = None,
) -> Lead:
    """Customer disputes a support/duplicate routing; the lead moves to SDR review."""

    lead = get_lead(store, lead_id)
    previous = lead.current_classification()
    try:
        updated = lead.rerouted_by_customer(additional_context, now or utc_now())
    except LeadRoutingError as e:
        _rejected("Reroute", lead_id, e)
        raise

    saved = _save(store, "Reroute", updated, ("classifications", "status", "reroute", "edit_note"))
    logger.info(
        f"Lead {lead_id} rerouted by customer. Previous classification: {previous.value}",
        extra={"lead_id": lead_id, "previous_classification": previous.value},
    )
    return saved


def mark_self_service(store: DocumentStore, lead_id: str, *, now: Optional[datetime] = None) -> Lead:
    """
    Record that support needed no action for a support-classified lead.

    Only supportFeedback is written; status and classifications are untouched.
    A second call is rejected with AlreadyRecordedError.
    """

    lead = get_lead(store, lead_id)
    try:
        updated = lead.marked_self_service(now or utc_now())
    except LeadRoutingError as e:
        _rejected("Self-service", lead_id, e)
        raise

    saved = _save(store, "Self-service", updated, ("supportFeedback",))
    logger.info(f"Lead {lead_id} marked as self-service by Support Team", extra={"lead_id": lead_id})
    return saved


def _parse_edit(updates: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(updates) - EDITABLE_LEAD_FIELDS)
    if unknown:
        raise ValidationError(
            f"Unrecognized field(s) in lead update: {', '.join(unknown)}",
            fields=unknown,
        )

    parsed: Dict[str, Any] = {}
    if "edit_note" in updates:
        note = updates["edit_note"]
        if note is not None and not isinstance(note, str):
            raise ValidationError("edit_note must be a string or null", fields=("edit_note",))
        parsed["edit_note"] = note

    if "matched_case_studies" in updates:
        raw = updates["matched_case_studies"]
        if not isinstance(raw, (list, tuple)):
            raise ValidationError(
                "matched_case_studies must be a list", fields=("matched_case_studies",)
            )
        try:
            parsed["matched_case_studies"] = tuple(dict_to_case_study(item) for item in raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ValidationError(
                f"Invalid matched_case_studies entry: {e}", fields=("matched_case_studies",)
            ) from e
    return parsed


def update_lead_fields(store: DocumentStore, lead_id: str, updates: Mapping[str, Any]) -> Lead:
    """
    Apply a human edit limited to EDITABLE_LEAD_FIELDS.

    Any other key rejects the whole payload (nothing is applied). An empty
    payload is a successful no-op returning the current lead.
    """

    try:
        parsed = _parse_edit(updates)
    except ValidationError as e:
        _rejected("Edit", lead_id, e)
        raise

    lead = get_lead(store, lead_id)
    if not parsed:
        return lead

    saved = _save(store, "Edit", replace(lead, **parsed), tuple(parsed))
    logger.info(
        f"Lead {lead_id} edited",
        extra={"lead_id": lead_id, "fields": sorted(parsed)},
    )
    return saved


__all__ = [
    "EDITABLE_LEAD_FIELDS",
    "get_lead",
    "record_classification",
    "send_back_lead",
    "reroute_lead",
    "mark_self_service",
    "update_lead_fields",
]
