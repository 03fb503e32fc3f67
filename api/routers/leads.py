"""
Lead API Endpoints.

Human feedback on automated routing decisions and the classifier hand-off.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from api.dependencies import get_store
from api.models import (
    ClassificationRequest,
    LeadResponse,
    RerouteRequest,
    SendBackRequest,
    lead_payload,
)
from domain.lead import Classification, ClassificationAuthor, ClassificationEntry, LeadStatus, SendBackTeam
from repositories.document_store import DocumentStore
from services.lead_lifecycle_service import (
    get_lead,
    mark_self_service,
    record_classification,
    reroute_lead,
    send_back_lead,
    update_lead_fields,
)

router = APIRouter()


@router.get(
    "/leads/{lead_id}",
    response_model=LeadResponse,
    summary="Get Lead",
)
def read_lead(lead_id: str, store: DocumentStore = Depends(get_store)):
    return LeadResponse(lead=lead_payload(get_lead(store, lead_id)))


@router.patch(
    "/leads/{lead_id}",
    response_model=LeadResponse,
    summary="Edit Lead",
    description="Update whitelisted lead fields (edit_note, matched_case_studies).",
)
def edit_lead(
    lead_id: str,
    updates: Dict[str, Any] = Body(...),
    store: DocumentStore = Depends(get_store),
):
    """
    Apply a human edit.

    **Whitelist:** only `edit_note` and `matched_case_studies` are accepted. Any
    other key rejects the whole request with a validation error naming the
    offending field(s); nothing is applied. An empty body is a no-op.

    **Example request:**
    ```json
    {"edit_note": "Called the customer, real opportunity"}
    ```
    """
    lead = update_lead_fields(store, lead_id, updates)
    return LeadResponse(lead=lead_payload(lead), message="Lead updated")


@router.post(
    "/leads/{lead_id}/send-back",
    response_model=LeadResponse,
    summary="Send Back Lead",
    description="Internal team disputes a support/duplicate classification and forces re-classification.",
)
def send_back(lead_id: str, request: SendBackRequest, store: DocumentStore = Depends(get_store)):
    """
    Send a lead back for fresh classification.

    **Effect:**
    - Prepends a human `internal-reroute` entry to the classification history
    - Sets status to `classify`
    - Overwrites edit_note with `[Support Team Reroute] <note>` or `[Account Team Reroute] <note>`

    Only available while the current classification is `support` or `duplicate`.
    """
    lead = send_back_lead(store, lead_id, SendBackTeam(request.team), request.note)
    return LeadResponse(lead=lead_payload(lead), message="Lead sent back successfully")


@router.post(
    "/leads/{lead_id}/reroute",
    response_model=LeadResponse,
    summary="Customer Reroute",
    description="Customer disputes a support/duplicate classification; the lead goes to SDR review.",
)
def customer_reroute(lead_id: str, request: RerouteRequest, store: DocumentStore = Depends(get_store)):
    lead = reroute_lead(store, lead_id, request.additionalContext)
    return LeadResponse(lead=lead_payload(lead), message="Reroute request submitted successfully")


@router.post(
    "/leads/{lead_id}/self-service",
    response_model=LeadResponse,
    summary="Mark Self-Service",
    description="Support records that the automated reply was sufficient. Does not change routing.",
)
def self_service(lead_id: str, store: DocumentStore = Depends(get_store)):
    lead = mark_self_service(store, lead_id)
    return LeadResponse(lead=lead_payload(lead), message="Feedback recorded")


@router.post(
    "/leads/{lead_id}/classifications",
    response_model=LeadResponse,
    summary="Record Classification",
    description="Classifier hand-off: record a model-authored classification and the resulting status.",
)
def classify(lead_id: str, request: ClassificationRequest, store: DocumentStore = Depends(get_store)):
    now = datetime.now(timezone.utc)
    entry = ClassificationEntry(
        author=ClassificationAuthor.MODEL,
        classification=Classification(request.classification),
        timestamp=now,
        needs_review=request.needs_review,
        applied_threshold=request.applied_threshold,
    )
    lead = record_classification(store, lead_id, entry, LeadStatus(request.status), now=now)
    return LeadResponse(lead=lead_payload(lead), message="Classification recorded")
