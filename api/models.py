"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
Entity payloads use the stored document layout (camelCase where the documents do).
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.configuration import Configuration
from domain.lead import Lead
from repositories.configuration_repository import configuration_to_fields
from repositories.lead_repository import lead_to_fields


def lead_payload(lead: Lead) -> Dict[str, Any]:
    return {"id": lead.lead_id, **lead_to_fields(lead)}


def configuration_payload(configuration: Configuration) -> Dict[str, Any]:
    return {"id": configuration.configuration_id, **configuration_to_fields(configuration)}


# ============================================================================
# Lead Models
# ============================================================================

class SendBackRequest(BaseModel):
    """Internal team disputes a support/duplicate routing."""
    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={"example": {"team": "support", "note": "Not a support request"}},
    )

    team: Literal["support", "account"]
    note: Optional[str] = None


class RerouteRequest(BaseModel):
    """Customer disputes a support/duplicate routing."""
    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={"example": {"additionalContext": "I want to talk to sales about pricing"}},
    )

    additionalContext: str = Field(..., min_length=1, description="Why the routing was wrong")


class ClassificationRequest(BaseModel):
    """Classifier hand-off: one model-authored outcome plus the resulting status."""
    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "classification": "support",
                "status": "review",
                "needs_review": True,
                "applied_threshold": 0.9,
            }
        },
    )

    classification: Literal["high-quality", "low-quality", "support", "duplicate", "existing"]
    status: Literal["review", "done"]
    needs_review: Optional[bool] = None
    applied_threshold: Optional[float] = Field(None, ge=0, le=1)


class LeadResponse(BaseModel):
    success: bool = True
    lead: Dict[str, Any]
    message: Optional[str] = None


# ============================================================================
# Configuration Models
# ============================================================================

class ConfigurationResponse(BaseModel):
    success: bool = True
    configuration: Optional[Dict[str, Any]]
    message: Optional[str] = None


class ConfigurationListResponse(BaseModel):
    success: bool = True
    configurations: List[Dict[str, Any]]
    total_count: int


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Structured failure: machine-readable kind plus human-readable message."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "error": "Send-back is only available for support or duplicate classifications",
                "kind": "invalid_state",
            }
        },
    )

    success: bool = False
    error: str
    kind: str
    details: Optional[Any] = None
