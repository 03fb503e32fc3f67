"""
Domain: Lead entity and its classification lifecycle.

Contract excerpts implemented here:
- A Lead's classification history is ordered newest first; the head entry is the
  authoritative current classification. An empty history means "not yet classified".
- History only grows at the front. Prior entries are never rewritten.
- status.status and the current classification stay mutually consistent: a lead
  waiting for classification (processing/classify) carries either no
  classification or a reroute marker at the head of its history.
- Send-back and customer reroute are only defined for support/duplicate leads.
- Self-service feedback is an annotation: it never touches status or history,
  and it can be recorded at most once.

This module is pure: no I/O. Transitions return new Lead instances and raise
domain errors when a transition is undefined for the current state.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Iterator, Optional, Tuple

from .errors import AlreadyRecordedError, InvalidStateError, ValidationError
from .time import require_optional_utc_timestamp, require_utc_timestamp


class LeadStatus(str, Enum):
    PROCESSING = "processing"
    CLASSIFY = "classify"
    REVIEW = "review"
    DONE = "done"


class Classification(str, Enum):
    HIGH_QUALITY = "high-quality"
    LOW_QUALITY = "low-quality"
    SUPPORT = "support"
    DUPLICATE = "duplicate"
    EXISTING = "existing"
    INTERNAL_REROUTE = "internal-reroute"
    CUSTOMER_REROUTE = "customer-reroute"


class ClassificationAuthor(str, Enum):
    HUMAN = "human"
    MODEL = "model"


class TerminalState(str, Enum):
    SENT_MEETING_OFFER = "sent_meeting_offer"
    SENT_GENERIC = "sent_generic"
    FORWARDED_SUPPORT = "forwarded_support"
    FORWARDED_ACCOUNT_TEAM = "forwarded_account_team"


class SendBackTeam(str, Enum):
    SUPPORT = "support"
    ACCOUNT = "account"

    @property
    def label(self) -> str:
        return "Support Team" if self is SendBackTeam.SUPPORT else "Account Team"


# Classifications a human may dispute and bounce back for fresh review.
REROUTABLE_CLASSIFICATIONS = frozenset({Classification.SUPPORT, Classification.DUPLICATE})

# Markers written by humans when bouncing a lead; never produced by the classifier.
REROUTE_CLASSIFICATIONS = frozenset(
    {Classification.INTERNAL_REROUTE, Classification.CUSTOMER_REROUTE}
)

# Statuses meaning "no routing decision is in effect yet".
AWAITING_CLASSIFICATION_STATUSES = frozenset({LeadStatus.PROCESSING, LeadStatus.CLASSIFY})

_TERMINAL_STATES = {
    Classification.HIGH_QUALITY: TerminalState.SENT_MEETING_OFFER,
    Classification.LOW_QUALITY: TerminalState.SENT_GENERIC,
    Classification.SUPPORT: TerminalState.FORWARDED_SUPPORT,
    Classification.EXISTING: TerminalState.FORWARDED_ACCOUNT_TEAM,
}

NO_CONTEXT_NOTE = "No additional context provided"

MATCH_TYPES = frozenset({"industry", "problem", "mentioned"})


@dataclass(frozen=True, slots=True)
class ClassificationEntry:
    """
    One classification judgment. `needs_review` and `applied_threshold` are only
    meaningful for model-authored entries.
    """

    author: ClassificationAuthor
    classification: Classification
    timestamp: datetime
    needs_review: Optional[bool] = None
    applied_threshold: Optional[float] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)


@dataclass(frozen=True, slots=True)
class ClassificationHistory:
    """Ordered classification log, newest first. Unbounded."""

    entries: Tuple[ClassificationEntry, ...] = ()

    def current(self) -> Optional[ClassificationEntry]:
        return self.entries[0] if self.entries else None

    def current_classification(self) -> Optional[Classification]:
        head = self.current()
        return head.classification if head is not None else None

    def prepend(self, entry: ClassificationEntry) -> "ClassificationHistory":
        return ClassificationHistory(entries=(entry,) + self.entries)

    def is_empty(self) -> bool:
        return not self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ClassificationEntry]:
        return iter(self.entries)


@dataclass(frozen=True, slots=True)
class StatusInfo:
    status: LeadStatus
    received_at: datetime
    sent_at: Optional[datetime] = None
    sent_by: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("received_at", self.received_at)
        require_optional_utc_timestamp("sent_at", self.sent_at)


@dataclass(frozen=True, slots=True)
class SupportFeedback:
    marked_self_service: bool
    timestamp: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)


@dataclass(frozen=True, slots=True)
class MatchedCaseStudy:
    case_study_id: str
    company: str
    industry: str
    url: str
    match_type: str
    match_reason: str
    logo_svg: Optional[str] = None
    featured_text: Optional[str] = None

    def __post_init__(self) -> None:
        if self.match_type not in MATCH_TYPES:
            raise ValueError(
                f"match_type must be one of {sorted(MATCH_TYPES)}, got {self.match_type!r}"
            )


@dataclass(frozen=True, slots=True)
class Lead:
    """
    Lead entity: routing status plus classification history.

    `version` is the store's optimistic-concurrency token; it is carried through
    transitions unchanged and asserted by the repository on write.
    """

    lead_id: str
    status: StatusInfo
    classifications: ClassificationHistory = field(default_factory=ClassificationHistory)
    reroute: bool = False
    support_feedback: Optional[SupportFeedback] = None
    edit_note: Optional[str] = None
    matched_case_studies: Tuple[MatchedCaseStudy, ...] = ()
    version: int = 0

    def __post_init__(self) -> None:
        if not self.lead_id:
            raise ValueError("lead_id must be non-empty")
        current = self.classifications.current_classification()
        if (
            self.status.status in AWAITING_CLASSIFICATION_STATUSES
            and current is not None
            and current not in REROUTE_CLASSIFICATIONS
        ):
            raise ValueError(
                f"status {self.status.status.value!r} cannot coexist with "
                f"current classification {current.value!r}"
            )

    def current_classification(self) -> Optional[Classification]:
        return self.classifications.current_classification()

    def terminal_state(self) -> Optional[TerminalState]:
        """Derived outcome for resolved leads; None while the lead is still open."""

        if self.status.status is not LeadStatus.DONE:
            return None
        current = self.current_classification()
        if current is None:
            return None
        return _TERMINAL_STATES.get(current)

    def _require_reroutable(self, action: str) -> Classification:
        current = self.current_classification()
        if current not in REROUTABLE_CLASSIFICATIONS:
            shown = current.value if current is not None else "unclassified"
            raise InvalidStateError(
                f"{action} is only available for support or duplicate classifications "
                f"(current: {shown})"
            )
        return current

    def sent_back(self, team: SendBackTeam, note: Optional[str], at: datetime) -> "Lead":
        """
        Internal team disputes the routing: history gains an internal-reroute head,
        the lead returns to `classify`, and edit_note is overwritten with context.
        """

        self._require_reroutable("Send-back")
        entry = ClassificationEntry(
            author=ClassificationAuthor.HUMAN,
            classification=Classification.INTERNAL_REROUTE,
            timestamp=at,
        )
        prefix = f"[{team.label} Reroute]"
        return replace(
            self,
            classifications=self.classifications.prepend(entry),
            status=replace(self.status, status=LeadStatus.CLASSIFY),
            reroute=True,
            edit_note=f"{prefix} {note}" if note else f"{prefix} {NO_CONTEXT_NOTE}",
        )

    def rerouted_by_customer(self, context: str, at: datetime) -> "Lead":
        """Customer disputes the routing: the lead goes to SDR review."""

        self._require_reroutable("Reroute")
        if not context or not context.strip():
            raise ValidationError("Additional context is required", fields=("additionalContext",))
        entry = ClassificationEntry(
            author=ClassificationAuthor.HUMAN,
            classification=Classification.CUSTOMER_REROUTE,
            timestamp=at,
        )
        return replace(
            self,
            classifications=self.classifications.prepend(entry),
            status=replace(self.status, status=LeadStatus.REVIEW),
            reroute=True,
            edit_note=f"[Customer Reroute] {context}",
        )

    def marked_self_service(self, at: datetime) -> "Lead":
        current = self.current_classification()
        if current is not Classification.SUPPORT:
            raise InvalidStateError(
                "Self-service option is only available for support-classified leads"
            )
        if self.support_feedback is not None and self.support_feedback.marked_self_service:
            raise AlreadyRecordedError("This lead has already been marked as self-service")
        return replace(
            self,
            support_feedback=SupportFeedback(marked_self_service=True, timestamp=at),
        )

    def classified(self, entry: ClassificationEntry, status: LeadStatus, at: datetime) -> "Lead":
        """
        Apply a fresh automated classification. Clears the reroute flag; the status
        timestamp moves only when the status itself changes.
        """

        if entry.author is not ClassificationAuthor.MODEL:
            raise ValidationError("Classifier entries must be model-authored", fields=("author",))
        if entry.classification in REROUTE_CLASSIFICATIONS:
            raise ValidationError(
                f"{entry.classification.value!r} is not a classifier outcome",
                fields=("classification",),
            )
        if status in AWAITING_CLASSIFICATION_STATUSES:
            raise ValidationError(
                f"status {status.value!r} cannot accompany a classification",
                fields=("status",),
            )
        if status is self.status.status:
            new_status = self.status
        elif status is LeadStatus.DONE:
            # Auto-resolved by the classifier.
            new_status = StatusInfo(status=status, received_at=at, sent_at=at, sent_by="bot")
        else:
            new_status = StatusInfo(status=status, received_at=at)
        return replace(
            self,
            classifications=self.classifications.prepend(entry),
            status=new_status,
            reroute=False,
        )


__all__ = [
    "LeadStatus",
    "Classification",
    "ClassificationAuthor",
    "TerminalState",
    "SendBackTeam",
    "REROUTABLE_CLASSIFICATIONS",
    "REROUTE_CLASSIFICATIONS",
    "ClassificationEntry",
    "ClassificationHistory",
    "StatusInfo",
    "SupportFeedback",
    "MatchedCaseStudy",
    "Lead",
]
