"""
Domain: Configuration entity (the active ruleset/template bundle).

Contract excerpts implemented here:
- A Configuration is one of draft, active, archived.
- draft -> active happens only through activation; activation of anything but a
  draft is undefined.
- active/draft -> archived happens on supersession or explicit archival; an
  archived configuration never changes status again.
- activated_at/archived_at are present only once the corresponding transition
  has occurred.

Exclusivity (at most one active configuration) is a property of the whole
collection, not of one entity; it is enforced by the version controller.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from .errors import InvalidStateError
from .time import require_optional_utc_timestamp


class ConfigurationStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


@dataclass(frozen=True, slots=True)
class EmailTemplate:
    subject: str = ""
    greeting: str = ""
    sign_off: str = ""
    call_to_action: str = ""

    def is_blank(self) -> bool:
        """True when no field carries content, i.e. nothing worth preserving."""

        return not any(
            part.strip()
            for part in (self.subject, self.greeting, self.sign_off, self.call_to_action)
        )


DEFAULT_EMAIL_TEMPLATE = EmailTemplate(
    subject="Hi from Vercel",
    greeting="Hi {firstName},",
    sign_off="Best,",
    call_to_action="Let's schedule a quick 15-minute call to discuss how Vercel can help.",
)


@dataclass(frozen=True, slots=True)
class Configuration:
    configuration_id: str
    status: ConfigurationStatus
    activated_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    email_template: Optional[EmailTemplate] = None
    default_case_study_id: Optional[str] = None
    name: Optional[str] = None
    settings: Mapping[str, Any] = field(default_factory=dict)
    version: int = 0

    def __post_init__(self) -> None:
        if not self.configuration_id:
            raise ValueError("configuration_id must be non-empty")
        require_optional_utc_timestamp("activated_at", self.activated_at)
        require_optional_utc_timestamp("archived_at", self.archived_at)

        if self.status is ConfigurationStatus.DRAFT:
            if self.activated_at is not None or self.archived_at is not None:
                raise ValueError("draft configuration cannot carry activated_at/archived_at")
        elif self.status is ConfigurationStatus.ACTIVE:
            if self.activated_at is None:
                raise ValueError("active configuration requires activated_at")
            if self.archived_at is not None:
                raise ValueError("active configuration cannot carry archived_at")
        elif self.archived_at is None:
            raise ValueError("archived configuration requires archived_at")

    @property
    def is_active(self) -> bool:
        return self.status is ConfigurationStatus.ACTIVE

    def has_custom_email_template(self) -> bool:
        return self.email_template is not None and not self.email_template.is_blank()

    def activated(self, at: datetime) -> "Configuration":
        if self.status is not ConfigurationStatus.DRAFT:
            raise InvalidStateError(
                f"Only draft configurations can be activated (status: {self.status.value})"
            )
        return replace(self, status=ConfigurationStatus.ACTIVE, activated_at=at)

    def archived(self, at: datetime) -> "Configuration":
        if self.status is ConfigurationStatus.ARCHIVED:
            raise InvalidStateError("Configuration is already archived")
        return replace(self, status=ConfigurationStatus.ARCHIVED, archived_at=at)

    def with_email_template(self, template: EmailTemplate) -> "Configuration":
        return replace(self, email_template=template)


__all__ = [
    "ConfigurationStatus",
    "EmailTemplate",
    "DEFAULT_EMAIL_TEMPLATE",
    "Configuration",
]
