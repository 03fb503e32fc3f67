"""
Domain: error taxonomy for lead routing operations.

Every failure surfaced by the lifecycle and version-control services is one of
these exceptions. Each carries a machine-readable `kind` so the boundary can
report the cause without inspecting message text.

Kinds:
- not_found: entity id absent
- invalid_state: operation undefined for the current status/classification
- already_recorded: idempotence violation (e.g., duplicate self-service)
- validation: malformed or non-whitelisted input fields
- conflict: optimistic version check failed (concurrent writer)
- store: transport/transaction failure, including detected inconsistency
- unknown: unexpected internal fault
"""

from __future__ import annotations

from typing import Iterable, Tuple

INCONSISTENT_STATE_MARKER = "inconsistent state, manual reconciliation required"


class LeadRoutingError(Exception):
    """Base class for all recoverable lead routing failures."""

    kind: str = "unknown"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(LeadRoutingError):
    kind = "not_found"

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(f"{resource} not found: {resource_id}")
        self.resource = resource
        self.resource_id = resource_id


class InvalidStateError(LeadRoutingError):
    kind = "invalid_state"


class AlreadyRecordedError(LeadRoutingError):
    kind = "already_recorded"


class ValidationError(LeadRoutingError):
    """Raised for malformed input; `fields` names the offending field(s)."""

    kind = "validation"

    def __init__(self, message: str, fields: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.fields: Tuple[str, ...] = tuple(fields)


class ConflictError(LeadRoutingError):
    kind = "conflict"


class StoreError(LeadRoutingError):
    """
    Persistence failure.

    When `inconsistent` is True the store may have been left partially written
    and the message carries the manual reconciliation marker.
    """

    kind = "store"

    def __init__(self, message: str, *, inconsistent: bool = False) -> None:
        if inconsistent and INCONSISTENT_STATE_MARKER not in message:
            message = f"{message} ({INCONSISTENT_STATE_MARKER})"
        super().__init__(message)
        self.inconsistent = inconsistent


class UnknownError(LeadRoutingError):
    kind = "unknown"


__all__ = [
    "INCONSISTENT_STATE_MARKER",
    "LeadRoutingError",
    "NotFoundError",
    "InvalidStateError",
    "AlreadyRecordedError",
    "ValidationError",
    "ConflictError",
    "StoreError",
    "UnknownError",
]
