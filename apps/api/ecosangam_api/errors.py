"""Domain error taxonomy.

Services raise these; the command facade (``ecosangam_api.commands``) turns
them into ``CommandResult`` values and the REST layer maps ``code`` to an
HTTP status. Only ``TransientSyncError`` is ever retried, and only by the
record store's queue.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional


class DomainError(Exception):
    """Base class for typed domain errors."""

    code = "domain_error"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict[str, Any]:
        """Serializable representation for API responses."""
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


@dataclass(frozen=True)
class FieldViolation:
    """A single violated input constraint."""

    field: str
    reason: str


class ValidationError(DomainError):
    """Malformed or out-of-range input; carries every violation found."""

    code = "validation_error"

    def __init__(self, violations: Iterable[FieldViolation]):
        self.violations = list(violations)
        summary = "; ".join(f"{v.field}: {v.reason}" for v in self.violations)
        super().__init__(summary or "invalid input")

    @classmethod
    def single(cls, field: str, reason: str) -> "ValidationError":
        return cls([FieldViolation(field, reason)])

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["violations"] = [{"field": v.field, "reason": v.reason} for v in self.violations]
        return data


class NotFound(ValidationError):
    """Referenced entity does not exist (or is not visible to the caller)."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__([FieldViolation(f"{entity}_id", f"{entity} {entity_id} not found")])


class AuthorizationError(DomainError):
    """Actor lacks the capability for the attempted operation."""

    code = "authorization_error"

    def __init__(self, capability: str, message: str = ""):
        self.capability = capability
        super().__init__(message or f"Missing capability: {capability}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["capability"] = self.capability
        return data


class StateConflictError(DomainError):
    """Transition not valid from the entity's current state."""

    code = "state_conflict"

    def __init__(self, expected: Any, actual: Any, message: str = ""):
        self.expected = expected
        self.actual = actual
        super().__init__(message or f"Expected state {expected}, found {actual}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["expected"] = self.expected
        data["actual"] = self.actual
        return data


class InsufficientBalance(DomainError):
    """Requested amount exceeds the balance held for a token."""

    code = "insufficient_balance"

    def __init__(self, token_id: str, requested: int, available: int):
        self.token_id = token_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Token {token_id}: requested {requested} but only {available} available"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"token_id": self.token_id, "requested": self.requested, "available": self.available})
        return data


class PartialRetirementUnsupported(DomainError):
    """Partial retirement requested from a ledger that cannot split tokens."""

    code = "partial_retirement_unsupported"


class IncompleteEvidence(DomainError):
    """At least one evidence item on the record is not verified."""

    code = "incomplete_evidence"

    def __init__(self, unverified: list[str]):
        self.unverified = unverified
        super().__init__(f"{len(unverified)} evidence item(s) not verified")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["unverified"] = self.unverified
        return data


class OutstandingCompliance(DomainError):
    """Findings still list compliance issues."""

    code = "outstanding_compliance"

    def __init__(self, issues: list[str]):
        self.issues = issues
        super().__init__(f"{len(issues)} compliance issue(s) outstanding")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["issues"] = self.issues
        return data


class TransientSyncError(DomainError):
    """Connectivity failure while syncing; the queue retries on the next sync."""

    code = "transient_sync_error"
    retryable = True


class AuthError(DomainError):
    """Login failure."""

    code = "auth_error"


class InvalidCredential(AuthError):
    code = "invalid_credential"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Invalid credential")


class UnknownAccount(AuthError):
    code = "unknown_account"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"No account registered for {email}")
