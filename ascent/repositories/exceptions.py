"""Engine and repository exceptions.

Provides a typed exception hierarchy for grading, review and progression
operations. Every error is raised before or inside the unit of work, so a
raised error always means nothing was committed.
"""

from typing import Any


class RepositoryError(Exception):
    """Base exception for all engine and repository errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class EntityNotFoundError(RepositoryError):
    """Raised when an athlete, challenge, division or submission is unknown."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str | None = None,
        **lookup_params: Any,
    ) -> None:
        details = {"entity_type": entity_type}
        if entity_id:
            details["entity_id"] = entity_id
        details.update(lookup_params)

        message = f"{entity_type} not found"
        if entity_id:
            message = f"{entity_type} with id '{entity_id}' not found"

        super().__init__(message, details)
        self.entity_type = entity_type
        self.entity_id = entity_id


class DuplicateEntityError(RepositoryError):
    """Raised when attempting to create a duplicate entity."""

    def __init__(
        self,
        entity_type: str,
        field: str,
        value: str,
    ) -> None:
        message = f"{entity_type} with {field}='{value}' already exists"
        details = {
            "entity_type": entity_type,
            "field": field,
            "value": value,
        }
        super().__init__(message, details)
        self.entity_type = entity_type
        self.field = field
        self.value = value


class ValidationError(RepositoryError):
    """Raised when input fails validation; ``field`` names the culprit."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        if errors:
            details["errors"] = errors

        super().__init__(message, details)
        self.field = field
        self.errors = errors or []


class ConcurrencyError(RepositoryError):
    """Raised when a concurrent modification conflict occurs."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int,
        actual_version: int,
    ) -> None:
        message = (
            f"Concurrent modification detected for {entity_type} '{entity_id}': "
            f"expected version {expected_version}, found {actual_version}"
        )
        details = {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "expected_version": expected_version,
            "actual_version": actual_version,
        }
        super().__init__(message, details)
        self.expected_version = expected_version
        self.actual_version = actual_version


class RateLimitError(RepositoryError):
    """Raised when a resubmission arrives inside the cooldown window."""

    def __init__(self, retry_after_hours: int) -> None:
        plural = "s" if retry_after_hours != 1 else ""
        super().__init__(
            f"You can only submit once per day per challenge. Try again in {retry_after_hours} hour{plural}.",
            {"retry_after_hours": retry_after_hours},
        )
        self.retry_after_hours = retry_after_hours


class PermissionDeniedError(RepositoryError):
    """Raised when the acting role may not perform an operation."""

    def __init__(self, action: str, role: str) -> None:
        super().__init__(
            f"Role '{role}' is not allowed to {action}",
            {"action": action, "role": role},
        )
        self.action = action
        self.role = role


class LedgerError(RepositoryError):
    """Raised when an XP change would leave the ledger inconsistent."""

    def __init__(self, message: str, athlete_id: str, domain_id: str, **details: Any) -> None:
        super().__init__(message, {"athlete_id": athlete_id, "domain_id": domain_id, **details})
        self.athlete_id = athlete_id
        self.domain_id = domain_id


class TransactionError(RepositoryError):
    """Raised when a transaction operation fails."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        details: dict[str, Any] = {}
        if original_error:
            details["original_error"] = str(original_error)
            details["error_type"] = type(original_error).__name__

        super().__init__(message, details)
        self.original_error = original_error


__all__ = [
    "ConcurrencyError",
    "DuplicateEntityError",
    "EntityNotFoundError",
    "LedgerError",
    "PermissionDeniedError",
    "RateLimitError",
    "RepositoryError",
    "TransactionError",
    "ValidationError",
]
