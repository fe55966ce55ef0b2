"""Domain error hierarchy for clean exception handling."""
from __future__ import annotations


class DomainError(Exception):
    """Base for all domain errors."""


class NotFoundError(DomainError):
    """Resource not found."""


class ValidationError(DomainError):
    """Invalid input or state."""


class ConflictError(DomainError):
    """Resource conflict (e.g., duplicate name)."""


class InvalidArgumentError(ValidationError):
    """A required argument was missing or unusable (e.g., no item collection)."""


class InvalidTransitionError(ValidationError):
    """An analysis was asked to move to a status its current status cannot reach."""


class DuplicateIdentifierError(ConflictError):
    """The same caller-provided identifier appears more than once in one request."""

    def __init__(self, identifiers):
        self.identifiers = sorted(identifiers)
        super().__init__(
            f"The following identifiers appear more than once: {', '.join(self.identifiers)}"
        )


class JobNotFoundError(NotFoundError):
    """No job record exists with the requested identifier."""


class JobPayloadError(ValidationError):
    """A job record's data could not be deserialized into mutation items."""
