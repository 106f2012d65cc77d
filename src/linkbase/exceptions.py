"""Linkbase exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from LinkbaseError for easy catching.
"""

from __future__ import annotations


class LinkbaseError(Exception):
    """Base exception for all Linkbase errors.

    All custom exceptions in Linkbase inherit from this class,
    allowing callers to catch all Linkbase-related errors with
    a single except clause.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "linkbase_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(LinkbaseError):
    """Invalid input provided.

    Raised when input fails validation before any store call.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(LinkbaseError):
    """Resource not found.

    Raised when a fact or connection is absent on update or delete.

    Attributes:
        resource_type: Type of resource (e.g., "fact", "connection").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(LinkbaseError):
    """Storage operation failed.

    Raised when a relational store operation fails.
    """

    code: str = "storage_error"


class EmbeddingProviderError(LinkbaseError):
    """Embedding generation failed.

    Raised when the embedding provider fails (network, timeout, model error)
    or returns an unusable vector.
    """

    code: str = "embedding_provider_error"


class PartialReconciliationError(LinkbaseError):
    """Fact reconciliation failed part way through.

    Raised when the add/update/delete sequence of a fact upsert fails.
    The store transaction is rolled back before this is raised, so the
    connection keeps its previous fact set.

    Attributes:
        phase: The phase that failed ("add", "update" or "delete").
    """

    code: str = "partial_reconciliation"

    def __init__(self, phase: str, message: str) -> None:
        self.phase = phase
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "phase": self.phase,
                "message": self.message,
            }
        }


class ConfigurationError(LinkbaseError):
    """Configuration error.

    Raised when required configuration is missing or invalid.
    """

    code: str = "configuration_error"
