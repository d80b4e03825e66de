"""Exception taxonomy for the Ingredient Library engine.

Domain code raises these internally. The public view-store and data-source
boundaries translate them into ``OperationResult`` failures so callers never
see them as uncaught faults.

All exceptions accept a human-readable message. ``str(exception)`` returns the
message unchanged.
"""

from __future__ import annotations


class IngredientLibraryError(Exception):
    """Base exception for Ingredient Library errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(IngredientLibraryError):
    """Raised when input payloads fail validation.

    ``errors`` enumerates every violated constraint; the message joins them.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors: list[str] = list(errors) if errors else [message]


class NotFoundError(IngredientLibraryError):
    """Raised when a requested saved view or record does not exist."""


class StorageError(IngredientLibraryError):
    """Raised when the key-value backend fails or stored data is corrupted."""


class DataSourceError(IngredientLibraryError):
    """Raised when the external data source reports or causes a failure."""
