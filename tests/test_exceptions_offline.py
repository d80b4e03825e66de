"""Offline tests for exception taxonomy.

Each test constructs an exception and asserts type relationships and message
round-tripping, ensuring ``str(exc)`` equals the provided message.
"""

from __future__ import annotations

import pytest
from ingredient_library.exceptions import (
    DataSourceError,
    IngredientLibraryError,
    NotFoundError,
    StorageError,
    ValidationError,
)


@pytest.mark.asyncio
async def test_validation_error_message_type_and_errors():
    message = "name: required key not provided; stock: must be >= 0"
    errors = ["name: required key not provided", "stock: must be >= 0"]
    exc = ValidationError(message, errors)
    assert isinstance(exc, IngredientLibraryError)
    assert str(exc) == message
    assert exc.errors == errors


@pytest.mark.asyncio
async def test_validation_error_defaults_errors_to_message():
    exc = ValidationError("page_size must be >= 1")
    assert exc.errors == ["page_size must be >= 1"]


@pytest.mark.asyncio
async def test_not_found_error_message_and_type():
    message = "View not found"
    exc = NotFoundError(message)
    assert isinstance(exc, IngredientLibraryError)
    assert str(exc) == message


@pytest.mark.asyncio
async def test_storage_error_message_and_type():
    message = "stored views are corrupted: invalid JSON"
    exc = StorageError(message)
    assert isinstance(exc, IngredientLibraryError)
    assert str(exc) == message


@pytest.mark.asyncio
async def test_data_source_error_message_and_type():
    # Transport failures keep the remote message verbatim
    message = "HTTP 503: Service Unavailable"
    exc = DataSourceError(message)
    assert isinstance(exc, IngredientLibraryError)
    assert str(exc) == message
