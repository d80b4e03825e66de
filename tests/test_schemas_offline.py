"""Offline tests for payload validation.

Every violated constraint is reported, not just the first one.
"""

from __future__ import annotations

import pytest
from ingredient_library.exceptions import ValidationError
from ingredient_library.schemas import (
    SCHEMA_INGREDIENT_CREATE,
    SCHEMA_INGREDIENT_PATCH,
    validate,
    validate_filters,
    validate_ingredient,
    validate_saved_view,
)


def _valid_payload() -> dict:
    return {
        "id": "ing-1",
        "name": "Vanillin",
        "category": "Sweet",
        "family": "Gourmand",
        "status": "Active",
        "type": "Synthetic",
        "supplier": "Symrise",
        "costPerKg": 18,
        "stock": 0,
        "favorite": False,
        "updatedAt": "2024-01-01T00:00:00Z",
    }


@pytest.mark.asyncio
async def test_valid_ingredient_passes() -> None:
    result = validate_ingredient(_valid_payload())

    assert result.ok
    assert result.errors == []
    assert result.unwrap()["name"] == "Vanillin"


@pytest.mark.asyncio
async def test_invalid_ingredient_enumerates_every_violation() -> None:
    payload = _valid_payload()
    del payload["name"]
    payload["status"] = "Retired"
    payload["costPerKg"] = -1

    result = validate_ingredient(payload)

    assert not result.ok
    assert len(result.errors) == 3
    assert any(e.startswith("name") for e in result.errors)
    assert any(e.startswith("status") for e in result.errors)
    assert any(e.startswith("costPerKg") for e in result.errors)


@pytest.mark.asyncio
async def test_bool_is_not_a_number_and_ifra_is_a_percentage() -> None:
    payload = _valid_payload()
    payload["stock"] = True
    payload["ifraLimitPct"] = 120

    result = validate_ingredient(payload)

    assert not result.ok
    assert {e.split(":")[0] for e in result.errors} == {"stock", "ifraLimitPct"}


@pytest.mark.asyncio
async def test_sub_rows_are_validated_recursively() -> None:
    child = _valid_payload()
    child["id"] = "ing-2"
    child["type"] = "Alien"
    payload = _valid_payload()
    payload["subRows"] = [child]

    result = validate_ingredient(payload)

    assert not result.ok
    assert result.errors[0].startswith("subRows.0.type")


@pytest.mark.asyncio
async def test_create_schema_allows_missing_identity_and_patch_allows_partial() -> None:
    payload = _valid_payload()
    del payload["id"]
    del payload["updatedAt"]

    assert validate(SCHEMA_INGREDIENT_CREATE, payload).ok
    assert validate(SCHEMA_INGREDIENT_PATCH, {"favorite": True}).ok
    assert not validate(SCHEMA_INGREDIENT_PATCH, {"stock": -5}).ok


@pytest.mark.asyncio
async def test_unwrap_raises_validation_error_with_all_errors() -> None:
    result = validate_ingredient({"id": "x"})

    with pytest.raises(ValidationError) as excinfo:
        result.unwrap()

    assert excinfo.value.errors == result.errors
    assert len(excinfo.value.errors) > 1


@pytest.mark.asyncio
async def test_saved_view_schema() -> None:
    view = {
        "id": "v1",
        "name": "Mine",
        "filters": {"categories": ["Floral"], "costRange": {"min": 1}},
        "columns": [{"key": "name", "visible": True, "order": 0, "width": 200}],
        "groupBy": "family",
        "sortBy": {"id": "name", "desc": False},
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-01-01T00:00:00Z",
    }

    ok = validate_saved_view(view)
    bad = validate_saved_view({**view, "groupBy": "color", "columns": [{"key": "name"}]})

    assert ok.ok
    assert ok.value["query"] == ""
    assert not bad.ok
    assert any(e.startswith("groupBy") for e in bad.errors)
    assert any(e.startswith("columns") for e in bad.errors)


@pytest.mark.asyncio
async def test_filters_schema_allows_extensions_and_rejects_bad_core_values() -> None:
    assert validate_filters({"search": "x", "potency": {"min": 1}}).ok
    assert not validate_filters({"statuses": ["Retired"]}).ok
    assert not validate_filters({"favoritesOnly": "yes"}).ok
