"""Offline tests for the in-memory data source.

Scenarios:
- Listing applies filters, sort and pagination with total counted before paging
- Unknown ids return the not-found message as a failed result
- Create/update validate payloads; id and updatedAt are not patchable
- Row actions: toggle favorite, duplicate, archive, delete
- Bulk export and filter options
"""

from __future__ import annotations

import csv
import io
import json

import pytest
from ingredient_library.data_source import ExportOptions, InMemoryDataSource, ListOptions
from ingredient_library.models import FiltersState, Pagination, SortSpec

NEW_INGREDIENT = {
    "name": "Ambroxan",
    "category": "Woody",
    "family": "Amber",
    "status": "Active",
    "type": "Synthetic",
    "supplier": "Firmenich",
    "costPerKg": 120,
    "stock": 80,
    "favorite": False,
}


@pytest.mark.asyncio
async def test_list_applies_filters_sort_and_pagination(sample_ingredients) -> None:
    source = InMemoryDataSource(sample_ingredients)
    options = ListOptions(
        filters=FiltersState(types=["Natural"]),
        sort_by=[SortSpec(id="costPerKg", desc=True)],
        pagination=Pagination(page_index=0, page_size=2),
    )

    result = await source.async_list(options)

    assert result.success
    assert [i.id for i in result.data] == ["ing-003", "ing-006"]
    assert result.total == 3


@pytest.mark.asyncio
async def test_list_without_options_returns_everything(sample_ingredients) -> None:
    source = InMemoryDataSource(sample_ingredients)

    result = await source.async_list()

    assert [i.id for i in result.data] == [i.id for i in sample_ingredients]
    assert result.total == len(sample_ingredients)


@pytest.mark.asyncio
async def test_seed_dicts_are_validated() -> None:
    source = InMemoryDataSource([{**NEW_INGREDIENT, "id": "a", "updatedAt": "2024-01-01T00:00:00Z"}])

    result = await source.async_get("a")

    assert result.success
    assert result.data.name == "Ambroxan"


@pytest.mark.asyncio
async def test_get_unknown_id_is_not_found(sample_ingredients) -> None:
    source = InMemoryDataSource(sample_ingredients)

    result = await source.async_get("nope")

    assert result.success is False
    assert result.error == "Ingredient with ID nope not found"


@pytest.mark.asyncio
async def test_create_assigns_identity_and_appends() -> None:
    source = InMemoryDataSource()

    created = await source.async_create(NEW_INGREDIENT)
    listed = await source.async_list()

    assert created.success
    assert created.data.id
    assert created.data.updated_at
    assert [i.id for i in listed.data] == [created.data.id]


@pytest.mark.asyncio
async def test_create_rejects_invalid_payload_with_all_errors() -> None:
    source = InMemoryDataSource()

    result = await source.async_create({**NEW_INGREDIENT, "stock": -1, "status": "Retired"})

    assert result.success is False
    assert "stock" in result.error
    assert "status" in result.error
    assert (await source.async_list()).total == 0


@pytest.mark.asyncio
async def test_update_merges_patch_and_keeps_identity(sample_ingredients) -> None:
    source = InMemoryDataSource(sample_ingredients)

    result = await source.async_update("ing-002", {"stock": 5, "id": "hijack"})
    fetched = await source.async_get("ing-002")

    assert result.success
    assert result.data.id == "ing-002"
    assert result.data.stock == 5
    assert result.data.updated_at > sample_ingredients[1].updated_at
    assert fetched.data.stock == 5


@pytest.mark.asyncio
async def test_update_rejects_invalid_patch_and_unknown_id(sample_ingredients) -> None:
    source = InMemoryDataSource(sample_ingredients)

    invalid = await source.async_update("ing-002", {"costPerKg": "cheap"})
    missing = await source.async_update("nope", {"stock": 1})

    assert invalid.success is False
    assert missing.error == "Ingredient with ID nope not found"


@pytest.mark.asyncio
async def test_row_actions(sample_ingredients) -> None:
    source = InMemoryDataSource(sample_ingredients)

    toggled = await source.async_toggle_favorite("ing-002")
    duplicated = await source.async_duplicate("ing-001")
    archived = await source.async_archive("ing-003")
    deleted = await source.async_delete("ing-004")
    listed = await source.async_list()

    assert toggled.data.favorite is True
    assert duplicated.data.name == "Bergamot Oil (Copy)"
    assert duplicated.data.id != "ing-001"
    assert archived.data.status == "Inactive"
    assert deleted.success
    ids = [i.id for i in listed.data]
    assert "ing-004" not in ids
    assert ids[-1] == duplicated.data.id


@pytest.mark.asyncio
async def test_delete_unknown_id_fails(sample_ingredients) -> None:
    source = InMemoryDataSource(sample_ingredients)

    result = await source.async_delete("nope")

    assert result.success is False
    assert (await source.async_list()).total == len(sample_ingredients)


@pytest.mark.asyncio
async def test_bulk_export_csv_and_json(sample_ingredients) -> None:
    source = InMemoryDataSource(sample_ingredients)

    as_csv = await source.async_bulk_export(
        ["ing-004", "ing-001"], ExportOptions(format="csv", include_columns=["name", "stock"])
    )
    as_json = await source.async_bulk_export(["ing-002"], ExportOptions(format="json"))
    bad = await source.async_bulk_export(["ing-002"], ExportOptions(format="xml"))  # type: ignore[arg-type]

    rows = list(csv.reader(io.StringIO(as_csv.data)))
    assert rows[0] == ["Name", "Stock"]
    # Catalog order, not request order
    assert [r[0] for r in rows[1:]] == ["Bergamot Oil", "Vanillin"]
    assert [p["id"] for p in json.loads(as_json.data)] == ["ing-002"]
    assert bad.success is False


@pytest.mark.asyncio
async def test_filter_options(sample_ingredients) -> None:
    source = InMemoryDataSource(sample_ingredients)

    result = await source.async_get_filter_options()

    assert result.data["categories"] == ["Citrus", "Floral", "Sweet", "Woody"]
    assert result.data["suppliers"] == ["Firmenich", "Givaudan", "IFF", "Symrise"]
    assert result.data["statuses"] == ["Active", "Inactive", "Limited"]
    assert "Synthetic" in result.data["types"]
