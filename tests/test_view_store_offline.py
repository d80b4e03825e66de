"""Offline tests for saved-view persistence.

Scenarios:
- Create/list roundtrip and strictly newer updatedAt on update
- NotFound results on unknown ids
- Default and last-used references cleared when their view is deleted
- Stale default reference healed on read
- Persistence failures (backend errors, corrupt JSON, schema violations)
  reported as failed results
- Live-state drift detection
"""

from __future__ import annotations

import json
from dataclasses import replace

import pytest
from ingredient_library.const import DEFAULT_VIEW_KEY, LAST_USED_VIEW_KEY, VIEWS_KEY
from ingredient_library.models import ColumnConfig, FiltersState, SortSpec, ViewDraft
from ingredient_library.storage import InMemoryKeyValueStore
from ingredient_library.view_store import (
    DEFAULT_COLUMNS,
    LiveViewState,
    ViewStore,
    create_default_view,
    default_columns,
    is_view_modified,
)

VIEW_NOT_FOUND = "View not found"


class QuotaExceededStore(InMemoryKeyValueStore):
    async def async_set(self, key: str, value: str) -> None:
        raise OSError("quota exceeded")


def _draft(name: str = "Florals") -> ViewDraft:
    return ViewDraft(
        name=name,
        query="rose",
        filters=FiltersState(categories=["Floral"]).with_value("costRange", {"max": 100}),
        columns=[ColumnConfig(key="name", visible=True, order=0, width=200)],
        group_by="family",
        sort_by=SortSpec(id="name", desc=True),
    )


@pytest.mark.asyncio
async def test_create_then_list_roundtrip() -> None:
    # Arrange
    store = ViewStore(InMemoryKeyValueStore())
    draft = _draft()

    # Act
    created = await store.async_create_view(draft)
    listed = await store.async_list_views()

    # Assert
    assert created.success
    assert listed.success
    assert len(listed.data) == 1
    view = listed.data[0]
    assert view.id == created.data.id
    assert view.name == draft.name
    assert view.query == draft.query
    assert view.filters == draft.filters
    assert view.columns == draft.columns
    assert view.group_by == draft.group_by
    assert view.sort_by == draft.sort_by
    assert view.created_at == view.updated_at


@pytest.mark.asyncio
async def test_created_ids_are_unique_and_list_keeps_insertion_order() -> None:
    store = ViewStore(InMemoryKeyValueStore())

    first = await store.async_create_view(_draft("A"))
    second = await store.async_create_view(_draft("B"))
    listed = await store.async_list_views()

    assert first.data.id != second.data.id
    assert [v.name for v in listed.data] == ["A", "B"]


@pytest.mark.asyncio
async def test_update_reflects_change_with_strictly_newer_timestamp() -> None:
    store = ViewStore(InMemoryKeyValueStore())
    created = (await store.async_create_view(_draft())).data

    updated = await store.async_update_view(replace(created, query="jasmine"))
    listed = await store.async_list_views()

    assert updated.success
    assert listed.data[0].query == "jasmine"
    assert listed.data[0].updated_at > created.updated_at
    assert listed.data[0].created_at == created.created_at
    assert listed.data[0].id == created.id


@pytest.mark.asyncio
async def test_update_and_delete_unknown_id_return_not_found() -> None:
    store = ViewStore(InMemoryKeyValueStore())
    created = (await store.async_create_view(_draft())).data

    updated = await store.async_update_view(replace(created, id="missing"))
    deleted = await store.async_delete_view("missing")
    defaulted = await store.async_set_default_view("missing")
    renamed = await store.async_rename_view("missing", "x")

    for result in (updated, deleted, defaulted, renamed):
        assert result.success is False
        assert result.error == VIEW_NOT_FOUND


@pytest.mark.asyncio
async def test_deleting_default_view_clears_reference() -> None:
    kv = InMemoryKeyValueStore()
    store = ViewStore(kv)
    view = (await store.async_create_view(_draft())).data
    await store.async_set_default_view(view.id)
    assert (await store.async_get_default_view()).data.id == view.id

    deleted = await store.async_delete_view(view.id)

    assert deleted.success
    assert (await store.async_get_default_view()).data is None
    assert DEFAULT_VIEW_KEY not in kv.snapshot()


@pytest.mark.asyncio
async def test_deleting_last_used_view_clears_reference_only_for_that_view() -> None:
    store = ViewStore(InMemoryKeyValueStore())
    keep = (await store.async_create_view(_draft("keep"))).data
    drop = (await store.async_create_view(_draft("drop"))).data
    await store.async_set_default_view(keep.id)
    await store.async_set_last_used_view(drop.id)

    await store.async_delete_view(drop.id)

    assert (await store.async_get_last_used_view()).data is None
    assert (await store.async_get_default_view()).data.id == keep.id


@pytest.mark.asyncio
async def test_stale_default_reference_reads_as_none_and_is_cleared() -> None:
    kv = InMemoryKeyValueStore({DEFAULT_VIEW_KEY: "ghost", VIEWS_KEY: "[]"})
    store = ViewStore(kv)

    result = await store.async_get_default_view()

    assert result.success
    assert result.data is None
    assert DEFAULT_VIEW_KEY not in kv.snapshot()


@pytest.mark.asyncio
async def test_last_used_reference_is_unconditional() -> None:
    kv = InMemoryKeyValueStore()
    store = ViewStore(kv)

    set_result = await store.async_set_last_used_view("not-a-view")
    got = await store.async_get_last_used_view()

    assert set_result.success
    assert got.data == "not-a-view"
    assert kv.snapshot()[LAST_USED_VIEW_KEY] == "not-a-view"


@pytest.mark.asyncio
async def test_clear_default_and_rename() -> None:
    store = ViewStore(InMemoryKeyValueStore())
    view = (await store.async_create_view(_draft())).data
    await store.async_set_default_view(view.id)

    cleared = await store.async_clear_default_view()
    renamed = await store.async_rename_view(view.id, "Renamed")

    assert cleared.success
    assert (await store.async_get_default_view()).data is None
    assert renamed.success
    assert renamed.data.name == "Renamed"
    assert (await store.async_list_views()).data[0].name == "Renamed"


@pytest.mark.asyncio
async def test_backend_failure_is_reported_not_raised() -> None:
    store = ViewStore(QuotaExceededStore())

    result = await store.async_create_view(_draft())

    assert result.success is False
    assert "quota exceeded" in result.error


@pytest.mark.asyncio
async def test_corrupt_views_json_is_a_persistence_failure() -> None:
    store = ViewStore(InMemoryKeyValueStore({VIEWS_KEY: "{broken"}))

    listed = await store.async_list_views()
    created = await store.async_create_view(_draft())

    assert listed.success is False
    assert "corrupted" in listed.error
    assert created.success is False


@pytest.mark.asyncio
async def test_stored_record_failing_schema_is_a_persistence_failure() -> None:
    bad = [{"id": "v1", "name": "No columns"}]
    store = ViewStore(InMemoryKeyValueStore({VIEWS_KEY: json.dumps(bad)}))

    listed = await store.async_list_views()

    assert listed.success is False
    assert "#0" in listed.error


@pytest.mark.asyncio
async def test_storage_health_summary() -> None:
    store = ViewStore(InMemoryKeyValueStore())
    view = (await store.async_create_view(_draft())).data
    await store.async_set_default_view(view.id)

    health = await store.async_storage_health()

    assert health == {"views_count": 1, "has_default_view": True, "has_last_used_view": False}


# -----------------------------
# Default view and drift detection
# -----------------------------


@pytest.mark.asyncio
async def test_create_default_view_draft() -> None:
    draft = create_default_view()

    assert draft.name == "Default View"
    assert draft.is_default is True
    assert draft.filters == FiltersState()
    assert draft.columns == list(DEFAULT_COLUMNS)
    assert [c.order for c in draft.columns] == list(range(len(DEFAULT_COLUMNS)))
    assert draft.group_by is None and draft.sort_by is None


@pytest.mark.asyncio
async def test_default_columns_returns_independent_copies() -> None:
    columns = default_columns()
    columns[0].visible = False

    assert DEFAULT_COLUMNS[0].visible is True


async def _saved_view():
    store = ViewStore(InMemoryKeyValueStore())
    return (await store.async_create_view(_draft())).data


def _mirror(view) -> LiveViewState:
    return LiveViewState(
        query=view.query,
        filters=view.filters.copy(),
        columns=[replace(c) for c in view.columns],
        group_by=view.group_by,
        sort_by=[view.sort_by] if view.sort_by else [],
    )


@pytest.mark.asyncio
async def test_is_view_modified_false_for_mirrored_state() -> None:
    view = await _saved_view()

    assert is_view_modified(_mirror(view), view) is False


@pytest.mark.asyncio
async def test_is_view_modified_detects_each_dimension_independently() -> None:
    view = await _saved_view()
    base = _mirror(view)

    variants = {
        "query": replace(base, query="jasmine"),
        "filters": replace(base, filters=base.filters.with_value("favoritesOnly", True)),
        "group_by": replace(base, group_by=None),
        "sort": replace(base, sort_by=[SortSpec(id="name", desc=False)]),
        "sort_extra_key": replace(base, sort_by=[*base.sort_by, SortSpec(id="stock")]),
        "columns": replace(
            base, columns=[replace(base.columns[0], width=250)]
        ),
    }

    for name, live in variants.items():
        assert is_view_modified(live, view) is True, name


@pytest.mark.asyncio
async def test_is_view_modified_treats_list_order_as_significant() -> None:
    view = await _saved_view()
    base = _mirror(view)
    two = replace(base, filters=base.filters.with_value("categories", ["Floral", "Sweet"]))
    saved = replace(view, filters=two.filters.copy())

    reordered = replace(two, filters=two.filters.with_value("categories", ["Sweet", "Floral"]))

    assert is_view_modified(two, saved) is False
    assert is_view_modified(reordered, saved) is True
