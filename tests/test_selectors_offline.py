"""Offline tests for derivation helpers: sort, group, paginate, hierarchy, stats, export."""

from __future__ import annotations

import csv
import io
import json

import pytest
from ingredient_library.models import SortSpec
from ingredient_library.selectors import (
    GroupHeader,
    build_hierarchy,
    calculate_stats,
    expand_rows,
    export_to_csv,
    export_to_json,
    group_rows,
    page_count,
    paginate,
    selected_rows,
    sort_rows,
)

EXPECTED_TOTAL = 6
EXPECTED_ACTIVE = 4
EXPECTED_FAVORITES = 3
EXPECTED_LOW_STOCK = 2


def _ids(rows) -> list[str]:
    return [row.id for row in rows]


@pytest.mark.asyncio
async def test_sort_single_key_ascending_and_descending(sample_ingredients) -> None:
    asc = sort_rows(sample_ingredients, [SortSpec(id="costPerKg")])
    desc = sort_rows(sample_ingredients, [SortSpec(id="costPerKg", desc=True)])

    assert _ids(asc) == ["ing-004", "ing-005", "ing-002", "ing-001", "ing-006", "ing-003"]
    assert _ids(desc) == list(reversed(_ids(asc)))


@pytest.mark.asyncio
async def test_sort_ties_fall_through_to_next_key_then_input_order(sample_ingredients) -> None:
    by_category_then_cost = sort_rows(
        sample_ingredients, [SortSpec(id="category"), SortSpec(id="costPerKg", desc=True)]
    )
    by_category_only = sort_rows(sample_ingredients, [SortSpec(id="category")])

    assert _ids(by_category_then_cost) == [
        "ing-001",
        "ing-003",
        "ing-005",
        "ing-004",
        "ing-006",
        "ing-002",
    ]
    # Stable: Floral and Woody members keep input order
    assert _ids(by_category_only) == ["ing-001", "ing-003", "ing-005", "ing-004", "ing-002", "ing-006"]


@pytest.mark.asyncio
async def test_sort_strings_case_insensitive_and_missing_values_last(make_ingredient) -> None:
    rows = [
        make_ingredient(id="a", name="beta", cas_number=None),
        make_ingredient(id="b", name="Alpha", cas_number="2"),
        make_ingredient(id="c", name="gamma", cas_number="1"),
    ]

    by_name = sort_rows(rows, [SortSpec(id="name")])
    by_cas_desc = sort_rows(rows, [SortSpec(id="casNumber", desc=True)])

    assert _ids(by_name) == ["b", "a", "c"]
    assert _ids(by_cas_desc) == ["b", "c", "a"]


@pytest.mark.asyncio
async def test_group_rows_emits_headers_with_counts(sample_ingredients) -> None:
    rows = group_rows(sample_ingredients, "category", sort_by=[SortSpec(id="name")])

    headers = [r for r in rows if isinstance(r, GroupHeader)]
    assert [(h.group_key, h.count) for h in headers] == [
        ("Citrus", 1),
        ("Floral", 2),
        ("Sweet", 1),
        ("Woody", 2),
    ]
    assert [r.id for r in rows] == [
        "group-Citrus",
        "ing-001",
        "group-Floral",
        "ing-005",
        "ing-003",
        "group-Sweet",
        "ing-004",
        "group-Woody",
        "ing-002",
        "ing-006",
    ]
    assert headers[0].is_group_header
    assert headers[0].field == "category"


@pytest.mark.asyncio
async def test_collapsed_group_keeps_header_and_hides_members(sample_ingredients) -> None:
    rows = group_rows(sample_ingredients, "supplier", expanded_groups={"Givaudan": False})

    ids = [r.id for r in rows]

    assert "group-Givaudan" in ids
    assert "ing-001" not in ids and "ing-006" not in ids
    header = next(r for r in rows if r.id == "group-Givaudan")
    assert header.count == 2


@pytest.mark.asyncio
async def test_paginate_and_page_count() -> None:
    rows = list(range(7))

    assert paginate(rows, 0, 3) == [0, 1, 2]
    assert paginate(rows, 2, 3) == [6]
    assert paginate(rows, 5, 3) == []
    assert page_count(7, 3) == 3
    assert page_count(0, 3) == 0


@pytest.mark.asyncio
async def test_build_hierarchy_nests_children_and_keeps_orphans_as_roots(make_ingredient) -> None:
    rows = [
        make_ingredient(id="p"),
        make_ingredient(id="c1", parent_id="p"),
        make_ingredient(id="orphan", parent_id="missing"),
        make_ingredient(id="c2", parent_id="p"),
    ]

    roots = build_hierarchy(rows)

    assert _ids(roots) == ["p", "orphan"]
    assert _ids(roots[0].sub_rows) == ["c1", "c2"]
    # Inputs untouched
    assert rows[0].sub_rows is None


@pytest.mark.asyncio
async def test_build_hierarchy_promotes_rows_on_parent_loops(make_ingredient) -> None:
    rows = [
        make_ingredient(id="a", parent_id="b"),
        make_ingredient(id="b", parent_id="a"),
        make_ingredient(id="self", parent_id="self"),
        make_ingredient(id="child", parent_id="a"),
        make_ingredient(id="tail", parent_id="child"),
    ]

    roots = build_hierarchy(rows)
    flattened = expand_rows(roots, {row.id: True for row in rows})

    assert _ids(roots) == ["a", "b", "self"]
    assert _ids(roots[0].sub_rows) == ["child"]
    assert roots[1].sub_rows is None
    assert roots[2].sub_rows is None
    assert _ids(flattened) == ["a", "child", "tail", "b", "self"]


@pytest.mark.asyncio
async def test_expand_rows_inserts_sub_rows_only_for_expanded(make_ingredient) -> None:
    child = make_ingredient(id="child", parent_id="p")
    grandchild = make_ingredient(id="grandchild", parent_id="child")
    child.sub_rows = [grandchild]
    parent = make_ingredient(id="p", sub_rows=[child])
    other = make_ingredient(id="other")

    collapsed = expand_rows([parent, other], {})
    expanded = expand_rows([parent, other], {"p": True})
    deep = expand_rows([parent, other], {"p": True, "child": True})

    assert _ids(collapsed) == ["p", "other"]
    assert _ids(expanded) == ["p", "child", "other"]
    assert _ids(deep) == ["p", "child", "grandchild", "other"]


@pytest.mark.asyncio
async def test_selected_rows_and_stats(sample_ingredients) -> None:
    chosen = selected_rows(sample_ingredients, {"ing-002": True, "ing-003": False, "nope": True})
    stats = calculate_stats(sample_ingredients)

    assert _ids(chosen) == ["ing-002"]
    assert stats.total == EXPECTED_TOTAL
    assert stats.active == EXPECTED_ACTIVE
    assert stats.favorites == EXPECTED_FAVORITES
    assert stats.low_stock == EXPECTED_LOW_STOCK


@pytest.mark.asyncio
async def test_export_to_csv_skips_non_data_columns_and_joins_lists(sample_ingredients) -> None:
    text = export_to_csv(
        sample_ingredients[:1], ["select", "name", "supplier", "allergens", "actions"]
    )

    parsed = list(csv.reader(io.StringIO(text)))

    assert parsed[0] == ["Name", "Supplier", "Allergens"]
    assert parsed[1] == ["Bergamot Oil", "Givaudan", "Limonene; Linalool"]


@pytest.mark.asyncio
async def test_export_to_csv_quotes_commas(make_ingredient) -> None:
    text = export_to_csv([make_ingredient(name="Oil, refined")], ["name"])

    assert text.splitlines()[1] == '"Oil, refined"'


@pytest.mark.asyncio
async def test_export_to_json_uses_wire_format(sample_ingredients) -> None:
    payload = json.loads(export_to_json(sample_ingredients[:2]))

    assert [p["id"] for p in payload] == ["ing-001", "ing-002"]
    assert payload[0]["costPerKg"] == 85.5
