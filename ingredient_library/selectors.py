"""Pure derivation helpers over ingredient rows.

Grouping, multi-key sorting, pagination, hierarchy materialization, stats and
export rendering. The table controller composes these into its per-render
pipeline; the in-memory data source reuses the sort and pagination helpers.
"""

from __future__ import annotations

import csv
import io
import json
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any, Final

from .models import Ingredient, SortSpec, get_stock_level, ingredient_value, normalize_text_for_sort

DEFAULT_EXPORT_COLUMNS: Final[tuple[str, ...]] = (
    "name",
    "category",
    "family",
    "status",
    "type",
    "supplier",
    "costPerKg",
    "stock",
)

COLUMN_HEADERS: Final[dict[str, str]] = {
    "name": "Name",
    "category": "Category",
    "family": "Family",
    "status": "Status",
    "type": "Type",
    "supplier": "Supplier",
    "costPerKg": "Cost per Kg",
    "stock": "Stock",
    "favorite": "Favorite",
    "casNumber": "CAS Number",
    "ifraLimitPct": "IFRA Limit %",
    "allergens": "Allergens",
    "updatedAt": "Updated At",
}

# Columns that never carry data
NON_DATA_COLUMNS: Final[frozenset[str]] = frozenset({"select", "actions"})


@dataclass(frozen=True)
class GroupHeader:
    """Synthetic row heading one group of ingredients."""

    group_key: str
    field: str
    count: int
    level: int = 0
    is_group_header: bool = True

    @property
    def id(self) -> str:
        return f"group-{self.group_key}"

    @property
    def label(self) -> str:
        return self.group_key


TableRow = Ingredient | GroupHeader


@dataclass(frozen=True)
class StatsData:
    total: int
    active: int
    low_stock: int
    favorites: int


# -----------------------------
# Sorting and pagination
# -----------------------------


def _sort_value(value: Any) -> Any:
    if isinstance(value, str):
        return normalize_text_for_sort(value)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, list):
        return normalize_text_for_sort("; ".join(str(v) for v in value))
    return value


def sort_rows(rows: Iterable[Ingredient], sort_by: Sequence[SortSpec]) -> list[Ingredient]:
    """Stable multi-key sort.

    Keys are applied last to first so earlier keys dominate and ties fall
    through to later keys, then to input order. Strings compare
    case-insensitively; rows missing a key's value go last for that key.
    """

    result = list(rows)
    for spec in reversed(list(sort_by)):
        present = [r for r in result if ingredient_value(r, spec.id) is not None]
        missing = [r for r in result if ingredient_value(r, spec.id) is None]
        present.sort(key=lambda r, k=spec.id: _sort_value(ingredient_value(r, k)), reverse=spec.desc)
        result = present + missing
    return result


def paginate(rows: Sequence[Any], page_index: int, page_size: int) -> list[Any]:
    if page_size <= 0:
        return list(rows)
    start = max(0, page_index) * page_size
    return list(rows[start : start + page_size])


def page_count(total_rows: int, page_size: int) -> int:
    if page_size <= 0:
        return 1 if total_rows else 0
    return math.ceil(total_rows / page_size)


# -----------------------------
# Grouping and hierarchy
# -----------------------------


def group_rows(
    rows: Iterable[Ingredient],
    group_by: str,
    *,
    sort_by: Sequence[SortSpec] = (),
    expanded_groups: Mapping[str, bool] | None = None,
) -> list[TableRow]:
    """Partition rows by ``group_by`` into headers followed by their members.

    Groups are ordered by key; members are sorted with ``sort_by`` inside their
    group. A group mapped to False in ``expanded_groups`` keeps its header (and
    count) but hides its members.
    """

    groups: dict[str, list[Ingredient]] = {}
    for row in rows:
        value = ingredient_value(row, group_by)
        key = "" if value is None else str(value)
        groups.setdefault(key, []).append(row)

    expanded = expanded_groups or {}
    result: list[TableRow] = []
    for key in sorted(groups, key=lambda k: (normalize_text_for_sort(k), k)):
        members = groups[key]
        result.append(GroupHeader(group_key=key, field=group_by, count=len(members)))
        if expanded.get(key, True):
            result.extend(sort_rows(members, sort_by))
    return result


def _rows_on_parent_loops(rows_by_id: Mapping[str, Ingredient]) -> set[str]:
    """Ids of rows whose parent chain leads back to themselves."""

    on_loop: set[str] = set()
    settled: set[str] = set()
    for start in rows_by_id:
        path: list[str] = []
        index: dict[str, int] = {}
        current: str | None = start
        while current is not None and current in rows_by_id and current not in settled:
            if current in index:
                on_loop.update(path[index[current] :])
                break
            index[current] = len(path)
            path.append(current)
            current = rows_by_id[current].parent_id
        settled.update(path)
    return on_loop


def build_hierarchy(rows: Iterable[Ingredient]) -> list[Ingredient]:
    """Materialize ``sub_rows`` from ``parent_id`` links and return the roots.

    Rows whose parent is not in ``rows`` become roots, and so do rows whose
    parent links form a loop. Already materialized sub-rows are kept ahead of
    linked children. Inputs are not mutated.
    """

    copies: dict[str, Ingredient] = {}
    order: list[str] = []
    for row in rows:
        copies[row.id] = replace(row, sub_rows=list(row.sub_rows) if row.sub_rows else None)
        order.append(row.id)

    on_loop = _rows_on_parent_loops(copies)
    roots: list[Ingredient] = []
    for row_id in order:
        node = copies[row_id]
        parent = copies.get(node.parent_id) if node.parent_id else None
        if parent is not None and row_id not in on_loop:
            if parent.sub_rows is None:
                parent.sub_rows = []
            parent.sub_rows.append(node)
        else:
            roots.append(node)
    return roots


def expand_rows(rows: Iterable[Ingredient], expanded: Mapping[str, bool]) -> list[Ingredient]:
    """Insert the sub-rows of expanded rows right after their parent."""

    result: list[Ingredient] = []
    for row in rows:
        result.append(row)
        if row.sub_rows and expanded.get(row.id):
            result.extend(expand_rows(row.sub_rows, expanded))
    return result


# -----------------------------
# Selection and stats
# -----------------------------


def selected_rows(rows: Iterable[Ingredient], selection: Mapping[str, bool]) -> list[Ingredient]:
    return [row for row in rows if selection.get(row.id)]


def calculate_stats(rows: Iterable[Ingredient]) -> StatsData:
    items = list(rows)
    return StatsData(
        total=len(items),
        active=sum(1 for row in items if row.status == "Active"),
        low_stock=sum(1 for row in items if get_stock_level(row.stock) in ("Low", "OutOfStock")),
        favorites=sum(1 for row in items if row.favorite),
    )


# -----------------------------
# Export
# -----------------------------


def _export_cell(value: Any) -> Any:
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    if value is None:
        return ""
    return value


def export_to_csv(
    rows: Iterable[Ingredient], columns: Sequence[str] = DEFAULT_EXPORT_COLUMNS
) -> str:
    """Render rows as CSV with a header line; non-data columns are skipped."""

    data_columns = [col for col in columns if col not in NON_DATA_COLUMNS]
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([COLUMN_HEADERS.get(col, col) for col in data_columns])
    for row in rows:
        writer.writerow([_export_cell(ingredient_value(row, col)) for col in data_columns])
    return buffer.getvalue().rstrip("\n")


def export_to_json(rows: Iterable[Ingredient]) -> str:
    return json.dumps([row.to_dict() for row in rows], indent=2)
