"""Filter evaluation engine.

Pure functions that turn a declarative ``FiltersState`` into row predicates,
option lists for filter widgets, removable filter chips and filter-state
edits. Filters are described by a registry of ``FilterDef`` entries; the
default registry covers search, the multiselect dimensions, favorites and the
cost/stock ranges.

Nothing here performs I/O or mutates its inputs.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any, Final, Literal

from .models import (
    INGREDIENT_STATUSES,
    INGREDIENT_TYPES,
    FiltersState,
    Ingredient,
    RangeFilter,
    get_stock_level,
)

FilterKind = Literal["text", "multiselect", "switch", "range"]
Predicate = Callable[[Ingredient], bool]


@dataclass(frozen=True)
class FilterOption:
    """Selectable value of a filter widget; ``label_key`` is not translated here."""

    value: str
    label_key: str


@dataclass(frozen=True)
class FilterDef:
    """Registry entry describing one filter and how it constrains rows."""

    id: str
    label_key: str
    kind: FilterKind
    options: tuple[FilterOption, ...] = ()
    get_predicate: Callable[[Any], Predicate] | None = None
    placeholder: str | None = None
    min: float | None = None
    max: float | None = None


@dataclass(frozen=True)
class FilterChip:
    """One active, individually removable filter constraint.

    ``id`` names the filter and, for multiselect chips, the specific value
    (``"categories:Floral"``). ``value`` is display text; ``raw_value`` is the
    list element a multiselect chip stands for.
    """

    id: str
    label: str
    value: str
    removable: bool = True
    filter_id: str = ""
    raw_value: str | None = None


# -----------------------------
# Predicates
# -----------------------------


def _always(_row: Ingredient) -> bool:
    return True


def _search_predicate(value: Any) -> Predicate:
    if not isinstance(value, str) or not value.strip():
        return _always
    needle = value.strip().casefold()

    def _matches(row: Ingredient) -> bool:
        return (
            needle in (row.name or "").casefold()
            or needle in (row.cas_number or "").casefold()
            or needle in (row.supplier or "").casefold()
        )

    return _matches


def _membership_predicate(attr: str) -> Callable[[Any], Predicate]:
    def _factory(value: Any) -> Predicate:
        if not isinstance(value, list) or not value:
            return _always
        allowed = set(value)
        return lambda row: getattr(row, attr) in allowed

    return _factory


def _stock_level_predicate(value: Any) -> Predicate:
    if not isinstance(value, list) or not value:
        return _always
    allowed = set(value)
    return lambda row: get_stock_level(row.stock) in allowed


def _favorites_predicate(value: Any) -> Predicate:
    if value is not True:
        return _always
    return lambda row: row.favorite is True


def coerce_range(value: Any) -> RangeFilter | None:
    if isinstance(value, RangeFilter):
        return value
    if isinstance(value, Mapping):
        return RangeFilter.from_dict(value)
    return None


def _range_predicate(attr: str) -> Callable[[Any], Predicate]:
    def _factory(value: Any) -> Predicate:
        bounds = coerce_range(value)
        if bounds is None or not bounds.is_set:
            return _always
        return lambda row: bounds.contains(getattr(row, attr))

    return _factory


def _options(values: Iterable[str]) -> tuple[FilterOption, ...]:
    return tuple(FilterOption(value=v, label_key=v) for v in values)


DEFAULT_FILTER_DEFS: Final[tuple[FilterDef, ...]] = (
    FilterDef(
        id="search",
        label_key="Search",
        kind="text",
        placeholder="Search by name, CAS number, or supplier...",
        get_predicate=_search_predicate,
    ),
    FilterDef(
        id="categories",
        label_key="Category",
        kind="multiselect",
        get_predicate=_membership_predicate("category"),
    ),
    FilterDef(
        id="statuses",
        label_key="Status",
        kind="multiselect",
        options=_options(INGREDIENT_STATUSES),
        get_predicate=_membership_predicate("status"),
    ),
    FilterDef(
        id="types",
        label_key="Type",
        kind="multiselect",
        options=_options(INGREDIENT_TYPES),
        get_predicate=_membership_predicate("type"),
    ),
    FilterDef(
        id="suppliers",
        label_key="Supplier",
        kind="multiselect",
        get_predicate=_membership_predicate("supplier"),
    ),
    FilterDef(
        id="stockLevels",
        label_key="Stock Level",
        kind="multiselect",
        options=(
            FilterOption(value="High", label_key="High (150+ kg)"),
            FilterOption(value="Medium", label_key="Medium (50-149 kg)"),
            FilterOption(value="Low", label_key="Low (1-49 kg)"),
            FilterOption(value="OutOfStock", label_key="Out of Stock"),
        ),
        get_predicate=_stock_level_predicate,
    ),
    FilterDef(
        id="favoritesOnly",
        label_key="Favorites Only",
        kind="switch",
        get_predicate=_favorites_predicate,
    ),
    FilterDef(
        id="costRange",
        label_key="Cost Range ($/kg)",
        kind="range",
        min=0,
        max=1000,
        get_predicate=_range_predicate("cost_per_kg"),
    ),
    FilterDef(
        id="stockRange",
        label_key="Stock Range (kg)",
        kind="range",
        min=0,
        max=1000,
        get_predicate=_range_predicate("stock"),
    ),
)


# -----------------------------
# Evaluation
# -----------------------------


def apply_filters(
    data: Iterable[Ingredient],
    filter_defs: Sequence[FilterDef] = DEFAULT_FILTER_DEFS,
    filters: FiltersState | None = None,
) -> list[Ingredient]:
    """Return the rows passing every filter, in input order.

    Each registered filter contributes one predicate built from the filter's
    current value; rows must satisfy all of them. Filter ids present in the
    state but absent from the registry impose nothing.
    """

    if filters is None:
        return list(data)
    predicates = [
        fdef.get_predicate(filters.get(fdef.id))
        for fdef in filter_defs
        if fdef.get_predicate is not None
    ]
    predicates = [p for p in predicates if p is not _always]
    if not predicates:
        return list(data)
    return [row for row in data if all(pred(row) for pred in predicates)]


def get_filter_options(data: Iterable[Ingredient]) -> dict[str, list[FilterOption]]:
    """Distinct, sorted categories, families and suppliers of ``data``."""

    rows = list(data)
    return {
        "categories": list(_options(sorted({row.category for row in rows}))),
        "families": list(_options(sorted({row.family for row in rows}))),
        "suppliers": list(_options(sorted({row.supplier for row in rows}))),
    }


def get_filter_defs_with_options(data: Iterable[Ingredient]) -> list[FilterDef]:
    """Default registry with category and supplier options taken from ``data``."""

    options = get_filter_options(data)
    result: list[FilterDef] = []
    for fdef in DEFAULT_FILTER_DEFS:
        if fdef.id in ("categories", "suppliers"):
            result.append(replace(fdef, options=tuple(options[fdef.id])))
        else:
            result.append(fdef)
    return result


def create_empty_filters_state() -> FiltersState:
    return FiltersState()


def clear_all_filters() -> FiltersState:
    return create_empty_filters_state()


# -----------------------------
# Active filter summaries
# -----------------------------


def _infer_kind(value: Any) -> FilterKind | None:
    if isinstance(value, bool):
        return "switch"
    if isinstance(value, str):
        return "text"
    if isinstance(value, list):
        return "multiselect"
    if coerce_range(value) is not None:
        return "range"
    return None


def _is_active(kind: FilterKind | None, value: Any) -> bool:
    if kind == "text":
        return isinstance(value, str) and bool(value.strip())
    if kind == "multiselect":
        return isinstance(value, list) and len(value) > 0
    if kind == "switch":
        return value is True
    if kind == "range":
        bounds = coerce_range(value)
        return bounds is not None and bounds.is_set
    return False


def has_active_filters(filters: FiltersState) -> bool:
    """True iff any filter in ``filters`` constrains rows."""

    return any(
        _is_active(_infer_kind(filters.get(fid)), filters.get(fid)) for fid in filters.filter_ids()
    )


def _format_bound(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_range(bounds: RangeFilter) -> str:
    """Render ``"min - max"``; an unset side is left out."""

    low = _format_bound(bounds.min) if bounds.min is not None else ""
    high = _format_bound(bounds.max) if bounds.max is not None else ""
    return f"{low} - {high}".strip()


def _chips_for(
    filter_id: str, label: str, kind: FilterKind | None, value: Any, options: Sequence[FilterOption]
) -> list[FilterChip]:
    if not _is_active(kind, value):
        return []
    if kind == "text":
        return [FilterChip(id=filter_id, label=label, value=f'"{value}"', filter_id=filter_id)]
    if kind == "switch":
        return [FilterChip(id=filter_id, label=label, value="On", filter_id=filter_id)]
    if kind == "range":
        bounds = coerce_range(value)
        assert bounds is not None
        return [
            FilterChip(id=filter_id, label=label, value=format_range(bounds), filter_id=filter_id)
        ]
    labels = {opt.value: opt.label_key for opt in options}
    return [
        FilterChip(
            id=f"{filter_id}:{item}",
            label=label,
            value=labels.get(item, str(item)),
            filter_id=filter_id,
            raw_value=item,
        )
        for item in value
    ]


def get_active_filter_chips(
    filters: FiltersState, filter_defs: Sequence[FilterDef] = DEFAULT_FILTER_DEFS
) -> list[FilterChip]:
    """One chip per active atomic value, in registry order then state order.

    Filter ids the registry does not know still produce chips; their kind is
    inferred from the value and the id doubles as the label.
    """

    chips: list[FilterChip] = []
    seen: set[str] = set()
    for fdef in filter_defs:
        seen.add(fdef.id)
        value = filters.get(fdef.id)
        # A value of the wrong shape for its registered kind is summarized by its own shape
        kind = fdef.kind if _is_active(fdef.kind, value) else _infer_kind(value)
        chips.extend(_chips_for(fdef.id, fdef.label_key, kind, value, fdef.options))
    for filter_id in filters.filter_ids():
        if filter_id in seen:
            continue
        value = filters.get(filter_id)
        chips.extend(_chips_for(filter_id, filter_id, _infer_kind(value), value, ()))
    return chips


# -----------------------------
# Filter-state edits
# -----------------------------


def remove_filter_value(
    filters: FiltersState, filter_id: str, value: str | None = None
) -> FiltersState:
    """Return a new state with one value, or one whole filter, removed.

    With ``value`` and a list-valued filter, exactly one matching element is
    dropped and the order of the rest kept. Without ``value`` the filter is
    reset to its empty form: ``""``, ``False``, ``[]`` or unset for ranges.
    Every other filter, known or not, is carried over untouched.
    """

    if filter_id not in filters.filter_ids():
        return filters.copy()
    current = filters.get(filter_id)

    if value is not None:
        if isinstance(current, list) and value in current:
            index = current.index(value)
            return filters.with_value(filter_id, current[:index] + current[index + 1 :])
        return filters.copy()

    if isinstance(current, bool):
        return filters.with_value(filter_id, False)
    if isinstance(current, str):
        return filters.with_value(filter_id, "")
    if isinstance(current, list):
        return filters.with_value(filter_id, [])
    return filters.without(filter_id)


def remove_chip(filters: FiltersState, chip: FilterChip) -> FiltersState:
    """Remove exactly the constraint ``chip`` represents."""

    return remove_filter_value(filters, chip.filter_id or chip.id, chip.raw_value)
