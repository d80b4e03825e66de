"""Typed models and helpers for the Ingredient Library engine.

This module defines the record shapes the engine reads (``Ingredient``), the
declarative filter state (``FiltersState``), the persisted ``SavedView`` and
the uniform ``OperationResult`` envelope. It also provides timestamp, id and
stock classification helpers.

Records serialize to JSON objects with camelCase keys (the catalog wire
format); Python attributes are snake_case. The intent is to keep these models
framework-agnostic and free of I/O.
"""

from __future__ import annotations

import unicodedata
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Any, Final, Generic, Literal, TypeVar

from .const import STOCK_LOW_BELOW, STOCK_MEDIUM_BELOW
from .exceptions import ValidationError

IngredientStatus = Literal["Active", "Inactive", "Limited"]
IngredientType = Literal["Natural", "Synthetic"]
StockLevel = Literal["High", "Medium", "Low", "OutOfStock"]
GroupKey = Literal["family", "supplier", "category"]

INGREDIENT_STATUSES: Final[tuple[str, ...]] = ("Active", "Inactive", "Limited")
INGREDIENT_TYPES: Final[tuple[str, ...]] = ("Natural", "Synthetic")
STOCK_LEVELS: Final[tuple[str, ...]] = ("High", "Medium", "Low", "OutOfStock")
GROUP_KEYS: Final[tuple[str, ...]] = ("family", "supplier", "category")

# Wire (camelCase) key -> Ingredient attribute
INGREDIENT_FIELDS: Final[dict[str, str]] = {
    "id": "id",
    "name": "name",
    "category": "category",
    "family": "family",
    "status": "status",
    "type": "type",
    "supplier": "supplier",
    "costPerKg": "cost_per_kg",
    "stock": "stock",
    "favorite": "favorite",
    "casNumber": "cas_number",
    "ifraLimitPct": "ifra_limit_pct",
    "allergens": "allergens",
    "updatedAt": "updated_at",
    "parentId": "parent_id",
}

T = TypeVar("T")


# -----------------------------
# Utility helpers
# -----------------------------


def iso_utc_now() -> str:
    """Return ISO-8601 UTC timestamp string with 'Z'."""

    now = datetime.now(tz=UTC)
    # No microseconds to keep it compact and stable
    return now.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _parse_iso8601_utc(ts: str, *, field_name: str) -> datetime:
    """Parse a UTC ISO-8601 with trailing 'Z' into datetime.

    Raises ValidationError on bad format.
    """

    try:
        if not isinstance(ts, str) or not ts.endswith("Z"):
            raise ValueError
        return datetime.strptime(ts, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=UTC)
    except ValueError as exc:
        raise ValidationError(f"{field_name} must be an ISO-8601 UTC timestamp with 'Z'") from exc


def monotonic_timestamp_after(previous_ts: str) -> str:
    """Return a UTC ISO-8601 'Z' timestamp strictly after previous_ts.

    If iso_utc_now() is not greater than the previous timestamp (due to second
    resolution), bump by one second to maintain monotonicity.
    """

    now_dt = datetime.now(tz=UTC).replace(microsecond=0)
    try:
        prev_dt = _parse_iso8601_utc(previous_ts, field_name="previous_ts")
    except ValidationError:
        prev_dt = now_dt - timedelta(seconds=1)
    if now_dt <= prev_dt:
        now_dt = prev_dt + timedelta(seconds=1)
    return now_dt.isoformat().replace("+00:00", "Z")


def new_uuid4_str() -> str:
    """Generate a hyphenated UUID v4 string."""

    return str(uuid.uuid4())


def normalize_text_for_sort(text: str) -> str:
    """Return a case-insensitive, accent-folded string for lexicographic sorting."""

    if not text:
        return ""
    nfkd = unicodedata.normalize("NFKD", text)
    ascii_text = nfkd.encode("ascii", "ignore").decode("ascii")
    collapsed = " ".join(ascii_text.split())
    return collapsed.casefold()


def get_stock_level(stock: float) -> StockLevel:
    """Classify a stock quantity into its bucket."""

    if stock == 0:
        return "OutOfStock"
    if stock < STOCK_LOW_BELOW:
        return "Low"
    if stock < STOCK_MEDIUM_BELOW:
        return "Medium"
    return "High"


# -----------------------------
# Ingredient
# -----------------------------


@dataclass
class Ingredient:
    """Catalog record as delivered by a data source."""

    id: str
    name: str
    category: str
    family: str
    status: IngredientStatus
    type: IngredientType
    supplier: str
    cost_per_kg: float
    stock: float
    favorite: bool = False
    updated_at: str = field(default_factory=iso_utc_now)
    cas_number: str | None = None
    ifra_limit_pct: float | None = None
    allergens: list[str] | None = None
    parent_id: str | None = None
    sub_rows: list[Ingredient] | None = None

    @property
    def stock_level(self) -> StockLevel:
        return get_stock_level(self.stock)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for wire_key, attr in INGREDIENT_FIELDS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            data[wire_key] = list(value) if isinstance(value, list) else value
        if self.sub_rows is not None:
            data["subRows"] = [child.to_dict() for child in self.sub_rows]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Ingredient:
        """Build an Ingredient from a camelCase payload.

        The payload is expected to have passed ``schemas.validate_ingredient``;
        missing required keys raise ValidationError.
        """

        try:
            sub_rows_raw = data.get("subRows")
            return cls(
                id=str(data["id"]),
                name=str(data["name"]),
                category=str(data["category"]),
                family=str(data["family"]),
                status=data["status"],
                type=data["type"],
                supplier=str(data["supplier"]),
                cost_per_kg=data["costPerKg"],
                stock=data["stock"],
                favorite=bool(data.get("favorite", False)),
                updated_at=str(data.get("updatedAt") or iso_utc_now()),
                cas_number=data.get("casNumber"),
                ifra_limit_pct=data.get("ifraLimitPct"),
                allergens=list(data["allergens"]) if data.get("allergens") is not None else None,
                parent_id=data.get("parentId"),
                sub_rows=(
                    [cls.from_dict(child) for child in sub_rows_raw]
                    if sub_rows_raw is not None
                    else None
                ),
            )
        except KeyError as exc:
            raise ValidationError(f"ingredient payload is missing {exc.args[0]}") from exc


def ingredient_value(ingredient: Ingredient, key: str) -> Any:
    """Read a column value by wire key (e.g. ``costPerKg``) or attribute name."""

    if key == "stockLevel":
        return ingredient.stock_level
    attr = INGREDIENT_FIELDS.get(key, key)
    return getattr(ingredient, attr, None)


# -----------------------------
# Filters
# -----------------------------


@dataclass(frozen=True)
class RangeFilter:
    """Inclusive numeric range; a missing bound imposes nothing on that side."""

    min: float | None = None
    max: float | None = None

    @property
    def is_set(self) -> bool:
        return self.min is not None or self.max is not None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True

    def to_dict(self) -> dict[str, float]:
        data: dict[str, float] = {}
        if self.min is not None:
            data["min"] = self.min
        if self.max is not None:
            data["max"] = self.max
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RangeFilter:
        return cls(min=data.get("min"), max=data.get("max"))


# Filter id -> FiltersState attribute for the typed core
CORE_FILTER_FIELDS: Final[dict[str, str]] = {
    "search": "search",
    "categories": "categories",
    "statuses": "statuses",
    "types": "types",
    "suppliers": "suppliers",
    "stockLevels": "stock_levels",
    "favoritesOnly": "favorites_only",
}


def _looks_like_range(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and set(value) <= {"min", "max"}


@dataclass
class FiltersState:
    """Declarative filter state.

    The typed core covers the built-in dimensions. Additional keyed filters
    (``costRange``, ``stockRange`` or anything a caller registers) live in the
    ordered ``extensions`` map and are reached through ``get``/``with_value``/
    ``without`` rather than attribute access.
    """

    search: str = ""
    categories: list[str] = field(default_factory=list)
    statuses: list[str] = field(default_factory=list)
    types: list[str] = field(default_factory=list)
    suppliers: list[str] = field(default_factory=list)
    stock_levels: list[str] = field(default_factory=list)
    favorites_only: bool = False
    extensions: dict[str, Any] = field(default_factory=dict)

    def filter_ids(self) -> list[str]:
        return [*CORE_FILTER_FIELDS, *self.extensions]

    def get(self, filter_id: str, default: Any = None) -> Any:
        attr = CORE_FILTER_FIELDS.get(filter_id)
        if attr is not None:
            return getattr(self, attr)
        return self.extensions.get(filter_id, default)

    def with_value(self, filter_id: str, value: Any) -> FiltersState:
        """Return a copy with ``filter_id`` set to ``value``."""

        attr = CORE_FILTER_FIELDS.get(filter_id)
        if attr is not None:
            if isinstance(value, list | tuple):
                value = list(value)
            return replace(self.copy(), **{attr: value})
        new_state = self.copy()
        if value is None:
            new_state.extensions.pop(filter_id, None)
        else:
            if _looks_like_range(value):
                value = RangeFilter.from_dict(value)
            new_state.extensions[filter_id] = value
        return new_state

    def without(self, filter_id: str) -> FiltersState:
        """Return a copy with ``filter_id`` reset to its empty representation."""

        attr = CORE_FILTER_FIELDS.get(filter_id)
        if attr is not None:
            return replace(self.copy(), **{attr: getattr(FiltersState(), attr)})
        new_state = self.copy()
        new_state.extensions.pop(filter_id, None)
        return new_state

    def copy(self) -> FiltersState:
        return FiltersState(
            search=self.search,
            categories=list(self.categories),
            statuses=list(self.statuses),
            types=list(self.types),
            suppliers=list(self.suppliers),
            stock_levels=list(self.stock_levels),
            favorites_only=self.favorites_only,
            extensions={
                k: (list(v) if isinstance(v, list) else v) for k, v in self.extensions.items()
            },
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for filter_id, attr in CORE_FILTER_FIELDS.items():
            value = getattr(self, attr)
            data[filter_id] = list(value) if isinstance(value, list) else value
        for filter_id, value in self.extensions.items():
            if isinstance(value, RangeFilter):
                data[filter_id] = value.to_dict()
            elif isinstance(value, list):
                data[filter_id] = list(value)
            else:
                data[filter_id] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> FiltersState:
        state = cls()
        if not data:
            return state
        for filter_id, value in data.items():
            if value is None:
                continue
            state = state.with_value(filter_id, value)
        return state


# -----------------------------
# Columns, sorting and saved views
# -----------------------------


@dataclass(frozen=True)
class SortSpec:
    """One sort key; ``id`` is a column wire key."""

    id: str
    desc: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "desc": self.desc}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SortSpec:
        return cls(id=str(data["id"]), desc=bool(data.get("desc", False)))


@dataclass(frozen=True)
class Pagination:
    page_index: int = 0
    page_size: int = 25

    def to_dict(self) -> dict[str, int]:
        return {"pageIndex": self.page_index, "pageSize": self.page_size}


@dataclass
class ColumnConfig:
    """Visibility, position and width of one table column."""

    key: str
    visible: bool
    order: int
    width: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"key": self.key, "visible": self.visible, "order": self.order}
        if self.width is not None:
            data["width"] = self.width
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ColumnConfig:
        return cls(
            key=str(data["key"]),
            visible=bool(data["visible"]),
            order=int(data["order"]),
            width=data.get("width"),
        )


@dataclass
class ViewDraft:
    """Saved-view content before the store assigns an id and timestamps."""

    name: str
    query: str = ""
    filters: FiltersState = field(default_factory=FiltersState)
    columns: list[ColumnConfig] = field(default_factory=list)
    group_by: str | None = None
    sort_by: SortSpec | None = None
    is_default: bool = False


@dataclass
class SavedView:
    """Persisted snapshot of query, filter, column, grouping and sort state."""

    id: str
    name: str
    query: str
    filters: FiltersState
    columns: list[ColumnConfig]
    created_at: str
    updated_at: str
    group_by: str | None = None
    sort_by: SortSpec | None = None
    is_default: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "query": self.query,
            "filters": self.filters.to_dict(),
            "columns": [col.to_dict() for col in self.columns],
            "groupBy": self.group_by,
            "sortBy": self.sort_by.to_dict() if self.sort_by is not None else None,
            "isDefault": self.is_default,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SavedView:
        sort_raw = data.get("sortBy")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            query=str(data.get("query", "")),
            filters=FiltersState.from_dict(data.get("filters")),
            columns=[ColumnConfig.from_dict(col) for col in data.get("columns") or []],
            group_by=data.get("groupBy"),
            sort_by=SortSpec.from_dict(sort_raw) if sort_raw else None,
            is_default=bool(data.get("isDefault", False)),
            created_at=str(data["createdAt"]),
            updated_at=str(data["updatedAt"]),
        )


# -----------------------------
# Result envelope
# -----------------------------


@dataclass
class OperationResult(Generic[T]):
    """Uniform ``{success, data?, error?, total?}`` envelope."""

    success: bool
    data: T | None = None
    error: str | None = None
    total: int | None = None

    @classmethod
    def ok(cls, data: T | None = None, *, total: int | None = None) -> OperationResult[T]:
        return cls(success=True, data=data, total=total)

    @classmethod
    def fail(cls, error: str) -> OperationResult[T]:
        return cls(success=False, error=error)
