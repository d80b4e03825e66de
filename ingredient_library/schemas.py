"""Validation schemas for untyped payloads.

Payloads arriving from a data source, from persisted storage or from callers
are plain JSON-like dicts. The voluptuous schemas below describe their shape;
``validate`` runs a schema and returns a tagged ``ValidationResult`` that
enumerates every violated constraint instead of stopping at the first one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import voluptuous as vol

from .const import DEFAULT_PAGE_SIZE
from .exceptions import ValidationError
from .models import GROUP_KEYS, INGREDIENT_STATUSES, INGREDIENT_TYPES, STOCK_LEVELS


@dataclass
class ValidationResult:
    """Outcome of validating one payload."""

    ok: bool
    value: Any = None
    errors: list[str] = field(default_factory=list)

    def unwrap(self) -> Any:
        """Return the validated value or raise ValidationError with all errors."""

        if not self.ok:
            raise ValidationError("; ".join(self.errors), self.errors)
        return self.value


# -----------------------------
# Reusable validators
# -----------------------------


def _number(value: Any) -> int | float:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise vol.Invalid("expected a number")
    return value


NON_NEGATIVE = vol.All(_number, vol.Range(min=0, msg="must be >= 0"))
PERCENT = vol.All(_number, vol.Range(min=0, max=100, msg="must be between 0 and 100"))
NON_EMPTY_STR = vol.All(str, vol.Length(min=1, msg="must be a non-empty string"))


def _ingredient_fields(*, for_create: bool, for_patch: bool) -> dict[Any, Any]:
    def key(name: str, *, identity: bool = False) -> vol.Marker:
        if for_patch or (identity and for_create):
            return vol.Optional(name)
        return vol.Required(name)

    return {
        key("id", identity=True): NON_EMPTY_STR,
        key("name"): NON_EMPTY_STR,
        key("category"): NON_EMPTY_STR,
        key("family"): NON_EMPTY_STR,
        key("status"): vol.In(INGREDIENT_STATUSES),
        key("type"): vol.In(INGREDIENT_TYPES),
        key("supplier"): NON_EMPTY_STR,
        key("costPerKg"): NON_NEGATIVE,
        key("stock"): NON_NEGATIVE,
        key("favorite"): bool,
        key("updatedAt", identity=True): NON_EMPTY_STR,
        vol.Optional("casNumber"): vol.Any(None, str),
        vol.Optional("ifraLimitPct"): vol.Any(None, PERCENT),
        vol.Optional("allergens"): vol.Any(None, [str]),
        vol.Optional("parentId"): vol.Any(None, str),
        vol.Optional("subRows"): vol.Any(None, list),
    }


SCHEMA_INGREDIENT = vol.Schema(
    _ingredient_fields(for_create=False, for_patch=False), extra=vol.ALLOW_EXTRA
)

SCHEMA_INGREDIENT_CREATE = vol.Schema(
    _ingredient_fields(for_create=True, for_patch=False), extra=vol.ALLOW_EXTRA
)

SCHEMA_INGREDIENT_PATCH = vol.Schema(
    _ingredient_fields(for_create=False, for_patch=True), extra=vol.ALLOW_EXTRA
)

SCHEMA_RANGE = vol.Schema(
    {
        vol.Optional("min"): vol.Any(None, _number),
        vol.Optional("max"): vol.Any(None, _number),
    }
)

SCHEMA_FILTERS = vol.Schema(
    {
        vol.Optional("search"): str,
        vol.Optional("categories"): [str],
        vol.Optional("statuses"): [vol.In(INGREDIENT_STATUSES)],
        vol.Optional("types"): [vol.In(INGREDIENT_TYPES)],
        vol.Optional("suppliers"): [str],
        vol.Optional("stockLevels"): [vol.In(STOCK_LEVELS)],
        vol.Optional("favoritesOnly"): bool,
        vol.Optional("costRange"): vol.Any(None, SCHEMA_RANGE),
        vol.Optional("stockRange"): vol.Any(None, SCHEMA_RANGE),
    },
    extra=vol.ALLOW_EXTRA,
)

SCHEMA_COLUMN = vol.Schema(
    {
        vol.Required("key"): NON_EMPTY_STR,
        vol.Required("visible"): bool,
        vol.Required("order"): int,
        vol.Optional("width"): vol.Any(None, int),
    }
)

SCHEMA_SORT = vol.Schema({vol.Required("id"): NON_EMPTY_STR, vol.Optional("desc"): bool})

SCHEMA_PAGINATION = vol.Schema(
    {
        vol.Required("pageIndex"): vol.All(int, vol.Range(min=0)),
        vol.Required("pageSize"): vol.All(int, vol.Range(min=1)),
    }
)

# Missing sections are filled with defaults so older snapshots still load
SCHEMA_USER_PREFERENCES = vol.Schema(
    {
        vol.Optional("columnVisibility", default=dict): {str: bool},
        vol.Optional("sorting", default=list): [SCHEMA_SORT],
        vol.Optional(
            "pagination", default=lambda: {"pageIndex": 0, "pageSize": DEFAULT_PAGE_SIZE}
        ): SCHEMA_PAGINATION,
        vol.Optional("rowSelection", default=dict): {str: bool},
        vol.Optional("globalFilter", default=""): str,
        vol.Optional("grouping", default=list): vol.All(
            [vol.In(GROUP_KEYS)], vol.Length(max=1, msg="at most one grouping key")
        ),
        vol.Optional("expandedRows", default=dict): {str: bool},
        vol.Optional("lastUpdated"): vol.Any(None, str),
        vol.Optional("version"): vol.Any(None, str),
    },
    extra=vol.ALLOW_EXTRA,
)

SCHEMA_SAVED_VIEW = vol.Schema(
    {
        vol.Required("id"): NON_EMPTY_STR,
        vol.Required("name"): str,
        vol.Optional("query", default=""): str,
        vol.Required("filters"): SCHEMA_FILTERS,
        vol.Required("columns"): [SCHEMA_COLUMN],
        vol.Optional("groupBy"): vol.Any(None, vol.In(GROUP_KEYS)),
        vol.Optional("sortBy"): vol.Any(None, SCHEMA_SORT),
        vol.Optional("isDefault"): bool,
        vol.Required("createdAt"): NON_EMPTY_STR,
        vol.Required("updatedAt"): NON_EMPTY_STR,
    },
    extra=vol.ALLOW_EXTRA,
)


# -----------------------------
# Entry points
# -----------------------------


def _format_invalid(err: vol.Invalid) -> str:
    path = ".".join(str(p) for p in err.path)
    return f"{path}: {err.msg}" if path else str(err.msg)


def validate(schema: vol.Schema, payload: Any) -> ValidationResult:
    """Run ``schema`` over ``payload`` collecting every violation."""

    try:
        value = schema(payload)
    except vol.MultipleInvalid as exc:
        return ValidationResult(ok=False, errors=[_format_invalid(e) for e in exc.errors])
    except vol.Invalid as exc:
        return ValidationResult(ok=False, errors=[_format_invalid(exc)])
    return ValidationResult(ok=True, value=value)


def validate_ingredient(payload: Any) -> ValidationResult:
    """Validate a full ingredient record, including materialized subRows."""

    result = validate(SCHEMA_INGREDIENT, payload)
    if not result.ok:
        return result
    errors: list[str] = []
    for index, child in enumerate(payload.get("subRows") or []):
        child_result = validate_ingredient(child)
        errors.extend(f"subRows.{index}.{err}" for err in child_result.errors)
    if errors:
        return ValidationResult(ok=False, errors=errors)
    return result


def validate_saved_view(payload: Any) -> ValidationResult:
    return validate(SCHEMA_SAVED_VIEW, payload)


def validate_filters(payload: Any) -> ValidationResult:
    return validate(SCHEMA_FILTERS, payload)


def validate_user_preferences(payload: Any) -> ValidationResult:
    return validate(SCHEMA_USER_PREFERENCES, payload)
