"""Data-source contract and the in-memory implementation.

A data source owns the ingredient records. The table controller only reads
from it (``async_list``) and forwards a few row actions; every method returns
an ``OperationResult`` so transport and domain failures surface as values.

``InMemoryDataSource`` keeps records in a list, validates writes with the
ingredient schemas and reuses the filter engine and selectors for listing and
export. It is used by tests and as the default source when no API is
configured.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Final, Literal, TypeVar

from .const import DOMAIN
from .exceptions import IngredientLibraryError, NotFoundError, ValidationError
from .filters import DEFAULT_FILTER_DEFS, apply_filters
from .models import (
    INGREDIENT_STATUSES,
    INGREDIENT_TYPES,
    FiltersState,
    Ingredient,
    OperationResult,
    Pagination,
    SortSpec,
    iso_utc_now,
    monotonic_timestamp_after,
    new_uuid4_str,
)
from .schemas import (
    SCHEMA_INGREDIENT_CREATE,
    SCHEMA_INGREDIENT_PATCH,
    validate,
    validate_ingredient,
)
from .selectors import DEFAULT_EXPORT_COLUMNS, export_to_csv, export_to_json, paginate, sort_rows

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

ExportFormat = Literal["csv", "json"]

# Fields a patch may never overwrite
IMMUTABLE_FIELDS: Final[frozenset[str]] = frozenset({"id", "updatedAt"})


@dataclass
class ListOptions:
    filters: FiltersState | None = None
    sort_by: list[SortSpec] = field(default_factory=list)
    pagination: Pagination | None = None


@dataclass
class ExportOptions:
    format: ExportFormat = "csv"
    include_columns: list[str] = field(default_factory=lambda: list(DEFAULT_EXPORT_COLUMNS))


def not_found_message(ingredient_id: str) -> str:
    return f"Ingredient with ID {ingredient_id} not found"


class DataSource(ABC):
    """Asynchronous access to the ingredient catalog."""

    @abstractmethod
    async def async_list(
        self, options: ListOptions | None = None
    ) -> OperationResult[list[Ingredient]]:
        """List ingredients; ``total`` counts matches before pagination."""

    @abstractmethod
    async def async_get(self, ingredient_id: str) -> OperationResult[Ingredient]:
        """Fetch one ingredient."""

    @abstractmethod
    async def async_create(self, payload: Mapping[str, Any]) -> OperationResult[Ingredient]:
        """Create an ingredient from a camelCase payload without id/updatedAt."""

    @abstractmethod
    async def async_update(
        self, ingredient_id: str, patch: Mapping[str, Any]
    ) -> OperationResult[Ingredient]:
        """Apply a partial camelCase patch."""

    @abstractmethod
    async def async_delete(self, ingredient_id: str) -> OperationResult[None]:
        """Remove an ingredient."""

    @abstractmethod
    async def async_toggle_favorite(self, ingredient_id: str) -> OperationResult[Ingredient]:
        """Flip the favorite flag."""

    @abstractmethod
    async def async_duplicate(self, ingredient_id: str) -> OperationResult[Ingredient]:
        """Create a copy of an ingredient."""

    @abstractmethod
    async def async_archive(self, ingredient_id: str) -> OperationResult[Ingredient]:
        """Soft-delete an ingredient by marking it Inactive."""

    @abstractmethod
    async def async_bulk_export(
        self, ingredient_ids: Iterable[str], options: ExportOptions
    ) -> OperationResult[str]:
        """Render the given ingredients as CSV or JSON text."""

    @abstractmethod
    async def async_get_filter_options(self) -> OperationResult[dict[str, list[str]]]:
        """Distinct categories, families and suppliers plus statuses and types."""


async def guard_operation(
    op: str, action: Callable[[], Awaitable[T]], **context: Any
) -> OperationResult[T]:
    """Run ``action`` and map domain errors to a failed result."""

    try:
        return await action()
    except IngredientLibraryError as exc:
        LOGGER.warning(
            "Data source operation failed: %s",
            exc,
            extra={"domain": DOMAIN, "op": op, **context},
        )
        return OperationResult.fail(str(exc))


class InMemoryDataSource(DataSource):
    """List-backed data source.

    ``latency`` adds an ``asyncio.sleep`` before every operation, which lets
    tests interleave completions the way a remote source would.
    """

    def __init__(
        self,
        seed: Iterable[Ingredient | Mapping[str, Any]] = (),
        *,
        latency: float = 0.0,
    ) -> None:
        self._ingredients: list[Ingredient] = [self._coerce_seed(entry) for entry in seed]
        self._latency = latency

    @staticmethod
    def _coerce_seed(entry: Ingredient | Mapping[str, Any]) -> Ingredient:
        if isinstance(entry, Ingredient):
            return entry
        return Ingredient.from_dict(validate_ingredient(entry).unwrap())

    async def _simulate_latency(self) -> None:
        if self._latency > 0:
            await asyncio.sleep(self._latency)

    def _index_of(self, ingredient_id: str) -> int:
        for index, ingredient in enumerate(self._ingredients):
            if ingredient.id == ingredient_id:
                return index
        raise NotFoundError(not_found_message(ingredient_id))

    def _apply_patch(self, index: int, patch: Mapping[str, Any]) -> Ingredient:
        current = self._ingredients[index]
        merged = current.to_dict()
        merged.update({k: v for k, v in patch.items() if k not in IMMUTABLE_FIELDS})
        merged["updatedAt"] = monotonic_timestamp_after(current.updated_at)
        updated = Ingredient.from_dict(validate_ingredient(merged).unwrap())
        self._ingredients[index] = updated
        return updated

    # -----------------------------
    # Reads
    # -----------------------------

    async def async_list(
        self, options: ListOptions | None = None
    ) -> OperationResult[list[Ingredient]]:
        await self._simulate_latency()
        opts = options or ListOptions()
        rows = apply_filters(self._ingredients, DEFAULT_FILTER_DEFS, opts.filters)
        total = len(rows)
        if opts.sort_by:
            rows = sort_rows(rows, opts.sort_by)
        if opts.pagination is not None:
            rows = paginate(rows, opts.pagination.page_index, opts.pagination.page_size)
        return OperationResult.ok(rows, total=total)

    async def async_get(self, ingredient_id: str) -> OperationResult[Ingredient]:
        async def _get() -> OperationResult[Ingredient]:
            await self._simulate_latency()
            return OperationResult.ok(self._ingredients[self._index_of(ingredient_id)])

        return await guard_operation("get", _get, ingredient_id=ingredient_id)

    async def async_get_filter_options(self) -> OperationResult[dict[str, list[str]]]:
        await self._simulate_latency()
        return OperationResult.ok(
            {
                "categories": sorted({ing.category for ing in self._ingredients}),
                "families": sorted({ing.family for ing in self._ingredients}),
                "suppliers": sorted({ing.supplier for ing in self._ingredients}),
                "statuses": list(INGREDIENT_STATUSES),
                "types": list(INGREDIENT_TYPES),
            }
        )

    async def async_bulk_export(
        self, ingredient_ids: Iterable[str], options: ExportOptions
    ) -> OperationResult[str]:
        async def _export() -> OperationResult[str]:
            await self._simulate_latency()
            wanted = set(ingredient_ids)
            rows = [ing for ing in self._ingredients if ing.id in wanted]
            if options.format == "csv":
                content = export_to_csv(rows, options.include_columns)
            elif options.format == "json":
                content = export_to_json(rows)
            else:
                raise ValidationError(f"unsupported export format: {options.format}")
            return OperationResult.ok(content)

        return await guard_operation("bulk_export", _export)

    # -----------------------------
    # Writes
    # -----------------------------

    async def async_create(self, payload: Mapping[str, Any]) -> OperationResult[Ingredient]:
        async def _create() -> OperationResult[Ingredient]:
            await self._simulate_latency()
            validate(SCHEMA_INGREDIENT_CREATE, dict(payload)).unwrap()
            record = dict(payload)
            record["id"] = new_uuid4_str()
            record["updatedAt"] = iso_utc_now()
            created = Ingredient.from_dict(validate_ingredient(record).unwrap())
            self._ingredients.append(created)
            LOGGER.debug(
                "Ingredient created",
                extra={"domain": DOMAIN, "op": "create", "ingredient_id": created.id},
            )
            return OperationResult.ok(created)

        return await guard_operation("create", _create)

    async def async_update(
        self, ingredient_id: str, patch: Mapping[str, Any]
    ) -> OperationResult[Ingredient]:
        async def _update() -> OperationResult[Ingredient]:
            await self._simulate_latency()
            validate(SCHEMA_INGREDIENT_PATCH, dict(patch)).unwrap()
            updated = self._apply_patch(self._index_of(ingredient_id), patch)
            LOGGER.debug(
                "Ingredient updated",
                extra={"domain": DOMAIN, "op": "update", "ingredient_id": ingredient_id},
            )
            return OperationResult.ok(updated)

        return await guard_operation("update", _update, ingredient_id=ingredient_id)

    async def async_delete(self, ingredient_id: str) -> OperationResult[None]:
        async def _delete() -> OperationResult[None]:
            await self._simulate_latency()
            del self._ingredients[self._index_of(ingredient_id)]
            LOGGER.debug(
                "Ingredient deleted",
                extra={"domain": DOMAIN, "op": "delete", "ingredient_id": ingredient_id},
            )
            return OperationResult.ok(None)

        return await guard_operation("delete", _delete, ingredient_id=ingredient_id)

    async def async_toggle_favorite(self, ingredient_id: str) -> OperationResult[Ingredient]:
        async def _toggle() -> OperationResult[Ingredient]:
            await self._simulate_latency()
            index = self._index_of(ingredient_id)
            return OperationResult.ok(
                self._apply_patch(index, {"favorite": not self._ingredients[index].favorite})
            )

        return await guard_operation("toggle_favorite", _toggle, ingredient_id=ingredient_id)

    async def async_duplicate(self, ingredient_id: str) -> OperationResult[Ingredient]:
        async def _duplicate() -> OperationResult[Ingredient]:
            await self._simulate_latency()
            original = self._ingredients[self._index_of(ingredient_id)]
            copy = replace(
                original,
                id=new_uuid4_str(),
                name=f"{original.name} (Copy)",
                updated_at=iso_utc_now(),
                sub_rows=None,
            )
            self._ingredients.append(copy)
            return OperationResult.ok(copy)

        return await guard_operation("duplicate", _duplicate, ingredient_id=ingredient_id)

    async def async_archive(self, ingredient_id: str) -> OperationResult[Ingredient]:
        async def _archive() -> OperationResult[Ingredient]:
            await self._simulate_latency()
            return OperationResult.ok(
                self._apply_patch(self._index_of(ingredient_id), {"status": "Inactive"})
            )

        return await guard_operation("archive", _archive, ingredient_id=ingredient_id)
