"""Saved-view persistence.

``ViewStore`` keeps named snapshots of table configuration in an injected
``KeyValueStore`` under three keys: the JSON list of views, the default-view
id and the last-used-view id. The two id references are loose pointers: their
integrity is maintained procedurally (``async_delete_view`` clears them) and a
dangling default reference is healed on read.

Every public coroutine returns an ``OperationResult``. Domain failures are
raised internally as ``NotFoundError``/``StorageError`` and translated at the
method boundary, so callers never need a try/except.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any, Final, TypeVar

from .const import DEFAULT_VIEW_KEY, DOMAIN, LAST_USED_VIEW_KEY, VIEWS_KEY
from .exceptions import NotFoundError, StorageError
from .models import (
    ColumnConfig,
    FiltersState,
    OperationResult,
    SavedView,
    SortSpec,
    ViewDraft,
    iso_utc_now,
    monotonic_timestamp_after,
    new_uuid4_str,
)
from .schemas import validate_saved_view
from .storage import KeyValueStore

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

VIEW_NOT_FOUND: Final[str] = "View not found"

DEFAULT_COLUMNS: Final[tuple[ColumnConfig, ...]] = (
    ColumnConfig(key="select", visible=True, order=0, width=40),
    ColumnConfig(key="favorite", visible=True, order=1, width=80),
    ColumnConfig(key="name", visible=True, order=2, width=200),
    ColumnConfig(key="category", visible=True, order=3, width=150),
    ColumnConfig(key="family", visible=True, order=4, width=120),
    ColumnConfig(key="status", visible=True, order=5, width=100),
    ColumnConfig(key="type", visible=True, order=6, width=100),
    ColumnConfig(key="supplier", visible=True, order=7, width=120),
    ColumnConfig(key="costPerKg", visible=True, order=8, width=100),
    ColumnConfig(key="stock", visible=True, order=9, width=100),
    ColumnConfig(key="casNumber", visible=False, order=10, width=120),
    ColumnConfig(key="ifraLimitPct", visible=False, order=11, width=120),
    ColumnConfig(key="allergens", visible=False, order=12, width=150),
    ColumnConfig(key="updatedAt", visible=False, order=13, width=120),
    ColumnConfig(key="actions", visible=True, order=14, width=60),
)


def default_columns() -> list[ColumnConfig]:
    """Fresh, independently mutable copy of ``DEFAULT_COLUMNS``."""

    return [replace(col) for col in DEFAULT_COLUMNS]


def create_default_view() -> ViewDraft:
    return ViewDraft(
        name="Default View",
        query="",
        filters=FiltersState(),
        columns=default_columns(),
        group_by=None,
        sort_by=None,
        is_default=True,
    )


@dataclass
class LiveViewState:
    """The parts of live table state a saved view snapshots."""

    query: str = ""
    filters: FiltersState = field(default_factory=FiltersState)
    columns: list[ColumnConfig] = field(default_factory=default_columns)
    group_by: str | None = None
    sort_by: list[SortSpec] = field(default_factory=list)


def is_view_modified(live: LiveViewState, saved: SavedView) -> bool:
    """True iff live state drifted from ``saved`` in query, filters, columns, grouping or sort.

    Comparison is structural; lists compare order-sensitively. A saved view
    holds at most one sort key, so it is compared as a one-element list.
    """

    saved_sort = [saved.sort_by] if saved.sort_by is not None else []
    return (
        live.query != saved.query
        or live.filters.to_dict() != saved.filters.to_dict()
        or [c.to_dict() for c in live.columns] != [c.to_dict() for c in saved.columns]
        or (live.group_by or None) != (saved.group_by or None)
        or list(live.sort_by) != saved_sort
    )


class ViewStore:
    """CRUD over saved views plus the default and last-used references."""

    def __init__(
        self,
        kv_store: KeyValueStore,
        *,
        views_key: str = VIEWS_KEY,
        default_view_key: str = DEFAULT_VIEW_KEY,
        last_used_view_key: str = LAST_USED_VIEW_KEY,
    ) -> None:
        self._kv = kv_store
        self._views_key = views_key
        self._default_view_key = default_view_key
        self._last_used_view_key = last_used_view_key

    # -----------------------------
    # Internal helpers: raw access
    # -----------------------------

    async def _kv_get(self, key: str) -> str | None:
        try:
            return await self._kv.async_get(key)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"failed to read {key}: {exc}") from exc

    async def _kv_set(self, key: str, value: str) -> None:
        try:
            await self._kv.async_set(key, value)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"failed to write {key}: {exc}") from exc

    async def _kv_remove(self, key: str) -> None:
        try:
            await self._kv.async_remove(key)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"failed to remove {key}: {exc}") from exc

    async def _read_views(self) -> list[SavedView]:
        raw = await self._kv_get(self._views_key)
        if raw is None:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError("stored views are corrupted: invalid JSON") from exc
        if not isinstance(payload, list):
            raise StorageError("stored views are corrupted: expected a list")

        views: list[SavedView] = []
        for index, entry in enumerate(payload):
            result = validate_saved_view(entry)
            if not result.ok:
                raise StorageError(
                    f"stored view #{index} is corrupted: {'; '.join(result.errors)}"
                )
            views.append(SavedView.from_dict(result.value))
        return views

    async def _write_views(self, views: list[SavedView]) -> None:
        await self._kv_set(self._views_key, json.dumps([v.to_dict() for v in views]))

    async def _run(
        self, op: str, action: Callable[[], Awaitable[T]], **context: Any
    ) -> OperationResult[T]:
        try:
            data = await action()
        except NotFoundError as exc:
            LOGGER.warning(str(exc), extra={"domain": DOMAIN, "op": op, **context})
            return OperationResult.fail(str(exc))
        except StorageError as exc:
            LOGGER.error(
                "View storage operation failed",
                extra={"domain": DOMAIN, "op": op, **context},
                exc_info=True,
            )
            return OperationResult.fail(str(exc))
        return OperationResult.ok(data)

    # -----------------------------
    # Public API: views
    # -----------------------------

    async def async_list_views(self) -> OperationResult[list[SavedView]]:
        return await self._run("list_views", self._read_views)

    async def async_create_view(self, draft: ViewDraft) -> OperationResult[SavedView]:
        async def _create() -> SavedView:
            views = await self._read_views()
            existing_ids = {v.id for v in views}
            view_id = new_uuid4_str()
            while view_id in existing_ids:  # pragma: no cover - uuid4 collision
                view_id = new_uuid4_str()
            now = iso_utc_now()
            view = SavedView(
                id=view_id,
                name=draft.name,
                query=draft.query,
                filters=draft.filters.copy(),
                columns=[replace(col) for col in draft.columns],
                group_by=draft.group_by,
                sort_by=draft.sort_by,
                is_default=draft.is_default,
                created_at=now,
                updated_at=now,
            )
            views.append(view)
            await self._write_views(views)
            LOGGER.debug(
                "View created",
                extra={"domain": DOMAIN, "op": "create_view", "view_id": view.id},
            )
            return view

        return await self._run("create_view", _create, name=draft.name)

    async def async_update_view(self, view: SavedView) -> OperationResult[SavedView]:
        async def _update() -> SavedView:
            views = await self._read_views()
            index = next((i for i, v in enumerate(views) if v.id == view.id), None)
            if index is None:
                raise NotFoundError(VIEW_NOT_FOUND)
            current = views[index]
            updated = replace(
                view,
                filters=view.filters.copy(),
                columns=[replace(col) for col in view.columns],
                created_at=current.created_at,
                updated_at=monotonic_timestamp_after(current.updated_at),
            )
            views[index] = updated
            await self._write_views(views)
            LOGGER.debug(
                "View updated",
                extra={"domain": DOMAIN, "op": "update_view", "view_id": view.id},
            )
            return updated

        return await self._run("update_view", _update, view_id=view.id)

    async def async_rename_view(self, view_id: str, name: str) -> OperationResult[SavedView]:
        listed = await self.async_list_views()
        if not listed.success:
            return OperationResult.fail(listed.error or "Failed to list views")
        current = next((v for v in listed.data or [] if v.id == view_id), None)
        if current is None:
            return OperationResult.fail(VIEW_NOT_FOUND)
        return await self.async_update_view(replace(current, name=name))

    async def async_delete_view(self, view_id: str) -> OperationResult[None]:
        async def _delete() -> None:
            views = await self._read_views()
            remaining = [v for v in views if v.id != view_id]
            if len(remaining) == len(views):
                raise NotFoundError(VIEW_NOT_FOUND)
            await self._write_views(remaining)

            # Clear references to the deleted view
            if await self._kv_get(self._default_view_key) == view_id:
                await self._kv_remove(self._default_view_key)
            if await self._kv_get(self._last_used_view_key) == view_id:
                await self._kv_remove(self._last_used_view_key)
            LOGGER.debug(
                "View deleted",
                extra={"domain": DOMAIN, "op": "delete_view", "view_id": view_id},
            )

        return await self._run("delete_view", _delete, view_id=view_id)

    # -----------------------------
    # Public API: references
    # -----------------------------

    async def async_get_default_view(self) -> OperationResult[SavedView | None]:
        async def _get() -> SavedView | None:
            default_id = await self._kv_get(self._default_view_key)
            if not default_id:
                return None
            views = await self._read_views()
            view = next((v for v in views if v.id == default_id), None)
            if view is None:
                await self._kv_remove(self._default_view_key)
                LOGGER.debug(
                    "Cleared stale default view reference",
                    extra={"domain": DOMAIN, "op": "get_default_view", "view_id": default_id},
                )
            return view

        return await self._run("get_default_view", _get)

    async def async_set_default_view(self, view_id: str) -> OperationResult[None]:
        async def _set() -> None:
            views = await self._read_views()
            if not any(v.id == view_id for v in views):
                raise NotFoundError(VIEW_NOT_FOUND)
            await self._kv_set(self._default_view_key, view_id)

        return await self._run("set_default_view", _set, view_id=view_id)

    async def async_clear_default_view(self) -> OperationResult[None]:
        return await self._run(
            "clear_default_view", lambda: self._kv_remove(self._default_view_key)
        )

    async def async_get_last_used_view(self) -> OperationResult[str | None]:
        async def _get() -> str | None:
            return await self._kv_get(self._last_used_view_key) or None

        return await self._run("get_last_used_view", _get)

    async def async_set_last_used_view(self, view_id: str) -> OperationResult[None]:
        return await self._run(
            "set_last_used_view",
            lambda: self._kv_set(self._last_used_view_key, view_id),
            view_id=view_id,
        )

    async def async_storage_health(self) -> dict[str, Any]:
        """Summarize stored state; raises StorageError when unreadable."""

        views = await self._read_views()
        return {
            "views_count": len(views),
            "has_default_view": bool(await self._kv_get(self._default_view_key)),
            "has_last_used_view": bool(await self._kv_get(self._last_used_view_key)),
        }
