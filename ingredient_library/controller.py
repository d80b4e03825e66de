"""Table-state controller.

``TableController`` owns the interactive state of one ingredient table
(query, filters, grouping, sorting, pagination, selection, column layout and
expansion) plus the last dataset fetched from a ``DataSource``. Rendered rows
are derived on demand by a pure pipeline:

1. ``apply_filters`` over the loaded data (search included via
   ``filters.search``);
2. grouping into header rows when ``group_by`` is set;
3. stable multi-key sort (within each group when grouping), with expanded
   sub-rows inserted after their parents when not grouping;
4. a pagination slice.

Synchronous operations mutate state in call order and notify subscribers.
Free-text search is debounced: ``set_query`` updates the raw query at once and
commits it into ``filters.search`` only after ``debounce_seconds`` of quiet.
Fetches are never cancelled; the last one to complete wins.

With a ``PreferencesStore`` the controller can also snapshot its state as
per-user preferences and restore, import or export them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from .const import DEFAULT_DEBOUNCE_SECONDS, DEFAULT_PAGE_SIZE, DOMAIN
from .data_source import DataSource
from .exceptions import IngredientLibraryError, ValidationError
from .filters import (
    FilterChip,
    FilterDef,
    apply_filters,
    create_empty_filters_state,
    get_active_filter_chips,
    get_filter_defs_with_options,
    has_active_filters,
    remove_filter_value,
)
from .models import (
    GROUP_KEYS,
    ColumnConfig,
    FiltersState,
    Ingredient,
    OperationResult,
    Pagination,
    SavedView,
    SortSpec,
    ViewDraft,
)
from .preferences import PreferencesStore, UserPreferences, is_preferences_modified
from .selectors import (
    StatsData,
    TableRow,
    build_hierarchy,
    calculate_stats,
    expand_rows,
    group_rows,
    page_count,
    paginate,
    selected_rows,
    sort_rows,
)
from .view_store import VIEW_NOT_FOUND, LiveViewState, ViewStore, default_columns, is_view_modified

LOGGER = logging.getLogger(__name__)

Listener = Callable[["TableController"], None]

NO_VIEW_STORE = "No view store configured"
NO_PREFERENCES_STORE = "No preferences store configured"
NO_CURRENT_VIEW = "No view is currently loaded"
FETCH_FAILED = "Failed to fetch data"


def _running_loop(op: str) -> asyncio.AbstractEventLoop:
    try:
        return asyncio.get_running_loop()
    except RuntimeError as exc:
        raise IngredientLibraryError(
            f"{op} requires a running event loop; construct the controller with "
            "autoload=False outside of one"
        ) from exc


class LoadState(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERRORED = "errored"


@dataclass
class TableState:
    """Snapshot of the interactive table state."""

    query: str = ""
    filters: FiltersState = field(default_factory=FiltersState)
    group_by: str | None = None
    sorting: list[SortSpec] = field(default_factory=list)
    selection: dict[str, bool] = field(default_factory=dict)
    pagination: Pagination = field(default_factory=Pagination)
    column_config: list[ColumnConfig] = field(default_factory=default_columns)
    expanded: dict[str, bool] = field(default_factory=dict)
    expanded_groups: dict[str, bool] = field(default_factory=dict)

    @property
    def column_visibility(self) -> dict[str, bool]:
        return {col.key: col.visible for col in self.column_config}

    def copy(self) -> TableState:
        return TableState(
            query=self.query,
            filters=self.filters.copy(),
            group_by=self.group_by,
            sorting=list(self.sorting),
            selection=dict(self.selection),
            pagination=self.pagination,
            column_config=[replace(col) for col in self.column_config],
            expanded=dict(self.expanded),
            expanded_groups=dict(self.expanded_groups),
        )


class TableController:
    """Observable state machine over one ingredient table.

    With ``autoload=True`` (the default) construction starts the first fetch
    and therefore requires a running event loop; outside of one it raises
    ``IngredientLibraryError``. Pass ``autoload=False`` to build the
    controller synchronously and call ``refetch()`` later from async code.
    """

    def __init__(
        self,
        data_source: DataSource,
        *,
        view_store: ViewStore | None = None,
        preferences_store: PreferencesStore | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        page_size: int = DEFAULT_PAGE_SIZE,
        filter_defs: Sequence[FilterDef] | None = None,
        autoload: bool = True,
    ) -> None:
        self._data_source = data_source
        self._view_store = view_store
        self._preferences_store = preferences_store
        self._debounce_seconds = debounce_seconds
        self._custom_filter_defs = list(filter_defs) if filter_defs is not None else None

        self._state = TableState(pagination=Pagination(page_index=0, page_size=page_size))
        self._data: list[Ingredient] = []
        self._load_state = LoadState.IDLE
        self._error: str | None = None

        self._saved_views: list[SavedView] = []
        self._current_view_id: str | None = None
        self._saved_preferences: UserPreferences | None = None

        self._listeners: list[Listener] = []
        self._fetch_tasks: set[asyncio.Task[None]] = set()
        self._query_task: asyncio.Task[None] | None = None
        self._query_token = 0

        if autoload:
            self.refetch()

    # -----------------------------
    # Observation
    # -----------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(controller)`` after every state change."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    @property
    def state(self) -> TableState:
        return self._state.copy()

    @property
    def load_state(self) -> LoadState:
        return self._load_state

    @property
    def is_loading(self) -> bool:
        return self._load_state is LoadState.LOADING

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def data(self) -> list[Ingredient]:
        return list(self._data)

    @property
    def query(self) -> str:
        return self._state.query

    @property
    def filters(self) -> FiltersState:
        return self._state.filters.copy()

    @property
    def group_by(self) -> str | None:
        return self._state.group_by

    @property
    def sorting(self) -> list[SortSpec]:
        return list(self._state.sorting)

    @property
    def pagination(self) -> Pagination:
        return self._state.pagination

    @property
    def selection(self) -> dict[str, bool]:
        return dict(self._state.selection)

    @property
    def column_config(self) -> list[ColumnConfig]:
        return [replace(col) for col in self._state.column_config]

    @property
    def column_visibility(self) -> dict[str, bool]:
        return self._state.column_visibility

    # -----------------------------
    # Fetching
    # -----------------------------

    def refetch(self) -> asyncio.Task[None]:
        """Issue an unfiltered full fetch; returns the task completing it.

        Must be called with a running event loop. State moves to LOADING at
        once; filters, sorting, grouping and selection are left alone.
        """

        task = _running_loop("refetch").create_task(self._async_fetch())
        self._fetch_tasks.add(task)
        task.add_done_callback(self._fetch_tasks.discard)
        self._load_state = LoadState.LOADING
        self._notify()
        return task

    async def async_wait_for_fetch(self) -> None:
        """Wait until every in-flight fetch has completed."""

        while pending := [task for task in self._fetch_tasks if not task.done()]:
            await asyncio.gather(*pending)

    async def _async_fetch(self) -> None:
        try:
            result = await self._data_source.async_list()
        except IngredientLibraryError as exc:
            result = OperationResult.fail(str(exc))
        except Exception as exc:
            # A misbehaving source must still leave the table ERRORED, not LOADING
            LOGGER.error(
                "Data source raised unexpectedly during fetch",
                extra={"domain": DOMAIN, "op": "fetch"},
                exc_info=True,
            )
            result = OperationResult.fail(f"{FETCH_FAILED}: {exc}")

        if result.success:
            self._data = list(result.data or [])
            self._error = None
            self._load_state = LoadState.READY
            LOGGER.debug(
                "Data loaded",
                extra={"domain": DOMAIN, "op": "fetch", "count": len(self._data)},
            )
        else:
            self._error = result.error or FETCH_FAILED
            self._load_state = LoadState.ERRORED
            LOGGER.warning(
                "Data fetch failed: %s",
                self._error,
                extra={"domain": DOMAIN, "op": "fetch"},
            )
        self._notify()

    async def async_toggle_favorite(self, ingredient_id: str) -> OperationResult[Ingredient]:
        """Toggle through the data source and patch the loaded row on success."""

        result = await self._data_source.async_toggle_favorite(ingredient_id)
        if result.success and result.data is not None:
            updated = result.data
            self._data = [updated if row.id == updated.id else row for row in self._data]
            self._notify()
        return result

    # -----------------------------
    # Query and filters
    # -----------------------------

    def _cancel_pending_query(self) -> None:
        self._query_token += 1
        if self._query_task is not None and not self._query_task.done():
            self._query_task.cancel()
            LOGGER.debug(
                "Cancelled pending query commit",
                extra={"domain": DOMAIN, "op": "query_debounce_cancel"},
            )
        self._query_task = None

    def _commit_query(self, token: int, text: str) -> None:
        if token != self._query_token:
            return
        self._query_task = None
        self._state.filters = self._state.filters.with_value("search", text)
        self._reset_page_index()
        self._notify()

    def set_query(self, text: str) -> None:
        """Update the raw query now and commit it to ``filters.search`` after quiet."""

        self._cancel_pending_query()
        self._state.query = text
        token = self._query_token

        if self._debounce_seconds <= 0:
            self._commit_query(token, text)
            return

        async def _delayed_commit() -> None:
            await asyncio.sleep(self._debounce_seconds)
            self._commit_query(token, text)

        self._query_task = _running_loop("set_query").create_task(_delayed_commit())
        self._notify()

    def flush_query(self) -> None:
        """Commit a pending query immediately, bypassing the debounce."""

        if self._query_task is None:
            return
        text = self._state.query
        self._cancel_pending_query()
        self._commit_query(self._query_token, text)

    def set_filters(self, partial: Mapping[str, Any] | None = None, **changes: Any) -> None:
        """Shallow-merge filter values keyed by filter id; None resets a filter."""

        merged = {**(partial or {}), **changes}
        filters = self._state.filters
        for filter_id, value in merged.items():
            filters = filters.without(filter_id) if value is None else filters.with_value(filter_id, value)
        self._state.filters = filters
        self._reset_page_index()
        self._notify()

    def clear_filters(self) -> None:
        self._cancel_pending_query()
        self._state.query = ""
        self._state.filters = create_empty_filters_state()
        self._reset_page_index()
        self._notify()

    def remove_filter(self, filter_id: str, value: str | None = None) -> None:
        """Remove one value (or the whole filter) as a chip's close action does."""

        if filter_id == "search":
            self._cancel_pending_query()
            self._state.query = ""
        self._state.filters = remove_filter_value(self._state.filters, filter_id, value)
        self._reset_page_index()
        self._notify()

    def remove_chip(self, chip: FilterChip) -> None:
        self.remove_filter(chip.filter_id or chip.id, chip.raw_value)

    # -----------------------------
    # Selection
    # -----------------------------

    def toggle_row_selection(self, row_id: str) -> None:
        self._state.selection[row_id] = not self._state.selection.get(row_id, False)
        self._notify()

    def set_selection(self, selection: Mapping[str, bool]) -> None:
        self._state.selection = dict(selection)
        self._notify()

    def toggle_all_rows_selection(self) -> None:
        """Select every filtered row, or clear the selection if all already are."""

        rows = self.filtered_rows
        if rows and all(self._state.selection.get(row.id) for row in rows):
            self._state.selection = {}
        else:
            self._state.selection = {row.id: True for row in rows}
        self._notify()

    # -----------------------------
    # Grouping, sorting and pagination
    # -----------------------------

    def set_group_by(self, group_by: str | None) -> None:
        if group_by is not None and group_by not in GROUP_KEYS:
            raise ValidationError(f"group_by must be one of {', '.join(GROUP_KEYS)}")
        self._state.group_by = group_by
        self._reset_page_index()
        self._notify()

    def set_sorting(self, sorting: Sequence[SortSpec]) -> None:
        self._state.sorting = list(sorting)
        self._notify()

    def toggle_sort(self, column_id: str, *, multi: bool = False) -> None:
        """Cycle ``column_id`` through ascending, descending and unsorted.

        With ``multi`` the other sort keys are kept and a new key is appended;
        otherwise the column becomes the only sort key.
        """

        current = next((s for s in self._state.sorting if s.id == column_id), None)
        if current is None:
            next_spec: SortSpec | None = SortSpec(id=column_id, desc=False)
        elif not current.desc:
            next_spec = SortSpec(id=column_id, desc=True)
        else:
            next_spec = None

        if not multi:
            self._state.sorting = [next_spec] if next_spec is not None else []
        elif current is None:
            self._state.sorting = [*self._state.sorting, next_spec]
        else:
            self._state.sorting = [
                next_spec if s.id == column_id else s
                for s in self._state.sorting
                if s.id != column_id or next_spec is not None
            ]
        self._notify()

    def set_pagination(self, page_index: int, page_size: int) -> None:
        if page_size < 1:
            raise ValidationError("page_size must be >= 1")
        self._state.pagination = Pagination(page_index=max(0, page_index), page_size=page_size)
        self._notify()

    def set_page_index(self, page_index: int) -> None:
        self.set_pagination(page_index, self._state.pagination.page_size)

    def set_page_size(self, page_size: int) -> None:
        self.set_pagination(0, page_size)

    def _reset_page_index(self) -> None:
        if self._state.pagination.page_index:
            self._state.pagination = replace(self._state.pagination, page_index=0)

    # -----------------------------
    # Columns
    # -----------------------------

    def _update_column(self, key: str, **changes: Any) -> None:
        self._state.column_config = [
            replace(col, **changes) if col.key == key else col for col in self._state.column_config
        ]
        self._notify()

    def set_column_visibility(self, key: str, visible: bool) -> None:
        self._update_column(key, visible=visible)

    def set_column_width(self, key: str, width: int) -> None:
        self._update_column(key, width=width)

    def move_column(self, key: str, new_index: int) -> None:
        """Move a column to ``new_index`` and renumber every ``order``."""

        columns = list(self._state.column_config)
        current = next((i for i, col in enumerate(columns) if col.key == key), None)
        if current is None:
            return
        moved = columns.pop(current)
        columns.insert(max(0, min(new_index, len(columns))), moved)
        self._state.column_config = [replace(col, order=i) for i, col in enumerate(columns)]
        self._notify()

    def reset_columns(self) -> None:
        self._state.column_config = default_columns()
        self._notify()

    def set_columns_config(self, columns: Sequence[ColumnConfig]) -> None:
        self._state.column_config = [replace(col) for col in columns]
        self._notify()

    # -----------------------------
    # Expansion
    # -----------------------------

    def toggle_row_expansion(self, row_id: str) -> None:
        self._state.expanded[row_id] = not self._state.expanded.get(row_id, False)
        self._notify()

    def toggle_group_expansion(self, group_key: str) -> None:
        # Groups start expanded
        self._state.expanded_groups[group_key] = not self._state.expanded_groups.get(
            group_key, True
        )
        self._notify()

    def set_expanded_groups(self, expanded_groups: Mapping[str, bool]) -> None:
        self._state.expanded_groups = dict(expanded_groups)
        self._notify()

    # -----------------------------
    # Derived rows
    # -----------------------------

    @property
    def filter_defs(self) -> list[FilterDef]:
        if self._custom_filter_defs is not None:
            return list(self._custom_filter_defs)
        return get_filter_defs_with_options(self._data)

    @property
    def filtered_rows(self) -> list[Ingredient]:
        return apply_filters(self._data, self.filter_defs, self._state.filters)

    def _arranged_rows(self) -> list[TableRow]:
        filtered = self.filtered_rows
        if self._state.group_by:
            return group_rows(
                filtered,
                self._state.group_by,
                sort_by=self._state.sorting,
                expanded_groups=self._state.expanded_groups,
            )
        if any(row.parent_id for row in filtered):
            filtered = build_hierarchy(filtered)
        return list(expand_rows(sort_rows(filtered, self._state.sorting), self._state.expanded))

    @property
    def total_rows(self) -> int:
        """Row count before pagination, group headers included."""

        return len(self._arranged_rows())

    @property
    def rows(self) -> list[TableRow]:
        """The current page of rendered rows."""

        pagination = self._state.pagination
        return paginate(self._arranged_rows(), pagination.page_index, pagination.page_size)

    @property
    def page_count(self) -> int:
        return page_count(self.total_rows, self._state.pagination.page_size)

    @property
    def selected_rows(self) -> list[Ingredient]:
        return selected_rows(self._data, self._state.selection)

    @property
    def selected_count(self) -> int:
        return len(self.selected_rows)

    @property
    def has_selection(self) -> bool:
        return self.selected_count > 0

    @property
    def active_filter_chips(self) -> list[FilterChip]:
        return get_active_filter_chips(self._state.filters, self.filter_defs)

    @property
    def has_active_filters(self) -> bool:
        return has_active_filters(self._state.filters)

    @property
    def stats(self) -> StatsData:
        return calculate_stats(self._data)

    # -----------------------------
    # Saved views
    # -----------------------------

    @property
    def saved_views(self) -> list[SavedView]:
        return list(self._saved_views)

    @property
    def current_view_id(self) -> str | None:
        return self._current_view_id

    def live_view_state(self) -> LiveViewState:
        return LiveViewState(
            query=self._state.query,
            filters=self._state.filters.copy(),
            columns=[replace(col) for col in self._state.column_config],
            group_by=self._state.group_by,
            sort_by=list(self._state.sorting),
        )

    @property
    def has_unsaved_changes(self) -> bool:
        if self._current_view_id is None:
            return False
        view = next((v for v in self._saved_views if v.id == self._current_view_id), None)
        if view is None:
            return False
        return is_view_modified(self.live_view_state(), view)

    def _apply_view(self, view: SavedView) -> None:
        self._cancel_pending_query()
        self._state.query = view.query
        self._state.filters = view.filters.copy()
        self._state.column_config = [replace(col) for col in view.columns]
        self._state.group_by = view.group_by
        self._state.sorting = [view.sort_by] if view.sort_by is not None else []
        self._reset_page_index()
        self._current_view_id = view.id

    async def async_load_saved_views(self) -> OperationResult[list[SavedView]]:
        if self._view_store is None:
            return OperationResult.fail(NO_VIEW_STORE)
        result = await self._view_store.async_list_views()
        if result.success:
            self._saved_views = list(result.data or [])
            self._notify()
        return result

    async def async_load_view(self, view_id: str) -> OperationResult[SavedView]:
        """Apply a stored view to the live state and mark it last used."""

        if self._view_store is None:
            return OperationResult.fail(NO_VIEW_STORE)
        listed = await self.async_load_saved_views()
        if not listed.success:
            return OperationResult.fail(listed.error or VIEW_NOT_FOUND)
        view = next((v for v in self._saved_views if v.id == view_id), None)
        if view is None:
            return OperationResult.fail(VIEW_NOT_FOUND)

        self._apply_view(view)
        self._notify()
        marked = await self._view_store.async_set_last_used_view(view_id)
        if not marked.success:
            return OperationResult.fail(marked.error or "Failed to record last used view")
        return OperationResult.ok(view)

    async def async_save_current_as_view(
        self, name: str, *, is_default: bool = False
    ) -> OperationResult[SavedView]:
        if self._view_store is None:
            return OperationResult.fail(NO_VIEW_STORE)
        live = self.live_view_state()
        draft = ViewDraft(
            name=name,
            query=live.query,
            filters=live.filters,
            columns=live.columns,
            group_by=live.group_by,
            # A saved view stores only the primary sort key
            sort_by=live.sort_by[0] if live.sort_by else None,
            is_default=is_default,
        )
        result = await self._view_store.async_create_view(draft)
        if result.success and result.data is not None:
            self._saved_views.append(result.data)
            self._current_view_id = result.data.id
            self._notify()
        return result

    async def async_update_current_view(self) -> OperationResult[SavedView]:
        if self._view_store is None:
            return OperationResult.fail(NO_VIEW_STORE)
        if self._current_view_id is None:
            return OperationResult.fail(NO_CURRENT_VIEW)
        listed = await self._view_store.async_list_views()
        if not listed.success:
            return OperationResult.fail(listed.error or VIEW_NOT_FOUND)
        current = next((v for v in listed.data or [] if v.id == self._current_view_id), None)
        if current is None:
            return OperationResult.fail(VIEW_NOT_FOUND)

        live = self.live_view_state()
        result = await self._view_store.async_update_view(
            replace(
                current,
                query=live.query,
                filters=live.filters,
                columns=live.columns,
                group_by=live.group_by,
                sort_by=live.sort_by[0] if live.sort_by else None,
            )
        )
        if result.success and result.data is not None:
            self._replace_saved_view(result.data)
        return result

    def _replace_saved_view(self, view: SavedView) -> None:
        self._saved_views = [view if v.id == view.id else v for v in self._saved_views]
        self._notify()

    async def async_delete_view(self, view_id: str) -> OperationResult[None]:
        if self._view_store is None:
            return OperationResult.fail(NO_VIEW_STORE)
        result = await self._view_store.async_delete_view(view_id)
        if result.success:
            self._saved_views = [v for v in self._saved_views if v.id != view_id]
            if self._current_view_id == view_id:
                self._current_view_id = None
            self._notify()
        return result

    async def async_set_default_view(self, view_id: str) -> OperationResult[None]:
        if self._view_store is None:
            return OperationResult.fail(NO_VIEW_STORE)
        return await self._view_store.async_set_default_view(view_id)

    async def async_rename_view(self, view_id: str, name: str) -> OperationResult[SavedView]:
        if self._view_store is None:
            return OperationResult.fail(NO_VIEW_STORE)
        result = await self._view_store.async_rename_view(view_id, name)
        if result.success and result.data is not None:
            self._replace_saved_view(result.data)
        return result

    async def async_restore_initial_view(self) -> OperationResult[SavedView | None]:
        """Load the last-used view, else the default view; ok(None) if neither resolves."""

        if self._view_store is None:
            return OperationResult.fail(NO_VIEW_STORE)
        listed = await self.async_load_saved_views()
        if not listed.success:
            return OperationResult.fail(listed.error or "Failed to list views")

        last_used = await self._view_store.async_get_last_used_view()
        if last_used.success and last_used.data:
            if any(v.id == last_used.data for v in self._saved_views):
                return await self.async_load_view(last_used.data)

        default = await self._view_store.async_get_default_view()
        if not default.success:
            return OperationResult.fail(default.error or "Failed to read default view")
        if default.data is None:
            return OperationResult.ok(None)
        return await self.async_load_view(default.data.id)

    # -----------------------------
    # User preferences
    # -----------------------------

    def preferences_snapshot(self) -> UserPreferences:
        """Capture the live table state as a preferences snapshot."""

        return UserPreferences(
            column_visibility=self._state.column_visibility,
            sorting=list(self._state.sorting),
            pagination=self._state.pagination,
            row_selection={k: v for k, v in self._state.selection.items() if v},
            query=self._state.query,
            group_by=self._state.group_by,
            expanded_rows={k: v for k, v in self._state.expanded.items() if v},
        )

    def apply_preferences(self, preferences: UserPreferences) -> None:
        """Replace the live state with ``preferences``.

        Visibility entries for unknown columns and unknown grouping keys are
        ignored. The query is committed at once, without the debounce.
        """

        self._cancel_pending_query()
        visibility = preferences.column_visibility
        self._state.column_config = [
            replace(col, visible=visibility[col.key]) if col.key in visibility else col
            for col in self._state.column_config
        ]
        self._state.sorting = list(preferences.sorting)
        self._state.pagination = preferences.pagination
        self._state.selection = dict(preferences.row_selection)
        self._state.query = preferences.query
        self._state.filters = self._state.filters.with_value("search", preferences.query)
        self._state.group_by = preferences.group_by if preferences.group_by in GROUP_KEYS else None
        self._state.expanded = dict(preferences.expanded_rows)
        self._notify()

    @property
    def has_unsaved_preferences(self) -> bool:
        """True iff the live state differs from the last saved or loaded snapshot."""

        if self._saved_preferences is None:
            return False
        return is_preferences_modified(self.preferences_snapshot(), self._saved_preferences)

    async def async_save_preferences(self) -> OperationResult[UserPreferences]:
        if self._preferences_store is None:
            return OperationResult.fail(NO_PREFERENCES_STORE)
        result = await self._preferences_store.async_save(self.preferences_snapshot())
        if result.success:
            self._saved_preferences = result.data
        return result

    async def async_restore_preferences(self) -> OperationResult[UserPreferences | None]:
        """Apply the stored snapshot; ok(None) leaves the state untouched."""

        if self._preferences_store is None:
            return OperationResult.fail(NO_PREFERENCES_STORE)
        result = await self._preferences_store.async_load()
        if result.success and result.data is not None:
            self.apply_preferences(result.data)
            self._saved_preferences = result.data
        return result

    async def async_clear_preferences(self) -> OperationResult[None]:
        if self._preferences_store is None:
            return OperationResult.fail(NO_PREFERENCES_STORE)
        result = await self._preferences_store.async_clear()
        if result.success:
            self._saved_preferences = None
        return result

    async def async_export_preferences(self) -> OperationResult[str]:
        if self._preferences_store is None:
            return OperationResult.fail(NO_PREFERENCES_STORE)
        return await self._preferences_store.async_export()

    async def async_import_preferences(self, config_json: str) -> OperationResult[UserPreferences]:
        """Store exported JSON text as this user's snapshot and apply it."""

        if self._preferences_store is None:
            return OperationResult.fail(NO_PREFERENCES_STORE)
        result = await self._preferences_store.async_import(config_json)
        if result.success and result.data is not None:
            self.apply_preferences(result.data)
            self._saved_preferences = result.data
        return result

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def close(self) -> None:
        """Cancel the pending query commit and drop all subscribers."""

        self._cancel_pending_query()
        self._listeners.clear()
