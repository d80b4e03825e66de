"""Per-user table preferences.

A ``UserPreferences`` snapshot records how one user left the table: column
visibility, sorting, pagination, row selection, the free-text query, grouping
and expanded rows. ``PreferencesStore`` persists one snapshot per user id in
an injected ``KeyValueStore`` under ``<prefix>-<user_id>``.

Snapshots are versioned. Stored or imported payloads are validated with
``SCHEMA_USER_PREFERENCES``, which fills missing sections with defaults so
snapshots written by older releases still load. As with ``ViewStore`` every
public coroutine returns an ``OperationResult``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from .const import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_USER_ID,
    DOMAIN,
    PREFERENCES_KEY_PREFIX,
    PREFERENCES_VERSION,
)
from .exceptions import NotFoundError, StorageError, ValidationError
from .models import OperationResult, Pagination, SortSpec, iso_utc_now
from .schemas import validate_user_preferences
from .storage import KeyValueStore

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

NO_PREFERENCES = "No preferences found to export"
INVALID_FORMAT = "Invalid configuration format"


@dataclass
class UserPreferences:
    column_visibility: dict[str, bool] = field(default_factory=dict)
    sorting: list[SortSpec] = field(default_factory=list)
    pagination: Pagination = field(default_factory=lambda: Pagination(page_size=DEFAULT_PAGE_SIZE))
    row_selection: dict[str, bool] = field(default_factory=dict)
    query: str = ""
    group_by: str | None = None
    expanded_rows: dict[str, bool] = field(default_factory=dict)
    last_updated: str | None = None
    version: str = PREFERENCES_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "columnVisibility": dict(self.column_visibility),
            "sorting": [spec.to_dict() for spec in self.sorting],
            "pagination": self.pagination.to_dict(),
            "rowSelection": dict(self.row_selection),
            "globalFilter": self.query,
            "grouping": [self.group_by] if self.group_by else [],
            "expandedRows": dict(self.expanded_rows),
            "lastUpdated": self.last_updated,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserPreferences:
        """Build from a payload that passed ``validate_user_preferences``."""

        pagination = data["pagination"]
        grouping = data["grouping"]
        return cls(
            column_visibility=dict(data["columnVisibility"]),
            sorting=[SortSpec.from_dict(spec) for spec in data["sorting"]],
            pagination=Pagination(
                page_index=pagination["pageIndex"], page_size=pagination["pageSize"]
            ),
            row_selection=dict(data["rowSelection"]),
            query=data["globalFilter"],
            group_by=grouping[0] if grouping else None,
            expanded_rows=dict(data["expandedRows"]),
            last_updated=data.get("lastUpdated"),
            version=PREFERENCES_VERSION,
        )


def is_preferences_modified(live: UserPreferences, saved: UserPreferences) -> bool:
    """True iff ``live`` differs from ``saved`` in anything but bookkeeping fields."""

    def _content(prefs: UserPreferences) -> dict[str, Any]:
        data = prefs.to_dict()
        data.pop("lastUpdated")
        data.pop("version")
        return data

    return _content(live) != _content(saved)


class PreferencesStore:
    """Load, save, clear, export and import one user's preferences."""

    def __init__(
        self,
        kv_store: KeyValueStore,
        *,
        user_id: str = DEFAULT_USER_ID,
        key_prefix: str = PREFERENCES_KEY_PREFIX,
    ) -> None:
        self._kv = kv_store
        self._user_id = user_id
        self._key = f"{key_prefix}-{user_id}"

    @property
    def user_id(self) -> str:
        return self._user_id

    async def _read(self) -> UserPreferences | None:
        try:
            raw = await self._kv.async_get(self._key)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"failed to read {self._key}: {exc}") from exc
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError("stored preferences are corrupted: invalid JSON") from exc
        result = validate_user_preferences(payload)
        if not result.ok:
            raise StorageError(
                f"stored preferences are corrupted: {'; '.join(result.errors)}"
            )
        return UserPreferences.from_dict(result.value)

    async def _write(self, preferences: UserPreferences) -> UserPreferences:
        stored = UserPreferences(
            column_visibility=dict(preferences.column_visibility),
            sorting=list(preferences.sorting),
            pagination=preferences.pagination,
            row_selection=dict(preferences.row_selection),
            query=preferences.query,
            group_by=preferences.group_by,
            expanded_rows=dict(preferences.expanded_rows),
            last_updated=iso_utc_now(),
            version=PREFERENCES_VERSION,
        )
        try:
            await self._kv.async_set(self._key, json.dumps(stored.to_dict()))
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"failed to write {self._key}: {exc}") from exc
        LOGGER.debug(
            "Preferences saved",
            extra={"domain": DOMAIN, "op": "save_preferences", "user_id": self._user_id},
        )
        return stored

    async def _run(self, op: str, action: Callable[[], Awaitable[T]]) -> OperationResult[T]:
        context = {"domain": DOMAIN, "op": op, "user_id": self._user_id}
        try:
            data = await action()
        except (NotFoundError, ValidationError) as exc:
            LOGGER.warning(str(exc), extra=context)
            return OperationResult.fail(str(exc))
        except StorageError as exc:
            LOGGER.error("Preferences storage operation failed", extra=context, exc_info=True)
            return OperationResult.fail(str(exc))
        return OperationResult.ok(data)

    # -----------------------------
    # Public API
    # -----------------------------

    async def async_load(self) -> OperationResult[UserPreferences | None]:
        """Return the stored snapshot, or ok(None) when the user has none."""

        return await self._run("load_preferences", self._read)

    async def async_save(self, preferences: UserPreferences) -> OperationResult[UserPreferences]:
        """Persist ``preferences`` stamped with the current version and time."""

        return await self._run("save_preferences", lambda: self._write(preferences))

    async def async_clear(self) -> OperationResult[None]:
        async def _clear() -> None:
            try:
                await self._kv.async_remove(self._key)
            except StorageError:
                raise
            except Exception as exc:
                raise StorageError(f"failed to remove {self._key}: {exc}") from exc

        return await self._run("clear_preferences", _clear)

    async def async_export(self) -> OperationResult[str]:
        """Stored snapshot as indented JSON text."""

        async def _export() -> str:
            preferences = await self._read()
            if preferences is None:
                raise NotFoundError(NO_PREFERENCES)
            return json.dumps(preferences.to_dict(), indent=2)

        return await self._run("export_preferences", _export)

    async def async_import(self, config_json: str) -> OperationResult[UserPreferences]:
        """Validate exported JSON text and store it as this user's snapshot."""

        async def _import() -> UserPreferences:
            try:
                payload = json.loads(config_json)
            except json.JSONDecodeError as exc:
                raise ValidationError(f"{INVALID_FORMAT}: invalid JSON") from exc
            result = validate_user_preferences(payload)
            if not result.ok:
                raise ValidationError(
                    f"{INVALID_FORMAT}: {'; '.join(result.errors)}", result.errors
                )
            return await self._write(UserPreferences.from_dict(result.value))

        return await self._run("import_preferences", _import)
