"""Ingredient Library data-view engine.

``async_setup`` is the application root: it validates configuration, builds
the key-value backend, the saved-view and preferences stores, the data
source and the table controller, and hands them out together. Nothing is
held in module globals; callers pass the returned components down by
reference.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .api_client import ApiDataSource
from .config import LibraryConfig, load_config
from .const import DOMAIN, LIBRARY_VERSION
from .controller import LoadState, TableController
from .data_source import DataSource, InMemoryDataSource
from .exceptions import StorageError
from .models import Ingredient
from .preferences import PreferencesStore
from .storage import KeyValueStore, create_key_value_store
from .view_store import ViewStore

__version__ = LIBRARY_VERSION

LOGGER = logging.getLogger(__name__)

__all__ = [
    "IngredientLibrary",
    "LoadState",
    "PreferencesStore",
    "TableController",
    "ViewStore",
    "async_setup",
    "async_unload",
]


@dataclass
class IngredientLibrary:
    """Components built by ``async_setup``."""

    config: LibraryConfig
    kv_store: KeyValueStore
    view_store: ViewStore
    preferences_store: PreferencesStore
    data_source: DataSource
    controller: TableController


def create_data_source(
    config: LibraryConfig, seed: Iterable[Ingredient | Mapping[str, Any]] = ()
) -> DataSource:
    """REST source when an ``api`` section is configured, else an in-memory one."""

    if config.api is None:
        return InMemoryDataSource(seed)
    return ApiDataSource(
        config.api.base_url,
        api_key=config.api.api_key,
        headers=config.api.headers,
        timeout=config.api.timeout,
        retry_attempts=config.api.retry_attempts,
        retry_delay=config.api.retry_delay,
        cache_ttl=config.api.cache_ttl,
    )


async def async_setup(
    config: dict[str, Any] | None = None,
    *,
    data_source: DataSource | None = None,
    kv_store: KeyValueStore | None = None,
    seed: Iterable[Ingredient | Mapping[str, Any]] = (),
    autoload: bool = True,
) -> IngredientLibrary:
    """Build and wire all components.

    Raises ValidationError for invalid configuration and StorageError when
    the persisted views cannot be read.
    """

    library_config = load_config(config)
    store = kv_store if kv_store is not None else create_key_value_store(library_config.storage)
    view_store = ViewStore(store)

    try:
        health = await view_store.async_storage_health()
    except StorageError:
        LOGGER.error(
            "Saved view storage is unreadable during setup",
            extra={"domain": DOMAIN, "op": "setup_storage"},
            exc_info=True,
        )
        raise
    _log_storage_health(health)

    preferences_store = PreferencesStore(store, user_id=library_config.user_id)
    source = data_source if data_source is not None else create_data_source(library_config, seed)
    controller = TableController(
        source,
        view_store=view_store,
        preferences_store=preferences_store,
        debounce_seconds=library_config.debounce_seconds,
        page_size=library_config.page_size,
        autoload=autoload,
    )
    return IngredientLibrary(
        config=library_config,
        kv_store=store,
        view_store=view_store,
        preferences_store=preferences_store,
        data_source=source,
        controller=controller,
    )


async def async_unload(library: IngredientLibrary) -> None:
    """Stop pending work and release network resources."""

    library.controller.close()
    await library.controller.async_wait_for_fetch()
    if isinstance(library.data_source, ApiDataSource):
        await library.data_source.async_close()


def _log_storage_health(health: dict[str, Any]) -> None:
    """Log saved-view storage summary after setup."""

    LOGGER.debug(
        "Storage health: views=%s default_view=%s last_used_view=%s",
        health["views_count"],
        health["has_default_view"],
        health["has_last_used_view"],
        extra={"domain": DOMAIN, "op": "setup_storage_health", **health},
    )
