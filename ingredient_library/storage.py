"""Key-value persistence backends for saved views.

The view store talks to an asynchronous key-value abstraction holding plain
strings. Two backends are provided:

- ``InMemoryKeyValueStore``: process-local dict, used by tests and by
  sessions that do not need persistence.
- ``JsonFileKeyValueStore``: a single JSON document on disk shaped as
  ``{"version": int, "data": {key -> str}}``. File I/O runs in a worker
  thread and writes are serialized with an ``asyncio.Lock``.

``create_key_value_store`` picks a backend from the ``storage`` section of the
validated configuration.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Final

from .const import DOMAIN
from .exceptions import StorageError

LOGGER = logging.getLogger(__name__)

# Version of the on-disk document written by JsonFileKeyValueStore
FILE_FORMAT_VERSION: Final[int] = 1

BACKEND_MEMORY: Final[str] = "memory"
BACKEND_JSON_FILE: Final[str] = "json_file"


class KeyValueStore(ABC):
    """Asynchronous string key-value persistence."""

    @abstractmethod
    async def async_get(self, key: str) -> str | None:
        """Return the stored value or None when the key is unset."""

    @abstractmethod
    async def async_set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""

    @abstractmethod
    async def async_remove(self, key: str) -> None:
        """Remove ``key``; removing an unset key is a no-op."""


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def async_get(self, key: str) -> str | None:
        return self._data.get(key)

    async def async_set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def async_remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw contents (test helper)."""

        return dict(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """Key-value store persisted as one JSON document.

    Every operation re-reads the file so that external edits are observed; a
    write replaces the document atomically via a temporary sibling file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_document(self) -> dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StorageError(f"failed to read {self._path.name}") from exc
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError(f"corrupted storage file {self._path.name}") from exc
        if not isinstance(document, dict) or not isinstance(document.get("data", {}), dict):
            raise StorageError(f"corrupted storage file {self._path.name}: unexpected shape")
        return dict(document.get("data", {}))

    def _write_document(self, data: dict[str, str]) -> None:
        payload = {"version": FILE_FORMAT_VERSION, "data": data}
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise StorageError(f"failed to write {self._path.name}") from exc

    async def async_get(self, key: str) -> str | None:
        data = await asyncio.to_thread(self._read_document)
        value = data.get(key)
        return value if isinstance(value, str) else None

    async def _async_mutate(self, op: str, key: str, value: str | None) -> None:
        async with self._lock:
            start_time = time.monotonic()
            data = await asyncio.to_thread(self._read_document)
            if value is None:
                if key not in data:
                    return
                data.pop(key)
            else:
                data[key] = value
            await asyncio.to_thread(self._write_document, data)
            LOGGER.debug(
                "Storage file written",
                extra={
                    "domain": DOMAIN,
                    "op": op,
                    "storage_key": key,
                    "elapsed_ms": int((time.monotonic() - start_time) * 1000),
                },
            )

    async def async_set(self, key: str, value: str) -> None:
        await self._async_mutate("kv_set", key, value)

    async def async_remove(self, key: str) -> None:
        await self._async_mutate("kv_remove", key, None)


def create_key_value_store(storage_config: dict[str, Any] | None) -> KeyValueStore:
    """Build the backend named by a validated ``storage`` config section."""

    config = storage_config or {}
    backend = config.get("backend", BACKEND_MEMORY)
    if backend == BACKEND_JSON_FILE:
        path = config.get("path")
        if not path:
            raise StorageError("json_file storage requires a path")
        store: KeyValueStore = JsonFileKeyValueStore(path)
    elif backend == BACKEND_MEMORY:
        store = InMemoryKeyValueStore()
    else:
        raise StorageError(f"unknown storage backend: {backend}")
    LOGGER.debug(
        "Key-value store created",
        extra={"domain": DOMAIN, "op": "create_store", "backend": backend},
    )
    return store
