"""Configuration schema and loader.

A configuration is a plain dict (typically parsed from JSON or YAML by the
embedding application). ``load_config`` validates it with ``CONFIG_SCHEMA``
and returns a typed ``LibraryConfig`` with defaults applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import voluptuous as vol

from .const import (
    DEFAULT_API_TIMEOUT,
    DEFAULT_CACHE_TTL,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY,
    DEFAULT_USER_ID,
)
from .schemas import validate
from .storage import BACKEND_JSON_FILE, BACKEND_MEMORY


def _require_path_for_json_file(value: dict[str, Any]) -> dict[str, Any]:
    if value.get("backend") == BACKEND_JSON_FILE and not value.get("path"):
        raise vol.Invalid("path is required for the json_file backend", path=["path"])
    return value


_SECONDS = vol.All(vol.Coerce(float), vol.Range(min=0))

STORAGE_SCHEMA = vol.All(
    vol.Schema(
        {
            vol.Optional("backend", default=BACKEND_MEMORY): vol.In(
                (BACKEND_MEMORY, BACKEND_JSON_FILE)
            ),
            vol.Optional("path"): vol.All(str, vol.Length(min=1)),
        }
    ),
    _require_path_for_json_file,
)

API_SCHEMA = vol.Schema(
    {
        vol.Required("base_url"): vol.All(str, vol.Url()),
        vol.Optional("api_key"): vol.Any(None, str),
        vol.Optional("headers", default=dict): {str: str},
        vol.Optional("timeout", default=DEFAULT_API_TIMEOUT): vol.All(
            vol.Coerce(float), vol.Range(min=0, min_included=False)
        ),
        vol.Optional("retry_attempts", default=DEFAULT_RETRY_ATTEMPTS): vol.All(
            int, vol.Range(min=1)
        ),
        vol.Optional("retry_delay", default=DEFAULT_RETRY_DELAY): _SECONDS,
        vol.Optional("cache_ttl", default=DEFAULT_CACHE_TTL): _SECONDS,
    }
)

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional("storage", default=dict): STORAGE_SCHEMA,
        vol.Optional("debounce_seconds", default=DEFAULT_DEBOUNCE_SECONDS): _SECONDS,
        vol.Optional("page_size", default=DEFAULT_PAGE_SIZE): vol.All(int, vol.Range(min=1)),
        vol.Optional("user_id", default=DEFAULT_USER_ID): vol.All(str, vol.Length(min=1)),
        vol.Optional("api"): API_SCHEMA,
    }
)


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    api_key: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_API_TIMEOUT
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    cache_ttl: float = DEFAULT_CACHE_TTL


@dataclass(frozen=True)
class LibraryConfig:
    """Validated configuration with defaults applied."""

    storage: dict[str, Any] = field(default_factory=lambda: {"backend": BACKEND_MEMORY})
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    page_size: int = DEFAULT_PAGE_SIZE
    user_id: str = DEFAULT_USER_ID
    api: ApiConfig | None = None


def load_config(raw: dict[str, Any] | None = None) -> LibraryConfig:
    """Validate ``raw`` and build a ``LibraryConfig``.

    Raises ValidationError listing every violated constraint.
    """

    data = validate(CONFIG_SCHEMA, raw if raw is not None else {}).unwrap()
    api_raw = data.get("api")
    return LibraryConfig(
        storage=dict(data["storage"]),
        debounce_seconds=data["debounce_seconds"],
        page_size=data["page_size"],
        user_id=data["user_id"],
        api=ApiConfig(**api_raw) if api_raw is not None else None,
    )
