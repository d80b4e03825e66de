"""REST implementation of the data-source contract on top of aiohttp.

Endpoints live under ``{base_url}/ingredients``. Requests carry an optional
bearer token, time out after ``timeout`` seconds and are retried with linear
backoff (``retry_delay * attempt``). ``async_list`` and
``async_get_filter_options`` responses are cached for ``cache_ttl`` seconds;
any write clears the cache.

Transport errors, non-2xx statuses and malformed payloads are raised
internally as ``DataSourceError`` and reported as failed ``OperationResult``s.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, TypeVar
from urllib.parse import quote

import aiohttp

from .const import (
    DEFAULT_API_TIMEOUT,
    DEFAULT_CACHE_TTL,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY,
    DOMAIN,
)
from .data_source import DataSource, ExportOptions, ListOptions, guard_operation
from .exceptions import DataSourceError
from .filters import coerce_range
from .models import Ingredient, OperationResult
from .schemas import validate_ingredient

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

HTTP_NO_CONTENT = 204
HTTP_ERROR_MIN = 400


def _describe(exc: BaseException) -> str:
    if isinstance(exc, TimeoutError):
        return "Request timed out"
    return str(exc) or exc.__class__.__name__


def _parse_ingredient(payload: Any) -> Ingredient:
    result = validate_ingredient(payload)
    if not result.ok:
        raise DataSourceError(f"invalid ingredient payload: {'; '.join(result.errors)}")
    return Ingredient.from_dict(result.value)


def _parse_total(value: Any, *, default: int) -> int:
    if value is None:
        return default
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int | str):
        raise DataSourceError(f"invalid total in list response: {value!r}")
    try:
        total = int(value)
    except ValueError as exc:
        raise DataSourceError(f"invalid total in list response: {value!r}") from exc
    if total < 0:
        raise DataSourceError(f"invalid total in list response: {value!r}")
    return total


def build_list_params(options: ListOptions | None) -> list[tuple[str, str]]:
    """Encode list options as repeated query parameters.

    Lists become ``key[]`` pairs, ranges ``key.min``/``key.max``, sort keys
    ``sort=<id>:<asc|desc>``. Inactive filters are omitted.
    """

    params: list[tuple[str, str]] = []
    if options is None:
        return params
    if options.filters is not None:
        for filter_id, value in options.filters.to_dict().items():
            if isinstance(value, bool):
                if value:
                    params.append((filter_id, "true"))
            elif isinstance(value, str):
                if value.strip():
                    params.append((filter_id, value.strip()))
            elif isinstance(value, list):
                params.extend((f"{filter_id}[]", str(item)) for item in value)
            else:
                bounds = coerce_range(value)
                if bounds is None:
                    continue
                if bounds.min is not None:
                    params.append((f"{filter_id}.min", str(bounds.min)))
                if bounds.max is not None:
                    params.append((f"{filter_id}.max", str(bounds.max)))
    for spec in options.sort_by:
        params.append(("sort", f"{spec.id}:{'desc' if spec.desc else 'asc'}"))
    if options.pagination is not None:
        params.append(("pageIndex", str(options.pagination.page_index)))
        params.append(("pageSize", str(options.pagination.page_size)))
    return params


class ApiDataSource(DataSource):
    """Data source backed by a remote REST API."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_API_TIMEOUT,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers: dict[str, str] = {"Accept": "application/json", **(headers or {})}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
        self._timeout = timeout
        self._retry_attempts = max(1, retry_attempts)
        self._retry_delay = retry_delay
        self._cache_ttl = cache_ttl
        self._cache: dict[str, tuple[float, Any]] = {}
        self._session = session
        self._owns_session = session is None

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def async_close(self) -> None:
        """Close the HTTP session if this client created it."""

        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def clear_cache(self) -> None:
        self._cache.clear()

    # -----------------------------
    # Transport
    # -----------------------------

    def _url(self, *segments: str) -> str:
        path = "/".join(quote(segment, safe="") for segment in segments)
        return f"{self._base_url}/ingredients" + (f"/{path}" if path else "")

    async def _request_once(
        self,
        method: str,
        url: str,
        *,
        params: list[tuple[str, str]] | None,
        body: Any,
    ) -> Any:
        session = self._get_session()
        async with session.request(
            method,
            url,
            params=params,
            json=body,
            headers=self._headers,
            timeout=aiohttp.ClientTimeout(total=self._timeout),
        ) as resp:
            if resp.status >= HTTP_ERROR_MIN:
                raise DataSourceError(f"HTTP {resp.status}: {resp.reason}")
            if resp.status == HTTP_NO_CONTENT:
                return None
            try:
                text = await resp.text()
            except UnicodeDecodeError as exc:
                raise DataSourceError("malformed response") from exc
            if not text:
                return None
            if resp.content_type == "application/json":
                try:
                    return json.loads(text)
                except json.JSONDecodeError as exc:
                    raise DataSourceError("malformed JSON response") from exc
            return text

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: list[tuple[str, str]] | None = None,
        body: Any = None,
    ) -> Any:
        last_error: BaseException | None = None
        for attempt in range(1, self._retry_attempts + 1):
            start_time = time.monotonic()
            try:
                data = await self._request_once(method, url, params=params, body=body)
            except (aiohttp.ClientError, TimeoutError, DataSourceError) as exc:
                last_error = exc
                LOGGER.debug(
                    "Request attempt failed",
                    extra={
                        "domain": DOMAIN,
                        "op": "http_request",
                        "method": method,
                        "url": url,
                        "attempt": attempt,
                        "error": _describe(exc),
                    },
                )
                if attempt < self._retry_attempts:
                    await asyncio.sleep(self._retry_delay * attempt)
                continue
            LOGGER.debug(
                "Request completed",
                extra={
                    "domain": DOMAIN,
                    "op": "http_request",
                    "method": method,
                    "url": url,
                    "attempt": attempt,
                    "elapsed_ms": int((time.monotonic() - start_time) * 1000),
                },
            )
            return data
        assert last_error is not None
        if isinstance(last_error, DataSourceError):
            raise last_error
        raise DataSourceError(_describe(last_error)) from last_error

    async def _cached(self, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        now = time.monotonic()
        hit = self._cache.get(key)
        if hit is not None and hit[0] > now:
            return hit[1]
        value = await fetch()
        if self._cache_ttl > 0:
            self._cache[key] = (now + self._cache_ttl, value)
        return value

    async def _write(self, method: str, url: str, body: Any = None) -> Any:
        data = await self._request(method, url, body=body)
        self.clear_cache()
        return data

    # -----------------------------
    # Reads
    # -----------------------------

    async def async_list(
        self, options: ListOptions | None = None
    ) -> OperationResult[list[Ingredient]]:
        params = build_list_params(options)

        async def _fetch() -> OperationResult[list[Ingredient]]:
            payload = await self._request("GET", self._url(), params=params)
            if isinstance(payload, list):
                records, total = payload, len(payload)
            elif isinstance(payload, Mapping) and isinstance(payload.get("data"), list):
                records = payload["data"]
                total = _parse_total(payload.get("total"), default=len(records))
            else:
                raise DataSourceError("unexpected list response shape")
            return OperationResult.ok([_parse_ingredient(r) for r in records], total=total)

        async def _list() -> OperationResult[list[Ingredient]]:
            return await self._cached(f"list:{json.dumps(params)}", _fetch)

        return await guard_operation("list", _list)

    async def async_get(self, ingredient_id: str) -> OperationResult[Ingredient]:
        async def _get() -> OperationResult[Ingredient]:
            payload = await self._request("GET", self._url(ingredient_id))
            return OperationResult.ok(_parse_ingredient(payload))

        return await guard_operation("get", _get, ingredient_id=ingredient_id)

    async def async_get_filter_options(self) -> OperationResult[dict[str, list[str]]]:
        async def _fetch() -> OperationResult[dict[str, list[str]]]:
            payload = await self._request("GET", self._url("filter-options"))
            if not isinstance(payload, Mapping):
                raise DataSourceError("unexpected filter options response shape")
            keys = ("categories", "families", "suppliers", "statuses", "types")
            return OperationResult.ok({k: [str(v) for v in payload.get(k) or []] for k in keys})

        async def _options() -> OperationResult[dict[str, list[str]]]:
            return await self._cached("filter-options", _fetch)

        return await guard_operation("get_filter_options", _options)

    async def async_bulk_export(
        self, ingredient_ids: Iterable[str], options: ExportOptions
    ) -> OperationResult[str]:
        body = {
            "ids": list(ingredient_ids),
            "format": options.format,
            "includeColumns": list(options.include_columns),
        }

        async def _export() -> OperationResult[str]:
            payload = await self._request("POST", self._url("export"), body=body)
            if isinstance(payload, Mapping):
                payload = payload.get("data")
            if not isinstance(payload, str):
                raise DataSourceError("unexpected export response shape")
            return OperationResult.ok(payload)

        return await guard_operation("bulk_export", _export)

    # -----------------------------
    # Writes
    # -----------------------------

    async def _ingredient_write(
        self, op: str, method: str, url: str, body: Any = None, **context: Any
    ) -> OperationResult[Ingredient]:
        async def _run() -> OperationResult[Ingredient]:
            return OperationResult.ok(_parse_ingredient(await self._write(method, url, body)))

        return await guard_operation(op, _run, **context)

    async def async_create(self, payload: Mapping[str, Any]) -> OperationResult[Ingredient]:
        return await self._ingredient_write("create", "POST", self._url(), dict(payload))

    async def async_update(
        self, ingredient_id: str, patch: Mapping[str, Any]
    ) -> OperationResult[Ingredient]:
        return await self._ingredient_write(
            "update", "PATCH", self._url(ingredient_id), dict(patch), ingredient_id=ingredient_id
        )

    async def async_delete(self, ingredient_id: str) -> OperationResult[None]:
        async def _delete() -> OperationResult[None]:
            await self._write("DELETE", self._url(ingredient_id))
            return OperationResult.ok(None)

        return await guard_operation("delete", _delete, ingredient_id=ingredient_id)

    async def async_toggle_favorite(self, ingredient_id: str) -> OperationResult[Ingredient]:
        return await self._ingredient_write(
            "toggle_favorite",
            "POST",
            self._url(ingredient_id, "toggle-favorite"),
            ingredient_id=ingredient_id,
        )

    async def async_duplicate(self, ingredient_id: str) -> OperationResult[Ingredient]:
        return await self._ingredient_write(
            "duplicate", "POST", self._url(ingredient_id, "duplicate"), ingredient_id=ingredient_id
        )

    async def async_archive(self, ingredient_id: str) -> OperationResult[Ingredient]:
        return await self._ingredient_write(
            "archive", "POST", self._url(ingredient_id, "archive"), ingredient_id=ingredient_id
        )
