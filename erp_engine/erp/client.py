"""Read-only async client for the Odoo JSON-RPC API.

Every call goes through ``call()``, which enforces the read-only allow-list
before any I/O, authenticates once per client instance, and retries
transient failures (HTTP 5xx, network errors) with exponential backoff.
Typed helpers validate the response shape and return ``Record`` rows.
"""

import asyncio
import itertools
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from erp_engine.cache import MISS, QueryCache, make_key
from erp_engine.domain.builder import to_wire
from erp_engine.erp.errors import (
    ErpApiError,
    ErpAuthError,
    ErpConnectionError,
    ErpError,
    ReadOnlyViolation,
)
from erp_engine.erp.records import Record, to_records
from erp_engine.observability.metrics import RPC_CALLS_TOTAL, RPC_DURATION, RPC_RETRIES_TOTAL

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0

READ_METHODS = frozenset({"search_read", "read", "search_count", "fields_get", "read_group"})
CACHEABLE_METHODS = frozenset({"search_read", "read_group", "search_count"})

type DomainLike = Sequence[Sequence[Any] | str]


class ErpCredentials(BaseModel):
    """Connection details for one tenant's Odoo instance. Never persisted."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = Field(min_length=1, description="Base URL, e.g. https://acme.odoo.com")
    db: str = Field(min_length=1, validation_alias=AliasChoices("db", "database"))
    username: str = Field(min_length=1)
    api_key: str = Field(min_length=1, validation_alias=AliasChoices("api_key", "apiKey"), repr=False)

    @property
    def endpoint(self) -> str:
        return f"{self.url.rstrip('/')}/jsonrpc"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)


def _rpc_error_message(error: dict[str, Any]) -> str:
    data = error.get("data")
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return str(error.get("message") or "Unknown JSON-RPC error")


def _is_access_denied(error: dict[str, Any]) -> bool:
    data = error.get("data")
    name = str(data.get("name", "")) if isinstance(data, dict) else ""
    return "AccessDenied" in name or "AccessError" in name


class OdooClient:
    """JSON-RPC client bound to one set of credentials.

    The authenticated uid is cached for the life of the instance; concurrent
    callers share a single login. When ``cache`` is set, ``search_read``,
    ``read_group`` and ``search_count`` results are cached per tenant.
    """

    def __init__(
        self,
        credentials: ErpCredentials,
        *,
        tenant_id: str = "",
        cache: QueryCache | None = None,
        retry: RetryPolicy | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.credentials = credentials
        self.tenant_id = tenant_id or credentials.db
        self.cache = cache
        self.retry = retry or RetryPolicy()
        self.timeout = timeout
        self._sleep = sleep
        self._uid: int | None = None
        self._login_lock = asyncio.Lock()
        self._ids = itertools.count(1)

    @property
    def uid(self) -> int | None:
        return self._uid

    # --- Transport ---

    async def _post(self, service: str, method: str, args: list[Any]) -> object:
        """One JSON-RPC round trip with retry on transient failures."""
        payload = {
            "jsonrpc": "2.0",
            "method": "call",
            "params": {"service": service, "method": method, "args": args},
            "id": next(self._ids),
        }
        max_attempts = max(1, self.retry.max_attempts)
        rpc_method = args[4] if service == "object" and len(args) > 4 else method

        for attempt in range(1, max_attempts + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.credentials.endpoint, json=payload)
                    _ = response.raise_for_status()
                    body: object = response.json()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status >= 500 and attempt < max_attempts:
                    await self._backoff(rpc_method, attempt, max_attempts, f"HTTP {status}")
                    continue
                if status in (401, 403):
                    raise ErpAuthError(f"ERP rejected the request (HTTP {status})") from exc
                raise ErpApiError(
                    f"ERP returned HTTP {status} for {rpc_method}",
                    status_code=status,
                ) from exc
            except httpx.TransportError as exc:
                if attempt < max_attempts:
                    await self._backoff(rpc_method, attempt, max_attempts, type(exc).__name__)
                    continue
                raise ErpConnectionError(
                    f"Cannot reach ERP at {self.credentials.url} after {attempt} attempts: {exc}",
                    details={"attempts": attempt},
                ) from exc
            except ValueError as exc:
                raise ErpApiError(f"ERP returned a non-JSON body for {rpc_method}") from exc

            if not isinstance(body, dict):
                raise ErpApiError(f"Unexpected JSON-RPC envelope for {rpc_method}")
            error = body.get("error")
            if isinstance(error, dict):
                message = _rpc_error_message(error)
                if _is_access_denied(error):
                    raise ErpAuthError(message)
                raise ErpApiError(message, details={"rpc_code": error.get("code")})
            return body.get("result")

        raise RuntimeError("Unreachable")  # pragma: no cover

    async def _backoff(self, method: str, attempt: int, max_attempts: int, reason: str) -> None:
        wait = self.retry.delay_for(attempt)
        logger.warning(
            "ERP call %s failed (%s), retrying in %.1fs (attempt %d/%d)",
            method,
            reason,
            wait,
            attempt,
            max_attempts,
        )
        RPC_RETRIES_TOTAL.labels(method=method).inc()
        await self._sleep(wait)

    # --- Session ---

    async def authenticate(self) -> int:
        """Log in once and reuse the uid for every later call."""
        if self._uid is not None:
            return self._uid
        async with self._login_lock:
            if self._uid is not None:
                return self._uid
            creds = self.credentials
            result = await self._post("common", "authenticate", [creds.db, creds.username, creds.api_key, {}])
            if not isinstance(result, int) or isinstance(result, bool) or result <= 0:
                raise ErpAuthError(
                    f"Authentication failed for user '{creds.username}' on database '{creds.db}'",
                    details={"db": creds.db, "username": creds.username},
                )
            self._uid = result
            logger.debug("Authenticated on %s as uid %d", creds.db, result)
            return result

    # --- Generic call ---

    async def call(
        self,
        model: str,
        method: str,
        args: list[Any] | None = None,
        kwargs: dict[str, Any] | None = None,
    ) -> object:
        """Run one allowed method via ``execute_kw`` and return the raw result."""
        if method not in READ_METHODS:
            raise ReadOnlyViolation(model, method)

        args = args or []
        kwargs = kwargs or {}
        cache_key: str | None = None
        if self.cache is not None and method in CACHEABLE_METHODS:
            cache_key = make_key(self.tenant_id, model, method, args, kwargs)
            cached = self.cache.get(cache_key)
            if cached is not MISS:
                return cached

        start = time.monotonic()
        try:
            uid = await self.authenticate()
            creds = self.credentials
            result = await self._post(
                "object",
                "execute_kw",
                [creds.db, uid, creds.api_key, model, method, args, kwargs],
            )
        except ErpError as exc:
            RPC_CALLS_TOTAL.labels(model=model, method=method, status=exc.code.value).inc()
            raise
        finally:
            RPC_DURATION.labels(method=method).observe(time.monotonic() - start)

        RPC_CALLS_TOTAL.labels(model=model, method=method, status="success").inc()
        if cache_key is not None and self.cache is not None:
            self.cache.set(cache_key, result)
        return result

    # --- Typed helpers ---

    async def search_read(
        self,
        model: str,
        domain: DomainLike | None = None,
        fields: list[str] | None = None,
        *,
        limit: int | None = None,
        offset: int = 0,
        order: str | None = None,
    ) -> list[Record]:
        kwargs: dict[str, Any] = {"fields": fields or []}
        if limit is not None:
            kwargs["limit"] = limit
        if offset:
            kwargs["offset"] = offset
        if order:
            kwargs["order"] = order
        result = await self.call(model, "search_read", [to_wire(domain)], kwargs)
        return to_records(result, model=model, method="search_read")

    async def read(self, model: str, ids: Sequence[int], fields: list[str] | None = None) -> list[Record]:
        if not ids:
            return []
        result = await self.call(model, "read", [list(ids)], {"fields": fields or []})
        return to_records(result, model=model, method="read")

    async def search_count(self, model: str, domain: DomainLike | None = None) -> int:
        result = await self.call(model, "search_count", [to_wire(domain)])
        if not isinstance(result, int) or isinstance(result, bool):
            raise ErpApiError(f"Unexpected search_count response for '{model}': {result!r}")
        return result

    async def fields_get(self, model: str, attributes: list[str] | None = None) -> dict[str, dict[str, Any]]:
        result = await self.call(model, "fields_get", [], {"attributes": attributes or ["string", "type"]})
        if not isinstance(result, dict):
            raise ErpApiError(f"Unexpected fields_get response for '{model}'")
        return {str(name): meta for name, meta in result.items() if isinstance(meta, dict)}

    async def read_group(
        self,
        model: str,
        domain: DomainLike | None,
        fields: list[str],
        groupby: list[str] | None = None,
        *,
        limit: int | None = None,
        offset: int = 0,
        orderby: str | None = None,
        lazy: bool = True,
    ) -> list[Record]:
        kwargs: dict[str, Any] = {"fields": fields, "groupby": groupby or [], "lazy": lazy}
        if limit is not None:
            kwargs["limit"] = limit
        if offset:
            kwargs["offset"] = offset
        if orderby:
            kwargs["orderby"] = orderby
        result = await self.call(model, "read_group", [to_wire(domain)], kwargs)
        return to_records(result, model=model, method="read_group")
