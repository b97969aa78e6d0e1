"""Async HTTP client for a JSON record store API."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import quote

import httpx

from filmsync.adapters.records.errors import (
    ConflictError,
    RecordNotFoundError,
    RecordStoreError,
    RecordStoreRetryableError,
)
from filmsync.adapters.records.models import Record, RecordPage

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from typing import Self

    from filmsync.adapters.records.models import Predicate, SortKey
    from filmsync.config import RecordStoreConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

# HTTP status codes that should trigger a retry
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 0.5  # seconds
DEFAULT_MAX_DELAY = 10.0  # seconds
DEFAULT_JITTER = 0.1  # 10% jitter


def _is_retryable_error(exc: Exception) -> bool:
    if isinstance(exc, RecordStoreRetryableError):
        return True
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException, httpx.ReadError))


def _calculate_delay(attempt: int, base_delay: float, max_delay: float, jitter: float) -> float:
    """Exponential backoff with jitter for ``attempt`` (0-indexed)."""
    delay = min(base_delay * (2**attempt), max_delay)
    return delay + delay * jitter * random.random()


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    operation_name: str = "operation",
) -> T:
    """Execute an async function, retrying transient failures with backoff.

    Non-retryable errors (conflicts, missing records, 4xx) propagate immediately.

    Raises:
        RecordStoreError: If all retries are exhausted
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if not _is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(
                    "record_store_retry_exhausted",
                    extra={"operation": operation_name, "attempts": attempt + 1, "error": str(e)},
                )
                raise RecordStoreError(
                    f"{operation_name} failed after {attempt + 1} attempts: {e}",
                    status_code=getattr(e, "status_code", None),
                ) from e

            delay = _calculate_delay(attempt, base_delay, max_delay, jitter)
            logger.warning(
                "record_store_retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_retries": max_retries,
                    "delay_seconds": round(delay, 2),
                    "error": str(e),
                },
            )
            await asyncio.sleep(delay)

    raise RecordStoreError(f"{operation_name} failed")


class HttpRecordStoreClient:
    """Async HTTP client for the record store API.

    Endpoints (relative to ``api_url``):

    - ``POST /records/{type}/query`` → first page of a query
    - ``POST /records/query/continue`` → next page for a cursor
    - ``GET|PUT|DELETE /records/{type}/{name}`` → single record access
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: float = 60.0,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        retry_max_delay: float = DEFAULT_MAX_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Base URL for the record store API
            api_key: Bearer token for authentication
            timeout: Fixed request timeout in seconds
            max_retries: Maximum retry attempts for transient failures
            retry_base_delay: Base delay between retries in seconds
            retry_max_delay: Maximum delay between retries in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, cfg: RecordStoreConfig, **kwargs: Any) -> HttpRecordStoreClient:
        return cls(
            cfg.api_url,
            cfg.api_key,
            timeout=float(cfg.timeout_sec),
            max_retries=cfg.max_retries,
            **kwargs,
        )

    async def __aenter__(self) -> Self:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RecordStoreError("Client not initialized. Use async context manager.")
        return self._client

    async def _with_retry(self, func: Callable[[], Awaitable[T]], operation_name: str) -> T:
        return await retry_with_backoff(
            func,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            operation_name=operation_name,
        )

    @staticmethod
    def _record_path(record_type: str, record_name: str) -> str:
        return f"/records/{quote(record_type, safe='')}/{quote(record_name, safe='')}"

    @staticmethod
    def _check_response(
        response: httpx.Response, record_type: str = "", record_name: str = ""
    ) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 404 and record_name:
            raise RecordNotFoundError(record_type, record_name)
        if status == 409:
            server_record: Record | None = None
            try:
                body = response.json()
            except ValueError:
                body = {}
            raw = body.get("serverRecord") if isinstance(body, dict) else None
            if raw:
                server_record = Record.model_validate(raw)
            raise ConflictError(record_type, record_name, server_record)
        if status in RETRYABLE_STATUS_CODES:
            raise RecordStoreRetryableError(
                f"record store returned {status} for {response.request.url.path}",
                status_code=status,
            )
        raise RecordStoreError(
            f"record store rejected {response.request.method} {response.request.url.path}: "
            f"{status}",
            status_code=status,
        )

    async def query(
        self,
        record_type: str,
        predicate: Predicate,
        *,
        sort_keys: Sequence[SortKey] = (),
        limit: int = 100,
    ) -> RecordPage:
        body = {
            "predicate": predicate.to_dict(),
            "sort": [key.to_dict() for key in sort_keys],
            "limit": limit,
        }

        async def _fetch() -> RecordPage:
            response = await self.client.post(
                f"/records/{quote(record_type, safe='')}/query", json=body
            )
            self._check_response(response, record_type)
            return RecordPage.model_validate(response.json())

        return await self._with_retry(_fetch, f"query({record_type})")

    async def continue_query(self, cursor: str, *, limit: int = 100) -> RecordPage:
        async def _fetch() -> RecordPage:
            response = await self.client.post(
                "/records/query/continue", json={"cursor": cursor, "limit": limit}
            )
            self._check_response(response)
            return RecordPage.model_validate(response.json())

        return await self._with_retry(_fetch, "continue_query")

    async def read_record(self, record_type: str, record_name: str) -> Record:
        async def _fetch() -> Record:
            response = await self.client.get(self._record_path(record_type, record_name))
            self._check_response(response, record_type, record_name)
            return Record.model_validate(response.json())

        return await self._with_retry(_fetch, f"read_record({record_type}/{record_name})")

    async def save_record(self, record: Record) -> Record:
        body = {"fields": record.values, "changeTag": record.change_tag}

        async def _save() -> Record:
            response = await self.client.put(
                self._record_path(record.record_type, record.record_name), json=body
            )
            self._check_response(response, record.record_type, record.record_name)
            return Record.model_validate(response.json())

        return await self._with_retry(
            _save, f"save_record({record.record_type}/{record.record_name})"
        )

    async def delete_record(self, record_type: str, record_name: str) -> None:
        async def _delete() -> None:
            response = await self.client.delete(self._record_path(record_type, record_name))
            self._check_response(response, record_type, record_name)
            logger.debug(
                "record_deleted", extra={"record_type": record_type, "identity": record_name}
            )

        await self._with_retry(_delete, f"delete_record({record_type}/{record_name})")
