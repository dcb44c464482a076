"""Read-only Karakeep API client.

Only the bookmark listing endpoint is used. Transient failures (timeouts,
connection errors, 408/429/5xx) are retried with exponential backoff; other
HTTP errors surface immediately as :class:`httpx.HTTPStatusError`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from bookmark_sync.adapters.karakeep.models import KarakeepBookmark, KarakeepBookmarkList
from bookmark_sync.core.backoff import backoff_delay

if TYPE_CHECKING:
    from typing import Self

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
PAGE_LIMIT = 100


class KarakeepClientError(Exception):
    """Karakeep could not be reached, or kept failing after every retry."""


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.1

    def delay(self, attempt: int) -> float:
        return backoff_delay(attempt, self.base_delay, self.max_delay, self.jitter)


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in TRANSIENT_STATUS_CODES
    return isinstance(exc, (httpx.TransportError, httpx.TimeoutException))


class KarakeepClient:
    """Async client for ``GET /bookmarks``.

    Must be entered before use:

        async with KarakeepClient(api_url, api_key) as client:
            items = await client.get_all_bookmarks(archived=False)
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: float = 30.0,
        *,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._api_key = api_key
        self.timeout = timeout
        self.retry = RetryPolicy(
            max_retries=max(0, max_retries),
            base_delay=retry_base_delay,
            max_delay=retry_max_delay,
        )
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        self._http = httpx.AsyncClient(
            base_url=self.api_url,
            headers={"Authorization": f"Bearer {self._api_key}", "Accept": "application/json"},
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _session(self) -> httpx.AsyncClient:
        if self._http is None:
            msg = "KarakeepClient used outside 'async with'"
            raise KarakeepClientError(msg)
        return self._http

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        http = self._session()
        attempt = 0
        while True:
            try:
                response = await http.get(path, params=params)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPError as exc:
                if not is_transient(exc):
                    raise
                if attempt >= self.retry.max_retries:
                    logger.error(
                        "karakeep_request_failed",
                        extra={"path": path, "attempts": attempt + 1, "error": str(exc)},
                    )
                    msg = f"GET {path} failed after {attempt + 1} attempts: {exc}"
                    raise KarakeepClientError(msg) from exc
                delay = self.retry.delay(attempt)
                logger.warning(
                    "karakeep_request_retry",
                    extra={
                        "path": path,
                        "attempt": attempt + 1,
                        "delay_seconds": round(delay, 2),
                        "error": str(exc),
                    },
                )
                attempt += 1
                await asyncio.sleep(delay)

    async def get_bookmarks(
        self,
        limit: int = PAGE_LIMIT,
        cursor: str | None = None,
        archived: bool | None = None,
    ) -> KarakeepBookmarkList:
        """One page of bookmarks; ``archived=None`` returns both kinds."""
        params: dict[str, Any] = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        if archived is not None:
            params["archived"] = str(archived).lower()
        payload = await self._get_json("/bookmarks", params)
        return KarakeepBookmarkList.model_validate(payload)

    async def get_all_bookmarks(self, archived: bool | None = None) -> list[KarakeepBookmark]:
        items: list[KarakeepBookmark] = []
        cursor: str | None = None
        pages = 0
        while True:
            page = await self.get_bookmarks(cursor=cursor, archived=archived)
            pages += 1
            items.extend(page.bookmarks)
            # A repeated cursor would loop forever.
            if not page.next_cursor or page.next_cursor == cursor:
                break
            cursor = page.next_cursor

        logger.info("karakeep_bookmarks_listed", extra={"count": len(items), "pages": pages})
        return items

    async def health_check(self) -> bool:
        try:
            await self.get_bookmarks(limit=1)
        except (KarakeepClientError, httpx.HTTPError) as exc:
            logger.warning("karakeep_health_check_failed", extra={"error": str(exc)})
            return False
        return True
