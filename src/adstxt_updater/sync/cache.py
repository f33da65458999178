from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Optional

import aiohttp

from adstxt_updater.errors import FetchFailed

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    key: str
    content: str
    fetched_at: float


@dataclass(frozen=True, slots=True)
class FetchResult:
    content: str
    fresh: bool


class FetchCache:
    """
    Caches fetched ads.txt content per url.

    Freshness is decided per call from the ttl the caller passes, so destinations sharing a url
    may use different cache durations. When a request fails, the last successfully fetched
    content is served as stale instead, whatever its age.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._clock = clock
        self._session = session
        self._owns_session = session is None
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Task[str]] = {}

    async def __aenter__(self) -> FetchCache:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def fetch(self, key: str, ttl: timedelta) -> FetchResult:
        existing = self._entries.get(key)
        if existing is not None and self._clock() - existing.fetched_at < ttl.total_seconds():
            logger.debug("Serving cached content. url=%s", key)
            return FetchResult(content=existing.content, fresh=True)

        try:
            await self._refresh(key)
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            existing = self._entries.get(key)
            if existing is None:
                logger.warning("Fetch failed and nothing is cached. url=%s error=%r", key, e)
                raise FetchFailed(key) from e
            logger.warning("Fetch failed, serving stale content. url=%s error=%r", key, e)
            return FetchResult(content=existing.content, fresh=False)

        return FetchResult(content=self._entries[key].content, fresh=True)

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def _refresh(self, key: str) -> None:
        # Callers asking for the same url while a request is in flight share that request.
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._request_and_store(key))
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget_inflight(key, done))
        await asyncio.shield(task)

    def _forget_inflight(self, key: str, task: asyncio.Task[str]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            task.exception()

    async def _request_and_store(self, key: str) -> str:
        fetched_at = self._clock()
        content = await self._request_text(key)
        self._entries[key] = CacheEntry(key=key, content=content, fetched_at=fetched_at)
        logger.info("Fetched source. url=%s size=%d", key, len(content))
        return content

    async def _request_text(self, url: str) -> str:
        session = self._get_session()
        async with session.get(url, timeout=self._timeout) as response:
            if not 200 <= response.status < 300:
                raise aiohttp.ClientResponseError(
                    response.request_info,
                    response.history,
                    status=response.status,
                    message=f"Unexpected status for ads.txt source: {response.status}",
                    headers=response.headers,
                )
            return await response.text()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session
