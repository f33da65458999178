from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence

from adstxt_updater.config.models import DestinationSpec, SourceSpec
from adstxt_updater.core.io import atomic_write_text, read_text_if_exists
from adstxt_updater.core.runner import CoalescingTaskRunner
from adstxt_updater.core.utils import format_http_date, utc_now
from adstxt_updater.errors import DestinationIOFailed, FetchFailed
from adstxt_updater.sync.cache import FetchResult
from adstxt_updater.sync.transform import transform_ads_txt
from adstxt_updater.sync.watch import FileWatcher, WatchGroup, watch_chain

logger = logging.getLogger(__name__)

GENERATED_HEADER_PREFIX = "# This file was generated on "
NO_SOURCES_WARNING = "# Warning: The configuration file contains no sources urls.\n"


class SourceFetcher(Protocol):
    async def fetch(self, key: str, ttl: timedelta) -> FetchResult:
        ...


@dataclass(frozen=True, slots=True)
class SourceOutcome:
    url: str
    result: Optional[FetchResult]

    @property
    def failed(self) -> bool:
        return self.result is None

    @property
    def stale(self) -> bool:
        return self.result is not None and not self.result.fresh


def assemble_ads_txt(outcomes: Sequence[SourceOutcome], generated_at: datetime) -> str:
    """Build the destination content from per-source outcomes given in configuration order."""
    if not outcomes:
        return NO_SOURCES_WARNING

    failed = [o.url for o in outcomes if o.failed]
    stale = [o.url for o in outcomes if o.stale]

    parts = [f"{GENERATED_HEADER_PREFIX}{format_http_date(generated_at)}\n\n"]
    if failed:
        parts.append("# Error: The following urls failed and are not included:\n")
        parts.extend(f"# - {url}\n" for url in failed)
        parts.append("\n")
    if stale:
        parts.append("# Warning: The following urls failed, but were cached and are still included:\n")
        parts.extend(f"# - {url}\n" for url in stale)
        parts.append("\n")
    for outcome in outcomes:
        if outcome.result is None:
            continue
        parts.append(f"# Fetched from {outcome.url}\n")
        parts.append(outcome.result.content)
        parts.append("\n\n")
    return "".join(parts)


def _without_generated_header(content: str) -> str:
    if not content.startswith(GENERATED_HEADER_PREFIX):
        return content
    _, _, rest = content.partition("\n")
    return rest


def contents_match(current: Optional[str], desired: str) -> bool:
    """
    Compare destination contents, ignoring the generation timestamp line.

    A file that differs only in that line counts as up to date and is not rewritten, even when
    the line was edited by hand.
    """
    if current is None:
        return False
    if current.startswith(GENERATED_HEADER_PREFIX) != desired.startswith(GENERATED_HEADER_PREFIX):
        return False
    return _without_generated_header(current) == _without_generated_header(desired)


class DestinationReconciler:
    """
    Keeps one destination file equal to the content assembled from its sources.

    A rebuild runs when the reconciler starts, every update interval, and whenever the destination
    or one of its parent directories changes on disk. Rebuilds never overlap; triggers that arrive
    during a rebuild collapse into one more rebuild.
    """

    def __init__(
        self,
        spec: DestinationSpec,
        *,
        cache: SourceFetcher,
        watcher: FileWatcher,
        cache_ttl: timedelta,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._spec = spec
        self._path = Path(spec.destination)
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._clock = clock
        self._interval = spec.interval
        self._runner = CoalescingTaskRunner(self._rebuild, name=f"destination:{self._path}")
        self._watches = WatchGroup(watcher, self.trigger, name=str(self._path))
        self._stop_event = asyncio.Event()
        self._timer_task: Optional[asyncio.Task[None]] = None
        self._started = False
        self._destroyed = False

    @property
    def destination(self) -> Path:
        return self._path

    @property
    def spec(self) -> DestinationSpec:
        return self._spec

    @property
    def interval(self) -> timedelta:
        return self._interval

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        logger.info(
            "Starting destination reconciler. destination=%s sources=%d interval=%s",
            self._path,
            len(self._spec.sources),
            self._interval,
        )
        self.trigger()
        self._watches.rearm(watch_chain(self._path))
        self._timer_task = asyncio.create_task(self._periodic_loop(), name=f"timer:{self._path}")

    def trigger(self) -> None:
        if self._destroyed:
            return
        self._runner.trigger()

    async def wait_idle(self) -> None:
        """Wait for the running rebuild and any queued rebuild to finish."""
        await self._runner.wait_idle()

    async def destroy(self) -> None:
        if self._destroyed:
            raise RuntimeError(f"Reconciler is already destroyed. destination={self._path}")
        self._destroyed = True
        self._stop_event.set()
        try:
            await self._runner.wait_idle()
        finally:
            await self._watches.aclose()
            if self._timer_task is not None:
                await self._timer_task
                self._timer_task = None
            logger.info("Destination reconciler stopped. destination=%s", self._path)

    async def _periodic_loop(self) -> None:
        interval = self._interval.total_seconds()
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                logger.debug("Update interval elapsed. destination=%s", self._path)
                self.trigger()

    async def _rebuild(self) -> None:
        if self._destroyed:
            return
        logger.info("Fetching required content. destination=%s", self._path)
        outcomes = await self._fetch_sources()
        desired = assemble_ads_txt(outcomes, self._clock())

        try:
            current = await asyncio.to_thread(read_text_if_exists, self._path)
        except OSError as e:
            raise DestinationIOFailed(self._path, "read") from e

        if contents_match(current, desired):
            logger.debug("Destination is up to date. destination=%s", self._path)
            return

        try:
            await asyncio.to_thread(atomic_write_text, self._path, desired)
        except OSError as e:
            raise DestinationIOFailed(self._path, "write") from e
        logger.info("Updated destination. destination=%s", self._path)
        self._watches.rearm(watch_chain(self._path))

    async def _fetch_sources(self) -> list[SourceOutcome]:
        return list(await asyncio.gather(*(self._fetch_one(source) for source in self._spec.sources)))

    async def _fetch_one(self, source: SourceSpec) -> SourceOutcome:
        try:
            result = await self._cache.fetch(source.url, self._cache_ttl)
        except FetchFailed:
            return SourceOutcome(url=source.url, result=None)
        if source.transform is not None:
            result = FetchResult(content=transform_ads_txt(result.content, source.transform), fresh=result.fresh)
        return SourceOutcome(url=source.url, result=result)
