from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from adstxt_updater.config.loader import DestinationConfigLoader
from adstxt_updater.core.runner import CoalescingTaskRunner
from adstxt_updater.core.utils import utc_now
from adstxt_updater.sync.reconciler import DestinationReconciler, SourceFetcher
from adstxt_updater.sync.watch import FileWatcher, WatchGroup

logger = logging.getLogger(__name__)


def _flatten_failures(results: list[object]) -> list[Exception]:
    failures: list[Exception] = []
    for result in results:
        if isinstance(result, ExceptionGroup):
            failures.extend(result.exceptions)
        elif isinstance(result, Exception):
            failures.append(result)
    return failures


class ConfigSupervisor:
    """
    Owns the destination reconcilers described by one configuration file.

    The file is watched; each change tears down the whole reconciler set and builds a new one
    from the reloaded document. A document that fails to load leaves the current set running.
    """

    def __init__(
        self,
        config_path: Path,
        *,
        cache: SourceFetcher,
        watcher: FileWatcher,
        cache_ttl: timedelta,
        loader: Optional[DestinationConfigLoader] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config_path = config_path
        self._cache = cache
        self._watcher = watcher
        self._cache_ttl = cache_ttl
        self._loader = loader or DestinationConfigLoader()
        self._clock = clock
        self._reconcilers: tuple[DestinationReconciler, ...] = ()
        self._teardowns: set[asyncio.Task[None]] = set()
        self._runner = CoalescingTaskRunner(self._reload, name=f"config:{config_path}")
        self._config_watch = WatchGroup(watcher, self._on_config_changed, name=str(config_path))
        self._started = False
        self._destroyed = False

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def reconcilers(self) -> tuple[DestinationReconciler, ...]:
        return self._reconcilers

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._runner.trigger()
        self._config_watch.rearm([self._config_path])

    def trigger(self) -> None:
        if self._destroyed:
            return
        self._runner.trigger()

    async def wait_idle(self) -> None:
        """
        Wait for the pending reload, every held reconciler and every reconciler being torn down.

        Failures from any of them are raised together in one ExceptionGroup.
        """
        results: list[object] = []
        try:
            await self._runner.wait_idle()
        except ExceptionGroup as e:
            results.append(e)

        awaitables = [reconciler.wait_idle() for reconciler in self._reconcilers]
        teardowns = list(self._teardowns)
        self._teardowns.difference_update(teardowns)
        awaitables.extend(teardowns)
        results.extend(await asyncio.gather(*awaitables, return_exceptions=True))

        failures = _flatten_failures(results)
        if failures:
            raise ExceptionGroup(f"Configuration {self._config_path} has failures", failures)

    async def destroy(self) -> None:
        if self._destroyed:
            raise RuntimeError(f"Supervisor is already destroyed. path={self._config_path}")
        self._destroyed = True
        try:
            await self._runner.wait_idle()
        finally:
            reconcilers, self._reconcilers = self._reconcilers, ()
            for reconciler in reconcilers:
                self._begin_teardown(reconciler)
            teardowns = list(self._teardowns)
            self._teardowns.clear()
            await self._config_watch.aclose()
            results = await asyncio.gather(*teardowns, return_exceptions=True)
            failures = _flatten_failures(list(results))
            logger.info("Configuration supervisor stopped. path=%s", self._config_path)
        if failures:
            raise ExceptionGroup(f"Tearing down {self._config_path} failed", failures)

    def _on_config_changed(self) -> None:
        logger.info("Configuration changed, reloading. path=%s", self._config_path)
        self.trigger()

    def _begin_teardown(self, reconciler: DestinationReconciler) -> None:
        task = asyncio.create_task(reconciler.destroy(), name=f"teardown:{reconciler.destination}")
        self._teardowns.add(task)
        task.add_done_callback(self._log_teardown_result)

    def _log_teardown_result(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            self._teardowns.discard(task)
            return
        error = task.exception()
        if error is None:
            self._teardowns.discard(task)
            return
        # Kept so the next wait_idle() reports it.
        logger.error("Reconciler teardown reported failures. error=%r", error)

    async def _reload(self) -> None:
        if self._destroyed:
            return
        try:
            specs = await self._loader.load(self._config_path)

            for reconciler in self._reconcilers:
                self._begin_teardown(reconciler)

            reconcilers = []
            for spec in specs:
                reconciler = DestinationReconciler(
                    spec,
                    cache=self._cache,
                    watcher=self._watcher,
                    cache_ttl=self._cache_ttl,
                    clock=self._clock,
                )
                reconciler.start()
                reconcilers.append(reconciler)
            self._reconcilers = tuple(reconcilers)

            logger.info("Loaded configuration. path=%s destinations=%d", self._config_path, len(reconcilers))
        finally:
            self._config_watch.rearm([self._config_path])
