from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from adstxt_updater.errors import FetchFailed
from adstxt_updater.sync.cache import FetchResult
from adstxt_updater.sync.watch import FsEvent, FsEventKind

FIXED_NOW = datetime(2026, 10, 18, 9, 30, 0, tzinfo=timezone.utc)
FIXED_HEADER = "# This file was generated on Sun, 18 Oct 2026 09:30:00 GMT\n\n"

_CLOSED = object()


class FakeFetchCache:
    """Serves results from a dict; urls without an entry fail like an empty cache would."""

    def __init__(self, results: Optional[Dict[str, FetchResult]] = None) -> None:
        if results is None:
            results = {
                "https://example/ads1.txt": FetchResult(content="content1", fresh=True),
                "https://example/ads2.txt": FetchResult(content="content2", fresh=True),
            }
        self.results = results
        self.calls: List[str] = []

    async def fetch(self, key: str, ttl: timedelta) -> FetchResult:
        self.calls.append(key)
        result = self.results.get(key)
        if result is None:
            raise FetchFailed(key)
        return result


class FakeSubscription:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.closed = False
        self._queue: asyncio.Queue[object] = asyncio.Queue()

    def push(self, event: FsEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[FsEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


class FakeFileWatcher:
    """In-memory FileWatcher; events are delivered with emit()."""

    def __init__(self) -> None:
        self.subscriptions: List[FakeSubscription] = []

    def watch(self, path: Path) -> FakeSubscription:
        if not path.exists():
            raise FileNotFoundError(f"Path at {path} does not exist")
        subscription = FakeSubscription(path)
        self.subscriptions.append(subscription)
        return subscription

    def open_subscriptions(self, path: Optional[Path] = None) -> List[FakeSubscription]:
        return [s for s in self.subscriptions if not s.closed and (path is None or s.path == path)]

    def emit(self, watched: Path, kind: FsEventKind, *paths: Path) -> int:
        """Deliver an event to every open subscription on `watched`; returns how many received it."""
        event = FsEvent(kind=kind, paths=tuple(str(p) for p in (paths or (watched,))))
        targets = self.open_subscriptions(watched)
        for subscription in targets:
            subscription.push(event)
        return len(targets)


async def settle(component, rounds: int = 3) -> None:
    """Let watch forwarding tasks run, then wait for the component to become idle."""
    for _ in range(rounds):
        for _ in range(10):
            await asyncio.sleep(0)
        await component.wait_idle()
