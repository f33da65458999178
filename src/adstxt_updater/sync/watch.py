from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable, Iterable, Protocol

import anyio.to_thread
from watchfiles import Change, awatch

logger = logging.getLogger(__name__)


class FsEventKind(enum.Enum):
    ACCESS = "access"
    CREATE = "create"
    MODIFY = "modify"
    REMOVE = "remove"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class FsEvent:
    kind: FsEventKind
    paths: tuple[str, ...]


class WatchSubscription(Protocol):
    def __aiter__(self) -> AsyncIterator[FsEvent]:
        ...

    def close(self) -> None:
        ...


class FileWatcher(Protocol):
    def watch(self, path: Path) -> WatchSubscription:
        """Subscribe to changes of a single path. Raises FileNotFoundError if it does not exist."""
        ...


_CHANGE_KINDS = {
    Change.added: FsEventKind.CREATE,
    Change.modified: FsEventKind.MODIFY,
    Change.deleted: FsEventKind.REMOVE,
}


# awatch blocks one anyio worker thread per subscription for as long as it runs.
_SPARE_WORKER_THREADS = 40


def _reserve_worker_threads(watching: int) -> None:
    limiter = anyio.to_thread.current_default_thread_limiter()
    wanted = watching + _SPARE_WORKER_THREADS
    if limiter.total_tokens < wanted:
        limiter.total_tokens = wanted


class _WatchfilesSubscription:
    def __init__(self, watcher: WatchfilesWatcher, path: Path) -> None:
        self._watcher = watcher
        self._path = path
        self._stop_event = asyncio.Event()

    async def __aiter__(self) -> AsyncIterator[FsEvent]:
        self._watcher.active += 1
        _reserve_worker_threads(self._watcher.active)
        try:
            async for changes in awatch(
                self._path,
                watch_filter=None,
                recursive=False,
                debounce=self._watcher.debounce_ms,
                stop_event=self._stop_event,
                force_polling=self._watcher.force_polling,
            ):
                for change, changed_path in changes:
                    yield FsEvent(kind=_CHANGE_KINDS.get(change, FsEventKind.OTHER), paths=(changed_path,))
        finally:
            self._watcher.active -= 1

    def close(self) -> None:
        self._stop_event.set()


class WatchfilesWatcher:
    """
    FileWatcher backed by the native notification API of the platform, through watchfiles.

    Every running subscription holds a worker thread of anyio's default limiter, so the limiter
    is grown to keep the usual number of threads free for other blocking calls.
    """

    def __init__(self, *, debounce_ms: int = 1600, force_polling: bool = False) -> None:
        self.debounce_ms = debounce_ms
        self.force_polling = force_polling
        self.active = 0

    def watch(self, path: Path) -> WatchSubscription:
        if not path.exists():
            raise FileNotFoundError(f"Path at {path} does not exist")
        return _WatchfilesSubscription(self, path)


class WatchGroup:
    """
    The set of watch subscriptions owned by one component.

    The set is only ever replaced as a whole. Each subscription is consumed by its own task,
    which forwards events about the watched paths to `on_change`. Access events are dropped so
    reading a watched file never schedules work.
    """

    def __init__(self, watcher: FileWatcher, on_change: Callable[[], object], *, name: str) -> None:
        self._watcher = watcher
        self._on_change = on_change
        self._name = name
        self._subscriptions: list[WatchSubscription] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._relevant: frozenset[str] = frozenset()
        self._closed = False

    @property
    def watched_count(self) -> int:
        return len(self._subscriptions)

    def rearm(self, paths: Iterable[Path]) -> None:
        """Close every current subscription and watch `paths` instead, skipping missing ones."""
        if self._closed:
            return
        self._close_subscriptions()
        paths = list(paths)
        self._relevant = frozenset(str(p) for p in paths)
        for path in paths:
            try:
                subscription = self._watcher.watch(path)
            except FileNotFoundError:
                # Retried on the next rearm.
                logger.debug("Watch target does not exist yet. watcher=%s path=%s", self._name, path)
                continue
            self._subscriptions.append(subscription)
            task = asyncio.create_task(self._forward(path, subscription), name=f"watch:{path}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def aclose(self) -> None:
        self._closed = True
        tasks = self._close_subscriptions()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _close_subscriptions(self) -> list[asyncio.Task[None]]:
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions = []
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        return tasks

    def _is_relevant(self, event: FsEvent) -> bool:
        return any(p in self._relevant for p in event.paths)

    async def _forward(self, path: Path, subscription: WatchSubscription) -> None:
        try:
            async for event in subscription:
                if event.kind is FsEventKind.ACCESS:
                    continue
                if not self._is_relevant(event):
                    continue
                logger.debug(
                    "Filesystem change detected. watcher=%s path=%s kind=%s",
                    self._name,
                    path,
                    event.kind.value,
                )
                self._on_change()
        except FileNotFoundError:
            logger.debug("Watch target disappeared before the watch started. watcher=%s path=%s", self._name, path)
        except Exception:
            logger.exception("Watch subscription failed. watcher=%s path=%s", self._name, path)


def watch_chain(path: Path) -> list[Path]:
    """Return `path` followed by each of its ancestors up to and including the root."""
    return [path, *path.parents]
