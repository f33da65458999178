from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RunnerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    RUNNING_WITH_RERUN_PENDING = "running_with_rerun_pending"


def _mark_observed(future: asyncio.Future[None]) -> None:
    # Failures are logged and reported through wait_idle(); nobody has to await
    # the per-execution future for them to be seen.
    if not future.cancelled():
        future.exception()


class CoalescingTaskRunner:
    """
    Runs one async unit of work with at most one execution in flight.

    Triggers that arrive while the work is running collapse into a single rerun that
    starts as soon as the current execution finishes, no matter how many of them arrive.
    """

    def __init__(self, work: Callable[[], Awaitable[None]], *, name: str) -> None:
        self._work = work
        self._name = name
        self._state = RunnerState.IDLE
        self._drive_task: Optional[asyncio.Task[list[Exception]]] = None
        self._current: Optional[asyncio.Future[None]] = None
        self._pending: Optional[asyncio.Future[None]] = None

    @property
    def state(self) -> RunnerState:
        return self._state

    def trigger(self) -> asyncio.Future[None]:
        """
        Request an execution and return immediately.

        The returned future completes with the execution that covers this request: the
        one started now when idle, otherwise the pending rerun.
        """
        if self._state is RunnerState.IDLE:
            self._state = RunnerState.RUNNING
            self._current = self._new_execution_future()
            self._drive_task = asyncio.create_task(self._drive(), name=f"runner:{self._name}")
            return self._current

        if self._state is RunnerState.RUNNING:
            self._state = RunnerState.RUNNING_WITH_RERUN_PENDING
            self._pending = self._new_execution_future()

        assert self._pending is not None
        return self._pending

    async def wait_idle(self) -> None:
        """
        Wait until the runner is idle again.

        Raises an ExceptionGroup holding every failure of the busy period that was waited on.
        """
        task = self._drive_task
        if task is None:
            return
        failures = await asyncio.shield(task)
        if failures:
            raise ExceptionGroup(f"Task runner {self._name} failed", failures)

    def _new_execution_future(self) -> asyncio.Future[None]:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_mark_observed)
        return future

    async def _drive(self) -> list[Exception]:
        failures: list[Exception] = []
        try:
            while True:
                execution = self._current
                try:
                    await self._work()
                except Exception as e:
                    logger.exception("Task runner execution failed. runner=%s", self._name)
                    failures.append(e)
                    if execution is not None and not execution.done():
                        execution.set_exception(e)
                else:
                    if execution is not None and not execution.done():
                        execution.set_result(None)

                if self._state is not RunnerState.RUNNING_WITH_RERUN_PENDING:
                    return failures
                self._state = RunnerState.RUNNING
                self._current = self._pending
                self._pending = None
        finally:
            for future in (self._current, self._pending):
                if future is not None and not future.done():
                    future.cancel()
            self._state = RunnerState.IDLE
            self._current = None
            self._pending = None
            self._drive_task = None
