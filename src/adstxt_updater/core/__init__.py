"""Scheduling and filesystem helpers shared by the sync components."""

from adstxt_updater.core.intervals import DEFAULT_UPDATE_INTERVAL, parse_update_interval
from adstxt_updater.core.runner import CoalescingTaskRunner, RunnerState

__all__ = [
    "CoalescingTaskRunner",
    "DEFAULT_UPDATE_INTERVAL",
    "RunnerState",
    "parse_update_interval",
]
