"""Fetching, assembling and writing ads.txt destinations."""

from adstxt_updater.sync.cache import CacheEntry, FetchCache, FetchResult
from adstxt_updater.sync.reconciler import DestinationReconciler, assemble_ads_txt
from adstxt_updater.sync.supervisor import ConfigSupervisor
from adstxt_updater.sync.transform import transform_ads_txt
from adstxt_updater.sync.watch import FileWatcher, FsEvent, FsEventKind, WatchfilesWatcher, WatchGroup

__all__ = [
    "CacheEntry",
    "ConfigSupervisor",
    "DestinationReconciler",
    "FetchCache",
    "FetchResult",
    "FileWatcher",
    "FsEvent",
    "FsEventKind",
    "WatchGroup",
    "WatchfilesWatcher",
    "assemble_ads_txt",
    "transform_ads_txt",
]
