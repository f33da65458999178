"""Error types raised by the updater."""

from __future__ import annotations

from pathlib import Path


class AdsTxtUpdaterError(RuntimeError):
    """Base class for updater errors."""


class FetchFailed(AdsTxtUpdaterError):
    """Raised when a source could not be fetched and nothing is cached for it."""

    def __init__(self, key: str) -> None:
        super().__init__(f'Failed to fetch "{key}" and no existing content was found in the cache.')
        self.key = key


class ConfigParseFailed(AdsTxtUpdaterError):
    """Raised when a configuration document cannot be read, parsed or validated."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to load configuration. path={path} reason={reason}")
        self.path = path
        self.reason = reason


class DestinationIOFailed(AdsTxtUpdaterError):
    """Raised when the destination file cannot be read or written."""

    def __init__(self, path: Path, operation: str) -> None:
        super().__init__(f"Failed to {operation} destination. path={path}")
        self.path = path
        self.operation = operation
