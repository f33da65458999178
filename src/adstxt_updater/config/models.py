from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from adstxt_updater.core.intervals import parse_update_interval


class TransformSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # True strips every `key = value` line, a list strips only the listed keys.
    strip_variables: Union[bool, list[str]] = False


class SourceSpec(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    url: str = Field(alias="source", min_length=1)
    transform: Optional[TransformSettings] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_url(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"source": data}
        return data


class DestinationSpec(BaseModel):
    """One output file and the ordered sources it is assembled from."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    destination: str = Field(min_length=1)
    sources: list[SourceSpec]
    update_interval: Optional[str] = Field(default=None, alias="updateInterval")

    @field_validator("update_interval", mode="before")
    @classmethod
    def _interval_as_text(cls, value: Any) -> Any:
        # Values without a unit end up on the default interval.
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float)):
            return str(value)
        return None

    @property
    def interval(self) -> timedelta:
        return parse_update_interval(self.update_interval)

    def destination_path(self, config_dir: Path) -> Path:
        """Resolve the destination, relative paths being relative to the config file's directory."""
        return (config_dir / Path(self.destination).expanduser()).resolve()


class FileLoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = ""
    backup_count: int = 7


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str = "INFO"
    file: FileLoggingSettings = FileLoggingSettings()


class FetchSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_seconds: float = Field(default=30.0, gt=0)
    cache_ttl_seconds: float = Field(default=3600.0, ge=0)

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.cache_ttl_seconds)


class WatchSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    debounce_ms: int = Field(default=1600, ge=0)
    force_polling: bool = False


class AppSettings(BaseModel):
    """
    Process-wide settings.

    Every field has a default; environment variables override them (see SettingsLoader).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    logging: LoggingSettings = LoggingSettings()
    fetch: FetchSettings = FetchSettings()
    watch: WatchSettings = WatchSettings()


@dataclass(frozen=True, slots=True)
class SettingsLoadRequest:
    env_prefix: str = "ADSTXT__"
    dotenv_path: Optional[str] = ".env"
