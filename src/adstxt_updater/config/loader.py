from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, MutableMapping, Sequence

from pydantic import ValidationError

from adstxt_updater.config.models import (
    AppSettings,
    DestinationSpec,
    SettingsLoadRequest,
)
from adstxt_updater.errors import ConfigParseFailed

logger = logging.getLogger(__name__)


def _read_yaml_document(path: Path) -> Any:
    try:
        import yaml  # type: ignore[import-not-found]
    except ModuleNotFoundError as e:  # pragma: no cover
        raise ModuleNotFoundError(
            "Missing dependency: PyYAML is required to load the YAML config file. Install 'PyYAML'."
        ) from e

    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigParseFailed(path, "file not found") from e
    except OSError as e:
        raise ConfigParseFailed(path, f"unreadable: {e}") from e

    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigParseFailed(path, f"invalid YAML: {e}") from e


class DestinationConfigLoader:
    """Reads a configuration document holding one destination or a list of them."""

    async def load(self, path: Path) -> list[DestinationSpec]:
        data = _read_yaml_document(path)
        if data is None:
            logger.warning("Configuration document is empty. path=%s", path)
            return []
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise ConfigParseFailed(
                path, f"top-level YAML must be a mapping or a sequence, got: {type(data).__name__}"
            )

        specs: list[DestinationSpec] = []
        for index, item in enumerate(data):
            if not isinstance(item, dict):
                raise ConfigParseFailed(path, f"entry {index} must be a mapping, got: {type(item).__name__}")
            try:
                spec = DestinationSpec.model_validate(item)
            except ValidationError as e:
                raise ConfigParseFailed(path, f"entry {index} is invalid: {e}") from e
            resolved = spec.destination_path(path.parent)
            specs.append(spec.model_copy(update={"destination": str(resolved)}))
        return specs


def _load_dotenv_if_present(dotenv_path: Path) -> None:
    try:
        from dotenv import load_dotenv  # type: ignore[import-not-found]
    except ModuleNotFoundError as e:  # pragma: no cover
        raise ModuleNotFoundError(
            "Missing dependency: python-dotenv is required to load .env. Install 'python-dotenv'."
        ) from e

    if not dotenv_path.exists():
        return
    load_dotenv(dotenv_path=dotenv_path, override=False)


def _env_var_name_to_segments(env_var_name: str, prefix: str) -> Sequence[str]:
    remainder = env_var_name[len(prefix) :]
    parts = [p for p in remainder.split("__") if p]
    if not parts:
        raise ValueError(f"Invalid environment variable override name: {env_var_name}")
    return [p.lower() for p in parts]


def _get_parent_mapping(config: MutableMapping[str, Any], path: Sequence[str]) -> MutableMapping[str, Any]:
    cur: MutableMapping[str, Any] = config
    for segment in path[:-1]:
        if segment not in cur:
            dotted = ".".join(path)
            raise KeyError(f"Unknown configuration key path: {dotted}")
        next_value = cur[segment]
        if not isinstance(next_value, dict):
            dotted = ".".join(path)
            raise TypeError(f"Configuration key path does not point to a mapping: {dotted}")
        cur = next_value
    return cur


def _apply_env_overrides(config: MutableMapping[str, Any], env_prefix: str) -> None:
    for name, value in os.environ.items():
        if not name.startswith(env_prefix):
            continue

        segments = _env_var_name_to_segments(name, env_prefix)
        parent = _get_parent_mapping(config, segments)
        leaf = segments[-1]
        dotted = ".".join(segments)

        if leaf not in parent:
            raise KeyError(f"Unknown configuration key path: {dotted}")

        # Values stay strings here; pydantic coerces them during validation.
        parent[leaf] = value


class SettingsLoader:
    async def load(self, request: SettingsLoadRequest = SettingsLoadRequest()) -> AppSettings:
        if request.dotenv_path is not None:
            _load_dotenv_if_present(Path(request.dotenv_path))

        settings = AppSettings().model_dump()
        _apply_env_overrides(settings, request.env_prefix)
        return AppSettings.model_validate(settings)
