from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from adstxt_updater.config import SettingsLoader
from adstxt_updater.config.models import AppSettings, SettingsLoadRequest
from adstxt_updater.logging import init_logging
from adstxt_updater.sync.cache import FetchCache
from adstxt_updater.sync.supervisor import ConfigSupervisor
from adstxt_updater.sync.watch import WatchfilesWatcher

logger = logging.getLogger(__name__)

NO_CONFIG_MESSAGE = (
    "No configuration files have been provided, "
    "provide one or more paths to configuration files via the arguments."
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="adstxt-updater",
        description="Keeps ads.txt files up to date with the sources listed in YAML configuration files.",
    )
    parser.add_argument(
        "configs",
        nargs="*",
        metavar="CONFIG",
        help="Path to a configuration file. Each file is watched and reloaded when it changes.",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Optional .env file with ADSTXT__* setting overrides (default: .env)",
    )
    parser.add_argument(
        "--run-seconds",
        type=float,
        default=None,
        help="Run for N seconds then exit (useful for smoke testing).",
    )
    return parser


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.configs:
        parser.error(NO_CONFIG_MESSAGE)
    return args


async def _destroy_gracefully(supervisor: ConfigSupervisor) -> None:
    try:
        await supervisor.destroy()
    except Exception:
        logger.exception("Unexpected error while stopping configuration. path=%s", supervisor.config_path)


async def _run(args: argparse.Namespace, settings: AppSettings) -> None:
    watcher = WatchfilesWatcher(
        debounce_ms=settings.watch.debounce_ms,
        force_polling=settings.watch.force_polling,
    )
    async with FetchCache(timeout_seconds=settings.fetch.timeout_seconds) as cache:
        supervisors = []
        for raw_path in args.configs:
            config_path = Path(raw_path).resolve()
            supervisor = ConfigSupervisor(
                config_path,
                cache=cache,
                watcher=watcher,
                cache_ttl=settings.fetch.cache_ttl,
            )
            supervisor.start()
            supervisors.append(supervisor)
        logger.info("Watching configuration files. count=%d", len(supervisors))

        try:
            if args.run_seconds is not None:
                await asyncio.sleep(args.run_seconds)
            else:
                await asyncio.Event().wait()
        finally:
            for supervisor in supervisors:
                await _destroy_gracefully(supervisor)


async def _main_async(argv: Optional[Sequence[str]] = None) -> None:
    args = _parse_args(argv)
    settings = await SettingsLoader().load(SettingsLoadRequest(dotenv_path=args.env_file))
    init_logging(settings.logging)
    logger.info("Starting ads.txt updater. configs=%s", ", ".join(args.configs))
    await _run(args, settings)


def main() -> None:
    try:
        asyncio.run(_main_async())
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")


if __name__ == "__main__":
    main()
