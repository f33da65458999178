from __future__ import annotations

import re
from datetime import timedelta
from typing import Optional

DEFAULT_UPDATE_INTERVAL = timedelta(hours=24)

_INTERVAL_PATTERN = re.compile(r"(?P<amount>\d+)(?P<unit>[smhd])")
_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}


def parse_update_interval(value: Optional[str]) -> timedelta:
    """
    Parse an interval such as `30m` or `2d`.

    The first `<amount><unit>` group found in the string wins and anything around it is
    ignored. Missing or unparsable values fall back to DEFAULT_UPDATE_INTERVAL.
    """
    if not value:
        return DEFAULT_UPDATE_INTERVAL
    match = _INTERVAL_PATTERN.search(value)
    if match is None:
        return DEFAULT_UPDATE_INTERVAL
    amount = int(match.group("amount"))
    if amount <= 0:
        return DEFAULT_UPDATE_INTERVAL
    try:
        return _UNITS[match.group("unit")] * amount
    except OverflowError:
        return DEFAULT_UPDATE_INTERVAL
