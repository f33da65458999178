from __future__ import annotations

import re
from typing import Optional, Sequence

from adstxt_updater.config.models import TransformSettings

_VARIABLE_PATTERN = re.compile(r"^(?P<key>\S+)\s?=")


def transform_ads_txt(content: str, settings: Optional[TransformSettings]) -> str:
    """Apply the configured transform to one fetched ads.txt."""
    if settings is None or settings.strip_variables is False:
        return content
    if settings.strip_variables is True:
        return strip_variables(content, ())
    return strip_variables(content, settings.strip_variables)


def strip_variables(content: str, keys: Sequence[str]) -> str:
    """
    Remove `key=value` variable declarations.

    An empty `keys` removes every declaration, otherwise only those whose key is listed.
    Comment lines and lines that are not declarations are kept as is.
    """
    wanted = set(keys)
    kept = []
    for line in content.split("\n"):
        if line.startswith("#"):
            kept.append(line)
            continue
        match = _VARIABLE_PATTERN.match(line)
        if match is None:
            kept.append(line)
            continue
        if not wanted or match.group("key") in wanted:
            continue
        kept.append(line)
    return "\n".join(kept)
