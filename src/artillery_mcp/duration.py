from __future__ import annotations

import re

_DURATION_PATTERN = re.compile(r"^(\d+)([smhd])?$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(duration: str) -> int:
    """Convert an Artillery-style duration token to seconds.

    Only used to shape quick tests, so malformed input falls back to 1.

    Example:
        ```python
        assert parse_duration("2m") == 120
        assert parse_duration("abc") == 1
        ```
    """
    match = _DURATION_PATTERN.match(duration.strip()) if isinstance(duration, str) else None
    if match is None:
        return 1
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2) or "s"]
