"""Since-window parsing helpers.

`--since` is handed to stern verbatim, so it must already be a Go-style
relative duration (e.g. 5s, 2m, 3h, 1h30m).
"""

from __future__ import annotations

import re
from datetime import timedelta

_DURATION_RE = re.compile(r"^(?:(?P<h>\d+)h)?(?:(?P<m>\d+)m)?(?:(?P<s>\d+)s)?$")


def parse_since(s: str) -> timedelta:
    """Parse a relative duration like `1h30m` into a timedelta."""
    value = s.strip()
    m = _DURATION_RE.match(value)
    if not value or not m or not any(m.group(k) for k in ("h", "m", "s")):
        raise ValueError(f"since must look like 5s, 2m, 3h or 1h30m (got {s!r})")
    return timedelta(
        hours=int(m.group("h") or 0),
        minutes=int(m.group("m") or 0),
        seconds=int(m.group("s") or 0),
    )


def normalize_since(s: str) -> str:
    """Validate a duration and return it stripped, as stern expects it."""
    parse_since(s)
    return s.strip()
