from __future__ import annotations

import re
from typing import Any

_ISO2_RE = re.compile(r"^[A-Za-z]{2}$")
_WS_RE = re.compile(r"\s+")


def normalize_iso2(value: Any) -> str | None:
    """Return a lower-cased ISO 3166-1 alpha-2 code, or None when `value` is not one."""

    if not isinstance(value, str):
        return None
    v = value.strip()
    if not _ISO2_RE.match(v):
        return None
    return v.lower()


def normalize_mode_label(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    v = _WS_RE.sub(" ", value).strip()
    return v or None
