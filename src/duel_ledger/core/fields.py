from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

T = TypeVar("T")

Accessor = Callable[[Any], Any]
Json = dict[str, Any]


def at(*keys: str | int) -> Accessor:
    """
    Build an accessor that walks dict keys / list indexes.

    The accessor returns None as soon as a step does not match the payload shape,
    so callers can chain alternatives without guarding every level.
    """

    def _get(obj: Any) -> Any:
        cur = obj
        for key in keys:
            if isinstance(key, int):
                if not isinstance(cur, list) or not -len(cur) <= key < len(cur):
                    return None
                cur = cur[key]
            else:
                if not isinstance(cur, dict):
                    return None
                cur = cur.get(key)
            if cur is None:
                return None
        return cur

    return _get


def first_of(obj: Any, accessors: Sequence[Accessor], parse: Callable[[Any], T | None]) -> T | None:
    """Try each accessor in order; return the first value that `parse` accepts."""

    for accessor in accessors:
        value = parse(accessor(obj))
        if value is not None:
            return value
    return None


def as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        f = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            f = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return f if math.isfinite(f) else None


def as_int(value: Any) -> int | None:
    f = as_float(value)
    if f is None or not f.is_integer():
        return None
    return int(f)


def as_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    v = value.strip()
    return v or None


def as_id(value: Any) -> str | None:
    """Player/team/game ids show up as strings and, in older payloads, as integers."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    return as_str(value)


def as_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def as_dict(value: Any) -> Json:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []
