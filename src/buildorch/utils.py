"""Small helpers for reading values out of the build configuration."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping


def lookup(d: Mapping, *keys, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, Mapping):
            return default
        cur = cur.get(k)
        if cur is None:
            return default
    return cur


def as_list(value: Any) -> List[str]:
    """Normalize a string or a sequence of strings into a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [str(v) for v in value if v is not None and str(v).strip()]


def section(d: Mapping, key: str) -> Dict[str, Any]:
    value = lookup(d, key, default={})
    return dict(value) if isinstance(value, Mapping) else {}
