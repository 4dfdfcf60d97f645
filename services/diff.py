from __future__ import annotations

import json
from typing import Any


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def diff_objects(before: Any, after: Any) -> dict[str, dict[str, Any]] | None:
    """
    Field-level changes between two flat dicts: {key: {"before": x, "after": y}}.
    Returns None when either side is not a dict or nothing changed.
    """
    if not isinstance(before, dict) or not isinstance(after, dict):
        return None

    changes: dict[str, dict[str, Any]] = {}
    for key in sorted(set(before) | set(after), key=str):
        b = before.get(key)
        a = after.get(key)
        if _canonical(b) != _canonical(a):
            changes[key] = {"before": b, "after": a}

    return changes or None
