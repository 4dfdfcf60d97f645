from __future__ import annotations

import json
import logging
import os
import uuid
from collections import deque
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any
from uuid import UUID

from services import metrics
from services.diff import diff_objects
from services.redaction import redact_value
from settings import settings

logger = logging.getLogger("firstclick.audit")

DEFAULT_READ_LIMIT = 200
_REDACTED_FIELDS = ("reason", "before", "after", "diff", "meta")


def _json_default(value: Any):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (UUID, Path)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _actor_dict(actor: Any) -> dict[str, Any] | None:
    if actor is None:
        return None
    if hasattr(actor, "to_dict"):
        return actor.to_dict()
    if isinstance(actor, dict):
        return dict(actor)
    raise TypeError("actor must be an Actor or a dict")


class AuditLogWriter:
    """
    Append-only audit log stored as newline-delimited JSON.

    Records are only ever appended; nothing here rewrites or truncates the
    file. Appends are serialized by a process-local lock, so append order is
    event order within a process.
    """

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)
        self._lock = Lock()

    def log_event(
        self,
        *,
        action: str,
        entity_type: str,
        entity_id: Any = None,
        actor: Any = None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        diff: dict[str, Any] | None = None,
        reason: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not action or not entity_type:
            raise ValueError("log_event requires action and entity_type")

        if diff is None:
            diff = diff_objects(before, after)

        event = {
            "id": str(uuid.uuid4()),
            "ts": datetime.now(timezone.utc).isoformat(),
            "action": action,
            "entity_type": entity_type,
            "entity_id": str(entity_id) if entity_id is not None else None,
            "actor": _actor_dict(actor),
            "reason": reason,
            "before": before,
            "after": after,
            "diff": diff,
            "meta": meta or {},
        }
        # identity fields stay verbatim so read_events can match them
        for key in _REDACTED_FIELDS:
            event[key] = redact_value(event[key])
        # serialize before touching the file so a bad payload never leaves half a line
        line = json.dumps(event, default=_json_default, separators=(",", ":")) + "\n"

        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line)

        return json.loads(line)

    def _iter_events(self):
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as fh:
            for line in fh:
                if not line.strip():
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("skipping malformed audit line: %s", line[:50])

    def read_events(
        self,
        *,
        entity_type: str | None = None,
        entity_id: Any = None,
        action: str | None = None,
        limit: int | None = DEFAULT_READ_LIMIT,
    ) -> list[dict[str, Any]]:
        """Matching events, newest first."""
        wanted_id = str(entity_id) if entity_id is not None else None
        keep: deque = deque(maxlen=limit if limit and limit > 0 else None)
        for event in self._iter_events():
            if entity_type and event.get("entity_type") != entity_type:
                continue
            if wanted_id and event.get("entity_id") != wanted_id:
                continue
            if action and event.get("action") != action:
                continue
            keep.append(event)
        return list(reversed(keep))

    def count_events(self) -> int:
        return sum(1 for _ in self._iter_events())


def safe_log_event(writer: AuditLogWriter, **kwargs: Any) -> dict[str, Any] | None:
    """
    Best-effort audit append used by the state machines.

    A failed write never undoes the transition that was already committed; it
    is reported on the process log and counted instead.
    """
    try:
        return writer.log_event(**kwargs)
    except (OSError, TypeError, ValueError):
        metrics.increment_audit_write_failure()
        logger.exception(
            "audit write failed action=%s entity_type=%s entity_id=%s",
            kwargs.get("action"),
            kwargs.get("entity_type"),
            kwargs.get("entity_id"),
        )
        return None


@lru_cache(maxsize=1)
def get_audit_writer() -> AuditLogWriter:
    return AuditLogWriter(settings.AUDIT_LOG_PATH)
