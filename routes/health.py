from __future__ import annotations

import os
from pathlib import Path

from fastapi import APIRouter

from db import get_conn
from settings import settings

router = APIRouter(tags=["health"])

MIGRATION_REVISION = "0002_payout_indexes"


def _check_db() -> tuple[bool, str | None]:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True, None
    except Exception as exc:
        return False, f"{type(exc).__name__}: {exc}"


def _check_migrations() -> bool:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT to_regclass('public.alembic_version');")
                if not cur.fetchone()[0]:
                    return False
                cur.execute("SELECT version_num FROM alembic_version LIMIT 1;")
                row = cur.fetchone()
                return bool(row and row[0])
    except Exception:
        return False


def _check_audit_log() -> bool:
    # the log file may not exist yet; its directory must be creatable/writable
    parent = Path(settings.AUDIT_LOG_PATH).parent
    probe = parent
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent
    return os.access(probe, os.W_OK)


@router.get("/health")
def health():
    return {
        "ok": True,
        "env": settings.ENV,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": (os.getenv("GIT_SHA") or "").strip() or None,
    }


@router.get("/readyz")
def readyz():
    db_ok, db_error = _check_db()
    migrations_ok = _check_migrations()
    audit_ok = _check_audit_log()
    return {
        "ready": bool(db_ok and migrations_ok and audit_ok),
        "db_ok": db_ok,
        "db_error": db_error,
        "migrations_ok": migrations_ok,
        "migration_revision": MIGRATION_REVISION,
        "audit_log_ok": audit_ok,
    }
