from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from deps.admin import require_admin
from deps.services import get_audit
from services.audit_log import AuditLogWriter

router = APIRouter(prefix="/v1/admin", tags=["admin_audit"])


@router.get("/audit-events")
def list_admin_audit_events(
    limit: int = Query(50, ge=1, le=200),
    entity_type: str | None = Query(None),
    entity_id: str | None = Query(None),
    action: str | None = Query(None),
    _admin=Depends(require_admin),
    audit: AuditLogWriter = Depends(get_audit),
):
    events = audit.read_events(
        entity_type=(entity_type or "").strip() or None,
        entity_id=(entity_id or "").strip() or None,
        action=(action or "").strip() or None,
        limit=limit,
    )
    return {"events": events, "count": len(events), "limit": limit}
