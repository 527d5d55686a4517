import csv
import io
import json
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from orgledger.core.dependencies import get_current_user, get_orchestrator
from orgledger.core.permissions import Action
from orgledger.core.timeutils import ensure_utc
from orgledger.models.user import User
from orgledger.schemas.audit import AuditLogResponse
from orgledger.services import audit
from orgledger.services.membership import MembershipOrchestrator

router = APIRouter(prefix="/organizations", tags=["audit"])


@router.get("/{org_id}/audit-logs", response_model=list[AuditLogResponse], summary="List Audit Logs")
async def list_audit_logs(
    org_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
    action: str | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Membership audit trail for an organization, newest first."""
    await orchestrator.authorize_view(org_id, current_user, Action.VIEW_AUDIT_LOG)
    return await audit.list_entries(
        orchestrator.db,
        org_id,
        action=action,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )


@router.get("/{org_id}/audit-logs/export", summary="Export Audit Logs as CSV")
async def export_audit_logs(
    org_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
):
    """Export the audit trail as a CSV file download."""
    await orchestrator.authorize_view(org_id, current_user, Action.VIEW_AUDIT_LOG)
    logs = await audit.list_entries(
        orchestrator.db, org_id, start_date=start_date, end_date=end_date, limit=None
    )

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["id", "user_id", "action", "details", "timestamp"])
    for log in logs:
        writer.writerow(
            [
                str(log.id),
                str(log.user_id) if log.user_id else "",
                log.action,
                json.dumps(log.details or {}, sort_keys=True),
                ensure_utc(log.timestamp).isoformat(),
            ]
        )

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=audit_log_{org_id}.csv"},
    )
