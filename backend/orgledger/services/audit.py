"""Audit logger adapter.

Receives one fact per committed membership mutation and appends it to
``audit_logs``. It runs after the orchestrator has committed and is best
effort: a failure here is logged and swallowed, never surfaced to the
caller and never used to undo the mutation it describes.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orgledger.models.audit import AuditLog

logger = logging.getLogger(__name__)

# Keys that must never reach the audit trail
SENSITIVE_FIELDS = frozenset({"token", "password", "temporary_password", "secret"})


class AuditAction:
    ORGANIZATION_CREATED = "organization_created"
    ORGANIZATION_UPDATED = "organization_updated"
    ORGANIZATION_DELETED = "organization_deleted"
    SEATS_UPDATED = "seats_updated"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    ROLE_CHANGED = "role_changed"
    OWNERSHIP_TRANSFERRED = "ownership_transferred"
    OWNERSHIP_RECEIVED = "ownership_received"
    INVITE_CREATED = "invite_created"
    INVITE_ACCEPTED = "invite_accepted"
    INVITE_REVOKED = "invite_revoked"
    INVITE_RESENT = "invite_resent"
    INVITE_DECLINED = "invite_declined"


@dataclass
class AuditEvent:
    organization_id: uuid.UUID
    user_id: uuid.UUID | None
    action: str
    details: dict = field(default_factory=dict)


def _scrub(details: dict) -> dict:
    clean = {}
    for key, value in details.items():
        if key in SENSITIVE_FIELDS:
            continue
        if isinstance(value, uuid.UUID):
            value = str(value)
        clean[key] = value
    return clean


async def record_events(sessions: async_sessionmaker[AsyncSession], events: list[AuditEvent]) -> None:
    """Append ``events`` in a session of their own.

    The caller's session is never touched, so a failed write cannot expire
    the objects a committed operation is about to return.
    """
    if not events:
        return
    try:
        async with sessions() as db:
            db.add_all(
                [
                    AuditLog(
                        organization_id=event.organization_id,
                        user_id=event.user_id,
                        action=event.action,
                        details=_scrub(event.details),
                    )
                    for event in events
                ]
            )
            await db.commit()
    except Exception as e:
        logger.warning(f"Failed to write {len(events)} audit log entries: {e}", exc_info=True)


async def list_entries(
    db: AsyncSession,
    org_id: uuid.UUID,
    *,
    action: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int | None = 50,
    offset: int = 0,
) -> list[AuditLog]:
    query = (
        select(AuditLog)
        .where(AuditLog.organization_id == org_id)
        .order_by(AuditLog.timestamp.desc())
    )
    if action:
        query = query.where(AuditLog.action == action)
    if start_date:
        query = query.where(AuditLog.timestamp >= start_date)
    if end_date:
        query = query.where(AuditLog.timestamp <= end_date)
    if limit is not None:
        query = query.offset(offset).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
