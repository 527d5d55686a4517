"""Tests for the membership audit trail."""

import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import TestSessionLocal, engine, make_org, make_user
from orgledger.core.timeutils import utc_now
from orgledger.models.audit import AuditLog
from orgledger.services import audit
from orgledger.services.audit import AuditAction, AuditEvent


@pytest.mark.asyncio
async def test_record_events_scrubs_sensitive_fields(db: AsyncSession):
    owner = await make_user(db, "Owner")
    org = await make_org(db, owner)
    target = uuid.uuid4()

    await audit.record_events(
        TestSessionLocal,
        [
            AuditEvent(
                organization_id=org.id,
                user_id=owner.id,
                action=AuditAction.MEMBER_ADDED,
                details={"target_user_id": target, "token": "secret-token", "role": "MEMBER"},
            )
        ],
    )

    entries = await audit.list_entries(db, org.id)
    assert len(entries) == 1
    assert entries[0].details == {"target_user_id": str(target), "role": "MEMBER"}


@pytest.mark.asyncio
async def test_record_events_failure_is_swallowed(db: AsyncSession):
    owner = await make_user(db, "Owner")
    org = await make_org(db, owner)
    async with engine.begin() as conn:
        await conn.run_sync(AuditLog.__table__.drop)

    await audit.record_events(
        TestSessionLocal, [AuditEvent(organization_id=org.id, user_id=owner.id, action=AuditAction.SEATS_UPDATED)]
    )

    # the caller's objects stay loaded
    assert org.name == "Acme"


@pytest.mark.asyncio
async def test_record_no_events_is_noop():
    sessions = MagicMock()
    await audit.record_events(sessions, [])
    sessions.assert_not_called()


@pytest.mark.asyncio
async def test_list_entries_filters_and_paginates(db: AsyncSession):
    owner = await make_user(db, "Owner")
    org = await make_org(db, owner)
    other = await make_org(db, owner, name="Other")

    await audit.record_events(
        TestSessionLocal,
        [
            AuditEvent(org.id, owner.id, AuditAction.INVITE_CREATED),
            AuditEvent(org.id, owner.id, AuditAction.INVITE_REVOKED),
            AuditEvent(org.id, owner.id, AuditAction.INVITE_CREATED),
            AuditEvent(other.id, owner.id, AuditAction.INVITE_CREATED),
        ],
    )

    assert len(await audit.list_entries(db, org.id)) == 3
    assert len(await audit.list_entries(db, org.id, action=AuditAction.INVITE_CREATED)) == 2
    assert len(await audit.list_entries(db, org.id, limit=2)) == 2
    assert len(await audit.list_entries(db, org.id, limit=None)) == 3
    assert await audit.list_entries(db, org.id, start_date=utc_now() + timedelta(days=1)) == []
