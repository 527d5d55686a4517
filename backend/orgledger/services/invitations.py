"""Invitation manager: time-boxed invite tokens.

Lifecycle per invite::

    PENDING --accept--> ACCEPTED   (accepted_at written)
    PENDING --time----> EXPIRED    (computed from expires_at, never written)
    PENDING --revoke--> REVOKED    (row deleted)

Seats are not checked when an invite is issued; several outstanding invites
may exceed the current headroom and the first to accept wins. Mutating
functions here never commit; they run inside a membership orchestrator
transaction and expect the organization row to be locked (``accept`` takes
that lock itself because it only learns the organization from the token).
"""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgledger.config import INVITE_EXPIRY_DAYS, INVITE_TOKEN_BYTES
from orgledger.core.errors import Conflict, ErrorCode, Expired, Forbidden, NotFound
from orgledger.core.timeutils import ensure_utc, utc_now
from orgledger.models.invite import InviteStatus, OrganizationInvite
from orgledger.models.member import MemberRole
from orgledger.models.org import Organization
from orgledger.models.user import User, normalize_email
from orgledger.services import membership_store, seat_accountant

logger = logging.getLogger(__name__)

INVITE_TTL = timedelta(days=INVITE_EXPIRY_DAYS)


@dataclass
class InviteDetails:
    invite: OrganizationInvite
    organization_name: str


@dataclass
class AcceptOutcome:
    invite: OrganizationInvite
    organization: Organization
    role: MemberRole
    already_member: bool


def generate_token() -> str:
    return secrets.token_urlsafe(INVITE_TOKEN_BYTES)


def _ensure_open(invite: OrganizationInvite, now: datetime) -> None:
    status = invite.status_at(now)
    if status is InviteStatus.ACCEPTED:
        raise Conflict(ErrorCode.ALREADY_ACCEPTED)
    if status is InviteStatus.EXPIRED:
        raise Expired()


async def _get_by_token(
    db: AsyncSession, token: str, *, for_update: bool = False
) -> OrganizationInvite | None:
    query = select(OrganizationInvite).where(OrganizationInvite.token == token)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def get_invite(
    db: AsyncSession, invite_id: uuid.UUID, org_id: uuid.UUID | None = None
) -> OrganizationInvite:
    query = select(OrganizationInvite).where(OrganizationInvite.id == invite_id)
    if org_id is not None:
        query = query.where(OrganizationInvite.organization_id == org_id)
    result = await db.execute(query.execution_options(populate_existing=True))
    invite = result.scalar_one_or_none()
    if invite is None:
        raise NotFound("Invite not found")
    return invite


async def find_pending(
    db: AsyncSession, org_id: uuid.UUID, email: str, now: datetime | None = None
) -> OrganizationInvite | None:
    """The PENDING invite for (organization, email), if any."""
    now = now or utc_now()
    result = await db.execute(
        select(OrganizationInvite).where(
            OrganizationInvite.organization_id == org_id,
            OrganizationInvite.email == normalize_email(email),
            OrganizationInvite.accepted_at.is_(None),
        )
    )
    for invite in result.scalars().all():
        if invite.status_at(now) is InviteStatus.PENDING:
            return invite
    return None


# ---------------------------------------------------------------------------
# Issue / validate / accept / revoke
# ---------------------------------------------------------------------------


async def issue(
    db: AsyncSession,
    org_id: uuid.UUID,
    email: str,
    role: MemberRole,
    invited_by: uuid.UUID | None,
) -> OrganizationInvite:
    email = normalize_email(email)
    now = utc_now()

    if await find_pending(db, org_id, email, now):
        raise Conflict(ErrorCode.DUPLICATE_INVITE)
    if await membership_store.is_email_member(db, org_id, email):
        raise Conflict(ErrorCode.ALREADY_MEMBER)

    invite = OrganizationInvite(
        organization_id=org_id,
        email=email,
        role=role,
        token=generate_token(),
        invited_by=invited_by,
        created_at=now,
        expires_at=now + INVITE_TTL,
    )
    db.add(invite)
    await db.flush()

    logger.info(f"Issued {role.value} invite {invite.id}", extra={"org_id": str(org_id)})
    return invite


async def validate(db: AsyncSession, token: str) -> InviteDetails:
    """Read-only lookup used by the invite landing page."""
    invite = await _get_by_token(db, token)
    if invite is None:
        raise NotFound("Invalid invitation")
    _ensure_open(invite, utc_now())

    org = await membership_store.get_organization(db, invite.organization_id)
    if org is None:
        raise NotFound("Organization not found")
    return InviteDetails(invite=invite, organization_name=org.name)


async def accept(db: AsyncSession, token: str, user: User) -> AcceptOutcome:
    """Admit ``user`` through ``token``.

    Locks the organization, re-reads the invite under lock, then either
    marks it accepted for an existing member (no seat change) or reserves a
    seat for a MEMBER-role invite, inserts the member row and marks the
    invite accepted. Any failure leaves the invite PENDING.
    """
    invite = await _get_by_token(db, token)
    if invite is None:
        raise NotFound("Invalid invitation")

    org = await membership_store.lock_organization(db, invite.organization_id)
    invite = await _get_by_token(db, token, for_update=True)
    if invite is None:
        raise NotFound("Invalid invitation")

    now = utc_now()
    _ensure_open(invite, now)

    if normalize_email(user.email) != invite.email:
        raise Forbidden(
            "This invitation was sent to a different email address", ErrorCode.EMAIL_MISMATCH
        )

    existing = await membership_store.get_member(db, org.id, user.id, for_update=True)
    if existing:
        invite.accepted_at = now
        await db.flush()
        logger.info(f"Invite {invite.id} accepted by existing member", extra={"org_id": str(org.id)})
        return AcceptOutcome(invite=invite, organization=org, role=existing.role, already_member=True)

    await seat_accountant.apply_role_change(db, org.id, None, invite.role)
    await membership_store.insert_member(db, org.id, user.id, invite.role)
    invite.accepted_at = now
    await db.flush()

    logger.info(f"Invite {invite.id} accepted", extra={"org_id": str(org.id), "user_id": str(user.id)})
    return AcceptOutcome(invite=invite, organization=org, role=invite.role, already_member=False)


async def revoke(db: AsyncSession, org_id: uuid.UUID, invite_id: uuid.UUID) -> OrganizationInvite:
    invite = await get_invite(db, invite_id, org_id)
    if invite.accepted_at is not None:
        raise Conflict(ErrorCode.ALREADY_ACCEPTED)

    await db.delete(invite)
    await db.flush()
    return invite


# ---------------------------------------------------------------------------
# Resend / decline / listings
# ---------------------------------------------------------------------------


async def resend(db: AsyncSession, org_id: uuid.UUID, invite_id: uuid.UUID) -> OrganizationInvite:
    """Push a non-accepted invite's expiry out to a full TTL from now."""
    invite = await get_invite(db, invite_id, org_id)
    if invite.accepted_at is not None:
        raise Conflict(ErrorCode.ALREADY_ACCEPTED)

    now = utc_now()
    pending = await find_pending(db, org_id, invite.email, now)
    if pending is not None and pending.id != invite.id:
        raise Conflict(ErrorCode.DUPLICATE_INVITE)

    invite.expires_at = now + INVITE_TTL
    await db.flush()
    return invite


async def decline(db: AsyncSession, invite_id: uuid.UUID, user_email: str) -> OrganizationInvite:
    """Invitee throws away an invitation addressed to them."""
    invite = await get_invite(db, invite_id)
    if invite.email != normalize_email(user_email):
        raise Forbidden("This invitation was sent to a different email address", ErrorCode.EMAIL_MISMATCH)
    if invite.accepted_at is not None:
        raise Conflict(ErrorCode.ALREADY_ACCEPTED)

    await db.delete(invite)
    await db.flush()
    return invite


async def delete_for_organization(db: AsyncSession, org_id: uuid.UUID) -> int:
    """Drop every invite of an organization that is being deleted."""
    result = await db.execute(delete(OrganizationInvite).where(OrganizationInvite.organization_id == org_id))
    return result.rowcount


async def list_for_organization(db: AsyncSession, org_id: uuid.UUID) -> list[OrganizationInvite]:
    result = await db.execute(
        select(OrganizationInvite)
        .where(OrganizationInvite.organization_id == org_id)
        .order_by(OrganizationInvite.created_at.desc())
    )
    return list(result.scalars().all())


async def list_for_email(db: AsyncSession, email: str) -> list[InviteDetails]:
    result = await db.execute(
        select(OrganizationInvite, Organization.name)
        .join(Organization, Organization.id == OrganizationInvite.organization_id)
        .where(OrganizationInvite.email == normalize_email(email))
        .order_by(OrganizationInvite.created_at.desc())
    )
    return [InviteDetails(invite=invite, organization_name=name) for invite, name in result.all()]


def expires_at_utc(invite: OrganizationInvite) -> datetime:
    return ensure_utc(invite.expires_at)
