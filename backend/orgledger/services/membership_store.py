"""Membership store: the privileged query boundary for membership tables.

All reads and writes of ``organizations``, ``organization_members`` and
``users`` used by the membership subsystem go through this module, and only
the membership orchestrator / invitation manager call it. Nothing here
commits; the caller owns the transaction.
"""

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgledger.core.errors import NotFound
from orgledger.models.member import MemberRole, OrganizationMember
from orgledger.models.org import Organization
from orgledger.models.user import User, normalize_email


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------


async def get_organization(db: AsyncSession, org_id: uuid.UUID) -> Organization | None:
    result = await db.execute(
        select(Organization)
        .where(Organization.id == org_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def lock_organization(db: AsyncSession, org_id: uuid.UUID) -> Organization:
    """Load the organization row with ``FOR UPDATE``.

    Every mutating membership operation takes this lock first, so writers in
    the same organization serialize for the rest of their transaction.
    """
    result = await db.execute(
        select(Organization)
        .where(Organization.id == org_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    org = result.scalar_one_or_none()
    if org is None:
        raise NotFound("Organization not found")
    return org


async def create_organization(
    db: AsyncSession,
    name: str,
    plan: str,
    seats: int,
    billing_email: str | None = None,
) -> Organization:
    org = Organization(
        name=name,
        plan=plan,
        seats=seats,
        seats_used=0,
        billing_email=normalize_email(billing_email) if billing_email else None,
    )
    db.add(org)
    await db.flush()
    return org


async def list_user_organizations(
    db: AsyncSession, user_id: uuid.UUID
) -> list[tuple[Organization, MemberRole]]:
    result = await db.execute(
        select(Organization, OrganizationMember.role)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(OrganizationMember.user_id == user_id)
        .order_by(Organization.created_at)
    )
    return [(org, role) for org, role in result.all()]


async def update_organization(
    db: AsyncSession,
    org: Organization,
    *,
    name: str | None = None,
    billing_email: str | None = None,
) -> None:
    if name is not None:
        org.name = name
    if billing_email is not None:
        org.billing_email = normalize_email(billing_email)
    await db.flush()


async def delete_organization(db: AsyncSession, org: Organization) -> int:
    """Delete ``org`` and its member rows. Returns how many members were dropped.

    Member rows are deleted explicitly; SQLite does not enforce
    ``ON DELETE CASCADE`` unless foreign keys are switched on.
    """
    result = await db.execute(
        delete(OrganizationMember).where(OrganizationMember.organization_id == org.id)
    )
    await db.delete(org)
    await db.flush()
    return result.rowcount


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


async def get_member(
    db: AsyncSession,
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> OrganizationMember | None:
    query = select(OrganizationMember).where(
        OrganizationMember.organization_id == org_id,
        OrganizationMember.user_id == user_id,
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def get_member_role(
    db: AsyncSession, org_id: uuid.UUID, user_id: uuid.UUID
) -> MemberRole | None:
    result = await db.execute(
        select(OrganizationMember.role).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def lock_owner_ids(db: AsyncSession, org_id: uuid.UUID) -> list[uuid.UUID]:
    """Current OWNER user ids, read under ``FOR UPDATE``."""
    result = await db.execute(
        select(OrganizationMember.user_id)
        .where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.role == MemberRole.OWNER,
        )
        .with_for_update()
    )
    return list(result.scalars().all())


async def insert_member(
    db: AsyncSession, org_id: uuid.UUID, user_id: uuid.UUID, role: MemberRole
) -> OrganizationMember:
    member = OrganizationMember(organization_id=org_id, user_id=user_id, role=role)
    db.add(member)
    await db.flush()
    return member


async def delete_member(db: AsyncSession, member: OrganizationMember) -> None:
    await db.delete(member)
    await db.flush()


async def list_members(
    db: AsyncSession, org_id: uuid.UUID
) -> list[tuple[OrganizationMember, User]]:
    result = await db.execute(
        select(OrganizationMember, User)
        .join(User, User.id == OrganizationMember.user_id)
        .where(OrganizationMember.organization_id == org_id)
        .order_by(OrganizationMember.joined_at)
    )
    return [(member, user) for member, user in result.all()]


async def is_email_member(db: AsyncSession, org_id: uuid.UUID, email: str) -> bool:
    result = await db.execute(
        select(OrganizationMember.user_id)
        .join(User, User.id == OrganizationMember.user_id)
        .where(
            OrganizationMember.organization_id == org_id,
            User.email == normalize_email(email),
        )
    )
    return result.first() is not None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_users(db: AsyncSession, user_ids: list[uuid.UUID]) -> dict[uuid.UUID, User]:
    if not user_ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(user_ids)))
    return {user.id: user for user in result.scalars().all()}


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def get_or_create_user(db: AsyncSession, email: str, name: str) -> tuple[User, bool]:
    """Return ``(user, created)``. Credentials are issued by the identity service."""
    user = await get_user_by_email(db, email)
    if user:
        return user, False

    user = User(email=normalize_email(email), name=name)
    db.add(user)
    await db.flush()
    return user, True
