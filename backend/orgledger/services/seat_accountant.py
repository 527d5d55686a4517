"""Seat accountant: the only code that writes ``seats`` / ``seats_used``.

Each operation is one guarded UPDATE whose WHERE clause carries the
capacity check, so the check and the write happen atomically in the
database. Callers must run these inside the same transaction as the member
row change they guard; a failure raises ``Conflict`` and the caller's
transaction rolls back.

Only MEMBER-role rows occupy a seat. OWNER and ADMIN adds, removes and
OWNER<->ADMIN changes never come through here.
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orgledger.core.errors import Conflict, ErrorCode, NotFound
from orgledger.models.member import MemberRole
from orgledger.models.org import Organization

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeatUsage:
    organization_id: uuid.UUID
    seats: int
    seats_used: int

    @property
    def seats_available(self) -> int:
        return max(self.seats - self.seats_used, 0)


async def reserve_seat(db: AsyncSession, org_id: uuid.UUID) -> None:
    """Consume one seat or raise ``Conflict(SEATS_EXHAUSTED)``."""
    result = await db.execute(
        update(Organization)
        .where(Organization.id == org_id, Organization.seats_used < Organization.seats)
        .values(seats_used=Organization.seats_used + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info("Seat reservation refused, organization full", extra={"org_id": str(org_id)})
        raise Conflict(ErrorCode.SEATS_EXHAUSTED)


async def release_seat(db: AsyncSession, org_id: uuid.UUID) -> None:
    """Give back one seat, never going below zero."""
    await db.execute(
        update(Organization)
        .where(Organization.id == org_id)
        .values(
            seats_used=case(
                (Organization.seats_used > 0, Organization.seats_used - 1),
                else_=0,
            )
        )
        .execution_options(synchronize_session=False)
    )


async def apply_role_change(
    db: AsyncSession,
    org_id: uuid.UUID,
    old_role: MemberRole | None,
    new_role: MemberRole | None,
) -> None:
    """Reserve or release a seat when a membership crosses the MEMBER boundary.

    ``None`` stands for "not a member" so joins and removals go through the
    same rule: entering MEMBER reserves, leaving MEMBER releases.
    """
    was_seated = old_role is not None and old_role.occupies_seat
    now_seated = new_role is not None and new_role.occupies_seat
    if now_seated and not was_seated:
        await reserve_seat(db, org_id)
    elif was_seated and not now_seated:
        await release_seat(db, org_id)


async def set_capacity(db: AsyncSession, org_id: uuid.UUID, seats: int) -> None:
    """Change the purchased seat count; refuses to drop below ``seats_used``."""
    if seats < 1:
        raise ValueError("seats must be at least 1")

    result = await db.execute(
        update(Organization)
        .where(Organization.id == org_id, Organization.seats_used <= seats)
        .values(seats=seats)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Conflict(ErrorCode.SEATS_BELOW_USAGE)


async def seat_usage(db: AsyncSession, org_id: uuid.UUID) -> SeatUsage:
    result = await db.execute(
        select(Organization.seats, Organization.seats_used).where(Organization.id == org_id)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFound("Organization not found")
    return SeatUsage(organization_id=org_id, seats=row.seats, seats_used=row.seats_used)
