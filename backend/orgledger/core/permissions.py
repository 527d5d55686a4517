"""Role authority: who may do what inside an organization.

``authorize`` is a pure decision over (caller role, action, super admin
flag). It never looks at seat capacity or owner counts; those invariants are
enforced by the seat accountant and ``assert_not_last_owner`` regardless of
what ``authorize`` returns. A super admin bypasses this table only.
"""

import enum
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from orgledger.core.errors import Conflict, ErrorCode, Forbidden
from orgledger.models.member import MemberRole
from orgledger.services import membership_store

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    INVITE_MEMBER = "invite_member"
    ADD_USER_DIRECT = "add_user_direct"
    REMOVE_MEMBER = "remove_member"
    CHANGE_ROLE = "change_role"
    TRANSFER_OWNERSHIP = "transfer_ownership"
    VIEW_AUDIT_LOG = "view_audit_log"
    MANAGE_SEATS = "manage_seats"
    UPDATE_ORGANIZATION = "update_organization"
    DELETE_ORGANIZATION = "delete_organization"
    VIEW_MEMBERS = "view_members"


ROLE_ACTIONS: dict[MemberRole, frozenset[Action]] = {
    MemberRole.OWNER: frozenset(Action),
    MemberRole.ADMIN: frozenset({
        Action.INVITE_MEMBER,
        Action.ADD_USER_DIRECT,
        Action.REMOVE_MEMBER,
        Action.CHANGE_ROLE,
        Action.VIEW_AUDIT_LOG,
        Action.UPDATE_ORGANIZATION,
        Action.VIEW_MEMBERS,
    }),
    MemberRole.MEMBER: frozenset({Action.VIEW_MEMBERS}),
}


def authorize(
    caller_role: MemberRole | None,
    action: Action,
    is_super_admin: bool = False,
    *,
    touches_owner: bool = False,
) -> bool:
    """Return True when the caller may perform ``action``.

    ``touches_owner`` marks a request that grants or revokes the OWNER role
    (promotion to or demotion from OWNER, removing an OWNER, inviting or
    adding someone directly as OWNER). Only an OWNER may do that, so an
    ADMIN can never strip owners from an organization they do not own.

    A caller with no membership in the organization (``caller_role=None``)
    is denied everything unless they are a super admin.
    """
    if is_super_admin:
        return True
    if caller_role is None:
        return False
    if action not in ROLE_ACTIONS[caller_role]:
        return False
    if touches_owner and caller_role is not MemberRole.OWNER:
        return False
    return True


def require(
    caller_role: MemberRole | None,
    action: Action,
    is_super_admin: bool = False,
    *,
    touches_owner: bool = False,
) -> None:
    """Raise ``Forbidden`` unless ``authorize`` allows the request."""
    if authorize(caller_role, action, is_super_admin, touches_owner=touches_owner):
        return

    logger.info(
        "Denied %s for role=%s touches_owner=%s",
        action.value,
        caller_role.value if caller_role else None,
        touches_owner,
    )
    if action is Action.TRANSFER_OWNERSHIP:
        raise Forbidden("Only the owner can transfer ownership")
    if action is Action.DELETE_ORGANIZATION:
        raise Forbidden("Only owners can delete organizations")
    if touches_owner:
        raise Forbidden("Only an owner can grant or revoke the OWNER role")
    raise Forbidden()


async def assert_not_last_owner(
    db: AsyncSession, org_id: uuid.UUID, target_user_id: uuid.UUID
) -> None:
    """Raise ``Conflict(LAST_OWNER)`` if losing ``target_user_id`` leaves no OWNER.

    Must run inside the mutating transaction, after the organization row is
    locked; the OWNER rows are re-read under lock rather than trusted from
    an earlier snapshot.
    """
    owner_ids = await membership_store.lock_owner_ids(db, org_id)
    if target_user_id in owner_ids and len(owner_ids) <= 1:
        logger.info("Refused to drop last owner", extra={"org_id": str(org_id)})
        raise Conflict(ErrorCode.LAST_OWNER)
