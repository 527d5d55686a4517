"""Membership orchestrator.

The single entry point for every membership mutation: organization
creation, rename and deletion, direct adds, invite
issue/accept/revoke/resend/decline, removals, role changes, ownership
transfer and seat capacity changes.

Each public coroutine is exactly one transaction:

1. lock the organization row (``SELECT ... FOR UPDATE``)
2. ask the role authority whether the caller may act
3. let the seat accountant reserve/release capacity with guarded UPDATEs
4. write member/invite rows
5. commit, or roll back completely on any error

Audit entries and notification emails are queued while the transaction runs
and only emitted after a successful commit. Their failures are logged and
never undo the committed change.
"""

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orgledger.config import DEFAULT_ORG_PLAN, DEFAULT_ORG_SEATS, settings
from orgledger.core.errors import Conflict, ErrorCode, Forbidden, Internal, MembershipError, NotFound
from orgledger.core.permissions import Action, assert_not_last_owner, require
from orgledger.core.timeutils import ensure_utc
from orgledger.database import async_session_factory
from orgledger.models.invite import OrganizationInvite
from orgledger.models.member import MemberRole, OrganizationMember
from orgledger.models.org import Organization
from orgledger.models.user import User, normalize_email
from orgledger.services import audit, invitations, membership_store, notifications, seat_accountant
from orgledger.services.audit import AuditAction, AuditEvent
from orgledger.services.invitations import AcceptOutcome
from orgledger.services.notifications import Notification, NotificationKind
from orgledger.services.seat_accountant import SeatUsage

logger = logging.getLogger(__name__)


@dataclass
class AddUserResult:
    user_id: uuid.UUID
    is_new_user: bool
    role: MemberRole


@dataclass
class OrganizationView:
    organization: Organization
    usage: SeatUsage
    caller_role: MemberRole | None


class MembershipOrchestrator:
    def __init__(
        self,
        db: AsyncSession,
        audit_sessions: async_sessionmaker[AsyncSession] = async_session_factory,
    ):
        self.db = db
        self.audit_sessions = audit_sessions
        self._events: list[AuditEvent] = []
        self._outbox: list[Notification] = []

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        self._events = []
        self._outbox = []
        try:
            yield
            await self.db.commit()
        except MembershipError as e:
            await self.db.rollback()
            logger.info(f"Membership operation rejected: {e.code.value}")
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Membership storage failure: {e}", exc_info=True)
            raise Internal() from e
        except Exception:
            await self.db.rollback()
            raise

        await self._after_commit()

    async def _after_commit(self) -> None:
        events, outbox = self._events, self._outbox
        self._events, self._outbox = [], []
        await audit.record_events(self.audit_sessions, events)
        notifications.dispatch(outbox)

    def _audit(self, org_id: uuid.UUID, actor_id: uuid.UUID | None, action: str, **details) -> None:
        self._events.append(AuditEvent(organization_id=org_id, user_id=actor_id, action=action, details=details))

    def _notify(self, kind: NotificationKind, to_email: str, **context) -> None:
        self._outbox.append(Notification(kind=kind, to_email=to_email, context=context))

    async def _caller_role(self, org_id: uuid.UUID, caller: User) -> MemberRole | None:
        return await membership_store.get_member_role(self.db, org_id, caller.id)

    async def _require_member(
        self, org_id: uuid.UUID, user_id: uuid.UUID, message: str = "Member not found"
    ) -> OrganizationMember:
        member = await membership_store.get_member(self.db, org_id, user_id, for_update=True)
        if member is None:
            raise NotFound(message)
        return member

    # ------------------------------------------------------------------
    # Organizations and seats
    # ------------------------------------------------------------------

    async def create_organization(
        self,
        caller: User,
        name: str,
        *,
        seats: int | None = None,
        plan: str | None = None,
        billing_email: str | None = None,
    ) -> Organization:
        """Create an organization with ``caller`` as its OWNER.

        Owners hold no seat, so a new organization starts at ``seats_used=0``.
        Only super admins may provision capacity beyond the default here;
        everyone else buys seats through billing afterwards.
        """
        if seats is not None and seats != DEFAULT_ORG_SEATS and not caller.is_super_admin:
            raise Forbidden("Only super admins can set seat capacity on creation")

        async with self._transaction():
            org = await membership_store.create_organization(
                self.db,
                name=name,
                plan=plan or DEFAULT_ORG_PLAN,
                seats=seats or DEFAULT_ORG_SEATS,
                billing_email=billing_email or caller.email,
            )
            await membership_store.insert_member(self.db, org.id, caller.id, MemberRole.OWNER)
            self._audit(org.id, caller.id, AuditAction.ORGANIZATION_CREATED, name=name, seats=org.seats, plan=org.plan)

        logger.info(f"Organization {org.id} created", extra={"org_id": str(org.id), "user_id": str(caller.id)})
        return org

    async def update_seats(self, org_id: uuid.UUID, caller: User, seats: int) -> SeatUsage:
        async with self._transaction():
            org = await membership_store.lock_organization(self.db, org_id)
            require(await self._caller_role(org_id, caller), Action.MANAGE_SEATS, caller.is_super_admin)
            old_seats = org.seats
            await seat_accountant.set_capacity(self.db, org_id, seats)
            usage = await seat_accountant.seat_usage(self.db, org_id)
            self._audit(org_id, caller.id, AuditAction.SEATS_UPDATED, old_seats=old_seats, new_seats=seats)

        logger.info(f"Seats for {org_id} set to {seats}", extra={"org_id": str(org_id)})
        return usage

    async def update_organization(
        self,
        org_id: uuid.UUID,
        caller: User,
        *,
        name: str | None = None,
        billing_email: str | None = None,
    ) -> Organization:
        async with self._transaction():
            org = await membership_store.lock_organization(self.db, org_id)
            require(await self._caller_role(org_id, caller), Action.UPDATE_ORGANIZATION, caller.is_super_admin)

            if billing_email is not None:
                billing_email = normalize_email(billing_email)
            changes = {}
            if name is not None and name != org.name:
                changes["old_name"], changes["new_name"] = org.name, name
            if billing_email is not None and billing_email != org.billing_email:
                changes["old_billing_email"], changes["new_billing_email"] = org.billing_email, billing_email
            if not changes:
                return org

            await membership_store.update_organization(self.db, org, name=name, billing_email=billing_email)
            self._audit(org_id, caller.id, AuditAction.ORGANIZATION_UPDATED, **changes)

        logger.info(f"Organization {org_id} updated", extra={"org_id": str(org_id), "user_id": str(caller.id)})
        return org

    async def delete_organization(self, org_id: uuid.UUID, caller: User) -> None:
        """Delete an organization with its invites and memberships.

        Its audit trail is kept and gains a final ``organization_deleted``
        entry.
        """
        async with self._transaction():
            org = await membership_store.lock_organization(self.db, org_id)
            require(await self._caller_role(org_id, caller), Action.DELETE_ORGANIZATION, caller.is_super_admin)

            name = org.name
            invites_dropped = await invitations.delete_for_organization(self.db, org_id)
            members_dropped = await membership_store.delete_organization(self.db, org)
            self._audit(
                org_id, caller.id, AuditAction.ORGANIZATION_DELETED,
                name=name, members=members_dropped, invites=invites_dropped,
            )

        logger.info(f"Organization {org_id} deleted", extra={"org_id": str(org_id), "user_id": str(caller.id)})

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def add_user_direct(
        self,
        org_id: uuid.UUID,
        caller: User,
        name: str,
        email: str,
        role: MemberRole,
    ) -> AddUserResult:
        async with self._transaction():
            org = await membership_store.lock_organization(self.db, org_id)
            require(
                await self._caller_role(org_id, caller),
                Action.ADD_USER_DIRECT,
                caller.is_super_admin,
                touches_owner=role is MemberRole.OWNER,
            )

            user, is_new_user = await membership_store.get_or_create_user(self.db, email, name)
            if await membership_store.get_member(self.db, org_id, user.id) is not None:
                raise Conflict(ErrorCode.ALREADY_MEMBER)

            await seat_accountant.apply_role_change(self.db, org_id, None, role)
            await membership_store.insert_member(self.db, org_id, user.id, role)

            self._audit(
                org_id, caller.id, AuditAction.MEMBER_ADDED,
                target_user_id=user.id, email=user.email, role=role.value, is_new_user=is_new_user,
            )
            self._notify(
                NotificationKind.WELCOME, user.email,
                user_name=user.name, organization_name=org.name, role=role.value, is_new_user=is_new_user,
            )
            result = AddUserResult(user_id=user.id, is_new_user=is_new_user, role=role)

        logger.info(f"Added {role.value} {result.user_id} directly", extra={"org_id": str(org_id)})
        return result

    async def remove_member(self, org_id: uuid.UUID, caller: User, target_user_id: uuid.UUID) -> None:
        async with self._transaction():
            org = await membership_store.lock_organization(self.db, org_id)
            caller_role = await self._caller_role(org_id, caller)
            require(caller_role, Action.REMOVE_MEMBER, caller.is_super_admin)

            member = await self._require_member(org_id, target_user_id)
            removed_role = member.role
            if removed_role is MemberRole.OWNER:
                require(caller_role, Action.REMOVE_MEMBER, caller.is_super_admin, touches_owner=True)
                await assert_not_last_owner(self.db, org_id, target_user_id)

            target = await membership_store.get_user(self.db, target_user_id)
            await membership_store.delete_member(self.db, member)
            await seat_accountant.apply_role_change(self.db, org_id, removed_role, None)

            self._audit(
                org_id, caller.id, AuditAction.MEMBER_REMOVED,
                target_user_id=target_user_id, role=removed_role.value,
            )
            if target:
                self._notify(
                    NotificationKind.REMOVED, target.email,
                    user_name=target.name, organization_name=org.name,
                )

        logger.info(f"Removed {removed_role.value} {target_user_id}", extra={"org_id": str(org_id)})

    async def change_role(
        self,
        org_id: uuid.UUID,
        caller: User,
        target_user_id: uuid.UUID,
        new_role: MemberRole,
    ) -> OrganizationMember:
        async with self._transaction():
            org = await membership_store.lock_organization(self.db, org_id)
            caller_role = await self._caller_role(org_id, caller)
            require(caller_role, Action.CHANGE_ROLE, caller.is_super_admin)

            member = await self._require_member(org_id, target_user_id)
            old_role = member.role
            if old_role is new_role:
                return member

            require(
                caller_role,
                Action.CHANGE_ROLE,
                caller.is_super_admin,
                touches_owner=MemberRole.OWNER in (old_role, new_role),
            )
            if old_role is MemberRole.OWNER:
                await assert_not_last_owner(self.db, org_id, target_user_id)

            await seat_accountant.apply_role_change(self.db, org_id, old_role, new_role)
            member.role = new_role
            await self.db.flush()

            self._audit(
                org_id, caller.id, AuditAction.ROLE_CHANGED,
                target_user_id=target_user_id, old_role=old_role.value, new_role=new_role.value,
            )
            target = await membership_store.get_user(self.db, target_user_id)
            if target:
                self._notify(
                    NotificationKind.ROLE_CHANGED, target.email,
                    user_name=target.name, organization_name=org.name,
                    old_role=old_role.value, role=new_role.value,
                )

        logger.info(
            f"Role of {target_user_id} changed {old_role.value} -> {new_role.value}",
            extra={"org_id": str(org_id)},
        )
        return member

    async def transfer_ownership(
        self, org_id: uuid.UUID, caller: User, new_owner_user_id: uuid.UUID
    ) -> None:
        """Hand OWNER to an existing member; the previous owner becomes ADMIN.

        Both role writes are flushed in the same transaction, so no other
        transaction ever observes zero or two owners mid-transfer. A super
        admin acting on an organization they don't own demotes every current
        OWNER.
        """
        async with self._transaction():
            org = await membership_store.lock_organization(self.db, org_id)
            caller_role = await self._caller_role(org_id, caller)
            require(caller_role, Action.TRANSFER_OWNERSHIP, caller.is_super_admin)

            target = await self._require_member(
                org_id, new_owner_user_id, "New owner must be a member of the organization"
            )
            if target.role is MemberRole.OWNER:
                raise Conflict(ErrorCode.ALREADY_OWNER)

            owner_ids = await membership_store.lock_owner_ids(self.db, org_id)
            previous_owner_ids = [caller.id] if caller_role is MemberRole.OWNER else owner_ids

            for owner_id in previous_owner_ids:
                owner = await self._require_member(org_id, owner_id)
                owner.role = MemberRole.ADMIN
            await seat_accountant.apply_role_change(self.db, org_id, target.role, MemberRole.OWNER)
            target.role = MemberRole.OWNER
            await self.db.flush()

            users = await membership_store.get_users(self.db, [*previous_owner_ids, new_owner_user_id])
            new_owner = users.get(new_owner_user_id)
            for owner_id in previous_owner_ids:
                self._audit(
                    org_id, owner_id, AuditAction.OWNERSHIP_TRANSFERRED,
                    new_owner_id=new_owner_user_id, performed_by=caller.id,
                )
                previous = users.get(owner_id)
                if previous:
                    self._notify(
                        NotificationKind.OWNERSHIP_RELINQUISHED, previous.email,
                        user_name=previous.name, organization_name=org.name,
                        new_owner_name=new_owner.name if new_owner else None,
                    )
            self._audit(
                org_id, new_owner_user_id, AuditAction.OWNERSHIP_RECEIVED,
                previous_owner_ids=[str(owner_id) for owner_id in previous_owner_ids], performed_by=caller.id,
            )
            if new_owner:
                self._notify(
                    NotificationKind.OWNERSHIP_RECEIVED, new_owner.email,
                    user_name=new_owner.name, organization_name=org.name,
                )

        logger.info(f"Ownership of {org_id} transferred to {new_owner_user_id}", extra={"org_id": str(org_id)})

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    def _notify_invite(self, org: Organization, invite: OrganizationInvite, inviter: User) -> None:
        self._notify(
            NotificationKind.INVITE, invite.email,
            organization_name=org.name,
            role=invite.role.value,
            inviter_name=inviter.name,
            invite_url=f"{settings.public_url}/invite/{invite.token}",
            expires_at=ensure_utc(invite.expires_at).isoformat(),
        )

    async def issue_invite(
        self, org_id: uuid.UUID, caller: User, email: str, role: MemberRole
    ) -> OrganizationInvite:
        async with self._transaction():
            org = await membership_store.lock_organization(self.db, org_id)
            require(
                await self._caller_role(org_id, caller),
                Action.INVITE_MEMBER,
                caller.is_super_admin,
                touches_owner=role is MemberRole.OWNER,
            )
            invite = await invitations.issue(self.db, org_id, email, role, caller.id)
            self._audit(
                org_id, caller.id, AuditAction.INVITE_CREATED,
                invite_id=invite.id, email=invite.email, role=role.value,
            )
            self._notify_invite(org, invite, caller)

        return invite

    async def accept_invite(self, token: str, user: User) -> AcceptOutcome:
        async with self._transaction():
            outcome = await invitations.accept(self.db, token, user)
            org = outcome.organization
            self._audit(
                org.id, user.id, AuditAction.INVITE_ACCEPTED,
                invite_id=outcome.invite.id, role=outcome.role.value, already_member=outcome.already_member,
            )
            if not outcome.already_member:
                self._notify(
                    NotificationKind.WELCOME, user.email,
                    user_name=user.name, organization_name=org.name, role=outcome.role.value,
                )

        return outcome

    async def _lock_invite_org(self, invite_id: uuid.UUID) -> tuple[Organization, OrganizationInvite]:
        invite = await invitations.get_invite(self.db, invite_id)
        org = await membership_store.lock_organization(self.db, invite.organization_id)
        return org, invite

    async def revoke_invite(self, caller: User, invite_id: uuid.UUID) -> None:
        async with self._transaction():
            org, _ = await self._lock_invite_org(invite_id)
            require(await self._caller_role(org.id, caller), Action.INVITE_MEMBER, caller.is_super_admin)
            invite = await invitations.revoke(self.db, org.id, invite_id)
            self._audit(org.id, caller.id, AuditAction.INVITE_REVOKED, invite_id=invite_id, email=invite.email)

    async def resend_invite(self, caller: User, invite_id: uuid.UUID) -> OrganizationInvite:
        async with self._transaction():
            org, _ = await self._lock_invite_org(invite_id)
            require(await self._caller_role(org.id, caller), Action.INVITE_MEMBER, caller.is_super_admin)
            invite = await invitations.resend(self.db, org.id, invite_id)
            self._audit(org.id, caller.id, AuditAction.INVITE_RESENT, invite_id=invite_id, email=invite.email)
            self._notify_invite(org, invite, caller)

        return invite

    async def decline_invite(self, user: User, invite_id: uuid.UUID) -> None:
        async with self._transaction():
            org, _ = await self._lock_invite_org(invite_id)
            invite = await invitations.decline(self.db, invite_id, user.email)
            self._audit(org.id, user.id, AuditAction.INVITE_DECLINED, invite_id=invite_id, email=invite.email)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def authorize_view(self, org_id: uuid.UUID, caller: User, action: Action) -> OrganizationView:
        """Resolve the organization and check ``caller`` may run a read ``action``."""
        org = await membership_store.get_organization(self.db, org_id)
        if org is None:
            raise NotFound("Organization not found")
        caller_role = await self._caller_role(org_id, caller)
        require(caller_role, action, caller.is_super_admin)
        usage = SeatUsage(organization_id=org.id, seats=org.seats, seats_used=org.seats_used)
        return OrganizationView(organization=org, usage=usage, caller_role=caller_role)
