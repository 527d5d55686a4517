import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orgledger.config import settings
from orgledger.core.dependencies import get_current_user, get_orchestrator
from orgledger.database import get_db
from orgledger.models.invite import OrganizationInvite
from orgledger.models.user import User
from orgledger.schemas.invite import (
    InviteAcceptResponse,
    InviteCreatedResponse,
    InviteCreateRequest,
    InviteResponse,
    InviteValidateResponse,
)
from orgledger.services import invitations
from orgledger.services.membership import MembershipOrchestrator

router = APIRouter(prefix="/invites", tags=["invites"])


def build_invite_response(invite: OrganizationInvite, organization_name: str | None = None) -> InviteResponse:
    return InviteResponse(
        id=invite.id,
        organization_id=invite.organization_id,
        email=invite.email,
        role=invite.role,
        status=invite.status.value,
        expires_at=invitations.expires_at_utc(invite),
        created_at=invite.created_at,
        accepted_at=invite.accepted_at,
        organization_name=organization_name,
    )


def _build_created_response(invite: OrganizationInvite) -> InviteCreatedResponse:
    base = build_invite_response(invite)
    return InviteCreatedResponse(
        **base.model_dump(),
        token=invite.token,
        invite_url=f"{settings.public_url}/invite/{invite.token}",
    )


@router.post("", response_model=InviteCreatedResponse, status_code=201, summary="Invite Member")
async def create_invite(
    request: InviteCreateRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    """Issue an invitation. Seats are checked when the invite is accepted, not here."""
    invite = await orchestrator.issue_invite(
        request.organization_id, current_user, str(request.email), request.role
    )
    return _build_created_response(invite)


@router.get("/mine", response_model=list[InviteResponse], summary="List My Invites")
async def list_my_invites(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Invitations addressed to the current user's email, in any state."""
    details = await invitations.list_for_email(db, current_user.email)
    return [build_invite_response(d.invite, d.organization_name) for d in details]


@router.get("/{token}", response_model=InviteValidateResponse, summary="Validate Invite Token")
async def validate_invite(token: str, db: AsyncSession = Depends(get_db)):
    """Public endpoint (no auth) used by the invite landing page."""
    details = await invitations.validate(db, token)
    return InviteValidateResponse(
        organization_id=details.invite.organization_id,
        organization_name=details.organization_name,
        email=details.invite.email,
        role=details.invite.role,
        expires_at=invitations.expires_at_utc(details.invite),
    )


@router.post("/{token}/accept", response_model=InviteAcceptResponse, summary="Accept Invite")
async def accept_invite(
    token: str,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    outcome = await orchestrator.accept_invite(token, current_user)
    return InviteAcceptResponse(
        organization_id=outcome.organization.id,
        organization_name=outcome.organization.name,
        role=outcome.role,
        already_member=outcome.already_member,
    )


@router.delete("/{invite_id}", summary="Revoke Invite")
async def revoke_invite(
    invite_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.revoke_invite(current_user, invite_id)
    return {"detail": "Invite revoked"}


@router.post("/{invite_id}/resend", response_model=InviteResponse, summary="Resend Invite")
async def resend_invite(
    invite_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    """Re-send the invitation email and restart its expiry window."""
    invite = await orchestrator.resend_invite(current_user, invite_id)
    return build_invite_response(invite)


@router.post("/{invite_id}/decline", summary="Decline Invite")
async def decline_invite(
    invite_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.decline_invite(current_user, invite_id)
    return {"detail": "Invite declined"}
