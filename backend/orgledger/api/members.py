import uuid

from fastapi import APIRouter, Depends

from orgledger.core.dependencies import get_current_user, get_orchestrator
from orgledger.core.permissions import Action
from orgledger.models.user import User
from orgledger.schemas.member import AddUserRequest, AddUserResponse, MemberResponse, RoleChangeRequest
from orgledger.services import membership_store
from orgledger.services.membership import MembershipOrchestrator

router = APIRouter(prefix="/members", tags=["members"])


@router.post("", response_model=AddUserResponse, summary="Add User Directly")
async def add_user(
    request: AddUserRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    """Add a user to an organization without an invitation.

    Creates the user record if the email is unknown. Credentials for new
    users are issued separately by the identity service.
    """
    result = await orchestrator.add_user_direct(
        request.organization_id, current_user, request.name, str(request.email), request.role
    )
    return AddUserResponse(user_id=result.user_id, is_new_user=result.is_new_user, role=result.role)


@router.get("/{org_id}", response_model=list[MemberResponse], summary="List Members")
async def list_members(
    org_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.authorize_view(org_id, current_user, Action.VIEW_MEMBERS)
    rows = await membership_store.list_members(orchestrator.db, org_id)
    return [
        MemberResponse(
            user_id=member.user_id,
            organization_id=member.organization_id,
            email=user.email,
            name=user.name,
            role=member.role,
            joined_at=member.joined_at,
        )
        for member, user in rows
    ]


@router.delete("/{org_id}/{user_id}", summary="Remove Member")
async def remove_member(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.remove_member(org_id, current_user, user_id)
    return {"detail": "Member removed"}


@router.patch("/{org_id}/{user_id}", response_model=MemberResponse, summary="Change Member Role")
async def change_role(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    request: RoleChangeRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    member = await orchestrator.change_role(org_id, current_user, user_id, request.role)
    user = await membership_store.get_user(orchestrator.db, user_id)
    return MemberResponse(
        user_id=member.user_id,
        organization_id=member.organization_id,
        email=user.email,
        name=user.name,
        role=member.role,
        joined_at=member.joined_at,
    )
