import uuid

from fastapi import APIRouter, Depends

from orgledger.api.invites import build_invite_response
from orgledger.core.dependencies import get_current_user, get_orchestrator
from orgledger.core.permissions import Action
from orgledger.models.member import MemberRole
from orgledger.models.org import Organization
from orgledger.models.user import User
from orgledger.schemas.invite import InviteResponse
from orgledger.schemas.organization import (
    OrganizationCreateRequest,
    OrganizationResponse,
    OrganizationUpdateRequest,
    SeatUpdateRequest,
    SeatUsageResponse,
    TransferOwnershipRequest,
)
from orgledger.services import invitations, membership_store
from orgledger.services.membership import MembershipOrchestrator
from orgledger.services.seat_accountant import SeatUsage

router = APIRouter(prefix="/organizations", tags=["organizations"])


def _build_org_response(org: Organization, role: MemberRole | None) -> OrganizationResponse:
    return OrganizationResponse(
        id=org.id,
        name=org.name,
        plan=org.plan,
        seats=org.seats,
        seats_used=org.seats_used,
        seats_available=org.seats_available,
        billing_email=org.billing_email,
        created_at=org.created_at,
        role=role.value if role else None,
    )


def _build_usage_response(usage: SeatUsage) -> SeatUsageResponse:
    return SeatUsageResponse(
        organization_id=usage.organization_id,
        seats=usage.seats,
        seats_used=usage.seats_used,
        seats_available=usage.seats_available,
    )


@router.post("", response_model=OrganizationResponse, status_code=201, summary="Create Organization")
async def create_organization(
    request: OrganizationCreateRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    """Create an organization owned by the current user."""
    org = await orchestrator.create_organization(
        current_user,
        request.name,
        seats=request.seats,
        plan=request.plan,
        billing_email=str(request.billing_email) if request.billing_email else None,
    )
    return _build_org_response(org, MemberRole.OWNER)


@router.get("", response_model=list[OrganizationResponse], summary="List My Organizations")
async def list_organizations(
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    rows = await membership_store.list_user_organizations(orchestrator.db, current_user.id)
    return [_build_org_response(org, role) for org, role in rows]


@router.get("/{org_id}", response_model=OrganizationResponse, summary="Get Organization")
async def get_organization(
    org_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    view = await orchestrator.authorize_view(org_id, current_user, Action.VIEW_MEMBERS)
    return _build_org_response(view.organization, view.caller_role)


@router.patch("/{org_id}", response_model=OrganizationResponse, summary="Update Organization")
async def update_organization(
    org_id: uuid.UUID,
    request: OrganizationUpdateRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    """Rename an organization or change its billing email."""
    org = await orchestrator.update_organization(
        org_id,
        current_user,
        name=request.name,
        billing_email=str(request.billing_email) if request.billing_email else None,
    )
    role = await membership_store.get_member_role(orchestrator.db, org_id, current_user.id)
    return _build_org_response(org, role)


@router.delete("/{org_id}", summary="Delete Organization")
async def delete_organization(
    org_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    """Delete an organization. Owners and super admins only."""
    await orchestrator.delete_organization(org_id, current_user)
    return {"detail": "Organization deleted"}


@router.get("/{org_id}/seats", response_model=SeatUsageResponse, summary="Get Seat Usage")
async def get_seat_usage(
    org_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    view = await orchestrator.authorize_view(org_id, current_user, Action.VIEW_MEMBERS)
    return _build_usage_response(view.usage)


@router.put("/{org_id}/seats", response_model=SeatUsageResponse, summary="Update Seat Capacity")
async def update_seats(
    org_id: uuid.UUID,
    request: SeatUpdateRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    """Set the purchased seat count. Fails if it would drop below current usage."""
    usage = await orchestrator.update_seats(org_id, current_user, request.seats)
    return _build_usage_response(usage)


@router.post("/{org_id}/transfer-ownership", summary="Transfer Ownership")
async def transfer_ownership(
    org_id: uuid.UUID,
    request: TransferOwnershipRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    """Make another member the OWNER; the current owner becomes ADMIN."""
    await orchestrator.transfer_ownership(org_id, current_user, request.new_owner_user_id)
    return {"detail": "Ownership transferred"}


@router.get("/{org_id}/invites", response_model=list[InviteResponse], summary="List Organization Invites")
async def list_invites(
    org_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    orchestrator: MembershipOrchestrator = Depends(get_orchestrator),
):
    view = await orchestrator.authorize_view(org_id, current_user, Action.INVITE_MEMBER)
    invites = await invitations.list_for_organization(orchestrator.db, org_id)
    return [build_invite_response(invite, view.organization.name) for invite in invites]
