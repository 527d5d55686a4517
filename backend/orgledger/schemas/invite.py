import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr

from orgledger.models.member import MemberRole


class InviteCreateRequest(BaseModel):
    organization_id: uuid.UUID
    email: EmailStr
    role: MemberRole = MemberRole.MEMBER


class InviteResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    role: MemberRole
    status: str
    expires_at: datetime
    created_at: datetime
    accepted_at: datetime | None = None
    organization_name: str | None = None


class InviteCreatedResponse(InviteResponse):
    token: str
    invite_url: str


class InviteValidateResponse(BaseModel):
    organization_id: uuid.UUID
    organization_name: str
    email: str
    role: MemberRole
    expires_at: datetime


class InviteAcceptResponse(BaseModel):
    organization_id: uuid.UUID
    organization_name: str
    role: MemberRole
    already_member: bool
