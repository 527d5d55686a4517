import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from orgledger.models.member import MemberRole


class AddUserRequest(BaseModel):
    organization_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    role: MemberRole = MemberRole.MEMBER


class AddUserResponse(BaseModel):
    user_id: uuid.UUID
    is_new_user: bool
    role: MemberRole


class RoleChangeRequest(BaseModel):
    role: MemberRole


class MemberResponse(BaseModel):
    user_id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    name: str
    role: MemberRole
    joined_at: datetime
