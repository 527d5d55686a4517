import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class OrganizationCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    seats: int | None = Field(None, ge=1)
    plan: str | None = Field(None, max_length=50)
    billing_email: EmailStr | None = None


class OrganizationResponse(BaseModel):
    id: uuid.UUID
    name: str
    plan: str
    seats: int
    seats_used: int
    seats_available: int
    billing_email: str | None = None
    created_at: datetime
    role: str | None = None

    model_config = {"from_attributes": True}


class SeatUsageResponse(BaseModel):
    organization_id: uuid.UUID
    seats: int
    seats_used: int
    seats_available: int

    model_config = {"from_attributes": True}


class SeatUpdateRequest(BaseModel):
    seats: int = Field(ge=1)


class TransferOwnershipRequest(BaseModel):
    new_owner_user_id: uuid.UUID


class OrganizationUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    billing_email: EmailStr | None = None
