"""Tenant portal invitation schemas. Tokens only ever leave the API through validate/accept links."""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from app.schemas.auth import UserResponse


class InvitationCreate(BaseModel):
    tenant_id: int
    email: EmailStr
    expires_in_days: int = Field(7, ge=1, le=30)


class InvitationResponse(BaseModel):
    id: int
    tenant_id: int
    email: str
    expires_at: datetime
    accepted_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class InvitationValidation(BaseModel):
    valid: bool = True
    tenant_name: str
    email: str
    expires_at: datetime


class AcceptInvitationRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8)
    full_name: str | None = None


class AcceptInvitationResponse(BaseModel):
    success: bool = True
    message: str = "Account created successfully"
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
