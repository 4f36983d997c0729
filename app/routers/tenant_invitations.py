"""Tenant portal invitations: issue (landlord), validate and accept (public, link-based)."""
from fastapi import APIRouter, Depends, Query, status

from app.dependencies import get_invitation_broker, require_landlord
from app.models.user import User
from app.schemas.auth import UserResponse
from app.schemas.tenant_invitations import (
    AcceptInvitationRequest,
    AcceptInvitationResponse,
    InvitationCreate,
    InvitationResponse,
    InvitationValidation,
)
from app.services.invitations import InvitationBroker

router = APIRouter(prefix="/tenant-invitations", tags=["tenant-invitations"])


@router.post("", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
def create_invitation(
    data: InvitationCreate,
    broker: InvitationBroker = Depends(get_invitation_broker),
    current_user: User = Depends(require_landlord),
):
    return broker.create_invitation(data.tenant_id, str(data.email), expires_in_days=data.expires_in_days)


@router.get("", response_model=list[InvitationResponse])
def list_invitations(
    tenant_id: int | None = Query(None),
    broker: InvitationBroker = Depends(get_invitation_broker),
    current_user: User = Depends(require_landlord),
):
    return broker.list_invitations(tenant_id=tenant_id)


@router.get("/validate/{token}", response_model=InvitationValidation)
def validate_invitation(token: str, broker: InvitationBroker = Depends(get_invitation_broker)):
    inv = broker.validate_token(token)
    return InvitationValidation(tenant_name=inv.tenant.name, email=inv.email, expires_at=inv.expires_at)


@router.post("/accept", response_model=AcceptInvitationResponse, status_code=status.HTTP_201_CREATED)
def accept_invitation(data: AcceptInvitationRequest, broker: InvitationBroker = Depends(get_invitation_broker)):
    result = broker.accept_invitation(data.token, data.password, full_name=data.full_name)
    return AcceptInvitationResponse(
        access_token=result.session_token,
        user=UserResponse.model_validate(result.user),
    )
