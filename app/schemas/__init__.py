from app.schemas.auth import Token, UserLogin, UserResponse
from app.schemas.lease_agreements import AgreementCreate, AgreementResponse, AgreementSignRequest, AgreementSignResponse
from app.schemas.tenant_invitations import AcceptInvitationRequest, InvitationCreate, InvitationResponse
