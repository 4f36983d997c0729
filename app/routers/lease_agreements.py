"""Lease agreement endpoints: create, send, sign, void and download.

Everything keyed on the agreement id is landlord-only. The emailed signing link
carries the agreement's secret signing token; the /signing/{token} routes accept
it in place of a session. Signing as LANDLORD still needs a landlord session.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_agreement_manager, get_optional_user, require_landlord
from app.models.lease_signature import SignerType
from app.models.user import User, UserRole
from app.schemas.lease_agreements import (
    AgreementCreate,
    AgreementResponse,
    AgreementSendRequest,
    AgreementSignRequest,
    AgreementSignResponse,
    AuditLogEntry,
    PublicAgreementResponse,
    PublicSignatureResponse,
)
from app.services.audit_log import list_logs_for_agreement
from app.services.lease_agreements import AgreementLifecycleManager
from app.services.signatures import SignerInfo

router = APIRouter(prefix="/lease-agreements", tags=["lease-agreements"])


def _pdf_response(agreement_id: int, pdf_bytes: bytes) -> Response:
    filename = f"lease-agreement-{agreement_id}.pdf"
    return Response(content=pdf_bytes, media_type="application/pdf", headers={"Content-Disposition": f'inline; filename="{filename}"'})


# --- signing link (no session) ---

@router.get("/signing/{signing_token}", response_model=PublicAgreementResponse)
def get_agreement_for_signing(
    signing_token: str,
    manager: AgreementLifecycleManager = Depends(get_agreement_manager),
):
    return manager.get_by_signing_token(signing_token)


@router.post("/signing/{signing_token}/sign", response_model=AgreementSignResponse, status_code=status.HTTP_201_CREATED)
def sign_agreement(
    signing_token: str,
    req: Request,
    data: AgreementSignRequest,
    manager: AgreementLifecycleManager = Depends(get_agreement_manager),
    current_user: User | None = Depends(get_optional_user),
):
    if data.signer_type == SignerType.LANDLORD:
        if current_user is None:
            raise HTTPException(status_code=401, detail="Landlord signature requires a landlord session")
        if current_user.role != UserRole.landlord:
            raise HTTPException(status_code=403, detail="Landlord role required")

    agreement = manager.get_by_signing_token(signing_token)
    ua = (req.headers.get("user-agent") or "").strip() or None
    info = SignerInfo(
        name=data.signer_name,
        email=str(data.signer_email),
        method=data.signature_method,
        signature_data=data.signature_data,
        ip_address=(req.client.host if req.client else None) or None,
        user_agent=ua,
    )
    result = manager.sign_agreement(agreement.id, data.signer_type, info)
    return AgreementSignResponse(
        signature=PublicSignatureResponse.model_validate(result.signature),
        agreement_status=result.agreement.status,
        invitation_token=result.invitation_token,
    )


@router.get("/signing/{signing_token}/pdf")
def get_agreement_pdf_for_signing(
    signing_token: str,
    manager: AgreementLifecycleManager = Depends(get_agreement_manager),
):
    agreement = manager.get_by_signing_token(signing_token)
    return _pdf_response(agreement.id, manager.render_document(agreement.id))


# --- landlord ---

@router.post("", response_model=AgreementResponse, status_code=status.HTTP_201_CREATED)
def create_agreement(
    data: AgreementCreate,
    manager: AgreementLifecycleManager = Depends(get_agreement_manager),
    current_user: User = Depends(require_landlord),
):
    return manager.create_agreement(
        data.lease_id,
        template_content=data.template_content,
        expires_at=data.expires_at,
        actor=current_user,
    )


@router.get("", response_model=list[AgreementResponse])
def list_agreements(
    lease_id: int | None = Query(None),
    manager: AgreementLifecycleManager = Depends(get_agreement_manager),
    current_user: User = Depends(require_landlord),
):
    return manager.list_agreements(lease_id=lease_id)


@router.get("/{agreement_id}", response_model=AgreementResponse)
def get_agreement(
    agreement_id: int,
    manager: AgreementLifecycleManager = Depends(get_agreement_manager),
    current_user: User = Depends(require_landlord),
):
    return manager.get_agreement(agreement_id)


@router.post("/{agreement_id}/send", response_model=AgreementResponse)
def send_agreement(
    agreement_id: int,
    data: AgreementSendRequest,
    manager: AgreementLifecycleManager = Depends(get_agreement_manager),
    current_user: User = Depends(require_landlord),
):
    return manager.send_for_signature(agreement_id, str(data.tenant_email), actor=current_user)


@router.post("/{agreement_id}/void", response_model=AgreementResponse)
def void_agreement(
    agreement_id: int,
    manager: AgreementLifecycleManager = Depends(get_agreement_manager),
    current_user: User = Depends(require_landlord),
):
    return manager.void_agreement(agreement_id, actor=current_user)


@router.get("/{agreement_id}/pdf")
def get_agreement_pdf(
    agreement_id: int,
    manager: AgreementLifecycleManager = Depends(get_agreement_manager),
    current_user: User = Depends(require_landlord),
):
    """Signed agreements are served from storage; others are rendered as a preview."""
    return _pdf_response(agreement_id, manager.render_document(agreement_id))


@router.get("/{agreement_id}/audit-log", response_model=list[AuditLogEntry])
def get_agreement_audit_log(
    agreement_id: int,
    db: Session = Depends(get_db),
    manager: AgreementLifecycleManager = Depends(get_agreement_manager),
    current_user: User = Depends(require_landlord),
):
    agreement = manager.get_agreement(agreement_id)
    return list_logs_for_agreement(db, agreement.id)
