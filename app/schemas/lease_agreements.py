"""Lease agreement + signature schemas."""
from datetime import datetime, timezone
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from app.models.lease_agreement import AgreementStatus
from app.models.lease_signature import SignatureMethod, SignerType


class AgreementCreate(BaseModel):
    lease_id: int
    template_content: str = ""
    expires_at: datetime | None = None

    @field_validator("expires_at")
    @classmethod
    def expires_in_future(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return v
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        if v <= datetime.now(timezone.utc):
            raise ValueError("expires_at must be in the future")
        return v


class AgreementSendRequest(BaseModel):
    tenant_email: EmailStr


class AgreementSignRequest(BaseModel):
    signer_type: SignerType
    signer_name: str = Field(..., min_length=1, max_length=255)
    signer_email: EmailStr
    signature_method: SignatureMethod = SignatureMethod.TYPED
    signature_data: str | None = None

    @field_validator("signer_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Signer name is required")
        return v

    @field_validator("signer_email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return str(v).strip().lower()

    @model_validator(mode="after")
    def drawn_needs_image(self):
        if self.signature_method == SignatureMethod.DRAWN and not (self.signature_data or "").strip():
            raise ValueError("A drawn signature requires signature_data")
        return self


class SignatureResponse(BaseModel):
    id: int
    agreement_id: int
    signer_type: SignerType
    signer_name: str
    signer_email: str
    signature_method: SignatureMethod
    ip_address: str | None = None
    signed_at: datetime

    class Config:
        from_attributes = True


class PublicSignatureResponse(BaseModel):
    """What a signing-link holder may see of a signature: no emails, no network details."""

    signer_type: SignerType
    signer_name: str
    signature_method: SignatureMethod
    signed_at: datetime

    class Config:
        from_attributes = True


class AgreementResponse(BaseModel):
    id: int
    lease_id: int
    status: AgreementStatus
    template_content: str
    sent_at: datetime | None = None
    sent_to_email: str | None = None
    signing_token: str
    signed_at: datetime | None = None
    expires_at: datetime | None = None
    voided_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None
    has_signed_pdf: bool = False
    signatures: list[SignatureResponse] = []

    class Config:
        from_attributes = True


class PublicAgreementResponse(BaseModel):
    id: int
    status: AgreementStatus
    template_content: str
    sent_at: datetime | None = None
    signed_at: datetime | None = None
    expires_at: datetime | None = None
    voided_at: datetime | None = None
    signatures: list[PublicSignatureResponse] = []

    class Config:
        from_attributes = True


class AgreementSignResponse(BaseModel):
    signature: PublicSignatureResponse
    agreement_status: AgreementStatus
    invitation_token: str | None = None


class AuditLogEntry(BaseModel):
    id: int
    category: str
    title: str
    message: str
    actor_email: str | None = None
    ip_address: str | None = None
    meta: dict | None = None
    created_at: datetime

    class Config:
        from_attributes = True
