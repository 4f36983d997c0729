"""Digital lease agreement: one e-signature workflow per lease. Never deleted (audit trail)."""
import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, LargeBinary, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class AgreementStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    SIGNED = "SIGNED"
    EXPIRED = "EXPIRED"
    VOIDED = "VOIDED"


# Statuses from which signing, voiding and lazy expiry are still possible
OPEN_STATUSES = (AgreementStatus.DRAFT, AgreementStatus.PENDING)


class LeaseAgreement(Base):
    __tablename__ = "lease_agreements"

    id = Column(Integer, primary_key=True, index=True)
    lease_id = Column(Integer, ForeignKey("leases.id"), unique=True, nullable=False)
    # Secret carried by the emailed signing link; the public signing routes are keyed on it, never on id
    signing_token = Column(String(64), unique=True, nullable=False, index=True)

    status = Column(SQLEnum(AgreementStatus), nullable=False, default=AgreementStatus.DRAFT, index=True)

    # Empty means "render the default lease template"
    template_content = Column(Text, nullable=False, default="")

    sent_at = Column(DateTime(timezone=True), nullable=True)
    # Address the signing link was sent to; a tenant signer must match it (or the tenant's email) to get a portal invitation
    sent_to_email = Column(String(255), nullable=True)
    signed_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    voided_at = Column(DateTime(timezone=True), nullable=True)

    # Fully signed PDF, stored on the SIGNED transition so it can be served without re-rendering
    signed_pdf_bytes = Column(LargeBinary, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    lease = relationship("Lease")
    signatures = relationship(
        "LeaseSignature",
        back_populates="agreement",
        order_by="LeaseSignature.signed_at",
    )

    @property
    def has_signed_pdf(self) -> bool:
        return bool(self.signed_pdf_bytes)
