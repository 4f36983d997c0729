"""Signatures on a lease agreement, one per signer role."""
import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class SignerType(str, enum.Enum):
    LANDLORD = "LANDLORD"
    TENANT = "TENANT"


class SignatureMethod(str, enum.Enum):
    TYPED = "TYPED"
    DRAWN = "DRAWN"


REQUIRED_SIGNERS = frozenset({SignerType.LANDLORD, SignerType.TENANT})


class LeaseSignature(Base):
    __tablename__ = "lease_signatures"
    # Enforced by the database so two concurrent submissions for one role cannot both land
    __table_args__ = (
        UniqueConstraint("agreement_id", "signer_type", name="uq_lease_signatures_agreement_signer"),
    )

    id = Column(Integer, primary_key=True, index=True)
    agreement_id = Column(Integer, ForeignKey("lease_agreements.id"), nullable=False, index=True)
    signer_type = Column(SQLEnum(SignerType), nullable=False)

    signer_name = Column(String(255), nullable=False)
    signer_email = Column(String(255), nullable=False, index=True)

    signature_method = Column(SQLEnum(SignatureMethod), nullable=False, default=SignatureMethod.TYPED)
    # Typed: the typed name. Drawn: image payload (data URL).
    signature_data = Column(Text, nullable=True)

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(400), nullable=True)

    signed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    agreement = relationship("LeaseAgreement", back_populates="signatures")
