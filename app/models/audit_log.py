"""Append-only audit log for the agreement and invitation workflows.
No updates or deletes - every record is permanent."""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from app.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    agreement_id = Column(Integer, ForeignKey("lease_agreements.id"), nullable=True, index=True)
    lease_id = Column(Integer, ForeignKey("leases.id"), nullable=True, index=True)
    invitation_id = Column(Integer, ForeignKey("tenant_invitations.id"), nullable=True, index=True)

    # category: status_change | signature | invitation | failed_attempt
    category = Column(String(32), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # Optional structured data (e.g. old_status, new_status, signer_type)
    meta = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)

    # Who did it (if applicable)
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    actor_email = Column(String(255), nullable=True)

    # Request context for legal weight
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)

    # UTC only - server_default
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
