"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table; no migration scripts needed for fresh installs.
"""
from app.models.user import User
from app.models.property import Property, Unit
from app.models.tenant import Tenant
from app.models.lease import Lease
from app.models.lease_agreement import LeaseAgreement
from app.models.lease_signature import LeaseSignature
from app.models.tenant_invitation import TenantInvitation
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "Property",
    "Unit",
    "Tenant",
    "Lease",
    "LeaseAgreement",
    "LeaseSignature",
    "TenantInvitation",
    "AuditLog",
]
