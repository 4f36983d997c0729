"""Signature storage for lease agreements.

One signature per (agreement, signer role) is guaranteed by the
uq_lease_signatures_agreement_signer constraint: the insert itself is the check.
This module knows nothing about emails, invitations or agreement status.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import AlreadySignedError
from app.models.lease_signature import LeaseSignature, SignatureMethod, SignerType


@dataclass(frozen=True)
class SignerInfo:
    name: str
    email: str
    method: SignatureMethod = SignatureMethod.TYPED
    signature_data: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


class SignatureStore:
    def __init__(self, db: Session):
        self.db = db

    def record_signature(self, agreement_id: int, role: SignerType, info: SignerInfo) -> LeaseSignature:
        """Insert and commit the signature, or raise AlreadySignedError if the role already signed."""
        data = info.signature_data
        if info.method == SignatureMethod.TYPED and not data:
            data = info.name
        sig = LeaseSignature(
            agreement_id=agreement_id,
            signer_type=role,
            signer_name=info.name,
            signer_email=info.email,
            signature_method=info.method,
            signature_data=data,
            ip_address=info.ip_address,
            user_agent=info.user_agent[:400] if info.user_agent else None,
        )
        self.db.add(sig)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if _is_signer_conflict(e):
                raise AlreadySignedError(f"{role.value} has already signed this agreement") from None
            raise
        self.db.refresh(sig)
        return sig

    def list_signatures(self, agreement_id: int) -> list[LeaseSignature]:
        return (
            self.db.query(LeaseSignature)
            .filter(LeaseSignature.agreement_id == agreement_id)
            .order_by(LeaseSignature.signed_at.asc(), LeaseSignature.id.asc())
            .all()
        )

    def signer_roles(self, agreement_id: int) -> set[SignerType]:
        """Roles that have signed, read from the database (never from cached objects)."""
        rows = (
            self.db.query(LeaseSignature.signer_type)
            .filter(LeaseSignature.agreement_id == agreement_id)
            .all()
        )
        return {row[0] for row in rows}


SIGNER_CONSTRAINT = "uq_lease_signatures_agreement_signer"
# SQLite reports the columns instead of the constraint name
_SQLITE_SIGNER_COLUMNS = "lease_signatures.agreement_id, lease_signatures.signer_type"


def _is_signer_conflict(e: IntegrityError) -> bool:
    msg = str(getattr(e, "orig", None) or e).lower()
    return SIGNER_CONSTRAINT in msg or _SQLITE_SIGNER_COLUMNS in msg
