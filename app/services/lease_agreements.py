"""Lease agreement e-signature lifecycle.

DRAFT -> PENDING (sent) -> SIGNED once both LANDLORD and TENANT signatures exist.
DRAFT/PENDING -> VOIDED on request, -> EXPIRED when read or signed after expires_at.

Every status change is a conditional UPDATE on the current status, so a
transition is applied by exactly one request even when several race; only that
request runs the side effects (emails, signed PDF). Side effects run after the
transition is committed and their failures are logged, never raised.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import (
    AlreadySignedError,
    ConflictError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
)
from app.models.lease import Lease
from app.models.lease_agreement import AgreementStatus, LeaseAgreement, OPEN_STATUSES
from app.models.lease_signature import LeaseSignature, SignerType, REQUIRED_SIGNERS
from app.models.user import User
from app.services.audit_log import (
    create_log,
    CATEGORY_FAILED_ATTEMPT,
    CATEGORY_SIGNATURE,
    CATEGORY_STATUS_CHANGE,
)
from app.services.documents import ReportLabDocumentRenderer
from app.services.invitations import InvitationBroker, has_portal_account, tenant_has_portal_account
from app.services.notifications import (
    EmailNotificationGateway,
    TEMPLATE_AGREEMENT_READY,
    TEMPLATE_AGREEMENT_SIGNED,
    dispatch,
)
from app.services.signatures import SignatureStore, SignerInfo
from app.services.timeutil import as_utc, is_past, utcnow

logger = logging.getLogger("uvicorn.error")

SIGNING_TOKEN_BYTES = 32


def new_signing_token() -> str:
    return secrets.token_urlsafe(SIGNING_TOKEN_BYTES)


@dataclass
class SignResult:
    agreement: LeaseAgreement
    signature: LeaseSignature
    invitation_token: str | None = None
    fully_signed: bool = False


def _property_address(lease: Lease) -> str | None:
    unit = lease.unit
    prop = unit.property_ref if unit else None
    if not prop:
        return None
    if unit.unit_number:
        return f"{prop.address} (Unit {unit.unit_number})"
    return prop.address


class AgreementLifecycleManager:
    def __init__(self, db: Session, notifier=None, renderer=None, invitations: InvitationBroker | None = None, settings=None):
        self.db = db
        self.settings = settings or get_settings()
        self.notifier = notifier or EmailNotificationGateway()
        self.renderer = renderer or ReportLabDocumentRenderer()
        self.signatures = SignatureStore(db)
        self.invitations = invitations or InvitationBroker(db, notifier=self.notifier, settings=self.settings)

    # --- operations ---

    def create_agreement(
        self,
        lease_id: int,
        template_content: str | None = None,
        expires_at: datetime | None = None,
        actor: User | None = None,
    ) -> LeaseAgreement:
        lease = self.db.get(Lease, lease_id)
        if not lease:
            raise NotFoundError("Lease not found")

        if expires_at is None:
            expires_at = utcnow() + timedelta(days=self.settings.agreement_default_expiry_days)
        agreement = LeaseAgreement(
            lease_id=lease.id,
            status=AgreementStatus.DRAFT,
            signing_token=new_signing_token(),
            template_content=template_content or "",
            expires_at=as_utc(expires_at),
        )
        self.db.add(agreement)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Agreement already exists for this lease") from None

        create_log(
            self.db,
            CATEGORY_STATUS_CHANGE,
            "Agreement created",
            f"Lease agreement created for lease {lease.id} (expires {agreement.expires_at.isoformat()}).",
            agreement_id=agreement.id,
            lease_id=lease.id,
            actor_user_id=actor.id if actor else None,
            actor_email=actor.email if actor else None,
            meta={"new_status": AgreementStatus.DRAFT, "uses_default_template": not agreement.template_content},
        )
        self.db.commit()
        self.db.refresh(agreement)
        logger.info("Lease agreement created: agreement_id=%s lease_id=%s", agreement.id, lease.id)
        return agreement

    def get_agreement(self, agreement_id: int) -> LeaseAgreement:
        return self._refresh_expiry(self._load(agreement_id))

    def get_by_signing_token(self, signing_token: str) -> LeaseAgreement:
        """Resolve the secret from an emailed signing link. Unknown tokens look exactly like missing agreements."""
        token_clean = (signing_token or "").strip()
        agreement = (
            self.db.query(LeaseAgreement).filter(LeaseAgreement.signing_token == token_clean).first()
            if token_clean
            else None
        )
        if not agreement:
            raise NotFoundError("Agreement not found")
        return self._refresh_expiry(self._load(agreement.id))

    def list_agreements(self, lease_id: int | None = None) -> list[LeaseAgreement]:
        q = self.db.query(LeaseAgreement)
        if lease_id is not None:
            q = q.filter(LeaseAgreement.lease_id == lease_id)
        agreements = q.order_by(LeaseAgreement.created_at.desc(), LeaseAgreement.id.desc()).all()
        return [self._refresh_expiry(a) for a in agreements]

    def send_for_signature(self, agreement_id: int, tenant_email: str, actor: User | None = None) -> LeaseAgreement:
        agreement = self.get_agreement(agreement_id)
        if agreement.status != AgreementStatus.DRAFT:
            raise InvalidStateError(self._not_sendable_message(agreement.status))

        now = utcnow()
        recipient = tenant_email.strip().lower()
        sent_values = {LeaseAgreement.sent_at: now, LeaseAgreement.sent_to_email: recipient}
        if not self._transition(agreement.id, (AgreementStatus.DRAFT,), sent_values, AgreementStatus.PENDING):
            self.db.rollback()
            self.db.refresh(agreement)
            raise InvalidStateError(self._not_sendable_message(agreement.status))

        create_log(
            self.db,
            CATEGORY_STATUS_CHANGE,
            "Agreement sent for signature",
            f"Lease agreement {agreement.id} sent to {tenant_email}.",
            agreement_id=agreement.id,
            lease_id=agreement.lease_id,
            actor_user_id=actor.id if actor else None,
            actor_email=actor.email if actor else None,
            meta={"old_status": AgreementStatus.DRAFT, "new_status": AgreementStatus.PENDING, "tenant_email": tenant_email},
        )
        self.db.commit()
        self.db.refresh(agreement)
        logger.info("Lease agreement sent: agreement_id=%s to=%s", agreement.id, tenant_email)

        lease = agreement.lease
        dispatch(
            self.notifier,
            tenant_email,
            TEMPLATE_AGREEMENT_READY,
            {
                "tenant_name": lease.tenant.name if lease.tenant else None,
                "property_address": _property_address(lease),
                "signing_link": f"{self.settings.app_url}/sign-agreement/{agreement.signing_token}",
                "expires_at": agreement.expires_at,
            },
        )
        return agreement

    def sign_agreement(self, agreement_id: int, role: SignerType, info: SignerInfo) -> SignResult:
        agreement = self.get_agreement(agreement_id)

        if agreement.status == AgreementStatus.SIGNED:
            self._log_failed_sign(agreement, role, info, "agreement already fully signed")
            raise AlreadySignedError("Agreement has already been signed")
        if agreement.status == AgreementStatus.EXPIRED:
            self._log_failed_sign(agreement, role, info, "agreement expired")
            raise ExpiredError("Agreement has expired")
        if agreement.status == AgreementStatus.VOIDED:
            self._log_failed_sign(agreement, role, info, "agreement voided")
            raise InvalidStateError("Agreement has been voided")

        try:
            signature = self.signatures.record_signature(agreement.id, role, info)
        except AlreadySignedError:
            self._log_failed_sign(agreement, role, info, f"{role.value} already signed")
            raise

        create_log(
            self.db,
            CATEGORY_SIGNATURE,
            "Agreement signed",
            f"{role.value} signed lease agreement {agreement.id}: {info.name} <{info.email}>, signature_id={signature.id}.",
            agreement_id=agreement.id,
            lease_id=agreement.lease_id,
            actor_email=info.email,
            ip_address=info.ip_address,
            user_agent=info.user_agent,
            meta={"signature_id": signature.id, "signer_type": role, "method": info.method},
        )
        self.db.commit()

        # Re-read the authoritative signature set after our insert; the other party may have just signed too
        fully_signed = False
        if self.signatures.signer_roles(agreement.id) >= REQUIRED_SIGNERS:
            fully_signed = self._transition(
                agreement.id, OPEN_STATUSES, {LeaseAgreement.signed_at: utcnow()}, AgreementStatus.SIGNED
            )
            if fully_signed:
                create_log(
                    self.db,
                    CATEGORY_STATUS_CHANGE,
                    "Agreement fully signed",
                    f"Lease agreement {agreement.id} signed by all parties.",
                    agreement_id=agreement.id,
                    lease_id=agreement.lease_id,
                    meta={"new_status": AgreementStatus.SIGNED},
                )
            self.db.commit()
        self.db.refresh(agreement)

        if fully_signed:
            logger.info("Lease agreement fully signed: agreement_id=%s", agreement.id)
            self._after_fully_signed(agreement)

        return SignResult(
            agreement=agreement,
            signature=signature,
            invitation_token=self._portal_invitation_for(agreement, role, info),
            fully_signed=fully_signed,
        )

    def void_agreement(self, agreement_id: int, actor: User | None = None) -> LeaseAgreement:
        agreement = self.get_agreement(agreement_id)
        old_status = agreement.status

        if not self._transition(agreement.id, OPEN_STATUSES, {LeaseAgreement.voided_at: utcnow()}, AgreementStatus.VOIDED):
            self.db.rollback()
            self.db.refresh(agreement)
            if agreement.status == AgreementStatus.SIGNED:
                raise InvalidStateError("Cannot void a signed agreement")
            if agreement.status == AgreementStatus.VOIDED:
                raise InvalidStateError("Agreement has already been voided")
            raise InvalidStateError(f"Cannot void an agreement in status {agreement.status.value}")

        discarded = len(self.signatures.list_signatures(agreement.id))
        create_log(
            self.db,
            CATEGORY_STATUS_CHANGE,
            "Agreement voided",
            f"Lease agreement {agreement.id} voided (was {old_status.value}; {discarded} signature(s) on record).",
            agreement_id=agreement.id,
            lease_id=agreement.lease_id,
            actor_user_id=actor.id if actor else None,
            actor_email=actor.email if actor else None,
            meta={"old_status": old_status, "new_status": AgreementStatus.VOIDED, "signatures_on_record": discarded},
        )
        self.db.commit()
        self.db.refresh(agreement)
        if discarded:
            logger.warning("Lease agreement %s voided with %d signature(s) already collected", agreement.id, discarded)
        return agreement

    def render_document(self, agreement_id: int) -> bytes:
        """PDF for the agreement. Signed agreements are rendered once and then served from storage."""
        agreement = self.get_agreement(agreement_id)
        if agreement.signed_pdf_bytes:
            return agreement.signed_pdf_bytes
        signatures = self.signatures.list_signatures(agreement.id)
        pdf = self.renderer.render(agreement.lease, signatures, agreement.template_content)
        if agreement.status == AgreementStatus.SIGNED:
            agreement.signed_pdf_bytes = pdf
            self.db.commit()
        return pdf

    # --- internals ---

    def _load(self, agreement_id: int) -> LeaseAgreement:
        # populate_existing: always start from the row as it is now, not from this session's cache
        agreement = self.db.get(LeaseAgreement, agreement_id, populate_existing=True)
        if not agreement:
            raise NotFoundError("Agreement not found")
        return agreement

    def _transition(self, agreement_id: int, from_statuses, values: dict, to_status: AgreementStatus, *criteria) -> bool:
        """Compare-and-set the status. True only for the caller whose UPDATE matched the row."""
        changed = (
            self.db.query(LeaseAgreement)
            .filter(LeaseAgreement.id == agreement_id, LeaseAgreement.status.in_(from_statuses), *criteria)
            .update({LeaseAgreement.status: to_status, **values}, synchronize_session=False)
        )
        return changed == 1

    def _refresh_expiry(self, agreement: LeaseAgreement) -> LeaseAgreement:
        """Flip an open agreement past its expires_at to EXPIRED. Terminal statuses are left alone."""
        if agreement.status not in OPEN_STATUSES or not is_past(agreement.expires_at):
            return agreement
        now = utcnow()
        old_status = agreement.status
        if self._transition(agreement.id, OPEN_STATUSES, {}, AgreementStatus.EXPIRED, LeaseAgreement.expires_at < now):
            create_log(
                self.db,
                CATEGORY_STATUS_CHANGE,
                "Agreement expired",
                f"Lease agreement {agreement.id} passed its expiry ({as_utc(agreement.expires_at).isoformat()}).",
                agreement_id=agreement.id,
                lease_id=agreement.lease_id,
                meta={"old_status": old_status, "new_status": AgreementStatus.EXPIRED},
            )
            logger.info("Lease agreement expired: agreement_id=%s", agreement.id)
        self.db.commit()
        self.db.refresh(agreement)
        return agreement

    def _after_fully_signed(self, agreement: LeaseAgreement) -> None:
        lease = agreement.lease
        signatures = self.signatures.list_signatures(agreement.id)
        try:
            agreement.signed_pdf_bytes = self.renderer.render(lease, signatures, agreement.template_content)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Signed PDF generation failed for agreement %s; it will be rendered on demand", agreement.id)

        recipients = []
        for email in [s.signer_email for s in signatures] + [self.settings.agreement_notification_email]:
            email = (email or "").strip().lower()
            if email and email not in recipients:
                recipients.append(email)
        variables = {
            "agreement_id": agreement.id,
            "tenant_name": lease.tenant.name if lease.tenant else None,
            "property_address": _property_address(lease),
            "signed_at": agreement.signed_at,
        }
        for email in recipients:
            dispatch(self.notifier, email, TEMPLATE_AGREEMENT_SIGNED, variables)

    def _portal_invitation_for(self, agreement: LeaseAgreement, role: SignerType, info: SignerInfo) -> str | None:
        """Invitation token for a tenant signer who has no portal account yet.

        Only the address the agreement was sent to (or the lease tenant's own address)
        may receive one; any other signer email gets no token.
        """
        if role != SignerType.TENANT:
            return None
        lease = agreement.lease
        email = (info.email or "").strip().lower()
        known = {
            e.strip().lower()
            for e in (agreement.sent_to_email, lease.tenant.email if lease.tenant else None)
            if e and e.strip()
        }
        if email not in known:
            logger.warning(
                "No portal invitation for agreement %s: signer email does not match the tenant on record", agreement.id
            )
            return None
        if has_portal_account(self.db, email) or tenant_has_portal_account(self.db, lease.tenant_id):
            return None
        return self.invitations.ensure_invitation(lease.tenant_id, email).token

    def _log_failed_sign(self, agreement: LeaseAgreement, role: SignerType, info: SignerInfo, reason: str) -> None:
        create_log(
            self.db,
            CATEGORY_FAILED_ATTEMPT,
            "Agreement sign rejected",
            f"{role.value} sign attempt on lease agreement {agreement.id} rejected: {reason}.",
            agreement_id=agreement.id,
            lease_id=agreement.lease_id,
            actor_email=info.email,
            ip_address=info.ip_address,
            user_agent=info.user_agent,
            meta={"signer_type": role, "status": agreement.status, "reason": reason},
        )
        self.db.commit()

    @staticmethod
    def _not_sendable_message(status: AgreementStatus) -> str:
        if status == AgreementStatus.PENDING:
            return "Agreement has already been sent"
        return f"Agreement is {status.value.lower()} and can no longer be sent"
