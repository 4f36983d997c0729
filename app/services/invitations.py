"""Tenant portal invitations: issue, validate and redeem single-use setup tokens.

"At most one active invitation per tenant" lives in the database: an active
invitation holds its tenant's id in the unique ``active_tenant_id`` column, and
releases it (NULL) when accepted or found expired. Two requests racing to invite
the same tenant therefore produce one row; the loser re-reads the winner's token.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import (
    AlreadyAcceptedError,
    ConflictError,
    ExpiredError,
    InvalidTokenError,
    NotFoundError,
)
from app.models.tenant import Tenant
from app.models.tenant_invitation import TenantInvitation
from app.models.user import User, UserRole
from app.services.audit_log import create_log, CATEGORY_INVITATION
from app.services.auth import create_access_token, get_password_hash
from app.services.notifications import (
    EmailNotificationGateway,
    TEMPLATE_PORTAL_WELCOME,
    TEMPLATE_TENANT_INVITATION,
    dispatch,
)
from app.services.timeutil import is_past, utcnow

logger = logging.getLogger("uvicorn.error")

TOKEN_BYTES = 32


@dataclass
class AcceptedInvitation:
    user: User
    tenant: Tenant
    session_token: str


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def has_portal_account(db: Session, email: str) -> bool:
    email_clean = (email or "").strip().lower()
    if not email_clean:
        return False
    return db.query(User.id).filter(func.lower(User.email) == email_clean).first() is not None


def tenant_has_portal_account(db: Session, tenant_id: int) -> bool:
    return db.query(User.id).filter(User.tenant_id == tenant_id).first() is not None


class InvitationBroker:
    def __init__(self, db: Session, notifier=None, settings=None):
        self.db = db
        self.notifier = notifier or EmailNotificationGateway()
        self.settings = settings or get_settings()

    # --- issuing ---

    def ensure_invitation(self, tenant_id: int, email: str) -> TenantInvitation:
        """Return the tenant's active invitation, creating (and emailing) one if there is none.

        Safe to call repeatedly and concurrently: every caller gets the same token.
        """
        current = self._active_for_tenant(tenant_id)
        if current is not None:
            if not is_past(current.expires_at):
                return current
            self._release(current)

        inv, created = self._insert_active(tenant_id, email, self.settings.invitation_expiry_days)
        if created:
            logger.info("Tenant invitation issued: tenant_id=%s invitation_id=%s", tenant_id, inv.id)
            self._send_invitation_email(inv)
        return inv

    def create_invitation(self, tenant_id: int, email: str, expires_in_days: int | None = None) -> TenantInvitation:
        """Explicitly invite a tenant. Unlike ensure_invitation, an existing active invitation is a conflict."""
        tenant = self.db.get(Tenant, tenant_id)
        if not tenant:
            raise NotFoundError("Tenant not found")
        if (
            tenant_has_portal_account(self.db, tenant.id)
            or has_portal_account(self.db, email)
            or (tenant.email and has_portal_account(self.db, tenant.email))
        ):
            raise ConflictError("Tenant already has an account")

        current = self._active_for_tenant(tenant_id)
        if current is not None:
            if not is_past(current.expires_at):
                raise ConflictError("Active invitation already exists for this tenant")
            self._release(current)

        days = expires_in_days or self.settings.invitation_expiry_days
        inv, created = self._insert_active(tenant_id, email, days)
        if not created:
            raise ConflictError("Active invitation already exists for this tenant")
        logger.info("Tenant invitation created: tenant_id=%s invitation_id=%s", tenant_id, inv.id)
        self._send_invitation_email(inv)
        return inv

    def list_invitations(self, tenant_id: int | None = None) -> list[TenantInvitation]:
        q = self.db.query(TenantInvitation)
        if tenant_id is not None:
            q = q.filter(TenantInvitation.tenant_id == tenant_id)
        return q.order_by(TenantInvitation.created_at.desc(), TenantInvitation.id.desc()).all()

    # --- redeeming ---

    def validate_token(self, token: str) -> TenantInvitation:
        token_clean = (token or "").strip()
        inv = (
            self.db.query(TenantInvitation).filter(TenantInvitation.token == token_clean).first()
            if token_clean
            else None
        )
        if not inv:
            raise InvalidTokenError()
        if inv.accepted_at is not None:
            raise AlreadyAcceptedError()
        if is_past(inv.expires_at):
            raise ExpiredError("Invitation has expired")
        return inv

    def accept_invitation(self, token: str, password: str, full_name: str | None = None) -> AcceptedInvitation:
        """Create the tenant's portal account and consume the invitation in one transaction."""
        inv = self.validate_token(token)
        email = inv.email.strip().lower()
        if has_portal_account(self.db, email):
            raise ConflictError("User account already exists with this email")
        if tenant_has_portal_account(self.db, inv.tenant_id):
            raise ConflictError("Tenant already has a portal account")

        now = utcnow()
        claimed = (
            self.db.query(TenantInvitation)
            .filter(
                TenantInvitation.id == inv.id,
                TenantInvitation.accepted_at.is_(None),
                TenantInvitation.expires_at > now,
            )
            .update(
                {TenantInvitation.accepted_at: now, TenantInvitation.active_tenant_id: None},
                synchronize_session=False,
            )
        )
        if not claimed:
            self.db.rollback()
            # Lost a race (or crossed the expiry); report the invitation's real state
            self.validate_token(token)
            raise AlreadyAcceptedError()

        tenant = self.db.get(Tenant, inv.tenant_id)
        user = User(
            email=email,
            hashed_password=get_password_hash(password),
            role=UserRole.tenant,
            full_name=(full_name or "").strip() or tenant.name,
            tenant_id=tenant.id,
        )
        self.db.add(user)
        if not tenant.email:
            tenant.email = email
        try:
            self.db.flush()
        except IntegrityError:
            # rolls back the invitation claim too, so the token stays usable
            self.db.rollback()
            raise ConflictError("A portal account already exists for this email or tenant") from None

        create_log(
            self.db,
            CATEGORY_INVITATION,
            "Invitation accepted",
            f"Tenant portal account created for {email} (tenant_id={tenant.id}).",
            invitation_id=inv.id,
            actor_user_id=user.id,
            actor_email=email,
            meta={"tenant_id": tenant.id, "user_id": user.id},
        )
        self.db.commit()
        self.db.refresh(user)
        logger.info("Tenant invitation accepted: invitation_id=%s user_id=%s", inv.id, user.id)

        session_token = create_access_token(user.id, user.email, user.role, tenant_id=tenant.id)
        dispatch(self.notifier, email, TEMPLATE_PORTAL_WELCOME, {"full_name": user.full_name})
        return AcceptedInvitation(user=user, tenant=tenant, session_token=session_token)

    # --- housekeeping ---

    def release_expired(self) -> int:
        """Free the active slot of every expired, unaccepted invitation. Returns the number released."""
        released = (
            self.db.query(TenantInvitation)
            .filter(
                TenantInvitation.accepted_at.is_(None),
                TenantInvitation.active_tenant_id.isnot(None),
                TenantInvitation.expires_at < utcnow(),
            )
            .update({TenantInvitation.active_tenant_id: None}, synchronize_session=False)
        )
        self.db.commit()
        return released

    # --- internals ---

    def _active_for_tenant(self, tenant_id: int) -> TenantInvitation | None:
        return (
            self.db.query(TenantInvitation)
            .filter(TenantInvitation.active_tenant_id == tenant_id)
            .first()
        )

    def _release(self, inv: TenantInvitation) -> None:
        self.db.query(TenantInvitation).filter(
            TenantInvitation.id == inv.id,
            TenantInvitation.active_tenant_id == inv.tenant_id,
        ).update({TenantInvitation.active_tenant_id: None}, synchronize_session=False)
        self.db.commit()

    def _insert_active(self, tenant_id: int, email: str, days: int) -> tuple[TenantInvitation, bool]:
        """Insert an invitation holding the tenant's active slot. Returns (invitation, created)."""
        inv = TenantInvitation(
            tenant_id=tenant_id,
            email=(email or "").strip().lower(),
            token=generate_token(),
            expires_at=utcnow() + timedelta(days=days),
            active_tenant_id=tenant_id,
        )
        self.db.add(inv)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            winner = self._active_for_tenant(tenant_id)
            if winner is None:
                raise
            return winner, False

        create_log(
            self.db,
            CATEGORY_INVITATION,
            "Invitation issued",
            f"Portal invitation issued to {inv.email} for tenant_id={tenant_id}, expires {inv.expires_at.isoformat()}.",
            invitation_id=inv.id,
            actor_email=inv.email,
            meta={"tenant_id": tenant_id, "expires_in_days": days},
        )
        self.db.commit()
        self.db.refresh(inv)
        return inv, True

    def _send_invitation_email(self, inv: TenantInvitation) -> None:
        tenant = self.db.get(Tenant, inv.tenant_id)
        dispatch(
            self.notifier,
            inv.email,
            TEMPLATE_TENANT_INVITATION,
            {
                "tenant_name": tenant.name if tenant else None,
                "setup_link": f"{self.settings.app_url}/tenant-portal/setup/{inv.token}",
                "expires_at": inv.expires_at,
            },
        )
