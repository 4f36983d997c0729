"""Shared dependencies: DB session, current user, workflow services."""
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User, UserRole
from app.services.auth import decode_token_with_error
from app.services.documents import ReportLabDocumentRenderer
from app.services.invitations import InvitationBroker
from app.services.lease_agreements import AgreementLifecycleManager
from app.services.notifications import EmailNotificationGateway

security = HTTPBearer(auto_error=False)


def _user_from_credentials(db: Session, credentials: HTTPAuthorizationCredentials) -> User:
    token_str = (credentials.credentials or "").strip()
    payload, _ = decode_token_with_error(token_str)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_current_user(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _user_from_credentials(db, credentials)


def get_optional_user(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User | None:
    """None for anonymous callers; a bad token is still a 401."""
    if not credentials:
        return None
    return _user_from_credentials(db, credentials)


def require_landlord(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.landlord:
        raise HTTPException(status_code=403, detail="Landlord role required")
    return current_user


def get_notification_gateway() -> EmailNotificationGateway:
    return EmailNotificationGateway()


def get_document_renderer() -> ReportLabDocumentRenderer:
    return ReportLabDocumentRenderer()


def get_invitation_broker(
    db: Session = Depends(get_db),
    notifier=Depends(get_notification_gateway),
) -> InvitationBroker:
    return InvitationBroker(db, notifier=notifier)


def get_agreement_manager(
    db: Session = Depends(get_db),
    notifier=Depends(get_notification_gateway),
    renderer=Depends(get_document_renderer),
    invitations: InvitationBroker = Depends(get_invitation_broker),
) -> AgreementLifecycleManager:
    return AgreementLifecycleManager(db, notifier=notifier, renderer=renderer, invitations=invitations)
