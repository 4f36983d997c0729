"""Release the active slot of tenant invitations that expired without being accepted."""
import logging

from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.services.invitations import InvitationBroker

logger = logging.getLogger("uvicorn.error")


def run_invitation_cleanup_job(session_factory=SessionLocal) -> int:
    """Hourly housekeeping; ensure_invitation does the same release lazily, so this is never required for correctness."""
    db: Session = session_factory()
    try:
        released = InvitationBroker(db).release_expired()
        if released:
            logger.info("Invitation cleanup: released %d expired invitation(s).", released)
        return released
    finally:
        db.close()
