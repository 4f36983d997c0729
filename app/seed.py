"""Seed the first landlord account from settings so a fresh install can log in."""
import logging

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.user import User, UserRole
from app.services.auth import get_password_hash

logger = logging.getLogger("uvicorn.error")


def seed_landlord(db: Session, settings=None) -> User | None:
    settings = settings or get_settings()
    email = (settings.seed_landlord_email or "").strip().lower()
    password = settings.seed_landlord_password or ""
    if not email or not password:
        return None
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        return existing
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        role=UserRole.landlord,
        full_name="Property Manager",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Seeded landlord account %s", email)
    return user
