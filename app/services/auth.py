"""Portal auth service: bcrypt password hashes and PyJWT bearer tokens for landlords and tenants."""
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.user import User, UserRole

settings = get_settings()

# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72


def _pwd_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_pwd_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_pwd_bytes(password), bcrypt.gensalt()).decode("utf-8")


def authenticate(db: Session, email: str, password: str) -> User | None:
    """Portal login: the account for this email (case-insensitive) if the password matches."""
    email_clean = (email or "").strip().lower()
    user = db.query(User).filter(func.lower(User.email) == email_clean).first() if email_clean else None
    if user is None or not verify_password(password, user.hashed_password):
        return None
    return user


def create_access_token(user_id: int, email: str, role: UserRole, tenant_id: int | None = None) -> str:
    expires = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    # PyJWT expects "sub" to be a string
    claims = {"sub": str(user_id), "email": email, "role": role.value, "exp": expires}
    if tenant_id is not None:
        claims["tenant_id"] = tenant_id
    token = jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return token if isinstance(token, str) else token.decode("utf-8")


def decode_token(token: str) -> dict | None:
    payload, _ = decode_token_with_error(token)
    return payload


def decode_token_with_error(token: str) -> tuple[dict | None, str | None]:
    """Decode a bearer token; returns (claims, error_message)."""
    token = (token or "").strip() if isinstance(token, str) else ""
    if not token:
        return None, "empty token"
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]), None
    except jwt.PyJWTError as e:
        return None, str(e)
