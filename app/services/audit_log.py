"""Append-only audit trail for lease agreements and tenant invitations.

Rows are only ever inserted. ``create_log`` flushes but never commits, so the entry
lands in the same transaction as the state change it describes.
"""
from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog

CATEGORY_STATUS_CHANGE = "status_change"
CATEGORY_SIGNATURE = "signature"
CATEGORY_INVITATION = "invitation"
CATEGORY_FAILED_ATTEMPT = "failed_attempt"

# Column sizes from app.models.audit_log; message is Text but still bounded
_LIMITS = {
    "category": 32,
    "title": 255,
    "message": 100_000,
    "actor_email": 255,
    "ip_address": 64,
    "user_agent": 500,
}


def _clip(field: str, value: Any, fallback: str | None = None) -> str | None:
    text = str(value).strip()[: _LIMITS[field]] if value else ""
    return text or fallback


def _json_safe(value: Any) -> Any:
    """Statuses, signer roles and timestamps become plain JSON values."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(v) for v in value]
    return str(value)


def create_log(
    db: Session,
    category: str,
    title: str,
    message: str,
    *,
    agreement_id: int | None = None,
    lease_id: int | None = None,
    invitation_id: int | None = None,
    actor_user_id: int | None = None,
    actor_email: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    meta: dict[str, Any] | None = None,
) -> AuditLog:
    entry = AuditLog(
        category=_clip("category", category, CATEGORY_STATUS_CHANGE),
        title=_clip("title", title, "-"),
        message=_clip("message", message, "-"),
        agreement_id=agreement_id,
        lease_id=lease_id,
        invitation_id=invitation_id,
        actor_user_id=actor_user_id,
        actor_email=_clip("actor_email", actor_email),
        ip_address=_clip("ip_address", ip_address),
        user_agent=_clip("user_agent", user_agent),
        meta=_json_safe(meta) if meta is not None else None,
    )
    db.add(entry)
    db.flush()
    return entry


def list_logs_for_agreement(db: Session, agreement_id: int) -> list[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.agreement_id == agreement_id)
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        .all()
    )
