"""Notification service: email via Mailgun (preferred) or SendGrid, plus the workflow templates.

Transport functions return False instead of raising; callers in the agreement and
invitation workflows treat a failed send as a logged event, never as a reason to
undo a state change.
"""
from __future__ import annotations

import logging
from datetime import datetime
from html import escape
from typing import Any, Callable

from app.config import get_settings

logger = logging.getLogger("uvicorn.error")

TEMPLATE_AGREEMENT_READY = "lease_agreement_ready"
TEMPLATE_AGREEMENT_SIGNED = "lease_agreement_signed"
TEMPLATE_TENANT_INVITATION = "tenant_invitation"
TEMPLATE_PORTAL_WELCOME = "tenant_portal_welcome"


def send_email(to_email: str, subject: str, html_content: str, text_content: str | None = None) -> bool:
    """Send email via Mailgun (preferred) or SendGrid. Returns True if the provider accepted it."""
    settings = get_settings()
    has_key = bool(settings.mailgun_api_key)
    has_domain = bool(settings.mailgun_domain)
    if has_key and has_domain:
        logger.info("Email via Mailgun: to=%s subject=%s domain=%s", to_email, subject, settings.mailgun_domain)
        return _send_email_mailgun(to_email, subject, html_content, text_content=text_content, settings=settings)
    if settings.sendgrid_api_key:
        return _send_email_sendgrid(to_email, subject, html_content, text_content=text_content, settings=settings)
    logger.warning(
        "Email NOT SENT: to=%s subject=%s. MAILGUN_API_KEY=%s MAILGUN_DOMAIN=%s SENDGRID_API_KEY=%s",
        to_email,
        subject,
        "set" if has_key else "MISSING",
        "set" if has_domain else "MISSING",
        "set" if settings.sendgrid_api_key else "MISSING",
    )
    return False


MAILGUN_US_BASE = "https://api.mailgun.net"
MAILGUN_EU_BASE = "https://api.eu.mailgun.net"


def _send_email_mailgun(to_email: str, subject: str, html_content: str, text_content: str | None = None, settings=None) -> bool:
    if settings is None:
        settings = get_settings()
    try:
        import httpx

        base = (settings.mailgun_base_url or MAILGUN_US_BASE).strip().rstrip("/")
        domain = (settings.mailgun_domain or "").strip().lower()
        from_addr = (settings.mailgun_from_email or "").strip()
        from_domain = from_addr.split("@")[-1].lower() if "@" in from_addr else ""
        if domain and from_domain != domain:
            # Mailgun drops mail whose sender domain differs from the sending domain
            from_addr = f"noreply@{domain}"
        from_email = f"{settings.mailgun_from_name} <{from_addr}>"
        url = f"{base}/v3/{domain}/messages"
        data = {
            "from": from_email,
            "to": to_email,
            "subject": subject,
            "text": text_content or "",
            "html": html_content or "",
        }
        with httpx.Client(timeout=10.0) as client:
            r = client.post(url, auth=("api", settings.mailgun_api_key), data=data)
            if 200 <= r.status_code < 300:
                logger.info("Mailgun accepted: to=%s status=%s", to_email, r.status_code)
                return True
            if r.status_code == 401 and base == MAILGUN_US_BASE:
                logger.warning("Mailgun 401 with US endpoint, retrying with EU endpoint")
                r2 = client.post(f"{MAILGUN_EU_BASE}/v3/{domain}/messages", auth=("api", settings.mailgun_api_key), data=data)
                if 200 <= r2.status_code < 300:
                    logger.info("Mailgun (EU) accepted: to=%s", to_email)
                    return True
                logger.warning("Mailgun EU request failed: status=%s body=%s", r2.status_code, r2.text[:500])
                return False
            logger.warning("Mailgun failed: status=%s to=%s body=%s", r.status_code, to_email, r.text[:500])
            return False
    except Exception:
        logger.exception("Mailgun send raised: to=%s", to_email)
        return False


def _send_email_sendgrid(to_email: str, subject: str, html_content: str, text_content: str | None = None, settings=None) -> bool:
    if settings is None:
        settings = get_settings()
    try:
        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Mail

        message = Mail(
            from_email=(settings.sendgrid_from_email, settings.sendgrid_from_name),
            to_emails=to_email,
            subject=subject,
            html_content=html_content,
            plain_text_content=text_content or "",
        )
        sg = SendGridAPIClient(settings.sendgrid_api_key)
        sg.send(message)
        return True
    except Exception:
        logger.exception("SendGrid send raised: to=%s", to_email)
        return False


def _format_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%B %d, %Y")
    return str(value) if value else ""


def _agreement_ready(v: dict) -> tuple[str, str, str]:
    name = escape((v.get("tenant_name") or "").strip() or "there")
    address = escape(v.get("property_address") or "your new home")
    link = v["signing_link"]
    expiry = _format_date(v.get("expires_at"))
    subject = "[LeaseDesk] Your lease agreement is ready for signature"
    text = (
        f"Hello {name},\n\n"
        f"Your lease agreement for {address} is ready for your review and signature.\n"
        f"This signing link expires on {expiry}.\n\n"
        f"Review and sign: {link}\n\n"
        "- LeaseDesk"
    )
    html = f"""
    <p>Hello {name},</p>
    <p>Your lease agreement for <strong>{address}</strong> is ready for your review and signature.</p>
    <p><strong>Important:</strong> this signing link expires on <strong>{expiry}</strong>.</p>
    <p><a href="{link}">Review &amp; sign the agreement</a></p>
    <p style="font-size:12px;color:#666">Or copy this link: {link}</p>
    <p>- LeaseDesk</p>
    """
    return subject, html, text


def _agreement_signed(v: dict) -> tuple[str, str, str]:
    tenant = escape(v.get("tenant_name") or "the tenant")
    address = escape(v.get("property_address") or "the property")
    agreement_id = v.get("agreement_id")
    signed = _format_date(v.get("signed_at"))
    subject = "[LeaseDesk] Lease agreement signed by all parties"
    text = (
        f"The lease agreement #{agreement_id} for {address} with {tenant} has been signed by all parties on {signed}.\n"
        "A copy of the signed agreement is available in LeaseDesk.\n\n- LeaseDesk"
    )
    html = f"""
    <p>Hello,</p>
    <p>The lease agreement <strong>#{agreement_id}</strong> for <strong>{address}</strong> with <strong>{tenant}</strong>
    has been signed by all parties on <strong>{signed}</strong>.</p>
    <p>A copy of the signed agreement is available in LeaseDesk.</p>
    <p>- LeaseDesk</p>
    """
    return subject, html, text


def _tenant_invitation(v: dict) -> tuple[str, str, str]:
    name = escape((v.get("tenant_name") or "").strip() or "there")
    link = v["setup_link"]
    expiry = _format_date(v.get("expires_at"))
    subject = "[LeaseDesk] Set up your tenant portal account"
    text = (
        f"Hi {name},\n\n"
        "You've been invited to the LeaseDesk tenant portal, where you can pay rent, submit maintenance "
        "requests and view your lease documents.\n"
        f"Set up your account: {link}\nThis invitation expires on {expiry}.\n\n- LeaseDesk"
    )
    html = f"""
    <p>Hi {name},</p>
    <p>You've been invited to the <strong>LeaseDesk tenant portal</strong>, where you can pay rent,
    submit maintenance requests and view your lease documents.</p>
    <p><a href="{link}">Set up your account</a></p>
    <p>This invitation expires on <strong>{expiry}</strong>.</p>
    <p>- LeaseDesk</p>
    """
    return subject, html, text


def _portal_welcome(v: dict) -> tuple[str, str, str]:
    name = escape((v.get("full_name") or "").strip() or "there")
    subject = "[LeaseDesk] Welcome - your tenant portal account is ready"
    text = f"Hi {name}, welcome to LeaseDesk. Your tenant portal account is ready; sign in any time to manage your lease."
    html = f"""
    <p>Hi {name},</p>
    <p>Welcome to <strong>LeaseDesk</strong>. Your tenant portal account is ready.</p>
    <p>Sign in any time to manage your lease, payments and maintenance requests.</p>
    <p>- LeaseDesk</p>
    """
    return subject, html, text


TEMPLATES: dict[str, Callable[[dict], tuple[str, str, str]]] = {
    TEMPLATE_AGREEMENT_READY: _agreement_ready,
    TEMPLATE_AGREEMENT_SIGNED: _agreement_signed,
    TEMPLATE_TENANT_INVITATION: _tenant_invitation,
    TEMPLATE_PORTAL_WELCOME: _portal_welcome,
}


class EmailNotificationGateway:
    """Renders a named template and hands it to the configured email transport."""

    def send(self, to: str, template: str, vars: dict) -> bool:
        try:
            build = TEMPLATES[template]
        except KeyError:
            raise ValueError(f"Unknown notification template: {template}") from None
        subject, html, text = build(vars)
        return send_email(to, subject, html, text_content=text)


def dispatch(gateway, to: str, template: str, vars: dict) -> bool:
    """Send through the gateway without ever raising; failures are logged and reported as False."""
    try:
        sent = gateway.send(to, template, vars)
    except Exception:
        logger.exception("Notification %s to %s failed", template, to)
        return False
    if not sent:
        logger.warning("Notification %s to %s was not delivered", template, to)
    return bool(sent)
