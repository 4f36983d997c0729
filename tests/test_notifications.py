from datetime import datetime, timezone

import httpx
import pytest

from app.config import Settings
from app.services import notifications
from app.services.notifications import (
    EmailNotificationGateway,
    TEMPLATES,
    TEMPLATE_AGREEMENT_READY,
    TEMPLATE_TENANT_INVITATION,
    dispatch,
)


def test_every_workflow_template_is_registered():
    assert set(TEMPLATES) == {
        "lease_agreement_ready",
        "lease_agreement_signed",
        "tenant_invitation",
        "tenant_portal_welcome",
    }


def test_agreement_ready_template_escapes_names_and_includes_link():
    subject, html, text = TEMPLATES[TEMPLATE_AGREEMENT_READY](
        {
            "tenant_name": "<b>Jane</b>",
            "property_address": "12 Maple St",
            "signing_link": "https://app.leasedesk.test/sign-agreement/7",
            "expires_at": datetime(2026, 10, 26, tzinfo=timezone.utc),
        }
    )
    assert "ready for signature" in subject
    assert "&lt;b&gt;Jane&lt;/b&gt;" in html
    assert "https://app.leasedesk.test/sign-agreement/7" in text
    assert "October 26, 2026" in text


def test_invitation_template_includes_setup_link():
    _, html, _ = TEMPLATES[TEMPLATE_TENANT_INVITATION](
        {"tenant_name": "Jane", "setup_link": "https://app.leasedesk.test/tenant-portal/setup/abc"}
    )
    assert 'href="https://app.leasedesk.test/tenant-portal/setup/abc"' in html


def test_gateway_rejects_unknown_template():
    with pytest.raises(ValueError):
        EmailNotificationGateway().send("jane@example.com", "rent_reminder", {})


def test_gateway_passes_rendered_template_to_transport(monkeypatch):
    sent = []
    monkeypatch.setattr(
        notifications, "send_email", lambda to, subject, html, text_content=None: sent.append((to, subject)) or True
    )

    assert EmailNotificationGateway().send("jane@example.com", "tenant_portal_welcome", {"full_name": "Jane"})
    assert sent == [("jane@example.com", "[LeaseDesk] Welcome - your tenant portal account is ready")]


def test_send_email_without_transport_is_not_delivered():
    assert notifications.send_email("jane@example.com", "Hi", "<p>Hi</p>") is False


def test_dispatch_never_raises():
    class Exploding:
        def send(self, to, template, vars):
            raise RuntimeError("boom")

    assert dispatch(Exploding(), "jane@example.com", TEMPLATE_AGREEMENT_READY, {}) is False


def test_dispatch_reports_undelivered():
    class Declining:
        def send(self, to, template, vars):
            return False

    assert dispatch(Declining(), "jane@example.com", TEMPLATE_AGREEMENT_READY, {}) is False


def _mock_mailgun(monkeypatch, handler):
    real_client = httpx.Client
    monkeypatch.setattr(
        httpx, "Client", lambda *args, **kwargs: real_client(transport=httpx.MockTransport(handler), timeout=kwargs.get("timeout"))
    )


def test_mailgun_posts_from_sending_domain(monkeypatch):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"id": "<1@mg.leasedesk.test>"})

    _mock_mailgun(monkeypatch, handler)
    settings = Settings(mailgun_api_key="key-123", mailgun_domain="mg.leasedesk.test", mailgun_from_email="hello@other.test")

    assert notifications._send_email_mailgun("jane@example.com", "Hi", "<p>Hi</p>", settings=settings)
    [request] = requests
    assert str(request.url) == "https://api.mailgun.net/v3/mg.leasedesk.test/messages"
    assert b"noreply%40mg.leasedesk.test" in request.content


def test_mailgun_retries_eu_endpoint_on_401(monkeypatch):
    hosts = []

    def handler(request):
        hosts.append(request.url.host)
        return httpx.Response(401 if request.url.host == "api.mailgun.net" else 200, text="")

    _mock_mailgun(monkeypatch, handler)
    settings = Settings(mailgun_api_key="key-123", mailgun_domain="mg.leasedesk.test")

    assert notifications._send_email_mailgun("jane@example.com", "Hi", "<p>Hi</p>", settings=settings)
    assert hosts == ["api.mailgun.net", "api.eu.mailgun.net"]


def test_mailgun_failure_returns_false(monkeypatch):
    _mock_mailgun(monkeypatch, lambda request: httpx.Response(500, text="server error"))
    settings = Settings(mailgun_api_key="key-123", mailgun_domain="mg.leasedesk.test")

    assert notifications._send_email_mailgun("jane@example.com", "Hi", "<p>Hi</p>", settings=settings) is False
