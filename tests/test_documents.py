from datetime import datetime, timezone

from app.models.lease_signature import LeaseSignature, SignatureMethod, SignerType
from app.services.documents import (
    ReportLabDocumentRenderer,
    _signature_lines,
    agreement_content_to_pdf,
    default_lease_content,
)

# 1x1 transparent PNG
TINY_PNG = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="


def _signature(role, method=SignatureMethod.TYPED, data=None):
    name, email = ("Jane Renter", "jane@example.com") if role == SignerType.TENANT else ("Pat Manager", "pat@leasedesk.com")
    return LeaseSignature(
        signer_type=role,
        signer_name=name,
        signer_email=email,
        signature_method=method,
        signature_data=data or name,
        ip_address="203.0.113.7",
        signed_at=datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc),
    )


def test_default_content_uses_lease_details(lease):
    content = default_lease_content(lease)

    assert "Jane Renter" in content
    assert "Unit 2B, 12 Maple St" in content
    assert "$1,850.00" in content
    assert "November 01, 2026" in content
    assert "October 31, 2027" in content


def test_signature_block_shows_blank_lines_for_missing_signers():
    lines = _signature_lines([_signature(SignerType.TENANT)])

    assert lines[0].startswith("Landlord: ____")
    assert lines[1] == "Tenant: Jane Renter <jane@example.com>   Date: October 19, 2026"
    assert "from 203.0.113.7" in lines[2]


def test_render_produces_pdf(lease):
    pdf = ReportLabDocumentRenderer().render(lease, [_signature(SignerType.TENANT), _signature(SignerType.LANDLORD)])
    assert pdf.startswith(b"%PDF")


def test_render_uses_custom_content(lease):
    pdf = ReportLabDocumentRenderer().render(lease, [], template_content="Tenant & Landlord agree <to> terms.")
    assert pdf.startswith(b"%PDF")


def test_drawn_signature_is_embedded():
    drawn = _signature(SignerType.TENANT, SignatureMethod.DRAWN, f"data:image/png;base64,{TINY_PNG}")
    typed_only = agreement_content_to_pdf("LEASE", "Body", [_signature(SignerType.TENANT)])
    with_image = agreement_content_to_pdf("LEASE", "Body", [drawn])

    assert with_image.startswith(b"%PDF")
    assert len(with_image) > len(typed_only)


def test_unreadable_drawn_signature_falls_back_to_text():
    broken = _signature(SignerType.TENANT, SignatureMethod.DRAWN, "not-an-image!!")
    assert agreement_content_to_pdf("LEASE", "Body", [broken]).startswith(b"%PDF")
