"""Lease agreement document rendering (PDF via reportlab)."""
from __future__ import annotations

import base64
import binascii
import hashlib
import logging
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO
from typing import Iterable

from app.models.lease import Lease
from app.models.lease_signature import LeaseSignature, SignatureMethod, SignerType

logger = logging.getLogger("uvicorn.error")

DEFAULT_TITLE = "RESIDENTIAL LEASE AGREEMENT"


def _sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def _fmt_date(value: date | datetime | None, placeholder: str = "[Date]") -> str:
    if not value:
        return placeholder
    return value.strftime("%B %d, %Y")


def _fmt_money(value: Decimal | float | None) -> str:
    if value is None:
        return "$0.00"
    return f"${Decimal(value):,.2f}"


def default_lease_content(lease: Lease) -> str:
    """Plain-text residential lease body built from the lease, tenant, unit and property."""
    tenant_name = (lease.tenant.name if lease.tenant else None) or "[Tenant Name]"
    unit = lease.unit
    prop = unit.property_ref if unit else None
    address = prop.address if prop else "[Property Address]"
    unit_line = f"Unit {unit.unit_number}, " if unit and unit.unit_number else ""
    term_end = _fmt_date(lease.end_date, "month-to-month")

    return f"""1. PARTIES
This Residential Lease Agreement ("Agreement") is entered into between the property owner or its
authorized manager ("Landlord") and {tenant_name} ("Tenant").

2. PREMISES
Landlord leases to Tenant the premises located at {unit_line}{address} (the "Premises").

3. TERM
The lease term begins on {_fmt_date(lease.start_date)} and ends on {term_end}.

4. RENT
Tenant agrees to pay {_fmt_money(lease.monthly_rent)} per month, due on the first day of each month.

5. SECURITY DEPOSIT
Tenant has paid a security deposit of {_fmt_money(lease.security_deposit)}, to be returned at the end of the
term less any lawful deductions for unpaid rent or damage beyond normal wear and tear.

6. USE AND OCCUPANCY
The Premises shall be used only as a private residence by Tenant and the occupants listed in the lease.

7. MAINTENANCE AND REPAIRS
Tenant shall keep the Premises clean and promptly report needed repairs through the tenant portal.
Landlord shall make repairs required to keep the Premises habitable.

8. ENTRY
Landlord may enter the Premises with reasonable notice for inspection, repairs or showings, or at any
time in an emergency.

9. ELECTRONIC SIGNATURES
The parties agree that this Agreement may be signed electronically and that electronic signatures have
the same effect as handwritten signatures.
"""


def _signature_lines(signatures: Iterable[LeaseSignature]) -> list[str]:
    by_role = {s.signer_type: s for s in signatures}
    lines = []
    for role, label in ((SignerType.LANDLORD, "Landlord"), (SignerType.TENANT, "Tenant")):
        sig = by_role.get(role)
        if not sig:
            lines.append(f"{label}: ________________________   Date: __________")
            continue
        lines.append(f"{label}: {sig.signer_name} <{sig.signer_email}>   Date: {_fmt_date(sig.signed_at)}")
        detail = f"Signed electronically ({sig.signature_method.value.lower()})"
        if sig.ip_address:
            detail += f" from {sig.ip_address}"
        lines.append(detail)
    return lines


def _escape_for_reportlab(s: str) -> str:
    """Escape text for ReportLab Paragraph (XML-like markup)."""
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )


def _drawn_signature_image(data: str | None, width: float, height: float):
    """Return a reportlab Image for a data-URL/base64 PNG payload, or None if it cannot be decoded."""
    from reportlab.lib.utils import ImageReader
    from reportlab.platypus import Image

    if not data:
        return None
    payload = data.split(",", 1)[1] if data.startswith("data:") and "," in data else data
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Drawn signature payload is not valid base64; rendering text only")
        return None
    try:
        ImageReader(BytesIO(raw)).getSize()
    except Exception:
        logger.warning("Drawn signature payload is not a readable image; rendering text only", exc_info=True)
        return None
    return Image(BytesIO(raw), width=width, height=height, kind="proportional")


def agreement_content_to_pdf(title: str, content: str, signatures: Iterable[LeaseSignature] = ()) -> bytes:
    """Generate a PDF from agreement title, body and signature block. Content wraps to page width and is justified."""
    from reportlab.lib.pagesizes import letter
    from reportlab.lib.styles import getSampleStyleSheet
    from reportlab.lib.enums import TA_JUSTIFY
    from reportlab.lib.units import inch
    from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer

    signatures = list(signatures)
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=letter,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title=title,
    )
    styles = getSampleStyleSheet()
    title_style = styles["Title"]
    heading_style = styles["Heading2"]
    body_style = styles["Normal"].clone("JustifiedBody", alignment=TA_JUSTIFY, spaceAfter=6)

    story = [Paragraph(_escape_for_reportlab(title.replace("\n", " ")), title_style), Spacer(1, 0.2 * inch)]

    for line in content.splitlines():
        line = line.strip()
        if line:
            story.append(Paragraph(_escape_for_reportlab(line), body_style))
        else:
            story.append(Spacer(1, 0.12 * inch))

    story.append(Spacer(1, 0.3 * inch))
    story.append(Paragraph("SIGNATURES (ELECTRONIC)", heading_style))
    for line in _signature_lines(signatures):
        story.append(Paragraph(_escape_for_reportlab(line), body_style))

    for sig in signatures:
        if sig.signature_method == SignatureMethod.DRAWN:
            img = _drawn_signature_image(sig.signature_data, 2.5 * inch, 0.8 * inch)
            if img is not None:
                story.append(Paragraph(_escape_for_reportlab(f"{sig.signer_type.value.title()} signature:"), body_style))
                story.append(img)

    doc.build(story)
    return buf.getvalue()


class ReportLabDocumentRenderer:
    """Turns a lease and its signatures into a PDF artifact."""

    def render(
        self,
        lease: Lease,
        signatures: Iterable[LeaseSignature],
        template_content: str | None = None,
    ) -> bytes:
        content = (template_content or "").strip() or default_lease_content(lease)
        pdf = agreement_content_to_pdf(DEFAULT_TITLE, content, signatures)
        logger.info("Rendered lease agreement PDF: lease_id=%s content_sha256=%s", lease.id, _sha256_hex(content)[:12])
        return pdf
