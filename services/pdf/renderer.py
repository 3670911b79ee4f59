"""Invoice PDF rendering with ReportLab.

Produces a single A4 page: header with optional logo, invoice details, the
two parties, the items table, totals, then notes and payment instructions.
Amounts are formatted with the shared currency formatter so the PDF matches
the live preview.
"""

import base64
import io
import logging
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Image as RLImage
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from services.invoice.currency import format_currency
from services.invoice.schema import Company, Invoice

logger = logging.getLogger(__name__)

BASE_FONT = "Helvetica"
TEXT_COLOR = colors.HexColor("#151716")
LABEL_COLOR = colors.HexColor("#666666")
HEADER_BACKGROUND = colors.HexColor("#f4f8f6")
RULE_COLOR = colors.HexColor("#e5e7eb")

LOGO_MAX_WIDTH = 35 * mm
LOGO_MAX_HEIGHT = 25 * mm


def _styles() -> dict[str, ParagraphStyle]:
    sample = getSampleStyleSheet()
    return {
        "Title": ParagraphStyle(
            "InvoiceTitle", parent=sample["Title"], fontName=BASE_FONT, fontSize=24,
            textColor=TEXT_COLOR, alignment=0, spaceAfter=4,
        ),
        "Label": ParagraphStyle(
            "InvoiceLabel", parent=sample["Normal"], fontName=BASE_FONT, fontSize=12,
            textColor=LABEL_COLOR, spaceAfter=3,
        ),
        "Body": ParagraphStyle(
            "InvoiceBody", parent=sample["Normal"], fontName=BASE_FONT, fontSize=10,
            leading=13, textColor=TEXT_COLOR,
        ),
        "BodyRight": ParagraphStyle(
            "InvoiceBodyRight", parent=sample["Normal"], fontName=BASE_FONT, fontSize=10,
            leading=13, textColor=TEXT_COLOR, alignment=2,
        ),
        "Strong": ParagraphStyle(
            "InvoiceStrong", parent=sample["Normal"], fontName=f"{BASE_FONT}-Bold",
            fontSize=10, leading=13, textColor=TEXT_COLOR,
        ),
    }


def _p(text: str | None, style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(text or ""), style)


def logo_flowable(data_uri: str | None) -> RLImage | None:
    """Decode a ``data:image/...;base64,`` URI into a scaled image flowable.

    Returns None (and logs) if the URI cannot be decoded or read.
    """
    if not data_uri or "," not in data_uri:
        return None
    try:
        raw = base64.b64decode(data_uri.split(",", 1)[1], validate=False)
        img = RLImage(io.BytesIO(raw))
        iw, ih = img.wrap(0, 0)
        if iw <= 0 or ih <= 0:
            return None
        scale = min(LOGO_MAX_WIDTH / iw, LOGO_MAX_HEIGHT / ih, 1.0)
        img.drawWidth = iw * scale
        img.drawHeight = ih * scale
        img.hAlign = "RIGHT"
        return img
    except Exception as e:
        logger.warning(f"Skipping unreadable logo: {e}")
        return None


def _party_block(label: str, company: Company, st: dict[str, ParagraphStyle]) -> list:
    locality = f"{company.city}, {company.state} {company.postal_code}".strip(", ")
    lines = [
        company.name,
        company.address,
        company.address2 or "",
        locality,
        company.country,
        company.email,
        company.phone,
    ]
    return [_p(label, st["Label"])] + [_p(line, st["Body"]) for line in lines if line]


def render_invoice_pdf(invoice: Invoice) -> bytes:
    """Render an invoice view-model to PDF bytes.

    Args:
        invoice: Fully derived invoice

    Returns:
        PDF document bytes
    """
    st = _styles()
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=invoice.invoice_name or "Invoice",
    )
    frame_w = float(doc.width)
    currency = invoice.currency
    story: list = []

    # Header
    title = [_p("INVOICE", st["Title"])]
    if invoice.invoice_name:
        title.append(_p(invoice.invoice_name, st["Label"]))
    logo = logo_flowable(invoice.logo)
    header = Table([[title, logo or ""]], colWidths=[0.65 * frame_w, 0.35 * frame_w])
    header.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("ALIGN", (1, 0), (1, 0), "RIGHT"),
        ("LEFTPADDING", (0, 0), (-1, -1), 0),
        ("RIGHTPADDING", (0, 0), (-1, -1), 0),
    ]))
    story.append(header)
    story.append(Spacer(1, 8 * mm))

    # Details and parties
    details = [
        _p(f"Invoice #{invoice.invoice_number}", st["Label"]),
        _p(f"Date: {invoice.date}", st["Body"]),
        _p(f"Due Date: {invoice.due_date}", st["Body"]),
    ]
    parties = Table(
        [[
            details,
            _party_block("From:", invoice.sender, st),
            _party_block("To:", invoice.recipient, st),
        ]],
        colWidths=[frame_w / 3] * 3,
    )
    parties.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("LEFTPADDING", (0, 0), (-1, -1), 0),
    ]))
    story.append(parties)
    story.append(Spacer(1, 8 * mm))

    # Items
    rows = [["Description", "Issue Date", "Quantity", "Rate", "Amount"]]
    for item in invoice.items:
        rows.append([
            _p(item.description, st["Body"]),
            item.issue_date,
            f"{item.quantity:g}",
            format_currency(item.rate, currency),
            format_currency(item.amount, currency),
        ])
    items_table = Table(
        rows,
        colWidths=[0.40 * frame_w, 0.15 * frame_w, 0.12 * frame_w, 0.15 * frame_w, 0.18 * frame_w],
        repeatRows=1,
        hAlign="LEFT",
    )
    items_table.setStyle(TableStyle([
        ("FONT", (0, 0), (-1, -1), BASE_FONT, 10),
        ("FONT", (0, 0), (-1, 0), f"{BASE_FONT}-Bold", 10),
        ("TEXTCOLOR", (0, 0), (-1, -1), TEXT_COLOR),
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BACKGROUND),
        ("ALIGN", (2, 0), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("LINEBELOW", (0, 0), (-1, -1), 0.75, RULE_COLOR),
        ("TOPPADDING", (0, 0), (-1, -1), 6),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
    ]))
    story.append(items_table)
    story.append(Spacer(1, 6 * mm))

    # Totals
    totals = [
        ["Subtotal:", format_currency(invoice.subtotal, currency)],
        [f"Tax ({invoice.tax_rate:g}%):", format_currency(invoice.tax_amount, currency)],
    ]
    if invoice.shipping > 0:
        totals.append(["Shipping:", format_currency(invoice.shipping, currency)])
    totals.append(["Total:", format_currency(invoice.total, currency)])
    totals_table = Table(totals, colWidths=[35 * mm, 40 * mm], hAlign="RIGHT")
    totals_table.setStyle(TableStyle([
        ("FONT", (0, 0), (-1, -1), BASE_FONT, 10),
        ("FONT", (0, -1), (-1, -1), f"{BASE_FONT}-Bold", 11),
        ("TEXTCOLOR", (0, 0), (-1, -1), TEXT_COLOR),
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("LINEABOVE", (0, -1), (-1, -1), 0.75, RULE_COLOR),
    ]))
    story.append(totals_table)

    # Notes
    if invoice.notes or invoice.payment_instructions:
        story.append(Spacer(1, 10 * mm))
        if invoice.notes:
            story.append(_p("Notes:", st["Label"]))
            story.append(_p(invoice.notes, st["Body"]))
            story.append(Spacer(1, 4 * mm))
        if invoice.payment_instructions:
            story.append(_p("Payment Instructions:", st["Label"]))
            story.append(_p(invoice.payment_instructions, st["Body"]))

    doc.build(story)
    return buffer.getvalue()
