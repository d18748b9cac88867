"""
Invoice service — PDF invoices for bank-deposit payments.

Invoices are rendered on demand with ReportLab from a
``PendingTransaction``; nothing is stored. The status stamp follows the
transaction: approved is PAID, declined is DECLINED, anything else is
UNPAID.
"""

import logging
from io import BytesIO
from xml.sax.saxutils import escape

from flask import current_app
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.models.payment import PendingTransaction
from app.services.financial_service import format_currency

logger = logging.getLogger(__name__)

_STATUS_LABELS = {"approved": "PAID", "declined": "DECLINED"}
_STATUS_COLORS = {
    "PAID": colors.HexColor("#22c55e"),
    "DECLINED": colors.HexColor("#ef4444"),
    "UNPAID": colors.HexColor("#9ca3af"),
}
_BRAND_COLOR = colors.HexColor("#2c5282")


def invoice_number(txn: PendingTransaction) -> str:
    """Return the invoice number, e.g. ``INV-20250314-000123``."""
    return f"INV-{txn.created_at:%Y%m%d}-{txn.id:06d}"


def invoice_status(txn: PendingTransaction) -> str:
    return _STATUS_LABELS.get(txn.status, "UNPAID")


def invoice_filename(txn: PendingTransaction) -> str:
    return f"Invoice_{invoice_number(txn)}.pdf"


def _status_note(txn: PendingTransaction) -> list[str]:
    if txn.status == "approved":
        return ["Payment has been verified and approved."]
    if txn.status == "declined":
        lines = ["Payment was declined. Please contact support."]
        if txn.admin_notes:
            lines.append(f"Note: {escape(txn.admin_notes)}")
        return lines
    return ["Payment is pending verification."]


def build_invoice_pdf(txn: PendingTransaction) -> bytes:
    """
    Render the invoice for a transaction.

    Returns:
        The PDF document as bytes.
    """
    config = current_app.config
    number = invoice_number(txn)
    status = invoice_status(txn)
    user = txn.user

    styles = getSampleStyleSheet()
    brand = ParagraphStyle(
        "Brand", parent=styles["Title"], textColor=_BRAND_COLOR, alignment=0
    )
    muted = ParagraphStyle("Muted", parent=styles["Normal"], textColor=colors.grey)
    heading = styles["Heading4"]
    small = ParagraphStyle(
        "Small", parent=styles["Normal"], fontSize=8, textColor=colors.grey
    )
    stamp = ParagraphStyle(
        "Stamp", parent=styles["Heading3"], textColor=_STATUS_COLORS[status]
    )

    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=number)
    story = []

    # -- Header: company on the left, invoice details on the right -----------
    company = [
        Paragraph(config["COMPANY_NAME"], brand),
        Paragraph(config["COMPANY_TAGLINE"], muted),
        Paragraph(config["COMPANY_LOCATION"], muted),
    ]
    details = [
        Paragraph("<b>INVOICE</b>", styles["Heading2"]),
        Paragraph(f"Invoice #: {number}", styles["Normal"]),
        Paragraph(f"Date: {txn.created_at:%b %d, %Y}", styles["Normal"]),
        Paragraph(status, stamp),
    ]
    header = Table([[company, details]], colWidths=[300, 200])
    header.setStyle(
        TableStyle(
            [
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LINEBELOW", (0, 0), (-1, 0), 0.5, colors.lightgrey),
                ("BOTTOMPADDING", (0, 0), (-1, 0), 12),
            ]
        )
    )
    story.append(header)
    story.append(Spacer(1, 16))

    # -- Bill to ---------------------------------------------------------------
    story.append(Paragraph("BILL TO:", heading))
    bill_to = user.full_name if user and user.full_name else "N/A"
    story.append(Paragraph(escape(bill_to), styles["Normal"]))
    if user and user.email:
        story.append(Paragraph(escape(user.email), styles["Normal"]))
    if user and user.phone:
        story.append(Paragraph(escape(user.phone), styles["Normal"]))
    story.append(Spacer(1, 12))

    # -- Payment details -------------------------------------------------------
    story.append(Paragraph("PAYMENT DETAILS:", heading))
    story.append(Paragraph("Payment Method: Bank Deposit", styles["Normal"]))
    if txn.reference_number:
        story.append(
            Paragraph(f"Reference Number: {escape(txn.reference_number)}", styles["Normal"])
        )
    story.append(Spacer(1, 12))

    # -- Service line and total ------------------------------------------------
    story.append(Paragraph("SERVICE DETAILS:", heading))
    if txn.transaction_type == "subscription":
        description = txn.package.name if txn.package else "Professional Service"
        line_type = "Package Subscription"
    else:
        description = (
            txn.booking.service.name
            if txn.booking and txn.booking.service
            else "Professional Service"
        )
        line_type = "Service Booking"
    amount = format_currency(txn.amount)
    lines = Table(
        [
            ["Description", "Type", "Amount"],
            [description, line_type, amount],
            ["", "TOTAL:", amount],
        ],
        colWidths=[230, 150, 120],
    )
    lines.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f0f0f0")),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTNAME", (1, 2), (-1, 2), "Helvetica-Bold"),
                ("LINEABOVE", (1, 2), (-1, 2), 0.5, colors.lightgrey),
                ("ALIGN", (2, 0), (2, -1), "RIGHT"),
                ("TOPPADDING", (0, 0), (-1, -1), 6),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ]
        )
    )
    story.append(lines)
    story.append(Spacer(1, 16))

    for note in _status_note(txn):
        story.append(Paragraph(note, muted))
    story.append(Spacer(1, 24))

    # -- Footer ----------------------------------------------------------------
    story.append(Paragraph("This is a computer-generated invoice.", small))
    story.append(
        Paragraph(
            f"For questions, please contact: {config['SUPPORT_EMAIL']}", small
        )
    )

    doc.build(story)
    logger.info("Rendered invoice %s (%s)", number, status)
    return buffer.getvalue()
