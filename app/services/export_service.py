"""
Export service — payout files for the finance team.

Payouts are exported one row per payout with the provider's payment
destination so the file can be handed straight to the bank. All export
functions return a BytesIO buffer ready to be sent as a Flask response
with the appropriate content type.
"""

import csv
import io
import logging
from datetime import datetime
from decimal import Decimal

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from app.models.payment import Payout

logger = logging.getLogger(__name__)

# Excel header styling constants.
_HEADER_FONT = Font(bold=True, color="FFFFFF")
_HEADER_FILL = PatternFill(start_color="2C5282", end_color="2C5282", fill_type="solid")
_HEADER_ALIGN = Alignment(horizontal="center", wrap_text=True)
_CURRENCY_FORMAT = '"N$"#,##0.00'

PAYOUT_HEADERS = [
    "Payout ID",
    "Provider Name",
    "Payment Method",
    "Bank/Mobile Number",
    "Bookings",
    "Gross Amount",
    "Commission",
    "Tax",
    "Bonus",
    "Net Payout",
    "Status",
    "Created",
    "Payment Reference",
]

# Zero-based positions of the money columns in PAYOUT_HEADERS.
_MONEY_COLUMNS = range(5, 10)


def export_filename(extension: str, on: datetime | None = None) -> str:
    """Return e.g. ``Longa_Payouts_2025-05-27.csv``."""
    on = on or datetime.now()
    return f"Longa_Payouts_{on:%Y-%m-%d}.{extension}"


def _destination(payout: Payout) -> str:
    """Bank account or mobile money number the payout goes to."""
    profile = payout.provider.provider_profile if payout.provider else None
    if profile is None:
        return ""
    if payout.payment_method == "mobile_money":
        return profile.mobile_money_number or ""
    if payout.payment_method == "bank_transfer":
        parts = [profile.bank_name, profile.account_number]
        return " ".join(p for p in parts if p)
    return ""


def _payout_row(payout: Payout) -> list:
    return [
        payout.id,
        payout.provider.full_name if payout.provider else "",
        payout.payment_method,
        _destination(payout),
        payout.booking_count,
        payout.gross_amount,
        payout.commission_amount,
        payout.tax_amount,
        payout.bonus_amount,
        payout.net_amount,
        payout.status,
        payout.created_at.strftime("%Y-%m-%d"),
        payout.payment_reference or "",
    ]


# =========================================================================
# CSV Exports
# =========================================================================

def export_payouts_csv(payouts: list[Payout]) -> io.BytesIO:
    """
    Export payouts to CSV.

    Returns:
        BytesIO buffer containing UTF-8 CSV data with a BOM so Excel
        opens it with the right encoding.
    """
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(PAYOUT_HEADERS)

    for payout in payouts:
        row = _payout_row(payout)
        for idx in _MONEY_COLUMNS:
            row[idx] = _format_decimal(row[idx])
        writer.writerow(row)

    buffer = io.BytesIO()
    buffer.write(output.getvalue().encode("utf-8-sig"))
    buffer.seek(0)
    logger.info("Exported %d payouts to CSV", len(payouts))
    return buffer


# =========================================================================
# Excel Exports
# =========================================================================

def export_payouts_excel(payouts: list[Payout]) -> io.BytesIO:
    """
    Export payouts to an Excel workbook with a totals row.

    Returns:
        BytesIO buffer containing the .xlsx data.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Payouts"
    _write_header_row(ws, PAYOUT_HEADERS)

    for row_idx, payout in enumerate(payouts, start=2):
        for col_idx, value in enumerate(_payout_row(payout)):
            cell = ws.cell(
                row=row_idx,
                column=col_idx + 1,
                value=float(value) if col_idx in _MONEY_COLUMNS else value,
            )
            if col_idx in _MONEY_COLUMNS:
                cell.number_format = _CURRENCY_FORMAT

    if payouts:
        total_row = len(payouts) + 2
        ws.cell(row=total_row, column=1, value="TOTAL").font = Font(bold=True)
        for col_idx in _MONEY_COLUMNS:
            letter = get_column_letter(col_idx + 1)
            cell = ws.cell(
                row=total_row,
                column=col_idx + 1,
                value=f"=SUM({letter}2:{letter}{total_row - 1})",
            )
            cell.number_format = _CURRENCY_FORMAT
            cell.font = Font(bold=True)

    _auto_fit_columns(ws)

    buffer = io.BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    logger.info("Exported %d payouts to Excel", len(payouts))
    return buffer


# =========================================================================
# Internal helpers
# =========================================================================

def _write_header_row(ws, headers: list[str]) -> None:
    """Write a styled header row to an Excel worksheet."""
    for col_idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = _HEADER_ALIGN


def _auto_fit_columns(ws) -> None:
    """Auto-fit column widths based on content (approximate)."""
    for col in ws.columns:
        max_length = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value and not str(cell.value).startswith("="):
                max_length = max(max_length, len(str(cell.value)))
        ws.column_dimensions[col_letter].width = min(max_length + 4, 40)


def _format_decimal(value: Decimal) -> str:
    """Format a Decimal for CSV output."""
    return f"{Decimal(str(value)):.2f}"
