"""Excel export of invoice listings."""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from config import CurrencySettings
from alp_bot.expenses.formatting import DEFAULT_CURRENCY, format_date
from alp_bot.expenses.models import Invoice

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(bold=True, color="FFFFFF", size=11)
BORDER = Border(
    left=Side(style="thin"), right=Side(style="thin"),
    top=Side(style="thin"), bottom=Side(style="thin"),
)
UNASSIGNED_LABEL = "(no object)"


def _number_format(currency: CurrencySettings) -> str:
    if currency.decimals <= 0:
        return "#,##0"
    return "#,##0." + "0" * currency.decimals


def _write_header(ws, title: str, headers: list[str]):
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(headers))
    ws["A1"] = title
    ws["A1"].font = Font(bold=True, size=14)
    for col, h in enumerate(headers, 1):
        cell = ws.cell(row=3, column=col, value=h)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal="center")
        cell.border = BORDER


def _autosize(ws, columns: int, max_width: int = 40):
    for col in range(1, columns + 1):
        max_len = max(
            (len(str(ws.cell(row=r, column=col).value or "")) for r in range(3, ws.max_row + 1)),
            default=10,
        )
        ws.column_dimensions[get_column_letter(col)].width = min(max(max_len + 2, 12), max_width)


def object_totals(invoices: list[Invoice]) -> dict[str, dict]:
    """Spend per cost object, from position-level allocations.

    Invoices without positions count against their invoice-level object.
    """
    totals: dict[str, dict] = {}

    def add(object_id, name, amount: Decimal, invoice_id: str):
        key = object_id or ""
        entry = totals.setdefault(key, {"name": name or UNASSIGNED_LABEL, "total": Decimal(0), "invoices": set()})
        if name and entry["name"] == UNASSIGNED_LABEL:
            entry["name"] = name
        entry["total"] += amount
        entry["invoices"].add(invoice_id)

    for inv in invoices:
        if not inv.positions:
            add(inv.object_id, inv.object_name, inv.total, inv.id)
            continue
        for line in inv.positions:
            object_id = line.cost_object_id or inv.object_id
            name = inv.object_name if object_id == inv.object_id else ""
            add(object_id, name, line.line_total, inv.id)
    return totals


def export_invoices_excel(invoices: list[Invoice], output_path: str | Path,
                          currency: CurrencySettings | None = None,
                          object_names: dict[str, str] | None = None) -> Path:
    """Export invoices to a formatted Excel workbook.

    Sheets: one row per invoice with a totals row, spend per cost object,
    and one row per position.
    """
    currency = currency or DEFAULT_CURRENCY
    object_names = object_names or {}
    money = _number_format(currency)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    wb.remove(wb.active)

    # --- Invoices sheet ---
    ws = wb.create_sheet("Invoices")
    headers = ["ID", "Date", "Vendor", "Invoice No.", "Technician", "Object", "Payment",
               f"Total ({currency.code})"]
    _write_header(ws, "Invoices", headers)

    for i, inv in enumerate(invoices, 4):
        row_data = [
            inv.id, format_date(inv.date), inv.vendor, inv.invoice_number,
            inv.technician_name or inv.technician_id or "",
            inv.object_name or object_names.get(inv.object_id or "", ""),
            inv.payment_method, float(inv.total),
        ]
        for col, val in enumerate(row_data, 1):
            cell = ws.cell(row=i, column=col, value=val)
            cell.border = BORDER
            if col == 8:
                cell.number_format = money
                cell.alignment = Alignment(horizontal="right")

    total_row = len(invoices) + 4
    ws.cell(row=total_row, column=1, value="TOTAL").font = Font(bold=True)
    cell = ws.cell(row=total_row, column=8, value=float(sum((inv.total for inv in invoices), Decimal(0))))
    cell.font = Font(bold=True)
    cell.number_format = money
    cell.border = BORDER
    _autosize(ws, len(headers))

    # --- Per-object summary sheet ---
    ws_obj = wb.create_sheet("By Object")
    obj_headers = ["Object", "Invoices", f"Total ({currency.code})"]
    _write_header(ws_obj, "Expenses by Object", obj_headers)

    totals = object_totals(invoices)
    row = 4
    for object_id, entry in sorted(totals.items(), key=lambda kv: kv[1]["total"], reverse=True):
        name = object_names.get(object_id) or entry["name"]
        ws_obj.cell(row=row, column=1, value=name).border = BORDER
        ws_obj.cell(row=row, column=2, value=len(entry["invoices"])).border = BORDER
        cell = ws_obj.cell(row=row, column=3, value=float(entry["total"]))
        cell.border = BORDER
        cell.number_format = money
        row += 1
    _autosize(ws_obj, len(obj_headers))

    # --- Positions detail sheet ---
    ws_detail = wb.create_sheet("Positions")
    detail_headers = ["Invoice ID", "Vendor", "Description", "Qty",
                      f"Unit Price ({currency.code})", f"Line Total ({currency.code})", "Object"]
    _write_header(ws_detail, "Invoice Positions", detail_headers)

    row = 4
    for inv in invoices:
        for line in inv.positions:
            object_id = line.cost_object_id or inv.object_id or ""
            row_data = [
                inv.id, inv.vendor, line.description, float(line.quantity),
                float(line.unit_price), float(line.line_total),
                object_names.get(object_id) or (inv.object_name if object_id == inv.object_id else object_id),
            ]
            for col, val in enumerate(row_data, 1):
                cell = ws_detail.cell(row=row, column=col, value=val)
                cell.border = BORDER
                if col in (5, 6):
                    cell.number_format = money
            row += 1
    _autosize(ws_detail, len(detail_headers), max_width=45)

    wb.save(str(output_path))
    logger.info(f"Invoice Excel exported to {output_path} ({len(invoices)} invoices)")
    return output_path
