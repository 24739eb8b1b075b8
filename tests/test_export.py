from decimal import Decimal

from openpyxl import load_workbook

from config import CurrencySettings
from alp_bot.expenses.export import UNASSIGNED_LABEL, export_invoices_excel, object_totals
from alp_bot.expenses.models import Invoice


def _invoices():
    return [
        Invoice.from_dict({
            "id": 1, "date": "2025-12-15", "vendor": "Stroyko", "invoiceNumber": "INV-001",
            "totalAmount": 1250, "paymentMethod": "cash", "createdByName": "Petar",
            "objectId": 1, "objectName": "Site Vitosha",
            "positions": [{"description": "Materials", "quantity": 1, "unitPrice": 1250, "lineTotal": 1250,
                           "costObjectId": 1}],
        }),
        Invoice.from_dict({
            "id": 2, "date": "2025-12-14", "supplier": "Technomarket", "total": 30,
            "positions": [
                {"name": "Cable", "quantity": 1, "unitPrice": 10, "costObjectId": 1},
                {"name": "Gloves", "quantity": 2, "unitPrice": 10, "costObjectId": 2},
            ],
        }),
        Invoice.from_dict({"id": 3, "date": "2025-12-13", "vendor": "Misc", "totalAmount": 5}),
    ]


def test_object_totals_follow_position_allocations():
    totals = object_totals(_invoices())
    assert totals["1"]["total"] == Decimal(1260)
    assert totals["1"]["invoices"] == {"1", "2"}
    assert totals["1"]["name"] == "Site Vitosha"
    assert totals["2"]["total"] == Decimal(20)
    assert totals[""]["name"] == UNASSIGNED_LABEL
    assert totals[""]["total"] == Decimal(5)


def test_export_writes_three_sheets(tmp_path):
    out = export_invoices_excel(_invoices(), tmp_path / "out" / "invoices.xlsx",
                                CurrencySettings(), {"2": "Site Lyulin"})
    assert out.exists()

    wb = load_workbook(out)
    assert wb.sheetnames == ["Invoices", "By Object", "Positions"]

    ws = wb["Invoices"]
    assert ws["A3"].value == "ID"
    assert ws["H3"].value == "Total (BGN)"
    assert ws["C4"].value == "Stroyko"
    assert ws["B4"].value == "15.12.2025"
    assert ws["C5"].value == "Technomarket"
    assert ws["A7"].value == "TOTAL"
    assert ws["H7"].value == 1285
    assert ws["H7"].number_format == "#,##0.00"

    by_object = wb["By Object"]
    rows = [(by_object.cell(row=r, column=1).value, by_object.cell(row=r, column=3).value)
            for r in range(4, by_object.max_row + 1)]
    assert rows == [("Site Vitosha", 1260), ("Site Lyulin", 20), (UNASSIGNED_LABEL, 5)]

    positions = wb["Positions"]
    assert positions.max_row == 6
    assert positions["C6"].value == "Gloves"
    assert positions["G6"].value == "Site Lyulin"


def test_export_with_no_invoices(tmp_path):
    out = export_invoices_excel([], tmp_path / "empty.xlsx")
    ws = load_workbook(out)["Invoices"]
    assert ws["A4"].value == "TOTAL"
    assert ws["H4"].value == 0
