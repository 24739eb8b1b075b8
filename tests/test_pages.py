import pytest

from alp_bot.expenses.models import CostObject, Invoice
from alp_bot.handlers.dashboard import DashboardPage, render_balance, render_overview
from alp_bot.handlers.invoices import DELETED_MESSAGE, InvoicesPage, group_by_date, render_invoice_list
from alp_bot.handlers.notifier import format_notification
from alp_bot.handlers.objects import (
    FILTER_ACTIVE,
    FILTER_ALL,
    FILTER_COMPLETED,
    MISSING_NAME_MESSAGE,
    ObjectsPage,
    filter_objects,
    parse_new_object,
    render_object_report,
)
from alp_bot.services.demo_backend import InMemoryBackend
from alp_bot.services.notifier import Severity


def _page(cls, backend, settings, notifier):
    return cls(backend, settings, notifier_factory=lambda chat: notifier)


def test_format_notification():
    assert format_notification("Expense saved successfully!", Severity.SUCCESS) == "✅ Expense saved successfully!"
    assert format_notification("careful", "warning").startswith("⚠️")


# --- Invoices ---


def test_group_by_date_newest_first():
    invoices = [Invoice.from_dict({"id": i, "date": d, "vendor": "V", "totalAmount": 1})
                for i, d in [(1, "2025-11-30"), (2, "2025-12-02"), (3, "2025-11-30")]]
    groups = group_by_date(invoices)
    assert [d for d, _ in groups] == ["02.12.2025", "30.11.2025"]
    assert [inv.id for inv in groups[1][1]] == ["1", "3"]


def test_render_invoice_list():
    invoices = [
        Invoice.from_dict({"id": 1, "date": "2025-12-15", "vendor": "Stroyko", "totalAmount": 1250,
                           "invoiceNumber": "INV-001"}),
        Invoice.from_dict({"id": 2, "date": "2025-12-14", "vendor": "Technomarket", "totalAmount": 450}),
    ]
    text = render_invoice_list(invoices)
    assert "2 records - 1 700.00 лв." in text
    assert "  Stroyko: 1 250.00 лв. (No. INV-001)" in text
    assert render_invoice_list([]).endswith("No invoices found.")


@pytest.mark.asyncio
async def test_technician_sees_only_own_invoices(backend, settings, notifier, update_factory, context,
                                                 technician, chat):
    page = _page(InvoicesPage, backend, settings, notifier)
    await page.load(update_factory(), context, technician, [])
    text = chat.texts[-1]
    assert text.startswith("My invoices")
    assert "Stroyko EOOD" in text
    assert "Technomarket" not in text


@pytest.mark.asyncio
async def test_director_deletes_after_confirmation(backend, settings, notifier, update_factory, context,
                                                   director, chat):
    page = _page(InvoicesPage, backend, settings, notifier)
    await page.handle_callback(update_factory(), context, director, "view", ["2"])
    buttons = [b.callback_data for row in chat.sent[-1]["reply_markup"].inline_keyboard for b in row]
    assert "invoices:delete:2" in buttons

    await page.handle_callback(update_factory(), context, director, "delete", ["2"])
    assert len(backend.data["invoices"]) == 2

    await page.handle_callback(update_factory(), context, director, "confirm_delete", ["2"])
    assert [inv["id"] for inv in backend.data["invoices"]] == [1]
    assert notifier.last == (Severity.SUCCESS, DELETED_MESSAGE)


@pytest.mark.asyncio
async def test_technician_cannot_delete(backend, settings, notifier, update_factory, context, technician, chat):
    page = _page(InvoicesPage, backend, settings, notifier)
    await page.handle_callback(update_factory(), context, technician, "view", ["1"])
    buttons = [b.callback_data for row in chat.sent[-1]["reply_markup"].inline_keyboard for b in row]
    assert not any(b.startswith("invoices:delete") for b in buttons)

    await page.handle_callback(update_factory(), context, technician, "confirm_delete", ["1"])
    assert len(backend.data["invoices"]) == 2


@pytest.mark.asyncio
async def test_director_filters_by_object(backend, settings, notifier, update_factory, context, director, chat):
    page = _page(InvoicesPage, backend, settings, notifier)
    await page.handle_callback(update_factory(), context, director, "set_filter", ["2"])
    text = chat.texts[-1]
    assert text.startswith("Invoices (object Site Lyulin)")
    assert "Stroyko EOOD" not in text

    await page.handle_callback(update_factory(), context, director, "set_filter", [])
    assert "Stroyko EOOD" in chat.texts[-1]
    assert "filters" not in context.user_data.get("page:invoices", {})
    assert chat.texts[-1].startswith("Invoices")
    assert "object Site Lyulin" not in chat.texts[-1]


@pytest.mark.asyncio
async def test_export_sends_a_workbook(backend, settings, notifier, update_factory, context, director, chat):
    page = _page(InvoicesPage, backend, settings, notifier)
    await page.handle_callback(update_factory(), context, director, "export", [])
    document = chat.documents[0]
    assert document["filename"].startswith("invoices_")
    assert document["filename"].endswith(".xlsx")
    assert document["caption"].startswith("2 invoices")
    assert document["content"][:2] == b"PK"


@pytest.mark.asyncio
async def test_export_with_nothing_to_export_warns(settings, notifier, update_factory, context, director, chat):
    page = _page(InvoicesPage, InMemoryBackend({"invoices": []}), settings, notifier)
    await page.handle_callback(update_factory(), context, director, "export", [])
    assert chat.documents == []
    assert notifier.last[0] == Severity.WARNING


# --- Objects ---


OBJECTS = [
    CostObject.from_dict({"id": 1, "name": "A", "status": "active"}),
    CostObject.from_dict({"id": 2, "name": "B", "status": "completed"}),
    CostObject.from_dict({"id": 3, "name": "C", "status": "archived"}),
]


def test_filter_objects():
    assert [o.name for o in filter_objects(OBJECTS, FILTER_ACTIVE)] == ["A"]
    assert [o.name for o in filter_objects(OBJECTS, FILTER_COMPLETED)] == ["B", "C"]
    assert len(filter_objects(OBJECTS, FILTER_ALL)) == 3


def test_parse_new_object():
    assert parse_new_object(" Site Boyana ; 12 Kumata St") == {
        "name": "Site Boyana", "address": "12 Kumata St", "status": "active",
    }
    assert parse_new_object("Only name")["address"] == ""


@pytest.mark.asyncio
async def test_objects_list_filters(backend, settings, notifier, update_factory, context, director, chat):
    page = _page(ObjectsPage, backend, settings, notifier)
    await page.load(update_factory(), context, director, [])
    assert "2 objects" in chat.texts[-1]
    await page.handle_callback(update_factory(), context, director, "filter", [FILTER_COMPLETED])
    assert "Site Center" in chat.texts[-1]
    assert "Site Vitosha" not in chat.texts[-1]


@pytest.mark.asyncio
async def test_new_object_from_command_arguments(backend, settings, notifier, update_factory, context, director):
    page = _page(ObjectsPage, backend, settings, notifier)
    await page.handle_command(update_factory(), context, director, "new_object",
                              ["Site", "Boyana;", "12", "Kumata", "St"])
    created = backend.data["objects"][-1]
    assert created["name"] == "Site Boyana"
    assert created["address"] == "12 Kumata St"
    assert notifier.last == (Severity.SUCCESS, "Object created")


@pytest.mark.asyncio
async def test_new_object_from_a_text_reply(backend, settings, notifier, update_factory, context, director, chat):
    page = _page(ObjectsPage, backend, settings, notifier)
    await page.handle_command(update_factory(), context, director, "new_object", [])
    assert chat.texts[-1].startswith("Send the new object")

    assert await page.handle_text(update_factory(), context, director, "; no name")
    assert notifier.last == (Severity.WARNING, MISSING_NAME_MESSAGE)
    assert len(backend.data["objects"]) == 3
    assert not await page.handle_text(update_factory(), context, director, "Site Boyana")


@pytest.mark.asyncio
async def test_mark_object_completed(backend, settings, notifier, update_factory, context, director, chat):
    page = _page(ObjectsPage, backend, settings, notifier)
    await page.handle_callback(update_factory(), context, director, "view", ["1"])
    buttons = [b.callback_data for row in chat.sent[-1]["reply_markup"].inline_keyboard for b in row]
    assert "objects:complete:1" in buttons

    await page.handle_callback(update_factory(), context, director, "confirm_complete", ["1"])
    assert backend.data["objects"][0]["status"] == "completed"
    assert notifier.last[0] == Severity.SUCCESS


# --- Balance ---


def test_render_balance(technician):
    text = render_balance(technician, {
        "balance": 2500,
        "transactions": [
            {"type": "cash_funding", "amount": 3000, "date": "2025-12-10"},
            {"type": "expense", "amount": -500, "date": "2025-12-12", "description": "Expense for INV-001"},
        ],
    })
    assert "Balance: 2 500.00 лв." in text
    assert "10.12.2025 Cash funding: +3 000.00 лв." in text
    assert "12.12.2025 Expense for INV-001: -500.00 лв." in text
    assert "No transactions yet." in render_balance(technician, {"balance": 0})


def test_render_overview():
    text = render_overview({"totalExpensesMonth": 1700, "totalTechnicianBalance": 4300.5, "activeObjects": 2,
                            "technicians": [{"id": 3, "name": "Petar", "balance": 2500}]})
    assert "Expenses this month: 1 700.00 лв." in text
    assert "Active objects: 2" in text
    assert "  Petar: 2 500.00 лв." in text


@pytest.mark.asyncio
async def test_balance_page_per_role(backend, settings, notifier, update_factory, context,
                                     technician, director, chat):
    page = _page(DashboardPage, backend, settings, notifier)
    await page.load(update_factory(), context, technician, [])
    assert chat.texts[-1].startswith("Petar Technician\nBalance: 2 500.00 лв.")
    await page.load(update_factory(), context, director, [])
    assert chat.texts[-1].startswith("Overview")


def test_render_object_report():
    obj = CostObject.from_dict({"id": 1, "name": "Site Vitosha"})
    text = render_object_report(obj, {"totalExpenses": 1450, "invoiceCount": 2, "byCategory": [
        {"name": "Building materials", "count": 1, "total": 1250},
    ]})
    assert text.startswith("Site Vitosha - report\n\nTotal expenses: 1 450.00 лв.\nInvoices: 2")
    assert "  Building materials (1 positions): 1 250.00 лв." in text
    assert render_object_report(obj, {}).endswith("  No data.")


@pytest.mark.asyncio
async def test_object_report_from_the_detail_view(backend, settings, notifier, update_factory, context,
                                                  director, chat):
    page = _page(ObjectsPage, backend, settings, notifier)
    await page.handle_callback(update_factory(), context, director, "view", ["2"])
    assert "objects:report:2" in [b.callback_data for row in chat.sent[-1]["reply_markup"].inline_keyboard
                                  for b in row]
    await page.handle_callback(update_factory(), context, director, "report", ["2"])
    assert chat.texts[-1].startswith("Site Lyulin - report\n\nTotal expenses: 450.00 лв.\nInvoices: 1")
    assert "  Electrical supplies (1 positions): 450.00 лв." in chat.texts[-1]
