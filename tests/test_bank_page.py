from types import SimpleNamespace

import pytest

from alp_bot.expenses.funding import BankImport
from alp_bot.handlers.bank import (
    NO_ROWS_MESSAGE,
    NOT_A_PDF_MESSAGE,
    NOTHING_SELECTED_MESSAGE,
    BankImportPage,
    is_pdf,
    render_import,
)
from alp_bot.services.demo_backend import InMemoryBackend
from alp_bot.services.notifier import Severity


@pytest.fixture
def page(backend, settings, notifier):
    return BankImportPage(backend, settings, notifier_factory=lambda chat: notifier)


def _callbacks(markup):
    return [b.callback_data for row in markup.inline_keyboard for b in row]


async def _upload(page, update_factory, context, user, name="dec.pdf", content=b"%PDF-1.4",
                  mime_type="application/pdf"):
    document = context.bot.upload(name, content, mime_type)
    return await page.handle_document(update_factory(document=document), context, user, document)


class EmptyStatementBackend(InMemoryBackend):
    async def upload_bank_statement(self, content: bytes, filename: str) -> dict:
        return {"transactions": []}


def test_is_pdf():
    assert is_pdf(SimpleNamespace(file_name="Statement.PDF", mime_type=""))
    assert is_pdf(SimpleNamespace(file_name=None, mime_type="application/pdf"))
    assert not is_pdf(SimpleNamespace(file_name="statement.csv", mime_type="text/csv"))


def test_render_import():
    bank_import = BankImport.from_result({"transactions": [
        {"date": "2025-12-16", "description": "Transfer", "reference": "FT1", "amount": 1500},
        {"date": "2025-12-17", "description": "", "reference": "", "amount": -2.5},
    ]}, "dec.pdf")
    bank_import.toggle(1)
    text = render_import(bank_import)
    assert text.startswith("Statement dec.pdf\n2 transactions, 1 selected\nNet total: 1 497.50 лв.")
    assert "[x] 1. 16.12.2025 Transfer (Ref: FT1): +1 500.00 лв." in text
    assert "[ ] 2. 17.12.2025 Transaction (Ref: -): -2.50 лв." in text


@pytest.mark.asyncio
async def test_load_lists_recent_imports(page, update_factory, context, director, chat):
    await page.load(update_factory(), context, director, [])
    text = chat.texts[-1]
    assert text.startswith("Bank statement import")
    assert "11.12.2025 Bank transfer - Stoyan Technician: 2 000.00 лв." in text


@pytest.mark.asyncio
async def test_upload_shows_every_row_selected(page, update_factory, context, director, chat):
    assert await _upload(page, update_factory, context, director)
    assert chat.texts[-1].startswith("Statement dec.pdf\n3 transactions, 3 selected")
    data = _callbacks(chat.sent[-1]["reply_markup"])
    assert data[:3] == ["bank:toggle:0", "bank:toggle:1", "bank:toggle:2"]
    assert "bank:choose" in data


@pytest.mark.asyncio
async def test_non_pdf_upload_is_refused(page, notifier, update_factory, context, director, chat):
    assert await _upload(page, update_factory, context, director, name="statement.csv", content=b"a,b",
                         mime_type="text/csv")
    assert notifier.last == (Severity.WARNING, NOT_A_PDF_MESSAGE)
    assert "import" not in context.user_data.get("page:bank", {})


@pytest.mark.asyncio
async def test_statement_without_rows(settings, notifier, update_factory, context, director):
    page = BankImportPage(EmptyStatementBackend(), settings, notifier_factory=lambda chat: notifier)
    assert await _upload(page, update_factory, context, director)
    assert notifier.last == (Severity.WARNING, NO_ROWS_MESSAGE)


@pytest.mark.asyncio
async def test_import_credits_incoming_rows_to_the_technician(page, backend, notifier, update_factory, context,
                                                             director, chat):
    await _upload(page, update_factory, context, director)
    await page.handle_callback(update_factory(), context, director, "toggle", ["2"])
    assert "3 transactions, 2 selected" in chat.texts[-1]

    await page.handle_callback(update_factory(), context, director, "choose", [])
    data = _callbacks(chat.sent[-1]["reply_markup"])
    assert data[:3] == ["bank:import:3", "bank:import:4", "bank:import"]

    await page.handle_callback(update_factory(), context, director, "import", ["3"])
    assert notifier.last == (Severity.SUCCESS, "Imported 2 transactions")
    added = backend.data["transactions"][3:]
    assert [(t["userId"], t["type"], t["amount"]) for t in added] == [(3, "bank_transfer", 1500.0)]
    assert added[0]["description"] == "Bank transfer: Transfer from ALP Build Ltd (Ref: FT2512160001)"
    assert backend.data["users"][1]["balance"] == 4000.0
    assert "page:bank" not in context.user_data
    assert chat.texts[-1].startswith("Bank statement import")


@pytest.mark.asyncio
async def test_import_without_technician_books_nothing(page, backend, notifier, update_factory, context, director):
    await _upload(page, update_factory, context, director)
    await page.handle_callback(update_factory(), context, director, "import", [])
    assert notifier.last == (Severity.SUCCESS, "Imported 3 transactions")
    assert len(backend.data["transactions"]) == 3


@pytest.mark.asyncio
async def test_nothing_selected_warns(page, backend, notifier, update_factory, context, director):
    await _upload(page, update_factory, context, director)
    for index in ("0", "1", "2"):
        await page.handle_callback(update_factory(), context, director, "toggle", [index])
    await page.handle_callback(update_factory(), context, director, "choose", [])
    assert notifier.last == (Severity.WARNING, NOTHING_SELECTED_MESSAGE)
    await page.handle_callback(update_factory(), context, director, "import", ["3"])
    assert notifier.last == (Severity.WARNING, NOTHING_SELECTED_MESSAGE)
    assert len(backend.data["transactions"]) == 3


@pytest.mark.asyncio
async def test_buttons_after_the_import_is_gone_reload_the_page(page, update_factory, context, director, chat):
    await page.handle_callback(update_factory(), context, director, "toggle", ["0"])
    assert chat.texts[-1].startswith("Bank statement import")
