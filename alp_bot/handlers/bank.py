"""Bank statement import page (directors).

The director sends a PDF statement, the backend parses it, and the ticked
incoming rows are booked as bank-transfer fundings for a technician.
"""

from __future__ import annotations

import logging

from telegram import InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes

from alp_bot.expenses.formatting import format_currency, format_date, truncate
from alp_bot.expenses.funding import BankImport
from alp_bot.expenses.models import Transaction
from alp_bot.handlers.base import PageController, back_to_menu_row, button, download_document, show
from alp_bot.services.notifier import Severity
from alp_bot.services.users import ROLE_TECHNICIAN, UserContext

logger = logging.getLogger(__name__)

ROUTE = "bank"
RECENT_IMPORTS = 10

UPLOAD_PROMPT = "Bank statement import\nSend the PDF statement as a document."
NOT_A_PDF_MESSAGE = "Send the statement as a PDF file"
NO_ROWS_MESSAGE = "No transactions found in the document"
NOTHING_SELECTED_MESSAGE = "Select at least one transaction"
NO_TECHNICIAN_LABEL = "No technician (record only)"


def is_pdf(document) -> bool:
    name = (getattr(document, "file_name", "") or "").lower()
    return name.endswith(".pdf") or getattr(document, "mime_type", "") == "application/pdf"


def _signed(amount, currency=None) -> str:
    return ("+" if amount > 0 else "") + format_currency(amount, currency)


def render_import(bank_import: BankImport, currency=None) -> str:
    lines = [
        f"Statement {bank_import.filename}".strip(),
        f"{len(bank_import.rows)} transactions, {len(bank_import.selected)} selected",
        f"Net total: {format_currency(bank_import.net_total, currency)}",
        "",
    ]
    for i, row in enumerate(bank_import.rows):
        mark = "[x]" if bank_import.is_selected(i) else "[ ]"
        lines.append(f"{mark} {i + 1}. {format_date(row.date)} {row.description or 'Transaction'}"
                     f" (Ref: {row.reference or '-'}): {_signed(row.amount, currency)}")
    return "\n".join(lines)


def render_recent(transactions: list[dict], currency=None) -> str:
    lines = [UPLOAD_PROMPT, "", "Recent imports:"]
    if not transactions:
        lines.append("  No imported transactions.")
    for raw in transactions:
        tx = Transaction.from_dict(raw)
        lines.append(f"  {format_date(tx.date)} {tx.description or 'Bank transaction'}"
                     f" - {tx.technician_name or 'no technician'}: {format_currency(tx.amount, currency)}")
    return "\n".join(lines)


class BankImportPage(PageController):
    name = ROUTE
    title = "Bank import"
    commands = ("bank",)
    director_only = True

    async def load(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                   user: UserContext, args: list[str]) -> str | None:
        self.clear_session(context)
        recent = await self.backend.list_bank_transactions({"limit": RECENT_IMPORTS})
        await show(update, render_recent(recent or [], self.currency), InlineKeyboardMarkup([back_to_menu_row()]))
        return None

    def import_keyboard(self, bank_import: BankImport) -> InlineKeyboardMarkup:
        rows = []
        for i, row in enumerate(bank_import.rows):
            mark = "[x]" if bank_import.is_selected(i) else "[ ]"
            rows.append([button(f"{mark} {i + 1}. {_signed(row.amount, self.currency)}", ROUTE, "toggle", i)])
        rows.append([button("Import selected", ROUTE, "choose"), button("Cancel", ROUTE, "open")])
        return InlineKeyboardMarkup(rows)

    async def handle_document(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                              user: UserContext, document) -> bool:
        notifier = self.notifier_for(update)
        if not is_pdf(document):
            await notifier.notify(NOT_A_PDF_MESSAGE, Severity.WARNING)
            return True

        filename = document.file_name or "statement.pdf"
        content = await download_document(context, document)
        logger.info(f"Bank statement {filename} ({len(content)} bytes) uploaded by {user.user_id}")
        result = await self.backend.upload_bank_statement(content, filename)
        bank_import = BankImport.from_result(result, filename)
        if not bank_import.rows:
            await notifier.notify(NO_ROWS_MESSAGE, Severity.WARNING)
            return True

        self.session(context)["import"] = bank_import
        await show(update, render_import(bank_import, self.currency), self.import_keyboard(bank_import))
        return True

    async def handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                              user: UserContext, action: str, args: list[str]) -> str | None:
        bank_import: BankImport | None = self.session(context).get("import")
        if bank_import is None:
            return await self.load(update, context, user, [])

        if action == "toggle" and args and args[0].isdigit():
            bank_import.toggle(int(args[0]))
            await show(update, render_import(bank_import, self.currency), self.import_keyboard(bank_import))
            return None

        if action == "choose":
            if not bank_import.selected:
                await self.notifier_for(update).notify(NOTHING_SELECTED_MESSAGE, Severity.WARNING)
                return None
            users = await self.backend.list_users()
            rows = [
                [button(truncate(u.get("name", ""), 40), ROUTE, "import", u["id"])]
                for u in users or [] if u.get("role") == ROLE_TECHNICIAN
            ]
            rows.append([button(NO_TECHNICIAN_LABEL, ROUTE, "import")])
            rows.append([button("« Back", ROUTE, "rows")])
            await show(update, f"{len(bank_import.selected)} transactions selected.\n"
                               "Incoming amounts are added to the chosen technician's balance.",
                       InlineKeyboardMarkup(rows))
            return None

        if action == "rows":
            await show(update, render_import(bank_import, self.currency), self.import_keyboard(bank_import))
            return None

        if action == "import":
            return await self.run_import(update, context, user, bank_import, args[0] if args else None)

        return None

    async def run_import(self, update: Update, context: ContextTypes.DEFAULT_TYPE, user: UserContext,
                         bank_import: BankImport, technician_id: str | None) -> str | None:
        count = len(bank_import.selected)
        if not count:
            await self.notifier_for(update).notify(NOTHING_SELECTED_MESSAGE, Severity.WARNING)
            return None
        for payload in bank_import.transactions_for(technician_id):
            await self.backend.create_transaction(payload)
        logger.info(f"Imported {count} rows of {bank_import.filename} for technician {technician_id} "
                    f"by {user.user_id}")
        await self.notifier_for(update).notify(f"Imported {count} transactions", Severity.SUCCESS)
        return await self.load(update, context, user, [])
