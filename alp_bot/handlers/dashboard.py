"""Balance page: a technician's cash balance, or the director overview."""

from __future__ import annotations

import logging

from telegram import InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes

from alp_bot.expenses.formatting import format_currency, format_date, to_decimal
from alp_bot.handlers.base import PageController, back_to_menu_row, button, show
from alp_bot.services.users import UserContext

logger = logging.getLogger(__name__)

ROUTE = "balance"
RECENT_TRANSACTIONS = 10

TRANSACTION_LABELS = {
    "cash_funding": "Cash funding",
    "bank_transfer": "Bank transfer",
    "expense": "Expense",
    "invoice": "Invoice",
}


def render_balance(user: UserContext, data: dict, currency=None) -> str:
    lines = [f"{user.name}", f"Balance: {format_currency(data.get('balance'), currency)}", "", "Recent activity:"]
    transactions = (data.get("transactions") or [])[:RECENT_TRANSACTIONS]
    if not transactions:
        lines.append("  No transactions yet.")
    for tx in transactions:
        amount = to_decimal(tx.get("amount")) or 0
        sign = "+" if amount > 0 else ""
        label = tx.get("description") or TRANSACTION_LABELS.get(tx.get("type"), tx.get("type", ""))
        lines.append(f"  {format_date(tx.get('date'))} {label}: {sign}{format_currency(amount, currency)}")
    return "\n".join(lines)


def render_overview(report: dict, currency=None) -> str:
    lines = [
        "Overview",
        "",
        f"Expenses this month: {format_currency(report.get('totalExpensesMonth'), currency)}",
        f"Technician balances: {format_currency(report.get('totalTechnicianBalance'), currency)}",
        f"Active objects: {report.get('activeObjects', 0)}",
        "",
        "Technicians:",
    ]
    technicians = report.get("technicians") or []
    if not technicians:
        lines.append("  No technicians.")
    for tech in technicians:
        lines.append(f"  {tech.get('name', tech.get('id'))}: {format_currency(tech.get('balance'), currency)}")
    return "\n".join(lines)


class DashboardPage(PageController):
    name = ROUTE
    title = "Balance"
    commands = ("balance", "dashboard")

    async def load(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                   user: UserContext, args: list[str]) -> str | None:
        if user.is_director:
            report = await self.backend.get_overview_report()
            text = render_overview(report, self.currency)
            rows = [[button("Invoices", "invoices", "open"), button("Objects", "objects", "open")],
                    [button("Technicians", "technicians", "open"), button("Bank import", "bank", "open")]]
        else:
            data = await self.backend.get_user_balance(user.user_id)
            text = render_balance(user, data, self.currency)
            rows = [[button("+ New expense", "expense", "open"), button("My invoices", "invoices", "open")]]
        rows.append(back_to_menu_row())
        await show(update, text, InlineKeyboardMarkup(rows))
        return None
