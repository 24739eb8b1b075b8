"""Technicians page (directors): balances, history and funding."""

from __future__ import annotations

import logging
from decimal import Decimal

from telegram import InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes

from alp_bot.expenses.errors import InvalidAmountError
from alp_bot.expenses.formatting import format_currency, format_date, to_decimal, truncate
from alp_bot.expenses.funding import MIN_FUNDING_AMOUNT, build_funding, parse_funding_text
from alp_bot.expenses.models import FUNDING_TYPES, Transaction, TransactionType
from alp_bot.handlers.base import PageController, back_to_menu_row, button, show
from alp_bot.handlers.dashboard import TRANSACTION_LABELS
from alp_bot.services.api import APIError
from alp_bot.services.notifier import Severity
from alp_bot.services.users import ROLE_TECHNICIAN, UserContext

logger = logging.getLogger(__name__)

ROUTE = "technicians"
RECENT_TRANSACTIONS = 20

FUNDING_PROMPT = "Send the amount and an optional note as: amount; note\nExample: 500; weekly cash"
INVALID_AMOUNT_MESSAGE = f"Enter an amount of at least {MIN_FUNDING_AMOUNT}"


def render_technicians(balances: list[tuple[dict, Decimal]], currency=None) -> str:
    total = sum((balance for _, balance in balances), Decimal(0))
    lines = ["Technicians", f"Total balance: {format_currency(total, currency)}", ""]
    if not balances:
        lines.append("No technicians.")
    for tech, balance in balances:
        lines.append(f"  {tech.get('name', tech.get('id'))}: {format_currency(balance, currency)}")
    return "\n".join(lines)


def render_technician(tech: dict, data: dict, currency=None) -> str:
    lines = [
        tech.get("name") or str(tech.get("id")),
        f"Balance: {format_currency(data.get('balance'), currency)}",
        "",
        "Recent transactions:",
    ]
    transactions = [Transaction.from_dict(t) for t in (data.get("transactions") or [])[:RECENT_TRANSACTIONS]]
    if not transactions:
        lines.append("  No transactions yet.")
    for tx in transactions:
        sign = "+" if tx.is_funding else "-"
        label = tx.description or TRANSACTION_LABELS.get(tx.type, tx.type)
        lines.append(f"  {format_date(tx.date)} {label}: {sign}{format_currency(abs(tx.amount), currency)}")
    return "\n".join(lines)


class TechniciansPage(PageController):
    name = ROUTE
    title = "Technicians"
    commands = ("technicians",)
    director_only = True

    async def technicians(self) -> list[dict]:
        users = await self.backend.list_users()
        return [u for u in users or [] if u.get("role") == ROLE_TECHNICIAN]

    async def technician(self, user_id: str) -> dict:
        for tech in await self.technicians():
            if str(tech.get("id")) == str(user_id):
                return tech
        raise APIError("Technician not found", 404, {"id": user_id})

    async def balance_of(self, tech: dict) -> Decimal:
        try:
            data = await self.backend.get_user_balance(tech["id"])
        except APIError as e:
            logger.warning(f"No balance for technician {tech.get('id')}: {e.message}")
            return Decimal(0)
        return to_decimal(data.get("balance")) or Decimal(0)

    async def load(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                   user: UserContext, args: list[str]) -> str | None:
        self.session(context).pop("awaiting", None)
        balances = [(tech, await self.balance_of(tech)) for tech in await self.technicians()]
        rows = [
            [button(truncate(tech.get("name", ""), 30), ROUTE, "view", tech["id"]),
             button("Fund", ROUTE, "fund", tech["id"])]
            for tech, _ in balances
        ]
        rows.append(back_to_menu_row())
        await show(update, render_technicians(balances, self.currency), InlineKeyboardMarkup(rows))
        return None

    async def show_technician(self, update: Update, user_id: str):
        tech = await self.technician(user_id)
        data = await self.backend.get_user_balance(tech["id"])
        rows = [
            [button(TRANSACTION_LABELS[t.value], ROUTE, "fund", tech["id"], t.value) for t in FUNDING_TYPES],
            [button("« Back", ROUTE, "list")],
        ]
        await show(update, render_technician(tech, data, self.currency), InlineKeyboardMarkup(rows))

    async def handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                              user: UserContext, action: str, args: list[str]) -> str | None:
        if action == "list":
            return await self.load(update, context, user, [])

        if action == "view" and args:
            self.session(context).pop("awaiting", None)
            await self.show_technician(update, args[0])
            return None

        if action == "fund" and args:
            tech = await self.technician(args[0])
            if len(args) < 2:
                rows = [[button(TRANSACTION_LABELS[t.value], ROUTE, "fund", tech["id"], t.value)]
                        for t in FUNDING_TYPES]
                rows.append([button("« Back", ROUTE, "view", tech["id"])])
                await show(update, f"Fund {tech.get('name')}:", InlineKeyboardMarkup(rows))
                return None
            tx_type = TransactionType(args[1])
            if tx_type not in FUNDING_TYPES:
                return None
            self.session(context)["awaiting"] = {"user_id": str(tech["id"]), "type": tx_type.value}
            await show(update, f"{TRANSACTION_LABELS[tx_type.value]} for {tech.get('name')}\n{FUNDING_PROMPT}")
            return None

        return None

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                          user: UserContext, text: str) -> bool:
        session = self.session(context)
        awaiting = session.get("awaiting")
        if not awaiting:
            return False

        amount, note = parse_funding_text(text)
        notifier = self.notifier_for(update)
        try:
            payload = build_funding(awaiting["user_id"], awaiting["type"], amount, note=note)
        except InvalidAmountError:
            await notifier.notify(INVALID_AMOUNT_MESSAGE, Severity.WARNING)
            return True

        tech = await self.technician(awaiting["user_id"])
        await self.backend.create_transaction(payload)
        session.pop("awaiting", None)
        logger.info(f"Technician {tech['id']} funded with {payload['amount']} ({payload['type']}) by {user.user_id}")
        await notifier.notify(
            f"{tech.get('name')} funded with {format_currency(payload['amount'], self.currency)}",
            Severity.SUCCESS,
        )
        await self.show_technician(update, tech["id"])
        return True
