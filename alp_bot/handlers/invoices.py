"""Invoices page: list, details, delete (directors) and Excel export."""

from __future__ import annotations

import logging
import tempfile
from decimal import Decimal
from pathlib import Path

from telegram import InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes

from alp_bot.expenses.export import export_invoices_excel
from alp_bot.expenses.formatting import format_currency, format_date, parse_display_date, today, truncate
from alp_bot.expenses.models import CostObject, Invoice
from alp_bot.handlers.base import PageController, back_to_menu_row, button, show
from alp_bot.handlers.expense import PAYMENT_LABELS
from alp_bot.services.notifier import Severity
from alp_bot.services.users import UserContext

logger = logging.getLogger(__name__)

ROUTE = "invoices"
MAX_LISTED = 20

EMPTY_MESSAGE = "No invoices found."
DELETED_MESSAGE = "Expense deleted"


def group_by_date(invoices: list[Invoice]) -> list[tuple[str, list[Invoice]]]:
    """Invoices grouped under their display date, newest date first."""
    groups: dict[str, list[Invoice]] = {}
    for inv in invoices:
        groups.setdefault(format_date(inv.date), []).append(inv)

    def sort_key(item):
        parsed = parse_display_date(item[0])
        return parsed.toordinal() if parsed else 0

    return sorted(groups.items(), key=sort_key, reverse=True)


def invoices_total(invoices: list[Invoice]) -> Decimal:
    return sum((inv.total for inv in invoices), Decimal(0))


def render_invoice_list(invoices: list[Invoice], currency=None, title: str = "Invoices") -> str:
    if not invoices:
        return f"{title}\n\n{EMPTY_MESSAGE}"
    lines = [title, f"{len(invoices)} records - {format_currency(invoices_total(invoices), currency)}"]
    for display_date, items in group_by_date(invoices):
        lines += ["", display_date or "No date"]
        for inv in items:
            extra = []
            if inv.technician_name:
                extra.append(inv.technician_name)
            if inv.invoice_number:
                extra.append(f"No. {inv.invoice_number}")
            if inv.object_name:
                extra.append(inv.object_name)
            suffix = f" ({', '.join(extra)})" if extra else ""
            lines.append(f"  {inv.vendor}: {format_currency(inv.total, currency)}{suffix}")
    return "\n".join(lines)


def render_invoice_detail(inv: Invoice, currency=None, object_names: dict[str, str] | None = None) -> str:
    object_names = object_names or {}
    lines = [
        "Expense details",
        "",
        f"Vendor: {inv.vendor}",
        f"Date: {format_date(inv.date) or '-'}",
        f"Invoice No.: {inv.invoice_number or '-'}",
        f"Technician: {inv.technician_name or inv.technician_id or '-'}",
        f"Payment: {_payment_label(inv.payment_method)}",
        "",
        "Positions:",
    ]
    for line in inv.positions:
        target = object_names.get(line.cost_object_id or "", "")
        if not target and line.cost_object_id == inv.object_id:
            target = inv.object_name
        where = f" - {target}" if target else ""
        lines.append(
            f"  {line.description}: {line.quantity} x {format_currency(line.unit_price, currency)}"
            f" = {format_currency(line.line_total, currency)}{where}"
        )
    lines += ["", f"Total: {format_currency(inv.total, currency)}"]
    if inv.notes:
        lines += ["", f"Notes: {inv.notes}"]
    return "\n".join(lines)


def _payment_label(method: str) -> str:
    for key, label in PAYMENT_LABELS.items():
        if key.value == method:
            return label
    return method or "-"


class InvoicesPage(PageController):
    name = ROUTE
    title = "Invoices"
    commands = ("invoices",)

    def filters_for(self, context: ContextTypes.DEFAULT_TYPE, user: UserContext) -> dict:
        # Technicians only ever see their own invoices
        if not user.is_director:
            return {"technicianId": user.user_id}
        return dict(self.session(context).get("filters", {}))

    async def fetch(self, context: ContextTypes.DEFAULT_TYPE, user: UserContext) -> list[Invoice]:
        raw = await self.backend.list_invoices(self.filters_for(context, user))
        return [Invoice.from_dict(item) for item in raw or []]

    def list_keyboard(self, invoices: list[Invoice], user: UserContext, currency=None) -> InlineKeyboardMarkup:
        rows = []
        for inv in invoices[:MAX_LISTED]:
            label = f"{format_date(inv.date)} {truncate(inv.vendor, 22)} {format_currency(inv.total, currency)}"
            rows.append([button(label, ROUTE, "view", inv.id)])
        tools = [button("Export Excel", ROUTE, "export")]
        if user.is_director:
            tools.append(button("Filter by object", ROUTE, "filter"))
        rows.append(tools)
        rows.append([button("+ New expense", "expense", "open")])
        rows.append(back_to_menu_row())
        return InlineKeyboardMarkup(rows)

    async def load(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                   user: UserContext, args: list[str]) -> str | None:
        invoices = await self.fetch(context, user)
        title = "My invoices" if not user.is_director else "Invoices"
        object_filter = self.filters_for(context, user).get("objectId")
        if object_filter:
            title += f" (object {self.session(context).get('filter_label', object_filter)})"
        await show(update, render_invoice_list(invoices, self.currency, title),
                   self.list_keyboard(invoices, user, self.currency))
        return None

    async def object_names(self) -> dict[str, str]:
        objects = await self.backend.list_cost_objects(include_archived=True)
        return {str(o["id"]): o.get("name", "") for o in objects or []}

    async def handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                              user: UserContext, action: str, args: list[str]) -> str | None:
        if action == "list":
            return await self.load(update, context, user, [])

        if action == "view" and args:
            inv = Invoice.from_dict(await self.backend.get_invoice(args[0]))
            rows = []
            if user.is_director:
                rows.append([button("Delete", ROUTE, "delete", inv.id)])
            rows.append([button("« Back", ROUTE, "list")])
            await show(update, render_invoice_detail(inv, self.currency, await self.object_names()),
                       InlineKeyboardMarkup(rows))
            return None

        if action == "delete" and args and user.is_director:
            await show(update, "Are you sure you want to delete this expense?", InlineKeyboardMarkup([
                [button("Delete", ROUTE, "confirm_delete", args[0]), button("Cancel", ROUTE, "view", args[0])],
            ]))
            return None

        if action == "confirm_delete" and args and user.is_director:
            await self.backend.delete_invoice(args[0])
            logger.info(f"Invoice {args[0]} deleted by {user.user_id}")
            await self.notifier_for(update).notify(DELETED_MESSAGE, Severity.SUCCESS)
            return await self.load(update, context, user, [])

        if action == "filter" and user.is_director:
            objects = [CostObject.from_dict(o) for o in await self.backend.list_cost_objects()]
            rows = [[button(truncate(o.name, 40), ROUTE, "set_filter", o.id)] for o in objects]
            rows.append([button("All objects", ROUTE, "set_filter")])
            await show(update, "Show invoices for:", InlineKeyboardMarkup(rows))
            return None

        if action == "set_filter" and user.is_director:
            session = self.session(context)
            if args:
                names = await self.object_names()
                session["filters"] = {"objectId": args[0]}
                session["filter_label"] = names.get(args[0], args[0])
            else:
                self.clear_session(context)
            return await self.load(update, context, user, [])

        if action == "export":
            await self.export(update, context, user)
            return None

        return None

    async def export(self, update: Update, context: ContextTypes.DEFAULT_TYPE, user: UserContext):
        invoices = await self.fetch(context, user)
        if not invoices:
            await self.notifier_for(update).notify(EMPTY_MESSAGE, Severity.WARNING)
            return
        names = await self.object_names()
        with tempfile.TemporaryDirectory() as tmp_dir:
            out = Path(tmp_dir) / f"invoices_{today()}.xlsx"
            export_invoices_excel(invoices, out, self.currency, names)
            with open(out, "rb") as f:
                await update.effective_chat.send_document(
                    document=f, filename=out.name,
                    caption=f"{len(invoices)} invoices, {format_currency(invoices_total(invoices), self.currency)}",
                )
        logger.info(f"Exported {len(invoices)} invoices for {user.user_id}")
