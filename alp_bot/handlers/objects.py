"""Cost objects page (directors): list, create, details, cost report, mark completed."""

from __future__ import annotations

import logging

from telegram import InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes

from alp_bot.expenses.formatting import format_currency, format_date, truncate
from alp_bot.expenses.models import CostObject, ObjectStatus
from alp_bot.handlers.base import PageController, back_to_menu_row, button, show
from alp_bot.services.notifier import Severity
from alp_bot.services.users import UserContext

logger = logging.getLogger(__name__)

ROUTE = "objects"

FILTER_ACTIVE = "active"
FILTER_COMPLETED = "completed"
FILTER_ALL = "all"
FILTER_LABELS = {FILTER_ACTIVE: "Active", FILTER_COMPLETED: "Completed", FILTER_ALL: "All"}

STATUS_LABELS = {
    ObjectStatus.ACTIVE.value: "Active",
    ObjectStatus.COMPLETED.value: "Completed",
    ObjectStatus.ARCHIVED.value: "Archived",
}

NEW_OBJECT_PROMPT = "Send the new object as: name; address\nExample: Site Boyana; 12 Kumata St"
MISSING_NAME_MESSAGE = "Enter the object name"


def filter_objects(objects: list[CostObject], flt: str) -> list[CostObject]:
    if flt == FILTER_ACTIVE:
        return [o for o in objects if o.is_active]
    if flt == FILTER_COMPLETED:
        return [o for o in objects if not o.is_active]
    return list(objects)


def parse_new_object(text: str) -> dict:
    """"name; address" -> create payload. Address is optional."""
    name, _, address = (text or "").partition(";")
    return {"name": name.strip(), "address": address.strip(), "status": ObjectStatus.ACTIVE.value}


def render_object_list(objects: list[CostObject], flt: str, currency=None) -> str:
    lines = [f"Cost objects - {FILTER_LABELS.get(flt, flt)}", f"{len(objects)} objects"]
    if not objects:
        lines += ["", "No objects found."]
    for obj in objects:
        lines.append(f"  {obj.name}: {format_currency(obj.total_expenses, currency)}"
                     f" [{STATUS_LABELS.get(obj.status, obj.status)}]")
    return "\n".join(lines)


def render_object_detail(obj: CostObject, currency=None) -> str:
    lines = [
        obj.name,
        "",
        f"Status: {STATUS_LABELS.get(obj.status, obj.status)}",
        f"Address: {obj.address or '-'}",
        f"Start date: {format_date(obj.start_date) or '-'}",
        f"Total expenses: {format_currency(obj.total_expenses, currency)}",
        f"Invoices: {obj.invoice_count}",
    ]
    if obj.description:
        lines += ["", obj.description]
    return "\n".join(lines)


def render_object_report(obj: CostObject, report: dict, currency=None) -> str:
    lines = [
        f"{obj.name} - report",
        "",
        f"Total expenses: {format_currency(report.get('totalExpenses'), currency)}",
        f"Invoices: {report.get('invoiceCount') or 0}",
        "",
        "By category:",
    ]
    categories = report.get("byCategory") or []
    if not categories:
        lines.append("  No data.")
    for category in categories:
        lines.append(f"  {category.get('name')} ({category.get('count', 0)} positions):"
                     f" {format_currency(category.get('total'), currency)}")
    return "\n".join(lines)


class ObjectsPage(PageController):
    name = ROUTE
    title = "Objects"
    commands = ("objects", "new_object")
    director_only = True

    def list_keyboard(self, objects: list[CostObject], flt: str) -> InlineKeyboardMarkup:
        tabs = [
            button(("* " if key == flt else "") + label, ROUTE, "filter", key)
            for key, label in FILTER_LABELS.items()
        ]
        rows = [tabs]
        for obj in objects:
            rows.append([button(truncate(obj.name, 40), ROUTE, "view", obj.id)])
        rows.append([button("+ New object", ROUTE, "new")])
        rows.append(back_to_menu_row())
        return InlineKeyboardMarkup(rows)

    async def load(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                   user: UserContext, args: list[str]) -> str | None:
        session = self.session(context)
        flt = args[0] if args and args[0] in FILTER_LABELS else session.get("filter", FILTER_ACTIVE)
        session["filter"] = flt
        session.pop("awaiting", None)

        include_archived = flt in (FILTER_ALL, FILTER_COMPLETED)
        raw = await self.backend.list_cost_objects(include_archived=include_archived)
        objects = filter_objects([CostObject.from_dict(o) for o in raw or []], flt)
        await show(update, render_object_list(objects, flt, self.currency), self.list_keyboard(objects, flt))
        return None

    async def handle_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                             user: UserContext, command: str, args: list[str]) -> str | None:
        if command != "new_object":
            return await self.load(update, context, user, args)
        if not args:
            self.session(context)["awaiting"] = "new"
            await show(update, NEW_OBJECT_PROMPT)
            return None
        return await self.create(update, context, user, " ".join(args))

    async def create(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                     user: UserContext, text: str) -> str | None:
        payload = parse_new_object(text)
        notifier = self.notifier_for(update)
        if not payload["name"]:
            await notifier.notify(MISSING_NAME_MESSAGE, Severity.WARNING)
            return None
        created = await self.backend.create_cost_object(payload)
        logger.info(f"Object {created.get('id')} '{payload['name']}' created by {user.user_id}")
        await notifier.notify("Object created", Severity.SUCCESS)
        return await self.load(update, context, user, [FILTER_ACTIVE])

    async def handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                              user: UserContext, action: str, args: list[str]) -> str | None:
        if action in ("filter", "list"):
            return await self.load(update, context, user, args)

        if action == "new":
            self.session(context)["awaiting"] = "new"
            await show(update, NEW_OBJECT_PROMPT)
            return None

        if action == "view" and args:
            obj = CostObject.from_dict(await self.backend.get_cost_object(args[0]))
            rows = [[button("Report", ROUTE, "report", obj.id)]]
            if obj.is_active:
                rows.append([button("Mark completed", ROUTE, "complete", obj.id)])
            rows.append([button("« Back", ROUTE, "list")])
            await show(update, render_object_detail(obj, self.currency), InlineKeyboardMarkup(rows))
            return None

        if action == "report" and args:
            obj = CostObject.from_dict(await self.backend.get_cost_object(args[0]))
            report = await self.backend.get_object_report(obj.id)
            await show(update, render_object_report(obj, report, self.currency),
                       InlineKeyboardMarkup([[button("« Back", ROUTE, "view", obj.id)]]))
            return None

        if action == "complete" and args:
            await show(update, "Mark this object as completed?", InlineKeyboardMarkup([
                [button("Yes", ROUTE, "confirm_complete", args[0]), button("No", ROUTE, "view", args[0])],
            ]))
            return None

        if action == "confirm_complete" and args:
            await self.backend.archive_cost_object(args[0])
            logger.info(f"Object {args[0]} marked completed by {user.user_id}")
            await self.notifier_for(update).notify("Object marked as completed", Severity.SUCCESS)
            return await self.load(update, context, user, [])

        return None

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                          user: UserContext, text: str) -> bool:
        session = self.session(context)
        if session.get("awaiting") != "new":
            return False
        session.pop("awaiting", None)
        await self.create(update, context, user, text)
        return True
