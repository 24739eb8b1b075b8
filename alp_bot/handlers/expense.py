"""New expense page: compose an invoice, allocate it to cost objects, save it.

The draft is shown as one message with an inline keyboard. Header fields
and positions are filled by replying with text after pressing the matching
button.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from telegram import InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes

from alp_bot.expenses.draft import MIN_POSITION_WARNING, InvoiceDraft
from alp_bot.expenses.errors import InvalidNumberError, PositionNotFoundError
from alp_bot.expenses.formatting import format_currency, format_date, parse_decimal, parse_user_date, truncate
from alp_bot.expenses.ledger import LedgerOptions
from alp_bot.expenses.models import AllocationMode, CostObject, PaymentMethod, Position
from alp_bot.expenses.submission import SubmissionPipeline
from alp_bot.handlers.base import PageController, button, show
from alp_bot.services.api import APIError
from alp_bot.services.notifier import Severity
from alp_bot.services.users import UserContext

logger = logging.getLogger(__name__)

ROUTE = "expense"
SESSION_KEY = "expense_session"
AFTER_SAVE_ROUTE = "balance"

PAYMENT_LABELS = {
    PaymentMethod.CASH: "Cash",
    PaymentMethod.BANK: "Bank transfer",
    PaymentMethod.CARD: "Card",
}

FIELD_PROMPTS = {
    "date": "Send the invoice date (DD.MM.YYYY).",
    "vendor": "Send the vendor name.",
    "number": "Send the invoice number.",
    "notes": "Send a note for this expense.",
}

POSITION_PROMPT = (
    "Send the position as: description; quantity; price\n"
    "Example: Cable 3x2.5; 2; 10.50\n"
    "Two parts mean description; price."
)
BAD_DATE_MESSAGE = "Could not read the date. Use DD.MM.YYYY."
OBJECTS_LOAD_FAILED = "Could not load cost objects"
NOT_SET = "-"


@dataclass
class ExpenseSession:
    """Everything the page keeps between updates for one user."""
    draft: InvoiceDraft
    pipeline: SubmissionPipeline
    objects: list[CostObject]
    awaiting: str | None = None   # a FIELD_PROMPTS key, or "pos:<position id>"


def parse_position_text(text: str) -> dict[str, str]:
    """Split "description; quantity; price" into raw field values.

    One part sets the description, two parts are description and price.
    """
    parts = [p.strip() for p in (text or "").split(";")]
    if len(parts) == 1:
        return {"description": parts[0]}
    if len(parts) == 2:
        return {"description": parts[0], "unit_price": parts[1]}
    return {"description": parts[0], "quantity": parts[1], "unit_price": parts[2]}


def object_name(objects: list[CostObject], object_id: str | None) -> str:
    for obj in objects:
        if obj.id == str(object_id):
            return obj.name
    return str(object_id) if object_id else ""


def _quantity(value) -> str:
    if value == value.to_integral_value():
        return str(int(value))
    return str(value.normalize())


def render_position(position: Position, currency, show_object: bool = False, objects=None) -> str:
    if not position.description.strip() and not position.unit_price:
        return f"{position.index}. {position.placeholder} (empty)"
    line = (
        f"{position.index}. {position.label} x {_quantity(position.quantity)}"
        f" @ {format_currency(position.unit_price, currency)}"
        f" = {format_currency(position.line_total, currency)}"
    )
    if not position.is_valid:
        line += " (incomplete)"
    if show_object:
        target = object_name(objects or [], position.cost_object_id) if position.cost_object_id else "not assigned"
        line += f"\n    -> {target}"
    return line


def render_draft(draft: InvoiceDraft, objects: list[CostObject], currency=None) -> str:
    """Text of the draft message."""
    header = draft.header
    per_line = draft.allocation.per_line_selectors_visible
    lines = [
        "New expense",
        "",
        f"Date: {format_date(header.date) or NOT_SET}",
        f"Vendor: {header.vendor or NOT_SET}",
        f"Invoice No.: {header.invoice_number or NOT_SET}",
        f"Payment: {PAYMENT_LABELS.get(header.payment_method, NOT_SET)}",
    ]
    if header.notes:
        lines.append(f"Notes: {header.notes}")

    lines += ["", "Positions:"]
    for position in draft.positions:
        lines.append(render_position(position, currency, show_object=per_line, objects=objects))

    lines.append("")
    if per_line:
        missing = draft.allocation.unassigned(draft.valid_positions)
        lines.append("Allocation: per position" + (f" ({len(missing)} unassigned)" if missing else ""))
    else:
        target = object_name(objects, draft.whole_object_id) if draft.whole_object_id else "not selected"
        lines.append(f"Allocation: whole invoice -> {target}")
    lines.append(f"Total: {format_currency(draft.grand_total, currency)}")
    return "\n".join(lines)


def draft_keyboard(draft: InvoiceDraft, objects: list[CostObject]) -> InlineKeyboardMarkup:
    whole = draft.allocation_mode == AllocationMode.WHOLE_INVOICE
    rows = [
        [button("Date", ROUTE, "field", "date"), button("Vendor", ROUTE, "field", "vendor")],
        [button("Invoice No.", ROUTE, "field", "number"), button("Payment", ROUTE, "pay")],
        [button("Notes", ROUTE, "field", "notes")],
        [button("+ Position", ROUTE, "add"), button("Edit positions", ROUTE, "lines")],
        [
            button(("* " if whole else "") + "Whole invoice", ROUTE, "mode", AllocationMode.WHOLE_INVOICE.value),
            button(("* " if not whole else "") + "Per position", ROUTE, "mode", AllocationMode.PER_LINE.value),
        ],
    ]
    if draft.allocation.whole_selector_required:
        label = object_name(objects, draft.whole_object_id) if draft.whole_object_id else "Choose object"
        rows.append([button(f"Object: {truncate(label, 30)}", ROUTE, "obj")])
    else:
        for row in draft.allocation.rows(draft.positions):
            target = object_name(objects, row.cost_object_id) if row.cost_object_id else "?"
            rows.append([button(
                f"{truncate(row.label, 20)} -> {truncate(target, 20)}", ROUTE, "assign", row.position_id
            )])
    rows.append([button("Save", ROUTE, "save"), button("Cancel", ROUTE, "cancel")])
    return InlineKeyboardMarkup(rows)


def payment_keyboard() -> InlineKeyboardMarkup:
    rows = [[button(label, ROUTE, "pay", method.value)] for method, label in PAYMENT_LABELS.items()]
    rows.append([button("« Back", ROUTE, "back")])
    return InlineKeyboardMarkup(rows)


def objects_keyboard(objects: list[CostObject], action: str, *args) -> InlineKeyboardMarkup:
    rows = [[button(truncate(obj.name, 40), ROUTE, action, *args, obj.id)] for obj in objects]
    rows.append([button("« Back", ROUTE, "back")])
    return InlineKeyboardMarkup(rows)


def positions_keyboard(draft: InvoiceDraft) -> InlineKeyboardMarkup:
    rows = []
    for position in draft.positions:
        rows.append([
            button(f"Edit {position.index}. {truncate(position.label, 25)}", ROUTE, "edit", position.id),
            button("Remove", ROUTE, "rm", position.id),
        ])
    rows.append([button("+ Position", ROUTE, "add"), button("« Back", ROUTE, "back")])
    return InlineKeyboardMarkup(rows)


def _log_change(draft: InvoiceDraft, event: str):
    logger.debug(f"Draft {event} changed, total {draft.grand_total}")


class NewExpensePage(PageController):
    name = ROUTE
    title = "New expense"
    commands = ("expense", "new")

    def get_session(self, context: ContextTypes.DEFAULT_TYPE) -> ExpenseSession | None:
        return context.user_data.get(SESSION_KEY)

    async def load(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                   user: UserContext, args: list[str]) -> str | None:
        notifier = self.notifier_for(update)
        try:
            objects = [CostObject.from_dict(o) for o in await self.backend.list_active_cost_objects()]
        except APIError as e:
            logger.error(f"Failed to load cost objects: {e.message}")
            await notifier.notify(f"{OBJECTS_LOAD_FAILED}: {e.message}", Severity.WARNING)
            objects = []

        draft = InvoiceDraft(LedgerOptions(strict_numbers=self.settings.strict_numbers))
        draft.set_date(date.today())
        draft.set_payment_method(PaymentMethod.CASH)
        draft.subscribe(_log_change)
        session = ExpenseSession(
            draft=draft,
            pipeline=SubmissionPipeline(self.backend, user, notifier),
            objects=objects,
        )
        context.user_data[SESSION_KEY] = session
        logger.info(f"New expense draft opened by {user.user_id} ({len(objects)} active objects)")
        await self.redraw(update, session)
        return None

    async def redraw(self, update: Update, session: ExpenseSession):
        await show(update, render_draft(session.draft, session.objects, self.currency),
                   draft_keyboard(session.draft, session.objects))

    async def handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                              user: UserContext, action: str, args: list[str]) -> str | None:
        session = self.get_session(context)
        if session is None:
            # Buttons of a message from an earlier session
            return await self.load(update, context, user, [])
        draft = session.draft

        if action == "field" and args and args[0] in FIELD_PROMPTS:
            session.awaiting = args[0]
            await show(update, FIELD_PROMPTS[args[0]])
            return None

        if action == "pay":
            if not args:
                await show(update, "Payment method:", payment_keyboard())
                return None
            draft.set_payment_method(args[0])

        elif action == "add":
            position = draft.add_position()
            session.awaiting = f"pos:{position.id}"
            await show(update, f"Position {position.index}\n{POSITION_PROMPT}")
            return None

        elif action == "lines":
            await show(update, render_draft(draft, session.objects, self.currency), positions_keyboard(draft))
            return None

        elif action == "edit" and args:
            position = draft.ledger.get(args[0])
            session.awaiting = f"pos:{position.id}"
            await show(update, f"Editing: {render_position(position, self.currency)}\n{POSITION_PROMPT}")
            return None

        elif action == "rm" and args:
            if not draft.remove_position(args[0]):
                await self.notifier_for(update).notify(MIN_POSITION_WARNING, Severity.WARNING)
            await show(update, render_draft(draft, session.objects, self.currency), positions_keyboard(draft))
            return None

        elif action == "mode" and args:
            draft.set_allocation_mode(args[0])

        elif action == "obj":
            if not session.objects:
                await self.notifier_for(update).notify("No active cost objects", Severity.WARNING)
            else:
                await show(update, "Cost object for the whole invoice:", objects_keyboard(session.objects, "setobj"))
                return None

        elif action == "setobj" and args:
            draft.select_whole_object(args[0])

        elif action == "assign" and args:
            position = draft.ledger.get(args[0])
            await show(update, f"Cost object for: {position.label}",
                       objects_keyboard(session.objects, "setline", position.id))
            return None

        elif action == "setline" and len(args) >= 2:
            draft.assign_position(args[0], args[1])

        elif action == "save":
            return await self.save(update, context, session)

        elif action == "cancel":
            if session.pipeline.is_submitting:
                return None
            context.user_data.pop(SESSION_KEY, None)
            await show(update, "Expense discarded.")
            return "menu"

        session.awaiting = None
        await self.redraw(update, session)
        return None

    async def save(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                   session: ExpenseSession) -> str | None:
        if session.pipeline.is_submitting:
            logger.info("Save pressed again while submitting, ignored")
            return None
        session.awaiting = None
        result = await session.pipeline.submit(session.draft)
        if result.ok:
            context.user_data.pop(SESSION_KEY, None)
            return AFTER_SAVE_ROUTE
        await self.redraw(update, session)
        return None

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                          user: UserContext, text: str) -> bool:
        session = self.get_session(context)
        if session is None or not session.awaiting:
            return False
        draft = session.draft
        notifier = self.notifier_for(update)
        awaiting = session.awaiting

        if awaiting == "date":
            parsed = parse_user_date(text)
            if parsed is None:
                await notifier.notify(BAD_DATE_MESSAGE, Severity.WARNING)
                return True
            draft.set_date(parsed)
        elif awaiting == "vendor":
            draft.set_vendor(text)
        elif awaiting == "number":
            draft.set_invoice_number(text)
        elif awaiting == "notes":
            draft.set_notes(text)
        elif awaiting.startswith("pos:"):
            position_id = awaiting[len("pos:"):]
            fields = parse_position_text(text)
            try:
                # Check every number first so a bad price leaves the row untouched
                for field in ("quantity", "unit_price"):
                    if field in fields:
                        parse_decimal(fields[field], strict=draft.options.strict_numbers, field=field)
                for field, raw in fields.items():
                    draft.update_position(position_id, field, raw)
            except InvalidNumberError as e:
                await notifier.notify(str(e), Severity.ERROR)
                return True
            except PositionNotFoundError:
                await notifier.notify("That position was removed", Severity.WARNING)

        session.awaiting = None
        await self.redraw(update, session)
        return True
