"""Tools inventory page: list, search, hand over, and (directors) add or edit."""

from __future__ import annotations

import logging

from telegram import InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes

from alp_bot.expenses.formatting import truncate
from alp_bot.expenses.models import Tool, ToolStatus
from alp_bot.handlers.base import PageController, back_to_menu_row, button, show
from alp_bot.services.notifier import Severity
from alp_bot.services.users import ROLE_TECHNICIAN, UserContext

logger = logging.getLogger(__name__)

ROUTE = "inventory"

FILTER_ALL = "all"
FILTER_LABELS = {
    FILTER_ALL: "All",
    ToolStatus.AVAILABLE.value: "Available",
    ToolStatus.ASSIGNED.value: "Assigned",
    ToolStatus.MAINTENANCE.value: "Repair",
}

STATUS_LABELS = {
    ToolStatus.AVAILABLE.value: "Available",
    ToolStatus.ASSIGNED.value: "Assigned",
    ToolStatus.MAINTENANCE.value: "In repair",
    ToolStatus.LOST.value: "Lost",
}

TOOL_PROMPT = "Send the tool as: name; code; description\nExample: Bosch drill; TOOL-005; 18V cordless"
MISSING_NAME_MESSAGE = "Enter the tool name"
DIRECTORS_ONLY_MESSAGE = "Only directors can add or edit tools"
STORAGE_LABEL = "Storage"


def parse_tool_text(text: str) -> dict:
    """"name; code; description" -> tool fields. Code and description are optional."""
    parts = [p.strip() for p in (text or "").split(";", 2)]
    parts += [""] * (3 - len(parts))
    return {"name": parts[0], "code": parts[1], "description": parts[2]}


def render_tool_list(tools: list[Tool], flt: str, search: str = "") -> str:
    heading = f"Tools - {FILTER_LABELS.get(flt, flt)}"
    if search:
        heading += f" (search: {search})"
    lines = [heading, f"{len(tools)} tools"]
    if not tools:
        lines += ["", "No tools found."]
    for tool in tools:
        code = f" ({tool.code})" if tool.code else ""
        where = f"with {tool.assigned_to_name}" if tool.assigned_to_name else STATUS_LABELS.get(tool.status, tool.status)
        lines.append(f"  {tool.name}{code} - {where}")
    return "\n".join(lines)


def render_tool(tool: Tool) -> str:
    lines = [
        tool.name,
        "",
        f"Code: {tool.code or '-'}",
        f"Status: {STATUS_LABELS.get(tool.status, tool.status)}",
        f"Holder: {tool.assigned_to_name or STORAGE_LABEL}",
        f"Object: {tool.object_name or '-'}",
    ]
    if tool.description:
        lines += ["", tool.description]
    return "\n".join(lines)


class InventoryPage(PageController):
    name = ROUTE
    title = "Tools"
    commands = ("inventory", "tools", "new_tool")

    def list_keyboard(self, user: UserContext, tools: list[Tool], flt: str, search: str) -> InlineKeyboardMarkup:
        rows = [[
            button(("* " if key == flt else "") + label, ROUTE, "filter", key)
            for key, label in FILTER_LABELS.items()
        ]]
        for tool in tools:
            rows.append([button(truncate(tool.name, 40), ROUTE, "view", tool.id)])
        if search:
            rows.append([button("Clear search", ROUTE, "clear")])
        if user.is_director:
            rows.append([button("+ New tool", ROUTE, "new")])
        rows.append(back_to_menu_row())
        return InlineKeyboardMarkup(rows)

    async def load(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                   user: UserContext, args: list[str]) -> str | None:
        session = self.session(context)
        session.pop("awaiting", None)
        flt = session.get("filter", FILTER_ALL)
        search = session.get("search", "")
        filters = {"status": None if flt == FILTER_ALL else flt, "search": search}
        tools = [Tool.from_dict(t) for t in await self.backend.list_tools(filters) or []]
        await show(update, render_tool_list(tools, flt, search), self.list_keyboard(user, tools, flt, search))
        return None

    async def handle_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                             user: UserContext, command: str, args: list[str]) -> str | None:
        if command == "new_tool":
            if not args:
                return await self.prompt_new(update, context, user)
            return await self.create(update, context, user, " ".join(args))
        # /tools drill -> search by name or code
        self.session(context)["search"] = " ".join(args).strip()
        return await self.load(update, context, user, [])

    async def prompt_new(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                         user: UserContext) -> str | None:
        if not user.is_director:
            await self.notifier_for(update).notify(DIRECTORS_ONLY_MESSAGE, Severity.WARNING)
            return None
        self.session(context)["awaiting"] = {"mode": "new"}
        await show(update, TOOL_PROMPT)
        return None

    async def create(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                     user: UserContext, text: str) -> str | None:
        notifier = self.notifier_for(update)
        if not user.is_director:
            await notifier.notify(DIRECTORS_ONLY_MESSAGE, Severity.WARNING)
            return None
        fields = parse_tool_text(text)
        if not fields["name"]:
            await notifier.notify(MISSING_NAME_MESSAGE, Severity.WARNING)
            return None
        created = await self.backend.create_tool({**fields, "status": ToolStatus.AVAILABLE.value})
        logger.info(f"Tool {created.get('id')} '{fields['name']}' created by {user.user_id}")
        await notifier.notify("Tool added", Severity.SUCCESS)
        return await self.load(update, context, user, [])

    async def show_tool(self, update: Update, user: UserContext, tool_id: str):
        tool = Tool.from_dict(await self.backend.get_tool(tool_id))
        rows = [[button("Transfer", ROUTE, "transfer", tool.id)]]
        if user.is_director:
            rows.append([button("Edit", ROUTE, "edit", tool.id), button("Status", ROUTE, "status", tool.id)])
        rows.append([button("« Back", ROUTE, "list")])
        await show(update, render_tool(tool), InlineKeyboardMarkup(rows))

    async def handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                              user: UserContext, action: str, args: list[str]) -> str | None:
        session = self.session(context)

        if action == "filter" and args and args[0] in FILTER_LABELS:
            session["filter"] = args[0]
            return await self.load(update, context, user, [])

        if action == "clear":
            session.pop("search", None)
            return await self.load(update, context, user, [])

        if action == "list":
            return await self.load(update, context, user, [])

        if action == "new":
            return await self.prompt_new(update, context, user)

        if action == "view" and args:
            session.pop("awaiting", None)
            await self.show_tool(update, user, args[0])
            return None

        if action == "transfer" and args:
            users = await self.backend.list_users()
            rows = [
                [button(truncate(u.get("name", ""), 40), ROUTE, "move", args[0], u["id"])]
                for u in users or [] if u.get("role") == ROLE_TECHNICIAN
            ]
            rows.append([button(STORAGE_LABEL, ROUTE, "move", args[0])])
            rows.append([button("« Back", ROUTE, "view", args[0])])
            await show(update, "Transfer to:", InlineKeyboardMarkup(rows))
            return None

        if action == "move" and args:
            to_user = args[1] if len(args) > 1 else None
            await self.backend.transfer_tool(args[0], to_user)
            logger.info(f"Tool {args[0]} moved to {to_user or 'storage'} by {user.user_id}")
            await self.notifier_for(update).notify("Tool transferred", Severity.SUCCESS)
            await self.show_tool(update, user, args[0])
            return None

        if action in ("edit", "status", "setstatus") and not user.is_director:
            await self.notifier_for(update).notify(DIRECTORS_ONLY_MESSAGE, Severity.WARNING)
            return None

        if action == "edit" and args:
            session["awaiting"] = {"mode": "edit", "id": args[0]}
            await show(update, TOOL_PROMPT)
            return None

        if action == "status" and args:
            rows = [[button(label, ROUTE, "setstatus", args[0], key)] for key, label in STATUS_LABELS.items()]
            rows.append([button("« Back", ROUTE, "view", args[0])])
            await show(update, "New status:", InlineKeyboardMarkup(rows))
            return None

        if action == "setstatus" and len(args) >= 2:
            status = ToolStatus(args[1])
            await self.backend.update_tool(args[0], {"status": status.value})
            await self.notifier_for(update).notify("Tool updated", Severity.SUCCESS)
            await self.show_tool(update, user, args[0])
            return None

        return None

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                          user: UserContext, text: str) -> bool:
        session = self.session(context)
        awaiting = session.get("awaiting")
        if not awaiting:
            return False
        if awaiting["mode"] == "new":
            session.pop("awaiting", None)
            await self.create(update, context, user, text)
            return True

        fields = parse_tool_text(text)
        if not fields["name"]:
            await self.notifier_for(update).notify(MISSING_NAME_MESSAGE, Severity.WARNING)
            return True
        session.pop("awaiting", None)
        await self.backend.update_tool(awaiting["id"], fields)
        logger.info(f"Tool {awaiting['id']} edited by {user.user_id}")
        await self.notifier_for(update).notify("Tool updated", Severity.SUCCESS)
        await self.show_tool(update, user, awaiting["id"])
        return True
