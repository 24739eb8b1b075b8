"""In-memory backend used when no webhook URL is configured.

Mirrors the webhook backend's CRUD behaviour on plain lists so the bot can
be demoed (and tested) without a server.
"""

from __future__ import annotations

import copy
import logging
from datetime import date

from alp_bot.expenses.models import ObjectStatus, ToolStatus, TransactionType
from alp_bot.services.api import APIError, ExpenseBackend

logger = logging.getLogger(__name__)

# What the demo "parses" out of any uploaded statement
DEMO_STATEMENT_ROWS = [
    {"date": "2025-12-16", "description": "Transfer from ALP Build Ltd", "reference": "FT2512160001", "amount": 1500.00},
    {"date": "2025-12-17", "description": "Bank fee", "reference": "FEE-1217", "amount": -2.50},
    {"date": "2025-12-18", "description": "Transfer from ALP Build Ltd", "reference": "FT2512180007", "amount": 800.00},
]


def demo_data() -> dict:
    """A small, fresh dataset (a new copy on every call)."""
    return {
        "users": [
            {"id": 1, "username": "director1", "name": "Georgi Director", "role": "director", "balance": 0},
            {"id": 3, "username": "tech1", "name": "Petar Technician", "role": "technician", "balance": 2500.00},
            {"id": 4, "username": "tech2", "name": "Stoyan Technician", "role": "technician", "balance": 1800.50},
        ],
        "objects": [
            {"id": 1, "name": "Site Vitosha", "address": "100 Vitoshka Blvd", "status": "active",
             "startDate": "2025-09-01", "totalExpenses": 15000},
            {"id": 2, "name": "Site Lyulin", "address": "Lyulin bl. 205", "status": "active",
             "startDate": "2025-10-15", "totalExpenses": 8500},
            {"id": 4, "name": "Site Center", "address": "45 Graf Ignatiev St", "status": "completed",
             "startDate": "2025-03-01", "totalExpenses": 45000},
        ],
        "invoices": [
            {"id": 1, "date": "2025-12-15", "vendor": "Stroyko EOOD", "invoiceNumber": "INV-001",
             "totalAmount": 1250.00, "paymentMethod": "cash", "technicianId": 3,
             "createdByName": "Petar Technician", "objectId": 1, "objectName": "Site Vitosha",
             "positions": [{"description": "Building materials", "quantity": 1, "unitPrice": 1250.00,
                            "lineTotal": 1250.00, "costObjectId": 1}]},
            {"id": 2, "date": "2025-12-14", "vendor": "Technomarket", "invoiceNumber": "INV-002",
             "totalAmount": 450.00, "paymentMethod": "card", "technicianId": 4,
             "createdByName": "Stoyan Technician", "objectId": 2, "objectName": "Site Lyulin",
             "positions": [{"description": "Electrical supplies", "quantity": 3, "unitPrice": 150.00,
                            "lineTotal": 450.00, "costObjectId": 2}]},
        ],
        "transactions": [
            {"id": 1, "type": "cash_funding", "userId": 3, "amount": 3000, "date": "2025-12-10",
             "description": "Cash funding"},
            {"id": 2, "type": "expense", "userId": 3, "amount": -500, "date": "2025-12-12",
             "description": "Expense for invoice INV-001", "invoiceId": 1},
            {"id": 3, "type": "bank_transfer", "userId": 4, "amount": 2000, "date": "2025-12-11",
             "description": "Bank transfer"},
        ],
        "tools": [
            {"id": 1, "name": "Bosch GSB 18V drill", "code": "TOOL-001", "status": "assigned", "assignedTo": 3,
             "assignedToName": "Petar Technician", "objectId": 1, "objectName": "Site Vitosha"},
            {"id": 2, "name": "Makita angle grinder", "code": "TOOL-002", "status": "available"},
            {"id": 3, "name": "Aluminium ladder 3m", "code": "TOOL-003", "status": "assigned", "assignedTo": 4,
             "assignedToName": "Stoyan Technician", "objectId": 2, "objectName": "Site Lyulin"},
            {"id": 4, "name": "Hand tool set", "code": "TOOL-004", "status": "available",
             "description": "Screwdrivers, pliers, wrenches"},
        ],
    }


class InMemoryBackend(ExpenseBackend):
    """ExpenseBackend over in-memory lists."""

    def __init__(self, data: dict | None = None):
        self.data = data if data is not None else demo_data()
        for key in ("users", "objects", "invoices", "transactions", "tools"):
            self.data.setdefault(key, [])

    def _next_id(self, collection: str) -> int:
        ids = [int(item["id"]) for item in self.data[collection]]
        return max(ids) + 1 if ids else 1

    def _find(self, collection: str, item_id) -> dict:
        for item in self.data[collection]:
            if str(item["id"]) == str(item_id):
                return item
        raise APIError("Not found", 404, {"id": item_id})

    # Objects

    async def list_cost_objects(self, include_archived: bool = False) -> list[dict]:
        objects = self.data["objects"]
        if not include_archived:
            objects = [o for o in objects if o.get("status") != ObjectStatus.ARCHIVED.value]
        return copy.deepcopy(objects)

    async def get_cost_object(self, object_id) -> dict:
        obj = copy.deepcopy(self._find("objects", object_id))
        obj["invoiceCount"] = sum(
            1 for inv in self.data["invoices"] if str(inv.get("objectId")) == str(obj["id"])
        )
        return obj

    async def create_cost_object(self, data: dict) -> dict:
        obj = {
            "status": ObjectStatus.ACTIVE.value,
            "startDate": date.today().isoformat(),
            "totalExpenses": 0,
            **data,
            "id": self._next_id("objects"),
        }
        self.data["objects"].append(obj)
        logger.info(f"Demo object created: #{obj['id']} {obj.get('name')}")
        return copy.deepcopy(obj)

    async def update_cost_object(self, object_id, data: dict) -> dict:
        obj = self._find("objects", object_id)
        obj.update({k: v for k, v in data.items() if k != "id"})
        return copy.deepcopy(obj)

    async def archive_cost_object(self, object_id) -> dict:
        obj = self._find("objects", object_id)
        obj["status"] = ObjectStatus.COMPLETED.value
        return copy.deepcopy(obj)

    # Invoices

    async def list_invoices(self, filters: dict | None = None) -> list[dict]:
        filters = _clean(filters)
        result = []
        for inv in self.data["invoices"]:
            if "technicianId" in filters and str(inv.get("technicianId")) != str(filters["technicianId"]):
                continue
            if "objectId" in filters and not _touches_object(inv, filters["objectId"]):
                continue
            if "dateFrom" in filters and inv.get("date", "") < filters["dateFrom"]:
                continue
            if "dateTo" in filters and inv.get("date", "") > filters["dateTo"]:
                continue
            result.append(inv)
        result.sort(key=lambda inv: inv.get("date", ""), reverse=True)
        return copy.deepcopy(result)

    async def get_invoice(self, invoice_id) -> dict:
        return copy.deepcopy(self._find("invoices", invoice_id))

    async def create_invoice(self, payload: dict) -> dict:
        object_ids = {p.get("costObjectId") for p in payload.get("positions", [])}
        invoice = copy.deepcopy(payload)
        invoice["id"] = self._next_id("invoices")
        if len(object_ids) == 1:
            object_id = object_ids.pop()
            invoice["objectId"] = object_id
            invoice["objectName"] = self._object_name(object_id)
        self.data["invoices"].append(invoice)

        technician = invoice.get("technicianId")
        if technician is not None:
            self._adjust_balance(technician, -float(invoice.get("totalAmount") or 0))
            self.data["transactions"].append({
                "id": self._next_id("transactions"),
                "type": "expense",
                "userId": technician,
                "amount": -float(invoice.get("totalAmount") or 0),
                "date": invoice.get("date"),
                "description": f"Expense for invoice {invoice.get('invoiceNumber') or invoice['id']}",
                "invoiceId": invoice["id"],
            })
        logger.info(f"Demo invoice created: #{invoice['id']} {invoice.get('vendor')} {invoice.get('totalAmount')}")
        return copy.deepcopy(invoice)

    async def delete_invoice(self, invoice_id) -> dict:
        invoice = self._find("invoices", invoice_id)
        if invoice.get("technicianId") is not None:
            self._adjust_balance(invoice["technicianId"], float(invoice.get("totalAmount") or 0))
        self.data["invoices"] = [i for i in self.data["invoices"] if i is not invoice]
        self.data["transactions"] = [
            t for t in self.data["transactions"] if str(t.get("invoiceId")) != str(invoice["id"])
        ]
        return {"id": invoice["id"], "deleted": True}

    # Users and reports

    async def list_users(self) -> list[dict]:
        return copy.deepcopy(self.data["users"])

    async def get_user_balance(self, user_id) -> dict:
        user = self._find("users", user_id)
        transactions = [t for t in self.data["transactions"] if str(t.get("userId")) == str(user_id)]
        transactions.sort(key=lambda t: t.get("date", ""), reverse=True)
        return {"userId": user["id"], "balance": float(user.get("balance") or 0), "transactions": copy.deepcopy(transactions)}

    async def get_overview_report(self) -> dict:
        month = date.today().strftime("%Y-%m")
        technicians = [u for u in self.data["users"] if u.get("role") == "technician"]
        balances = [await self.get_user_balance(t["id"]) for t in technicians]
        return {
            "totalExpensesMonth": sum(
                float(i.get("totalAmount") or 0) for i in self.data["invoices"]
                if str(i.get("date", "")).startswith(month)
            ),
            "totalTechnicianBalance": sum(b["balance"] for b in balances),
            "activeObjects": sum(1 for o in self.data["objects"] if o.get("status") == ObjectStatus.ACTIVE.value),
            "technicians": [
                {"id": t["id"], "name": t["name"], "balance": b["balance"]}
                for t, b in zip(technicians, balances)
            ],
        }

    async def get_object_report(self, object_id) -> dict:
        obj = self._find("objects", object_id)
        categories: dict[str, dict] = {}
        invoice_count = 0
        total = 0.0
        for inv in self.data["invoices"]:
            lines = [p for p in inv.get("positions") or [] if str(p.get("costObjectId")) == str(obj["id"])]
            if not lines:
                continue
            invoice_count += 1
            for line in lines:
                amount = float(line.get("lineTotal") or 0)
                total += amount
                name = line.get("description") or "Other"
                category = categories.setdefault(name, {"name": name, "count": 0, "total": 0.0})
                category["count"] += 1
                category["total"] = round(category["total"] + amount, 2)
        return {
            "objectId": obj["id"],
            "name": obj.get("name", ""),
            "totalExpenses": round(total, 2),
            "invoiceCount": invoice_count,
            "byCategory": sorted(categories.values(), key=lambda c: c["total"], reverse=True),
        }

    # Transactions

    async def list_transactions(self, filters: dict | None = None) -> list[dict]:
        filters = _clean(filters)
        result = [
            t for t in self.data["transactions"]
            if ("userId" not in filters or str(t.get("userId")) == str(filters["userId"]))
            and ("type" not in filters or t.get("type") == filters["type"])
        ]
        result.sort(key=lambda t: t.get("date", ""), reverse=True)
        return copy.deepcopy(_limit(result, filters))

    async def create_transaction(self, data: dict) -> dict:
        user = self._find("users", data.get("userId"))
        amount = float(data.get("amount") or 0)
        tx_type = data.get("type") or ""
        transaction = {
            "id": self._next_id("transactions"),
            "type": tx_type,
            "userId": user["id"],
            "amount": amount,
            "date": data.get("date") or date.today().isoformat(),
            "description": data.get("note") or tx_type.replace("_", " ").capitalize(),
        }
        self.data["transactions"].append(transaction)
        self._adjust_balance(user["id"], amount)
        logger.info(f"Demo transaction {transaction['id']}: {tx_type} {amount} for user {user['id']}")
        return copy.deepcopy(transaction)

    # Inventory

    async def list_tools(self, filters: dict | None = None) -> list[dict]:
        filters = _clean(filters)
        search = str(filters.get("search", "")).lower()
        result = []
        for tool in self.data["tools"]:
            if "status" in filters and tool.get("status") != filters["status"]:
                continue
            if search and search not in f"{tool.get('name', '')} {tool.get('code', '')}".lower():
                continue
            result.append(tool)
        return copy.deepcopy(result)

    async def get_tool(self, tool_id) -> dict:
        return copy.deepcopy(self._find("tools", tool_id))

    async def create_tool(self, data: dict) -> dict:
        if not (data.get("name") or "").strip():
            raise APIError("Tool name is required", 422, data)
        tool = {"status": ToolStatus.AVAILABLE.value, **data, "id": self._next_id("tools")}
        self.data["tools"].append(tool)
        logger.info(f"Demo tool created: #{tool['id']} {tool['name']}")
        return copy.deepcopy(tool)

    async def update_tool(self, tool_id, data: dict) -> dict:
        tool = self._find("tools", tool_id)
        tool.update({k: v for k, v in data.items() if k != "id"})
        return copy.deepcopy(tool)

    async def transfer_tool(self, tool_id, to_user_id) -> dict:
        tool = self._find("tools", tool_id)
        if to_user_id in (None, ""):
            tool.update({"status": ToolStatus.AVAILABLE.value, "assignedTo": None, "assignedToName": "",
                         "objectId": None, "objectName": ""})
        else:
            user = self._find("users", to_user_id)
            tool.update({"status": ToolStatus.ASSIGNED.value, "assignedTo": user["id"],
                         "assignedToName": user.get("name", "")})
        return copy.deepcopy(tool)

    # Bank statements

    async def upload_bank_statement(self, content: bytes, filename: str) -> dict:
        if not content:
            raise APIError("The uploaded file is empty", 400, {"filename": filename})
        logger.info(f"Demo statement {filename} ({len(content)} bytes) parsed")
        return {"filename": filename, "transactions": copy.deepcopy(DEMO_STATEMENT_ROWS)}

    async def list_bank_transactions(self, filters: dict | None = None) -> list[dict]:
        filters = _clean(filters)
        names = {str(u["id"]): u.get("name", "") for u in self.data["users"]}
        result = [
            {**t, "technicianName": names.get(str(t.get("userId")), "")}
            for t in self.data["transactions"] if t.get("type") == TransactionType.BANK_TRANSFER.value
        ]
        result.sort(key=lambda t: t.get("date", ""), reverse=True)
        return copy.deepcopy(_limit(result, filters))

    def _object_name(self, object_id) -> str:
        try:
            return self._find("objects", object_id).get("name", "")
        except APIError:
            return ""

    def _adjust_balance(self, user_id, amount: float):
        for user in self.data["users"]:
            if str(user["id"]) == str(user_id):
                user["balance"] = round(float(user.get("balance") or 0) + amount, 2)
                return


def _touches_object(invoice: dict, object_id) -> bool:
    if str(invoice.get("objectId")) == str(object_id):
        return True
    return any(str(p.get("costObjectId")) == str(object_id) for p in invoice.get("positions") or [])


def _clean(filters: dict | None) -> dict:
    return {k: v for k, v in (filters or {}).items() if v not in (None, "")}


def _limit(items: list, filters: dict) -> list:
    limit = filters.get("limit")
    return items[:int(limit)] if limit else items
