"""Data models for expense entry and the backend's invoice/object records."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from alp_bot.expenses.formatting import format_date_api, to_decimal


class AllocationMode(str, Enum):
    WHOLE_INVOICE = "whole"   # every position goes to one cost object
    PER_LINE = "split"        # each position picks its own cost object


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK = "bank"
    CARD = "card"


class ObjectStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


def new_position_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class Position:
    """One invoice line."""
    id: str = field(default_factory=new_position_id)
    index: int = 1           # creation ordinal, only used for placeholder text
    description: str = ""
    quantity: Decimal = Decimal(1)
    unit_price: Decimal = Decimal(0)
    cost_object_id: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price

    @property
    def is_valid(self) -> bool:
        """Only valid positions are submitted."""
        return bool(self.description.strip()) and self.unit_price > 0

    @property
    def placeholder(self) -> str:
        return f"Position {self.index}"

    @property
    def label(self) -> str:
        return self.description.strip() or self.placeholder


@dataclass
class InvoiceHeader:
    date: date | None = None
    vendor: str = ""
    invoice_number: str = ""
    payment_method: PaymentMethod | None = None
    notes: str = ""


@dataclass
class CostObject:
    """A construction site that expenses are attributed to."""
    id: str
    name: str
    status: str = ObjectStatus.ACTIVE.value
    address: str = ""
    description: str = ""
    start_date: str = ""
    total_expenses: Decimal = Decimal(0)
    invoice_count: int = 0

    @property
    def is_active(self) -> bool:
        return self.status == ObjectStatus.ACTIVE.value

    @classmethod
    def from_dict(cls, data: dict) -> CostObject:
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            status=data.get("status") or ObjectStatus.ACTIVE.value,
            address=data.get("address") or "",
            description=data.get("description") or "",
            start_date=data.get("startDate") or "",
            total_expenses=to_decimal(data.get("totalExpenses")) or Decimal(0),
            invoice_count=int(data.get("invoiceCount") or 0),
        )


# --- Wire payload ---


def json_number(value: Decimal):
    """JSON-friendly number: ints stay ints, everything else becomes float."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


@dataclass(frozen=True)
class PositionPayload:
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    cost_object_id: str | None

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "quantity": json_number(self.quantity),
            "unitPrice": json_number(self.unit_price),
            "lineTotal": json_number(self.line_total),
            "costObjectId": self.cost_object_id,
        }


@dataclass(frozen=True)
class InvoicePayload:
    """The record handed to the invoice-creation endpoint."""
    date: date
    vendor: str
    payment_method: PaymentMethod
    technician_id: str | None
    positions: tuple[PositionPayload, ...]
    total_amount: Decimal
    invoice_number: str = ""
    notes: str = ""

    def to_dict(self) -> dict:
        return {
            "invoiceNumber": self.invoice_number or None,
            "date": format_date_api(self.date),
            "vendor": self.vendor,
            "paymentMethod": self.payment_method.value,
            "notes": self.notes or None,
            "technicianId": self.technician_id,
            "positions": [p.to_dict() for p in self.positions],
            "totalAmount": json_number(self.total_amount),
        }


# --- Read models for listings ---


@dataclass
class InvoiceLine:
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    cost_object_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> InvoiceLine:
        quantity = to_decimal(data.get("quantity")) or Decimal(0)
        unit_price = to_decimal(data.get("unitPrice")) or Decimal(0)
        total = to_decimal(data.get("lineTotal", data.get("total")))
        object_id = data.get("costObjectId", data.get("objectId"))
        return cls(
            description=data.get("description") or data.get("name") or "",
            quantity=quantity,
            unit_price=unit_price,
            line_total=total if total is not None else quantity * unit_price,
            cost_object_id=str(object_id) if object_id is not None else None,
        )


@dataclass
class Invoice:
    """An invoice as returned by the backend's list/detail endpoints."""
    id: str
    date: str                 # YYYY-MM-DD
    vendor: str
    total: Decimal
    invoice_number: str = ""
    description: str = ""
    payment_method: str = ""
    notes: str = ""
    technician_id: str | None = None
    technician_name: str = ""
    object_id: str | None = None
    object_name: str = ""
    positions: list[InvoiceLine] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> Invoice:
        technician = data.get("technicianId", data.get("createdBy"))
        object_id = data.get("objectId")
        return cls(
            id=str(data["id"]),
            date=data.get("date") or "",
            vendor=data.get("vendor") or data.get("supplier") or "",
            total=to_decimal(data.get("totalAmount", data.get("total"))) or Decimal(0),
            invoice_number=data.get("invoiceNumber") or "",
            description=data.get("description") or "",
            payment_method=data.get("paymentMethod") or "",
            notes=data.get("notes") or "",
            technician_id=str(technician) if technician is not None else None,
            technician_name=data.get("createdByName") or "",
            object_id=str(object_id) if object_id is not None else None,
            object_name=data.get("objectName") or "",
            positions=[InvoiceLine.from_dict(p) for p in data.get("positions") or []],
        )


# --- Funding, tools and bank statements ---


class TransactionType(str, Enum):
    CASH_FUNDING = "cash_funding"
    BANK_TRANSFER = "bank_transfer"
    EXPENSE = "expense"
    INVOICE = "invoice"


FUNDING_TYPES = (TransactionType.CASH_FUNDING, TransactionType.BANK_TRANSFER)


class ToolStatus(str, Enum):
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    MAINTENANCE = "maintenance"
    LOST = "lost"


@dataclass
class Transaction:
    """A movement on a technician's balance."""
    id: str
    type: str
    amount: Decimal
    date: str = ""
    description: str = ""
    user_id: str | None = None
    technician_name: str = ""

    @property
    def is_funding(self) -> bool:
        return self.type in {t.value for t in FUNDING_TYPES}

    @classmethod
    def from_dict(cls, data: dict) -> Transaction:
        user_id = data.get("userId")
        return cls(
            id=str(data.get("id", "")),
            type=data.get("type") or "",
            amount=to_decimal(data.get("amount")) or Decimal(0),
            date=data.get("date") or "",
            description=data.get("description") or data.get("note") or "",
            user_id=str(user_id) if user_id is not None else None,
            technician_name=data.get("technicianName") or "",
        )


@dataclass
class Tool:
    """An inventory item that is kept in storage or handed to a technician."""
    id: str
    name: str
    code: str = ""
    description: str = ""
    status: str = ToolStatus.AVAILABLE.value
    assigned_to: str | None = None
    assigned_to_name: str = ""
    object_name: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Tool:
        holder = data.get("assignedTo")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            code=data.get("code") or "",
            description=data.get("description") or "",
            status=data.get("status") or ToolStatus.AVAILABLE.value,
            assigned_to=str(holder) if holder is not None else None,
            assigned_to_name=data.get("assignedToName") or "",
            object_name=data.get("objectName") or "",
        )


@dataclass
class BankRow:
    """One line parsed out of an uploaded bank statement."""
    date: str
    description: str
    reference: str
    amount: Decimal

    @property
    def is_incoming(self) -> bool:
        return self.amount > 0

    @classmethod
    def from_dict(cls, data: dict) -> BankRow:
        return cls(
            date=data.get("date") or "",
            description=data.get("description") or "",
            reference=data.get("reference") or "",
            amount=to_decimal(data.get("amount")) or Decimal(0),
        )
