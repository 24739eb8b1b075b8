"""The in-memory invoice being composed by a technician."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Callable

from alp_bot.expenses.allocation import AllocationStrategy
from alp_bot.expenses.errors import DraftValidationError, ValidationRule
from alp_bot.expenses.ledger import LedgerOptions, PositionLedger
from alp_bot.expenses.models import AllocationMode, InvoiceHeader, PaymentMethod, Position

logger = logging.getLogger(__name__)

MIN_POSITION_WARNING = "At least one position is required"

_HEADER_MESSAGES = {
    ValidationRule.MISSING_DATE: "Enter the invoice date",
    ValidationRule.MISSING_VENDOR: "Enter the vendor",
    ValidationRule.MISSING_PAYMENT_METHOD: "Choose a payment method",
}
NO_VALID_POSITIONS_MESSAGE = "Add at least one position with a description and a price"

DraftListener = Callable[["InvoiceDraft", str], None]


class InvoiceDraft:
    """Header fields, positions and allocation of one invoice before submission."""

    def __init__(self, options: LedgerOptions | None = None):
        self.options = options or LedgerOptions()
        self.header = InvoiceHeader()
        self.ledger = PositionLedger(self.options)
        self.allocation = AllocationStrategy()
        self._listeners: list[DraftListener] = []

    # --- Observers ---

    def subscribe(self, listener: DraftListener):
        """Call listener(draft, event) after every mutation."""
        self._listeners.append(listener)

    def _changed(self, event: str):
        for listener in self._listeners:
            listener(self, event)

    # --- Header ---

    def set_date(self, value: date | None):
        self.header.date = value
        self._changed("header")

    def set_vendor(self, vendor: str):
        self.header.vendor = (vendor or "").strip()
        self._changed("header")

    def set_invoice_number(self, number: str):
        self.header.invoice_number = (number or "").strip()
        self._changed("header")

    def set_payment_method(self, method: PaymentMethod | str | None):
        self.header.payment_method = PaymentMethod(method) if method else None
        self._changed("header")

    def set_notes(self, notes: str):
        self.header.notes = (notes or "").strip()
        self._changed("header")

    # --- Positions ---

    @property
    def positions(self) -> list[Position]:
        return self.ledger.positions

    @property
    def valid_positions(self) -> list[Position]:
        return self.ledger.valid_positions

    @property
    def grand_total(self) -> Decimal:
        return self.ledger.total

    def add_position(self) -> Position:
        position = self.ledger.add_position()
        self._changed("positions")
        return position

    def update_position(self, position_id: str, field: str, raw_value) -> Position:
        position = self.ledger.update_field(position_id, field, raw_value)
        self._changed("positions")
        return position

    def remove_position(self, position_id: str) -> bool:
        removed = self.ledger.remove_position(position_id)
        if removed:
            self._changed("positions")
        return removed

    # --- Allocation ---

    @property
    def allocation_mode(self) -> AllocationMode:
        return self.allocation.mode

    @property
    def whole_object_id(self) -> str | None:
        return self.allocation.whole_object_id

    def set_allocation_mode(self, mode: AllocationMode | str):
        self.allocation.set_mode(mode)
        self._changed("allocation")

    def select_whole_object(self, cost_object_id: str | None):
        self.allocation.select_whole(cost_object_id)
        self._changed("allocation")

    def assign_position(self, position_id: str, cost_object_id: str | None):
        self.allocation.assign(self.ledger.get(position_id), cost_object_id)
        self._changed("allocation")

    # --- Validation ---

    def validation_errors(self) -> list[DraftValidationError]:
        """Every failing rule, header first, then positions, then allocation."""
        errors = []
        header = self.header
        if header.date is None:
            errors.append(self._header_error(ValidationRule.MISSING_DATE))
        if not header.vendor.strip():
            errors.append(self._header_error(ValidationRule.MISSING_VENDOR))
        if header.payment_method is None:
            errors.append(self._header_error(ValidationRule.MISSING_PAYMENT_METHOD))

        valid = self.valid_positions
        if not valid:
            errors.append(DraftValidationError(ValidationRule.NO_VALID_POSITIONS, NO_VALID_POSITIONS_MESSAGE))

        allocation_error = self.allocation.error(valid)
        if allocation_error:
            errors.append(allocation_error)
        return errors

    @staticmethod
    def _header_error(rule: ValidationRule) -> DraftValidationError:
        return DraftValidationError(rule, _HEADER_MESSAGES[rule])

    @property
    def is_ready_to_submit(self) -> bool:
        return not self.validation_errors()

    def ensure_ready(self):
        errors = self.validation_errors()
        if errors:
            raise errors[0]

    # --- Lifecycle ---

    def reset(self):
        """Back to a fresh draft: one blank position, whole-invoice mode, empty header."""
        self.header = InvoiceHeader()
        self.ledger.clear()
        self.allocation.reset()
        logger.debug("Draft reset")
        self._changed("reset")

    def snapshot(self) -> dict:
        """Plain-data copy of the whole draft state."""
        return {
            "header": {
                "date": self.header.date,
                "vendor": self.header.vendor,
                "invoice_number": self.header.invoice_number,
                "payment_method": self.header.payment_method,
                "notes": self.header.notes,
            },
            "positions": [
                {
                    "id": p.id,
                    "description": p.description,
                    "quantity": p.quantity,
                    "unit_price": p.unit_price,
                    "cost_object_id": p.cost_object_id,
                }
                for p in self.ledger
            ],
            "allocation_mode": self.allocation.mode,
            "whole_object_id": self.allocation.whole_object_id,
        }
