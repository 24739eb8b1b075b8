"""Technician funding and bank statement import.

Funding raises a technician's balance by a cash hand-over or a bank
transfer. A bank statement is parsed by the backend; the director ticks the
rows to keep and incoming rows become bank-transfer fundings for the chosen
technician.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from alp_bot.expenses.errors import InvalidAmountError, InvalidNumberError
from alp_bot.expenses.formatting import format_date_api, parse_decimal
from alp_bot.expenses.models import FUNDING_TYPES, BankRow, TransactionType, json_number

logger = logging.getLogger(__name__)

MIN_FUNDING_AMOUNT = Decimal("0.01")


def parse_funding_text(text: str) -> tuple[str, str]:
    """"amount; note" -> (amount, note). The note is optional."""
    amount, _, note = (text or "").partition(";")
    return amount.strip(), note.strip()


def build_funding(user_id, tx_type, raw_amount, when: date | None = None, note: str = "") -> dict:
    """Payload for the transaction endpoint. Raises InvalidAmountError."""
    tx_type = TransactionType(tx_type)
    if tx_type not in FUNDING_TYPES:
        raise ValueError(f"Not a funding type: {tx_type.value}")
    try:
        amount = parse_decimal(raw_amount, strict=True, field="amount")
    except InvalidNumberError:
        raise InvalidAmountError(raw_amount, MIN_FUNDING_AMOUNT) from None
    if amount < MIN_FUNDING_AMOUNT:
        raise InvalidAmountError(raw_amount, MIN_FUNDING_AMOUNT)
    return {
        "userId": user_id,
        "type": tx_type.value,
        "amount": json_number(amount),
        "date": format_date_api(when or date.today()),
        "note": note.strip() or None,
    }


def bank_transfer_note(row: BankRow) -> str:
    return f"Bank transfer: {row.description} (Ref: {row.reference or '-'})"


class BankImport:
    """Rows parsed from one statement and which of them are ticked."""

    def __init__(self, rows: list[BankRow], filename: str = ""):
        self.rows = list(rows)
        self.filename = filename
        self.selected: set[int] = set(range(len(self.rows)))

    @classmethod
    def from_result(cls, result: dict, filename: str = "") -> BankImport:
        raw = (result or {}).get("transactions") or []
        return cls([BankRow.from_dict(r) for r in raw], filename)

    def toggle(self, index: int) -> bool:
        """Flip one row. Returns its new state; out-of-range indexes are ignored."""
        if not 0 <= index < len(self.rows):
            return False
        if index in self.selected:
            self.selected.discard(index)
            return False
        self.selected.add(index)
        return True

    def select_all(self, on: bool = True):
        self.selected = set(range(len(self.rows))) if on else set()

    def is_selected(self, index: int) -> bool:
        return index in self.selected

    @property
    def selected_rows(self) -> list[BankRow]:
        return [row for i, row in enumerate(self.rows) if i in self.selected]

    @property
    def net_total(self) -> Decimal:
        return sum((row.amount for row in self.rows), Decimal(0))

    def transactions_for(self, technician_id) -> list[dict]:
        """Fundings for the ticked incoming rows. Nothing without a technician."""
        if technician_id is None:
            return []
        payloads = []
        for row in self.selected_rows:
            if not row.is_incoming:
                continue
            payloads.append({
                "userId": technician_id,
                "type": TransactionType.BANK_TRANSFER.value,
                "amount": json_number(row.amount),
                "date": row.date or format_date_api(date.today()),
                "note": bank_transfer_note(row),
            })
        logger.debug(f"{len(payloads)} of {len(self.selected)} selected rows credit technician {technician_id}")
        return payloads
