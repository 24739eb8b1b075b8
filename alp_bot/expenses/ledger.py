"""Ordered collection of invoice positions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterator

from alp_bot.expenses.errors import PositionNotFoundError
from alp_bot.expenses.formatting import parse_decimal
from alp_bot.expenses.models import Position

logger = logging.getLogger(__name__)

# Field names accepted by update_field, including the names the web form used
_FIELD_ALIASES = {
    "description": "description",
    "name": "description",
    "quantity": "quantity",
    "unit_price": "unit_price",
    "unitPrice": "unit_price",
    "price": "unit_price",
}
_NUMERIC_FIELDS = ("quantity", "unit_price")


@dataclass(frozen=True)
class LedgerOptions:
    """Options for position parsing.

    strict_numbers: reject malformed quantity/price input instead of
        storing 0. Defaults to False (the lenient behaviour).
    default_quantity: quantity of a freshly added row. Defaults to 1.
    default_unit_price: unit price of a freshly added row. Defaults to 0.
    """
    strict_numbers: bool = False
    default_quantity: Decimal = Decimal(1)
    default_unit_price: Decimal = Decimal(0)


class PositionLedger:
    """Invoice lines in entry order. Never empty."""

    def __init__(self, options: LedgerOptions | None = None):
        self.options = options or LedgerOptions()
        self._positions: list[Position] = []
        self.add_position()

    def __iter__(self) -> Iterator[Position]:
        return iter(self._positions)

    def __len__(self) -> int:
        return len(self._positions)

    @property
    def positions(self) -> list[Position]:
        return list(self._positions)

    @property
    def valid_positions(self) -> list[Position]:
        return [p for p in self._positions if p.is_valid]

    @property
    def total(self) -> Decimal:
        """Sum of line totals over valid positions."""
        return sum((p.line_total for p in self.valid_positions), Decimal(0))

    def get(self, position_id: str) -> Position:
        for position in self._positions:
            if position.id == position_id:
                return position
        raise PositionNotFoundError(position_id)

    def add_position(self) -> Position:
        position = Position(
            index=len(self._positions) + 1,
            quantity=self.options.default_quantity,
            unit_price=self.options.default_unit_price,
        )
        self._positions.append(position)
        return position

    def update_field(self, position_id: str, field: str, raw_value) -> Position:
        """Set one field of a position from raw user input."""
        name = _FIELD_ALIASES.get(field)
        if name is None:
            raise ValueError(f"Unknown position field: {field}")

        position = self.get(position_id)
        if name in _NUMERIC_FIELDS:
            value = parse_decimal(raw_value, strict=self.options.strict_numbers, field=name)
        else:
            value = "" if raw_value is None else str(raw_value)
        setattr(position, name, value)
        return position

    def remove_position(self, position_id: str) -> bool:
        """Remove a position. Returns False (and keeps it) if it is the last one."""
        position = self.get(position_id)
        if len(self._positions) <= 1:
            logger.debug(f"Refusing to remove the last position {position_id}")
            return False
        self._positions = [p for p in self._positions if p is not position]
        return True

    def clear(self):
        """Back to a single blank position."""
        self._positions = []
        self.add_position()
