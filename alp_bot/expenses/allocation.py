"""Assignment of invoice cost to construction sites (cost objects).

Two modes. WHOLE_INVOICE sends every position to one object chosen once;
PER_LINE lets every position pick its own. Both selections are kept while
the other mode is active so the user can switch back and forth freely.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from alp_bot.expenses.errors import DraftValidationError, ValidationRule
from alp_bot.expenses.models import AllocationMode, Position

MISSING_OBJECT_MESSAGE = "Select a cost object for the invoice"
UNALLOCATED_MESSAGE = "Assign every position to a cost object"


@dataclass(frozen=True)
class AllocationRow:
    """One line of the per-line allocation view."""
    position_id: str
    label: str
    line_total: Decimal
    cost_object_id: str | None


class AllocationStrategy:
    def __init__(self):
        self.mode = AllocationMode.WHOLE_INVOICE
        self.whole_object_id: str | None = None

    # --- State ---

    def set_mode(self, mode: AllocationMode | str):
        self.mode = AllocationMode(mode)

    def select_whole(self, cost_object_id: str | None):
        self.whole_object_id = cost_object_id or None

    def assign(self, position: Position, cost_object_id: str | None):
        """Per-line selection; stored on the position itself."""
        position.cost_object_id = cost_object_id or None

    def reset(self):
        self.mode = AllocationMode.WHOLE_INVOICE
        self.whole_object_id = None

    # --- What the UI shows ---

    @property
    def whole_selector_required(self) -> bool:
        return self.mode == AllocationMode.WHOLE_INVOICE

    @property
    def per_line_selectors_visible(self) -> bool:
        return self.mode == AllocationMode.PER_LINE

    def rows(self, positions: Iterable[Position]) -> list[AllocationRow]:
        return [
            AllocationRow(p.id, p.label, p.line_total, p.cost_object_id)
            for p in positions
        ]

    # --- Validation ---

    def unassigned(self, valid_positions: Iterable[Position]) -> list[Position]:
        if self.mode != AllocationMode.PER_LINE:
            return []
        return [p for p in valid_positions if not p.cost_object_id]

    def error(self, valid_positions: list[Position]) -> DraftValidationError | None:
        """The allocation rule this draft breaks, if any."""
        if self.mode == AllocationMode.WHOLE_INVOICE:
            if not self.whole_object_id:
                return DraftValidationError(ValidationRule.MISSING_WHOLE_OBJECT, MISSING_OBJECT_MESSAGE)
            return None

        missing = self.unassigned(valid_positions)
        if missing:
            return DraftValidationError(
                ValidationRule.UNALLOCATED_POSITIONS,
                f"{UNALLOCATED_MESSAGE} ({len(missing)} unassigned)",
            )
        return None

    def resolve(self, valid_positions: Iterable[Position]) -> list[tuple[Position, str | None]]:
        """Object id each position will be submitted with. Never mutates positions."""
        if self.mode == AllocationMode.WHOLE_INVOICE:
            return [(p, self.whole_object_id) for p in valid_positions]
        return [(p, p.cost_object_id) for p in valid_positions]
