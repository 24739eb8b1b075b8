from decimal import Decimal

import pytest

from alp_bot.expenses.allocation import AllocationStrategy
from alp_bot.expenses.errors import ValidationRule
from alp_bot.expenses.models import AllocationMode, Position


def _valid(description="Cable", price="10", object_id=None):
    return Position(description=description, unit_price=Decimal(price), cost_object_id=object_id)


def test_starts_in_whole_invoice_mode():
    strategy = AllocationStrategy()
    assert strategy.mode == AllocationMode.WHOLE_INVOICE
    assert strategy.whole_selector_required
    assert not strategy.per_line_selectors_visible


def test_switching_modes_keeps_both_selections():
    strategy = AllocationStrategy()
    position = _valid()
    strategy.select_whole("site-1")
    strategy.set_mode("split")
    assert strategy.per_line_selectors_visible
    assert not strategy.whole_selector_required
    strategy.assign(position, "site-2")

    strategy.set_mode(AllocationMode.WHOLE_INVOICE)
    assert strategy.whole_object_id == "site-1"
    strategy.set_mode(AllocationMode.PER_LINE)
    assert position.cost_object_id == "site-2"


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        AllocationStrategy().set_mode("halves")


def test_whole_mode_requires_an_object():
    strategy = AllocationStrategy()
    error = strategy.error([_valid()])
    assert error.rule == ValidationRule.MISSING_WHOLE_OBJECT
    strategy.select_whole("site-1")
    assert strategy.error([_valid()]) is None


def test_per_line_mode_requires_every_valid_position_assigned():
    strategy = AllocationStrategy()
    strategy.set_mode(AllocationMode.PER_LINE)
    assigned = _valid(object_id="site-1")
    missing = _valid("Gloves", "3")
    assert strategy.unassigned([assigned, missing]) == [missing]
    error = strategy.error([assigned, missing])
    assert error.rule == ValidationRule.UNALLOCATED_POSITIONS
    assert "(1 unassigned)" in error.message

    strategy.assign(missing, "site-2")
    assert strategy.error([assigned, missing]) is None


def test_whole_mode_ignores_per_line_gaps():
    strategy = AllocationStrategy()
    strategy.select_whole("site-1")
    assert strategy.unassigned([_valid()]) == []


def test_resolve_does_not_touch_positions():
    strategy = AllocationStrategy()
    position = _valid(object_id="site-2")
    strategy.select_whole("site-1")
    assert strategy.resolve([position]) == [(position, "site-1")]
    assert position.cost_object_id == "site-2"

    strategy.set_mode(AllocationMode.PER_LINE)
    assert strategy.resolve([position]) == [(position, "site-2")]


def test_rows_describe_each_position():
    strategy = AllocationStrategy()
    blank = Position(index=2)
    cable = _valid(object_id="site-1")
    rows = strategy.rows([cable, blank])
    assert rows[0].position_id == cable.id
    assert rows[0].line_total == Decimal("10")
    assert rows[0].cost_object_id == "site-1"
    assert rows[1].label == "Position 2"


def test_reset_returns_to_whole_invoice_without_object():
    strategy = AllocationStrategy()
    strategy.set_mode("split")
    strategy.select_whole("site-1")
    strategy.reset()
    assert strategy.mode == AllocationMode.WHOLE_INVOICE
    assert strategy.whole_object_id is None
