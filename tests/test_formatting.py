from datetime import date, datetime
from decimal import Decimal

import pytest

from config import CurrencySettings
from alp_bot.expenses.errors import InvalidNumberError
from alp_bot.expenses.formatting import (
    format_currency,
    format_date,
    format_date_api,
    format_datetime,
    parse_currency,
    parse_decimal,
    parse_display_date,
    parse_user_date,
    truncate,
)


class TestFormatCurrency:
    def test_groups_thousands_with_space_and_trailing_symbol(self):
        assert format_currency(1234.5) == "1 234.50 лв."

    def test_large_amount(self):
        assert format_currency(Decimal("1234567.891"), show_symbol=False) == "1 234 567.89"

    @pytest.mark.parametrize("value", [None, "abc", float("nan"), ""])
    def test_unusable_values_render_as_zero(self, value):
        assert format_currency(value) == "0.00 лв."

    def test_rounds_half_up(self):
        assert format_currency(Decimal("0.125")) == "0.13 лв."
        assert format_currency(Decimal("2.675")) == "2.68 лв."

    def test_amount_wider_than_the_default_precision(self):
        assert format_currency(Decimal("1" + "0" * 29)) == "100 000 000 000 000 000 000 000 000 000.00 лв."
        assert format_currency(Decimal("-12345678901234567890123456789.005"), show_symbol=False) == (
            "-12 345 678 901 234 567 890 123 456 789.01"
        )

    def test_negative(self):
        assert format_currency(-1234.5) == "-1 234.50 лв."

    def test_other_currency(self):
        eur = CurrencySettings(code="EUR", symbol="€", decimals=2)
        assert format_currency(12, eur) == "12.00 €"


class TestParsing:
    def test_parse_currency_strips_symbol_and_spaces(self):
        assert parse_currency("1 234.50 лв.") == Decimal("1234.50")

    def test_parse_currency_accepts_comma(self):
        assert parse_currency("12,5") == Decimal("12.5")

    @pytest.mark.parametrize("value", ["", None, "n/a"])
    def test_parse_currency_junk_is_zero(self, value):
        assert parse_currency(value) == 0

    def test_parse_decimal_lenient(self):
        assert parse_decimal(" 2 ") == Decimal("2")
        assert parse_decimal("10,50") == Decimal("10.50")
        assert parse_decimal("abc") == 0
        assert parse_decimal(None) == 0

    def test_parse_decimal_passes_numbers_through(self):
        assert parse_decimal(3) == Decimal(3)
        assert parse_decimal(0.1) == Decimal("0.1")

    def test_parse_decimal_strict_rejects_junk(self):
        with pytest.raises(InvalidNumberError) as exc:
            parse_decimal("ten", strict=True, field="quantity")
        assert exc.value.field == "quantity"
        assert exc.value.raw_value == "ten"

    def test_strict_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_decimal("1.2.3", strict=True)


class TestDates:
    def test_format_date(self):
        assert format_date(date(2025, 1, 10)) == "10.01.2025"
        assert format_date("2025-01-10") == "10.01.2025"
        assert format_date(datetime(2025, 1, 10, 8, 30)) == "10.01.2025"

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_format_date_invalid(self, value):
        assert format_date(value) == ""

    def test_format_date_api(self):
        assert format_date_api(date(2025, 1, 10)) == "2025-01-10"

    def test_format_datetime(self):
        assert format_datetime(datetime(2025, 1, 10, 14, 5)) == "10.01.2025 14:05"
        assert format_datetime("2025-01-10T14:05:00Z") == "10.01.2025 14:05"
        assert format_datetime("nope") == ""

    def test_parse_display_date(self):
        assert parse_display_date("10.01.2025") == date(2025, 1, 10)
        assert parse_display_date("2025-01-10") is None
        assert parse_display_date("") is None

    @pytest.mark.parametrize("text", ["10.01.2025", "2025-01-10", "10/01/2025", " 10.1.2025 "])
    def test_parse_user_date_is_day_first(self, text):
        assert parse_user_date(text) == date(2025, 1, 10)

    @pytest.mark.parametrize("text", ["", "   ", "not a date", "31.02.2025"])
    def test_parse_user_date_rejects_garbage(self, text):
        assert parse_user_date(text) is None


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("a" * 60, 10) == "aaaaaaa..."
    assert truncate("", 10) == ""
