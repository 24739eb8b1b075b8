"""Money and date formatting helpers.

Display formats follow Bulgarian conventions: amounts as ``1 234.50 лв.``
(space-grouped thousands, trailing symbol) and dates as ``DD.MM.YYYY``.
The backend speaks ``YYYY-MM-DD`` and plain decimals.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext

from dateutil import parser as date_parser

from config import CurrencySettings
from alp_bot.expenses.errors import InvalidNumberError

DEFAULT_CURRENCY = CurrencySettings()

DISPLAY_DATE_FORMAT = "%d.%m.%Y"
API_DATE_FORMAT = "%Y-%m-%d"


# --- Numbers ---


def to_decimal(value) -> Decimal | None:
    """Convert int/float/str/Decimal to a finite Decimal, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, float):
            number = Decimal(str(value))
        else:
            number = Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not number.is_finite():
        return None
    return number


def parse_decimal(raw, strict: bool = False, field: str = "value") -> Decimal:
    """Parse user input as a decimal number.

    Accepts ``,`` as decimal separator and ignores spaces. In lenient mode
    anything unparseable becomes 0; in strict mode it raises
    InvalidNumberError.
    """
    if isinstance(raw, (int, float, Decimal)) and not isinstance(raw, bool):
        number = to_decimal(raw)
    else:
        text = "".join(str(raw or "").split()).replace(",", ".")
        number = to_decimal(text) if text else None

    if number is None:
        if strict:
            raise InvalidNumberError(field, raw)
        return Decimal(0)
    return number


def format_amount(amount, decimals: int = 2) -> str:
    """Fixed decimals, thousands grouped with a single space."""
    number = to_decimal(amount)
    if number is None:
        number = Decimal(0)
    quant = Decimal(1).scaleb(-decimals)
    with localcontext() as ctx:
        # quantize needs room for every integer digit plus the decimals
        ctx.prec = max(ctx.prec, number.adjusted() + decimals + 2)
        number = number.quantize(quant, rounding=ROUND_HALF_UP)
    sign = "-" if number < 0 else ""
    grouped = f"{number.copy_abs():,.{decimals}f}".replace(",", " ")
    return f"{sign}{grouped}"


def format_currency(amount, currency: CurrencySettings | None = None, show_symbol: bool = True) -> str:
    currency = currency or DEFAULT_CURRENCY
    text = format_amount(amount, currency.decimals)
    return f"{text} {currency.symbol}" if show_symbol else text


def parse_currency(value, currency: CurrencySettings | None = None) -> Decimal:
    """Parse a formatted amount back to a Decimal; empty or junk is 0."""
    currency = currency or DEFAULT_CURRENCY
    if not value:
        return Decimal(0)
    cleaned = "".join(str(value).replace(currency.symbol, "").split())
    return parse_decimal(cleaned)


# --- Dates ---


def _coerce_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return None


def format_date(value) -> str:
    """Display format (DD.MM.YYYY)."""
    d = _coerce_date(value)
    return d.strftime(DISPLAY_DATE_FORMAT) if d else ""


def format_date_api(value) -> str:
    """API format (YYYY-MM-DD)."""
    d = _coerce_date(value)
    return d.strftime(API_DATE_FORMAT) if d else ""


def format_datetime(value) -> str:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return ""
    if not isinstance(value, datetime):
        return ""
    return f"{format_date(value)} {value.strftime('%H:%M')}"


def today() -> str:
    return format_date_api(date.today())


def parse_display_date(text: str) -> date | None:
    """Parse DD.MM.YYYY strictly."""
    if not text:
        return None
    try:
        return datetime.strptime(text.strip(), DISPLAY_DATE_FORMAT).date()
    except ValueError:
        return None


def parse_user_date(text: str) -> date | None:
    """Parse whatever date a user typed, day first (10.01.2025, 2025-01-10...)."""
    if not text or not text.strip():
        return None
    text = text.strip()
    # ISO input is unambiguous; dayfirst would swap its month and day
    iso = _coerce_date(text) if len(text) == 10 and text[4] == "-" else None
    if iso:
        return iso
    try:
        return date_parser.parse(text, dayfirst=True).date()
    except (ValueError, OverflowError):
        return None


# --- Strings ---


def truncate(text: str, max_length: int = 50) -> str:
    if not text or len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
