import re
from datetime import date, datetime
from zoneinfo import ZoneInfo

from babel.dates import format_date

from recordbook.core.config import settings

DATE_LOCALE = "id"
LONG_DATE_PATTERN = "EEEE, dd MMMM yyyy"
SHORT_DATE_PATTERN = "EEEE, dd MMM yyyy"

_NON_DIGITS = re.compile(r"\D")


def group_thousands(value: int) -> str:
    return f"{abs(int(value)):,}".replace(",", ".")


def format_idr(amount: int) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}Rp {group_thousands(amount)}"


def format_difference(value: int) -> str:
    if value > 0:
        return f"+Rp {group_thousands(value)}"
    if value < 0:
        return f"-Rp {group_thousands(value)}"
    return "Rp 0"


def parse_idr(text: str | int | None) -> int:
    """Read an amount typed as ``Rp 1.250.000`` (or plain digits) back into an int.

    Anything that is not a digit is ignored except a leading minus, which is kept
    so negative input still reaches validation. Blank input reads as 0.
    """
    if text is None:
        return 0
    if isinstance(text, int):
        return text
    raw = str(text).strip()
    digits = _NON_DIGITS.sub("", raw)
    if not digits:
        return 0
    value = int(digits)
    return -value if raw.startswith("-") else value


def format_long_date(value: date | str) -> str:
    """``Minggu, 18 Oktober 2026``"""
    if isinstance(value, str):
        value = date.fromisoformat(value)
    return format_date(value, LONG_DATE_PATTERN, locale=DATE_LOCALE)


def format_short_date(value: date | str) -> str:
    """``Minggu, 18 Okt 2026``, used in the records table."""
    if isinstance(value, str):
        value = date.fromisoformat(value)
    return format_date(value, SHORT_DATE_PATTERN, locale=DATE_LOCALE)


def parse_client_date(raw: str) -> date | datetime:
    """Parse a submitted date: ``YYYY-MM-DD`` or an ISO-8601 datetime (``Z`` allowed)."""
    text = raw.strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def to_local_day(value: date | datetime, tz: str | None = None) -> date:
    """Reduce a submitted date or instant to a calendar day in the fixed timezone.

    Aware datetimes are converted into ``tz`` first, naive ones are taken as wall
    clock time already in ``tz``, plain dates pass through unchanged.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(ZoneInfo(tz or settings.tz)).date()
    return value


def local_today(tz: str | None = None) -> date:
    return datetime.now(ZoneInfo(tz or settings.tz)).date()
