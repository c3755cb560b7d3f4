from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

DateLike = Union[str, date]


def _group_indian(digits: str) -> str:
    # last three digits, then groups of two: 12,34,567
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(cents: int, symbol: str = "₹") -> str:
    amount = (Decimal(cents) / Decimal(100)).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )
    sign = "-" if amount < 0 else ""
    whole, _, fraction = f"{abs(amount):.2f}".partition(".")
    fraction = fraction.rstrip("0")
    text = _group_indian(whole)
    if fraction:
        text = f"{text}.{fraction}"
    return f"{sign}{symbol}{text}"


def _to_date(value: DateLike) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value[:10])
    except (TypeError, ValueError):
        return None


def _format(value: DateLike, pattern: str) -> str:
    parsed = _to_date(value)
    if parsed is None:
        return str(value)
    return parsed.strftime(pattern)


def format_date(value: DateLike) -> str:
    return _format(value, "%b %d, %Y")


def format_short_date(value: DateLike) -> str:
    return _format(value, "%b %d")


def format_month(value: DateLike) -> str:
    return _format(value, "%B %Y")


def format_day(value: DateLike) -> str:
    return _format(value, "%a")


def format_date_time(value: DateLike, time_value: Optional[str]) -> str:
    if not time_value:
        return format_date(value)
    parsed = _to_date(value)
    if parsed is None:
        return format_date(value)
    try:
        moment = datetime.strptime(
            f"{parsed.isoformat()} {time_value}", "%Y-%m-%d %H:%M:%S"
        )
    except ValueError:
        return format_date(value)
    return moment.strftime("%b %d, %Y %H:%M")


def get_initials(name: Optional[str]) -> str:
    if not name or not name.strip():
        return "?"
    parts = name.strip().split()
    if len(parts) == 1:
        return parts[0][0].upper()
    return (parts[0][0] + parts[-1][0]).upper()


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."
