"""In-memory aggregation over expense collections.

Every helper takes an iterable of expense rows (ORM ``Expense`` objects or
anything exposing the same attributes) and never touches the database, so
the analytics endpoints can aggregate whatever set ``ExpenseService.list``
already returned. Amounts stay in integer minor units throughout.
"""

from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from datetime import date
from typing import Optional, Protocol

from formatters import format_short_date
from models import ShareFilter
from periods import Period, days_between


class ExpenseLike(Protocol):
    user_id: int
    amount_cents: int
    category_id: int
    subcategory_id: Optional[int]
    payment_source_id: Optional[int]
    credit_card_id: Optional[int]
    date: date
    paid_by_user_id: Optional[int]
    is_shared: bool
    amount_paid_by_user_cents: Optional[int]
    amount_paid_by_partner_cents: Optional[int]


def calculate_total(expenses: Iterable[ExpenseLike]) -> int:
    return sum(expense.amount_cents for expense in expenses)


def calculate_average(expenses: Sequence[ExpenseLike]) -> float:
    if not expenses:
        return 0.0
    return calculate_total(expenses) / len(expenses)


def calculate_daily_average(expenses: Sequence[ExpenseLike]) -> float:
    unique_days = {expense.date for expense in expenses}
    if not unique_days:
        return 0.0
    return calculate_total(expenses) / len(unique_days)


def calculate_percentage(value: float, total: float) -> float:
    if total == 0:
        return 0.0
    return (value / total) * 100


def group_by(
    expenses: Iterable[ExpenseLike],
    key: Callable[[ExpenseLike], Optional[Hashable]],
    *,
    skip_missing: bool = False,
) -> dict:
    grouped: dict = {}
    for expense in expenses:
        bucket = key(expense)
        if bucket is None and skip_missing:
            continue
        grouped[bucket] = grouped.get(bucket, 0) + expense.amount_cents
    return grouped


def group_by_category(expenses: Iterable[ExpenseLike]) -> dict[int, int]:
    return group_by(expenses, lambda e: e.category_id)


def group_by_subcategory(expenses: Iterable[ExpenseLike]) -> dict[int, int]:
    return group_by(expenses, lambda e: e.subcategory_id, skip_missing=True)


def group_by_user(expenses: Iterable[ExpenseLike]) -> dict[int, int]:
    return group_by(expenses, lambda e: e.user_id)


def group_by_date(expenses: Iterable[ExpenseLike]) -> dict[date, int]:
    return group_by(expenses, lambda e: e.date)


def group_by_payment_source(
    expenses: Iterable[ExpenseLike],
) -> dict[Optional[int], int]:
    # None collects expenses with no payment source recorded
    return group_by(expenses, lambda e: e.payment_source_id)


def group_by_credit_card(expenses: Iterable[ExpenseLike]) -> dict[int, int]:
    return group_by(expenses, lambda e: e.credit_card_id, skip_missing=True)


def top_categories(
    expenses: Iterable[ExpenseLike], limit: int = 5
) -> list[dict[str, int]]:
    grouped = group_by_category(expenses)
    ranked = sorted(grouped.items(), key=lambda item: item[1], reverse=True)
    return [
        {"category_id": category_id, "amount_cents": amount}
        for category_id, amount in ranked[:limit]
    ]


def filter_by_share(
    expenses: Iterable[ExpenseLike], share: ShareFilter
) -> list[ExpenseLike]:
    if share == ShareFilter.shared:
        return [e for e in expenses if e.is_shared is True]
    if share == ShareFilter.individual:
        return [e for e in expenses if not e.is_shared]
    return list(expenses)


def filter_by_period(
    expenses: Iterable[ExpenseLike], period: Period
) -> list[ExpenseLike]:
    return [e for e in expenses if period.contains(e.date)]


def distribution(
    grouped: Mapping[Optional[int], int],
    lookup: Mapping[int, Mapping[str, object]],
    *,
    id_field: str,
    fallback: Mapping[str, object],
) -> list[dict[str, object]]:
    """Turn grouped totals into display rows sorted by amount, largest first.

    ``lookup`` maps ids to their display attributes (name, icon, color);
    ids missing from it get ``fallback``.
    """
    total = sum(grouped.values())
    rows: list[dict[str, object]] = []
    for key, amount in grouped.items():
        attrs = lookup.get(key, fallback) if key is not None else fallback
        row: dict[str, object] = {id_field: key}
        row.update(attrs)
        row["amount_cents"] = amount
        row["percentage"] = calculate_percentage(amount, total)
        rows.append(row)
    rows.sort(key=lambda r: int(r["amount_cents"]), reverse=True)
    return rows


def daily_trend(
    expenses: Iterable[ExpenseLike], start: date, end: date
) -> list[dict[str, object]]:
    grouped = group_by_date(expenses)
    return [
        {
            "date": day.isoformat(),
            "label": format_short_date(day),
            "amount_cents": grouped.get(day, 0),
        }
        for day in days_between(start, end)
    ]


def date_trend(expenses: Iterable[ExpenseLike]) -> list[dict[str, object]]:
    grouped = group_by_date(expenses)
    return [
        {
            "date": day.isoformat(),
            "label": format_short_date(day),
            "amount_cents": amount,
        }
        for day, amount in sorted(grouped.items())
    ]


def other_member(
    owner_id: int, user_id: int, partner_user_id: Optional[int]
) -> Optional[int]:
    if owner_id == user_id:
        return partner_user_id
    if owner_id == partner_user_id:
        return user_id
    return None


def paid_shares(expense: ExpenseLike, other_id: Optional[int]) -> dict[int, int]:
    """How much of one expense each member paid.

    Split amounts are read from the owner's side: the "user" part belongs
    to ``expense.user_id`` and the "partner" part to ``other_id``. Without
    split amounts the whole expense is charged to ``paid_by_user_id``,
    falling back to the owner.
    """
    owner = expense.user_id
    user_part = expense.amount_paid_by_user_cents
    partner_part = expense.amount_paid_by_partner_cents
    if expense.is_shared and (user_part is not None or partner_part is not None):
        shares = {owner: user_part or 0}
        if other_id is not None and other_id != owner:
            shares[other_id] = partner_part or 0
        return shares
    payer = expense.paid_by_user_id or owner
    return {payer: expense.amount_cents}


def shared_split(
    expenses: Iterable[ExpenseLike],
    user_id: int,
    partner_user_id: Optional[int],
) -> dict[str, int]:
    """Shared vs individual totals and who paid the shared part.

    ``settlement_cents`` assumes shared costs are borne equally; a positive
    value is what the partner owes the user.
    """
    shared_total = 0
    individual_total = 0
    paid_by_user = 0
    paid_by_partner = 0
    for expense in expenses:
        if not expense.is_shared:
            individual_total += expense.amount_cents
            continue
        shared_total += expense.amount_cents
        shares = paid_shares(
            expense, other_member(expense.user_id, user_id, partner_user_id)
        )
        paid_by_user += shares.get(user_id, 0)
        if partner_user_id is not None:
            paid_by_partner += shares.get(partner_user_id, 0)
    # round toward zero
    diff = paid_by_user - paid_by_partner
    settlement = diff // 2 if diff >= 0 else -((-diff) // 2)
    return {
        "shared_cents": shared_total,
        "individual_cents": individual_total,
        "shared_paid_by_user_cents": paid_by_user,
        "shared_paid_by_partner_cents": paid_by_partner,
        "settlement_cents": settlement,
    }


def user_comparison(
    expenses: Iterable[ExpenseLike], names: Mapping[int, Optional[str]]
) -> list[dict[str, object]]:
    grouped = group_by_user(expenses)
    total = sum(grouped.values())
    rows = [
        {
            "user_id": user_id,
            "user_name": names.get(user_id) or "Unknown",
            "total_cents": amount,
            "percentage": calculate_percentage(amount, total),
        }
        for user_id, amount in grouped.items()
    ]
    rows.sort(key=lambda r: int(r["total_cents"]), reverse=True)
    return rows
