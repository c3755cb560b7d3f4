import csv
import re
from io import StringIO
from typing import Mapping, Optional, Sequence

from models import Expense


def sanitize_csv_value(value: str) -> str:
    """
    Neutralise spreadsheet formula injection by prefixing risky cells with a tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    if value.startswith(("=", "+", "-", "@", "\t", "\r")):
        return "\t" + value

    for pattern in (r"^cmd\s*", r"^powershell\s*", r"^https?://"):
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


EXPORT_HEADER = [
    "Date",
    "Time",
    "Amount",
    "Category",
    "Subcategory",
    "PaymentSource",
    "CreditCard",
    "Shared",
    "PaidByUser",
    "PaidByPartner",
    "AddedBy",
    "Notes",
]


def _money(cents: Optional[int]) -> str:
    return "" if cents is None else f"{cents / 100:.2f}"


def export_expenses(
    expenses: Sequence[Expense], names: Optional[Mapping[int, Optional[str]]] = None
) -> str:
    names = names or {}
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADER)
    for expense in expenses:
        writer.writerow(
            [
                expense.date.isoformat(),
                expense.time or "",
                _money(expense.amount_cents),
                sanitize_csv_value(expense.category.name if expense.category else ""),
                sanitize_csv_value(
                    expense.subcategory.name if expense.subcategory else ""
                ),
                sanitize_csv_value(
                    expense.payment_source.name if expense.payment_source else ""
                ),
                sanitize_csv_value(
                    expense.credit_card.card_name if expense.credit_card else ""
                ),
                "1" if expense.is_shared else "0",
                _money(expense.amount_paid_by_user_cents),
                _money(expense.amount_paid_by_partner_cents),
                sanitize_csv_value(names.get(expense.user_id) or ""),
                sanitize_csv_value(expense.notes or ""),
            ]
        )
    return output.getvalue()
