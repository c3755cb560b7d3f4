import re
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import InvestmentTransactionType, ShareFilter

HEX_COLOR_RE = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")
TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d):([0-5]\d)$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _clean_name(value: str, label: str) -> str:
    clean = (value or "").strip()
    if not clean:
        raise ValueError(f"{label} name is required")
    return clean


def _check_color(value: str) -> str:
    if not value:
        raise ValueError("Color is required")
    if not HEX_COLOR_RE.match(value):
        raise ValueError("Invalid color format")
    return value


class SignupIn(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    full_name: Optional[str] = Field(default=None, max_length=120)
    invitation_token: Optional[str] = Field(default=None, max_length=64)

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        clean = value.strip().lower()
        if not EMAIL_RE.match(clean):
            raise ValueError("Please enter a valid email address.")
        return clean


class LoginIn(BaseModel):
    email: str
    password: str


class InvitationIn(BaseModel):
    to_email: str = Field(..., max_length=255)


class CategoryIn(BaseModel):
    name: str = Field(..., max_length=100)
    icon: str = Field(..., max_length=16)
    color: str = Field(..., max_length=7)

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _clean_name(value, "Category")

    @field_validator("icon")
    @classmethod
    def _icon(cls, value: str) -> str:
        if not value:
            raise ValueError("Icon is required")
        return value

    @field_validator("color")
    @classmethod
    def _color(cls, value: str) -> str:
        return _check_color(value)


class SubcategoryIn(CategoryIn):
    category_id: int

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _clean_name(value, "Subcategory")


class SubcategoryUpdateIn(CategoryIn):
    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _clean_name(value, "Subcategory")


class ExpenseIn(BaseModel):
    amount_cents: int
    category_id: int
    subcategory_id: Optional[int] = None
    payment_source_id: Optional[int] = None
    credit_card_id: Optional[int] = None
    date: date
    time: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    custom_icon: Optional[str] = Field(default=None, max_length=16)
    paid_by_user_id: Optional[int] = None
    is_shared: bool = False
    amount_paid_by_user_cents: Optional[int] = None
    amount_paid_by_partner_cents: Optional[int] = None

    @field_validator("amount_cents")
    @classmethod
    def _amount(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Amount must be greater than 0")
        return value

    @field_validator("time")
    @classmethod
    def _time(cls, value: Optional[str]) -> Optional[str]:
        if value and not TIME_RE.match(value):
            raise ValueError("Invalid time format")
        return value or None

    @model_validator(mode="after")
    def _split(self) -> "ExpenseIn":
        if not self.is_shared:
            self.amount_paid_by_user_cents = None
            self.amount_paid_by_partner_cents = None
            return self
        errors = split_errors(
            self.amount_cents,
            self.amount_paid_by_user_cents,
            self.amount_paid_by_partner_cents,
        )
        if errors:
            raise ValueError("; ".join(errors))
        return self


def split_errors(
    total_cents: int,
    user_cents: Optional[int],
    partner_cents: Optional[int],
) -> list[str]:
    """Check the two paid-by amounts of a shared expense against its total.

    Nothing is checked when neither amount is given; a missing side counts
    as zero once the other one is present.
    """
    if user_cents is None and partner_cents is None:
        return []
    errors: list[str] = []
    user_part = user_cents or 0
    partner_part = partner_cents or 0
    split_total = user_part + partner_part
    if split_total != total_cents:
        errors.append(
            f"Split amounts ({split_total / 100:.2f}) must equal total expense "
            f"({total_cents / 100:.2f})"
        )
    if user_part < 0 or partner_part < 0:
        errors.append("Split amounts cannot be negative")
    if user_part > total_cents or partner_part > total_cents:
        errors.append("Split amounts cannot exceed total expense amount")
    return errors


class ExpenseFilters(BaseModel):
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    user_id: Optional[int] = None
    payment_source_id: Optional[int] = None
    credit_card_id: Optional[int] = None
    share: ShareFilter = ShareFilter.all


class InvestmentIn(BaseModel):
    investment_type_id: int
    amount_cents: int = Field(..., gt=0)
    date: date
    transaction_type: InvestmentTransactionType
    notes: Optional[str] = Field(default=None, max_length=500)
    maturity_date: Optional[date] = None
    interest_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)


class InvestmentFilters(BaseModel):
    investment_type_id: Optional[int] = None
    transaction_type: Optional[InvestmentTransactionType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class CreditCardIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    card_name: str = Field(..., min_length=1, max_length=100)
    card_number_last4: Optional[str] = Field(default=None, pattern=r"^\d{4}$")
    credit_limit_cents: Optional[int] = Field(default=None, ge=0)
    opening_balance_cents: int = Field(default=0, ge=0)
    due_date: Optional[date] = None


class CreditCardRepaymentIn(BaseModel):
    credit_card_id: int
    amount_cents: int = Field(..., gt=0)
    payment_date: date
    notes: Optional[str] = Field(default=None, max_length=500)
