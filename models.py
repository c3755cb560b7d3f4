from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class PartnerStatus(str, Enum):
    pending = "pending"
    active = "active"
    blocked = "blocked"


class InvitationStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    expired = "expired"


class PaymentSourceType(str, Enum):
    credit_card = "credit_card"
    savings_account = "savings_account"


class InvestmentTransactionType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"


class ShareFilter(str, Enum):
    all = "all"
    shared = "shared"
    individual = "individual"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(120))
    password_hash: Mapped[str] = mapped_column(String(100), nullable=False)


class Partner(Base, TimestampMixin):
    __tablename__ = "partners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user1_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    user2_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    status: Mapped[PartnerStatus] = mapped_column(
        SAEnum(PartnerStatus), nullable=False, default=PartnerStatus.pending
    )
    initiated_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    __table_args__ = (
        CheckConstraint("user1_id <> user2_id", name="ck_partner_distinct_users"),
        Index("ix_partners_user1_status", "user1_id", "status"),
        Index("ix_partners_user2_status", "user2_id", "status"),
    )

    def member_ids(self) -> tuple[int, int]:
        return (self.user1_id, self.user2_id)

    def other_member(self, user_id: int) -> int:
        return self.user2_id if self.user1_id == user_id else self.user1_id


class PartnerInvitation(Base):
    __tablename__ = "partner_invitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    from_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    to_email: Mapped[str] = mapped_column(String(255), nullable=False)
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[InvitationStatus] = mapped_column(
        SAEnum(InvitationStatus), nullable=False, default=InvitationStatus.pending
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (Index("ix_invitations_status_expires", "status", "expires_at"),)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # NULL owner marks a default category shared by every account.
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str] = mapped_column(String(16), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False)

    subcategories: Mapped[list["Subcategory"]] = relationship(
        "Subcategory",
        back_populates="category",
        cascade="all, delete-orphan",
        order_by="Subcategory.name",
    )


class Subcategory(Base, TimestampMixin):
    __tablename__ = "subcategories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str] = mapped_column(String(16), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False)

    category: Mapped["Category"] = relationship(
        "Category", back_populates="subcategories"
    )


class PaymentSource(Base, TimestampMixin):
    __tablename__ = "payment_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[PaymentSourceType] = mapped_column(
        SAEnum(PaymentSourceType), nullable=False
    )
    icon: Mapped[Optional[str]] = mapped_column(String(16))

    __table_args__ = (
        UniqueConstraint("type", "name", name="uq_payment_source_type_name"),
    )


class CreditCard(Base, TimestampMixin):
    __tablename__ = "credit_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    card_name: Mapped[str] = mapped_column(String(100), nullable=False)
    card_number_last4: Mapped[Optional[str]] = mapped_column(String(4))
    credit_limit_cents: Mapped[Optional[int]] = mapped_column(Integer)
    opening_balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    current_balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    due_date: Mapped[Optional[date]] = mapped_column(Date)

    repayments: Mapped[list["CreditCardRepayment"]] = relationship(
        "CreditCardRepayment",
        back_populates="credit_card",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "current_balance_cents >= 0", name="ck_credit_card_balance_positive"
        ),
    )


class CreditCardRepayment(Base, TimestampMixin):
    __tablename__ = "credit_card_repayments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    credit_card_id: Mapped[int] = mapped_column(
        ForeignKey("credit_cards.id"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    credit_card: Mapped["CreditCard"] = relationship(
        "CreditCard", back_populates="repayments"
    )

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_repayment_amount_positive"),
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    partner_id: Mapped[Optional[int]] = mapped_column(ForeignKey("partners.id"))
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    subcategory_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("subcategories.id")
    )
    payment_source_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_sources.id")
    )
    credit_card_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("credit_cards.id")
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    time: Mapped[Optional[str]] = mapped_column(String(8))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    custom_icon: Mapped[Optional[str]] = mapped_column(String(16))
    paid_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    is_shared: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    amount_paid_by_user_cents: Mapped[Optional[int]] = mapped_column(Integer)
    amount_paid_by_partner_cents: Mapped[Optional[int]] = mapped_column(Integer)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    category: Mapped["Category"] = relationship("Category")
    subcategory: Mapped[Optional["Subcategory"]] = relationship("Subcategory")
    payment_source: Mapped[Optional["PaymentSource"]] = relationship("PaymentSource")
    credit_card: Mapped[Optional["CreditCard"]] = relationship("CreditCard")

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "date"),
        Index("ix_expenses_user_category_date", "user_id", "category_id", "date"),
        Index("ix_expenses_credit_card", "credit_card_id"),
        CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
    )


class InvestmentType(Base, TimestampMixin):
    __tablename__ = "investment_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    icon: Mapped[str] = mapped_column(String(16), nullable=False)


class Investment(Base, TimestampMixin):
    __tablename__ = "investments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    investment_type_id: Mapped[int] = mapped_column(
        ForeignKey("investment_types.id"), nullable=False
    )
    maturity_date: Mapped[Optional[date]] = mapped_column(Date)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    transaction_type: Mapped[InvestmentTransactionType] = mapped_column(
        SAEnum(InvestmentTransactionType), nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    interest_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 3))
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    investment_type: Mapped["InvestmentType"] = relationship("InvestmentType")

    __table_args__ = (
        Index("ix_investments_user_date", "user_id", "date"),
        CheckConstraint("amount_cents > 0", name="ck_investments_amount_positive"),
    )
