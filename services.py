from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, joinedload

from calculations import (
    calculate_daily_average,
    calculate_percentage,
    calculate_total,
    date_trend,
    daily_trend,
    distribution,
    filter_by_period,
    filter_by_share,
    group_by_category,
    group_by_credit_card,
    group_by_payment_source,
    group_by_subcategory,
    shared_split,
    top_categories,
    user_comparison,
)
from config import get_settings
from models import (
    Category,
    CreditCard,
    CreditCardRepayment,
    Expense,
    InvestmentTransactionType,
    Investment,
    InvestmentType,
    InvitationStatus,
    Partner,
    PartnerInvitation,
    PartnerStatus,
    PaymentSource,
    PaymentSourceType,
    ShareFilter,
    Subcategory,
    User,
)
from periods import (
    AnalyticsPeriod,
    Period,
    analytics_window,
    local_today,
    month_end,
    month_start,
    months_back,
)
from schemas import (
    EMAIL_RE,
    CategoryIn,
    CreditCardIn,
    CreditCardRepaymentIn,
    ExpenseFilters,
    ExpenseIn,
    InvestmentFilters,
    InvestmentIn,
    SignupIn,
    SubcategoryIn,
    SubcategoryUpdateIn,
)
from sessions import generate_invitation_token, hash_password, verify_password

logger = logging.getLogger(__name__)


class NotFoundError(ValueError):
    pass


class PermissionDeniedError(ValueError):
    pass


DEFAULT_CATEGORIES = [
    ("Bills & Utilities", "💡", "#EAB308"),
    ("Entertainment", "🎬", "#8B5CF6"),
    ("Food & Dining", "🍔", "#F97316"),
    ("Groceries", "🛒", "#22C55E"),
    ("Health", "💊", "#10B981"),
    ("Shopping", "🛍️", "#EC4899"),
    ("Transport", "🚗", "#3B82F6"),
    ("Other", "💰", "#6B7280"),
]

DEFAULT_PAYMENT_SOURCES = [
    ("Credit Card", PaymentSourceType.credit_card, "💳"),
    ("Savings Account", PaymentSourceType.savings_account, "🏦"),
]

DEFAULT_INVESTMENT_TYPES = [
    ("Fixed Deposit", "🏦"),
    ("Gold", "🪙"),
    ("Mutual Fund", "📈"),
    ("PPF", "🏛️"),
    ("Recurring Deposit", "🔁"),
    ("Stocks", "📊"),
]

UNKNOWN_CATEGORY = {"name": "Unknown", "icon": "💰", "color": "#999"}
UNASSIGNED_SOURCE = {"name": "Unassigned", "type": None, "icon": None}


def seed_reference_data(session: Session) -> None:
    has_defaults = session.scalar(
        select(func.count(Category.id)).where(Category.user_id.is_(None))
    )
    if not has_defaults:
        for name, icon, color in DEFAULT_CATEGORIES:
            session.add(Category(user_id=None, name=name, icon=icon, color=color))

    PaymentSourceService(session).seed_defaults()

    existing_types = set(session.scalars(select(InvestmentType.name)).all())
    for name, icon in DEFAULT_INVESTMENT_TYPES:
        if name not in existing_types:
            session.add(InvestmentType(name=name, icon=icon))
    session.commit()


def expire_stale_invitations(session: Session, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    result = session.execute(
        update(PartnerInvitation)
        .where(
            PartnerInvitation.status == InvitationStatus.pending,
            PartnerInvitation.expires_at < now,
        )
        .values(status=InvitationStatus.expired)
    )
    session.commit()
    return int(result.rowcount or 0)


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )

    def signup(self, data: SignupIn) -> User:
        if self.by_email(data.email):
            raise ValueError("An account with this email already exists")
        user = User(
            email=data.email,
            full_name=(data.full_name or "").strip() or None,
            password_hash=hash_password(data.password),
        )
        self.session.add(user)
        self.session.flush()
        if data.invitation_token:
            try:
                PartnerService(self.session, user.id).accept(
                    data.invitation_token, commit=False
                )
            except ValueError:
                self.session.rollback()
                raise
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"signup: user_id={user.id} invited={bool(data.invitation_token)}")
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = self.by_email(email)
        if not user or not verify_password(password, user.password_hash):
            raise PermissionDeniedError("Invalid credentials")
        return user

    def names(self, user_ids: list[int]) -> dict[int, Optional[str]]:
        if not user_ids:
            return {}
        rows = self.session.execute(
            select(User.id, User.full_name, User.email).where(User.id.in_(user_ids))
        ).all()
        return {row.id: row.full_name or row.email for row in rows}


class PartnerService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def current(self) -> Optional[Partner]:
        stmt = (
            select(Partner)
            .where(
                or_(Partner.user1_id == self.user_id, Partner.user2_id == self.user_id),
                Partner.status == PartnerStatus.active,
            )
            .order_by(Partner.id)
        )
        return self.session.scalars(stmt).first()

    def partner_user_id(self) -> Optional[int]:
        partner = self.current()
        return partner.other_member(self.user_id) if partner else None

    def member_ids(self) -> list[int]:
        partner = self.current()
        if not partner:
            return [self.user_id]
        return list(partner.member_ids())

    def _has_active(self, user_id: int) -> bool:
        return PartnerService(self.session, user_id).current() is not None

    def signup_link(self, invitation: PartnerInvitation) -> str:
        return f"{get_settings().site_url}/signup?token={invitation.token}"

    def invite(self, to_email: str, now: Optional[datetime] = None) -> PartnerInvitation:
        now = now or datetime.utcnow()
        if self.current():
            raise ValueError(
                "You already have a partner linked. "
                "Please remove the existing partnership first."
            )
        user = UserService(self.session).get(self.user_id)
        clean_email = to_email.strip().lower()
        if clean_email == user.email.lower():
            raise ValueError("You cannot invite yourself.")
        if not EMAIL_RE.match(clean_email):
            raise ValueError("Please enter a valid email address.")

        invitation = PartnerInvitation(
            from_user_id=self.user_id,
            to_email=clean_email,
            token=generate_invitation_token(),
            status=InvitationStatus.pending,
            expires_at=now + timedelta(days=get_settings().invitation_ttl_days),
            created_at=now,
        )
        self.session.add(invitation)
        self.session.commit()
        self.session.refresh(invitation)
        logger.info(
            f"partner_invite: from_user_id={self.user_id} invitation_id={invitation.id}"
        )
        return invitation

    def _pending_invitation(
        self, token: str, now: datetime, *, commit: bool = True
    ) -> PartnerInvitation:
        invitation = self.session.scalar(
            select(PartnerInvitation).where(PartnerInvitation.token == token)
        )
        if not invitation:
            raise NotFoundError("Invitation not found")
        if invitation.status != InvitationStatus.pending:
            raise ValueError(f"Invitation is {invitation.status.value}")
        if invitation.expires_at < now:
            if commit:
                invitation.status = InvitationStatus.expired
                self.session.commit()
            raise ValueError("Invitation has expired")
        user = UserService(self.session).get(self.user_id)
        if invitation.to_email != user.email.lower():
            raise PermissionDeniedError("This invitation was sent to another email")
        if invitation.from_user_id == self.user_id:
            raise ValueError("You cannot accept your own invitation")
        return invitation

    def accept(
        self, token: str, now: Optional[datetime] = None, *, commit: bool = True
    ) -> Partner:
        """Link the inviter and the current user.

        With ``commit=False`` the partnership is only flushed so signup can
        create the account and the link in one transaction.
        """
        now = now or datetime.utcnow()
        invitation = self._pending_invitation(token, now, commit=commit)
        if self.current():
            raise ValueError("You already have a partner linked")
        if self._has_active(invitation.from_user_id):
            raise ValueError("The inviting user already has a partner linked")

        partner = Partner(
            user1_id=invitation.from_user_id,
            user2_id=self.user_id,
            status=PartnerStatus.active,
            initiated_by=invitation.from_user_id,
        )
        invitation.status = InvitationStatus.accepted
        self.session.add(partner)
        if commit:
            self.session.commit()
            self.session.refresh(partner)
        else:
            self.session.flush()
        logger.info(
            f"partner_link: partner_id={partner.id} "
            f"user1_id={partner.user1_id} user2_id={partner.user2_id}"
        )
        return partner

    def reject(self, token: str, now: Optional[datetime] = None) -> None:
        invitation = self._pending_invitation(token, now or datetime.utcnow())
        invitation.status = InvitationStatus.rejected
        self.session.commit()

    def list_invitations(self) -> list[PartnerInvitation]:
        stmt = (
            select(PartnerInvitation)
            .where(PartnerInvitation.from_user_id == self.user_id)
            .order_by(PartnerInvitation.created_at.desc(), PartnerInvitation.id.desc())
        )
        return self.session.scalars(stmt).all()

    def incoming_invitations(self) -> list[PartnerInvitation]:
        user = UserService(self.session).get(self.user_id)
        stmt = (
            select(PartnerInvitation)
            .where(
                PartnerInvitation.to_email == user.email.lower(),
                PartnerInvitation.status == InvitationStatus.pending,
            )
            .order_by(PartnerInvitation.created_at.desc())
        )
        return self.session.scalars(stmt).all()

    def unlink(self) -> None:
        partner = self.current()
        if not partner:
            raise NotFoundError("No partner linked")
        partner.status = PartnerStatus.blocked
        self.session.commit()
        logger.info(f"partner_unlink: partner_id={partner.id} by_user_id={self.user_id}")

    def expire_stale(self, now: Optional[datetime] = None) -> int:
        return expire_stale_invitations(self.session, now)


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(or_(Category.user_id.is_(None), Category.user_id == self.user_id))
            .order_by(Category.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id not in (None, self.user_id):
            raise NotFoundError("Category not found")
        return category

    def _owned(self, category_id: int, action: str) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFoundError("Category not found")
        if category.user_id != self.user_id:
            raise PermissionDeniedError(f"You can only {action} your own categories")
        return category

    def create(self, data: CategoryIn) -> Category:
        category = Category(
            user_id=self.user_id, name=data.name, icon=data.icon, color=data.color
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self._owned(category_id, "edit")
        category.name = data.name
        category.icon = data.icon
        category.color = data.color
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self._owned(category_id, "delete")
        in_use = self.session.scalar(
            select(Expense.id).where(Expense.category_id == category.id).limit(1)
        )
        if in_use:
            raise ValueError("Cannot delete category that is being used by expenses")
        self.session.delete(category)
        self.session.commit()


class SubcategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.categories = CategoryService(session, user_id)

    def list_all(self) -> list[Subcategory]:
        stmt = (
            select(Subcategory)
            .join(Category, Category.id == Subcategory.category_id)
            .where(or_(Category.user_id.is_(None), Category.user_id == self.user_id))
            .order_by(Subcategory.name)
        )
        return self.session.scalars(stmt).all()

    def for_category(self, category_id: int) -> list[Subcategory]:
        return [sub for sub in self.list_all() if sub.category_id == category_id]

    def get(self, subcategory_id: int) -> Subcategory:
        subcategory = self.session.get(Subcategory, subcategory_id)
        if not subcategory:
            raise NotFoundError("Subcategory not found")
        try:
            self.categories.get(subcategory.category_id)
        except NotFoundError as exc:
            raise NotFoundError("Subcategory not found") from exc
        return subcategory

    def create(self, data: SubcategoryIn) -> Subcategory:
        category = self.categories.get(data.category_id)
        subcategory = Subcategory(
            category_id=category.id, name=data.name, icon=data.icon, color=data.color
        )
        self.session.add(subcategory)
        self.session.commit()
        self.session.refresh(subcategory)
        return subcategory

    def update(self, subcategory_id: int, data: SubcategoryUpdateIn) -> Subcategory:
        subcategory = self.get(subcategory_id)
        subcategory.name = data.name
        subcategory.icon = data.icon
        subcategory.color = data.color
        self.session.commit()
        self.session.refresh(subcategory)
        return subcategory

    def delete(self, subcategory_id: int) -> None:
        subcategory = self.get(subcategory_id)
        in_use = self.session.scalar(
            select(Expense.id).where(Expense.subcategory_id == subcategory.id).limit(1)
        )
        if in_use:
            raise ValueError("Cannot delete subcategory that is being used by expenses")
        self.session.delete(subcategory)
        self.session.commit()


class PaymentSourceService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[PaymentSource]:
        stmt = select(PaymentSource).order_by(PaymentSource.type, PaymentSource.name)
        return self.session.scalars(stmt).all()

    def get(self, source_id: int) -> PaymentSource:
        source = self.session.get(PaymentSource, source_id)
        if not source:
            raise NotFoundError("Payment source not found")
        return source

    def seed_defaults(self) -> int:
        existing = {
            (row.type, row.name) for row in self.session.scalars(select(PaymentSource))
        }
        added = 0
        for name, source_type, icon in DEFAULT_PAYMENT_SOURCES:
            if (source_type, name) not in existing:
                self.session.add(PaymentSource(name=name, type=source_type, icon=icon))
                added += 1
        self.session.flush()
        return added


class CreditCardService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[CreditCard]:
        stmt = (
            select(CreditCard)
            .where(CreditCard.user_id == self.user_id)
            .order_by(CreditCard.card_name)
        )
        return self.session.scalars(stmt).all()

    def get(self, card_id: int) -> CreditCard:
        card = self.session.get(CreditCard, card_id)
        if not card or card.user_id != self.user_id:
            raise NotFoundError("Credit card not found")
        return card

    def create(self, data: CreditCardIn) -> CreditCard:
        card = CreditCard(
            user_id=self.user_id,
            card_name=data.card_name.strip(),
            card_number_last4=data.card_number_last4,
            credit_limit_cents=data.credit_limit_cents,
            opening_balance_cents=data.opening_balance_cents,
            current_balance_cents=data.opening_balance_cents,
            due_date=data.due_date,
        )
        self.session.add(card)
        self.session.commit()
        self.session.refresh(card)
        return card

    def update(self, card_id: int, data: CreditCardIn) -> CreditCard:
        card = self.get(card_id)
        card.card_name = data.card_name.strip()
        card.card_number_last4 = data.card_number_last4
        card.credit_limit_cents = data.credit_limit_cents
        card.opening_balance_cents = data.opening_balance_cents
        card.due_date = data.due_date
        self.session.flush()
        self.recompute_balance(card.id)
        self.session.commit()
        self.session.refresh(card)
        return card

    def delete(self, card_id: int) -> None:
        card = self.get(card_id)
        self.session.execute(
            update(Expense)
            .where(Expense.credit_card_id == card.id)
            .values(credit_card_id=None)
        )
        self.session.delete(card)
        self.session.commit()

    def recompute_balance(self, card_id: int) -> int:
        """Rebuild a card's running balance from its opening balance, the live
        expenses charged to it and its repayments. Never goes below zero."""
        card = self.session.get(CreditCard, card_id)
        if not card:
            raise NotFoundError("Credit card not found")
        charged = self.session.scalar(
            select(func.coalesce(func.sum(Expense.amount_cents), 0)).where(
                Expense.credit_card_id == card.id, Expense.deleted_at.is_(None)
            )
        )
        repaid = self.session.scalar(
            select(func.coalesce(func.sum(CreditCardRepayment.amount_cents), 0)).where(
                CreditCardRepayment.credit_card_id == card.id
            )
        )
        balance = max(0, card.opening_balance_cents + int(charged) - int(repaid))
        card.current_balance_cents = balance
        self.session.flush()
        return balance

    @staticmethod
    def utilization(card: CreditCard) -> float:
        if not card.credit_limit_cents:
            return 0.0
        return calculate_percentage(card.current_balance_cents, card.credit_limit_cents)

    def list_repayments(self, card_id: Optional[int] = None) -> list[CreditCardRepayment]:
        stmt = (
            select(CreditCardRepayment)
            .where(CreditCardRepayment.user_id == self.user_id)
            .order_by(
                CreditCardRepayment.payment_date.desc(), CreditCardRepayment.id.desc()
            )
        )
        if card_id:
            stmt = stmt.where(CreditCardRepayment.credit_card_id == card_id)
        return self.session.scalars(stmt).all()

    def get_repayment(self, repayment_id: int) -> CreditCardRepayment:
        repayment = self.session.get(CreditCardRepayment, repayment_id)
        if not repayment or repayment.user_id != self.user_id:
            raise NotFoundError("Repayment not found")
        return repayment

    def add_repayment(self, data: CreditCardRepaymentIn) -> CreditCardRepayment:
        card = self.get(data.credit_card_id)
        repayment = CreditCardRepayment(
            user_id=self.user_id,
            credit_card_id=card.id,
            amount_cents=data.amount_cents,
            payment_date=data.payment_date,
            notes=data.notes,
        )
        self.session.add(repayment)
        self.session.flush()
        self.recompute_balance(card.id)
        self.session.commit()
        self.session.refresh(repayment)
        return repayment

    def update_repayment(
        self, repayment_id: int, data: CreditCardRepaymentIn
    ) -> CreditCardRepayment:
        repayment = self.get_repayment(repayment_id)
        card = self.get(data.credit_card_id)
        old_card_id = repayment.credit_card_id
        repayment.credit_card_id = card.id
        repayment.amount_cents = data.amount_cents
        repayment.payment_date = data.payment_date
        repayment.notes = data.notes
        self.session.flush()
        for touched in {old_card_id, card.id}:
            self.recompute_balance(touched)
        self.session.commit()
        self.session.refresh(repayment)
        return repayment

    def delete_repayment(self, repayment_id: int) -> None:
        repayment = self.get_repayment(repayment_id)
        card_id = repayment.credit_card_id
        self.session.delete(repayment)
        self.session.flush()
        self.recompute_balance(card_id)
        self.session.commit()


class ExpenseService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.partners = PartnerService(session, user_id)

    def _base_query(self, member_ids: list[int]):
        return select(Expense).options(
            joinedload(Expense.category),
            joinedload(Expense.subcategory),
            joinedload(Expense.payment_source),
            joinedload(Expense.credit_card),
        ).where(Expense.user_id.in_(member_ids))

    def list(
        self,
        filters: Optional[ExpenseFilters] = None,
        period: Optional[Period] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Expense]:
        filters = filters or ExpenseFilters()
        stmt = (
            self._base_query(self.partners.member_ids())
            .where(Expense.deleted_at.is_(None))
            .order_by(Expense.date.desc(), Expense.created_at.desc(), Expense.id.desc())
        )
        if filters.category_id:
            stmt = stmt.where(Expense.category_id == filters.category_id)
        if filters.subcategory_id:
            stmt = stmt.where(Expense.subcategory_id == filters.subcategory_id)
        if filters.start_date:
            stmt = stmt.where(Expense.date >= filters.start_date)
        if filters.end_date:
            stmt = stmt.where(Expense.date <= filters.end_date)
        if filters.user_id:
            stmt = stmt.where(Expense.user_id == filters.user_id)
        if filters.payment_source_id:
            stmt = stmt.where(Expense.payment_source_id == filters.payment_source_id)
        if filters.credit_card_id:
            stmt = stmt.where(Expense.credit_card_id == filters.credit_card_id)
        if filters.share == ShareFilter.shared:
            stmt = stmt.where(Expense.is_shared.is_(True))
        elif filters.share == ShareFilter.individual:
            stmt = stmt.where(
                or_(Expense.is_shared.is_(False), Expense.is_shared.is_(None))
            )
        if period and period.start:
            stmt = stmt.where(Expense.date >= period.start)
        if period and period.end:
            stmt = stmt.where(Expense.date <= period.end)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return self.session.scalars(stmt).unique().all()

    def get(self, expense_id: int, *, include_deleted: bool = False) -> Expense:
        stmt = self._base_query(self.partners.member_ids()).where(
            Expense.id == expense_id
        )
        if not include_deleted:
            stmt = stmt.where(Expense.deleted_at.is_(None))
        expense = self.session.scalar(stmt)
        if not expense:
            raise NotFoundError("Expense not found")
        return expense

    def _owned(self, expense_id: int, *, include_deleted: bool = False) -> Expense:
        expense = self.get(expense_id, include_deleted=include_deleted)
        if expense.user_id != self.user_id:
            raise PermissionDeniedError("You can only modify your own expenses")
        return expense

    def _check_references(self, data: ExpenseIn, members: list[int]) -> None:
        CategoryService(self.session, self.user_id).get(data.category_id)
        if data.subcategory_id:
            subcategory = self.session.get(Subcategory, data.subcategory_id)
            if not subcategory or subcategory.category_id != data.category_id:
                raise ValueError("Subcategory does not belong to the selected category")
        if data.payment_source_id:
            PaymentSourceService(self.session).get(data.payment_source_id)
        if data.credit_card_id:
            CreditCardService(self.session, self.user_id).get(data.credit_card_id)
        if data.paid_by_user_id and data.paid_by_user_id not in members:
            raise ValueError("Paid-by user must be you or your partner")

    def _apply(self, expense: Expense, data: ExpenseIn, partner: Optional[Partner]) -> None:
        expense.amount_cents = data.amount_cents
        expense.category_id = data.category_id
        expense.subcategory_id = data.subcategory_id
        expense.payment_source_id = data.payment_source_id
        expense.credit_card_id = data.credit_card_id
        expense.date = data.date
        expense.time = data.time
        expense.notes = data.notes
        expense.custom_icon = data.custom_icon
        expense.paid_by_user_id = data.paid_by_user_id
        expense.is_shared = bool(data.is_shared)
        expense.partner_id = partner.id if data.is_shared and partner else None
        expense.amount_paid_by_user_cents = data.amount_paid_by_user_cents
        expense.amount_paid_by_partner_cents = data.amount_paid_by_partner_cents

    def _recompute_cards(self, card_ids: set[Optional[int]]) -> None:
        cards = CreditCardService(self.session, self.user_id)
        for card_id in card_ids:
            if card_id:
                cards.recompute_balance(card_id)

    def create(self, data: ExpenseIn) -> Expense:
        partner = self.partners.current()
        members = list(partner.member_ids()) if partner else [self.user_id]
        self._check_references(data, members)
        expense = Expense(user_id=self.user_id)
        self._apply(expense, data, partner)
        self.session.add(expense)
        self.session.flush()
        self._recompute_cards({expense.credit_card_id})
        self.session.commit()
        return self.get(expense.id)

    def update(self, expense_id: int, data: ExpenseIn) -> Expense:
        expense = self._owned(expense_id)
        partner = self.partners.current()
        members = list(partner.member_ids()) if partner else [self.user_id]
        self._check_references(data, members)
        old_card_id = expense.credit_card_id
        self._apply(expense, data, partner)
        self.session.flush()
        self._recompute_cards({old_card_id, expense.credit_card_id})
        self.session.commit()
        return self.get(expense.id)

    def soft_delete(self, expense_id: int) -> None:
        expense = self._owned(expense_id)
        expense.deleted_at = datetime.utcnow()
        self.session.flush()
        self._recompute_cards({expense.credit_card_id})
        self.session.commit()

    def restore(self, expense_id: int) -> None:
        expense = self._owned(expense_id, include_deleted=True)
        if expense.deleted_at is None:
            return
        expense.deleted_at = None
        self.session.flush()
        self._recompute_cards({expense.credit_card_id})
        self.session.commit()

    def deleted(self, limit: int = 200) -> list[Expense]:
        stmt = (
            self._base_query([self.user_id])
            .where(Expense.deleted_at.isnot(None))
            .order_by(Expense.deleted_at.desc(), Expense.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).unique().all()


class InvestmentService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def types(self) -> list[InvestmentType]:
        return self.session.scalars(
            select(InvestmentType).order_by(InvestmentType.name)
        ).all()

    def list(self, filters: Optional[InvestmentFilters] = None) -> list[Investment]:
        filters = filters or InvestmentFilters()
        stmt = (
            select(Investment)
            .options(joinedload(Investment.investment_type))
            .where(Investment.user_id == self.user_id, Investment.deleted_at.is_(None))
            .order_by(
                Investment.date.desc(), Investment.created_at.desc(), Investment.id.desc()
            )
        )
        if filters.investment_type_id:
            stmt = stmt.where(Investment.investment_type_id == filters.investment_type_id)
        if filters.transaction_type:
            stmt = stmt.where(Investment.transaction_type == filters.transaction_type)
        if filters.start_date:
            stmt = stmt.where(Investment.date >= filters.start_date)
        if filters.end_date:
            stmt = stmt.where(Investment.date <= filters.end_date)
        return self.session.scalars(stmt).all()

    def get(self, investment_id: int) -> Investment:
        investment = self.session.get(Investment, investment_id)
        if (
            not investment
            or investment.user_id != self.user_id
            or investment.deleted_at is not None
        ):
            raise NotFoundError("Investment not found")
        return investment

    def _check_type(self, investment_type_id: int) -> None:
        if not self.session.get(InvestmentType, investment_type_id):
            raise NotFoundError("Investment type not found")

    def create(self, data: InvestmentIn) -> Investment:
        self._check_type(data.investment_type_id)
        investment = Investment(user_id=self.user_id, **data.model_dump())
        self.session.add(investment)
        self.session.commit()
        self.session.refresh(investment)
        return investment

    def update(self, investment_id: int, data: InvestmentIn) -> Investment:
        investment = self.get(investment_id)
        self._check_type(data.investment_type_id)
        for field, value in data.model_dump().items():
            setattr(investment, field, value)
        self.session.commit()
        self.session.refresh(investment)
        return investment

    def soft_delete(self, investment_id: int) -> None:
        investment = self.get(investment_id)
        investment.deleted_at = datetime.utcnow()
        self.session.commit()

    def summary(self, investments: Optional[list[Investment]] = None) -> dict[str, object]:
        if investments is None:
            investments = self.list()
        names = {t.id: (t.name, t.icon) for t in self.types()}
        per_type: dict[int, dict[str, object]] = {}
        net_total = 0
        for inv in investments:
            name, icon = names.get(inv.investment_type_id, ("Unknown", "💰"))
            bucket = per_type.setdefault(
                inv.investment_type_id,
                {
                    "investment_type_id": inv.investment_type_id,
                    "name": name,
                    "icon": icon,
                    "deposits_cents": 0,
                    "withdrawals_cents": 0,
                },
            )
            if inv.transaction_type == InvestmentTransactionType.deposit:
                bucket["deposits_cents"] = int(bucket["deposits_cents"]) + inv.amount_cents
                net_total += inv.amount_cents
            else:
                bucket["withdrawals_cents"] = (
                    int(bucket["withdrawals_cents"]) + inv.amount_cents
                )
                net_total -= inv.amount_cents
        by_type = []
        for bucket in per_type.values():
            bucket["net_cents"] = int(bucket["deposits_cents"]) - int(
                bucket["withdrawals_cents"]
            )
            by_type.append(bucket)
        return {"net_cents": net_total, "by_type": by_type}


class AnalyticsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.expenses = ExpenseService(session, user_id)

    @staticmethod
    def _category_lookup(expenses: list[Expense]) -> dict[int, dict[str, object]]:
        lookup: dict[int, dict[str, object]] = {}
        for expense in expenses:
            category = expense.category
            if category and category.id not in lookup:
                lookup[category.id] = {
                    "name": category.name,
                    "icon": category.icon,
                    "color": category.color,
                }
        return lookup

    @staticmethod
    def _subcategory_lookup(expenses: list[Expense]) -> dict[int, dict[str, object]]:
        lookup: dict[int, dict[str, object]] = {}
        for expense in expenses:
            sub = expense.subcategory
            if sub and sub.id not in lookup:
                lookup[sub.id] = {
                    "name": sub.name,
                    "icon": sub.icon,
                    "color": sub.color,
                    "category_id": sub.category_id,
                }
        return lookup

    def _payment_source_lookup(self) -> dict[int, dict[str, object]]:
        return {
            source.id: {"name": source.name, "type": source.type.value, "icon": source.icon}
            for source in PaymentSourceService(self.session).list_all()
        }

    @staticmethod
    def _credit_card_spend(expenses: list[Expense]) -> list[dict[str, object]]:
        grouped = group_by_credit_card(expenses)
        total = sum(grouped.values())
        cards = {e.credit_card.id: e.credit_card for e in expenses if e.credit_card}
        rows = []
        for card_id, amount in grouped.items():
            card = cards.get(card_id)
            rows.append(
                {
                    "credit_card_id": card_id,
                    "card_name": card.card_name if card else "Unknown",
                    "card_number_last4": card.card_number_last4 if card else None,
                    "amount_cents": amount,
                    "percentage": calculate_percentage(amount, total),
                    "current_balance_cents": card.current_balance_cents if card else 0,
                    "credit_limit_cents": card.credit_limit_cents if card else None,
                    "utilization": CreditCardService.utilization(card) if card else 0.0,
                }
            )
        rows.sort(key=lambda r: int(r["amount_cents"]), reverse=True)
        return rows

    def overview(
        self,
        period: AnalyticsPeriod = AnalyticsPeriod.month,
        share: ShareFilter = ShareFilter.all,
        *,
        today: Optional[date] = None,
    ) -> dict[str, object]:
        today = today or local_today()
        everything = self.expenses.list()
        window = analytics_window(period, today=today)
        filtered = filter_by_period(filter_by_share(everything, share), window)

        if period == AnalyticsPeriod.month:
            trend = daily_trend(filtered, month_start(today), today)
        else:
            trend = date_trend(filtered)

        partner_user_id = self.expenses.partners.partner_user_id()
        member_ids = [self.user_id] + ([partner_user_id] if partner_user_id else [])
        this_month = Period("this_month", month_start(today), month_end(today))

        return {
            "period": period.value,
            "expense_filter": share.value,
            "monthly_stats": {
                "total_spending_cents": calculate_total(filtered),
                "average_daily_cents": calculate_daily_average(filtered),
                "category_count": len({e.category_id for e in filtered}),
                "expense_count": len(filtered),
            },
            "category_distribution": distribution(
                group_by_category(filtered),
                self._category_lookup(filtered),
                id_field="category_id",
                fallback=UNKNOWN_CATEGORY,
            ),
            "subcategory_distribution": distribution(
                group_by_subcategory(filtered),
                self._subcategory_lookup(filtered),
                id_field="subcategory_id",
                fallback=UNKNOWN_CATEGORY,
            ),
            "payment_source_distribution": distribution(
                group_by_payment_source(filtered),
                self._payment_source_lookup(),
                id_field="payment_source_id",
                fallback=UNASSIGNED_SOURCE,
            ),
            "credit_card_spend": self._credit_card_spend(filtered),
            "top_categories": top_categories(filtered),
            "expense_trends": trend,
            "shared_split": shared_split(filtered, self.user_id, partner_user_id),
            "user_comparison": user_comparison(
                filtered, UserService(self.session).names(member_ids)
            ),
            "current_month_total_cents": calculate_total(
                filter_by_period(everything, this_month)
            ),
            "total_expenses_cents": calculate_total(everything),
        }

    def dashboard(self, *, today: Optional[date] = None, recent: int = 5) -> dict[str, object]:
        today = today or local_today()
        everything = self.expenses.list()
        this_month = Period("this_month", month_start(today), month_end(today))
        last_month_day = months_back(today, 1)
        last_month = Period(
            "last_month", month_start(last_month_day), month_end(last_month_day)
        )
        current = filter_by_period(everything, this_month)
        current_total = calculate_total(current)
        last_total = calculate_total(filter_by_period(everything, last_month))
        change = (
            calculate_percentage(current_total - last_total, last_total)
            if last_total
            else 0.0
        )
        return {
            "total_expenses_cents": calculate_total(everything),
            "current_month_total_cents": current_total,
            "last_month_total_cents": last_total,
            "monthly_change_percent": change,
            "average_daily_cents": calculate_daily_average(current),
            "category_count": len({e.category_id for e in current}),
            "recent_expenses": everything[:recent],
        }
