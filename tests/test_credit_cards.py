from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import Base, build_engine
from models import Category, CreditCard, CreditCardRepayment, Expense, User
from schemas import CreditCardIn, CreditCardRepaymentIn, ExpenseIn
from services import CreditCardService, ExpenseService, NotFoundError


def make_session_with_user():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    session = Session(engine)
    user = User(email="alice@example.com", password_hash="x")
    food = Category(user_id=None, name="Food", icon="🍔", color="#F97316")
    session.add_all([user, food])
    session.commit()
    return session, user, food


def test_balance_tracks_charges_and_repayments() -> None:
    session, user, food = make_session_with_user()
    cards = CreditCardService(session, user.id)
    card = cards.create(
        CreditCardIn(
            card_name="Travel Card",
            card_number_last4="4242",
            credit_limit_cents=100_000,
            opening_balance_cents=5_000,
        )
    )
    assert card.current_balance_cents == 5_000

    expenses = ExpenseService(session, user.id)
    dinner = expenses.create(
        ExpenseIn(
            amount_cents=20_000,
            category_id=food.id,
            credit_card_id=card.id,
            date=date(2025, 4, 2),
        )
    )
    session.refresh(card)
    assert card.current_balance_cents == 25_000
    assert CreditCardService.utilization(card) == pytest.approx(25.0)

    payment = cards.add_repayment(
        CreditCardRepaymentIn(
            credit_card_id=card.id, amount_cents=10_000, payment_date=date(2025, 4, 10)
        )
    )
    session.refresh(card)
    assert card.current_balance_cents == 15_000

    expenses.soft_delete(dinner.id)
    session.refresh(card)
    assert card.current_balance_cents == 0

    cards.delete_repayment(payment.id)
    session.refresh(card)
    assert card.current_balance_cents == 5_000

    expenses.restore(dinner.id)
    session.refresh(card)
    assert card.current_balance_cents == 25_000
    session.close()


def test_moving_an_expense_between_cards_updates_both() -> None:
    session, user, food = make_session_with_user()
    cards = CreditCardService(session, user.id)
    first = cards.create(CreditCardIn(card_name="First"))
    second = cards.create(CreditCardIn(card_name="Second"))

    expenses = ExpenseService(session, user.id)
    expense = expenses.create(
        ExpenseIn(
            amount_cents=7_500,
            category_id=food.id,
            credit_card_id=first.id,
            date=date(2025, 4, 2),
        )
    )
    expenses.update(
        expense.id,
        ExpenseIn(
            amount_cents=7_500,
            category_id=food.id,
            credit_card_id=second.id,
            date=date(2025, 4, 2),
        ),
    )
    session.refresh(first)
    session.refresh(second)
    assert first.current_balance_cents == 0
    assert second.current_balance_cents == 7_500
    assert CreditCardService.utilization(second) == 0.0
    session.close()


def test_overpayment_floors_at_zero_and_delete_detaches_expenses() -> None:
    session, user, food = make_session_with_user()
    cards = CreditCardService(session, user.id)
    card = cards.create(CreditCardIn(card_name="Everyday", opening_balance_cents=1_000))
    cards.add_repayment(
        CreditCardRepaymentIn(
            credit_card_id=card.id, amount_cents=5_000, payment_date=date(2025, 4, 1)
        )
    )
    session.refresh(card)
    assert card.current_balance_cents == 0

    expense = ExpenseService(session, user.id).create(
        ExpenseIn(
            amount_cents=2_000,
            category_id=food.id,
            credit_card_id=card.id,
            date=date(2025, 4, 3),
        )
    )
    cards.delete(card.id)
    assert cards.list_all() == []
    assert cards.list_repayments() == []
    session.refresh(expense)
    assert expense.credit_card_id is None
    with pytest.raises(NotFoundError):
        cards.get(card.id)
    session.close()


def test_cards_are_private_to_their_owner() -> None:
    session, user, _ = make_session_with_user()
    other = User(email="bob@example.com", password_hash="x")
    session.add(other)
    session.commit()
    card = CreditCardService(session, user.id).create(CreditCardIn(card_name="Mine"))

    with pytest.raises(NotFoundError):
        CreditCardService(session, other.id).get(card.id)
    with pytest.raises(NotFoundError):
        CreditCardService(session, other.id).add_repayment(
            CreditCardRepaymentIn(
                credit_card_id=card.id, amount_cents=100, payment_date=date(2025, 4, 1)
            )
        )
    session.close()


def test_card_input_validation() -> None:
    with pytest.raises(ValidationError):
        CreditCardIn(card_name="Card", card_number_last4="42")
    with pytest.raises(ValidationError):
        CreditCardIn(card_name="Card", opening_balance_cents=-1)
    with pytest.raises(ValidationError):
        CreditCardIn(card_name="Card", nickname="extra")
    with pytest.raises(ValidationError):
        CreditCardRepaymentIn(credit_card_id=1, amount_cents=0, payment_date=date(2025, 4, 1))


def test_card_delete_on_file_database_with_foreign_keys(tmp_path) -> None:
    engine = build_engine(f"sqlite:///{tmp_path}/cards.db")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1
        user = User(email="alice@example.com", password_hash="x")
        food = Category(user_id=None, name="Food", icon="🍔", color="#F97316")
        session.add_all([user, food])
        session.commit()

        cards = CreditCardService(session, user.id)
        card = cards.create(CreditCardIn(card_name="Travel"))
        cards.add_repayment(
            CreditCardRepaymentIn(
                credit_card_id=card.id, amount_cents=500, payment_date=date(2025, 4, 1)
            )
        )
        expense = ExpenseService(session, user.id).create(
            ExpenseIn(
                amount_cents=2_000,
                category_id=food.id,
                credit_card_id=card.id,
                date=date(2025, 4, 2),
            )
        )

        cards.delete(card.id)
        assert session.scalars(select(CreditCard)).all() == []
        assert session.scalars(select(CreditCardRepayment)).all() == []
        assert session.get(Expense, expense.id).credit_card_id is None

        session.add(
            CreditCardRepayment(
                user_id=user.id,
                credit_card_id=card.id,
                amount_cents=100,
                payment_date=date(2025, 4, 3),
            )
        )
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()
    engine.dispose()
