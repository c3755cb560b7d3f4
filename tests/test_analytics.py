from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Category, ShareFilter, Subcategory, User
from periods import AnalyticsPeriod
from schemas import CreditCardIn, ExpenseIn
from services import (
    AnalyticsService,
    CreditCardService,
    ExpenseService,
    PartnerService,
    seed_reference_data,
)


def build_household(session: Session):
    alice = User(email="alice@example.com", full_name="Alice", password_hash="x")
    bob = User(email="bob@example.com", full_name="Bob", password_hash="x")
    food = Category(user_id=None, name="Food", icon="🍔", color="#F97316")
    session.add_all([alice, bob, food])
    session.commit()
    seed_reference_data(session)
    token = PartnerService(session, alice.id).invite(bob.email).token
    PartnerService(session, bob.id).accept(token)
    return alice, bob, food


def test_month_overview_combines_partners_and_zero_fills_trend() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice, bob, food = build_household(session)
        hobby = Category(user_id=bob.id, name="Hobby", icon="🎨", color="#EC4899")
        session.add(hobby)
        session.commit()
        paints = Subcategory(category_id=hobby.id, name="Paints", icon="🖌️", color="#EC4899")
        session.add(paints)
        session.commit()
        card = CreditCardService(session, alice.id).create(
            CreditCardIn(card_name="Rewards", credit_limit_cents=100_000)
        )

        ExpenseService(session, alice.id).create(
            ExpenseIn(
                amount_cents=6_000,
                category_id=food.id,
                credit_card_id=card.id,
                date=date(2025, 3, 2),
                is_shared=True,
                amount_paid_by_user_cents=6_000,
                amount_paid_by_partner_cents=0,
            )
        )
        ExpenseService(session, bob.id).create(
            ExpenseIn(
                amount_cents=2_000,
                category_id=hobby.id,
                subcategory_id=paints.id,
                date=date(2025, 3, 4),
            )
        )
        ExpenseService(session, alice.id).create(
            ExpenseIn(amount_cents=9_000, category_id=food.id, date=date(2025, 2, 20))
        )

        overview = AnalyticsService(session, alice.id).overview(
            AnalyticsPeriod.month, today=date(2025, 3, 5)
        )

        stats = overview["monthly_stats"]
        assert stats["total_spending_cents"] == 8_000
        assert stats["expense_count"] == 2
        assert stats["category_count"] == 2
        assert stats["average_daily_cents"] == 4_000

        categories = overview["category_distribution"]
        assert [row["name"] for row in categories] == ["Food", "Hobby"]
        assert categories[0]["percentage"] == 75

        assert overview["subcategory_distribution"][0]["name"] == "Paints"
        assert overview["credit_card_spend"][0]["card_name"] == "Rewards"
        assert overview["credit_card_spend"][0]["utilization"] == pytest.approx(6.0)
        assert overview["payment_source_distribution"][0]["name"] == "Unassigned"

        trend = overview["expense_trends"]
        assert [p["amount_cents"] for p in trend] == [0, 6_000, 0, 2_000, 0]

        split = overview["shared_split"]
        assert split["shared_cents"] == 6_000
        assert split["individual_cents"] == 2_000
        assert split["settlement_cents"] == 3_000

        names = {row["user_name"]: row["total_cents"] for row in overview["user_comparison"]}
        assert names == {"Alice": 6_000, "Bob": 2_000}
        assert overview["current_month_total_cents"] == 8_000
        assert overview["total_expenses_cents"] == 17_000


def test_week_and_all_periods_with_share_filter() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice, _, food = build_household(session)
        expenses = ExpenseService(session, alice.id)
        for day, amount, shared in [
            (date(2025, 1, 10), 1_000, False),
            (date(2025, 2, 25), 2_000, True),
            (date(2025, 3, 5), 3_000, False),
        ]:
            expenses.create(
                ExpenseIn(
                    amount_cents=amount, category_id=food.id, date=day, is_shared=shared
                )
            )

        analytics = AnalyticsService(session, alice.id)
        week = analytics.overview(AnalyticsPeriod.week, today=date(2025, 3, 10))
        assert week["monthly_stats"]["total_spending_cents"] == 5_000
        assert [p["date"] for p in week["expense_trends"]] == ["2025-02-25", "2025-03-05"]

        everything = analytics.overview(
            AnalyticsPeriod.all, ShareFilter.individual, today=date(2025, 3, 10)
        )
        assert everything["monthly_stats"]["total_spending_cents"] == 4_000
        assert everything["expense_filter"] == "individual"
        assert everything["total_expenses_cents"] == 6_000


def test_dashboard_compares_with_last_month() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice, _, food = build_household(session)
        expenses = ExpenseService(session, alice.id)
        expenses.create(
            ExpenseIn(amount_cents=4_000, category_id=food.id, date=date(2025, 2, 10))
        )
        expenses.create(
            ExpenseIn(amount_cents=5_000, category_id=food.id, date=date(2025, 3, 3))
        )

        data = AnalyticsService(session, alice.id).dashboard(today=date(2025, 3, 31))
        assert data["current_month_total_cents"] == 5_000
        assert data["last_month_total_cents"] == 4_000
        assert data["monthly_change_percent"] == 25.0
        assert [e.amount_cents for e in data["recent_expenses"]] == [5_000, 4_000]
