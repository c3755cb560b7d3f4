from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from models import Category, InvestmentType, PaymentSource, User
from schemas import CategoryIn, ExpenseIn, SubcategoryIn, SubcategoryUpdateIn
from services import (
    CategoryService,
    ExpenseService,
    NotFoundError,
    PaymentSourceService,
    PermissionDeniedError,
    SubcategoryService,
    seed_reference_data,
)


def test_defaults_and_own_categories_listed_by_name() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = User(email="alice@example.com", password_hash="x")
        bob = User(email="bob@example.com", password_hash="x")
        session.add_all([alice, bob])
        session.commit()
        seed_reference_data(session)
        seed_reference_data(session)

        CategoryService(session, alice.id).create(
            CategoryIn(name="  Aquarium ", icon="🐠", color="#0EA5E9")
        )
        CategoryService(session, bob.id).create(
            CategoryIn(name="Bikes", icon="🚲", color="#123")
        )

        names = [c.name for c in CategoryService(session, alice.id).list_all()]
        assert names[0] == "Aquarium"
        assert "Bikes" not in names
        assert names == sorted(names)
        defaults = session.scalars(
            select(Category).where(Category.user_id.is_(None))
        ).all()
        assert len(names) == len(defaults) + 1

        sources = PaymentSourceService(session).list_all()
        assert [s.name for s in sources] == ["Credit Card", "Savings Account"]
        assert PaymentSourceService(session).seed_defaults() == 0
        assert session.scalar(select(PaymentSource).where(PaymentSource.name == "Credit Card"))
        assert len(session.scalars(select(InvestmentType)).all()) == 6


def test_only_own_categories_can_be_changed() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = User(email="alice@example.com", password_hash="x")
        default = Category(user_id=None, name="Food", icon="🍔", color="#F97316")
        session.add_all([alice, default])
        session.commit()
        categories = CategoryService(session, alice.id)
        update = CategoryIn(name="Meals", icon="🍽️", color="#F97316")

        with pytest.raises(PermissionDeniedError, match="edit your own"):
            categories.update(default.id, update)
        with pytest.raises(PermissionDeniedError, match="delete your own"):
            categories.delete(default.id)
        with pytest.raises(NotFoundError, match="Category not found"):
            categories.update(404, update)

        own = categories.create(CategoryIn(name="Pets", icon="🐶", color="#22C55E"))
        renamed = categories.update(own.id, update)
        assert renamed.name == "Meals"


def test_categories_in_use_cannot_be_deleted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = User(email="alice@example.com", password_hash="x")
        session.add(alice)
        session.commit()
        categories = CategoryService(session, alice.id)
        subcategories = SubcategoryService(session, alice.id)

        pets = categories.create(CategoryIn(name="Pets", icon="🐶", color="#22C55E"))
        vet = subcategories.create(
            SubcategoryIn(category_id=pets.id, name="Vet", icon="💉", color="#22C55E")
        )
        food = subcategories.create(
            SubcategoryIn(category_id=pets.id, name="Food", icon="🦴", color="#22C55E")
        )
        assert [s.name for s in subcategories.for_category(pets.id)] == ["Food", "Vet"]

        ExpenseService(session, alice.id).create(
            ExpenseIn(
                amount_cents=4_000,
                category_id=pets.id,
                subcategory_id=vet.id,
                date=date(2025, 5, 1),
            )
        )
        with pytest.raises(ValueError, match="category that is being used"):
            categories.delete(pets.id)
        with pytest.raises(ValueError, match="subcategory that is being used"):
            subcategories.delete(vet.id)

        subcategories.update(
            food.id, SubcategoryUpdateIn(name="Treats", icon="🦴", color="#22C55E")
        )
        subcategories.delete(food.id)
        assert [s.name for s in subcategories.for_category(pets.id)] == ["Vet"]


def test_deleting_unused_category_removes_its_subcategories() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = User(email="alice@example.com", password_hash="x")
        bob = User(email="bob@example.com", password_hash="x")
        session.add_all([alice, bob])
        session.commit()
        categories = CategoryService(session, alice.id)
        garden = categories.create(CategoryIn(name="Garden", icon="🌱", color="#22C55E"))
        seeds = SubcategoryService(session, alice.id).create(
            SubcategoryIn(category_id=garden.id, name="Seeds", icon="🌰", color="#22C55E")
        )
        with pytest.raises(NotFoundError):
            SubcategoryService(session, bob.id).get(seeds.id)
        with pytest.raises(NotFoundError):
            SubcategoryService(session, bob.id).create(
                SubcategoryIn(category_id=garden.id, name="Soil", icon="🪱", color="#22C55E")
            )

        categories.delete(garden.id)
        assert SubcategoryService(session, alice.id).list_all() == []


def test_category_input_validation() -> None:
    with pytest.raises(ValidationError, match="Category name is required"):
        CategoryIn(name="   ", icon="🍔", color="#F97316")
    with pytest.raises(ValidationError, match="Icon is required"):
        CategoryIn(name="Food", icon="", color="#F97316")
    with pytest.raises(ValidationError, match="Invalid color format"):
        CategoryIn(name="Food", icon="🍔", color="orange")
    with pytest.raises(ValidationError, match="Subcategory name is required"):
        SubcategoryIn(category_id=1, name="", icon="🍔", color="#F97316")
