from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from errors import NotFound
from models import TransactionType
from periods import resolve_period
from schemas import BudgetIn, CategoryIn, RegisterIn, TransactionIn
from services import (
    AuthService,
    BudgetService,
    CategoryService,
    TransactionService,
    percentage_of,
)

SEPTEMBER = resolve_period(date(2023, 9, 15))


def _user(session: Session, email: str = "ana@example.com"):
    return AuthService(session).register(
        RegisterIn(name="Ana", email=email, password="secret")
    )


def _expense(session: Session, user_id: int, category_id, cents: int, day: date):
    return TransactionService(session, user_id).create(
        TransactionIn(
            type=TransactionType.expense,
            amount_cents=cents,
            description="Expense",
            category_id=category_id,
            date=day,
        )
    )


def test_food_category_spending_percentage() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        BudgetService(session, user.id).upsert(BudgetIn(total_amount_cents=500_000))
        food = CategoryService(session, user.id).create(
            CategoryIn(name="Food", amount_cents=40_000)
        )
        _expense(session, user.id, food.id, 15_000, date(2023, 9, 5))
        _expense(session, user.id, food.id, 10_000, date(2023, 9, 10))

        summary = BudgetService(session, user.id).summary(SEPTEMBER)

        assert len(summary) == 1
        assert summary[0].name == "Food"
        assert summary[0].budgeted_cents == 40_000
        assert summary[0].spent_cents == 25_000
        assert summary[0].remaining_cents == 15_000
        assert summary[0].percentage == 62.5
        assert summary[0].over_budget is False


def test_category_without_transactions_is_still_reported() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        BudgetService(session, user.id).upsert(BudgetIn(total_amount_cents=100_000))
        CategoryService(session, user.id).create(
            CategoryIn(name="Fun", amount_cents=20_000)
        )

        summary = BudgetService(session, user.id).summary(SEPTEMBER)

        assert [(s.name, s.spent_cents, s.percentage) for s in summary] == [
            ("Fun", 0, 0.0)
        ]


def test_budget_without_categories_summarizes_to_empty_list() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        BudgetService(session, user.id).upsert(BudgetIn(total_amount_cents=100_000))
        assert BudgetService(session, user.id).summary(SEPTEMBER) == []


def test_summary_without_budget_is_not_found() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        with pytest.raises(NotFound, match="Budget not found"):
            BudgetService(session, user.id).summary(SEPTEMBER)


def test_zero_limit_category_never_divides_by_zero() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        BudgetService(session, user.id).upsert(BudgetIn(total_amount_cents=0))
        gifts = CategoryService(session, user.id).create(
            CategoryIn(name="Gifts", amount_cents=0)
        )
        _expense(session, user.id, gifts.id, 5_000, date(2023, 9, 2))

        (row,) = BudgetService(session, user.id).summary(SEPTEMBER)
        assert row.spent_cents == 5_000
        assert row.percentage == 0.0
        assert row.over_budget is True


def test_only_in_period_expenses_of_the_user_are_counted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        other = _user(session, "bo@example.com")
        BudgetService(session, user.id).upsert(BudgetIn(total_amount_cents=100_000))
        food = CategoryService(session, user.id).create(
            CategoryIn(name="Food", amount_cents=10_000)
        )
        _expense(session, user.id, food.id, 1_000, date(2023, 9, 1))
        _expense(session, user.id, food.id, 2_000, date(2023, 9, 30))
        _expense(session, user.id, food.id, 4_000, date(2023, 8, 31))
        _expense(session, user.id, food.id, 8_000, date(2023, 10, 1))
        TransactionService(session, user.id).create(
            TransactionIn(
                type=TransactionType.income,
                amount_cents=50_000,
                description="Refund",
                category_id=food.id,
                date=date(2023, 9, 12),
            )
        )
        _expense(session, user.id, None, 700, date(2023, 9, 12))
        _expense(session, other.id, None, 900, date(2023, 9, 12))

        (row,) = BudgetService(session, user.id).summary(SEPTEMBER)
        assert row.spent_cents == 3_000
        assert row.percentage == 30.0


def test_summary_is_ordered_by_category_id_and_repeatable() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        BudgetService(session, user.id).upsert(BudgetIn(total_amount_cents=100_000))
        categories = CategoryService(session, user.id)
        rent = categories.create(CategoryIn(name="Rent", amount_cents=80_000))
        bills = categories.create(CategoryIn(name="Bills", amount_cents=30_000))
        _expense(session, user.id, bills.id, 10_000, date(2023, 9, 3))

        first = BudgetService(session, user.id).summary(SEPTEMBER)
        second = BudgetService(session, user.id).summary(SEPTEMBER)

        assert [s.id for s in first] == [rent.id, bills.id]
        assert [s.model_dump_json() for s in first] == [
            s.model_dump_json() for s in second
        ]
        assert first[1].percentage == 33.33


def test_percentage_rounds_half_up() -> None:
    assert percentage_of(1, 800) == 0.13
    assert percentage_of(3, 800) == 0.38
    assert percentage_of(2, 3) == 66.67
    assert percentage_of(500, 0) == 0.0
    assert percentage_of(45_000, 40_000) == 112.5


def test_overview_totals_and_projection() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        BudgetService(session, user.id).upsert(BudgetIn(total_amount_cents=500_000))
        categories = CategoryService(session, user.id)
        food = categories.create(CategoryIn(name="Food", amount_cents=40_000))
        categories.create(CategoryIn(name="Fun", amount_cents=20_000))
        _expense(session, user.id, food.id, 30_000, date(2023, 9, 5))
        _expense(session, user.id, None, 3_000, date(2023, 9, 6))
        TransactionService(session, user.id).create(
            TransactionIn(
                type=TransactionType.income,
                amount_cents=250_000,
                description="Salary",
                date=date(2023, 9, 1),
            )
        )

        overview = BudgetService(session, user.id).overview(
            SEPTEMBER, date(2023, 9, 10)
        )

        assert overview.total_budget_cents == 60_000
        assert overview.total_spent_cents == 33_000
        assert overview.uncategorized_spent_cents == 3_000
        assert overview.total_income_cents == 250_000
        assert overview.percent_used == 55.0
        assert overview.days_remaining == 21
        assert overview.daily_budget_cents == 27_000 // 21
        assert overview.projected_spend_cents == 99_000
        assert overview.projected_overspend_cents == 39_000
        assert overview.is_over_budget is False


def test_overview_after_period_has_no_days_left() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        BudgetService(session, user.id).upsert(BudgetIn(total_amount_cents=0))
        rent = CategoryService(session, user.id).create(
            CategoryIn(name="Rent", amount_cents=10_000)
        )
        _expense(session, user.id, rent.id, 12_000, date(2023, 9, 1))

        overview = BudgetService(session, user.id).overview(
            SEPTEMBER, date(2023, 10, 2)
        )

        assert overview.days_remaining == 0
        assert overview.daily_budget_cents == 0
        assert overview.projected_spend_cents == 12_000
        assert overview.projected_overspend_cents == 2_000
        assert overview.is_over_budget is True
