from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence, Union

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from errors import (
    CATEGORY_NOT_OWNED,
    Conflict,
    InvalidArgument,
    NotFound,
    PreconditionFailed,
    ServiceError,
    StoreFailure,
    Unauthenticated,
)
from models import (
    Budget,
    Category,
    CategoryPeriod,
    Transaction,
    TransactionType,
    User,
)
from periods import Period
from schemas import (
    BudgetCategoryEntry,
    BudgetIn,
    BudgetOverview,
    CategoryIn,
    CategoryPatch,
    CategorySummary,
    Pagination,
    RegisterIn,
    SpendingByCategory,
    TransactionIn,
    TransactionPatch,
)
from security import hash_password, verify_password

PERCENT_QUANTUM = Decimal("0.01")


def percentage_of(part_cents: int, whole_cents: int) -> float:
    """``part / whole * 100`` rounded half-up to two places; 0 for an empty whole."""
    if whole_cents <= 0:
        return 0.0
    ratio = Decimal(part_cents) * 100 / Decimal(whole_cents)
    return float(ratio.quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP))


def _owned_budget(session: Session, user_id: int) -> Optional[Budget]:
    return session.scalar(select(Budget).where(Budget.user_id == user_id))


def _commit(session: Session, failure: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise StoreFailure(failure) from exc


class AuthService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def register(self, data: RegisterIn) -> User:
        email = data.email.strip().lower()
        existing = self.session.scalar(select(User).where(User.email == email))
        if existing:
            raise Conflict("Email already in use")
        user = User(
            name=data.name.strip(),
            email=email,
            password_hash=hash_password(data.password),
        )
        self.session.add(user)
        _commit(self.session, "Failed to register user")
        self.session.refresh(user)
        return user

    def login(self, email: str, password: str) -> User:
        user = self.session.scalar(
            select(User).where(User.email == email.strip().lower())
        )
        if not user or not verify_password(user.password_hash, password):
            raise Unauthenticated("Invalid email or password")
        return user

    def get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .join(Budget, Budget.id == Category.budget_id)
            .where(Budget.user_id == self.user_id)
            .order_by(Category.name, Category.id)
        )
        return list(self.session.scalars(stmt).all())

    def _owned(self, category_id: int) -> Category:
        category = self.session.scalar(
            select(Category)
            .join(Budget, Budget.id == Category.budget_id)
            .where(Category.id == category_id, Budget.user_id == self.user_id)
        )
        if not category:
            raise NotFound(CATEGORY_NOT_OWNED)
        return category

    def create(self, data: CategoryIn) -> Category:
        budget = _owned_budget(self.session, self.user_id)
        if not budget:
            raise PreconditionFailed("Budget not found. Please create a budget first.")
        try:
            category = self.apply_create(budget, data)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreFailure("Failed to create category") from exc
        self.session.refresh(category)
        return category

    def apply_create(
        self, budget: Budget, data: Union[CategoryIn, BudgetCategoryEntry]
    ) -> Category:
        name = (data.name or "").strip()
        if not name:
            raise InvalidArgument("Category name is required")
        if data.amount_cents is None or data.amount_cents < 0:
            raise InvalidArgument("Category amount must be a non-negative number")
        category = Category(
            budget=budget,
            name=name,
            amount_cents=data.amount_cents,
            period=data.period or CategoryPeriod.monthly,
        )
        self.session.add(category)
        self.session.flush()
        return category

    def update(self, category_id: int, patch: CategoryPatch) -> Category:
        category = self._owned(category_id)
        try:
            self._apply_patch(category, patch)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreFailure("Failed to update category") from exc
        self.session.refresh(category)
        return category

    def apply_update(
        self, budget: Budget, category_id: int, patch: CategoryPatch
    ) -> Category:
        category = self.session.scalar(
            select(Category).where(
                Category.id == category_id, Category.budget_id == budget.id
            )
        )
        if not category:
            raise NotFound(CATEGORY_NOT_OWNED)
        self._apply_patch(category, patch)
        return category

    def _apply_patch(self, category: Category, patch: CategoryPatch) -> None:
        changes = patch.model_dump(exclude_unset=True)
        if not changes:
            raise InvalidArgument("No changes to update")
        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise InvalidArgument("Category name cannot be empty")
            changes["name"] = name
        if "amount_cents" in changes and changes["amount_cents"] is None:
            raise InvalidArgument("Category amount must be a non-negative number")
        if "period" in changes and changes["period"] is None:
            raise InvalidArgument("Category period cannot be empty")

        for field, value in changes.items():
            setattr(category, field, value)
        category.updated_at = datetime.utcnow()
        self.session.flush()

    def delete(self, category_id: int) -> int:
        """Detach the category's transactions, then remove it, in one commit.

        Returns how many transactions were left uncategorized.
        """
        category = self._owned(category_id)
        try:
            result = self.session.execute(
                update(Transaction)
                .where(Transaction.category_id == category.id)
                .values(category_id=None)
            )
            orphaned = result.rowcount or 0
            self.session.delete(category)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreFailure("Failed to delete category") from exc
        return orphaned


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def find(self) -> Optional[Budget]:
        stmt = (
            select(Budget)
            .options(selectinload(Budget.categories))
            .where(Budget.user_id == self.user_id)
            .execution_options(populate_existing=True)
        )
        return self.session.scalar(stmt)

    def get(self) -> Budget:
        budget = self.find()
        if not budget:
            raise NotFound("Budget not found")
        return budget

    def upsert(self, data: BudgetIn) -> Budget:
        """Create the user's single budget or update it, then apply category entries.

        Entries run in order and the first failure rolls back the whole call.
        """
        categories = CategoryService(self.session, self.user_id)
        try:
            budget = _owned_budget(self.session, self.user_id)
            if budget is None:
                budget = Budget(
                    user_id=self.user_id, total_amount_cents=data.total_amount_cents
                )
                self.session.add(budget)
            else:
                budget.total_amount_cents = data.total_amount_cents
                budget.updated_at = datetime.utcnow()
            self.session.flush()

            for index, entry in enumerate(data.categories):
                try:
                    if entry.id is not None:
                        patch = CategoryPatch(
                            **entry.model_dump(exclude_unset=True, exclude={"id"})
                        )
                        categories.apply_update(budget, entry.id, patch)
                    else:
                        categories.apply_create(budget, entry)
                except ServiceError as exc:
                    raise type(exc)(f"categories[{index}]: {exc}") from exc
            self.session.commit()
        except ServiceError:
            self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreFailure("Failed to save budget") from exc
        return self.get()

    def summary(self, period: Period) -> list[CategorySummary]:
        budget = self.get()
        metrics = MetricsService(self.session, self.user_id)
        return metrics.category_summaries(budget, budget.categories, period)

    def overview(self, period: Period, today: date) -> BudgetOverview:
        budget = self.get()
        metrics = MetricsService(self.session, self.user_id)
        return metrics.overview(budget, budget.categories, period, today)


class MetricsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def uncategorized_spent(self, period: Period) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
            Transaction.user_id == self.user_id,
            Transaction.type == TransactionType.expense,
            Transaction.category_id.is_(None),
            Transaction.date.between(period.start, period.end),
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def spent_by_category(
        self, category_ids: Sequence[int], period: Period
    ) -> dict[int, int]:
        if not category_ids:
            return {}
        stmt = (
            select(
                Transaction.category_id,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("spent"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.category_id.in_(list(category_ids)),
                Transaction.date.between(period.start, period.end),
            )
            .group_by(Transaction.category_id)
        )
        return {
            row.category_id: int(row.spent or 0) for row in self.session.execute(stmt)
        }

    def category_summaries(
        self, budget: Budget, categories: Sequence[Category], period: Period
    ) -> list[CategorySummary]:
        """Budgeted vs spent per category, ordered by category id.

        Categories without matching expenses are reported with zero spending.
        """
        owned = sorted(
            (c for c in categories if c.budget_id == budget.id), key=lambda c: c.id
        )
        spent = self.spent_by_category([c.id for c in owned], period)
        summaries = []
        for category in owned:
            spent_cents = spent.get(category.id, 0)
            summaries.append(
                CategorySummary(
                    id=category.id,
                    name=category.name,
                    budgeted_cents=category.amount_cents,
                    spent_cents=spent_cents,
                    remaining_cents=category.amount_cents - spent_cents,
                    percentage=percentage_of(spent_cents, category.amount_cents),
                    over_budget=spent_cents > category.amount_cents,
                )
            )
        return summaries

    def spending_by_category(self, period: Period) -> list[SpendingByCategory]:
        stmt = (
            select(
                Category.id.label("id"),
                Category.name.label("name"),
                Category.amount_cents.label("limit_cents"),
                func.sum(Transaction.amount_cents).label("spent"),
            )
            .select_from(Transaction)
            .join(Category, Category.id == Transaction.category_id)
            .join(Budget, Budget.id == Category.budget_id)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.date.between(period.start, period.end),
                Budget.user_id == self.user_id,
            )
            .group_by(Category.id, Category.name, Category.amount_cents)
            .order_by(Category.id)
        )
        results = []
        for row in self.session.execute(stmt):
            spent = int(row.spent or 0)
            results.append(
                SpendingByCategory(
                    id=row.id,
                    name=row.name,
                    amount_cents=spent,
                    limit_cents=row.limit_cents,
                    percentage=percentage_of(spent, row.limit_cents),
                )
            )
        return results

    def overview(
        self,
        budget: Budget,
        categories: Sequence[Category],
        period: Period,
        today: date,
    ) -> BudgetOverview:
        owned = [c for c in categories if c.budget_id == budget.id]
        total_budget = sum(c.amount_cents for c in owned)
        categorized = sum(self.spent_by_category([c.id for c in owned], period).values())
        uncategorized = self.uncategorized_spent(period)
        total_spent = categorized + uncategorized

        income_stmt = select(
            func.coalesce(func.sum(Transaction.amount_cents), 0)
        ).where(
            Transaction.user_id == self.user_id,
            Transaction.type == TransactionType.income,
            Transaction.date.between(period.start, period.end),
        )
        total_income = int(self.session.execute(income_stmt).scalar_one() or 0)

        if today < period.start:
            elapsed, days_remaining = 0, period.days
        elif today > period.end:
            elapsed, days_remaining = period.days, 0
        else:
            elapsed = (today - period.start).days + 1
            days_remaining = (period.end - today).days + 1

        projected = total_spent
        if elapsed:
            projected = total_spent * period.days // elapsed
        remaining = max(0, total_budget - total_spent)
        daily_budget = remaining // days_remaining if days_remaining else 0

        return BudgetOverview(
            start=period.start,
            end=period.end,
            total_budget_cents=total_budget,
            total_spent_cents=total_spent,
            uncategorized_spent_cents=uncategorized,
            total_income_cents=total_income,
            percent_used=percentage_of(total_spent, total_budget),
            days_remaining=days_remaining,
            daily_budget_cents=daily_budget,
            projected_spend_cents=projected,
            projected_overspend_cents=max(0, projected - total_budget),
            is_over_budget=total_spent > total_budget,
        )


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    start: Optional[date] = None
    end: Optional[date] = None


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is None:
            return
        category = self.session.scalar(
            select(Category.id)
            .join(Budget, Budget.id == Category.budget_id)
            .where(Category.id == category_id, Budget.user_id == self.user_id)
        )
        if category is None:
            raise InvalidArgument("Invalid category")

    def list(
        self, filters: TransactionFilters, page: int = 1, limit: int = 20
    ) -> tuple[list[Transaction], Pagination]:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)

        conditions = [Transaction.user_id == self.user_id]
        if filters.type:
            conditions.append(Transaction.type == filters.type)
        if filters.category_id:
            conditions.append(Transaction.category_id == filters.category_id)
        if filters.start:
            conditions.append(Transaction.date >= filters.start)
        if filters.end:
            conditions.append(Transaction.date <= filters.end)

        total = int(
            self.session.execute(
                select(func.count()).select_from(Transaction).where(*conditions)
            ).scalar_one()
        )
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(*conditions)
            .order_by(
                Transaction.date.desc(),
                Transaction.created_at.desc(),
                Transaction.id.desc(),
            )
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = list(self.session.scalars(stmt).all())
        total_pages = math.ceil(total / limit)
        return items, Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.id == transaction_id,
                Transaction.user_id == self.user_id,
            )
        )
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        description = data.description.strip()
        if not description:
            raise InvalidArgument("Type, amount, description, and date are required")
        self._check_category(data.category_id)
        txn = Transaction(
            user_id=self.user_id,
            type=data.type,
            amount_cents=data.amount_cents,
            description=description,
            category_id=data.category_id,
            date=data.date,
        )
        self.session.add(txn)
        _commit(self.session, "Failed to create transaction")
        return self.get(txn.id)

    def update(self, transaction_id: int, patch: TransactionPatch) -> Transaction:
        txn = self.get(transaction_id)
        changes = patch.model_dump(exclude_unset=True)
        if not changes:
            raise InvalidArgument("No changes to update")
        for field in ("type", "amount_cents", "description", "date"):
            if field in changes and changes[field] is None:
                raise InvalidArgument(f"{field} cannot be null")
        if "description" in changes:
            changes["description"] = changes["description"].strip()
            if not changes["description"]:
                raise InvalidArgument("description cannot be empty")
        if "category_id" in changes:
            self._check_category(changes["category_id"])

        for field, value in changes.items():
            setattr(txn, field, value)
        txn.updated_at = datetime.utcnow()
        _commit(self.session, "Failed to update transaction")
        self.session.expire(txn)
        return self.get(transaction_id)

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        _commit(self.session, "Failed to delete transaction")
