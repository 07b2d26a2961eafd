from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, joinedload

from aggregation import (
    CategoryTotal,
    CategoryTrend,
    ReportSummary,
    SpenderTotal,
    build_summary,
    category_trend,
    daily_totals,
)
from constants import (
    CATEGORY_ICONS,
    DEFAULT_CATEGORIES,
    DEFAULT_PAYMENT_METHODS,
    SUPPORTED_CURRENCIES,
)
from database import commit_or_raise
from errors import ExpenseValidationError, NotFoundError, UnknownFrequencyError
from models import (
    Category,
    Expense,
    Frequency,
    PaymentMethod,
    Profile,
    RecurringExpense,
)
from periods import Period, month_end, month_period, month_start, trailing_months
from recurrence import RecurringEngine, local_today
from schemas import (
    CategoryIn,
    ExpenseIn,
    PaymentMethodIn,
    ProfileIn,
    RecurringExpenseIn,
)

logger = logging.getLogger(__name__)

CATEGORY_IN_USE = (
    "Cannot delete: this category has linked expenses or recurring expenses. "
    "Reassign them first."
)
PAYMENT_METHOD_IN_USE = (
    "Cannot delete: this payment method is used by existing expenses or "
    "recurring expenses."
)

# A soft-deleted profile comes back on next access within this window.
PROFILE_DELETION_GRACE = timedelta(days=30)


def _today() -> date:
    return date.fromisoformat(local_today())


def _visible_to(model, user_id: str):
    return or_(model.user_id == user_id, model.is_default.is_(True))


def seed_defaults(session: Session) -> int:
    """Insert the shared default categories and payment methods once."""
    created = 0
    existing_categories = set(
        session.scalars(select(Category.name).where(Category.is_default.is_(True)))
    )
    for name, icon, color in DEFAULT_CATEGORIES:
        if name not in existing_categories:
            session.add(
                Category(
                    user_id=None, name=name, icon=icon, color=color, is_default=True
                )
            )
            created += 1
    existing_methods = set(
        session.scalars(
            select(PaymentMethod.value).where(PaymentMethod.is_default.is_(True))
        )
    )
    for name, value in DEFAULT_PAYMENT_METHODS:
        if value not in existing_methods:
            session.add(
                PaymentMethod(user_id=None, name=name, value=value, is_default=True)
            )
            created += 1
    commit_or_raise(session, "Could not seed default reference data")
    if created:
        logger.info(f"seed_defaults: rows_created={created}")
    return created


@dataclass
class ExpenseFilters:
    start: Optional[date] = None
    end: Optional[date] = None
    category_id: Optional[int] = None
    spender: Optional[str] = None
    payment_method_id: Optional[int] = None


class ProfileService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def get_or_create(self) -> Profile:
        profile = self.session.get(Profile, self.user_id)
        if profile is None:
            profile = Profile(id=self.user_id, name="", family_members=[])
            self.session.add(profile)
            commit_or_raise(self.session, "Could not create profile")
        elif profile.deleted_at is not None:
            if datetime.utcnow() - profile.deleted_at > PROFILE_DELETION_GRACE:
                raise NotFoundError("Profile has been deleted")
            profile.deleted_at = None
            commit_or_raise(self.session, "Could not reactivate profile")
            logger.info(f"profile_reactivated: user={self.user_id}")
        return profile

    def update(self, data: ProfileIn) -> Profile:
        profile = self.get_or_create()
        currency = data.currency.upper()
        if currency not in SUPPORTED_CURRENCIES:
            raise ExpenseValidationError(f"Unsupported currency: {data.currency}")
        members: list[str] = []
        for raw in data.family_members:
            name = raw.strip()
            if name and name not in members and name != data.name.strip():
                members.append(name)
        profile.name = data.name.strip()
        profile.family_members = members
        profile.currency = currency
        commit_or_raise(self.session, "Could not update profile")
        return profile

    def spender_options(self) -> list[str]:
        profile = self.get_or_create()
        options = [profile.name] if profile.name else []
        options.extend(m for m in profile.family_members if m not in options)
        return options

    def soft_delete(self) -> None:
        profile = self.get_or_create()
        profile.deleted_at = datetime.utcnow()
        commit_or_raise(self.session, "Could not delete account")
        logger.info(f"profile_deleted: user={self.user_id}")


class CategoryService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(_visible_to(Category, self.user_id))
            .order_by(Category.is_default.desc(), Category.name)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or not (
            category.is_default or category.user_id == self.user_id
        ):
            raise NotFoundError("Category not found")
        return category

    def _own(self, category_id: int) -> Category:
        category = self.get(category_id)
        if category.is_default:
            raise ExpenseValidationError("Default categories cannot be changed")
        return category

    def _check(self, data: CategoryIn, exclude_id: Optional[int] = None) -> str:
        name = data.name.strip()
        if not name:
            raise ExpenseValidationError("Category name is required")
        if data.icon not in CATEGORY_ICONS:
            raise ExpenseValidationError(f"Unknown icon: {data.icon}")
        stmt = select(Category.id).where(
            _visible_to(Category, self.user_id),
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ExpenseValidationError("Category with this name already exists")
        return name

    def create(self, data: CategoryIn) -> Category:
        name = self._check(data)
        category = Category(
            user_id=self.user_id,
            name=name,
            icon=data.icon,
            color=data.color.lower(),
            is_default=False,
        )
        self.session.add(category)
        commit_or_raise(self.session, "Could not create category")
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self._own(category_id)
        category.name = self._check(data, exclude_id=category_id)
        category.icon = data.icon
        category.color = data.color.lower()
        commit_or_raise(self.session, "Could not update category")
        return category

    def delete(self, category_id: int) -> None:
        category = self._own(category_id)
        self.session.delete(category)
        commit_or_raise(self.session, CATEGORY_IN_USE)
        logger.info(f"category_deleted: id={category_id} user={self.user_id}")

    def expense_count(self, category_id: int) -> int:
        self.get(category_id)
        stmt = select(func.count(Expense.id)).where(
            Expense.user_id == self.user_id, Expense.category_id == category_id
        )
        return self.session.execute(stmt).scalar_one() or 0


def slugify_payment_method(name: str) -> str:
    value = re.sub(r"\s+", "_", name.strip().lower())
    return re.sub(r"[^a-z0-9_]", "", value)


class PaymentMethodService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[PaymentMethod]:
        stmt = (
            select(PaymentMethod)
            .where(_visible_to(PaymentMethod, self.user_id))
            .order_by(PaymentMethod.is_default.desc(), PaymentMethod.name)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, payment_method_id: int) -> PaymentMethod:
        method = self.session.get(PaymentMethod, payment_method_id)
        if not method or not (method.is_default or method.user_id == self.user_id):
            raise NotFoundError("Payment method not found")
        return method

    def create(self, data: PaymentMethodIn) -> PaymentMethod:
        name = data.name.strip()
        value = slugify_payment_method(name)
        if not value:
            raise ExpenseValidationError("Payment method name is required")
        duplicate = self.session.scalar(
            select(PaymentMethod.id).where(
                _visible_to(PaymentMethod, self.user_id), PaymentMethod.value == value
            )
        )
        if duplicate:
            raise ExpenseValidationError("Payment method already exists")
        method = PaymentMethod(
            user_id=self.user_id, name=name, value=value, is_default=False
        )
        self.session.add(method)
        commit_or_raise(self.session, "Could not create payment method")
        return method

    def delete(self, payment_method_id: int) -> None:
        method = self.get(payment_method_id)
        if method.is_default:
            raise ExpenseValidationError("Default payment methods cannot be removed")
        self.session.delete(method)
        commit_or_raise(self.session, PAYMENT_METHOD_IN_USE)
        logger.info(
            f"payment_method_deleted: id={payment_method_id} user={self.user_id}"
        )


def _check_references(
    session: Session,
    user_id: str,
    *,
    category_id: int,
    payment_method_id: int,
    spender: str,
) -> str:
    spender = spender.strip()
    if not spender:
        raise ExpenseValidationError("Spender is required")
    try:
        CategoryService(session, user_id).get(category_id)
    except NotFoundError as exc:
        raise ExpenseValidationError("Category is required") from exc
    try:
        PaymentMethodService(session, user_id).get(payment_method_id)
    except NotFoundError as exc:
        raise ExpenseValidationError("Payment method is required") from exc
    return spender


def _with_relations(stmt):
    return stmt.options(
        joinedload(Expense.category), joinedload(Expense.payment_method)
    )


class ExpenseService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, filters: Optional[ExpenseFilters] = None) -> list[Expense]:
        filters = filters or ExpenseFilters()
        stmt = _with_relations(select(Expense)).where(Expense.user_id == self.user_id)
        if filters.start:
            stmt = stmt.where(Expense.date >= filters.start.isoformat())
        if filters.end:
            stmt = stmt.where(Expense.date <= filters.end.isoformat())
        if filters.category_id:
            stmt = stmt.where(Expense.category_id == filters.category_id)
        if filters.spender:
            stmt = stmt.where(Expense.spender == filters.spender)
        if filters.payment_method_id:
            stmt = stmt.where(Expense.payment_method_id == filters.payment_method_id)
        stmt = stmt.order_by(
            Expense.date.desc(), Expense.created_at.desc(), Expense.id.desc()
        )
        return list(self.session.scalars(stmt).all())

    def recent(self, limit: int = 5) -> list[Expense]:
        stmt = (
            _with_relations(select(Expense))
            .where(Expense.user_id == self.user_id)
            .order_by(Expense.date.desc(), Expense.created_at.desc(), Expense.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, expense_id: int) -> Expense:
        stmt = _with_relations(select(Expense)).where(
            Expense.user_id == self.user_id, Expense.id == expense_id
        )
        expense = self.session.scalar(stmt)
        if not expense:
            raise NotFoundError("Expense not found")
        return expense

    def create(self, data: ExpenseIn) -> Expense:
        spender = _check_references(
            self.session,
            self.user_id,
            category_id=data.category_id,
            payment_method_id=data.payment_method_id,
            spender=data.spender,
        )
        expense = Expense(
            user_id=self.user_id,
            category_id=data.category_id,
            amount_cents=data.amount_cents,
            description=(data.description or "").strip() or None,
            date=data.date.isoformat(),
            spender=spender,
            payment_method_id=data.payment_method_id,
        )
        self.session.add(expense)
        commit_or_raise(self.session, "Could not save expense")
        logger.info(f"expense_created: id={expense.id} user={self.user_id}")
        return self.get(expense.id)

    def update(self, expense_id: int, data: ExpenseIn) -> Expense:
        expense = self.get(expense_id)
        spender = _check_references(
            self.session,
            self.user_id,
            category_id=data.category_id,
            payment_method_id=data.payment_method_id,
            spender=data.spender,
        )
        expense.category_id = data.category_id
        expense.amount_cents = data.amount_cents
        expense.description = (data.description or "").strip() or None
        expense.date = data.date.isoformat()
        expense.spender = spender
        expense.payment_method_id = data.payment_method_id
        commit_or_raise(self.session, "Could not update expense")
        self.session.expire(expense, ["category", "payment_method"])
        return self.get(expense_id)

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        commit_or_raise(self.session, "Could not delete expense")
        logger.info(f"expense_deleted: id={expense_id} user={self.user_id}")


# Average month length in days and weeks, for normalizing schedules.
_MONTHLY_FACTOR = {
    Frequency.daily: 30.44,
    Frequency.weekly: 4.35,
    Frequency.monthly: 1.0,
    Frequency.yearly: 1 / 12,
}


class RecurringExpenseService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, recurring_id: int) -> RecurringExpense:
        stmt = (
            select(RecurringExpense)
            .options(
                joinedload(RecurringExpense.category),
                joinedload(RecurringExpense.payment_method),
            )
            .where(
                RecurringExpense.user_id == self.user_id,
                RecurringExpense.id == recurring_id,
            )
        )
        template = self.session.scalar(stmt)
        if not template:
            raise NotFoundError("Recurring expense not found")
        return template

    def list(self) -> list[RecurringExpense]:
        stmt = (
            select(RecurringExpense)
            .options(
                joinedload(RecurringExpense.category),
                joinedload(RecurringExpense.payment_method),
            )
            .where(RecurringExpense.user_id == self.user_id)
            .order_by(RecurringExpense.next_due_date, RecurringExpense.id)
        )
        return list(self.session.scalars(stmt).all())

    def _validated(self, data: RecurringExpenseIn) -> str:
        if data.end_date and data.end_date < data.start_date:
            raise ExpenseValidationError("End date must be on or after the start date")
        return _check_references(
            self.session,
            self.user_id,
            category_id=data.category_id,
            payment_method_id=data.payment_method_id,
            spender=data.spender,
        )

    def create(self, data: RecurringExpenseIn) -> RecurringExpense:
        spender = self._validated(data)
        template = RecurringExpense(
            user_id=self.user_id,
            category_id=data.category_id,
            amount_cents=data.amount_cents,
            description=(data.description or "").strip() or None,
            spender=spender,
            payment_method_id=data.payment_method_id,
            frequency=data.frequency,
            start_date=data.start_date.isoformat(),
            end_date=data.end_date.isoformat() if data.end_date else None,
            is_active=True,
            next_due_date=data.start_date.isoformat(),
        )
        self.session.add(template)
        commit_or_raise(self.session, "Could not save recurring expense")
        logger.info(
            f"recurring_created: id={template.id} frequency={template.frequency.value} "
            f"start={template.start_date}"
        )
        return self.get(template.id)

    def update(self, recurring_id: int, data: RecurringExpenseIn) -> RecurringExpense:
        template = self.get(recurring_id)
        spender = self._validated(data)
        template.category_id = data.category_id
        template.amount_cents = data.amount_cents
        template.description = (data.description or "").strip() or None
        template.spender = spender
        template.payment_method_id = data.payment_method_id
        template.frequency = data.frequency
        template.start_date = data.start_date.isoformat()
        template.end_date = data.end_date.isoformat() if data.end_date else None
        if template.next_due_date < template.start_date:
            template.next_due_date = template.start_date
        if template.end_date and template.next_due_date > template.end_date:
            template.is_active = False
        commit_or_raise(self.session, "Could not update recurring expense")
        self.session.expire(template, ["category", "payment_method"])
        return self.get(recurring_id)

    def toggle_active(
        self, recurring_id: int, is_active: Optional[bool] = None
    ) -> RecurringExpense:
        template = self.get(recurring_id)
        if is_active is None:
            is_active = not template.is_active
        template.is_active = is_active
        commit_or_raise(self.session, "Could not update recurring expense")
        logger.info(f"recurring_toggled: id={recurring_id} active={template.is_active}")
        return template

    def delete(self, recurring_id: int) -> None:
        template = self.get(recurring_id)
        self.session.delete(template)
        commit_or_raise(self.session, "Could not delete recurring expense")
        logger.info(f"recurring_deleted: id={recurring_id} user={self.user_id}")

    def pending(self, today: Optional[date] = None) -> list[RecurringExpense]:
        engine = RecurringEngine(self.session, self.user_id)
        return engine.pending(today.isoformat() if today else None)

    def confirm(
        self, recurring_id: int, expected_due_date: Optional[date] = None
    ) -> Expense:
        template = self.get(recurring_id)
        engine = RecurringEngine(self.session, self.user_id)
        expense = engine.confirm(
            template, expected_due_date.isoformat() if expected_due_date else None
        )
        return ExpenseService(self.session, self.user_id).get(expense.id)

    def skip(
        self, recurring_id: int, expected_due_date: Optional[date] = None
    ) -> RecurringExpense:
        template = self.get(recurring_id)
        engine = RecurringEngine(self.session, self.user_id)
        engine.skip(
            template, expected_due_date.isoformat() if expected_due_date else None
        )
        return template

    def occurrences(self, recurring_id: int) -> list[Expense]:
        self.get(recurring_id)
        stmt = (
            _with_relations(select(Expense))
            .where(
                Expense.user_id == self.user_id,
                Expense.recurring_expense_id == recurring_id,
            )
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def monthly_commitment(self) -> dict[str, object]:
        active = [t for t in self.list() if t.is_active]
        by_category: dict[str, CategoryTotal] = {}
        total = 0
        for template in active:
            factor = _MONTHLY_FACTOR.get(template.frequency)
            if factor is None:
                raise UnknownFrequencyError(
                    f"Cannot normalize frequency {template.frequency!r}"
                )
            monthly = int(round(template.amount_cents * factor))
            total += monthly
            name = template.category.name
            entry = by_category.get(name)
            if entry is None:
                by_category[name] = CategoryTotal(
                    name=name, color=template.category.color, total_cents=monthly
                )
            else:
                entry.total_cents += monthly
        return {
            "monthly_total_cents": total,
            "by_category": sorted(
                by_category.values(), key=lambda c: c.total_cents, reverse=True
            ),
            "active_count": len(active),
        }


class ReportService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def fetch_expenses_for_range(
        self,
        start: date,
        end: date,
        *,
        category_id: Optional[int] = None,
        spender: Optional[str] = None,
    ) -> list[Expense]:
        filters = ExpenseFilters(
            start=start, end=end, category_id=category_id, spender=spender
        )
        return ExpenseService(self.session, self.user_id).list(filters)

    def _summary(self, period: Period) -> ReportSummary:
        expenses = self.fetch_expenses_for_range(period.start, period.end)
        return build_summary(expenses)

    def fetch_monthly_summary(self, month: int, year: int) -> ReportSummary:
        try:
            period = month_period(year, month)
        except ValueError as exc:
            raise ExpenseValidationError(str(exc)) from exc
        return self._summary(period)

    def fetch_date_range_summary(self, start: date, end: date) -> ReportSummary:
        if start > end:
            raise ExpenseValidationError("Start date must be before end date")
        return self._summary(Period("custom", start, end))

    def fetch_by_spender(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        *,
        today: Optional[date] = None,
    ) -> list[SpenderTotal]:
        today = today or _today()
        start = start or month_start(today)
        end = end or month_end(today)
        return self.fetch_date_range_summary(start, end).spender_breakdown

    def fetch_category_trend(
        self, months_back: int, *, today: Optional[date] = None
    ) -> CategoryTrend:
        today = today or _today()
        try:
            months = trailing_months(today, months_back)
        except ValueError as exc:
            raise ExpenseValidationError(str(exc)) from exc
        expenses = self.fetch_expenses_for_range(months[0], month_end(today))
        return category_trend(expenses, months)

    def dashboard(self, *, today: Optional[date] = None) -> dict[str, object]:
        today = today or _today()
        start, end = month_start(today), month_end(today)
        expenses = self.fetch_expenses_for_range(start, end)
        summary = build_summary(expenses)
        days = (end - start).days + 1
        pending = RecurringEngine(self.session, self.user_id).pending(today.isoformat())
        return {
            "total_cents": summary.total_cents,
            "average_daily_cents": int(round(summary.total_cents / days)),
            "count": summary.count,
            "category_breakdown": summary.category_breakdown,
            "daily_spending": [
                {"date": day, "total_cents": cents}
                for day, cents in daily_totals(expenses)
            ],
            "recent_expenses": ExpenseService(self.session, self.user_id).recent(5),
            "pending_recurring": pending,
        }
