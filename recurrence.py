import logging
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from database import commit_or_raise
from errors import ExpenseValidationError, StaleOccurrenceError, UnknownFrequencyError
from models import Expense, Frequency, RecurringExpense

logger = logging.getLogger(__name__)


def local_today() -> str:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date().isoformat()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: date, months: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return date(year, month, day)


def advance(value: str, frequency: Frequency) -> str:
    """Return the ISO date one ``frequency`` step after ``value``.

    Monthly and yearly steps keep the day of month of ``value`` and clamp it
    to the length of the target month, so Jan 31 becomes Feb 29 (or 28) and
    Feb 29 becomes Feb 28 in a non-leap year. The clamp is applied to the
    date being advanced, not to the template's start date.
    """
    current = date.fromisoformat(value)
    if frequency == Frequency.daily:
        next_date = current + timedelta(days=1)
    elif frequency == Frequency.weekly:
        next_date = current + timedelta(weeks=1)
    elif frequency == Frequency.monthly:
        next_date = _add_months(current, 1)
    elif frequency == Frequency.yearly:
        next_date = _add_months(current, 12)
    else:
        raise UnknownFrequencyError(f"Cannot advance frequency {frequency!r}")
    return next_date.isoformat()


def is_pending(template: RecurringExpense, today: str) -> bool:
    # ISO yyyy-MM-dd strings compare lexicographically in date order.
    return bool(template.is_active) and template.next_due_date <= today


class RecurringEngine:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def pending(self, today: Optional[str] = None) -> list[RecurringExpense]:
        today = today or local_today()
        stmt = (
            select(RecurringExpense)
            .options(
                joinedload(RecurringExpense.category),
                joinedload(RecurringExpense.payment_method),
            )
            .where(
                RecurringExpense.user_id == self.user_id,
                RecurringExpense.is_active.is_(True),
            )
            .order_by(RecurringExpense.next_due_date, RecurringExpense.id)
        )
        return [t for t in self.session.scalars(stmt).unique() if is_pending(t, today)]

    def confirm(
        self, template: RecurringExpense, expected_due_date: Optional[str] = None
    ) -> Expense:
        self._check_actionable(template, expected_due_date)
        template_id = template.id
        occurrence_date = template.next_due_date
        expense = Expense(
            user_id=self.user_id,
            category_id=template.category_id,
            amount_cents=template.amount_cents,
            description=template.description,
            date=occurrence_date,
            spender=template.spender,
            payment_method_id=template.payment_method_id,
            recurring_expense_id=template_id,
        )
        self.session.add(expense)
        commit_or_raise(self.session, "Could not record the recurring expense")
        expense_id = expense.id
        logger.info(
            f"recurring_confirm: template={template_id} date={occurrence_date} "
            f"expense={expense_id}"
        )
        try:
            self._advance(template)
        except Exception:
            # The expense stays; the template is still pending for this date.
            logger.warning(
                f"recurring_confirm_partial: template={template_id} "
                f"date={occurrence_date} expense={expense_id} advanced=false"
            )
            raise
        return expense

    def skip(
        self, template: RecurringExpense, expected_due_date: Optional[str] = None
    ) -> None:
        self._check_actionable(template, expected_due_date)
        skipped = template.next_due_date
        self._advance(template)
        logger.info(f"recurring_skip: template={template.id} date={skipped}")

    def _check_actionable(
        self, template: RecurringExpense, expected_due_date: Optional[str]
    ) -> None:
        if not template.is_active:
            raise ExpenseValidationError("Recurring expense is paused")
        expected = expected_due_date
        if expected is not None and expected != template.next_due_date:
            raise StaleOccurrenceError(
                f"Occurrence {expected} was already handled"
            )

    def _advance(self, template: RecurringExpense) -> None:
        next_date = advance(template.next_due_date, template.frequency)
        template.next_due_date = next_date
        if template.end_date and next_date > template.end_date:
            template.is_active = False
        commit_or_raise(self.session, "Could not advance the recurring expense")
        if not template.is_active:
            logger.info(
                f"recurring_finished: template={template.id} "
                f"end_date={template.end_date}"
            )
