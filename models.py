from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

# Calendar dates are persisted as ISO ``yyyy-MM-dd`` text. The format is
# fixed-width and zero-padded, so plain string comparison orders them the
# same way as the dates themselves; range filters and pending checks rely
# on that. Never store another format in these columns.
ISO_DATE = String(10)


class Frequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Profile(Base, TimestampMixin):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    family_members: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str] = mapped_column(String(40), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    expenses: Mapped[list["Expense"]] = relationship(
        "Expense", back_populates="category", passive_deletes="all"
    )
    recurring_expenses: Mapped[list["RecurringExpense"]] = relationship(
        "RecurringExpense", back_populates="category", passive_deletes="all"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_user_name"),
        CheckConstraint(
            "(is_default AND user_id IS NULL) "
            "OR (NOT is_default AND user_id IS NOT NULL)",
            name="ck_category_owner",
        ),
    )


class PaymentMethod(Base, TimestampMixin):
    __tablename__ = "payment_methods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(60), nullable=False)
    value: Mapped[str] = mapped_column(String(60), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    expenses: Mapped[list["Expense"]] = relationship(
        "Expense", back_populates="payment_method", passive_deletes="all"
    )
    recurring_expenses: Mapped[list["RecurringExpense"]] = relationship(
        "RecurringExpense", back_populates="payment_method", passive_deletes="all"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "value", name="uq_payment_method_user_value"),
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    date: Mapped[str] = mapped_column(ISO_DATE, nullable=False)
    spender: Mapped[str] = mapped_column(String(100), nullable=False)
    payment_method_id: Mapped[int] = mapped_column(
        ForeignKey("payment_methods.id"), nullable=False
    )
    recurring_expense_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recurring_expenses.id", ondelete="SET NULL")
    )

    category: Mapped["Category"] = relationship("Category", back_populates="expenses")
    payment_method: Mapped["PaymentMethod"] = relationship(
        "PaymentMethod", back_populates="expenses"
    )
    recurring_expense: Mapped[Optional["RecurringExpense"]] = relationship(
        "RecurringExpense", back_populates="expenses"
    )

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "date"),
        Index("ix_expenses_user_category_date", "user_id", "category_id", "date"),
        CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
    )


class RecurringExpense(Base, TimestampMixin):
    __tablename__ = "recurring_expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    spender: Mapped[str] = mapped_column(String(100), nullable=False)
    payment_method_id: Mapped[int] = mapped_column(
        ForeignKey("payment_methods.id"), nullable=False
    )
    frequency: Mapped[Frequency] = mapped_column(SAEnum(Frequency), nullable=False)
    start_date: Mapped[str] = mapped_column(ISO_DATE, nullable=False)
    end_date: Mapped[Optional[str]] = mapped_column(ISO_DATE)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    next_due_date: Mapped[str] = mapped_column(ISO_DATE, nullable=False)

    category: Mapped["Category"] = relationship(
        "Category", back_populates="recurring_expenses"
    )
    payment_method: Mapped["PaymentMethod"] = relationship(
        "PaymentMethod", back_populates="recurring_expenses"
    )
    expenses: Mapped[list["Expense"]] = relationship(
        "Expense", back_populates="recurring_expense", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_recurring_user_due", "user_id", "is_active", "next_due_date"),
        CheckConstraint("amount_cents > 0", name="ck_recurring_amount_positive"),
        CheckConstraint(
            "next_due_date >= start_date", name="ck_recurring_due_after_start"
        ),
    )
