"""Pure aggregation over realized expenses.

Every function here takes already-fetched expenses (anything exposing
``amount_cents``, ``spender``, ``date`` and a joined ``category`` with
``name`` and ``color``) and never touches storage. Amounts are summed as
integer cents, so results are exact; rounding happens only when formatting.

Categories are grouped by their current display name. An expense whose
category was renamed after the fact is reported under the new name.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Protocol, Sequence


class _CategoryLike(Protocol):
    name: str
    color: str


class ExpenseLike(Protocol):
    amount_cents: int
    spender: str
    date: str
    category: _CategoryLike


@dataclass
class CategoryTotal:
    name: str
    color: str
    total_cents: int


@dataclass
class SpenderTotal:
    name: str
    total_cents: int
    categories: list[CategoryTotal] = field(default_factory=list)


@dataclass
class ReportSummary:
    total_cents: int
    count: int
    category_breakdown: list[CategoryTotal]
    spender_breakdown: list[SpenderTotal]


@dataclass
class TrendPoint:
    month: str
    label: str
    totals: dict[str, int]


@dataclass
class CategoryTrend:
    points: list[TrendPoint]
    categories: list[CategoryTotal]


def _category_breakdown(expenses: Iterable[ExpenseLike]) -> list[CategoryTotal]:
    groups: dict[str, CategoryTotal] = {}
    for expense in expenses:
        name = expense.category.name
        entry = groups.get(name)
        if entry is None:
            groups[name] = CategoryTotal(
                name=name,
                color=expense.category.color,
                total_cents=expense.amount_cents,
            )
        else:
            entry.total_cents += expense.amount_cents
    # sorted() is stable: equal totals keep first-seen order.
    return sorted(groups.values(), key=lambda c: c.total_cents, reverse=True)


def build_summary(expenses: Sequence[ExpenseLike]) -> ReportSummary:
    by_spender: dict[str, list[ExpenseLike]] = {}
    for expense in expenses:
        by_spender.setdefault(expense.spender, []).append(expense)

    spenders = [
        SpenderTotal(
            name=name,
            total_cents=sum(e.amount_cents for e in items),
            categories=_category_breakdown(items),
        )
        for name, items in by_spender.items()
    ]
    spenders.sort(key=lambda s: s.total_cents, reverse=True)

    return ReportSummary(
        total_cents=sum(e.amount_cents for e in expenses),
        count=len(expenses),
        category_breakdown=_category_breakdown(expenses),
        spender_breakdown=spenders,
    )


def category_trend(
    expenses: Sequence[ExpenseLike], months: Sequence[date]
) -> CategoryTrend:
    """Dense month x category matrix of totals.

    ``months`` are the first days of the buckets, oldest first. Every
    category seen anywhere in ``expenses`` appears in every bucket, with 0
    where it had no spending that month. Expenses outside the buckets are
    ignored.
    """
    colors: dict[str, str] = {}
    for expense in expenses:
        colors.setdefault(expense.category.name, expense.category.color)

    keys = [f"{m.year:04d}-{m.month:02d}" for m in months]
    buckets: dict[str, dict[str, int]] = {
        key: {name: 0 for name in colors} for key in keys
    }
    for expense in expenses:
        # ISO date prefix "yyyy-MM" identifies the month bucket.
        bucket = buckets.get(expense.date[:7])
        if bucket is not None:
            bucket[expense.category.name] += expense.amount_cents

    points = [
        TrendPoint(month=key, label=m.strftime("%b %Y"), totals=buckets[key])
        for key, m in zip(keys, months)
    ]
    window_totals = {name: 0 for name in colors}
    for point in points:
        for name, cents in point.totals.items():
            window_totals[name] += cents
    categories = [
        CategoryTotal(name=name, color=color, total_cents=window_totals[name])
        for name, color in colors.items()
    ]
    return CategoryTrend(points=points, categories=categories)


def daily_totals(expenses: Iterable[ExpenseLike]) -> list[tuple[str, int]]:
    totals: dict[str, int] = {}
    for expense in expenses:
        totals[expense.date] = totals.get(expense.date, 0) + expense.amount_cents
    return sorted(totals.items())

