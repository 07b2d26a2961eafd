import random
from datetime import date

from aggregation import build_summary, category_trend, daily_totals
from models import Category, Expense

COLORS = {"Food": "#ef4444", "Transport": "#f97316", "Rent": "#3b82f6"}


def _expense(cents: int, category: str, spender: str = "Alex", day: str = "2024-03-10"):
    return Expense(
        amount_cents=cents,
        spender=spender,
        date=day,
        category=Category(name=category, color=COLORS.get(category, "#94a3b8")),
    )


def test_empty_summary():
    summary = build_summary([])
    assert summary.total_cents == 0
    assert summary.count == 0
    assert summary.category_breakdown == []
    assert summary.spender_breakdown == []


def test_category_breakdown_sorted_descending():
    expenses = [
        _expense(1000, "Food"),
        _expense(500, "Food"),
        _expense(2000, "Transport"),
    ]
    summary = build_summary(expenses)

    assert [(c.name, c.total_cents) for c in summary.category_breakdown] == [
        ("Transport", 2000),
        ("Food", 1500),
    ]
    assert summary.category_breakdown[1].color == COLORS["Food"]
    assert summary.total_cents == 3500
    assert summary.count == 3


def test_totals_are_exact_for_cent_amounts():
    # 0.10 + 0.20 drifts in binary floating point; cents do not.
    expenses = [_expense(10, "Food"), _expense(20, "Food")] * 50
    assert build_summary(expenses).total_cents == 1500


def test_summary_is_independent_of_record_order():
    expenses = [
        _expense(1234, "Food", "Alex"),
        _expense(99, "Rent", "Sam"),
        _expense(45000, "Rent", "Alex"),
        _expense(1, "Transport", "Sam"),
        _expense(750, "Food", "Sam"),
    ]
    baseline = build_summary(expenses)
    shuffled = list(expenses)
    random.Random(7).shuffle(shuffled)
    other = build_summary(shuffled)

    assert other.total_cents == baseline.total_cents == sum(
        e.amount_cents for e in expenses
    )
    assert {c.name: c.total_cents for c in other.category_breakdown} == {
        c.name: c.total_cents for c in baseline.category_breakdown
    }


def test_spender_breakdown_nests_categories():
    expenses = [
        _expense(1000, "Food", "Alex"),
        _expense(3000, "Rent", "Alex"),
        _expense(200, "Food", "Sam"),
        _expense(500, "Food", "Alex"),
    ]
    spenders = build_summary(expenses).spender_breakdown

    assert [(s.name, s.total_cents) for s in spenders] == [("Alex", 4500), ("Sam", 200)]
    assert [(c.name, c.total_cents) for c in spenders[0].categories] == [
        ("Rent", 3000),
        ("Food", 1500),
    ]
    assert [(c.name, c.total_cents) for c in spenders[1].categories] == [("Food", 200)]


def test_category_trend_is_dense_and_oldest_first():
    months = [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)]
    expenses = [
        _expense(1000, "Food", day="2024-01-05"),
        _expense(2500, "Rent", day="2024-03-01"),
        _expense(300, "Food", day="2024-03-31"),
    ]
    trend = category_trend(expenses, months)

    assert [p.month for p in trend.points] == ["2024-01", "2024-02", "2024-03"]
    assert trend.points[0].label == "Jan 2024"
    for point in trend.points:
        assert set(point.totals) == {"Food", "Rent"}
    assert trend.points[0].totals == {"Food": 1000, "Rent": 0}
    assert trend.points[1].totals == {"Food": 0, "Rent": 0}
    assert trend.points[2].totals == {"Food": 300, "Rent": 2500}
    assert {c.name: c.total_cents for c in trend.categories} == {
        "Food": 1300,
        "Rent": 2500,
    }


def test_category_trend_without_expenses_still_has_every_bucket():
    months = [date(2023, 11, 1), date(2023, 12, 1)]
    trend = category_trend([], months)
    assert [p.totals for p in trend.points] == [{}, {}]
    assert trend.categories == []


def test_daily_totals_sorted_by_date():
    expenses = [
        _expense(100, "Food", day="2024-03-02"),
        _expense(250, "Rent", day="2024-03-01"),
        _expense(50, "Food", day="2024-03-02"),
    ]
    assert daily_totals(expenses) == [("2024-03-01", 250), ("2024-03-02", 150)]
