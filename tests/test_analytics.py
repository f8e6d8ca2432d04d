from datetime import date

from expense_log.analytics import (
    build_analytics,
    build_slices,
    totals_by_category,
    totals_by_month,
    totals_by_year,
)
from expense_log.filters import filter_query_params, resolve_expense_filter


TODAY = date(2024, 7, 22)

EXPENSES = [
    {"date": "2024-07-20", "amount": 30.0, "category": "Food"},
    {"date": "2024-07-02", "amount": 10.0, "category": "Travel"},
    {"date": "2024-03-15", "amount": 60.0, "category": "Food"},
    {"date": "2023-12-31", "amount": 100.0, "category": "Shopping"},
]


def test_build_slices_drops_empty_groups_and_computes_shares():
    slices = build_slices([("A", 30.0), ("B", 0.0), ("C", 10.0)])
    assert slices == [
        {"label": "A", "amount": 30.0, "percentage": 75.0},
        {"label": "C", "amount": 10.0, "percentage": 25.0},
    ]


def test_totals_by_year_newest_first():
    assert [(s["label"], s["amount"]) for s in totals_by_year(EXPENSES)] == [("2024", 100.0), ("2023", 100.0)]


def test_totals_by_month_only_covers_requested_year():
    slices = totals_by_month(EXPENSES, 2024)
    assert [(s["label"], s["amount"]) for s in slices] == [("March", 60.0), ("July", 40.0)]
    assert slices[0]["percentage"] == 60.0


def test_totals_by_category_largest_first():
    assert [s["label"] for s in totals_by_category(EXPENSES)] == ["Shopping", "Food", "Travel"]


def test_build_analytics_scopes_year_and_month_breakdowns():
    charts = {chart["title"]: chart for chart in build_analytics(EXPENSES, TODAY)}

    assert [s["label"] for s in charts["Categories (2024)"]["slices"]] == ["Food", "Travel"]
    assert [(s["label"], s["amount"]) for s in charts["Categories (July 2024)"]["slices"]] == [
        ("Food", 30.0),
        ("Travel", 10.0),
    ]


def test_build_analytics_without_expenses_shows_empty_messages():
    charts = build_analytics([], TODAY)
    assert all(chart["slices"] == [] for chart in charts)
    assert charts[0]["empty"] == "No data available"


def test_filter_defaults_to_all():
    filters = resolve_expense_filter({}, today=TODAY)
    assert filters["start"] is None and filters["end"] is None
    assert filters["summary"] == "All Expenses"
    assert filter_query_params(filters) == {}


def test_filter_this_month():
    filters = resolve_expense_filter({"preset": "this-month"}, today=TODAY)
    assert (filters["start"], filters["end"]) == (date(2024, 7, 1), date(2024, 7, 31))
    assert filters["summary"] == "July 2024"


def test_filter_this_year():
    filters = resolve_expense_filter({"preset": "this-year"}, today=TODAY)
    assert (filters["start"], filters["end"]) == (date(2024, 1, 1), date(2024, 12, 31))
    assert filters["summary"] == "Year 2024"


def test_filter_custom_range_swaps_reversed_bounds():
    filters = resolve_expense_filter({"preset": "custom", "from": "2024-07-10", "to": "2024-07-01"}, today=TODAY)
    assert (filters["start"], filters["end"]) == (date(2024, 7, 1), date(2024, 7, 10))
    assert filters["summary"] == "2024-07-01 - 2024-07-10"
    assert filter_query_params(filters) == {"preset": "custom", "from": "2024-07-01", "to": "2024-07-10"}


def test_filter_custom_without_dates_is_unbounded():
    filters = resolve_expense_filter({"preset": "custom", "from": "2024-07-10"}, today=TODAY)
    assert filters["start"] is None and filters["end"] is None
    assert filters["summary"] == "All Expenses (Custom dates not set)"


def test_filter_unknown_preset_behaves_as_all():
    filters = resolve_expense_filter({"preset": "last-decade"}, today=TODAY)
    assert filters["preset"] == "all"
