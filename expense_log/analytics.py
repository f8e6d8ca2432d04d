import calendar
from collections import defaultdict
from datetime import date


def _expense_date(expense):
    value = expense["date"]
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def build_slices(totals):
    """Turn ``[(label, amount), ...]`` into slices with a percentage share.

    Groups whose total is not positive are dropped, and percentages are
    computed against what remains.
    """
    kept = [(label, amount) for label, amount in totals if amount > 0]
    grand_total = sum(amount for _, amount in kept)
    return [
        {
            "label": label,
            "amount": round(amount, 2),
            "percentage": round(amount / grand_total * 100, 1),
        }
        for label, amount in kept
    ]


def totals_by_year(expenses):
    totals = defaultdict(float)
    for expense in expenses:
        totals[_expense_date(expense).year] += expense["amount"]
    return build_slices((str(year), totals[year]) for year in sorted(totals, reverse=True))


def totals_by_month(expenses, year):
    totals = defaultdict(float)
    for expense in expenses:
        expense_date = _expense_date(expense)
        if expense_date.year == year:
            totals[expense_date.month] += expense["amount"]
    return build_slices((calendar.month_name[month], totals[month]) for month in sorted(totals))


def totals_by_category(expenses):
    totals = defaultdict(float)
    for expense in expenses:
        totals[expense["category"]] += expense["amount"]
    ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return build_slices(ordered)


def build_analytics(expenses, today):
    current_year = [e for e in expenses if _expense_date(e).year == today.year]
    current_month = [e for e in current_year if _expense_date(e).month == today.month]
    month_label = f"{calendar.month_name[today.month]} {today.year}"
    return [
        {"title": "Expenses by Year", "slices": totals_by_year(expenses), "empty": "No data available"},
        {
            "title": f"Monthly Expenses ({today.year})",
            "slices": totals_by_month(expenses, today.year),
            "empty": f"No data for {today.year}",
        },
        {"title": "Categories (Overall)", "slices": totals_by_category(expenses), "empty": "No expenses recorded"},
        {
            "title": f"Categories ({today.year})",
            "slices": totals_by_category(current_year),
            "empty": f"No expenses for {today.year}",
        },
        {
            "title": f"Categories ({month_label})",
            "slices": totals_by_category(current_month),
            "empty": f"No expenses for {month_label}",
        },
    ]
