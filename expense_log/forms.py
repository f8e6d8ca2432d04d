import math
from datetime import datetime

from .csv_import import ExpenseRecord, parse_amount


def form_values(form):
    return {
        "description": (form.get("description") or "").strip(),
        "amount": (form.get("amount") or "").strip(),
        "category": (form.get("category") or "").strip(),
        "date": (form.get("date") or "").strip(),
    }


def validate_expense_form(form, today):
    """Validate an add/edit submission.

    Returns ``(record, errors, values)``. ``record`` is None whenever
    ``errors`` (field name -> message) is non-empty. ``values`` echoes the
    submitted text so the form can be re-rendered.
    """
    values = form_values(form)
    errors = {}

    if not values["description"]:
        errors["description"] = "Description is required"

    try:
        amount = float(values["amount"])
    except ValueError:
        amount = None
    if amount is None or not math.isfinite(amount):
        errors["amount"] = "Please enter a valid amount"
    elif amount <= 0:
        errors["amount"] = "Amount must be greater than 0"

    if not values["category"]:
        errors["category"] = "Please select a category"

    expense_date = None
    if not values["date"]:
        errors["date"] = "Date is required"
    else:
        try:
            expense_date = datetime.strptime(values["date"], "%Y-%m-%d").date()
        except ValueError:
            errors["date"] = "Please enter a valid date"
        else:
            if expense_date > today:
                errors["date"] = "Date cannot be in the future"

    if errors:
        return None, errors, values

    record = ExpenseRecord(
        description=values["description"],
        amount=parse_amount(values["amount"]),
        category=values["category"],
        date=expense_date,
    )
    return record, {}, values


def values_from_row(row):
    return {
        "description": row["description"],
        "amount": f"{row['amount']:.2f}",
        "category": row["category"],
        "date": row["date"],
    }
