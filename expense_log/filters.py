import calendar
from datetime import date, datetime


FILTER_PRESETS = ("all", "this-month", "this-year", "custom")


def parse_iso_date(value):
    value = (value or "").strip()
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def resolve_expense_filter(args, today=None):
    today = today or date.today()
    preset = (args.get("preset") or "all").strip()
    if preset not in FILTER_PRESETS:
        preset = "all"
    from_value = (args.get("from") or "").strip()
    to_value = (args.get("to") or "").strip()

    start = end = None
    summary = "All Expenses"

    if preset == "this-month":
        last_day = calendar.monthrange(today.year, today.month)[1]
        start = today.replace(day=1)
        end = today.replace(day=last_day)
        summary = f"{calendar.month_name[today.month]} {today.year}"
    elif preset == "this-year":
        start = date(today.year, 1, 1)
        end = date(today.year, 12, 31)
        summary = f"Year {today.year}"
    elif preset == "custom":
        parsed_start = parse_iso_date(from_value)
        parsed_end = parse_iso_date(to_value)
        if parsed_start and parsed_end:
            if parsed_start > parsed_end:
                parsed_start, parsed_end = parsed_end, parsed_start
            start, end = parsed_start, parsed_end
            from_value, to_value = start.isoformat(), end.isoformat()
            summary = f"{from_value} - {to_value}"
        else:
            summary = "All Expenses (Custom dates not set)"

    if preset != "custom":
        from_value = to_value = ""

    return {
        "preset": preset,
        "start": start,
        "end": end,
        "from": from_value,
        "to": to_value,
        "summary": summary,
    }


def filter_query_params(filters):
    if filters["preset"] == "all":
        return {}
    params = {"preset": filters["preset"]}
    if filters["preset"] == "custom":
        params["from"] = filters["from"]
        params["to"] = filters["to"]
    return params
