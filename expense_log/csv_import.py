import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation


REQUIRED_COLUMNS = ("description", "amount", "category", "date")
PREVIEW_ROW_LIMIT = 5
ALLOWED_CONTENT_TYPES = {
    "text/csv",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
FALLBACK_DATE_FORMATS = [
    "%Y/%m/%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%a %b %d %Y",
]

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
US_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
QUOTE_CHARS_RE = re.compile(r"['\"]")

NOT_ENOUGH_LINES = "File must contain at least a header row and one data row"
NO_VALID_EXPENSES = "No valid expenses found"


class ImportFileError(ValueError):
    """Raised when a whole file is rejected before anything is persisted."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.message = message
        self.errors = list(errors or [])


@dataclass(frozen=True)
class ExpenseRecord:
    description: str
    amount: Decimal
    category: str
    date: date


@dataclass(frozen=True)
class RowError:
    row_number: int
    reason: str

    def __str__(self):
        return f"Row {self.row_number}: {self.reason}"


@dataclass(frozen=True)
class ImportOutcome:
    records: tuple
    errors: tuple

    @property
    def imported(self):
        return len(self.records)

    def error_messages(self):
        return [str(error) for error in self.errors]


def split_csv_line(line):
    """Split one CSV line into trimmed fields.

    A double quote toggles quoted mode, so commas inside quotes stay in the
    field. There is no escape for a literal quote inside a quoted field.
    """
    fields = []
    current = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    fields.append("".join(current).strip())
    return fields


def strip_quotes(value):
    return QUOTE_CHARS_RE.sub("", value or "")


def non_blank_lines(text):
    return [line for line in (text or "").split("\n") if line.strip()]


def normalize_header(fields):
    return [strip_quotes(field).lower() for field in fields]


def validate_header(line):
    headers = normalize_header(split_csv_line(line))
    present = set(headers)
    missing = [column for column in REQUIRED_COLUMNS if column not in present]
    if missing:
        raise ImportFileError(
            f"Missing required columns: {', '.join(missing)}. "
            f"Expected columns: {', '.join(REQUIRED_COLUMNS)}"
        )
    return headers


def parse_amount(value):
    text = (value or "").strip()
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    # stored as REAL, so the value must survive float conversion
    as_float = float(amount)
    if not math.isfinite(as_float) or as_float <= 0:
        return None
    return amount


def parse_expense_date(value):
    text = (value or "").strip()
    if not text:
        return None

    if ISO_DATE_RE.match(text):
        try:
            return datetime.strptime(text, "%Y-%m-%d").date()
        except ValueError:
            return None

    us_match = US_DATE_RE.match(text)
    if us_match:
        month, day, year = (int(part) for part in us_match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None

    for fmt in FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def coerce_row(fields, headers, row_number):
    if len(fields) != len(headers):
        return RowError(row_number, "Column count mismatch")

    row = dict(zip(headers, (strip_quotes(value) for value in fields)))

    description = row.get("description", "").strip()
    if not description:
        return RowError(row_number, "Description is required")

    raw_amount = row.get("amount", "")
    amount = parse_amount(raw_amount)
    if amount is None:
        return RowError(row_number, f'Invalid amount "{raw_amount}"')

    category = row.get("category", "").strip()
    if not category:
        return RowError(row_number, "Category is required")

    date_text = row.get("date", "").strip()
    if not date_text:
        return RowError(row_number, "Date is required")
    expense_date = parse_expense_date(date_text)
    if expense_date is None:
        return RowError(
            row_number,
            f'Invalid date "{date_text}". Use YYYY-MM-DD or MM/DD/YYYY format',
        )

    return ExpenseRecord(
        description=description,
        amount=amount,
        category=category,
        date=expense_date,
    )


def _process_lines(text, limit=None):
    lines = non_blank_lines(text)
    if len(lines) < 2:
        raise ImportFileError(NOT_ENOUGH_LINES)

    headers = validate_header(lines[0])
    data_lines = lines[1:] if limit is None else lines[1:limit + 1]

    records = []
    errors = []
    # row 1 is the header
    for row_number, line in enumerate(data_lines, start=2):
        result = coerce_row(split_csv_line(line), headers, row_number)
        if isinstance(result, RowError):
            errors.append(result)
        else:
            records.append(result)
    return records, errors


def import_expenses(text):
    """Parse a whole CSV payload into an ImportOutcome.

    Rows that fail validation are reported in ``errors`` and skipped; the
    valid rows are still returned. ``ImportFileError`` is raised only for
    file-level problems: fewer than two non-blank lines, missing required
    columns, or no valid row at all.
    """
    records, errors = _process_lines(text)
    if not records and errors:
        raise ImportFileError(NO_VALID_EXPENSES, errors)
    return ImportOutcome(records=tuple(records), errors=tuple(errors))


def preview_expenses(text, limit=PREVIEW_ROW_LIMIT):
    """Interpret the first ``limit`` data rows without committing to an import."""
    records, errors = _process_lines(text, limit=limit)
    return ImportOutcome(records=tuple(records), errors=tuple(errors))


def is_allowed_upload(filename, content_type):
    if (content_type or "").split(";")[0].strip().lower() in ALLOWED_CONTENT_TYPES:
        return True
    return (filename or "").lower().endswith(".csv")


def decode_csv_bytes(file_bytes):
    for encoding in ["utf-8-sig", "utf-8", "cp1252", "latin-1"]:
        try:
            return file_bytes.decode(encoding)
        except UnicodeDecodeError:
            continue
    return None
