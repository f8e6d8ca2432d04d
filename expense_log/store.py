from .db_migrations import backend_name


EXPENSE_COLUMNS = "id, description, amount, category, date, created_at, updated_at"


def _now_sql(db):
    if backend_name(db) == "postgres":
        return "(CURRENT_TIMESTAMP::text)"
    return "CURRENT_TIMESTAMP"


def record_params(record):
    # sqlite3 cannot bind Decimal
    return (record.description, float(record.amount), record.category, record.date.isoformat())


def _range_clause(start=None, end=None):
    clauses = []
    params = []
    if start is not None:
        clauses.append("date >= ?")
        params.append(start.isoformat())
    if end is not None:
        clauses.append("date <= ?")
        params.append(end.isoformat())
    where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where_sql, params


def insert_many(db, records):
    """Insert all records in one transaction and return how many were written."""
    records = list(records)
    if not records:
        return 0
    try:
        db.executemany(
            "INSERT INTO expenses (description, amount, category, date) VALUES (?, ?, ?, ?)",
            [record_params(record) for record in records],
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return len(records)


def create_expense(db, record):
    db.execute(
        "INSERT INTO expenses (description, amount, category, date) VALUES (?, ?, ?, ?)",
        record_params(record),
    )
    db.commit()


def update_expense(db, expense_id, record):
    result = db.execute(
        f"""
        UPDATE expenses
        SET description = ?, amount = ?, category = ?, date = ?, updated_at = {_now_sql(db)}
        WHERE id = ?
        """,
        (*record_params(record), expense_id),
    )
    db.commit()
    return result.rowcount > 0


def delete_expense(db, expense_id):
    result = db.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
    db.commit()
    return result.rowcount > 0


def get_expense(db, expense_id):
    return db.execute(
        f"SELECT {EXPENSE_COLUMNS} FROM expenses WHERE id = ?",
        (expense_id,),
    ).fetchone()


def list_expenses(db, start=None, end=None, newest_first=True):
    where_sql, params = _range_clause(start, end)
    order_sql = "date DESC, id DESC" if newest_first else "date ASC, id ASC"
    return db.execute(
        f"SELECT {EXPENSE_COLUMNS} FROM expenses {where_sql} ORDER BY {order_sql}",
        params,
    ).fetchall()


def count_expenses(db):
    return db.execute("SELECT COUNT(*) AS total FROM expenses").fetchone()[0]
