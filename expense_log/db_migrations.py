import argparse
import json
from datetime import datetime, timezone

from .db import connect_db, parse_database_config


EXPENSE_COLUMNS = ("id", "description", "amount", "category", "date", "created_at", "updated_at")
EXPENSE_INDEXES = {
    "idx_expenses_date": "CREATE INDEX IF NOT EXISTS idx_expenses_date ON expenses(date)",
    "idx_expenses_category": "CREATE INDEX IF NOT EXISTS idx_expenses_category ON expenses(category)",
}

# Catalog lookups keyed by backend; each takes a single name parameter.
CATALOG_SQL = {
    "sqlite": {
        "table": "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
        "index": "SELECT 1 FROM sqlite_master WHERE type = 'index' AND name = ?",
    },
    "postgres": {
        "table": "SELECT 1 FROM information_schema.tables WHERE table_schema = current_schema() AND table_name = ?",
        "index": "SELECT 1 FROM pg_indexes WHERE schemaname = current_schema() AND indexname = ?",
        "columns": (
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_schema = current_schema() AND table_name = ?"
        ),
    },
}


def backend_name(conn):
    return getattr(conn, "backend", "sqlite")


def _catalog_has(conn, kind, name):
    sql = CATALOG_SQL[backend_name(conn)][kind]
    return conn.execute(sql, (name,)).fetchone() is not None


def expense_columns_present(conn):
    if backend_name(conn) == "postgres":
        rows = conn.execute(CATALOG_SQL["postgres"]["columns"], ("expenses",)).fetchall()
        return {row[0] for row in rows}
    return {row[1] for row in conn.execute("PRAGMA table_info(expenses)").fetchall()}


def migration_001(conn):
    """Create the expenses table and the indexes used by date and category queries."""
    id_column = "BIGSERIAL PRIMARY KEY" if backend_name(conn) == "postgres" else "INTEGER PRIMARY KEY AUTOINCREMENT"
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS expenses (
            id {id_column},
            description TEXT NOT NULL,
            amount REAL NOT NULL,
            category TEXT NOT NULL,
            date TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT
        )
        """
    )
    for create_sql in EXPENSE_INDEXES.values():
        conn.execute(create_sql)


MIGRATIONS = [
    (1, migration_001),
]


def _ensure_schema_version_table(conn):
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """
    )


def current_schema_version(conn):
    _ensure_schema_version_table(conn)
    row = conn.execute("SELECT MAX(version) AS version FROM schema_version").fetchone()
    return int(row[0] or 0)


def _run_migrations(conn):
    applied = current_schema_version(conn)
    for version, migration_fn in MIGRATIONS:
        if version <= applied:
            continue
        try:
            migration_fn(conn)
            conn.execute(
                "INSERT INTO schema_version(version, applied_at) VALUES (?, ?)",
                (version, datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")),
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    health = inspect_db_health(conn)
    if health["missing_tables"] or health["missing_columns"]["expenses"]:
        raise RuntimeError(f"Expense schema incomplete after migrations: {health}")


def apply_migrations(target):
    """Bring the schema up to date.

    ``target`` is an open connection (left open), a parsed database config,
    or a SQLite path.
    """
    if hasattr(target, "execute"):
        _run_migrations(target)
        return

    conn = connect_db(target if isinstance(target, dict) else parse_database_config(target))
    try:
        _run_migrations(conn)
    finally:
        conn.close()


def inspect_db_health(conn):
    _ensure_schema_version_table(conn)
    if _catalog_has(conn, "table", "expenses"):
        present = expense_columns_present(conn)
        missing_tables = []
        missing_columns = sorted(col for col in EXPENSE_COLUMNS if col not in present)
        missing_indexes = sorted(name for name in EXPENSE_INDEXES if not _catalog_has(conn, "index", name))
    else:
        missing_tables = ["expenses"]
        missing_columns = sorted(EXPENSE_COLUMNS)
        missing_indexes = sorted(EXPENSE_INDEXES)

    return {
        "ok": not (missing_tables or missing_columns or missing_indexes),
        "schema_version": current_schema_version(conn),
        "missing_tables": missing_tables,
        "missing_columns": {"expenses": missing_columns},
        "missing_indexes": missing_indexes,
    }


def get_db_health(target):
    conn = connect_db(target if isinstance(target, dict) else parse_database_config(target))
    try:
        return inspect_db_health(conn)
    finally:
        conn.close()


def main():
    parser = argparse.ArgumentParser(description="Check expense log DB schema health")
    parser.add_argument("db_path", help="Path to SQLite DB file")
    parser.add_argument("--migrate", action="store_true", help="Apply migrations before checking")
    args = parser.parse_args()
    if args.migrate:
        apply_migrations(args.db_path)
    print(json.dumps(get_db_health(args.db_path), indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
