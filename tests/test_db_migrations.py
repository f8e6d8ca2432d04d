import sqlite3

from expense_log.db import rewrite_sql
from expense_log.db_migrations import apply_migrations, get_db_health, migration_001


class _FakeCursor:
    def fetchone(self):
        return None

    def fetchall(self):
        return []


class _FakePostgresConnection:
    def __init__(self):
        self.backend = "postgres"
        self.statements = []

    def execute(self, sql, params=None):
        normalized_sql = " ".join(sql.split())
        self.statements.append(normalized_sql)
        if normalized_sql.startswith(("CREATE TABLE", "CREATE INDEX")):
            return _FakeCursor()
        raise AssertionError(f"Unexpected SQL in migration_001: {sql}")


def test_apply_migrations_on_empty_db(tmp_path):
    db_path = tmp_path / "empty.sqlite"

    apply_migrations(str(db_path))
    health = get_db_health(str(db_path))

    assert health["ok"] is True
    assert health["schema_version"] == 1
    assert health["missing_tables"] == []
    assert health["missing_columns"] == {"expenses": []}
    assert health["missing_indexes"] == []


def test_apply_migrations_is_idempotent(tmp_path):
    db_path = tmp_path / "twice.sqlite"

    apply_migrations(str(db_path))
    apply_migrations(str(db_path))

    conn = sqlite3.connect(db_path)
    versions = [row[0] for row in conn.execute("SELECT version FROM schema_version ORDER BY version").fetchall()]
    conn.close()
    assert versions == [1]


def test_health_reports_missing_index(tmp_path):
    db_path = tmp_path / "no-index.sqlite"
    apply_migrations(str(db_path))
    conn = sqlite3.connect(db_path)
    conn.execute("DROP INDEX idx_expenses_category")
    conn.commit()
    conn.close()

    health = get_db_health(str(db_path))

    assert health["ok"] is False
    assert health["missing_indexes"] == ["idx_expenses_category"]


def test_health_reports_missing_table(tmp_path):
    db_path = tmp_path / "blank.sqlite"
    sqlite3.connect(db_path).close()

    health = get_db_health(str(db_path))

    assert health["ok"] is False
    assert health["missing_tables"] == ["expenses"]
    assert health["missing_indexes"] == ["idx_expenses_category", "idx_expenses_date"]


def test_migration_001_uses_postgres_syntax():
    conn = _FakePostgresConnection()

    migration_001(conn)

    assert conn.statements[0].startswith("CREATE TABLE IF NOT EXISTS expenses ( id BIGSERIAL PRIMARY KEY,")
    assert "updated_at TEXT" in conn.statements[0]
    assert conn.statements[1:] == [
        "CREATE INDEX IF NOT EXISTS idx_expenses_date ON expenses(date)",
        "CREATE INDEX IF NOT EXISTS idx_expenses_category ON expenses(category)",
    ]


def test_apply_migrations_does_not_close_passed_connection(tmp_path):
    db_path = tmp_path / "connection.sqlite"
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row

    apply_migrations(conn)

    row = conn.execute("SELECT 1").fetchone()
    assert row[0] == 1
    conn.close()


def test_rewrite_sql_only_touches_postgres():
    sql = "SELECT * FROM expenses WHERE date >= ? AND date <= ?"
    assert rewrite_sql("sqlite", sql) == sql
    assert rewrite_sql("postgres", sql) == "SELECT * FROM expenses WHERE date >= %s AND date <= %s"
