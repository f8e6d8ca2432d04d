import csv
import io
import os
from datetime import date

from flask import (
    Flask,
    abort,
    flash,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
    Response,
)
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

from . import store
from .analytics import build_analytics
from .csv_import import (
    PREVIEW_ROW_LIMIT,
    REQUIRED_COLUMNS,
    ImportFileError,
    decode_csv_bytes,
    import_expenses,
    is_allowed_upload,
    preview_expenses,
)
from .db import DATABASE_ERRORS, connect_db, parse_database_config
from .db_migrations import apply_migrations, get_db_health
from .filters import filter_query_params, resolve_expense_filter
from .forms import validate_expense_form, values_from_row


class DatabaseInitError(RuntimeError):
    """Raised when the database cannot be opened or migrated."""


DEFAULT_CATEGORIES = [
    "Food & Dining",
    "Transportation",
    "Shopping",
    "Entertainment",
    "Bills & Utilities",
    "Healthcare",
    "Education",
    "Travel",
    "Other",
]

UPLOAD_FAILED_MESSAGE = "Failed to process file. Please check the format and try again."
SAVE_FAILED_MESSAGE = "Failed to save imported expenses. Please try again."


def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_mapping(
        SECRET_KEY="dev",
        DATABASE=os.path.join(app.instance_path, "expense_log.sqlite"),
        MAX_CONTENT_LENGTH=10 * 1024 * 1024,
        IMPORT_PREVIEW_ROWS=PREVIEW_ROW_LIMIT,
        EXPENSE_CATEGORIES=list(DEFAULT_CATEGORIES),
    )

    if test_config is not None:
        app.config.update(test_config)

    os.makedirs(app.instance_path, exist_ok=True)
    app.config.setdefault("DB_INIT_ERROR", None)

    def database_config():
        return parse_database_config(app.config["DATABASE"])

    @app.teardown_appcontext
    def close_db(_=None):
        db = g.pop("db", None)
        if db is not None:
            db.close()

    def get_db():
        if "db" not in g:
            config = database_config()
            try:
                g.db = connect_db(config)
            except (*DATABASE_ERRORS, OSError, RuntimeError) as exc:
                message = f"Unable to open {config['backend']} database {config['database_name']}: {exc}"
                app.logger.error("Database open failed: %s", message)
                app.config["DB_INIT_ERROR"] = message
                raise DatabaseInitError(message) from exc
        return g.db

    def init_db():
        config = database_config()
        try:
            apply_migrations(config)
            app.config["DB_INIT_ERROR"] = None
        except (*DATABASE_ERRORS, OSError, RuntimeError) as exc:
            message = f"Failed to initialize {config['backend']} database {config['database_name']}: {exc}"
            app.logger.error("Database init failed: %s", message)
            app.config["DB_INIT_ERROR"] = message
            raise DatabaseInitError(message) from exc

    @app.cli.command("init-db")
    def init_db_command():
        init_db()
        print("Initialized the database.")

    @app.get("/health/db")
    def db_health():
        try:
            return jsonify(get_db_health(database_config()))
        except (*DATABASE_ERRORS, RuntimeError) as exc:
            return jsonify({
                "ok": False,
                "schema_version": 0,
                "missing_tables": [],
                "missing_columns": {},
                "missing_indexes": [],
                "error": str(exc),
            }), 500

    @app.before_request
    def check_db_ready():
        if app.config.get("DB_INIT_ERROR") and request.endpoint != "db_health":
            message = app.config["DB_INIT_ERROR"]
            return render_template("db_error.html", message=message), 500

    def category_choices(current=""):
        choices = list(app.config["EXPENSE_CATEGORIES"])
        if current and current not in choices:
            choices.append(current)
        return choices

    def render_expense_form(expense, values, errors, status=200):
        return render_template(
            "expense_form.html",
            expense=expense,
            values=values,
            errors=errors,
            categories=category_choices(values.get("category", "")),
            today=date.today().isoformat(),
        ), status

    @app.route("/")
    def index():
        filters = resolve_expense_filter(request.args)
        db = get_db()
        expenses = store.list_expenses(db, start=filters["start"], end=filters["end"])
        total = round(sum(row["amount"] for row in expenses), 2)
        return render_template(
            "index.html",
            expenses=expenses,
            total=total,
            all_count=store.count_expenses(db),
            filters=filters,
            filter_params=filter_query_params(filters),
            analytics=build_analytics(expenses, date.today()),
        )

    @app.route("/expenses/new", methods=("GET", "POST"))
    def create_expense():
        if request.method == "POST":
            record, errors, values = validate_expense_form(request.form, date.today())
            if errors:
                return render_expense_form(None, values, errors, status=400)

            store.create_expense(get_db(), record)
            flash("Expense added.")
            return redirect(url_for("index"))

        return render_expense_form(None, {"date": date.today().isoformat()}, {})

    @app.route("/expenses/<int:expense_id>/edit", methods=("GET", "POST"))
    def edit_expense(expense_id):
        db = get_db()
        expense = store.get_expense(db, expense_id)
        if expense is None:
            abort(404)

        if request.method == "POST":
            if request.form.get("intent") == "delete":
                store.delete_expense(db, expense_id)
                app.logger.info("Deleted expense_id=%s from edit form", expense_id)
                flash("Expense deleted.")
                return redirect(url_for("index"))

            record, errors, values = validate_expense_form(request.form, date.today())
            if errors:
                return render_expense_form(expense, values, errors, status=400)

            store.update_expense(db, expense_id, record)
            flash("Expense updated.")
            return redirect(url_for("index"))

        return render_expense_form(expense, values_from_row(expense), {})

    @app.post("/expenses/<int:expense_id>/delete")
    def delete_expense(expense_id):
        if not store.delete_expense(get_db(), expense_id):
            app.logger.warning("Delete failed for missing expense_id=%s", expense_id)
            flash("Expense not found.")
            return redirect(url_for("index"))

        app.logger.info("Deleted expense_id=%s", expense_id)
        flash("Expense deleted.")
        return redirect(url_for("index"))

    def render_import(status=200, **context):
        context.setdefault("error", None)
        context.setdefault("errors", [])
        context.setdefault("preview", None)
        context.setdefault("imported", None)
        context.setdefault("csv_text", "")
        context.setdefault("filename", "")
        return render_template(
            "import_csv.html",
            required_columns=REQUIRED_COLUMNS,
            preview_limit=app.config["IMPORT_PREVIEW_ROWS"],
            **context,
        ), status

    def read_uploaded_text():
        """Return ``(text, filename, error)`` for the submitted file or staged preview text."""
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            staged_text = request.form.get("csv_text", "")
            if staged_text.strip():
                return staged_text, secure_filename(request.form.get("filename", "")) or "upload.csv", None
            return None, "", "Please select a file to import"

        filename = secure_filename(upload.filename) or "upload"
        if not is_allowed_upload(upload.filename, upload.mimetype):
            app.logger.warning("Rejected upload %s with content type %s", filename, upload.mimetype)
            return None, filename, "Please upload a CSV or Excel file"

        text = decode_csv_bytes(upload.read())
        if text is None:
            app.logger.warning("Could not decode upload %s", filename)
            return None, filename, UPLOAD_FAILED_MESSAGE
        return text, filename, None

    @app.route("/import/csv", methods=("GET", "POST"))
    def import_csv():
        if request.method == "GET":
            return render_import()

        action = request.form.get("action", "import")
        text, filename, error = read_uploaded_text()
        if error:
            return render_import(status=400, error=error, filename=filename)

        try:
            if action == "preview":
                outcome = preview_expenses(text, limit=app.config["IMPORT_PREVIEW_ROWS"])
                return render_import(
                    preview=outcome,
                    errors=outcome.error_messages(),
                    csv_text=text,
                    filename=filename,
                )
            outcome = import_expenses(text)
        except ImportFileError as exc:
            app.logger.warning("Import of %s rejected: %s", filename, exc.message)
            return render_import(
                status=400,
                error=exc.message,
                errors=[str(row_error) for row_error in exc.errors],
                filename=filename,
            )

        try:
            imported = store.insert_many(get_db(), outcome.records)
        except DATABASE_ERRORS:
            app.logger.exception("Failed to save %s imported expenses from %s", outcome.imported, filename)
            return render_import(status=500, error=SAVE_FAILED_MESSAGE, filename=filename)

        app.logger.info(
            "Imported %s expenses from %s, skipped %s rows", imported, filename, len(outcome.errors)
        )
        return render_import(imported=imported, errors=outcome.error_messages(), filename=filename)

    @app.errorhandler(RequestEntityTooLarge)
    def upload_too_large(_exc):
        limit_mb = app.config["MAX_CONTENT_LENGTH"] // (1024 * 1024)
        app.logger.warning("Rejected upload larger than %s MB", limit_mb)
        return render_import(status=413, error=f"File is too large. Maximum size is {limit_mb}MB.")

    @app.route("/export/csv")
    def export_csv():
        filters = resolve_expense_filter(request.args)
        rows = store.list_expenses(get_db(), start=filters["start"], end=filters["end"], newest_first=False)

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(REQUIRED_COLUMNS)
        for row in rows:
            writer.writerow([row["description"], f"{row['amount']:.2f}", row["category"], row["date"]])

        start_label = filters["start"].isoformat() if filters["start"] else "all"
        end_label = filters["end"].isoformat() if filters["end"] else "all"
        return Response(
            output.getvalue(),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename=expenses-{start_label}-{end_label}.csv"},
        )

    with app.app_context():
        try:
            init_db()
        except DatabaseInitError:
            pass

    app.get_db = get_db
    app.init_db = init_db
    return app
