"""Tests for the flask CLI commands (scheduler entry points and maintenance)."""

from datetime import date
from decimal import Decimal

from backoffice.models import Category, Customer, LedgerEntry
from backoffice.services import finance_service


def test_accrue_late_charges_command(app, db_session, make_receivable):
    late = make_receivable(document_number="LATE")
    on_time = make_receivable(document_number="ON-TIME", due_date="2024-03-01")
    runner = app.test_cli_runner()

    result = runner.invoke(args=["ledger", "accrue-late-charges", "--as-of", "2024-02-14"])

    assert result.exit_code == 0, result.output
    assert "PASS 1 of 1" in result.output
    db_session.expire_all()
    assert db_session.get(LedgerEntry, late.id).amount_interest == Decimal("0.99")
    assert db_session.get(LedgerEntry, on_time.id).amount_interest == Decimal("0")


def test_accrue_rejects_bad_date(app, db_session):
    result = app.test_cli_runner().invoke(args=["ledger", "accrue-late-charges", "--as-of", "yesterday"])

    assert result.exit_code != 0
    assert "YYYY-MM-DD" in result.output


def test_roll_recurrences_command(app, db_session, make_receivable):
    entry = make_receivable(recurring=True, periodicity="quarterly")
    finance_service.register_settlement(entry.id, "100.00", date(2024, 1, 15))
    runner = app.test_cli_runner()

    result = runner.invoke(args=["ledger", "roll-recurrences", "--as-of", "2024-01-31"])
    assert result.exit_code == 0, result.output
    assert "PASS 1 recurring" in result.output

    children = db_session.query(LedgerEntry).filter_by(recurrence_parent_id=entry.id).all()
    assert [c.due_date for c in children] == [date(2024, 4, 15)]

    # Already rolled: nothing to do the second time
    result = runner.invoke(args=["ledger", "roll-recurrences", "--as-of", "2024-01-31"])
    assert "PASS 0 recurring" in result.output


def test_rebuild_paths_command(app, db_session, category):
    category.path = "stale"
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["catalog", "rebuild-paths"])

    assert result.exit_code == 0, result.output
    db_session.expire_all()
    assert db_session.get(Category, category.id).path == "Beverages"


def test_low_stock_command(app, db_session, make_product):
    make_product(code="LOW-CLI", stock_current=Decimal("1"), stock_min=Decimal("3"))

    result = app.test_cli_runner().invoke(args=["catalog", "low-stock"])

    assert result.exit_code == 0
    assert "LOW-CLI" in result.output


def test_reset_db_requires_confirmation(app, db_session, customer):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "reset-db"], input="n\n")
    assert result.exit_code != 0
    assert db_session.query(Customer).count() == 1
    db_session.commit()

    result = runner.invoke(args=["system", "reset-db", "--yes"])
    assert result.exit_code == 0, result.output
    db_session.rollback()
    assert db_session.query(Customer).count() == 0


def test_init_db_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    assert runner.invoke(args=["system", "init-db"]).exit_code == 0
    assert runner.invoke(args=["system", "init-db"]).exit_code == 0
