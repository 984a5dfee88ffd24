"""
Financial Ledger Service - receivables and payables

STATE MACHINE:
    open -> partially_settled -> settled
    open / partially_settled -> cancelled
    overdue is derived (due_date < as_of and not settled); contested is a flag.

AMOUNTS:
    remaining = original + interest + penalty - discount - settled

LATE CHARGES:
    penalty  = original * LATE_PENALTY_RATE                 (flat)
    interest = original * LATE_DAILY_INTEREST_RATE * days   (simple daily)
    Both are recomputed from scratch on every call, never accumulated.
    Calling at most once per due period is a scheduler contract; the engine
    keeps no last-accrual marker.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import select

from ..extensions import db
from ..errors import (
    InvalidStateError,
    NotFoundError,
    NotRecurringError,
    OverpaymentError,
    ValidationError,
)
from ..models import Customer, LedgerEntry, Payable, Receivable, Supplier
from ..models.finance import (
    ENTRY_STATUS_CANCELLED,
    ENTRY_STATUS_OPEN,
    ENTRY_STATUS_PARTIALLY_SETTLED,
    ENTRY_STATUS_SETTLED,
    PERIODICITY_MONTHS,
    SETTLEMENT_METHODS,
)
from ..money import ZERO, quantize_money, to_decimal
from ..time_utils import add_months, parse_iso_date, today, utcnow
from ..validation import to_flag
from .concurrency import lock_for_update, run_in_transaction


SETTLEABLE_STATUSES = {ENTRY_STATUS_OPEN, ENTRY_STATUS_PARTIALLY_SETTLED}

DEFAULT_PENALTY_RATE = Decimal("0.02")
DEFAULT_DAILY_INTEREST_RATE = Decimal("0.00033")


@dataclass(frozen=True)
class LateCharges:
    interest: Decimal
    penalty: Decimal
    days_late: int = 0

    def to_dict(self) -> dict:
        return {"interest": str(self.interest), "penalty": str(self.penalty), "days_late": self.days_late}


# =============================================================================
# PURE RULES (operate on an entry, do not commit)
# =============================================================================

def remaining(entry: LedgerEntry) -> Decimal:
    return (
        to_decimal(entry.amount_original)
        + to_decimal(entry.amount_interest)
        + to_decimal(entry.amount_penalty)
        - to_decimal(entry.amount_discount)
        - to_decimal(entry.amount_settled)
    )


def recompute_remaining(entry: LedgerEntry) -> Decimal:
    entry.amount_remaining = remaining(entry)
    return entry.amount_remaining


def is_overdue(entry: LedgerEntry, as_of: date | None = None) -> bool:
    as_of = parse_iso_date(as_of) or today()
    return entry.due_date < as_of and entry.status != ENTRY_STATUS_SETTLED


def apply_settlement(entry: LedgerEntry, amount, settled_on: date | None = None, method: str | None = None) -> LedgerEntry:
    """
    Register a (partial) settlement on ``entry``.

    The remaining balance is recomputed immediately before the check, and
    nothing is modified when the amount is refused.

    Raises:
        ValidationError: non-positive amount or unknown settlement method
        InvalidStateError: entry is settled or cancelled
        OverpaymentError: amount larger than the remaining balance
    """
    amount = to_decimal(amount, "amount")
    if amount <= 0:
        raise ValidationError("Settlement amount must be positive", details={"entry_id": entry.id, "amount": str(amount)})
    # Balances are stored in cents; a sub-cent amount would round away on flush
    if amount != quantize_money(amount):
        raise ValidationError(
            "Settlement amount cannot have more than 2 decimal places",
            details={"entry_id": entry.id, "amount": str(amount)},
        )
    if method is not None and method not in SETTLEMENT_METHODS:
        raise ValidationError(
            f"Invalid settlement method {method!r}",
            details={"entry_id": entry.id, "allowed": sorted(SETTLEMENT_METHODS)},
        )
    if entry.status not in SETTLEABLE_STATUSES:
        raise InvalidStateError(
            f"Cannot settle an entry in status {entry.status}",
            details={"entry_id": entry.id, "current_status": entry.status},
        )

    current_remaining = remaining(entry)
    if amount > current_remaining:
        raise OverpaymentError(
            "Settlement amount exceeds the remaining balance",
            details={
                "entry_id": entry.id,
                "amount": str(amount),
                "remaining": str(current_remaining),
            },
        )

    entry.amount_settled = to_decimal(entry.amount_settled) + amount
    entry.settlement_date = parse_iso_date(settled_on) or today()
    if method is not None:
        entry.settlement_method = method

    if recompute_remaining(entry) == 0:
        entry.status = ENTRY_STATUS_SETTLED
    else:
        entry.status = ENTRY_STATUS_PARTIALLY_SETTLED
    return entry


def compute_late_charges(
    entry: LedgerEntry,
    as_of: date | None = None,
    *,
    penalty_rate: Decimal = DEFAULT_PENALTY_RATE,
    daily_interest_rate: Decimal = DEFAULT_DAILY_INTEREST_RATE,
) -> LateCharges:
    as_of = parse_iso_date(as_of) or today()
    if entry.status == ENTRY_STATUS_CANCELLED or not is_overdue(entry, as_of):
        return LateCharges(interest=ZERO, penalty=ZERO)

    days_late = (as_of - entry.due_date).days
    original = to_decimal(entry.amount_original)
    return LateCharges(
        interest=quantize_money(original * daily_interest_rate * days_late),
        penalty=quantize_money(original * penalty_rate),
        days_late=days_late,
    )


def apply_late_charges(
    entry: LedgerEntry,
    as_of: date | None = None,
    *,
    penalty_rate: Decimal = DEFAULT_PENALTY_RATE,
    daily_interest_rate: Decimal = DEFAULT_DAILY_INTEREST_RATE,
) -> LateCharges:
    """No-op unless overdue; otherwise overwrites interest and penalty."""
    charges = compute_late_charges(
        entry, as_of, penalty_rate=penalty_rate, daily_interest_rate=daily_interest_rate
    )
    if charges.days_late:
        entry.amount_interest = charges.interest
        entry.amount_penalty = charges.penalty
        recompute_remaining(entry)
    return charges


def next_due_date(entry: LedgerEntry) -> date:
    return add_months(entry.due_date, PERIODICITY_MONTHS[entry.periodicity])


def build_next_recurrence(entry: LedgerEntry) -> LedgerEntry:
    """
    Clone ``entry`` as the next installment (not added to the session).

    Raises:
        NotRecurringError: entry is not recurring or has no periodicity
    """
    if not entry.recurring or entry.periodicity not in PERIODICITY_MONTHS:
        raise NotRecurringError(
            f"Entry {entry.id} is not recurring",
            details={"entry_id": entry.id, "recurring": entry.recurring, "periodicity": entry.periodicity},
        )

    clone = type(entry)(
        document_number=entry.document_number,
        issue_date=entry.issue_date,
        due_date=next_due_date(entry),
        settlement_date=None,
        amount_original=entry.amount_original,
        amount_interest=ZERO,
        amount_penalty=ZERO,
        amount_discount=ZERO,
        amount_settled=ZERO,
        amount_remaining=entry.amount_original,
        status=ENTRY_STATUS_OPEN,
        contested=False,
        settlement_method=None,
        category=entry.category,
        cost_center=entry.cost_center,
        recurring=True,
        periodicity=entry.periodicity,
        installment_number=(entry.installment_number + 1) if entry.installment_number else None,
        installment_total=entry.installment_total,
        recurrence_parent_id=entry.id,
        notes=entry.notes,
    )
    if isinstance(entry, Receivable):
        clone.customer_id = entry.customer_id
        clone.sale_id = entry.sale_id
    elif isinstance(entry, Payable):
        clone.supplier_id = entry.supplier_id
    return clone


# =============================================================================
# OPERATIONS (one unit of work each)
# =============================================================================

def get_entry(entry_id: int, *, lock: bool = False) -> LedgerEntry:
    query = db.session.query(LedgerEntry).filter_by(id=entry_id)
    if lock:
        query = lock_for_update(query)
    entry = query.first()
    if entry is None:
        raise NotFoundError(f"Ledger entry {entry_id} not found", details={"entry_id": entry_id})
    return entry


def _late_charge_rates() -> dict:
    return {
        "penalty_rate": to_decimal(current_app.config.get("LATE_PENALTY_RATE", DEFAULT_PENALTY_RATE)),
        "daily_interest_rate": to_decimal(
            current_app.config.get("LATE_DAILY_INTEREST_RATE", DEFAULT_DAILY_INTEREST_RATE)
        ),
    }


def _new_entry(model, *, document_number, amount, due_date, category, issue_date=None, **attrs) -> LedgerEntry:
    if not document_number:
        raise ValidationError("document_number is required")
    if not category:
        raise ValidationError("category is required")
    amount = to_decimal(amount, "amount")
    if amount <= 0:
        raise ValidationError("Original amount must be greater than zero", details={"amount": str(amount)})

    discount = quantize_money(to_decimal(attrs.pop("discount", ZERO), "discount"))
    if discount < 0:
        raise ValidationError("Discount cannot be negative", details={"discount": str(discount)})

    due = parse_iso_date(due_date)
    if due is None:
        raise ValidationError("due_date is required")

    periodicity = attrs.get("periodicity")
    if attrs.get("recurring") and periodicity not in PERIODICITY_MONTHS:
        raise ValidationError(
            "Recurring entries need a periodicity",
            details={"periodicity": periodicity, "allowed": sorted(PERIODICITY_MONTHS)},
        )

    entry = model(
        document_number=document_number,
        issue_date=parse_iso_date(issue_date) or today(),
        due_date=due,
        amount_original=quantize_money(amount),
        amount_interest=ZERO,
        amount_penalty=ZERO,
        amount_discount=discount,
        amount_settled=ZERO,
        status=ENTRY_STATUS_OPEN,
        contested=False,
        category=category,
        **attrs,
    )
    recompute_remaining(entry)
    db.session.add(entry)
    return entry


def create_receivable(*, customer_id: int | None, sale_id: int | None = None, **fields) -> Receivable:
    def _op():
        if customer_id is not None and db.session.query(Customer.id).filter_by(id=customer_id).first() is None:
            raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
        entry = _new_entry(Receivable, customer_id=customer_id, sale_id=sale_id, **fields)
        db.session.flush()
        current_app.logger.info("Receivable %s created: %s due %s", entry.id, entry.amount_original, entry.due_date)
        return entry

    return run_in_transaction(_op)


def create_payable(*, supplier_id: int | None, **fields) -> Payable:
    def _op():
        if supplier_id is not None and db.session.query(Supplier.id).filter_by(id=supplier_id).first() is None:
            raise NotFoundError(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
        entry = _new_entry(Payable, supplier_id=supplier_id, **fields)
        db.session.flush()
        current_app.logger.info("Payable %s created: %s due %s", entry.id, entry.amount_original, entry.due_date)
        return entry

    return run_in_transaction(_op)


def create_receivables_for_sale(sale, *, first_due_date: date | None = None, interval_days: int | None = None) -> list[Receivable]:
    """
    Split the sale total into one receivable per installment. Does not commit.

    Cent rounding is absorbed by the last installment so the entries always
    add up to the sale total.
    """
    installments = max(int(sale.installments or 1), 1)
    if interval_days is None:
        interval_days = int(current_app.config.get("RECEIVABLE_INTERVAL_DAYS", 30))
    first_due = parse_iso_date(first_due_date) or today() + timedelta(days=interval_days)

    total = to_decimal(sale.total)
    if total <= 0:
        return []
    share = quantize_money(total / installments)
    entries = []
    for index in range(1, installments + 1):
        amount = share if index < installments else total - share * (installments - 1)
        entry = _new_entry(
            Receivable,
            customer_id=sale.customer_id,
            sale_id=sale.id,
            document_number=f"{sale.number}-{index}/{installments}",
            amount=amount,
            due_date=first_due + timedelta(days=interval_days * (index - 1)),
            category="sales",
            installment_number=index,
            installment_total=installments,
        )
        entries.append(entry)
    db.session.flush()
    current_app.logger.info("Sale %s split into %d receivables", sale.number, installments)
    return entries


def register_settlement(entry_id: int, amount, settled_on: date | None = None, method: str | None = None) -> LedgerEntry:
    def _op():
        entry = get_entry(entry_id, lock=True)
        apply_settlement(entry, amount, settled_on, method)
        current_app.logger.info(
            "Settlement of %s registered on entry %s, remaining %s (%s)",
            amount, entry.id, entry.amount_remaining, entry.status,
        )
        return entry

    return run_in_transaction(_op)


def accrue_late_charges(entry_id: int, as_of: date | None = None) -> LateCharges:
    def _op():
        entry = get_entry(entry_id, lock=True)
        charges = apply_late_charges(entry, as_of, **_late_charge_rates())
        if charges.days_late:
            current_app.logger.info(
                "Late charges on entry %s: interest %s, penalty %s (%d days)",
                entry.id, charges.interest, charges.penalty, charges.days_late,
            )
        return charges

    return run_in_transaction(_op)


def generate_next_recurrence(entry_id: int) -> LedgerEntry:
    def _op():
        entry = get_entry(entry_id, lock=True)
        clone = build_next_recurrence(entry)
        db.session.add(clone)
        db.session.flush()
        current_app.logger.info("Entry %s rolled over to %s due %s", entry.id, clone.id, clone.due_date)
        return clone

    return run_in_transaction(_op)


def cancel_entry(entry_id: int, reason: str | None = None) -> LedgerEntry:
    def _op():
        entry = get_entry(entry_id, lock=True)
        if entry.status not in SETTLEABLE_STATUSES:
            raise InvalidStateError(
                f"Cannot cancel an entry in status {entry.status}",
                details={"entry_id": entry.id, "current_status": entry.status},
            )
        entry.status = ENTRY_STATUS_CANCELLED
        entry.cancelled_at = utcnow()
        if reason:
            entry.notes = f"{entry.notes}\n{reason}" if entry.notes else reason
        current_app.logger.info("Entry %s cancelled", entry.id)
        return entry

    return run_in_transaction(_op)


def set_contested(entry_id: int, contested: bool = True) -> LedgerEntry:
    def _op():
        entry = get_entry(entry_id, lock=True)
        entry.contested = to_flag(contested, "contested")
        return entry

    return run_in_transaction(_op)


def overdue_entries(as_of: date | None = None, kind: str | None = None) -> list[LedgerEntry]:
    as_of = parse_iso_date(as_of) or today()
    query = db.session.query(LedgerEntry).filter(
        LedgerEntry.due_date < as_of,
        LedgerEntry.status.in_(SETTLEABLE_STATUSES),
    )
    if kind is not None:
        query = query.filter(LedgerEntry.kind == kind)
    return query.order_by(LedgerEntry.due_date.asc(), LedgerEntry.id.asc()).all()


def entries_due_for_rollover(as_of: date | None = None) -> list[LedgerEntry]:
    """Settled recurring entries due on or before ``as_of`` with no successor yet."""
    as_of = parse_iso_date(as_of) or today()
    rolled = select(LedgerEntry.recurrence_parent_id).where(LedgerEntry.recurrence_parent_id.isnot(None))
    return (
        db.session.query(LedgerEntry)
        .filter(
            LedgerEntry.recurring.is_(True),
            LedgerEntry.status == ENTRY_STATUS_SETTLED,
            LedgerEntry.due_date <= as_of,
            LedgerEntry.id.notin_(rolled),
        )
        .order_by(LedgerEntry.id.asc())
        .all()
    )
