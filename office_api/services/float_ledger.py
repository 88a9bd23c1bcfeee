"""
Float ledger bookkeeping.

Each employee's ledger rows form a balance chain ordered by id. Editing or
deleting a row in the middle of the chain shifts every later row of the
same employee by the change in effect, so the chain stays consistent
without rewriting history.
"""
from datetime import date
from decimal import Decimal

from flask import current_app

from office_api.common.errors import APIError
from office_api.extensions import db
from office_api.models.finance import FloatLedger

INSUFFICIENT = "Insufficient float balance."


def _d(v) -> Decimal:
    return v if isinstance(v, Decimal) else Decimal(str(v or 0))


def effect(transaction_type: str, amount) -> Decimal:
    """Signed change a row applies to its employee's balance."""
    return _d(amount) if transaction_type == "add" else -_d(amount)


def current_balance(employee_id: int) -> Decimal:
    last = (
        FloatLedger.query.filter_by(employee_id=employee_id)
        .order_by(FloatLedger.id.desc())
        .first()
    )
    return _d(last.new_balance) if last else Decimal("0")


def ensure_balance(employee_id: int, amount, message: str = INSUFFICIENT) -> Decimal:
    bal = current_balance(employee_id)
    if bal < _d(amount):
        raise APIError("INSUFFICIENT_BALANCE", message, status_code=400,
                       payload={"balance": float(bal), "required": float(_d(amount))})
    return bal


def record(employee_id: int, transaction_type: str, amount, *, reference_type=None,
           reference_id=None, description=None, created_by=None, on_date=None) -> FloatLedger:
    """Append a row chained from the employee's current balance."""
    if transaction_type not in ("add", "deduct"):
        raise ValueError(f"unknown ledger transaction type {transaction_type!r}")
    prev = current_balance(employee_id)
    row = FloatLedger(
        employee_id=employee_id,
        transaction_type=transaction_type,
        amount=_d(amount),
        previous_balance=prev,
        new_balance=prev + effect(transaction_type, amount),
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        created_by=created_by,
        date=on_date or date.today(),
    )
    db.session.add(row)
    db.session.flush()
    return row


def adjust_subsequent(employee_id: int, after_id: int, delta) -> int:
    """Shift previous/new balance of every row after `after_id` by `delta`."""
    delta = _d(delta)
    if delta == 0:
        return 0
    n = (
        FloatLedger.query.filter(
            FloatLedger.employee_id == employee_id,
            FloatLedger.id > after_id,
        )
        .update(
            {
                FloatLedger.previous_balance: FloatLedger.previous_balance + delta,
                FloatLedger.new_balance: FloatLedger.new_balance + delta,
            },
            synchronize_session="fetch",
        )
    )
    current_app.logger.debug("ledger: shifted %s rows of employee %s by %s", n, employee_id, delta)
    return n


def revert_entry(entry: FloatLedger) -> None:
    """Remove `entry` and pull its effect out of every later row."""
    adjust_subsequent(entry.employee_id, entry.id, -effect(entry.transaction_type, entry.amount))
    db.session.delete(entry)
    db.session.flush()


def entries_for(reference_type, reference_id):
    types = reference_type if isinstance(reference_type, (list, tuple)) else [reference_type]
    return (
        FloatLedger.query.filter(
            FloatLedger.reference_type.in_(types),
            FloatLedger.reference_id == reference_id,
        )
        .order_by(FloatLedger.id.asc())
        .all()
    )


def revert_reference(reference_type, reference_id) -> int:
    rows = entries_for(reference_type, reference_id)
    # newest first keeps each shift confined to rows that still exist
    for row in reversed(rows):
        revert_entry(row)
    return len(rows)


def change_amount(entry: FloatLedger, new_amount) -> Decimal:
    """
    Rewrite the amount of an existing row in place.

    The row's own new_balance follows the new amount and later rows are
    shifted by the change in effect. Returns that change.
    """
    old_effect = effect(entry.transaction_type, entry.amount)
    new_effect = effect(entry.transaction_type, new_amount)
    delta = new_effect - old_effect
    entry.amount = _d(new_amount)
    entry.new_balance = _d(entry.previous_balance) + new_effect
    db.session.flush()
    adjust_subsequent(entry.employee_id, entry.id, delta)
    return delta
