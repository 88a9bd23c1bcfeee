from decimal import Decimal

import pytest

from office_api.common.errors import APIError
from office_api.extensions import db
from office_api.models.finance import FloatLedger
from office_api.services import float_ledger


def _chain(emp_id):
    rows = FloatLedger.query.filter_by(employee_id=emp_id).order_by(FloatLedger.id).all()
    return [(r.transaction_type, r.amount, r.previous_balance, r.new_balance) for r in rows]


def _assert_chained(emp_id):
    prev = Decimal("0")
    for _, amount, p, n in _chain(emp_id):
        assert p == prev
        prev = n


def test_record_chains_from_current_balance(staff):
    _, emp = staff
    float_ledger.record(emp.id, "add", "1000")
    float_ledger.record(emp.id, "deduct", "250.50")
    db.session.commit()

    assert float_ledger.current_balance(emp.id) == Decimal("749.50")
    assert emp.current_float_balance == Decimal("749.50")
    _assert_chained(emp.id)


def test_change_amount_mid_chain_shifts_later_rows(staff):
    _, emp = staff
    first = float_ledger.record(emp.id, "add", "1000")
    mid = float_ledger.record(emp.id, "deduct", "200")
    float_ledger.record(emp.id, "add", "50")
    db.session.commit()

    delta = float_ledger.change_amount(mid, "300")
    db.session.commit()
    db.session.expire_all()

    assert delta == Decimal("-100")
    assert float_ledger.current_balance(emp.id) == Decimal("750")
    assert db.session.get(FloatLedger, first.id).new_balance == Decimal("1000")
    _assert_chained(emp.id)


def test_revert_entry_removes_effect(staff):
    _, emp = staff
    float_ledger.record(emp.id, "add", "500")
    doomed = float_ledger.record(emp.id, "add", "120", reference_type="income", reference_id=7)
    float_ledger.record(emp.id, "deduct", "100")
    db.session.commit()

    assert float_ledger.revert_reference("income", 7) == 1
    db.session.commit()
    db.session.expire_all()

    assert db.session.get(FloatLedger, doomed.id) is None
    assert float_ledger.current_balance(emp.id) == Decimal("400")
    _assert_chained(emp.id)


def test_ensure_balance_raises_with_numbers(staff):
    _, emp = staff
    float_ledger.record(emp.id, "add", "10")
    db.session.commit()

    with pytest.raises(APIError) as exc:
        float_ledger.ensure_balance(emp.id, "25")
    assert exc.value.status_code == 400
    assert exc.value.payload == {"balance": 10.0, "required": 25.0}


def test_unknown_transaction_type_rejected(staff):
    _, emp = staff
    with pytest.raises(ValueError):
        float_ledger.record(emp.id, "refund", "10")
