from datetime import date
from decimal import Decimal

from office_api.extensions import db
from office_api.models.finance import Expense, Income, FloatLedger
from office_api.services import float_ledger
from tests.conftest import bearer, fresh

TODAY = date.today().isoformat()


def _income(client, user, holder, amount="2000", **extra):
    body = {
        "employee_id": holder.id, "income_type": "course_fee", "source_type": "institute",
        "held_by_id": holder.id, "payment_method": "cash", "category": "Fees",
        "amount": amount, "description": "Batch A fees", "income_date": TODAY,
    }
    body.update(extra)
    return client.post("/api/v1/income", headers=bearer(user), json=body)


def _expense(client, user, emp, amount="300", paid_from="institute_float", **extra):
    body = {
        "employee_id": emp.id, "expense_type": "institute", "category": "Stationery",
        "amount": amount, "description": "Printer paper", "expense_date": TODAY,
        "paid_from": paid_from,
    }
    body.update(extra)
    return client.post("/api/v1/expenses", headers=bearer(user), json=body)


# ---------- income ----------

def test_cash_income_raises_holder_float(client, manager):
    m_user, m_emp = manager
    r = _income(client, m_user, m_emp)
    assert r.status_code == 201, r.get_json()
    data = r.get_json()["data"]
    assert data["status"] == "confirmed"
    assert float_ledger.current_balance(m_emp.id) == Decimal("2000")
    row = FloatLedger.query.filter_by(reference_type="income", reference_id=data["id"]).one()
    assert row.description == "Income Received: Batch A fees"


def test_non_cash_income_skips_ledger(client, manager):
    m_user, m_emp = manager
    r = _income(client, m_user, m_emp, payment_method="bank_transfer")
    assert r.status_code == 201
    assert FloatLedger.query.count() == 0


def test_income_reduce_needs_unspent_balance(client, manager):
    m_user, m_emp = manager
    iid = _income(client, m_user, m_emp, amount="1000").get_json()["data"]["id"]
    float_ledger.record(m_emp.id, "deduct", "900")
    db.session.commit()

    r = client.put(f"/api/v1/income/{iid}", headers=bearer(m_user), json={"amount": "500"})
    assert r.status_code == 400
    assert r.get_json()["code"] == "INSUFFICIENT_BALANCE"

    r = client.put(f"/api/v1/income/{iid}", headers=bearer(m_user), json={"amount": "950"})
    assert r.status_code == 200, r.get_json()
    db.session.expire_all()
    assert float_ledger.current_balance(m_emp.id) == Decimal("50")


def test_income_delete_reverts_float(client, manager):
    m_user, m_emp = manager
    iid = _income(client, m_user, m_emp, amount="700").get_json()["data"]["id"]

    r = client.delete(f"/api/v1/income/{iid}", headers=bearer(m_user))
    assert r.status_code == 200
    db.session.expire_all()
    assert float_ledger.current_balance(m_emp.id) == Decimal("0")
    assert fresh(Income, iid).deleted_at is not None
    assert client.get(f"/api/v1/income/{iid}", headers=bearer(m_user)).status_code == 404


def test_income_reject_is_management_only(client, manager, staff):
    m_user, m_emp = manager
    s_user, _ = staff
    iid = _income(client, m_user, m_emp).get_json()["data"]["id"]

    assert client.put(f"/api/v1/income/{iid}/reject", headers=bearer(s_user)).status_code == 403
    r = client.put(f"/api/v1/income/{iid}/reject", headers=bearer(m_user), json={})
    assert r.status_code == 200
    assert r.get_json()["data"]["notes"] == "Rejected by manager"


# ---------- expenses ----------

def test_float_expense_deducts_holder(client, manager):
    m_user, m_emp = manager
    float_ledger.record(m_emp.id, "add", "1000")
    db.session.commit()

    r = _expense(client, m_user, m_emp)
    assert r.status_code == 201, r.get_json()
    data = r.get_json()["data"]
    assert data["status"] == "approved"
    assert data["float_holder_id"] == m_emp.id
    assert data["reimbursement_status"] == "not_applicable"
    assert float_ledger.current_balance(m_emp.id) == Decimal("700")


def test_float_expense_over_balance_is_refused(client, manager):
    m_user, m_emp = manager
    r = _expense(client, m_user, m_emp, amount="50")
    assert r.status_code == 400
    assert Expense.query.count() == 0


def test_personal_expense_waits_for_reimbursement(client, manager, staff):
    m_user, _ = manager
    s_user, s_emp = staff
    r = _expense(client, s_user, s_emp, paid_from="personal_money", expense_type="personal")
    assert r.status_code == 201
    eid = r.get_json()["data"]["id"]
    assert r.get_json()["data"]["reimbursement_status"] == "pending"

    pending = client.get("/api/v1/expenses/pending-reimbursement", headers=bearer(m_user)).get_json()["data"]
    assert pending["total"] == 300.0
    assert [x["id"] for x in pending["expenses"]] == [eid]

    assert client.put(f"/api/v1/expenses/{eid}/reimburse", headers=bearer(s_user)).status_code == 403
    r = client.put(f"/api/v1/expenses/{eid}/reimburse", headers=bearer(m_user))
    assert r.status_code == 200
    assert r.get_json()["data"]["reimbursement_status"] == "reimbursed"

    # reimbursed money cannot silently disappear
    r = client.delete(f"/api/v1/expenses/{eid}", headers=bearer(m_user))
    assert r.status_code == 422


def test_expense_delete_restores_float(client, manager):
    m_user, m_emp = manager
    float_ledger.record(m_emp.id, "add", "1000")
    db.session.commit()
    eid = _expense(client, m_user, m_emp, amount="400").get_json()["data"]["id"]
    float_ledger.record(m_emp.id, "deduct", "100")
    db.session.commit()

    r = client.delete(f"/api/v1/expenses/{eid}", headers=bearer(m_user))
    assert r.status_code == 200
    db.session.expire_all()
    assert float_ledger.current_balance(m_emp.id) == Decimal("900")
    assert FloatLedger.query.filter_by(reference_type="expense", reference_id=eid).count() == 0


def test_approved_expense_cannot_be_edited(client, manager):
    m_user, m_emp = manager
    float_ledger.record(m_emp.id, "add", "1000")
    db.session.commit()
    eid = _expense(client, m_user, m_emp).get_json()["data"]["id"]

    r = client.put(f"/api/v1/expenses/{eid}", headers=bearer(m_user), json={"amount": "10"})
    assert r.status_code == 422


def test_expense_report_groups_by_category(client, manager):
    m_user, m_emp = manager
    float_ledger.record(m_emp.id, "add", "1000")
    db.session.commit()
    _expense(client, m_user, m_emp, amount="100")
    _expense(client, m_user, m_emp, amount="50", category="Travel")

    data = client.get("/api/v1/expenses/report", headers=bearer(m_user)).get_json()["data"]
    assert data["total"] == 150.0
    assert {c["category"]: c["total"] for c in data["by_category"]} == {"Stationery": 100.0, "Travel": 50.0}


def _pending_float_expense(holder, amount="300"):
    x = Expense(employee_id=holder.id, expense_type="institute", amount=Decimal(amount), category="Repairs",
                description="Door lock", expense_date=date.today(), paid_from="institute_float",
                float_holder_id=holder.id, status="pending")
    db.session.add(x); db.session.flush()
    float_ledger.record(holder.id, "deduct", x.amount, reference_type="expense", reference_id=x.id)
    db.session.commit()
    return x.id


def test_approve_pending_expense(client, manager, staff):
    m_user, m_emp = manager
    s_user, s_emp = staff
    x = Expense(employee_id=s_emp.id, expense_type="personal", amount=Decimal("120"), category="Travel",
                description="Auto fare", expense_date=date.today(), paid_from="personal_money", status="pending")
    db.session.add(x); db.session.commit()

    assert client.put(f"/api/v1/expenses/{x.id}/approve", headers=bearer(s_user)).status_code == 403
    r = client.put(f"/api/v1/expenses/{x.id}/approve", headers=bearer(m_user))
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["status"] == "approved"
    assert data["approved_by"] == m_emp.id
    assert data["reimbursement_status"] == "pending"
    assert client.put(f"/api/v1/expenses/{x.id}/approve", headers=bearer(m_user)).status_code == 422


def test_reject_float_expense_returns_cash(client, manager):
    m_user, m_emp = manager
    float_ledger.record(m_emp.id, "add", "1000")
    db.session.commit()
    eid = _pending_float_expense(m_emp)
    assert float_ledger.current_balance(m_emp.id) == Decimal("700")

    r = client.put(f"/api/v1/expenses/{eid}/reject", headers=bearer(m_user), json={"reason": "No bill"})
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "rejected"
    assert r.get_json()["data"]["notes"] == "No bill"
    db.session.expire_all()
    reversal = FloatLedger.query.filter_by(reference_type="expense_reversal", reference_id=eid).one()
    assert reversal.transaction_type == "add"
    assert reversal.amount == Decimal("300")
    assert float_ledger.current_balance(m_emp.id) == Decimal("1000")
    assert client.put(f"/api/v1/expenses/{eid}/reject", headers=bearer(m_user)).status_code == 422


def test_delete_rejected_float_expense_reverts_both_rows(client, manager):
    m_user, m_emp = manager
    float_ledger.record(m_emp.id, "add", "1000")
    db.session.commit()
    eid = _pending_float_expense(m_emp)
    client.put(f"/api/v1/expenses/{eid}/reject", headers=bearer(m_user), json={})
    float_ledger.record(m_emp.id, "deduct", "250")
    db.session.commit()

    r = client.delete(f"/api/v1/expenses/{eid}", headers=bearer(m_user))
    assert r.status_code == 200
    db.session.expire_all()
    assert FloatLedger.query.filter(FloatLedger.reference_id == eid,
                                    FloatLedger.reference_type.in_(("expense", "expense_reversal"))).count() == 0
    assert float_ledger.current_balance(m_emp.id) == Decimal("750")


def test_confirm_pending_income(client, manager, staff):
    m_user, m_emp = manager
    s_user, _ = staff
    x = Income(employee_id=m_emp.id, income_type="other", source_type="institute", payment_method="online",
               amount=Decimal("900"), income_date=date.today(), category="Donation", status="pending")
    db.session.add(x); db.session.commit()

    assert client.put(f"/api/v1/income/{x.id}/confirm", headers=bearer(s_user)).status_code == 403
    r = client.put(f"/api/v1/income/{x.id}/confirm", headers=bearer(m_user))
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "confirmed"
    assert r.get_json()["data"]["confirmed_by"] == m_emp.id


def test_amounts_must_be_finite_and_fit_the_column(client, manager):
    m_user, m_emp = manager
    float_ledger.record(m_emp.id, "add", "1000")
    db.session.commit()

    for bad in ("NaN", "Infinity", "sNaN", "1e20", "10.555"):
        r = _income(client, m_user, m_emp, amount=bad)
        assert r.status_code == 422, bad
        assert "amount" in r.get_json()["errors"]
        r = _expense(client, m_user, m_emp, amount=bad)
        assert r.status_code == 422, bad
        assert "amount" in r.get_json()["errors"]

    assert Income.query.count() == 0
    assert Expense.query.count() == 0
    assert FloatLedger.query.count() == 1
    assert client.get("/api/v1/employees", headers=bearer(m_user)).status_code == 200
