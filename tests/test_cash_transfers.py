from datetime import date
from decimal import Decimal

from office_api.extensions import db
from office_api.models.finance import CashTransfer, FloatLedger
from office_api.models.notice import Notification
from office_api.services import float_ledger
from tests.conftest import bearer, fresh


def _fund(emp, amount):
    float_ledger.record(emp.id, "add", amount, reference_type="income", reference_id=999)
    db.session.commit()


def _send(client, user, receiver, amount):
    return client.post("/api/v1/cash-transfers", headers=bearer(user), json={
        "receiver_id": receiver.id, "amount": amount, "transfer_date": date.today().isoformat(),
    })


def test_transfer_moves_float_between_employees(client, manager, staff):
    m_user, m_emp = manager
    s_user, s_emp = staff
    _fund(m_emp, "5000")

    r = _send(client, m_user, s_emp, "1200")
    assert r.status_code == 201, r.get_json()
    body = r.get_json()
    assert body["success"] is True
    assert body["message"] == "Transfer successful"

    assert float_ledger.current_balance(m_emp.id) == Decimal("3800")
    assert float_ledger.current_balance(s_emp.id) == Decimal("1200")
    refs = {row.reference_type for row in FloatLedger.query.filter_by(reference_id=body["data"]["id"])}
    assert refs == {"transfer_out", "transfer_in"}
    # both parties get an in-app notification
    assert Notification.query.filter_by(user_id=s_user.id, type="transfer").count() == 1
    assert Notification.query.filter_by(user_id=m_user.id, type="transfer").count() == 1


def test_transfer_requires_balance(client, manager, staff):
    m_user, m_emp = manager
    _, s_emp = staff
    _fund(m_emp, "100")

    r = _send(client, m_user, s_emp, "250")
    assert r.status_code == 400
    body = r.get_json()
    assert body["success"] is False
    assert body["code"] == "INSUFFICIENT_BALANCE"
    assert CashTransfer.query.count() == 0


def test_transfer_to_self_is_invalid(client, manager):
    m_user, m_emp = manager
    _fund(m_emp, "100")
    r = _send(client, m_user, m_emp, "10")
    assert r.status_code == 422
    assert "receiver_id" in r.get_json()["errors"]


def test_update_amount_rewrites_both_sides(client, manager, staff):
    m_user, m_emp = manager
    _, s_emp = staff
    _fund(m_emp, "1000")
    tid = _send(client, m_user, s_emp, "300").get_json()["data"]["id"]

    r = client.put(f"/api/v1/cash-transfers/{tid}", headers=bearer(m_user), json={"amount": "450"})
    assert r.status_code == 200, r.get_json()
    db.session.expire_all()
    assert float_ledger.current_balance(m_emp.id) == Decimal("550")
    assert float_ledger.current_balance(s_emp.id) == Decimal("450")
    assert fresh(CashTransfer, tid).amount == Decimal("450")


def test_notes_only_update_leaves_ledger_alone(client, manager, staff):
    m_user, m_emp = manager
    _, s_emp = staff
    _fund(m_emp, "1000")
    tid = _send(client, m_user, s_emp, "300").get_json()["data"]["id"]
    before = FloatLedger.query.count()

    r = client.put(f"/api/v1/cash-transfers/{tid}", headers=bearer(m_user), json={"notes": "fuel"})
    assert r.status_code == 200
    assert r.get_json()["data"]["notes"] == "fuel"
    assert FloatLedger.query.count() == before


def test_delete_blocked_when_receiver_spent_it(client, manager, staff):
    m_user, m_emp = manager
    _, s_emp = staff
    _fund(m_emp, "1000")
    tid = _send(client, m_user, s_emp, "300").get_json()["data"]["id"]
    float_ledger.record(s_emp.id, "deduct", "200", reference_type="expense", reference_id=1)
    db.session.commit()

    r = client.delete(f"/api/v1/cash-transfers/{tid}", headers=bearer(m_user))
    assert r.status_code == 400
    assert "insufficient funds" in r.get_json()["message"]
    assert fresh(CashTransfer, tid) is not None


def test_delete_reverses_ledger(client, manager, staff):
    m_user, m_emp = manager
    _, s_emp = staff
    _fund(m_emp, "1000")
    tid = _send(client, m_user, s_emp, "300").get_json()["data"]["id"]

    r = client.delete(f"/api/v1/cash-transfers/{tid}", headers=bearer(m_user))
    assert r.status_code == 200
    db.session.expire_all()
    assert float_ledger.current_balance(m_emp.id) == Decimal("1000")
    assert float_ledger.current_balance(s_emp.id) == Decimal("0")
    assert db.session.get(CashTransfer, tid) is None


def test_missing_transfer_is_404(client, manager):
    m_user, _ = manager
    r = client.get("/api/v1/cash-transfers/404", headers=bearer(m_user))
    assert r.status_code == 404
    assert r.get_json() == {"success": False, "message": "Transfer not found"}


def test_update_moves_transfer_to_new_receiver(client, manager, staff, other_staff):
    m_user, m_emp = manager
    _, s_emp = staff
    _, o_emp = other_staff
    _fund(m_emp, "1000")
    tid = _send(client, m_user, s_emp, "300").get_json()["data"]["id"]

    r = client.put(f"/api/v1/cash-transfers/{tid}", headers=bearer(m_user), json={"receiver_id": o_emp.id})
    assert r.status_code == 200, r.get_json()
    db.session.expire_all()
    assert float_ledger.current_balance(s_emp.id) == Decimal("0")
    assert float_ledger.current_balance(o_emp.id) == Decimal("300")
    assert float_ledger.current_balance(m_emp.id) == Decimal("700")
    assert FloatLedger.query.filter_by(reference_type="transfer_in", reference_id=tid).one().employee_id == o_emp.id


def test_update_beyond_sender_balance_rolls_back(client, manager, staff):
    m_user, m_emp = manager
    _, s_emp = staff
    _fund(m_emp, "500")
    tid = _send(client, m_user, s_emp, "300").get_json()["data"]["id"]

    r = client.put(f"/api/v1/cash-transfers/{tid}", headers=bearer(m_user), json={"amount": "800"})
    assert r.status_code == 400
    assert r.get_json()["code"] == "INSUFFICIENT_BALANCE"
    db.session.expire_all()
    assert fresh(CashTransfer, tid).amount == Decimal("300")
    assert float_ledger.current_balance(m_emp.id) == Decimal("200")
    assert float_ledger.current_balance(s_emp.id) == Decimal("300")
    assert FloatLedger.query.filter_by(reference_id=tid).count() == 2


def test_transfer_amount_must_be_a_storable_number(client, manager, staff):
    m_user, m_emp = manager
    _, s_emp = staff
    _fund(m_emp, "1000")
    for bad in ("NaN", "Infinity", "1e20", "0.005"):
        r = _send(client, m_user, s_emp, bad)
        assert r.status_code == 422, bad
        assert "amount" in r.get_json()["errors"]
    assert CashTransfer.query.count() == 0
