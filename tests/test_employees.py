from datetime import date

from office_api.extensions import db
from office_api.models.employee import Employee
from office_api.models.user import User
from office_api.models.finance import CashTransfer, FloatLedger
from office_api.services import float_ledger
from tests.conftest import bearer, fresh


def _body(**extra):
    body = {
        "full_name": "Kabir Das", "email": "kabir@test.local", "mobile_number": "9000000001",
        "role": "Instructor", "salary_type": "Fixed", "monthly_salary": "21000",
        "join_date": date.today().isoformat(),
    }
    body.update(extra)
    return body


def test_create_makes_login_and_code(client, manager):
    m_user, _ = manager
    r = client.post("/api/v1/employees", headers=bearer(m_user), json=_body())
    assert r.status_code == 201, r.get_json()
    data = r.get_json()["data"]
    assert data["employee_code"].startswith("EMP")
    assert data["attendance_mode"] == "direct_status"
    assert data["current_balance"] == 0.0

    user = User.query.filter_by(email="kabir@test.local").one()
    assert user.role_codes() == ["staff"]
    assert data["user_id"] == user.id


def test_create_rules(client, manager, staff):
    m_user, _ = manager
    s_user, _ = staff
    assert client.post("/api/v1/employees", headers=bearer(s_user), json=_body()).status_code == 403

    r = client.post("/api/v1/employees", headers=bearer(m_user), json=_body(email="ravi@test.local"))
    assert r.status_code == 422
    assert "email" in r.get_json()["errors"]

    r = client.post("/api/v1/employees", headers=bearer(m_user), json=_body(salary_type="Hourly"))
    assert "salary_type" in r.get_json()["errors"]


def test_list_search_and_sort(client, manager, staff, other_staff):
    m_user, _ = manager
    h = bearer(m_user)
    rows = client.get("/api/v1/employees?search=neha", headers=h).get_json()["data"]
    assert [e["full_name"] for e in rows] == ["Neha Rao"]

    rows = client.get("/api/v1/employees?sort_by=full_name&sort_order=asc", headers=h).get_json()["data"]
    assert [e["full_name"] for e in rows] == ["Mira Kapoor", "Neha Rao", "Ravi Iyer"]


def test_update_keeps_login_in_step(client, manager, staff):
    m_user, _ = manager
    s_user, s_emp = staff
    r = client.put(f"/api/v1/employees/{s_emp.id}", headers=bearer(m_user),
                   json={"full_name": "Ravi K Iyer", "email": "ravi.k@test.local"})
    assert r.status_code == 200, r.get_json()
    user = fresh(User, s_user.id)
    assert user.full_name == "Ravi K Iyer"
    assert user.email == "ravi.k@test.local"

    trail = client.get(f"/api/v1/employees/{s_emp.id}/history", headers=bearer(m_user)).get_json()["data"]
    assert [row["action_type"] for row in trail] == ["update"]


def test_delete_soft_deletes_and_drops_login(client, manager, staff):
    m_user, _ = manager
    s_user, s_emp = staff
    r = client.delete(f"/api/v1/employees/{s_emp.id}", headers=bearer(m_user))
    assert r.status_code == 200
    emp = fresh(Employee, s_emp.id)
    assert emp.deleted_at is not None
    assert emp.status == "inactive"
    assert fresh(User, s_user.id) is None
    assert client.get(f"/api/v1/employees/{s_emp.id}", headers=bearer(m_user)).status_code == 404


def test_delete_all_data_unwinds_transfers(client, manager, staff):
    m_user, m_emp = manager
    _, s_emp = staff
    float_ledger.record(m_emp.id, "add", 1000, reference_type="income", reference_id=1, description="seed")
    db.session.commit()
    client.post("/api/v1/cash-transfers", headers=bearer(m_user), json={
        "receiver_id": s_emp.id, "amount": "400", "transfer_date": date.today().isoformat(),
    })

    r = client.delete(f"/api/v1/employees/{s_emp.id}?delete_all_data=1", headers=bearer(m_user))
    assert r.status_code == 200
    assert CashTransfer.query.count() == 0
    assert FloatLedger.query.filter_by(employee_id=s_emp.id).count() == 0
    assert float_ledger.current_balance(m_emp.id) == 1000


def test_readding_removed_employee_reuses_record(client, manager, staff):
    m_user, _ = manager
    _, s_emp = staff
    client.delete(f"/api/v1/employees/{s_emp.id}", headers=bearer(m_user))

    r = client.post("/api/v1/employees", headers=bearer(m_user), json=_body(email="ravi@test.local"))
    assert r.status_code == 201, r.get_json()
    data = r.get_json()["data"]
    assert data["id"] == s_emp.id
    assert data["employee_code"] == s_emp.employee_code
    assert data["full_name"] == "Kabir Das"
    emp = fresh(Employee, s_emp.id)
    assert emp.deleted_at is None
    assert emp.user.email == "ravi@test.local"
