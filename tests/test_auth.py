from office_api.extensions import db
from office_api.models.employee import Employee
from office_api.models.user import User, Otp, TokenBlocklist
from tests.conftest import bearer


def _otp(email, type_):
    return Otp.query.filter_by(email=email, type=type_).one().code


def _register_body(otp, **extra):
    body = {
        "full_name": "Asha Menon", "email": "asha@test.local", "password": "longpass1",
        "password_confirmation": "longpass1", "mobile_number": "9876543210", "role": "Instructor",
        "monthly_salary": "18000", "otp": otp,
    }
    body.update(extra)
    return body


def test_registration_with_otp(client, app):
    r = client.post("/api/v1/auth/send-registration-otp", json={"email": "asha@test.local"})
    assert r.status_code == 200

    r = client.post("/api/v1/auth/register", json=_register_body("000000"))
    assert r.status_code == 400
    assert r.get_json()["message"] == "Invalid or expired OTP."

    r = client.post("/api/v1/auth/register", json=_register_body(_otp("asha@test.local", "registration")))
    assert r.status_code == 201, r.get_json()
    data = r.get_json()["data"]
    assert data["access"] and data["refresh"]
    assert data["user"]["roles"] == ["staff"]
    emp = Employee.query.filter_by(email="asha@test.local").one()
    assert emp.role == "Instructor"
    assert Otp.query.count() == 0


def test_register_rejects_mismatched_password(client, app):
    r = client.post("/api/v1/auth/register", json=_register_body("123456", password_confirmation="other"))
    assert r.status_code == 422
    assert "password" in r.get_json()["errors"]


def test_login_outcomes(client, staff):
    s_user, _ = staff
    r = client.post("/api/v1/auth/login", json={"email": "ravi@test.local", "password": "wrong-one"})
    assert r.status_code == 401

    r = client.post("/api/v1/auth/login", json={"email": "ravi@test.local", "password": "secret123"})
    assert r.status_code == 200
    assert r.get_json()["data"]["employee"]["email"] == "ravi@test.local"

    s_user.status = "inactive"
    db.session.commit()
    r = client.post("/api/v1/auth/login", json={"email": "ravi@test.local", "password": "secret123"})
    assert r.status_code == 403


def test_password_reset_flow(client, staff):
    r = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@test.local"})
    assert r.status_code == 422

    assert client.post("/api/v1/auth/forgot-password", json={"email": "ravi@test.local"}).status_code == 200
    code = _otp("ravi@test.local", "reset_password")
    r = client.post("/api/v1/auth/reset-password", json={
        "email": "ravi@test.local", "otp": code, "password": "brandnew1", "password_confirmation": "brandnew1",
    })
    assert r.status_code == 200
    assert User.query.filter_by(email="ravi@test.local").one().check_password("brandnew1")


def test_change_password_checks_current(client, staff):
    s_user, _ = staff
    body = {"current_password": "nope", "new_password": "another1", "new_password_confirmation": "another1"}
    r = client.post("/api/v1/auth/change-password", headers=bearer(s_user), json=body)
    assert r.status_code == 400
    assert r.get_json()["message"] == "Current password does not match"

    body["current_password"] = "secret123"
    assert client.post("/api/v1/auth/change-password", headers=bearer(s_user), json=body).status_code == 200


def test_logout_revokes_token(client, staff):
    s_user, _ = staff
    h = bearer(s_user)
    assert client.post("/api/v1/auth/logout", headers=h).status_code == 200
    assert TokenBlocklist.query.count() == 1
    r = client.get("/api/v1/auth/user", headers=h)
    assert r.status_code == 401
    assert r.get_json()["success"] is False


def test_missing_token_envelope(client, app):
    r = client.get("/api/v1/tasks")
    assert r.status_code == 401
    assert r.get_json() == {"success": False, "message": "Unauthenticated."}


def test_register_after_removal_restores_employee(client, manager, staff):
    m_user, _ = manager
    _, s_emp = staff
    assert client.delete(f"/api/v1/employees/{s_emp.id}", headers=bearer(m_user)).status_code == 200

    client.post("/api/v1/auth/send-registration-otp", json={"email": "ravi@test.local"})
    r = client.post("/api/v1/auth/register", json=_register_body(
        _otp("ravi@test.local", "registration"), email="ravi@test.local", full_name="Ravi Iyer",
    ))
    assert r.status_code == 201, r.get_json()
    data = r.get_json()["data"]
    assert data["employee"]["id"] == s_emp.id
    assert data["employee"]["status"] == "active"

    h = {"Authorization": f"Bearer {data['access']}"}
    r = client.post("/api/v1/attendance/check-in", headers=h, json={"shift_type": "day", "status": "present"})
    assert r.status_code in (200, 201), r.get_json()
    assert r.get_json()["data"]["employee_id"] == s_emp.id
