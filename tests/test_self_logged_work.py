import io
import os
from datetime import date, timedelta

from office_api.models.task import SelfLoggedWork
from tests.conftest import bearer, fresh

TODAY = date.today().isoformat()


def _log(client, user, hours="2", **extra):
    body = {"work_title": "Lab setup", "description": "Installed projectors", "time_spent_hours": hours,
            "work_date": TODAY}
    body.update(extra)
    return client.post("/api/v1/self-logged-work", headers=bearer(user), json=body)


def test_log_validates_hours_and_date(client, staff):
    s_user, _ = staff
    assert _log(client, s_user, hours="0.25").status_code == 422
    assert _log(client, s_user, hours="25").status_code == 422
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    r = _log(client, s_user, work_date=tomorrow)
    assert r.status_code == 422
    assert "work_date" in r.get_json()["errors"]


def test_log_is_pending_and_owned(client, staff):
    s_user, s_emp = staff
    r = _log(client, s_user)
    assert r.status_code == 201
    data = r.get_json()["data"]
    assert data["verification_status"] == "pending"
    assert data["employee_id"] == s_emp.id


def test_attachment_upload(client, app, staff):
    s_user, _ = staff
    r = client.post(
        "/api/v1/self-logged-work",
        headers=bearer(s_user),
        data={
            "work_title": "Survey", "description": "Site photos", "time_spent_hours": "1.5", "work_date": TODAY,
            "attachment": (io.BytesIO(b"\x89PNG fake"), "site photo.png"),
        },
        content_type="multipart/form-data",
    )
    assert r.status_code == 201, r.get_json()
    path = r.get_json()["data"]["attachment_path"]
    assert path.endswith(".png")
    assert os.path.exists(os.path.join(app.root_path, path))


def test_update_only_own_pending(client, manager, staff, other_staff):
    m_user, _ = manager
    s_user, _ = staff
    o_user, _ = other_staff
    wid = _log(client, s_user).get_json()["data"]["id"]

    assert client.put(f"/api/v1/self-logged-work/{wid}", headers=bearer(o_user),
                      json={"work_title": "x"}).status_code == 403
    r = client.put(f"/api/v1/self-logged-work/{wid}", headers=bearer(s_user), json={"time_spent_hours": "3"})
    assert r.status_code == 200
    assert r.get_json()["data"]["time_spent_hours"] == 3.0

    client.put(f"/api/v1/self-logged-work/{wid}/approve", headers=bearer(m_user), json={})
    assert client.put(f"/api/v1/self-logged-work/{wid}", headers=bearer(s_user),
                      json={"work_title": "x"}).status_code == 422


def test_verification_flow(client, manager, staff):
    m_user, m_emp = manager
    s_user, _ = staff
    first = _log(client, s_user, hours="2").get_json()["data"]["id"]
    second = _log(client, s_user, hours="1.5").get_json()["data"]["id"]

    assert client.put(f"/api/v1/self-logged-work/{first}/approve", headers=bearer(s_user)).status_code == 403
    r = client.put(f"/api/v1/self-logged-work/{first}/approve", headers=bearer(m_user), json={"notes": "ok"})
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["verification_status"] == "approved"
    assert data["verified_by"] == m_emp.id
    assert data["verified_at"] is not None
    assert client.put(f"/api/v1/self-logged-work/{first}/reject", headers=bearer(m_user),
                      json={"reason": "late"}).status_code == 422

    assert client.put(f"/api/v1/self-logged-work/{second}/reject", headers=bearer(m_user),
                      json={}).status_code == 422
    r = client.put(f"/api/v1/self-logged-work/{second}/reject", headers=bearer(m_user),
                   json={"reason": "Duplicate entry"})
    assert r.get_json()["data"]["verification_notes"] == "Duplicate entry"

    mine = client.get("/api/v1/my-work", headers=bearer(s_user)).get_json()
    assert mine["meta"]["total"] == 2
    assert mine["meta"]["total_approved_hours"] == 2.0


def test_delete_own_or_management(client, manager, staff, other_staff):
    m_user, _ = manager
    s_user, _ = staff
    o_user, _ = other_staff
    a = _log(client, s_user).get_json()["data"]["id"]
    b = _log(client, s_user).get_json()["data"]["id"]

    assert client.delete(f"/api/v1/self-logged-work/{a}", headers=bearer(o_user)).status_code == 403
    assert client.delete(f"/api/v1/self-logged-work/{a}", headers=bearer(s_user)).status_code == 200
    assert client.delete(f"/api/v1/self-logged-work/{b}", headers=bearer(m_user)).status_code == 200
    assert fresh(SelfLoggedWork, a) is None
