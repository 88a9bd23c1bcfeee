from datetime import date, datetime, timedelta

from office_api.extensions import db
from office_api.models.attendance import Attendance
from office_api.models.setting import Setting
from office_api.services import attendance_rules as rules
from tests.conftest import bearer


def test_late_rule_uses_start_time_and_grace(app):
    on = date(2026, 3, 2)
    assert rules.late_info(on, datetime(2026, 3, 2, 7, 55)) == (False, 0)
    assert rules.late_info(on, datetime(2026, 3, 2, 8, 15)) == (False, 0)
    assert rules.late_info(on, datetime(2026, 3, 2, 8, 40)) == (True, 40)
    # back-dated entries are never late
    assert rules.late_info(on, datetime(2026, 3, 3, 11, 0)) == (False, 0)


def test_late_rule_reads_settings(app):
    Setting.query.filter_by(key="attendance_start_time").one().value = "09:30"
    Setting.query.filter_by(key="grace_period_minutes").one().value = "5"
    db.session.commit()
    on = date(2026, 3, 2)
    assert rules.late_info(on, datetime(2026, 3, 2, 9, 34)) == (False, 0)
    assert rules.late_info(on, datetime(2026, 3, 2, 9, 40)) == (True, 10)


def test_month_to_date_percentage_counts_present_only(staff):
    _, emp = staff
    on = date(2026, 3, 10)
    for day, status in ((2, "present"), (3, "late"), (4, "present"), (5, "absent")):
        db.session.add(Attendance(employee_id=emp.id, attendance_date=date(2026, 3, day),
                                  shift_type="day", status=status))
    db.session.commit()
    assert rules.month_to_date_percentage(emp.id, on) == 20.0


def test_status_marks(app):
    assert rules.status_mark(None) == "-"
    assert rules.status_mark(Attendance(status="present")) == "P"
    assert rules.status_mark(Attendance(status="absent")) == "A"
    assert rules.status_mark(Attendance(status="late")) == "L"
    assert rules.status_mark(Attendance(status="pending")) == "-"


def test_check_in_then_out(client, staff):
    s_user, _ = staff
    h = bearer(s_user)

    r = client.post("/api/v1/attendance/check-in", headers=h, json={"shift_type": "day", "status": "present"})
    assert r.status_code == 200, r.get_json()
    assert r.get_json()["data"]["check_in_time"] is not None

    r = client.post("/api/v1/attendance/check-in", headers=h, json={"shift_type": "day", "status": "present"})
    assert r.status_code == 200
    assert r.get_json()["message"] == "Attendance already marked as present"

    r = client.post("/api/v1/attendance/check-in", headers=h, json={"shift_type": "day"})
    assert r.status_code == 422
    assert r.get_json()["message"] == "Attendance already marked for this shift (day)"

    r = client.post("/api/v1/attendance/check-out", headers=h, json={})
    assert r.status_code == 200
    assert r.get_json()["data"]["check_out_time"] is not None

    r = client.post("/api/v1/attendance/check-out", headers=h, json={})
    assert r.status_code == 422
    assert r.get_json()["message"] == "Already checked out today"


def test_check_out_without_check_in(client, staff):
    s_user, _ = staff
    r = client.post("/api/v1/attendance/check-out", headers=bearer(s_user), json={})
    assert r.status_code == 404
    assert r.get_json()["message"] == "No active check-in found"


def test_absent_has_no_time_and_status_can_change(client, staff):
    s_user, _ = staff
    h = bearer(s_user)
    r = client.post("/api/v1/attendance/check-in", headers=h, json={"shift_type": "night", "status": "absent"})
    data = r.get_json()["data"]
    assert data["check_in_time"] is None
    assert data["is_late"] is False

    r = client.post("/api/v1/attendance/check-in", headers=h, json={"shift_type": "night", "status": "late"})
    assert r.status_code == 200
    assert r.get_json()["message"] == "Attendance updated to late"
    assert r.get_json()["data"]["status"] == "late"


def test_back_dated_late_is_forced_late(client, staff):
    s_user, _ = staff
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    r = client.post("/api/v1/attendance/check-in", headers=bearer(s_user),
                    json={"shift_type": "day", "status": "late", "date": yesterday})
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["is_late"] is True
    assert data["late_minutes"] > 0


def test_staff_only_see_their_own_rows(client, manager, staff, other_staff):
    m_user, _ = manager
    s_user, s_emp = staff
    _, o_emp = other_staff
    for emp in (s_emp, o_emp):
        db.session.add(Attendance(employee_id=emp.id, attendance_date=date.today(), shift_type="day",
                                  status="present"))
    db.session.commit()

    mine = client.get(f"/api/v1/attendance?employee_id={o_emp.id}", headers=bearer(s_user)).get_json()
    assert {row["employee_id"] for row in mine["data"]} == {s_emp.id}

    everyone = client.get("/api/v1/attendance", headers=bearer(m_user)).get_json()
    assert everyone["meta"]["total"] == 2


def test_manual_duplicate_is_conflict(client, manager, staff):
    m_user, _ = manager
    _, s_emp = staff
    body = {"employee_id": s_emp.id, "attendance_date": date.today().isoformat(), "shift_type": "day"}
    assert client.post("/api/v1/attendance", headers=bearer(m_user), json=body).status_code == 201
    assert client.post("/api/v1/attendance", headers=bearer(m_user), json=body).status_code == 409


def test_switching_to_absent_clears_lateness(client, staff):
    s_user, _ = staff
    h = bearer(s_user)
    today = date.today()
    r = client.post("/api/v1/attendance/check-in", headers=h, json={"shift_type": "day", "status": "late"})
    assert r.get_json()["data"]["is_late"] is True

    r = client.post("/api/v1/attendance/check-in", headers=h, json={"shift_type": "day", "status": "absent"})
    data = r.get_json()["data"]
    assert data["status"] == "absent"
    assert data["check_in_time"] is None
    assert data["is_late"] is False
    assert data["late_minutes"] == 0

    report = client.get(f"/api/v1/attendance/monthly-report?month={today.month}&year={today.year}",
                        headers=h).get_json()["data"]
    assert report["absent_days"] == 1
    assert report["late_days"] == 0


def _seed_month(emp):
    marks = ((2, "day", "present", False), (3, "day", "late", True), (3, "night", "absent", False),
             (4, "day", "pending", False))
    for day, shift, status, late in marks:
        db.session.add(Attendance(employee_id=emp.id, attendance_date=date(2026, 3, day), shift_type=shift,
                                  status=status, is_late=late, late_minutes=20 if late else 0))
    db.session.add(Attendance(employee_id=emp.id, attendance_date=date(2026, 5, 6), shift_type="day",
                              status="absent"))
    db.session.commit()


def test_annual_report_counts_per_month(client, staff):
    s_user, s_emp = staff
    _seed_month(s_emp)
    data = client.get(f"/api/v1/attendance/annual-report?employee_id={s_emp.id}&year=2026",
                      headers=bearer(s_user)).get_json()["data"]
    assert data["year"] == 2026
    assert len(data["monthly_data"]) == 12
    march = data["monthly_data"][2]
    assert (march["month_name"], march["present"], march["absent"], march["late"], march["total_records"]) == (
        "Mar", 2, 1, 1, 4,
    )
    may = data["monthly_data"][4]
    assert (may["absent"], may["total_records"]) == (1, 1)
    assert data["monthly_data"][0]["total_records"] == 0


def test_master_report_grid(client, manager, staff):
    m_user, _ = manager
    s_user, s_emp = staff
    _seed_month(s_emp)

    assert client.get("/api/v1/attendance/master-report?month=3&year=2026", headers=bearer(s_user)).status_code == 403
    assert client.get("/api/v1/attendance/master-report?month=13&year=2026",
                      headers=bearer(m_user)).status_code == 422

    data = client.get("/api/v1/attendance/master-report?month=3&year=2026", headers=bearer(m_user)).get_json()["data"]
    assert data["month_name"] == "March 2026"
    assert len(data["dates"]) == 31
    assert data["dates"][0] == {"date": "2026-03-01", "day": "Sun", "day_number": 1}
    assert [row["name"] for row in data["employees"]] == ["Mira Kapoor", "Ravi Iyer"]
    records = data["employees"][1]["records"]
    assert (records["2026-03-02"]["day"], records["2026-03-02"]["night"]) == ("P", "-")
    assert (records["2026-03-03"]["day"], records["2026-03-03"]["night"]) == ("L", "A")
    assert records["2026-03-04"]["day"] == "-"
    assert records["2026-03-04"]["day_id"] is not None
