from datetime import datetime, date

from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from office_api.common.auth import current_employee, is_management, requires_management
from office_api.common.http import ok, fail
from office_api.common.paging import paginate
from office_api.common.serialize import iso, columns
from office_api.common.validate import Checker, parse_date
from office_api.extensions import db
from office_api.models.attendance import Attendance, SHIFT_TYPES, CHECK_IN_STATUSES, ATTENDANCE_STATUSES
from office_api.models.employee import Employee
from office_api.models.security import MANAGEMENT_ROLES
from office_api.services import attendance_rules as rules
from office_api.services.activity import log_activity
from office_api.services.notifier import notify_user, send_notification

bp = Blueprint("attendance", __name__, url_prefix="/api/v1/attendance")

LEAVE_TYPES = ("none", "sick", "personal", "casual", "absent")


def attendance_row(a: Attendance):
    return {
        "id": a.id,
        "employee_id": a.employee_id,
        "employee": a.employee.brief() if a.employee else None,
        "attendance_date": iso(a.attendance_date),
        "shift_type": a.shift_type,
        "check_in_time": iso(a.check_in_time),
        "check_out_time": iso(a.check_out_time),
        "is_late": bool(a.is_late),
        "late_minutes": a.late_minutes or 0,
        "leave_type": a.leave_type,
        "leave_reason": a.leave_reason,
        "approved_by": a.approved_by,
        "status": a.status,
        "notes": a.notes,
        "worked_hours": a.worked_hours,
        "created_at": iso(a.created_at),
    }


def _sees_everyone(emp: Employee | None) -> bool:
    if is_management():
        return True
    return bool(emp and (emp.role or "").lower() in MANAGEMENT_ROLES)


def _target_employee(data):
    """Explicit employee_id from the body, else the caller's own employee."""
    if data.get("employee_id"):
        try:
            emp = db.session.get(Employee, int(data["employee_id"]))
        except (TypeError, ValueError):
            emp = None
        return emp if emp is not None and emp.deleted_at is None else None
    return current_employee()


def _notify_status(a: Attendance, status: str, extra=None):
    emp = a.employee
    if emp is None:
        return
    pct = rules.month_to_date_percentage(emp.id, a.attendance_date)
    title, body = rules.notification_text(status, a.shift_type, emp.full_name, a.attendance_date, pct)
    payload = {
        "attendance_id": a.id,
        "date": a.attendance_date.isoformat(),
        "shift": a.shift_type,
        "percentage": pct,
    }
    payload.update(extra or {})
    if emp.user is not None:
        notify_user(emp.user, title, body, "attendance", "attendance", a.id, payload)
    else:
        send_notification(title, body, "attendance")


# ---------- check-in / check-out ----------

def _check_in_marks(on, status, now):
    """(check_in_time, is_late, late_minutes) for a check-in with `status`."""
    if status == "absent":
        return None, False, 0
    is_late, late_minutes = rules.late_info(on, now)
    if status == "late" and not is_late:
        is_late, late_minutes = True, rules.minutes_since_start(on, now)
    return now.time().replace(microsecond=0), is_late, late_minutes


@bp.post("/check-in")
@jwt_required()
def check_in():
    data = request.get_json(silent=True) or {}
    emp = _target_employee(data)
    if emp is None:
        return fail("No employee record found for this user.", 404)

    on = parse_date(data.get("date") or data.get("attendance_date")) or date.today()
    shift = data.get("shift_type")
    status = data.get("status") or None

    existing = Attendance.query.filter_by(employee_id=emp.id, attendance_date=on, shift_type=shift).first()
    if existing is not None:
        if status and existing.status == status:
            return ok(attendance_row(existing), message=f"Attendance already marked as {status}")
        if status:
            if status not in CHECK_IN_STATUSES:
                return fail("Validation failed", 422, errors={"status": ["The selected status is invalid."]})
            old = existing.status
            existing.status = status
            marks = _check_in_marks(on, status, datetime.now())
            existing.check_in_time, existing.is_late, existing.late_minutes = marks
            if data.get("notes"):
                existing.notes = data["notes"]
            db.session.commit()

            log_activity("update", "attendance", existing.id, old_values={"status": old},
                         new_values={"status": status, "shift": shift})
            _notify_status(existing, status, {"new_status": status})
            return ok(attendance_row(existing), message=f"Attendance updated to {status}")
        return fail(f"Attendance already marked for this shift ({shift})", 422)

    clean = (
        Checker(data)
        .choice("shift_type", SHIFT_TYPES, required=True)
        .choice("status", CHECK_IN_STATUSES)
        .string("notes")
        .done()
    )
    status = clean.get("status") or "present"
    check_in_time, is_late, late_minutes = _check_in_marks(on, status, datetime.now())

    a = Attendance(
        employee_id=emp.id,
        attendance_date=on,
        shift_type=clean["shift_type"],
        check_in_time=check_in_time,
        is_late=is_late,
        late_minutes=late_minutes,
        status=status,
        notes=clean.get("notes"),
    )
    db.session.add(a)
    db.session.commit()

    log_activity("check_in", "attendance", a.id,
                 new_values={"check_in_time": iso(check_in_time), "status": status, "shift": a.shift_type})
    _notify_status(a, status)
    return ok(attendance_row(a), message="Check-in successful")


@bp.post("/check-out")
@jwt_required()
def check_out():
    data = request.get_json(silent=True) or {}
    emp = _target_employee(data)
    if emp is None:
        return fail("No employee record found for this user.", 404)

    a = (
        Attendance.query.filter(
            Attendance.employee_id == emp.id,
            Attendance.check_in_time.isnot(None),
            Attendance.check_out_time.is_(None),
        )
        .order_by(Attendance.attendance_date.desc(), Attendance.created_at.desc(), Attendance.id.desc())
        .first()
    )
    if a is None:
        closed_today = Attendance.query.filter(
            Attendance.employee_id == emp.id,
            Attendance.attendance_date == date.today(),
            Attendance.check_out_time.isnot(None),
        ).first()
        if closed_today is not None:
            return fail("Already checked out today", 422)
        return fail("No active check-in found", 404)

    a.check_out_time = datetime.now().time().replace(microsecond=0)
    db.session.commit()

    log_activity("check_out", "attendance", a.id,
                 new_values={"check_out_time": iso(a.check_out_time), "hours_worked": a.worked_hours})
    return ok(attendance_row(a), message="Check-out successful")


# ---------- CRUD ----------

@bp.get("")
@jwt_required()
def list_attendance():
    me = current_employee()
    q = Attendance.query
    if _sees_everyone(me):
        if request.args.get("employee_id"):
            q = q.filter(Attendance.employee_id == request.args.get("employee_id", type=int))
    elif me is None:
        q = q.filter(Attendance.id.is_(None))
    else:
        q = q.filter(Attendance.employee_id == me.id)

    d_from = parse_date(request.args.get("from_date"))
    d_to = parse_date(request.args.get("to_date"))
    if d_from and d_to:
        q = q.filter(Attendance.attendance_date.between(d_from, d_to))
    if request.args.get("status"):
        q = q.filter(Attendance.status == request.args["status"])
    if request.args.get("shift_type"):
        q = q.filter(Attendance.shift_type == request.args["shift_type"])

    q = q.order_by(Attendance.attendance_date.desc(), Attendance.id.desc())
    items, meta = paginate(q, max_size=50)
    return ok([attendance_row(a) for a in items], **meta)


@bp.post("")
@jwt_required()
def create_attendance():
    data = request.get_json(silent=True) or {}
    clean = (
        Checker(data)
        .exists("employee_id", Employee, required=True)
        .date("attendance_date", required=True)
        .choice("shift_type", SHIFT_TYPES, required=True)
        .time("check_in_time")
        .time("check_out_time")
        .choice("leave_type", LEAVE_TYPES)
        .string("leave_reason")
        .choice("status", ATTENDANCE_STATUSES)
        .string("notes")
        .done()
    )
    dup = Attendance.query.filter_by(
        employee_id=clean["employee_id"],
        attendance_date=clean["attendance_date"],
        shift_type=clean["shift_type"],
    ).first()
    if dup is not None:
        return fail(f"Attendance already exists for this shift ({clean['shift_type']})", 409)

    a = Attendance(**{k: v for k, v in clean.items() if v is not None})
    a.leave_type = clean.get("leave_type") or "none"
    a.status = clean.get("status") or "pending"
    db.session.add(a)
    db.session.commit()

    log_activity("create", "attendance", a.id, new_values=columns(a))
    return ok(attendance_row(a), 201, message="Attendance record created")


@bp.get("/<int:attendance_id>")
@jwt_required()
def get_attendance(attendance_id: int):
    a = db.session.get(Attendance, attendance_id)
    if a is None:
        return fail("Attendance record not found", 404)
    return ok(attendance_row(a))


@bp.put("/<int:attendance_id>")
@jwt_required()
def update_attendance(attendance_id: int):
    a = db.session.get(Attendance, attendance_id)
    if a is None:
        return fail("Attendance record not found", 404)

    data = request.get_json(silent=True) or {}
    clean = (
        Checker(data, partial=True)
        .choice("shift_type", SHIFT_TYPES, required=True)
        .time("check_in_time")
        .time("check_out_time")
        .choice("leave_type", LEAVE_TYPES)
        .string("leave_reason")
        .choice("status", ATTENDANCE_STATUSES, required=True)
        .string("notes")
        .done()
    )
    old = columns(a)
    for k, v in clean.items():
        setattr(a, k, v)
    if clean.get("status") in ("approved", "rejected"):
        me = current_employee()
        a.approved_by = me.id if me else None
    db.session.commit()

    log_activity("update", "attendance", a.id, old_values=old, new_values=columns(a))

    new_status = clean.get("status")
    if new_status and new_status != old.get("status"):
        emp = a.employee
        if a.leave_type not in (None, "none", "absent"):
            send_notification(
                "Leave Status Updated",
                f"{emp.full_name if emp else 'Employee'}'s leave {new_status}",
                "attendance",
            )
        else:
            _notify_status(a, new_status, {"new_status": new_status})
    return ok(attendance_row(a), message="Attendance updated successfully")


@bp.delete("/<int:attendance_id>")
@jwt_required()
def delete_attendance(attendance_id: int):
    a = db.session.get(Attendance, attendance_id)
    if a is None:
        return fail("Attendance record not found", 404)
    snapshot = columns(a)
    db.session.delete(a)
    db.session.commit()
    log_activity("delete", "attendance", attendance_id, old_values=snapshot)
    return ok(None, message="Attendance record deleted successfully")


# ---------- reports ----------

def _report_employee_id():
    emp_id = request.args.get("employee_id", type=int)
    if emp_id:
        return emp_id
    me = current_employee()
    return me.id if me else None


@bp.get("/monthly-report")
@jwt_required()
def monthly_report():
    today = date.today()
    month = request.args.get("month", type=int) or today.month
    year = request.args.get("year", type=int) or today.year
    if not 1 <= month <= 12:
        return fail("Invalid month", 422)

    out = {
        "month": month,
        "year": year,
        "total_working_days": rules.STANDARD_WORKING_DAYS,
        "present_days": 0,
        "absent_days": 0,
        "late_days": 0,
        "avg_working_hours": 0,
        "attendance_percentage": 0,
        "daily_records": [],
    }
    emp_id = _report_employee_id()
    if not emp_id:
        return ok(out)

    start, end = rules.month_bounds(year, month)
    rows = (
        Attendance.query.filter(
            Attendance.employee_id == emp_id,
            Attendance.attendance_date.between(start, end),
        )
        .order_by(Attendance.attendance_date.asc(), Attendance.shift_type.asc())
        .all()
    )
    present = sum(1 for a in rows if a.counts_present)
    worked = [a.worked_hours for a in rows if a.check_in_time and a.check_out_time]

    out.update({
        "present_days": present,
        "absent_days": sum(1 for a in rows if a.status == "absent"),
        "late_days": sum(1 for a in rows if a.is_late),
        "avg_working_hours": round(sum(worked) / len(worked), 1) if worked else 0,
        "attendance_percentage": round(present / rules.STANDARD_WORKING_DAYS * 100, 1),
        "daily_records": [
            {
                "id": a.id,
                "date": a.attendance_date.isoformat(),
                "status": a.status,
                "check_in": iso(a.check_in_time) or "-",
                "check_out": iso(a.check_out_time) or "-",
                "is_late": bool(a.is_late),
                "shift": a.shift_type,
            }
            for a in rows
        ],
    })
    return ok(out)


@bp.get("/annual-report")
@jwt_required()
def annual_report():
    year = request.args.get("year", type=int) or date.today().year
    emp_id = _report_employee_id()

    rows = []
    if emp_id:
        rows = Attendance.query.filter(
            Attendance.employee_id == emp_id,
            Attendance.attendance_date.between(date(year, 1, 1), date(year, 12, 31)),
        ).all()

    monthly = []
    for m in range(1, 13):
        in_month = [a for a in rows if a.attendance_date.month == m]
        monthly.append({
            "month": m,
            "month_name": date(year, m, 1).strftime("%b"),
            "present": sum(1 for a in in_month if a.counts_present),
            "absent": sum(1 for a in in_month if a.status == "absent"),
            "late": sum(1 for a in in_month if a.is_late),
            "total_records": len(in_month),
        })
    return ok({"year": year, "monthly_data": monthly})


@bp.get("/master-report")
@requires_management
def master_report():
    today = date.today()
    month = request.args.get("month", type=int) or today.month
    year = request.args.get("year", type=int) or today.year
    if not 1 <= month <= 12:
        return fail("Invalid month", 422)
    start, end = rules.month_bounds(year, month)

    employees = Employee.alive().order_by(Employee.full_name.asc()).all()
    rows = Attendance.query.filter(Attendance.attendance_date.between(start, end)).all()
    by_key = {(a.employee_id, a.attendance_date, a.shift_type): a for a in rows}

    dates = [date(year, month, d) for d in range(1, end.day + 1)]
    grid = []
    for emp in employees:
        records = {}
        for d in dates:
            day_row = by_key.get((emp.id, d, "day"))
            night_row = by_key.get((emp.id, d, "night"))
            records[d.isoformat()] = {
                "day": rules.status_mark(day_row),
                "night": rules.status_mark(night_row),
                "day_id": day_row.id if day_row else None,
                "night_id": night_row.id if night_row else None,
            }
        grid.append({"id": emp.id, "name": emp.full_name, "records": records})

    return ok({
        "month_name": start.strftime("%B %Y"),
        "dates": [{"date": d.isoformat(), "day": d.strftime("%a"), "day_number": d.day} for d in dates],
        "employees": grid,
    })
