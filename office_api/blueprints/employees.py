from __future__ import annotations

from datetime import datetime

from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from office_api.common.auth import requires_management
from office_api.common.http import ok, fail
from office_api.common.paging import paginate, text_q, apply_search, sort_direction
from office_api.common.serialize import money, iso, columns
from office_api.common.validate import Checker, as_bool
from office_api.extensions import db
from office_api.models.activity import ActivityLog
from office_api.models.attendance import Attendance
from office_api.models.employee import Employee
from office_api.models.finance import FloatLedger, Income, Expense, CashTransfer
from office_api.models.security import grant_role
from office_api.models.task import TaskAssignment, SelfLoggedWork
from office_api.models.user import User
from office_api.models.setting import Setting
from office_api.services import float_ledger
from office_api.services.activity import log_activity
from office_api.services.mailer import send_template

bp = Blueprint("employees", __name__, url_prefix="/api/v1/employees")

SALARY_TYPES = ("Fixed", "Share Profit")
EMPLOYEE_STATUSES = ("active", "inactive", "suspended")
ATTENDANCE_MODES = ("direct_status", "time_based")
SHIFTS = ("day", "night", "both")

_SORTABLE = {
    "full_name": Employee.full_name,
    "join_date": Employee.join_date,
    "created_at": Employee.created_at,
    "employee_code": Employee.employee_code,
    "monthly_salary": Employee.monthly_salary,
}


# ---------- serializers ----------

def employee_row(x: Employee, with_balance: bool = False):
    out = {
        "id": x.id,
        "user_id": x.user_id,
        "employee_code": x.employee_code,
        "full_name": x.full_name,
        "email": x.email,
        "mobile_number": x.mobile_number,
        "role": x.role,
        "salary_type": x.salary_type,
        "monthly_salary": money(x.monthly_salary),
        "profit_share_percentage": float(x.profit_share_percentage) if x.profit_share_percentage is not None else None,
        "profile_photo": x.profile_photo,
        "address": x.address,
        "bank_name": x.bank_name,
        "bank_account_number": x.bank_account_number,
        "bank_ifsc_code": x.bank_ifsc_code,
        "join_date": iso(x.join_date),
        "status": x.status,
        "attendance_mode": x.attendance_mode,
        "preferred_shift": x.preferred_shift,
        "created_at": iso(x.created_at),
    }
    if with_balance:
        out["current_balance"] = money(x.current_float_balance)
    return out


def _get_or_404(emp_id: int) -> Employee:
    emp = db.session.get(Employee, emp_id)
    if emp is None or emp.deleted_at is not None:
        return None
    return emp


def _check(data, partial=False):
    return (
        Checker(data, partial=partial)
        .string("full_name", required=True, max_len=255)
        .email("email", required=True)
        .string("mobile_number", required=True, max_len=20)
        .string("role", required=True, max_len=50)
        .choice("salary_type", SALARY_TYPES, required=True)
        .number("monthly_salary", required=True, min_value=0)
        .number("profit_share_percentage", min_value=0, max_value=100, digits=5)
        .string("address")
        .string("profile_photo", max_len=255)
        .string("bank_name", max_len=120)
        .string("bank_account_number", max_len=50)
        .string("bank_ifsc_code", max_len=20)
        .choice("attendance_mode", ATTENDANCE_MODES)
        .choice("preferred_shift", SHIFTS)
    )


# ---------- endpoints ----------

@bp.get("")
@jwt_required()
def list_employees():
    q = Employee.alive()
    if request.args.get("status"):
        q = q.filter(Employee.status == request.args["status"])
    if request.args.get("role"):
        q = q.filter(Employee.role == request.args["role"])
    q = apply_search(q, text_q(), Employee.full_name, Employee.email,
                     Employee.employee_code, Employee.mobile_number)

    col = _SORTABLE.get(request.args.get("sort_by") or "created_at", Employee.created_at)
    q = q.order_by(col.asc() if sort_direction() == "asc" else col.desc(), Employee.id.desc())

    items, meta = paginate(q)
    return ok([employee_row(x, with_balance=True) for x in items], **meta)


@bp.post("")
@requires_management
def create_employee():
    data = request.get_json(silent=True) or {}
    chk = _check(data).date("join_date", required=True)
    email = chk.clean.get("email")
    if email and (User.query.filter_by(email=email).first() or Employee.alive().filter_by(email=email).first()):
        chk.error("email", "The email has already been taken.")
    clean = chk.done()

    password = User.random_password(10)
    user = User(email=clean["email"], full_name=clean["full_name"], status="active")
    user.set_password(password)
    db.session.add(user)
    db.session.flush()
    grant_role(user, "staff")

    # a soft-deleted record holding the email is the same person coming back
    emp = Employee.query.filter(Employee.email == clean["email"], Employee.deleted_at.isnot(None)).first()
    if emp is None:
        emp = Employee(employee_code=Employee.generate_code())
    else:
        emp.restore()
    emp.user_id = user.id
    emp.status = "active"
    for k, v in clean.items():
        if v is not None:
            setattr(emp, k, v)
    emp.attendance_mode = clean.get("attendance_mode") or "direct_status"
    emp.preferred_shift = clean.get("preferred_shift") or "day"
    db.session.add(emp)
    db.session.commit()

    log_activity("create", "employee", emp.id, new_values={"name": emp.full_name, "role": emp.role},
                 entity_code=emp.employee_code)
    send_template(
        emp.email, "welcome",
        institute=Setting.get("institute_name", "Institute Pro"),
        name=emp.full_name, code=emp.employee_code, email=emp.email, password=password,
    )
    return ok(employee_row(emp, with_balance=True), 201, message="Employee created successfully")


@bp.get("/<int:emp_id>")
@jwt_required()
def get_employee(emp_id: int):
    emp = _get_or_404(emp_id)
    if not emp:
        return fail("Employee not found", 404)
    out = employee_row(emp, with_balance=True)
    out["counts"] = {
        "attendance": Attendance.query.filter_by(employee_id=emp.id).count(),
        "income": Income.query.filter(Income.employee_id == emp.id, Income.deleted_at.is_(None)).count(),
        "expenses": Expense.query.filter(Expense.employee_id == emp.id, Expense.deleted_at.is_(None)).count(),
        "task_assignments": TaskAssignment.query.filter_by(assigned_to=emp.id).count(),
    }
    return ok(out)


@bp.put("/<int:emp_id>")
@jwt_required()
def update_employee(emp_id: int):
    emp = _get_or_404(emp_id)
    if not emp:
        return fail("Employee not found", 404)

    data = request.get_json(silent=True) or {}
    chk = _check(data, partial=True).choice("status", EMPLOYEE_STATUSES).date("join_date")
    email = chk.clean.get("email")
    if email and email != emp.email:
        taken = (
            User.query.filter(User.email == email, User.id != (emp.user_id or 0)).first()
            or Employee.query.filter(Employee.email == email, Employee.id != emp.id).first()
        )
        if taken:
            chk.error("email", "The email has already been taken.")
    clean = chk.done()

    old = columns(emp)
    for k, v in clean.items():
        if k in ("full_name", "email", "mobile_number", "role", "salary_type", "monthly_salary") and v is None:
            continue
        setattr(emp, k, v)

    # keep the login account in step with the staff record
    if emp.user and ("full_name" in clean or "email" in clean):
        emp.user.full_name = emp.full_name
        emp.user.email = emp.email
    db.session.commit()

    log_activity("update", "employee", emp.id, old_values=old, new_values=columns(emp),
                 entity_code=emp.employee_code)
    return ok(employee_row(emp, with_balance=True), message="Employee updated successfully")


@bp.delete("/<int:emp_id>")
@requires_management
def delete_employee(emp_id: int):
    emp = _get_or_404(emp_id)
    if not emp:
        return fail("Employee not found", 404)
    snapshot = columns(emp)

    if as_bool(request.args.get("delete_all_data") or (request.get_json(silent=True) or {}).get("delete_all_data")):
        _purge_employee_data(emp)

    user = emp.user
    if user is not None:
        emp.user_id = None
        db.session.flush()
        db.session.delete(user)
    emp.deleted_at = datetime.utcnow()
    emp.status = "inactive"
    db.session.commit()

    log_activity("delete", "employee", emp_id, old_values=snapshot, entity_code=snapshot.get("employee_code"))
    return ok(None, message="Employee deleted successfully")


def _purge_employee_data(emp: Employee):
    # transfers touch a second employee's chain, so unwind them through the ledger first
    transfers = CashTransfer.query.filter(
        (CashTransfer.sender_id == emp.id) | (CashTransfer.receiver_id == emp.id)
    ).all()
    for t in transfers:
        float_ledger.revert_reference(("transfer_out", "transfer_in"), t.id)
        db.session.delete(t)

    Attendance.query.filter_by(employee_id=emp.id).delete(synchronize_session=False)
    Expense.query.filter_by(employee_id=emp.id).delete(synchronize_session=False)
    Income.query.filter_by(employee_id=emp.id).delete(synchronize_session=False)
    TaskAssignment.query.filter_by(assigned_to=emp.id).delete(synchronize_session=False)
    SelfLoggedWork.query.filter_by(employee_id=emp.id).delete(synchronize_session=False)
    FloatLedger.query.filter_by(employee_id=emp.id).delete(synchronize_session=False)
    db.session.flush()


@bp.get("/<int:emp_id>/history")
@jwt_required()
def employee_history(emp_id: int):
    from office_api.blueprints.activity_log import activity_row
    q = (
        ActivityLog.query.filter(ActivityLog.entity_type == "employee", ActivityLog.entity_id == emp_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    )
    items, meta = paginate(q)
    return ok([activity_row(x) for x in items], **meta)
