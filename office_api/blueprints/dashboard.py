from datetime import date

from flask import Blueprint
from flask_jwt_extended import jwt_required
from sqlalchemy import case, func

from office_api.common.auth import current_employee
from office_api.common.http import ok
from office_api.common.serialize import money, iso
from office_api.extensions import db
from office_api.models.activity import ActivityLog
from office_api.models.attendance import Attendance
from office_api.models.employee import Employee
from office_api.models.finance import FloatLedger, Income, Expense
from office_api.models.task import Task, CLOSED_TASK_STATUSES
from office_api.blueprints.activity_log import activity_row
from office_api.services import float_ledger
from office_api.services.attendance_rules import month_to_date_percentage

bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")

PRESENT_TODAY = ("present", "half_day", "late")
PRIORITY_ORDER = case({"high": 0, "medium": 1, "low": 2}, value=Task.priority, else_=3)


def _stats(today: date, me):
    first = today.replace(day=1)
    month_expenses = (
        db.session.query(func.coalesce(func.sum(Expense.amount), 0))
        .filter(Expense.deleted_at.is_(None), Expense.status != "rejected",
                Expense.expense_date.between(first, today))
        .scalar()
    )
    month_income = (
        db.session.query(func.coalesce(func.sum(Income.amount), 0))
        .filter(Income.deleted_at.is_(None), Income.status == "confirmed",
                Income.income_date.between(first, today))
        .scalar()
    )
    today_q = Attendance.query.filter(Attendance.attendance_date == today)
    return {
        "total_staff": Employee.alive().filter(Employee.status == "active").count(),
        "present_today": today_q.filter(Attendance.status.in_(PRESENT_TODAY))
        .with_entities(Attendance.employee_id).distinct().count(),
        "late_today": today_q.filter(Attendance.is_late.is_(True))
        .with_entities(Attendance.employee_id).distinct().count(),
        "pending_tasks": Task.alive().filter(Task.status.notin_(CLOSED_TASK_STATUSES)).count(),
        "month_expenses": money(month_expenses),
        "month_income": money(month_income),
        "my_balance": money(float_ledger.current_balance(me.id)) if me else 0.0,
    }


def _cash_holders():
    """Employees whose latest ledger row leaves them holding cash."""
    latest = (
        db.session.query(func.max(FloatLedger.id).label("id"))
        .group_by(FloatLedger.employee_id)
        .subquery()
    )
    rows = (
        FloatLedger.query.join(latest, FloatLedger.id == latest.c.id)
        .filter(FloatLedger.new_balance > 0)
        .order_by(FloatLedger.new_balance.desc())
        .all()
    )
    return [
        {"employee": r.employee.brief() if r.employee else None, "balance": money(r.new_balance)}
        for r in rows
    ]


def _upcoming_tasks():
    tasks = (
        Task.alive()
        .filter(Task.status.notin_(CLOSED_TASK_STATUSES))
        .order_by(PRIORITY_ORDER, Task.deadline.asc())
        .limit(6)
        .all()
    )
    return [
        {
            "id": t.id,
            "task_code": t.task_code,
            "title": t.title,
            "priority": t.priority,
            "status": t.status,
            "deadline": iso(t.deadline),
            "is_overdue": t.is_overdue,
            "progress": t.progress,
        }
        for t in tasks
    ]


@bp.get("")
@jwt_required()
def dashboard():
    today = date.today()
    me = current_employee()

    recent = ActivityLog.query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(5).all()
    staff = Employee.alive().filter(Employee.status == "active").order_by(Employee.full_name.asc()).all()

    return ok({
        "stats": _stats(today, me),
        "recent_activities": [activity_row(a) for a in recent],
        "upcoming_tasks": _upcoming_tasks(),
        "office_cash_holders": _cash_holders(),
        "month_attendance": [
            {"employee": e.brief(), "percentage": month_to_date_percentage(e.id, today)}
            for e in staff
        ],
    })
