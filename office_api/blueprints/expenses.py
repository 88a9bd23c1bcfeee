from datetime import datetime, date

from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from sqlalchemy import func

from office_api.common.auth import current_user, current_employee, requires_management
from office_api.common.http import ok, fail
from office_api.common.paging import paginate
from office_api.common.serialize import money, iso, columns, rupees
from office_api.common.validate import Checker, parse_date
from office_api.extensions import db
from office_api.models.employee import Employee
from office_api.models.finance import Expense, EXPENSE_TYPES, PAID_FROM
from office_api.services import float_ledger
from office_api.services.activity import log_activity
from office_api.services.mailer import send_template
from office_api.services.notifier import notify_user, send_notification
from office_api.services.uploads import request_data, save_request_file

bp = Blueprint("expenses", __name__, url_prefix="/api/v1/expenses")

REF_EXPENSE = "expense"
REF_REVERSAL = "expense_reversal"


def expense_row(x: Expense):
    return {
        "id": x.id,
        "employee_id": x.employee_id,
        "employee": x.employee.brief() if x.employee else None,
        "expense_type": x.expense_type,
        "amount": money(x.amount),
        "category": x.category,
        "description": x.description,
        "bill_photo_path": x.bill_photo_path,
        "expense_date": iso(x.expense_date),
        "paid_from": x.paid_from,
        "float_holder_id": x.float_holder_id,
        "float_holder": x.float_holder.brief() if x.float_holder else None,
        "status": x.status,
        "approved_by": x.approved_by,
        "approval_date": iso(x.approval_date),
        "reimbursement_status": x.reimbursement_status,
        "reimbursement_date": iso(x.reimbursement_date),
        "created_by": x.created_by,
        "notes": x.notes,
        "created_at": iso(x.created_at),
    }


def _get(expense_id):
    x = db.session.get(Expense, expense_id)
    if x is None or x.deleted_at is not None:
        return None
    return x


def _in_range(q, d_from, d_to):
    if d_from and d_to:
        q = q.filter(Expense.expense_date.between(d_from, d_to))
    return q


def _mail_status(x: Expense, status: str):
    emp = x.employee
    if emp and emp.email:
        send_template(emp.email, "expense_status", name=emp.full_name, amount=rupees(x.amount),
                      category=x.category, date=iso(x.expense_date), status=status)


def _notify_owner(x: Expense, title: str, message: str, event: str):
    emp = x.employee
    notify_user(emp.user if emp else None, title, message, "expense", "expense", x.id,
                {"event": event, "expense_id": x.id, "amount": money(x.amount)})


# ---------- endpoints ----------

@bp.get("")
@jwt_required()
def list_expenses():
    q = Expense.query.filter(Expense.deleted_at.is_(None))
    if request.args.get("employee_id"):
        q = q.filter(Expense.employee_id == request.args.get("employee_id", type=int))
    for arg in ("expense_type", "status", "category"):
        if request.args.get(arg):
            q = q.filter(getattr(Expense, arg) == request.args[arg])
    q = _in_range(q, parse_date(request.args.get("from_date")), parse_date(request.args.get("to_date")))
    q = q.order_by(Expense.expense_date.desc(), Expense.id.desc())
    items, meta = paginate(q, max_size=50)
    return ok([expense_row(x) for x in items], **meta)


@bp.post("")
@jwt_required()
def create_expense():
    data = request_data()
    clean = (
        Checker(data)
        .exists("employee_id", Employee, required=True)
        .choice("expense_type", EXPENSE_TYPES, required=True)
        .string("category", required=True, max_len=100)
        .number("amount", required=True, min_value=0)
        .string("description", required=True)
        .date("expense_date", required=True)
        .choice("paid_from", PAID_FROM, required=True)
        .exists("float_holder_id", Employee)
        .string("bill_photo_path", max_len=255)
        .string("notes")
        .done()
    )
    me = current_employee()
    if me is None:
        return fail("Current user is not linked to an employee record.", 400)
    user = current_user()

    holder_id = None
    if clean["paid_from"] == "institute_float":
        holder_id = clean.get("float_holder_id") or me.id
        float_ledger.ensure_balance(holder_id, clean["amount"])

    x = Expense(
        employee_id=clean["employee_id"],
        expense_type=clean["expense_type"],
        amount=clean["amount"],
        category=clean["category"],
        description=clean["description"],
        expense_date=clean["expense_date"],
        paid_from=clean["paid_from"],
        float_holder_id=holder_id,
        bill_photo_path=clean.get("bill_photo_path"),
        notes=clean.get("notes"),
        # recorded by an authorised user, so it is approved on entry
        status="approved",
        approved_by=me.id,
        approval_date=datetime.utcnow(),
        reimbursement_status="pending" if clean["paid_from"] == "personal_money" else "not_applicable",
        created_by=user.id if user else None,
    )
    db.session.add(x)
    db.session.flush()

    path = save_request_file("bill_photo", "expense-bills", x.id)
    if path:
        x.bill_photo_path = path

    if holder_id:
        float_ledger.record(
            holder_id, "deduct", x.amount,
            reference_type=REF_EXPENSE, reference_id=x.id,
            description=f"Expense: {x.category}",
            created_by=x.created_by, on_date=x.expense_date,
        )
    db.session.commit()

    log_activity("create", "expense", x.id, new_values=columns(x))
    send_notification("Expense Added", f"{rupees(x.amount)} {x.category} expense added", "expense")
    _notify_owner(x, "Expense Added", f"{rupees(x.amount)} {x.category} expense added", "expense_created")
    return ok(expense_row(x), 201, message="Expense recorded successfully")


@bp.get("/pending-reimbursement")
@jwt_required()
def pending_reimbursement():
    rows = (
        Expense.query.filter(
            Expense.deleted_at.is_(None),
            Expense.status == "approved",
            Expense.paid_from == "personal_money",
            Expense.reimbursement_status == "pending",
        )
        .order_by(Expense.expense_date.desc(), Expense.id.desc())
        .all()
    )
    return ok({
        "expenses": [expense_row(x) for x in rows],
        "total": money(sum((x.amount for x in rows), 0)),
    })


@bp.get("/report")
@jwt_required()
def report():
    today = date.today()
    d_from = parse_date(request.args.get("from_date")) or today.replace(day=1)
    d_to = parse_date(request.args.get("to_date")) or today

    base = _in_range(
        Expense.query.filter(Expense.deleted_at.is_(None), Expense.status == "approved"),
        d_from, d_to,
    )
    sub = base.subquery()
    total = db.session.query(func.coalesce(func.sum(sub.c.amount), 0)).scalar()
    by_category = [
        {"category": c, "total": money(t), "count": n}
        for c, t, n in db.session.query(sub.c.category, func.sum(sub.c.amount), func.count())
        .group_by(sub.c.category).order_by(func.sum(sub.c.amount).desc()).all()
    ]
    by_employee = []
    for emp_id, t, n in (
        db.session.query(sub.c.employee_id, func.sum(sub.c.amount), func.count())
        .group_by(sub.c.employee_id).order_by(func.sum(sub.c.amount).desc()).all()
    ):
        emp = db.session.get(Employee, emp_id)
        by_employee.append({"employee": emp.brief() if emp else None, "total": money(t), "count": n})

    return ok({
        "from_date": d_from.isoformat(),
        "to_date": d_to.isoformat(),
        "total": money(total),
        "by_category": by_category,
        "by_employee": by_employee,
    })


@bp.get("/<int:expense_id>")
@jwt_required()
def get_expense(expense_id: int):
    x = _get(expense_id)
    if not x:
        return fail("Expense not found", 404)
    return ok(expense_row(x))


@bp.put("/<int:expense_id>")
@jwt_required()
def update_expense(expense_id: int):
    x = _get(expense_id)
    if not x:
        return fail("Expense not found", 404)
    if x.status != "pending":
        return fail("Only pending expenses can be updated", 422)

    clean = (
        Checker(request_data(), partial=True)
        .string("category", max_len=100)
        .number("amount", min_value=0)
        .string("description")
        .date("expense_date")
        .string("notes")
        .done()
    )
    old = columns(x)
    for k, v in clean.items():
        if v is not None or k == "notes":
            setattr(x, k, v)
    path = save_request_file("bill_photo", "expense-bills", x.id)
    if path:
        x.bill_photo_path = path

    # a float-paid expense keeps its ledger row in step with the amount
    if "amount" in clean and x.uses_float:
        for entry in float_ledger.entries_for(REF_EXPENSE, x.id):
            float_ledger.change_amount(entry, x.amount)
    db.session.commit()

    log_activity("update", "expense", x.id, old_values=old, new_values=columns(x))
    return ok(expense_row(x), message="Expense updated successfully")


@bp.delete("/<int:expense_id>")
@jwt_required()
def delete_expense(expense_id: int):
    x = _get(expense_id)
    if not x:
        return fail("Expense not found", 404)
    if x.reimbursement_status == "reimbursed":
        return fail(
            "Cannot delete expense: This expense has already been reimbursed. "
            "Please revert the reimbursement status first if you really need to delete it.",
            422,
        )

    snapshot = columns(x)
    float_ledger.revert_reference((REF_EXPENSE, REF_REVERSAL), x.id)
    x.deleted_at = datetime.utcnow()
    db.session.commit()

    log_activity("delete", "expense", expense_id, old_values=snapshot)
    return ok(None, message="Expense record deleted successfully")


@bp.put("/<int:expense_id>/approve")
@requires_management
def approve_expense(expense_id: int):
    x = _get(expense_id)
    if not x:
        return fail("Expense not found", 404)
    if x.status != "pending":
        return fail("Only pending expenses can be approved", 422)

    me = current_employee()
    x.status = "approved"
    x.approved_by = me.id if me else None
    x.approval_date = datetime.utcnow()
    if x.paid_from == "personal_money":
        x.reimbursement_status = "pending"
    db.session.commit()

    log_activity("approve", "expense", x.id, old_values={"status": "pending"}, new_values={"status": "approved"})
    _notify_owner(x, "Expense Approved", f"Your {rupees(x.amount)} {x.category} expense was approved",
                  "expense_approved")
    _mail_status(x, "approved")
    return ok(expense_row(x), message="Expense approved successfully")


@bp.put("/<int:expense_id>/reject")
@requires_management
def reject_expense(expense_id: int):
    x = _get(expense_id)
    if not x:
        return fail("Expense not found", 404)
    if x.status != "pending":
        return fail("Only pending expenses can be rejected", 422)

    data = request.get_json(silent=True) or {}
    me = current_employee()
    x.status = "rejected"
    x.approved_by = me.id if me else None
    x.approval_date = datetime.utcnow()
    x.reimbursement_status = "not_applicable"
    if data.get("reason"):
        x.notes = data["reason"]

    if x.uses_float and x.float_holder_id:
        user = current_user()
        float_ledger.record(
            x.float_holder_id, "add", x.amount,
            reference_type=REF_REVERSAL, reference_id=x.id,
            description=f"Expense rejected: {x.category}",
            created_by=user.id if user else None,
        )
    db.session.commit()

    log_activity("reject", "expense", x.id, old_values={"status": "pending"},
                 new_values={"status": "rejected", "reason": data.get("reason")})
    _notify_owner(x, "Expense Rejected", f"Your {rupees(x.amount)} {x.category} expense was rejected",
                  "expense_rejected")
    _mail_status(x, "rejected")
    return ok(expense_row(x), message="Expense rejected")


@bp.put("/<int:expense_id>/reimburse")
@requires_management
def reimburse_expense(expense_id: int):
    x = _get(expense_id)
    if not x:
        return fail("Expense not found", 404)
    if x.status != "approved":
        return fail("Only approved expenses can be reimbursed", 422)
    if x.paid_from != "personal_money":
        return fail("Only expenses paid from personal money can be reimbursed", 422)
    if x.reimbursement_status == "reimbursed":
        return fail("Expense is already reimbursed", 422)

    x.reimbursement_status = "reimbursed"
    x.reimbursement_date = datetime.utcnow()
    db.session.commit()

    log_activity("reimburse", "expense", x.id, new_values={"reimbursement_status": "reimbursed"})
    _notify_owner(x, "Expense Reimbursed", f"{rupees(x.amount)} for {x.category} has been reimbursed",
                  "expense_reimbursed")
    return ok(expense_row(x), message="Expense marked as reimbursed")
