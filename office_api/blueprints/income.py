from datetime import datetime

from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from sqlalchemy import func

from office_api.common.auth import current_user, current_employee, requires_management
from office_api.common.errors import APIError
from office_api.common.http import ok, fail
from office_api.common.paging import paginate
from office_api.common.serialize import money, iso, columns, rupees
from office_api.common.validate import Checker, parse_date
from office_api.extensions import db
from office_api.models.employee import Employee
from office_api.models.finance import Income, INCOME_TYPES, SOURCE_TYPES, PAYMENT_METHODS
from office_api.services import float_ledger
from office_api.services.activity import log_activity
from office_api.services.notifier import notify_user, send_notification
from office_api.services.uploads import request_data, save_request_file

bp = Blueprint("income", __name__, url_prefix="/api/v1/income")

REF_INCOME = "income"


def income_row(x: Income):
    return {
        "id": x.id,
        "employee_id": x.employee_id,
        "employee": x.employee.brief() if x.employee else None,
        "income_type": x.income_type,
        "source_type": x.source_type,
        "contributor_id": x.contributor_id,
        "contributor": x.contributor.brief() if x.contributor else None,
        "held_by_id": x.held_by_id,
        "held_by": x.holder.brief() if x.holder else None,
        "payment_method": x.payment_method,
        "amount": money(x.amount),
        "income_date": iso(x.income_date),
        "category": x.category,
        "description": x.description,
        "receipt_path": x.receipt_path,
        "status": x.status,
        "confirmed_by": x.confirmed_by,
        "created_by": x.created_by,
        "notes": x.notes,
        "created_at": iso(x.created_at),
    }


def _get(income_id):
    x = db.session.get(Income, income_id)
    if x is None or x.deleted_at is not None:
        return None
    return x


def _ledger_entry(x: Income):
    rows = float_ledger.entries_for(REF_INCOME, x.id)
    return rows[0] if rows else None


@bp.get("")
@jwt_required()
def list_income():
    q = Income.query.filter(Income.deleted_at.is_(None))
    if request.args.get("employee_id"):
        q = q.filter(Income.employee_id == request.args.get("employee_id", type=int))
    for arg in ("income_type", "source_type", "status", "category"):
        if request.args.get(arg):
            q = q.filter(getattr(Income, arg) == request.args[arg])
    d_from = parse_date(request.args.get("from_date"))
    d_to = parse_date(request.args.get("to_date"))
    if d_from and d_to:
        q = q.filter(Income.income_date.between(d_from, d_to))
    q = q.order_by(Income.income_date.desc(), Income.id.desc())
    items, meta = paginate(q, max_size=50)
    return ok([income_row(x) for x in items], **meta)


@bp.post("")
@jwt_required()
def create_income():
    clean = (
        Checker(request_data())
        .exists("employee_id", Employee, required=True)
        .choice("income_type", INCOME_TYPES, required=True)
        .choice("source_type", SOURCE_TYPES, required=True)
        .exists("contributor_id", Employee)
        .exists("held_by_id", Employee)
        .choice("payment_method", PAYMENT_METHODS, required=True)
        .string("category", required=True, max_len=100)
        .number("amount", required=True, min_value=0)
        .string("description", required=True)
        .date("income_date", required=True)
        .string("receipt_path", max_len=255)
        .string("notes")
        .done()
    )
    me = current_employee()
    user = current_user()

    x = Income(
        status="confirmed",
        confirmed_by=me.id if me else None,
        created_by=user.id if user else None,
        **{k: v for k, v in clean.items() if v is not None},
    )
    db.session.add(x)
    db.session.flush()

    path = save_request_file("receipt", "income-receipts", x.id)
    if path:
        x.receipt_path = path

    # cash in someone's hands raises their float
    if x.payment_method == "cash" and x.held_by_id:
        float_ledger.record(
            x.held_by_id, "add", x.amount,
            reference_type=REF_INCOME, reference_id=x.id,
            description=f"Income Received: {x.description}",
            created_by=x.created_by, on_date=x.income_date,
        )
    db.session.commit()

    log_activity("create", "income", x.id, new_values=columns(x))
    if x.holder is not None:
        notify_user(x.holder.user, "Income Confirmed", f"{rupees(x.amount)} added to your float",
                    "income", "income", x.id, {"event": "income_confirmed", "income_id": x.id})
    if x.employee is not None:
        notify_user(x.employee.user, "Income Recorded", f"{rupees(x.amount)} {x.category} recorded",
                    "income", "income", x.id, {"event": "income_recorded", "income_id": x.id})
    return ok(income_row(x), 201, message="Income record created")


@bp.get("/report")
@jwt_required()
def report():
    q = Income.query.filter(Income.deleted_at.is_(None), Income.status == "confirmed")
    d_from = parse_date(request.args.get("from_date"))
    d_to = parse_date(request.args.get("to_date"))
    if d_from and d_to:
        q = q.filter(Income.income_date.between(d_from, d_to))
    sub = q.subquery()

    total = db.session.query(func.coalesce(func.sum(sub.c.amount), 0)).scalar()
    by_category = [
        {"category": c, "total": money(t), "count": n}
        for c, t, n in db.session.query(sub.c.category, func.sum(sub.c.amount), func.count())
        .group_by(sub.c.category).order_by(func.sum(sub.c.amount).desc()).all()
    ]
    return ok({"total_income": money(total), "by_category": by_category})


@bp.get("/<int:income_id>")
@jwt_required()
def get_income(income_id: int):
    x = _get(income_id)
    if not x:
        return fail("Income not found", 404)
    return ok(income_row(x))


@bp.put("/<int:income_id>")
@jwt_required()
def update_income(income_id: int):
    x = _get(income_id)
    if not x:
        return fail("Income not found", 404)

    clean = (
        Checker(request_data(), partial=True)
        .string("category", max_len=100)
        .number("amount", min_value=0)
        .string("description")
        .date("income_date")
        .string("notes")
        .done()
    )
    old = columns(x)

    new_amount = clean.get("amount")
    if new_amount is not None and new_amount != x.amount:
        entry = _ledger_entry(x)
        if entry is not None:
            diff = new_amount - x.amount
            if diff < 0:
                bal = float_ledger.current_balance(entry.employee_id)
                if bal < -diff:
                    raise APIError(
                        "INSUFFICIENT_BALANCE",
                        f"Cannot update income amount: Insufficient float balance to reduce income by "
                        f"{money(-diff):.2f}. Current Balance: {money(bal):.2f}.",
                        status_code=400,
                    )
            float_ledger.change_amount(entry, new_amount)

    for k, v in clean.items():
        if v is not None or k == "notes":
            setattr(x, k, v)
    path = save_request_file("receipt", "income-receipts", x.id)
    if path:
        x.receipt_path = path
    db.session.commit()

    log_activity("update", "income", x.id, old_values=old, new_values=columns(x))
    return ok(income_row(x), message="Income updated successfully")


@bp.delete("/<int:income_id>")
@jwt_required()
def delete_income(income_id: int):
    x = _get(income_id)
    if not x:
        return fail("Income not found", 404)

    entry = _ledger_entry(x)
    if entry is not None:
        bal = float_ledger.current_balance(entry.employee_id)
        if bal < entry.amount:
            raise APIError(
                "INSUFFICIENT_BALANCE",
                "Cannot delete income: Insufficient float balance. You have likely spent these funds. "
                f"Current Balance: {money(bal):.2f}, Required: {money(entry.amount):.2f}",
                status_code=400,
            )
        float_ledger.revert_entry(entry)

    snapshot = columns(x)
    x.deleted_at = datetime.utcnow()
    db.session.commit()

    log_activity("delete", "income", income_id, old_values=snapshot)
    return ok(None, message="Income record deleted successfully")


@bp.put("/<int:income_id>/confirm")
@requires_management
def confirm_income(income_id: int):
    x = _get(income_id)
    if not x:
        return fail("Income not found", 404)
    old_status = x.status
    me = current_employee()
    x.status = "confirmed"
    x.confirmed_by = me.id if me else None
    db.session.commit()

    log_activity("confirm", "income", x.id, old_values={"status": old_status}, new_values={"status": "confirmed"})
    send_notification("Income Confirmed", f"{rupees(x.amount)} income confirmed", "income")
    return ok(income_row(x), message="Income confirmed successfully")


@bp.put("/<int:income_id>/reject")
@requires_management
def reject_income(income_id: int):
    x = _get(income_id)
    if not x:
        return fail("Income not found", 404)
    data = request.get_json(silent=True) or {}
    old_status = x.status
    x.status = "rejected"
    x.notes = data.get("reason") or "Rejected by manager"
    db.session.commit()

    log_activity("reject", "income", x.id, old_values={"status": old_status},
                 new_values={"status": "rejected", "notes": x.notes})
    return ok(income_row(x), message="Income rejected")
