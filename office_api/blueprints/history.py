"""
Unified money history: income, expense and transfer rows in one
date-ordered, paginated list with totals over the whole filtered set.
"""
import math

from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from sqlalchemy import String, case, cast, false, func, literal, null, or_, select, union_all

from office_api.common.http import ok
from office_api.common.paging import page_limit, text_q
from office_api.common.serialize import money, iso
from office_api.common.validate import parse_date
from office_api.extensions import db
from office_api.models.employee import Employee
from office_api.models.finance import Income, Expense, CashTransfer

bp = Blueprint("history", __name__, url_prefix="/api/v1/history")


def _income_select():
    return select(
        Income.id.label("id"),
        Income.amount.label("amount"),
        Income.income_date.label("date"),
        Income.created_at.label("created_at"),
        literal("income").label("type"),
        Income.description.label("description"),
        Income.category.label("category"),
        Income.status.label("status"),
        Income.employee_id.label("user_id"),
        cast(null(), db.Integer).label("receiver_id"),
        Income.source_type.label("source_type"),
        Income.income_type.label("sub_type"),
    ).where(Income.deleted_at.is_(None))


def _expense_select():
    return select(
        Expense.id.label("id"),
        Expense.amount.label("amount"),
        Expense.expense_date.label("date"),
        Expense.created_at.label("created_at"),
        literal("expense").label("type"),
        Expense.description.label("description"),
        Expense.category.label("category"),
        Expense.status.label("status"),
        Expense.employee_id.label("user_id"),
        cast(null(), db.Integer).label("receiver_id"),
        cast(null(), String).label("source_type"),
        Expense.expense_type.label("sub_type"),
    ).where(Expense.deleted_at.is_(None))


def _transfer_select():
    return select(
        CashTransfer.id.label("id"),
        CashTransfer.amount.label("amount"),
        CashTransfer.transfer_date.label("date"),
        CashTransfer.created_at.label("created_at"),
        literal("transfer").label("type"),
        CashTransfer.notes.label("description"),
        literal("Transfer").label("category"),
        literal("completed").label("status"),
        CashTransfer.sender_id.label("user_id"),
        CashTransfer.receiver_id.label("receiver_id"),
        cast(null(), String).label("source_type"),
        literal("transfer").label("sub_type"),
    )


def _filtered_union():
    inc, exp, tr = _income_select(), _expense_select(), _transfer_select()

    d_from = parse_date(request.args.get("from_date"))
    d_to = parse_date(request.args.get("to_date"))
    if d_from and d_to:
        inc = inc.where(Income.income_date.between(d_from, d_to))
        exp = exp.where(Expense.expense_date.between(d_from, d_to))
        tr = tr.where(CashTransfer.transfer_date.between(d_from, d_to))

    emp_id = request.args.get("employee_id", type=int)
    if emp_id:
        inc = inc.where(Income.employee_id == emp_id)
        exp = exp.where(Expense.employee_id == emp_id)
        tr = tr.where(or_(CashTransfer.sender_id == emp_id, CashTransfer.receiver_id == emp_id))

    kind = request.args.get("type")
    if kind == "office":
        inc = inc.where(Income.source_type == "institute")
        exp = exp.where(Expense.expense_type == "institute")
    elif kind == "personal":
        inc = inc.where(Income.source_type != "institute")
        exp = exp.where(Expense.expense_type == "personal")
        tr = tr.where(false())

    record_type = request.args.get("record_type")
    if record_type in ("income", "expense", "transfer"):
        if record_type != "income":
            inc = inc.where(false())
        if record_type != "expense":
            exp = exp.where(false())
        if record_type != "transfer":
            tr = tr.where(false())

    term = text_q()
    if term:
        like = f"%{term}%"
        inc = inc.where(or_(Income.description.ilike(like), Income.category.ilike(like),
                            cast(Income.amount, String).ilike(like)))
        exp = exp.where(or_(Expense.description.ilike(like), Expense.category.ilike(like),
                            cast(Expense.amount, String).ilike(like)))
        tr = tr.where(or_(CashTransfer.notes.ilike(like), cast(CashTransfer.amount, String).ilike(like)))

    return union_all(inc, exp, tr).subquery("history")


def _person(emp):
    if emp is None:
        return None
    return {"id": emp.id, "full_name": emp.full_name, "first_name": (emp.full_name or "").split(" ")[0]}


@bp.get("")
@jwt_required()
def history():
    page, size = page_limit()
    sub = _filtered_union()

    total = db.session.execute(select(func.count()).select_from(sub)).scalar() or 0
    sums = db.session.execute(select(
        func.coalesce(func.sum(case((sub.c.type == "income", sub.c.amount), else_=0)), 0),
        func.coalesce(func.sum(case((sub.c.type == "expense", sub.c.amount), else_=0)), 0),
        func.coalesce(func.sum(case((sub.c.type == "transfer", sub.c.amount), else_=0)), 0),
    )).one()

    rows = db.session.execute(
        select(sub)
        .order_by(sub.c.date.desc(), sub.c.created_at.desc())
        .limit(size)
        .offset((page - 1) * size)
    ).mappings().all()

    ids = {r["user_id"] for r in rows if r["user_id"]} | {r["receiver_id"] for r in rows if r["receiver_id"]}
    people = {e.id: e for e in Employee.query.filter(Employee.id.in_(ids)).all()} if ids else {}

    data = []
    for r in rows:
        owner = people.get(r["user_id"])
        receiver = people.get(r["receiver_id"])
        title = r["description"]
        if r["type"] == "transfer":
            title = f"Transfer to {receiver.full_name if receiver else 'Unknown'}"
        data.append({
            "id": r["id"],
            "type": r["type"],
            "amount": money(r["amount"]),
            "date": iso(r["date"]),
            "created_at": iso(r["created_at"]),
            "category": r["category"],
            "description": r["description"],
            "title": title,
            "status": r["status"],
            "source_type": r["source_type"],
            "sub_type": r["sub_type"],
            "employee": _person(owner),
            "sender": _person(owner) if r["type"] == "transfer" else None,
            "receiver": _person(receiver),
        })

    income, expense, transfer = (money(v) for v in sums)
    return ok(
        data,
        page=page,
        per_page=size,
        total=total,
        last_page=max(1, math.ceil(total / size)),
        totals={
            "income": income,
            "expense": expense,
            "transfer": transfer,
            "balance": money(income - expense),
        },
    )
