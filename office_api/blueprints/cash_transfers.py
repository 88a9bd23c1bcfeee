from datetime import datetime

from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from office_api.common.auth import current_user, current_employee
from office_api.common.errors import APIError
from office_api.common.http import ok, fail
from office_api.common.paging import paginate
from office_api.common.serialize import money, iso, rupees
from office_api.common.validate import Checker, parse_date
from office_api.extensions import db
from office_api.models.employee import Employee
from office_api.models.finance import CashTransfer
from office_api.services import float_ledger
from office_api.services.activity import log_activity
from office_api.services.notifier import notify_user

bp = Blueprint("cash_transfers", __name__, url_prefix="/api/v1/cash-transfers")

REF_OUT = "transfer_out"
REF_IN = "transfer_in"


def transfer_row(t: CashTransfer):
    return {
        "id": t.id,
        "sender_id": t.sender_id,
        "receiver_id": t.receiver_id,
        "sender": t.sender.brief() if t.sender else None,
        "receiver": t.receiver.brief() if t.receiver else None,
        "amount": money(t.amount),
        "transfer_date": iso(t.transfer_date),
        "notes": t.notes,
        "created_by": t.created_by,
        "created_at": iso(t.created_at),
        "updated_at": iso(t.updated_at),
    }


def _write_ledger(t: CashTransfer, created_by=None):
    float_ledger.record(
        t.sender_id, "deduct", t.amount,
        reference_type=REF_OUT, reference_id=t.id,
        description=f"Transfer to {t.receiver.full_name}",
        created_by=created_by, on_date=t.transfer_date,
    )
    float_ledger.record(
        t.receiver_id, "add", t.amount,
        reference_type=REF_IN, reference_id=t.id,
        description=f"Transfer from {t.sender.full_name}",
        created_by=created_by, on_date=t.transfer_date,
    )


def _receiver_can_return(t: CashTransfer, action: str):
    bal = float_ledger.current_balance(t.receiver_id)
    if bal < t.amount:
        raise APIError(
            "INSUFFICIENT_BALANCE",
            f"Cannot {action} transfer: Receiver ({t.receiver.full_name}) has insufficient funds "
            f"({money(bal):.2f}) to reverse the original amount ({money(t.amount):.2f}).",
            status_code=400,
        )


def _notify_parties(sender: Employee, receiver: Employee, transfer_id: int, amount, kind: str):
    """One notification each for sender and receiver carrying both balances."""
    s_bal = float_ledger.current_balance(sender.id)
    r_bal = float_ledger.current_balance(receiver.id)
    suffix = " (Reversed)" if kind == "deleted" else ""
    titles = {
        "created": ("Cash Received", "Cash Sent"),
        "updated": ("Transfer Updated", "Transfer Updated"),
        "deleted": ("Transfer Deleted", "Transfer Deleted"),
    }[kind]

    notify_user(
        receiver.user, f"{titles[0]}: {rupees(amount)}",
        f"From: {sender.full_name}{suffix}\n"
        f"My Balance: {rupees(r_bal)}\nSender Balance: {rupees(s_bal)}",
        "transfer", "cash_transfer", transfer_id,
        {"transfer_id": transfer_id, "event": f"cash_transfer_{kind}", "amount": money(amount)},
    )
    notify_user(
        sender.user, f"{titles[1]}: {rupees(amount)}",
        f"To: {receiver.full_name}{suffix}\n"
        f"My Balance: {rupees(s_bal)}\nReceiver Balance: {rupees(r_bal)}",
        "transfer", "cash_transfer", transfer_id,
        {"transfer_id": transfer_id, "event": f"cash_transfer_{kind}", "amount": money(amount)},
    )


# ---------- endpoints ----------

@bp.get("")
@jwt_required()
def list_transfers():
    q = CashTransfer.query
    emp_id = request.args.get("employee_id", type=int)
    if emp_id:
        q = q.filter((CashTransfer.sender_id == emp_id) | (CashTransfer.receiver_id == emp_id))
    d_from = parse_date(request.args.get("from_date"))
    d_to = parse_date(request.args.get("to_date"))
    if d_from and d_to:
        q = q.filter(CashTransfer.transfer_date.between(d_from, d_to))
    q = q.order_by(CashTransfer.transfer_date.desc(), CashTransfer.created_at.desc(), CashTransfer.id.desc())
    items, meta = paginate(q)
    return ok([transfer_row(t) for t in items], **meta)


@bp.post("")
@jwt_required()
def create_transfer():
    data = request.get_json(silent=True) or {}
    chk = (
        Checker(data)
        .exists("receiver_id", Employee, required=True)
        .number("amount", required=True, min_value="0.01")
        .date("transfer_date", required=True)
        .string("notes")
    )
    sender = current_employee()
    if sender and chk.clean.get("receiver_id") == sender.id:
        chk.error("receiver_id", "The receiver must be different from the sender.")
    clean = chk.done()

    if sender is None:
        return fail("User is not linked to an employee record.", 400)
    float_ledger.ensure_balance(sender.id, clean["amount"])

    user = current_user()
    t = CashTransfer(
        sender_id=sender.id,
        receiver_id=clean["receiver_id"],
        amount=clean["amount"],
        transfer_date=clean["transfer_date"],
        notes=clean.get("notes"),
        created_by=user.id if user else None,
    )
    db.session.add(t)
    db.session.flush()
    _write_ledger(t, created_by=t.created_by)
    db.session.commit()

    log_activity("create", "cash_transfer", t.id, new_values=transfer_row(t),
                 description=f"Transfer of {rupees(t.amount)} to {t.receiver.full_name}")
    _notify_parties(t.sender, t.receiver, t.id, t.amount, "created")
    return ok(transfer_row(t), 201, message="Transfer successful")


@bp.get("/<int:transfer_id>")
@jwt_required()
def get_transfer(transfer_id: int):
    t = db.session.get(CashTransfer, transfer_id)
    if not t:
        return fail("Transfer not found", 404)
    return ok(transfer_row(t))


@bp.put("/<int:transfer_id>")
@jwt_required()
def update_transfer(transfer_id: int):
    t = db.session.get(CashTransfer, transfer_id)
    if not t:
        return fail("Transfer not found", 404)

    data = request.get_json(silent=True) or {}
    clean = (
        Checker(data, partial=True)
        .exists("receiver_id", Employee)
        .number("amount", min_value="0.01")
        .date("transfer_date")
        .string("notes")
        .done()
    )
    old = transfer_row(t)

    new_amount = clean.get("amount")
    new_receiver = clean.get("receiver_id")
    financial = (
        (new_amount is not None and new_amount != t.amount)
        or (new_receiver is not None and new_receiver != t.receiver_id)
    )

    if financial:
        if new_receiver is not None and new_receiver == t.sender_id:
            return fail("Validation failed", 422,
                        errors={"receiver_id": ["The receiver must be different from the sender."]})
        _receiver_can_return(t, "update")
        float_ledger.revert_reference((REF_OUT, REF_IN), t.id)

        if new_amount is not None:
            t.amount = new_amount
        if new_receiver is not None:
            t.receiver_id = new_receiver
        if clean.get("transfer_date"):
            t.transfer_date = clean["transfer_date"]
        if "notes" in clean:
            t.notes = clean["notes"]
        db.session.flush()
        db.session.refresh(t)

        float_ledger.ensure_balance(t.sender_id, t.amount)
        user = current_user()
        _write_ledger(t, created_by=user.id if user else None)
    else:
        if clean.get("transfer_date"):
            t.transfer_date = clean["transfer_date"]
        if "notes" in clean:
            t.notes = clean["notes"]
    t.updated_at = datetime.utcnow()
    db.session.commit()

    log_activity("update", "cash_transfer", t.id, old_values=old, new_values=transfer_row(t))
    if financial:
        _notify_parties(t.sender, t.receiver, t.id, t.amount, "updated")
    return ok(transfer_row(t), message="Transfer updated successfully")


@bp.delete("/<int:transfer_id>")
@jwt_required()
def delete_transfer(transfer_id: int):
    t = db.session.get(CashTransfer, transfer_id)
    if not t:
        return fail("Transfer not found", 404)

    _receiver_can_return(t, "delete")
    snapshot = transfer_row(t)
    float_ledger.revert_reference((REF_OUT, REF_IN), t.id)
    db.session.delete(t)
    db.session.commit()

    log_activity("delete", "cash_transfer", transfer_id, old_values=snapshot)
    sender = db.session.get(Employee, snapshot["sender_id"])
    receiver = db.session.get(Employee, snapshot["receiver_id"])
    if sender and receiver:
        _notify_parties(sender, receiver, transfer_id, snapshot["amount"], "deleted")
    return ok(None, message="Transfer deleted and reversed successfully")
