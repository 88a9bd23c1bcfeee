"""
Work an employee logs on their own (outside assigned tasks), verified by
management. Attachments arrive as multipart uploads under `attachment`.
"""
from datetime import datetime, date

from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from sqlalchemy import func

from office_api.common.auth import current_employee, is_management, requires_management
from office_api.common.http import ok, fail
from office_api.common.paging import paginate
from office_api.common.serialize import iso, columns
from office_api.common.validate import Checker, parse_date
from office_api.extensions import db
from office_api.models.task import SelfLoggedWork, VERIFICATION_STATUSES
from office_api.services.activity import log_activity
from office_api.services.notifier import notify_user, send_notification
from office_api.services.uploads import request_data, save_request_file

bp = Blueprint("self_logged_work", __name__, url_prefix="/api/v1/self-logged-work")
my_bp = Blueprint("my_work", __name__, url_prefix="/api/v1/my-work")

UPLOAD_FOLDER = "work-attachments"
VERDICT_ACTIONS = {"approved": "approve", "rejected": "reject"}


def work_row(w: SelfLoggedWork):
    return {
        "id": w.id,
        "employee_id": w.employee_id,
        "employee": w.employee.brief() if w.employee else None,
        "work_title": w.work_title,
        "description": w.description,
        "time_spent_hours": float(w.time_spent_hours) if w.time_spent_hours is not None else None,
        "work_date": iso(w.work_date),
        "attachment_path": w.attachment_path,
        "verification_status": w.verification_status,
        "verified_by": w.verified_by,
        "verifier": w.verifier.brief() if w.verifier else None,
        "verification_notes": w.verification_notes,
        "verified_at": iso(w.verified_at),
        "created_at": iso(w.created_at),
    }


def _rules(data, partial=False):
    return (
        Checker(data, partial=partial)
        .string("work_title", required=True, max_len=255)
        .string("description", required=True)
        .number("time_spent_hours", required=True, min_value="0.5", max_value=24, digits=5)
        .date("work_date", required=True, not_after=date.today())
    )


def _filtered(q):
    if request.args.get("status") in VERIFICATION_STATUSES:
        q = q.filter(SelfLoggedWork.verification_status == request.args["status"])
    d_from = parse_date(request.args.get("from_date"))
    d_to = parse_date(request.args.get("to_date"))
    if d_from and d_to:
        q = q.filter(SelfLoggedWork.work_date.between(d_from, d_to))
    return q.order_by(SelfLoggedWork.work_date.desc(), SelfLoggedWork.id.desc())


def _tell_owner(w: SelfLoggedWork, verdict: str):
    if w.employee is None:
        return
    notify_user(w.employee.user, f"Work {verdict.capitalize()}", f"Your work '{w.work_title}' was {verdict}",
                "work", "self_logged_work", w.id,
                {"event": f"work_{verdict}", "work_id": w.id, "notes": w.verification_notes})


@bp.get("")
@jwt_required()
def list_work():
    q = SelfLoggedWork.query
    if request.args.get("employee_id"):
        q = q.filter(SelfLoggedWork.employee_id == request.args.get("employee_id", type=int))
    items, meta = paginate(_filtered(q), max_size=50)
    return ok([work_row(w) for w in items], **meta)


@bp.post("")
@jwt_required()
def create_work():
    me = current_employee()
    if me is None:
        return fail("No employee record found for this user.", 404)

    clean = _rules(request_data()).done()
    w = SelfLoggedWork(employee_id=me.id, verification_status="pending", **clean)
    db.session.add(w)
    db.session.flush()
    path = save_request_file("attachment", UPLOAD_FOLDER, me.id)
    if path:
        w.attachment_path = path
    db.session.commit()

    log_activity("create", "self_logged_work", w.id, new_values=columns(w))
    send_notification("Work Logged", f"{me.full_name} logged {w.time_spent_hours}h: {w.work_title}", "work")
    return ok(work_row(w), 201, message="Work logged successfully")


@bp.get("/<int:work_id>")
@jwt_required()
def show_work(work_id: int):
    w = db.session.get(SelfLoggedWork, work_id)
    if w is None:
        return fail("Work log not found", 404)
    return ok(work_row(w))


@bp.put("/<int:work_id>")
@jwt_required()
def update_work(work_id: int):
    w = db.session.get(SelfLoggedWork, work_id)
    if w is None:
        return fail("Work log not found", 404)
    me = current_employee()
    if me is None or w.employee_id != me.id:
        return fail("Unauthorized", 403)
    if w.verification_status != "pending":
        return fail("Only pending work can be updated", 422)

    clean = _rules(request_data(), partial=True).done()
    old = columns(w)
    for k, v in clean.items():
        if v is not None:
            setattr(w, k, v)
    path = save_request_file("attachment", UPLOAD_FOLDER, me.id)
    if path:
        w.attachment_path = path
    db.session.commit()

    log_activity("update", "self_logged_work", w.id, old_values=old, new_values=columns(w))
    return ok(work_row(w), message="Work log updated successfully")


@bp.delete("/<int:work_id>")
@jwt_required()
def delete_work(work_id: int):
    w = db.session.get(SelfLoggedWork, work_id)
    if w is None:
        return fail("Work log not found", 404)
    me = current_employee()
    if not (is_management() or (me is not None and w.employee_id == me.id)):
        return fail("Unauthorized", 403)

    snapshot = columns(w)
    db.session.delete(w)
    db.session.commit()
    log_activity("delete", "self_logged_work", work_id, old_values=snapshot)
    return ok(None, message="Work log deleted successfully")


def _verify(work_id: int, verdict: str, notes):
    w = db.session.get(SelfLoggedWork, work_id)
    if w is None:
        return fail("Work log not found", 404)
    if w.verification_status != "pending":
        return fail(f"Work log already {w.verification_status}", 422)

    me = current_employee()
    w.verification_status = verdict
    w.verified_by = me.id if me else None
    w.verified_at = datetime.utcnow()
    w.verification_notes = notes
    db.session.commit()

    log_activity(VERDICT_ACTIONS[verdict], "self_logged_work", w.id,
                 old_values={"verification_status": "pending"},
                 new_values={"verification_status": verdict, "verification_notes": notes})
    _tell_owner(w, verdict)
    return ok(work_row(w), message=f"Work {verdict}")


@bp.put("/<int:work_id>/approve")
@requires_management
def approve_work(work_id: int):
    data = request.get_json(silent=True) or {}
    return _verify(work_id, "approved", data.get("notes"))


@bp.put("/<int:work_id>/reject")
@requires_management
def reject_work(work_id: int):
    clean = Checker(request.get_json(silent=True) or {}).string("reason", required=True).done()
    return _verify(work_id, "rejected", clean["reason"])


@my_bp.get("")
@jwt_required()
def my_work():
    me = current_employee()
    if me is None:
        return fail("No employee record found for this user.", 404)

    q = _filtered(SelfLoggedWork.query.filter(SelfLoggedWork.employee_id == me.id))
    items, meta = paginate(q, max_size=50)
    approved = (
        db.session.query(func.coalesce(func.sum(SelfLoggedWork.time_spent_hours), 0))
        .filter(SelfLoggedWork.employee_id == me.id, SelfLoggedWork.verification_status == "approved")
        .scalar()
    )
    return ok([work_row(w) for w in items], total_approved_hours=float(approved or 0), **meta)
