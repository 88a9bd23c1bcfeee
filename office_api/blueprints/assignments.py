from datetime import datetime

from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from office_api.common.auth import current_employee
from office_api.common.http import ok, fail
from office_api.common.paging import paginate
from office_api.common.validate import Checker
from office_api.extensions import db
from office_api.models.task import Task, TaskAssignment, ASSIGNMENT_STATUSES
from office_api.blueprints.tasks import assignment_row
from office_api.services.activity import log_activity
from office_api.services.notifier import notify_user

bp = Blueprint("assignments", __name__, url_prefix="/api/v1/assignments")
my_bp = Blueprint("my_assignments", __name__, url_prefix="/api/v1/my-assignments")


def _live_assignments():
    return TaskAssignment.query.join(Task, TaskAssignment.task_id == Task.id).filter(Task.deleted_at.is_(None))


def _own_pending(assignment_id):
    """(assignment, None) or (None, error response) for the caller's pending assignment."""
    a = db.session.get(TaskAssignment, assignment_id)
    if a is None:
        return None, fail("Assignment not found", 404)
    me = current_employee()
    if me is None or a.assigned_to != me.id:
        return None, fail("Unauthorized", 403)
    if a.assignment_status != "pending":
        return None, fail(f"Assignment already {a.assignment_status}", 422)
    return a, None


def _tell_creator(a: TaskAssignment, title: str, message: str, event: str):
    task = a.task
    if task is None or task.creator is None:
        return
    notify_user(task.creator.user, title, message, "task", "task", task.id,
                {"event": event, "task_id": task.id, "assignment_id": a.id,
                 "assignee": a.assignee.full_name if a.assignee else None})


@bp.get("")
@jwt_required()
def list_assignments():
    q = _live_assignments()
    if request.args.get("task_id"):
        q = q.filter(TaskAssignment.task_id == request.args.get("task_id", type=int))
    if request.args.get("assigned_to"):
        q = q.filter(TaskAssignment.assigned_to == request.args.get("assigned_to", type=int))
    if request.args.get("status") in ASSIGNMENT_STATUSES:
        q = q.filter(TaskAssignment.assignment_status == request.args["status"])
    q = q.order_by(TaskAssignment.created_at.desc(), TaskAssignment.id.desc())
    items, meta = paginate(q, max_size=50)
    return ok([assignment_row(a, with_task=True) for a in items], **meta)


@bp.get("/my")
@my_bp.get("")
@jwt_required()
def my_assignments():
    me = current_employee()
    if me is None:
        return fail("No employee record found for this user.", 404)
    q = _live_assignments().filter(TaskAssignment.assigned_to == me.id)
    if request.args.get("status"):
        q = q.filter(TaskAssignment.assignment_status == request.args["status"])
    if request.args.get("task_status"):
        q = q.filter(Task.status == request.args["task_status"])
    q = q.order_by(Task.deadline.asc(), TaskAssignment.id.desc())
    items, meta = paginate(q, max_size=50)
    return ok([assignment_row(a, with_task=True) for a in items], **meta)


@bp.put("/<int:assignment_id>/accept")
@jwt_required()
def accept_assignment(assignment_id: int):
    a, err = _own_pending(assignment_id)
    if err:
        return err
    a.assignment_status = "accepted"
    a.response_date = datetime.utcnow()
    db.session.commit()

    log_activity("accept", "task_assignment", a.id, old_values={"assignment_status": "pending"},
                 new_values={"assignment_status": "accepted"})
    _tell_creator(a, "Task Accepted", f"{a.assignee.full_name} accepted: {a.task.title}", "assignment_accepted")
    return ok(assignment_row(a, with_task=True), message="Assignment accepted")


@bp.put("/<int:assignment_id>/reject")
@jwt_required()
def reject_assignment(assignment_id: int):
    a, err = _own_pending(assignment_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    a.assignment_status = "rejected"
    a.response_date = datetime.utcnow()
    if data.get("reason"):
        a.notes = str(data["reason"]).strip()
    db.session.commit()

    log_activity("reject", "task_assignment", a.id, old_values={"assignment_status": "pending"},
                 new_values={"assignment_status": "rejected", "notes": a.notes})
    _tell_creator(a, "Task Rejected", f"{a.assignee.full_name} rejected: {a.task.title}", "assignment_rejected")
    return ok(assignment_row(a, with_task=True), message="Assignment rejected")


@bp.put("/<int:assignment_id>/time")
@jwt_required()
def update_time(assignment_id: int):
    a = db.session.get(TaskAssignment, assignment_id)
    if a is None:
        return fail("Assignment not found", 404)

    clean = (
        Checker(request.get_json(silent=True) or {})
        .number("actual_hours", required=True, min_value=0, digits=6)
        .number("estimated_hours", min_value=0, digits=6)
        .done()
    )
    old = {"actual_hours": a.actual_hours, "estimated_hours": a.estimated_hours}
    a.actual_hours = clean["actual_hours"]
    if clean.get("estimated_hours") is not None:
        a.estimated_hours = clean["estimated_hours"]
    db.session.commit()

    log_activity("update_time", "task_assignment", a.id,
                 old_values={k: str(v) if v is not None else None for k, v in old.items()},
                 new_values={"actual_hours": str(a.actual_hours),
                             "estimated_hours": str(a.estimated_hours) if a.estimated_hours is not None else None})
    _tell_creator(a, "Time Logged", f"{a.actual_hours}h logged on {a.task.title}", "assignment_time")
    return ok(assignment_row(a), message="Time tracking updated")
