from datetime import datetime, date

from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from sqlalchemy import or_

from office_api.common.auth import current_employee, is_management, requires_management
from office_api.common.http import ok, fail
from office_api.common.paging import paginate, text_q
from office_api.common.serialize import money, iso, columns
from office_api.common.validate import Checker, as_bool, parse_date
from office_api.extensions import db
from office_api.models.employee import Employee
from office_api.models.task import Task, TaskAssignment, TASK_PRIORITIES, TASK_STATUSES, CLOSED_TASK_STATUSES
from office_api.services.activity import log_activity
from office_api.services.mailer import send_template
from office_api.services.notifier import notify_user, send_notification

bp = Blueprint("tasks", __name__, url_prefix="/api/v1/tasks")


# ---------- serializers ----------

def assignment_row(a: TaskAssignment, with_task=False):
    out = {
        "id": a.id,
        "task_id": a.task_id,
        "assigned_to": a.assigned_to,
        "assignee": a.assignee.brief() if a.assignee else None,
        "assigned_by": a.assigned_by,
        "assignment_status": a.assignment_status,
        "response_date": iso(a.response_date),
        "progress_percentage": a.progress_percentage or 0,
        "actual_start_date": iso(a.actual_start_date),
        "expected_completion_date": iso(a.expected_completion_date),
        "estimated_hours": float(a.estimated_hours) if a.estimated_hours is not None else None,
        "actual_hours": float(a.actual_hours) if a.actual_hours is not None else None,
        "notes": a.notes,
        "created_at": iso(a.created_at),
    }
    if with_task and a.task is not None:
        out["task"] = task_row(a.task, with_assignments=False)
    return out


def task_row(t: Task, with_assignments=True):
    out = {
        "id": t.id,
        "task_code": t.task_code,
        "title": t.title,
        "description": t.description,
        "priority": t.priority,
        "category": t.category,
        "status": t.status,
        "budget_required": money(t.budget_required) if t.budget_required is not None else None,
        "budget_used": money(t.budget_used),
        "materials_needed": t.materials_needed,
        "documents_needed": t.documents_needed,
        "start_date": iso(t.start_date),
        "deadline": iso(t.deadline),
        "completed_date": iso(t.completed_date),
        "created_by": t.created_by,
        "creator": t.creator.brief() if t.creator else None,
        "is_overdue": t.is_overdue,
        "progress": t.progress,
        "created_at": iso(t.created_at),
    }
    if with_assignments:
        out["assignments"] = [assignment_row(a) for a in t.assignments]
    return out


def get_task(task_id):
    t = db.session.get(Task, task_id)
    if t is None or t.deleted_at is not None:
        return None
    return t


def _assign(task: Task, employee_ids, assigned_by=None, estimated_hours=None):
    """Pending assignments for employees not yet on the task; returns the new rows."""
    have = set(task.assignee_ids())
    added = []
    for emp_id in employee_ids:
        if emp_id in have:
            continue
        a = TaskAssignment(task=task, assigned_to=emp_id, assigned_by=assigned_by,
                           assignment_status="pending", estimated_hours=estimated_hours)
        db.session.add(a)
        added.append(a)
        have.add(emp_id)
    if added and task.status == "new":
        task.status = "assigned"
    db.session.flush()
    return added


def _tell_assignees(task: Task, rows, assigner_name=None):
    for a in rows:
        emp = a.assignee or db.session.get(Employee, a.assigned_to)
        if emp is None:
            continue
        if emp.email:
            send_template(emp.email, "task_assigned", name=emp.full_name, code=task.task_code,
                          title=task.title, priority=task.priority, deadline=iso(task.deadline))
        notify_user(emp.user, "Task Assigned", f"You have been assigned: {task.title}", "task", "task", task.id,
                    {"event": "task_assigned", "task_id": task.id, "assigned_by": assigner_name,
                     "deadline": iso(task.deadline), "priority": task.priority})


def _tell_people(task: Task, title: str, message: str, event: str, include_creator=True):
    seen = set()
    people = [a.assignee for a in task.assignments]
    if include_creator:
        people.append(task.creator)
    for emp in people:
        if emp is None or emp.user is None or emp.user.id in seen:
            continue
        seen.add(emp.user.id)
        notify_user(emp.user, title, message, "task", "task", task.id,
                    {"event": event, "task_id": task.id, "status": task.status})


# ---------- endpoints ----------

@bp.get("")
@jwt_required()
def list_tasks():
    q = Task.alive()
    for arg in ("status", "priority", "category"):
        if request.args.get(arg):
            q = q.filter(getattr(Task, arg) == request.args[arg])
    term = text_q()
    if term:
        like = f"%{term}%"
        q = q.filter(or_(Task.title.ilike(like), Task.description.ilike(like), Task.task_code.ilike(like)))
    d_from = parse_date(request.args.get("from_date"))
    d_to = parse_date(request.args.get("to_date"))
    if d_from and d_to:
        q = q.filter(Task.deadline.between(d_from, d_to))
    if as_bool(request.args.get("overdue")):
        q = q.filter(Task.deadline < date.today(), Task.status.notin_(CLOSED_TASK_STATUSES))
    if request.args.get("assigned_to"):
        emp_id = request.args.get("assigned_to", type=int)
        q = q.filter(Task.assignments.any(TaskAssignment.assigned_to == emp_id))

    q = q.order_by(Task.deadline.asc(), Task.id.asc())
    items, meta = paginate(q, max_size=50)
    return ok([task_row(t) for t in items], **meta)


@bp.post("")
@jwt_required()
def create_task():
    data = request.get_json(silent=True) or {}
    clean = (
        Checker(data)
        .string("title", required=True, max_len=255)
        .string("description")
        .choice("priority", TASK_PRIORITIES, required=True)
        .string("category", required=True, max_len=100)
        .date("start_date")
        .date("deadline", required=True)
        .number("budget_required", min_value=0)
        .string("materials_needed")
        .string("documents_needed")
        .id_list("assigned_to", Employee)
        .done()
    )
    me = current_employee()
    assignees = clean.pop("assigned_to", None) or []

    t = Task(
        task_code=Task.generate_code(),
        status="new",
        created_by=me.id if me else None,
        **{k: v for k, v in clean.items() if v is not None},
    )
    db.session.add(t)
    db.session.flush()
    added = _assign(t, assignees, assigned_by=t.created_by)
    db.session.commit()

    log_activity("create", "task", t.id, new_values=columns(t), entity_code=t.task_code)
    send_notification("New Task Created", f"Task: {t.title}", "task")
    _tell_assignees(t, added, me.full_name if me else None)
    return ok(task_row(t), 201, message="Task created successfully")


@bp.get("/<int:task_id>")
@jwt_required()
def show_task(task_id: int):
    t = get_task(task_id)
    if not t:
        return fail("Task not found", 404)
    if t.is_overdue and t.status != "late":
        t.status = "late"
        db.session.commit()
    return ok(task_row(t))


@bp.put("/<int:task_id>")
@jwt_required()
def update_task(task_id: int):
    t = get_task(task_id)
    if not t:
        return fail("Task not found", 404)

    data = request.get_json(silent=True) or {}
    clean = (
        Checker(data, partial=True)
        .string("title", required=True, max_len=255)
        .string("description")
        .choice("priority", TASK_PRIORITIES, required=True)
        .string("category", required=True, max_len=100)
        .date("start_date")
        .date("deadline", required=True)
        .number("budget_required", min_value=0)
        .number("budget_used", min_value=0)
        .string("materials_needed")
        .string("documents_needed")
        .choice("status", TASK_STATUSES, required=True)
        .done()
    )
    old = columns(t)
    for k, v in clean.items():
        if k == "budget_used" and v is None:
            continue
        setattr(t, k, v)
    if clean.get("status") == "completed" and old.get("status") != "completed":
        t.completed_date = datetime.utcnow()
    db.session.commit()

    log_activity("update", "task", t.id, old_values=old, new_values=columns(t), entity_code=t.task_code)
    send_notification("Task Updated", f"Task: {t.title} has been updated", "task")
    _tell_people(t, "Task Updated", f"{t.title} has been updated", "task_updated")
    return ok(task_row(t), message="Task updated successfully")


@bp.delete("/<int:task_id>")
@jwt_required()
def delete_task(task_id: int):
    t = get_task(task_id)
    if not t:
        return fail("Task not found", 404)
    snapshot = columns(t)
    t.deleted_at = datetime.utcnow()
    db.session.commit()
    log_activity("delete", "task", task_id, old_values=snapshot, entity_code=t.task_code)
    return ok(None, message="Task deleted successfully")


@bp.post("/<int:task_id>/assign")
@requires_management
def assign_task(task_id: int):
    t = get_task(task_id)
    if not t:
        return fail("Task not found", 404)

    data = request.get_json(silent=True) or {}
    if "employee_ids" not in data and "assigned_to" in data:
        data = dict(data, employee_ids=data["assigned_to"])
    clean = (
        Checker(data)
        .id_list("employee_ids", Employee, required=True)
        .number("estimated_hours", min_value=0, digits=6)
        .done()
    )
    me = current_employee()
    added = _assign(t, clean["employee_ids"], assigned_by=me.id if me else None,
                    estimated_hours=clean.get("estimated_hours"))
    db.session.commit()

    log_activity("assign", "task", t.id, new_values={"assigned_to": [a.assigned_to for a in added]},
                 entity_code=t.task_code)
    _tell_assignees(t, added, me.full_name if me else None)
    return ok(task_row(t), message="Task assigned successfully")


@bp.put("/<int:task_id>/progress")
@jwt_required()
def update_progress(task_id: int):
    t = get_task(task_id)
    if not t:
        return fail("Task not found", 404)

    data = request.get_json(silent=True) or {}
    clean = (
        Checker(data)
        .integer("progress_percentage", required=True, min_value=0, max_value=100)
        .integer("assignment_id")
        .string("notes")
        .done()
    )
    me = current_employee()
    if me is None:
        return fail("No employee record found for this user.", 404)

    q = TaskAssignment.query.filter_by(task_id=t.id, assigned_to=me.id)
    if clean.get("assignment_id"):
        q = q.filter(TaskAssignment.id == clean["assignment_id"])
    a = q.first()
    if a is None:
        return fail("Assignment not found", 404)

    old_progress = a.progress_percentage or 0
    new_progress = clean["progress_percentage"]
    a.progress_percentage = new_progress
    if "notes" in clean:
        a.notes = clean["notes"]
    if old_progress == 0 and new_progress > 0:
        a.actual_start_date = datetime.utcnow()
        if t.status not in CLOSED_TASK_STATUSES:
            t.status = "in_progress"
    if new_progress == 100:
        live = [x for x in t.assignments if x.assignment_status != "rejected"]
        if live and all((x.progress_percentage or 0) == 100 for x in live):
            t.status = "completed"
            t.completed_date = datetime.utcnow()
    db.session.commit()

    log_activity("update_progress", "task", t.id, old_values={"progress": old_progress},
                 new_values={"progress": new_progress}, entity_code=t.task_code)
    if t.creator is not None:
        notify_user(t.creator.user, "Task Progress Updated", f"{t.title}: {new_progress}%", "task", "task", t.id,
                    {"event": "task_progress", "task_id": t.id, "progress": new_progress,
                     "assignee": me.full_name})
    return ok(assignment_row(a), message="Progress updated successfully")


@bp.put("/<int:task_id>/complete")
@jwt_required()
def complete_task(task_id: int):
    t = get_task(task_id)
    if not t:
        return fail("Task not found", 404)

    me = current_employee()
    allowed = is_management() or (
        me is not None and (t.created_by == me.id or me.id in t.assignee_ids())
    )
    if not allowed:
        return fail("Unauthorized to complete this task", 403)

    t.status = "completed"
    t.completed_date = datetime.utcnow()
    db.session.commit()

    log_activity("complete", "task", t.id, new_values={"status": "completed"}, entity_code=t.task_code)
    send_notification("Task Completed", f"{t.title} has been completed", "task")
    _tell_people(t, "Task Completed", f"{t.title} has been completed", "task_completed")
    return ok(task_row(t), message="Task marked as completed")
