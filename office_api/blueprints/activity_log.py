import csv
import io
import json
from datetime import datetime, date, time

from flask import Blueprint, Response, request
from flask_jwt_extended import jwt_required
from sqlalchemy import func, or_

from office_api.common.auth import requires_management
from office_api.common.http import ok
from office_api.common.paging import paginate, text_q
from office_api.common.serialize import iso
from office_api.common.validate import parse_date
from office_api.extensions import db
from office_api.models.activity import ActivityLog
from office_api.models.employee import Employee

bp = Blueprint("activity_log", __name__, url_prefix="/api/v1/activity-log")

CSV_HEADER = ["Actor", "Action", "Entity Type", "Entity ID", "Old Values", "New Values", "IP Address", "Date"]


def activity_row(x: ActivityLog):
    return {
        "id": x.id,
        "actor_id": x.actor_id,
        "actor": x.actor.brief() if x.actor else None,
        "action_type": x.action_type,
        "entity_type": x.entity_type,
        "entity_id": x.entity_id,
        "entity_code": x.entity_code,
        "description": x.description,
        "old_values": x.old_values,
        "new_values": x.new_values,
        "ip_address": x.ip_address,
        "user_agent": x.user_agent,
        "device_info": x.device_info,
        "created_at": iso(x.created_at),
    }


def _date_window(q, default_from=None, default_to=None):
    """from_date/to_date as whole days on created_at."""
    d_from = parse_date(request.args.get("from_date")) or default_from
    d_to = parse_date(request.args.get("to_date")) or default_to
    if d_from and d_to:
        q = q.filter(
            ActivityLog.created_at >= datetime.combine(d_from, time.min),
            ActivityLog.created_at <= datetime.combine(d_to, time.max),
        )
    return q


@bp.get("")
@jwt_required()
def list_logs():
    q = ActivityLog.query
    for arg in ("entity_type", "action_type"):
        if request.args.get(arg):
            q = q.filter(getattr(ActivityLog, arg) == request.args[arg])
    if request.args.get("actor_id"):
        q = q.filter(ActivityLog.actor_id == request.args.get("actor_id", type=int))
    q = _date_window(q)

    term = text_q()
    if term:
        like = f"%{term.lower()}%"
        q = q.outerjoin(Employee, Employee.id == ActivityLog.actor_id).filter(or_(
            ActivityLog.description.ilike(like),
            ActivityLog.action_type.ilike(like),
            ActivityLog.entity_type.ilike(like),
            Employee.full_name.ilike(like),
        ))

    q = q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    items, meta = paginate(q, default_size=50)
    return ok([activity_row(x) for x in items], **meta)


@bp.get("/summary")
@requires_management
def summary():
    today = date.today()
    q = _date_window(ActivityLog.query, today.replace(day=1), today)
    base = q.subquery()

    by_action = dict(db.session.query(base.c.action_type, func.count()).group_by(base.c.action_type).all())
    by_entity = dict(db.session.query(base.c.entity_type, func.count()).group_by(base.c.entity_type).all())
    actor_counts = db.session.query(base.c.actor_id, func.count()).group_by(base.c.actor_id).all()

    by_actor = {}
    for actor_id, n in actor_counts:
        actor = db.session.get(Employee, actor_id) if actor_id else None
        by_actor[str(actor_id) if actor_id else "system"] = {
            "count": n,
            "actor": actor.brief() if actor else None,
        }

    recent = q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(10).all()
    return ok({
        "total_activities": sum(by_action.values()),
        "by_action": by_action,
        "by_entity": by_entity,
        "by_actor": by_actor,
        "recent_activities": [activity_row(x) for x in recent],
    })


@bp.get("/entity/<string:entity_type>/<int:entity_id>")
@jwt_required()
def entity_history(entity_type, entity_id):
    q = (
        ActivityLog.query.filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    )
    items, meta = paginate(q)
    return ok([activity_row(x) for x in items], **meta)


@bp.get("/user/<int:actor_id>")
@jwt_required()
def user_activities(actor_id):
    q = _date_window(ActivityLog.query.filter_by(actor_id=actor_id))
    q = q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    items, meta = paginate(q)
    return ok([activity_row(x) for x in items], **meta)


def _json_cell(v):
    return json.dumps(v, default=str) if v else ""


@bp.get("/export")
@requires_management
def export_csv():
    q = ActivityLog.query
    if request.args.get("entity_type"):
        q = q.filter(ActivityLog.entity_type == request.args["entity_type"])
    q = _date_window(q).order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())

    buf = io.StringIO()
    w = csv.writer(buf, quoting=csv.QUOTE_ALL)
    w.writerow(CSV_HEADER)
    for x in q.all():
        w.writerow([
            x.actor.full_name if x.actor else "System",
            x.action_type,
            x.entity_type,
            x.entity_id if x.entity_id is not None else "",
            _json_cell(x.old_values),
            _json_cell(x.new_values),
            x.ip_address or "",
            x.created_at.strftime("%Y-%m-%d %H:%M:%S") if x.created_at else "",
        ])
    return Response(
        buf.getvalue(),
        mimetype="text/csv",
        headers={"Content-Disposition": 'attachment; filename="activity-log.csv"'},
    )
