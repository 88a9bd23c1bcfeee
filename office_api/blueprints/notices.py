from datetime import date

from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from office_api.common.auth import current_user, requires_management
from office_api.common.http import ok, fail
from office_api.common.paging import paginate, text_q, apply_search
from office_api.common.serialize import iso, columns
from office_api.common.validate import Checker, as_bool
from office_api.extensions import db
from office_api.models.notice import Notice, NOTICE_TYPES
from office_api.services.activity import log_activity
from office_api.services.notifier import send_notification

bp = Blueprint("notices", __name__, url_prefix="/api/v1/notices")


def notice_row(n: Notice):
    return {
        "id": n.id,
        "title": n.title,
        "content": n.content,
        "type": n.type,
        "is_important": bool(n.is_important),
        "audience": n.audience,
        "date": iso(n.date),
        "created_by": n.created_by,
        "author": n.author.full_name if n.author else None,
        "created_at": iso(n.created_at),
    }


def _rules(data, partial=False):
    return (
        Checker(data, partial=partial)
        .string("title", required=True, max_len=255)
        .string("content", required=True)
        .choice("type", NOTICE_TYPES)
        .boolean("is_important")
        .string("audience", max_len=50)
        .date("date")
        .done()
    )


@bp.get("")
@jwt_required()
def list_notices():
    q = Notice.query
    if request.args.get("audience"):
        q = q.filter(Notice.audience.in_((request.args["audience"], "all")))
    important = as_bool(request.args.get("is_important"))
    if important is not None:
        q = q.filter(Notice.is_important.is_(important))
    q = apply_search(q, text_q(), Notice.title, Notice.content)
    q = q.order_by(Notice.date.desc(), Notice.id.desc())
    items, meta = paginate(q)
    return ok([notice_row(n) for n in items], **meta)


@bp.post("")
@requires_management
def create_notice():
    clean = _rules(request.get_json(silent=True) or {})
    user = current_user()
    n = Notice(
        title=clean["title"],
        content=clean["content"],
        type=clean.get("type") or "general",
        is_important=bool(clean.get("is_important")),
        audience=clean.get("audience") or "all",
        date=clean.get("date") or date.today(),
        created_by=user.id if user else None,
    )
    db.session.add(n)
    db.session.commit()

    log_activity("create", "notice", n.id, new_values=columns(n))
    prefix = "Important: " if n.is_important else ""
    send_notification(f"{prefix}{n.title}", n.content[:180], "notice")
    return ok(notice_row(n), 201, message="Notice created successfully")


@bp.get("/<int:notice_id>")
@jwt_required()
def show_notice(notice_id: int):
    n = db.session.get(Notice, notice_id)
    if n is None:
        return fail("Notice not found", 404)
    return ok(notice_row(n))


@bp.put("/<int:notice_id>")
@requires_management
def update_notice(notice_id: int):
    n = db.session.get(Notice, notice_id)
    if n is None:
        return fail("Notice not found", 404)

    clean = _rules(request.get_json(silent=True) or {}, partial=True)
    old = columns(n)
    for k, v in clean.items():
        if v is not None:
            setattr(n, k, v)
    db.session.commit()

    log_activity("update", "notice", n.id, old_values=old, new_values=columns(n))
    return ok(notice_row(n), message="Notice updated successfully")


@bp.delete("/<int:notice_id>")
@requires_management
def delete_notice(notice_id: int):
    n = db.session.get(Notice, notice_id)
    if n is None:
        return fail("Notice not found", 404)
    snapshot = columns(n)
    db.session.delete(n)
    db.session.commit()
    log_activity("delete", "notice", notice_id, old_values=snapshot)
    return ok(None, message="Notice deleted successfully")
