from datetime import datetime

from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from office_api.common.auth import current_user
from office_api.common.http import ok, fail
from office_api.common.paging import paginate
from office_api.common.serialize import iso
from office_api.common.validate import as_bool
from office_api.extensions import db
from office_api.models.notice import Notification

bp = Blueprint("notifications", __name__, url_prefix="/api/v1/notifications")


def notification_row(n: Notification):
    return {
        "id": n.id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "reference_type": n.reference_type,
        "reference_id": n.reference_id,
        "is_read": bool(n.is_read),
        "read_at": iso(n.read_at),
        "created_at": iso(n.created_at),
    }


def _mine(user):
    return Notification.query.filter(Notification.user_id == user.id)


def _owned(notification_id):
    """(notification, None) or (None, error response)."""
    user = current_user()
    n = db.session.get(Notification, notification_id)
    if n is None:
        return None, fail("Notification not found", 404)
    if user is None or n.user_id != user.id:
        return None, fail("Unauthorized", 403)
    return n, None


@bp.get("")
@jwt_required()
def list_notifications():
    user = current_user()
    if user is None:
        return fail("Unauthorized", 401)
    q = _mine(user)
    if as_bool(request.args.get("unread")):
        q = q.filter(Notification.is_read.is_(False))
    if request.args.get("type"):
        q = q.filter(Notification.type == request.args["type"])
    q = q.order_by(Notification.created_at.desc(), Notification.id.desc())
    items, meta = paginate(q)
    return ok([notification_row(n) for n in items], **meta)


@bp.get("/unread-count")
@jwt_required()
def unread_count():
    user = current_user()
    if user is None:
        return fail("Unauthorized", 401)
    count = _mine(user).filter(Notification.is_read.is_(False)).count()
    return ok({"count": count})


@bp.put("/<int:notification_id>/read")
@jwt_required()
def mark_read(notification_id: int):
    n, err = _owned(notification_id)
    if err:
        return err
    if not n.is_read:
        n.is_read = True
        n.read_at = datetime.utcnow()
        db.session.commit()
    return ok(notification_row(n), message="Notification marked as read")


@bp.put("/mark-all-read")
@jwt_required()
def mark_all_read():
    user = current_user()
    if user is None:
        return fail("Unauthorized", 401)
    updated = (
        _mine(user)
        .filter(Notification.is_read.is_(False))
        .update({Notification.is_read: True, Notification.read_at: datetime.utcnow()},
                synchronize_session=False)
    )
    db.session.commit()
    return ok({"updated": updated}, message="All notifications marked as read")


@bp.delete("/clear-all")
@jwt_required()
def clear_all():
    user = current_user()
    if user is None:
        return fail("Unauthorized", 401)
    deleted = _mine(user).delete(synchronize_session=False)
    db.session.commit()
    return ok({"deleted": deleted}, message="All notifications cleared")


@bp.delete("/<int:notification_id>")
@jwt_required()
def delete_notification(notification_id: int):
    n, err = _owned(notification_id)
    if err:
        return err
    db.session.delete(n)
    db.session.commit()
    return ok(None, message="Notification deleted")
