from flask import current_app, has_request_context, request
from flask_jwt_extended import verify_jwt_in_request

from office_api.extensions import db
from office_api.models.activity import ActivityLog


def _actor_id():
    from office_api.common.auth import current_employee  # late import to avoid circulars
    verify_jwt_in_request(optional=True)
    emp = current_employee()
    return emp.id if emp else None


def log_activity(action, entity_type, entity_id=None, old_values=None, new_values=None,
                 description=None, entity_code=None, actor_id=None):
    """
    Write one audit row and commit it. Call after the business commit;
    a failure here is logged and swallowed so it never fails the request.
    """
    try:
        row = ActivityLog(
            actor_id=actor_id if actor_id is not None else _actor_id(),
            action_type=action,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_code=entity_code,
            description=description,
            old_values=old_values or None,
            new_values=new_values or None,
        )
        if has_request_context():
            row.ip_address = request.headers.get("X-Forwarded-For", request.remote_addr)
            row.user_agent = (request.user_agent.string or "")[:512] or None
            row.device_info = request.headers.get("X-Device-Info")
        db.session.add(row)
        db.session.commit()
        return row
    except Exception:
        db.session.rollback()
        current_app.logger.exception("activity log write failed (%s %s #%s)", action, entity_type, entity_id)
        return None
