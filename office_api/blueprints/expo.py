from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required

from office_api.common.auth import current_user
from office_api.common.http import ok, fail
from office_api.common.serialize import iso
from office_api.common.validate import Checker
from office_api.extensions import db
from office_api.models.user import ExpoToken, User

bp = Blueprint("expo", __name__, url_prefix="/api/v1/expo")


def token_row(t: ExpoToken):
    return {"id": t.id, "token": t.value, "device_model": t.device_model, "updated_at": iso(t.updated_at)}


@bp.post("/token")
@jwt_required()
def save_token():
    user = current_user()
    if user is None:
        return fail("Unauthorized", 401)
    clean = (
        Checker(request.get_json(silent=True) or {})
        .string("token", required=True, max_len=255)
        .string("device_model", max_len=120)
        .done()
    )
    value, model = clean["token"], clean.get("device_model")

    # one row per device; a token seen under another account moves to this one
    row = None
    if model:
        row = ExpoToken.query.filter_by(user_id=user.id, device_model=model).first()
    if row is None:
        row = ExpoToken.query.filter_by(value=value).first()
    if row is None:
        row = ExpoToken(user_id=user.id, value=value, device_model=model)
        db.session.add(row)
    else:
        clash = ExpoToken.query.filter(ExpoToken.value == value, ExpoToken.id != row.id).first()
        if clash is not None:
            db.session.delete(clash)
            db.session.flush()
        row.user_id = user.id
        row.value = value
        if model:
            row.device_model = model
    user.push_token = value
    # the device belongs to this account now, so earlier owners stop pushing to it
    User.query.filter(User.push_token == value, User.id != user.id).update({"push_token": None})
    db.session.commit()

    current_app.logger.info("expo token stored user_id=%s device=%s", user.id, model)
    return ok(token_row(row), message="Push token saved")


@bp.get("/token/status")
@jwt_required()
def token_status():
    user = current_user()
    if user is None:
        return fail("Unauthorized", 401)
    tokens = ExpoToken.query.filter_by(user_id=user.id).order_by(ExpoToken.updated_at.desc()).all()
    return ok({
        "has_token": bool(tokens or user.push_token),
        "push_token": user.push_token,
        "tokens": [token_row(t) for t in tokens],
    })
