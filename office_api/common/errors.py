# office_api/common/errors.py
from flask import Blueprint, current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError

from office_api.extensions import db
from office_api.common.http import fail

bp_errors = Blueprint("errors", __name__)


class APIError(Exception):
    """Error raised from views and services, rendered with the standard envelope."""
    def __init__(self, code, message, status_code=400, payload=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.payload = payload


class ValidationError(APIError):
    def __init__(self, errors: dict, message="Validation failed"):
        super().__init__("VALIDATION_ERROR", message, status_code=422, payload=errors)


def _rollback():
    try:
        db.session.rollback()
    except Exception:
        current_app.logger.exception("Session rollback failed")


@bp_errors.app_errorhandler(APIError)
def _api_error(e: APIError):
    _rollback()
    return fail(message=e.message, status=e.status_code, code=e.code, errors=e.payload)


@bp_errors.app_errorhandler(HTTPException)
def _http(e: HTTPException):
    _rollback()
    return fail(message=e.description or e.name, status=e.code or 400)


@bp_errors.app_errorhandler(IntegrityError)
def _integrity(e: IntegrityError):
    _rollback()
    # 409 for unique/FK violations
    current_app.logger.warning("Integrity error: %s", getattr(e, "orig", e))
    return fail(message="Conflict / integrity error", status=409, code="CONSTRAINT_ERROR")


@bp_errors.app_errorhandler(Exception)
def _unhandled(e: Exception):
    _rollback()
    current_app.logger.exception(e)
    return fail(message="Internal Server Error", status=500)
